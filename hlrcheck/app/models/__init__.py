# ---------------------------
# Users & authorization
# ---------------------------
from .user import User
from .role import CustomRole, RolePermission
from .user_session import UserSession
from .invite_code import InviteCode
from .access_request import AccessRequest

# ---------------------------
# Verification
# ---------------------------
from .hlr_batch import HlrBatch
from .hlr_result import HlrResult
from .email_batch import EmailBatch
from .email_result import EmailResult
from .export_template import ExportTemplate

# ---------------------------
# Logs & settings
# ---------------------------
from .audit_log import AuditLog
from .app_setting import AppSetting
