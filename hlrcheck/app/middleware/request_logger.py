# hlrcheck/app/middleware/request_logger.py
import logging
import re
import time
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from hlrcheck.app.services.audit import client_ip

logger = logging.getLogger("request")


_EMAIL_RE = re.compile(r"[a-zA-Z0-9_.+-]+(?:@|%40)[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+")
# +, %2B or a bare run of 7+ digits (optionally separated)
_PHONE_RE = re.compile(r"(?:\+|%2B)?\d[\d\- ]{5,}\d")


def redact_pii(text: Optional[str]) -> Optional[str]:
    if not text:
        return text
    text = _EMAIL_RE.sub("[REDACTED_EMAIL]", text)
    text = _PHONE_RE.sub("[REDACTED_PHONE]", text)
    return text


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """
    One log line per request:
    method, redacted path/query, client ip, user id, status, duration.
    Propagates X-Request-Id (generated when the client sent none).
    """

    async def dispatch(self, request: Request, call_next):
        start = time.time()
        request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        request.state.request_id = request_id

        path = redact_pii(request.url.path)
        query = redact_pii(request.url.query) or ""
        ip = client_ip(request) or "unknown"

        try:
            response: Response = await call_next(request)
        except Exception:
            duration_ms = int((time.time() - start) * 1000)
            logger.exception(
                "%s %s%s 500 %dms ip=%s req_id=%s",
                request.method, path, f"?{query}" if query else "", duration_ms, ip, request_id,
            )
            raise

        duration_ms = int((time.time() - start) * 1000)
        user = getattr(request.state, "user", None)
        response.headers.setdefault("X-Request-Id", request_id)

        logger.info(
            "%s %s%s %s %dms ip=%s user=%s req_id=%s",
            request.method,
            path,
            f"?{query}" if query else "",
            response.status_code,
            duration_ms,
            ip,
            getattr(user, "id", None),
            request_id,
        )
        return response
