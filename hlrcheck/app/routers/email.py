# hlrcheck/app/routers/email.py

from fastapi import Depends

from hlrcheck.app.models import User
from hlrcheck.app.routers.batches import build_router
from hlrcheck.app.services import email_client
from hlrcheck.app.services.auth_service import get_current_user

router = build_router("email")


@router.get("/credits")
def credits(current_user: User = Depends(get_current_user)):
    return email_client.get_credits()


@router.get("/codes")
def result_codes(current_user: User = Depends(get_current_user)):
    """Provider result / subresult descriptions for the UI legend."""
    return {
        "results": email_client.RESULT_DESCRIPTIONS,
        "subresults": email_client.SUBRESULT_DESCRIPTIONS,
    }
