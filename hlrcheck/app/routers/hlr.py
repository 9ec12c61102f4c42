# hlrcheck/app/routers/hlr.py

import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from hlrcheck.app.db import get_db
from hlrcheck.app.models import User
from hlrcheck.app.routers.batches import build_router
from hlrcheck.app.schemas.batch import ItemsRequest, CostEstimateRequest
from hlrcheck.app.services import hlr_client
from hlrcheck.app.services.auth_service import get_current_user, require_permission
from hlrcheck.app.services.phone_utils import analyze_batch, analyze_numbers, get_cost_estimate
from hlrcheck.app.services.telegram_service import notify_low_balance

logger = logging.getLogger(__name__)

router = build_router("hlr")


# -------------------------------------------------------
# POST /hlr/analyze  → pre-flight report for a batch
# -------------------------------------------------------
@router.post("/analyze")
def analyze(
    payload: ItemsRequest,
    current_user: User = Depends(require_permission("hlr.batch")),
):
    return analyze_batch(payload.items).to_dict()


# -------------------------------------------------------
# POST /hlr/duplicates  → duplicate removal tool
# -------------------------------------------------------
@router.post("/duplicates")
def duplicates(
    payload: ItemsRequest,
    current_user: User = Depends(require_permission("tools.duplicates")),
):
    return analyze_numbers(payload.items)


@router.post("/cost-estimate")
def cost_estimate(
    payload: CostEstimateRequest,
    current_user: User = Depends(get_current_user),
):
    return get_cost_estimate(payload.count)


# -------------------------------------------------------
# GET /hlr/balance  → provider balance (+ low balance alert)
# -------------------------------------------------------
@router.get("/balance")
def balance(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = hlr_client.get_balance()
    if "error" not in result:
        notify_low_balance(db, float(result["balance"] or 0), result.get("currency") or "EUR")
    return result
