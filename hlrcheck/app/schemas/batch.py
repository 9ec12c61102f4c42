from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from .base import ORMBase


# ---------------------------------------------------------
# Requests
# ---------------------------------------------------------
class SingleCheckRequest(BaseModel):
    value: str = Field(..., min_length=1)


class BatchCreateRequest(BaseModel):
    name: str | None = None
    items: List[str] = Field(..., min_length=1)


class ItemsRequest(BaseModel):
    items: List[str]


class CostEstimateRequest(BaseModel):
    count: int = Field(..., ge=0)


class ResumeRequest(BaseModel):
    items: List[str] | None = None


# ---------------------------------------------------------
# Batches
# ---------------------------------------------------------
class BatchResponse(ORMBase):
    user_id: int
    name: str | None = None
    status: str
    total: int
    processed: int
    valid: int
    invalid: int
    error_message: str | None = None
    completed_at: datetime | None = None


class HlrBatchResponse(BatchResponse):
    pass


class EmailBatchResponse(BatchResponse):
    risky: int = 0
    unknown: int = 0


class OwnedBatch(BaseModel):
    batch: Dict[str, Any]
    username: str | None = None
    user_name: str | None = None


# ---------------------------------------------------------
# Results
# ---------------------------------------------------------
class HlrResultResponse(ORMBase):
    batch_id: int
    phone_number: str
    international_format: str | None = None
    national_format: str | None = None
    country_code: str | None = None
    country_name: str | None = None
    country_prefix: str | None = None
    current_carrier_name: str | None = None
    current_carrier_code: str | None = None
    current_carrier_country: str | None = None
    current_network_type: str | None = None
    original_carrier_name: str | None = None
    original_carrier_code: str | None = None
    valid_number: str | None = None
    reachable: str | None = None
    ported: str | None = None
    roaming: str | None = None
    gsm_code: str | None = None
    gsm_message: str | None = None
    health_score: int | None = None
    status: str
    error_message: str | None = None
    from_cache: bool = False


class EmailResultResponse(ORMBase):
    batch_id: int
    email: str
    quality: str | None = None
    result: str | None = None
    subresult: str | None = None
    result_code: int | None = None
    is_free: bool | None = None
    is_role: bool | None = None
    did_you_mean: str | None = None
    verdict: str | None = None
    status: str
    error_message: str | None = None
    from_cache: bool = False
