from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

# リクエスト/レスポンスのJSONキーはcamelCase、Python側はsnake_case
_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


# =========================================================
# リクエスト
# =========================================================

class ChangeTierRequest(BaseModel):
    user_id: str
    new_tier: str
    notes: Optional[str] = None

    model_config = _CAMEL


class AddTrialRequest(BaseModel):
    user_id: str
    trial_days: Optional[int] = None
    notes: Optional[str] = None

    model_config = _CAMEL


class SelfCancelRequest(BaseModel):
    cancel_in_stripe: bool = True
    immediate: bool = False

    model_config = _CAMEL


class AdminCancelRequest(BaseModel):
    user_id: Optional[str] = None
    notes: Optional[str] = None
    cancel_in_stripe: bool = False
    immediate: bool = True

    model_config = _CAMEL


class RefundRequest(BaseModel):
    user_id: str
    amount: Optional[float] = None
    currency: str = "EUR"
    notes: Optional[str] = None
    process_in_stripe: bool = False
    invoice_id: Optional[int] = None

    model_config = _CAMEL


class DeleteUserRequest(BaseModel):
    user_id: Optional[str] = None
    reason: Optional[str] = None
    cancel_stripe_subscription: bool = True

    model_config = _CAMEL


class RefundRequestSubmission(BaseModel):
    amount: Optional[float] = None
    currency: str = "EUR"
    reason: Optional[str] = None
    description: Optional[str] = None
    invoice_id: Optional[int] = None

    model_config = _CAMEL


class ProcessRefundRequestBody(BaseModel):
    refund_request_id: int
    action: str
    admin_notes: Optional[str] = None
    process_in_stripe: bool = False

    model_config = _CAMEL


class AccountDeletionRequest(BaseModel):
    reason: Optional[str] = None

    model_config = _CAMEL


# =========================================================
# レスポンス
# =========================================================

class TierChangeResult(BaseModel):
    previous_tier: str
    new_tier: str
    change_type: str

    model_config = _CAMEL


class TrialResult(BaseModel):
    trial_days: int
    new_expires_at: datetime
    trial_tier: str

    model_config = _CAMEL


class CancelResult(BaseModel):
    previous_tier: str
    grace_period_end: Optional[datetime] = None
    stripe_cancelled: bool = False
    expiration_date: Optional[datetime] = None
    immediate: bool = False

    model_config = _CAMEL


class RefundInvoice(BaseModel):
    id: int
    invoice_number: str
    amount: float


class RefundResult(BaseModel):
    refund_invoice: RefundInvoice
    stripe_refund_id: Optional[str] = None

    model_config = _CAMEL


class DeleteUserResult(BaseModel):
    user_id: str
    stripe_cancelled: bool = False

    model_config = _CAMEL


class SubscriptionState(BaseModel):
    """本人の購読状態 (猶予期間バナー表示用)"""

    tier: str
    status: str
    expires_at: Optional[datetime] = None
    previous_tier: Optional[str] = None
    downgrade_date: Optional[datetime] = None
    grace_period_end: Optional[datetime] = None
    is_read_only: bool = False
    grace_days_remaining: Optional[int] = None

    model_config = _CAMEL


class SubscriptionChangeInfo(BaseModel):
    id: int
    admin_id: Optional[str] = None
    previous_tier: Optional[str] = None
    new_tier: str
    change_type: str
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {**_CAMEL, "from_attributes": True}


class RefundRequestInfo(BaseModel):
    id: int
    status: str
    amount: Optional[float] = None
    currency: Optional[str] = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {**_CAMEL, "from_attributes": True}


class RefundRequestResult(BaseModel):
    refund_request: RefundRequestInfo
    refund_invoice: Optional[RefundInvoice] = None
    stripe_refund_id: Optional[str] = None

    model_config = _CAMEL


class AccountDeletionResult(BaseModel):
    scheduled_deletion_at: Optional[datetime] = None
    stripe_cancelled: bool = False
    already_scheduled: bool = False

    model_config = _CAMEL
