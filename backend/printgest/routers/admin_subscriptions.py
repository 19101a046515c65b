"""管理画面: 購読操作 (Tier変更・トライアル付与・解約・返金・返金申請・変更履歴)"""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from printgest.core.database import get_db
from printgest.routers.deps import require_admin
from printgest.schemas.auth import CallerIdentity
from printgest.schemas.subscription import (
    AddTrialRequest, AdminCancelRequest, CancelResult, ChangeTierRequest, ProcessRefundRequestBody,
    RefundRequest, RefundRequestInfo, RefundRequestResult, RefundResult, SubscriptionChangeInfo,
    TierChangeResult, TrialResult,
)
from printgest.services import subscription_service

router = APIRouter(prefix="/api/admin/subscriptions", tags=["admin-subscriptions"])


@router.post("/change-tier", response_model=TierChangeResult)
def change_tier(
    body: ChangeTierRequest,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(require_admin),
):
    """Tier変更"""
    return subscription_service.change_tier(db, body.user_id, body.new_tier, admin, notes=body.notes)


@router.post("/add-trial", response_model=TrialResult)
def add_trial(
    body: AddTrialRequest,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(require_admin),
):
    """トライアル日数付与"""
    return subscription_service.add_trial(db, body.user_id, body.trial_days, admin, notes=body.notes)


@router.post("/cancel", response_model=CancelResult)
def cancel_subscription(
    body: AdminCancelRequest,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(require_admin),
):
    """管理者による解約 (既定は即時・Stripe操作なし)"""
    return subscription_service.admin_cancel_subscription(
        db,
        body.user_id,
        admin,
        notes=body.notes,
        cancel_in_stripe=body.cancel_in_stripe,
        immediate=body.immediate,
    )


@router.post("/refund", response_model=RefundResult)
def refund(
    body: RefundRequest,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(require_admin),
):
    """手動返金"""
    return subscription_service.process_refund(
        db,
        body.user_id,
        body.amount,
        admin,
        currency=body.currency,
        notes=body.notes,
        process_at_gateway=body.process_in_stripe,
        invoice_id=body.invoice_id,
    )


@router.get("/refund-requests", response_model=list[RefundRequestInfo])
def list_refund_requests(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(require_admin),
):
    """返金申請一覧"""
    return subscription_service.list_refund_requests(db, admin, status=status)


@router.post("/refund-requests/process", response_model=RefundRequestResult)
def process_refund_request(
    body: ProcessRefundRequestBody,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(require_admin),
):
    """返金申請の承認・却下"""
    return subscription_service.process_refund_request(
        db,
        body.refund_request_id,
        body.action,
        admin,
        admin_notes=body.admin_notes,
        process_in_stripe=body.process_in_stripe,
    )


@router.get("/{user_id}/changes", response_model=list[SubscriptionChangeInfo])
def list_changes(
    user_id: str,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(require_admin),
):
    """購読変更履歴 (新しい順)"""
    return subscription_service.list_changes(db, user_id, admin)
