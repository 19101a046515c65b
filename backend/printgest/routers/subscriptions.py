"""本人の購読: 状態取得・解約・返金申請・アカウント削除"""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from printgest.core.database import get_db
from printgest.routers.deps import require_login
from printgest.schemas.auth import CallerIdentity
from printgest.schemas.subscription import (
    AccountDeletionRequest, AccountDeletionResult, CancelResult, RefundRequestInfo,
    RefundRequestSubmission, SelfCancelRequest, SubscriptionState,
)
from printgest.services import subscription_service

router = APIRouter(prefix="/api/subscription", tags=["subscription"])


@router.get("", response_model=SubscriptionState)
def get_subscription(
    db: Session = Depends(get_db),
    user: CallerIdentity = Depends(require_login),
):
    """自分の購読状態 (猶予期間の残り日数を含む)"""
    return subscription_service.get_subscription_state(db, user)


@router.post("/cancel", response_model=CancelResult)
def cancel_subscription(
    body: Optional[SelfCancelRequest] = None,
    db: Session = Depends(get_db),
    user: CallerIdentity = Depends(require_login),
):
    """解約 (既定: Stripe側も期間終了時に解約)"""
    body = body or SelfCancelRequest()
    return subscription_service.cancel_own_subscription(
        db,
        user,
        cancel_in_stripe=body.cancel_in_stripe,
        immediate=body.immediate,
    )


@router.post("/refund-requests", response_model=RefundRequestInfo)
def submit_refund_request(
    body: RefundRequestSubmission,
    db: Session = Depends(get_db),
    user: CallerIdentity = Depends(require_login),
):
    """返金申請 (管理者の承認待ち)"""
    return subscription_service.submit_refund_request(
        db,
        user,
        body.amount,
        body.reason,
        currency=body.currency,
        invoice_id=body.invoice_id,
        description=body.description,
    )


@router.post("/delete-account", response_model=AccountDeletionResult)
def delete_account(
    body: Optional[AccountDeletionRequest] = None,
    db: Session = Depends(get_db),
    user: CallerIdentity = Depends(require_login),
):
    """アカウント削除申請 (猶予期間後に完全削除)"""
    body = body or AccountDeletionRequest()
    return subscription_service.schedule_account_deletion(db, user, reason=body.reason)
