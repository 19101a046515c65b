"""管理画面: ユーザー削除"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from printgest.core.database import get_db
from printgest.routers.deps import require_admin
from printgest.schemas.auth import CallerIdentity
from printgest.schemas.subscription import DeleteUserRequest, DeleteUserResult
from printgest.services import subscription_service

router = APIRouter(prefix="/api/admin/users", tags=["admin-users"])


@router.post("/delete", response_model=DeleteUserResult)
def delete_user(
    body: DeleteUserRequest,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(require_admin),
):
    """ユーザー削除 (論理削除 + 購読解約)"""
    return subscription_service.delete_user(
        db,
        body.user_id,
        body.reason,
        admin,
        cancel_stripe_subscription=body.cancel_stripe_subscription,
    )
