"""共通依存関数: 認証・ロール制御"""
from typing import Optional
from fastapi import Header, Depends
from sqlalchemy.orm import Session

from printgest.core.database import get_db
from printgest.core.errors import AuthenticationError, AuthorizationError
from printgest.schemas.auth import CallerIdentity
from printgest.services.auth_service import extract_bearer_token, resolve_identity


def get_current_identity(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> Optional[CallerIdentity]:
    """Authorization ヘッダー → 検証済みID。ヘッダーが無ければNone"""
    token = extract_bearer_token(authorization)
    if not token:
        return None
    return resolve_identity(db, token)


def require_login(
    identity: Optional[CallerIdentity] = Depends(get_current_identity),
) -> CallerIdentity:
    """ログイン必須。未ログインなら401"""
    if identity is None:
        raise AuthenticationError("ログインが必要です")
    return identity


def require_admin(
    identity: CallerIdentity = Depends(require_login),
) -> CallerIdentity:
    """管理者権限必須。adminでなければ403"""
    if not identity.is_admin:
        raise AuthorizationError("管理者権限が必要です")
    return identity
