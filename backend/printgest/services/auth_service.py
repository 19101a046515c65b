"""認可ゲート: 署名検証済みJWTから呼び出し元を解決し、権限を判定"""
from typing import Optional

import jwt
from sqlalchemy.orm import Session

from printgest.core.config import settings
from printgest.core.errors import AuthenticationError, AuthorizationError
from printgest.core.logging import get_logger
from printgest.models.profile import Profile
from printgest.models.user_role import UserRole
from printgest.schemas.auth import CallerIdentity

logger = get_logger(__name__)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Authorization ヘッダーからトークン部分を取り出す"""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        return token.strip()
    return authorization.strip() or None


def decode_token(token: str) -> dict:
    """JWTの署名・有効期限・audienceを検証してペイロードを返す"""
    options = {"require": ["exp", "sub"]}
    kwargs = {}
    if settings.JWT_AUDIENCE:
        kwargs["audience"] = settings.JWT_AUDIENCE
    else:
        options["verify_aud"] = False
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options=options,
            **kwargs,
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("認証トークンの有効期限が切れています")
    except jwt.InvalidTokenError as e:
        logger.info(f"無効なトークン: {e}")
        raise AuthenticationError("認証トークンが無効です")


def has_admin_role(db: Session, user_id: str) -> bool:
    return db.query(UserRole).filter(
        UserRole.user_id == user_id,
        UserRole.role == "admin",
    ).first() is not None


def resolve_identity(db: Session, token: Optional[str]) -> CallerIdentity:
    """トークン → CallerIdentity。トークン無し・無効・削除済みユーザーは401"""
    if not token:
        raise AuthenticationError("認証トークンがありません")

    payload = decode_token(token)
    user_id = str(payload["sub"])

    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if profile and profile.deleted_at:
        raise AuthenticationError("このアカウントは削除されています")

    return CallerIdentity(
        user_id=user_id,
        email=payload.get("email") or (profile.email if profile else None),
        is_admin=has_admin_role(db, user_id),
    )


def ensure_admin(actor: CallerIdentity):
    """管理者権限必須。なければ403"""
    if actor is None:
        raise AuthenticationError("ログインが必要です")
    if not actor.is_admin:
        raise AuthorizationError("管理者権限が必要です")


def ensure_self(actor: CallerIdentity, user_id: str):
    """本人操作のみ許可"""
    if actor is None:
        raise AuthenticationError("ログインが必要です")
    if actor.user_id != user_id:
        raise AuthorizationError("他のユーザーの購読は操作できません")
