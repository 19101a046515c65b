"""猶予期間スケジューラの各スイープ処理

各処理は (db, now) を受け取り、対象を現在の永続状態から選び直す。
更新は条件付きUPDATEで行い、重複実行・並行実行でも同じ結果になる。
"""
import math
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from printgest.core.config import settings
from printgest.core.database import commit_or_raise
from printgest.core.errors import PersistenceError
from printgest.core.logging import get_logger
from printgest.core.tiers import FREE
from printgest.models.catalog_project import CatalogProject
from printgest.models.grace_period_notification import GracePeriodNotification
from printgest.models.profile import Profile
from printgest.models.project import Project
from printgest.models.subscription_change import SubscriptionChange
from printgest.models.user_subscription import UserSubscription
from printgest.services import mail_service, storage_service
from printgest.services.subscription_service import utcnow

logger = get_logger(__name__)

# 通知する残り日数
NOTIFICATION_MILESTONES = (30, 7, 1)


# =========================================================
# トライアル期限切れ
# =========================================================

def expire_trials(db: Session, now: Optional[datetime] = None) -> int:
    """期限切れトライアルを free / expired に戻す。処理件数を返す"""
    now = now or utcnow()
    targets = db.query(UserSubscription.id, UserSubscription.user_id, UserSubscription.tier).filter(
        UserSubscription.status == "trial",
        UserSubscription.expires_at < now,
    ).all()

    expired = 0
    for sub_id, user_id, previous_tier in targets:
        try:
            updated = db.query(UserSubscription).filter(
                UserSubscription.id == sub_id,
                UserSubscription.status == "trial",
                UserSubscription.expires_at < now,
            ).update({"status": "expired", "tier": FREE}, synchronize_session=False)
            if not updated:
                db.rollback()
                continue
            db.add(SubscriptionChange(
                user_id=user_id,
                admin_id=None,
                previous_tier=previous_tier,
                new_tier=FREE,
                change_type="trial_expired",
                reason="Trial period ended automatically",
            ))
            commit_or_raise(db, "expire_trials")
            expired += 1
        except (SQLAlchemyError, PersistenceError) as e:
            db.rollback()
            logger.error(f"トライアル期限切れ処理失敗: user_id={user_id} - {e}")

    if expired:
        logger.info(f"トライアル期限切れ: {expired}件")
    return expired


# =========================================================
# 猶予期間終了 → 画像削除
# =========================================================

def _purge_images(db: Session, rows, column: str, bucket: str) -> int:
    deleted = 0
    for row in rows:
        key = storage_service.object_key_from_url(getattr(row, column))
        if key and storage_service.delete_object(bucket, key):
            deleted += 1
        setattr(row, column, None)
    return deleted


def _purge_user_images(db: Session, user_id: str) -> int:
    """ユーザーの全画像をストレージから削除し、URLをnullにする"""
    deleted = _purge_images(
        db,
        db.query(Project).filter(Project.user_id == user_id, Project.image_url.isnot(None)).all(),
        "image_url",
        settings.PROJECT_IMAGES_BUCKET,
    )
    deleted += _purge_images(
        db,
        db.query(CatalogProject).filter(CatalogProject.user_id == user_id, CatalogProject.image_url.isnot(None)).all(),
        "image_url",
        settings.CATALOG_IMAGES_BUCKET,
    )
    deleted += _purge_images(
        db,
        db.query(Profile).filter(Profile.id == user_id, Profile.brand_logo_url.isnot(None)).all(),
        "brand_logo_url",
        settings.BRAND_LOGOS_BUCKET,
    )
    commit_or_raise(db, "purge_user_images")
    return deleted


def purge_expired_grace_periods(db: Session, now: Optional[datetime] = None) -> dict:
    """猶予期間が終了したユーザーの画像を削除し、猶予期間フィールドをクリア

    画像削除を先に行い、猶予期間のクリアは最後にコミットする。途中で失敗した
    ユーザーは次回実行で再処理される。
    """
    now = now or utcnow()
    targets = db.query(UserSubscription.id, UserSubscription.user_id, UserSubscription.grace_period_end).filter(
        UserSubscription.grace_period_end.isnot(None),
        UserSubscription.grace_period_end <= now,
    ).all()

    cleaned = 0
    for sub_id, user_id, grace_end in targets:
        try:
            deleted = _purge_user_images(db, user_id)
            updated = db.query(UserSubscription).filter(
                UserSubscription.id == sub_id,
                UserSubscription.grace_period_end == grace_end,
            ).update({
                "grace_period_end": None,
                "previous_tier": None,
                "downgrade_date": None,
                "is_read_only": False,
            }, synchronize_session=False)
            commit_or_raise(db, "purge_expired_grace_periods")
            if updated:
                cleaned += 1
                logger.info(f"猶予期間終了: user_id={user_id}, 画像削除{deleted}件")
        except Exception as e:
            db.rollback()
            logger.error(f"猶予期間クリーンアップ失敗: user_id={user_id} - {e}")

    result = {"found": len(targets), "cleaned": cleaned}
    logger.info("猶予期間クリーンアップ完了", extra={"extra_data": result})
    return result


# =========================================================
# 猶予期間マイルストーン通知
# =========================================================

def days_remaining(grace_period_end: datetime, now: datetime) -> int:
    """残り日数 (切り上げ)"""
    return math.ceil((grace_period_end - now).total_seconds() / 86400)


def _already_notified(db: Session, user_id: str, milestone: int, grace_end: datetime) -> bool:
    return db.query(GracePeriodNotification).filter(
        GracePeriodNotification.user_id == user_id,
        GracePeriodNotification.milestone == milestone,
        GracePeriodNotification.grace_period_end == grace_end,
    ).first() is not None


def _claim_milestone(db: Session, user_id: str, milestone: int, grace_end: datetime, now: datetime):
    """送信前に通知記録を確定させる。他の実行が先に記録済みならNone"""
    claim = GracePeriodNotification(
        user_id=user_id,
        milestone=milestone,
        grace_period_end=grace_end,
        sent_at=now,
    )
    db.add(claim)
    try:
        commit_or_raise(db, "claim_grace_period_milestone")
    except PersistenceError:
        return None
    return claim


def _release_claim(db: Session, claim: GracePeriodNotification):
    """送信失敗時に通知記録を取り消し、次回実行で再送させる"""
    user_id, milestone = claim.user_id, claim.milestone
    db.delete(claim)
    try:
        commit_or_raise(db, "release_grace_period_milestone")
    except PersistenceError:
        logger.error(f"通知記録の取り消し失敗: user_id={user_id}, milestone={milestone}")


def notify_grace_period_milestones(db: Session, now: Optional[datetime] = None) -> dict:
    """残り30/7/1日のユーザーに画像削除予告メールを送信

    通知記録を先にコミットしてから送信するため、並行実行でも同じマイルストーンの
    メールは一度しか送られない。
    """
    now = now or utcnow()
    subs = db.query(UserSubscription).filter(
        UserSubscription.grace_period_end.isnot(None),
        UserSubscription.grace_period_end > now,
    ).all()
    targets = [(sub.user_id, sub.previous_tier, sub.grace_period_end) for sub in subs]

    users_at_milestone = 0
    sent = 0
    for user_id, previous_tier, grace_end in targets:
        days = days_remaining(grace_end, now)
        if days not in NOTIFICATION_MILESTONES:
            continue

        profile = db.query(Profile).filter(Profile.id == user_id).first()
        if not profile or not profile.email or profile.deleted_at:
            logger.warning(f"通知先メールアドレスなし: user_id={user_id}")
            continue
        users_at_milestone += 1
        email, full_name = profile.email, profile.full_name

        if _already_notified(db, user_id, days, grace_end):
            continue
        claim = _claim_milestone(db, user_id, days, grace_end, now)
        if claim is None:
            logger.info(f"通知済みのためスキップ: user_id={user_id}, milestone={days}")
            continue

        ok = mail_service.send_grace_period_notice_email(
            to_email=email,
            full_name=full_name,
            previous_tier=previous_tier,
            grace_period_end=grace_end,
            days_remaining=days,
        )
        if not ok:
            _release_claim(db, claim)
            continue
        sent += 1

    result = {
        "users_in_grace_period": len(targets),
        "users_at_milestone": users_at_milestone,
        "notifications_sent": sent,
    }
    logger.info("猶予期間通知完了", extra={"extra_data": result})
    return result


# =========================================================
# 期間終了時解約の確定
# =========================================================

def finalize_deferred_cancellations(db: Session, now: Optional[datetime] = None) -> int:
    """期間終了時解約で有効期限を過ぎた購読を free に確定。処理件数を返す"""
    now = now or utcnow()
    targets = db.query(UserSubscription.id, UserSubscription.user_id, UserSubscription.tier).filter(
        UserSubscription.status == "cancelled",
        UserSubscription.tier != FREE,
        UserSubscription.expires_at.isnot(None),
        UserSubscription.expires_at <= now,
    ).all()

    finalized = 0
    for sub_id, user_id, previous_tier in targets:
        try:
            updated = db.query(UserSubscription).filter(
                UserSubscription.id == sub_id,
                UserSubscription.status == "cancelled",
                UserSubscription.tier == previous_tier,
            ).update({"tier": FREE}, synchronize_session=False)
            if not updated:
                db.rollback()
                continue
            db.add(SubscriptionChange(
                user_id=user_id,
                admin_id=None,
                previous_tier=previous_tier,
                new_tier=FREE,
                change_type="downgrade",
                reason="Deferred cancellation finalized",
            ))
            commit_or_raise(db, "finalize_deferred_cancellations")
            finalized += 1
        except (SQLAlchemyError, PersistenceError) as e:
            db.rollback()
            logger.error(f"解約確定処理失敗: user_id={user_id} - {e}")

    if finalized:
        logger.info(f"期間終了時解約の確定: {finalized}件")
    return finalized
