"""毎時: 期間終了時解約の確定 (有効期限を過ぎた解約済み有料Tierを free へ)"""
from printgest.core.database import SessionLocal
from printgest.core.logging import get_logger
from printgest.core.redis import touch_scheduler_heartbeat
from printgest.services.grace_period_service import finalize_deferred_cancellations
from printgest.services.subscription_service import utcnow

logger = get_logger(__name__)


def finalize_cancellations_job():
    db = SessionLocal()
    now = utcnow()
    try:
        count = finalize_deferred_cancellations(db, now)
        logger.info(f"解約確定ジョブ完了: {count}件")
    except Exception as e:
        logger.error(f"解約確定ジョブエラー: {e}")
    finally:
        db.close()
        touch_scheduler_heartbeat("deferred_cancellation_finalizer", now.isoformat())
