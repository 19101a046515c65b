"""毎時: 期限切れトライアルを free に戻す"""
from printgest.core.database import SessionLocal
from printgest.core.logging import get_logger
from printgest.core.redis import touch_scheduler_heartbeat
from printgest.services.grace_period_service import expire_trials
from printgest.services.subscription_service import utcnow

logger = get_logger(__name__)


def expire_trials_job():
    db = SessionLocal()
    now = utcnow()
    try:
        count = expire_trials(db, now)
        logger.info(f"トライアル期限切れジョブ完了: {count}件")
    except Exception as e:
        logger.error(f"トライアル期限切れジョブエラー: {e}")
    finally:
        db.close()
        touch_scheduler_heartbeat("trial_expirer", now.isoformat())
