"""09:00: 猶予期間終了予告メール (残り30/7/1日)"""
from printgest.core.database import SessionLocal
from printgest.core.logging import get_logger
from printgest.core.redis import touch_scheduler_heartbeat
from printgest.services.grace_period_service import notify_grace_period_milestones
from printgest.services.subscription_service import utcnow

logger = get_logger(__name__)


def notify_grace_periods_job():
    db = SessionLocal()
    now = utcnow()
    try:
        notify_grace_period_milestones(db, now)
    except Exception as e:
        logger.error(f"猶予期間通知ジョブエラー: {e}")
    finally:
        db.close()
        touch_scheduler_heartbeat("grace_period_notifier", now.isoformat())
