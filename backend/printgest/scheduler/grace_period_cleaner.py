"""03:00: 猶予期間終了ユーザーの画像削除"""
from printgest.core.database import SessionLocal
from printgest.core.logging import get_logger
from printgest.core.redis import touch_scheduler_heartbeat
from printgest.services.grace_period_service import purge_expired_grace_periods
from printgest.services.subscription_service import utcnow

logger = get_logger(__name__)


def purge_grace_periods_job():
    """
    猶予期間クリーンアップ:
    - grace_period_end を過ぎたユーザーのプロジェクト画像・カタログ画像・ブランドロゴを削除
    - 画像削除後に猶予期間フィールドをクリア (読み取り専用解除)
    """
    db = SessionLocal()
    now = utcnow()
    try:
        result = purge_expired_grace_periods(db, now)
        if result["found"] != result["cleaned"]:
            logger.warning(f"猶予期間クリーンアップ未完了あり: {result}")
    except Exception as e:
        logger.error(f"猶予期間クリーンアップジョブエラー: {e}")
    finally:
        db.close()
        touch_scheduler_heartbeat("grace_period_cleaner", now.isoformat())
