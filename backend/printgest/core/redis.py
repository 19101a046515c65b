import redis as sync_redis
from printgest.core.config import settings
from printgest.core.logging import get_logger

logger = get_logger(__name__)

# 同期Redis (Scheduler用)
sync_redis_pool = sync_redis.ConnectionPool.from_url(
    settings.REDIS_URL,
    max_connections=10,
    decode_responses=True,
)

HEARTBEAT_KEY = "scheduler:heartbeat"


def get_sync_redis() -> sync_redis.Redis:
    """同期Redisクライアント取得"""
    return sync_redis.Redis(connection_pool=sync_redis_pool)


def check_redis_connection() -> bool:
    """Redis接続チェック"""
    try:
        get_sync_redis().ping()
        return True
    except Exception:
        return False


def get_scheduler_heartbeat() -> str | None:
    """スケジューラ最終稼働時刻 (取得失敗時はNone)"""
    try:
        return get_sync_redis().get(HEARTBEAT_KEY)
    except Exception:
        return None


def touch_scheduler_heartbeat(job_id: str, at: str):
    """スケジューラ稼働記録。Redis障害はジョブを止めない"""
    try:
        r = get_sync_redis()
        r.set(HEARTBEAT_KEY, at)
        r.hset(f"{HEARTBEAT_KEY}:jobs", job_id, at)
    except Exception as e:
        logger.warning(f"ハートビート書き込み失敗: {job_id} - {e}")
