"""内部API: スケジューラ処理の手動・外部トリガー (X-Scheduler-Token 必須)"""
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from printgest.core.config import settings
from printgest.core.database import get_db
from printgest.core.errors import AuthenticationError, NotFoundError
from printgest.core.logging import get_logger
from printgest.services import grace_period_service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/internal/scheduler", tags=["internal-scheduler"])

JOBS = {
    "expire-trials": grace_period_service.expire_trials,
    "purge-grace-periods": grace_period_service.purge_expired_grace_periods,
    "notify-grace-periods": grace_period_service.notify_grace_period_milestones,
    "finalize-cancellations": grace_period_service.finalize_deferred_cancellations,
}


def verify_scheduler_token(x_scheduler_token: Optional[str] = Header(default=None)):
    """共有トークン照合。未設定時は常に拒否"""
    expected = settings.SCHEDULER_TOKEN
    if not expected or not x_scheduler_token or not secrets.compare_digest(x_scheduler_token, expected):
        raise AuthenticationError("スケジューラトークンが無効です")


@router.post("/{job}", dependencies=[Depends(verify_scheduler_token)])
def run_job(job: str, db: Session = Depends(get_db)):
    """指定ジョブを即時実行して集計を返す"""
    func = JOBS.get(job)
    if func is None:
        raise NotFoundError(f"不明なジョブです: {job}")

    logger.info(f"スケジューラジョブ手動実行: {job}")
    result = func(db)
    if isinstance(result, int):
        result = {"processed": result}
    return {"job": job, **result}
