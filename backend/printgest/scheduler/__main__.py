"""Scheduler エントリポイント: python -m printgest.scheduler で起動"""
import signal
import sys
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from printgest.core.config import settings
from printgest.core.logging import setup_logging, get_logger
from printgest.scheduler.trial_expirer import expire_trials_job
from printgest.scheduler.deferred_cancellation_finalizer import finalize_cancellations_job
from printgest.scheduler.grace_period_cleaner import purge_grace_periods_job
from printgest.scheduler.grace_period_notifier import notify_grace_periods_job

setup_logging(debug=settings.DEBUG, service="scheduler")
logger = get_logger("scheduler")

TZ = settings.SCHEDULER_TIMEZONE

scheduler = BlockingScheduler(timezone=TZ)


def signal_handler(sig, frame):
    logger.info("Scheduler停止シグナル受信")
    scheduler.shutdown(wait=False)
    sys.exit(0)


def main():
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)
    logger.info("Scheduler起動")

    # 毎時: トライアル期限切れ
    scheduler.add_job(
        expire_trials_job,
        CronTrigger(minute=0, timezone=TZ),
        id="trial_expirer",
        max_instances=1,
    )

    # 毎時: 期間終了時解約の確定
    scheduler.add_job(
        finalize_cancellations_job,
        CronTrigger(minute=5, timezone=TZ),
        id="deferred_cancellation_finalizer",
        max_instances=1,
    )

    # 03:00: 猶予期間終了 → 画像削除
    scheduler.add_job(
        purge_grace_periods_job,
        CronTrigger(hour=3, minute=0, timezone=TZ),
        id="grace_period_cleaner",
        max_instances=1,
    )

    # 09:00: 猶予期間終了予告メール
    scheduler.add_job(
        notify_grace_periods_job,
        CronTrigger(hour=9, minute=0, timezone=TZ),
        id="grace_period_notifier",
        max_instances=1,
    )

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler終了")


if __name__ == "__main__":
    main()
