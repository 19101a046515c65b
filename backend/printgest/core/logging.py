import logging
import sys
import json
from datetime import datetime, timezone

# 本番でも冗長になるライブラリのロガー
_QUIET_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "botocore": logging.WARNING,
    "urllib3": logging.WARNING,
    "stripe": logging.WARNING,
    "apscheduler": logging.INFO,
    "uvicorn.access": logging.INFO,
}


class JSONFormatter(logging.Formatter):
    """構造化JSONログフォーマッター

    service には出力元プロセス (api / scheduler) を入れる。
    extra={"extra_data": {...}} で渡した値は data キーに出る。
    """

    def __init__(self, service: str = "api"):
        super().__init__()
        self.service = service

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra_data"):
            log_entry["data"] = record.extra_data
        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False, default=str)


def setup_logging(debug: bool = False, service: str = "api"):
    """ロギング設定を初期化"""
    level = logging.DEBUG if debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(service=service))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> logging.Logger:
    """名前付きロガーを取得"""
    return logging.getLogger(name)
