"""トランザクションメール送信 (猶予期間通知)"""
from datetime import datetime
from pathlib import Path

import resend
from jinja2 import Environment, FileSystemLoader, select_autoescape

from printgest.core.config import settings
from printgest.core.logging import get_logger
from printgest.core.tiers import tier_label

logger = get_logger(__name__)

# テンプレートエンジン
template_dir = Path(__file__).parent.parent / "templates" / "email"
jinja_env = Environment(
    loader=FileSystemLoader(str(template_dir)),
    autoescape=select_autoescape(["html"]),
)

# 残り日数 → (見出し, 強調色)
_URGENCY = {
    1: ("URGENT", "#dc2626"),
    7: ("Important", "#ea580c"),
}
_DEFAULT_URGENCY = ("Notice", "#3b82f6")


def _day_word(days: int) -> str:
    return "day" if days == 1 else "days"


def render_grace_period_notice(
    full_name: str,
    previous_tier: str,
    grace_period_end: datetime,
    days_remaining: int,
) -> tuple[str, str]:
    """件名とHTML本文を生成"""
    urgency, color = _URGENCY.get(days_remaining, _DEFAULT_URGENCY)
    subject = f"{urgency}: Your images will be deleted in {days_remaining} {_day_word(days_remaining)}"
    template = jinja_env.get_template("grace_period_notice.html")
    html = template.render(
        full_name=full_name or "there",
        tier_name=tier_label(previous_tier),
        urgency=urgency,
        color=color,
        days_remaining=days_remaining,
        day_word=_day_word(days_remaining),
        deletion_date=grace_period_end.strftime("%Y-%m-%d"),
        site_name=settings.SITE_NAME,
        pricing_url=f"{settings.SITE_URL}/pricing",
        export_url=f"{settings.SITE_URL}/grace-period-settings",
        year=datetime.now().year,
    )
    return subject, html


def send_grace_period_notice_email(
    to_email: str,
    full_name: str,
    previous_tier: str,
    grace_period_end: datetime,
    days_remaining: int,
) -> bool:
    """猶予期間終了予告メール送信"""
    try:
        resend.api_key = settings.RESEND_API_KEY
        subject, html = render_grace_period_notice(full_name, previous_tier, grace_period_end, days_remaining)
        resend.Emails.send({
            "from": settings.RESEND_FROM_EMAIL,
            "to": [to_email],
            "subject": subject,
            "html": html,
        })
        logger.info(f"猶予期間通知メール送信: {to_email} (残り{days_remaining}日)")
        return True
    except Exception as e:
        logger.error(f"猶予期間通知メール送信失敗: {to_email} - {e}")
        return False
