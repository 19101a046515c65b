"""Stripe API操作サービス (決済ゲートウェイアダプタ)

失敗はすべて UpstreamError に変換する。呼び出し側は捕捉してフォールバックする。
"""
from datetime import datetime, timezone
from typing import Optional

import stripe

from printgest.core.config import settings
from printgest.core.errors import UpstreamError
from printgest.core.logging import get_logger

logger = get_logger(__name__)

# 返金対象チャージ照合の許容誤差
AMOUNT_TOLERANCE = 0.01


def is_configured() -> bool:
    return bool(settings.STRIPE_SECRET_KEY)


def _init_stripe():
    if not is_configured():
        raise UpstreamError("Stripeが設定されていません")
    stripe.api_key = settings.STRIPE_SECRET_KEY


def _field(obj, key: str, default=None):
    """StripeObject・dict 両対応のフィールド取得"""
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        return default
    return default if value is None else value


def _from_timestamp(ts: Optional[int]) -> Optional[datetime]:
    if not ts:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


def retrieve_subscription(subscription_id: str):
    """Stripe Subscription を取得"""
    _init_stripe()
    try:
        return stripe.Subscription.retrieve(subscription_id)
    except stripe.StripeError as e:
        raise UpstreamError(f"Stripe購読取得失敗: {e}") from e


def get_current_period_end(subscription_id: str) -> Optional[datetime]:
    """支払い済み期間の終了日時 (UTC naive)"""
    sub = retrieve_subscription(subscription_id)
    period_end = _field(sub, "current_period_end")
    if not period_end:
        # 新しいAPIバージョンでは items 側に期間情報がある
        items = _field(_field(sub, "items", {}), "data", [])
        if items:
            period_end = _field(items[0], "current_period_end")
    return _from_timestamp(period_end)


def cancel_subscription(subscription_id: str, at_period_end: bool = True):
    """購読をキャンセル"""
    _init_stripe()
    try:
        if at_period_end:
            stripe.Subscription.modify(subscription_id, cancel_at_period_end=True)
        else:
            stripe.Subscription.cancel(subscription_id)
    except stripe.StripeError as e:
        raise UpstreamError(f"Stripe購読解約失敗: {e}") from e
    logger.info(f"Stripe購読解約: subscription={subscription_id}, at_period_end={at_period_end}")


def cancel_subscription_immediately(subscription_id: str):
    """購読を即時キャンセル"""
    cancel_subscription(subscription_id, at_period_end=False)


def list_recent_charges(customer_id: str, limit: int = 10) -> list:
    """顧客の直近チャージ一覧"""
    _init_stripe()
    try:
        charges = stripe.Charge.list(customer=customer_id, limit=limit)
    except stripe.StripeError as e:
        raise UpstreamError(f"Stripeチャージ取得失敗: {e}") from e
    return list(charges.data)


def find_matching_charge(charges: list, amount: float, currency: str):
    """金額・通貨が一致する支払い済みチャージを探す (金額は最小単位→主単位で比較)"""
    currency = currency.lower()
    for charge in charges:
        if not _field(charge, "paid", False):
            continue
        if _field(charge, "currency") != currency:
            continue
        if abs(_field(charge, "amount", 0) / 100 - amount) < AMOUNT_TOLERANCE:
            return charge
    return None


def create_refund(charge_id: str, amount: float, metadata: dict = None) -> str:
    """チャージに対する返金を作成し Refund ID を返す"""
    _init_stripe()
    try:
        refund = stripe.Refund.create(
            charge=charge_id,
            amount=round(amount * 100),
            metadata=metadata or {},
        )
    except stripe.StripeError as e:
        raise UpstreamError(f"Stripe返金失敗: {e}") from e
    logger.info(f"Stripe返金作成: charge={charge_id}, refund={refund.id}")
    return refund.id
