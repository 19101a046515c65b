"""サブスクリプションTier定義 (不変テーブル、起動時に網羅性を検証)"""
from collections import namedtuple
from decimal import Decimal
from types import MappingProxyType

from printgest.core.errors import ValidationError

FREE = "free"
TIER_1 = "tier_1"
TIER_2 = "tier_2"

TIERS = (FREE, TIER_1, TIER_2)

TIER_RANK = MappingProxyType({FREE: 0, TIER_1: 1, TIER_2: 2})

TierConfig = namedtuple("TierConfig", ["label", "monthly_price", "annual_price"])

TIER_CONFIG = MappingProxyType({
    FREE: TierConfig("Free", Decimal("0"), Decimal("0")),
    TIER_1: TierConfig("Pro", Decimal("9.99"), Decimal("99.90")),
    TIER_2: TierConfig("Enterprise", Decimal("19.99"), Decimal("199.90")),
})

# 請求期間 → 日数 (ゲートウェイから期間終了が取れない場合の概算)
BILLING_PERIOD_DAYS = MappingProxyType({"monthly": 30, "annual": 365})


def _validate_tables():
    for table_name, table in (("TIER_RANK", TIER_RANK), ("TIER_CONFIG", TIER_CONFIG)):
        missing = [t for t in TIERS if t not in table]
        if missing:
            raise RuntimeError(f"{table_name} に未定義のTierがあります: {missing}")


_validate_tables()


def validate_tier(value) -> str:
    """Tier文字列を検証して返す"""
    if value not in TIER_RANK:
        raise ValidationError("無効なTierです")
    return value


def is_paid(tier: str | None) -> bool:
    return tier is not None and TIER_RANK.get(tier, 0) > TIER_RANK[FREE]


def classify_change(old_tier: str, new_tier: str) -> str:
    """ランク比較で upgrade / downgrade / same を判定"""
    old_rank = TIER_RANK[old_tier]
    new_rank = TIER_RANK[new_tier]
    if new_rank > old_rank:
        return "upgrade"
    if new_rank < old_rank:
        return "downgrade"
    return "same"


def tier_label(tier: str | None) -> str:
    config = TIER_CONFIG.get(tier) if tier else None
    return config.label if config else "Pro"
