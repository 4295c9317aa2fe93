"""
Discount Modifiers — композиционные надбавки к базовой скидке

Каждый модификатор — чистая функция Amount -> Amount:
    amount_after = amount - floor(amount * rate_bps / 10000)
если модификатор применим к (purchase_count, context), иначе amount без изменений.

ФИКСИРОВАННЫЙ ПОРЯДОК (поле order, по возрастанию):
    10 bulk quantity
    20 seasonal / promotional
    30 time window
    40 VIP / loyalty
    50 referral
    60 first purchase

Движок сортирует модификаторы по order независимо от порядка передачи.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import ClassVar, FrozenSet, Optional

from tiertransfer.core.domain.transfer import DiscountContext
from tiertransfer.core.domain.units import BPS_SCALE, apply_rate_floor
from tiertransfer.core.errors import TierConfigurationInvalid


def _check_rate(rate_bps: int, name: str) -> None:
    if not 0 <= rate_bps <= BPS_SCALE:
        raise TierConfigurationInvalid(f"{name}: rate_bps {rate_bps} outside [0, {BPS_SCALE}]")


@dataclass(frozen=True)
class DiscountModifier:
    """Базовый модификатор. Подклассы переопределяют is_applicable."""

    order: ClassVar[int] = 0
    name: ClassVar[str] = "modifier"

    rate_bps: int

    def __post_init__(self):
        _check_rate(self.rate_bps, self.name)

    def is_applicable(self, purchase_count: int, context: DiscountContext) -> bool:
        return True

    def rate_for(self, purchase_count: int, context: Optional[DiscountContext] = None) -> int:
        ctx = context or DiscountContext()
        return self.rate_bps if self.is_applicable(purchase_count, ctx) else 0

    def apply(
        self, amount: int, purchase_count: int, context: Optional[DiscountContext] = None
    ) -> int:
        return amount - apply_rate_floor(amount, self.rate_for(purchase_count, context))


@dataclass(frozen=True)
class BulkQuantityModifier(DiscountModifier):
    """Скидка при quantity >= min_quantity."""

    order: ClassVar[int] = 10
    name: ClassVar[str] = "bulk_quantity"

    min_quantity: int = 5

    def __post_init__(self):
        super().__post_init__()
        if self.min_quantity < 1:
            raise TierConfigurationInvalid(f"min_quantity must be >= 1, got {self.min_quantity}")

    def is_applicable(self, purchase_count: int, context: DiscountContext) -> bool:
        return context.quantity >= self.min_quantity


@dataclass(frozen=True)
class SeasonalModifier(DiscountModifier):
    """
    Сезонная / промо скидка по месяцам года (UTC).

    Без timestamp в контексте не применяется.
    """

    order: ClassVar[int] = 20
    name: ClassVar[str] = "seasonal"

    months: FrozenSet[int] = field(default_factory=frozenset)

    def __post_init__(self):
        super().__post_init__()
        bad = [m for m in self.months if not 1 <= m <= 12]
        if bad:
            raise TierConfigurationInvalid(f"seasonal months outside 1..12: {sorted(bad)}")

    def is_applicable(self, purchase_count: int, context: DiscountContext) -> bool:
        if context.timestamp_ms is None:
            return False
        month = datetime.fromtimestamp(context.timestamp_ms / 1000, tz=timezone.utc).month
        return month in self.months


@dataclass(frozen=True)
class TimeWindowModifier(DiscountModifier):
    """Скидка в окне [start_ts_ms, end_ts_ms)."""

    order: ClassVar[int] = 30
    name: ClassVar[str] = "time_window"

    start_ts_ms: int = 0
    end_ts_ms: int = 0

    def __post_init__(self):
        super().__post_init__()
        if self.end_ts_ms <= self.start_ts_ms:
            raise TierConfigurationInvalid(
                f"time window end {self.end_ts_ms} must be after start {self.start_ts_ms}"
            )

    def is_applicable(self, purchase_count: int, context: DiscountContext) -> bool:
        ts = context.timestamp_ms
        return ts is not None and self.start_ts_ms <= ts < self.end_ts_ms


@dataclass(frozen=True)
class LoyaltyModifier(DiscountModifier):
    order: ClassVar[int] = 40
    name: ClassVar[str] = "vip_loyalty"

    def is_applicable(self, purchase_count: int, context: DiscountContext) -> bool:
        return context.is_vip


@dataclass(frozen=True)
class ReferralModifier(DiscountModifier):
    order: ClassVar[int] = 50
    name: ClassVar[str] = "referral"

    def is_applicable(self, purchase_count: int, context: DiscountContext) -> bool:
        return context.has_referral


@dataclass(frozen=True)
class FirstPurchaseModifier(DiscountModifier):
    """Первая покупка: purchase_count == 0 (счётчик до инкремента)."""

    order: ClassVar[int] = 60
    name: ClassVar[str] = "first_purchase"

    def is_applicable(self, purchase_count: int, context: DiscountContext) -> bool:
        return purchase_count == 0
