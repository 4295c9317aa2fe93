"""
Discount Engine — расчёт цены со скидкой по количеству покупок

Чистые функции: без чтения/изменения состояния, детерминированы.
Используются и в TransferOrchestrator, и для read-only preview.

АЛГОРИТМ:
    1. base_rate = custom_rate_bps (если задан) иначе tier_table.rate_for(count)
       граница тира включительная: count >= threshold
    2. amount_1 = amount - floor(amount * base_rate / 10000)
    3. модификаторы в фиксированном порядке (см. modifiers.py), каждый
       применяется к текущей (уже уменьшенной) сумме
    4. суммарная скидка ограничена floor(amount * max_combined_rate_bps / 10000)

Ставки тиров и персональные ставки не превышают cap: таблица или ставка выше
cap отклоняется (TierConfigurationInvalid) при создании движка / расчёте.
Поэтому шаг 2 всегда равен amount - floor(amount * rate / 10000), а cap
ограничивает только вклад модификаторов.

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. amount <= 0 → InvalidArgument
2. 0 < result <= amount для любых amount > 0, count >= 0
   (обеспечивается max_combined_rate_bps < 10000)
3. Только целочисленная арифметика, округление вниз
4. base_rate <= max_combined_rate_bps
"""

from dataclasses import dataclass, field
from typing import Final, Optional, Sequence

from tiertransfer.core.domain.tiers import DEFAULT_TIER_TABLE, TierTable
from tiertransfer.core.domain.transfer import DiscountContext
from tiertransfer.core.domain.units import (
    BPS_SCALE,
    apply_rate_floor,
    validate_amount,
    validate_purchase_count,
)
from tiertransfer.core.errors import (
    ArrayLengthMismatch,
    BulkLimitExceeded,
    TierConfigurationInvalid,
)
from tiertransfer.core.math.modifiers import DiscountModifier


# =============================================================================
# КОНСТАНТЫ
# =============================================================================

# Максимальная суммарная скидка по умолчанию (50%)
MAX_COMBINED_RATE_BPS_DEFAULT: Final[int] = 5_000

# Верхняя граница cap: 100% скидки запрещено (result > 0)
MAX_COMBINED_RATE_BPS_LIMIT: Final[int] = BPS_SCALE - 1

# Ограничение размера bulk-операций
MAX_BULK_SIZE_DEFAULT: Final[int] = 500


# =============================================================================
# CONFIG
# =============================================================================


@dataclass(frozen=True)
class DiscountPolicyConfig:
    """Конфигурация движка скидок."""

    max_combined_rate_bps: int = MAX_COMBINED_RATE_BPS_DEFAULT
    max_bulk_size: int = MAX_BULK_SIZE_DEFAULT

    def __post_init__(self):
        if not 0 <= self.max_combined_rate_bps <= MAX_COMBINED_RATE_BPS_LIMIT:
            raise TierConfigurationInvalid(
                f"max_combined_rate_bps {self.max_combined_rate_bps} outside "
                f"[0, {MAX_COMBINED_RATE_BPS_LIMIT}]"
            )
        if self.max_bulk_size < 1:
            raise TierConfigurationInvalid(f"max_bulk_size must be >= 1, got {self.max_bulk_size}")


# =============================================================================
# RESULT
# =============================================================================


@dataclass(frozen=True)
class DiscountStep:
    """Один шаг применения скидки."""

    name: str
    rate_bps: int
    amount_before: int
    amount_after: int


@dataclass(frozen=True)
class DiscountBreakdown:
    """Результат расчёта скидки с детализацией по шагам."""

    original_amount: int
    discounted_amount: int
    purchase_count: int

    base_rate_bps: int
    used_custom_rate: bool
    steps: tuple[DiscountStep, ...] = field(default_factory=tuple)

    # True если сработал max_combined_rate_bps
    capped: bool = False

    @property
    def discount_amount(self) -> int:
        return self.original_amount - self.discounted_amount

    @property
    def effective_rate_bps(self) -> int:
        """Фактическая ставка (округление вниз)."""
        return self.discount_amount * BPS_SCALE // self.original_amount


# =============================================================================
# ENGINE
# =============================================================================


class DiscountEngine:
    """
    Движок скидок: TierTable + упорядоченные модификаторы + cap.

    Immutable по смыслу: with_* методы возвращают новый движок.
    """

    def __init__(
        self,
        tier_table: Optional[TierTable] = None,
        modifiers: Sequence[DiscountModifier] = (),
        config: Optional[DiscountPolicyConfig] = None,
    ):
        """
        Args:
            tier_table: таблица тиров (default: DEFAULT_TIER_TABLE)
            modifiers: модификаторы в любом порядке; сортируются по order
            config: политика (cap, max_bulk_size)

        Raises:
            TierConfigurationInvalid: ставка тира выше max_combined_rate_bps
        """
        self.tier_table = tier_table if tier_table is not None else DEFAULT_TIER_TABLE
        self.modifiers: tuple[DiscountModifier, ...] = tuple(
            sorted(modifiers, key=lambda m: m.order)
        )
        self.config = config or DiscountPolicyConfig()
        self.check_rate(self.tier_table.max_rate_bps, "tier")

    def check_rate(self, rate_bps: int, source: str = "custom") -> None:
        """
        Проверка базовой ставки (тир или персональная) против диапазона и cap.

        Raises:
            TierConfigurationInvalid: rate_bps вне [0, 10000] или выше cap
        """
        if not 0 <= rate_bps <= BPS_SCALE:
            raise TierConfigurationInvalid(f"{source} rate {rate_bps} outside [0, {BPS_SCALE}]")
        if rate_bps > self.config.max_combined_rate_bps:
            raise TierConfigurationInvalid(
                f"{source} rate {rate_bps} exceeds max_combined_rate_bps "
                f"{self.config.max_combined_rate_bps}"
            )

    def with_tier_table(self, tier_table: TierTable) -> "DiscountEngine":
        return DiscountEngine(tier_table, self.modifiers, self.config)

    def with_modifiers(self, modifiers: Sequence[DiscountModifier]) -> "DiscountEngine":
        return DiscountEngine(self.tier_table, modifiers, self.config)

    def breakdown(
        self,
        amount: int,
        purchase_count: int,
        context: Optional[DiscountContext] = None,
        custom_rate_bps: Optional[int] = None,
    ) -> DiscountBreakdown:
        """
        Полный расчёт скидки.

        Args:
            amount: сумма до скидки (> 0)
            purchase_count: количество покупок до текущей (>= 0)
            context: входные данные модификаторов
            custom_rate_bps: персональная ставка, заменяет ставку тира

        Returns:
            DiscountBreakdown

        Raises:
            InvalidArgument: amount <= 0 или purchase_count < 0
            TierConfigurationInvalid: custom_rate_bps вне [0, 10000] или выше cap
        """
        validate_amount(amount)
        validate_purchase_count(purchase_count)
        ctx = context or DiscountContext()

        used_custom = custom_rate_bps is not None
        if used_custom:
            self.check_rate(custom_rate_bps)
            base_rate = custom_rate_bps
        else:
            base_rate = self.tier_table.rate_for(purchase_count)

        steps = []
        current = amount - apply_rate_floor(amount, base_rate)
        steps.append(
            DiscountStep(
                name="custom" if used_custom else "tier",
                rate_bps=base_rate,
                amount_before=amount,
                amount_after=current,
            )
        )

        for modifier in self.modifiers:
            rate = modifier.rate_for(purchase_count, ctx)
            if rate == 0:
                continue
            after = modifier.apply(current, purchase_count, ctx)
            steps.append(
                DiscountStep(
                    name=modifier.name, rate_bps=rate, amount_before=current, amount_after=after
                )
            )
            current = after

        # Cap суммарной скидки
        floor_amount = amount - apply_rate_floor(amount, self.config.max_combined_rate_bps)
        capped = current < floor_amount
        if capped:
            current = floor_amount

        return DiscountBreakdown(
            original_amount=amount,
            discounted_amount=current,
            purchase_count=purchase_count,
            base_rate_bps=base_rate,
            used_custom_rate=used_custom,
            steps=tuple(steps),
            capped=capped,
        )

    def compute(
        self,
        amount: int,
        purchase_count: int,
        context: Optional[DiscountContext] = None,
        custom_rate_bps: Optional[int] = None,
    ) -> int:
        """Цена со скидкой (см. breakdown)."""
        return self.breakdown(amount, purchase_count, context, custom_rate_bps).discounted_amount

    def bulk_compute(
        self, amounts: Sequence[int], purchase_counts: Sequence[int]
    ) -> list[int]:
        """
        Bulk preview: результат идентичен compute() для каждого элемента, в том же порядке.

        Raises:
            ArrayLengthMismatch: len(amounts) != len(purchase_counts)
            BulkLimitExceeded: размер > max_bulk_size
        """
        if len(amounts) != len(purchase_counts):
            raise ArrayLengthMismatch(
                f"amounts ({len(amounts)}) and purchase_counts ({len(purchase_counts)}) differ"
            )
        if len(amounts) > self.config.max_bulk_size:
            raise BulkLimitExceeded(
                f"bulk size {len(amounts)} exceeds limit {self.config.max_bulk_size}"
            )
        return [self.compute(a, c) for a, c in zip(amounts, purchase_counts)]


# =============================================================================
# FUNCTIONAL API
# =============================================================================


def compute_discount(
    amount: int, purchase_count: int, tier_table: Optional[TierTable] = None
) -> int:
    """
    Цена со скидкой только по тиру (без модификаторов), cap по умолчанию.

    Raises:
        TierConfigurationInvalid: ставка тира в tier_table выше cap

    Examples (DEFAULT_TIER_TABLE):
        >>> compute_discount(1000, 0)
        1000
        >>> compute_discount(1000, 5)
        950
        >>> compute_discount(1000, 10)
        900
        >>> compute_discount(1000, 20)
        850
    """
    return DiscountEngine(tier_table).compute(amount, purchase_count)


def bulk_compute_discount(
    amounts: Sequence[int],
    purchase_counts: Sequence[int],
    tier_table: Optional[TierTable] = None,
) -> list[int]:
    return DiscountEngine(tier_table).bulk_compute(amounts, purchase_counts)
