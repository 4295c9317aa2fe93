"""
TierTable — таблица скидочных тиров по количеству покупок

Immutable Pydantic модели. Все изменения (add/remove/update) создают
новый экземпляр; старая таблица остаётся валидной.

ИНВАРИАНТЫ:
1. thresholds строго возрастают
2. rate_bps ∈ [0, 10000]
3. rate_bps монотонно не убывает по тирам
4. Граница тира включительная: count >= threshold
"""

from typing import Iterable, Optional

from pydantic import BaseModel, model_validator

from tiertransfer.core.domain.units import BPS_SCALE, percent_to_bps
from tiertransfer.core.errors import TierConfigurationInvalid


# =============================================================================
# DISCOUNT TIER
# =============================================================================


class DiscountTier(BaseModel):
    """Один тир: (threshold, rate_bps)."""

    threshold: int
    rate_bps: int

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_ranges(self) -> "DiscountTier":
        if self.threshold < 0:
            raise TierConfigurationInvalid(f"threshold must be >= 0, got {self.threshold}")
        if not 0 <= self.rate_bps <= BPS_SCALE:
            raise TierConfigurationInvalid(
                f"rate_bps {self.rate_bps} outside [0, {BPS_SCALE}]"
            )
        return self


# =============================================================================
# TIER TABLE
# =============================================================================


class TierTable(BaseModel):
    """
    Упорядоченная таблица тиров.

    Аккаунты ниже минимального threshold получают ставку 0.
    """

    tiers: tuple[DiscountTier, ...] = ()

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_ordering(self) -> "TierTable":
        for prev, cur in zip(self.tiers, self.tiers[1:]):
            if cur.threshold <= prev.threshold:
                raise TierConfigurationInvalid(
                    f"thresholds must be strictly ascending: {prev.threshold} -> {cur.threshold}"
                )
            if cur.rate_bps < prev.rate_bps:
                raise TierConfigurationInvalid(
                    f"rate must be non-decreasing: tier {cur.threshold} has "
                    f"{cur.rate_bps} bps < {prev.rate_bps} bps of tier {prev.threshold}"
                )
        return self

    # -------------------------------------------------------------------------
    # Конструкторы
    # -------------------------------------------------------------------------

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[int, int]]) -> "TierTable":
        """Из пар (threshold, rate_bps) в заданном порядке."""
        return cls(tiers=tuple(DiscountTier(threshold=t, rate_bps=r) for t, r in pairs))

    @classmethod
    def from_percent(cls, pairs: Iterable[tuple[int, int]]) -> "TierTable":
        """Из пар (threshold, rate в %)."""
        return cls.from_pairs((t, percent_to_bps(p)) for t, p in pairs)

    # -------------------------------------------------------------------------
    # Запросы
    # -------------------------------------------------------------------------

    def tier_for(self, purchase_count: int) -> Optional[DiscountTier]:
        """
        Тир с максимальным threshold <= purchase_count.

        Returns:
            None если count ниже минимального threshold
        """
        applicable = None
        for tier in self.tiers:
            if purchase_count >= tier.threshold:
                applicable = tier
            else:
                break
        return applicable

    def rate_for(self, purchase_count: int) -> int:
        tier = self.tier_for(purchase_count)
        return tier.rate_bps if tier is not None else 0

    def thresholds(self) -> tuple[int, ...]:
        return tuple(t.threshold for t in self.tiers)

    @property
    def max_rate_bps(self) -> int:
        """Ставка последнего тира (ставки монотонны), 0 для пустой таблицы."""
        return self.tiers[-1].rate_bps if self.tiers else 0

    def __len__(self) -> int:
        return len(self.tiers)

    # -------------------------------------------------------------------------
    # Изменения (новый экземпляр)
    # -------------------------------------------------------------------------

    def add_tier(self, threshold: int, rate_bps: int) -> "TierTable":
        """
        Raises:
            TierConfigurationInvalid: threshold уже существует или нарушен порядок ставок
        """
        if threshold in self.thresholds():
            raise TierConfigurationInvalid(f"tier with threshold {threshold} already exists")
        new_tier = DiscountTier(threshold=threshold, rate_bps=rate_bps)
        tiers = sorted(self.tiers + (new_tier,), key=lambda t: t.threshold)
        return TierTable(tiers=tuple(tiers))

    def remove_tier(self, threshold: int) -> "TierTable":
        if threshold not in self.thresholds():
            raise TierConfigurationInvalid(f"no tier with threshold {threshold}")
        return TierTable(tiers=tuple(t for t in self.tiers if t.threshold != threshold))

    def update_tier(self, threshold: int, rate_bps: int) -> "TierTable":
        if threshold not in self.thresholds():
            raise TierConfigurationInvalid(f"no tier with threshold {threshold}")
        return TierTable(
            tiers=tuple(
                DiscountTier(threshold=threshold, rate_bps=rate_bps)
                if t.threshold == threshold
                else t
                for t in self.tiers
            )
        )

    def to_payload(self) -> dict:
        """JSON-совместимое представление (см. contracts/schema/tier_table.json)."""
        return {
            "tiers": [
                {"threshold": t.threshold, "rate_bps": t.rate_bps} for t in self.tiers
            ]
        }


# <5 → 0%, 5–9 → 5%, 10–19 → 10%, ≥20 → 15%
DEFAULT_TIER_TABLE = TierTable.from_percent([(5, 5), (10, 10), (20, 15)])
