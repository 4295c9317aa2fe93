"""
Тесты для TierTable

Coverage:
- Включительная граница тира (count >= threshold)
- Инварианты: возрастание thresholds, диапазон ставки, монотонность
- add/remove/update возвращают новую таблицу, исходная не меняется
- Immutability (frozen=True)
"""

import pytest
from pydantic import ValidationError

from tiertransfer.core.domain.tiers import DEFAULT_TIER_TABLE, DiscountTier, TierTable
from tiertransfer.core.errors import TierConfigurationInvalid


class TestDefaultTable:
    """<5 → 0%, 5–9 → 5%, 10–19 → 10%, ≥20 → 15%"""

    @pytest.mark.parametrize(
        "count, rate_bps",
        [
            (0, 0),
            (4, 0),
            (5, 500),
            (9, 500),
            (10, 1000),
            (19, 1000),
            (20, 1500),
            (10_000, 1500),
        ],
    )
    def test_rate_for_count(self, count, rate_bps):
        assert DEFAULT_TIER_TABLE.rate_for(count) == rate_bps

    def test_below_lowest_threshold_has_no_tier(self):
        assert DEFAULT_TIER_TABLE.tier_for(4) is None

    def test_boundary_is_inclusive(self):
        tier = DEFAULT_TIER_TABLE.tier_for(10)
        assert tier == DiscountTier(threshold=10, rate_bps=1000)

    def test_rates_monotonic_over_counts(self):
        rates = [DEFAULT_TIER_TABLE.rate_for(c) for c in range(0, 40)]
        assert rates == sorted(rates)

    def test_thresholds(self):
        assert DEFAULT_TIER_TABLE.thresholds() == (5, 10, 20)
        assert len(DEFAULT_TIER_TABLE) == 3

    def test_max_rate(self):
        assert DEFAULT_TIER_TABLE.max_rate_bps == 1500
        assert TierTable().max_rate_bps == 0


class TestInvariants:
    def test_non_ascending_thresholds_rejected(self):
        with pytest.raises(TierConfigurationInvalid, match="strictly ascending"):
            TierTable.from_pairs([(10, 500), (5, 1000)])

    def test_duplicate_thresholds_rejected(self):
        with pytest.raises(TierConfigurationInvalid):
            TierTable.from_pairs([(5, 500), (5, 600)])

    def test_decreasing_rate_rejected(self):
        with pytest.raises(TierConfigurationInvalid, match="non-decreasing"):
            TierTable.from_pairs([(5, 1000), (10, 500)])

    @pytest.mark.parametrize("rate_bps", [-1, 10_001])
    def test_rate_out_of_range_rejected(self, rate_bps):
        with pytest.raises(TierConfigurationInvalid):
            DiscountTier(threshold=1, rate_bps=rate_bps)

    def test_negative_threshold_rejected(self):
        with pytest.raises(TierConfigurationInvalid):
            DiscountTier(threshold=-1, rate_bps=100)

    def test_equal_rates_allowed(self):
        table = TierTable.from_pairs([(5, 500), (10, 500)])
        assert table.rate_for(12) == 500

    def test_empty_table_gives_zero_rate(self):
        assert TierTable().rate_for(100) == 0

    def test_frozen(self):
        with pytest.raises(ValidationError):
            DEFAULT_TIER_TABLE.tiers = ()


class TestModifications:
    def test_add_tier_keeps_order(self):
        table = DEFAULT_TIER_TABLE.add_tier(15, 1200)
        assert table.thresholds() == (5, 10, 15, 20)
        assert table.rate_for(15) == 1200
        # Исходная таблица не изменилась
        assert DEFAULT_TIER_TABLE.thresholds() == (5, 10, 20)

    def test_add_existing_threshold_rejected(self):
        with pytest.raises(TierConfigurationInvalid, match="already exists"):
            DEFAULT_TIER_TABLE.add_tier(10, 1000)

    def test_add_tier_breaking_monotonicity_rejected(self):
        with pytest.raises(TierConfigurationInvalid):
            DEFAULT_TIER_TABLE.add_tier(15, 200)

    def test_remove_tier(self):
        table = DEFAULT_TIER_TABLE.remove_tier(10)
        assert table.rate_for(12) == 500

    def test_remove_missing_tier_rejected(self):
        with pytest.raises(TierConfigurationInvalid):
            DEFAULT_TIER_TABLE.remove_tier(7)

    def test_update_tier(self):
        table = DEFAULT_TIER_TABLE.update_tier(20, 2000)
        assert table.rate_for(25) == 2000

    def test_update_tier_breaking_monotonicity_rejected(self):
        with pytest.raises(TierConfigurationInvalid):
            DEFAULT_TIER_TABLE.update_tier(5, 1200)

    def test_from_percent_and_payload(self):
        table = TierTable.from_percent([(3, 2)])
        assert table.to_payload() == {"tiers": [{"threshold": 3, "rate_bps": 200}]}
