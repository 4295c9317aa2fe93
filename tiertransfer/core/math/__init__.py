"""
Core math modules для tiertransfer

Расчёт скидок: тиры, модификаторы, cap. Только целочисленная арифметика.
"""

# Discount Engine
from tiertransfer.core.math.discount import (
    MAX_BULK_SIZE_DEFAULT,
    MAX_COMBINED_RATE_BPS_DEFAULT,
    MAX_COMBINED_RATE_BPS_LIMIT,
    DiscountBreakdown,
    DiscountEngine,
    DiscountPolicyConfig,
    DiscountStep,
    bulk_compute_discount,
    compute_discount,
)

# Modifiers
from tiertransfer.core.math.modifiers import (
    BulkQuantityModifier,
    DiscountModifier,
    FirstPurchaseModifier,
    LoyaltyModifier,
    ReferralModifier,
    SeasonalModifier,
    TimeWindowModifier,
)

__all__ = [
    # Discount Engine: Constants
    "MAX_BULK_SIZE_DEFAULT",
    "MAX_COMBINED_RATE_BPS_DEFAULT",
    "MAX_COMBINED_RATE_BPS_LIMIT",
    # Discount Engine: Types
    "DiscountBreakdown",
    "DiscountEngine",
    "DiscountPolicyConfig",
    "DiscountStep",
    # Discount Engine: Functions
    "bulk_compute_discount",
    "compute_discount",
    # Modifiers
    "BulkQuantityModifier",
    "DiscountModifier",
    "FirstPurchaseModifier",
    "LoyaltyModifier",
    "ReferralModifier",
    "SeasonalModifier",
    "TimeWindowModifier",
]
