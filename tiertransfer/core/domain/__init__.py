"""
Domain models and value objects.

Contains identifiers and amounts, the tier table, transfer request/record
models and domain events.
"""

from tiertransfer.core.domain.events import (
    AnyEvent,
    DiscountApplied,
    DomainEvent,
    OracleChanged,
    PurchaseCountChanged,
    TransferCommitted,
)
from tiertransfer.core.domain.tiers import DEFAULT_TIER_TABLE, DiscountTier, TierTable
from tiertransfer.core.domain.transfer import DiscountContext, TransferRecord, TransferRequest
from tiertransfer.core.domain.units import (
    ACCOUNT_ID_HEX_LEN,
    BPS_SCALE,
    ZERO_ACCOUNT_ID,
    AccountId,
    Amount,
    PurchaseCount,
    apply_rate_floor,
    bps_to_percent,
    is_positive_amount,
    is_valid_account_id,
    normalize_account_id,
    percent_to_bps,
    validate_account_id,
    validate_amount,
    validate_purchase_count,
)

__all__ = [
    # Units module
    "ACCOUNT_ID_HEX_LEN",
    "BPS_SCALE",
    "ZERO_ACCOUNT_ID",
    "AccountId",
    "Amount",
    "PurchaseCount",
    "apply_rate_floor",
    "bps_to_percent",
    "is_positive_amount",
    "is_valid_account_id",
    "normalize_account_id",
    "percent_to_bps",
    "validate_account_id",
    "validate_amount",
    "validate_purchase_count",
    # Tiers
    "DEFAULT_TIER_TABLE",
    "DiscountTier",
    "TierTable",
    # Transfer models
    "DiscountContext",
    "TransferRecord",
    "TransferRequest",
    # Events
    "AnyEvent",
    "DomainEvent",
    "OracleChanged",
    "PurchaseCountChanged",
    "DiscountApplied",
    "TransferCommitted",
]
