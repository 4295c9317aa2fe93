"""
tiertransfer — tiered purchase discounts in front of a guarded transfer flow.

Contains:
- core/         : domain models, discount math, contracts, errors
- gatekeeper/   : ordered read-only checks before settlement
- gateway/      : external state oracle and settlement service interfaces
- ledger/       : purchase counters, custom discounts, audit log
- orchestrator/ : customTransfer state machine and admin facade
"""

from tiertransfer.core.domain import DEFAULT_TIER_TABLE, DiscountContext, TierTable, TransferRequest
from tiertransfer.core.math import DiscountEngine, compute_discount
from tiertransfer.orchestrator import TransferGuard, TransferOrchestrator, TransferResult, TransferStage

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_TIER_TABLE",
    "DiscountContext",
    "DiscountEngine",
    "TierTable",
    "TransferGuard",
    "TransferOrchestrator",
    "TransferRequest",
    "TransferResult",
    "TransferStage",
    "compute_discount",
]
