"""Gateway — внешние коллабораторы: oracle состояния и settlement service."""

from .state_gateway import (
    AccountStateGateway,
    InMemoryAccountStateGateway,
    LookupResult,
    guarded_amount,
    guarded_flag,
    guarded_lookup,
)
from .transfer_service import InMemoryTransferService, TransferService

__all__ = [
    "AccountStateGateway",
    "InMemoryAccountStateGateway",
    "LookupResult",
    "guarded_lookup",
    "guarded_flag",
    "guarded_amount",
    "TransferService",
    "InMemoryTransferService",
]
