"""Orchestrator — guarded customTransfer, reentrancy guard, события и admin фасад."""

from .access_control import AccessControl
from .event_bus import EventBus
from .facade import TransferGuard
from .reentrancy import ReentrancyGuard
from .transfer_orchestrator import (
    STAGE_ORDER,
    OrchestratorConfig,
    TransferOrchestrator,
    TransferResult,
    TransferStage,
)

__all__ = [
    "AccessControl",
    "EventBus",
    "OrchestratorConfig",
    "ReentrancyGuard",
    "STAGE_ORDER",
    "TransferGuard",
    "TransferOrchestrator",
    "TransferResult",
    "TransferStage",
]
