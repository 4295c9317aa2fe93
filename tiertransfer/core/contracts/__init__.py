"""
Contract Validation Module

Модуль для валидации JSON контрактов tiertransfer.
"""

from .validators import (
    ContractValidator,
    SchemaLoader,
    TierTableValidator,
    TransferRequestValidator,
    load_tier_table,
    load_transfer_request,
    validate_tier_table,
    validate_transfer_request,
)

__all__ = [
    # Classes
    "SchemaLoader",
    "ContractValidator",
    "TierTableValidator",
    "TransferRequestValidator",
    # Functions
    "validate_tier_table",
    "validate_transfer_request",
    "load_tier_table",
    "load_transfer_request",
]
