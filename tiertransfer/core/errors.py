"""
Errors — иерархия исключений tiertransfer

Две ветви:
- BusinessRuleError: условия сделки (повторить с другими параметрами)
- AdministrativeError: конфигурация и права (исправить настройку)

На транзакционном пути бизнес-ошибки возвращаются как TransferResult
с TransferErrorKind; исключения используются для admin-операций и
для чистых функций (compute_discount и т.п.).
"""

from enum import Enum


class TransferErrorKind(str, Enum):
    """Тип отказа в TransferResult."""

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    NOT_ACTIVE = "NOT_ACTIVE"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    LOOKUP_FAILURE = "LOOKUP_FAILURE"
    SETTLEMENT_FAILURE = "SETTLEMENT_FAILURE"
    REENTRANT_CALL = "REENTRANT_CALL"
    PAUSED = "PAUSED"


# =============================================================================
# BASE
# =============================================================================


class TransferGuardError(Exception):
    """Базовое исключение tiertransfer."""


class BusinessRuleError(TransferGuardError):
    """Нарушение бизнес-правила (можно повторить с другими условиями)."""

    kind: TransferErrorKind


class AdministrativeError(TransferGuardError):
    """Ошибка конфигурации или прав доступа."""


# =============================================================================
# BUSINESS RULE ERRORS
# =============================================================================


class InvalidArgument(BusinessRuleError):
    """Нулевой id, amount <= 0, пустой memo, нулевой trace_id."""

    kind = TransferErrorKind.INVALID_ARGUMENT


class NotActive(BusinessRuleError):
    kind = TransferErrorKind.NOT_ACTIVE


class InsufficientBalance(BusinessRuleError):
    kind = TransferErrorKind.INSUFFICIENT_BALANCE


class LookupFailure(BusinessRuleError):
    """
    Ошибка чтения из AccountStateGateway.

    Никогда не приравнивается к False/0.
    """

    kind = TransferErrorKind.LOOKUP_FAILURE


class SettlementFailure(BusinessRuleError):
    """TransferService вернул False или выбросил исключение. Без retry."""

    kind = TransferErrorKind.SETTLEMENT_FAILURE


class ReentrantCall(BusinessRuleError):
    kind = TransferErrorKind.REENTRANT_CALL


class Paused(BusinessRuleError):
    kind = TransferErrorKind.PAUSED


# =============================================================================
# ADMINISTRATIVE ERRORS
# =============================================================================


class Unauthorized(AdministrativeError):
    """Вызывающий не имеет admin-прав."""


class AlreadyInitialized(AdministrativeError):
    pass


class NotInitialized(AdministrativeError):
    pass


class ArrayLengthMismatch(AdministrativeError):
    """Массивы bulk-операции разной длины."""


class BulkLimitExceeded(AdministrativeError):
    """Размер bulk-операции превышает max_bulk_size."""


class TierConfigurationInvalid(AdministrativeError):
    """
    Некорректная таблица тиров.

    Причины:
    - thresholds не строго возрастают
    - rate вне [0, 10000] bps
    - rate более высокого тира ниже предыдущего
    """


# Тип отказа → исключение (TransferResult.raise_for_error)
ERROR_BY_KIND: dict[TransferErrorKind, type[BusinessRuleError]] = {
    cls.kind: cls
    for cls in (
        InvalidArgument,
        NotActive,
        InsufficientBalance,
        LookupFailure,
        SettlementFailure,
        ReentrantCall,
        Paused,
    )
}
