"""
Units — идентификаторы, суммы и ставки

Единственный допустимый способ:
- проверки AccountId (fixed-size hex, нулевой id запрещён)
- проверки Amount (целое, минимальная единица)
- конверсии percent <-> basis points

ЗАПРЕЩЕНО считать скидку во float: только целочисленное деление с floor.
"""

import re
from typing import Final, NewType

from tiertransfer.core.errors import InvalidArgument


# =============================================================================
# ТИПЫ
# =============================================================================

AccountId = NewType("AccountId", str)
Amount = NewType("Amount", int)
PurchaseCount = NewType("PurchaseCount", int)


# =============================================================================
# КОНСТАНТЫ
# =============================================================================

# 20 байт в hex
ACCOUNT_ID_HEX_LEN: Final[int] = 40

ZERO_ACCOUNT_ID: Final[str] = "0x" + "0" * ACCOUNT_ID_HEX_LEN

# Масштаб ставки: 10000 bps = 100%
BPS_SCALE: Final[int] = 10_000

PERCENT_TO_BPS: Final[int] = 100

_ACCOUNT_ID_RE = re.compile(r"^0x[0-9a-fA-F]{%d}$" % ACCOUNT_ID_HEX_LEN)


# =============================================================================
# ACCOUNT ID
# =============================================================================


def is_valid_account_id(account_id: object) -> bool:
    """
    Проверка AccountId.

    Returns:
        True если формат 0x + 40 hex и id не нулевой
    """
    if not isinstance(account_id, str) or not _ACCOUNT_ID_RE.match(account_id):
        return False
    return int(account_id, 16) != 0


def validate_account_id(account_id: object, role: str = "account") -> AccountId:
    """
    Проверка AccountId с исключением.

    Args:
        account_id: проверяемый идентификатор
        role: роль для сообщения об ошибке (sender/source/destination)

    Raises:
        InvalidArgument: если id нулевой или некорректный
    """
    if not is_valid_account_id(account_id):
        raise InvalidArgument(f"{role} id is zero or malformed: {account_id!r}")
    return AccountId(str(account_id).lower())


def normalize_account_id(account_id: str) -> AccountId:
    """Приведение hex к нижнему регистру (ключ хранилищ)."""
    return AccountId(account_id.lower())


# =============================================================================
# AMOUNT
# =============================================================================


def is_positive_amount(amount: object) -> bool:
    # bool является подклассом int
    return isinstance(amount, int) and not isinstance(amount, bool) and amount > 0


def validate_amount(amount: object) -> Amount:
    """
    Raises:
        InvalidArgument: если amount не целое или <= 0
    """
    if not is_positive_amount(amount):
        raise InvalidArgument(f"amount must be a positive integer, got {amount!r}")
    return Amount(amount)  # type: ignore[arg-type]


def validate_purchase_count(count: object) -> PurchaseCount:
    if not isinstance(count, int) or isinstance(count, bool) or count < 0:
        raise InvalidArgument(f"purchase count must be a non-negative integer, got {count!r}")
    return PurchaseCount(count)


# =============================================================================
# СТАВКИ
# =============================================================================


def percent_to_bps(percent: int) -> int:
    """5 (%) -> 500 bps"""
    return percent * PERCENT_TO_BPS


def bps_to_percent(rate_bps: int) -> float:
    return rate_bps / PERCENT_TO_BPS


def apply_rate_floor(amount: int, rate_bps: int) -> int:
    """
    Сумма скидки: floor(amount * rate / scale).

    Деление без округления вверх.
    """
    return (amount * rate_bps) // BPS_SCALE
