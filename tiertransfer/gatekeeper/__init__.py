"""Gatekeeper — read-only проверки перевода до вызова внешнего settlement.

- 4 gates с фиксированным порядком
- Каждый gate потребляет результат предыдущего
- Ни один gate не изменяет состояние
"""

from .gates import (
    Gate00RequestValidation,
    Gate00Result,
    Gate01AccountsActive,
    Gate01Result,
    Gate02Result,
    Gate02SourceBalance,
    Gate03Discount,
    Gate03Result,
)

__all__ = [
    "Gate00RequestValidation",
    "Gate00Result",
    "Gate01AccountsActive",
    "Gate01Result",
    "Gate02SourceBalance",
    "Gate02Result",
    "Gate03Discount",
    "Gate03Result",
]
