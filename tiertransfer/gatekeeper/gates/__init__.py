"""Gates — упорядоченные проверки перед settlement.

Порядок фиксирован:
- GATE 0: pause / валидация запроса
- GATE 1: активность sender, source, destination
- GATE 2: баланс source
- GATE 3: расчёт скидки
"""

from .gate_00_request_validation import Gate00RequestValidation, Gate00Result
from .gate_01_accounts_active import Gate01AccountsActive, Gate01Result
from .gate_02_source_balance import Gate02Result, Gate02SourceBalance
from .gate_03_discount import Gate03Discount, Gate03Result

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
