"""GATE 2: Баланс счёта списания

source balance >= requested amount (сумма до скидки).

- Недостаточно средств → INSUFFICIENT_BALANCE
- Ошибка чтения баланса или ответ не int >= 0 → LOOKUP_FAILURE (не баланс 0)
"""

from dataclasses import dataclass
from typing import Optional

from tiertransfer.core.domain.transfer import TransferRequest
from tiertransfer.core.errors import TransferErrorKind
from tiertransfer.gatekeeper.gates.gate_01_accounts_active import Gate01Result
from tiertransfer.gateway.state_gateway import AccountStateGateway, guarded_amount


@dataclass(frozen=True)
class Gate02Result:
    """Результат GATE 2."""

    allowed: bool
    block_reason: str
    error_kind: Optional[TransferErrorKind]

    source_balance: Optional[int]
    required_amount: int

    details: str


class Gate02SourceBalance:
    def __init__(self, gateway: AccountStateGateway):
        self.gateway = gateway

    def evaluate(self, gate01_result: Gate01Result, request: TransferRequest) -> Gate02Result:
        if not gate01_result.allowed:
            return Gate02Result(
                allowed=False,
                block_reason=f"gate01_blocked: {gate01_result.block_reason}",
                error_kind=gate01_result.error_kind,
                source_balance=None,
                required_amount=request.amount,
                details=f"GATE 1 blocked: {gate01_result.details}",
            )

        result = guarded_amount(self.gateway.get_balance, request.source_id)
        if not result.ok:
            return Gate02Result(
                allowed=False,
                block_reason="balance_lookup_failed",
                error_kind=TransferErrorKind.LOOKUP_FAILURE,
                source_balance=None,
                required_amount=request.amount,
                details=f"get_balance({request.source_id}) failed: {result.error}",
            )

        balance = result.value
        if balance < request.amount:
            return Gate02Result(
                allowed=False,
                block_reason="insufficient_balance",
                error_kind=TransferErrorKind.INSUFFICIENT_BALANCE,
                source_balance=balance,
                required_amount=request.amount,
                details=f"balance {balance} < amount {request.amount}",
            )

        return Gate02Result(
            allowed=True,
            block_reason="",
            error_kind=None,
            source_balance=balance,
            required_amount=request.amount,
            details=f"PASS: balance {balance} >= amount {request.amount}",
        )
