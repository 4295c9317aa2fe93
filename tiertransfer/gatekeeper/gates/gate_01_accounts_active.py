"""GATE 1: Активность участников

Все три роли (sender, source, destination) должны быть активны по oracle.

- is_active == False → NOT_ACTIVE
- ошибка чтения (LookupResult.ok == False, исключение gateway или payload не bool)
  → LOOKUP_FAILURE; ошибка НЕ трактуется как False

Интеграция:
- Требует PASS GATE 0
- Не изменяет состояние
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from tiertransfer.core.domain.transfer import TransferRequest
from tiertransfer.core.errors import TransferErrorKind
from tiertransfer.gatekeeper.gates.gate_00_request_validation import Gate00Result
from tiertransfer.gateway.state_gateway import AccountStateGateway, guarded_flag


@dataclass(frozen=True)
class Gate01Result:
    """Результат GATE 1."""

    allowed: bool
    block_reason: str
    error_kind: Optional[TransferErrorKind]

    # role → is_active (только успешно прочитанные)
    activity: Dict[str, bool] = field(default_factory=dict)

    details: str = ""


class Gate01AccountsActive:
    """GATE 1: проверка активности sender → source → destination."""

    def __init__(self, gateway: AccountStateGateway):
        self.gateway = gateway

    def evaluate(self, gate00_result: Gate00Result, request: TransferRequest) -> Gate01Result:
        # 1. Проверка GATE 0
        if not gate00_result.allowed:
            return Gate01Result(
                allowed=False,
                block_reason=f"gate00_blocked: {gate00_result.block_reason}",
                error_kind=gate00_result.error_kind,
                details=f"GATE 0 blocked: {gate00_result.details}",
            )

        activity: Dict[str, bool] = {}
        for role, account_id in (
            ("sender", request.sender_id),
            ("source", request.source_id),
            ("destination", request.destination_id),
        ):
            result = guarded_flag(self.gateway.is_active, account_id)
            if not result.ok:
                return Gate01Result(
                    allowed=False,
                    block_reason=f"{role}_lookup_failed",
                    error_kind=TransferErrorKind.LOOKUP_FAILURE,
                    activity=activity,
                    details=f"is_active({account_id}) failed: {result.error}",
                )
            activity[role] = result.value
            if not result.value:
                return Gate01Result(
                    allowed=False,
                    block_reason=f"{role}_not_active",
                    error_kind=TransferErrorKind.NOT_ACTIVE,
                    activity=activity,
                    details=f"{role} {account_id} is not active",
                )

        return Gate01Result(
            allowed=True,
            block_reason="",
            error_kind=None,
            activity=activity,
            details="PASS: sender, source, destination active",
        )
