"""GATE 0: Pause / валидация TransferRequest

Первый gate в цепочке. Чистые проверки без обращения к oracle:
- Pause switch (высший приоритет)
- sender/source/destination: не нулевые, формат 0x + 40 hex
- amount > 0 (целое)
- memo не пустой
- trace_id > 0 и ещё не зафиксирован в audit log

Блокировка → error_kind INVALID_ARGUMENT (или PAUSED).
"""

from dataclasses import dataclass
from typing import Optional

from tiertransfer.core.domain.transfer import TransferRequest
from tiertransfer.core.domain.units import is_positive_amount, is_valid_account_id
from tiertransfer.core.errors import TransferErrorKind
from tiertransfer.ledger.audit_log import TransferAuditLog


@dataclass(frozen=True)
class Gate00Result:
    """Результат GATE 0."""

    allowed: bool
    block_reason: str
    error_kind: Optional[TransferErrorKind]

    # Детали
    details: str


class Gate00RequestValidation:
    """GATE 0: Pause / валидация запроса.

    Порядок проверок:
    1. paused → PAUSED
    2. account ids (sender, source, destination)
    3. amount
    4. memo
    5. trace_id (не ноль, не повтор)
    """

    def __init__(self, audit_log: Optional[TransferAuditLog] = None):
        """
        Args:
            audit_log: журнал для проверки повторного trace_id (опционально)
        """
        self.audit_log = audit_log

    def evaluate(self, request: TransferRequest, paused: bool = False) -> Gate00Result:
        # 1. Pause switch
        if paused:
            return self._blocked(
                "paused", TransferErrorKind.PAUSED, "Transfers are paused by admin"
            )

        # 2. Account ids
        for role, account_id in (
            ("sender", request.sender_id),
            ("source", request.source_id),
            ("destination", request.destination_id),
        ):
            if not is_valid_account_id(account_id):
                return self._blocked(
                    f"invalid_{role}_id",
                    TransferErrorKind.INVALID_ARGUMENT,
                    f"{role} id is zero or malformed: {account_id!r}",
                )

        # 3. Amount
        if not is_positive_amount(request.amount):
            return self._blocked(
                "non_positive_amount",
                TransferErrorKind.INVALID_ARGUMENT,
                f"amount must be > 0, got {request.amount}",
            )

        # 4. Memo
        if not request.memo or not request.memo.strip():
            return self._blocked(
                "empty_memo", TransferErrorKind.INVALID_ARGUMENT, "memo must be non-empty"
            )

        # 5. Trace id
        if request.trace_id <= 0:
            return self._blocked(
                "invalid_trace_id",
                TransferErrorKind.INVALID_ARGUMENT,
                f"trace_id must be > 0, got {request.trace_id}",
            )

        if self.audit_log is not None and self.audit_log.contains(request.trace_id):
            return self._blocked(
                "duplicate_trace_id",
                TransferErrorKind.INVALID_ARGUMENT,
                f"trace_id {request.trace_id} already committed; retries need a fresh trace_id",
            )

        return Gate00Result(
            allowed=True,
            block_reason="",
            error_kind=None,
            details=f"PASS: amount={request.amount}, trace_id={request.trace_id}",
        )

    def _blocked(self, reason: str, kind: TransferErrorKind, details: str) -> Gate00Result:
        return Gate00Result(allowed=False, block_reason=reason, error_kind=kind, details=details)
