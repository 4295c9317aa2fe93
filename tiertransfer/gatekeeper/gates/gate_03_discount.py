"""GATE 3: Расчёт скидки

Использует purchase_count sender'а ДО инкремента текущей операции
и персональную ставку (если задана). Чистый расчёт через DiscountEngine.

Интеграция:
- Требует PASS GATE 2
- Результат (discounted_amount) передаётся в settlement
"""

from dataclasses import dataclass
from typing import Optional

from tiertransfer.core.domain.transfer import TransferRequest
from tiertransfer.core.errors import TransferErrorKind, TransferGuardError
from tiertransfer.core.math.discount import DiscountBreakdown, DiscountEngine
from tiertransfer.gatekeeper.gates.gate_02_source_balance import Gate02Result


@dataclass(frozen=True)
class Gate03Result:
    """Результат GATE 3."""

    allowed: bool
    block_reason: str
    error_kind: Optional[TransferErrorKind]

    purchase_count: int
    breakdown: Optional[DiscountBreakdown]

    details: str

    @property
    def discounted_amount(self) -> Optional[int]:
        return self.breakdown.discounted_amount if self.breakdown is not None else None


class Gate03Discount:
    def __init__(self, engine: DiscountEngine):
        self.engine = engine

    def evaluate(
        self,
        gate02_result: Gate02Result,
        request: TransferRequest,
        purchase_count: int,
        custom_rate_bps: Optional[int] = None,
    ) -> Gate03Result:
        """
        Args:
            gate02_result: результат GATE 2
            request: запрос перевода
            purchase_count: счётчик sender'а до текущей покупки
            custom_rate_bps: персональная ставка sender'а
        """
        if not gate02_result.allowed:
            return Gate03Result(
                allowed=False,
                block_reason=f"gate02_blocked: {gate02_result.block_reason}",
                error_kind=gate02_result.error_kind,
                purchase_count=purchase_count,
                breakdown=None,
                details=f"GATE 2 blocked: {gate02_result.details}",
            )

        try:
            breakdown = self.engine.breakdown(
                request.amount, purchase_count, request.context, custom_rate_bps
            )
        except TransferGuardError as e:
            return Gate03Result(
                allowed=False,
                block_reason="discount_calculation_failed",
                error_kind=TransferErrorKind.INVALID_ARGUMENT,
                purchase_count=purchase_count,
                breakdown=None,
                details=f"{type(e).__name__}: {e}",
            )

        capped_note = " (capped)" if breakdown.capped else ""
        return Gate03Result(
            allowed=True,
            block_reason="",
            error_kind=None,
            purchase_count=purchase_count,
            breakdown=breakdown,
            details=(
                f"PASS: count={purchase_count}, {breakdown.original_amount} -> "
                f"{breakdown.discounted_amount}, rate={breakdown.effective_rate_bps}bps"
                f"{capped_note}"
            ),
        )
