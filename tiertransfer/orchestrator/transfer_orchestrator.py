"""Transfer Orchestrator — guarded customTransfer state machine.

Линейная state machine без обратных переходов:
    VALIDATING → CHECKING_ACCOUNTS_ACTIVE → CHECKING_SOURCE_BALANCE →
    COMPUTING_DISCOUNT → EXECUTING_SETTLEMENT → UPDATING_LEDGER → EMITTING → DONE

Любой отказ до UPDATING_LEDGER прерывает операцию без мутаций:
PurchaseLedger, TransferAuditLog и балансы не изменяются.

Reentrancy:
- in-progress маркеры (участники + trace_id) ставятся до VALIDATING
- снимаются в finally после завершения всей state machine
- повторный вход с занятым маркером → REENTRANT_CALL (без ожидания)

Retry settlement не выполняется: повтор — ответственность вызывающего,
с новым trace_id.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import structlog

from tiertransfer.core.domain.events import (
    DiscountApplied,
    PurchaseCountChanged,
    TransferCommitted,
)
from tiertransfer.core.domain.transfer import TransferRecord, TransferRequest
from tiertransfer.core.domain.units import normalize_account_id
from tiertransfer.core.errors import ERROR_BY_KIND, TransferErrorKind
from tiertransfer.core.math.discount import DiscountBreakdown, DiscountEngine
from tiertransfer.gatekeeper.gates import (
    Gate00RequestValidation,
    Gate01AccountsActive,
    Gate02SourceBalance,
    Gate03Discount,
)
from tiertransfer.gateway.state_gateway import AccountStateGateway
from tiertransfer.gateway.transfer_service import TransferService
from tiertransfer.ledger.audit_log import TransferAuditLog
from tiertransfer.ledger.overrides import CustomDiscountRegistry
from tiertransfer.ledger.purchase_ledger import CountChange, PurchaseLedger
from tiertransfer.orchestrator.event_bus import EventBus
from tiertransfer.orchestrator.reentrancy import ReentrancyGuard

logger = structlog.get_logger(__name__)


class TransferStage(str, Enum):
    """Stage state machine customTransfer."""

    VALIDATING = "VALIDATING"
    CHECKING_ACCOUNTS_ACTIVE = "CHECKING_ACCOUNTS_ACTIVE"
    CHECKING_SOURCE_BALANCE = "CHECKING_SOURCE_BALANCE"
    COMPUTING_DISCOUNT = "COMPUTING_DISCOUNT"
    EXECUTING_SETTLEMENT = "EXECUTING_SETTLEMENT"
    UPDATING_LEDGER = "UPDATING_LEDGER"
    EMITTING = "EMITTING"
    DONE = "DONE"


STAGE_ORDER: tuple[TransferStage, ...] = tuple(TransferStage)


@dataclass(frozen=True)
class TransferResult:
    """Результат customTransfer.

    committed=False → stage указывает, где операция прервана.
    bool(result) == committed.
    """

    committed: bool
    stage: TransferStage
    error_kind: Optional[TransferErrorKind]
    block_reason: str

    trace_id: int
    original_amount: int
    discounted_amount: Optional[int]

    purchase_count_before: Optional[int]
    purchase_count_after: Optional[int]

    record: Optional[TransferRecord]

    # Детали
    details: str

    def __bool__(self) -> bool:
        return self.committed

    def raise_for_error(self) -> None:
        """
        Raises:
            BusinessRuleError: подкласс, соответствующий error_kind
        """
        if not self.committed and self.error_kind is not None:
            raise ERROR_BY_KIND[self.error_kind](f"{self.block_reason}: {self.details}")


@dataclass(frozen=True)
class OrchestratorConfig:
    """Конфигурация оркестратора."""

    # False: TransferRecord не сохраняется, проверка повторного trace_id отключена
    record_audit_trail: bool = True


def _now_ms() -> int:
    return int(time.time() * 1000)


class TransferOrchestrator:
    """Координатор customTransfer: gates → settlement → ledger → events."""

    def __init__(
        self,
        gateway: AccountStateGateway,
        transfer_service: TransferService,
        ledger: Optional[PurchaseLedger] = None,
        engine: Optional[DiscountEngine] = None,
        overrides: Optional[CustomDiscountRegistry] = None,
        audit_log: Optional[TransferAuditLog] = None,
        event_bus: Optional[EventBus] = None,
        guard: Optional[ReentrancyGuard] = None,
        config: Optional[OrchestratorConfig] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            gateway: oracle состояния аккаунтов
            transfer_service: внешний исполнитель settlement
            ledger: счётчики покупок
            engine: движок скидок
            overrides: персональные ставки
            audit_log: журнал TransferRecord
            event_bus: доставка событий
            guard: reentrancy guard (общий для всех точек входа)
            config: конфигурация
            clock: источник времени (UTC, миллисекунды)
        """
        self.gateway = gateway
        self.transfer_service = transfer_service
        self.ledger = ledger if ledger is not None else PurchaseLedger()
        self.engine = engine or DiscountEngine()
        self.overrides = overrides if overrides is not None else CustomDiscountRegistry()
        self.config = config or OrchestratorConfig()
        self.audit_log = audit_log if audit_log is not None else TransferAuditLog()
        self.event_bus = event_bus or EventBus()
        self.guard = guard or ReentrancyGuard()
        self.clock = clock or _now_ms

    # -------------------------------------------------------------------------
    # Public
    # -------------------------------------------------------------------------

    def custom_transfer(self, request: TransferRequest, paused: bool = False) -> TransferResult:
        """Выполнение customTransfer как одной атомарной операции.

        Args:
            request: запрос перевода
            paused: admin pause switch

        Returns:
            TransferResult (бизнес-отказы не выбрасываются)
        """
        log = logger.bind(trace_id=request.trace_id, sender_id=request.sender_id)
        keys = self._guard_keys(request)

        if not self.guard.try_acquire(keys):
            return self._abort(
                request,
                TransferStage.VALIDATING,
                TransferErrorKind.REENTRANT_CALL,
                "reentrant_call",
                "operation in progress for one of the participants or trace_id",
                log,
            )
        try:
            return self._run(request, paused, log)
        finally:
            self.guard.release(keys)

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------

    def _run(self, request: TransferRequest, paused: bool, log) -> TransferResult:
        audit_log = self.audit_log if self.config.record_audit_trail else None

        # 1. VALIDATING
        gate00 = Gate00RequestValidation(audit_log).evaluate(request, paused=paused)
        if not gate00.allowed:
            return self._abort(
                request, TransferStage.VALIDATING, gate00.error_kind,
                gate00.block_reason, gate00.details, log,
            )

        # 2. CHECKING_ACCOUNTS_ACTIVE
        gate01 = Gate01AccountsActive(self.gateway).evaluate(gate00, request)
        if not gate01.allowed:
            return self._abort(
                request, TransferStage.CHECKING_ACCOUNTS_ACTIVE, gate01.error_kind,
                gate01.block_reason, gate01.details, log,
            )

        # 3. CHECKING_SOURCE_BALANCE
        gate02 = Gate02SourceBalance(self.gateway).evaluate(gate01, request)
        if not gate02.allowed:
            return self._abort(
                request, TransferStage.CHECKING_SOURCE_BALANCE, gate02.error_kind,
                gate02.block_reason, gate02.details, log,
            )

        # 4. COMPUTING_DISCOUNT: счётчик до инкремента текущей покупки
        sender = normalize_account_id(request.sender_id)
        count_before = self.ledger.get(sender)
        gate03 = Gate03Discount(self.engine).evaluate(
            gate02, request, count_before, self.overrides.get(sender)
        )
        if not gate03.allowed:
            return self._abort(
                request, TransferStage.COMPUTING_DISCOUNT, gate03.error_kind,
                gate03.block_reason, gate03.details, log,
            )
        breakdown = gate03.breakdown

        # 5. EXECUTING_SETTLEMENT
        settled, settle_error = self._execute_settlement(request, breakdown.discounted_amount, log)
        if not settled:
            return self._abort(
                request, TransferStage.EXECUTING_SETTLEMENT,
                TransferErrorKind.SETTLEMENT_FAILURE, "settlement_failed", settle_error, log,
            )

        # 6. UPDATING_LEDGER
        now_ms = self.clock()
        record = TransferRecord(
            trace_id=request.trace_id,
            sender_id=sender,
            source_id=normalize_account_id(request.source_id),
            destination_id=normalize_account_id(request.destination_id),
            original_amount=breakdown.original_amount,
            discounted_amount=breakdown.discounted_amount,
            rate_applied_bps=breakdown.effective_rate_bps,
            aux1=request.aux1,
            aux2=request.aux2,
            memo=request.memo,
            purchase_count_before=count_before,
            committed_ts_utc_ms=now_ms,
        )
        change = self._commit(record, audit_log, log)

        # 7. EMITTING
        self._emit(record, breakdown, change)

        log.info(
            "transfer_committed",
            original_amount=breakdown.original_amount,
            discounted_amount=breakdown.discounted_amount,
            rate_bps=breakdown.effective_rate_bps,
            purchase_count=change.new_count,
        )

        # 8. DONE
        return TransferResult(
            committed=True,
            stage=TransferStage.DONE,
            error_kind=None,
            block_reason="",
            trace_id=request.trace_id,
            original_amount=request.amount,
            discounted_amount=breakdown.discounted_amount,
            purchase_count_before=change.previous_count,
            purchase_count_after=change.new_count,
            record=record if audit_log is not None else None,
            details=gate03.details,
        )

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _execute_settlement(
        self, request: TransferRequest, amount: int, log
    ) -> tuple[bool, str]:
        """Вызов внешнего TransferService. False и исключение — одинаковый отказ."""
        try:
            ok = self.transfer_service.execute(
                request.source_id, request.destination_id, amount, request.aux1, request.aux2
            )
        except Exception as e:
            log.error(
                "settlement_raised",
                error=f"{type(e).__name__}: {e}",
                exc_info=True,
            )
            return False, f"transfer service raised {type(e).__name__}: {e}"

        if ok is not True:
            return False, f"transfer service returned {ok!r}"
        return True, ""

    def _commit(
        self, record: TransferRecord, audit_log: Optional[TransferAuditLog], log
    ) -> CountChange:
        """Ровно один инкремент sender'а и запись аудита, all-or-nothing."""
        try:
            with self.ledger.transaction(record.sender_id):
                change = self.ledger.increment(
                    record.sender_id, record.discounted_amount, record.committed_ts_utc_ms
                )
                if audit_log is not None:
                    audit_log.append(record)
        except Exception:
            if audit_log is not None:
                audit_log.discard(record)
            # Settlement уже выполнен внешним сервисом: требуется ручная сверка
            log.critical("ledger_commit_failed_after_settlement", exc_info=True)
            raise
        return change

    def _emit(
        self, record: TransferRecord, breakdown: DiscountBreakdown, change: CountChange
    ) -> None:
        bus = self.event_bus
        bus.publish(
            DiscountApplied(
                trace_id=record.trace_id,
                account_id=record.sender_id,
                item_ref=record.aux1,
                original_amount=breakdown.original_amount,
                discounted_amount=breakdown.discounted_amount,
            )
        )
        bus.publish(
            PurchaseCountChanged(
                trace_id=record.trace_id,
                account_id=change.account_id,
                previous_count=change.previous_count,
                new_count=change.new_count,
                reason="purchase",
            )
        )
        bus.publish(
            TransferCommitted(
                trace_id=record.trace_id,
                sender_id=record.sender_id,
                source_id=record.source_id,
                destination_id=record.destination_id,
                discounted_amount=record.discounted_amount,
                aux1=record.aux1,
                aux2=record.aux2,
            )
        )

    def _abort(
        self,
        request: TransferRequest,
        stage: TransferStage,
        error_kind: Optional[TransferErrorKind],
        reason: str,
        details: str,
        log,
    ) -> TransferResult:
        log.info(
            "transfer_blocked",
            stage=stage.value,
            error_kind=error_kind.value if error_kind else None,
            reason=reason,
        )
        return TransferResult(
            committed=False,
            stage=stage,
            error_kind=error_kind,
            block_reason=reason,
            trace_id=request.trace_id,
            original_amount=request.amount,
            discounted_amount=None,
            purchase_count_before=None,
            purchase_count_after=None,
            record=None,
            details=details,
        )

    @staticmethod
    def _guard_keys(request: TransferRequest) -> frozenset[str]:
        keys = {f"account:{a.lower()}" for a in request.participants()}
        keys.add(f"trace:{request.trace_id}")
        return frozenset(keys)
