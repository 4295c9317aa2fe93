"""
Тесты для TransferOrchestrator (customTransfer state machine)

Coverage:
- Успешный перевод: скидка по счётчику ДО инкремента, ровно +1
- Отказы до settlement: без мутаций ledger / audit / балансов
- Settlement: False, None, исключение → SETTLEMENT_FAILURE
- Reentrancy: повторный вход из settlement или другого потока отклоняется
- Порядок событий, сбой подписчика не откатывает фиксацию
- Откат ledger при сбое записи аудита
"""

import threading

import pytest

from tiertransfer.core.domain.transfer import DiscountContext, TransferRequest
from tiertransfer.core.errors import InsufficientBalance, SettlementFailure, TransferErrorKind
from tiertransfer.core.math.discount import DiscountEngine
from tiertransfer.core.math.modifiers import LoyaltyModifier
from tiertransfer.gateway import (
    InMemoryAccountStateGateway,
    InMemoryTransferService,
    LookupResult,
)
from tiertransfer.ledger import CustomDiscountRegistry, PurchaseLedger, TransferAuditLog
from tiertransfer.orchestrator import (
    STAGE_ORDER,
    EventBus,
    OrchestratorConfig,
    TransferOrchestrator,
    TransferStage,
)

SENDER = "0x" + "11" * 20
SOURCE = "0x" + "22" * 20
DEST = "0x" + "33" * 20
OTHER_SENDER = "0x" + "44" * 20
OTHER_SOURCE = "0x" + "55" * 20
OTHER_DEST = "0x" + "66" * 20
ZERO = "0x" + "0" * 40

NOW_MS = 1_700_000_000_000


def make_request(**overrides) -> TransferRequest:
    params = dict(
        sender_id=SENDER,
        source_id=SOURCE,
        destination_id=DEST,
        amount=100,
        aux1=7,
        aux2=0,
        memo="order #1",
        trace_id=1,
    )
    params.update(overrides)
    return TransferRequest(**params)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def gateway():
    gw = InMemoryAccountStateGateway()
    gw.add_account(SENDER)
    gw.add_account(SOURCE, balance=500)
    gw.add_account(DEST)
    gw.add_account(OTHER_SENDER)
    gw.add_account(OTHER_SOURCE, balance=500)
    gw.add_account(OTHER_DEST)
    return gw


@pytest.fixture
def service(gateway):
    return InMemoryTransferService(gateway)


@pytest.fixture
def ledger():
    return PurchaseLedger()


@pytest.fixture
def orchestrator(gateway, service, ledger):
    return TransferOrchestrator(gateway, service, ledger=ledger, clock=lambda: NOW_MS)


class StubService:
    """TransferService с фиксированным ответом."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = 0

    def execute(self, source_id, destination_id, amount, aux1, aux2):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.response


def assert_no_mutation(orchestrator, gateway, balances_before):
    assert orchestrator.ledger.snapshot() == {}
    assert len(orchestrator.audit_log) == 0
    assert gateway.balances() == balances_before


# =============================================================================
# SUCCESS
# =============================================================================


class TestSuccessfulTransfer:
    def test_first_purchase_no_discount(self, orchestrator, gateway, ledger):
        result = orchestrator.custom_transfer(make_request())

        assert result.committed
        assert bool(result)
        assert result.stage == TransferStage.DONE
        assert result.error_kind is None
        assert result.discounted_amount == 100
        assert (result.purchase_count_before, result.purchase_count_after) == (0, 1)
        assert ledger.get(SENDER) == 1
        assert gateway.get_balance(SOURCE).value == 400
        assert gateway.get_balance(DEST).value == 100

    def test_discount_at_tier_threshold(self, orchestrator, gateway, ledger):
        ledger.bulk_set([SENDER], [5])
        result = orchestrator.custom_transfer(make_request())

        assert result.discounted_amount == 95
        assert result.purchase_count_after == 6
        # Списывается сумма со скидкой
        assert gateway.get_balance(SOURCE).value == 405
        assert gateway.get_balance(DEST).value == 95

    def test_count_before_increment_is_used(self, orchestrator, ledger):
        ledger.bulk_set([SENDER], [4])
        first = orchestrator.custom_transfer(make_request(trace_id=1))
        second = orchestrator.custom_transfer(make_request(trace_id=2))

        assert first.discounted_amount == 100
        assert second.discounted_amount == 95
        assert ledger.get(SENDER) == 6

    def test_record(self, orchestrator, ledger):
        ledger.bulk_set([SENDER], [20])
        result = orchestrator.custom_transfer(make_request(aux1=42, aux2=9))

        record = result.record
        assert record.trace_id == 1
        assert record.original_amount == 100
        assert record.discounted_amount == 85
        assert record.rate_applied_bps == 1500
        assert (record.aux1, record.aux2) == (42, 9)
        assert record.purchase_count_before == 20
        assert record.committed_ts_utc_ms == NOW_MS
        assert orchestrator.audit_log.get(1) == record

    def test_ids_normalized(self, orchestrator, ledger):
        upper = SENDER.upper().replace("0X", "0x")
        result = orchestrator.custom_transfer(make_request(sender_id=upper))
        assert result.committed
        assert result.record.sender_id == SENDER
        assert ledger.get(SENDER) == 1

    def test_aux_values_passed_to_service(self, orchestrator, service):
        orchestrator.custom_transfer(make_request(aux1=11, aux2=22))
        assert service.executed == [(SOURCE, DEST, 100, 11, 22)]

    def test_context_modifiers(self, gateway, service):
        orchestrator = TransferOrchestrator(
            gateway, service, engine=DiscountEngine(modifiers=[LoyaltyModifier(rate_bps=1000)])
        )
        result = orchestrator.custom_transfer(
            make_request(context=DiscountContext(is_vip=True))
        )
        assert result.discounted_amount == 90

    def test_custom_discount_override(self, gateway, service):
        overrides = CustomDiscountRegistry()
        overrides.set(SENDER, 2000)
        orchestrator = TransferOrchestrator(gateway, service, overrides=overrides)
        assert orchestrator.custom_transfer(make_request()).discounted_amount == 80

    def test_without_audit_trail(self, gateway, service, ledger):
        orchestrator = TransferOrchestrator(
            gateway, service, ledger=ledger, config=OrchestratorConfig(record_audit_trail=False)
        )
        first = orchestrator.custom_transfer(make_request())
        second = orchestrator.custom_transfer(make_request())

        assert first.committed and second.committed
        assert first.record is None
        assert len(orchestrator.audit_log) == 0
        assert ledger.get(SENDER) == 2


# =============================================================================
# BLOCKED BEFORE SETTLEMENT
# =============================================================================


class TestBlockedTransfers:
    def test_insufficient_balance(self, orchestrator, gateway):
        before = gateway.balances()
        result = orchestrator.custom_transfer(make_request(amount=600))

        assert not result
        assert result.stage == TransferStage.CHECKING_SOURCE_BALANCE
        assert result.error_kind == TransferErrorKind.INSUFFICIENT_BALANCE
        assert result.discounted_amount is None
        assert_no_mutation(orchestrator, gateway, before)

    def test_balance_checked_against_original_amount(self, orchestrator, gateway, ledger):
        gateway.add_account(SOURCE, balance=100)
        ledger.bulk_set([SENDER], [20])

        # 101 → 85 после скидки, но проверяется сумма до скидки
        blocked = orchestrator.custom_transfer(make_request(amount=101, trace_id=1))
        assert blocked.error_kind == TransferErrorKind.INSUFFICIENT_BALANCE

        passed = orchestrator.custom_transfer(make_request(amount=100, trace_id=2))
        assert passed.committed
        assert passed.discounted_amount == 85

    @pytest.mark.parametrize(
        "overrides, reason",
        [
            ({"sender_id": ZERO}, "invalid_sender_id"),
            ({"source_id": ZERO}, "invalid_source_id"),
            ({"destination_id": ZERO}, "invalid_destination_id"),
            ({"amount": 0}, "non_positive_amount"),
            ({"memo": ""}, "empty_memo"),
            ({"trace_id": 0}, "invalid_trace_id"),
        ],
    )
    def test_invalid_arguments(self, orchestrator, gateway, overrides, reason):
        before = gateway.balances()
        result = orchestrator.custom_transfer(make_request(**overrides))

        assert result.stage == TransferStage.VALIDATING
        assert result.error_kind == TransferErrorKind.INVALID_ARGUMENT
        assert result.block_reason == reason
        assert_no_mutation(orchestrator, gateway, before)

    @pytest.mark.parametrize(
        "role, account", [("sender", SENDER), ("source", SOURCE), ("destination", DEST)]
    )
    def test_inactive_participant(self, orchestrator, gateway, role, account):
        gateway.add_account(account, balance=500, active=False)
        before = gateway.balances()
        result = orchestrator.custom_transfer(make_request())

        assert result.stage == TransferStage.CHECKING_ACCOUNTS_ACTIVE
        assert result.error_kind == TransferErrorKind.NOT_ACTIVE
        assert result.block_reason == f"{role}_not_active"
        assert_no_mutation(orchestrator, gateway, before)

    def test_unknown_account_not_active(self, orchestrator):
        unknown = "0x" + "77" * 20
        result = orchestrator.custom_transfer(make_request(destination_id=unknown))
        assert result.error_kind == TransferErrorKind.NOT_ACTIVE

    def test_activity_lookup_failure(self, orchestrator, gateway):
        gateway.fail_on(gateway.active_key(DEST))
        result = orchestrator.custom_transfer(make_request())
        assert result.error_kind == TransferErrorKind.LOOKUP_FAILURE
        assert result.stage == TransferStage.CHECKING_ACCOUNTS_ACTIVE

    def test_balance_lookup_failure(self, orchestrator, gateway):
        gateway.fail_on(gateway.balance_key(SOURCE))
        result = orchestrator.custom_transfer(make_request())
        assert result.error_kind == TransferErrorKind.LOOKUP_FAILURE
        assert result.stage == TransferStage.CHECKING_SOURCE_BALANCE

    def test_balance_payload_none(self, orchestrator, gateway):
        gateway.get_balance = lambda account_id: LookupResult.success(None)
        result = orchestrator.custom_transfer(make_request())
        assert result.error_kind == TransferErrorKind.LOOKUP_FAILURE
        assert result.stage == TransferStage.CHECKING_SOURCE_BALANCE
        assert orchestrator.ledger.snapshot() == {}

    def test_activity_payload_string(self, orchestrator, gateway):
        gateway.is_active = lambda account_id: LookupResult.success("false")
        result = orchestrator.custom_transfer(make_request())
        assert result.error_kind == TransferErrorKind.LOOKUP_FAILURE
        assert result.stage == TransferStage.CHECKING_ACCOUNTS_ACTIVE

    def test_raising_gateway(self, service):
        class Broken:
            def is_active(self, account_id):
                raise ConnectionError("oracle down")

        orchestrator = TransferOrchestrator(Broken(), service)
        result = orchestrator.custom_transfer(make_request())
        assert result.error_kind == TransferErrorKind.LOOKUP_FAILURE

    def test_paused(self, orchestrator, gateway):
        before = gateway.balances()
        result = orchestrator.custom_transfer(make_request(), paused=True)
        assert result.error_kind == TransferErrorKind.PAUSED
        assert_no_mutation(orchestrator, gateway, before)

    def test_raise_for_error(self, orchestrator):
        result = orchestrator.custom_transfer(make_request(amount=600))
        with pytest.raises(InsufficientBalance, match="insufficient_balance"):
            result.raise_for_error()

    def test_raise_for_error_noop_on_success(self, orchestrator):
        orchestrator.custom_transfer(make_request()).raise_for_error()


# =============================================================================
# SETTLEMENT
# =============================================================================


class TestSettlement:
    @pytest.mark.parametrize(
        "stub",
        [
            StubService(response=False),
            StubService(response=None),
            StubService(response=1),
            StubService(error=RuntimeError("bank offline")),
        ],
    )
    def test_failure_no_mutation(self, gateway, ledger, stub):
        orchestrator = TransferOrchestrator(gateway, stub, ledger=ledger)
        result = orchestrator.custom_transfer(make_request())

        assert result.stage == TransferStage.EXECUTING_SETTLEMENT
        assert result.error_kind == TransferErrorKind.SETTLEMENT_FAILURE
        assert ledger.snapshot() == {}
        assert len(orchestrator.audit_log) == 0
        # Без retry
        assert stub.calls == 1

    def test_failure_raise_for_error(self, gateway):
        orchestrator = TransferOrchestrator(gateway, StubService(response=False))
        with pytest.raises(SettlementFailure):
            orchestrator.custom_transfer(make_request()).raise_for_error()

    def test_retry_needs_fresh_trace_id(self, orchestrator, ledger):
        assert orchestrator.custom_transfer(make_request(trace_id=5)).committed

        duplicate = orchestrator.custom_transfer(make_request(trace_id=5))
        assert duplicate.error_kind == TransferErrorKind.INVALID_ARGUMENT
        assert duplicate.block_reason == "duplicate_trace_id"
        assert ledger.get(SENDER) == 1

        assert orchestrator.custom_transfer(make_request(trace_id=6)).committed
        assert ledger.get(SENDER) == 2

    def test_failed_trace_id_can_be_reused(self, gateway, ledger):
        stub = StubService(response=False)
        orchestrator = TransferOrchestrator(gateway, stub, ledger=ledger)
        assert not orchestrator.custom_transfer(make_request(trace_id=9))

        orchestrator.transfer_service = InMemoryTransferService(gateway)
        assert orchestrator.custom_transfer(make_request(trace_id=9)).committed


# =============================================================================
# REENTRANCY
# =============================================================================


class TestReentrancy:
    def _orchestrator_with_callback(self, gateway, ledger, callback):
        service = InMemoryTransferService(gateway, on_execute=callback)
        return TransferOrchestrator(gateway, service, ledger=ledger)

    def test_other_thread_same_source_rejected(self, gateway, ledger):
        in_settlement = threading.Event()
        release = threading.Event()
        results = {}

        def block_first(source_id, destination_id, amount):
            if not in_settlement.is_set():
                in_settlement.set()
                release.wait(timeout=5)

        orchestrator = self._orchestrator_with_callback(gateway, ledger, block_first)

        def run(name, request):
            results[name] = orchestrator.custom_transfer(request)

        first = threading.Thread(target=run, args=("first", make_request(trace_id=1)))
        first.start()
        try:
            assert in_settlement.wait(timeout=5)
            # Тот же source, остальные участники другие
            second = threading.Thread(
                target=run,
                args=(
                    "second",
                    make_request(sender_id=OTHER_SENDER, destination_id=OTHER_DEST, trace_id=2),
                ),
            )
            second.start()
            second.join(timeout=5)
            assert not second.is_alive()
            assert ledger.snapshot() == {}
        finally:
            release.set()
            first.join(timeout=5)

        assert not first.is_alive()
        assert results["second"].error_kind == TransferErrorKind.REENTRANT_CALL
        assert results["second"].stage == TransferStage.VALIDATING
        assert results["first"].committed
        assert ledger.snapshot() == {SENDER: 1}
        assert gateway.get_balance(SOURCE).value == 400

    def test_same_participants_rejected(self, gateway, ledger):
        inner_results = []

        def reenter(source_id, destination_id, amount):
            inner_results.append(orchestrator.custom_transfer(make_request(trace_id=2)))

        orchestrator = self._orchestrator_with_callback(gateway, ledger, reenter)
        outer = orchestrator.custom_transfer(make_request(trace_id=1))

        assert outer.committed
        assert len(inner_results) == 1
        assert inner_results[0].error_kind == TransferErrorKind.REENTRANT_CALL
        assert inner_results[0].stage == TransferStage.VALIDATING
        # Ровно один инкремент
        assert ledger.get(SENDER) == 1

    def test_same_trace_id_rejected(self, gateway, ledger):
        inner_results = []

        def reenter(source_id, destination_id, amount):
            inner_results.append(
                orchestrator.custom_transfer(
                    make_request(
                        sender_id=OTHER_SENDER,
                        source_id=OTHER_SOURCE,
                        destination_id=OTHER_DEST,
                        trace_id=1,
                    )
                )
            )

        orchestrator = self._orchestrator_with_callback(gateway, ledger, reenter)
        assert orchestrator.custom_transfer(make_request(trace_id=1)).committed
        assert inner_results[0].error_kind == TransferErrorKind.REENTRANT_CALL
        assert ledger.get(OTHER_SENDER) == 0

    def test_disjoint_transfer_allowed(self, gateway, ledger):
        inner_results = []

        def reenter(source_id, destination_id, amount):
            if source_id == SOURCE:
                inner_results.append(
                    orchestrator.custom_transfer(
                        make_request(
                            sender_id=OTHER_SENDER,
                            source_id=OTHER_SOURCE,
                            destination_id=OTHER_DEST,
                            trace_id=2,
                        )
                    )
                )

        orchestrator = self._orchestrator_with_callback(gateway, ledger, reenter)
        assert orchestrator.custom_transfer(make_request(trace_id=1)).committed
        assert inner_results[0].committed
        assert ledger.get(OTHER_SENDER) == 1

    def test_guard_released_after_abort(self, orchestrator):
        assert not orchestrator.custom_transfer(make_request(amount=600))
        assert not orchestrator.guard.is_busy(f"account:{SENDER}")
        assert orchestrator.custom_transfer(make_request()).committed

    def test_guard_released_after_exception(self, gateway, service, ledger):
        class FailingAuditLog(TransferAuditLog):
            def append(self, record):
                raise RuntimeError("audit storage unavailable")

        orchestrator = TransferOrchestrator(
            gateway, service, ledger=ledger, audit_log=FailingAuditLog()
        )
        with pytest.raises(RuntimeError):
            orchestrator.custom_transfer(make_request())

        # Инкремент откатан вместе с записью аудита
        assert ledger.get(SENDER) == 0
        assert not orchestrator.guard.is_busy("trace:1")

    def test_commit_rollback_keeps_other_senders(self, gateway, service, ledger):
        class InterleavedAuditLog(TransferAuditLog):
            def append(self, record):
                # Фиксация другого аккаунта успевает пройти до сбоя
                ledger.increment(OTHER_SENDER, amount_spent=40)
                raise RuntimeError("audit storage unavailable")

        orchestrator = TransferOrchestrator(
            gateway, service, ledger=ledger, audit_log=InterleavedAuditLog()
        )
        with pytest.raises(RuntimeError):
            orchestrator.custom_transfer(make_request())

        assert ledger.snapshot() == {OTHER_SENDER: 1}
        assert ledger.total_spent(OTHER_SENDER) == 40


# =============================================================================
# EVENTS
# =============================================================================


class TestEvents:
    def test_order(self, gateway, service, ledger):
        bus = EventBus()
        received = []
        bus.subscribe(received.append)
        ledger.bulk_set([SENDER], [5])
        orchestrator = TransferOrchestrator(gateway, service, ledger=ledger, event_bus=bus)

        orchestrator.custom_transfer(make_request(aux1=42))

        assert [e.event_type for e in received] == [
            "discount_applied",
            "purchase_count_changed",
            "transfer_committed",
        ]
        applied, count_changed, committed = received
        assert applied.item_ref == 42
        assert (applied.original_amount, applied.discounted_amount) == (100, 95)
        assert (count_changed.previous_count, count_changed.new_count) == (5, 6)
        assert count_changed.reason == "purchase"
        assert committed.discounted_amount == 95
        assert all(e.trace_id == 1 for e in received)

    def test_no_events_on_abort(self, gateway, service):
        bus = EventBus()
        received = []
        bus.subscribe(received.append)
        orchestrator = TransferOrchestrator(gateway, service, event_bus=bus)

        orchestrator.custom_transfer(make_request(amount=600))
        assert received == []

    def test_failing_handler_does_not_undo_commit(self, gateway, service, ledger):
        bus = EventBus()
        received = []

        def broken(event):
            raise ValueError("subscriber bug")

        bus.subscribe(broken)
        bus.subscribe(received.append)
        orchestrator = TransferOrchestrator(gateway, service, ledger=ledger, event_bus=bus)

        result = orchestrator.custom_transfer(make_request())

        assert result.committed
        assert ledger.get(SENDER) == 1
        assert bus.failed_deliveries == 3
        # Остальные подписчики получают события
        assert len(received) == 3

    def test_unsubscribe(self, gateway, service):
        bus = EventBus()
        received = []
        unsubscribe = bus.subscribe(received.append)
        unsubscribe()
        TransferOrchestrator(gateway, service, event_bus=bus).custom_transfer(make_request())
        assert received == []


def test_stage_order():
    assert STAGE_ORDER[0] == TransferStage.VALIDATING
    assert STAGE_ORDER[-1] == TransferStage.DONE
    assert STAGE_ORDER.index(TransferStage.EXECUTING_SETTLEMENT) < STAGE_ORDER.index(
        TransferStage.UPDATING_LEDGER
    )
