"""TransferGuard — внешний интерфейс: initialize, discount, customTransfer, admin.

Бизнес-операция customTransfer возвращает TransferResult.
Административные операции выбрасывают AdministrativeError
(Unauthorized, NotInitialized, TierConfigurationInvalid, ...), чтобы вызывающий
отличал «исправьте конфигурацию» от «повторите с другими условиями».
"""

from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog
from pydantic import ValidationError

from tiertransfer.config import Settings, get_settings
from tiertransfer.core.contracts.validators import load_tier_table
from tiertransfer.core.domain.events import OracleChanged, PurchaseCountChanged
from tiertransfer.core.domain.tiers import DEFAULT_TIER_TABLE, TierTable
from tiertransfer.core.domain.transfer import DiscountContext, TransferRequest
from tiertransfer.core.domain.units import validate_account_id
from tiertransfer.core.errors import (
    AlreadyInitialized,
    InvalidArgument,
    LookupFailure,
    NotActive,
    NotInitialized,
    TransferErrorKind,
)
from tiertransfer.core.math.discount import (
    DiscountBreakdown,
    DiscountEngine,
    DiscountPolicyConfig,
)
from tiertransfer.core.math.modifiers import DiscountModifier
from tiertransfer.gateway.state_gateway import AccountStateGateway, guarded_flag
from tiertransfer.gateway.transfer_service import TransferService
from tiertransfer.ledger.audit_log import TransferAuditLog
from tiertransfer.ledger.overrides import CustomDiscountRegistry
from tiertransfer.ledger.purchase_ledger import CountChange, PurchaseLedger
from tiertransfer.orchestrator.access_control import AccessControl
from tiertransfer.orchestrator.event_bus import EventBus, EventHandler
from tiertransfer.orchestrator.reentrancy import ReentrancyGuard
from tiertransfer.orchestrator.transfer_orchestrator import (
    OrchestratorConfig,
    TransferOrchestrator,
    TransferResult,
    TransferStage,
)

logger = structlog.get_logger(__name__)


class TransferGuard:
    """Фасад: состояние, права доступа и делегирование в TransferOrchestrator."""

    def __init__(
        self,
        owner: str,
        tier_table: Optional[TierTable] = None,
        modifiers: Sequence[DiscountModifier] = (),
        policy: Optional[DiscountPolicyConfig] = None,
        config: Optional[OrchestratorConfig] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            owner: аккаунт владельца (admin по умолчанию)
            tier_table: начальная таблица тиров (default: DEFAULT_TIER_TABLE)
            modifiers: модификаторы скидки
            policy: cap скидки и лимит bulk-операций
            config: конфигурация оркестратора
            clock: источник времени (UTC, миллисекунды)
        """
        self.access = AccessControl(owner)
        self.policy = policy or DiscountPolicyConfig()
        self.engine = DiscountEngine(
            tier_table if tier_table is not None else DEFAULT_TIER_TABLE, modifiers, self.policy
        )
        self.ledger = PurchaseLedger(max_bulk_size=self.policy.max_bulk_size)
        self.overrides = CustomDiscountRegistry()
        self.audit_log = TransferAuditLog()
        self.event_bus = EventBus()
        self.guard = ReentrancyGuard()
        self.config = config or OrchestratorConfig()
        self.clock = clock

        self.oracle_id: Optional[str] = None
        self._paused = False
        self._orchestrator: Optional[TransferOrchestrator] = None

    @classmethod
    def from_settings(
        cls,
        owner: str,
        settings: Optional[Settings] = None,
        tier_table: Optional[TierTable] = None,
        modifiers: Sequence[DiscountModifier] = (),
    ) -> "TransferGuard":
        """Фасад с политикой из переменных окружения TIERTRANSFER_*."""
        settings = settings or get_settings()
        return cls(
            owner,
            tier_table,
            modifiers,
            policy=settings.discount_policy(),
            config=settings.orchestrator_config(),
        )

    # =========================================================================
    # INITIALIZATION
    # =========================================================================

    def initialize(
        self, caller: str, gateway: AccountStateGateway, transfer_service: TransferService
    ) -> None:
        """
        Однократная настройка внешних коллабораторов.

        Raises:
            Unauthorized: caller не owner
            InvalidArgument: gateway или transfer_service is None
            AlreadyInitialized: повторный вызов
        """
        self.access.require_owner(caller)
        if gateway is None or transfer_service is None:
            raise InvalidArgument("gateway and transfer_service are required")
        if self._orchestrator is not None:
            raise AlreadyInitialized("TransferGuard is already initialized")

        self._orchestrator = TransferOrchestrator(
            gateway=gateway,
            transfer_service=transfer_service,
            ledger=self.ledger,
            engine=self.engine,
            overrides=self.overrides,
            audit_log=self.audit_log,
            event_bus=self.event_bus,
            guard=self.guard,
            config=self.config,
            clock=self.clock,
        )
        logger.info("transfer_guard_initialized", owner=self.access.owner)

    @property
    def is_initialized(self) -> bool:
        return self._orchestrator is not None

    def _require_initialized(self) -> TransferOrchestrator:
        if self._orchestrator is None:
            raise NotInitialized("TransferGuard.initialize() has not been called")
        return self._orchestrator

    # =========================================================================
    # QUERIES
    # =========================================================================

    def discount(self, amount: int, purchase_count: int) -> int:
        """Чистый preview: только текущая таблица тиров и cap, без модификаторов."""
        return DiscountEngine(self.engine.tier_table, (), self.policy).compute(
            amount, purchase_count
        )

    def bulk_discount(self, amounts: Sequence[int], purchase_counts: Sequence[int]) -> List[int]:
        return DiscountEngine(self.engine.tier_table, (), self.policy).bulk_compute(
            amounts, purchase_counts
        )

    def preview(
        self, account_id: str, amount: int, context: Optional[DiscountContext] = None
    ) -> DiscountBreakdown:
        """Read-only preview для аккаунта: текущий счётчик, override и модификаторы."""
        key = validate_account_id(account_id)
        return self.engine.breakdown(
            amount, self.ledger.get(key), context, self.overrides.get(key)
        )

    def get_purchase_count(self, account_id: str) -> int:
        return self.ledger.get(account_id)

    # =========================================================================
    # TRANSFER
    # =========================================================================

    def custom_transfer(
        self,
        sender_id: str,
        source_id: str,
        destination_id: str,
        amount: int,
        aux1: int,
        aux2: int,
        memo: str,
        trace_id: int,
        context: Optional[DiscountContext] = None,
    ) -> TransferResult:
        """
        Аргументы неверного типа (amount=1.5, memo=None) → INVALID_ARGUMENT
        на стадии VALIDATING, как и прочие бизнес-отказы.

        Raises:
            NotInitialized: до initialize()
        """
        self._require_initialized()
        try:
            request = TransferRequest(
                sender_id=sender_id,
                source_id=source_id,
                destination_id=destination_id,
                amount=amount,
                aux1=aux1,
                aux2=aux2,
                memo=memo,
                trace_id=trace_id,
                context=context,
            )
        except ValidationError as e:
            return self._malformed_request(trace_id, amount, e)
        return self.submit(request)

    @staticmethod
    def _malformed_request(trace_id: Any, amount: Any, error: ValidationError) -> TransferResult:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in error.errors()
        )
        logger.info(
            "transfer_blocked",
            stage=TransferStage.VALIDATING.value,
            error_kind=TransferErrorKind.INVALID_ARGUMENT.value,
            reason="malformed_request",
            details=details,
        )
        return TransferResult(
            committed=False,
            stage=TransferStage.VALIDATING,
            error_kind=TransferErrorKind.INVALID_ARGUMENT,
            block_reason="malformed_request",
            trace_id=trace_id if _is_int(trace_id) else 0,
            original_amount=amount if _is_int(amount) else 0,
            discounted_amount=None,
            purchase_count_before=None,
            purchase_count_after=None,
            record=None,
            details=details,
        )

    def submit(self, request: TransferRequest) -> TransferResult:
        """
        Raises:
            NotInitialized: до initialize()
        """
        orchestrator = self._require_initialized()
        return orchestrator.custom_transfer(request, paused=self._paused)

    # =========================================================================
    # ADMIN: ORACLE
    # =========================================================================

    def set_oracle(
        self, caller: str, oracle_id: str, gateway: Optional[AccountStateGateway] = None
    ) -> None:
        """
        Переключение oracle. oracle_id должен быть активен в целевом gateway.

        Args:
            caller: admin
            oracle_id: идентификатор нового oracle
            gateway: новый gateway (None — только смена oracle_id)

        Raises:
            LookupFailure: целевой gateway не ответил
            NotActive: oracle_id не активен
        """
        self.access.require_admin(caller)
        orchestrator = self._require_initialized()
        new_id = validate_account_id(oracle_id, role="oracle")
        target = gateway if gateway is not None else orchestrator.gateway

        result = guarded_flag(target.is_active, new_id)
        if not result.ok:
            raise LookupFailure(f"oracle {new_id} activity lookup failed: {result.error}")
        if not result.value:
            raise NotActive(f"oracle {new_id} is not active")

        previous = self.oracle_id
        orchestrator.gateway = target
        self.oracle_id = new_id
        logger.info("oracle_changed", previous_oracle_id=previous, new_oracle_id=new_id)
        self.event_bus.publish(OracleChanged(previous_oracle_id=previous, new_oracle_id=new_id))

    # =========================================================================
    # ADMIN: TIERS
    # =========================================================================

    def get_tiers(self) -> TierTable:
        return self.engine.tier_table

    def add_tier(self, caller: str, threshold: int, rate_bps: int) -> TierTable:
        self.access.require_admin(caller)
        return self._replace_tiers(self.engine.tier_table.add_tier(threshold, rate_bps))

    def remove_tier(self, caller: str, threshold: int) -> TierTable:
        self.access.require_admin(caller)
        return self._replace_tiers(self.engine.tier_table.remove_tier(threshold))

    def update_tier(self, caller: str, threshold: int, rate_bps: int) -> TierTable:
        self.access.require_admin(caller)
        return self._replace_tiers(self.engine.tier_table.update_tier(threshold, rate_bps))

    def load_tiers(self, caller: str, payload: Dict[str, Any]) -> TierTable:
        """
        Замена таблицы из JSON payload (contracts/schema/tier_table.json).

        max_combined_rate_bps в payload (если есть) заменяет cap политики.
        Новый cap не может быть ниже ставок тиров и персональных ставок.

        Raises:
            TierConfigurationInvalid: payload невалиден, ставка тира или
                персональная ставка выше cap; состояние не меняется
        """
        self.access.require_admin(caller)
        table = load_tier_table(payload)
        policy = self.policy
        if "max_combined_rate_bps" in payload:
            policy = DiscountPolicyConfig(
                max_combined_rate_bps=payload["max_combined_rate_bps"],
                max_bulk_size=self.policy.max_bulk_size,
            )
        engine = DiscountEngine(table, self.engine.modifiers, policy)
        highest_custom = self.overrides.max_rate_bps()
        if highest_custom is not None:
            engine.check_rate(highest_custom)
        self.policy = policy
        return self._install_engine(engine)

    def _replace_tiers(self, table: TierTable) -> TierTable:
        return self._install_engine(self.engine.with_tier_table(table))

    def _install_engine(self, engine: DiscountEngine) -> TierTable:
        self.engine = engine
        if self._orchestrator is not None:
            self._orchestrator.engine = engine
        logger.info(
            "tier_table_updated",
            tiers=engine.tier_table.to_payload()["tiers"],
            max_combined_rate_bps=engine.config.max_combined_rate_bps,
        )
        return engine.tier_table

    # =========================================================================
    # ADMIN: PURCHASE COUNTS
    # =========================================================================

    def reset_purchase_count(self, caller: str, account_id: str) -> CountChange:
        """
        Raises:
            ReentrantCall: для аккаунта выполняется перевод
        """
        self.access.require_admin(caller)
        key = validate_account_id(account_id)
        with self.guard.hold([f"account:{key}"]):
            change = self.ledger.reset(key)
        self._publish_count_changes([change], "reset")
        return change

    def bulk_set_purchase_counts(
        self, caller: str, account_ids: Sequence[str], counts: Sequence[int]
    ) -> List[CountChange]:
        """
        Raises:
            ArrayLengthMismatch, BulkLimitExceeded, InvalidArgument: до любых изменений
            ReentrantCall: для одного из аккаунтов выполняется перевод
        """
        self.access.require_admin(caller)
        keys = [f"account:{a.lower()}" for a in account_ids if isinstance(a, str)]
        with self.guard.hold(keys):
            changes = self.ledger.bulk_set(account_ids, counts)
        self._publish_count_changes(changes, "bulk_set")
        return changes

    def _publish_count_changes(self, changes: List[CountChange], reason: str) -> None:
        for change in changes:
            logger.info(
                "purchase_count_changed",
                account_id=change.account_id,
                previous_count=change.previous_count,
                new_count=change.new_count,
                reason=reason,
            )
            self.event_bus.publish(
                PurchaseCountChanged(
                    account_id=change.account_id,
                    previous_count=change.previous_count,
                    new_count=change.new_count,
                    reason=reason,
                )
            )

    # =========================================================================
    # ADMIN: CUSTOM DISCOUNTS
    # =========================================================================

    def set_custom_discount(self, caller: str, account_id: str, rate_bps: int) -> None:
        """
        Raises:
            TierConfigurationInvalid: rate_bps вне [0, 10000] или выше cap
        """
        self.access.require_admin(caller)
        self.engine.check_rate(rate_bps)
        self.overrides.set(account_id, rate_bps)
        logger.info("custom_discount_set", account_id=account_id, rate_bps=rate_bps)

    def remove_custom_discount(self, caller: str, account_id: str) -> Optional[int]:
        self.access.require_admin(caller)
        removed = self.overrides.remove(account_id)
        logger.info("custom_discount_removed", account_id=account_id, rate_bps=removed)
        return removed

    def get_custom_discount(self, account_id: str) -> Optional[int]:
        return self.overrides.get(account_id)

    # =========================================================================
    # ADMIN: PAUSE / ROLES / AUDIT
    # =========================================================================

    @property
    def paused(self) -> bool:
        return self._paused

    def pause(self, caller: str) -> None:
        self.access.require_admin(caller)
        self._paused = True
        logger.warning("transfers_paused", caller=caller)

    def unpause(self, caller: str) -> None:
        self.access.require_admin(caller)
        self._paused = False
        logger.info("transfers_unpaused", caller=caller)

    def grant_admin(self, caller: str, account_id: str) -> None:
        self.access.grant_admin(caller, account_id)
        logger.info("admin_granted", account_id=account_id)

    def revoke_admin(self, caller: str, account_id: str) -> None:
        self.access.revoke_admin(caller, account_id)
        logger.info("admin_revoked", account_id=account_id)

    def purge_audit_log(self, caller: str, before_ts_ms: Optional[int] = None) -> int:
        self.access.require_admin(caller)
        removed = self.audit_log.purge(before_ts_ms)
        logger.warning("audit_log_purged", removed=removed, before_ts_ms=before_ts_ms)
        return removed

    # =========================================================================
    # EVENTS
    # =========================================================================

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        return self.event_bus.subscribe(handler)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
