"""
AccountStateGateway — интерфейс внешнего хранилища состояния (oracle)

Каждый вызов возвращает LookupResult: ошибка чтения НИКОГДА не приравнивается
к False/0. Вызывающий обязан проверить ok до использования value.

InMemoryAccountStateGateway — эталонный адаптер с инъекцией отказов.
"""

from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Optional,
    Protocol,
    Set,
    TypeVar,
    runtime_checkable,
)

import structlog

from tiertransfer.core.domain.units import normalize_account_id
from tiertransfer.core.errors import LookupFailure

T = TypeVar("T")

logger = structlog.get_logger(__name__)


# =============================================================================
# RESULT
# =============================================================================


@dataclass(frozen=True)
class LookupResult(Generic[T]):
    """Результат обращения к gateway."""

    ok: bool
    value: Optional[T] = None
    error: str = ""

    @classmethod
    def success(cls, value: Optional[T] = None) -> "LookupResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "LookupResult[T]":
        return cls(ok=False, value=None, error=error or "unknown_lookup_error")

    def unwrap(self) -> T:
        """
        Raises:
            LookupFailure: если ok == False
        """
        if not self.ok:
            raise LookupFailure(self.error)
        return self.value  # type: ignore[return-value]


# =============================================================================
# PROTOCOL
# =============================================================================


@runtime_checkable
class AccountStateGateway(Protocol):
    """Capability set внешнего oracle."""

    def is_active(self, account_id: str) -> LookupResult[bool]: ...

    def get_balance(self, account_id: str) -> LookupResult[int]: ...

    def get(self, key: str) -> LookupResult[Any]: ...

    def set(self, key: str, value: Any) -> LookupResult[None]: ...


# =============================================================================
# IN-MEMORY ADAPTER
# =============================================================================


class InMemoryAccountStateGateway:
    """
    Хранилище в памяти.

    Ключи:
    - active:<account_id> → bool
    - balance:<account_id> → int
    - произвольные ключи через get/set

    Инъекция отказов: fail_keys — любой доступ к ключу возвращает failure.
    """

    def __init__(self):
        self._store: Dict[str, Any] = {}
        self.fail_keys: Set[str] = set()

    @staticmethod
    def active_key(account_id: str) -> str:
        return f"active:{normalize_account_id(account_id)}"

    @staticmethod
    def balance_key(account_id: str) -> str:
        return f"balance:{normalize_account_id(account_id)}"

    # -------------------------------------------------------------------------
    # Seed helpers (тесты / bootstrap)
    # -------------------------------------------------------------------------

    def add_account(self, account_id: str, balance: int = 0, active: bool = True) -> None:
        self._store[self.active_key(account_id)] = active
        self._store[self.balance_key(account_id)] = balance

    def fail_on(self, key: str) -> None:
        self.fail_keys.add(key)

    def balances(self) -> Dict[str, int]:
        """Снимок всех балансов (для проверки отсутствия мутаций)."""
        return {k: v for k, v in self._store.items() if k.startswith("balance:")}

    # -------------------------------------------------------------------------
    # AccountStateGateway
    # -------------------------------------------------------------------------

    def is_active(self, account_id: str) -> LookupResult[bool]:
        key = self.active_key(account_id)
        if key in self.fail_keys:
            return LookupResult.failure(f"oracle read failed: {key}")
        # Неизвестный аккаунт: валидный ответ False, не ошибка
        return LookupResult.success(bool(self._store.get(key, False)))

    def get_balance(self, account_id: str) -> LookupResult[int]:
        key = self.balance_key(account_id)
        if key in self.fail_keys:
            return LookupResult.failure(f"oracle read failed: {key}")
        return LookupResult.success(int(self._store.get(key, 0)))

    def get(self, key: str) -> LookupResult[Any]:
        if key in self.fail_keys:
            return LookupResult.failure(f"oracle read failed: {key}")
        if key not in self._store:
            return LookupResult.failure(f"key not found: {key}")
        return LookupResult.success(self._store[key])

    def set(self, key: str, value: Any) -> LookupResult[None]:
        if key in self.fail_keys:
            return LookupResult.failure(f"oracle write failed: {key}")
        self._store[key] = value
        return LookupResult.success(None)


# =============================================================================
# GUARDED CALL
# =============================================================================


def guarded_lookup(call: Callable[..., Any], *args: Any) -> LookupResult[Any]:
    """
    Вызов gateway, который никогда не выбрасывает исключение.

    Исключение адаптера или ответ не-LookupResult → LookupResult.failure.
    """
    try:
        result = call(*args)
    except Exception as e:
        logger.warning(
            "gateway_call_raised",
            call=getattr(call, "__name__", repr(call)),
            error=f"{type(e).__name__}: {e}",
            exc_info=True,
        )
        return LookupResult.failure(f"{type(e).__name__}: {e}")

    if not isinstance(result, LookupResult):
        return LookupResult.failure(f"gateway returned {type(result).__name__}, not LookupResult")
    return result


def guarded_flag(call: Callable[..., Any], *args: Any) -> LookupResult[bool]:
    """
    guarded_lookup для is_active: успешный ответ обязан нести bool.

    Иной payload ("false", None, 1) → LookupResult.failure, не приведение к bool.
    """
    result = guarded_lookup(call, *args)
    if result.ok and not isinstance(result.value, bool):
        return _malformed(call, result.value, "bool")
    return result


def guarded_amount(call: Callable[..., Any], *args: Any) -> LookupResult[int]:
    """
    guarded_lookup для get_balance: успешный ответ обязан нести int >= 0.

    bool, None, float, строка или отрицательное значение → LookupResult.failure.
    """
    result = guarded_lookup(call, *args)
    if result.ok and (
        not isinstance(result.value, int)
        or isinstance(result.value, bool)
        or result.value < 0
    ):
        return _malformed(call, result.value, "non-negative int")
    return result


def _malformed(call: Callable[..., Any], value: Any, expected: str) -> LookupResult[Any]:
    logger.warning(
        "gateway_payload_malformed",
        call=getattr(call, "__name__", repr(call)),
        payload=repr(value),
        expected=expected,
    )
    return LookupResult.failure(f"malformed payload {value!r}, expected {expected}")
