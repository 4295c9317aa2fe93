"""
PurchaseLedger — монотонные счётчики покупок по аккаунтам

ИНВАРИАНТЫ:
1. Отсутствующая запись == 0 (ленивое создание)
2. increment вызывается только после успешного settlement, ровно один раз
3. Неявного уменьшения нет: только admin reset / bulk_set
4. bulk_set: все элементы проверяются до первой мутации
5. transaction(account_id): all-or-nothing для одного аккаунта, при исключении
   восстанавливаются только его записи
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Sequence

from tiertransfer.core.domain.units import validate_account_id, validate_purchase_count
from tiertransfer.core.errors import ArrayLengthMismatch, BulkLimitExceeded, InvalidArgument
from tiertransfer.core.math.discount import MAX_BULK_SIZE_DEFAULT


@dataclass(frozen=True)
class CountChange:
    """Изменение счётчика (для событий PurchaseCountChanged)."""

    account_id: str
    previous_count: int
    new_count: int


class PurchaseLedger:
    """Счётчики покупок с агрегатами потраченной суммы и времени последней покупки."""

    def __init__(self, max_bulk_size: int = MAX_BULK_SIZE_DEFAULT):
        self.max_bulk_size = max_bulk_size
        self._counts: Dict[str, int] = {}
        self._total_spent: Dict[str, int] = {}
        self._last_purchase_ts_ms: Dict[str, int] = {}

    # -------------------------------------------------------------------------
    # Чтение
    # -------------------------------------------------------------------------

    def get(self, account_id: str) -> int:
        return self._counts.get(validate_account_id(account_id), 0)

    def total_spent(self, account_id: str) -> int:
        return self._total_spent.get(validate_account_id(account_id), 0)

    def last_purchase_ts(self, account_id: str) -> Optional[int]:
        return self._last_purchase_ts_ms.get(validate_account_id(account_id))

    def snapshot(self) -> Dict[str, int]:
        return dict(self._counts)

    # -------------------------------------------------------------------------
    # Мутации
    # -------------------------------------------------------------------------

    def increment(
        self, account_id: str, amount_spent: int = 0, ts_ms: Optional[int] = None
    ) -> CountChange:
        """
        +1 к счётчику после успешной покупки.

        Args:
            account_id: покупатель
            amount_spent: фактически списанная сумма (после скидки)
            ts_ms: время покупки
        """
        key = validate_account_id(account_id)
        if amount_spent < 0:
            raise InvalidArgument(f"amount_spent must be >= 0, got {amount_spent}")

        previous = self._counts.get(key, 0)
        self._counts[key] = previous + 1
        self._total_spent[key] = self._total_spent.get(key, 0) + amount_spent
        if ts_ms is not None:
            self._last_purchase_ts_ms[key] = ts_ms
        return CountChange(account_id=key, previous_count=previous, new_count=previous + 1)

    def reset(self, account_id: str) -> CountChange:
        """Admin: обнуление счётчика (агрегаты сохраняются)."""
        key = validate_account_id(account_id)
        previous = self._counts.pop(key, 0)
        return CountChange(account_id=key, previous_count=previous, new_count=0)

    def bulk_set(
        self, account_ids: Sequence[str], counts: Sequence[int]
    ) -> list[CountChange]:
        """
        Admin: установка счётчиков пачкой, в порядке передачи.

        Raises:
            ArrayLengthMismatch: длины массивов различаются
            BulkLimitExceeded: размер > max_bulk_size
            InvalidArgument: некорректный id или count (до любых изменений)
        """
        if len(account_ids) != len(counts):
            raise ArrayLengthMismatch(
                f"account_ids ({len(account_ids)}) and counts ({len(counts)}) differ"
            )
        if len(account_ids) > self.max_bulk_size:
            raise BulkLimitExceeded(
                f"bulk size {len(account_ids)} exceeds limit {self.max_bulk_size}"
            )

        validated = [
            (validate_account_id(a), validate_purchase_count(c))
            for a, c in zip(account_ids, counts)
        ]

        changes = []
        for key, count in validated:
            previous = self._counts.get(key, 0)
            self._counts[key] = count
            changes.append(CountChange(account_id=key, previous_count=previous, new_count=count))
        return changes

    @contextmanager
    def transaction(self, account_id: str) -> Iterator["PurchaseLedger"]:
        """
        All-or-nothing блок для одного аккаунта: при исключении счётчик и
        агрегаты account_id восстанавливаются. Записи других аккаунтов не
        затрагиваются (параллельные операции над ними сохраняются).
        """
        key = validate_account_id(account_id)
        saved = [
            (store, store.get(key))
            for store in (self._counts, self._total_spent, self._last_purchase_ts_ms)
        ]
        try:
            yield self
        except BaseException:
            for store, value in saved:
                if value is None:
                    store.pop(key, None)
                else:
                    store[key] = value
            raise
