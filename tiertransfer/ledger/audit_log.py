"""
TransferAuditLog — append-only журнал TransferRecord

Записи не изменяются и не удаляются, кроме явного admin purge.
trace_id уникален: повторная фиксация того же trace_id отклоняется.
"""

from typing import Dict, Iterator, List, Optional

from tiertransfer.core.domain.transfer import TransferRecord
from tiertransfer.core.errors import InvalidArgument


class TransferAuditLog:
    def __init__(self):
        self._records: List[TransferRecord] = []
        self._by_trace_id: Dict[int, TransferRecord] = {}

    def append(self, record: TransferRecord) -> None:
        """
        Raises:
            InvalidArgument: trace_id уже зафиксирован
        """
        if record.trace_id in self._by_trace_id:
            raise InvalidArgument(f"trace_id {record.trace_id} already committed")
        self._records.append(record)
        self._by_trace_id[record.trace_id] = record

    def contains(self, trace_id: int) -> bool:
        return trace_id in self._by_trace_id

    def get(self, trace_id: int) -> Optional[TransferRecord]:
        return self._by_trace_id.get(trace_id)

    def records_for(self, account_id: str) -> List[TransferRecord]:
        key = account_id.lower()
        return [
            r
            for r in self._records
            if key in (r.sender_id.lower(), r.source_id.lower(), r.destination_id.lower())
        ]

    def purge(self, before_ts_ms: Optional[int] = None) -> int:
        """
        Admin: удаление записей.

        Args:
            before_ts_ms: удалить записи с committed_ts_utc_ms < before_ts_ms
                          (None — удалить всё)

        Returns:
            количество удалённых записей
        """
        if before_ts_ms is None:
            kept: List[TransferRecord] = []
        else:
            kept = [r for r in self._records if r.committed_ts_utc_ms >= before_ts_ms]
        removed = len(self._records) - len(kept)
        self._records = kept
        self._by_trace_id = {r.trace_id: r for r in kept}
        return removed

    def discard(self, record: TransferRecord) -> bool:
        """
        Откат одной записи (используется транзакцией фиксации).

        Удаляется только этот экземпляр: запись другой операции с тем же
        trace_id не затрагивается.

        Returns:
            True если запись была удалена
        """
        if self._by_trace_id.get(record.trace_id) is not record:
            return False
        del self._by_trace_id[record.trace_id]
        self._records = [r for r in self._records if r is not record]
        return True

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[TransferRecord]:
        return iter(list(self._records))
