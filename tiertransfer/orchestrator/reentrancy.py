"""
ReentrancyGuard — in-progress маркеры по аккаунтам и trace_id

Маркеры ставятся до первого stage и снимаются только после завершения
(успешного или прерванного) всей state machine. Повторный вход, затрагивающий
занятый ключ, отклоняется, а не ожидает: settlement может вызвать оркестратор
из того же потока, и ожидание привело бы к deadlock.
"""

import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, Set

from tiertransfer.core.errors import ReentrantCall


class ReentrancyGuard:
    def __init__(self):
        self._lock = threading.Lock()
        self._in_progress: Set[str] = set()

    def try_acquire(self, keys: Iterable[str]) -> bool:
        """Атомарно занять все ключи. Returns: False если хотя бы один занят."""
        wanted = set(keys)
        with self._lock:
            if self._in_progress & wanted:
                return False
            self._in_progress |= wanted
            return True

    def release(self, keys: Iterable[str]) -> None:
        with self._lock:
            self._in_progress -= set(keys)

    def is_busy(self, key: str) -> bool:
        with self._lock:
            return key in self._in_progress

    @contextmanager
    def hold(self, keys: Iterable[str]) -> Iterator[None]:
        """
        Raises:
            ReentrantCall: ключ уже занят текущей операцией
        """
        wanted = frozenset(keys)
        if not self.try_acquire(wanted):
            raise ReentrantCall(f"operation already in progress for {sorted(wanted)}")
        try:
            yield
        finally:
            self.release(wanted)
