"""
TransferService — внешний исполнитель settlement

execute() возвращает True только при успешном переводе. False и исключение
одинаково трактуются оркестратором как SETTLEMENT_FAILURE.

Реализация внешняя и недоверенная: может повторно вызвать оркестратор
до завершения текущей операции (см. reentrancy guard).
"""

from typing import Callable, Optional, Protocol, runtime_checkable

from tiertransfer.gateway.state_gateway import InMemoryAccountStateGateway


@runtime_checkable
class TransferService(Protocol):
    def execute(
        self, source_id: str, destination_id: str, amount: int, aux1: int, aux2: int
    ) -> bool: ...


class InMemoryTransferService:
    """
    Перевод балансов внутри InMemoryAccountStateGateway.

    Списание и зачисление: если зачисление не удалось, списание откатывается.

    Args:
        gateway: хранилище балансов
        on_execute: callback перед переводом (тесты: эмуляция reentrancy)
    """

    def __init__(
        self,
        gateway: InMemoryAccountStateGateway,
        on_execute: Optional[Callable[[str, str, int], None]] = None,
    ):
        self.gateway = gateway
        self.on_execute = on_execute
        self.executed: list[tuple[str, str, int, int, int]] = []

    def execute(
        self, source_id: str, destination_id: str, amount: int, aux1: int, aux2: int
    ) -> bool:
        if self.on_execute is not None:
            self.on_execute(source_id, destination_id, amount)

        src = self.gateway.get_balance(source_id)
        dst = self.gateway.get_balance(destination_id)
        if not src.ok or not dst.ok or src.value < amount:
            return False

        src_key = self.gateway.balance_key(source_id)
        dst_key = self.gateway.balance_key(destination_id)

        if not self.gateway.set(src_key, src.value - amount).ok:
            return False
        if source_id.lower() == destination_id.lower():
            # Перевод самому себе: баланс не меняется
            self.gateway.set(src_key, src.value)
        elif not self.gateway.set(dst_key, dst.value + amount).ok:
            self.gateway.set(src_key, src.value)
            return False

        self.executed.append((source_id, destination_id, amount, aux1, aux2))
        return True
