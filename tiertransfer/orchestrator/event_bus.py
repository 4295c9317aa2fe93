"""EventBus — синхронная доставка domain events подписчикам."""

from typing import Callable, List

import structlog

from tiertransfer.core.domain.events import DomainEvent

logger = structlog.get_logger(__name__)

EventHandler = Callable[[DomainEvent], None]


class EventBus:
    """
    Подписчики вызываются в порядке подписки.

    Событие публикуется после фиксации изменения: исключение подписчика
    логируется и не откатывает состояние, остальные подписчики вызываются.
    """

    def __init__(self):
        self._handlers: List[EventHandler] = []
        self.failed_deliveries = 0

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        """Returns: функция отписки."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def publish(self, event: DomainEvent) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                self.failed_deliveries += 1
                logger.exception(
                    "event_handler_failed",
                    event_type=getattr(event, "event_type", type(event).__name__),
                    event_id=event.event_id,
                    trace_id=event.trace_id,
                )
