"""
Шина доменных событий внутри процесса.

Публикация происходит после commit, ошибки подписчиков только логируются:
уведомление не может откатить или заблокировать смену статуса.
"""
import logging
from collections import defaultdict
from typing import Callable

from schemas.events import DomainEvent

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], None]

ALL_EVENTS = "*"


class EventBus:

    def __init__(self):
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: Handler) -> None:
        self._subscribers[event_type].append(handler)

    def publish(self, event: DomainEvent) -> None:
        handlers = self._subscribers.get(event.event_type, []) + self._subscribers.get(ALL_EVENTS, [])
        logger.info(f"📣 Событие {event.event_type} для брони {event.booking_id} ({len(handlers)} подписчиков)")
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"❌ Ошибка подписчика {getattr(handler, '__name__', handler)} на {event.event_type}: {e}")

    def publish_all(self, events: list[DomainEvent]) -> None:
        for event in events:
            self.publish(event)
