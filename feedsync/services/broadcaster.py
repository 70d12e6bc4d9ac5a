from __future__ import annotations

import logging
from collections.abc import Callable

from feedsync.domain.feed_events import FeedEventType, ItemsReceived, to_event_type, topic_matches
from feedsync.logging_utils import log_event
from feedsync.observability import events

FeedEventCallback = Callable[[object], None]


class FeedBroadcaster:
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("feedsync.broadcaster")
        self._listeners: list[tuple[FeedEventType, FeedEventCallback]] = []

    def on(self, pattern: FeedEventType | str, callback: FeedEventCallback) -> None:
        self._listeners.append((to_event_type(pattern), callback))

    def off(self, pattern: FeedEventType | str, callback: FeedEventCallback) -> None:
        key = (to_event_type(pattern), callback)
        if key in self._listeners:
            self._listeners.remove(key)

    def remove_all_listeners(self) -> None:
        self._listeners.clear()

    def listener_count(self, topic: FeedEventType | str | None = None) -> int:
        if topic is None:
            return len(self._listeners)
        event_type = to_event_type(topic)
        return sum(1 for pattern, _ in self._listeners if topic_matches(pattern, event_type))

    def emit(self, topic: FeedEventType | str, payload: object) -> int:
        event_type = to_event_type(topic)
        delivered = 0
        for pattern, callback in list(self._listeners):
            if not topic_matches(pattern, event_type):
                continue
            try:
                callback(payload)
            except Exception as exc:
                self.logger.error(
                    log_event(
                        events.BROADCAST_LISTENER_FAILED,
                        topic=event_type.value,
                        pattern=pattern.value,
                        error=str(exc),
                    ),
                    exc_info=True,
                )
            delivered += 1
        return delivered

    def publish(self, event: ItemsReceived) -> None:
        for topic, payload in event.projections():
            self.emit(topic, payload)
