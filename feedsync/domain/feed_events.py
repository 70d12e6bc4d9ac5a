from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from feedsync.domain.models import FeedItem, FeedMetadata, FeedResponse


class FeedEventType(str, Enum):
    MESSAGES_NEW = "messages.new"
    ITEMS_RECEIVED_PAGE = "items.received.page"
    ITEMS_RECEIVED_REALTIME = "items.received.realtime"
    ITEMS_RECEIVED_ANY = "items.received.*"


class ReceiveSource(str, Enum):
    PAGE = "page"
    REALTIME = "realtime"


_RECEIVED_TOPICS = {
    ReceiveSource.PAGE: FeedEventType.ITEMS_RECEIVED_PAGE,
    ReceiveSource.REALTIME: FeedEventType.ITEMS_RECEIVED_REALTIME,
}

# Wildcard patterns and the concrete topics they cover.
_PATTERN_TOPICS: dict[FeedEventType, frozenset[FeedEventType]] = {
    FeedEventType.ITEMS_RECEIVED_ANY: frozenset(_RECEIVED_TOPICS.values()),
}


def topic_matches(pattern: FeedEventType, topic: FeedEventType) -> bool:
    if pattern == topic:
        return True
    return topic in _PATTERN_TOPICS.get(pattern, frozenset())


def to_event_type(value: FeedEventType | str) -> FeedEventType:
    if isinstance(value, FeedEventType):
        return value
    try:
        return FeedEventType(value)
    except ValueError:
        allowed = ", ".join(event_type.value for event_type in FeedEventType)
        raise ValueError(f"Unknown feed event {value!r}. Expected one of: {allowed}") from None


@dataclass(frozen=True)
class ItemsReceivedPayload:
    items: list[FeedItem]
    metadata: FeedMetadata
    event: FeedEventType


@dataclass(frozen=True)
class ItemsReceived:
    """A completed fetch, before it is projected onto subscriber topics."""

    response: FeedResponse
    source: ReceiveSource

    @property
    def event_type(self) -> FeedEventType:
        return _RECEIVED_TOPICS[self.source]

    def projections(self) -> list[tuple[FeedEventType, object]]:
        return [
            # Legacy topic carries the raw response.
            (FeedEventType.MESSAGES_NEW, self.response),
            (
                self.event_type,
                ItemsReceivedPayload(
                    items=list(self.response.entries),
                    metadata=self.response.meta,
                    event=self.event_type,
                ),
            ),
        ]
