from __future__ import annotations

import pytest

from feedsync.domain.feed_events import (
    FeedEventType,
    ItemsReceived,
    ItemsReceivedPayload,
    ReceiveSource,
    to_event_type,
    topic_matches,
)
from feedsync.domain.models import FeedResponse
from feedsync.observability import events
from feedsync.services.broadcaster import FeedBroadcaster
from tests.feed_test_harness import capture_logger, feed_body, item_dict


def _response() -> FeedResponse:
    return FeedResponse.from_body(feed_body([item_dict("a", "2024-01-02T00:00:00Z")]))


@pytest.mark.parametrize(
    ("pattern", "topic", "expected"),
    [
        (FeedEventType.MESSAGES_NEW, FeedEventType.MESSAGES_NEW, True),
        (FeedEventType.ITEMS_RECEIVED_PAGE, FeedEventType.ITEMS_RECEIVED_PAGE, True),
        (FeedEventType.ITEMS_RECEIVED_PAGE, FeedEventType.ITEMS_RECEIVED_REALTIME, False),
        (FeedEventType.ITEMS_RECEIVED_ANY, FeedEventType.ITEMS_RECEIVED_PAGE, True),
        (FeedEventType.ITEMS_RECEIVED_ANY, FeedEventType.ITEMS_RECEIVED_REALTIME, True),
        (FeedEventType.ITEMS_RECEIVED_ANY, FeedEventType.MESSAGES_NEW, False),
        (FeedEventType.MESSAGES_NEW, FeedEventType.ITEMS_RECEIVED_PAGE, False),
    ],
)
def test_topic_matches_table(
    pattern: FeedEventType,
    topic: FeedEventType,
    expected: bool,
) -> None:
    assert topic_matches(pattern, topic) is expected


def test_to_event_type_accepts_string_values_and_rejects_unknown() -> None:
    assert to_event_type("items.received.*") is FeedEventType.ITEMS_RECEIVED_ANY
    with pytest.raises(ValueError, match="Unknown feed event"):
        to_event_type("items.*")


def test_items_received_projects_legacy_and_typed_events() -> None:
    response = _response()

    projections = ItemsReceived(response=response, source=ReceiveSource.REALTIME).projections()

    assert projections[0] == (FeedEventType.MESSAGES_NEW, response)
    topic, payload = projections[1]
    assert topic is FeedEventType.ITEMS_RECEIVED_REALTIME
    assert isinstance(payload, ItemsReceivedPayload)
    assert [item.id for item in payload.items] == ["a"]
    assert payload.metadata == response.meta
    assert payload.event is FeedEventType.ITEMS_RECEIVED_REALTIME


def test_publish_delivers_to_concrete_and_wildcard_listeners_in_order() -> None:
    broadcaster = FeedBroadcaster()
    received: list[tuple[str, object]] = []
    broadcaster.on("messages.new", lambda payload: received.append(("legacy", payload)))
    broadcaster.on(
        FeedEventType.ITEMS_RECEIVED_ANY,
        lambda payload: received.append(("any", payload)),
    )
    broadcaster.on(
        FeedEventType.ITEMS_RECEIVED_REALTIME,
        lambda payload: received.append(("realtime", payload)),
    )
    response = _response()

    broadcaster.publish(ItemsReceived(response=response, source=ReceiveSource.PAGE))

    assert [name for name, _ in received] == ["legacy", "any"]
    assert received[0][1] is response
    assert isinstance(received[1][1], ItemsReceivedPayload)


def test_emit_continues_after_listener_failure() -> None:
    logger, handler = capture_logger("test.broadcaster.failure")
    broadcaster = FeedBroadcaster(logger=logger)
    calls: list[object] = []

    def broken(payload: object) -> None:
        raise RuntimeError("listener exploded")

    broadcaster.on(FeedEventType.MESSAGES_NEW, broken)
    broadcaster.on(FeedEventType.MESSAGES_NEW, calls.append)

    delivered = broadcaster.emit(FeedEventType.MESSAGES_NEW, "payload")

    assert delivered == 2
    assert calls == ["payload"]
    assert handler.events() == [events.BROADCAST_LISTENER_FAILED]


def test_off_and_remove_all_listeners() -> None:
    broadcaster = FeedBroadcaster()
    calls: list[object] = []
    broadcaster.on(FeedEventType.ITEMS_RECEIVED_PAGE, calls.append)
    broadcaster.on(FeedEventType.ITEMS_RECEIVED_ANY, calls.append)
    assert broadcaster.listener_count(FeedEventType.ITEMS_RECEIVED_PAGE) == 2

    broadcaster.off("items.received.page", calls.append)
    broadcaster.emit(FeedEventType.ITEMS_RECEIVED_PAGE, 1)
    broadcaster.remove_all_listeners()
    broadcaster.emit(FeedEventType.ITEMS_RECEIVED_PAGE, 2)

    assert calls == [1]
    assert broadcaster.listener_count() == 0


def test_on_rejects_unknown_topic() -> None:
    with pytest.raises(ValueError):
        FeedBroadcaster().on("items.received.unknown", lambda payload: None)
