from __future__ import annotations

import pytest

from feedsync.domain.models import (
    ArchivedScope,
    FeedClientOptions,
    FeedItem,
    FeedMetadata,
    FeedResponse,
    FeedResponseError,
    FetchFeedOptions,
    ItemStatus,
    NetworkStatus,
    PageInfo,
    is_request_in_flight,
    parse_utc_iso,
)
from tests.feed_test_harness import feed_body, item_dict


def test_feed_response_from_body_parses_entries_meta_and_page_info() -> None:
    body = feed_body(
        [item_dict("a", "2024-01-02T00:00:00Z", read_at="2024-01-02T01:00:00Z")],
        total_count=7,
        after="tok1",
    )

    response = FeedResponse.from_body(body)

    assert [item.id for item in response.entries] == ["a"]
    assert response.entries[0].cursor == "cursor-a"
    assert response.entries[0].blocks[0].name == "body"
    assert response.meta == FeedMetadata(total_count=7, unread_count=0, unseen_count=1)
    assert response.page_info == PageInfo(before=None, after="tok1", page_size=50)


@pytest.mark.parametrize(
    "body",
    [
        None,
        "not-json",
        {"meta": {}, "page_info": {}},
        {"entries": "nope", "meta": {}, "page_info": {}},
        {"entries": [{"inserted_at": "2024-01-01T00:00:00Z"}], "meta": {}, "page_info": {}},
        {"entries": [], "meta": None, "page_info": {}},
    ],
)
def test_feed_response_from_body_rejects_malformed_bodies(body: object) -> None:
    with pytest.raises(FeedResponseError):
        FeedResponse.from_body(body)


def test_feed_item_to_dict_uses_wire_cursor_key() -> None:
    item = FeedItem.from_dict(item_dict("a", "2024-01-01T00:00:00Z"))

    payload = item.to_dict()

    assert payload["__cursor"] == "cursor-a"
    assert payload["id"] == "a"
    assert payload["source"] is None


def test_feed_metadata_clamps_negative_counts() -> None:
    metadata = FeedMetadata(total_count=-1, unread_count=-5, unseen_count=2)

    assert metadata.to_dict() == {"total_count": 0, "unread_count": 0, "unseen_count": 2}


def test_feed_metadata_from_dict_ignores_non_integer_counts() -> None:
    metadata = FeedMetadata.from_dict({"total_count": "3", "unread_count": True, "unseen_count": 4})

    assert metadata == FeedMetadata(total_count=0, unread_count=0, unseen_count=4)


def test_network_status_in_flight_states() -> None:
    assert is_request_in_flight(NetworkStatus.LOADING)
    assert is_request_in_flight(NetworkStatus.FETCH_MORE)
    assert not is_request_in_flight(NetworkStatus.IDLE)
    assert not is_request_in_flight(NetworkStatus.ERROR)


def test_item_status_unset_actions() -> None:
    assert {status for status in ItemStatus if status.is_unset} == {
        ItemStatus.UNSEEN,
        ItemStatus.UNREAD,
        ItemStatus.UNARCHIVED,
    }


def test_client_options_to_params_drops_none_values() -> None:
    options = FeedClientOptions(page_size=10, tenant="acme", archived=ArchivedScope.INCLUDE)

    assert options.to_params() == {"page_size": 10, "tenant": "acme", "archived": "include"}


def test_fetch_options_to_params_excludes_internal_controls() -> None:
    options = FetchFeedOptions(
        after="tok",
        loading_type=NetworkStatus.FETCH_MORE,
        fetch_source="socket",
    )

    assert options.to_params() == {"after": "tok"}


def test_parse_utc_iso_accepts_zulu_and_naive_values() -> None:
    assert parse_utc_iso("2024-01-01T00:00:00Z") == parse_utc_iso("2024-01-01T00:00:00")
    assert parse_utc_iso("") is None
    assert parse_utc_iso(None) is None
    assert parse_utc_iso("yesterday") is None
