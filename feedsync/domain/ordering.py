from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

from feedsync.domain.models import FeedItem, parse_utc_iso

_OLDEST = datetime.min.replace(tzinfo=UTC)


def _recency_key(item: FeedItem) -> datetime:
    return parse_utc_iso(item.inserted_at) or _OLDEST


def sort_items(items: Iterable[FeedItem]) -> list[FeedItem]:
    """Order items newest first by ``inserted_at``.

    The sort is stable, so items sharing a timestamp keep their input order.
    Items whose timestamp cannot be parsed sink to the end.
    """
    return sorted(items, key=_recency_key, reverse=True)


def dedupe_items(items: Iterable[FeedItem]) -> list[FeedItem]:
    """Keep one item per id; the last occurrence wins.

    The surviving item takes the slot of the id's first occurrence.
    """
    by_id: dict[str, FeedItem] = {}
    for item in items:
        by_id[item.id] = item
    return list(by_id.values())
