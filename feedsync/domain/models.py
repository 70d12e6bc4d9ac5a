from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class FeedResponseError(ValueError):
    """Raised when a feed response body does not have the expected shape."""


class NetworkStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    FETCH_MORE = "fetchMore"
    ERROR = "error"


def is_request_in_flight(status: NetworkStatus) -> bool:
    return status in {NetworkStatus.LOADING, NetworkStatus.FETCH_MORE}


class ArchivedScope(str, Enum):
    EXCLUDE = "exclude"
    INCLUDE = "include"
    ONLY = "only"


class ItemStatus(str, Enum):
    SEEN = "seen"
    UNSEEN = "unseen"
    READ = "read"
    UNREAD = "unread"
    ARCHIVED = "archived"
    UNARCHIVED = "unarchived"

    @property
    def is_unset(self) -> bool:
        return self.value.startswith("un")


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def parse_utc_iso(value: object) -> datetime | None:
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


def _non_negative_int(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return max(value, 0)


@dataclass(frozen=True)
class ContentBlock:
    name: str
    type: str
    content: str
    rendered: str

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ContentBlock:
        return cls(
            name=str(raw.get("name", "")),
            type=str(raw.get("type", "text")),
            content=str(raw.get("content", "")),
            rendered=str(raw.get("rendered", "")),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "type": self.type,
            "content": self.content,
            "rendered": self.rendered,
        }


@dataclass(frozen=True)
class NotificationSource:
    key: str
    version_id: str

    @classmethod
    def from_dict(cls, raw: object) -> NotificationSource | None:
        if not isinstance(raw, dict):
            return None
        return cls(key=str(raw.get("key", "")), version_id=str(raw.get("version_id", "")))


@dataclass(frozen=True)
class FeedItem:
    id: str
    inserted_at: str
    cursor: str | None = None
    updated_at: str | None = None
    read_at: str | None = None
    seen_at: str | None = None
    archived_at: str | None = None
    activities: list[dict[str, Any]] = field(default_factory=list)
    actors: list[dict[str, Any]] = field(default_factory=list)
    blocks: list[ContentBlock] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    source: NotificationSource | None = None
    total_activities: int = 0
    total_actors: int = 0

    @classmethod
    def from_dict(cls, raw: object) -> FeedItem:
        if not isinstance(raw, dict):
            raise FeedResponseError(f"Feed entry must be an object. Received: {raw!r}")
        item_id = raw.get("id")
        if not isinstance(item_id, str) or not item_id:
            raise FeedResponseError(f"Feed entry is missing an id. Received: {raw!r}")
        raw_blocks = raw.get("blocks")
        raw_data = raw.get("data")
        return cls(
            id=item_id,
            inserted_at=str(raw.get("inserted_at") or ""),
            cursor=_optional_str(raw.get("__cursor")),
            updated_at=_optional_str(raw.get("updated_at")),
            read_at=_optional_str(raw.get("read_at")),
            seen_at=_optional_str(raw.get("seen_at")),
            archived_at=_optional_str(raw.get("archived_at")),
            activities=list(raw.get("activities") or []),
            actors=list(raw.get("actors") or []),
            blocks=[
                ContentBlock.from_dict(block)
                for block in (raw_blocks if isinstance(raw_blocks, list) else [])
                if isinstance(block, dict)
            ],
            data=dict(raw_data) if isinstance(raw_data, dict) else {},
            source=NotificationSource.from_dict(raw.get("source")),
            total_activities=_non_negative_int(raw.get("total_activities")),
            total_actors=_non_negative_int(raw.get("total_actors")),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "__cursor": self.cursor,
            "id": self.id,
            "inserted_at": self.inserted_at,
            "updated_at": self.updated_at,
            "read_at": self.read_at,
            "seen_at": self.seen_at,
            "archived_at": self.archived_at,
            "activities": list(self.activities),
            "actors": list(self.actors),
            "blocks": [block.to_dict() for block in self.blocks],
            "data": dict(self.data),
            "source": (
                {"key": self.source.key, "version_id": self.source.version_id}
                if self.source
                else None
            ),
            "total_activities": self.total_activities,
            "total_actors": self.total_actors,
        }


ITEM_FIELD_NAMES = frozenset(item_field.name for item_field in fields(FeedItem))


@dataclass(frozen=True)
class FeedMetadata:
    total_count: int = 0
    unread_count: int = 0
    unseen_count: int = 0

    def __post_init__(self) -> None:
        # Badge counts never go negative, whatever the caller computed.
        object.__setattr__(self, "total_count", max(self.total_count, 0))
        object.__setattr__(self, "unread_count", max(self.unread_count, 0))
        object.__setattr__(self, "unseen_count", max(self.unseen_count, 0))

    @classmethod
    def from_dict(cls, raw: object) -> FeedMetadata:
        if not isinstance(raw, dict):
            raise FeedResponseError(f"Feed metadata must be an object. Received: {raw!r}")
        return cls(
            total_count=_non_negative_int(raw.get("total_count")),
            unread_count=_non_negative_int(raw.get("unread_count")),
            unseen_count=_non_negative_int(raw.get("unseen_count")),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "total_count": self.total_count,
            "unread_count": self.unread_count,
            "unseen_count": self.unseen_count,
        }


@dataclass(frozen=True)
class PageInfo:
    before: str | None = None
    after: str | None = None
    page_size: int = 50

    @classmethod
    def from_dict(cls, raw: object) -> PageInfo:
        if not isinstance(raw, dict):
            raise FeedResponseError(f"Feed page_info must be an object. Received: {raw!r}")
        page_size = raw.get("page_size")
        return cls(
            before=_optional_str(raw.get("before")),
            after=_optional_str(raw.get("after")),
            page_size=page_size if isinstance(page_size, int) and page_size > 0 else 50,
        )

    def to_dict(self) -> dict[str, object]:
        return {"before": self.before, "after": self.after, "page_size": self.page_size}


@dataclass(frozen=True)
class FeedResponse:
    entries: list[FeedItem]
    meta: FeedMetadata
    page_info: PageInfo

    @classmethod
    def from_body(cls, body: object) -> FeedResponse:
        if not isinstance(body, dict):
            raise FeedResponseError(f"Feed response must be an object. Received: {body!r}")
        raw_entries = body.get("entries")
        if not isinstance(raw_entries, list):
            raise FeedResponseError("Feed response is missing 'entries'.")
        return cls(
            entries=[FeedItem.from_dict(entry) for entry in raw_entries],
            meta=FeedMetadata.from_dict(body.get("meta")),
            page_info=PageInfo.from_dict(body.get("page_info")),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "entries": [item.to_dict() for item in self.entries],
            "meta": self.meta.to_dict(),
            "page_info": self.page_info.to_dict(),
        }


@dataclass(frozen=True)
class FeedStoreState:
    items: tuple[FeedItem, ...] = ()
    metadata: FeedMetadata = field(default_factory=FeedMetadata)
    page_info: PageInfo = field(default_factory=PageInfo)
    network_status: NetworkStatus = NetworkStatus.IDLE

    @property
    def loading(self) -> bool:
        return is_request_in_flight(self.network_status)

    def find_item(self, item_id: str) -> FeedItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None


@dataclass(frozen=True)
class FeedClientOptions:
    """Per-feed defaults merged under every fetch."""

    page_size: int | None = None
    status: str | None = None
    source: str | None = None
    tenant: str | None = None
    archived: ArchivedScope = ArchivedScope.EXCLUDE

    def to_params(self) -> dict[str, object]:
        params: dict[str, object] = {
            "page_size": self.page_size,
            "status": self.status,
            "source": self.source,
            "tenant": self.tenant,
            "archived": self.archived.value,
        }
        return {key: value for key, value in params.items() if value is not None}


@dataclass(frozen=True)
class FetchFeedOptions:
    before: str | None = None
    after: str | None = None
    page_size: int | None = None
    status: str | None = None
    source: str | None = None
    tenant: str | None = None
    archived: ArchivedScope | None = None
    # Internal controls; never sent to the server.
    loading_type: NetworkStatus = NetworkStatus.LOADING
    fetch_source: str = "http"

    def to_params(self) -> dict[str, object]:
        params: dict[str, object] = {
            "before": self.before,
            "after": self.after,
            "page_size": self.page_size,
            "status": self.status,
            "source": self.source,
            "tenant": self.tenant,
            "archived": self.archived.value if self.archived else None,
        }
        return {key: value for key, value in params.items() if value is not None}
