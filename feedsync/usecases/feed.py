from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from typing import Literal, Union

from feedsync.domain.feed_events import FeedEventType, ItemsReceived, ReceiveSource
from feedsync.domain.models import (
    ArchivedScope,
    FeedClientOptions,
    FeedItem,
    FeedMetadata,
    FeedResponse,
    FeedResponseError,
    FeedStoreState,
    FetchFeedOptions,
    ItemStatus,
    NetworkStatus,
    is_request_in_flight,
    utc_now_iso,
)
from feedsync.logging_utils import log_event, redact_sensitive_text
from feedsync.observability import events
from feedsync.repositories.feed_store import FeedStore
from feedsync.services.api_client import ApiResponse, ApiTransport
from feedsync.services.broadcaster import FeedBroadcaster, FeedEventCallback
from feedsync.services.push_channel import (
    NEW_MESSAGE_EVENT,
    REJOINABLE_STATES,
    PushSocket,
    feed_channel_topic,
)
from feedsync.usecases.reconciliation import FireAndForgetPolicy, ReconciliationPolicy

FeedItemOrItems = Union[FeedItem, Sequence[FeedItem]]

FETCH_SOURCE_SOCKET = "socket"

_STATUS_ATTRIBUTES: dict[ItemStatus, str] = {
    ItemStatus.SEEN: "seen_at",
    ItemStatus.UNSEEN: "seen_at",
    ItemStatus.READ: "read_at",
    ItemStatus.UNREAD: "read_at",
    ItemStatus.ARCHIVED: "archived_at",
    ItemStatus.UNARCHIVED: "archived_at",
}

_BADGE_COUNTERS: dict[ItemStatus, str] = {
    ItemStatus.SEEN: "unseen_count",
    ItemStatus.UNSEEN: "unseen_count",
    ItemStatus.READ: "unread_count",
    ItemStatus.UNREAD: "unread_count",
}


@dataclass(frozen=True)
class FetchResult:
    status: Literal["ok", "error"]
    data: object

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def _normalize_items(item_or_items: FeedItemOrItems) -> list[FeedItem]:
    if isinstance(item_or_items, FeedItem):
        return [item_or_items]
    unique: dict[str, FeedItem] = {}
    for item in item_or_items:
        unique.setdefault(item.id, item)
    return list(unique.values())


class Feed:
    """Keeps one user's feed in sync with the server.

    Fetch results and real-time pushes are merged into ``store``; status
    mutations are applied to the store first and confirmed remotely after.
    At most one fetch is in flight at any time.
    """

    def __init__(
        self,
        *,
        api_client: ApiTransport,
        socket: PushSocket,
        feed_id: str,
        user_id: str,
        options: FeedClientOptions | None = None,
        reconciliation_policy: ReconciliationPolicy | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self.api_client = api_client
        self.socket = socket
        self.feed_id = feed_id
        self.user_id = user_id
        self.default_options = options or FeedClientOptions()
        self.logger = logger or logging.getLogger("feedsync.feed")
        self.reconciliation_policy = reconciliation_policy or FireAndForgetPolicy(
            logger=self.logger.getChild("reconciliation")
        )
        self._clock = clock

        self.store = FeedStore(logger=self.logger.getChild("store"))
        self.broadcaster = FeedBroadcaster(logger=self.logger.getChild("broadcaster"))
        self.channel = socket.channel(
            feed_channel_topic(feed_id, user_id),
            self.default_options.to_params(),
        )
        self.channel.on(NEW_MESSAGE_EVENT, self.on_new_message_received)

    @property
    def feed_url(self) -> str:
        return f"/v1/users/{self.user_id}/feeds/{self.feed_id}"

    def get_state(self) -> FeedStoreState:
        return self.store.get_state()

    def on(self, event: FeedEventType | str, callback: FeedEventCallback) -> None:
        self.broadcaster.on(event, callback)

    def off(self, event: FeedEventType | str, callback: FeedEventCallback) -> None:
        self.broadcaster.off(event, callback)

    def listen_for_updates(self) -> None:
        if not self.socket.is_connected():
            self.socket.connect()
        if self.channel.state in REJOINABLE_STATES:
            self.channel.join()

    def teardown(self) -> None:
        """Leaves the channel and drops listeners. In-flight requests keep running."""
        self.channel.leave()
        self.channel.off(NEW_MESSAGE_EVENT)
        self.broadcaster.remove_all_listeners()
        self.store.destroy()
        self.logger.info(log_event(events.FEED_TEARDOWN, feed_id=self.feed_id))

    async def fetch(
        self,
        options: FetchFeedOptions | None = None,
        **overrides: object,
    ) -> FetchResult | None:
        options = replace(options or FetchFeedOptions(), **overrides)

        if is_request_in_flight(self.store.state.network_status):
            self.logger.debug(
                log_event(
                    events.FEED_FETCH_SKIPPED,
                    feed_id=self.feed_id,
                    network_status=self.store.state.network_status.value,
                )
            )
            return None

        self.store.set_network_status(options.loading_type)
        params = {**self.default_options.to_params(), **options.to_params()}
        self.logger.info(
            log_event(
                events.FEED_FETCH_START,
                feed_id=self.feed_id,
                fetch_source=options.fetch_source,
                params=params,
            )
        )

        try:
            result = await asyncio.to_thread(
                self.api_client.request, "GET", self.feed_url, params=params
            )
        except BaseException as exc:
            # Cancellation or a transport fault must not leave the in-flight guard set.
            self._abort_fetch(exc)
            raise

        if not result.ok or not result.body:
            return self._fail_fetch(result.error or result.body, http_status=result.status)
        try:
            response = FeedResponse.from_body(result.body)
        except FeedResponseError as exc:
            return self._fail_fetch(exc, http_status=result.status)

        if options.before:
            # Newer items arrived above the head; the page frontier stays put.
            self.store.set_result(response, should_append=True, should_set_page=False)
        elif options.after:
            self.store.set_result(response, should_append=True, should_set_page=True)
        else:
            self.store.set_result(response)

        source = (
            ReceiveSource.REALTIME
            if options.fetch_source == FETCH_SOURCE_SOCKET
            else ReceiveSource.PAGE
        )
        self.logger.info(
            log_event(
                events.FEED_FETCH_COMPLETE,
                feed_id=self.feed_id,
                source=source.value,
                received=len(response.entries),
                item_count=len(self.store.state.items),
            )
        )
        self.broadcaster.publish(ItemsReceived(response=response, source=source))
        return FetchResult(status="ok", data=response)

    async def fetch_next_page(self) -> FetchResult | None:
        page_info = self.store.state.page_info
        if not page_info.after:
            return None
        return await self.fetch(
            FetchFeedOptions(after=page_info.after, loading_type=NetworkStatus.FETCH_MORE)
        )

    async def on_new_message_received(self, payload: dict[str, object]) -> FetchResult | None:
        items = self.store.state.items
        head_cursor = items[0].cursor if items else None

        try:
            metadata = FeedMetadata.from_dict(payload.get("metadata"))
        except FeedResponseError as exc:
            self.logger.warning(
                log_event(events.FEED_REALTIME_RECEIVED, feed_id=self.feed_id, error=str(exc))
            )
        else:
            self.logger.info(
                log_event(
                    events.FEED_REALTIME_RECEIVED,
                    feed_id=self.feed_id,
                    head_cursor=head_cursor,
                    **metadata.to_dict(),
                )
            )
            self.store.set_metadata(metadata)

        return await self.fetch(
            FetchFeedOptions(before=head_cursor, fetch_source=FETCH_SOURCE_SOCKET)
        )

    async def mark_as_seen(self, item_or_items: FeedItemOrItems) -> ApiResponse | None:
        return await self._update_status(item_or_items, ItemStatus.SEEN)

    async def mark_as_unseen(self, item_or_items: FeedItemOrItems) -> ApiResponse | None:
        return await self._update_status(item_or_items, ItemStatus.UNSEEN)

    async def mark_as_read(self, item_or_items: FeedItemOrItems) -> ApiResponse | None:
        return await self._update_status(item_or_items, ItemStatus.READ)

    async def mark_as_unread(self, item_or_items: FeedItemOrItems) -> ApiResponse | None:
        return await self._update_status(item_or_items, ItemStatus.UNREAD)

    async def mark_as_archived(self, item_or_items: FeedItemOrItems) -> ApiResponse | None:
        return await self._update_status(item_or_items, ItemStatus.ARCHIVED)

    async def mark_as_unarchived(self, item_or_items: FeedItemOrItems) -> ApiResponse | None:
        return await self._update_status(item_or_items, ItemStatus.UNARCHIVED)

    async def _update_status(
        self,
        item_or_items: FeedItemOrItems,
        status: ItemStatus,
    ) -> ApiResponse | None:
        # Duplicate ids count once, for both the request shape and the badge delta.
        items = _normalize_items(item_or_items)
        if not items:
            return None
        item_ids = [item.id for item in items]

        snapshot = self.store.state
        if status == ItemStatus.ARCHIVED and self.default_options.archived == ArchivedScope.EXCLUDE:
            self._optimistically_remove_archived(items)
        else:
            self._optimistically_set_status(item_ids, status)
        self.logger.debug(
            log_event(
                events.STATUS_UPDATE_OPTIMISTIC,
                status=status.value,
                item_ids=item_ids,
                **self.store.state.metadata.to_dict(),
            )
        )

        response = await self._make_status_update(item_ids, status)
        self.reconciliation_policy.reconcile(
            store=self.store,
            snapshot=snapshot,
            status=status,
            item_ids=item_ids,
            response=response,
        )
        return response

    def _optimistically_set_status(self, item_ids: list[str], status: ItemStatus) -> None:
        counter = _BADGE_COUNTERS.get(status)
        if counter is not None:
            metadata = self.store.state.metadata
            direction = len(item_ids) if status.is_unset else -len(item_ids)
            self.store.set_metadata(
                replace(metadata, **{counter: getattr(metadata, counter) + direction})
            )

        timestamp = None if status.is_unset else self._clock()
        self.store.set_item_attrs(item_ids, {_STATUS_ATTRIBUTES[status]: timestamp})

    def _optimistically_remove_archived(self, items: list[FeedItem]) -> None:
        # An archived item never shows in, or counts towards, a feed that excludes them.
        state = self.store.state
        current = [state.find_item(item.id) or item for item in items]
        unseen = sum(1 for item in current if not item.seen_at)
        unread = sum(1 for item in current if not item.read_at)
        metadata = state.metadata
        self.store.remove_items(
            [item.id for item in items],
            metadata=FeedMetadata(
                total_count=metadata.total_count - len(items),
                unseen_count=metadata.unseen_count - unseen,
                unread_count=metadata.unread_count - unread,
            ),
        )

    async def _make_status_update(self, item_ids: list[str], status: ItemStatus) -> ApiResponse:
        if len(item_ids) > 1:
            return await asyncio.to_thread(
                self.api_client.request,
                "POST",
                f"/v1/messages/batch/{status.value}",
                data={"message_ids": item_ids},
            )
        return await asyncio.to_thread(
            self.api_client.request,
            "DELETE" if status.is_unset else "PUT",
            f"/v1/messages/{item_ids[0]}/{status.value}",
        )

    def _fail_fetch(self, error: object, *, http_status: int | None) -> FetchResult:
        self.store.set_network_status(NetworkStatus.ERROR)
        self.logger.error(
            log_event(
                events.FEED_FETCH_FAILED,
                feed_id=self.feed_id,
                http_status=http_status,
                error=redact_sensitive_text(error),
            )
        )
        return FetchResult(status="error", data=error)

    def _abort_fetch(self, exc: BaseException) -> None:
        self.store.set_network_status(NetworkStatus.ERROR)
        self.logger.warning(
            log_event(
                events.FEED_FETCH_ABORTED,
                feed_id=self.feed_id,
                error_type=type(exc).__name__,
                error=redact_sensitive_text(exc),
            )
        )
