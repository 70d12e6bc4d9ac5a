from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace

from feedsync.domain.models import (
    ITEM_FIELD_NAMES,
    FeedMetadata,
    FeedResponse,
    FeedStoreState,
    NetworkStatus,
)
from feedsync.domain.ordering import dedupe_items, sort_items
from feedsync.logging_utils import log_event
from feedsync.observability import events

StoreListener = Callable[[FeedStoreState, FeedStoreState], None]

# Identity and cursor are owned by the server.
_PROTECTED_ITEM_FIELDS = frozenset({"id", "cursor"})


class FeedStore:
    """Owns the state of one feed session.

    Every transition is synchronous and total: it builds a new
    ``FeedStoreState`` and then notifies subscribers with ``(new, old)``.
    """

    def __init__(
        self,
        initial_state: FeedStoreState | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._state = initial_state or FeedStoreState()
        self._listeners: list[StoreListener] = []
        self.logger = logger or logging.getLogger("feedsync.store")

    @property
    def state(self) -> FeedStoreState:
        return self._state

    def get_state(self) -> FeedStoreState:
        return self._state

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def destroy(self) -> None:
        self._listeners.clear()

    def set_loading(self, is_loading: bool) -> None:
        self.set_network_status(NetworkStatus.LOADING if is_loading else NetworkStatus.IDLE)

    def set_network_status(self, status: NetworkStatus) -> None:
        self._commit(replace(self._state, network_status=NetworkStatus(status)))

    def set_result(
        self,
        response: FeedResponse,
        *,
        should_append: bool = False,
        should_set_page: bool = True,
    ) -> None:
        if should_append:
            merged = [*self._state.items, *response.entries]
        else:
            merged = list(response.entries)
        items = sort_items(dedupe_items(merged))

        self._commit(
            replace(
                self._state,
                items=tuple(items),
                metadata=response.meta,
                page_info=response.page_info if should_set_page else self._state.page_info,
                network_status=NetworkStatus.IDLE,
            )
        )

    def set_metadata(self, metadata: FeedMetadata) -> None:
        self._commit(replace(self._state, metadata=metadata))

    def set_item_attrs(self, item_ids: Iterable[str], attrs: Mapping[str, object]) -> None:
        target_ids = set(item_ids)
        updates = {
            key: value
            for key, value in attrs.items()
            if key in ITEM_FIELD_NAMES and key not in _PROTECTED_ITEM_FIELDS
        }
        ignored = sorted(key for key in attrs if key not in updates)
        if ignored:
            self.logger.debug(log_event(events.STORE_ITEM_ATTRS_IGNORED, keys=ignored))
        if not target_ids or not updates:
            return

        items = tuple(
            replace(item, **updates) if item.id in target_ids else item
            for item in self._state.items
        )
        self._commit(replace(self._state, items=items))

    def remove_items(
        self,
        item_ids: Iterable[str],
        *,
        metadata: FeedMetadata | None = None,
    ) -> None:
        """Drops items by id, optionally swapping metadata in the same transition."""
        target_ids = set(item_ids)
        if not target_ids:
            return
        items = tuple(item for item in self._state.items if item.id not in target_ids)
        self._commit(
            replace(
                self._state,
                items=items,
                metadata=metadata if metadata is not None else self._state.metadata,
            )
        )

    def _commit(self, new_state: FeedStoreState) -> None:
        previous = self._state
        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state, previous)
            except Exception as exc:
                self.logger.error(
                    log_event(events.STORE_LISTENER_FAILED, error=str(exc)),
                    exc_info=True,
                )
