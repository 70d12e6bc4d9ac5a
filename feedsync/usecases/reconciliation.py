from __future__ import annotations

import logging
from typing import Protocol

from feedsync.domain.models import FeedStoreState, ItemStatus
from feedsync.logging_utils import log_event, redact_sensitive_text
from feedsync.observability import events
from feedsync.repositories.feed_store import FeedStore
from feedsync.services.api_client import ApiResponse


class ReconciliationPolicy(Protocol):
    """Decides what happens to optimistic state once the remote write settles.

    ``snapshot`` is the store state captured right before the optimistic update.
    """

    def reconcile(
        self,
        *,
        store: FeedStore,
        snapshot: FeedStoreState,
        status: ItemStatus,
        item_ids: list[str],
        response: ApiResponse,
    ) -> None: ...


class FireAndForgetPolicy:
    """Keeps the optimistic state whatever the server answered.

    A failed write leaves the local view ahead of the server until the next
    full fetch replaces it.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("feedsync.reconciliation")

    def reconcile(
        self,
        *,
        store: FeedStore,
        snapshot: FeedStoreState,
        status: ItemStatus,
        item_ids: list[str],
        response: ApiResponse,
    ) -> None:
        if response.ok:
            self.logger.info(
                log_event(
                    events.STATUS_UPDATE_SENT,
                    status=status.value,
                    item_count=len(item_ids),
                )
            )
            return
        self.logger.warning(
            log_event(
                events.STATUS_UPDATE_FAILED,
                status=status.value,
                item_ids=item_ids,
                http_status=response.status,
                error=redact_sensitive_text(response.error or response.body),
            )
        )
