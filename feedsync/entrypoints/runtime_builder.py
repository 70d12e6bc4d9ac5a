from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from feedsync.domain.models import FeedClientOptions
from feedsync.logging_utils import log_event, setup_logging
from feedsync.observability import events
from feedsync.settings import Settings
from feedsync.usecases.feed import Feed
from feedsync.usecases.feed_client import FeedSyncClient


@dataclass(frozen=True)
class FeedRuntime:
    settings: Settings
    logger: logging.Logger
    client: FeedSyncClient
    feed: Feed

    def close(self) -> None:
        self.feed.teardown()
        self.client.teardown()


def build_feed_options(settings: Settings) -> FeedClientOptions:
    return FeedClientOptions(
        page_size=settings.page_size,
        status=settings.feed_status,
        source=settings.feed_source,
        tenant=settings.feed_tenant,
        archived=settings.archived_scope,
    )


def build_runtime(
    settings: Settings,
    *,
    feed_id: str,
    setup_logging_fn: Callable[..., logging.Logger] = setup_logging,
    client_factory: Callable[..., FeedSyncClient] = FeedSyncClient.from_settings,
) -> FeedRuntime:
    logger = setup_logging_fn(settings.log_level, settings.timezone)
    client = client_factory(settings, logger=logger.getChild("client"))
    feed = client.feeds.initialize(feed_id, build_feed_options(settings))
    return FeedRuntime(settings=settings, logger=logger, client=client, feed=feed)


def log_startup(runtime: FeedRuntime) -> None:
    settings = runtime.settings
    runtime.logger.info(
        log_event(
            events.STARTUP_READY,
            api_host=settings.api_host,
            feed_id=runtime.feed.feed_id,
            user_id=settings.user_id,
            page_size=settings.page_size,
            archived_scope=settings.archived_scope.value,
            feed_status=settings.feed_status,
            max_retries=settings.max_retries,
            has_user_token=settings.user_token is not None,
        )
    )
