from __future__ import annotations

import json
import logging

from feedsync.domain.models import ArchivedScope
from feedsync.entrypoints.runtime_builder import build_feed_options, build_runtime, log_startup
from feedsync.observability import events
from feedsync.usecases.feed_client import FeedSyncClient
from tests.feed_test_harness import FakeTransport, capture_logger, make_settings


def test_build_feed_options_maps_settings() -> None:
    settings = make_settings(
        page_size=10,
        feed_status="unseen",
        feed_source="workflow-1",
        feed_tenant="acme",
        archived_scope=ArchivedScope.INCLUDE,
    )

    options = build_feed_options(settings)

    assert options.to_params() == {
        "page_size": 10,
        "status": "unseen",
        "source": "workflow-1",
        "tenant": "acme",
        "archived": "include",
    }


def test_build_runtime_wires_logger_client_and_feed() -> None:
    settings = make_settings(log_level="DEBUG", timezone="Asia/Seoul")
    logger, _ = capture_logger("test.runtime_builder")
    logging_calls: list[tuple[object, ...]] = []
    transport = FakeTransport()

    def fake_setup_logging(*args: object) -> logging.Logger:
        logging_calls.append(args)
        return logger

    def client_factory(settings_arg, *, logger: logging.Logger) -> FeedSyncClient:
        return FeedSyncClient.from_settings(
            settings_arg,
            api_client_factory=lambda instance: transport,
            logger=logger,
        )

    runtime = build_runtime(
        settings,
        feed_id="in-app",
        setup_logging_fn=fake_setup_logging,
        client_factory=client_factory,
    )

    assert logging_calls == [("DEBUG", "Asia/Seoul")]
    assert runtime.logger is logger
    assert runtime.feed.feed_id == "in-app"
    assert runtime.feed.api_client is transport
    assert runtime.client.logger.name == "test.runtime_builder.client"
    assert runtime.feed.default_options.page_size == 25

    runtime.close()
    assert transport.closed is True


def test_log_startup_logs_ready_event_without_secrets() -> None:
    settings = make_settings(user_token="very-secret-token")
    logger, handler = capture_logger("test.runtime_builder.startup")
    runtime = build_runtime(
        settings,
        feed_id="in-app",
        setup_logging_fn=lambda *args: logger,
        client_factory=lambda settings_arg, logger: FeedSyncClient.from_settings(
            settings_arg,
            api_client_factory=lambda instance: FakeTransport(),
            logger=logger,
        ),
    )

    log_startup(runtime)

    payload = json.loads(handler.messages[-1])
    assert payload["event"] == events.STARTUP_READY
    assert payload["feed_id"] == "in-app"
    assert payload["has_user_token"] is True
    assert "very-secret-token" not in handler.messages[-1]
    assert "pk_test_123" not in handler.messages[-1]
