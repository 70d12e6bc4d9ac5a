from __future__ import annotations

import json
from functools import partial

import pytest

from feedsync.entrypoints import cli
from feedsync.entrypoints.runtime_builder import build_runtime
from feedsync.observability import events
from feedsync.settings import Settings, SettingsError
from feedsync.usecases.feed_client import FeedSyncClient
from tests.feed_test_harness import (
    FakeTransport,
    capture_logger,
    error_response,
    feed_body,
    item_dict,
    make_settings,
    ok_response,
)


def _page(after: str | None = None, *ids: str) -> dict:
    return feed_body(
        [item_dict(item_id, f"2024-01-0{index + 1}T00:00:00Z") for index, item_id in enumerate(ids)],
        after=after,
    )


def _run(
    argv: list[str],
    transport: FakeTransport,
    settings: Settings | None = None,
) -> tuple[int, list[str]]:
    logger, handler = capture_logger("test.cli.runtime")
    code = cli.main(
        argv,
        settings_from_env=lambda env_file=None: settings or make_settings(),
        setup_logging_fn=lambda *args, **kwargs: logger,
        build_runtime_fn=partial(
            build_runtime,
            setup_logging_fn=lambda *args, **kwargs: logger,
            client_factory=partial(
                FeedSyncClient.from_settings,
                api_client_factory=lambda instance: transport,
            ),
        ),
    )
    return code, handler.events()


def test_fetch_prints_feed_summary(capsys: pytest.CaptureFixture[str]) -> None:
    transport = FakeTransport([ok_response(_page("tok1", "a", "b"))])

    code, logged = _run(["fetch"], transport)

    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["feed_id"] == "feed-1"
    assert [item["id"] for item in output["items"]] == ["b", "a"]
    assert output["metadata"] == {"total_count": 2, "unread_count": 2, "unseen_count": 2}
    assert output["page_info"]["after"] == "tok1"
    assert transport.calls[0].url == "/v1/users/user-1/feeds/feed-1"
    assert transport.calls[0].params == {"page_size": 25, "archived": "exclude"}
    assert events.STARTUP_READY in logged
    assert logged[-1] == events.SHUTDOWN_COMPLETE
    assert transport.closed is True


def test_fetch_loads_requested_number_of_pages(capsys: pytest.CaptureFixture[str]) -> None:
    transport = FakeTransport(
        [
            ok_response(_page("tok1", "c", "d")),
            ok_response(_page(None, "a")),
        ]
    )

    code, _ = _run(["fetch", "--pages", "3"], transport)

    assert code == 0
    assert len(transport.calls) == 2
    assert transport.calls[1].params["after"] == "tok1"
    output = json.loads(capsys.readouterr().out)
    assert [item["id"] for item in output["items"]] == ["d", "c", "a"]


def test_fetch_error_exits_non_zero(capsys: pytest.CaptureFixture[str]) -> None:
    transport = FakeTransport([error_response(500)])

    code, logged = _run(["fetch"], transport)

    assert code == 1
    assert capsys.readouterr().out == ""
    assert events.FEED_FETCH_FAILED in logged


def test_feed_id_flag_overrides_settings() -> None:
    transport = FakeTransport([ok_response(_page(None, "a"))])

    code, _ = _run(["--feed-id", "other-feed", "fetch"], transport)

    assert code == 0
    assert transport.calls[0].url == "/v1/users/user-1/feeds/other-feed"


def test_missing_feed_id_is_invalid_config() -> None:
    transport = FakeTransport()

    code, logged = _run(["fetch"], transport, settings=make_settings(feed_id=None))

    assert code == 1
    assert logged == [events.STARTUP_INVALID_CONFIG]
    assert transport.calls == []


def test_invalid_settings_exit_non_zero() -> None:
    logger, handler = capture_logger("test.cli.bootstrap")

    def broken_settings(env_file: str | None = None) -> Settings:
        raise SettingsError("FEED_API_KEY is required.")

    def unexpected_build(*args: object, **kwargs: object) -> None:
        raise AssertionError("runtime must not be built")

    code = cli.main(
        ["fetch"],
        settings_from_env=broken_settings,
        setup_logging_fn=lambda *args, **kwargs: logger,
        build_runtime_fn=unexpected_build,
    )

    assert code == 1
    assert handler.events() == [events.STARTUP_INVALID_CONFIG]


def test_mark_fetches_then_sends_batch_update(capsys: pytest.CaptureFixture[str]) -> None:
    transport = FakeTransport([ok_response(_page(None, "a", "b")), ok_response(None, status=204)])

    code, _ = _run(["mark", "--status", "read", "a", "b"], transport)

    assert code == 0
    assert transport.calls[1].method == "POST"
    assert transport.calls[1].url == "/v1/messages/batch/read"
    assert transport.calls[1].data == {"message_ids": ["a", "b"]}
    output = json.loads(capsys.readouterr().out)
    assert output["ok"] is True
    assert output["metadata"]["unread_count"] == 0


def test_mark_reports_failed_update(capsys: pytest.CaptureFixture[str]) -> None:
    transport = FakeTransport([ok_response(_page(None, "a")), error_response(404)])

    code, _ = _run(["mark", "--status", "archived", "a"], transport)

    assert code == 1
    assert transport.calls[1].url == "/v1/messages/a/archived"
    assert json.loads(capsys.readouterr().out)["ok"] is False


def test_pages_must_be_positive() -> None:
    with pytest.raises(SystemExit):
        cli.main(["fetch", "--pages", "0"])
