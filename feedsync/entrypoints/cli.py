from __future__ import annotations

import argparse
import asyncio
import json
import logging
from collections.abc import Callable

from feedsync.domain.models import FeedItem, ItemStatus
from feedsync.entrypoints.runtime_builder import FeedRuntime, build_runtime, log_startup
from feedsync.logging_utils import log_event, redact_sensitive_text, setup_logging
from feedsync.observability import events
from feedsync.settings import Settings, SettingsError
from feedsync.usecases.feed import FetchResult


def _summarize(runtime: FeedRuntime) -> dict[str, object]:
    state = runtime.feed.get_state()
    return {
        "feed_id": runtime.feed.feed_id,
        "network_status": state.network_status.value,
        "metadata": state.metadata.to_dict(),
        "page_info": state.page_info.to_dict(),
        "items": [item.to_dict() for item in state.items],
    }


def _log_fetch_error(runtime: FeedRuntime, result: FetchResult) -> None:
    runtime.logger.error(
        log_event(
            events.FEED_FETCH_FAILED,
            feed_id=runtime.feed.feed_id,
            error=redact_sensitive_text(result.data),
        )
    )


async def fetch_items(runtime: FeedRuntime, pages: int = 1) -> int:
    result = await runtime.feed.fetch()
    if result is None or not result.ok:
        if result is not None:
            _log_fetch_error(runtime, result)
        return 1

    for _ in range(pages - 1):
        result = await runtime.feed.fetch_next_page()
        if result is None:
            break
        if not result.ok:
            _log_fetch_error(runtime, result)
            return 1

    print(json.dumps(_summarize(runtime), ensure_ascii=False, indent=2))
    return 0


async def mark_items(runtime: FeedRuntime, status: ItemStatus, item_ids: list[str]) -> int:
    result = await runtime.feed.fetch()
    if result is not None and not result.ok:
        _log_fetch_error(runtime, result)
        return 1

    state = runtime.feed.get_state()
    items = [state.find_item(item_id) or FeedItem(id=item_id, inserted_at="") for item_id in item_ids]
    response = await getattr(runtime.feed, f"mark_as_{status.value}")(items)
    print(
        json.dumps(
            {
                "status": status.value,
                "item_ids": item_ids,
                "ok": bool(response and response.ok),
                "metadata": runtime.feed.get_state().metadata.to_dict(),
            },
            ensure_ascii=False,
            indent=2,
        )
    )
    return 0 if response is not None and response.ok else 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Notification feed synchronizer")
    parser.add_argument(
        "--feed-id",
        default=None,
        help="Feed channel id (defaults to FEED_ID)",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to dotenv file",
    )
    subparsers = parser.add_subparsers(dest="command")

    fetch_parser = subparsers.add_parser("fetch", help="Fetch the feed and print it as JSON")
    fetch_parser.add_argument(
        "--pages",
        type=int,
        default=1,
        help="Number of pages to load",
    )

    mark_parser = subparsers.add_parser("mark", help="Update the status of feed items")
    mark_parser.add_argument(
        "--status",
        required=True,
        choices=[status.value for status in ItemStatus],
        help="Status to apply",
    )
    mark_parser.add_argument("item_ids", nargs="+", help="Ids of the items to update")
    return parser


def main(
    argv: list[str] | None = None,
    *,
    settings_from_env: Callable[..., Settings] = Settings.from_env,
    setup_logging_fn: Callable[..., logging.Logger] = setup_logging,
    build_runtime_fn: Callable[..., FeedRuntime] = build_runtime,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    command = args.command or "fetch"
    if command == "fetch" and getattr(args, "pages", 1) < 1:
        parser.error("--pages must be >= 1")

    bootstrap_logger = setup_logging_fn()
    try:
        settings = settings_from_env(env_file=args.env_file)
        feed_id = args.feed_id or settings.feed_id
        if not feed_id:
            raise SettingsError("FEED_ID is required (or pass --feed-id).")
    except SettingsError as exc:
        bootstrap_logger.critical(
            log_event(events.STARTUP_INVALID_CONFIG, error=redact_sensitive_text(exc))
        )
        return 1

    runtime = build_runtime_fn(settings, feed_id=feed_id)
    log_startup(runtime)
    try:
        if command == "mark":
            return asyncio.run(mark_items(runtime, ItemStatus(args.status), args.item_ids))
        return asyncio.run(fetch_items(runtime, getattr(args, "pages", 1)))
    except KeyboardInterrupt:
        runtime.logger.info(log_event(events.SHUTDOWN_INTERRUPT))
        return 0
    except Exception as exc:  # pragma: no cover
        runtime.logger.critical(
            log_event(events.SHUTDOWN_UNEXPECTED_ERROR, error=redact_sensitive_text(exc)),
            exc_info=True,
        )
        return 1
    finally:
        runtime.close()
        runtime.logger.info(log_event(events.SHUTDOWN_COMPLETE))


if __name__ == "__main__":
    raise SystemExit(main())
