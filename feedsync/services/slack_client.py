from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import TypedDict

from feedsync.logging_utils import log_event, redact_sensitive_text
from feedsync.observability import events
from feedsync.services.api_client import ApiResponse, ApiTransport


class SlackApiError(RuntimeError):
    def __init__(self, message: str, *, response: ApiResponse) -> None:
        super().__init__(message)
        self.response = response


class SlackChannelConnection(TypedDict):
    access_token: str
    channel_id: str


class SlackClient:
    """Reads and writes the Slack channel connections stored on an object."""

    def __init__(
        self,
        client_provider: Callable[[], ApiTransport],
        logger: logging.Logger | None = None,
    ) -> None:
        self._client_provider = client_provider
        self.logger = logger or logging.getLogger("feedsync.slack")

    async def get_channels(
        self,
        tenant_id: str,
        knock_channel_id: str,
        object_id: str | None = None,
        collection: str | None = None,
    ) -> object:
        params = {
            "object_id": object_id,
            "collection": collection,
            "tenant_id": tenant_id,
            "knock_channel_id": knock_channel_id,
        }
        result = await asyncio.to_thread(
            self._client_provider().request,
            "GET",
            "/v1/slack/channels",
            params={key: value for key, value in params.items() if value is not None},
        )
        return self._handle_response(result, operation="get_channels")

    async def set_channel_connections(
        self,
        object_id: str,
        collection: str,
        knock_channel_id: str,
        connections: Sequence[SlackChannelConnection],
        user_id: str,
    ) -> object:
        result = await asyncio.to_thread(
            self._client_provider().request,
            "PUT",
            f"/v1/objects/{collection}/{object_id}/channel_data/{knock_channel_id}",
            data={"data": {"connections": list(connections)}, "user_id": user_id},
        )
        return self._handle_response(result, operation="set_channel_connections")

    def _handle_response(self, result: ApiResponse, *, operation: str) -> object:
        if result.ok:
            return result.body
        message = redact_sensitive_text(result.error or result.body)
        self.logger.error(
            log_event(
                events.SLACK_REQUEST_FAILED,
                operation=operation,
                http_status=result.status,
                error=message,
            )
        )
        raise SlackApiError(message, response=result)
