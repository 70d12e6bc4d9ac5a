from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Final, Protocol

from feedsync.logging_utils import log_event
from feedsync.observability import events

NEW_MESSAGE_EVENT: Final[str] = "new-message"

CHANNEL_CLOSED: Final[str] = "closed"
CHANNEL_ERRORED: Final[str] = "errored"
CHANNEL_JOINING: Final[str] = "joining"
CHANNEL_JOINED: Final[str] = "joined"
CHANNEL_LEAVING: Final[str] = "leaving"
REJOINABLE_STATES: Final[frozenset[str]] = frozenset({CHANNEL_CLOSED, CHANNEL_ERRORED})

PushHandler = Callable[[dict[str, object]], Awaitable[object] | object]


def feed_channel_topic(feed_id: str, user_id: str) -> str:
    return f"feeds:{feed_id}:{user_id}"


class PushChannel(Protocol):
    """A topic subscription on the session's push socket."""

    topic: str

    @property
    def state(self) -> str: ...

    def join(self) -> None: ...

    def leave(self) -> None: ...

    def on(self, event: str, handler: PushHandler) -> None: ...

    def off(self, event: str) -> None: ...


class PushSocket(Protocol):
    def is_connected(self) -> bool: ...

    def connect(self) -> None: ...

    def disconnect(self) -> None: ...

    def channel(self, topic: str, params: dict[str, object] | None = None) -> PushChannel: ...


class LocalPushChannel:
    def __init__(
        self,
        socket: LocalPushSocket,
        topic: str,
        params: dict[str, object] | None = None,
    ) -> None:
        self.socket = socket
        self.topic = topic
        self.params = dict(params or {})
        self._state = CHANNEL_CLOSED
        self._handlers: dict[str, list[PushHandler]] = {}

    @property
    def state(self) -> str:
        return self._state

    def join(self) -> None:
        self._state = CHANNEL_JOINED if self.socket.is_connected() else CHANNEL_JOINING
        self.socket.logger.info(log_event(events.CHANNEL_JOIN, topic=self.topic, state=self._state))

    def leave(self) -> None:
        self._state = CHANNEL_CLOSED
        self.socket.logger.info(log_event(events.CHANNEL_LEAVE, topic=self.topic))

    def on(self, event: str, handler: PushHandler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def off(self, event: str) -> None:
        self._handlers.pop(event, None)

    def mark_errored(self) -> None:
        self._state = CHANNEL_ERRORED

    async def dispatch(self, event: str, payload: dict[str, object]) -> list[object]:
        if self._state != CHANNEL_JOINED:
            return []
        results: list[object] = []
        for handler in list(self._handlers.get(event, [])):
            result = handler(payload)
            if inspect.isawaitable(result):
                result = await result
            results.append(result)
        return results

    def _on_socket_open(self) -> None:
        if self._state == CHANNEL_JOINING:
            self._state = CHANNEL_JOINED


class LocalPushSocket:
    """In-process push socket.

    Delivers server pushes handed to ``push`` to the joined channels of a topic.
    It opens no network connection: a feed wired to it receives pushes only
    from code in the same process.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("feedsync.push")
        self._connected = False
        self._channels: list[LocalPushChannel] = []

    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        self._connected = True
        self.logger.info(log_event(events.SOCKET_CONNECT))
        for channel in self._channels:
            channel._on_socket_open()

    def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        for channel in self._channels:
            if channel.state != CHANNEL_CLOSED:
                channel.mark_errored()
        self.logger.info(log_event(events.SOCKET_DISCONNECT))

    def channel(self, topic: str, params: dict[str, object] | None = None) -> LocalPushChannel:
        channel = LocalPushChannel(self, topic, params)
        self._channels.append(channel)
        return channel

    async def push(self, topic: str, event: str, payload: dict[str, object]) -> list[object]:
        results: list[object] = []
        for channel in list(self._channels):
            if channel.topic == topic:
                results.extend(await channel.dispatch(event, payload))
        return results
