from __future__ import annotations

import logging
from collections.abc import Callable

from feedsync.domain.models import FeedClientOptions
from feedsync.services.api_client import ApiClient, ApiTransport
from feedsync.services.push_channel import LocalPushSocket, PushSocket
from feedsync.services.slack_client import SlackClient
from feedsync.settings import DEFAULT_API_HOST, SECRET_KEY_PREFIX, Settings
from feedsync.usecases.feed import Feed
from feedsync.usecases.reconciliation import ReconciliationPolicy

ApiClientFactory = Callable[["FeedSyncClient"], ApiTransport]
SocketFactory = Callable[["FeedSyncClient"], PushSocket]


class ClientConfigurationError(RuntimeError):
    """Raised when the session client is misused or misconfigured."""


class FeedClient:
    def __init__(self, instance: FeedSyncClient) -> None:
        self.instance = instance

    def initialize(
        self,
        feed_id: str,
        options: FeedClientOptions | None = None,
        *,
        reconciliation_policy: ReconciliationPolicy | None = None,
    ) -> Feed:
        api_client = self.instance.client()
        return Feed(
            api_client=api_client,
            socket=self.instance.socket(),
            feed_id=feed_id,
            user_id=self.instance.require_user_id(),
            options=options,
            reconciliation_policy=reconciliation_policy,
            logger=self.instance.logger.getChild("feed"),
        )


class FeedSyncClient:
    """Per-user session: owns one API client and one push socket.

    ``authenticate`` must be called before any feed is initialized. Transports
    are created lazily on first use and shared by every feed of the session.

    Real-time updates need a ``socket_factory`` that connects to the push
    server. Without one the session uses ``LocalPushSocket``, which only
    delivers what is handed to its ``push`` method, so feeds update on fetch only.
    """

    def __init__(
        self,
        api_key: str,
        *,
        host: str = DEFAULT_API_HOST,
        timeout_sec: float = 5.0,
        connect_timeout_sec: float | None = None,
        read_timeout_sec: float | None = None,
        max_retries: int = 4,
        retry_delay_sec: float = 1.0,
        api_client_factory: ApiClientFactory | None = None,
        socket_factory: SocketFactory | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if api_key.startswith(SECRET_KEY_PREFIX):
            raise ClientConfigurationError(
                "You are using your secret API key on the client. Please use the public key."
            )
        self.api_key = api_key
        self.host = host
        self.timeout_sec = timeout_sec
        self.connect_timeout_sec = connect_timeout_sec
        self.read_timeout_sec = read_timeout_sec
        self.max_retries = max_retries
        self.retry_delay_sec = retry_delay_sec
        self.logger = logger or logging.getLogger("feedsync.client")
        self._api_client_factory = api_client_factory or _default_api_client
        self._socket_factory = socket_factory or _default_socket

        self.user_id: str | None = None
        self.user_token: str | None = None
        self._api_client: ApiTransport | None = None
        self._socket: PushSocket | None = None

        self.feeds = FeedClient(self)
        self.slack = SlackClient(self.client, logger=self.logger.getChild("slack"))

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        api_client_factory: ApiClientFactory | None = None,
        socket_factory: SocketFactory | None = None,
        logger: logging.Logger | None = None,
    ) -> FeedSyncClient:
        instance = cls(
            settings.api_key,
            host=settings.api_host,
            timeout_sec=settings.request_timeout_sec,
            connect_timeout_sec=settings.request_connect_timeout_sec,
            read_timeout_sec=settings.request_read_timeout_sec,
            max_retries=settings.max_retries,
            retry_delay_sec=settings.retry_delay_sec,
            api_client_factory=api_client_factory,
            socket_factory=socket_factory,
            logger=logger,
        )
        instance.authenticate(settings.user_id, settings.user_token)
        return instance

    def authenticate(self, user_id: str, user_token: str | None = None) -> None:
        self.user_id = user_id
        self.user_token = user_token

    def require_user_id(self) -> str:
        if not self.user_id:
            raise ClientConfigurationError(
                "Call authenticate(user_id, user_token) before making a request."
            )
        return self.user_id

    def client(self) -> ApiTransport:
        self.require_user_id()
        if self._api_client is None:
            self._api_client = self._api_client_factory(self)
        return self._api_client

    def socket(self) -> PushSocket:
        self.require_user_id()
        if self._socket is None:
            self._socket = self._socket_factory(self)
        return self._socket

    def teardown(self) -> None:
        if self._socket is not None:
            self._socket.disconnect()
        if self._api_client is not None:
            self._api_client.close()


def _default_api_client(instance: FeedSyncClient) -> ApiTransport:
    return ApiClient(
        host=instance.host,
        api_key=instance.api_key,
        user_token=instance.user_token,
        timeout_sec=instance.timeout_sec,
        connect_timeout_sec=instance.connect_timeout_sec,
        read_timeout_sec=instance.read_timeout_sec,
        max_retries=instance.max_retries,
        retry_delay_sec=instance.retry_delay_sec,
        logger=instance.logger.getChild("api_client"),
    )


def _default_socket(instance: FeedSyncClient) -> PushSocket:
    return LocalPushSocket(logger=instance.logger.getChild("push"))
