from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Final, Literal, Protocol
from urllib.parse import urljoin

import requests

from feedsync.logging_utils import log_event, redact_sensitive_text
from feedsync.observability import events

CLIENT_NAME: Final[str] = "feedsync-python"
RETRYABLE_STATUS_CODES: Final[frozenset[int]] = frozenset({429})

ResultStatus = Literal["ok", "error"]


class ApiRequestError(RuntimeError):
    """Describes why a request ended in an error result. Returned, not raised."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        attempts: int = 1,
        last_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class ApiResponse:
    status_code: ResultStatus
    body: object | None = None
    error: ApiRequestError | None = None
    status: int | None = None

    @property
    def ok(self) -> bool:
        return self.status_code == "ok"


class ApiTransport(Protocol):
    def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, object] | None = None,
        data: object | None = None,
    ) -> ApiResponse: ...

    def close(self) -> None: ...


class ApiClient:
    """Blocking HTTP transport with retry and exponential backoff.

    Network errors, timeouts, 5xx and 429 responses are retried up to
    ``max_retries`` attempts in total. The outcome is always an
    ``ApiResponse``; this class never raises for transport failures.
    """

    def __init__(
        self,
        *,
        host: str,
        api_key: str,
        user_token: str | None = None,
        timeout_sec: float = 5.0,
        connect_timeout_sec: float | None = None,
        read_timeout_sec: float | None = None,
        max_retries: int = 4,
        retry_delay_sec: float = 1.0,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.host = host.rstrip("/") + "/"
        self.connect_timeout_sec = connect_timeout_sec or timeout_sec
        self.read_timeout_sec = read_timeout_sec or timeout_sec
        self.max_retries = max(1, max_retries)
        self.retry_delay_sec = max(0.0, retry_delay_sec)
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger("feedsync.api_client")
        self._sleep = sleep
        self.headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
            "X-Feedsync-Client": CLIENT_NAME,
        }
        if user_token:
            self.headers["X-User-Token"] = user_token

    def close(self) -> None:
        self.session.close()

    def build_url(self, url: str) -> str:
        return urljoin(self.host, url.lstrip("/"))

    @staticmethod
    def _is_retryable_status(status_code: int) -> bool:
        return 500 <= status_code < 600 or status_code in RETRYABLE_STATUS_CODES

    @staticmethod
    def _is_retryable_error(exc: requests.RequestException) -> bool:
        return isinstance(exc, (requests.ConnectionError, requests.Timeout))

    @staticmethod
    def _decode_body(response: requests.Response) -> object | None:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, object] | None = None,
        data: object | None = None,
    ) -> ApiResponse:
        full_url = self.build_url(url)
        backoff_seconds = self.retry_delay_sec
        last_result: ApiResponse | None = None

        for attempt in range(1, self.max_retries + 1):
            retryable = False
            try:
                response = self.session.request(
                    method,
                    full_url,
                    params=params,
                    json=data,
                    headers=self.headers,
                    timeout=(self.connect_timeout_sec, self.read_timeout_sec),
                )
                body = self._decode_body(response)
                if response.status_code < 300:
                    return ApiResponse(status_code="ok", body=body, status=response.status_code)
                last_result = ApiResponse(
                    status_code="error",
                    body=body,
                    status=response.status_code,
                    error=ApiRequestError(
                        f"HTTP {response.status_code}",
                        status_code=response.status_code,
                        attempts=attempt,
                    ),
                )
                retryable = self._is_retryable_status(response.status_code)
            except requests.RequestException as exc:
                last_result = ApiResponse(
                    status_code="error",
                    error=ApiRequestError(
                        f"Request failed: {exc}",
                        attempts=attempt,
                        last_error=exc,
                    ),
                )
                retryable = self._is_retryable_error(exc)

            if not retryable or attempt == self.max_retries:
                break
            assert last_result.error is not None
            self.logger.warning(
                log_event(
                    events.API_REQUEST_RETRY,
                    method=method,
                    url=url,
                    attempt=attempt,
                    max_retries=self.max_retries,
                    status=last_result.status,
                    error=redact_sensitive_text(last_result.error),
                    backoff_sec=backoff_seconds,
                )
            )
            if backoff_seconds > 0:
                self._sleep(backoff_seconds)
            backoff_seconds = max(backoff_seconds * 2, self.retry_delay_sec)

        assert last_result is not None
        self.logger.error(
            log_event(
                events.API_REQUEST_FAILED,
                method=method,
                url=url,
                status=last_result.status,
                attempts=last_result.error.attempts if last_result.error else None,
                error=redact_sensitive_text(last_result.error),
            )
        )
        return last_result
