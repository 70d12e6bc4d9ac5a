from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from feedsync.domain.models import ArchivedScope

DEFAULT_API_HOST = "https://api.knock.app"
DEFAULT_PAGE_SIZE = 50
SECRET_KEY_PREFIX = "sk_"
FEED_STATUS_CHOICES = {"unread", "unseen", "all"}


class SettingsError(ValueError):
    """Raised when required environment settings are missing or malformed."""


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_dotenv_if_exists(env_file: Path) -> None:
    if not env_file.exists() or not env_file.is_file():
        return

    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue
        value = _strip_optional_quotes(value.strip())
        os.environ.setdefault(key, value)


def _parse_int_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise SettingsError(f"{name} must be an integer. Received: {raw}") from exc
    if value < minimum:
        raise SettingsError(f"{name} must be >= {minimum}. Received: {value}")
    return value


def _parse_float_env(name: str, default: float, *, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise SettingsError(f"{name} must be a float. Received: {raw}") from exc
    if value < minimum:
        raise SettingsError(f"{name} must be >= {minimum}. Received: {value}")
    return value


def _parse_str_env(name: str, default: str) -> str:
    """Return the stripped value of ``name``, or ``default`` when unset or blank."""
    raw = os.getenv(name, "").strip()
    return raw if raw else default


def _parse_timezone_env(name: str, default: str) -> str:
    value = _parse_str_env(name, default)
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, KeyError, ValueError):
        raise SettingsError(f"{name} is not a valid IANA timezone name. Received: {value}")
    return value


def _parse_choice_env(name: str, default: str, allowed: set[str]) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value not in allowed:
        allowed_text = ", ".join(sorted(allowed))
        raise SettingsError(f"{name} must be one of: {allowed_text}. Received: {raw}")
    return value


def _validate_api_host(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise SettingsError("FEED_API_HOST must be a valid http(s) URL with host.")


def _validate_api_key(value: str) -> None:
    if value.startswith(SECRET_KEY_PREFIX):
        raise SettingsError(
            "FEED_API_KEY looks like a secret key. "
            "Use the public API key on the client."
        )


@dataclass(frozen=True)
class Settings:
    api_key: str
    user_id: str
    user_token: str | None = None
    api_host: str = DEFAULT_API_HOST
    feed_id: str | None = None
    page_size: int = DEFAULT_PAGE_SIZE
    archived_scope: ArchivedScope = ArchivedScope.EXCLUDE
    feed_status: str | None = None
    feed_source: str | None = None
    feed_tenant: str | None = None
    request_timeout_sec: float = 5.0
    request_connect_timeout_sec: float = 5.0
    request_read_timeout_sec: float = 5.0
    max_retries: int = 4
    retry_delay_sec: float = 1.0
    timezone: str = "UTC"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: str | Path | None = ".env") -> Settings:
        if env_file:
            _load_dotenv_if_exists(Path(env_file))

        api_key = os.getenv("FEED_API_KEY", "").strip()
        if not api_key:
            raise SettingsError("FEED_API_KEY is required.")
        _validate_api_key(api_key)

        user_id = os.getenv("FEED_USER_ID", "").strip()
        if not user_id:
            raise SettingsError("FEED_USER_ID is required.")

        api_host = _parse_str_env("FEED_API_HOST", DEFAULT_API_HOST).rstrip("/")
        _validate_api_host(api_host)

        archived_scope = _parse_choice_env(
            "FEED_ARCHIVED_SCOPE",
            ArchivedScope.EXCLUDE.value,
            {scope.value for scope in ArchivedScope},
        )
        feed_status = _parse_choice_env("FEED_STATUS", "", FEED_STATUS_CHOICES)

        request_timeout_sec = _parse_float_env("REQUEST_TIMEOUT_SEC", 5.0, minimum=0.1)
        return cls(
            api_key=api_key,
            user_id=user_id,
            user_token=_parse_str_env("FEED_USER_TOKEN", "") or None,
            api_host=api_host,
            feed_id=_parse_str_env("FEED_ID", "") or None,
            page_size=_parse_int_env("FEED_PAGE_SIZE", DEFAULT_PAGE_SIZE, minimum=1),
            archived_scope=ArchivedScope(archived_scope),
            feed_status=feed_status or None,
            feed_source=_parse_str_env("FEED_SOURCE", "") or None,
            feed_tenant=_parse_str_env("FEED_TENANT", "") or None,
            request_timeout_sec=request_timeout_sec,
            request_connect_timeout_sec=_parse_float_env(
                "REQUEST_CONNECT_TIMEOUT_SEC",
                request_timeout_sec,
                minimum=0.1,
            ),
            request_read_timeout_sec=_parse_float_env(
                "REQUEST_READ_TIMEOUT_SEC",
                request_timeout_sec,
                minimum=0.1,
            ),
            max_retries=_parse_int_env("MAX_RETRIES", 4, minimum=1),
            retry_delay_sec=_parse_float_env("RETRY_DELAY_SEC", 1.0, minimum=0.0),
            timezone=_parse_timezone_env("TIMEZONE", "UTC"),
            log_level=_parse_str_env("LOG_LEVEL", "INFO").upper(),
        )
