"""TeamCity connection settings and the shared httpx client.

Configuration via environment variables (or a .env file at the project root):

- TEAMCITY_SERVER_URI (default: http://teamcity/app/rest/server)
- TEAMCITY_USER / TEAMCITY_PASSWORD (optional; guest access when unset)
- TEAMCITY_FEED_URI (default: <server origin>/guestAuth/app/nuget/v1/FeedService.svc)
- TEAMCITY_PACKAGE_PREFIX (default: empty, every package is kept)
- TEAMCITY_HTTP_TIMEOUT (seconds per request, default 30)
- TEAMCITY_CRAWL_TIMEOUT (seconds for a whole crawl, default: no deadline)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Optional, Tuple

import httpx

DEFAULT_SERVER_URI = "http://teamcity/app/rest/server"
FEED_PATH = "/guestAuth/app/nuget/v1/FeedService.svc"
ENV_FILE = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", ".env"))

_client: Optional[httpx.AsyncClient] = None


@dataclass(frozen=True)
class TeamCitySettings:
    server_uri: str = DEFAULT_SERVER_URI
    user: Optional[str] = None
    password: Optional[str] = None
    feed_uri: Optional[str] = None
    package_prefix: str = ""
    http_timeout: float = 30.0
    crawl_timeout: Optional[float] = None

    @property
    def resolved_feed_uri(self) -> str:
        if self.feed_uri:
            return self.feed_uri
        return str(httpx.URL(self.server_uri).join(FEED_PATH))

    def with_overrides(self, **kwargs) -> "TeamCitySettings":
        """Copy with every non-None keyword applied."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})


def _parse_env_line(line: str) -> Optional[Tuple[str, str]]:
    """Split ``KEY=value`` (value optionally quoted). Blank and comment lines give None."""
    text = line.strip()
    if not text or text.startswith("#") or "=" not in text:
        return None
    key, _, value = text.partition("=")
    key = key.strip()
    if not key:
        return None
    return key, value.strip().strip('"').strip("'")


def _load_env_from_file(path: str = ENV_FILE) -> None:
    """Fill unset or empty variables from a .env file next to the package.

    Values already in the process environment take precedence over the file.
    """
    if not os.path.isfile(path):
        return
    try:
        with open(path, "r", encoding="utf-8") as f:
            pairs = [kv for kv in map(_parse_env_line, f) if kv is not None]
    except OSError:
        return
    for key, value in pairs:
        if not os.environ.get(key):
            os.environ[key] = value


def _float_env(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number of seconds, got {raw!r}") from None
    if value <= 0:
        raise RuntimeError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings() -> TeamCitySettings:
    """Read TeamCity settings from the environment, applying defaults."""
    _load_env_from_file()

    user = os.getenv("TEAMCITY_USER") or None
    password = os.getenv("TEAMCITY_PASSWORD") or None
    if password and not user:
        raise RuntimeError(
            "TEAMCITY_PASSWORD is set but TEAMCITY_USER is not.\n"
            "Define both in your environment or in a .env file at the project root."
        )

    return TeamCitySettings(
        server_uri=os.getenv("TEAMCITY_SERVER_URI") or DEFAULT_SERVER_URI,
        user=user,
        password=password,
        feed_uri=os.getenv("TEAMCITY_FEED_URI") or None,
        package_prefix=os.getenv("TEAMCITY_PACKAGE_PREFIX") or "",
        http_timeout=_float_env("TEAMCITY_HTTP_TIMEOUT", 30.0),
        crawl_timeout=_float_env("TEAMCITY_CRAWL_TIMEOUT", None),
    )


def create_client(settings: TeamCitySettings, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    auth = httpx.BasicAuth(settings.user, settings.password or "") if settings.user else None
    return httpx.AsyncClient(
        base_url=settings.server_uri,
        auth=auth,
        timeout=settings.http_timeout,
        follow_redirects=True,
        headers={"User-Agent": "teamcity-graph/0.1"},
        transport=transport,
    )


def get_client(settings: Optional[TeamCitySettings] = None) -> httpx.AsyncClient:
    """Return the process-wide client used by the HTTP API."""
    global _client
    if _client is None or _client.is_closed:
        _client = create_client(settings or load_settings())
    return _client


async def close_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
