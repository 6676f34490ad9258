"""HTTP client construction with optional proxy routing."""

from __future__ import annotations

import os
from typing import Any, Optional
from urllib.parse import urlsplit

import requests

PROXY_ENV_VAR = "PROXY_URL"
_SUPPORTED_SCHEMES = ("http", "https", "socks5")


class ProxyConfigError(ValueError):
    """Raised when a proxy URL is malformed or uses an unsupported scheme."""


def _validate_proxy_url(proxy_url: str) -> None:
    try:
        parsed = urlsplit(proxy_url)
    except ValueError as exc:
        raise ProxyConfigError(f"invalid proxy URL {proxy_url!r}: {exc}") from exc
    if not parsed.scheme:
        raise ProxyConfigError(f"invalid proxy URL {proxy_url!r}: missing protocol scheme")
    if parsed.scheme not in _SUPPORTED_SCHEMES:
        raise ProxyConfigError(
            f"unsupported proxy scheme {parsed.scheme!r} (use http, https, or socks5)"
        )


class HTTPClient:
    """A requests session with a default timeout and an optional proxy.

    A timeout of 0 means no timeout. Proxy settings from the environment
    (other than PROXY_URL, handled by new_http_client) are not used.
    """

    def __init__(
        self,
        timeout: float = 0.0,
        proxy_url: str = "",
        session: Optional[Any] = None,
    ) -> None:
        if proxy_url:
            _validate_proxy_url(proxy_url)
        self.timeout = timeout
        self.proxy_url = proxy_url
        self.proxies = {"http": proxy_url, "https": proxy_url} if proxy_url else {}
        if session is None:
            session = requests.Session()
            session.trust_env = False
        self._session = session

    def request(self, method: str, url: str, **kwargs: Any) -> Any:
        """Send a request, applying the client's timeout and proxy unless overridden."""
        kwargs.setdefault("timeout", self.timeout or None)
        if self.proxies:
            kwargs.setdefault("proxies", dict(self.proxies))
        return self._session.request(method, url, **kwargs)

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "HTTPClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def new_http_client(timeout: float = 0.0, proxy_url: str = "") -> HTTPClient:
    """Build a client; the PROXY_URL environment variable overrides proxy_url."""
    env_proxy = os.environ.get(PROXY_ENV_VAR, "")
    if env_proxy:
        proxy_url = env_proxy
    return HTTPClient(timeout=timeout, proxy_url=proxy_url)