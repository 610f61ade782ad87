"""HTTP transport for the Traccar REST API with session cookie management."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from http.cookies import SimpleCookie
from typing import Any, Protocol

import aiohttp

from crewmap._redact import redact_for_log
from crewmap.config import CrewMapConfig
from crewmap.exceptions import TransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the endpoint modules.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (:class:`TraccarTransport`) concrete.
    """

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Any = None,
        json_body: Mapping[str, Any] | None = None,
        form: Mapping[str, str] | None = None,
        basic_auth: bool = False,
    ) -> Any:
        ...


class TraccarTransport:
    """HTTP transport that keeps the Traccar session cookie between calls."""

    def __init__(
        self,
        config: CrewMapConfig,
        http_session: aiohttp.ClientSession,
    ) -> None:
        self._config = config
        self._http = http_session
        self._cookies: dict[str, str] = {}
        self._cookie_header: str = ""

    @property
    def cookie_header(self) -> str:
        """Cookie header value for requests and the websocket handshake."""
        return self._cookie_header

    def _update_cookies(self, headers: Any) -> None:
        """Extract Set-Cookie headers and store them."""
        raw_cookies = headers.getall("Set-Cookie", [])
        changed = False
        for raw in raw_cookies:
            cookie: SimpleCookie = SimpleCookie()
            cookie.load(raw)
            for key, morsel in cookie.items():
                value = morsel.value
                if self._cookies.get(key) != value:
                    self._cookies[key] = value
                    changed = True

        if changed:
            self._cookie_header = "; ".join(f"{k}={v}" for k, v in self._cookies.items())

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Any = None,
        json_body: Mapping[str, Any] | None = None,
        form: Mapping[str, str] | None = None,
        basic_auth: bool = False,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Non-2xx responses raise :class:`TransportError` carrying the status
        code and (truncated) response text so callers can map provider errors
        such as duplicate keys. Empty 2xx bodies decode to ``None``.
        """
        url = f"{self._config.traccar_server.rstrip('/')}{endpoint}"
        headers: dict[str, str] = {"accept": "application/json"}
        if self._cookie_header:
            headers["cookie"] = self._cookie_header

        auth = None
        if basic_auth:
            auth = aiohttp.BasicAuth(self._config.traccar_email, self._config.traccar_password)

        kwargs: dict[str, Any] = {"headers": headers, "params": params, "auth": auth}
        if json_body is not None:
            kwargs["json"] = dict(json_body)
        elif form is not None:
            kwargs["data"] = dict(form)

        _logger.debug(
            "%s %s params=%s body=%s",
            method,
            url,
            params,
            redact_for_log(json_body if json_body is not None else form),
        )

        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)
        try:
            async with self._http.request(method, url, timeout=timeout, **kwargs) as resp:
                self._update_cookies(resp.headers)
                text = await resp.text()
                if resp.status < 200 or resp.status >= 300:
                    raise TransportError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                        body=text[:2000],
                    )
        except TransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise TransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise TransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                endpoint=endpoint,
                body=text[:2000],
            ) from exc
