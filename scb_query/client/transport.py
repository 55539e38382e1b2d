"""
HTTP transport -- the single place that talks to the network.

The pipeline only needs ``fetch(url, headers, method, json_body)`` returning
status, content type and body text.  ``HttpxTransport`` is the default
implementation; tests substitute a scripted fake.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from scb_query.core.errors import TransportError
from scb_query.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FetchResponse:
    status: int
    content_type: str
    body: str
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_json(self) -> bool:
        return "application/json" in self.content_type.lower()


class Transport(Protocol):
    def fetch(
        self,
        url: str,
        headers: dict[str, str],
        method: str = "GET",
        json_body: Any | None = None,
    ) -> FetchResponse:
        ...


class HttpxTransport:
    """``Transport`` backed by a shared :class:`httpx.Client`.

    Parameters
    ----------
    timeout : float
        Per-request timeout in seconds.
    client : httpx.Client, optional
        Pre-built client (e.g. one wrapping ``httpx.MockTransport``).
    """

    def __init__(self, timeout: float = 30.0, client: httpx.Client | None = None):
        self._client = client or httpx.Client(timeout=timeout)
        self._timeout = timeout

    def fetch(
        self,
        url: str,
        headers: dict[str, str],
        method: str = "GET",
        json_body: Any | None = None,
    ) -> FetchResponse:
        logger.debug("%s %s", method, url)
        try:
            resp = self._client.request(method, url, headers=headers, json=json_body, timeout=self._timeout)
        except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
            raise TransportError(f"{method} {url} failed: {exc}", sent=False) from exc
        except httpx.TransportError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc
        return FetchResponse(
            status=resp.status_code,
            content_type=resp.headers.get("content-type", ""),
            body=resp.text,
            headers=dict(resp.headers),
        )

    def close(self) -> None:
        self._client.close()
