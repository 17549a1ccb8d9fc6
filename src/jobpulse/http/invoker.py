"""Outbound GET calls against the configured target host."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Protocol

import httpx

from jobpulse.errors import TargetUnreachableError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "jobpulse/1.0"


@dataclass(slots=True, frozen=True)
class InvokeResult:
    """Status-level result of one invocation."""

    path: str
    status_code: int
    reason: str
    elapsed_seconds: float

    @property
    def is_success(self) -> bool:
        return self.status_code == 200


class RequestInvoker(Protocol):
    """Protocol implemented by request backends."""

    async def get(self, path: str) -> InvokeResult:
        """Issue one GET request and report its status."""

    async def aclose(self) -> None:
        """Release the underlying connection."""


class HttpInvoker:
    """httpx-backed invoker bound to one host:port.

    The client is created on the first call and reused afterwards. There is no
    timeout and no retry: a request stays in flight until the server answers
    or the connection fails.
    """

    def __init__(
        self,
        host: str,
        port: int,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self._user_agent = user_agent
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"http://{self.host}:{self.port}",
                headers={"Host": self.host, "User-Agent": self._user_agent},
                timeout=httpx.Timeout(None),
                transport=self._transport,
                follow_redirects=False,
            )
        return self._client

    async def get(self, path: str) -> InvokeResult:
        client = self._ensure_client()
        started = time.monotonic()
        try:
            response = await client.get(path)
        except httpx.TransportError as exc:
            raise TargetUnreachableError(
                f"Cannot reach {self.host}:{self.port}{path}: {exc}",
                host=self.host,
                port=self.port,
                path=path,
            ) from exc
        elapsed = time.monotonic() - started
        logger.debug("GET %s -> %s in %.3fs", path, response.status_code, elapsed)
        return InvokeResult(
            path=path,
            status_code=response.status_code,
            reason=response.reason_phrase,
            elapsed_seconds=elapsed,
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
