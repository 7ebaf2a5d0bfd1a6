"""
Failover pool over the configured Solana RPC endpoints.

The pool hands out one client per endpoint and remembers which one last
passed a health probe. ``acquire()`` reuses that handle while the probe is
fresh; otherwise it probes endpoints in list order from the rotation pointer
and keeps the first that answers. When every endpoint fails in one attempt
nothing is retained and :class:`AllEndpointsUnavailable` is raised.
"""

import time
from typing import Callable, Dict, Optional, Sequence

from services.errors import AllEndpointsUnavailable, exception_text
from services.solana_rpc import SolanaRpcClient
from utils.clock import MonotonicClock
from utils.logger import get_logger

logger = get_logger("rpc_pool")

ClientFactory = Callable[[str], SolanaRpcClient]


class ConnectionPool:
    def __init__(
        self,
        endpoints: Sequence[str],
        client_factory: Optional[ClientFactory] = None,
        health_ttl: float = 10.0,
        clock: MonotonicClock = time.monotonic,
        timeout: float = 10.0,
    ):
        urls: list[str] = []
        for raw_url in endpoints:
            url = (raw_url or "").strip()
            if url and url not in urls:
                urls.append(url)
        if not urls:
            raise ValueError("ConnectionPool needs at least one RPC endpoint")

        self.endpoints = urls
        self.health_ttl = health_ttl
        self._clock = clock
        self._client_factory = client_factory or (
            lambda endpoint: SolanaRpcClient(endpoint, timeout=timeout)
        )
        self._clients: Dict[str, SolanaRpcClient] = {}
        self._pointer = 0
        self._current: Optional[SolanaRpcClient] = None
        self._last_probe_at: Optional[float] = None
        self._last_endpoint: Optional[str] = None
        self._stats = {"probes": 0, "probe_failures": 0, "failovers": 0}

    def _client_for(self, endpoint: str) -> SolanaRpcClient:
        client = self._clients.get(endpoint)
        if client is None:
            client = self._client_factory(endpoint)
            self._clients[endpoint] = client
        return client

    def _advance(self) -> None:
        self._pointer = (self._pointer + 1) % len(self.endpoints)

    def _is_fresh(self) -> bool:
        return (
            self._current is not None
            and self._last_probe_at is not None
            and self._clock() - self._last_probe_at < self.health_ttl
        )

    async def acquire(self) -> SolanaRpcClient:
        """Return a handle whose endpoint answered a health probe recently."""
        if self._is_fresh():
            return self._current

        self._current = None
        self._last_probe_at = None
        last_error: Optional[Exception] = None

        for _ in range(len(self.endpoints)):
            endpoint = self.endpoints[self._pointer]
            client = self._client_for(endpoint)
            self._stats["probes"] += 1
            try:
                await client.get_latest_blockhash()
            except Exception as e:
                last_error = e
                self._stats["probe_failures"] += 1
                logger.warning(
                    "RPC health probe failed",
                    endpoint=endpoint,
                    error_type=type(e).__name__,
                    error=exception_text(e),
                )
                self._advance()
                continue

            self._current = client
            self._last_probe_at = self._clock()
            previous = self._last_endpoint
            self._last_endpoint = endpoint
            if previous is not None and previous != endpoint:
                self._stats["failovers"] += 1
                logger.warning(
                    "RPC failover",
                    previous_endpoint=previous,
                    active_endpoint=endpoint,
                )
            return client

        logger.error(
            "All RPC endpoints unavailable",
            endpoints=self.endpoints,
            error=exception_text(last_error) if last_error else None,
        )
        raise AllEndpointsUnavailable(self.endpoints, last_error)

    def mark_failed(self, handle: SolanaRpcClient) -> None:
        """Drop a handle whose call failed so the next acquire probes onwards."""
        if self._current is not handle:
            return
        logger.warning("RPC handle marked failed", endpoint=handle.endpoint)
        self._current = None
        self._last_probe_at = None
        if self.endpoints[self._pointer] == handle.endpoint:
            self._advance()

    @property
    def current_endpoint(self) -> Optional[str]:
        return self._current.endpoint if self._current is not None else None

    def status(self) -> dict:
        age = None
        if self._last_probe_at is not None:
            age = round(self._clock() - self._last_probe_at, 3)
        return {
            "endpoints": list(self.endpoints),
            "current_endpoint": self.current_endpoint,
            "rotation_index": self._pointer,
            "last_probe_age_seconds": age,
            **self._stats,
        }

    async def aclose(self) -> None:
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()
        self._current = None
