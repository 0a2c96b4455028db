"""
Ranked pool of Solana RPC endpoints.

Candidates keep their configured order. Each one carries its own health
state so a recently confirmed endpoint is reused without probing, and
endpoints that failed are only tried after the healthy ones.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment

from double_or_nothing.core.logger import get_logger, mask_endpoint

logger = get_logger("rpc")

ClientFactory = Callable[[str], AsyncClient]


@dataclass
class RpcEndpoint:
    url: str
    rank: int
    healthy: bool = True
    consecutive_failures: int = 0
    last_ok: float = 0.0
    last_failure: float = 0.0

    def mark_ok(self, now: float):
        self.healthy = True
        self.consecutive_failures = 0
        self.last_ok = now

    def mark_failed(self, now: float):
        self.healthy = False
        self.consecutive_failures += 1
        self.last_failure = now


class RpcPool:
    def __init__(
        self,
        endpoints: List[str],
        commitment: str = "confirmed",
        timeout: float = 10.0,
        health_ttl: float = 30.0,
        client_factory: Optional[ClientFactory] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not endpoints:
            raise ValueError("At least one RPC endpoint is required")
        self.endpoints = [RpcEndpoint(url, rank) for rank, url in enumerate(endpoints)]
        self.commitment = commitment
        self.timeout = timeout
        self.health_ttl = health_ttl
        self._client_factory = client_factory or self._default_client
        self._clock = clock

    def _default_client(self, url: str) -> AsyncClient:
        return AsyncClient(url, commitment=Commitment(self.commitment), timeout=self.timeout)

    def __len__(self):
        return len(self.endpoints)

    def ranked(self) -> List[RpcEndpoint]:
        """Healthy endpoints first, each group in configured order."""
        return sorted(self.endpoints, key=lambda e: (not e.healthy, e.rank))

    async def connect(self) -> AsyncClient:
        """
        Return a client for the best responsive endpoint. The caller owns the
        client and must close it.

        Falls back to the first configured endpoint, unprobed, when no
        candidate answers.
        """
        now = self._clock()
        for endpoint in self.ranked():
            client = self._client_factory(endpoint.url)

            if endpoint.healthy and endpoint.last_ok and now - endpoint.last_ok < self.health_ttl:
                return client

            try:
                await client.get_slot()
            except asyncio.CancelledError:
                await close_quietly(client)
                raise
            except Exception as e:
                endpoint.mark_failed(self._clock())
                logger.info(
                    f"RPC failed, trying next: {mask_endpoint(endpoint.url)} ({type(e).__name__})"
                )
                await close_quietly(client)
                continue

            endpoint.mark_ok(self._clock())
            logger.info(f"Using RPC: {mask_endpoint(endpoint.url)}")
            return client

        logger.warning("No RPC endpoint responded")
        return self.fallback()

    def fallback(self) -> AsyncClient:
        """Client for the first configured endpoint, without probing it."""
        first = self.endpoints[0]
        logger.warning(f"Falling back to {mask_endpoint(first.url)}")
        return self._client_factory(first.url)

    def snapshot(self) -> List[dict]:
        return [
            {
                "url": mask_endpoint(e.url),
                "healthy": e.healthy,
                "consecutiveFailures": e.consecutive_failures,
            }
            for e in self.endpoints
        ]


async def close_quietly(client: AsyncClient):
    try:
        await client.close()
    except Exception as e:
        logger.debug(f"Error closing RPC client: {e}")
