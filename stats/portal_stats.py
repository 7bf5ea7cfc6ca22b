"""
Statistics collaborator.

The portal never computes statistics itself; it asks a collaborator for
opaque snapshots and feeds them to the templates. ``PortalStats`` is the
interface the cache layer depends on, ``HttpPortalStats`` talks to the
pool's statistics API over HTTP.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from urllib.parse import quote

import aiohttp
import structlog

from error_handling.errors import StatisticsFetchError

logger = structlog.get_logger()


class PortalStats(ABC):
    """Source of statistics snapshots. Every method raises StatisticsFetchError on failure."""

    @abstractmethod
    async def get_global_stats(self) -> Dict[str, Any]:
        """Aggregate pool statistics used by every page."""

    @abstractmethod
    async def get_balance_by_address(self, address: str) -> Dict[str, Any]:
        """Balances and worker statistics of one miner."""

    @abstractmethod
    async def get_coins(self) -> Dict[str, Any]:
        """Coins known to the pool."""

    @abstractmethod
    async def get_coin_totals(self, coin: str, filter: Optional[str] = None) -> Dict[str, Any]:
        """Share totals per user for one coin."""

    @abstractmethod
    async def get_payout(self, address: str) -> Any:
        """Pending payout of one miner."""


class HttpPortalStats(PortalStats):
    """Fetches statistics from the pool statistics API."""

    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None

    async def connect(self) -> None:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None

    async def _get(self, path: str, params: Dict[str, str] = None) -> Any:
        await self.connect()
        url = f"{self.base_url}{path}"
        try:
            async with self.session.get(url, params=params) as response:
                response.raise_for_status()
                return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            logger.warning("stats_fetch_timeout", url=url, timeout=self.timeout)
            raise StatisticsFetchError(f"timed out fetching {path}") from e
        except (aiohttp.ClientError, ValueError) as e:
            logger.warning("stats_fetch_failed", url=url, error=str(e))
            raise StatisticsFetchError(f"failed fetching {path}: {e}") from e

    async def get_global_stats(self) -> Dict[str, Any]:
        return await self._get("/api/stats")

    async def get_balance_by_address(self, address: str) -> Dict[str, Any]:
        return await self._get("/api/worker_stats", params={"address": address})

    async def get_coins(self) -> Dict[str, Any]:
        return await self._get("/api/coins")

    async def get_coin_totals(self, coin: str, filter: Optional[str] = None) -> Dict[str, Any]:
        params = {"filter": filter} if filter else None
        return await self._get(f"/api/coin_totals/{quote(coin, safe='')}", params=params)

    async def get_payout(self, address: str) -> Any:
        return await self._get(f"/api/payout/{quote(address, safe='')}")
