import asyncio
import itertools
import json
from typing import Any, List, Optional

import aiohttp
import structlog

from config.settings import DaemonConfig
from error_handling.errors import RpcFailure

logger = structlog.get_logger()

_request_ids = itertools.count(1)


class DaemonClient:
    """JSON-RPC client for a single coin daemon endpoint."""

    def __init__(self, daemon: DaemonConfig, timeout: float = 10.0, symbol: str = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.daemon = daemon
        self.timeout = timeout
        self.symbol = symbol
        self._session = session

    async def cmd(self, method: str, params: List[Any] = None) -> Any:
        """
        Run a daemon command and return its ``result`` member.

        Raises:
            RpcFailure: If the daemon is unreachable, times out, answers
                with something other than JSON-RPC or reports an error.
        """
        payload = {
            "jsonrpc": "1.0",
            "id": next(_request_ids),
            "method": method,
            "params": params or [],
        }
        auth = aiohttp.BasicAuth(self.daemon.user, self.daemon.password) if self.daemon.user else None

        try:
            if self._session is not None:
                data = await self._post(self._session, payload, auth)
            else:
                async with aiohttp.ClientSession() as session:
                    data = await self._post(session, payload, auth)
        except asyncio.TimeoutError as e:
            raise RpcFailure(f"{method} timed out after {self.timeout}s", symbol=self.symbol) from e
        except (aiohttp.ClientError, json.JSONDecodeError, ValueError) as e:
            raise RpcFailure(f"{method} failed: {e}", symbol=self.symbol) from e

        if not isinstance(data, dict):
            raise RpcFailure(f"{method} returned a malformed response", symbol=self.symbol)
        if data.get("error"):
            raise RpcFailure(f"{method} returned error: {json.dumps(data['error'])}", symbol=self.symbol)

        logger.debug("daemon_cmd_ok", symbol=self.symbol, method=method)
        return data.get("result")

    async def _post(self, session: aiohttp.ClientSession, payload: dict, auth) -> Any:
        async with session.post(
            self.daemon.url,
            json=payload,
            auth=auth,
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        ) as response:
            # bitcoind answers RPC errors with 500 and a JSON body
            body = await response.text()
            if response.status >= 400 and not body:
                raise aiohttp.ClientResponseError(
                    response.request_info,
                    response.history,
                    status=response.status,
                    message=response.reason or ""
                )
            return json.loads(body)
