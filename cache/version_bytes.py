"""
Coin version byte resolution.

The key-derivation page needs, for every configured coin, the version
byte of its addresses and of its WIF private keys. Those bytes never
change for a chain, so once resolved they are stored in redis and read
back on every later start. Only coins missing from redis are looked up,
by asking the coin daemon to dump the private key of the pool's funding
address and decoding both strings.

The pipeline runs as separate stages (read, diff, fetch, persist) so each
can be exercised on its own.
"""
import asyncio
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional

import structlog

from config.settings import DaemonConfig, PoolConfig
from daemon.addresses import get_version_byte
from daemon.rpc import DaemonClient
from error_handling.errors import RpcFailure, StoreUnavailableError, TemplateSyntaxError
from monitoring.cache_metrics import VERSION_BYTES_RESOLVED
from .redis_manager import RedisManager
from .templates import TemplateCompiler, read_template_source

logger = structlog.get_logger()

COIN_VERSION_BYTES_KEY = "coinVersionBytes"


class VersionBytePair(NamedTuple):
    public: int
    private: int

    def to_store(self) -> str:
        return f"{self.public},{self.private}"

    @classmethod
    def from_store(cls, value: str) -> "VersionBytePair":
        public, private = value.split(",")
        return cls(int(public), int(private))


@dataclass(frozen=True)
class CoinTarget:
    """What is needed to look up one coin's version bytes."""
    symbol: str
    address: str
    daemon: DaemonConfig


@dataclass(frozen=True)
class FetchResult:
    symbol: str
    pair: Optional[VersionBytePair] = None
    error: Optional[str] = None


def coin_targets(pool_configs: Mapping[str, PoolConfig]) -> Dict[str, CoinTarget]:
    return {
        name.lower(): CoinTarget(
            symbol=name.lower(),
            address=pool.address,
            daemon=pool.payment_processing.daemon,
        )
        for name, pool in pool_configs.items()
    }


def parse_stored(raw: Mapping[str, str]) -> Dict[str, VersionBytePair]:
    pairs = {}
    for symbol, value in raw.items():
        try:
            pairs[symbol.lower()] = VersionBytePair.from_store(value)
        except ValueError:
            logger.warning("version_bytes_malformed", symbol=symbol, value=value)
    return pairs


def missing_symbols(configured: Iterable[str], existing: Mapping[str, VersionBytePair]) -> List[str]:
    known = {symbol.lower() for symbol in existing}
    return sorted({symbol.lower() for symbol in configured} - known)


class VersionByteResolver:
    """Cache-aside lookup of version byte pairs: redis first, coin daemons for the rest."""

    def __init__(self, store: RedisManager, pool_configs: Mapping[str, PoolConfig],
                 rpc_timeout: float = 10.0, concurrency: int = 4,
                 client_factory: Callable[..., DaemonClient] = DaemonClient):
        self.store = store
        self.targets = coin_targets(pool_configs)
        self.rpc_timeout = rpc_timeout
        self.concurrency = concurrency
        self.client_factory = client_factory
        self._resolved: Dict[str, VersionBytePair] = {}

    @property
    def resolved(self) -> Mapping[str, VersionBytePair]:
        return MappingProxyType(self._resolved)

    async def read_existing(self) -> Dict[str, VersionBytePair]:
        return parse_stored(await self.store.hgetall(COIN_VERSION_BYTES_KEY))

    async def fetch_one(self, target: CoinTarget) -> FetchResult:
        """Dump the funding address key and decode both version bytes."""
        client = self.client_factory(target.daemon, timeout=self.rpc_timeout, symbol=target.symbol)
        try:
            private_key = await client.cmd("dumpprivkey", [target.address])
            if not isinstance(private_key, str):
                raise RpcFailure("dumpprivkey returned no key", symbol=target.symbol)
            pair = VersionBytePair(get_version_byte(target.address), get_version_byte(private_key))
        except (RpcFailure, ValueError) as e:
            logger.error("version_bytes_rpc_failed", symbol=target.symbol, error=str(e))
            VERSION_BYTES_RESOLVED.labels(outcome="failed").inc()
            return FetchResult(symbol=target.symbol, error=str(e))

        VERSION_BYTES_RESOLVED.labels(outcome="fetched").inc()
        logger.info("version_bytes_fetched", symbol=target.symbol,
                    public=pair.public, private=pair.private)
        return FetchResult(symbol=target.symbol, pair=pair)

    async def fetch_missing(self, symbols: Iterable[str]) -> List[FetchResult]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(target: CoinTarget) -> FetchResult:
            async with semaphore:
                return await self.fetch_one(target)

        tasks = []
        results = []
        for symbol in symbols:
            target = self.targets.get(symbol)
            if target is None:
                logger.warning("version_bytes_no_pool", symbol=symbol)
                results.append(FetchResult(symbol=symbol, error="no pool configured"))
                continue
            tasks.append(bounded(target))
        results.extend(await asyncio.gather(*tasks))
        return results

    async def persist(self, pairs: Mapping[str, VersionBytePair]) -> None:
        if not pairs:
            return
        await self.store.hset_many(
            COIN_VERSION_BYTES_KEY,
            {symbol: pair.to_store() for symbol, pair in pairs.items()}
        )
        logger.info("version_bytes_persisted", symbols=sorted(pairs))

    async def resolve(self, configured: Iterable[str] = None) -> Dict[str, VersionBytePair]:
        """
        Resolve version bytes for the configured coins.

        Args:
            configured: Coin symbols to resolve, defaults to every pool

        Returns:
            Stored pairs merged with the newly resolved ones

        Raises:
            StoreUnavailableError: If redis cannot be read
        """
        configured = list(self.targets) if configured is None else list(configured)

        existing = await self.read_existing()
        VERSION_BYTES_RESOLVED.labels(outcome="cached").inc(
            len({s.lower() for s in configured} & set(existing))
        )
        missing = missing_symbols(configured, existing)

        fresh = {}
        if missing:
            for result in await self.fetch_missing(missing):
                if result.pair is not None:
                    fresh[result.symbol] = result.pair

        try:
            await self.persist(fresh)
        except StoreUnavailableError as e:
            # pairs are re-derivable, the next start fetches them again
            logger.error("version_bytes_persist_failed", error=str(e))

        for symbol, pair in {**existing, **fresh}.items():
            self._resolved.setdefault(symbol, pair)
        return dict(self._resolved)


class KeyPage:
    """The key-derivation page, rendered from resolved version bytes."""

    def __init__(self, template_path: Path, compiler: TemplateCompiler = None):
        self.template_path = Path(template_path)
        self.compiler = compiler or TemplateCompiler()
        self.body: Optional[str] = None

    def render(self, coins: Mapping[str, VersionBytePair], source: str) -> str:
        render_fn = self.compiler.compile(source, page_id="key")
        self.body = render_fn.render({"coins": dict(sorted(coins.items()))})
        return self.body

    async def build(self, resolver: VersionByteResolver) -> Optional[str]:
        """Resolve version bytes and render the page; failures leave it unavailable."""
        try:
            coins = await resolver.resolve()
        except StoreUnavailableError as e:
            logger.error("key_page_unavailable", error=str(e))
            return None

        try:
            source = await read_template_source(self.template_path)
        except OSError as e:
            logger.error("key_page_template_failed", path=str(self.template_path), error=str(e))
            return None

        try:
            return self.render(coins, source)
        except TemplateSyntaxError as e:
            logger.error("key_page_template_failed", path=str(self.template_path), error=str(e))
        except Exception as e:
            logger.error("key_page_render_failed", error=str(e), error_type=type(e).__name__)
        return None
