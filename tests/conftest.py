"""Shared fixtures for the pool portal tests."""
import os
import sys

import base58
import pytest
import redis

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.settings import PoolConfig, PortalConfig
from error_handling.errors import RpcFailure, StatisticsFetchError
from stats.portal_stats import PortalStats

FRAME_TEMPLATE = "<html><nav>{{ selected }}</nav><b>{{ stats.minerCount }}</b>{{ page }}</html>"
PAGE_TEMPLATES = {
    "home.html": "<p>home {{ canonical }} miners={{ stats.minerCount }}</p>",
    "workers.html": "<p>workers miners={{ stats.minerCount }} pools={{ pool_configs | length }}</p>",
    "miner_stats.html": "<p>miner balance={{ stats.balance }} miners={{ stats.minerCount }}</p>",
    "user_shares.html": "<p>shares coins={{ stats.coins | join(',') }}</p>",
}
KEY_TEMPLATE = (
    "{% for symbol, pair in coins.items() %}"
    "[{{ symbol }}:{{ pair.public }},{{ pair.private }}]"
    "{% endfor %}"
)


def encode_check(version, payload):
    return base58.b58encode_check(bytes([version]) + payload).decode()


# litecoin-style funding addresses and WIF keys
LTC_ADDRESS = encode_check(48, bytes(range(20)))
LTC_WIF = encode_check(176, bytes(range(32)) + b"\x01")
DOGE_ADDRESS = encode_check(30, bytes(range(20, 40)))
DOGE_WIF = encode_check(158, bytes(range(32, 64)) + b"\x01")


def write_templates(base):
    (base / "pages").mkdir(parents=True, exist_ok=True)
    (base / "index.html").write_text(FRAME_TEMPLATE)
    for name, source in PAGE_TEMPLATES.items():
        (base / "pages" / name).write_text(source)
    (base / "key.html").write_text(KEY_TEMPLATE)
    return base


@pytest.fixture
def templates_dir(tmp_path):
    return write_templates(tmp_path / "website")


@pytest.fixture
def portal_config(templates_dir):
    return PortalConfig.model_validate({
        "website": {
            "templatesDir": str(templates_dir),
            "stats": {"updateInterval": 1, "fetchTimeout": 0.5},
            "adminCenter": {"enabled": True, "password": "secret"},
        },
        "rpcTimeout": 0.5,
    })


@pytest.fixture
def pool_configs():
    return {
        "Litecoin": PoolConfig.model_validate({
            "address": LTC_ADDRESS,
            "paymentProcessing": {
                "daemon": {"host": "127.0.0.1", "port": 19332, "user": "rpc", "password": "hunter2"}
            },
            "algorithm": "scrypt",
        }),
        "Dogecoin": PoolConfig.model_validate({
            "address": DOGE_ADDRESS,
            "paymentProcessing": {
                "daemon": {"host": "127.0.0.1", "port": 22555, "user": "rpc", "password": "hunter2"}
            },
        }),
    }


class FakeStats(PortalStats):
    """In-memory statistics collaborator."""

    def __init__(self, global_stats=None):
        self.global_stats = global_stats if global_stats is not None else {"minerCount": 1}
        self.fail = False
        self.calls = 0

    async def get_global_stats(self):
        self.calls += 1
        if self.fail:
            raise StatisticsFetchError("stats api down")
        return dict(self.global_stats)

    async def get_balance_by_address(self, address):
        if self.fail:
            raise StatisticsFetchError("stats api down")
        return {"address": address, "balance": 7.5}

    async def get_coins(self):
        return {"coins": ["litecoin", "dogecoin"]}

    async def get_coin_totals(self, coin, filter=None):
        return {"coins": [coin], "totals": {"miner1": 10}}

    async def get_payout(self, address):
        return 1.25


class FakeRedis:
    """Just enough of a redis.asyncio client for the store adapter."""

    def __init__(self, hashes=None):
        self.hashes = hashes or {}
        self.fail_reads = False
        self.fail_writes = False
        self.writes = []

    async def ping(self):
        return True

    async def hgetall(self, key):
        if self.fail_reads:
            raise redis.ConnectionError("connection refused")
        return dict(self.hashes.get(key, {}))

    async def hset(self, key, mapping=None):
        if self.fail_writes:
            raise redis.ConnectionError("connection refused")
        self.writes.append((key, dict(mapping)))
        self.hashes.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def aclose(self):
        pass


class FakeDaemonClient:
    """Daemon client answering dumpprivkey from a table; records every call."""

    keys = {}
    calls = []

    def __init__(self, daemon, timeout=10.0, symbol=None):
        self.daemon = daemon
        self.symbol = symbol

    async def cmd(self, method, params=None):
        FakeDaemonClient.calls.append((self.symbol, method, list(params or [])))
        result = FakeDaemonClient.keys.get(self.symbol)
        if isinstance(result, Exception):
            raise result
        if result is None:
            raise RpcFailure("Invalid private key", symbol=self.symbol)
        return result


@pytest.fixture
def fake_stats():
    return FakeStats()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def daemon_client():
    FakeDaemonClient.keys = {"litecoin": LTC_WIF, "dogecoin": DOGE_WIF}
    FakeDaemonClient.calls = []
    return FakeDaemonClient
