"""Tests for the coin daemon and statistics HTTP clients."""
import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer, unused_port

from config.settings import DaemonConfig
from daemon.rpc import DaemonClient
from error_handling.errors import RpcFailure, StatisticsFetchError
from stats.portal_stats import HttpPortalStats

from conftest import LTC_WIF


async def fake_daemon(request):
    payload = await request.json()
    request.app["requests"].append((payload, request.headers.get("Authorization")))
    if payload["method"] == "dumpprivkey":
        return web.json_response({"result": LTC_WIF, "error": None, "id": payload["id"]})
    return web.json_response(
        {"result": None, "error": {"code": -32601, "message": "Method not found"}, "id": payload["id"]},
        status=500
    )


def run_with_server(app, scenario):
    async def main():
        server = TestServer(app)
        await server.start_server()
        try:
            return await scenario(server)
        finally:
            await server.close()

    return asyncio.run(main())


def daemon_app():
    app = web.Application()
    app["requests"] = []
    app.router.add_post("/", fake_daemon)
    return app


def test_cmd_returns_result():
    app = daemon_app()

    async def scenario(server):
        daemon = DaemonConfig(host=server.host, port=server.port, user="rpc", password="pw")
        return await DaemonClient(daemon, timeout=2, symbol="litecoin").cmd("dumpprivkey", ["addr"])

    assert run_with_server(app, scenario) == LTC_WIF
    payload, auth = app["requests"][0]
    assert payload["method"] == "dumpprivkey"
    assert payload["params"] == ["addr"]
    assert auth.startswith("Basic ")


def test_cmd_error_member():
    async def scenario(server):
        daemon = DaemonConfig(host=server.host, port=server.port)
        with pytest.raises(RpcFailure) as excinfo:
            await DaemonClient(daemon, timeout=2, symbol="litecoin").cmd("getinfo")
        return excinfo.value

    error = run_with_server(daemon_app(), scenario)
    assert error.symbol == "litecoin"
    assert "Method not found" in str(error)


def test_cmd_unreachable_daemon():
    daemon = DaemonConfig(host="127.0.0.1", port=unused_port())
    with pytest.raises(RpcFailure):
        asyncio.run(DaemonClient(daemon, timeout=1).cmd("dumpprivkey", ["addr"]))


def test_cmd_timeout():
    async def slow(request):
        await asyncio.sleep(1)
        return web.json_response({"result": 1})

    app = web.Application()
    app.router.add_post("/", slow)

    async def scenario(server):
        daemon = DaemonConfig(host=server.host, port=server.port)
        with pytest.raises(RpcFailure) as excinfo:
            await DaemonClient(daemon, timeout=0.1).cmd("getinfo")
        return str(excinfo.value)

    assert "timed out" in run_with_server(app, scenario)


def stats_app():
    async def global_stats(request):
        return web.json_response({"minerCount": 42})

    async def worker_stats(request):
        return web.json_response({"address": request.query["address"], "balance": 7.5})

    async def coin_totals(request):
        return web.json_response({"coin": request.match_info["coin"]})

    async def broken(request):
        return web.Response(status=502)

    app = web.Application()
    app.router.add_get("/api/stats", global_stats)
    app.router.add_get("/api/worker_stats", worker_stats)
    app.router.add_get("/api/coin_totals/{coin}", coin_totals)
    app.router.add_get("/api/coins", broken)
    return app


def test_http_stats_client():
    async def scenario(server):
        stats = HttpPortalStats(str(server.make_url("/")), timeout=2)
        try:
            results = (
                await stats.get_global_stats(),
                await stats.get_balance_by_address("Labc"),
                await stats.get_coin_totals("litecoin"),
            )
            with pytest.raises(StatisticsFetchError):
                await stats.get_coins()
            with pytest.raises(StatisticsFetchError):
                await stats.get_payout("Labc")
            return results
        finally:
            await stats.close()

    global_stats, balances, totals = run_with_server(stats_app(), scenario)
    assert global_stats == {"minerCount": 42}
    assert balances == {"address": "Labc", "balance": 7.5}
    assert totals == {"coin": "litecoin"}
