"""Wiring of the portal's caches, triggers and collaborators."""
import asyncio
from pathlib import Path
from typing import List, Mapping, Optional

import structlog

from cache.invalidation import StatsRefresher, TemplateReloader, TemplateWatcher
from cache.page_cache import PageCache
from cache.redis_manager import RedisManager
from cache.templates import TemplateCompiler, TemplateLoader
from cache.version_bytes import KeyPage, VersionByteResolver
from config.settings import PoolConfig, PortalConfig
from stats.portal_stats import PortalStats
from .live import LiveBroadcaster

logger = structlog.get_logger()


class PortalService:
    """Owns the page cache, the live connection registry and the version byte resolver."""

    def __init__(self, portal_config: PortalConfig, pool_configs: Mapping[str, PoolConfig],
                 stats: PortalStats, store: Optional[RedisManager] = None,
                 resolver: Optional[VersionByteResolver] = None,
                 watcher: Optional[TemplateWatcher] = None):
        website = portal_config.website
        templates_dir = Path(website.templates_dir)

        self.portal_config = portal_config
        self.pool_configs = dict(pool_configs)
        self.stats = stats

        self.compiler = TemplateCompiler()
        self.loader = TemplateLoader(website, self.compiler)
        self.page_cache = PageCache(frame_id=website.frame_page)
        self.broadcaster = LiveBroadcaster()
        self.refresher = StatsRefresher(stats, self.page_cache, self.broadcaster,
                                        portal_config, self.pool_configs)
        self.reloader = TemplateReloader(self.loader, self.page_cache)
        self.watcher = watcher or TemplateWatcher([templates_dir, templates_dir / "pages"])

        self.store = store or RedisManager(portal_config.redis.url)
        self.resolver = resolver or VersionByteResolver(
            self.store,
            self.pool_configs,
            rpc_timeout=portal_config.rpc_timeout,
            concurrency=portal_config.resolver_concurrency,
        )
        self.key_page = KeyPage(templates_dir / "key.html", self.compiler)

        self._tasks: List[asyncio.Task] = []
        self._watching = False

    async def start(self, watch: bool = True, periodic: bool = True) -> None:
        self.page_cache.set_templates(await self.loader.load_all())

        if not await self.refresher.refresh(broadcast=False):
            logger.warning("initial_stats_unavailable",
                           retry_in=self.refresher.interval)

        if watch:
            self.watcher.start()
            self._watching = True
            self._tasks.append(asyncio.create_task(self.reloader.run(self.watcher.events())))
        if periodic:
            self._tasks.append(asyncio.create_task(self.refresher.run()))
        self._tasks.append(asyncio.create_task(self.key_page.build(self.resolver)))

        website = self.portal_config.website
        logger.info("portal_started", pages=len(list(self.page_cache.page_ids())),
                    pools=len(self.pool_configs), interval=website.stats.update_interval)

    async def stop(self) -> None:
        if self._watching:
            self.watcher.stop()
            self._watching = False

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        await self.broadcaster.close_all()
        await self.store.disconnect()
        close = getattr(self.stats, "close", None)
        if close is not None:
            await close()
        logger.info("portal_stopped")
