"""
Page cache invalidation.

Two triggers keep the page cache current:

- a file watcher: a change to a template file recompiles that one template
  and re-renders only its page;
- a periodic statistics refresh: a new snapshot re-renders every page and
  is pushed to live viewers.
"""
import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Iterable, Mapping, Optional

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from config.settings import PoolConfig, PortalConfig
from error_handling.errors import StatisticsFetchError, TemplateSyntaxError
from monitoring.cache_metrics import STATS_REFRESH_FAILURES, TEMPLATE_RELOADS
from stats.portal_stats import PortalStats
from website.live import LiveBroadcaster, format_event
from .page_cache import PageCache
from .templates import TemplateLoader

logger = structlog.get_logger()

# event kinds after which the file holds new content
CONTENT_EVENTS = {"created", "modified", "moved", "closed"}


@dataclass(frozen=True)
class ChangeEvent:
    path: str
    kind: str


class _ForwardingHandler(FileSystemEventHandler):
    """Hands watchdog events from the observer thread to the event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue):
        self.loop = loop
        self.queue = queue

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in CONTENT_EVENTS:
            return
        path = event.dest_path if event.event_type == "moved" else event.src_path
        self.loop.call_soon_threadsafe(
            self.queue.put_nowait, ChangeEvent(os.fsdecode(path), event.event_type)
        )


class TemplateWatcher:
    """Watches template directories and yields change events."""

    def __init__(self, directories: Iterable[str], observer_factory=Observer):
        self.directories = [str(d) for d in directories]
        self.observer_factory = observer_factory
        self.queue: Optional[asyncio.Queue] = None
        self._observer = None

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        self.queue = asyncio.Queue()
        handler = _ForwardingHandler(loop, self.queue)
        self._observer = self.observer_factory()
        for directory in self.directories:
            if not os.path.isdir(directory):
                logger.warning("watch_dir_missing", directory=directory)
                continue
            self._observer.schedule(handler, directory, recursive=False)
        self._observer.start()
        logger.info("template_watcher_started", directories=self.directories)

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self.queue is not None:
            self.queue.put_nowait(None)

    async def events(self) -> AsyncIterator[ChangeEvent]:
        while True:
            event = await self.queue.get()
            if event is None:
                return
            yield event


class TemplateReloader:
    """Recompiles a changed template and re-renders its page."""

    def __init__(self, loader: TemplateLoader, page_cache: PageCache):
        self.loader = loader
        self.page_cache = page_cache

    async def handle(self, event: ChangeEvent) -> bool:
        file_name = Path(event.path).name
        if self.loader.page_id_for(file_name) is None:
            return False

        try:
            page_id, render_fn = await self.loader.load(file_name)
        except TemplateSyntaxError as e:
            TEMPLATE_RELOADS.labels(outcome="syntax_error").inc()
            logger.error("template_syntax_error", file=file_name, line=e.lineno, error=str(e))
            return False
        except OSError as e:
            TEMPLATE_RELOADS.labels(outcome="read_error").inc()
            logger.error("template_read_failed", file=file_name, error=str(e))
            return False

        self.page_cache.rebuild_one(page_id, render_fn)
        TEMPLATE_RELOADS.labels(outcome="ok").inc()
        logger.info("page_reloaded", file=file_name, page=page_id)
        return True

    async def run(self, events: AsyncIterator[ChangeEvent]) -> None:
        # one event at a time, so the latest file content always wins
        async for event in events:
            await self.handle(event)


class StatsRefresher:
    """Fetches fresh statistics, rebuilds every page and pushes the snapshot to live viewers."""

    def __init__(self, stats: PortalStats, page_cache: PageCache, broadcaster: LiveBroadcaster,
                 portal_config: PortalConfig, pool_configs: Mapping[str, PoolConfig]):
        self.stats = stats
        self.page_cache = page_cache
        self.broadcaster = broadcaster
        self.portal_config = portal_config
        self.pool_configs = pool_configs
        self.interval = portal_config.website.stats.update_interval
        self.timeout = portal_config.website.stats.fetch_timeout
        self._lock = asyncio.Lock()

    async def fetch(self) -> Optional[dict]:
        try:
            return await asyncio.wait_for(self.stats.get_global_stats(), self.timeout)
        except asyncio.TimeoutError:
            STATS_REFRESH_FAILURES.inc()
            logger.warning("stats_refresh_failed", error="timeout", timeout=self.timeout)
        except StatisticsFetchError as e:
            STATS_REFRESH_FAILURES.inc()
            logger.warning("stats_refresh_failed", error=str(e))
        return None

    async def refresh(self, broadcast: bool = True) -> bool:
        """
        Run one refresh.

        Returns:
            False if statistics could not be fetched; the cache is left untouched
        """
        async with self._lock:
            snapshot = await self.fetch()
            if snapshot is None:
                return False
            self.page_cache.rebuild_all(snapshot, self.portal_config, self.pool_configs)

        if broadcast:
            delivered = await self.broadcaster.broadcast(format_event(snapshot))
            logger.debug("stats_broadcast", connections=delivered)
        return True

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.refresh()
            except Exception as e:
                logger.error("stats_refresh_error", error=str(e), error_type=type(e).__name__)
