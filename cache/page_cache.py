"""
Rendered page cache.

Holds, for every page id, the rendered page body and the body wrapped in
the site frame. Entries are immutable; a rebuild computes replacement
entries off to the side and publishes them by swapping the whole mapping,
so a reader either sees the old mapping or the new one.
"""
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional

import structlog
from markupsafe import Markup

from config.settings import PoolConfig, PortalConfig
from error_handling.errors import StatisticsFetchError
from monitoring.cache_metrics import PAGE_CACHE_GENERATION, PAGE_REBUILDS, PAGE_RENDER_ERRORS
from .templates import RenderFunction

logger = structlog.get_logger()


@dataclass(frozen=True)
class RenderInputs:
    """The runtime state a rebuild renders from."""
    stats: Mapping[str, Any]
    portal_config: PortalConfig
    pool_configs: Mapping[str, PoolConfig]


@dataclass(frozen=True)
class PageEntry:
    """Body and framed page produced by the same rebuild."""
    body: str
    framed: str
    generation: int


def canonical_path(page_id: str) -> str:
    return "/" + ("" if page_id == "" else page_id + ".html")


class PageCache:
    """Page bodies and framed pages, keyed by page id."""

    def __init__(self, frame_id: str = "index"):
        self.frame_id = frame_id
        self._templates: Dict[str, RenderFunction] = {}
        self._entries: Mapping[str, PageEntry] = MappingProxyType({})
        self._inputs: Optional[RenderInputs] = None
        self._generation = 0
        self._lock = threading.RLock()

    @property
    def generation(self) -> int:
        return self._generation

    def page_ids(self) -> Iterable[str]:
        return [page_id for page_id in self._templates if page_id != self.frame_id]

    def set_templates(self, templates: Mapping[str, RenderFunction]) -> None:
        """Install render functions without rendering anything."""
        with self._lock:
            self._templates.update(templates)

    def get(self, page_id: str) -> Optional[str]:
        entry = self._entries.get(page_id)
        return entry.framed if entry else None

    def get_raw(self, page_id: str) -> Optional[str]:
        entry = self._entries.get(page_id)
        return entry.body if entry else None

    def entry(self, page_id: str) -> Optional[PageEntry]:
        return self._entries.get(page_id)

    def rebuild_all(self, stats: Mapping[str, Any], portal_config: PortalConfig,
                    pool_configs: Mapping[str, PoolConfig]) -> int:
        """Render every page from a new statistics snapshot and publish them together."""
        inputs = RenderInputs(stats=stats, portal_config=portal_config, pool_configs=pool_configs)
        with self._lock:
            self._inputs = inputs
            if self.frame_id not in self._templates:
                logger.warning("frame_template_missing", frame=self.frame_id)
                return self._generation
            generation = self._generation + 1
            entries = self._render_pages(self.page_ids(), inputs, generation)
            self._publish(entries, generation)
        PAGE_REBUILDS.labels(kind="all").inc()
        logger.debug("pages_rebuilt", generation=generation, pages=len(entries))
        return generation

    def rebuild_one(self, page_id: str, render_fn: RenderFunction) -> Optional[PageEntry]:
        """
        Replace the render function of one page and re-render only that page.

        Uses the snapshot of the last full rebuild. Replacing the frame
        re-renders every page, since every framed page embeds it.
        """
        with self._lock:
            self._templates[page_id] = render_fn
            if self._inputs is None:
                return None

            generation = self._generation + 1
            if page_id == self.frame_id:
                fresh = self._render_pages(self.page_ids(), self._inputs, generation)
            else:
                fresh = self._render_pages([page_id], self._inputs, generation)

            entries = dict(self._entries)
            entries.update(fresh)
            self._publish(entries, generation)
        PAGE_REBUILDS.labels(kind="one").inc()
        logger.debug("page_rebuilt", page=page_id, generation=generation)
        return self._entries.get(page_id)

    def render_scoped(self, page_id: str, scoped_stats: Mapping[str, Any]) -> Optional[str]:
        """
        Render one framed page with request-scoped statistics layered over
        the last snapshot. The result is returned, never published.

        Raises:
            StatisticsFetchError: If the scoped statistics are not a mapping
        """
        if not isinstance(scoped_stats, Mapping):
            raise StatisticsFetchError(
                f"expected statistics object for {page_id!r}, got {type(scoped_stats).__name__}"
            )
        with self._lock:
            inputs = self._inputs
            if inputs is None or page_id not in self._templates:
                return None
            private = RenderInputs(
                stats={**inputs.stats, **scoped_stats},
                portal_config=inputs.portal_config,
                pool_configs=inputs.pool_configs,
            )
            entry = self._render_pages([page_id], private, self._generation).get(page_id)
        PAGE_REBUILDS.labels(kind="scoped").inc()
        return entry.framed if entry else None

    def _render_pages(self, page_ids: Iterable[str], inputs: RenderInputs,
                      generation: int) -> Dict[str, PageEntry]:
        frame = self._templates.get(self.frame_id)
        if frame is None:
            logger.warning("frame_template_missing", frame=self.frame_id)
            return {}

        portal_context = inputs.portal_config.template_context()
        pool_context = {name: pool.template_context() for name, pool in inputs.pool_configs.items()}

        entries = {}
        for page_id in page_ids:
            render_fn = self._templates.get(page_id)
            if render_fn is None:
                continue
            try:
                body = render_fn.render({
                    "canonical": canonical_path(page_id),
                    "pool_configs": pool_context,
                    "stats": inputs.stats,
                    "portal_config": portal_context,
                })
                framed = frame.render({
                    "page": Markup(body),
                    "selected": page_id,
                    "stats": inputs.stats,
                    "pool_configs": pool_context,
                    "portal_config": portal_context,
                })
            except Exception as e:
                # the previous entry for this page stays in place
                PAGE_RENDER_ERRORS.labels(page=page_id).inc()
                logger.error("page_render_failed", page=page_id, error=str(e))
                previous = self._entries.get(page_id)
                if previous is not None:
                    entries[page_id] = previous
                continue
            entries[page_id] = PageEntry(body=body, framed=framed, generation=generation)
        return entries

    def _publish(self, entries: Mapping[str, PageEntry], generation: int) -> None:
        self._entries = MappingProxyType(dict(entries))
        self._generation = generation
        PAGE_CACHE_GENERATION.set(generation)
