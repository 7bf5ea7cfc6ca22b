"""
Pool portal caching module.

Derived artifacts served by the portal website: rendered pages kept
current by template file changes and periodic statistics refreshes, and
coin version bytes resolved once from redis or the coin daemons.
"""

from .templates import RenderFunction, TemplateCompiler, TemplateLoader
from .page_cache import PageCache, PageEntry, RenderInputs
from .redis_manager import RedisManager
from .version_bytes import (
    COIN_VERSION_BYTES_KEY,
    KeyPage,
    VersionBytePair,
    VersionByteResolver
)
from .invalidation import (
    ChangeEvent,
    StatsRefresher,
    TemplateReloader,
    TemplateWatcher
)

__all__ = [
    'RenderFunction',
    'TemplateCompiler',
    'TemplateLoader',
    'PageCache',
    'PageEntry',
    'RenderInputs',
    'RedisManager',
    'COIN_VERSION_BYTES_KEY',
    'KeyPage',
    'VersionBytePair',
    'VersionByteResolver',
    'ChangeEvent',
    'StatsRefresher',
    'TemplateReloader',
    'TemplateWatcher'
]
