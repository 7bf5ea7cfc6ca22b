"""Portal configuration and logging setup."""

from .settings import (
    DaemonConfig,
    PoolConfig,
    PortalConfig,
    PortalSettings,
    load_settings
)

__all__ = [
    'DaemonConfig',
    'PoolConfig',
    'PortalConfig',
    'PortalSettings',
    'load_settings'
]
