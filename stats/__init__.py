from .portal_stats import HttpPortalStats, PortalStats

__all__ = ['HttpPortalStats', 'PortalStats']
