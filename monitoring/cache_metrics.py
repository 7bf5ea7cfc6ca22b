from prometheus_client import Counter, Gauge

# Page cache metrics
PAGE_REBUILDS = Counter(
    'portal_page_rebuilds_total',
    'Total number of page cache rebuilds',
    ['kind']
)
PAGE_RENDER_ERRORS = Counter(
    'portal_page_render_errors_total',
    'Total number of page renders that raised',
    ['page']
)
PAGE_CACHE_GENERATION = Gauge(
    'portal_page_cache_generation',
    'Generation number of the last published page cache entry'
)
TEMPLATE_RELOADS = Counter(
    'portal_template_reloads_total',
    'Total number of template reloads after a file change',
    ['outcome']
)

# Statistics refresh metrics
STATS_REFRESH_FAILURES = Counter(
    'portal_stats_refresh_failures_total',
    'Total number of periodic statistics fetches that failed'
)

# Live update metrics
LIVE_CONNECTIONS = Gauge(
    'portal_live_connections',
    'Number of open live statistics connections'
)
LIVE_BROADCASTS = Counter(
    'portal_live_broadcasts_total',
    'Total number of live statistics broadcasts'
)
LIVE_WRITE_FAILURES = Counter(
    'portal_live_write_failures_total',
    'Total number of failed writes to live connections'
)

# Version byte resolver metrics
VERSION_BYTES_RESOLVED = Counter(
    'portal_version_bytes_resolved_total',
    'Version byte pairs by resolution outcome',
    ['outcome']
)
