import argparse

import structlog
import uvicorn

from config.logging import configure_logging
from config.settings import PortalSettings, load_settings
from stats.portal_stats import HttpPortalStats
from .app import create_app
from .portal import PortalService

logger = structlog.get_logger()


def build_app(settings: PortalSettings = None):
    portal_config, pool_configs = load_settings(settings)
    stats = HttpPortalStats(
        portal_config.website.stats.source_url,
        timeout=portal_config.website.stats.fetch_timeout
    )
    service = PortalService(portal_config, pool_configs, stats)
    return create_app(service), portal_config


def main(argv=None):
    parser = argparse.ArgumentParser(description="Pool portal website")
    parser.add_argument("--config", help="Path to the portal config JSON file")
    parser.add_argument("--pools", help="Directory of pool config JSON files")
    parser.add_argument("--host", help="Override the configured listen host")
    parser.add_argument("--port", type=int, help="Override the configured listen port")
    parser.add_argument("--log-level", default="INFO", help="Log level")
    parser.add_argument("--console-log", action="store_true", help="Human readable logs instead of JSON")
    args = parser.parse_args(argv)

    configure_logging(args.log_level.upper(), json_output=not args.console_log)

    overrides = {}
    if args.config:
        overrides["portal_config_file"] = args.config
    if args.pools:
        overrides["pool_configs_dir"] = args.pools
    app, portal_config = build_app(PortalSettings(**overrides))

    host = args.host or portal_config.website.host
    port = args.port or portal_config.website.port
    logger.info("website_starting", host=host, port=port)
    try:
        uvicorn.run(app, host=host, port=port, log_config=None)
    except OSError as e:
        logger.error("website_start_failed", host=host, port=port, error=str(e),
                     hint="the port is either in use or you do not have permission")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
