#!/usr/bin/env python3
"""
confroad - config sync entry point

Usage:
    python -m confroad                    # Start with default config
    python -m confroad --config my.yaml   # Use custom config file
    python -m confroad --dry-run          # Print resolved config and exit
    python -m confroad --once             # Sync once, print document ids, exit
    python -m confroad --show-cache       # List cached documents
    python -m confroad --verbose          # Enable debug logging
"""

import argparse
import asyncio
import os
import sys

import yaml

from confroad import __version__
from confroad.common.config import BootstrapConfig, load_bootstrap_config
from confroad.common.exceptions import BootstrapParseError, StartupError
from confroad.common.logging_setup import configure_logging, get_service_logger
from confroad.services.config.cache import ConfigCache
from confroad.services.config.engine import SyncEngine
from confroad.services.config.service import DEFAULT_CONFIG_PATH, ConfigService
from confroad.services.config.source import NacosHttpSource

logger = get_service_logger("main")


def print_startup_banner(config: BootstrapConfig) -> None:
    """Print startup information."""
    base = config.base_config
    print()
    print("=" * 60)
    print("  CONFROAD - CONFIG SYNC")
    print("=" * 60)
    print()
    print(f"  Server:    {config.nacos_server.base_url}")
    print(f"  Namespace: {config.nacos_client.namespace_id or 'public'}")
    print(f"  Group:     {base.group}")
    print(f"  Search:    {base.search_pattern.value} {base.data_id or '*'} (page size {base.page_size})")
    print(f"  Cache dir: {base.cache_dir}")
    print()
    print("=" * 60)
    print()


def show_cache(config: BootstrapConfig) -> None:
    """Print what the local cache currently mirrors."""
    cache = ConfigCache(config.base_config.cache_dir)
    ids = cache.list_ids()
    if not ids:
        print(f"No cached documents in {cache.cache_dir}")
        return
    for document_id in ids:
        content = cache.read(document_id)
        size = len(content.encode("utf-8")) if content is not None else 0
        print(f"{document_id}\t{size} bytes")


async def sync_once(config: BootstrapConfig) -> list[str]:
    """Run discovery and the initial sync, then stop."""
    engine = await SyncEngine.create(config, NacosHttpSource.from_config(config))
    try:
        return engine.store.keys()
    finally:
        await engine.stop()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="confroad - configuration sync engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m confroad                    # Start with default config
    python -m confroad --config my.yaml   # Use custom config file
    python -m confroad --dry-run          # Print config and exit
    python -m confroad --once             # Sync once and exit
    python -m confroad -v                 # Enable debug logging
        """
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=os.environ.get("CONFROAD_CONFIG", DEFAULT_CONFIG_PATH),
        help=f"Path to bootstrap file (default: {DEFAULT_CONFIG_PATH})"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print resolved configuration and exit without syncing"
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Sync once, print document ids and exit"
    )

    parser.add_argument(
        "--show-cache",
        action="store_true",
        help="Print cached document ids and sizes without contacting the server"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (debug) logging"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"confroad {__version__}"
    )

    args = parser.parse_args()

    try:
        config = load_bootstrap_config(args.config)
    except BootstrapParseError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.dry_run:
        print(yaml.safe_dump(config.to_dict(), sort_keys=False), end="")
        return

    if args.show_cache:
        show_cache(config)
        return

    log_level = "debug" if args.verbose else config.nacos_client.log_level
    configure_logging(log_level, config.nacos_client.log_dir)

    print_startup_banner(config)

    try:
        if args.once:
            for document_id in asyncio.run(sync_once(config)):
                print(document_id)
        else:
            asyncio.run(ConfigService(config).run())
    except StartupError as e:
        logger.critical(f"Startup failed: {e}")
        sys.exit(1)
    except OSError as e:
        logger.critical(f"HTTP server failed: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
