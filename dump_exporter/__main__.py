"""
Entry point for the dump_exporter component.
"""

import argparse
import asyncio
import logging
import sys
from typing import Awaitable, Callable

from .application.exceptions import ExporterError
from .infrastructure.containers import Container

logger = logging.getLogger(__name__)


def setup_logging(level: str):
    """Applies basic logging configuration."""
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] <%(name)s> %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


async def run_periodically(
    name: str, cycle: Callable[[], Awaitable], interval_seconds: float
):
    """
    Runs `cycle` forever, waiting `interval_seconds` between runs.

    The next run only starts after the previous one finished, so two cycles
    of the same kind never overlap. A failed cycle is logged and the last
    published metrics stay in place until the next run.
    """
    while True:
        try:
            await cycle()
        except ExporterError as e:
            logger.error(f"{name} failed: {e}")
        except Exception:
            logger.exception(f"{name} failed unexpectedly")
        await asyncio.sleep(interval_seconds)


async def run_application(args: argparse.Namespace):
    """Wires and runs the application using the DI container."""

    container = Container()
    settings = container.config()
    setup_logging(level=settings.logging.level)

    try:
        if args.clear_cache:
            container.dump_cache().clear()
            return

        if args.list_cache:
            for cache_file in container.dump_cache().cached_files():
                print(cache_file.path.name)
            return

        if args.once:
            await container.dump_export_service().run_cycle()
            return

        container.metrics_sink().serve(settings.exporter.port)

        loops = [
            run_periodically(
                "Dump cycle",
                container.dump_export_service().run_cycle,
                settings.dumps.interval_seconds,
            )
        ]
        if not args.no_api:
            loops.append(
                run_periodically(
                    "Scrape",
                    container.leaderboard_service().run_cycle,
                    settings.api.interval_seconds,
                )
            )
        await asyncio.gather(*loops)
    except ExporterError as e:
        logger.error(f"An application error occurred: {e}")
        sys.exit(1)
    finally:
        await container.http_client().aclose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Prometheus exporter for bulk data dumps"
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single dump cycle and exit.",
    )

    parser.add_argument(
        "--list-cache",
        action="store_true",
        help="List the decompressed dumps in the cache and exit.",
    )

    parser.add_argument(
        "--clear-cache",
        action="store_true",
        help="Delete every file in the cache directory and exit.",
    )

    parser.add_argument(
        "--no-api",
        action="store_true",
        help="Do not poll the live API for tags and artists.",
    )

    cli_args = parser.parse_args()

    asyncio.run(run_application(cli_args))
