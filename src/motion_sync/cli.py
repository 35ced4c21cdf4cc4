# src/motion_sync/cli.py
"""Command-line interface for the motion-sync tool."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import click
from dotenv import load_dotenv
from rich.logging import RichHandler

from motion_sync.config import AppConfig, Config
from motion_sync.exceptions import MotionSyncError
from motion_sync.signals import GracefulShutdown

logger: logging.Logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    """Configure rich-based logging for the application."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # Silence noisy loggers
    for logger_name in ["botocore", "aiobotocore", "aiohttp", "urllib3"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


async def main_async(config: Config) -> None:
    """
    Asynchronously execute the sync pipeline.

    Args:
        config (Config): The application configuration.
    """
    # Lazily import to keep the CLI fast
    from motion_sync.pipeline import MotionSyncPipeline

    shutdown_manager: GracefulShutdown = GracefulShutdown()
    async with shutdown_manager as shutdown_event:
        pipeline: MotionSyncPipeline = MotionSyncPipeline(config, shutdown_event)
        await pipeline.run()


@click.command(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option(
    "--status-file",
    type=click.Path(file_okay=True, dir_okay=False, writable=True, resolve_path=True),
    default="status.json",
    help="JSON file recording every stored object and its replication status.",
    show_default=True,
)
@click.option(
    "--tick-interval",
    type=click.FloatRange(min=0.1),
    default=10.0,
    help="Seconds between status reconciliation passes.",
    show_default=True,
)
@click.option(
    "--chunk-size",
    type=click.IntRange(min=1),
    default=1024 * 1024,
    help="Read size, in bytes, for streaming objects from the source bucket.",
    show_default=True,
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Set the logging level.",
    show_default=True,
)
def cli(**kwargs: Any) -> None:
    """
    Stream objects from an S3 bucket into Motion and track their replication.

    Every object in the source bucket that is not yet recorded in the status
    file is uploaded, one at a time, with its SHA2-256 computed in flight.
    The replication status of every recorded object is then polled and any
    change is written back to the status file, until interrupted.

    The Motion endpoint and source bucket must be set via environment
    variables. See the .env.example file for required variables.
    """
    load_dotenv()
    setup_logging(kwargs["log_level"])

    try:
        app_config: AppConfig = AppConfig(
            status_file=Path(kwargs["status_file"]),
            tick_interval_s=kwargs["tick_interval"],
            chunk_size=kwargs["chunk_size"],
        )
        config: Config = Config(app=app_config)

        asyncio.run(main_async(config))
        logger.info("Stopped cleanly.")
    except MotionSyncError as e:
        logger.critical(f"A critical application error occurred: {e}")
        sys.exit(1)
    except asyncio.CancelledError:
        logger.warning("Shutdown signal received. Exiting.")
    except Exception:
        logger.critical(
            "An unexpected error caused the application to fail:", exc_info=True
        )
        sys.exit(1)


if __name__ == "__main__":
    cli()
