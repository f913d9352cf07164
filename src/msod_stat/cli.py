"""Command-line interface for msod_stat."""

from __future__ import annotations

import logging
import os
import sys
import threading
from typing import IO

import click

from msod_stat import __version__
from msod_stat.config import load_config
from msod_stat.graph.client import GraphApiError, GraphAuthError
from msod_stat.orchestration.crawler import CrawlCancelled, CrawlError
from msod_stat.orchestration.runner import drive_analyzer_from_config
from msod_stat.report.renderer import render_drive_report

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def read_credentials(stream: IO[str]) -> tuple[str, str]:
    """Read the client ID and client secret from the first two lines of a stream."""
    lines = [line.strip() for line in stream.read().splitlines()]
    if len(lines) < 2 or not lines[0] or not lines[1]:
        raise click.BadParameter("expected client ID and client secret on separate lines")
    return lines[0], lines[1]


@click.command()
@click.version_option(version=__version__, prog_name="msod-stat")
@click.option(
    "--credentials",
    type=click.File("r"),
    default=None,
    help="File with the client ID and client secret on two lines ('-' for stdin).",
)
@click.option(
    "--drive-id",
    default=None,
    help="Report only this drive; MSOD_DRIVE_USER is then not needed.",
)
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Concurrent requests.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(
    credentials: IO[str] | None, drive_id: str | None, workers: int | None, verbose: bool
) -> None:
    """Report storage statistics and duplicate files for OneDrive drives."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )

    env = dict(os.environ)
    if credentials is not None:
        env["MSOD_CLIENT_ID"], env["MSOD_CLIENT_SECRET"] = read_credentials(credentials)
    if drive_id:
        env["MSOD_DRIVE_ID"] = drive_id
    if workers is not None:
        env["MSOD_MAX_WORKERS"] = str(workers)

    try:
        config = load_config(env)
    except KeyError as exc:
        raise click.UsageError(f"missing environment variable {exc.args[0]}") from exc

    cancel_event = threading.Event()
    analyzer = drive_analyzer_from_config(config, cancel_event=cancel_event)
    try:
        analyzer.check_auth()
        for report in analyzer.analyze_all():
            click.echo(render_drive_report(report))
    except KeyboardInterrupt:
        cancel_event.set()
        logger.warning("[main] interrupted; no report produced")
        sys.exit(EXIT_INTERRUPTED)
    except CrawlCancelled:
        logger.warning("[main] crawl cancelled; no report produced")
        sys.exit(EXIT_INTERRUPTED)
    except (GraphAuthError, GraphApiError, CrawlError):
        logger.error("[main] drive analysis failed", exc_info=True)
        sys.exit(EXIT_FAILURE)
