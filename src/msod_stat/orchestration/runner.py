"""Drive analyzer — fetches drive metadata, crawls, and aggregates results."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from msod_stat.analysis.duplicates import DuplicateGroup, DuplicateGrouper, SizeAnomaly
from msod_stat.analysis.stats import Stats, StatsAccumulator
from msod_stat.graph.client import GraphClient, graph_client_from_config
from msod_stat.graph.listing import DEFAULT_PAGE_SIZE, DriveListingClient, list_user_drives
from msod_stat.graph.models import DriveInfo
from msod_stat.graph.retry import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    RetryCancelled,
    call_with_retry,
)
from msod_stat.orchestration.crawler import (
    DEFAULT_MAX_WORKERS,
    ROOT_FOLDER_ID,
    CrawlCancelled,
    TreeCrawler,
)

if TYPE_CHECKING:
    from msod_stat.config import AppConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class DriveReport:
    """Everything known about a drive after a complete crawl."""

    drive: DriveInfo
    stats: Stats
    duplicates: list[DuplicateGroup] = field(default_factory=list)
    anomalies: list[SizeAnomaly] = field(default_factory=list)


class DriveAnalyzer:
    """Runs the metadata-fetch, crawl and aggregation pipeline for drives."""

    def __init__(
        self,
        graph_client: GraphClient,
        drive_user: str,
        drive_id: str | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_workers: int = DEFAULT_MAX_WORKERS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        cancel_event: threading.Event | None = None,
        listing_factory: Callable[[str], DriveListingClient] | None = None,
    ) -> None:
        """Initialise the analyzer.

        Args:
            graph_client: Authenticated GraphClient shared by every request.
            drive_user: UPN or object ID of the user whose drives are listed.
            drive_id: Analyze only this drive; None means every drive of drive_user.
            page_size: Children requested per listing page.
            max_workers: Maximum concurrent listing requests.
            max_retries: Retries per request for transient failures.
            retry_delay: Delay in seconds before the first retry.
            cancel_event: Event that stops a running analysis when set.
            listing_factory: Builds the listing client for a drive ID; defaults
                to a DriveListingClient over graph_client.
        """
        self._graph = graph_client
        self._drive_user = drive_user
        self._drive_id = drive_id
        self._page_size = page_size
        self._max_workers = max_workers
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._cancel = cancel_event or threading.Event()
        self._listing_factory = listing_factory or self._default_listing

    def _default_listing(self, drive_id: str) -> DriveListingClient:
        return DriveListingClient(self._graph, drive_id, page_size=self._page_size)

    def cancel(self) -> None:
        """Stop the running analysis; analyze() raises CrawlCancelled."""
        self._cancel.set()

    def check_auth(self) -> None:
        """Fail fast with GraphAuthError before any drive is crawled."""
        self._graph.check_auth()

    def _retry(self, func: Callable[[], T], description: str) -> T:
        try:
            return call_with_retry(
                func,
                max_retries=self._max_retries,
                retry_delay=self._retry_delay,
                cancel_event=self._cancel,
                description=description,
            )
        except RetryCancelled as exc:
            raise CrawlCancelled("analysis cancelled") from exc

    def list_drive_ids(self) -> list[str]:
        """Return the configured drive, or every drive of the configured user."""
        if self._drive_id:
            return [self._drive_id]
        return self._retry(lambda: list_user_drives(self._graph, self._drive_user), "drives")

    def analyze(self, drive_id: str) -> DriveReport:
        """Fetch metadata for a drive, crawl it, and aggregate the results.

        Each crawled record is passed to both the stats accumulator and the
        duplicate grouper before the next one is pulled from the crawl.

        Args:
            drive_id: Graph drive ID.

        Returns:
            DriveReport for the fully crawled drive.

        Raises:
            CrawlError: If part of the drive could not be listed.
            CrawlCancelled: If the analysis was cancelled; no report is produced.
            GraphApiError: If drive metadata cannot be read.
        """
        listing = self._listing_factory(drive_id)
        drive = self._retry(listing.get_drive_info, f"drive {drive_id}")
        logger.info(
            "[analyze] fetched drive metadata; drive_id:%s;drive_type:%s",
            drive.id,
            drive.drive_type,
        )

        crawler = TreeCrawler(
            listing,
            max_workers=self._max_workers,
            max_retries=self._max_retries,
            retry_delay=self._retry_delay,
            cancel_event=self._cancel,
        )
        stats = StatsAccumulator()
        grouper = DuplicateGrouper()
        for record in crawler.crawl(ROOT_FOLDER_ID):
            stats.add(record)
            grouper.add(record)

        report = DriveReport(
            drive=drive,
            stats=stats.finalize(),
            duplicates=grouper.groups(),
            anomalies=grouper.anomalies,
        )
        logger.info(
            "[analyze] analysis complete; drive_id:%s;folders:%d;files:%d;duplicate_groups:%d",
            drive.id,
            report.stats.folders,
            report.stats.files,
            len(report.duplicates),
        )
        return report

    def analyze_all(self) -> Iterator[DriveReport]:
        """Analyze each drive from list_drive_ids() in turn."""
        for drive_id in self.list_drive_ids():
            yield self.analyze(drive_id)


def drive_analyzer_from_config(
    config: AppConfig, cancel_event: threading.Event | None = None
) -> DriveAnalyzer:
    """Construct a DriveAnalyzer from application configuration.

    Args:
        config: Application configuration instance.
        cancel_event: Optional event used to cancel the analysis.

    Returns:
        Configured DriveAnalyzer instance.
    """
    return DriveAnalyzer(
        graph_client=graph_client_from_config(config),
        drive_user=config.drive_user,
        drive_id=config.drive_id,
        page_size=config.page_size,
        max_workers=config.max_workers,
        max_retries=config.max_retries,
        retry_delay=config.retry_delay,
        cancel_event=cancel_event,
    )
