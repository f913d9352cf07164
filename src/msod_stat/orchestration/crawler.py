"""Tree crawler — enumerates every item of a drive through paginated listings."""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Iterator
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Protocol

from msod_stat.graph.models import ItemRecord, ListingPage
from msod_stat.graph.retry import (
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    RetryCancelled,
    call_with_retry,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4
ROOT_FOLDER_ID = "root"


class FolderLister(Protocol):
    """Anything that can fetch one page of a folder's children."""

    def list_children(
        self, folder_id: str, folder_path: str = "", token: str | None = None
    ) -> ListingPage: ...


class CrawlError(Exception):
    """Raised when a folder cannot be listed completely (subtree failure)."""

    def __init__(self, folder_path: str, message: str) -> None:
        super().__init__(f"Failed to list folder '{folder_path or '/'}': {message}")
        self.folder_path = folder_path


class CrawlCancelled(Exception):
    """Raised when a crawl is stopped through its cancel event."""


@dataclass(frozen=True)
class _PageRequest:
    """One pending page fetch: a folder plus its continuation token."""

    folder_id: str
    folder_path: str
    token: str | None = None


class TreeCrawler:
    """Enumerates all files and folders below a root folder.

    Pending page requests live in an explicit work queue drained by the
    generator thread, which alone mutates the queue and emits records.
    Up to max_workers requests run at once on a thread pool. A folder's
    next page is requested only after the page carrying its token has
    returned, and goes to the front of the queue.
    """

    def __init__(
        self,
        lister: FolderLister,
        max_workers: int = DEFAULT_MAX_WORKERS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Initialise the crawler.

        Args:
            lister: Listing client used for every page request.
            max_workers: Maximum number of concurrent page requests.
            max_retries: Retries per page for transient failures.
            retry_delay: Delay in seconds before the first retry of a page.
            backoff_factor: Multiplier applied to the delay after each retry.
            cancel_event: Event that stops the crawl when set.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._lister = lister
        self._max_workers = max_workers
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._backoff_factor = backoff_factor
        self._cancel = cancel_event or threading.Event()
        # Set once the crawl ends for any reason; workers stop retrying.
        self._stop = threading.Event()
        self._started = False

    def cancel(self) -> None:
        """Request cancellation; the running crawl raises CrawlCancelled."""
        self._cancel.set()
        self._stop.set()

    def crawl(self, root_id: str = ROOT_FOLDER_ID) -> Iterator[ItemRecord]:
        """Yield every item below root_id exactly once, in no particular order.

        The crawl can only be run once per crawler instance.

        Args:
            root_id: Graph item ID of the folder to start from.

        Raises:
            CrawlError: If a folder cannot be listed after retries.
            CrawlCancelled: If the cancel event is set during the crawl.
            RuntimeError: If crawl() was already called on this crawler.
        """
        if self._started:
            raise RuntimeError("TreeCrawler.crawl() can only be called once")
        self._started = True
        return self._run(root_id)

    def _run(self, root_id: str) -> Iterator[ItemRecord]:
        queue: deque[_PageRequest] = deque([_PageRequest(root_id, "")])
        in_flight: dict[Future[ListingPage], _PageRequest] = {}
        folder_count = 0
        item_count = 0

        logger.info(
            "[crawl] starting crawl; root_id:%s;max_workers:%d", root_id, self._max_workers
        )
        executor = ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="msod-crawl"
        )
        try:
            while queue or in_flight:
                self._check_cancelled()
                while queue and len(in_flight) < self._max_workers:
                    request = queue.popleft()
                    in_flight[executor.submit(self._fetch_page, request)] = request

                done, _ = wait(in_flight, timeout=0.5, return_when=FIRST_COMPLETED)
                for future in done:
                    request = in_flight.pop(future)
                    page = self._page_result(future, request)
                    if page.next_token is not None:
                        queue.appendleft(
                            _PageRequest(request.folder_id, request.folder_path, page.next_token)
                        )
                    for record in page.items:
                        if record.is_folder:
                            folder_count += 1
                            queue.append(_PageRequest(record.id, record.path))
                        item_count += 1
                        yield record
            self._check_cancelled()
        finally:
            self._stop.set()
            for future in in_flight:
                future.cancel()
            queue.clear()
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(
            "[crawl] crawl complete; item_count:%d;folder_count:%d", item_count, folder_count
        )

    def _fetch_page(self, request: _PageRequest) -> ListingPage:
        """Fetch one page, retrying transient failures with the same token.

        Once the crawl has ended no further request is sent, and a pending
        retry wait is cut short.
        """
        description = request.folder_path or "/"

        def attempt() -> ListingPage:
            if self._stop.is_set() or self._cancel.is_set():
                raise RetryCancelled(description)
            return self._lister.list_children(
                request.folder_id, request.folder_path, request.token
            )

        return call_with_retry(
            attempt,
            max_retries=self._max_retries,
            retry_delay=self._retry_delay,
            backoff_factor=self._backoff_factor,
            cancel_event=self._stop,
            description=description,
        )

    def _page_result(self, future: Future[ListingPage], request: _PageRequest) -> ListingPage:
        try:
            return future.result()
        except RetryCancelled as exc:
            raise CrawlCancelled("crawl cancelled") from exc
        except Exception as exc:
            logger.error(
                "[crawl] folder listing failed; folder_path:%s;error:%s",
                request.folder_path or "/",
                exc,
            )
            raise CrawlError(request.folder_path, str(exc)) from exc

    def _check_cancelled(self) -> None:
        if self._cancel.is_set():
            logger.warning("[crawl] crawl cancelled; pending work dropped")
            raise CrawlCancelled("crawl cancelled")
