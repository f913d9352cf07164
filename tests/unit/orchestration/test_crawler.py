"""Unit tests for orchestration/crawler.py — TreeCrawler behaviour."""

import threading
import time
from collections import Counter

import pytest
from helpers import SAMPLE_TREE, FakeDrive

from msod_stat.graph.client import GraphApiError, GraphTransientError
from msod_stat.graph.models import ItemKind, ListingPage
from msod_stat.orchestration.crawler import CrawlCancelled, CrawlError, TreeCrawler

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _crawler(drive: object, **kwargs: object) -> TreeCrawler:
    kwargs.setdefault("retry_delay", 0.0)
    return TreeCrawler(drive, **kwargs)  # type: ignore[arg-type]


def _paths(records: list) -> Counter:  # type: ignore[type-arg]
    return Counter(r.path for r in records)


# ---------------------------------------------------------------------------
# Enumeration
# ---------------------------------------------------------------------------


class TestEnumeration:
    @pytest.mark.parametrize("page_size", [1, 2, 3, 100])
    @pytest.mark.parametrize("max_workers", [1, 4])
    def test_every_item_yielded_exactly_once(self, page_size: int, max_workers: int) -> None:
        drive = FakeDrive(SAMPLE_TREE, page_size=page_size)

        records = list(_crawler(drive, max_workers=max_workers).crawl())

        paths = _paths(records)
        assert all(count == 1 for count in paths.values())
        files = [r for r in records if r.kind is ItemKind.FILE]
        folders = [r for r in records if r.kind is ItemKind.FOLDER]
        assert len(files) == drive.file_count
        assert len(folders) == drive.folder_count
        assert sum(r.size for r in files) == drive.total_bytes

    def test_paths_are_relative_to_root(self) -> None:
        drive = FakeDrive(SAMPLE_TREE, page_size=2)

        paths = set(_paths(list(_crawler(drive).crawl())))

        assert "a.txt" in paths
        assert "Docs/Deep/Deeper/d.txt" in paths
        assert "Docs/Empty" in paths

    def test_empty_drive_yields_nothing(self) -> None:
        drive = FakeDrive({})

        assert list(_crawler(drive).crawl()) == []
        assert drive.calls == [("root", None)]

    def test_empty_folder_is_listed_once_and_counted(self) -> None:
        drive = FakeDrive({"Empty": {}})

        records = list(_crawler(drive).crawl())

        assert [r.path for r in records] == ["Empty"]
        assert drive.calls.count(("root/Empty", None)) == 1

    def test_each_page_requested_once(self) -> None:
        drive = FakeDrive(SAMPLE_TREE, page_size=2)

        list(_crawler(drive, max_workers=4).crawl())

        assert all(count == 1 for count in Counter(drive.calls).values())

    def test_folder_pages_are_requested_in_order(self) -> None:
        drive = FakeDrive(SAMPLE_TREE, page_size=1)

        list(_crawler(drive, max_workers=4).crawl())

        photo_tokens = [token for folder, token in drive.calls if folder == "root/Photos"]
        assert photo_tokens == [None, "1", "2", "3", "4"]

    def test_children_listed_only_after_parent_yields_them(self) -> None:
        drive = FakeDrive(SAMPLE_TREE, page_size=1)
        crawl = _crawler(drive, max_workers=1).crawl()

        first = next(crawl)

        assert first.path == "a.txt"
        assert all(folder == "root" for folder, _ in drive.calls)
        crawl.close()

    def test_crawl_cannot_be_restarted(self) -> None:
        crawler = _crawler(FakeDrive(SAMPLE_TREE))
        list(crawler.crawl())

        with pytest.raises(RuntimeError):
            crawler.crawl()

    def test_rejects_zero_workers(self) -> None:
        with pytest.raises(ValueError):
            TreeCrawler(FakeDrive({}), max_workers=0)


# ---------------------------------------------------------------------------
# Retry and failure
# ---------------------------------------------------------------------------


class TestRetry:
    def test_failed_continuation_is_retried_with_same_token(self) -> None:
        reference = list(_crawler(FakeDrive(SAMPLE_TREE, page_size=100)).crawl())
        drive = FakeDrive(SAMPLE_TREE, page_size=2, failures={("root/Photos", "2"): 1})

        records = list(_crawler(drive, max_retries=3).crawl())

        assert _paths(records) == _paths(reference)
        photo_calls = [token for folder, token in drive.calls if folder == "root/Photos"]
        assert photo_calls == [None, "2", "2", "4"]

    def test_exhausted_retries_raise_crawl_error(self) -> None:
        drive = FakeDrive(SAMPLE_TREE, page_size=2, failures={("root/Docs", None): 10})

        with pytest.raises(CrawlError) as exc_info:
            list(_crawler(drive, max_retries=2).crawl())

        assert exc_info.value.folder_path == "Docs"
        assert drive.calls.count(("root/Docs", None)) == 3

    def test_non_transient_error_is_a_subtree_failure(self) -> None:
        class _Broken:
            def list_children(self, folder_id, folder_path="", token=None):  # type: ignore[no-untyped-def]
                if folder_id == "root":
                    return FakeDrive({"Private": {}}).list_children(folder_id, folder_path, token)
                raise GraphApiError(403, "Access denied")

        with pytest.raises(CrawlError, match="Private") as exc_info:
            list(_crawler(_Broken()).crawl())

        assert isinstance(exc_info.value.__cause__, GraphApiError)

    def test_failure_stops_retries_of_other_folders(self) -> None:
        slow_calls: list[str | None] = []

        class _HalfBroken:
            def list_children(self, folder_id, folder_path="", token=None):  # type: ignore[no-untyped-def]
                if folder_id == "root":
                    return FakeDrive({"bad": {}, "slow": {}}).list_children(
                        folder_id, folder_path, token
                    )
                if folder_id == "root/bad":
                    raise GraphApiError(403, "Access denied")
                slow_calls.append(token)
                raise GraphTransientError(503, "busy")

        crawler = _crawler(_HalfBroken(), max_workers=2, max_retries=3, retry_delay=0.5)
        with pytest.raises(CrawlError, match="bad"):
            list(crawler.crawl())
        calls_at_failure = len(slow_calls)

        time.sleep(1.0)

        assert calls_at_failure <= 1
        assert len(slow_calls) == calls_at_failure

    def test_closing_crawl_early_stops_retries(self) -> None:
        calls: list[str] = []

        class _Flaky:
            def list_children(self, folder_id, folder_path="", token=None):  # type: ignore[no-untyped-def]
                if folder_id == "root":
                    return FakeDrive({"a": {}, "b": {}}).list_children(
                        folder_id, folder_path, token
                    )
                calls.append(folder_id)
                raise GraphTransientError(503, "busy")

        crawl = _crawler(_Flaky(), max_workers=2, max_retries=3, retry_delay=0.5).crawl()
        next(crawl)
        next(crawl)
        crawl.close()
        calls_at_close = len(calls)

        time.sleep(1.0)

        assert len(calls) == calls_at_close


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:
    def test_cancel_mid_crawl_raises_and_stops_requests(self) -> None:
        drive = FakeDrive(SAMPLE_TREE, page_size=1)
        crawler = _crawler(drive, max_workers=1)
        crawl = crawler.crawl()

        next(crawl)
        crawler.cancel()
        with pytest.raises(CrawlCancelled):
            list(crawl)

        assert drive.calls == [("root", None)]

    def test_cancel_before_start_lists_nothing(self) -> None:
        event = threading.Event()
        event.set()
        drive = FakeDrive(SAMPLE_TREE)

        with pytest.raises(CrawlCancelled):
            list(_crawler(drive, cancel_event=event).crawl())

        assert drive.calls == []

    def test_cancel_interrupts_retry_wait(self) -> None:
        event = threading.Event()
        drive = FakeDrive(SAMPLE_TREE, failures={("root", None): 5})

        class _CancellingDrive:
            def list_children(self, folder_id, folder_path="", token=None):  # type: ignore[no-untyped-def]
                event.set()
                return drive.list_children(folder_id, folder_path, token)

        crawler = TreeCrawler(
            _CancellingDrive(), retry_delay=60.0, cancel_event=event  # type: ignore[arg-type]
        )
        with pytest.raises(CrawlCancelled):
            list(crawler.crawl())

    def test_cancel_during_last_page_still_raises(self) -> None:
        event = threading.Event()

        class _LastPageDrive:
            def list_children(self, folder_id, folder_path="", token=None):  # type: ignore[no-untyped-def]
                event.set()
                return ListingPage()

        with pytest.raises(CrawlCancelled):
            list(TreeCrawler(_LastPageDrive(), cancel_event=event).crawl())  # type: ignore[arg-type]
