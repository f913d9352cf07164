"""Running folder/file/byte totals over a crawl."""

from __future__ import annotations

from dataclasses import dataclass

from msod_stat.graph.models import ItemRecord


@dataclass(frozen=True)
class Stats:
    """Finalized totals of a completed crawl."""

    folders: int = 0
    files: int = 0
    total_bytes: int = 0


class StatsAccumulator:
    """Counts folders, files and file bytes as records stream in.

    Holds only three counters, so memory use does not depend on the
    number of items in the drive.
    """

    def __init__(self) -> None:
        self._folders = 0
        self._files = 0
        self._total_bytes = 0
        self._finalized = False

    def add(self, record: ItemRecord) -> None:
        if self._finalized:
            raise RuntimeError("StatsAccumulator already finalized")
        if record.is_folder:
            self._folders += 1
        else:
            self._files += 1
            self._total_bytes += record.size

    def finalize(self) -> Stats:
        """Stop accepting records and return the totals."""
        self._finalized = True
        return Stats(folders=self._folders, files=self._files, total_bytes=self._total_bytes)
