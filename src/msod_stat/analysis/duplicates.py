"""Duplicate grouping by content hash."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from msod_stat.graph.models import ContentHash, ItemRecord

logger = logging.getLogger(__name__)

# Subversion keeps a pristine copy of every versioned file; those copies are
# part of the working-copy format and are never reported as duplicates.
_SVN_PRISTINE_DIR = "/.svn/pristine/"
_SVN_PRISTINE_SUFFIX = ".svn-base"


def is_ignored_path(path: str) -> bool:
    """Return True for files that must not take part in duplicate grouping."""
    return path.endswith(_SVN_PRISTINE_SUFFIX) and _SVN_PRISTINE_DIR in f"/{path}"


@dataclass(frozen=True)
class DuplicateGroup:
    """Two or more files with identical content.

    Attributes:
        signature: Content hash shared by every member.
        size: Size in bytes of each member.
        paths: Sorted drive-relative paths of the members.
    """

    signature: ContentHash
    size: int
    paths: tuple[str, ...]

    @property
    def count(self) -> int:
        return len(self.paths)

    @property
    def total_size(self) -> int:
        """Bytes taken by all copies together."""
        return self.size * self.count


@dataclass
class SizeAnomaly:
    """A content hash seen with more than one file size."""

    signature: ContentHash
    sizes: set[int] = field(default_factory=set)


class DuplicateGrouper:
    """Collects file paths by content hash and reports duplicated content.

    Keeps every hashed file path until groups() is called, so memory grows
    with the number of files in the drive.

    Files are keyed by (signature, size). Equal hashes with different sizes
    are a data anomaly: they are logged, recorded in ``anomalies`` and kept
    in separate groups instead of being merged.
    """

    def __init__(self) -> None:
        self._paths: dict[tuple[ContentHash, int], list[str]] = {}
        self._first_size: dict[ContentHash, int] = {}
        self._anomalies: dict[ContentHash, SizeAnomaly] = {}

    @property
    def anomalies(self) -> list[SizeAnomaly]:
        return list(self._anomalies.values())

    def add(self, record: ItemRecord) -> None:
        """Record a file; folders and files without a content hash are ignored."""
        if record.is_folder or record.signature is None:
            return
        if is_ignored_path(record.path):
            return

        signature = record.signature
        first_size = self._first_size.setdefault(signature, record.size)
        if first_size != record.size:
            anomaly = self._anomalies.get(signature)
            if anomaly is None:
                anomaly = SizeAnomaly(signature=signature, sizes={first_size})
                self._anomalies[signature] = anomaly
                logger.warning(
                    "[add] same content hash with different sizes; hash:%s;sizes:%d,%d;path:%s",
                    signature.value,
                    first_size,
                    record.size,
                    record.path,
                )
            anomaly.sizes.add(record.size)

        self._paths.setdefault((signature, record.size), []).append(record.path)

    def groups(self) -> list[DuplicateGroup]:
        """Return groups with at least two members, largest total size first.

        Ties are broken by per-file size, then by content hash, so the
        order does not depend on the order records arrived in.
        """
        groups = [
            DuplicateGroup(signature=signature, size=size, paths=tuple(sorted(paths)))
            for (signature, size), paths in self._paths.items()
            if len(paths) >= 2
        ]
        groups.sort(key=lambda g: (-g.total_size, -g.size, g.signature))
        logger.info(
            "[groups] grouped duplicates; group_count:%d;hashed_files:%d",
            len(groups),
            sum(len(p) for p in self._paths.values()),
        )
        return groups
