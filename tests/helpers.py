"""Shared test helpers for msod_stat tests."""

from __future__ import annotations

import threading
from typing import Any, Union

from msod_stat.graph.client import GraphTransientError
from msod_stat.graph.listing import join_path
from msod_stat.graph.models import ContentHash, DriveInfo, ItemKind, ItemRecord, ListingPage

# A tree maps names to either a nested tree (folder) or (size, hash or None) (file).
Tree = dict[str, Union["Tree", tuple[int, Union[str, None]]]]


def sig(value: str) -> ContentHash:
    return ContentHash("sha1Hash", value)


class FakeDrive:
    """In-memory listing client backed by a nested folder tree.

    Children are served page_size at a time; the continuation token is the
    string offset of the next page. ``failures`` maps (folder_id, token) to
    the number of GraphTransientErrors raised before that page succeeds.
    """

    def __init__(
        self,
        tree: Tree,
        page_size: int = 1,
        failures: dict[tuple[str, str | None], int] | None = None,
        drive_info: DriveInfo | None = None,
    ) -> None:
        self._children: dict[str, list[tuple[str, Any]]] = {}
        self._page_size = page_size
        self._failures = dict(failures or {})
        self._lock = threading.Lock()
        self.calls: list[tuple[str, str | None]] = []
        self.drive_info = drive_info or DriveInfo(
            id="drive-1", drive_type="personal", total=1000, used=250, remaining=750, deleted=10
        )
        self.file_count = 0
        self.folder_count = 0
        self.total_bytes = 0
        self._add_folder("root", tree)

    def _add_folder(self, folder_id: str, tree: Tree) -> None:
        entries = []
        for name, value in tree.items():
            child_id = f"{folder_id}/{name}"
            if isinstance(value, dict):
                self.folder_count += 1
                self._add_folder(child_id, value)
            else:
                self.file_count += 1
                self.total_bytes += value[0]
            entries.append((child_id, value))
        self._children[folder_id] = entries

    def get_drive_info(self) -> DriveInfo:
        return self.drive_info

    def list_children(
        self, folder_id: str, folder_path: str = "", token: str | None = None
    ) -> ListingPage:
        with self._lock:
            self.calls.append((folder_id, token))
            remaining_failures = self._failures.get((folder_id, token), 0)
            if remaining_failures:
                self._failures[(folder_id, token)] = remaining_failures - 1
                raise GraphTransientError(503, f"flaky page {folder_id}@{token}")

        offset = int(token) if token else 0
        entries = self._children[folder_id]
        chunk = entries[offset : offset + self._page_size]
        items = []
        for child_id, value in chunk:
            name = child_id.rsplit("/", 1)[1]
            path = join_path(folder_path, name)
            if isinstance(value, dict):
                items.append(ItemRecord(id=child_id, path=path, kind=ItemKind.FOLDER))
            else:
                size, hash_value = value
                items.append(
                    ItemRecord(
                        id=child_id,
                        path=path,
                        kind=ItemKind.FILE,
                        size=size,
                        signature=sig(hash_value) if hash_value else None,
                    )
                )
        next_offset = offset + self._page_size
        next_token = str(next_offset) if next_offset < len(entries) else None
        return ListingPage(items=items, next_token=next_token)


SAMPLE_TREE: Tree = {
    "a.txt": (10, "h1"),
    "Docs": {
        "b.txt": (10, "h1"),
        "c.txt": (10, "h2"),
        "Empty": {},
        "Deep": {"Deeper": {"d.txt": (10, "h1"), "e.bin": (500, None)}},
    },
    "Photos": {f"img{i}.jpg": (100 + i, f"p{i}") for i in range(5)},
}
