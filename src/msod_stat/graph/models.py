"""Data models for Microsoft Graph drives, drive items and listing pages."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

# Graph API JSON field names
FIELD_ID = "id"
FIELD_NAME = "name"
FIELD_SIZE = "size"
FIELD_FILE = "file"
FIELD_FOLDER = "folder"
FIELD_PACKAGE = "package"
FIELD_HASHES = "hashes"
FIELD_PARENT_REFERENCE = "parentReference"
FIELD_DRIVE_TYPE = "driveType"
FIELD_QUOTA = "quota"
FIELD_QUOTA_TOTAL = "total"
FIELD_QUOTA_USED = "used"
FIELD_QUOTA_REMAINING = "remaining"
FIELD_QUOTA_DELETED = "deleted"

# Content hash fields inside file.hashes
HASH_SHA1 = "sha1Hash"
HASH_SHA256 = "sha256Hash"
HASH_QUICK_XOR = "quickXorHash"

# Drive types reported in driveType
DRIVE_TYPE_PERSONAL = "personal"
DRIVE_TYPE_BUSINESS = "business"
DRIVE_TYPE_DOCUMENT_LIBRARY = "documentLibrary"

# OData response keys
ODATA_NEXT_LINK = "@odata.nextLink"
ODATA_VALUE = "value"


class ItemKind(enum.Enum):
    """Kind of a drive entry. Packages (e.g. OneNote notebooks) are folders."""

    FILE = "file"
    FOLDER = "folder"


@dataclass(frozen=True, order=True)
class ContentHash:
    """Content signature of a file as exposed by the Graph API.

    Two files are duplicates if and only if their ContentHash values are
    equal. The algorithm is part of the value so that hashes from
    different algorithms never compare equal.
    """

    algorithm: str
    value: str


@dataclass(frozen=True)
class ItemRecord:
    """A single file or folder found while crawling a drive.

    Attributes:
        id: Graph item ID (used to list a folder's children).
        path: Slash-separated path relative to the drive root (e.g. "Docs/a.txt").
        kind: File or folder.
        size: Size in bytes for files, 0 for folders.
        signature: Content hash for files that expose one, otherwise None.
    """

    id: str
    path: str
    kind: ItemKind
    size: int = 0
    signature: ContentHash | None = None

    @property
    def is_folder(self) -> bool:
        return self.kind is ItemKind.FOLDER


@dataclass(frozen=True)
class ListingPage:
    """One page of a folder's children plus the token for the next page."""

    items: list[ItemRecord] = field(default_factory=list)
    next_token: str | None = None


@dataclass(frozen=True)
class DriveInfo:
    """Drive identity and quota figures, fetched once per run.

    Attributes:
        id: Graph drive ID.
        drive_type: One of "personal", "business", "documentLibrary".
        total: Total quota in bytes.
        used: Used bytes, including bytes pending deletion.
        remaining: Free bytes.
        deleted: Bytes in the recycle bin, pending deletion.
    """

    id: str
    drive_type: str
    total: int
    used: int
    remaining: int
    deleted: int

    @property
    def used_percent(self) -> float:
        if self.total == 0:
            return 0.0
        return self.used * 100.0 / self.total
