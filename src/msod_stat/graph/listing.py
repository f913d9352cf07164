"""Folder listing and drive metadata calls against the Graph drive API."""

from __future__ import annotations

import logging
from typing import Any

from msod_stat.graph.client import GRAPH_BASE_URL, GraphApiError, GraphClient
from msod_stat.graph.models import (
    DRIVE_TYPE_BUSINESS,
    DRIVE_TYPE_DOCUMENT_LIBRARY,
    DRIVE_TYPE_PERSONAL,
    FIELD_DRIVE_TYPE,
    FIELD_FILE,
    FIELD_FOLDER,
    FIELD_HASHES,
    FIELD_ID,
    FIELD_NAME,
    FIELD_PACKAGE,
    FIELD_PARENT_REFERENCE,
    FIELD_QUOTA,
    FIELD_QUOTA_DELETED,
    FIELD_QUOTA_REMAINING,
    FIELD_QUOTA_TOTAL,
    FIELD_QUOTA_USED,
    FIELD_SIZE,
    HASH_QUICK_XOR,
    HASH_SHA1,
    HASH_SHA256,
    ODATA_NEXT_LINK,
    ODATA_VALUE,
    ContentHash,
    DriveInfo,
    ItemKind,
    ItemRecord,
    ListingPage,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 200

# Only the fields needed for stats and duplicate grouping are requested.
CHILDREN_SELECT = "id,name,size,file,folder,package,parentReference"

# Hash field used as the content signature, per drive type. Personal drives
# expose SHA-1; OneDrive for Business and SharePoint expose only quickXorHash.
_HASH_FIELD_BY_DRIVE_TYPE: dict[str, str] = {
    DRIVE_TYPE_PERSONAL: HASH_SHA1,
    DRIVE_TYPE_BUSINESS: HASH_QUICK_XOR,
    DRIVE_TYPE_DOCUMENT_LIBRARY: HASH_QUICK_XOR,
}


def relative_path(full_url: str) -> str:
    """Convert a full Graph API URL to a relative path for GraphClient.get().

    Raises:
        GraphApiError: If the URL points outside GRAPH_BASE_URL.
    """
    prefix = GRAPH_BASE_URL + "/"
    if not full_url.startswith(prefix):
        logger.error("[relative_path] unexpected nextLink; url:%s", full_url)
        raise GraphApiError(0, f"unexpected nextLink outside {GRAPH_BASE_URL}: {full_url}")
    return full_url[len(GRAPH_BASE_URL) :]


def join_path(parent_path: str, name: str) -> str:
    """Join a drive-relative folder path and a child name."""
    return f"{parent_path}/{name}" if parent_path else name


def content_hash(raw_file: dict[str, Any], drive_type: str) -> ContentHash | None:
    """Pick the content signature of a file from its Graph ``file.hashes`` facet.

    Args:
        raw_file: The ``file`` facet of a drive item.
        drive_type: driveType of the drive holding the item.

    Returns:
        The ContentHash, or None when the item exposes no usable hash
        (OneNote files, for example, carry no hashes at all).
    """
    hashes = raw_file.get(FIELD_HASHES) or {}
    field = _HASH_FIELD_BY_DRIVE_TYPE.get(drive_type, HASH_SHA256)
    value = hashes.get(field)
    if not value:
        return None
    return ContentHash(algorithm=field, value=str(value))


def parse_item(raw: dict[str, Any], parent_path: str, drive_type: str = "") -> ItemRecord | None:
    """Map a raw Graph API child item to an ItemRecord.

    Args:
        raw: Item dict from the ``value`` array of a children response.
        parent_path: Drive-relative path of the folder being listed.
        drive_type: Fallback drive type when the item has no parentReference.driveType.

    Returns:
        The ItemRecord, or None for items that are neither files nor folders.
    """
    name = raw.get(FIELD_NAME, "")
    path = join_path(parent_path, name)
    item_id = raw.get(FIELD_ID, "")

    if FIELD_FOLDER in raw or FIELD_PACKAGE in raw:
        return ItemRecord(id=item_id, path=path, kind=ItemKind.FOLDER)

    if FIELD_FILE in raw:
        parent_ref = raw.get(FIELD_PARENT_REFERENCE, {})
        item_drive_type = parent_ref.get(FIELD_DRIVE_TYPE) or drive_type
        signature = content_hash(raw[FIELD_FILE] or {}, item_drive_type)
        if signature is None:
            logger.debug("[parse_item] file has no content hash; path:%s", path)
        return ItemRecord(
            id=item_id,
            path=path,
            kind=ItemKind.FILE,
            # A deleted item may have no size.
            size=int(raw.get(FIELD_SIZE) or 0),
            signature=signature,
        )

    logger.info("[parse_item] ignoring item that is neither file nor folder; path:%s", path)
    return None


def parse_drive_info(raw: dict[str, Any]) -> DriveInfo:
    """Map a raw Graph drive resource to DriveInfo."""
    quota = raw.get(FIELD_QUOTA, {})
    info = DriveInfo(
        id=raw.get(FIELD_ID, ""),
        drive_type=raw.get(FIELD_DRIVE_TYPE, ""),
        total=int(quota.get(FIELD_QUOTA_TOTAL, 0)),
        used=int(quota.get(FIELD_QUOTA_USED, 0)),
        remaining=int(quota.get(FIELD_QUOTA_REMAINING, 0)),
        deleted=int(quota.get(FIELD_QUOTA_DELETED, 0)),
    )
    if info.used + info.remaining != info.total:
        logger.warning(
            "[parse_drive_info] quota figures do not add up; drive_id:%s;total:%d;used:%d;"
            "remaining:%d",
            info.id,
            info.total,
            info.used,
            info.remaining,
        )
    return info


def list_user_drives(graph_client: GraphClient, drive_user: str) -> list[str]:
    """Return the IDs of every drive available to a user.

    Args:
        graph_client: Authenticated GraphClient instance.
        drive_user: UPN or object ID of the user.

    Returns:
        Drive IDs in the order returned by the API.
    """
    drive_ids: list[str] = []
    next_path: str | None = f"/users/{drive_user}/drives"
    while next_path is not None:
        response = graph_client.get(next_path)
        drive_ids.extend(d[FIELD_ID] for d in response.get(ODATA_VALUE, []) if FIELD_ID in d)
        next_link = response.get(ODATA_NEXT_LINK)
        next_path = relative_path(next_link) if next_link else None
    logger.info("[list_user_drives] found drives; drive_count:%d", len(drive_ids))
    return drive_ids


class DriveListingClient:
    """Lists folder children and reads drive metadata for one drive.

    The client holds no cursor state: each list_children call is
    independent and the continuation token is owned by the caller.
    """

    def __init__(
        self,
        graph_client: GraphClient,
        drive_id: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        drive_type: str = "",
    ) -> None:
        """Initialise the listing client.

        Args:
            graph_client: Authenticated GraphClient instance.
            drive_id: Graph drive ID to list.
            page_size: Number of children requested per page ($top).
            drive_type: Drive type used when an item lacks parentReference.driveType.
        """
        self._graph = graph_client
        self._drive_id = drive_id
        self._page_size = page_size
        self.drive_type = drive_type

    @property
    def drive_id(self) -> str:
        return self._drive_id

    def get_drive_info(self) -> DriveInfo:
        """Fetch identity and quota figures of the drive (GET /drives/{id})."""
        info = parse_drive_info(self._graph.get(f"/drives/{self._drive_id}"))
        if not self.drive_type:
            self.drive_type = info.drive_type
        return info

    def list_children(
        self,
        folder_id: str,
        folder_path: str = "",
        token: str | None = None,
    ) -> ListingPage:
        """Fetch one page of a folder's children.

        Args:
            folder_id: Graph item ID of the folder ("root" for the drive root).
            folder_path: Drive-relative path of the folder, used to build child paths.
            token: Continuation token from the previous page of the same folder,
                or None for the first page.

        Returns:
            ListingPage with parsed items and the token for the next page, if any.
        """
        if token is None:
            path = (
                f"/drives/{self._drive_id}/items/{folder_id}/children"
                f"?$select={CHILDREN_SELECT}&$top={self._page_size}"
            )
        else:
            path = token

        response = self._graph.get(path)
        items = []
        for raw in response.get(ODATA_VALUE, []):
            record = parse_item(raw, folder_path, self.drive_type)
            if record is not None:
                items.append(record)

        next_link = response.get(ODATA_NEXT_LINK)
        return ListingPage(
            items=items,
            next_token=relative_path(next_link) if next_link else None,
        )
