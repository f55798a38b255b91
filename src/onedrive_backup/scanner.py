"""Remote folder listing for OneDrive Backup."""

import logging
from typing import TYPE_CHECKING

from .graph import ROOT_FOLDER_ID
from .models import NodeKind, RemoteNode
from .utils import parse_timestamp

if TYPE_CHECKING:
    from .graph import GraphDriveClient
    from .rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)


def join_remote_path(parent: str, name: str) -> str:
    """Join a drive-relative parent path and an entry name."""
    parent = parent.strip("/")
    return f"{parent}/{name}" if parent else name


def parse_entry(raw: dict, parent_path: str = "", drive_id: str | None = None) -> RemoteNode | None:
    """
    Classify one raw Graph driveItem.

    A "file" facet makes a File, a "folder" facet a Folder (empty when its
    childCount is 0) and a "remoteItem" facet a shared reference. Items with
    none of these (OneNote packages and the like) return None.
    """
    name = raw.get("name", "")
    relative_path = join_remote_path(parent_path, name)
    fs_info = raw.get("fileSystemInfo") or {}
    last_modified = parse_timestamp(
        fs_info.get("lastModifiedDateTime") or raw.get("lastModifiedDateTime")
    )
    size = int(raw.get("size") or 0)
    is_shared = "shared" in raw

    if "remoteItem" in raw:
        remote = raw["remoteItem"] or {}
        parent_ref = remote.get("parentReference") or {}
        return RemoteNode(
            id=raw["id"],
            name=name,
            relative_path=relative_path,
            kind=NodeKind.SHARED,
            size=int(remote.get("size") or size),
            last_modified=last_modified or parse_timestamp(remote.get("lastModifiedDateTime")),
            is_shared=True,
            drive_id=parent_ref.get("driveId"),
            remote_id=remote.get("id"),
            target_is_folder="folder" in remote,
        )

    if "file" in raw:
        return RemoteNode(
            id=raw["id"],
            name=name,
            relative_path=relative_path,
            kind=NodeKind.FILE,
            size=size,
            last_modified=last_modified,
            is_shared=is_shared,
            drive_id=drive_id,
        )

    if "folder" in raw:
        child_count = (raw["folder"] or {}).get("childCount")
        return RemoteNode(
            id=raw["id"],
            name=name,
            relative_path=relative_path,
            kind=NodeKind.FOLDER,
            size=size,
            last_modified=last_modified,
            is_shared=is_shared,
            is_empty=child_count == 0,
            drive_id=drive_id,
        )

    logger.debug("Ignoring unsupported item %s (%s)", relative_path, raw.get("id"))
    return None


class RemoteTreeEnumerator:
    """Lists the children of one remote folder at a time."""

    def __init__(self, client: "GraphDriveClient", limiter: "SlidingWindowRateLimiter"):
        self.client = client
        self.limiter = limiter

    def list(
        self,
        folder_id: str = ROOT_FOLDER_ID,
        path: str = "",
        drive_id: str | None = None,
    ) -> list[RemoteNode]:
        """
        List a folder's children as RemoteNodes.

        Every page request takes one unit of rate-limit budget. Errors from
        the client (TransientApiError, DrivePermissionError, ...) propagate
        to the caller.
        """
        nodes: list[RemoteNode] = []
        next_link: str | None = None

        while True:
            self.limiter.acquire()
            entries, next_link = self.client.list_children_page(
                folder_id, next_link=next_link, drive_id=drive_id
            )
            for raw in entries:
                node = parse_entry(raw, path, drive_id)
                if node is not None:
                    nodes.append(node)
            if not next_link:
                break

        logger.debug("Listed %s: %d entries", path or "/", len(nodes))
        return nodes
