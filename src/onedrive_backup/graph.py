"""Microsoft Graph client for OneDrive content."""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone

import requests

from .errors import (
    DriveError,
    DrivePermissionError,
    NotFoundError,
    RangeNotSupportedError,
    SessionExpiredError,
    TransientApiError,
)
from .utils import parse_retry_after

logger = logging.getLogger(__name__)

GRAPH_URL = "https://graph.microsoft.com/v1.0"
ROOT_FOLDER_ID = "root"
PAGE_SIZE = 200


@dataclass
class DriveSession:
    """An already-issued bearer token and its expiry."""

    access_token: str
    expires_at: datetime | None = None

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) >= self.expires_at

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}


class GraphDriveClient:
    """
    Thin wrapper over the OneDrive endpoints of Microsoft Graph.

    HTTP failures are translated into the DriveError taxonomy here so the
    rest of the package never looks at status codes.
    """

    def __init__(
        self,
        session: DriveSession,
        timeout: float = 30.0,
        http: requests.Session | None = None,
    ):
        self.session = session
        self.timeout = timeout
        self.http = http or requests.Session()

    def _drive_url(self, drive_id: str | None) -> str:
        if drive_id:
            return f"{GRAPH_URL}/drives/{drive_id}"
        return f"{GRAPH_URL}/me/drive"

    def _item_url(self, item_id: str, drive_id: str | None) -> str:
        base = self._drive_url(drive_id)
        if item_id == ROOT_FOLDER_ID:
            return f"{base}/root"
        return f"{base}/items/{item_id}"

    def _request(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        params: dict | None = None,
        stream: bool = False,
    ) -> requests.Response:
        if self.session.is_expired:
            raise SessionExpiredError("Access token has expired")

        all_headers = dict(self.session.headers)
        if headers:
            all_headers.update(headers)

        try:
            response = self.http.get(
                url,
                headers=all_headers,
                params=params,
                stream=stream,
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientApiError(f"Network error: {e}") from e
        except requests.RequestException as e:
            raise DriveError(f"Request failed: {e}") from e

        self._raise_for_status(response, url)
        return response

    @staticmethod
    def _raise_for_status(response: requests.Response, url: str) -> None:
        status = response.status_code
        if status < 400:
            return

        message = f"HTTP {status} for {url}"
        if status == 401:
            raise SessionExpiredError(message)
        if status == 403:
            raise DrivePermissionError(message)
        if status == 404:
            raise NotFoundError(message)
        if status == 429 or status >= 500:
            raise TransientApiError(
                message,
                status_code=status,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )
        raise DriveError(message)

    def get_drive(self) -> dict:
        """Owner and quota of the signed-in user's drive."""
        return self._request(self._drive_url(None)).json()

    def list_children_page(
        self,
        folder_id: str = ROOT_FOLDER_ID,
        next_link: str | None = None,
        drive_id: str | None = None,
    ) -> tuple[list[dict], str | None]:
        """
        Fetch one page of a folder listing.

        Args:
            folder_id: Item id of the folder, or "root"
            next_link: ``@odata.nextLink`` from the previous page
            drive_id: Drive holding the folder (None for the user's drive)

        Returns:
            Tuple of (raw entries, next page link or None)
        """
        if next_link:
            response = self._request(next_link)
        else:
            response = self._request(
                f"{self._item_url(folder_id, drive_id)}/children",
                params={"$top": PAGE_SIZE},
            )
        payload = response.json()
        return payload.get("value", []), payload.get("@odata.nextLink")

    def get_content(
        self,
        item_id: str,
        byte_range: tuple[int, int] | None = None,
        drive_id: str | None = None,
    ) -> bytes:
        """
        Download item content, optionally a half-open byte range [start, end).

        A range request answered with anything but 206 raises
        RangeNotSupportedError before the body is read.
        """
        headers = {}
        if byte_range is not None:
            start, end = byte_range
            headers["Range"] = f"bytes={start}-{end - 1}"
        response = self._request(
            f"{self._item_url(item_id, drive_id)}/content",
            headers=headers,
            stream=byte_range is not None,
        )
        if byte_range is not None and response.status_code != 206:
            response.close()
            logger.warning("Server ignored Range for %s (HTTP %d)", item_id, response.status_code)
            raise RangeNotSupportedError(
                f"Range request for {item_id} answered with HTTP {response.status_code}"
            )
        try:
            return response.content
        except requests.RequestException as e:
            raise TransientApiError(f"Download interrupted: {e}") from e

    def stream_content(
        self,
        item_id: str,
        chunk_size: int = 1024 * 1024,
        drive_id: str | None = None,
    ) -> Iterator[bytes]:
        """Stream whole item content in chunks."""
        response = self._request(
            f"{self._item_url(item_id, drive_id)}/content",
            stream=True,
        )
        try:
            for chunk in response.iter_content(chunk_size):
                if chunk:
                    yield chunk
        except requests.RequestException as e:
            raise TransientApiError(f"Stream interrupted: {e}") from e
        finally:
            response.close()
