"""Blob Store collaborator on Firebase Storage.

Uploads use the resumable protocol of the Firebase Storage REST API so that
progress can be reported chunk by chunk.
"""

from __future__ import annotations

from enum import Enum
from typing import AsyncIterator
from urllib.parse import quote

import httpx
import structlog
from pydantic import BaseModel

from linkup.common.errors import UploadFailure

logger = structlog.get_logger(__name__)

# Resumable chunks must be multiples of 256 KiB, except the last one.
CHUNK_SIZE = 256 * 1024


class UploadState(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    COMPLETE = "complete"
    FAILED = "failed"


class UploadProgress(BaseModel):
    state: UploadState
    bytes_transferred: int = 0
    total_bytes: int = 0
    download_url: str | None = None


class FirebaseBlobStore:
    """
    Uploads binary objects to a Firebase Storage bucket.

    Usage:
        blobs = FirebaseBlobStore("linkup-chat.appspot.com", id_token=session.id_token)
        async for progress in blobs.upload(image_bytes, str(uuid.uuid4())):
            print(progress.bytes_transferred, progress.total_bytes)
    """

    def __init__(
        self,
        bucket: str,
        base_url: str = "https://firebasestorage.googleapis.com/v0",
        id_token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        chunk_size: int = CHUNK_SIZE,
        timeout: float = 10.0,
    ):
        if chunk_size <= 0 or chunk_size % CHUNK_SIZE:
            raise ValueError(f"chunk_size must be a positive multiple of {CHUNK_SIZE}")
        self.bucket = bucket
        self.base_url = base_url.rstrip("/")
        self.id_token = id_token
        self.chunk_size = chunk_size
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = dict(extra)
        if self.id_token:
            headers["Authorization"] = f"Firebase {self.id_token}"
        return headers

    def download_url(self, name: str, token: str) -> str:
        return f"{self.base_url}/b/{self.bucket}/o/{quote(name, safe='')}?alt=media&token={token}"

    async def upload(
        self, data: bytes, name: str, content_type: str = "image/jpeg"
    ) -> AsyncIterator[UploadProgress]:
        """Upload ``data`` as object ``name``, yielding progress as it goes.

        The last event has state COMPLETE and carries the download URL.

        Raises:
            UploadFailure: If the upload could not be started or a chunk was rejected.
        """
        total = len(data)
        yield UploadProgress(state=UploadState.UPLOADING, bytes_transferred=0, total_bytes=total)

        try:
            start = await self._http.post(
                f"{self.base_url}/b/{self.bucket}/o",
                params={"name": name, "uploadType": "resumable"},
                headers=self._headers(**{
                    "X-Goog-Upload-Protocol": "resumable",
                    "X-Goog-Upload-Command": "start",
                    "X-Goog-Upload-Header-Content-Length": str(total),
                    "X-Goog-Upload-Header-Content-Type": content_type,
                }),
                json={"name": name, "contentType": content_type},
            )
            start.raise_for_status()
            session_url = start.headers.get("X-Goog-Upload-URL")
            if not session_url:
                raise UploadFailure("Storage did not return an upload session URL")

            offset = 0
            response = None
            while True:
                chunk = data[offset:offset + self.chunk_size]
                last = offset + len(chunk) >= total
                response = await self._http.post(
                    session_url,
                    headers=self._headers(**{
                        "X-Goog-Upload-Command": "upload, finalize" if last else "upload",
                        "X-Goog-Upload-Offset": str(offset),
                    }),
                    content=chunk,
                )
                response.raise_for_status()
                offset += len(chunk)
                if last:
                    break
                yield UploadProgress(state=UploadState.UPLOADING, bytes_transferred=offset, total_bytes=total)

            metadata = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning("Upload rejected", name=name, status_code=e.response.status_code)
            raise UploadFailure(f"Upload of {name} rejected with HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Upload failed", name=name, error=str(e))
            raise UploadFailure(f"Upload of {name} failed: {e}") from e

        token = (metadata.get("downloadTokens") or "").split(",")[0]
        if not token:
            raise UploadFailure(f"Upload of {name} finished without a download token")

        logger.info("Upload complete", name=name, total_bytes=total)
        yield UploadProgress(
            state=UploadState.COMPLETE,
            bytes_transferred=total,
            total_bytes=total,
            download_url=self.download_url(metadata.get("name") or name, token),
        )
