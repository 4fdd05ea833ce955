"""Firebase Storage blob adapter over the REST API.

Uploads go to ``POST /v0/b/{bucket}/o?uploadType=media&name={path}``; the
response carries a download token that forms the public download URL the
reader renders:

    https://firebasestorage.googleapis.com/v0/b/{bucket}/o/{quoted path}?alt=media&token={token}

That URL is the content reference stored in metadata. Deleting resolves the
object path back out of the URL (or accepts a bare ``gs://bucket/path`` or
object path) and issues ``DELETE /v0/b/{bucket}/o/{quoted path}``.
"""

from __future__ import annotations

import logging
from urllib.parse import quote, unquote, urlparse

import httpx

from toonshelf.collection.models import Scope
from toonshelf.core.exceptions import StoreError
from toonshelf.stores.base import BlobStore

logger = logging.getLogger(__name__)

__all__ = ["FirebaseStorageBlobStore", "DEFAULT_BASE_URL"]

DEFAULT_BASE_URL = "https://firebasestorage.googleapis.com/v0"


class FirebaseStorageBlobStore(BlobStore):
    """Blob store backed by a Firebase Storage bucket.

    Args:
        bucket: Bucket name, e.g. "my-toons.appspot.com".
        auth_token: Optional Firebase ID token / OAuth bearer token.
        timeout: Request timeout in seconds.
        client: Pre-built client (tests inject one with a MockTransport).
        base_url: API root, overridable for the storage emulator.

    """

    def __init__(
        self,
        bucket: str,
        *,
        auth_token: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        base_url: str = DEFAULT_BASE_URL,
    ) -> None:
        self._bucket = bucket
        self._base_url = base_url.rstrip("/")
        headers = {"Authorization": f"Bearer {auth_token}"} if auth_token else {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=headers)
        if client is not None and auth_token:
            self._client.headers.update(headers)

    @property
    def _objects_url(self) -> str:
        return f"{self._base_url}/b/{self._bucket}/o"

    def download_url(self, path: str, token: str) -> str:
        return f"{self._objects_url}/{quote(path, safe='')}?alt=media&token={token}"

    def object_path(self, content_ref: str) -> str:
        """Extract the object path from a download URL, gs:// URI or bare path.

        Raises:
            StoreError: If the reference points at another bucket.

        """
        if content_ref.startswith("gs://"):
            parsed = urlparse(content_ref)
            if parsed.netloc != self._bucket:
                raise StoreError(
                    f"Reference belongs to bucket {parsed.netloc!r}", operation="delete", target=content_ref
                )
            return parsed.path.lstrip("/")

        if content_ref.startswith(("http://", "https://")):
            parsed = urlparse(content_ref)
            marker = f"/b/{self._bucket}/o/"
            if marker not in parsed.path:
                raise StoreError(
                    f"Reference is not an object URL of bucket {self._bucket!r}",
                    operation="delete",
                    target=content_ref,
                )
            # path component is still percent-encoded in the raw URL
            raw = content_ref.split(marker, 1)[1].split("?", 1)[0]
            return unquote(raw)

        return content_ref.lstrip("/")

    async def put(self, scope: Scope, key: str, data: bytes, content_type: str) -> str:
        try:
            response = await self._client.post(
                self._objects_url,
                params={"uploadType": "media", "name": key},
                content=data,
                headers={"Content-Type": content_type},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise StoreError(
                f"Upload of {key} rejected: HTTP {e.response.status_code}", operation="put", target=key
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise StoreError(f"Upload of {key} failed: {e}", operation="put", target=key) from e

        tokens = str(body.get("downloadTokens") or "")
        token = tokens.split(",")[0]
        if not token:
            raise StoreError(f"Upload of {key} returned no download token", operation="put", target=key)

        name = body.get("name") or key
        logger.debug("Uploaded %d bytes to gs://%s/%s for %s", len(data), self._bucket, name, scope)
        return self.download_url(name, token)

    async def delete(self, content_ref: str) -> None:
        path = self.object_path(content_ref)
        try:
            response = await self._client.delete(f"{self._objects_url}/{quote(path, safe='')}")
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StoreError(
                f"Delete of {path} rejected: HTTP {e.response.status_code}", operation="delete", target=content_ref
            ) from e
        except httpx.HTTPError as e:
            raise StoreError(f"Delete of {path} failed: {e}", operation="delete", target=content_ref) from e
        logger.debug("Deleted gs://%s/%s", self._bucket, path)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
