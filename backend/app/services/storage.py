"""
Face image blob storage.

Two backends behind one interface:
- LocalBlobStorage: files under STORAGE_PATH/<organization_id>/, served by the
  API at STORAGE_BASE_URL/<organization_id>/<file>
- FirebaseBlobStorage: objects in the Firebase Storage bucket, public URLs

Object names are "<person_hash>_<uuid><ext>" so uploads never collide.
"""
import asyncio
import logging
import os
import re
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

from firebase_admin import storage as firebase_storage

from app.core.config import settings
from app.core.firebase import get_firebase_app

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r'[^A-Za-z0-9._-]')


def build_object_name(person_hash: str, filename: Optional[str]) -> str:
    ext = os.path.splitext(filename or "")[1].lower()
    if not re.fullmatch(r'\.[a-z0-9]{1,8}', ext):
        ext = ".jpg"
    return f"{_SAFE_NAME.sub('_', person_hash)}_{uuid.uuid4()}{ext}"


class BlobStorage(ABC):
    @abstractmethod
    async def upload(
        self,
        organization_id: str,
        person_hash: str,
        filename: Optional[str],
        content: bytes,
        content_type: Optional[str] = None,
    ) -> str:
        """Store the blob and return its URL."""

    @abstractmethod
    async def delete(self, url: str) -> None:
        """Delete the blob behind a URL returned by upload(). Missing blobs are not an error."""


class LocalBlobStorage(BlobStorage):
    """Filesystem storage rooted at `root`."""

    def __init__(self, root: Optional[str] = None, base_url: Optional[str] = None):
        self.root = Path(root or settings.STORAGE_PATH).resolve()
        self.base_url = (base_url or settings.STORAGE_BASE_URL).rstrip("/")

    def path_for(self, organization_id: str, name: str) -> Path:
        """Resolve a stored file, refusing anything outside the storage root."""
        path = (self.root / organization_id / name).resolve()
        if self.root not in path.parents:
            raise ValueError(f"Path escapes storage root: {organization_id}/{name}")
        return path

    def _write(self, path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

    async def upload(self, organization_id, person_hash, filename, content, content_type=None) -> str:
        name = build_object_name(person_hash, filename)
        path = self.path_for(organization_id, name)
        await asyncio.to_thread(self._write, path, content)
        return f"{self.base_url}/{organization_id}/{name}"

    async def delete(self, url: str) -> None:
        prefix = f"{self.base_url}/"
        if not url.startswith(prefix):
            raise ValueError(f"URL is not served by this storage: {url}")
        organization_id, _, name = url[len(prefix):].partition("/")
        path = self.path_for(organization_id, name)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            logger.debug(f"Blob already gone: {path}")


class FirebaseBlobStorage(BlobStorage):
    """Firebase Storage bucket backend."""

    def __init__(self, bucket_name: Optional[str] = None, app=None):
        self.bucket_name = bucket_name or settings.FIREBASE_STORAGE_BUCKET
        self._app = app
        self._bucket = None

    @property
    def bucket(self):
        if self._bucket is None:
            self._bucket = firebase_storage.bucket(self.bucket_name, app=self._app or get_firebase_app())
        return self._bucket

    def _upload_sync(self, object_name: str, content: bytes, content_type: Optional[str]) -> str:
        blob = self.bucket.blob(object_name)
        blob.upload_from_string(content, content_type=content_type or "image/jpeg")
        blob.make_public()
        return blob.public_url

    def _delete_sync(self, object_name: str) -> None:
        blob = self.bucket.blob(object_name)
        if blob.exists():
            blob.delete()

    def object_name_from_url(self, url: str) -> str:
        # https://storage.googleapis.com/<bucket>/<object>
        path = unquote(urlparse(url).path).lstrip("/")
        bucket_prefix = f"{self.bucket.name}/"
        if not path.startswith(bucket_prefix):
            raise ValueError(f"URL does not belong to bucket {self.bucket.name}: {url}")
        return path[len(bucket_prefix):]

    async def upload(self, organization_id, person_hash, filename, content, content_type=None) -> str:
        object_name = f"faces/{organization_id}/{build_object_name(person_hash, filename)}"
        return await asyncio.to_thread(self._upload_sync, object_name, content, content_type)

    async def delete(self, url: str) -> None:
        await asyncio.to_thread(self._delete_sync, self.object_name_from_url(url))


_storage: Optional[BlobStorage] = None


def get_blob_storage() -> BlobStorage:
    """Get the configured storage backend."""
    global _storage
    if _storage is None:
        if settings.STORAGE_BACKEND == "firebase":
            _storage = FirebaseBlobStorage()
        else:
            _storage = LocalBlobStorage()
        logger.info(
            f"Face image storage: {settings.STORAGE_BACKEND}",
            extra={"event_type": "storage_init", "backend": settings.STORAGE_BACKEND}
        )
    return _storage
