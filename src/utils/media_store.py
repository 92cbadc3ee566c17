"""Media storage utilities.

This module wraps an S3-compatible object store fronted by a public (CDN)
base URL. Uploaded files are routed by resource category (image, video,
raw document) and by request context into folders; each object lives under
``{resource_type}/{folder}/{public_id}`` and is addressed by
``{public_base_url}/{key}``.

Uploads fail with ``StorageError``. Deletions are best effort and never raise.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import urlparse

import boto3
import httpx
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from config import Settings
from core.exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)

RESOURCE_IMAGE = "image"
RESOURCE_VIDEO = "video"
RESOURCE_RAW = "raw"

# Upload contexts
CONTEXT_COURSE = "course"
CONTEXT_LESSON = "lesson"
CONTEXT_USER = "user"

# Folder candidates tried, in order, when deleting by URL
DELETE_FOLDER_CANDIDATES = {
    RESOURCE_VIDEO: ["lesson_videos"],
    RESOURCE_RAW: ["lesson_notes", "course_pdfs", "course_documents"],
    RESOURCE_IMAGE: ["course_images", "user_profiles", "course_thumbnails"],
}

_PUBLIC_ID_PREFIX = {
    RESOURCE_IMAGE: "img",
    RESOURCE_VIDEO: "vid",
    RESOURCE_RAW: "pdf",
}

_VIDEO_EXTENSIONS = (".mp4", ".mov", ".webm", ".mkv", ".avi")
_RAW_EXTENSIONS = (".pdf", ".csv")

_MISSING_OBJECT_CODES = ("404", "NoSuchKey", "NotFound")


@dataclass
class StoredFile:
    """Descriptor of a file that has been written to the media store."""

    field: str
    filename: str
    content_type: str
    resource_type: str
    folder: str
    public_id: str
    url: str
    size: int = 0

    @property
    def key(self) -> str:
        return f"{self.resource_type}/{self.folder}/{self.public_id}"

    @property
    def is_pdf(self) -> bool:
        return is_pdf(self.content_type, self.filename)


def is_pdf(content_type: Optional[str], filename: Optional[str]) -> bool:
    """Return True when the mime type or filename indicates a PDF."""
    if (content_type or "").lower() == "application/pdf":
        return True
    return (filename or "").lower().endswith(".pdf")


def resource_type_for(content_type: Optional[str], filename: Optional[str]) -> str:
    """Select the resource category for an upload.

    Raises:
        ValidationError: If the file type is not supported.
    """
    mime = (content_type or "").lower()
    if mime.startswith("image/"):
        return RESOURCE_IMAGE
    if mime.startswith("video/"):
        return RESOURCE_VIDEO
    if is_pdf(content_type, filename):
        return RESOURCE_RAW
    raise ValidationError(f"Unsupported file type: {content_type or filename}")


def folder_for(resource_type: str, context: str) -> str:
    """Select the target folder for a resource category and upload context."""
    if resource_type == RESOURCE_IMAGE:
        return "user_profiles" if context == CONTEXT_USER else "course_images"
    if resource_type == RESOURCE_VIDEO:
        return "lesson_videos"
    return "course_pdfs" if context == CONTEXT_COURSE else "lesson_notes"


def public_id_from_url(url: str) -> str:
    """Derive the content identifier from a URL's final path segment."""
    path = urlparse(url).path
    last_segment = path.rstrip("/").split("/")[-1]
    return last_segment.split(".")[0]


def guess_resource_type(url: str, hint: Optional[str] = None) -> str:
    """Guess the resource category of a stored URL."""
    path = urlparse(url).path
    last_segment = path.rstrip("/").split("/")[-1].lower()
    if f"/{RESOURCE_VIDEO}/" in path or last_segment.endswith(_VIDEO_EXTENSIONS):
        return RESOURCE_VIDEO
    if f"/{RESOURCE_RAW}/" in path or last_segment.endswith(_RAW_EXTENSIONS):
        return RESOURCE_RAW
    if f"/{RESOURCE_IMAGE}/" in path:
        return RESOURCE_IMAGE
    return hint or RESOURCE_IMAGE


class MediaStore:
    """Thin client around boto3 S3 for upload, overwrite and delete."""

    def __init__(self, settings: Settings, client=None):
        """Initialize the media store.

        Args:
            settings: Application settings holding the bucket and endpoint.
            client: Optional pre-built boto3 S3 client.
        """
        self.bucket = settings.media_bucket
        self.public_base_url = settings.media_public_base_url.rstrip("/")
        self._client = client or boto3.client(
            "s3",
            endpoint_url=settings.media_endpoint_url,
            aws_access_key_id=settings.media_access_key,
            aws_secret_access_key=settings.media_secret_key,
            config=BotoConfig(signature_version="s3v4"),
            region_name=settings.media_region,
        )

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def owns(self, url: Optional[str]) -> bool:
        """Return True if the URL points into this store."""
        return bool(url) and url.startswith(f"{self.public_base_url}/")

    def upload(
        self,
        data: bytes,
        content_type: str,
        filename: str,
        context: str,
        field: str = "",
    ) -> StoredFile:
        """Upload bytes into the folder chosen from mime type and context.

        Args:
            data: Raw file bytes.
            content_type: Declared mime type.
            filename: Original filename.
            context: Upload context (course, lesson or user).
            field: Form field the file arrived in.

        Returns:
            Descriptor of the stored file.

        Raises:
            ValidationError: If the file type is unsupported.
            StorageError: If the provider rejects the upload.
        """
        resource_type = resource_type_for(content_type, filename)
        folder = folder_for(resource_type, context)
        public_id = f"{_PUBLIC_ID_PREFIX[resource_type]}-{uuid.uuid4()}"
        stored = StoredFile(
            field=field,
            filename=filename,
            content_type=content_type or "application/octet-stream",
            resource_type=resource_type,
            folder=folder,
            public_id=public_id,
            url=self.url_for(f"{resource_type}/{folder}/{public_id}"),
            size=len(data),
        )
        self._put(stored.key, data, stored.content_type)
        logger.info("Uploaded %s to %s (%d bytes)", filename, stored.key, len(data))
        return stored

    def overwrite(self, stored: StoredFile, data: bytes) -> str:
        """Replace the content under an existing identifier.

        Returns:
            The (unchanged) public URL of the object.

        Raises:
            StorageError: If the provider rejects the upload.
        """
        self._put(stored.key, data, stored.content_type)
        stored.size = len(data)
        return self.url_for(stored.key)

    def download(self, url: str) -> bytes:
        """Fetch the bytes behind a public URL.

        Raises:
            StorageError: If the file cannot be fetched.
        """
        try:
            response = httpx.get(url, timeout=60.0, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to download {url}: {e}") from e
        return response.content

    def delete(self, url: Optional[str], resource_type_hint: Optional[str] = None) -> bool:
        """Delete a stored resource by URL, best effort.

        Args:
            url: Public URL of the resource.
            resource_type_hint: Category to assume when the URL is ambiguous.

        Returns:
            True if an object was found and deleted, False otherwise.
        """
        if not url or not isinstance(url, str):
            return False
        if not self.owns(url):
            logger.debug("Skipping delete of foreign URL: %s", url)
            return False

        public_id = public_id_from_url(url)
        resource_type = guess_resource_type(url, resource_type_hint)
        try:
            for folder in DELETE_FOLDER_CANDIDATES.get(resource_type, []):
                key = f"{resource_type}/{folder}/{public_id}"
                if self._exists(key):
                    self._client.delete_object(Bucket=self.bucket, Key=key)
                    logger.info("Deleted media %s", key)
                    return True
            # Final fallback: bare identifier
            self._client.delete_object(
                Bucket=self.bucket, Key=f"{resource_type}/{public_id}"
            )
        except (BotoCoreError, ClientError) as e:
            logger.warning("Failed to delete media %s: %s", url, e)
        return False

    def discard(self, files: Iterable[StoredFile]) -> None:
        """Best-effort delete of files uploaded during a failed request."""
        for stored in files:
            self.delete(stored.url, stored.resource_type)

    def _put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            self._client.put_object(
                Bucket=self.bucket, Key=key, Body=data, ContentType=content_type
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("Upload of %s failed: %s", key, e)
            raise StorageError(f"Failed to store file: {e}") from e

    def _exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_OBJECT_CODES:
                return False
            raise
        return True
