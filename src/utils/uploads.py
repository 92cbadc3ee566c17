"""Multipart request helpers.

Course and lesson endpoints receive multipart forms in which nested data
(chapters, syllabus, mapping lists...) arrives either as a JSON string or as
an already parsed list. Everything is normalised here, before any manager
code runs. Unparseable collections become empty lists and are logged.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import FormData, UploadFile

from core.exceptions import StorageError, ValidationError
from utils.media_store import MediaStore, StoredFile

logger = logging.getLogger(__name__)


def normalize_field_name(name: str) -> str:
    """Strip the ``[]`` suffix some clients append to repeated fields."""
    return name[:-2] if name.endswith("[]") else name


def parse_json_list(raw: Any, field_name: str = "") -> List[Any]:
    """Parse a JSON-encoded list, tolerating already-parsed input.

    Args:
        raw: A list, a JSON string, or None.
        field_name: Field name used in the warning log.

    Returns:
        The parsed list, or an empty list if ``raw`` cannot be parsed.
    """
    if raw is None:
        return []
    if isinstance(raw, list):
        return raw
    if isinstance(raw, str):
        if not raw.strip():
            return []
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unparseable JSON in field %r", field_name)
            return []
        if isinstance(parsed, list):
            return parsed
    logger.warning("Expected a list in field %r, got %s", field_name, type(raw).__name__)
    return []


@dataclass
class UploadedFiles:
    """Files stored for one request, grouped by form field (in arrival order)."""

    by_field: Dict[str, List[StoredFile]] = field(default_factory=dict)

    def add(self, stored: StoredFile) -> None:
        self.by_field.setdefault(stored.field, []).append(stored)

    def get(self, field_name: str) -> List[StoredFile]:
        return list(self.by_field.get(field_name, []))

    def first_url(self, field_name: str) -> Optional[str]:
        files = self.by_field.get(field_name) or []
        return files[0].url if files else None

    def all(self) -> List[StoredFile]:
        return [f for files in self.by_field.values() for f in files]

    def __bool__(self) -> bool:
        return any(self.by_field.values())


@dataclass
class MultipartPayload:
    """A parsed multipart request: its text fields and its stored files.

    ``form`` holds the request model built from the text fields, if any.
    """

    fields: Dict[str, Any] = field(default_factory=dict)
    files: UploadedFiles = field(default_factory=UploadedFiles)
    form: Any = None

    def text(self, name: str) -> Optional[str]:
        """Return a text field, or None when absent or blank."""
        value = self.fields.get(name)
        if value is None:
            return None
        value = str(value)
        return value if value.strip() else None

    def has(self, name: str) -> bool:
        return name in self.fields

    def json_list(self, name: str) -> List[Any]:
        return parse_json_list(self.fields.get(name), name)


def collect_text_fields(form: FormData) -> Dict[str, Any]:
    """Collect the non-file fields of a form (last value wins)."""
    fields: Dict[str, Any] = {}
    for name, value in form.multi_items():
        if isinstance(value, str):
            fields[normalize_field_name(name)] = value
    return fields


async def store_form_uploads(
    form: FormData,
    media_store: MediaStore,
    context: str,
    max_size: int,
    abort_on_failure: bool = True,
) -> UploadedFiles:
    """Upload every file of a form to the media store.

    Create flows abort on the first failed upload: files already stored for
    this request are discarded before the error propagates. Update flows pass
    ``abort_on_failure=False``; a file the media store rejects is then logged
    and left out of the result, and the remaining files are still uploaded.
    Oversized and unsupported files are rejected in both modes.

    Args:
        form: Parsed multipart form.
        media_store: Target media store.
        context: Upload context (course, lesson or user).
        max_size: Per-file size ceiling in bytes.
        abort_on_failure: Whether a ``StorageError`` fails the request.

    Returns:
        The stored files grouped by field.

    Raises:
        ValidationError: If a file is too large or of an unsupported type.
        StorageError: If the media store rejects an upload and
            ``abort_on_failure`` is set.
    """
    uploaded = UploadedFiles()
    try:
        for name, value in form.multi_items():
            if not isinstance(value, UploadFile) or not value.filename:
                continue
            data = await value.read()
            if len(data) > max_size:
                raise ValidationError(
                    f"File '{value.filename}' exceeds the "
                    f"{max_size // (1024 * 1024)}MB upload limit"
                )
            try:
                stored = await run_in_threadpool(
                    media_store.upload,
                    data,
                    value.content_type,
                    value.filename,
                    context,
                    normalize_field_name(name),
                )
            except StorageError as e:
                if abort_on_failure:
                    raise
                logger.warning("Skipping upload of %r: %s", value.filename, e)
                continue
            uploaded.add(stored)
    except Exception:
        await run_in_threadpool(media_store.discard, uploaded.all())
        raise
    return uploaded
