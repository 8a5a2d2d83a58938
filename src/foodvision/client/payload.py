"""Submission and upload payload types."""

from __future__ import annotations

import mimetypes
import re
from dataclasses import dataclass
from pathlib import Path

DEFAULT_MIME_TYPE = "application/octet-stream"
FALLBACK_EXTENSION = "bin"

_WHITESPACE_RUN = re.compile(r"\s+")
_SUBTYPE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9!#$&^_.+-]*$")


@dataclass(frozen=True)
class ImageSubmission:
    """An image handed to the session by a user upload or the example catalog."""

    content: bytes
    declared_name: str
    mime_type: str

    @classmethod
    def from_path(cls, path: str | Path) -> ImageSubmission:
        """Read a local image file, guessing its MIME type from the extension."""
        file_path = Path(path)
        mime_type, _ = mimetypes.guess_type(file_path.name)
        return cls(
            content=file_path.read_bytes(),
            declared_name=file_path.name,
            mime_type=mime_type or DEFAULT_MIME_TYPE,
        )


@dataclass(frozen=True)
class UploadPayload:
    """Canonical multipart upload. ``filename`` never contains whitespace."""

    filename: str
    content: bytes
    mime_type: str

    def as_files(self) -> dict[str, tuple[str, bytes, str]]:
        """Return the ``files=`` mapping for an httpx multipart request."""
        return {"file": (self.filename, self.content, self.mime_type)}


def _extension_for(mime_type: str) -> str:
    _, sep, subtype = mime_type.partition("/")
    subtype = subtype.split(";", 1)[0].strip().lower()
    if not sep or not _SUBTYPE.match(subtype):
        return FALLBACK_EXTENSION
    return subtype


def normalize(submission: ImageSubmission) -> UploadPayload:
    """Build the upload payload for a submission.

    Whitespace runs in the declared name collapse to a single underscore. An
    empty name becomes ``upload.<subtype>`` using the MIME subtype, e.g.
    ``upload.png`` for ``image/png``.
    """
    name = _WHITESPACE_RUN.sub("_", submission.declared_name)
    if not name:
        name = f"upload.{_extension_for(submission.mime_type)}"
    return UploadPayload(
        filename=name,
        content=submission.content,
        mime_type=submission.mime_type or DEFAULT_MIME_TYPE,
    )
