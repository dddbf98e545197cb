"""Attachment classification and copying into the agent workspace."""

from __future__ import annotations

import asyncio
import enum
import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path, PurePosixPath, PureWindowsPath

from courier.transport.envelope import SignalAttachment

logger = logging.getLogger(__name__)


class AttachmentType(enum.StrEnum):
    """How an attachment is handed to the agent."""

    IMAGE = "image"  # saved and passed inline
    DOCUMENT = "document"  # saved; the agent reads it from disk
    UNSUPPORTED = "unsupported"  # audio, video, anything else: not saved


#: MIME types the model can look at directly.
IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")

#: MIME types and prefixes saved as documents.
DOCUMENT_TYPES = ("application/pdf", "text/")

MIME_TO_EXTENSION = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "application/pdf": "pdf",
    "text/plain": "txt",
    "text/html": "html",
    "text/csv": "csv",
}

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")

#: Longest MIME subtype used verbatim as a file extension.
_MAX_SUBTYPE_EXTENSION = 10


@dataclass(frozen=True)
class AttachmentResult:
    type: AttachmentType
    source_path: Path
    pass_inline: bool
    format_line: str
    mime_type: str
    saved_path: Path | None = None
    error: str | None = None


def classify_attachment(content_type: str) -> AttachmentType:
    if content_type.startswith(IMAGE_TYPES):
        return AttachmentType.IMAGE
    if content_type.startswith(DOCUMENT_TYPES):
        return AttachmentType.DOCUMENT
    return AttachmentType.UNSUPPORTED


def sanitize_filename(filename: str) -> str:
    """Strip directory components (either separator) and unsafe characters."""
    basename = PureWindowsPath(PurePosixPath(filename).name).name
    return _UNSAFE_CHARS.sub("_", basename)


def _extension_from_mime(content_type: str) -> str | None:
    parts = content_type.split("/")
    if len(parts) != 2:
        return None
    subtype = parts[1].split(";")[0].strip()
    if subtype and "+" not in subtype and len(subtype) <= _MAX_SUBTYPE_EXTENSION:
        return subtype
    return None


def generate_attachment_filename(attachment: SignalAttachment, timestamp: int) -> str:
    """``{timestamp}_{sanitized filename}``, or ``{timestamp}_{id}.{ext}`` when unnamed."""
    if attachment.filename:
        return f"{timestamp}_{sanitize_filename(attachment.filename)}"

    ext = (
        MIME_TO_EXTENSION.get(attachment.content_type)
        or _extension_from_mime(attachment.content_type)
        or "bin"
    )
    return f"{timestamp}_{attachment.id}.{ext}"


def format_attachment_line(
    attachment_type: AttachmentType,
    saved_path: Path | str | None,
    mime_type: str | None = None,
) -> str:
    match attachment_type:
        case AttachmentType.IMAGE:
            return f"[Image: {saved_path}]"
        case AttachmentType.DOCUMENT:
            return f"[Document: {saved_path}]"
        case _:
            return f"[Unsupported attachment: {mime_type}]"


async def process_attachment(
    attachment: SignalAttachment,
    source_path: Path,
    timestamp: int,
    target_dir: Path,
) -> AttachmentResult:
    """Classify *attachment* and copy it into *target_dir* when supported.

    Never raises for I/O problems: a failed copy is reported through
    ``error`` and a ``[Failed to save ...]`` format line.
    """
    attachment_type = classify_attachment(attachment.content_type)
    if attachment_type is AttachmentType.UNSUPPORTED:
        logger.info("Skipping unsupported attachment (%s)", attachment.content_type)
        return AttachmentResult(
            type=attachment_type,
            source_path=source_path,
            pass_inline=False,
            format_line=format_attachment_line(
                attachment_type, None, attachment.content_type
            ),
            mime_type=attachment.content_type,
        )

    saved_path = target_dir / generate_attachment_filename(attachment, timestamp)

    def _copy() -> None:
        target_dir.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source_path, saved_path)

    try:
        await asyncio.get_running_loop().run_in_executor(None, _copy)
    except OSError as exc:
        error = exc.strerror or str(exc)
        logger.error("Failed to save %s %s: %s", attachment_type, source_path, exc)
        return AttachmentResult(
            type=attachment_type,
            source_path=source_path,
            pass_inline=False,
            format_line=f"[Failed to save {attachment_type}: {error}]",
            mime_type=attachment.content_type,
            error=error,
        )

    logger.debug("Saved %s to %s", attachment_type, saved_path)
    return AttachmentResult(
        type=attachment_type,
        source_path=source_path,
        saved_path=saved_path,
        pass_inline=attachment_type is AttachmentType.IMAGE,
        format_line=format_attachment_line(attachment_type, saved_path),
        mime_type=attachment.content_type,
    )
