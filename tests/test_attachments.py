"""Tests for attachment classification, naming, and saving."""

from __future__ import annotations

from pathlib import Path

import pytest

from courier.attachments import (
    AttachmentType,
    classify_attachment,
    format_attachment_line,
    generate_attachment_filename,
    process_attachment,
    sanitize_filename,
)
from courier.transport.envelope import SignalAttachment

TS = 1705314645123


def _att(content_type: str, filename: str | None = None, att_id: str = "abc123") -> SignalAttachment:
    return SignalAttachment(content_type=content_type, filename=filename, id=att_id)


class TestClassify:
    @pytest.mark.parametrize(
        "content_type", ["image/jpeg", "image/png", "image/gif", "image/webp"]
    )
    def test_images(self, content_type: str) -> None:
        assert classify_attachment(content_type) is AttachmentType.IMAGE

    @pytest.mark.parametrize(
        "content_type", ["application/pdf", "text/plain", "text/csv", "text/markdown"]
    )
    def test_documents(self, content_type: str) -> None:
        assert classify_attachment(content_type) is AttachmentType.DOCUMENT

    @pytest.mark.parametrize(
        "content_type", ["audio/aac", "video/mp4", "image/heic", "application/zip"]
    )
    def test_unsupported(self, content_type: str) -> None:
        assert classify_attachment(content_type) is AttachmentType.UNSUPPORTED


class TestFilenames:
    def test_sanitize_strips_directories(self) -> None:
        assert sanitize_filename("../../etc/passwd") == "passwd"
        assert sanitize_filename("C:\\Users\\me\\doc.pdf") == "doc.pdf"

    def test_sanitize_replaces_unsafe_characters(self) -> None:
        assert sanitize_filename("my report (final).pdf") == "my_report__final_.pdf"

    def test_named_attachment(self) -> None:
        assert generate_attachment_filename(_att("image/png", "cat.png"), TS) == f"{TS}_cat.png"

    def test_unnamed_uses_known_extension(self) -> None:
        assert generate_attachment_filename(_att("image/jpeg"), TS) == f"{TS}_abc123.jpg"

    def test_unnamed_uses_mime_subtype(self) -> None:
        assert generate_attachment_filename(_att("text/markdown"), TS) == f"{TS}_abc123.markdown"

    def test_unnamed_falls_back_to_bin(self) -> None:
        att = _att("application/vnd.openxmlformats-officedocument.wordprocessingml.document")
        assert generate_attachment_filename(att, TS) == f"{TS}_abc123.bin"

    def test_format_lines(self) -> None:
        assert format_attachment_line(AttachmentType.IMAGE, "/x.png") == "[Image: /x.png]"
        assert format_attachment_line(AttachmentType.DOCUMENT, "/x.pdf") == "[Document: /x.pdf]"
        assert (
            format_attachment_line(AttachmentType.UNSUPPORTED, None, "audio/aac")
            == "[Unsupported attachment: audio/aac]"
        )


class TestProcessAttachment:
    async def test_image_copied_and_inline(self, tmp_path: Path) -> None:
        source = tmp_path / "incoming" / "abc123"
        source.parent.mkdir()
        source.write_bytes(b"png-bytes")
        target = tmp_path / "downloads"

        result = await process_attachment(_att("image/png", "cat.png"), source, TS, target)

        assert result.type is AttachmentType.IMAGE
        assert result.pass_inline is True
        assert result.saved_path == target / f"{TS}_cat.png"
        assert result.saved_path.read_bytes() == b"png-bytes"
        assert result.format_line == f"[Image: {result.saved_path}]"
        assert result.error is None

    async def test_document_copied_not_inline(self, tmp_path: Path) -> None:
        source = tmp_path / "abc123"
        source.write_bytes(b"%PDF")

        result = await process_attachment(
            _att("application/pdf", "doc.pdf"), source, TS, tmp_path / "out"
        )

        assert result.type is AttachmentType.DOCUMENT
        assert result.pass_inline is False
        assert result.saved_path is not None
        assert result.saved_path.exists()

    async def test_unsupported_not_saved(self, tmp_path: Path) -> None:
        target = tmp_path / "out"
        result = await process_attachment(_att("audio/aac"), tmp_path / "missing", TS, target)

        assert result.type is AttachmentType.UNSUPPORTED
        assert result.saved_path is None
        assert result.format_line == "[Unsupported attachment: audio/aac]"
        assert not target.exists()

    async def test_missing_source_reports_failure(self, tmp_path: Path) -> None:
        result = await process_attachment(
            _att("image/jpeg"), tmp_path / "gone", TS, tmp_path / "out"
        )

        assert result.saved_path is None
        assert result.pass_inline is False
        assert result.error is not None
        assert result.format_line.startswith("[Failed to save image: ")
