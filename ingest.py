# ingest.py
# Manuscript ingestion: format detection, segmentation, normalization and the
# upload pipeline that chains them.

from __future__ import annotations

from pathlib import PurePosixPath
from typing import BinaryIO, Dict, Optional, Union

import structlog

from config import Settings
from errors import FileTooLarge, ParseFailure, UnsupportedType
from format_parsers import get_parser
from models import Format, Manuscript, ManuscriptOverrides, ManuscriptUploadResult, UploadDescriptor
from stores import BlobStore, StorageBucket
from utils import base_mime_type, new_id, now_millis

logger = structlog.get_logger("ingest")

MAX_UPLOAD_BYTES = 50 * 1024 * 1024

MIME_FORMATS: Dict[str, Format] = {
    "application/epub+zip": "epub",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "text/markdown": "markdown",
    "text/plain": "plaintext",
}


# ----------------------------
# Format detection
# ----------------------------

def detect_format(upload: UploadDescriptor, max_bytes: int = MAX_UPLOAD_BYTES) -> Format:
    """Classify an upload by its declared MIME type and size.

    Only what the client declared is inspected; the bytes are never sniffed,
    so a mislabeled file reaches the parser for the declared format.
    """
    mime = base_mime_type(upload.content_type)
    fmt = MIME_FORMATS.get(mime)
    if fmt is None:
        raise UnsupportedType(
            "Unsupported file type. Please upload EPUB, DOCX, or Markdown files.",
            detail={"content_type": upload.content_type, "allowed": sorted(MIME_FORMATS)},
        )
    if upload.size is not None and upload.size > max_bytes:
        raise FileTooLarge(
            f"File exceeds the {max_bytes // (1024 * 1024)} MB limit",
            detail={"size": upload.size, "max_bytes": max_bytes},
        )
    return fmt


def read_limited(stream: BinaryIO, max_bytes: int = MAX_UPLOAD_BYTES, chunk_size: int = 1024 * 1024) -> bytes:
    """Read a stream whose size was not declared, stopping once it passes ``max_bytes``."""
    buf = bytearray()
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            return bytes(buf)
        buf.extend(chunk)
        if len(buf) > max_bytes:
            raise FileTooLarge(
                f"File exceeds the {max_bytes // (1024 * 1024)} MB limit",
                detail={"size_at_least": len(buf), "max_bytes": max_bytes},
            )


# ----------------------------
# Segmentation + normalization
# ----------------------------

def segment(fmt: Format, raw: Union[bytes, str], filename: str = "") -> Manuscript:
    """Run the registered parser for ``fmt`` over the raw upload."""
    data = raw.encode("utf-8") if isinstance(raw, str) else raw
    parser = get_parser(fmt)
    manuscript = parser.parse(data, filename)
    logger.info(
        "manuscript_segmented",
        format=fmt,
        filename=filename,
        chapters=len(manuscript.chapters),
        words=manuscript.word_count,
        placeholder=parser.placeholder,
    )
    return manuscript


def normalize(segmented: Manuscript, overrides: Optional[ManuscriptOverrides] = None) -> Manuscript:
    """Shallow merge: fields set on ``overrides`` replace the segmented ones."""
    data = segmented.model_dump()
    if overrides is not None:
        data.update(overrides.model_dump(exclude_unset=True, exclude_none=True))
    result = Manuscript.model_validate(data)
    if not result.chapters:
        raise ParseFailure("manuscript has no chapters", detail={"title": result.title})
    return result


# ----------------------------
# Upload pipeline
# ----------------------------

class ManuscriptService:
    def __init__(self, blobs: BlobStore, settings: Settings) -> None:
        self.blobs = blobs
        self.settings = settings

    def upload(
        self,
        upload: UploadDescriptor,
        stream: BinaryIO,
        author_id: str,
        overrides: Optional[ManuscriptOverrides] = None,
    ) -> ManuscriptUploadResult:
        """Validate, parse and store an uploaded manuscript.

        Validation happens before the stream is touched. Parsing happens
        before the original is stored, so a file that cannot be parsed leaves
        nothing behind.
        """
        max_bytes = self.settings.max_upload_bytes
        fmt = detect_format(upload, max_bytes)

        raw = read_limited(stream, max_bytes, self.settings.upload_read_chunk_bytes)
        metadata = normalize(segment(fmt, raw, upload.filename), overrides)

        name = PurePosixPath(upload.filename.replace("\\", "/")).name or "manuscript"
        path = f"{author_id}/{now_millis()}-{name}"
        original_url = self.blobs.put(StorageBucket.manuscripts, path, raw, base_mime_type(upload.content_type))

        logger.info(
            "manuscript_uploaded",
            author_id=author_id,
            format=fmt,
            size=len(raw),
            chapters=len(metadata.chapters),
        )
        return ManuscriptUploadResult(id=f"manuscript-{new_id()}", original_url=original_url, metadata=metadata)
