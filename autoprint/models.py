"""Data types passed between the stages of a polling cycle."""

from dataclasses import dataclass, field
from enum import Enum


class DocumentFormat(str, Enum):
    """Payload format detected from its leading bytes."""

    PDF = "pdf"
    PNG = "png"
    JPEG = "jpeg"
    GIF = "gif"
    BMP = "bmp"
    TIFF = "tiff"
    UNKNOWN = "unknown"

    @property
    def is_raster(self) -> bool:
        """Whether this is an image format that can be wrapped into a PDF."""
        return self not in (DocumentFormat.PDF, DocumentFormat.UNKNOWN)

    @property
    def extension(self) -> str:
        """File extension used when staging this format on disk."""
        return _EXTENSIONS[self]


_EXTENSIONS = {
    DocumentFormat.PDF: "pdf",
    DocumentFormat.PNG: "png",
    DocumentFormat.JPEG: "jpg",
    DocumentFormat.GIF: "gif",
    DocumentFormat.BMP: "bmp",
    DocumentFormat.TIFF: "tif",
    DocumentFormat.UNKNOWN: "pdf",  # Unknown payloads are handed over as PDF
}


class CycleStatus(str, Enum):
    """How a polling cycle ended."""

    COMPLETED = "completed"  # Items were received and walked through
    EMPTY = "empty"  # Server returned an empty files array
    MESSAGE = "message"  # Server returned a message instead of files
    NOT_CONFIGURED = "not_configured"  # Endpoint or caller id missing
    BUSY = "busy"  # Previous cycle still running
    TRANSPORT_ERROR = "transport_error"  # Network failure or non-2xx
    MALFORMED = "malformed"  # Body was not the expected JSON shape


@dataclass(frozen=True)
class RawItem:
    """One ``[payload, name, id?]`` entry from the server response.

    Attributes:
        payload: Base64 text, possibly with whitespace or a data-URI prefix.
        name: Proposed file name, already stringified.
        id: Optional external identifier.
    """

    payload: str
    name: str
    id: str | None = None


@dataclass(frozen=True)
class DecodedDocument:
    """Decoded label bytes ready for storage or printing.

    Attributes:
        content: Binary payload.
        canonical_name: File name with a ``.pdf`` extension.
        detected_format: Format sniffed from ``content``.
        source_id: External identifier from the server, if any.
    """

    content: bytes
    canonical_name: str
    detected_format: DocumentFormat
    source_id: str | None = None


@dataclass
class ParsedResponse:
    """Result of normalizing a server response body."""

    items: list[RawItem] = field(default_factory=list)
    errors: int = 0
    message: str | None = None


@dataclass
class CycleSummary:
    """Counters for one polling cycle."""

    status: CycleStatus = CycleStatus.COMPLETED
    received: int = 0
    accepted: int = 0
    skipped: int = 0
    errors: int = 0
    saved: int = 0
    save_failed: int = 0
    printed: int = 0
    print_failed: int = 0
    message: str | None = None
