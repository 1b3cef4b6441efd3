"""Payload decoding, format sniffing and image-to-PDF conversion.

Label payloads arrive as base64 text that is frequently noisy: wrapped with
newlines, prefixed with a data URI, or missing its trailing padding. This
module turns that text into validated bytes, works out what the bytes are,
and wraps raster images into a single-page PDF so that everything stored or
printed downstream is a PDF.
"""

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass

from PIL import Image
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from autoprint.exceptions import ConversionError, PayloadDecodeError
from autoprint.models import DecodedDocument, DocumentFormat, RawItem

logger = logging.getLogger(__name__)

# Reference page: ISO A4 in points (1 inch = 72 points)
A4_WIDTH = 595
A4_HEIGHT = 842

PDF_EXTENSION = ".pdf"

# Leading byte signatures, most specific first
FILE_SIGNATURES: list[tuple[DocumentFormat, tuple[bytes, ...]]] = [
    (DocumentFormat.PDF, (b"%PDF",)),
    (DocumentFormat.PNG, (b"\x89PNG",)),
    (DocumentFormat.JPEG, (b"\xff\xd8\xff",)),
    (DocumentFormat.GIF, (b"GIF",)),
    (DocumentFormat.BMP, (b"BM",)),
    (DocumentFormat.TIFF, (b"II", b"MM")),  # Little / big endian
]

_WHITESPACE_RE = re.compile(r"\s+")
_DATA_URI_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:[^,]*,")
_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")


@dataclass(frozen=True)
class PageLayout:
    """Placement of an image on a PDF page, in points."""

    page_width: float
    page_height: float
    x: float
    y: float
    width: float
    height: float


def clean_base64(text: str) -> str:
    """Strip whitespace and any data-URI prefix from base64 text.

    Args:
        text: Raw payload text.

    Returns:
        str: Cleaned base64 text (may be empty).
    """
    if not text:
        return ""

    cleaned = _WHITESPACE_RE.sub("", text)

    # e.g. "data:application/pdf;base64,JVBERi0..."
    if _DATA_URI_RE.match(cleaned):
        cleaned = cleaned.split(",", 1)[1]

    return cleaned


def pad_base64(text: str) -> str:
    """Right-pad base64 text with ``=`` up to a multiple of 4.

    Args:
        text: Cleaned base64 text.

    Returns:
        str: Padded text.
    """
    padding = -len(text) % 4
    if padding:
        logger.debug(f"Added {padding} padding characters to base64")
        return text + "=" * padding
    return text


def validate_base64(text: str, file_name: str | None = None) -> None:
    """Check the structure and alphabet of padded base64 text.

    Args:
        text: Cleaned and padded base64 text.
        file_name: Label name used in error messages.

    Raises:
        PayloadDecodeError: If the text is empty, not a multiple of 4 long,
            or contains characters outside the base64 alphabet.
    """
    if not text:
        raise PayloadDecodeError("base64 data is empty", file_name)
    if len(text) % 4 != 0:
        raise PayloadDecodeError(f"base64 length {len(text)} is not a multiple of 4", file_name)
    if not _BASE64_RE.match(text):
        raise PayloadDecodeError("invalid base64 characters", file_name)


def decode_payload(text: str, file_name: str | None = None) -> bytes:
    """Decode noisy base64 payload text to bytes.

    Args:
        text: Raw payload text.
        file_name: Label name used in log and error messages.

    Returns:
        bytes: Decoded payload.

    Raises:
        PayloadDecodeError: If the payload is not valid base64.
    """
    cleaned = pad_base64(clean_base64(text))
    validate_base64(cleaned, file_name)

    try:
        data = base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        sample = cleaned[:100]
        logger.debug(f"Base64 sample (first 100 chars): {sample}")
        raise PayloadDecodeError(f"invalid base64: {e}", file_name) from e

    if not data:
        raise PayloadDecodeError("payload decoded to zero bytes", file_name)

    return data


def canonical_name(name: str) -> str:
    """Normalize a proposed label name into a PDF file name.

    Trims whitespace and surrounding quotes, replaces path separators and
    enforces a ``.pdf`` extension.

    Args:
        name: Proposed name from the server.

    Returns:
        str: Canonical file name.

    Raises:
        PayloadDecodeError: If nothing usable is left of the name.
    """
    cleaned = (name or "").strip().strip('"').strip()
    cleaned = cleaned.replace("/", "_").replace("\\", "_")
    if not cleaned:
        raise PayloadDecodeError("file name is empty")

    if not cleaned.lower().endswith(PDF_EXTENSION):
        cleaned = f"{cleaned}{PDF_EXTENSION}"
    return cleaned


def detect_format(data: bytes) -> DocumentFormat:
    """Detect the payload format from its leading bytes.

    Args:
        data: Decoded payload.

    Returns:
        DocumentFormat: Detected format, UNKNOWN for short or unrecognized data.
    """
    if not data or len(data) < 4:
        return DocumentFormat.UNKNOWN

    for fmt, signatures in FILE_SIGNATURES:
        if data.startswith(signatures):
            return fmt
    return DocumentFormat.UNKNOWN


def fit_to_page(
    image_width: float,
    image_height: float,
    page_width: float = A4_WIDTH,
    page_height: float = A4_HEIGHT,
) -> PageLayout:
    """Fit an image onto the reference page.

    Images smaller than the page keep their native size and the page shrinks
    to match. Larger images are scaled down to fit the reference page and
    centred on it.

    Args:
        image_width: Image width in pixels (treated as points).
        image_height: Image height in pixels.
        page_width: Reference page width in points.
        page_height: Reference page height in points.

    Returns:
        PageLayout: Page size and image placement.

    Raises:
        ConversionError: If the image has no area.
    """
    if image_width <= 0 or image_height <= 0:
        raise ConversionError(f"Invalid image size {image_width}x{image_height}")

    scale = min(page_width / image_width, page_height / image_height)

    if scale > 1:
        return PageLayout(image_width, image_height, 0, 0, image_width, image_height)

    width = image_width * scale
    height = image_height * scale
    return PageLayout(
        page_width=page_width,
        page_height=page_height,
        x=(page_width - width) / 2,
        y=(page_height - height) / 2,
        width=width,
        height=height,
    )


def _flatten(img: Image.Image) -> Image.Image:
    """Convert an image to a mode reportlab can embed, on a white background."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, "white")
        background.paste(rgba, mask=rgba.split()[-1])
        return background
    if img.mode not in ("RGB", "L"):
        return img.convert("RGB")
    return img.copy()


def image_to_pdf(data: bytes, title: str | None = None) -> bytes:
    """Wrap a raster image into a one-page PDF.

    Args:
        data: Image file contents (PNG, JPEG, GIF, BMP or TIFF).
        title: Optional PDF document title.

    Returns:
        bytes: PDF file contents.

    Raises:
        ConversionError: If the image cannot be read.
    """
    try:
        with Image.open(io.BytesIO(data)) as opened:
            opened.load()
            img = _flatten(opened)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ConversionError(f"Invalid image data: {e}") from e

    layout = fit_to_page(img.width, img.height)

    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=(layout.page_width, layout.page_height))
    if title:
        c.setTitle(title)
    c.setCreator("AutoPrint PDF Converter")
    c.drawImage(
        ImageReader(img),
        layout.x,
        layout.y,
        width=layout.width,
        height=layout.height,
    )
    c.showPage()
    c.save()

    return buffer.getvalue()


def decode_item(item: RawItem) -> DecodedDocument:
    """Turn a raw server entry into a decoded document.

    Args:
        item: Raw entry from the server response.

    Returns:
        DecodedDocument: Decoded bytes with canonical name and detected format.

    Raises:
        PayloadDecodeError: If the name is empty or the payload is not base64.
    """
    name = canonical_name(item.name)
    data = decode_payload(item.payload, name)
    fmt = detect_format(data)

    declared_pdf = item.name.strip().strip('"').strip().lower().endswith(PDF_EXTENSION)
    if fmt != DocumentFormat.PDF and declared_pdf:
        logger.warning(
            f"{name} doesn't appear to be a valid PDF (header: {data[:4]!r}), keeping bytes as-is"
        )

    logger.info(f"Decoded {name}: {len(data):,} bytes [{fmt.value}]")
    return DecodedDocument(
        content=data,
        canonical_name=name,
        detected_format=fmt,
        source_id=item.id,
    )


def normalize_document(document: DecodedDocument) -> DecodedDocument:
    """Convert raster documents to PDF; pass everything else through.

    A raster payload that cannot be converted is kept as-is with a warning.

    Args:
        document: Decoded document.

    Returns:
        DecodedDocument: PDF document, or the input unchanged.
    """
    fmt = document.detected_format

    if fmt == DocumentFormat.PDF:
        return document

    if fmt == DocumentFormat.UNKNOWN:
        logger.warning(f"Unknown file type for {document.canonical_name}, passing through as-is")
        return document

    title = document.canonical_name[: -len(PDF_EXTENSION)]
    try:
        pdf = image_to_pdf(document.content, title=title)
    except ConversionError as e:
        logger.warning(f"Could not convert {document.canonical_name} to PDF: {e}")
        return document

    logger.info(f"Converted {fmt.value} image to PDF for {document.canonical_name}")
    return DecodedDocument(
        content=pdf,
        canonical_name=document.canonical_name,
        detected_format=DocumentFormat.PDF,
        source_id=document.source_id,
    )
