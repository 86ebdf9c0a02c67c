"""Watermarked preview rendering.

Previews are produced server-side from the stored origin and returned as
bytes. A :class:`PreviewHandle` never carries the origin's path or URL, so a
client holding a preview learns nothing about where the clean file lives.
"""
from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from enum import Enum
from io import BytesIO

from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError, PyPdfError
from reportlab.lib.colors import Color
from reportlab.pdfgen import canvas

from deliverhub.services.object_store import ObjectStore
from deliverhub.utils.errors import StorageError

logger = logging.getLogger(__name__)

DEFAULT_MAX_DIMENSION = 1200
DEFAULT_MAX_SOURCE_PIXELS = 40_000_000
TEXT_OPACITY = 90  # out of 255
TEXT_ANGLE = 30


class PreviewTooLarge(ValueError):
    """The origin image is larger than the renderer is willing to decode."""


class MediaKind(str, Enum):
    IMAGE = "image"
    PDF = "pdf"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class PreviewHandle:
    available: bool
    content: bytes | None = None
    media_type: str | None = None
    reason: str | None = None

    @classmethod
    def unavailable(cls, reason: str) -> "PreviewHandle":
        return cls(available=False, reason=reason)


def media_kind_for(content_type: str | None, filename: str | None = None) -> MediaKind:
    """Classify a deliverable by content type, falling back to its file name."""

    if not content_type and filename:
        content_type = mimetypes.guess_type(filename)[0]
    if not content_type:
        return MediaKind.UNSUPPORTED
    if content_type == "application/pdf":
        return MediaKind.PDF
    if content_type in {"image/jpeg", "image/png", "image/gif", "image/webp"}:
        return MediaKind.IMAGE
    return MediaKind.UNSUPPORTED


def watermark_image(
    data: bytes,
    text: str,
    *,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    max_source_pixels: int = DEFAULT_MAX_SOURCE_PIXELS,
) -> bytes:
    """Downscale ``data`` and stamp tiled, rotated, semi-transparent ``text`` over it.

    The header is checked against ``max_source_pixels`` before any pixel data
    is decoded.
    """

    with Image.open(BytesIO(data)) as source:
        if source.width * source.height > max_source_pixels:
            raise PreviewTooLarge(f"{source.width}x{source.height} exceeds {max_source_pixels} pixels")
        image = ImageOps.exif_transpose(source).convert("RGBA")
    image.thumbnail((max_dimension, max_dimension))

    font_size = max(14, min(image.size) // 12)
    font = ImageFont.load_default(size=font_size)
    left, top, right, bottom = ImageDraw.Draw(image).textbbox((0, 0), text, font=font)
    text_w, text_h = right - left, bottom - top

    tile = Image.new("RGBA", (text_w + font_size * 2, text_h + font_size * 2), (0, 0, 0, 0))
    draw = ImageDraw.Draw(tile)
    draw.text((font_size - left, font_size - top), text, font=font, fill=(255, 255, 255, TEXT_OPACITY))
    draw.text((font_size - left + 1, font_size - top + 1), text, font=font, fill=(0, 0, 0, TEXT_OPACITY // 2))
    tile = tile.rotate(TEXT_ANGLE, expand=True, resample=Image.Resampling.BICUBIC)

    overlay = Image.new("RGBA", image.size, (0, 0, 0, 0))
    step_x, step_y = max(1, tile.width), max(1, tile.height)
    for row, y in enumerate(range(-step_y // 2, image.height, step_y)):
        offset = (step_x // 2) if row % 2 else 0
        for x in range(-step_x + offset, image.width, step_x):
            overlay.paste(tile, (x, y), tile)

    stamped = Image.alpha_composite(image, overlay)
    out = BytesIO()
    stamped.save(out, format="PNG", optimize=True)
    return out.getvalue()


def _pdf_overlay(width: float, height: float, text: str) -> PdfReader:
    buffer = BytesIO()
    sheet = canvas.Canvas(buffer, pagesize=(width, height))
    font_size = max(18.0, min(width, height) / 10)
    sheet.setFont("Helvetica-Bold", font_size)
    sheet.setFillColor(Color(0.5, 0.5, 0.5, alpha=0.3))
    sheet.saveState()
    sheet.translate(width / 2, height / 2)
    sheet.rotate(45)
    span = max(width, height)
    line = 0.0
    while line <= span:
        sheet.drawCentredString(0, line, text)
        if line:
            sheet.drawCentredString(0, -line, text)
        line += font_size * 3
    sheet.restoreState()
    sheet.showPage()
    sheet.save()
    buffer.seek(0)
    return PdfReader(buffer)


def watermark_pdf(data: bytes, text: str) -> bytes:
    """Merge a translucent diagonal stamp onto every page of ``data``."""

    reader = PdfReader(BytesIO(data))
    if reader.is_encrypted:
        raise PdfReadError("encrypted PDF cannot be stamped")

    writer = PdfWriter()
    for page in reader.pages:
        width = float(page.mediabox.width)
        height = float(page.mediabox.height)
        page.merge_page(_pdf_overlay(width, height, text).pages[0])
        writer.add_page(page)

    out = BytesIO()
    writer.write(out)
    return out.getvalue()


# Malformed PDFs surface from pypdf as lookup and type errors as well as PyPdfError.
RENDER_ERRORS = (UnidentifiedImageError, PyPdfError, OSError, ValueError, KeyError, IndexError, TypeError, AttributeError)


def render_preview(
    store: ObjectStore,
    bucket: str,
    path: str,
    watermark_text: str | None,
    media_kind: MediaKind,
    *,
    default_text: str = "PREVIEW",
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    max_source_pixels: int = DEFAULT_MAX_SOURCE_PIXELS,
) -> PreviewHandle:
    """Return a stamped preview of ``bucket/path`` or an unavailable handle.

    Failures never fall back to the origin bytes. Oversized images yield
    ``too_large``; anything Pillow or pypdf cannot handle yields ``render_failed``.
    """

    if media_kind is MediaKind.UNSUPPORTED:
        return PreviewHandle.unavailable("unsupported_media")

    text = (watermark_text or "").strip() or default_text
    try:
        data = store.read(bucket, path)
    except StorageError as exc:
        logger.warning("Preview origin unreadable", extra={"bucket": bucket, "error_code": exc.code})
        return PreviewHandle.unavailable("origin_unavailable")

    try:
        if media_kind is MediaKind.IMAGE:
            content = watermark_image(data, text, max_dimension=max_dimension, max_source_pixels=max_source_pixels)
            return PreviewHandle(available=True, content=content, media_type="image/png")
        content = watermark_pdf(data, text)
        return PreviewHandle(available=True, content=content, media_type="application/pdf")
    except (PreviewTooLarge, Image.DecompressionBombError) as exc:
        logger.warning(
            "Preview origin too large",
            extra={"bucket": bucket, "media_kind": media_kind.value, "error_type": type(exc).__name__},
        )
        return PreviewHandle.unavailable("too_large")
    except RENDER_ERRORS as exc:
        logger.warning(
            "Preview rendering failed",
            extra={"bucket": bucket, "media_kind": media_kind.value, "error_type": type(exc).__name__},
        )
        return PreviewHandle.unavailable("render_failed")


__all__ = [
    "MediaKind",
    "PreviewHandle",
    "PreviewTooLarge",
    "media_kind_for",
    "render_preview",
    "watermark_image",
    "watermark_pdf",
]
