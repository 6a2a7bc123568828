"""Compose invitation files by drawing a QR code at the saved position."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO

import fitz
import qrcode
from PIL import Image
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from placement_errors import UnsupportedAssetError
from placement_types import AssetKind, Position

logger = logging.getLogger(__name__)

INVITE_FORMATS = ("png", "jpg", "pdf")

_MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "pdf": "application/pdf",
}

GUEST_NAME_FONT_SIZE = 24
GUEST_EMAIL_FONT_SIZE = 12
GUEST_TEXT_LEFT = 50
GUEST_NAME_OFFSET = 50
GUEST_EMAIL_OFFSET = 80


@dataclass(frozen=True)
class InviteOptions:
    format: str = "png"
    quality: int = 90
    include_guest_info: bool = False


@dataclass(frozen=True)
class GuestInfo:
    full_name: str = ""
    email: str = ""


def mime_type_for(fmt: str) -> str:
    try:
        return _MIME_TYPES[fmt]
    except KeyError:
        raise UnsupportedAssetError(f"Unknown invite format '{fmt}'.") from None


def _is_percentage(value: float) -> bool:
    return 0.0 <= value <= 100.0


def _to_pixels(value: float, extent: float) -> int:
    # Values above 100 come from records that stored absolute pixels.
    if _is_percentage(value):
        return round(value / 100.0 * extent)
    return round(value)


def qr_box(position: Position, page_width: float, page_height: float) -> tuple[int, int, int]:
    """Return ``(left, top, size)`` of the square QR code in page units.

    The smaller of the two converted sides is used so the code stays square.
    """

    width = _to_pixels(position.width, page_width)
    height = _to_pixels(position.height, page_height)
    size = max(min(width, height), 1)
    left = _to_pixels(position.x, page_width)
    top = _to_pixels(position.y, page_height)
    return left, top, size


def render_qr_png(payload: str, size: int) -> bytes:
    """Return PNG bytes of a ``size`` x ``size`` QR code for ``payload``."""

    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        border=1,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    qr_buffer = BytesIO()
    qr.make_image().save(qr_buffer, kind="PNG")
    qr_buffer.seek(0)

    with Image.open(qr_buffer) as img:
        scaled = img.convert("RGB").resize((size, size), Image.Resampling.NEAREST)
    out = BytesIO()
    scaled.save(out, format="PNG")
    return out.getvalue()


def compose_image_invite(
    template_bytes: bytes,
    position: Position,
    payload: str,
    options: InviteOptions = InviteOptions(),
) -> bytes:
    """Paste the QR code onto an image template and encode as PNG or JPEG."""

    with Image.open(BytesIO(template_bytes)) as base:
        composed = base.convert("RGB")
    left, top, size = qr_box(position, composed.width, composed.height)
    with Image.open(BytesIO(render_qr_png(payload, size))) as qr_img:
        composed.paste(qr_img, (left, top))

    logger.debug(
        "Image invite %dx%d, QR at (%d, %d) size %d",
        composed.width,
        composed.height,
        left,
        top,
        size,
    )
    out = BytesIO()
    if options.format == "jpg":
        composed.save(out, format="JPEG", quality=options.quality)
    else:
        composed.save(out, format="PNG")
    return out.getvalue()


def _pdf_from_pdf_template(
    template_bytes: bytes,
    position: Position,
    payload: str,
    guest: GuestInfo | None,
) -> bytes:
    with fitz.open(stream=template_bytes, filetype="pdf") as source:
        output = fitz.open()
        output.insert_pdf(source, from_page=0, to_page=0)

    try:
        page = output.load_page(0)
        left, top, size = qr_box(position, page.rect.width, page.rect.height)
        page.insert_image(
            fitz.Rect(left, top, left + size, top + size),
            stream=render_qr_png(payload, max(size * 4, 64)),
        )
        if guest is not None and guest.full_name:
            page.insert_text(
                (GUEST_TEXT_LEFT, GUEST_NAME_OFFSET),
                guest.full_name,
                fontsize=GUEST_NAME_FONT_SIZE,
                fontname="helv",
            )
            if guest.email:
                page.insert_text(
                    (GUEST_TEXT_LEFT, GUEST_EMAIL_OFFSET),
                    guest.email,
                    fontsize=GUEST_EMAIL_FONT_SIZE,
                    fontname="helv",
                )
        return output.tobytes()
    finally:
        output.close()


def _pdf_from_image_template(
    template_bytes: bytes,
    position: Position,
    payload: str,
    guest: GuestInfo | None,
) -> bytes:
    with Image.open(BytesIO(template_bytes)) as img:
        page_width, page_height = img.size

    buffer = BytesIO()
    canvas_obj = canvas.Canvas(buffer, pagesize=(page_width, page_height))
    canvas_obj.drawImage(
        ImageReader(BytesIO(template_bytes)),
        0,
        0,
        width=page_width,
        height=page_height,
        mask="auto",
    )

    left, top, size = qr_box(position, page_width, page_height)
    # ReportLab measures from the bottom-left corner.
    canvas_obj.drawImage(
        ImageReader(BytesIO(render_qr_png(payload, max(size, 1)))),
        left,
        page_height - top - size,
        width=size,
        height=size,
        mask="auto",
    )

    if guest is not None and guest.full_name:
        canvas_obj.setFont("Helvetica", GUEST_NAME_FONT_SIZE)
        canvas_obj.drawString(
            GUEST_TEXT_LEFT,
            page_height - GUEST_NAME_OFFSET,
            guest.full_name,
        )
        if guest.email:
            canvas_obj.setFont("Helvetica", GUEST_EMAIL_FONT_SIZE)
            canvas_obj.drawString(
                GUEST_TEXT_LEFT,
                page_height - GUEST_EMAIL_OFFSET,
                guest.email,
            )

    canvas_obj.showPage()
    canvas_obj.save()
    return buffer.getvalue()


def compose_pdf_invite(
    template_bytes: bytes,
    kind: AssetKind,
    position: Position,
    payload: str,
    guest: GuestInfo | None = None,
) -> bytes:
    """Return a one-page PDF with the QR code drawn at ``position``."""

    if kind is AssetKind.PDF:
        return _pdf_from_pdf_template(template_bytes, position, payload, guest)
    return _pdf_from_image_template(template_bytes, position, payload, guest)


def generate_invite(
    template_bytes: bytes,
    kind: AssetKind,
    position: Position,
    payload: str,
    options: InviteOptions = InviteOptions(),
    guest: GuestInfo | None = None,
) -> bytes:
    """Render an invite in ``options.format`` from the given template."""

    if options.format not in INVITE_FORMATS:
        raise UnsupportedAssetError(f"Unknown invite format '{options.format}'.")

    if options.format == "pdf":
        return compose_pdf_invite(
            template_bytes,
            kind,
            position,
            payload,
            guest if options.include_guest_info else None,
        )

    if kind is AssetKind.PDF:
        raise UnsupportedAssetError(
            "Cannot generate an image invite from a PDF template. Use PDF format instead."
        )
    return compose_image_invite(template_bytes, position, payload, options)
