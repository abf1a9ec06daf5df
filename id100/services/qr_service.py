"""QR codes for printed tool placards.

The payload is the token's upload URL. PNG is rendered through Pillow;
SVG placards are drawn from the QR module matrix with the bag name as a
caption underneath.
"""

from html import escape
from io import BytesIO

import qrcode
from qrcode.constants import ERROR_CORRECT_H

from id100.config import settings

MODULE_SIZE = 10
CAPTION_HEIGHT = 60


def upload_url(token: str) -> str:
    return f"{settings.public_base_url}/upload?token={token}"


def _build(payload: str) -> qrcode.QRCode:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, box_size=MODULE_SIZE, border=4)
    qr.add_data(payload)
    qr.make(fit=True)
    return qr


def render_png(payload: str) -> bytes:
    img = _build(payload).make_image(fill_color="black", back_color="white")
    buf = BytesIO()
    img.save(buf)
    return buf.getvalue()


def render_svg(payload: str, label: str = "") -> bytes:
    matrix = _build(payload).get_matrix()
    size = len(matrix) * MODULE_SIZE
    height = size + (CAPTION_HEIGHT if label else 0)
    rects = [
        f'<rect x="{x * MODULE_SIZE}" y="{y * MODULE_SIZE}" '
        f'width="{MODULE_SIZE}" height="{MODULE_SIZE}"/>'
        for y, row in enumerate(matrix)
        for x, dark in enumerate(row)
        if dark
    ]
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{size}" height="{height}" '
        f'viewBox="0 0 {size} {height}">',
        f'<rect width="{size}" height="{height}" fill="white"/>',
        '<g fill="black">',
        *rects,
        "</g>",
    ]
    if label:
        parts.append(
            f'<text x="{size // 2}" y="{size + CAPTION_HEIGHT // 2}" text-anchor="middle" '
            f'dominant-baseline="middle" font-family="sans-serif" font-size="28">'
            f"{escape(label)}</text>"
        )
    parts.append("</svg>")
    return "\n".join(parts).encode("utf-8")
