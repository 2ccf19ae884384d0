# eoffice/core/qr.py

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional, Union

import qrcode
from PIL import Image

logger = logging.getLogger(__name__)

# Logo side as a fraction of the QR image side
LOGO_RATIO = 0.23
# White border around the logo, in pixels
LOGO_PADDING_PX = 3


def build_qr_image(
    data: str,
    *,
    size_px: int = 300,
    logo_path: Optional[Union[str, Path]] = None,
) -> Image.Image:
    """
    Render `data` as a QR code of `size_px` square pixels with an optional
    centered logo on a white pad.

    High error correction (H, ~30%) keeps the code readable with the 23%
    logo covering its center.
    """
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=10,
        border=1,
    )
    qr.add_data(data)
    qr.make(fit=True)

    buffer = io.BytesIO()
    qr.make_image(fill_color="black", back_color="white").save(buffer)
    buffer.seek(0)

    with Image.open(buffer) as raw:
        canvas = raw.convert("RGB").resize((size_px, size_px), Image.NEAREST)

    if logo_path and Path(logo_path).exists():
        logo_size = int(round(size_px * LOGO_RATIO))
        pos = (size_px - logo_size) // 2

        pad = Image.new(
            "RGB",
            (logo_size + 2 * LOGO_PADDING_PX, logo_size + 2 * LOGO_PADDING_PX),
            (255, 255, 255),
        )
        canvas.paste(pad, (pos - LOGO_PADDING_PX, pos - LOGO_PADDING_PX))

        with Image.open(logo_path) as logo_src:
            logo = logo_src.convert("RGBA").resize((logo_size, logo_size), Image.LANCZOS)
        canvas.paste(logo, (pos, pos), logo)
    elif logo_path:
        logger.warning(f"QR logo not found at {logo_path}; rendering plain QR")

    return canvas
