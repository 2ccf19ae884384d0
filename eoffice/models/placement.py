# eoffice/models/placement.py

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

# Preview canvas width assumed when the client sends nothing usable
DEFAULT_RENDER_WIDTH = 600.0
# Anything at or below this cannot be a real preview width
MIN_RENDER_WIDTH = 50.0
# Box size used when a placement arrives without w/h
DEFAULT_BOX_SIZE = 80.0


class PlacementKind(str, Enum):
    QR = "qr"
    NUMBER = "number"


class OverlayPlacement(BaseModel):
    """
    One stamp instruction captured on the client preview.

    x, y, w, h are in preview pixels (origin top-left) at the reference
    render width, NOT in PDF points.
    """
    page_index: int = Field(0, description="0-based target page")
    kind: PlacementKind = Field(..., description="qr | number")
    x: float = 0.0
    y: float = 0.0
    w: Optional[float] = None
    h: Optional[float] = None

    @field_validator("kind", mode="before")
    @classmethod
    def _legacy_kind(cls, v: Any) -> Any:
        # Older clients send "nomor" for the number box
        if isinstance(v, str) and v.strip().lower() == "nomor":
            return PlacementKind.NUMBER
        if isinstance(v, str):
            return v.strip().lower()
        return v


@dataclass
class PageBox:
    """
    Visible page geometry in PDF points, as a viewer shows it.

    width/height are the crop box size after the page's /Rotate is applied,
    which is what the preview image is rendered from. left/bottom are the
    crop box origin in unrotated user space; most pages start at (0, 0).
    """
    width: float
    height: float
    left: float = 0.0
    bottom: float = 0.0
    rotation: int = 0

    @property
    def unrotated_size(self) -> Tuple[float, float]:
        if self.rotation in (90, 270):
            return self.height, self.width
        return self.width, self.height

    def user_space_transform(self) -> Tuple[float, float, float, float, float, float]:
        """
        Affine matrix (a, b, c, d, e, f) taking visible coordinates (origin
        bottom-left of the rotated crop box) to unrotated user space.
        """
        w0, h0 = self.unrotated_size
        a, b, c, d, e, f = {
            0: (1, 0, 0, 1, 0, 0),
            90: (0, 1, -1, 0, w0, 0),
            180: (-1, 0, 0, -1, w0, h0),
            270: (0, -1, 1, 0, 0, h0),
        }[self.rotation]
        return a, b, c, d, e + self.left, f + self.bottom


@dataclass(frozen=True)
class PdfRect:
    """Rectangle in PDF coordinates (origin bottom-left of the page box)."""
    x: float
    y: float
    w: float
    h: float


def resolve_render_width(raw: Any, default: float = DEFAULT_RENDER_WIDTH) -> float:
    """
    Parse the reference render width sent by the client.
    Missing, non-numeric, non-finite or implausibly small (<= 50) → default.
    """
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(value) or value <= MIN_RENDER_WIDTH:
        return default
    return value


def placement_to_pdf_rect(
    placement: OverlayPlacement,
    page: PageBox,
    render_width: float,
) -> Optional[PdfRect]:
    """
    Convert a preview-pixel placement (origin top-left) into a rect in the
    page's visible coordinates (origin bottom-left, /Rotate applied).

    scale = page.width / render_width, applied to x, y, w, h; then
    finalY = page.height - y*scale - h*scale.

    A box dragged past the top or left edge of the preview is pulled back
    to 0. Returns None when a value is not finite or the box has no area.
    """
    scale = page.width / render_width

    w = (placement.w if placement.w is not None else DEFAULT_BOX_SIZE) * scale
    h = (placement.h if placement.h is not None else DEFAULT_BOX_SIZE) * scale
    x = placement.x * scale
    top = placement.y * scale

    if not all(math.isfinite(v) for v in (x, top, w, h)):
        return None
    if w <= 0 or h <= 0:
        return None

    x = max(x, 0.0)
    y = page.height - max(top, 0.0) - h
    return PdfRect(x=x, y=y, w=w, h=h)
