# print_area.py
"""
Print area detection for rendered mockup templates.

Every template is rendered by Printful with a solid magenta marker artwork.
The marker is composited onto a product photo and anti-aliased at its edges,
so pixels are classified in HSL space: the hue must be close to magenta, the
colour saturated, and the pixel not too dark. The bounding box of all marker
pixels, as fractions of the image size, is the print area a real design will
later be composited into.
"""

from io import BytesIO

import numpy as np
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, Field, ValidationError, model_validator

MARKER_HUE = 300.0  # Magenta, in degrees
HUE_TOLERANCE = 15.0
MIN_SATURATION = 0.4
MIN_LIGHTNESS = 0.15  # Excludes near-black fringes that share the hue

_EDGE_EPSILON = 1e-9


class PrintAreaDetectionError(Exception):
    """The print area could not be derived from a template image."""


class MarkerNotFoundError(PrintAreaDetectionError):
    """The template image contains no marker-coloured pixel."""


class PrintArea(BaseModel):
    """A rectangle in image-fraction coordinates."""
    x: float = Field(..., ge=0.0, le=1.0)
    y: float = Field(..., ge=0.0, le=1.0)
    width: float = Field(..., gt=0.0, le=1.0)
    height: float = Field(..., gt=0.0, le=1.0)

    @model_validator(mode="after")
    def _fits_inside_image(self) -> "PrintArea":
        # Float division can overshoot the right/bottom edge by a rounding error.
        for origin, extent in (("x", "width"), ("y", "height")):
            overshoot = getattr(self, origin) + getattr(self, extent) - 1.0
            if overshoot > _EDGE_EPSILON:
                raise ValueError(f"{origin} + {extent} exceeds the image bounds")
            if overshoot > 0:
                setattr(self, extent, 1.0 - getattr(self, origin))
        return self


# Used when a template renders but the marker cannot be located.
FALLBACK_PRINT_AREA = PrintArea(x=0.12, y=0.08, width=0.76, height=0.84)


def rgb_to_hsl(pixels: np.ndarray):
    """
    Vectorised RGB -> HSL for an (..., 3) uint8 array.

    Returns (hue in degrees [0, 360), saturation [0, 1], lightness [0, 1]).
    """
    rgb = pixels.astype(np.float64) / 255.0
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    high = rgb.max(axis=-1)
    low = rgb.min(axis=-1)
    delta = high - low
    lightness = (high + low) / 2.0

    chromatic = delta > 0
    safe_delta = np.where(chromatic, delta, 1.0)

    # Saturation denominator is never zero for chromatic pixels.
    denom = np.where(lightness > 0.5, 2.0 - high - low, high + low)
    saturation = np.where(chromatic, delta / np.where(chromatic, denom, 1.0), 0.0)

    # Red wins ties, then green, matching the usual scalar formulation.
    hue = np.select(
        [high == r, high == g],
        [((g - b) / safe_delta) % 6.0, (b - r) / safe_delta + 2.0],
        default=(r - g) / safe_delta + 4.0,
    )
    hue = np.where(chromatic, hue * 60.0, 0.0)
    return hue, saturation, lightness


def marker_mask(pixels: np.ndarray) -> np.ndarray:
    """Boolean (H, W) mask of marker-coloured pixels."""
    hue, saturation, lightness = rgb_to_hsl(pixels)
    distance = np.abs(hue - MARKER_HUE)
    distance = np.minimum(distance, 360.0 - distance)
    return (distance < HUE_TOLERANCE) & (saturation > MIN_SATURATION) & (lightness > MIN_LIGHTNESS)


def detect_print_area_in_pixels(pixels: np.ndarray) -> PrintArea:
    """Locate the marker in an (H, W, 3) RGB array."""
    height, width = pixels.shape[:2]
    coords = np.argwhere(marker_mask(pixels))
    if coords.size == 0:
        raise MarkerNotFoundError("Could not find the magenta placeholder in the template")

    min_y, min_x = coords.min(axis=0)
    max_y, max_x = coords.max(axis=0)
    try:
        return PrintArea(
            x=int(min_x) / width,
            y=int(min_y) / height,
            width=int(max_x - min_x + 1) / width,
            height=int(max_y - min_y + 1) / height,
        )
    except ValidationError as e:
        raise PrintAreaDetectionError(f"Detected print area is out of bounds: {e}") from e


def detect_print_area(image_bytes: bytes) -> PrintArea:
    """Decode an encoded image (PNG/JPEG) and locate the marker rectangle."""
    try:
        with Image.open(BytesIO(image_bytes)) as img:
            pixels = np.asarray(img.convert("RGB"))
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise PrintAreaDetectionError(f"Template image could not be decoded: {e}") from e
    return detect_print_area_in_pixels(pixels)
