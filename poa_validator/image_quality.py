"""
Image-quality analysis for photographed or scanned documents.

Computes resolution, colour space and three 0-1 quality sub-scores
(sharpness, brightness, contrast) with Pillow, combines them into a 0-100
score, and turns threshold breaches into remediation hints.

Unreadable input raises AnalysisFailure so callers can tell "could not
analyze" apart from "analyzed and scored poorly".
"""

from __future__ import annotations

import io
import logging

from PIL import Image, ImageFilter, ImageStat, UnidentifiedImageError

from .exceptions import AnalysisFailure
from .models import ColorSpace, ImageQuality, QualityMetrics, Resolution

logger = logging.getLogger(__name__)

# ─── Scoring Constants ───────────────────────────────────────────────

TARGET_DPI = 300
MIN_DPI = 150
MAX_MEGAPIXELS = 20

# Variance of the FIND_EDGES response that counts as fully sharp
SHARPNESS_VARIANCE_CEILING = 1500.0
# Larger images are downscaled before measuring
ANALYSIS_MAX_DIMENSION = 2000

WEIGHT_RESOLUTION = 0.3
WEIGHT_SHARPNESS = 0.3
WEIGHT_CONTRAST = 0.2
WEIGHT_BRIGHTNESS = 0.2

MIN_SHARPNESS = 0.3
MIN_CONTRAST = 0.4
MIN_BRIGHTNESS = 0.2
MAX_BRIGHTNESS = 0.85

# US Letter, used to estimate DPI when the file carries none
_PAGE_LONG_INCHES = 11.0
_PAGE_SHORT_INCHES = 8.5


def analyze_image_quality(image_bytes: bytes) -> ImageQuality:
    """Measure an image and score its suitability for OCR.

    Raises:
        AnalysisFailure: If the bytes are empty, corrupt or not an image.
    """
    if not image_bytes:
        raise AnalysisFailure("No image data provided")

    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            image.load()
            quality = _analyze(image)
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise AnalysisFailure(
            f"Could not analyze image: {exc}",
            {"error_type": type(exc).__name__, "size_bytes": len(image_bytes)},
        ) from exc

    logger.info(
        "Image quality: score=%d dpi=%d (%s) sharpness=%.2f contrast=%.2f",
        quality.overall_score,
        quality.resolution.dpi,
        quality.resolution.dpi_source,
        quality.quality.sharpness,
        quality.quality.contrast,
    )
    return quality


def _analyze(image: Image.Image) -> ImageQuality:
    width, height = image.size
    dpi, dpi_source = _resolve_dpi(image)
    resolution = Resolution(
        width=width,
        height=height,
        megapixels=round(width * height / 1_000_000, 2),
        dpi=dpi,
        dpi_source=dpi_source,
    )

    bands = image.getbands()
    color_space = ColorSpace(
        mode=image.mode,
        channels=len(bands),
        has_alpha="A" in bands or "transparency" in image.info,
    )

    quality = _measure(image)
    recommendations = _recommend(resolution, quality)

    return ImageQuality(
        overall_score=_overall_score(resolution, quality),
        resolution=resolution,
        color_space=color_space,
        quality=quality,
        recommendations=recommendations,
    )


def _resolve_dpi(image: Image.Image) -> tuple[int, str]:
    """DPI from metadata when present, else estimated from a letter-size page."""
    raw = image.info.get("dpi")
    if raw:
        dpi = int(round(float(raw[0])))
        if dpi > 1:
            return dpi, "metadata"

    long_side, short_side = max(image.size), min(image.size)
    estimate = min(long_side / _PAGE_LONG_INCHES, short_side / _PAGE_SHORT_INCHES)
    return int(round(estimate)), "estimated"


def _measure(image: Image.Image) -> QualityMetrics:
    gray = image.convert("L")
    if max(gray.size) > ANALYSIS_MAX_DIMENSION:
        gray.thumbnail((ANALYSIS_MAX_DIMENSION, ANALYSIS_MAX_DIMENSION))

    stats = ImageStat.Stat(gray)
    brightness = stats.mean[0] / 255
    contrast = min(stats.stddev[0] / 128, 1.0)

    # Edge energy: flat or blurred pages have almost no edge response
    edges = gray.filter(ImageFilter.FIND_EDGES)
    # FIND_EDGES leaves the 1px border unfiltered
    width, height = edges.size
    if width > 2 and height > 2:
        edges = edges.crop((1, 1, width - 1, height - 1))
    sharpness = min(ImageStat.Stat(edges).var[0] / SHARPNESS_VARIANCE_CEILING, 1.0)

    return QualityMetrics(
        sharpness=round(sharpness, 3),
        brightness=round(min(brightness, 1.0), 3),
        contrast=round(contrast, 3),
    )


def _overall_score(resolution: Resolution, quality: QualityMetrics) -> int:
    score = (
        min(resolution.dpi / TARGET_DPI, 1.0) * WEIGHT_RESOLUTION
        + quality.sharpness * WEIGHT_SHARPNESS
        + min(quality.contrast * 2, 1.0) * WEIGHT_CONTRAST
        + (1 - abs(quality.brightness - 0.5) * 2) * WEIGHT_BRIGHTNESS
    )
    return max(0, min(100, round(score * 100)))


def _recommend(resolution: Resolution, quality: QualityMetrics) -> list[str]:
    recommendations: list[str] = []

    if resolution.dpi < MIN_DPI:
        recommendations.append(
            "Image resolution is low. For better OCR results, scan at 300 DPI or higher."
        )
    if quality.sharpness < MIN_SHARPNESS:
        recommendations.append("Image appears blurry. Try to capture a sharper image.")
    if quality.contrast < MIN_CONTRAST:
        recommendations.append("Image has low contrast. Adjust lighting or image settings.")
    if quality.brightness < MIN_BRIGHTNESS:
        recommendations.append("Image is too dark. Add light or increase exposure.")
    elif quality.brightness > MAX_BRIGHTNESS:
        recommendations.append("Image is overexposed. Reduce glare or lighting.")
    if resolution.megapixels > MAX_MEGAPIXELS:
        recommendations.append(
            "Image is very large. Consider reducing size for faster processing."
        )

    return recommendations
