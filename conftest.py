"""Pytest configuration: project root on sys.path, shared image fixtures."""

import io
import sys
from pathlib import Path

import pytest
from PIL import Image, ImageDraw

sys.path.insert(0, str(Path(__file__).parent))


@pytest.fixture
def make_image_bytes():
    """Factory for in-memory test images.

    pattern="flat" gives a uniform grey page, pattern="checker" a sharp
    black/white checkerboard.
    """

    def _make(
        size: tuple[int, int] = (850, 1100),
        pattern: str = "checker",
        fmt: str = "PNG",
        dpi: tuple[int, int] | None = (300, 300),
        fill: int = 128,
        square: int = 25,
    ) -> bytes:
        image = Image.new("L", size, fill)
        if pattern == "checker":
            draw = ImageDraw.Draw(image)
            for y in range(0, size[1], square):
                for x in range(0, size[0], square):
                    color = 255 if (x // square + y // square) % 2 == 0 else 0
                    draw.rectangle([x, y, x + square - 1, y + square - 1], fill=color)

        buffer = io.BytesIO()
        params = {"dpi": dpi} if dpi else {}
        image.save(buffer, format=fmt, **params)
        return buffer.getvalue()

    return _make
