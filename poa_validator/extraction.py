"""
Text extraction adapters: PDF text layer (pdfplumber) and OCR (pytesseract).

Every adapter normalizes its backend's output to ``ExtractedText`` with a
0-100 confidence (0 when the backend cannot say). Any unreadable input
surfaces as ExtractionFailure; there is no partial result.
"""

from __future__ import annotations

import io
import logging
import math
from abc import ABC, abstractmethod
from pathlib import Path

import pdfplumber
import pytesseract
from pdf2image import convert_from_bytes
from pdf2image.exceptions import (
    PDFInfoNotInstalledError,
    PDFPageCountError,
    PDFSyntaxError,
)
from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError

from .config import Settings, get_settings
from .exceptions import ExtractionFailure
from .models import ExtractedText

logger = logging.getLogger(__name__)

# Text layer of a digital PDF is as good as it gets
PDF_TEXT_CONFIDENCE = 95.0

IMAGE_EXTENSIONS: frozenset[str] = frozenset({
    ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tif", ".tiff", ".webp",
})


class TextExtractor(ABC):
    """Contract for all text extraction adapters."""

    @abstractmethod
    def extract(self, document_bytes: bytes) -> ExtractedText:
        """Extract text from raw document bytes.

        Raises:
            ExtractionFailure: if the document cannot be read.
        """


# ─── OCR ─────────────────────────────────────────────────────────────


class OcrTextExtractor(TextExtractor):
    """Tesseract OCR over a cleaned-up greyscale copy of the image."""

    def __init__(self, language: str = "eng", tesseract_cmd: str = ""):
        self.language = language
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def extract(self, document_bytes: bytes) -> ExtractedText:
        try:
            with Image.open(io.BytesIO(document_bytes)) as image:
                image.load()
                return self.extract_from_image(image)
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise ExtractionFailure(
                f"Failed to extract text from image: {exc}",
                {"error_type": type(exc).__name__},
            ) from exc

    def extract_from_image(self, image: Image.Image) -> ExtractedText:
        prepared = preprocess_for_ocr(image)
        try:
            data = pytesseract.image_to_data(
                prepared, lang=self.language, output_type=pytesseract.Output.DICT
            )
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError) as exc:
            raise ExtractionFailure(f"OCR engine failed: {exc}") from exc

        text, confidence = _assemble_tesseract_output(data)
        logger.info("OCR extracted %d characters (confidence %.1f%%)", len(text), confidence)
        return ExtractedText(text=text, confidence=confidence)


def preprocess_for_ocr(image: Image.Image) -> Image.Image:
    """Upright, greyscale, stretched contrast, denoised, sharpened."""
    prepared = ImageOps.exif_transpose(image) or image
    prepared = prepared.convert("L")
    prepared = ImageOps.autocontrast(prepared)
    prepared = prepared.filter(ImageFilter.SHARPEN)
    return prepared.filter(ImageFilter.MedianFilter(3))


def _assemble_tesseract_output(data: dict) -> tuple[str, float]:
    """Rebuild line text from image_to_data output and average word confidence."""
    lines: dict[tuple[int, int, int], list[str]] = {}
    confidences: list[float] = []

    for i, word in enumerate(data.get("text", [])):
        word = (word or "").strip()
        if not word:
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        lines.setdefault(key, []).append(word)

        conf = float(data["conf"][i])
        if conf >= 0:
            confidences.append(conf)

    text = "\n".join(" ".join(words) for words in lines.values())
    confidence = sum(confidences) / len(confidences) if confidences else 0.0
    return text, clamp_confidence(confidence)


# ─── PDF ─────────────────────────────────────────────────────────────


class PdfTextExtractor(TextExtractor):
    """Embedded text via pdfplumber; rasterize + OCR when there is none."""

    def __init__(self, ocr: OcrTextExtractor | None = None, ocr_dpi: int = 300):
        self.ocr = ocr
        self.ocr_dpi = ocr_dpi

    def extract(self, document_bytes: bytes) -> ExtractedText:
        text = self._extract_text_layer(document_bytes)
        if text.strip():
            logger.info("PDF text extraction successful: %d characters", len(text))
            return ExtractedText(text=text, confidence=PDF_TEXT_CONFIDENCE)

        if self.ocr is None:
            raise ExtractionFailure(
                "PDF has no text layer and OCR is not available. "
                "This PDF may be scanned, image-based, or corrupted."
            )

        logger.info("PDF has no text layer, attempting OCR conversion...")
        return self._extract_with_ocr(document_bytes, self.ocr)

    def _extract_text_layer(self, pdf_bytes: bytes) -> str:
        try:
            with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
                pages = [page.extract_text() or "" for page in pdf.pages]
        except Exception as exc:
            # Scanned or malformed PDFs still get an OCR attempt
            logger.warning("PDF parsing failed: %s", exc)
            return ""
        return "\n".join(pages).strip()

    def _extract_with_ocr(self, pdf_bytes: bytes, ocr: OcrTextExtractor) -> ExtractedText:
        try:
            pages = convert_from_bytes(pdf_bytes, dpi=self.ocr_dpi)
        except (PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError) as exc:
            raise ExtractionFailure(
                "PDF text extraction failed. This PDF may be scanned, image-based, "
                "or corrupted. Please try uploading as individual images.",
                {"error_type": type(exc).__name__},
            ) from exc

        results = [ocr.extract_from_image(page) for page in pages]
        with_text = [r for r in results if r.text.strip()]
        if not with_text:
            raise ExtractionFailure("OCR found no text in the PDF pages")

        return ExtractedText(
            text="\n".join(r.text for r in with_text),
            confidence=clamp_confidence(
                sum(r.confidence for r in with_text) / len(with_text)
            ),
        )


# ─── Dispatcher ──────────────────────────────────────────────────────


class DocumentTextExtractor:
    """Routes a named upload to the PDF or OCR adapter by file extension."""

    def __init__(self, settings: Settings | None = None):
        settings = settings or get_settings()
        self.ocr = OcrTextExtractor(settings.ocr_language, settings.tesseract_cmd)
        self.pdf = PdfTextExtractor(ocr=self.ocr, ocr_dpi=settings.pdf_ocr_dpi)

    @staticmethod
    def is_image(filename: str) -> bool:
        return Path(filename).suffix.lower() in IMAGE_EXTENSIONS

    def extract(self, document_bytes: bytes, filename: str) -> ExtractedText:
        if not document_bytes:
            raise ExtractionFailure("Document is empty", {"filename": filename})

        extension = Path(filename).suffix.lower()
        if extension == ".pdf":
            result = self.pdf.extract(document_bytes)
        elif extension in IMAGE_EXTENSIONS:
            result = self.ocr.extract(document_bytes)
        else:
            raise ExtractionFailure(
                "Unsupported file format. Please upload a PDF or image file.",
                {"filename": filename, "extension": extension},
            )

        if not result.text.strip():
            raise ExtractionFailure(
                "No text could be extracted from the document",
                {"filename": filename},
            )
        return result


def clamp_confidence(value: float) -> float:
    """Force a backend confidence into 0-100; unknown (NaN) becomes 0."""
    if math.isnan(value):
        return 0.0
    return round(max(0.0, min(100.0, value)), 2)
