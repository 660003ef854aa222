"""
Main validation pipeline: orchestrates the full workflow.

Flow:
  ┌────────────────┐
  │ Document bytes │
  └───────┬────────┘
          │
  ┌───────▼────────┐     ┌───────────────┐
  │   Extraction   │     │ Image quality │   ← images only, non-fatal
  │  (PDF / OCR)   │     │   analysis    │
  └───────┬────────┘     └───────────────┘
          │
  ┌───────┴──────┬──────────────┬──────────────┐
  │              │              │              │   ← run concurrently
┌─▼──────┐ ┌─────▼───┐ ┌────────▼─┐ ┌──────────▼────┐
│ Notary │ │ Witness │ │ Verbiage │ │ Supplementary │
└─┬──────┘ └─────┬───┘ └────────┬─┘ └──────────┬────┘
  └──────────────┴──────┬───────┴──────────────┘
                 ┌──────▼──────┐
                 │ Aggregation │   ← fail > warning > pass > none = fail
                 └─────────────┘

Design principles:
  - Extraction failure is fatal: no partial result.
  - Image-quality failure is not: the report carries a warning instead.
  - A validator that blows up becomes ``not_checked``; it never crashes the run.
  - The uploaded bytes are SHA-256 hashed for the audit trail.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date
from typing import Any

from .config import Settings, get_settings
from .exceptions import AnalysisFailure, ExtractionFailure, ValidatorInternalAnomaly
from .extraction import DocumentTextExtractor
from .image_quality import analyze_image_quality
from .models import (
    CheckResult,
    CheckStatus,
    DocumentValidationReport,
    ExtractedText,
    ImageQuality,
    NotaryCheck,
    SupplementaryChecks,
    ValidationResult,
    VerbiageCheck,
    WitnessCheck,
)
from .notary_registry import StateNotaryRegistry
from .validators import (
    NotaryVerifier,
    perform_supplementary_checks,
    validate_notary,
    validate_verbiage,
    validate_witnesses,
)

logger = logging.getLogger(__name__)


class DocumentValidationPipeline:
    """Orchestrates the full POA validation workflow.

    Usage:
        pipeline = DocumentValidationPipeline()
        report = pipeline.run(pdf_bytes, "poa.pdf")
        if report.result.overall != OverallStatus.PASS:
            for issue in report.result.notary_validation.issues:
                print(issue)
    """

    def __init__(
        self,
        extractor: DocumentTextExtractor | None = None,
        image_analyzer: Callable[[bytes], ImageQuality] = analyze_image_quality,
        settings: Settings | None = None,
        notary_verifier: NotaryVerifier | None = None,
    ):
        self.settings = settings or get_settings()
        self._extractor = extractor
        self.image_analyzer = image_analyzer
        self.notary_verifier = notary_verifier or StateNotaryRegistry.from_settings(self.settings)

    @property
    def extractor(self) -> DocumentTextExtractor:
        if self._extractor is None:
            self._extractor = DocumentTextExtractor(self.settings)
        return self._extractor

    # ─── Full Run ────────────────────────────────────────────────────

    def run(
        self, document_bytes: bytes, filename: str, today: date | None = None
    ) -> DocumentValidationReport:
        """Extract, analyze (images), validate and aggregate one document.

        Raises:
            ExtractionFailure: The document could not be read at all.
        """
        start = time.perf_counter()
        doc_hash = hashlib.sha256(document_bytes).hexdigest()
        logger.info("Starting validation for document: %s", filename)

        try:
            extracted = self.extractor.extract(document_bytes, filename)
        except ExtractionFailure as exc:
            logger.error("Extraction failed for %s: %s", filename, exc.message)
            raise

        warnings: list[str] = []
        image_quality: ImageQuality | None = None
        if DocumentTextExtractor.is_image(filename):
            try:
                image_quality = self.image_analyzer(document_bytes)
            except AnalysisFailure as exc:
                logger.warning("Image quality analysis failed for %s: %s", filename, exc.message)
                warnings.append(f"Image quality analysis failed: {exc.message}")

        result = self.validate_document(extracted, today)
        total_ms = _elapsed_ms(start)
        result = result.model_copy(update={"processing_time": total_ms})

        logger.info(
            "Document validation completed in %dms for %s: %s",
            total_ms, filename, result.overall.value,
        )
        return DocumentValidationReport(
            document_name=filename,
            original_hash=doc_hash,
            extracted_text=extracted.text,
            result=result,
            image_quality=image_quality,
            warnings=warnings,
        )

    # ─── Validation Only ─────────────────────────────────────────────

    def validate_document(
        self, extracted: ExtractedText, today: date | None = None
    ) -> ValidationResult:
        """Run all four validators against the same text and aggregate.

        Deterministic for identical text and run date (``processing_time``
        aside).
        """
        start = time.perf_counter()
        today = today or date.today()
        text = extracted.text

        jobs: dict[str, tuple[Callable[..., CheckResult], tuple[Any, ...]]] = {
            "notary": (validate_notary, (text, today, self.notary_verifier)),
            "witness": (validate_witnesses, (text,)),
            "verbiage": (validate_verbiage, (text,)),
            "supplementary": (perform_supplementary_checks, (text, today)),
        }

        with ThreadPoolExecutor(
            max_workers=self.settings.validator_workers,
            thread_name_prefix="poa-validator",
        ) as executor:
            futures = {
                category: executor.submit(_guarded, category, func, args)
                for category, (func, args) in jobs.items()
            }
            checks = {category: _collect(category, future) for category, future in futures.items()}

        return ValidationResult(
            notary_validation=checks["notary"],
            witness_validation=checks["witness"],
            verbiage_validation=checks["verbiage"],
            additional_checks=checks["supplementary"],
            ocr_confidence=extracted.confidence,
            processing_time=_elapsed_ms(start),
        )


def validate_document(
    extracted_text: ExtractedText, today: date | None = None
) -> ValidationResult:
    """Validate already-extracted text with a default pipeline."""
    return DocumentValidationPipeline().validate_document(extracted_text, today)


# ─── Internal Helpers ────────────────────────────────────────────────

_NOT_CHECKED_FACTORIES: dict[str, Callable[..., CheckResult]] = {
    "notary": NotaryCheck,
    "witness": WitnessCheck,
    "verbiage": VerbiageCheck,
    "supplementary": SupplementaryChecks,
}


def _guarded(
    category: str, func: Callable[..., CheckResult], args: tuple[Any, ...]
) -> CheckResult:
    try:
        return func(*args)
    except Exception as exc:
        raise ValidatorInternalAnomaly(category, f"{type(exc).__name__}: {exc}") from exc


def _collect(category: str, future: Future) -> Any:
    """The validator's result, or a ``not_checked`` placeholder if it blew up."""
    try:
        return future.result()
    except ValidatorInternalAnomaly as exc:
        logger.error("%s validator failed: %s", category, exc.message, exc_info=exc)
        return _NOT_CHECKED_FACTORIES[category](
            status=CheckStatus.NOT_CHECKED,
            issues=[f"Internal error during {category} validation: {exc.message}"],
        )


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))
