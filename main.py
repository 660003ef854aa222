#!/usr/bin/env python3
"""
POA Compliance Validator: Entry Point
=====================================

Demonstrates the validation engine on a sample power of attorney.

Usage:
    python main.py                  # Validate the built-in sample text
    python main.py path/to/poa.pdf  # Validate a PDF or scanned image
"""

from __future__ import annotations

import sys
from pathlib import Path

from dotenv import load_dotenv

from poa_validator.config import configure_logging, get_settings
from poa_validator.exceptions import ExtractionFailure
from poa_validator.models import CheckStatus, ExtractedText, OverallStatus
from poa_validator.pipeline import DocumentValidationPipeline

# ─── Sample Document (a notary with an expired commission) ──────────

SAMPLE_POA_TEXT = """\
DURABLE POWER OF ATTORNEY FOR DISPOSITION OF REMAINS
Pursuant to the California Probate Code, I, Mary Principal, authorize
my agent to arrange for the cremation of my body and the final
disposition of remains.
Date: 03/01/2024
Principal Signature: Mary Principal

Witness 1: Robert Roe
Witness 2: Sandra Smith

State of California, County of Alameda
Acknowledged before me: Jane Doe
Notary Public: Jane Doe
Commission Number: 1234567
Commission Expires: 01/01/2020
"""


# ─── ANSI Color Constants ───────────────────────────────────────────

_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"
_BOLD = "\033[1m"
_RESET = "\033[0m"
_WIDTH = 72

_STATUS_COLORS = {
    CheckStatus.PASS: _GREEN,
    CheckStatus.WARNING: _YELLOW,
    CheckStatus.FAIL: _RED,
    CheckStatus.NOT_CHECKED: _DIM,
}


# ─── Pretty Printer Helpers ─────────────────────────────────────────


def _print_check(label: str, check) -> None:
    """Print one check category with its issues."""
    color = _STATUS_COLORS[check.status]
    print(f"  {label:<14}{color}{_BOLD}{check.status.value.upper()}{_RESET}")
    for issue in check.issues:
        print(f"      {color}-{_RESET} {issue}")


def _print_details(result) -> None:
    notary = result.notary_validation
    witness = result.witness_validation
    verbiage = result.verbiage_validation
    print(f"  {_DIM}Notary:      {notary.notary_name} #{notary.commission_number} "
          f"(expires {notary.commission_expiry}){_RESET}")
    print(f"  {_DIM}Witnesses:   {witness.witness_count}/{witness.required_witnesses} "
          f"{', '.join(witness.witness_names)}{_RESET}")
    print(f"  {_DIM}POA type:    {verbiage.poa_type.value}, cremation authority: "
          f"{verbiage.has_cremation_authority}{_RESET}")


# ─── Pretty Printer ─────────────────────────────────────────────────


def print_report(result, title: str) -> int:
    """Pretty-print a ValidationResult with ANSI color codes.

    Returns:
        0 unless the overall verdict is fail.
    """
    print(f"\n{'=' * _WIDTH}")
    print(f"{_BOLD}{_CYAN}  POA COMPLIANCE REPORT{_RESET}")
    print(f"{'=' * _WIDTH}")
    print(f"  Document:    {title}")
    print(f"  Confidence:  {result.ocr_confidence:.0f}%")
    print(f"  Time:        {result.processing_time} ms")
    print(f"{'─' * _WIDTH}")

    _print_details(result)
    print(f"{'─' * _WIDTH}")

    _print_check("Notary", result.notary_validation)
    _print_check("Witnesses", result.witness_validation)
    _print_check("Verbiage", result.verbiage_validation)
    _print_check("Dates", result.additional_checks.date_validation)
    _print_check("Signatures", result.additional_checks.signature_validation)

    print(f"{'=' * _WIDTH}")
    overall = result.overall
    if overall == OverallStatus.PASS:
        print(f"  {_GREEN}{_BOLD}DOCUMENT PASSED ALL CHECKS{_RESET}")
    elif overall == OverallStatus.WARNING:
        print(f"  {_YELLOW}{_BOLD}MANUAL REVIEW REQUIRED{_RESET}")
    else:
        print(f"  {_RED}{_BOLD}DOCUMENT REJECTED{_RESET}")
    print(f"{'=' * _WIDTH}\n")

    return 1 if overall == OverallStatus.FAIL else 0


# ─── Main ────────────────────────────────────────────────────────────


def main():
    """Validate the sample text (or a file given on the command line)."""
    load_dotenv()
    settings = get_settings()
    configure_logging(settings.log_level)
    pipeline = DocumentValidationPipeline(settings=settings)

    if len(sys.argv) > 1:
        path = Path(sys.argv[1])
        try:
            report = pipeline.run(path.read_bytes(), path.name)
        except ExtractionFailure as exc:
            print(f"{_RED}{_BOLD}Could not read document:{_RESET} {exc.message}")
            sys.exit(2)
        for warning in report.warnings:
            print(f"{_YELLOW}{warning}{_RESET}")
        sys.exit(print_report(report.result, path.name))

    result = pipeline.validate_document(ExtractedText(text=SAMPLE_POA_TEXT, confidence=95))
    sys.exit(print_report(result, "built-in sample"))


if __name__ == "__main__":
    main()
