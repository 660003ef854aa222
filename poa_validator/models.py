"""
Pydantic models for POA compliance data.

Every check category is its own model (a tagged union discriminated by
``category``) so the aggregator only ever sees ``status`` and ``issues``
while each validator keeps its category-specific detail.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

# ─── Rule Constants ─────────────────────────────────────────────────

REQUIRED_WITNESSES = 2


# ─── Status Enums ───────────────────────────────────────────────────


class CheckStatus(str, Enum):
    """Outcome of a single rule category."""

    PASS = "pass"
    FAIL = "fail"
    WARNING = "warning"  # Needs human review
    NOT_CHECKED = "not_checked"  # Skipped or failed internally


class OverallStatus(str, Enum):
    """Verdict for the whole document."""

    PASS = "pass"
    FAIL = "fail"
    WARNING = "warning"


class PoaType(str, Enum):
    DURABLE = "durable"
    NON_DURABLE = "non-durable"
    UNKNOWN = "unknown"


class Tier(str, Enum):
    FREE = "free"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


# ─── Extraction ─────────────────────────────────────────────────────


class ExtractedText(BaseModel):
    """Normalized output of a PDF-text or OCR backend."""

    model_config = ConfigDict(frozen=True)

    text: str
    confidence: float = Field(default=0.0, ge=0, le=100)


# ─── Check Results ──────────────────────────────────────────────────


class CheckResult(BaseModel):
    """Fields shared by every rule category."""

    status: CheckStatus = CheckStatus.NOT_CHECKED
    issues: list[str] = Field(default_factory=list)


class NotaryCheck(CheckResult):
    category: Literal["notary"] = "notary"
    notary_name: Optional[str] = None
    commission_number: Optional[str] = None
    commission_expiry: Optional[date] = None
    is_valid: bool = False


class WitnessCheck(CheckResult):
    category: Literal["witness"] = "witness"
    witness_count: int = 0
    required_witnesses: int = REQUIRED_WITNESSES
    witness_names: list[str] = Field(default_factory=list)


class PhraseMatch(BaseModel):
    """Presence of one required legal phrase."""

    phrase: str
    found: bool
    location: Optional[str] = None  # Excerpt of the matching line
    line: Optional[int] = None  # 1-based


class VerbiageCheck(CheckResult):
    category: Literal["verbiage"] = "verbiage"
    has_cremation_authority: bool = False
    poa_type: PoaType = PoaType.UNKNOWN
    required_phrases: list[PhraseMatch] = Field(default_factory=list)


class DateCheck(CheckResult):
    category: Literal["date"] = "date"
    document_date: Optional[date] = None
    is_currently_valid: bool = False


class SignatureCheck(CheckResult):
    category: Literal["signature"] = "signature"
    principal_signed: bool = False
    agent_signed: bool = False


class SupplementaryChecks(CheckResult):
    """Informational checks; never part of the overall verdict."""

    category: Literal["supplementary"] = "supplementary"
    date_validation: DateCheck = Field(default_factory=DateCheck)
    signature_validation: SignatureCheck = Field(default_factory=SignatureCheck)


AnyCheck = Annotated[
    Union[
        NotaryCheck,
        WitnessCheck,
        VerbiageCheck,
        SupplementaryChecks,
        DateCheck,
        SignatureCheck,
    ],
    Field(discriminator="category"),
]


# ─── Validation Result ──────────────────────────────────────────────


class ValidationSummary(BaseModel):
    overall: OverallStatus
    passed: int = 0
    failed: int = 0
    warnings: int = 0
    total: int = 0


class ValidationResult(BaseModel):
    """Aggregate of the four check categories.

    ``overall`` is computed from the three core statuses on every access and
    serialization; there is no way to set it independently.
    """

    notary_validation: NotaryCheck
    witness_validation: WitnessCheck
    verbiage_validation: VerbiageCheck
    additional_checks: SupplementaryChecks
    ocr_confidence: float = Field(default=0.0, ge=0, le=100)
    processing_time: int = 0  # milliseconds

    @property
    def core_checks(self) -> list[CheckResult]:
        return [self.notary_validation, self.witness_validation, self.verbiage_validation]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def overall(self) -> OverallStatus:
        from .aggregator import aggregate_overall

        return aggregate_overall(check.status for check in self.core_checks)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def summary(self) -> ValidationSummary:
        from .aggregator import summarize

        return summarize(self.core_checks)


# ─── Image Quality ──────────────────────────────────────────────────


class Resolution(BaseModel):
    width: int
    height: int
    megapixels: float
    dpi: int
    dpi_source: Literal["metadata", "estimated"] = "metadata"


class ColorSpace(BaseModel):
    mode: str  # Pillow mode, e.g. "RGB", "L", "RGBA"
    channels: int
    has_alpha: bool = False


class QualityMetrics(BaseModel):
    """Sub-scores, each normalized to 0-1."""

    sharpness: float = Field(ge=0, le=1)
    brightness: float = Field(ge=0, le=1)
    contrast: float = Field(ge=0, le=1)


class ImageQuality(BaseModel):
    overall_score: int = Field(ge=0, le=100)
    resolution: Resolution
    color_space: ColorSpace
    quality: QualityMetrics
    recommendations: list[str] = Field(default_factory=list)


# ─── Quota ──────────────────────────────────────────────────────────


class QuotaState(BaseModel):
    """Durable per-user usage counter. Compared by value for conditional writes."""

    model_config = ConfigDict(frozen=True)

    tier: Tier = Tier.FREE
    role: Role = Role.USER
    validations_this_month: int = Field(default=0, ge=0)
    last_reset_month: int = Field(ge=1, le=12)
    last_reset_year: int


class QuotaDecision(BaseModel):
    """Outcome of one admission attempt."""

    admitted: bool
    tier: Tier
    limit: Optional[int] = None  # None = unlimited
    used: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(self.limit - self.used, 0)


# ─── Document Report ────────────────────────────────────────────────


class DocumentValidationReport(BaseModel):
    """Everything one pipeline run produces for the persistence layer."""

    document_name: str
    original_hash: str  # SHA-256 of the uploaded bytes, for audit trail
    extracted_text: str
    result: ValidationResult
    image_quality: Optional[ImageQuality] = None
    warnings: list[str] = Field(default_factory=list)
