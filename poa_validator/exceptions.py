"""
Custom exception hierarchy for POA compliance validation.

Each exception type maps to one failure category of the validation engine,
so the boundary layer can turn any of them into a structured response
without inspecting messages.
"""

from __future__ import annotations


class ComplianceError(Exception):
    """Base exception for all compliance-validation failures."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Structured form used by the HTTP layer."""
        return {"code": self.code, "message": self.message, "details": self.details}


class ExtractionFailure(ComplianceError):
    """The document is unreadable, corrupt, empty, or of an unsupported type.

    Fatal to the whole pipeline: no partial result is produced.
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("EXTRACTION_FAILED", message, details)


class AnalysisFailure(ComplianceError):
    """Image-quality analysis could not read the image.

    Distinct from "analyzed and scored poorly". Non-fatal to the pipeline.
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("IMAGE_ANALYSIS_FAILED", message, details)


class ValidatorInternalAnomaly(ComplianceError):
    """A single rule validator blew up on unexpected input."""

    def __init__(self, category: str, message: str, details: dict | None = None):
        self.category = category
        super().__init__(
            "VALIDATOR_INTERNAL_ERROR",
            message,
            {"category": category, **(details or {})},
        )


class QuotaExceeded(ComplianceError):
    """The caller has used up the monthly validations of their tier."""

    def __init__(self, tier: str, limit: int | None, used: int):
        self.tier = tier
        self.limit = limit
        self.used = used
        super().__init__(
            "QUOTA_EXCEEDED",
            (
                f"Monthly validation limit reached ({used}/{limit} on the "
                f"{tier} tier). Upgrade your subscription for unlimited validations."
            ),
            {"tier": tier, "limit": limit, "used": used},
        )


class QuotaConflictError(ComplianceError):
    """Concurrent writers kept invalidating the quota update."""

    def __init__(self, user_id: str, attempts: int):
        super().__init__(
            "QUOTA_CONFLICT",
            f"Could not update quota for user '{user_id}' after {attempts} attempts",
            {"user_id": user_id, "attempts": attempts},
        )


class UnknownUserError(ComplianceError):
    """The quota store holds no state for the requested user."""

    def __init__(self, user_id: str):
        super().__init__(
            "UNKNOWN_USER",
            f"No quota state found for user '{user_id}'",
            {"user_id": user_id},
        )


class NotaryLookupError(ComplianceError):
    """The state notary registry could not be queried.

    Downgrades the notary check to manual verification; never fatal.
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("NOTARY_LOOKUP_FAILED", message, details)
