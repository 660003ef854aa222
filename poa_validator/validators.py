"""
Deterministic rule validators for California POA formalities.

Every validator is a PURE function of the extracted text (plus the run date
where a rule depends on "today"). No shared state, no I/O, no model calls;
they may run concurrently against the same text in any order. The one
exception is the optional notary registry lookup injected into
``validate_notary``.

Each validator:
  - Takes the extracted text
  - Returns its category's CheckResult variant with status + issues
  - Is independently testable

Known, intentionally preserved behaviour:
  - Witness counting is broad and can overcount (e.g. "IN WITNESS WHEREOF").
  - An expired notary commission is a WARNING, not a FAIL.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import date

from .aggregator import aggregate_overall
from .exceptions import NotaryLookupError
from .models import (
    REQUIRED_WITNESSES,
    CheckStatus,
    DateCheck,
    NotaryCheck,
    PhraseMatch,
    PoaType,
    SignatureCheck,
    SupplementaryChecks,
    VerbiageCheck,
    WitnessCheck,
)

logger = logging.getLogger(__name__)

# (commission_number, notary_name) -> registered and active?
# Raises NotaryLookupError when the registry cannot be reached.
NotaryVerifier = Callable[[str, str], bool]

# ─── Constants ───────────────────────────────────────────────────────

JURISDICTION = "California"

REQUIRED_PHRASES: tuple[str, ...] = (
    "power of attorney",
    "durable",
    "cremation",
    "disposition of remains",
    "authorize",
)

CREMATION_AUTHORITY_PHRASES: tuple[str, ...] = (
    "cremat",
    "disposition of remains",
    "final disposition",
    "dispose of my remains",
)

PROHIBITED_WITNESS_MARKERS: tuple[str, ...] = (
    "spouse",
    "agent",
    "attorney-in-fact",
    "beneficiary",
    "heir",
)

_OTHER_STATES: tuple[str, ...] = (
    "Alabama", "Alaska", "Arizona", "Arkansas", "Colorado", "Connecticut",
    "Delaware", "Florida", "Georgia", "Hawaii", "Idaho", "Illinois", "Indiana",
    "Iowa", "Kansas", "Kentucky", "Louisiana", "Maine", "Maryland",
    "Massachusetts", "Michigan", "Minnesota", "Mississippi", "Missouri",
    "Montana", "Nebraska", "Nevada", "New Hampshire", "New Jersey",
    "New Mexico", "New York", "North Carolina", "North Dakota", "Ohio",
    "Oklahoma", "Oregon", "Pennsylvania", "Rhode Island", "South Carolina",
    "South Dakota", "Tennessee", "Texas", "Utah", "Vermont", "Virginia",
    "Washington", "West Virginia", "Wisconsin", "Wyoming",
)

# Longest names first so "West Virginia" wins over "Virginia"
_STATES_ALT = "|".join(
    re.escape(s) for s in sorted(_OTHER_STATES, key=len, reverse=True)
)
_STATE_CANONICAL = {s.lower(): s for s in _OTHER_STATES}

_EXCERPT_LIMIT = 120


# ─── Patterns ────────────────────────────────────────────────────────

_DATE_TOKEN = r"(\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4})"

# California acknowledgment form first: "before me, Jane Doe, Notary Public"
_NOTARY_NAME_PATTERNS = (
    re.compile(
        r"before\s+me[ \t]*,[ \t]*([^,\n]+?)[ \t]*,[ \t]*(?:a[ \t]+)?notary\s+public\b",
        re.IGNORECASE,
    ),
    re.compile(r"notary\s+public[ \t]*[:,\-]?[ \t]*([^\n]+)", re.IGNORECASE),
    re.compile(r"acknowledged\s+before\s+me[ \t]*[:,]?[ \t]*([^\n]+)", re.IGNORECASE),
)
_COMMISSION_NUMBER = re.compile(
    r"commission\s+(?:number|no\.?|#)[ \t]*[:#]?[ \t]*(\d{6,9})\b", re.IGNORECASE
)
_EXPIRY_TAIL = r"[ \t]*(?:on)?[ \t]*[:\-]?[ \t]*" + _DATE_TOKEN
# A labelled commission expiry beats any other "expires" date in the document
_COMMISSION_EXPIRY_PATTERNS = (
    re.compile(
        r"commission\s+(?:expires?|expiration(?:\s+date)?)" + _EXPIRY_TAIL, re.IGNORECASE
    ),
    re.compile(r"(?:expires?|expiration(?:\s+date)?)" + _EXPIRY_TAIL, re.IGNORECASE),
)
_STATE_OF_COMMISSION = re.compile(
    r"\bstate\s+of\s+[a-z]{3,}|\bcommissioned\s+in\s+[a-z]{3,}", re.IGNORECASE
)

_WITNESS_HEADING = re.compile(r"^[ \t]*witness(?:es)?[ \t]*[:\-]?[ \t]*$", re.IGNORECASE)
_WITNESS_LINE = re.compile(
    r"\bwitness(?:es)?\b(?:[ \t]*#?[ \t]*\d+)?[ \t]*[:\-]?[ \t]*(.+)$", re.IGNORECASE
)
_PRESENCE_LINE = re.compile(
    r"signed\s+in\s+the\s+presence\s+of[ \t]*[:\-]?[ \t]*(.+)$", re.IGNORECASE
)
_LEADING_LABEL = re.compile(
    r"^(?:(?:printed|print)\s+)?(?:name|signature)\b[ \t]*[:\-]?[ \t]*", re.IGNORECASE
)

_NON_DURABLE = re.compile(r"\bnon[-\s]?durable\b", re.IGNORECASE)
_DURABLE_NEAR_POA = re.compile(
    r"(?<![-\w])durable\b.{0,40}?power\s+of\s+attorney"
    r"|power\s+of\s+attorney.{0,40}?(?<![-\w])durable\b",
    re.IGNORECASE | re.DOTALL,
)
_JURISDICTION_MARKER = re.compile(
    r"\bcalifornia\b|\bcal\.?\s*prob(?:ate)?\.?\s*code\b", re.IGNORECASE
)
_FOREIGN_LAW = re.compile(
    rf"\b(?:state\s+of|laws\s+of(?:\s+the\s+state\s+of)?)\s+({_STATES_ALT})\b"
    rf"|\b({_STATES_ALT})\s+(?:probate\s+code|estates\s+code|law|statutes?)\b",
    re.IGNORECASE,
)

_EXECUTION_DATE = re.compile(
    r"\b(?:dated?|executed(?:\s+on)?|signed(?:\s+on)?)[ \t]*[:\-]?[ \t]*" + _DATE_TOKEN,
    re.IGNORECASE,
)
_PRINCIPAL_SIGNATURE = re.compile(
    r"\bprincipal(?:'s)?[ \t]*[:\-]?[ \t]*signature|\bsignature\s+of\s+(?:the\s+)?principal\b",
    re.IGNORECASE,
)
_AGENT_SIGNATURE = re.compile(
    r"\b(?:agent|attorney-in-fact)(?:'s)?[ \t]*[:\-]?[ \t]*signature"
    r"|\bsignature\s+of\s+(?:the\s+)?(?:agent|attorney-in-fact)\b",
    re.IGNORECASE,
)


# ─── Notary ──────────────────────────────────────────────────────────


def validate_notary(
    text: str, today: date | None = None, verifier: NotaryVerifier | None = None
) -> NotaryCheck:
    """Check the notarial acknowledgment: name, commission number, expiry.

    With a ``verifier`` (e.g. a state notary registry), a found name and
    commission number are looked up there instead of relying on a
    state-of-commission token in the text.

    Precedence:
      - name or commission number missing      → FAIL
      - commission expired before ``today``     → WARNING (manual review, not fatal)
      - no state token / registry says no / lookup failed → WARNING
      - otherwise                               → PASS
    """
    _require_text(text)
    today = today or date.today()
    issues: list[str] = []

    notary_name = _find_notary_name(text)
    number_match = _COMMISSION_NUMBER.search(text)
    commission_number = number_match.group(1) if number_match else None
    commission_expiry = _find_commission_expiry(text)

    if not notary_name:
        issues.append("Notary name not found or not clearly visible")
    if not commission_number:
        issues.append("Notary commission number not found")

    if commission_expiry is not None and commission_expiry < today:
        issues.append("Notary commission has expired")

    if notary_name and commission_number:
        if verifier is not None:
            issues.extend(_registry_issues(verifier, commission_number, notary_name))
        elif _STATE_OF_COMMISSION.search(text) is None:
            issues.append("Notary validation requires manual verification")

    if not notary_name or not commission_number:
        status = CheckStatus.FAIL
    elif issues:
        status = CheckStatus.WARNING
    else:
        status = CheckStatus.PASS

    return NotaryCheck(
        status=status,
        issues=issues,
        notary_name=notary_name,
        commission_number=commission_number,
        commission_expiry=commission_expiry,
        is_valid=status == CheckStatus.PASS,
    )


def _find_notary_name(text: str) -> str | None:
    for pattern in _NOTARY_NAME_PATTERNS:
        for match in pattern.finditer(text):
            name = _clean_name(match.group(1))
            if name:
                return name
    return None


def _find_commission_expiry(text: str) -> date | None:
    for pattern in _COMMISSION_EXPIRY_PATTERNS:
        match = pattern.search(text)
        if match:
            return _parse_date(match.group(1))
    return None


def _registry_issues(verifier: NotaryVerifier, commission_number: str, notary_name: str) -> list[str]:
    try:
        verified = verifier(commission_number, notary_name)
    except NotaryLookupError as exc:
        logger.warning("Notary registry lookup failed: %s", exc.message)
        return ["Could not verify notary with state database - manual verification recommended"]
    if not verified:
        return ["Notary not found in state database"]
    return []


# ─── Witnesses ───────────────────────────────────────────────────────


def validate_witnesses(text: str) -> WitnessCheck:
    """Count witnesses and screen them for disqualifying relationships.

    A witness is any line with "Witness" (or "signed in the presence of")
    followed by a name-like token. Names are de-duplicated case-insensitively,
    but the match itself is broad and may overcount.
    """
    _require_text(text)
    issues: list[str] = []

    names: list[str] = []
    seen: set[str] = set()
    prohibited: list[tuple[str, str]] = []

    lines = text.splitlines()
    for index, line in enumerate(lines):
        if _WITNESS_HEADING.match(line):
            found = _witnesses_listed_after(lines, index + 1)
        else:
            name = _witness_name_on_line(line)
            found = [(name, line)] if name else []

        for name, source_line in found:
            key = " ".join(name.lower().split())
            if key not in seen:
                seen.add(key)
                names.append(name)

            lowered = source_line.lower()
            for marker in PROHIBITED_WITNESS_MARKERS:
                if re.search(rf"\b{re.escape(marker)}s?\b", lowered) and (name, marker) not in prohibited:
                    prohibited.append((name, marker))

    witness_count = len(names)

    if witness_count < REQUIRED_WITNESSES:
        issues.append(
            f"Insufficient witnesses found. Required: {REQUIRED_WITNESSES}, "
            f"Found: {witness_count}"
        )
    for name, marker in prohibited:
        issues.append(f"Prohibited witness detected: {name} (contains '{marker}')")

    if witness_count < REQUIRED_WITNESSES:
        status = CheckStatus.FAIL
    elif prohibited:
        status = CheckStatus.WARNING
    else:
        status = CheckStatus.PASS

    return WitnessCheck(
        status=status,
        issues=issues,
        witness_count=witness_count,
        required_witnesses=REQUIRED_WITNESSES,
        witness_names=names,
    )


def _witness_name_on_line(line: str) -> str | None:
    for pattern in (_WITNESS_LINE, _PRESENCE_LINE):
        match = pattern.search(line)
        if match:
            name = _clean_name(match.group(1))
            if name:
                return name
    return None


def _witnesses_listed_after(lines: list[str], start: int) -> list[tuple[str, str]]:
    """Names on the lines under a bare "WITNESSES:" heading.

    The list ends at the first blank line after a name, or at the next
    labelled line ("Date: ...", "Witness 2: ...").
    """
    listed: list[tuple[str, str]] = []
    for line in lines[start:]:
        if not line.strip():
            if listed:
                break
            continue
        if ":" in line or _WITNESS_LINE.search(line):
            break
        name = _clean_name(line)
        if name:
            listed.append((name, line))
    return listed


# ─── Verbiage ────────────────────────────────────────────────────────


def validate_verbiage(text: str) -> VerbiageCheck:
    """Check cremation authority, required phrases, POA type and jurisdiction."""
    _require_text(text)
    issues: list[str] = []

    required_phrases = [_locate_phrase(text, phrase) for phrase in REQUIRED_PHRASES]
    for match in required_phrases:
        if not match.found:
            issues.append(f'Required phrase not found: "{match.phrase}"')

    has_cremation_authority = any(
        _phrase_pattern(p).search(text) for p in CREMATION_AUTHORITY_PHRASES
    )
    if not has_cremation_authority:
        issues.append("No explicit cremation authority found in document")

    jurisdiction_issues = _jurisdiction_issues(text)
    issues.extend(jurisdiction_issues)

    if not has_cremation_authority or not all(m.found for m in required_phrases):
        status = CheckStatus.FAIL
    elif jurisdiction_issues:
        status = CheckStatus.WARNING
    else:
        status = CheckStatus.PASS

    return VerbiageCheck(
        status=status,
        issues=issues,
        has_cremation_authority=has_cremation_authority,
        poa_type=detect_poa_type(text),
        required_phrases=required_phrases,
    )


def detect_poa_type(text: str) -> PoaType:
    """``non-durable`` beats ``durable``; "durable" must sit near "power of attorney"."""
    if _NON_DURABLE.search(text):
        return PoaType.NON_DURABLE
    if _DURABLE_NEAR_POA.search(text):
        return PoaType.DURABLE
    return PoaType.UNKNOWN


def _phrase_pattern(phrase: str) -> re.Pattern[str]:
    """Case-insensitive, tolerant of line wraps between words."""
    return re.compile(r"\s+".join(re.escape(word) for word in phrase.split()), re.IGNORECASE)


def _locate_phrase(text: str, phrase: str) -> PhraseMatch:
    match = _phrase_pattern(phrase).search(text)
    if match is None:
        return PhraseMatch(phrase=phrase, found=False)

    line_no = text.count("\n", 0, match.start()) + 1
    excerpt = text.split("\n")[line_no - 1].strip()
    if len(excerpt) > _EXCERPT_LIMIT:
        excerpt = excerpt[: _EXCERPT_LIMIT - 3] + "..."
    return PhraseMatch(phrase=phrase, found=True, location=excerpt, line=line_no)


def _jurisdiction_issues(text: str) -> list[str]:
    foreign: list[str] = []
    for match in _FOREIGN_LAW.finditer(text):
        state = _STATE_CANONICAL[(match.group(1) or match.group(2)).lower()]
        if state not in foreign:
            foreign.append(state)

    issues: list[str] = []
    if foreign or not _JURISDICTION_MARKER.search(text):
        issues.append(f"Document may not be {JURISDICTION}-specific")
    for state in foreign:
        issues.append(f"Document references the law of another state: {state}")
    return issues


# ─── Supplementary Checks ────────────────────────────────────────────


def perform_supplementary_checks(text: str, today: date | None = None) -> SupplementaryChecks:
    """Execution date and signature presence. Informational only."""
    _require_text(text)
    date_validation = validate_dates(text, today)
    signature_validation = validate_signatures(text)

    worst = aggregate_overall([date_validation.status, signature_validation.status])
    return SupplementaryChecks(
        status=CheckStatus(worst.value),
        issues=date_validation.issues + signature_validation.issues,
        date_validation=date_validation,
        signature_validation=signature_validation,
    )


def validate_dates(text: str, today: date | None = None) -> DateCheck:
    """The first parseable execution date must exist and not be in the future."""
    _require_text(text)
    today = today or date.today()
    issues: list[str] = []

    document_date: date | None = None
    for match in _EXECUTION_DATE.finditer(text):
        document_date = _parse_date(match.group(1))
        if document_date is not None:
            break

    if document_date is None:
        issues.append("No execution date found in document")
    elif document_date > today:
        issues.append("Document appears to be dated in the future")

    return DateCheck(
        status=CheckStatus.WARNING if issues else CheckStatus.PASS,
        issues=issues,
        document_date=document_date,
        is_currently_valid=document_date is not None and document_date <= today,
    )


def validate_signatures(text: str) -> SignatureCheck:
    """The principal's signature block must be identifiable.

    The agent usually does not sign the POA itself, so a missing agent
    signature is recorded but never flagged.
    """
    _require_text(text)
    principal_signed = _PRINCIPAL_SIGNATURE.search(text) is not None
    agent_signed = _AGENT_SIGNATURE.search(text) is not None

    issues: list[str] = []
    if not principal_signed:
        issues.append("Principal signature not clearly identified")

    return SignatureCheck(
        status=CheckStatus.WARNING if issues else CheckStatus.PASS,
        issues=issues,
        principal_signed=principal_signed,
        agent_signed=agent_signed,
    )


# ─── Internal Helpers ────────────────────────────────────────────────


def _require_text(text: object) -> None:
    if not isinstance(text, str):
        raise TypeError(f"Expected extracted text as str, got {type(text).__name__}")


def _clean_name(raw: str) -> str | None:
    """Reduce 'Signature: Jane Doe, spouse (seal)' to 'Jane Doe'.

    Returns None unless the result looks like a name (starts with a letter,
    at least 3 characters).
    """
    value = _LEADING_LABEL.sub("", raw.strip())
    value = re.split(r"[,(;|]", value, maxsplit=1)[0]
    value = re.sub(r"\s+", " ", value).strip(" .:-_\t")

    if len(value) < 3 or not value[0].isalpha():
        return None
    return value


def _parse_date(token: str) -> date | None:
    """Parse M/D/YYYY or M-D-YY. Two-digit years are 20YY. None if not a real date."""
    parts = re.split(r"[/\-]", token)
    if len(parts) != 3 or len(parts[2]) == 3:
        return None

    month, day, year = (int(p) for p in parts)
    if len(parts[2]) == 2:
        year += 2000

    try:
        return date(year, month, day)
    except ValueError:
        return None
