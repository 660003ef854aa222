"""
Result aggregation: fixed precedence over the core check statuses.

    fail  >  warning  >  pass  >  (nothing checked = fail)

``not_checked`` entries are dropped before the precedence is applied. If
nothing is left we return ``fail``: absence of evidence never passes.
"""

from __future__ import annotations

from collections.abc import Iterable

from .models import CheckResult, CheckStatus, OverallStatus, ValidationSummary


def aggregate_overall(statuses: Iterable[CheckStatus]) -> OverallStatus:
    """Combine core check statuses into one verdict."""
    checked = [s for s in statuses if s != CheckStatus.NOT_CHECKED]

    if not checked:
        return OverallStatus.FAIL
    if CheckStatus.FAIL in checked:
        return OverallStatus.FAIL
    if CheckStatus.WARNING in checked:
        return OverallStatus.WARNING
    return OverallStatus.PASS


def summarize(checks: Iterable[CheckResult]) -> ValidationSummary:
    """Count pass/fail/warning across the core checks (not_checked excluded)."""
    statuses = [check.status for check in checks]
    checked = [s for s in statuses if s != CheckStatus.NOT_CHECKED]

    return ValidationSummary(
        overall=aggregate_overall(statuses),
        passed=checked.count(CheckStatus.PASS),
        failed=checked.count(CheckStatus.FAIL),
        warnings=checked.count(CheckStatus.WARNING),
        total=len(checked),
    )
