"""
Tests for the per-user monthly quota gate.

Covers tier limits, the admin override, month rollover and the
race for the last free-tier slot.

Run: pytest tests/ -v
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from poa_validator.exceptions import QuotaConflictError, QuotaExceeded, UnknownUserError
from poa_validator.models import QuotaState, Role, Tier
from poa_validator.quota import (
    FREE_MONTHLY_VALIDATIONS,
    InMemoryQuotaStore,
    QuotaGate,
    monthly_limit,
    roll_over,
)

TODAY = date(2025, 6, 15)


def _clock() -> date:
    return TODAY


def _make_state(used=0, month=6, year=2025, tier=Tier.FREE, role=Role.USER) -> QuotaState:
    return QuotaState(
        tier=tier,
        role=role,
        validations_this_month=used,
        last_reset_month=month,
        last_reset_year=year,
    )


def _make_gate(store: InMemoryQuotaStore | None = None, **kwargs) -> QuotaGate:
    return QuotaGate(store or InMemoryQuotaStore(clock=_clock), clock=_clock, **kwargs)


class _BarrierStore(InMemoryQuotaStore):
    """Holds each thread's first read until every racer has read."""

    def __init__(self, parties: int, **kwargs):
        super().__init__(**kwargs)
        self._barrier = threading.Barrier(parties)
        self._local = threading.local()

    def get_quota_state(self, user_id: str) -> QuotaState:
        state = super().get_quota_state(user_id)
        if not getattr(self._local, "synced", False):
            self._local.synced = True
            self._barrier.wait(timeout=5)
        return state


class _AlwaysConflictingStore(InMemoryQuotaStore):
    def commit_quota_state(self, user_id, new_state, expected_prior) -> bool:
        return False


# ═══════════════════════════════════════════════════════════════════════
# LIMITS
# ═══════════════════════════════════════════════════════════════════════


class TestLimits:
    def test_free_tier_limit(self):
        assert monthly_limit(_make_state()) == FREE_MONTHLY_VALIDATIONS == 5

    @pytest.mark.parametrize("tier", [Tier.PROFESSIONAL, Tier.ENTERPRISE])
    def test_paid_tiers_unlimited(self, tier):
        assert monthly_limit(_make_state(tier=tier)) is None

    def test_admin_unlimited_on_free_tier(self):
        assert monthly_limit(_make_state(role=Role.ADMIN)) is None


class TestAdmission:
    def test_free_user_admitted_until_limit(self):
        store = InMemoryQuotaStore(clock=_clock)
        store.add_user("u1")
        gate = _make_gate(store)

        decisions = [gate.check_and_consume("u1") for _ in range(5)]
        assert all(d.admitted for d in decisions)
        assert [d.used for d in decisions] == [1, 2, 3, 4, 5]
        assert decisions[-1].remaining == 0

        rejected = gate.check_and_consume("u1")
        assert rejected.admitted is False
        assert (rejected.tier, rejected.limit, rejected.used) == (Tier.FREE, 5, 5)

    def test_rejection_does_not_change_state(self):
        store = InMemoryQuotaStore(clock=_clock)
        store.put("u1", _make_state(used=5))
        _make_gate(store).check_and_consume("u1")
        assert store.get_quota_state("u1") == _make_state(used=5)

    def test_paid_tier_admitted_and_counted(self):
        store = InMemoryQuotaStore(clock=_clock)
        store.put("pro", _make_state(used=500, tier=Tier.PROFESSIONAL))
        decision = _make_gate(store).check_and_consume("pro")
        assert decision.admitted is True
        assert decision.limit is None
        assert decision.remaining is None
        assert store.get_quota_state("pro").validations_this_month == 501

    def test_admin_over_free_limit_admitted(self):
        store = InMemoryQuotaStore(clock=_clock)
        store.put("admin", _make_state(used=40, role=Role.ADMIN))
        decision = _make_gate(store).check_and_consume("admin")
        assert decision.admitted is True
        assert decision.limit is None

    def test_require_raises_with_upgrade_data(self):
        store = InMemoryQuotaStore(clock=_clock)
        store.put("u1", _make_state(used=5))
        with pytest.raises(QuotaExceeded) as exc_info:
            _make_gate(store).require("u1")
        assert exc_info.value.to_dict()["details"] == {"tier": "free", "limit": 5, "used": 5}
        assert exc_info.value.code == "QUOTA_EXCEEDED"

    def test_status_does_not_consume(self):
        store = InMemoryQuotaStore(clock=_clock)
        store.put("u1", _make_state(used=3))
        gate = _make_gate(store)
        status = gate.status("u1")
        assert (status.used, status.remaining, status.admitted) == (3, 2, True)
        assert store.get_quota_state("u1").validations_this_month == 3

    def test_unknown_user(self):
        with pytest.raises(UnknownUserError):
            _make_gate().check_and_consume("ghost")

    def test_default_tier_provisions_new_users(self):
        store = InMemoryQuotaStore(default_tier=Tier.FREE, clock=_clock)
        decision = _make_gate(store).check_and_consume("new")
        assert decision.admitted is True
        assert decision.used == 1
        assert store.get_quota_state("new").last_reset_month == 6


# ═══════════════════════════════════════════════════════════════════════
# MONTH ROLLOVER
# ═══════════════════════════════════════════════════════════════════════


class TestRollover:
    def test_new_month_resets_and_admits(self):
        store = InMemoryQuotaStore(clock=_clock)
        store.put("u1", _make_state(used=5, month=5))
        decision = _make_gate(store).check_and_consume("u1")
        assert decision.admitted is True
        assert decision.used == 1
        stored = store.get_quota_state("u1")
        assert (stored.validations_this_month, stored.last_reset_month) == (1, 6)

    def test_year_boundary(self):
        state = _make_state(used=5, month=12, year=2024)
        rolled = roll_over(state, date(2025, 1, 2))
        assert rolled.validations_this_month == 0
        assert (rolled.last_reset_month, rolled.last_reset_year) == (1, 2025)

    def test_same_month_untouched(self):
        state = _make_state(used=4)
        assert roll_over(state, TODAY) is state

    def test_future_stamp_never_resets(self):
        store = InMemoryQuotaStore(clock=_clock)
        store.put("u1", _make_state(used=5, month=7))
        decision = _make_gate(store).check_and_consume("u1")
        assert decision.admitted is False
        assert store.get_quota_state("u1").last_reset_month == 7


# ═══════════════════════════════════════════════════════════════════════
# CONCURRENCY
# ═══════════════════════════════════════════════════════════════════════


class TestConcurrency:
    def test_last_slot_race_admits_exactly_one(self):
        store = _BarrierStore(parties=2, clock=_clock)
        store.put("u1", _make_state(used=4))
        gate = _make_gate(store)

        with ThreadPoolExecutor(max_workers=2) as executor:
            decisions = list(executor.map(lambda _: gate.check_and_consume("u1"), range(2)))

        assert sorted(d.admitted for d in decisions) == [False, True]
        assert InMemoryQuotaStore.get_quota_state(store, "u1").validations_this_month == 5

    def test_many_racers_never_exceed_limit(self):
        store = InMemoryQuotaStore(clock=_clock)
        store.add_user("u1")
        # Each lost write means another racer committed; at most 5 can
        gate = _make_gate(store, max_attempts=FREE_MONTHLY_VALIDATIONS + 1)

        with ThreadPoolExecutor(max_workers=8) as executor:
            decisions = list(executor.map(lambda _: gate.check_and_consume("u1"), range(20)))

        assert sum(d.admitted for d in decisions) == 5
        assert store.get_quota_state("u1").validations_this_month == 5

    def test_persistent_conflict_raises(self):
        store = _AlwaysConflictingStore(clock=_clock)
        store.add_user("u1")
        with pytest.raises(QuotaConflictError) as exc_info:
            _make_gate(store, max_attempts=3).check_and_consume("u1")
        assert exc_info.value.details["attempts"] == 3


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
