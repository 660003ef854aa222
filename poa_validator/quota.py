"""
Per-user monthly quota gate.

Flow for one admission attempt:
  1. Read the user's QuotaState (remember it as the expected prior state)
  2. Roll the counter over if the calendar month has advanced
  3. Decide: admins and paid tiers always pass; free tier needs used < 5
  4. Write the incremented state with a conditional write against the prior
  5. On conflict (someone else wrote first) start again from step 1

The check and the increment are therefore one atomic step from the store's
point of view: two requests racing for the last free slot cannot both win.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import date

from .exceptions import QuotaConflictError, QuotaExceeded, UnknownUserError
from .models import QuotaDecision, QuotaState, Role, Tier

logger = logging.getLogger(__name__)

# ─── Tier Limits ─────────────────────────────────────────────────────

FREE_MONTHLY_VALIDATIONS = 5

# None = unlimited
TIER_LIMITS: dict[Tier, int | None] = {
    Tier.FREE: FREE_MONTHLY_VALIDATIONS,
    Tier.PROFESSIONAL: None,
    Tier.ENTERPRISE: None,
}


def monthly_limit(state: QuotaState) -> int | None:
    """Validations per month for this user, None if unlimited."""
    if state.role == Role.ADMIN:
        return None
    return TIER_LIMITS[state.tier]


def new_quota_state(
    tier: Tier = Tier.FREE, role: Role = Role.USER, today: date | None = None
) -> QuotaState:
    today = today or date.today()
    return QuotaState(
        tier=tier,
        role=role,
        validations_this_month=0,
        last_reset_month=today.month,
        last_reset_year=today.year,
    )


def roll_over(state: QuotaState, today: date) -> QuotaState:
    """Zero the counter once the calendar month has moved past the stamp.

    A stamp later than ``today`` (clock skew) is left alone: resets never
    happen retroactively.
    """
    if (today.year, today.month) > (state.last_reset_year, state.last_reset_month):
        return state.model_copy(
            update={
                "validations_this_month": 0,
                "last_reset_month": today.month,
                "last_reset_year": today.year,
            }
        )
    return state


# ─── Storage Contract ────────────────────────────────────────────────


class QuotaStore(ABC):
    """Durable per-user quota storage with a conditional-write primitive."""

    @abstractmethod
    def get_quota_state(self, user_id: str) -> QuotaState:
        """Raises UnknownUserError if the user has no state."""

    @abstractmethod
    def commit_quota_state(
        self, user_id: str, new_state: QuotaState, expected_prior: QuotaState
    ) -> bool:
        """Write ``new_state`` only if the stored state still equals ``expected_prior``.

        Returns:
            True on success, False on conflict.
        """


class InMemoryQuotaStore(QuotaStore):
    """Thread-safe store; one lock per user, no cross-user contention.

    With ``default_tier`` set, unknown users are provisioned on first read.
    """

    def __init__(
        self,
        default_tier: Tier | None = None,
        clock: Callable[[], date] = date.today,
    ):
        self.default_tier = default_tier
        self.clock = clock
        self._states: dict[str, QuotaState] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def add_user(
        self, user_id: str, tier: Tier = Tier.FREE, role: Role = Role.USER
    ) -> QuotaState:
        state = new_quota_state(tier, role, self.clock())
        self.put(user_id, state)
        return state

    def put(self, user_id: str, state: QuotaState) -> None:
        """Unconditional write, for seeding and administration."""
        with self._lock_for(user_id):
            self._states[user_id] = state

    def get_quota_state(self, user_id: str) -> QuotaState:
        with self._lock_for(user_id):
            state = self._states.get(user_id)
            if state is None:
                if self.default_tier is None:
                    raise UnknownUserError(user_id)
                state = new_quota_state(self.default_tier, today=self.clock())
                self._states[user_id] = state
            return state

    def commit_quota_state(
        self, user_id: str, new_state: QuotaState, expected_prior: QuotaState
    ) -> bool:
        with self._lock_for(user_id):
            if self._states.get(user_id) != expected_prior:
                return False
            self._states[user_id] = new_state
            return True

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._locks.setdefault(user_id, threading.Lock())


# ─── Gate ────────────────────────────────────────────────────────────


class QuotaGate:
    """Admission control consulted by the caller before a validation run.

    Usage:
        gate = QuotaGate(store)
        decision = gate.check_and_consume(user_id)
        if not decision.admitted:
            # present an upgrade prompt with decision.tier / limit / used
            ...
    """

    def __init__(
        self,
        store: QuotaStore,
        clock: Callable[[], date] = date.today,
        max_attempts: int = 5,
    ):
        self.store = store
        self.clock = clock
        self.max_attempts = max_attempts

    def check_and_consume(self, user_id: str) -> QuotaDecision:
        """Admit and count one validation, or reject with the current usage."""
        for attempt in range(1, self.max_attempts + 1):
            prior = self.store.get_quota_state(user_id)
            current = roll_over(prior, self.clock())
            limit = monthly_limit(current)

            if limit is not None and current.validations_this_month >= limit:
                logger.info(
                    "Quota exceeded for user %s: %d/%d (%s tier)",
                    user_id, current.validations_this_month, limit, current.tier.value,
                )
                return QuotaDecision(
                    admitted=False,
                    tier=current.tier,
                    limit=limit,
                    used=current.validations_this_month,
                )

            updated = current.model_copy(
                update={"validations_this_month": current.validations_this_month + 1}
            )
            if self.store.commit_quota_state(user_id, updated, prior):
                logger.debug(
                    "Quota admitted user %s: %d/%s",
                    user_id, updated.validations_this_month, limit or "unlimited",
                )
                return QuotaDecision(
                    admitted=True,
                    tier=updated.tier,
                    limit=limit,
                    used=updated.validations_this_month,
                )

            logger.debug("Quota write conflict for user %s (attempt %d)", user_id, attempt)

        raise QuotaConflictError(user_id, self.max_attempts)

    def require(self, user_id: str) -> QuotaDecision:
        """Like check_and_consume, but raises QuotaExceeded on rejection."""
        decision = self.check_and_consume(user_id)
        if not decision.admitted:
            raise QuotaExceeded(decision.tier.value, decision.limit, decision.used)
        return decision

    def status(self, user_id: str) -> QuotaDecision:
        """Current usage without consuming anything."""
        state = roll_over(self.store.get_quota_state(user_id), self.clock())
        limit = monthly_limit(state)
        return QuotaDecision(
            admitted=limit is None or state.validations_this_month < limit,
            tier=state.tier,
            limit=limit,
            used=state.validations_this_month,
        )
