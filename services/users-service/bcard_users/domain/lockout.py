"""Three-strike login lockout escalating into a timed suspension."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from bcard_schemas import Role

from ..security.passwords import PasswordHasher
from .account import Account

logger = logging.getLogger(__name__)


class LoginOutcome(str, Enum):
    success = "success"
    invalid = "invalid"
    locked = "locked"


@dataclass(frozen=True, slots=True)
class LockoutDecision:
    """Result of evaluating one login attempt against an account's state."""

    outcome: LoginOutcome
    attempts_remaining: int | None = None
    suspended_until: datetime | None = None
    newly_suspended: bool = False


class LockoutPolicy:
    """Decide a login attempt and apply its effect to the account in place.

    ``evaluate`` must run inside the store's per-account critical section so
    the read of the counters and the write of the result cannot interleave
    with another attempt on the same account.
    """

    def __init__(
        self,
        hasher: PasswordHasher,
        *,
        max_attempts: int = 3,
        suspension: timedelta = timedelta(hours=24),
    ) -> None:
        self._hasher = hasher
        self._max_attempts = max_attempts
        self._suspension = suspension

    def evaluate(self, account: Account, supplied_password: str, now: datetime) -> LockoutDecision:
        if account.is_suspended(now):
            return LockoutDecision(LoginOutcome.locked, suspended_until=account.suspended_until)

        exempt = account.role == Role.admin
        if not exempt and account.failed_attempts >= self._max_attempts:
            # records written before the counter was capped
            return self._suspend(account, now)

        if self._hasher.verify(supplied_password, account.password_hash):
            account.failed_attempts = 0
            return LockoutDecision(LoginOutcome.success)

        if exempt:
            return LockoutDecision(LoginOutcome.invalid)

        account.failed_attempts += 1
        if account.failed_attempts < self._max_attempts:
            return LockoutDecision(
                LoginOutcome.invalid,
                attempts_remaining=self._max_attempts - account.failed_attempts,
            )
        return self._suspend(account, now)

    def _suspend(self, account: Account, now: datetime) -> LockoutDecision:
        account.suspended_until = now + self._suspension
        account.failed_attempts = 0
        logger.info(
            "account %s suspended until %s after %d failed logins",
            account.account_id,
            account.suspended_until.isoformat(),
            self._max_attempts,
        )
        return LockoutDecision(
            LoginOutcome.locked,
            suspended_until=account.suspended_until,
            newly_suspended=True,
        )
