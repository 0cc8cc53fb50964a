"""User service orchestrating registration, login lockout, and token issuance."""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

from bcard_schemas import Role

from .account import Account, normalize_email
from .contracts import CredentialStore, RegisterUserInput
from .lockout import LockoutDecision, LockoutPolicy, LoginOutcome
from ..errors import (
    AccountLockedError,
    ForbiddenError,
    InvalidCredentialsError,
    NotFoundError,
    ValidationError,
)
from ..metrics import LOGIN_ATTEMPTS, REGISTRATIONS, SUSPENSIONS
from ..security.passwords import PasswordHasher, check_password_policy
from ..security.tokens import Claims, TokenIssuer

logger = logging.getLogger(__name__)


# ten years
MAX_SUSPENSION_HOURS = 24 * 365 * 10


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UserService:
    """Account workflows on top of a credential store."""

    def __init__(
        self,
        repository: CredentialStore,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        policy: LockoutPolicy,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Store dependencies used to orchestrate persistence and token issuance."""
        self._repository = repository
        self._hasher = hasher
        self._issuer = issuer
        self._policy = policy
        self._clock = clock

    def register(self, payload: RegisterUserInput) -> tuple[Account, str]:
        """Create an account and return it with a freshly issued token.

        The password is checked against the policy and hashed before anything
        is stored. A taken email raises :class:`ConflictError` from the store.
        """
        check_password_policy(payload.password)
        account = Account(
            account_id=str(uuid.uuid4()),
            email=normalize_email(payload.email),
            password_hash=self._hasher.hash(payload.password),
            role=payload.role,
            name=payload.name,
            phone=payload.phone,
            address=payload.address,
            image=payload.image,
            gender=payload.gender,
            created_at=self._clock(),
        )
        account = self._repository.create(account)
        REGISTRATIONS.inc()
        logger.info("registered account %s with role %s", account.account_id, Role(account.role).value)
        return account, self._issuer.issue(account)

    def login(self, email: str, password: str) -> str:
        """Check credentials under the lockout policy and return a token.

        Raises
        ------
        ValidationError
            The supplied password cannot satisfy the password policy. Such an
            attempt is not counted.
        NotFoundError
            No account is registered under ``email``.
        InvalidCredentialsError
            Wrong password that did not trigger a suspension.
        AccountLockedError
            The account is suspended, or this attempt suspended it.
        """
        check_password_policy(password)
        account = self._repository.find_by_email(email)
        if account is None:
            raise NotFoundError("User does not exist!")

        now = self._clock()

        def attempt(current: Account) -> tuple[LockoutDecision, Account]:
            return self._policy.evaluate(current, password, now), current

        decision, current = self._repository.apply_atomically(account.account_id, attempt)
        LOGIN_ATTEMPTS.labels(decision.outcome.value).inc()

        if decision.outcome is LoginOutcome.success:
            return self._issuer.issue(current, include_suspension=True)
        if decision.outcome is LoginOutcome.invalid:
            logger.info("failed login for account %s", current.account_id)
            raise InvalidCredentialsError(decision.attempts_remaining)
        if decision.newly_suspended:
            SUSPENSIONS.labels("lockout").inc()
        raise AccountLockedError(decision.suspended_until)

    def list_users(self) -> list[Account]:
        return self._repository.list_accounts()

    def get_user(self, account_id: str) -> Account:
        account = self._repository.find_by_id(account_id)
        if account is None:
            raise NotFoundError("User does not exist!")
        return account

    def update_role(self, account_id: str, role: Role, *, actor: Claims) -> Account:
        """Change an account's role; administrators only."""
        self._require_admin(actor)

        def apply(current: Account) -> Account:
            current.role = role
            return current

        account = self._repository.apply_atomically(account_id, apply)
        logger.info("account %s role set to %s by %s", account_id, Role(role).value, actor.account_id)
        return account

    def override_suspension(self, account_id: str, hours: float, *, actor: Claims) -> Account:
        """Suspend an account for ``hours`` from now, or lift it when ``hours <= 0``."""
        self._require_admin(actor)
        if not math.isfinite(hours) or hours > MAX_SUSPENSION_HOURS:
            raise ValidationError(f"suspend_hours must be at most {MAX_SUSPENSION_HOURS}")
        now = self._clock()

        def apply(current: Account) -> Account:
            if hours > 0:
                current.suspended_until = now + timedelta(hours=hours)
                current.failed_attempts = 0
            else:
                current.suspended_until = now
            return current

        account = self._repository.apply_atomically(account_id, apply)
        if hours > 0:
            SUSPENSIONS.labels("admin").inc()
            logger.info(
                "account %s suspended until %s by %s",
                account_id,
                account.suspended_until.isoformat(),
                actor.account_id,
            )
        else:
            logger.info("account %s suspension lifted by %s", account_id, actor.account_id)
        return account

    def change_password(
        self,
        account_id: str,
        current_password: str,
        new_password: str,
        *,
        actor: Claims,
    ) -> None:
        """Replace the caller's own password after checking the current one."""
        if not actor.owns(account_id):
            raise ForbiddenError("Only the account owner may change this password")
        check_password_policy(new_password)
        account = self.get_user(account_id)
        if not self._hasher.verify(current_password, account.password_hash):
            raise InvalidCredentialsError()
        self._repository.change_password(account_id, self._hasher.hash(new_password))
        logger.info("password changed for account %s by %s", account_id, actor.account_id)

    @staticmethod
    def _require_admin(actor: Claims) -> None:
        if not actor.is_admin:
            raise ForbiddenError("Only admins may perform this operation")
