"""Tests for the login lockout state machine and its persistence."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from bcard_schemas import Role
from bcard_users.domain.lockout import LockoutPolicy, LoginOutcome
from bcard_users.errors import (
    AccountLockedError,
    InvalidCredentialsError,
    NotFoundError,
    ValidationError,
)

PASSWORD = "Secr3t!pass"
WRONG_PASSWORD = "Wr0ng!pass"
DAY = timedelta(hours=24)


@pytest.fixture
def regular(service, make_registration):
    account, _ = service.register(make_registration())
    return account


@pytest.fixture
def admin(service, make_registration):
    account, _ = service.register(make_registration(email="root@example.com", role=Role.admin))
    return account


def test_three_failures_escalate_to_suspension(service, repository, regular, clock):
    remaining = []
    for _ in range(2):
        with pytest.raises(InvalidCredentialsError) as excinfo:
            service.login(regular.email, WRONG_PASSWORD)
        remaining.append(excinfo.value.attempts_remaining)
    assert remaining == [2, 1]
    assert repository.find_by_id(regular.account_id).failed_attempts == 2

    with pytest.raises(AccountLockedError) as excinfo:
        service.login(regular.email, WRONG_PASSWORD)
    assert excinfo.value.until == clock.now + DAY

    stored = repository.find_by_id(regular.account_id)
    assert stored.suspended_until == clock.now + DAY
    assert stored.failed_attempts == 0


def test_suspended_account_rejects_correct_password(service, repository, regular, clock):
    for _ in range(3):
        with pytest.raises((InvalidCredentialsError, AccountLockedError)):
            service.login(regular.email, WRONG_PASSWORD)
    deadline = clock.now + DAY

    clock.advance(timedelta(hours=23, minutes=59))
    with pytest.raises(AccountLockedError) as excinfo:
        service.login(regular.email, PASSWORD)
    assert excinfo.value.until == deadline
    stored = repository.find_by_id(regular.account_id)
    assert stored.failed_attempts == 0
    assert stored.suspended_until == deadline


def test_login_succeeds_after_suspension_elapses(service, repository, regular, clock):
    for _ in range(3):
        with pytest.raises((InvalidCredentialsError, AccountLockedError)):
            service.login(regular.email, WRONG_PASSWORD)

    clock.advance(DAY + timedelta(seconds=1))
    with pytest.raises(InvalidCredentialsError) as excinfo:
        service.login(regular.email, WRONG_PASSWORD)
    assert excinfo.value.attempts_remaining == 2

    assert service.login(regular.email, PASSWORD)
    assert repository.find_by_id(regular.account_id).failed_attempts == 0


def test_success_resets_failed_attempts(service, repository, regular):
    with pytest.raises(InvalidCredentialsError):
        service.login(regular.email, WRONG_PASSWORD)
    assert repository.find_by_id(regular.account_id).failed_attempts == 1

    service.login(regular.email, PASSWORD)
    assert repository.find_by_id(regular.account_id).failed_attempts == 0


def test_admin_is_never_counted_or_suspended(service, repository, admin):
    for _ in range(6):
        with pytest.raises(InvalidCredentialsError) as excinfo:
            service.login(admin.email, WRONG_PASSWORD)
        assert excinfo.value.attempts_remaining is None

    stored = repository.find_by_id(admin.account_id)
    assert stored.failed_attempts == 0
    assert stored.suspended_until is None
    assert service.login(admin.email, PASSWORD)


def test_login_email_is_case_insensitive(service, regular):
    assert service.login("  DANA@Example.com ", PASSWORD)


def test_unknown_email_is_not_found(service):
    with pytest.raises(NotFoundError):
        service.login("ghost@example.com", PASSWORD)


def test_password_failing_policy_is_not_counted(service, repository, regular):
    with pytest.raises(ValidationError):
        service.login(regular.email, "short")
    assert repository.find_by_id(regular.account_id).failed_attempts == 0


def test_legacy_record_at_limit_is_suspended_without_password_check(
    service, repository, regular, clock
):
    stored = repository.find_by_id(regular.account_id)
    stored.failed_attempts = 3
    repository.persist(stored)

    with pytest.raises(AccountLockedError):
        service.login(regular.email, PASSWORD)
    stored = repository.find_by_id(regular.account_id)
    assert stored.failed_attempts == 0
    assert stored.suspended_until == clock.now + DAY


def test_policy_leaves_suspended_account_untouched(hasher, service, regular, clock):
    policy = LockoutPolicy(hasher)
    regular.suspended_until = clock.now + timedelta(minutes=5)
    regular.failed_attempts = 1

    decision = policy.evaluate(regular, PASSWORD, clock.now)

    assert decision.outcome is LoginOutcome.locked
    assert not decision.newly_suspended
    assert regular.failed_attempts == 1


def test_policy_respects_configured_limits(hasher, regular, clock):
    policy = LockoutPolicy(hasher, max_attempts=2, suspension=timedelta(hours=1))

    first = policy.evaluate(regular, WRONG_PASSWORD, clock.now)
    second = policy.evaluate(regular, WRONG_PASSWORD, clock.now)

    assert first.outcome is LoginOutcome.invalid
    assert first.attempts_remaining == 1
    assert second.outcome is LoginOutcome.locked
    assert second.suspended_until == clock.now + timedelta(hours=1)


def test_concurrent_failures_impose_exactly_one_suspension(service, repository, regular, clock):
    def attempt(_):
        try:
            service.login(regular.email, WRONG_PASSWORD)
        except InvalidCredentialsError:
            return "invalid"
        except AccountLockedError:
            return "locked"
        return "success"

    with ThreadPoolExecutor(max_workers=5) as pool:
        results = list(pool.map(attempt, range(5)))

    assert results.count("invalid") == 2
    assert results.count("locked") == 3
    stored = repository.find_by_id(regular.account_id)
    assert stored.failed_attempts == 0
    assert stored.suspended_until == clock.now + DAY


def test_failed_mutation_leaves_store_unchanged(repository, regular):
    def explode(account):
        account.failed_attempts = 2
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        repository.apply_atomically(regular.account_id, explode)
    assert repository.find_by_id(regular.account_id).failed_attempts == 0


def test_apply_atomically_unknown_account(repository):
    with pytest.raises(NotFoundError):
        repository.apply_atomically("missing", lambda account: None)
