from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from bcard_schemas import Address, PersonName, Role
from bcard_users.domain.contracts import RegisterUserInput
from bcard_users.domain.lockout import LockoutPolicy
from bcard_users.domain.service import UserService
from bcard_users.memory_repository import InMemoryAccountRepository
from bcard_users.security.passwords import PasswordHasher
from bcard_users.security.tokens import TokenIssuer

SECRET = "test-signing-secret-0123456789abcdef"
PASSWORD = "Secr3t!pass"
WRONG_PASSWORD = "Wr0ng!pass"


class FakeClock:
    """Server clock that only moves when a test advances it."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def hasher() -> PasswordHasher:
    # cheapest argon2 parameters; the cost is irrelevant to behaviour
    return PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def repository() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def service(repository, hasher, clock) -> UserService:
    return UserService(
        repository,
        hasher,
        TokenIssuer(SECRET),
        LockoutPolicy(hasher),
        clock=clock,
    )


@pytest.fixture
def make_registration():
    """Build registration input for a user with a valid profile."""

    def _make(
        email: str = "dana@example.com",
        password: str = PASSWORD,
        role: Role = Role.regular,
    ) -> RegisterUserInput:
        return RegisterUserInput(
            name=PersonName(first="Dana", last="Levi"),
            phone="0501234567",
            email=email,
            password=password,
            address=Address(country="Israel", city="Haifa", street="Herzl", house_number=12),
            role=role,
        )

    return _make
