from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from bcard_schemas import Address, Image, PersonName, PublicClaims, Role, UserProfile


def normalize_email(email: str) -> str:
    """Return the canonical, case-insensitive form of a login email."""
    return email.strip().lower()


@dataclass(slots=True)
class Account:
    """Aggregate root for a business-card user and its login state."""

    account_id: str
    email: str
    password_hash: str
    role: Role
    name: PersonName
    phone: str
    address: Address
    created_at: datetime
    image: Image | None = None
    gender: str | None = None
    failed_attempts: int = 0
    suspended_until: datetime | None = field(default=None)

    def is_suspended(self, now: datetime) -> bool:
        return self.suspended_until is not None and self.suspended_until > now

    def public_claims(self, *, include_suspension: bool = False) -> PublicClaims:
        return PublicClaims(
            id=self.account_id,
            name=self.name,
            email=self.email,
            phone=self.phone,
            address=self.address,
            role=self.role,
            suspended_until=self.suspended_until if include_suspension else None,
        )

    def profile(self) -> UserProfile:
        return UserProfile(
            id=self.account_id,
            name=self.name,
            email=self.email,
            phone=self.phone,
            address=self.address,
            image=self.image,
            gender=self.gender,
            role=self.role,
            suspended_until=self.suspended_until,
        )
