"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol, TypeVar

from bcard_schemas import Address, Image, PersonName, Role

from .account import Account

T = TypeVar("T")


@dataclass(slots=True)
class RegisterUserInput:
    """Validated profile fields and plaintext password for a new account."""

    name: PersonName
    phone: str
    email: str
    password: str
    address: Address
    role: Role = Role.regular
    image: Image | None = None
    gender: str | None = None


class CredentialStore(Protocol):
    """Read/write contract the authentication workflows need from storage."""

    def create(self, account: Account) -> Account: ...

    def find_by_email(self, email: str) -> Account | None: ...

    def find_by_id(self, account_id: str) -> Account | None: ...

    def list_accounts(self) -> list[Account]: ...

    def persist(self, account: Account) -> Account: ...

    def apply_atomically(self, account_id: str, mutate: Callable[[Account], T]) -> T: ...

    def change_password(self, account_id: str, password_hash: str) -> None: ...
