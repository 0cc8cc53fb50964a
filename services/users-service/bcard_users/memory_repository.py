"""In-process credential store for local development and tests."""

from __future__ import annotations

import copy
from threading import Lock
from typing import Callable, TypeVar

from .domain.account import Account, normalize_email
from .errors import ConflictError, NotFoundError

T = TypeVar("T")


class InMemoryAccountRepository:
    """Thread-safe account store with a lock per account.

    ``apply_atomically`` mutates a private copy of the account and swaps it in
    only once the callback returns, so a failing callback leaves no trace.
    """

    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}
        self._ids_by_email: dict[str, str] = {}
        self._account_locks: dict[str, Lock] = {}
        self._lock = Lock()

    def create(self, account: Account) -> Account:
        email = normalize_email(account.email)
        with self._lock:
            if email in self._ids_by_email:
                raise ConflictError("User already exists!")
            stored = copy.deepcopy(account)
            stored.email = email
            self._accounts[stored.account_id] = stored
            self._ids_by_email[email] = stored.account_id
            self._account_locks[stored.account_id] = Lock()
            return copy.deepcopy(stored)

    def find_by_email(self, email: str) -> Account | None:
        with self._lock:
            account_id = self._ids_by_email.get(normalize_email(email))
            if account_id is None:
                return None
            return copy.deepcopy(self._accounts[account_id])

    def find_by_id(self, account_id: str) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            return copy.deepcopy(account) if account else None

    def list_accounts(self) -> list[Account]:
        with self._lock:
            accounts = sorted(self._accounts.values(), key=lambda a: (a.created_at, a.account_id))
            return [copy.deepcopy(account) for account in accounts]

    def persist(self, account: Account) -> Account:
        with self._lock:
            stored = self._accounts.get(account.account_id)
            if stored is None:
                raise NotFoundError("User does not exist!")
            stored.failed_attempts = account.failed_attempts
            stored.suspended_until = account.suspended_until
            stored.role = account.role
        return account

    def apply_atomically(self, account_id: str, mutate: Callable[[Account], T]) -> T:
        with self._account_lock(account_id):
            working = self.find_by_id(account_id)
            if working is None:
                raise NotFoundError("User does not exist!")
            result = mutate(working)
            self.persist(working)
            return result

    def change_password(self, account_id: str, password_hash: str) -> None:
        with self._lock:
            stored = self._accounts.get(account_id)
            if stored is None:
                raise NotFoundError("User does not exist!")
            stored.password_hash = password_hash

    def _account_lock(self, account_id: str) -> Lock:
        with self._lock:
            lock = self._account_locks.get(account_id)
        if lock is None:
            raise NotFoundError("User does not exist!")
        return lock
