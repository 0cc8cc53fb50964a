"""Database repository for user accounts and their login state."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, TypeVar

from psycopg import errors as pg_errors
from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from bcard_schemas import Address, Image, PersonName, Role

from .domain.account import Account, normalize_email
from .errors import ConflictError, NotFoundError

T = TypeVar("T")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS bcard_users (
    account_id TEXT PRIMARY KEY,
    email TEXT NOT NULL,
    password_hash TEXT NOT NULL,
    role TEXT NOT NULL,
    failed_attempts INTEGER NOT NULL DEFAULT 0 CHECK (failed_attempts >= 0),
    suspended_until TIMESTAMPTZ,
    profile JSONB NOT NULL,
    created_at TIMESTAMPTZ NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS bcard_users_email_key ON bcard_users (lower(email));
"""

_COLUMNS = (
    "account_id, email, password_hash, role, failed_attempts, suspended_until, profile, created_at"
)


@dataclass(slots=True)
class AccountRecord:
    """Row projection used when mapping database tuples to domain aggregates."""

    account_id: str
    email: str
    password_hash: str
    role: str
    failed_attempts: int
    suspended_until: datetime | None
    profile: dict[str, Any]
    created_at: datetime

    def to_domain(self) -> Account:
        image = self.profile.get("image")
        return Account(
            account_id=self.account_id,
            email=self.email,
            password_hash=self.password_hash,
            role=Role(self.role),
            name=PersonName.model_validate(self.profile["name"]),
            phone=self.profile["phone"],
            address=Address.model_validate(self.profile["address"]),
            image=Image.model_validate(image) if image else None,
            gender=self.profile.get("gender"),
            failed_attempts=self.failed_attempts,
            suspended_until=self.suspended_until,
            created_at=self.created_at,
        )


def _profile_document(account: Account) -> dict[str, Any]:
    return {
        "name": account.name.model_dump(),
        "phone": account.phone,
        "address": account.address.model_dump(),
        "image": account.image.model_dump() if account.image else None,
        "gender": account.gender,
    }


class AccountRepository:
    """Postgres-backed credential store; profiles are kept as JSONB documents."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def ensure_schema(self) -> None:
        """Create the accounts table and its case-insensitive email index."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
            conn.commit()

    def create(self, account: Account) -> Account:
        """Insert a new account, raising :class:`ConflictError` on a taken email."""
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"""
                        INSERT INTO bcard_users ({_COLUMNS})
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING {_COLUMNS}
                        """,
                        (
                            account.account_id,
                            normalize_email(account.email),
                            account.password_hash,
                            Role(account.role).value,
                            account.failed_attempts,
                            account.suspended_until,
                            Json(_profile_document(account)),
                            account.created_at,
                        ),
                    )
                    row = cur.fetchone()
                conn.commit()
        except pg_errors.UniqueViolation as exc:
            raise ConflictError("User already exists!") from exc
        return AccountRecord(*row).to_domain()

    def find_by_email(self, email: str) -> Account | None:
        """Return the account registered under ``email`` (case-insensitive)."""
        return self._fetch_one(
            f"SELECT {_COLUMNS} FROM bcard_users WHERE lower(email) = %s",
            (normalize_email(email),),
        )

    def find_by_id(self, account_id: str) -> Account | None:
        return self._fetch_one(
            f"SELECT {_COLUMNS} FROM bcard_users WHERE account_id = %s",
            (account_id,),
        )

    def list_accounts(self) -> list[Account]:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM bcard_users ORDER BY created_at, account_id")
                rows = cur.fetchall()
        return [AccountRecord(*row).to_domain() for row in rows]

    def persist(self, account: Account) -> Account:
        """Write the mutable login fields of an existing account."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                self._write_mutable_fields(cur, account)
            conn.commit()
        return account

    def apply_atomically(self, account_id: str, mutate: Callable[[Account], T]) -> T:
        """Run ``mutate`` on the locked row and persist its changes in one transaction.

        ``SELECT ... FOR UPDATE`` serializes concurrent callers on the same
        account. When ``mutate`` raises, the transaction rolls back and nothing
        is written.
        """
        with self._pool.connection() as conn:
            with conn.transaction():
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"SELECT {_COLUMNS} FROM bcard_users WHERE account_id = %s FOR UPDATE",
                        (account_id,),
                    )
                    row = cur.fetchone()
                    if row is None:
                        raise NotFoundError("User does not exist!")
                    account = AccountRecord(*row).to_domain()
                    result = mutate(account)
                    self._write_mutable_fields(cur, account)
        return result

    def change_password(self, account_id: str, password_hash: str) -> None:
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE bcard_users SET password_hash = %s WHERE account_id = %s",
                    (password_hash, account_id),
                )
                if cur.rowcount == 0:
                    raise NotFoundError("User does not exist!")
            conn.commit()

    def _fetch_one(self, query: str, params: tuple[Any, ...]) -> Account | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
                if not row:
                    return None
        return AccountRecord(*row).to_domain()

    @staticmethod
    def _write_mutable_fields(cur: Any, account: Account) -> None:
        cur.execute(
            """
            UPDATE bcard_users
            SET failed_attempts = %s, suspended_until = %s, role = %s
            WHERE account_id = %s
            """,
            (
                account.failed_attempts,
                account.suspended_until,
                Role(account.role).value,
                account.account_id,
            ),
        )
        if cur.rowcount == 0:
            raise NotFoundError("User does not exist!")
