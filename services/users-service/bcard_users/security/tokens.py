"""Issuing and verifying the signed session tokens handed to clients."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import jwt
from pydantic import ValidationError as PydanticValidationError

from bcard_schemas import PublicClaims, Role

from ..domain.account import Account
from ..errors import UnauthenticatedError

ALGORITHM = "HS256"


@dataclass(frozen=True, slots=True)
class Claims:
    """Verified token claims exposed to request handlers."""

    account_id: str
    role: Role
    email: str
    payload: PublicClaims

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin

    def owns(self, account_id: str) -> bool:
        return self.account_id == account_id


class TokenIssuer:
    """Sign public account claims with the process-wide secret.

    Tokens carry no ``exp`` claim; they stay valid for as long as the secret
    does.
    """

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("token signing secret must not be empty")
        self._secret = secret

    def issue(self, account: Account, *, include_suspension: bool = False) -> str:
        """Create a signed JWT for ``account``.

        Parameters
        ----------
        account:
            Account whose public claims become the token payload.
        include_suspension:
            Add the ``suspended_until`` claim. Login tokens carry it so clients
            can show ban status; registration tokens do not.
        """
        claims = account.public_claims(include_suspension=include_suspension)
        exclude = None if include_suspension else {"suspended_until"}
        payload: dict[str, Any] = claims.model_dump(mode="json", exclude=exclude)
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)


class AuthorizationGate:
    """Verify inbound bearer tokens and expose their claims.

    Only the signature is checked. An account suspended after a token was
    issued keeps a valid token.
    """

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("token signing secret must not be empty")
        self._secret = secret

    def verify(self, token: str | None) -> Claims:
        """Decode ``token`` and return its claims.

        Raises
        ------
        UnauthenticatedError
            When the token is missing, malformed, signed with another key, or
            lacks the public claims.
        """
        if not token:
            raise UnauthenticatedError("Access denied. No token provided")
        try:
            payload = jwt.decode(token, self._secret, algorithms=[ALGORITHM])
        except jwt.PyJWTError as exc:
            raise UnauthenticatedError("Invalid token") from exc
        try:
            claims = PublicClaims.model_validate(payload)
        except PydanticValidationError as exc:
            raise UnauthenticatedError("Invalid token") from exc
        return Claims(
            account_id=claims.id,
            role=Role(claims.role),
            email=claims.email,
            payload=claims,
        )
