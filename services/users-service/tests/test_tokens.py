"""Tests for token issuance and verification."""

from __future__ import annotations

import jwt
import pytest

from bcard_schemas import Role
from bcard_users.errors import UnauthenticatedError
from bcard_users.security.tokens import AuthorizationGate, TokenIssuer

SECRET = "test-signing-secret-0123456789abcdef"


@pytest.fixture
def account(service, make_registration):
    account, _ = service.register(make_registration(role=Role.business))
    return account


def test_issued_token_carries_only_public_claims(account):
    token = TokenIssuer(SECRET).issue(account)
    payload = jwt.decode(token, SECRET, algorithms=["HS256"])

    assert set(payload) == {"id", "name", "email", "phone", "address", "role"}
    assert payload["id"] == account.account_id
    assert payload["role"] == "business"
    assert "exp" not in payload


def test_login_token_includes_suspension_claim(account):
    token = TokenIssuer(SECRET).issue(account, include_suspension=True)
    payload = jwt.decode(token, SECRET, algorithms=["HS256"])
    assert "suspended_until" in payload
    assert payload["suspended_until"] is None


def test_gate_accepts_token_from_issuer(account):
    token = TokenIssuer(SECRET).issue(account)
    claims = AuthorizationGate(SECRET).verify(token)

    assert claims.account_id == account.account_id
    assert claims.role == Role.business
    assert not claims.is_admin
    assert claims.owns(account.account_id)
    assert not claims.owns("someone-else")


def test_gate_rejects_tampered_payload(account):
    token = TokenIssuer(SECRET).issue(account)
    header, payload, signature = token.split(".")
    forged = jwt.encode(
        {"id": account.account_id, "role": "admin"}, "forged-signing-secret-0123456789abcdef"
    )
    forged_payload = forged.split(".")[1]

    with pytest.raises(UnauthenticatedError):
        AuthorizationGate(SECRET).verify(".".join([header, forged_payload, signature]))


def test_gate_rejects_tampered_signature(account):
    token = TokenIssuer(SECRET).issue(account)
    flipped = token[:-2] + ("AA" if token[-2:] != "AA" else "BB")
    with pytest.raises(UnauthenticatedError):
        AuthorizationGate(SECRET).verify(flipped)


def test_gate_rejects_token_signed_with_other_key(account):
    token = TokenIssuer("another-signing-secret-0123456789abcdef").issue(account)
    with pytest.raises(UnauthenticatedError):
        AuthorizationGate(SECRET).verify(token)


@pytest.mark.parametrize("token", [None, "", "not.a.jwt"])
def test_gate_rejects_missing_or_malformed_token(token):
    with pytest.raises(UnauthenticatedError):
        AuthorizationGate(SECRET).verify(token)


def test_gate_rejects_signed_token_without_claims():
    token = jwt.encode({"sub": "abc"}, SECRET, algorithm="HS256")
    with pytest.raises(UnauthenticatedError):
        AuthorizationGate(SECRET).verify(token)


def test_empty_secret_is_refused():
    with pytest.raises(ValueError):
        TokenIssuer("")
    with pytest.raises(ValueError):
        AuthorizationGate("")
