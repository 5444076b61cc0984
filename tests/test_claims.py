# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/railid_connect

import base64
import json
from collections.abc import Callable
from typing import Any

import pytest

from railid_connect.claims import ClaimValidator
from railid_connect.exceptions import (
    BadClaimError,
    ClaimDecodeError,
    ClaimValidationError,
    IncorrectUserClaimError,
    InvalidTokenResponseError,
    InvalidUserClaimError,
    MalformedIdentityTokenError,
    MissingIdentityTokenError,
    NoIdentityTokenError,
    NoSubjectIdentityError,
    UnauthorizedError,
    UserClaimProviderError,
)
from railid_connect.models import TokenResponse


@pytest.fixture
def validator() -> ClaimValidator:
    return ClaimValidator()


def token(**kwargs: Any) -> TokenResponse:
    return TokenResponse(access_token="A1", **kwargs)


@pytest.mark.parametrize("token_type", ["Bearer", "bearer", "BEARER"])
def test_validate_token_response_accepts_bearer(validator: ClaimValidator, token_type: str) -> None:
    assert validator.validate_token_response(token(id_token="a.b.c", token_type=token_type)) is True


@pytest.mark.parametrize(
    "fields",
    [
        {"token_type": "Bearer"},
        {"id_token": "a.b.c"},
        {"id_token": "a.b.c", "token_type": "MAC"},
        {"id_token": "", "token_type": "Bearer"},
    ],
)
def test_validate_token_response_rejects(validator: ClaimValidator, fields: dict[str, Any]) -> None:
    with pytest.raises(InvalidTokenResponseError) as exc_info:
        validator.validate_token_response(token(**fields))
    assert exc_info.value.code == "invalid-token-response"


def test_decode_id_token_claim_recovers_payload(validator: ClaimValidator, id_token: Callable[..., str]) -> None:
    claims = {"sub": "u1", "name": "Jürgen Ölmann", "groups": ["a", "b"], "n": 3}
    assert validator.decode_id_token_claim(token(id_token=id_token(claims))) == claims


def test_decode_handles_base64url_alphabet(validator: ClaimValidator) -> None:
    # Runs of '?' and '>' encode to '/' and '+' in standard base64
    claims = {"sub": "?" * 12 + ">" * 12}
    payload = base64.urlsafe_b64encode(json.dumps(claims).encode()).decode().rstrip("=")
    assert "-" in payload and "_" in payload

    assert validator.decode_id_token_claim(token(id_token=f"h.{payload}.s")) == claims


def test_decode_ignores_signature_segment(validator: ClaimValidator, id_token: Callable[..., str]) -> None:
    header, payload, _ = id_token({"sub": "u1"}).split(".")
    forged = f"{header}.{payload}.not-a-real-signature"
    assert validator.decode_id_token_claim(token(id_token=forged)) == {"sub": "u1"}


def test_decode_two_segments_is_enough(validator: ClaimValidator, id_token: Callable[..., str]) -> None:
    header, payload, _ = id_token({"sub": "u1"}).split(".")
    assert validator.decode_id_token_claim(token(id_token=f"{header}.{payload}")) == {"sub": "u1"}


def test_decode_without_id_token(validator: ClaimValidator) -> None:
    with pytest.raises(NoIdentityTokenError) as exc_info:
        validator.decode_id_token_claim(token())
    assert isinstance(exc_info.value, ClaimDecodeError)
    assert exc_info.value.code == "no-identity-token"


def test_decode_without_payload_segment(validator: ClaimValidator) -> None:
    with pytest.raises(MissingIdentityTokenError) as exc_info:
        validator.decode_id_token_claim(token(id_token="onlyonesegment"))
    assert exc_info.value.code == "missing-identity-token"


@pytest.mark.parametrize("payload", ["%%%%", "bm90IGpzb24", "_w", "été", "üüüü"])
def test_decode_malformed_payload(validator: ClaimValidator, payload: str) -> None:
    with pytest.raises(MalformedIdentityTokenError) as exc_info:
        validator.decode_id_token_claim(token(id_token=f"h.{payload}.s"))
    assert isinstance(exc_info.value, ClaimDecodeError)


def test_decode_rejects_characters_outside_alphabet(
    validator: ClaimValidator, id_token: Callable[..., str]
) -> None:
    header, payload, signature = id_token({"sub": "u1"}).split(".")
    tampered = f"{payload[:4]}*{payload[4:]}"

    with pytest.raises(MalformedIdentityTokenError):
        validator.decode_id_token_claim(token(id_token=f"{header}.{tampered}.{signature}"))


def test_validate_id_token_claim(validator: ClaimValidator) -> None:
    assert validator.validate_id_token_claim({"sub": "u1"}) is True


@pytest.mark.parametrize("claim", [None, [], {}, "sub", 42])
def test_validate_id_token_claim_bad_claim(validator: ClaimValidator, claim: Any) -> None:
    with pytest.raises(BadClaimError) as exc_info:
        validator.validate_id_token_claim(claim)
    assert isinstance(exc_info.value, ClaimValidationError)


@pytest.mark.parametrize("claim", [{"name": "x"}, {"sub": ""}, {"sub": None}])
def test_validate_id_token_claim_no_subject(validator: ClaimValidator, claim: dict[str, Any]) -> None:
    with pytest.raises(NoSubjectIdentityError):
        validator.validate_id_token_claim(claim)


def test_validate_user_claim(validator: ClaimValidator) -> None:
    assert validator.validate_user_claim({"sub": "u1", "email": "a@b.com"}, {"sub": "u1"}) is True


def test_validate_user_claim_subject_mismatch(validator: ClaimValidator) -> None:
    """Every other field agreeing does not rescue a subject mismatch."""
    id_claim = {"sub": "abc", "email": "a@b.com", "name": "A"}
    user_claim = {"sub": "xyz", "email": "a@b.com", "name": "A"}

    with pytest.raises(IncorrectUserClaimError) as exc_info:
        validator.validate_user_claim(user_claim, id_claim)
    assert exc_info.value.code == "incorrect-user-claim"


def test_validate_user_claim_subject_compared_exactly(validator: ClaimValidator) -> None:
    with pytest.raises(IncorrectUserClaimError):
        validator.validate_user_claim({"sub": "U1"}, {"sub": "u1"})
    with pytest.raises(IncorrectUserClaimError):
        validator.validate_user_claim({"sub": 1}, {"sub": "1"})
    with pytest.raises(IncorrectUserClaimError):
        validator.validate_user_claim({"email": "a@b.com"}, {"sub": "u1"})


@pytest.mark.parametrize("user_claim", [None, [], "text"])
def test_validate_user_claim_not_mapping(validator: ClaimValidator, user_claim: Any) -> None:
    with pytest.raises(InvalidUserClaimError) as exc_info:
        validator.validate_user_claim(user_claim, {"sub": "u1"})
    assert exc_info.value.code == "invalid-user-claim"


def test_validate_user_claim_provider_error(validator: ClaimValidator) -> None:
    user_claim = {"error": "invalid_token", "error_description": "The access token expired"}

    with pytest.raises(UserClaimProviderError) as exc_info:
        validator.validate_user_claim(user_claim, {"sub": "u1"})

    assert exc_info.value.code == "invalid-user-claim-invalid_token"
    assert exc_info.value.message == "The access token expired"


def test_validate_user_claim_provider_error_default_message(validator: ClaimValidator) -> None:
    with pytest.raises(UserClaimProviderError) as exc_info:
        validator.validate_user_claim({"error": "server_error", "sub": "u1"}, {"sub": "u1"})

    assert exc_info.value.message == "Error from the IDP."


def test_user_login_test_can_veto() -> None:
    validator = ClaimValidator(user_login_test=lambda claim: claim.get("email_verified") is True)

    assert validator.validate_user_claim({"sub": "u1", "email_verified": True}, {"sub": "u1"}) is True
    with pytest.raises(UnauthorizedError) as exc_info:
        validator.validate_user_claim({"sub": "u1", "email_verified": False}, {"sub": "u1"})
    assert exc_info.value.code == "unauthorized"


def test_user_login_test_not_called_on_mismatch() -> None:
    calls: list[dict[str, Any]] = []

    def policy(claim: dict[str, Any]) -> bool:
        calls.append(claim)
        return True

    validator = ClaimValidator(user_login_test=policy)
    with pytest.raises(IncorrectUserClaimError):
        validator.validate_user_claim({"sub": "x"}, {"sub": "y"})
    assert calls == []


def test_get_subject_identity(validator: ClaimValidator) -> None:
    assert validator.get_subject_identity({"sub": "u1"}) == "u1"
