# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/railid_connect

"""
ClaimValidator component for decoding the identity token and cross-checking the user claim.

WARNING: the identity token is decoded without verifying its signature, and its
``iss``, ``aud`` and ``exp`` claims are not checked. Only the subject presence,
the Bearer token type and the subject match against the userinfo response are
enforced. Deployments that need stronger guarantees must verify the token
against the IDP's published keys before trusting it.
"""

import base64
import json
from typing import Any

from railid_connect.exceptions import (
    BadClaimError,
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
from railid_connect.hooks import ClaimPredicate
from railid_connect.models import TokenResponse


def _b64url_decode(segment: str) -> bytes:
    # base64url -> base64, restoring padding the compact serialization strips
    data = segment.replace("-", "+").replace("_", "/")
    data += "=" * (-len(data) % 4)
    return base64.b64decode(data, validate=True)


class ClaimValidator:
    """
    Validates the token response, the identity token claim and the user claim.

    Attributes:
        user_login_test (ClaimPredicate | None): Policy that can veto login for a user claim.
    """

    def __init__(self, user_login_test: ClaimPredicate | None = None) -> None:
        self.user_login_test = user_login_test

    def validate_token_response(self, token_response: TokenResponse) -> bool:
        """
        Checks that the response carries an id_token and is of type Bearer (case-insensitive).

        Raises:
            InvalidTokenResponseError: If either requirement fails.
        """
        if not token_response.id_token or (token_response.token_type or "").lower() != "bearer":
            raise InvalidTokenResponseError(payload=token_response)
        return True

    def decode_id_token_claim(self, token_response: TokenResponse) -> Any:
        """
        Extracts the claim from the payload segment of the id_token.

        The signature segment is ignored.

        Returns:
            Any: The decoded JSON payload, normally a claim mapping.

        Raises:
            NoIdentityTokenError: If the response has no id_token.
            MissingIdentityTokenError: If the id_token has no payload segment.
            MalformedIdentityTokenError: If the payload is not base64url-encoded JSON.
        """
        if token_response.id_token is None:
            raise NoIdentityTokenError(payload=token_response)

        segments = token_response.id_token.split(".")
        if len(segments) < 2:
            raise MissingIdentityTokenError(payload=token_response)

        try:
            return json.loads(_b64url_decode(segments[1]).decode("utf-8"))
        except ValueError as e:
            # Non-ASCII input, bad base64, bad UTF-8 and bad JSON all raise ValueError
            raise MalformedIdentityTokenError(payload=segments[1]) from e

    def validate_id_token_claim(self, id_token_claim: Any) -> bool:
        """
        Checks that the claim is a non-empty mapping with a non-empty ``sub``.

        Raises:
            BadClaimError: If the claim is not a non-empty mapping.
            NoSubjectIdentityError: If ``sub`` is missing or empty.
        """
        if not isinstance(id_token_claim, dict) or not id_token_claim:
            raise BadClaimError(payload=id_token_claim)
        if not id_token_claim.get("sub"):
            raise NoSubjectIdentityError(payload=id_token_claim)
        return True

    def validate_user_claim(self, user_claim: Any, id_token_claim: dict[str, Any]) -> bool:
        """
        Checks the userinfo response against the identity token claim.

        The subject of both claims must be exactly equal; this binds the userinfo
        response to the identity token and rejects substituted access tokens.

        Raises:
            InvalidUserClaimError: If the user claim is not a mapping.
            UserClaimProviderError: If the user claim carries an ``error`` key.
            IncorrectUserClaimError: If the subjects differ.
            UnauthorizedError: If the login policy vetoes the claim.
        """
        if not isinstance(user_claim, dict):
            raise InvalidUserClaimError(payload=user_claim)

        if "error" in user_claim:
            raise UserClaimProviderError(
                user_claim.get("error_description") or None,
                code=f"invalid-user-claim-{user_claim['error']}",
                payload=user_claim,
            )

        if id_token_claim.get("sub") != user_claim.get("sub"):
            raise IncorrectUserClaimError(payload={"user_claim": user_claim, "id_token_claim": id_token_claim})

        if self.user_login_test is not None and not self.user_login_test(user_claim):
            raise UnauthorizedError(payload=user_claim)

        return True

    @staticmethod
    def get_subject_identity(id_token_claim: dict[str, Any]) -> str:
        """Returns the subject identifier of a validated identity token claim."""
        return str(id_token_claim["sub"])
