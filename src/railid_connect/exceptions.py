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
Custom exceptions for the railid-connect package.

Every error carries a stable machine-readable ``code`` and the offending
``payload`` for diagnostics. None of them is fatal to the host process; each
aborts only the current authorization attempt.
"""

from typing import Any


class RailIDConnectError(Exception):
    """Base exception for all railid-connect errors."""

    default_code = "railid-connect-error"
    default_message = "RailID Connect error."

    def __init__(self, message: str | None = None, *, code: str | None = None, payload: Any = None) -> None:
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.payload = payload
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


# Callback request errors


class ProtocolError(RailIDConnectError):
    """Raised when the authorization callback is malformed or rejected by the provider."""


class ProviderError(ProtocolError):
    """Raised when the callback carries an ``error`` parameter."""

    default_code = "unknown-error"
    default_message = "An unknown error occurred."


class NoCodeError(ProtocolError):
    """Raised when the callback carries no authorization code."""

    default_code = "no-code"
    default_message = "No authentication code present in the request."


class MissingStateError(ProtocolError):
    """Raised when the callback carries no state parameter."""

    default_code = "missing-state"
    default_message = "Missing state."


class StateError(RailIDConnectError):
    """Base class for state token failures."""


class InvalidStateError(StateError):
    """Raised when the state token was never issued, was evicted, or has expired."""

    default_code = "invalid-state"
    default_message = "Invalid state."


# IDP communication errors


class NetworkError(RailIDConnectError):
    """Raised when the token endpoint cannot be reached (including timeouts)."""

    default_code = "request-authentication-token"
    default_message = "Request for authentication token failed."


class ClaimFetchError(RailIDConnectError):
    """Raised when the userinfo endpoint cannot be reached or returns no body."""

    default_code = "bad-claim"
    default_message = "Bad user claim."


class OversizedResponseError(RailIDConnectError):
    """Raised when an IDP response body exceeds the size limit."""

    default_code = "oversized-response"
    default_message = "Response too large."


class TokenEndpointError(RailIDConnectError):
    """Raised when the token endpoint answers with an OAuth ``error`` body."""

    default_code = "token-endpoint-error"


class InvalidTokenError(RailIDConnectError):
    """Raised when the token endpoint body cannot be decoded into a token response."""

    default_code = "invalid-token"
    default_message = "Invalid token."


class InvalidTokenResponseError(InvalidTokenError):
    """Raised when the token response lacks an id_token or is not a Bearer token."""

    default_code = "invalid-token-response"
    default_message = "Invalid token response."


# Identity token structure errors


class ClaimDecodeError(RailIDConnectError):
    """Base class for malformed identity token structures."""


class NoIdentityTokenError(ClaimDecodeError):
    default_code = "no-identity-token"
    default_message = "No identity token."


class MissingIdentityTokenError(ClaimDecodeError):
    default_code = "missing-identity-token"
    default_message = "Missing identity token."


class MalformedIdentityTokenError(ClaimDecodeError):
    """Raised when the identity token payload is not base64url-encoded JSON."""

    default_code = "malformed-identity-token"
    default_message = "Malformed identity token."


# Claim validation errors


class ClaimValidationError(RailIDConnectError):
    """Base class for claims that decode correctly but fail validation."""


class BadClaimError(ClaimValidationError):
    default_code = "bad-id-token-claim"
    default_message = "Bad ID token claim."


class NoSubjectIdentityError(ClaimValidationError):
    default_code = "no-subject-identity"
    default_message = "No subject identity."


class InvalidUserClaimError(ClaimValidationError):
    default_code = "invalid-user-claim"
    default_message = "Invalid user claim."


class UserClaimProviderError(InvalidUserClaimError):
    """Raised when the userinfo response carries an ``error`` key."""

    default_message = "Error from the IDP."


class IncorrectUserClaimError(ClaimValidationError):
    """Raised when the userinfo subject does not match the identity token subject."""

    default_code = "incorrect-user-claim"
    default_message = "Incorrect user claim."


class UnauthorizedError(ClaimValidationError):
    """Raised when the login authorization predicate vetoes the user claim."""

    default_code = "unauthorized"
    default_message = "Unauthorized access."


class FlowTransitionError(RailIDConnectError):
    """Raised on an illegal authorization state machine transition."""

    default_code = "illegal-transition"
    default_message = "Illegal authorization flow transition."
