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
Data models for the railid-connect package.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FlowState(StrEnum):
    START = "start"
    REDIRECTED = "redirected"
    CALLBACK_RECEIVED = "callback_received"
    CODE_VALIDATED = "code_validated"
    TOKEN_EXCHANGED = "token_exchanged"
    CLAIM_VALIDATED = "claim_validated"
    SESSION_ESTABLISHED = "session_established"
    FAILED = "failed"


class StateRecord(BaseModel):
    """
    Value stored for an issued state token.

    Attributes:
        redirect_to (str): Where to send the user once authentication completes.
        expires_at (float): Unix timestamp after which the state is no longer valid.
    """

    model_config = ConfigDict(frozen=True)

    redirect_to: str
    expires_at: float


class TokenResponse(BaseModel):
    """
    Response from the IDP token endpoint.

    Provider-specific fields are preserved as extra attributes.

    Attributes:
        access_token (str): The access token issued by the authorization server.
        id_token (str | None): The compact-serialized identity token.
        token_type (str | None): The type of the token (must be "Bearer" to be accepted).
        refresh_token (str | None): The refresh token, if issued.
        expires_in (int | None): The lifetime in seconds of the access token.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str
    id_token: str | None = None
    token_type: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None

    def __repr__(self) -> str:
        # Tokens MUST NOT leak through logs
        return (
            f"TokenResponse(access_token='<REDACTED>', "
            f"id_token={'<REDACTED>' if self.id_token else None!r}, "
            f"token_type={self.token_type!r}, "
            f"refresh_token={'<REDACTED>' if self.refresh_token else None!r}, "
            f"expires_in={self.expires_in!r})"
        )

    def __str__(self) -> str:
        return self.__repr__()


class OutgoingRequest(BaseModel):
    """
    An in-flight request to the IDP, handed to the ``alter_request`` hook before sending.

    Attributes:
        data (dict[str, str]): Form-encoded body fields.
        headers (dict[str, str]): HTTP headers.
    """

    data: dict[str, str] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)


class AuthenticatedIdentity(BaseModel):
    """
    Result of a successful callback, consumed by the Identity & Session Store.

    This model is frozen (immutable) to ensure integrity as it is handed off.
    """

    model_config = ConfigDict(frozen=True)

    subject: str = Field(..., description="The subject identifier ('sub') shared by both claims.")
    id_token_claim: dict[str, Any] = Field(..., description="The decoded identity token payload.")
    user_claim: dict[str, Any] = Field(..., description="The userinfo endpoint response.")
    token_response: TokenResponse = Field(..., description="The token endpoint response.")
    redirect_to: str | None = Field(default=None, description="The redirect bound to the consumed state.")

    def __repr__(self) -> str:
        # PII fields MUST be redacted in __repr__
        return (
            f"AuthenticatedIdentity(subject='<REDACTED>', "
            f"id_token_claim='<REDACTED>', "
            f"user_claim='<REDACTED>', "
            f"token_response={self.token_response!r}, "
            f"redirect_to={self.redirect_to!r})"
        )

    def __str__(self) -> str:
        return self.__repr__()
