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
Extensibility hooks injected into the authorization flow at construction time.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from railid_connect.models import OutgoingRequest, TokenResponse

# Operation names passed to ``alter_request``.
GET_AUTHENTICATION_TOKEN = "get-authentication-token"
REFRESH_TOKEN = "refresh-token"
GET_USERINFO = "get-userinfo"

RequestMutator = Callable[[OutgoingRequest, str], OutgoingRequest]
UrlMutator = Callable[[str], str]
TextMutator = Callable[[str], str]
ClaimMutator = Callable[[dict[str, Any]], dict[str, Any]]
ClaimPredicate = Callable[[dict[str, Any]], bool]
TokenResponseMutator = Callable[[TokenResponse], TokenResponse]


@dataclass(frozen=True)
class FlowHooks:
    """
    Optional callables that let the host application adjust the flow without subclassing.

    Each hook receives the in-flight value and returns a value of the same shape.

    Attributes:
        alter_request: Adjusts an outgoing IDP request, keyed by operation name.
        alter_auth_url: Adjusts the authorization URL before it is handed out.
        login_button_text: Adjusts the login button label.
        user_login_test: Returns False to veto login for a validated user claim.
        alter_user_claim: Adjusts the user claim before it is handed to the session store.
        alter_token_response: Adjusts the token response before validation.
        alter_id_token_claim: Adjusts the decoded identity token claim before validation.
    """

    alter_request: RequestMutator | None = None
    alter_auth_url: UrlMutator | None = None
    login_button_text: TextMutator | None = None
    user_login_test: ClaimPredicate | None = None
    alter_user_claim: ClaimMutator | None = None
    alter_token_response: TokenResponseMutator | None = None
    alter_id_token_claim: ClaimMutator | None = None
