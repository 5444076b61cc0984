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
OpenID Connect relying-party client for the Authorization Code Flow.
"""

__version__ = "0.1.0"

from .claims import ClaimValidator
from .config import RailIDConnectConfig, load_config, persistable_values
from .exceptions import RailIDConnectError
from .flow import AuthorizationAttempt, AuthorizationFlow
from .hooks import FlowHooks
from .login_form import LoginForm
from .models import AuthenticatedIdentity, FlowState, OutgoingRequest, StateRecord, TokenResponse
from .session import SessionStoreProtocol
from .state_store import MemoryStateStorage, StateStorageProtocol, StateStore
from .token_client import TokenExchangeClient

__all__ = [
    "AuthenticatedIdentity",
    "AuthorizationAttempt",
    "AuthorizationFlow",
    "ClaimValidator",
    "FlowHooks",
    "FlowState",
    "LoginForm",
    "MemoryStateStorage",
    "OutgoingRequest",
    "RailIDConnectConfig",
    "RailIDConnectError",
    "SessionStoreProtocol",
    "StateRecord",
    "StateStorageProtocol",
    "StateStore",
    "TokenExchangeClient",
    "TokenResponse",
    "load_config",
    "persistable_values",
]
