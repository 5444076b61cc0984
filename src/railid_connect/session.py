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
Contract of the host application's Identity & Session Store.
"""

from typing import Any, Protocol


class SessionStoreProtocol(Protocol):
    """
    Creates or links a local user for an authenticated subject and starts a session.

    Whether unknown subjects are created or rejected is the implementation's policy.
    """

    async def find_or_create_user(self, subject: str, claims: dict[str, Any]) -> Any:
        """
        Returns a handle to the local user mapped to the subject.

        Args:
            subject: The IDP subject identifier.
            claims: The validated user claim.
        """
        ...

    async def start_session(self, user: Any) -> None:
        """Starts a session for the user handle returned by ``find_or_create_user``."""
        ...
