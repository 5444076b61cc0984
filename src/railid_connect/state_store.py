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
StateStore component for issuing and checking anti-CSRF state tokens.
"""

import secrets
import time
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from opentelemetry import trace
from pydantic import ValidationError

from railid_connect.models import StateRecord
from railid_connect.utils.logger import logger

STATE_KEY_PREFIX = "railid-connect-state--"


class StateStorageProtocol(Protocol):
    """Protocol for the key-value storage backing state tokens."""

    def put(self, key: str, value: Any, ttl: int) -> None:
        """Stores the value under key for ttl seconds."""
        ...

    def get(self, key: str) -> Any | None:
        """Returns the value if present and not expired, else None."""
        ...

    def contains(self, key: str) -> bool:
        """
        Returns True if a record exists for key, even one that has expired but was not evicted yet.
        Stores that evict atomically on expiry return the same answer as ``get``.
        """
        ...

    def delete(self, key: str) -> None:
        """Removes the record for key, if any."""
        ...


class MemoryStateStorage:
    """
    In-memory implementation of StateStorageProtocol.
    Expired records are kept until read or purged. Not suitable for distributed systems.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}

    def put(self, key: str, value: Any, ttl: int) -> None:
        self._entries[key] = (value, self._clock() + ttl)

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if expires_at <= self._clock():
            # Evict on read, like a transient store would
            del self._entries[key]
            return None
        return value

    def contains(self, key: str) -> bool:
        return key in self._entries

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def purge_expired(self) -> int:
        """
        Removes every expired record.

        Returns:
            int: The number of records removed.
        """
        now = self._clock()
        expired_keys = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for k in expired_keys:
            del self._entries[k]
        return len(expired_keys)

    def __len__(self) -> int:
        return len(self._entries)


class StateStore:
    """
    Issues and validates state tokens bound to one authorization attempt.

    By default a state token stays valid for every check within its lifetime.
    With ``single_use=True`` the record is deleted on the first successful check,
    closing the replay window.

    Attributes:
        storage (StateStorageProtocol): The backing key-value storage.
        time_limit (int): State lifetime in seconds.
        single_use (bool): Whether a successful check consumes the state.
    """

    def __init__(
        self,
        storage: StateStorageProtocol,
        time_limit: int = 180,
        single_use: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self.time_limit = time_limit
        self.single_use = single_use
        self._clock = clock

    @staticmethod
    def _key(token: str) -> str:
        return f"{STATE_KEY_PREFIX}{token}"

    @staticmethod
    def _to_record(raw: Any) -> StateRecord | None:
        """Accepts a StateRecord, a mapping or a JSON document; anything else is unreadable."""
        if isinstance(raw, StateRecord):
            return raw
        try:
            if isinstance(raw, Mapping):
                return StateRecord.model_validate(raw)
            if isinstance(raw, (str, bytes)):
                return StateRecord.model_validate_json(raw)
        except ValidationError:
            return None
        return None

    def issue(self, redirect_to: str) -> str:
        """
        Generates a new state token and stores the redirect target under it.

        Args:
            redirect_to: URL to send the user to after authentication.

        Returns:
            str: The state token (128 bits of randomness, hex encoded).
        """
        token = secrets.token_hex(16)
        record = StateRecord(redirect_to=redirect_to, expires_at=self._clock() + self.time_limit)
        self.storage.put(self._key(token), record, self.time_limit)
        return token

    def consume(self, token: str) -> StateRecord | None:
        """
        Checks the state token and returns its record.

        Emits ``state-not-found`` when no record exists and ``state-expired`` when a
        record exists but is past its lifetime. Both fail identically.

        Args:
            token: The state token from the callback.

        Returns:
            StateRecord | None: The record, or None if the state is not valid.
        """
        span = trace.get_current_span()
        key = self._key(token)

        if not token or not self.storage.contains(key):
            logger.warning(f"State not found: {token[:8]}...")
            span.add_event("state-not-found")
            return None

        raw = self.storage.get(key)
        record = self._to_record(raw) if raw is not None else None

        if raw is not None and record is None:
            logger.warning(f"State record unreadable: {token[:8]}...")
            span.add_event("state-not-found")
            return None

        if record is None or record.expires_at <= self._clock():
            logger.warning(f"State expired: {token[:8]}...")
            span.add_event("state-expired")
            return None

        if self.single_use:
            self.storage.delete(key)

        return record

    def validate(self, token: str) -> bool:
        """Returns True only if an unexpired record exists for the token."""
        return self.consume(token) is not None
