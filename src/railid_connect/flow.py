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
AuthorizationFlow component orchestrating the OIDC Authorization Code Flow.
"""

import hashlib
import hmac
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote, urlencode

import httpx
from opentelemetry import trace
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.trace import Status, StatusCode

from railid_connect.claims import ClaimValidator
from railid_connect.config import RailIDConnectConfig
from railid_connect.exceptions import (
    FlowTransitionError,
    InvalidStateError,
    MissingStateError,
    NoCodeError,
    ProviderError,
    RailIDConnectError,
)
from railid_connect.hooks import FlowHooks
from railid_connect.models import AuthenticatedIdentity, FlowState, StateRecord, TokenResponse
from railid_connect.session import SessionStoreProtocol
from railid_connect.state_store import MemoryStateStorage, StateStorageProtocol, StateStore
from railid_connect.token_client import TokenExchangeClient
from railid_connect.utils.logger import logger

tracer = trace.get_tracer(__name__)

_NEXT_STATE: dict[FlowState, FlowState] = {
    FlowState.START: FlowState.REDIRECTED,
    FlowState.REDIRECTED: FlowState.CALLBACK_RECEIVED,
    FlowState.CALLBACK_RECEIVED: FlowState.CODE_VALIDATED,
    FlowState.CODE_VALIDATED: FlowState.TOKEN_EXCHANGED,
    FlowState.TOKEN_EXCHANGED: FlowState.CLAIM_VALIDATED,
    FlowState.CLAIM_VALIDATED: FlowState.SESSION_ESTABLISHED,
}


class AuthorizationAttempt:
    """
    Tracks one authorization attempt through the flow state machine.

    States only move forward along the chain; FAILED is reachable from any state and terminal.

    Attributes:
        state (FlowState): The current state.
        failure_reason (str | None): Error code of the failure, once FAILED.
        failed_at (FlowState | None): The state the attempt was in when it failed.
    """

    def __init__(self, state: FlowState = FlowState.START) -> None:
        self.state = state
        self.failure_reason: str | None = None
        self.failed_at: FlowState | None = None
        self.history: list[FlowState] = [state]

    def advance(self, target: FlowState) -> None:
        """
        Moves to the next state.

        Raises:
            FlowTransitionError: If target is not the direct successor of the current state.
        """
        if _NEXT_STATE.get(self.state) != target:
            raise FlowTransitionError(
                f"Cannot move from '{self.state}' to '{target}'.",
                payload={"from": self.state, "to": target},
            )
        self.state = target
        self.history.append(target)

    def fail(self, reason: str) -> None:
        """Moves to FAILED, keeping the first recorded reason."""
        if self.state is FlowState.FAILED:
            return
        self.failed_at = self.state
        self.failure_reason = reason
        self.state = FlowState.FAILED
        self.history.append(FlowState.FAILED)


class AuthorizationFlow:
    """
    Async Authorization Code Flow client (The Core).
    Handles resources via async context manager.

    The flow performs no retries; a caller that retries must start over with a
    fresh authorization URL (and thus a fresh state token).
    """

    def __init__(
        self,
        config: RailIDConnectConfig,
        storage: StateStorageProtocol | None = None,
        client: httpx.AsyncClient | None = None,
        hooks: FlowHooks | None = None,
        single_use_state: bool = False,
    ) -> None:
        """
        Initialize the AuthorizationFlow.

        Args:
            config: The configuration object.
            storage: Key-value storage for state tokens. Defaults to an in-memory store,
                which only works for a single process.
            client: External async client (optional). If not provided, an instrumented client is created.
            hooks: Extensibility hooks (optional).
            single_use_state: Delete a state token on its first successful check.
        """
        self.config = config
        self.hooks = hooks or FlowHooks()
        self._internal_client = client is None

        if client:
            self._client = client
        else:
            self._client = httpx.AsyncClient(timeout=self.config.http_request_timeout)
            # Instrument the client for distributed tracing
            HTTPXClientInstrumentor().instrument_client(self._client)

        self.state_store = StateStore(
            storage if storage is not None else MemoryStateStorage(),
            time_limit=self.config.state_time_limit,
            single_use=single_use_state,
        )
        self.token_client = TokenExchangeClient(self.config, self._client, self.hooks.alter_request)
        self.claim_validator = ClaimValidator(self.hooks.user_login_test)

    async def __aenter__(self) -> "AuthorizationFlow":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._internal_client:
            await self._client.aclose()

    def _anonymize(self, value: str) -> str:
        return hmac.new(
            self.config.pii_salt.get_secret_value().encode("utf-8"),
            value.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    @staticmethod
    def _with_query(url: str, params: dict[str, str]) -> str:
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}{urlencode(params, quote_via=quote)}"

    def build_authorization_url(self, redirect_to: str, attempt: AuthorizationAttempt | None = None) -> str:
        """
        Issues a state token and builds the URL that sends the user to the IDP.

        Args:
            redirect_to: Where to send the user once the flow completes.
            attempt: Attempt to advance to REDIRECTED (optional).

        Returns:
            str: The authorization URL, after the ``alter_auth_url`` hook.
        """
        state = self.state_store.issue(redirect_to)
        url = self._with_query(
            self.config.endpoint_login_url,
            {
                "response_type": "code",
                "scope": self.config.scope,
                "client_id": self.config.client_id,
                "state": state,
                "redirect_uri": self.config.redirect_uri,
            },
        )
        if self.hooks.alter_auth_url is not None:
            url = self.hooks.alter_auth_url(url)

        if attempt is not None:
            attempt.advance(FlowState.REDIRECTED)
        return url

    def validate_authentication_request(self, params: Mapping[str, Any]) -> StateRecord:
        """
        Validates the callback query parameters.

        Args:
            params: The callback query parameters.

        Returns:
            StateRecord: The record bound to the state token.

        Raises:
            ProviderError: If the IDP reported an error.
            NoCodeError: If no code is present.
            MissingStateError: If no state is present.
            InvalidStateError: If the state is unknown or expired.
        """
        payload = dict(params)
        if "error" in params:
            raise ProviderError(payload=payload)
        if "code" not in params:
            raise NoCodeError(payload=payload)
        if "state" not in params:
            logger.warning("No state provided in the authentication request")
            trace.get_current_span().add_event("state-not-provided")
            raise MissingStateError(payload=payload)

        record = self.state_store.consume(str(params["state"]))
        if record is None:
            raise InvalidStateError(payload=payload)
        return record

    async def handle_callback(
        self, params: Mapping[str, Any], attempt: AuthorizationAttempt | None = None
    ) -> AuthenticatedIdentity:
        """
        Runs the callback half of the flow, stopping at the first failure.

        Validates the request, exchanges the code, validates the token response and
        identity token claim, fetches the user claim and cross-checks both claims.

        Emits an OpenTelemetry span `handle_callback`.
        Sets attribute `enduser.id` (anonymized) on success.

        Args:
            params: The callback query parameters (``code``, ``state``, optionally ``error``).
            attempt: Attempt in REDIRECTED state to track (optional).

        Returns:
            AuthenticatedIdentity: The identity to hand to the Identity & Session Store.

        Raises:
            RailIDConnectError: The typed error of the failing step.
        """
        attempt = attempt or AuthorizationAttempt(FlowState.REDIRECTED)

        with tracer.start_as_current_span("handle_callback") as span:
            try:
                attempt.advance(FlowState.CALLBACK_RECEIVED)
                record = self.validate_authentication_request(params)
                attempt.advance(FlowState.CODE_VALIDATED)

                token_response = await self.token_client.exchange_code(str(params["code"]))
                if self.hooks.alter_token_response is not None:
                    token_response = self.hooks.alter_token_response(token_response)
                attempt.advance(FlowState.TOKEN_EXCHANGED)

                validator = self.claim_validator
                validator.validate_token_response(token_response)
                id_token_claim = validator.decode_id_token_claim(token_response)
                if self.hooks.alter_id_token_claim is not None:
                    id_token_claim = self.hooks.alter_id_token_claim(id_token_claim)
                validator.validate_id_token_claim(id_token_claim)

                user_claim = await self.token_client.fetch_userinfo(token_response.access_token)
                validator.validate_user_claim(user_claim, id_token_claim)
                attempt.advance(FlowState.CLAIM_VALIDATED)

                if self.hooks.alter_user_claim is not None:
                    user_claim = self.hooks.alter_user_claim(user_claim)

                subject = validator.get_subject_identity(id_token_claim)
                user_hash = self._anonymize(subject)
                logger.info(f"Authorization code flow completed for user {user_hash}")
                span.set_attribute("enduser.id", user_hash)
                span.set_status(Status(StatusCode.OK))

                return AuthenticatedIdentity(
                    subject=subject,
                    id_token_claim=id_token_claim,
                    user_claim=user_claim,
                    token_response=token_response,
                    redirect_to=record.redirect_to,
                )
            except RailIDConnectError as e:
                attempt.fail(e.code)
                logger.warning(f"Authorization failed at '{attempt.failed_at}': [{e.code}] {e.message}")
                span.set_status(Status(StatusCode.ERROR, e.code))
                raise

    async def complete_login(
        self,
        params: Mapping[str, Any],
        session_store: SessionStoreProtocol,
        attempt: AuthorizationAttempt | None = None,
    ) -> AuthenticatedIdentity:
        """
        Runs ``handle_callback`` and hands the identity to the Identity & Session Store.

        Args:
            params: The callback query parameters.
            session_store: The host application's user and session store.
            attempt: Attempt in REDIRECTED state to track (optional).

        Returns:
            AuthenticatedIdentity: The identity a session was started for.
        """
        attempt = attempt or AuthorizationAttempt(FlowState.REDIRECTED)
        identity = await self.handle_callback(params, attempt)

        try:
            user = await session_store.find_or_create_user(identity.subject, identity.user_claim)
            await session_store.start_session(user)
        except Exception:
            attempt.fail("session-store-error")
            logger.exception("Identity & Session Store rejected the authenticated identity")
            raise

        attempt.advance(FlowState.SESSION_ESTABLISHED)
        return identity

    async def refresh_tokens(self, refresh_token: str) -> TokenResponse:
        """
        Requests new tokens with a refresh token.

        Raises:
            NetworkError: If the token endpoint cannot be reached.
            TokenEndpointError: If the IDP rejects the refresh token.
            InvalidTokenError: If the response cannot be decoded.
        """
        return await self.token_client.refresh(refresh_token)

    def build_logout_url(self, id_token_hint: str | None = None, post_logout_redirect_uri: str | None = None) -> str:
        """
        Builds the IDP end-session URL.

        Raises:
            RailIDConnectError: If no logout endpoint is configured.
        """
        if not self.config.endpoint_logout_url:
            raise RailIDConnectError("Logout endpoint is not configured.", code="missing-logout-endpoint")

        params = {"client_id": self.config.client_id}
        if id_token_hint:
            params["id_token_hint"] = id_token_hint
        if post_logout_redirect_uri:
            params["post_logout_redirect_uri"] = post_logout_redirect_uri
        return self._with_query(self.config.endpoint_logout_url, params)
