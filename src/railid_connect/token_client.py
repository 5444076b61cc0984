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
TokenExchangeClient component for the back-channel requests to the IDP.
"""

import json
from typing import Any
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError

from railid_connect.config import RailIDConnectConfig
from railid_connect.exceptions import (
    ClaimFetchError,
    InvalidTokenError,
    NetworkError,
    OversizedResponseError,
    TokenEndpointError,
)
from railid_connect.hooks import GET_AUTHENTICATION_TOKEN, GET_USERINFO, REFRESH_TOKEN, RequestMutator
from railid_connect.models import OutgoingRequest, TokenResponse
from railid_connect.utils.logger import logger

MAX_RESPONSE_BYTES = 1_000_000


def host_header(url: str, include_port: bool = False) -> str:
    """
    Derives an explicit Host header value from an endpoint URL.

    Args:
        url: The endpoint URL.
        include_port: Append the port when the URL names one explicitly.

    Returns:
        str: The host (and optionally ``:port``).
    """
    parsed = urlparse(url)
    host = parsed.hostname or ""
    if include_port and parsed.port:
        host = f"{host}:{parsed.port}"
    return host


class TokenExchangeClient:
    """
    Performs the code-for-token, refresh-token and userinfo exchanges.

    No retries are performed; a failed request aborts the current attempt.
    Response bodies are streamed and rejected once they exceed ``max_response_bytes``.

    Attributes:
        config (RailIDConnectConfig): The client configuration.
        client (httpx.AsyncClient): The async HTTP client to use for requests.
        alter_request (RequestMutator | None): Pre-send hook keyed by operation name.
        max_response_bytes (int): Largest response body accepted from the IDP.
    """

    def __init__(
        self,
        config: RailIDConnectConfig,
        client: httpx.AsyncClient,
        alter_request: RequestMutator | None = None,
        max_response_bytes: int = MAX_RESPONSE_BYTES,
    ) -> None:
        self.config = config
        self.client = client
        self.alter_request = alter_request
        self.max_response_bytes = max_response_bytes

    def _prepare(self, request: OutgoingRequest, operation: str) -> OutgoingRequest:
        if self.alter_request is None:
            return request
        return self.alter_request(request, operation)

    async def _post(self, url: str, request: OutgoingRequest) -> tuple[int, bytes]:
        """
        POSTs the request and reads the body with a size limit.

        Raises:
            httpx.HTTPError: On transport failure.
            OversizedResponseError: If the body exceeds ``max_response_bytes``.
        """
        async with self.client.stream(
            "POST",
            url,
            data=request.data or None,
            headers=request.headers,
            timeout=self.config.http_request_timeout,
        ) as response:
            # DoS check
            content_length = response.headers.get("Content-Length")
            if content_length and content_length.isdigit() and int(content_length) > self.max_response_bytes:
                raise OversizedResponseError(payload=int(content_length))

            content = bytearray()
            async for chunk in response.aiter_bytes():
                content.extend(chunk)
                if len(content) > self.max_response_bytes:
                    raise OversizedResponseError(payload=len(content))

            return response.status_code, bytes(content)

    async def _post_token_endpoint(self, request: OutgoingRequest, operation: str) -> TokenResponse:
        url = self.config.endpoint_token_url
        request = self._prepare(request, operation)

        logger.info(f"POST {url} ({operation})")
        try:
            status_code, content = await self._post(url, request)
        except httpx.HTTPError as e:
            logger.error(f"Token endpoint request failed ({operation}): {e}")
            if operation == REFRESH_TOKEN:
                raise NetworkError("Refresh token failed.", code=REFRESH_TOKEN, payload=str(e)) from e
            raise NetworkError(payload=str(e)) from e
        except OversizedResponseError as e:
            logger.error(f"Token endpoint response too large ({operation})")
            raise InvalidTokenError("Token response too large.", payload=e.payload) from e

        return self.parse_token_response(content, status_code)

    async def exchange_code(self, code: str) -> TokenResponse:
        """
        Exchanges an authorization code for tokens.

        Args:
            code: The authorization code from the callback.

        Returns:
            TokenResponse: The decoded token endpoint response.

        Raises:
            NetworkError: If the token endpoint cannot be reached or times out.
            TokenEndpointError: If the IDP answers with an ``error`` body.
            InvalidTokenError: If the body is oversized or cannot be decoded into a token response.
        """
        request = OutgoingRequest(
            data={
                "code": code,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret.get_secret_value(),
                "redirect_uri": self.config.redirect_uri,
                "grant_type": "authorization_code",
                "scope": self.config.scope,
            },
            headers={"Host": host_header(self.config.endpoint_token_url)},
        )
        return await self._post_token_endpoint(request, GET_AUTHENTICATION_TOKEN)

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """
        Requests new tokens with a refresh token previously issued by the IDP.

        Raises:
            NetworkError: If the token endpoint cannot be reached or times out.
            TokenEndpointError: If the IDP answers with an ``error`` body.
            InvalidTokenError: If the body is oversized or cannot be decoded into a token response.
        """
        request = OutgoingRequest(
            data={
                "refresh_token": refresh_token,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret.get_secret_value(),
                "grant_type": "refresh_token",
            },
            headers={"Host": host_header(self.config.endpoint_token_url)},
        )
        return await self._post_token_endpoint(request, REFRESH_TOKEN)

    async def fetch_userinfo(self, access_token: str) -> Any:
        """
        Exchanges an access token for the user claim.

        The Authorization and Host headers are set after the ``get-userinfo`` hook runs,
        so the hook cannot override them.

        Args:
            access_token: The access token from the token response.

        Returns:
            Any: The decoded JSON body, or None if the body is not JSON.

        Raises:
            ClaimFetchError: If the endpoint cannot be reached, times out, or returns no body,
                or returns an oversized body.
        """
        url = self.config.endpoint_userinfo_url
        request = self._prepare(OutgoingRequest(), GET_USERINFO)
        request.headers["Authorization"] = f"Bearer {access_token}"
        request.headers["Host"] = host_header(url, include_port=True)

        logger.info(f"POST {url} ({GET_USERINFO})")
        try:
            status_code, content = await self._post(url, request)
        except httpx.HTTPError as e:
            logger.error(f"Userinfo request failed: {e}")
            raise ClaimFetchError(payload=str(e)) from e
        except OversizedResponseError as e:
            logger.error("Userinfo response too large")
            raise ClaimFetchError("User claim response too large.", payload=e.payload) from e

        if not content:
            raise ClaimFetchError(payload=status_code)

        try:
            return json.loads(content)
        except ValueError:
            logger.warning("Userinfo response is not valid JSON")
            return None

    @staticmethod
    def parse_token_response(content: bytes, status_code: int = 200) -> TokenResponse:
        """
        Decodes a token endpoint response body.

        The HTTP status is not inspected; OAuth errors are detected from the body.

        Args:
            content: The raw response body.
            status_code: The HTTP status, kept for diagnostics.

        Raises:
            InvalidTokenError: If the body is missing, not a JSON object, or lacks an access token.
            TokenEndpointError: If the body carries an ``error`` field.
        """
        if not content:
            raise InvalidTokenError("Missing token body.", code="missing-token-body", payload=status_code)

        try:
            body = json.loads(content)
        except ValueError as e:
            raise InvalidTokenError(payload=content.decode("utf-8", errors="replace")) from e

        if not isinstance(body, dict):
            raise InvalidTokenError(payload=body)

        if "error" in body:
            error = str(body["error"])
            description = body.get("error_description")
            message = str(description) if description is not None else error
            logger.warning(f"Token endpoint returned error '{error}': {message}")
            raise TokenEndpointError(message, code=error, payload=body)

        try:
            return TokenResponse.model_validate(body)
        except ValidationError as e:
            raise InvalidTokenError(f"Invalid token: {e.error_count()} validation error(s)", payload=body) from e
