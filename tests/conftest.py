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
import os
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import patch

import httpx
import pytest
from pydantic import SecretStr

from railid_connect.config import RailIDConnectConfig

TOKEN_URL = "https://idp.example.com/oauth/token"
USERINFO_URL = "https://idp.example.com:8443/oauth/me"


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def encode_id_token(claims: Any, header: dict[str, Any] | None = None) -> str:
    """Builds a compact id_token with a dummy signature segment."""
    header = header or {"alg": "RS256", "typ": "JWT"}
    return ".".join(
        [
            b64url(json.dumps(header).encode("utf-8")),
            b64url(json.dumps(claims).encode("utf-8")),
            "c2lnbmF0dXJl",
        ]
    )


class FakeIdP:
    """
    In-process IDP for httpx.MockTransport.

    Each endpoint answer is a (status, body) pair or an exception to raise.
    A dict/list body is sent as JSON, bytes as-is.
    """

    def __init__(self) -> None:
        self.token: tuple[int, Any] | Exception = (
            200,
            {
                "access_token": "A1",
                "id_token": encode_id_token({"sub": "u1"}),
                "token_type": "Bearer",
                "refresh_token": "R1",
                "expires_in": 3600,
            },
        )
        self.userinfo: tuple[int, Any] | Exception = (200, {"sub": "u1", "email": "a@b.com"})
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/oauth/token":
            answer = self.token
        elif request.url.path == "/oauth/me":
            answer = self.userinfo
        else:
            return httpx.Response(404)

        if isinstance(answer, Exception):
            raise answer

        status, body = answer
        if isinstance(body, bytes):
            return httpx.Response(status, content=body)
        return httpx.Response(status, json=body)

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


@pytest.fixture(autouse=True)
def clean_environment() -> Generator[None, None, None]:
    """Keeps RIDC_* variables of the host shell out of the tests."""
    env = {k: v for k, v in os.environ.items() if not k.upper().startswith("RIDC_")}
    with patch.dict(os.environ, env, clear=True):
        yield


@pytest.fixture
def config() -> RailIDConnectConfig:
    return RailIDConnectConfig(
        client_id="test-client",
        client_secret=SecretStr("test-secret"),
        scope="openid email profile",
        redirect_uri="https://app.example.com/callback",
        endpoint_login_url="https://idp.example.com/oauth/authorize",
        endpoint_token_url=TOKEN_URL,
        endpoint_userinfo_url=USERINFO_URL,
        endpoint_logout_url="https://idp.example.com/oauth/destroy",
        pii_salt=SecretStr("test-salt"),
    )


@pytest.fixture
def idp() -> FakeIdP:
    return FakeIdP()


@pytest.fixture
def http_client(idp: FakeIdP) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(idp.handler))


@pytest.fixture
def id_token() -> Callable[..., str]:
    return encode_id_token


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
