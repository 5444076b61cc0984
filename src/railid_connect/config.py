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
Configuration for the railid-connect package.
"""

import os
from collections.abc import Mapping
from typing import Any

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

ENV_PREFIX = "RIDC_"


class RailIDConnectConfig(BaseSettings):
    """
    Client configuration for the Authorization Code Flow.

    Values set through ``RIDC_*`` environment variables take precedence over values
    passed to the constructor (usually loaded from persisted settings). The precedence
    is resolved once, at construction time; the resulting object is frozen.

    Attributes:
        client_id (str): The OIDC Client ID issued by the IDP.
        client_secret (SecretStr): The OIDC Client secret.
        scope (str): Space-separated scopes to request.
        redirect_uri (str): The callback URI registered with the IDP.
        endpoint_login_url (str): The IDP authorization endpoint.
        endpoint_token_url (str): The IDP token endpoint.
        endpoint_userinfo_url (str): The IDP userinfo endpoint.
        endpoint_logout_url (str | None): The IDP end-session endpoint.
        state_time_limit (int): Lifetime of a state token in seconds.
        http_request_timeout (float): Timeout in seconds for every IDP request.
        pii_salt (SecretStr): Salt for anonymizing subjects in logs/traces.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )

    unsafe_local_dev: bool = False

    client_id: str
    client_secret: SecretStr
    scope: str = "openid"
    redirect_uri: str

    endpoint_login_url: str = "https://railid.ru/oauth/authorize"
    endpoint_token_url: str = "https://railid.ru/oauth/token"
    endpoint_userinfo_url: str = "https://railid.ru/oauth/me"
    endpoint_logout_url: str | None = "https://railid.ru/oauth/destroy"

    state_time_limit: int = Field(default=180, gt=0, description="State token lifetime in seconds.")
    http_request_timeout: float = Field(default=5.0, gt=0, description="Timeout in seconds for IDP requests.")
    pii_salt: SecretStr = SecretStr("railid-connect-unsafe-default-salt")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment first: it overrides persisted values handed in as kwargs.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @model_validator(mode="after")
    def validate_https(self) -> "RailIDConnectConfig":
        """
        Ensures that every IDP endpoint uses HTTPS, unless strictly opted out for local dev.
        """
        if self.unsafe_local_dev:
            return self

        endpoints = {
            "endpoint_login_url": self.endpoint_login_url,
            "endpoint_token_url": self.endpoint_token_url,
            "endpoint_userinfo_url": self.endpoint_userinfo_url,
            "endpoint_logout_url": self.endpoint_logout_url,
        }
        for name, url in endpoints.items():
            if url and url.lower().startswith("http://"):
                raise ValueError(
                    f"HTTPS is required for '{name}'. Set 'unsafe_local_dev=True' only for local testing."
                )
        return self

    @classmethod
    def environment_overrides(cls) -> set[str]:
        """
        Returns the names of fields currently supplied by environment variables.
        """
        present = {key.lower() for key in os.environ}
        prefix = ENV_PREFIX.lower()
        return {name for name in cls.model_fields if f"{prefix}{name}" in present}


def load_config(persisted: Mapping[str, Any] | None = None) -> RailIDConnectConfig:
    """
    Builds the client configuration from persisted settings and the environment.

    Args:
        persisted: Values loaded from the host application's settings storage.
            Unknown keys are ignored.

    Returns:
        RailIDConnectConfig: The frozen configuration, environment values winning.
    """
    return RailIDConnectConfig(**dict(persisted or {}))


def persistable_values(config: RailIDConnectConfig) -> dict[str, Any]:
    """
    Returns the configuration values that may be written back to persisted settings.

    Fields overridden by the environment are left out so that they are never
    copied into storage.
    """
    values = config.model_dump(exclude=config.environment_overrides())
    return {key: value.get_secret_value() if isinstance(value, SecretStr) else value for key, value in values.items()}
