import asyncio
import contextlib
import os
import sys
from typing import Any

# Add src to path for running directly
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from anyio import create_task_group
from pydantic import SecretStr

from railid_connect import AuthorizationFlow, LoginForm, MemoryStateStorage, RailIDConnectConfig, RailIDConnectError
from railid_connect.housekeeping import purge_states_periodically


class PrintingSessionStore:
    async def find_or_create_user(self, subject: str, claims: dict[str, Any]) -> str:
        return f"local-user-for-{subject}"

    async def start_session(self, user: Any) -> None:
        print(f">>> Session started for {user}")


async def main() -> None:
    """
    Walks through the Authorization Code Flow against a RailID-style IDP.
    Includes:
    - Login button rendering with a fresh state token
    - Periodic purge of expired state records in a TaskGroup
    - Callback handling with typed errors
    """
    print(">>> Starting Authorization Code Flow Example")

    config = RailIDConnectConfig(
        client_id="my-client",
        client_secret=SecretStr("my-client-secret"),
        scope="openid email profile",
        redirect_uri="https://app.example.com/callback",
        pii_salt=SecretStr("super-secret-salt-for-pii-hashing"),
    )
    storage = MemoryStateStorage()

    async with AuthorizationFlow(config, storage=storage) as flow:
        print(">>> Login button:")
        print(LoginForm(flow).make_login_button("/dashboard"))

        async with create_task_group() as tg:
            tg.start_soon(purge_states_periodically, storage, 60.0)

            # A real callback would carry the state from the button above
            params = {"code": "code-from-idp", "state": "state-from-idp"}
            try:
                identity = await flow.complete_login(params, PrintingSessionStore())
                print(f">>> Redirecting to {identity.redirect_to}")
            except RailIDConnectError as e:
                print(LoginForm.make_error_output(e.code, e.message))

            tg.cancel_scope.cancel()


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())
