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
LoginForm component rendering the login button and error output.
"""

from html import escape

from railid_connect.flow import AuthorizationFlow

DEFAULT_BUTTON_TEXT = "Login with RailID"


class LoginForm:
    """
    Renders HTML fragments for the host application's login page.
    """

    def __init__(self, flow: AuthorizationFlow) -> None:
        self.flow = flow

    def button_text(self, text: str = DEFAULT_BUTTON_TEXT) -> str:
        """Returns the button label after the ``login_button_text`` hook."""
        hook = self.flow.hooks.login_button_text
        return hook(text) if hook is not None else text

    def make_login_button(self, redirect_to: str, button_text: str | None = None) -> str:
        """
        Renders a login link to a fresh authorization URL.

        Each call issues a new state token.
        """
        text = escape(self.button_text(button_text or DEFAULT_BUTTON_TEXT))
        href = escape(self.flow.build_authorization_url(redirect_to), quote=True)
        return (
            '<div class="railid-connect-login-button" style="margin: 1em 0; text-align: center;">\n'
            f'\t<a class="button button-large" href="{href}">{text}</a>\n'
            "</div>"
        )

    @staticmethod
    def make_error_output(error_code: str, error_message: str) -> str:
        """Renders a login error box; both values are escaped."""
        return (
            '<div id="login_error">\n'
            f"\t<strong>ERROR ({escape(error_code)}): </strong>\n"
            f"\t{escape(error_message)}\n"
            "</div>"
        )
