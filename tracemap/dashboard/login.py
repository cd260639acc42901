"""
login.py — The login surface.

Shows "Invalid password" for a wrong secret and a separate "try again
later" message when the server can't answer. Either message clears
itself after the banner delay. Submissions made while one is already in
flight are ignored.
"""

import logging
from typing import Optional

from tracemap.dashboard.banner import Banner
from tracemap.dashboard.session import LoginResult, SessionGate

logger = logging.getLogger(__name__)

INVALID_PASSWORD_MESSAGE = "Invalid password"
SERVER_ERROR_MESSAGE = "Server error, please try again later"


class LoginForm:
    def __init__(self, gate: SessionGate, banner: Optional[Banner] = None) -> None:
        self.gate = gate
        self.error = banner or Banner()
        self.submitting = False

    async def submit(self, password: str) -> Optional[LoginResult]:
        """Returns the login result, or None when a submit is already pending."""
        if self.submitting:
            logger.debug("Ignoring login submit while another is in flight")
            return None

        self.submitting = True
        try:
            result = await self.gate.login(password)
        finally:
            self.submitting = False

        if result is LoginResult.SUCCESS:
            self.error.clear()
        elif result is LoginResult.INVALID_CREDENTIALS:
            self.error.show(INVALID_PASSWORD_MESSAGE)
        else:
            self.error.show(SERVER_ERROR_MESSAGE)
        return result
