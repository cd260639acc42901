"""banner.py — Transient, auto-dismissing message slot (login errors, query failures)."""

import asyncio
from typing import Optional

from tracemap.core.config import settings


class Banner:
    def __init__(self, dismiss_after: Optional[float] = None) -> None:
        self.dismiss_after = settings.error_banner_seconds if dismiss_after is None else dismiss_after
        self.message: Optional[str] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    def show(self, message: str) -> None:
        """Show *message*; it clears itself after dismiss_after seconds."""
        self._cancel_timer()
        self.message = message
        self._timer = asyncio.get_running_loop().call_later(self.dismiss_after, self.clear)

    def clear(self) -> None:
        self._cancel_timer()
        self.message = None

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
