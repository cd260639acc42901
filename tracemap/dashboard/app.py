"""
app.py — Dashboard runtime: navigation, login and the protected view.

DashboardApp wires the pieces together around one httpx.AsyncClient
(which carries the session cookie):

    navigate(path) ──▶ SessionGate.check_session()
                          ├─ INVALID ─▶ login surface; dashboard torn down
                          └─ VALID ───▶ dashboard (surface + renderer +
                                        controller + user directory)

The dashboard objects exist only while the session is valid. They are
built after a successful check and dropped on logout or on any failed
check, so nothing protected is fetched or drawn for a logged-out client.

Usage:
    async with httpx.AsyncClient(base_url=settings.api_base_url) as client:
        app = DashboardApp(client)
        if await app.navigate("/") is Route.LOGIN:
            await app.submit_login(password)
        await app.controller.select_user(user_id)
        app.surface.save_html(Path("trace.html"))
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

import httpx

from tracemap.dashboard.api_store import ApiLocationStore
from tracemap.dashboard.controller import SelectionController
from tracemap.dashboard.login import LoginForm
from tracemap.dashboard.renderer import TraceRenderer
from tracemap.dashboard.session import LoginResult, Session, SessionGate, SessionStatus
from tracemap.dashboard.surface import SceneSurface
from tracemap.models.location import UserOption
from tracemap.services.trace_query import QueryFailed, TraceQuery

logger = logging.getLogger(__name__)

USERS_FAILED_MESSAGE = "Failed to load user IDs"


class Route(str, Enum):
    LOGIN = "/login"
    DASHBOARD = "/"


class DashboardApp:
    def __init__(
        self,
        client: httpx.AsyncClient,
        surface_factory: Callable[[], SceneSurface] = SceneSurface,
        query_timeout: Optional[float] = None,
    ) -> None:
        self.client = client
        self.gate = SessionGate(client)
        self.login_form = LoginForm(self.gate)
        self.surface_factory = surface_factory
        self.query_timeout = query_timeout

        self.route = Route.LOGIN
        self.surface: Optional[SceneSurface] = None
        self.renderer: Optional[TraceRenderer] = None
        self.controller: Optional[SelectionController] = None
        self.users: list[UserOption] = []
        self.users_error: Optional[str] = None

    @property
    def session(self) -> Session:
        return self.gate.session

    async def navigate(self, path: str = Route.DASHBOARD.value) -> Route:
        """Resolve a navigation to *path*. Every call re-checks the session."""
        try:
            status = await self.gate.check_session()
        except Exception:
            self._close_dashboard()
            self.route = Route.LOGIN
            raise
        if status is SessionStatus.VALID:
            if self.controller is None:
                await self._open_dashboard()
            self.route = Route.DASHBOARD
        else:
            self._close_dashboard()
            self.route = Route.LOGIN

        if path != self.route.value:
            logger.debug("Navigation to %s redirected to %s", path, self.route.value)
        return self.route

    async def submit_login(self, password: str) -> Optional[LoginResult]:
        result = await self.login_form.submit(password)
        if result is LoginResult.SUCCESS:
            await self.navigate(Route.DASHBOARD.value)
        return result

    async def logout(self) -> None:
        # Tear down first: nothing may draw once the session is gone
        self._close_dashboard()
        await self.gate.logout()
        self.route = Route.LOGIN

    # ── dashboard lifecycle ───────────────────────────────────────────────────

    async def _open_dashboard(self) -> None:
        self.session.require()
        surface = self.surface_factory()
        renderer = TraceRenderer(self.session)
        renderer.attach(surface)
        query = TraceQuery(ApiLocationStore(self.client), timeout=self.query_timeout)

        self.surface = surface
        self.renderer = renderer
        controller = self.controller = SelectionController(query, renderer, self.session)

        # SceneSurface has no tiles to fetch; its load event fires on the next loop turn
        asyncio.get_running_loop().call_soon(surface.mark_ready)

        try:
            users, error = await query.list_users(), None
        except QueryFailed:
            users, error = [], USERS_FAILED_MESSAGE
        if self.controller is controller:
            self.users, self.users_error = users, error

    def _close_dashboard(self) -> None:
        if self.controller is not None:
            self.controller.close()
        if self.renderer is not None:
            self.renderer.detach()
        self.controller = None
        self.renderer = None
        self.surface = None
        self.users = []
        self.users_error = None
