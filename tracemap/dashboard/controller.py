"""
controller.py — Selection state and the "last selection wins" rule.

SelectionController owns the view mode (by user / by filter), the active
Selection, the loading flag and the current trace. Each selection change
dispatches at most one TraceQuery read and tags it with a generation
number. When a read resolves, its result is used only if no newer
selection (or mode change) has happened since; otherwise it is dropped
without comment. Queries are never cancelled, only ignored.

    select_user("abc")  ──gen 1──▶ fetch ...........................▶ (stale, dropped)
    select_user("def")  ──gen 2──▶ fetch ......▶ applied
"""

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from tracemap.dashboard.banner import Banner
from tracemap.dashboard.renderer import TraceRenderer
from tracemap.dashboard.session import Session
from tracemap.models.location import FilterCriteria
from tracemap.models.selection import (
    FilterSelection,
    Mode,
    Selection,
    UserSelection,
    empty_selection,
)
from tracemap.services.trace_query import EMPTY_TRACE, QueryFailed, Trace, TraceQuery

logger = logging.getLogger(__name__)

QUERY_FAILED_MESSAGE = "Failed to load location data"


class ViewStatus(str, Enum):
    NO_SELECTION = "no-selection"
    LOADING = "loading"
    NO_DATA = "no-data"
    READY = "ready"


STATUS_MESSAGES = {
    ViewStatus.NO_SELECTION: "Select a user to view their location traces",
    ViewStatus.LOADING: "Loading location data...",
    ViewStatus.NO_DATA: "No location data found for this user",
}


class SelectionController:
    def __init__(
        self,
        query: TraceQuery,
        renderer: TraceRenderer,
        session: Session,
        banner: Optional[Banner] = None,
        on_change: Optional[Callable[["SelectionController"], None]] = None,
    ) -> None:
        self.query = query
        self.renderer = renderer
        self.session = session
        self.error = banner or Banner()
        self.on_change = on_change

        self.mode = Mode.USER
        self.selection: Selection = UserSelection()
        self.trace: Trace = EMPTY_TRACE
        self.loading = False
        self._generation = 0

    # ── read-only view ────────────────────────────────────────────────────────

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def status(self) -> ViewStatus:
        if self.loading:
            return ViewStatus.LOADING
        if len(self.trace):
            return ViewStatus.READY
        if self.selection.is_empty():
            return ViewStatus.NO_SELECTION
        return ViewStatus.NO_DATA

    @property
    def message(self) -> Optional[str]:
        return STATUS_MESSAGES.get(self.status)

    @property
    def title(self) -> Optional[str]:
        if self.status is not ViewStatus.READY:
            return None
        if isinstance(self.selection, UserSelection):
            return f"Location Trace for {self.trace.display_name}"
        return "Location Traces for Selected Filters"

    @property
    def point_count_label(self) -> str:
        return f"{len(self.trace)} data points"

    # ── transitions ───────────────────────────────────────────────────────────

    def set_mode(self, mode: Union[Mode, str]) -> None:
        """Switch mode: clears the selection and the map, issues no query."""
        mode = Mode(mode)
        self._reset(empty_selection(mode))
        logger.debug("Mode set to %s", mode.value)

    async def select_user(self, user_id: Optional[str]) -> None:
        """Show *user_id*'s trace. An empty id clears the selection."""
        selection = UserSelection(user_id or None)
        if selection.is_empty():
            self._reset(selection)
            return
        await self._dispatch(selection, lambda: self.query.fetch_by_user(selection.user_id))

    async def select_filter(self, criteria: Union[FilterCriteria, Mapping[str, Any]]) -> None:
        """
        Show the aggregate trace for *criteria*.

        No criteria set → no query; the map is cleared immediately.
        Unknown filter values raise pydantic.ValidationError before
        any state changes.
        """
        if not isinstance(criteria, FilterCriteria):
            criteria = FilterCriteria(**criteria)
        selection = FilterSelection(criteria)
        if selection.is_empty():
            self._reset(selection)
            return
        await self._dispatch(selection, lambda: self.query.fetch_by_filter(criteria))

    def close(self) -> None:
        """Invalidate any in-flight query (used when the dashboard is torn down)."""
        self._generation += 1
        self.loading = False
        self.error.clear()

    # ── internals ─────────────────────────────────────────────────────────────

    def _reset(self, selection: Selection) -> None:
        self._generation += 1
        self.mode = selection.mode
        self.selection = selection
        self.loading = False
        self.error.clear()
        self._show(EMPTY_TRACE)

    async def _dispatch(self, selection: Selection, fetch: Callable[[], Awaitable[Trace]]) -> None:
        self.session.require()

        self._generation += 1
        generation = self._generation
        self.mode = selection.mode
        self.selection = selection
        self.loading = True
        self.error.clear()
        self._notify()

        try:
            trace = await fetch()
        except QueryFailed:
            if not self._is_current(generation):
                return
            self.loading = False
            self._show(EMPTY_TRACE)
            self.error.show(QUERY_FAILED_MESSAGE)
            return
        except Exception:
            # Not a query failure, but the view must not stay loading
            if self._is_current(generation):
                self.loading = False
                self._show(EMPTY_TRACE)
            raise

        if not self._is_current(generation):
            return
        self.loading = False
        self._show(trace)

    def _is_current(self, generation: int) -> bool:
        if generation != self._generation:
            logger.debug("Discarding stale result (generation %d, current %d)", generation, self._generation)
            return False
        if not self.session.authenticated:
            logger.debug("Discarding result: session ended while the query was in flight")
            return False
        return True

    def _show(self, trace: Trace) -> None:
        self.trace = trace
        self.renderer.update(trace.points)
        self._notify()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self)
