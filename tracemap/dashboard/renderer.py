"""
renderer.py — Keeps a drawing surface in step with the current trace.

TraceRenderer is the only code that touches the surface. It tracks what
it has put there as a small state machine:

    EmptyRender ──update(points)──▶ RoutedRender ──update([]) / detach──▶ EmptyRender
                                        │  ▲
                                        └──┘ update(points): tear down, then rebuild

Every update tears the previous trace down completely (markers, then the
route layer, then its source) before anything new is added, so at most
one route line and one marker set exist at a time. Sources are always
added before the layer that draws them and removed after it.

Surfaces are duck-typed (SceneSurface is the in-process one):

    on_ready(callback)              callback runs once the surface can draw
    add_source(id, geojson)         remove_source(id)
    add_layer(layer_spec)           remove_layer(id)
    add_marker(MarkerSpec) -> handle    remove_marker(handle)
    fit_bounds(Bounds, padding)
    remove()

Updates that arrive before the surface is ready are held; only the most
recent one is applied, once, when readiness is signalled.
"""

import html
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence, Union

from tracemap.core.config import settings
from tracemap.dashboard.session import Session
from tracemap.models.location import LocationPoint

logger = logging.getLogger(__name__)

ROUTE_SOURCE_ID = "route"
ROUTE_LAYER_ID = "route-line"

ROUTE_COLOR = "#3b82f6"

ROUTE_LAYER_STYLE = {
    "type": "line",
    "layout": {"line-join": "round", "line-cap": "round"},
    "paint": {"line-color": ROUTE_COLOR, "line-width": 2, "line-opacity": 0.8},
}

MARKER_STYLE = {
    "radius_px": 4,
    "fill_color": ROUTE_COLOR,
    "border_color": "#ffffff",
    "border_px": 2,
}


# ── Geometry ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Bounds:
    """Axis-aligned lng/lat box."""

    west: float
    south: float
    east: float
    north: float

    @classmethod
    def around(cls, points: Iterable[LocationPoint]) -> "Bounds":
        """Smallest box containing every point. *points* must not be empty."""
        lngs, lats = zip(*(p.coordinates for p in points))
        return cls(west=min(lngs), south=min(lats), east=max(lngs), north=max(lats))

    def contains(self, lng: float, lat: float) -> bool:
        return self.west <= lng <= self.east and self.south <= lat <= self.north


def route_geojson(points: Sequence[LocationPoint]) -> dict[str, Any]:
    """LineString through *points* in the order given."""
    return {
        "type": "Feature",
        "properties": {},
        "geometry": {
            "type": "LineString",
            "coordinates": [list(p.coordinates) for p in points],
        },
    }


# ── Markers ───────────────────────────────────────────────────────────────────

def format_local_time(timestamp: str) -> str:
    """Local wall-clock time; the raw timestamp when it can't be converted."""
    try:
        moment = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        return moment.astimezone().strftime("%Y-%m-%d %H:%M:%S")
    except (ValueError, OverflowError):
        # e.g. 0001-01-01T00:00:00+05:00 has no representable local time
        return timestamp


def popup_html(point: LocationPoint) -> str:
    return (
        '<div style="font-family: system-ui, sans-serif; padding: 8px; font-size: 12px;">'
        f"<p>{html.escape(format_local_time(point.timestamp))}</p>"
        f"<p>{point.speed_kmh:.1f} km/h</p>"
        "</div>"
    )


@dataclass(frozen=True)
class MarkerSpec:
    """One dot marker plus its popup payload."""

    lng: float
    lat: float
    timestamp: str
    speed_kmh: float
    popup_html: str

    @classmethod
    def for_point(cls, point: LocationPoint) -> "MarkerSpec":
        return cls(
            lng=point.longitude,
            lat=point.latitude,
            timestamp=point.timestamp,
            speed_kmh=point.speed_kmh,
            popup_html=popup_html(point),
        )


# ── Render state ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EmptyRender:
    """Surface in its base state: no route, no markers."""


@dataclass(frozen=True)
class RoutedRender:
    source_id: str
    layer_id: str
    markers: tuple[Any, ...]     # surface marker handles
    bounds: Bounds


RenderState = Union[EmptyRender, RoutedRender]


class TraceRenderer:
    """Owns one drawing surface at a time and everything drawn on it."""

    def __init__(self, session: Optional[Session] = None, padding: Optional[int] = None) -> None:
        self.session = session
        self.padding = settings.map_padding_px if padding is None else padding
        self.state: RenderState = EmptyRender()
        self._surface = None
        self._ready = False
        self._pending: Optional[tuple[LocationPoint, ...]] = None

    @property
    def surface(self):
        return self._surface

    @property
    def ready(self) -> bool:
        return self._ready

    def attach(self, surface) -> None:
        """Take ownership of *surface*. Call once per surface lifetime."""
        if self._surface is not None:
            raise RuntimeError("TraceRenderer is already attached to a surface")
        self._surface = surface
        self._ready = False
        self.state = EmptyRender()
        surface.on_ready(lambda: self._on_ready(surface))

    def detach(self) -> None:
        """Tear down the current trace and release the surface."""
        surface = self._surface
        if surface is None:
            return
        if self._ready:
            self._teardown()
        self._surface = None
        self._ready = False
        self._pending = None
        self.state = EmptyRender()
        surface.remove()

    def update(self, points: Iterable[LocationPoint]) -> None:
        """Replace whatever is drawn with *points*. An empty sequence clears the surface."""
        points = tuple(points)
        if points and self.session is not None:
            self.session.require()

        if not self._ready:
            # Latest wins; earlier queued updates are dropped
            self._pending = points
            return
        self._apply(points)

    # ── internals ─────────────────────────────────────────────────────────────

    def _on_ready(self, surface) -> None:
        if surface is not self._surface:
            return  # readiness from a surface we've since detached
        self._ready = True
        pending, self._pending = self._pending, None
        if pending is not None:
            self._apply(pending)

    def _apply(self, points: tuple[LocationPoint, ...]) -> None:
        self._teardown()
        if not points:
            logger.debug("Surface cleared")
            return

        # Everything that can fail is built before the surface is touched
        geojson = route_geojson(points)
        specs = [MarkerSpec.for_point(p) for p in points]
        bounds = Bounds.around(points)

        surface = self._surface
        surface.add_source(ROUTE_SOURCE_ID, geojson)
        surface.add_layer({"id": ROUTE_LAYER_ID, "source": ROUTE_SOURCE_ID, **ROUTE_LAYER_STYLE})
        markers = tuple(surface.add_marker(spec) for spec in specs)

        surface.fit_bounds(bounds, self.padding)
        self.state = RoutedRender(
            source_id=ROUTE_SOURCE_ID,
            layer_id=ROUTE_LAYER_ID,
            markers=markers,
            bounds=bounds,
        )
        logger.debug("Rendered route with %d point(s)", len(points))

    def _teardown(self) -> None:
        state = self.state
        if isinstance(state, RoutedRender):
            surface = self._surface
            for handle in state.markers:
                surface.remove_marker(handle)
            surface.remove_layer(state.layer_id)
            surface.remove_source(state.source_id)
        self.state = EmptyRender()
