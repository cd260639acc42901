"""
surface.py — In-process drawing surface with Leaflet export.

SceneSurface behaves like a map SDK's stateful drawing context: it holds
sources, layers, markers and the current viewport, and it rejects the
same misuse a real SDK would (duplicate ids, a layer whose source is
missing, removing a source a layer still draws, touching a removed map).
TraceRenderer is written so none of those errors ever fire.

The scene can be exported as GeoJSON or as a standalone Leaflet page:

    surface.save_html(Path("trace.html"))
"""

import json
import logging
from itertools import count
from pathlib import Path
from typing import Any, Callable, Optional

from tracemap.core.config import settings
from tracemap.dashboard.renderer import MARKER_STYLE, Bounds, MarkerSpec

logger = logging.getLogger(__name__)

MAP_STYLE = "light"
_TILE_URL = "https://{s}.basemaps.cartocdn.com/light_all/{z}/{x}/{y}{r}.png"
_TILE_ATTRIBUTION = "&copy; OpenStreetMap contributors &copy; CARTO"


class SurfaceError(RuntimeError):
    """Programmer error against the drawing surface."""


class SceneSurface:
    def __init__(
        self,
        center: Optional[tuple[float, float]] = None,
        zoom: Optional[int] = None,
    ) -> None:
        self.center = center or (settings.map_default_lng, settings.map_default_lat)
        self.zoom = settings.map_default_zoom if zoom is None else zoom
        self.style = MAP_STYLE
        self.ready = False
        self.removed = False
        self.sources: dict[str, dict[str, Any]] = {}
        self.layers: dict[str, dict[str, Any]] = {}
        self.markers: dict[int, MarkerSpec] = {}
        self.viewport: Optional[tuple[Bounds, int]] = None
        self._ready_callbacks: list[Callable[[], None]] = []
        self._marker_ids = count(1)

    # ── lifecycle ─────────────────────────────────────────────────────────────

    def on_ready(self, callback: Callable[[], None]) -> None:
        self._check_alive()
        if self.ready:
            callback()
        else:
            self._ready_callbacks.append(callback)

    def mark_ready(self) -> None:
        """Signal that the surface can draw. Later calls are no-ops."""
        if self.ready or self.removed:
            return
        self.ready = True
        callbacks, self._ready_callbacks = self._ready_callbacks, []
        for callback in callbacks:
            callback()

    def remove(self) -> None:
        self._check_alive()
        self.removed = True
        self.sources.clear()
        self.layers.clear()
        self.markers.clear()
        self._ready_callbacks.clear()

    # ── sources & layers ──────────────────────────────────────────────────────

    def add_source(self, source_id: str, data: dict[str, Any]) -> None:
        self._check_drawable()
        if source_id in self.sources:
            raise SurfaceError(f"There is already a source with id {source_id!r}")
        self.sources[source_id] = data

    def remove_source(self, source_id: str) -> None:
        self._check_drawable()
        if source_id not in self.sources:
            raise SurfaceError(f"There is no source with id {source_id!r}")
        users = [lid for lid, layer in self.layers.items() if layer.get("source") == source_id]
        if users:
            raise SurfaceError(f"Source {source_id!r} is still used by layer(s) {users}")
        del self.sources[source_id]

    def add_layer(self, layer: dict[str, Any]) -> None:
        self._check_drawable()
        layer_id = layer["id"]
        if layer_id in self.layers:
            raise SurfaceError(f"Layer with id {layer_id!r} already exists")
        if layer.get("source") not in self.sources:
            raise SurfaceError(f"Layer {layer_id!r} references missing source {layer.get('source')!r}")
        self.layers[layer_id] = layer

    def remove_layer(self, layer_id: str) -> None:
        self._check_drawable()
        if layer_id not in self.layers:
            raise SurfaceError(f"There is no layer with id {layer_id!r}")
        del self.layers[layer_id]

    # ── markers & viewport ────────────────────────────────────────────────────

    def add_marker(self, marker: MarkerSpec) -> int:
        self._check_drawable()
        handle = next(self._marker_ids)
        self.markers[handle] = marker
        return handle

    def remove_marker(self, handle: int) -> None:
        self._check_drawable()
        if self.markers.pop(handle, None) is None:
            raise SurfaceError(f"Unknown marker {handle!r}")

    def fit_bounds(self, bounds: Bounds, padding: int) -> None:
        self._check_drawable()
        self.viewport = (bounds, padding)

    # ── export ────────────────────────────────────────────────────────────────

    def to_geojson(self) -> dict[str, Any]:
        """Route sources and marker points as one FeatureCollection."""
        features = [dict(source) for source in self.sources.values()]
        for marker in self.markers.values():
            features.append({
                "type": "Feature",
                "properties": {"timestamp": marker.timestamp, "speed_kmh": marker.speed_kmh},
                "geometry": {"type": "Point", "coordinates": [marker.lng, marker.lat]},
            })
        return {"type": "FeatureCollection", "features": features}

    def to_html(self, title: str = "Location Trace") -> str:
        """Self-contained Leaflet page showing the current scene."""
        scene = {
            "center": [self.center[1], self.center[0]],
            "zoom": self.zoom,
            "routes": [
                {
                    "coords": [[lat, lng] for lng, lat in self.sources[layer["source"]]["geometry"]["coordinates"]],
                    "color": layer["paint"]["line-color"],
                    "weight": layer["paint"]["line-width"],
                    "opacity": layer["paint"]["line-opacity"],
                }
                for layer in self.layers.values()
            ],
            "markers": [
                {"lat": m.lat, "lng": m.lng, "popup": m.popup_html}
                for m in self.markers.values()
            ],
            "marker_style": MARKER_STYLE,
            "bounds": None,
            "padding": 0,
        }
        if self.viewport is not None:
            bounds, padding = self.viewport
            scene["bounds"] = [[bounds.south, bounds.west], [bounds.north, bounds.east]]
            scene["padding"] = padding

        # "</" must not appear raw inside the <script> block
        scene_json = json.dumps(scene).replace("</", "<\\/")
        return (
            _HTML_TEMPLATE
            .replace("__TITLE__", title.replace("<", "&lt;"))
            .replace("__TILE_URL__", _TILE_URL)
            .replace("__TILE_ATTRIBUTION__", _TILE_ATTRIBUTION)
            .replace("__SCENE__", scene_json)
        )

    def save_html(self, path: Path, title: str = "Location Trace") -> Path:
        path.write_text(self.to_html(title), encoding="utf-8")
        logger.info("Wrote map to %s", path)
        return path

    # ── guards ────────────────────────────────────────────────────────────────

    def _check_alive(self) -> None:
        if self.removed:
            raise SurfaceError("Surface has been removed")

    def _check_drawable(self) -> None:
        self._check_alive()
        if not self.ready:
            raise SurfaceError("Surface is not ready yet")


_HTML_TEMPLATE = r"""<!doctype html>
<html>
<head>
<meta charset="utf-8">
<title>__TITLE__</title>
<meta name="viewport" content="width=device-width, initial-scale=1">
<link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css">
<script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
<style>
  html, body { height:100%; margin:0; }
  #map { width:100%; height:100%; }
</style>
</head>
<body>
<div id="map"></div>
<script>
  var SCENE = __SCENE__;
  var map = L.map('map', { attributionControl: true }).setView(SCENE.center, SCENE.zoom);
  L.tileLayer('__TILE_URL__', { attribution: '__TILE_ATTRIBUTION__', subdomains: 'abcd', maxZoom: 19 }).addTo(map);

  SCENE.routes.forEach(function (route) {
    L.polyline(route.coords, {
      color: route.color, weight: route.weight, opacity: route.opacity,
      lineJoin: 'round', lineCap: 'round'
    }).addTo(map);
  });

  var style = SCENE.marker_style;
  SCENE.markers.forEach(function (m) {
    L.circleMarker([m.lat, m.lng], {
      radius: style.radius_px, fillColor: style.fill_color, fillOpacity: 1,
      color: style.border_color, weight: style.border_px
    }).bindPopup(m.popup, { closeButton: false, offset: [0, -5] }).addTo(map);
  });

  if (SCENE.bounds) {
    map.fitBounds(SCENE.bounds, { padding: [SCENE.padding, SCENE.padding] });
  }
</script>
</body>
</html>
"""
