"""
test_renderer.py — TraceRenderer driving an in-process SceneSurface.

SceneSurface raises SurfaceError on the misuse a map SDK would reject,
so any test here that renders without error also proves ordering.
"""

import pytest

from tracemap.dashboard.renderer import (
    ROUTE_LAYER_ID,
    ROUTE_SOURCE_ID,
    Bounds,
    EmptyRender,
    MarkerSpec,
    RoutedRender,
    TraceRenderer,
    format_local_time,
)
from tracemap.dashboard.session import NotAuthenticated, Session
from tracemap.dashboard.surface import SceneSurface, SurfaceError
from tracemap.models.location import LocationPoint


def _point(lat, lng, minute=0, speed=0.0):
    return LocationPoint(
        latitude=lat,
        longitude=lng,
        timestamp=f"2025-03-14T09:{minute:02d}:00+00:00",
        speed_kmh=speed,
        user_id="abc123",
    )


LONDON = [
    _point(51.5074, -0.1278, 0, 0.0),
    _point(51.5101, -0.1340, 5, 22.5),
    _point(51.5080, -0.1290, 10, 14.25),
]
PARIS = [_point(48.8566, 2.3522, 2, 4.0), _point(48.8570, 2.3530, 3, 5.5)]


@pytest.fixture()
def session():
    s = Session()
    s._set(True)
    return s


@pytest.fixture()
def surface():
    return SceneSurface()


@pytest.fixture()
def renderer(session, surface):
    r = TraceRenderer(session=session, padding=50)
    r.attach(surface)
    surface.mark_ready()
    return r


class TestUpdate:
    def test_empty_update_leaves_base_state(self, renderer, surface):
        renderer.update([])
        assert surface.sources == {}
        assert surface.layers == {}
        assert surface.markers == {}
        assert isinstance(renderer.state, EmptyRender)

    def test_route_and_markers(self, renderer, surface):
        renderer.update(LONDON)

        assert list(surface.layers) == [ROUTE_LAYER_ID]
        assert surface.layers[ROUTE_LAYER_ID]["source"] == ROUTE_SOURCE_ID
        assert len(surface.markers) == 3
        assert isinstance(renderer.state, RoutedRender)

    def test_coordinates_are_lng_lat_in_order(self, renderer, surface):
        renderer.update(LONDON)
        coords = surface.sources[ROUTE_SOURCE_ID]["geometry"]["coordinates"]
        assert coords == [[-0.1278, 51.5074], [-0.1340, 51.5101], [-0.1290, 51.5080]]

    def test_second_update_replaces_first(self, renderer, surface):
        renderer.update(LONDON)
        renderer.update(PARIS)

        assert len(surface.layers) == 1
        assert len(surface.sources) == 1
        assert len(surface.markers) == 2
        assert {(m.lng, m.lat) for m in surface.markers.values()} == {(2.3522, 48.8566), (2.3530, 48.8570)}

    def test_update_then_clear(self, renderer, surface):
        renderer.update(LONDON)
        renderer.update([])
        assert surface.sources == {} and surface.layers == {} and surface.markers == {}

    def test_viewport_frames_all_points_with_padding(self, renderer, surface):
        renderer.update(LONDON)
        bounds, padding = surface.viewport

        assert padding == 50
        assert bounds == Bounds(west=-0.1340, south=51.5074, east=-0.1278, north=51.5101)
        assert all(bounds.contains(*p.coordinates) for p in LONDON)

    def test_single_point_bounds_are_degenerate(self, renderer, surface):
        renderer.update(LONDON[:1])
        bounds, _ = surface.viewport
        assert bounds.west == bounds.east and bounds.south == bounds.north

    def test_marker_payload(self, renderer, surface):
        renderer.update(LONDON)
        markers = sorted(surface.markers.values(), key=lambda m: m.timestamp)
        assert markers[1].speed_kmh == 22.5
        assert "22.5 km/h" in markers[1].popup_html
        assert markers[2].timestamp == "2025-03-14T09:10:00+00:00"


class TestReadiness:
    def test_updates_before_ready_apply_latest_once(self, session):
        surface = SceneSurface()
        renderer = TraceRenderer(session=session)
        renderer.attach(surface)

        renderer.update(LONDON)
        renderer.update(PARIS)
        assert surface.markers == {}

        surface.mark_ready()
        assert len(surface.markers) == 2
        assert len(surface.layers) == 1

        # A second readiness signal must not replay anything
        surface.mark_ready()
        assert len(surface.markers) == 2

    def test_ready_with_nothing_queued_draws_nothing(self, session):
        surface = SceneSurface()
        TraceRenderer(session=session).attach(surface)
        surface.mark_ready()
        assert surface.layers == {}

    def test_readiness_from_detached_surface_is_ignored(self, session):
        old, new = SceneSurface(), SceneSurface()
        renderer = TraceRenderer(session=session)
        renderer.attach(old)
        renderer.update(LONDON)
        renderer.detach()

        renderer.attach(new)
        new.mark_ready()
        renderer.update(PARIS)

        # old was removed; its late readiness changes nothing
        old.mark_ready()
        assert len(new.markers) == 2
        assert renderer.ready


class TestExtremeTimestamps:
    EDGE = LocationPoint(
        latitude=51.5, longitude=-0.12, timestamp="0001-01-01T00:00:00+05:00", user_id="abc123"
    )

    def test_unconvertible_time_falls_back_to_raw_timestamp(self):
        assert format_local_time(self.EDGE.timestamp) == "0001-01-01T00:00:00+05:00"

    def test_edge_point_renders_and_next_update_still_works(self, renderer, surface):
        renderer.update([self.EDGE])
        assert len(surface.markers) == 1
        assert isinstance(renderer.state, RoutedRender)

        renderer.update(LONDON)
        assert len(surface.sources) == 1
        assert len(surface.layers) == 1
        assert len(surface.markers) == 3

    def test_failed_marker_build_leaves_surface_untouched(self, renderer, surface, monkeypatch):
        renderer.update(LONDON)

        def broken(point):
            raise ValueError("bad marker")

        monkeypatch.setattr(MarkerSpec, "for_point", staticmethod(broken))
        with pytest.raises(ValueError):
            renderer.update(PARIS)
        assert surface.sources == {} and surface.layers == {} and surface.markers == {}
        assert isinstance(renderer.state, EmptyRender)

        monkeypatch.undo()
        renderer.update(PARIS)
        assert len(surface.layers) == 1
        assert len(surface.markers) == 2


class TestLifecycle:
    def test_detach_tears_down_and_removes_surface(self, renderer, surface):
        renderer.update(LONDON)
        renderer.detach()

        assert surface.removed
        assert renderer.surface is None
        assert isinstance(renderer.state, EmptyRender)

    def test_attach_twice_raises(self, renderer):
        with pytest.raises(RuntimeError):
            renderer.attach(SceneSurface())

    def test_drawing_on_unready_surface_is_rejected(self):
        with pytest.raises(SurfaceError):
            SceneSurface().add_source("route", {})

    def test_non_empty_update_requires_session(self, surface):
        renderer = TraceRenderer(session=Session())
        renderer.attach(surface)
        surface.mark_ready()

        with pytest.raises(NotAuthenticated):
            renderer.update(LONDON)
        renderer.update([])   # clearing is always allowed


class TestExport:
    def test_html_contains_scene(self, renderer, surface):
        renderer.update(LONDON)
        page = surface.to_html(title="Location Trace for ayo")
        assert "leaflet@1.9.4" in page
        assert "Location Trace for ayo" in page
        assert "51.5101" in page

    def test_geojson_feature_collection(self, renderer, surface):
        renderer.update(LONDON)
        collection = surface.to_geojson()
        kinds = [f["geometry"]["type"] for f in collection["features"]]
        assert kinds.count("LineString") == 1
        assert kinds.count("Point") == 3

    def test_save_html(self, renderer, surface, tmp_path):
        renderer.update(PARIS)
        out = surface.save_html(tmp_path / "trace.html")
        assert out.read_text(encoding="utf-8").startswith("<!doctype html>")
