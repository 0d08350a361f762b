"""transit_render.py

Turns a derived view into map drawing calls.

The synchronizer only talks to a MapLayers target (add/clear markers and
polylines). FoliumLayers is the folium implementation: it keeps the current
marker/polyline set and materialises a folium.Map on demand, with stop
markers clustered by folium.plugins.MarkerCluster.

Both layers are redrawn by clear-and-rebuild on every sync.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

import folium
import structlog
from folium.plugins import MarkerCluster
from shapely.geometry import MultiPoint

from transit_data import RouteShape, Stop, StopMeta
from transit_filters import is_tram

logger = structlog.get_logger(__name__)

BUS_ICON = "\U0001F68C"   # bus
TRAM_ICON = "\U0001F68B"  # tram car

ROUTE_WEIGHT = 4
ROUTE_OPACITY = 0.8

ACCESSIBLE_TEXT = "Accessible"

# Stops shown with a photo in their popup, matched by exact stop name.
SPECIAL_STOP_IMAGES = {
    "Central Station": "images/central_station.jpg",
    "Cathedral Square": "images/cathedral_square.jpg",
}

DEFAULT_CENTRE = (0.0, 0.0)


# ----------------------------
# Popup content
# ----------------------------

@dataclass(frozen=True)
class StopPopup:
    title: str
    badges: Tuple[Tuple[str, str], ...]  # (line_id, colour)
    accessibility: str
    image: Optional[str] = None

    def to_html(self) -> str:
        badges = "".join(
            f'<span style="display: inline-block; background: {color}; color: #fff; '
            f'border-radius: 4px; padding: 1px 6px; margin: 0 4px 4px 0; font-weight: 600;">'
            f"{html.escape(line_id)}</span>"
            for line_id, color in self.badges
        )
        parts = [
            '<div style="font-family: system-ui, -apple-system, Segoe UI, Roboto, sans-serif; font-size: 13px;">',
            f'<div style="font-weight: 700; margin-bottom: 6px;">{html.escape(self.title or "(stop)")}</div>',
        ]
        if badges:
            parts.append(f"<div>{badges}</div>")
        parts.append(f"<div><b>Accessibility:</b> {html.escape(self.accessibility)}</div>")
        if self.image:
            parts.append(
                f'<div style="margin-top: 6px;"><img src="{html.escape(self.image)}" '
                f'alt="{html.escape(self.title)}" style="max-width: 240px;"></div>'
            )
        parts.append("</div>")
        return "".join(parts)


def build_popup(stop: Stop, meta: Optional[StopMeta], color_for_line: Callable[[str], str]) -> StopPopup:
    # TODO: show meta.accessible once the stop metadata carries surveyed values
    line_ids = meta.line_ids if meta is not None else ()
    return StopPopup(
        title=stop.name,
        badges=tuple((lid, color_for_line(lid)) for lid in line_ids),
        accessibility=ACCESSIBLE_TEXT,
        image=SPECIAL_STOP_IMAGES.get(stop.name),
    )


# ----------------------------
# Drawing target
# ----------------------------

class MapLayers(Protocol):
    def clear_markers(self) -> None: ...

    def add_marker(self, lat: float, lon: float, icon: str, popup: StopPopup) -> None: ...

    def clear_polylines(self) -> None: ...

    def add_polyline(
        self, points: Sequence[Tuple[float, float]], color: str, weight: float, opacity: float, popup: str
    ) -> None: ...


@dataclass(frozen=True)
class MarkerSpec:
    lat: float
    lon: float
    icon: str
    popup: StopPopup


@dataclass(frozen=True)
class PolylineSpec:
    points: Tuple[Tuple[float, float], ...]
    color: str
    weight: float
    opacity: float
    popup: str


class FoliumLayers:
    """MapLayers backed by folium. Call build_map() to get the current map."""

    def __init__(self, tiles: str = "CartoDB positron", zoom_start: int = 13) -> None:
        self.tiles = tiles
        self.zoom_start = zoom_start
        self.markers: List[MarkerSpec] = []
        self.polylines: List[PolylineSpec] = []

    def clear_markers(self) -> None:
        self.markers = []

    def add_marker(self, lat: float, lon: float, icon: str, popup: StopPopup) -> None:
        self.markers.append(MarkerSpec(lat, lon, icon, popup))

    def clear_polylines(self) -> None:
        self.polylines = []

    def add_polyline(
        self, points: Sequence[Tuple[float, float]], color: str, weight: float, opacity: float, popup: str
    ) -> None:
        self.polylines.append(PolylineSpec(tuple(points), color, weight, opacity, popup))

    def bounds(self) -> Optional[Tuple[Tuple[float, float], Tuple[float, float]]]:
        """((south, west), (north, east)) over everything drawn, or None when empty."""
        coords = [(mk.lon, mk.lat) for mk in self.markers]
        for pl in self.polylines:
            coords.extend((lon, lat) for lat, lon in pl.points)
        if not coords:
            return None
        minx, miny, maxx, maxy = MultiPoint(coords).bounds
        return (miny, minx), (maxy, maxx)

    def build_map(self) -> folium.Map:
        bounds = self.bounds()
        if bounds is None:
            centre = DEFAULT_CENTRE
        else:
            (s, w), (n, e) = bounds
            centre = ((s + n) / 2.0, (w + e) / 2.0)

        m = folium.Map(
            location=list(centre),
            zoom_start=self.zoom_start if bounds is not None else 2,
            control_scale=True,
            tiles=self.tiles,
        )

        # Routes get their own pane below Leaflet's marker pane, so clustered stops stay on top.
        folium.map.CustomPane("routesPane", z_index=420).add_to(m)

        fg_routes = folium.FeatureGroup(name="Routes", show=True)
        for pl in self.polylines:
            folium.PolyLine(
                locations=[(lat, lon) for (lat, lon) in pl.points],
                pane="routesPane",
                color=pl.color,
                weight=pl.weight,
                opacity=pl.opacity,
                tooltip=pl.popup,
                popup=folium.Popup(html.escape(pl.popup), max_width=200),
            ).add_to(fg_routes)
        fg_routes.add_to(m)

        stops_cluster = MarkerCluster(name="Stops", show=True)
        for mk in self.markers:
            folium.Marker(
                location=[mk.lat, mk.lon],
                icon=folium.DivIcon(
                    html=f'<div style="font-size: 20px; line-height: 24px; text-align: center;">{mk.icon}</div>',
                    icon_size=(24, 24),
                    icon_anchor=(12, 12),
                ),
                tooltip=mk.popup.title or None,
                popup=folium.Popup(mk.popup.to_html(), max_width=300),
            ).add_to(stops_cluster)
        stops_cluster.add_to(m)

        folium.LayerControl(collapsed=True).add_to(m)

        if bounds is not None and bounds[0] != bounds[1]:
            m.fit_bounds([list(bounds[0]), list(bounds[1])], padding=(30, 30))
        return m


# ----------------------------
# Synchronizer
# ----------------------------

class RenderSynchronizer:
    """Redraws markers and route polylines to match the latest derived view."""

    def __init__(
        self,
        layers: MapLayers,
        lookup_meta: Callable[[str], Optional[StopMeta]],
        color_for_line: Callable[[str], str],
    ) -> None:
        self.layers = layers
        self.lookup_meta = lookup_meta
        self.color_for_line = color_for_line

    def sync_markers(self, visible_stops: Sequence[Stop]) -> None:
        self.layers.clear_markers()
        for stop in visible_stops:
            meta = self.lookup_meta(stop.id)
            self.layers.add_marker(
                stop.lat,
                stop.lon,
                TRAM_ICON if is_tram(meta) else BUS_ICON,
                build_popup(stop, meta, self.color_for_line),
            )
        logger.debug("markers_synced", count=len(visible_stops))

    def sync_shapes(self, visible_shapes: Sequence[RouteShape]) -> None:
        self.layers.clear_polylines()
        for sh in visible_shapes:
            self.layers.add_polyline(sh.points, sh.color, ROUTE_WEIGHT, ROUTE_OPACITY, f"Line {sh.line_id}")
        logger.debug("shapes_synced", count=len(visible_shapes))
