"""transit_data.py

Read-only dataset store for the transit dashboard:
- stops (id, name, lat, lon)
- per-stop metadata (tram flag, line memberships, accessibility)
- route shapes (line id, colour, polyline points)

Two input layouts are supported:
- a dataset folder with stops.json (or stops.csv), stop_meta.json, shapes.json
- a GTFS folder (routes.txt, stops.txt, shapes.txt, trips.txt, stop_times.txt)

Malformed input raises DatasetError; callers treat that as fatal.
"""

from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import pandas as pd
import structlog
from shapely.geometry import LineString

logger = structlog.get_logger(__name__)

FALLBACK_COLOR = "#0066cc"

# GTFS route_type values drawn as trams (0 = tram / light rail)
GTFS_TRAM_ROUTE_TYPES = {0}


class DatasetError(ValueError):
    """Input dataset is missing or malformed."""


@dataclass(frozen=True)
class Stop:
    id: str
    name: str
    lat: float
    lon: float


@dataclass(frozen=True)
class StopMeta:
    is_tram: bool = False
    line_ids: Tuple[str, ...] = ()
    accessible: bool = True


@dataclass(frozen=True)
class RouteShape:
    id: str
    line_id: str
    color: str
    points: Tuple[Tuple[float, float], ...]


# ----------------------------
# Value helpers
# ----------------------------

def natural_route_sort_key(label: str) -> Tuple[int, int, str]:
    """Sort labels by leading route number when present, then text."""
    s = (label or "").strip()
    digits = []
    for ch in s:
        if ch.isdigit():
            digits.append(ch)
        elif digits:
            break
        elif not ch.isspace():
            break
    if digits:
        return (0, int("".join(digits)), s.lower())
    return (1, 0, s.lower())


def normalise_color(raw: object) -> Optional[str]:
    """Return '#rrggbb' for a 6-digit hex colour (with or without '#'), else None."""
    color = str(raw or "").strip()
    if color.startswith("#"):
        color = color[1:]
    if len(color) == 6 and all(c in "0123456789ABCDEFabcdef" for c in color):
        return "#" + color.lower()
    return None


def _text(value: object) -> str:
    """Stripped string; None and NaN (blank CSV cells) count as empty."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ""
    return str(value).strip()


def is_degenerate(points: Sequence[Tuple[float, float]]) -> bool:
    """True when a polyline has no length (fewer than 2 distinct locations)."""
    return len(points) < 2 or LineString([(lon, lat) for lat, lon in points]).length == 0


def _coord(value: object, lo: float, hi: float, what: str) -> float:
    try:
        v = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise DatasetError(f"{what} is not a number: {value!r}") from None
    if not math.isfinite(v) or not lo <= v <= hi:
        raise DatasetError(f"{what} out of range: {value!r}")
    return v


def _dedupe_consecutive(points: Iterable[Tuple[float, float]]) -> List[Tuple[float, float]]:
    cleaned: List[Tuple[float, float]] = []
    last = None
    for p in points:
        if last is None or p != last:
            cleaned.append(p)
        last = p
    return cleaned


# ----------------------------
# Store
# ----------------------------

class DatasetStore:
    """Immutable stops / metadata / shapes with O(1) lookups by id."""

    def __init__(
        self,
        stops: Sequence[Stop],
        meta: Mapping[str, StopMeta],
        shapes: Sequence[RouteShape],
    ) -> None:
        seen: Set[str] = set()
        for s in stops:
            if s.id in seen:
                raise DatasetError(f"Duplicate stop id: {s.id!r}")
            seen.add(s.id)
        for sh in shapes:
            if len(sh.points) < 2:
                raise DatasetError(f"Shape {sh.id!r} has fewer than 2 points")

        self._stops: Tuple[Stop, ...] = tuple(stops)
        self._meta: Dict[str, StopMeta] = dict(meta)
        self._shapes: Tuple[RouteShape, ...] = tuple(shapes)

        # first shape seen for a line decides its colour
        self._line_colors: Dict[str, str] = {}
        for sh in self._shapes:
            self._line_colors.setdefault(sh.line_id, sh.color)

        self._known_lines: Set[str] = {lid for m in self._meta.values() for lid in m.line_ids}

        missing = sum(1 for s in self._stops if s.id not in self._meta)
        if missing:
            logger.warning("stops_without_metadata", count=missing)

    def lookup_meta(self, stop_id: str) -> Optional[StopMeta]:
        return self._meta.get(stop_id)

    def all_stops(self) -> Tuple[Stop, ...]:
        return self._stops

    def all_shapes(self) -> Tuple[RouteShape, ...]:
        return self._shapes

    @property
    def meta(self) -> Mapping[str, StopMeta]:
        return MappingProxyType(self._meta)

    def color_for_line(self, line_id: str) -> str:
        return self._line_colors.get(line_id, FALLBACK_COLOR)

    def known_lines(self) -> Set[str]:
        """Line ids that appear in at least one stop's metadata."""
        return set(self._known_lines)

    def __repr__(self) -> str:
        return f"DatasetStore(stops={len(self._stops)}, meta={len(self._meta)}, shapes={len(self._shapes)})"


# ----------------------------
# Dataset folder loading (JSON / CSV)
# ----------------------------

def _read_json(path: str):
    if not os.path.exists(path):
        raise DatasetError(f"Missing dataset file: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DatasetError(f"Invalid JSON in {path}: {e}") from e


def _read_csv(path: str, **kwargs) -> pd.DataFrame:
    try:
        return pd.read_csv(path, **kwargs)
    except (ValueError, UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise DatasetError(f"Unreadable CSV {path}: {e}") from e


def parse_stops(records: object) -> List[Stop]:
    """Parse a list of {id, name, lat, lon} records."""
    if not isinstance(records, list):
        raise DatasetError("stops must be a list of records")
    out: List[Stop] = []
    for i, rec in enumerate(records):
        if not isinstance(rec, dict):
            raise DatasetError(f"stop #{i} is not an object")
        sid = _text(rec.get("id"))
        if not sid:
            raise DatasetError(f"stop #{i} has no id")
        out.append(
            Stop(
                id=sid,
                name=_text(rec.get("name")),
                lat=_coord(rec.get("lat"), -90.0, 90.0, f"stop {sid!r} lat"),
                lon=_coord(rec.get("lon"), -180.0, 180.0, f"stop {sid!r} lon"),
            )
        )
    return out


def parse_stop_meta(data: object) -> Dict[str, StopMeta]:
    """Parse {stop_id: {tram, lines, accessible}}."""
    if not isinstance(data, dict):
        raise DatasetError("stop metadata must be an object keyed by stop id")
    out: Dict[str, StopMeta] = {}
    for sid, rec in data.items():
        if not isinstance(rec, dict):
            raise DatasetError(f"metadata for stop {sid!r} is not an object")
        lines = rec.get("lines", [])
        if not isinstance(lines, list):
            raise DatasetError(f"metadata for stop {sid!r}: lines must be a list")
        line_ids: List[str] = []
        for lid in lines:
            lid = str(lid).strip()
            if lid and lid not in line_ids:
                line_ids.append(lid)
        out[str(sid)] = StopMeta(
            is_tram=bool(rec.get("tram", False)),
            line_ids=tuple(line_ids),
            accessible=bool(rec.get("accessible", True)),
        )
    return out


def parse_shapes(data: object) -> List[RouteShape]:
    """Parse {shape_id: {line, color, points: [[lat, lon], ...]}}."""
    if not isinstance(data, dict):
        raise DatasetError("shapes must be an object keyed by shape id")
    out: List[RouteShape] = []
    for shid, rec in data.items():
        if not isinstance(rec, dict):
            raise DatasetError(f"shape {shid!r} is not an object")
        line_id = str(rec.get("line", "")).strip()
        if not line_id:
            raise DatasetError(f"shape {shid!r} has no line")
        color = normalise_color(rec.get("color"))
        if color is None:
            raise DatasetError(f"shape {shid!r} has malformed colour {rec.get('color')!r}")
        raw_points = rec.get("points")
        if not isinstance(raw_points, list):
            raise DatasetError(f"shape {shid!r}: points must be a list")
        pts: List[Tuple[float, float]] = []
        for p in raw_points:
            if not isinstance(p, (list, tuple)) or len(p) != 2:
                raise DatasetError(f"shape {shid!r}: point {p!r} is not a [lat, lon] pair")
            pts.append((
                _coord(p[0], -90.0, 90.0, f"shape {shid!r} lat"),
                _coord(p[1], -180.0, 180.0, f"shape {shid!r} lon"),
            ))
        if len(pts) < 2:
            raise DatasetError(f"shape {shid!r} needs at least 2 points")
        if is_degenerate(pts):
            logger.warning("degenerate_shape_skipped", shape_id=str(shid), line_id=line_id)
            continue
        out.append(RouteShape(id=str(shid), line_id=line_id, color=color, points=tuple(pts)))
    return out


def read_stops_csv(path: str) -> List[Stop]:
    """Read stops from a CSV using GTFS column names (stop_id, stop_name, stop_lat, stop_lon)."""
    df = _read_csv(path, dtype=str)
    required = {"stop_id", "stop_lat", "stop_lon"}
    if not required.issubset(df.columns):
        raise DatasetError(f"{path} missing required columns: {', '.join(sorted(required))}")
    if "stop_name" not in df.columns:
        df["stop_name"] = ""
    df["stop_name"] = df["stop_name"].fillna("")
    records = [
        {"id": r["stop_id"], "name": r["stop_name"], "lat": r["stop_lat"], "lon": r["stop_lon"]}
        for _, r in df.iterrows()
    ]
    return parse_stops(records)


def load_dataset(data_dir: str) -> DatasetStore:
    """Load stops.json|stops.csv, stop_meta.json and shapes.json from data_dir."""
    if not os.path.isdir(data_dir):
        raise DatasetError(f"Dataset folder not found: {data_dir}")

    stops_json = os.path.join(data_dir, "stops.json")
    stops_csv = os.path.join(data_dir, "stops.csv")
    if os.path.exists(stops_json):
        stops = parse_stops(_read_json(stops_json))
    elif os.path.exists(stops_csv):
        stops = read_stops_csv(stops_csv)
    else:
        raise DatasetError(f"Missing dataset file: {stops_json} (or stops.csv)")

    meta = parse_stop_meta(_read_json(os.path.join(data_dir, "stop_meta.json")))
    shapes = parse_shapes(_read_json(os.path.join(data_dir, "shapes.json")))

    store = DatasetStore(stops, meta, shapes)
    logger.info("dataset_loaded", source=data_dir, stops=len(stops), meta=len(meta), shapes=len(shapes))
    return store


# ----------------------------
# GTFS import
# ----------------------------

def read_gtfs_tables(gtfs_dir: str) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """Returns routes, stops, shapes, trips, stop_times."""

    def r(path: str) -> str:
        p = os.path.join(gtfs_dir, path)
        if not os.path.exists(p):
            raise DatasetError(f"Missing GTFS file: {p}")
        return p

    routes = _read_csv(r("routes.txt"), dtype=str)
    stops = _read_csv(r("stops.txt"), dtype=str)
    shapes = _read_csv(r("shapes.txt"), dtype=str)
    trips = _read_csv(r("trips.txt"), dtype=str)
    stop_times = _read_csv(r("stop_times.txt"), usecols=["trip_id", "stop_id"], dtype=str)

    for col in ("route_color", "route_short_name"):
        if col in routes.columns:
            routes[col] = routes[col].fillna("").astype(str).str.strip()
        else:
            routes[col] = ""

    if not {"route_id", "route_type"}.issubset(routes.columns):
        raise DatasetError("GTFS routes.txt must include route_id and route_type.")
    if not {"trip_id", "route_id", "shape_id"}.issubset(trips.columns):
        raise DatasetError("GTFS trips.txt must include trip_id, route_id and shape_id.")
    if not {"shape_id", "shape_pt_lat", "shape_pt_lon", "shape_pt_sequence"}.issubset(shapes.columns):
        raise DatasetError(
            "GTFS shapes.txt missing required columns: shape_id, shape_pt_lat, shape_pt_lon, shape_pt_sequence"
        )

    return routes, stops, shapes, trips, stop_times


def route_labels(routes: pd.DataFrame) -> Dict[str, str]:
    """route_id -> line id shown to users (short name, else route id)."""
    return {
        str(r["route_id"]): (str(r["route_short_name"]).strip() or str(r["route_id"]))
        for _, r in routes.iterrows()
    }


def build_route_shapes(routes: pd.DataFrame, shapes: pd.DataFrame, trips: pd.DataFrame) -> List[RouteShape]:
    """One RouteShape per GTFS shape_id used by a trip, coloured by its route."""
    labels = route_labels(routes)
    colors = {
        str(r["route_id"]): normalise_color(r["route_color"]) or FALLBACK_COLOR
        for _, r in routes.iterrows()
    }

    shape_to_route: Dict[str, str] = (
        trips.dropna(subset=["route_id", "shape_id"])
        .drop_duplicates(subset=["shape_id"])
        .set_index("shape_id")["route_id"]
        .astype(str)
        .to_dict()
    )

    shapes = shapes.copy()
    shapes["shape_pt_sequence"] = pd.to_numeric(shapes["shape_pt_sequence"], errors="coerce")
    shapes["shape_pt_lat"] = pd.to_numeric(shapes["shape_pt_lat"], errors="coerce")
    shapes["shape_pt_lon"] = pd.to_numeric(shapes["shape_pt_lon"], errors="coerce")
    shapes = shapes.dropna(subset=["shape_pt_sequence", "shape_pt_lat", "shape_pt_lon"])
    shapes_sorted = shapes.sort_values(["shape_id", "shape_pt_sequence"])

    out: List[RouteShape] = []
    for sid, grp in shapes_sorted.groupby("shape_id", sort=True):
        rid = shape_to_route.get(str(sid))
        if rid is None or rid not in labels:
            continue
        pts = list(zip(grp["shape_pt_lat"].astype(float).tolist(), grp["shape_pt_lon"].astype(float).tolist()))
        cleaned = _dedupe_consecutive(pts)
        if is_degenerate(cleaned):
            logger.warning("degenerate_shape_skipped", shape_id=str(sid), line_id=labels[rid])
            continue
        out.append(RouteShape(id=str(sid), line_id=labels[rid], color=colors[rid], points=tuple(cleaned)))
    return out


def build_stop_meta(
    routes: pd.DataFrame, stops: pd.DataFrame, trips: pd.DataFrame, stop_times: pd.DataFrame
) -> Dict[str, StopMeta]:
    """stop_id -> StopMeta derived from the routes serving each stop."""
    labels = route_labels(routes)
    route_types = {
        str(r["route_id"]): pd.to_numeric(r["route_type"], errors="coerce")
        for _, r in routes.iterrows()
    }

    trip_routes = trips[["trip_id", "route_id"]].dropna().astype(str)
    stop_trip_routes = stop_times.dropna().astype(str).merge(trip_routes, on="trip_id", how="inner")

    accessible: Dict[str, bool] = {}
    if "wheelchair_boarding" in stops.columns:
        for _, s in stops.iterrows():
            accessible[str(s["stop_id"])] = str(s["wheelchair_boarding"]).strip() != "2"

    out: Dict[str, StopMeta] = {}
    for sid, grp in stop_trip_routes.groupby("stop_id"):
        rids = {str(x) for x in grp["route_id"].tolist() if str(x) in labels}
        if not rids:
            continue
        line_ids = sorted({labels[rid] for rid in rids}, key=natural_route_sort_key)
        out[str(sid)] = StopMeta(
            is_tram=any(route_types.get(rid) in GTFS_TRAM_ROUTE_TYPES for rid in rids),
            line_ids=tuple(line_ids),
            accessible=accessible.get(str(sid), True),
        )
    return out


def load_gtfs_dataset(gtfs_dir: str) -> DatasetStore:
    """Build a DatasetStore from a GTFS feed folder."""
    routes, stops, shapes, trips, stop_times = read_gtfs_tables(gtfs_dir)

    stop_cols = [c for c in ("stop_id", "stop_name", "stop_lat", "stop_lon") if c in stops.columns]
    if "stop_id" not in stop_cols or "stop_lat" not in stop_cols or "stop_lon" not in stop_cols:
        raise DatasetError("GTFS stops.txt must include stop_id, stop_lat and stop_lon.")
    stops_clean = stops.copy()
    # GTFS stations / entrances (location_type > 0) are not boardable stops
    if "location_type" in stops_clean.columns:
        lt = pd.to_numeric(stops_clean["location_type"], errors="coerce").fillna(0)
        stops_clean = stops_clean[lt == 0].copy()
    if "stop_name" not in stops_clean.columns:
        stops_clean["stop_name"] = ""
    stop_records = [
        {"id": r["stop_id"], "name": "" if pd.isna(r["stop_name"]) else r["stop_name"],
         "lat": r["stop_lat"], "lon": r["stop_lon"]}
        for _, r in stops_clean.iterrows()
    ]

    store = DatasetStore(
        parse_stops(stop_records),
        build_stop_meta(routes, stops, trips, stop_times),
        build_route_shapes(routes, shapes, trips),
    )
    logger.info("gtfs_dataset_loaded", source=gtfs_dir, store=repr(store))
    return store
