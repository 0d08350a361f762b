"""Shared fixtures: small in-memory datasets and on-disk dataset/GTFS folders."""

import json
from pathlib import Path

import pytest
import structlog

from transit_data import DatasetStore, RouteShape, Stop, StopMeta

SAMPLE_DIR = Path(__file__).resolve().parent.parent / "data" / "sample"


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo configure_logging() so later tests do not write to a closed capture stream."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def two_stops() -> list[Stop]:
    return [
        Stop(id="S1", name="Tram Stop", lat=-43.53, lon=172.63),
        Stop(id="S2", name="Bus Stop", lat=-43.54, lon=172.64),
    ]


@pytest.fixture
def two_meta() -> dict[str, StopMeta]:
    return {
        "S1": StopMeta(is_tram=True, line_ids=("T1",)),
        "S2": StopMeta(is_tram=False, line_ids=("L1", "T1")),
    }


@pytest.fixture
def two_shapes() -> list[RouteShape]:
    return [
        RouteShape(id="shp_t1", line_id="T1", color="#aa0000", points=((-43.53, 172.63), (-43.54, 172.64))),
        RouteShape(id="shp_l1", line_id="L1", color="#00aa00", points=((-43.54, 172.64), (-43.55, 172.65))),
    ]


@pytest.fixture
def store(two_stops, two_meta, two_shapes) -> DatasetStore:
    return DatasetStore(two_stops, two_meta, two_shapes)


@pytest.fixture
def sample_dir() -> Path:
    return SAMPLE_DIR


@pytest.fixture
def dataset_dir(tmp_path: Path) -> Path:
    """Minimal JSON dataset folder."""
    (tmp_path / "stops.json").write_text(
        json.dumps([
            {"id": "A", "name": "Alpha", "lat": -43.5, "lon": 172.6},
            {"id": "B", "name": "Beta", "lat": -43.6, "lon": 172.7},
        ]),
        encoding="utf-8",
    )
    (tmp_path / "stop_meta.json").write_text(
        json.dumps({"A": {"tram": True, "lines": ["T1", "T1", "5"]}}),
        encoding="utf-8",
    )
    (tmp_path / "shapes.json").write_text(
        json.dumps({"s1": {"line": "T1", "color": "FF0000", "points": [[-43.5, 172.6], [-43.6, 172.7]]}}),
        encoding="utf-8",
    )
    return tmp_path


@pytest.fixture
def gtfs_dir(tmp_path: Path) -> Path:
    """Tiny GTFS feed: tram route T1 (type 0) and bus route 42 (type 3)."""
    files = {
        "routes.txt": (
            "route_id,route_short_name,route_long_name,route_type,route_color\n"
            "r_t1,T1,City Tram,0,8B1A1A\n"
            "r_42,42,Crosstown,3,\n"
        ),
        "stops.txt": (
            "stop_id,stop_name,stop_lat,stop_lon,location_type,wheelchair_boarding\n"
            "st1,Square,-43.531,172.636,0,1\n"
            "st2,Station,-43.533,172.637,0,2\n"
            "st3,Depot,-43.540,172.650,0,\n"
            "stn,Station Hall,-43.533,172.637,1,\n"
        ),
        "trips.txt": (
            "route_id,service_id,trip_id,shape_id\n"
            "r_t1,wk,trip_t1,sh_t1\n"
            "r_42,wk,trip_42,sh_42\n"
        ),
        "stop_times.txt": (
            "trip_id,arrival_time,departure_time,stop_id,stop_sequence\n"
            "trip_t1,08:00:00,08:00:00,st1,1\n"
            "trip_t1,08:05:00,08:05:00,st2,2\n"
            "trip_42,09:00:00,09:00:00,st2,1\n"
            "trip_42,09:10:00,09:10:00,st3,2\n"
        ),
        "shapes.txt": (
            "shape_id,shape_pt_lat,shape_pt_lon,shape_pt_sequence\n"
            "sh_t1,-43.531,172.636,1\n"
            "sh_t1,-43.531,172.636,2\n"
            "sh_t1,-43.533,172.637,3\n"
            "sh_42,-43.540,172.650,2\n"
            "sh_42,-43.533,172.637,1\n"
        ),
    }
    for name, body in files.items():
        (tmp_path / name).write_text(body, encoding="utf-8")
    return tmp_path
