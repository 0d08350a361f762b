"""Tests for dataset loading and the read-only store in transit_data.py."""

import json

import pytest
from structlog.testing import capture_logs

from transit_data import (
    FALLBACK_COLOR,
    DatasetError,
    DatasetStore,
    RouteShape,
    Stop,
    StopMeta,
    load_dataset,
    load_gtfs_dataset,
    natural_route_sort_key,
    normalise_color,
    parse_shapes,
    parse_stops,
)


class TestDatasetStore:
    def test_lookups(self, store) -> None:
        assert store.lookup_meta("S1") == StopMeta(is_tram=True, line_ids=("T1",))
        assert store.lookup_meta("missing") is None
        assert [s.id for s in store.all_stops()] == ["S1", "S2"]
        assert [sh.id for sh in store.all_shapes()] == ["shp_t1", "shp_l1"]
        assert store.known_lines() == {"T1", "L1"}

    def test_color_for_line_uses_first_shape(self) -> None:
        shapes = [
            RouteShape(id="a", line_id="9", color="#111111", points=((0.0, 0.0), (0.0, 1.0))),
            RouteShape(id="b", line_id="9", color="#222222", points=((0.0, 1.0), (1.0, 1.0))),
        ]
        store = DatasetStore([], {}, shapes)

        assert store.color_for_line("9") == "#111111"

    def test_color_for_line_falls_back(self, store) -> None:
        assert store.color_for_line("no-shape") == FALLBACK_COLOR

    def test_duplicate_stop_ids_rejected(self) -> None:
        stops = [Stop("A", "x", 0.0, 0.0), Stop("A", "y", 1.0, 1.0)]

        with pytest.raises(DatasetError, match="Duplicate stop id"):
            DatasetStore(stops, {}, [])

    def test_short_shape_rejected(self) -> None:
        with pytest.raises(DatasetError, match="fewer than 2 points"):
            DatasetStore([], {}, [RouteShape(id="s", line_id="1", color="#000000", points=((0.0, 0.0),))])

    def test_missing_metadata_is_logged_not_raised(self) -> None:
        with capture_logs() as logs:
            DatasetStore([Stop("A", "x", 0.0, 0.0)], {}, [])

        assert {"event": "stops_without_metadata", "count": 1, "log_level": "warning"} in logs

    def test_meta_view_is_read_only(self, store) -> None:
        with pytest.raises(TypeError):
            store.meta["S9"] = StopMeta()  # type: ignore[index]

        assert store.lookup_meta("S9") is None
        assert store.meta["S1"] == StopMeta(is_tram=True, line_ids=("T1",))

    def test_empty_dataset_is_valid(self) -> None:
        store = DatasetStore([], {}, [])

        assert store.all_stops() == ()
        assert store.known_lines() == set()


class TestParsing:
    def test_parse_stops(self) -> None:
        stops = parse_stops([{"id": 7, "name": " Main St ", "lat": "-43.5", "lon": 172.6}])

        assert stops == [Stop(id="7", name="Main St", lat=-43.5, lon=172.6)]

    @pytest.mark.parametrize(
        "records",
        [
            {"id": "A"},
            [{"name": "no id", "lat": 0, "lon": 0}],
            [{"id": "A", "lat": "north", "lon": 0}],
            [{"id": "A", "lat": 95, "lon": 0}],
            [{"id": "A", "lat": 0}],
            [{"id": None, "name": "null id", "lat": 0, "lon": 0}],
            [{"id": float("nan"), "name": "blank csv id", "lat": 0, "lon": 0}],
            [{"id": "  ", "lat": 0, "lon": 0}],
            ["not-an-object"],
        ],
    )
    def test_parse_stops_rejects_malformed(self, records) -> None:
        with pytest.raises(DatasetError):
            parse_stops(records)

    @pytest.mark.parametrize(
        "data",
        [
            {"s": {"line": "1", "color": "#00ff00", "points": [[0, 0]]}},
            {"s": {"line": "1", "color": "green", "points": [[0, 0], [1, 1]]}},
            {"s": {"color": "#00ff00", "points": [[0, 0], [1, 1]]}},
            {"s": {"line": "1", "color": "#00ff00", "points": [[0, 0, 0], [1, 1]]}},
        ],
    )
    def test_parse_shapes_rejects_malformed(self, data) -> None:
        with pytest.raises(DatasetError):
            parse_shapes(data)

    def test_shape_without_length_is_skipped(self) -> None:
        data = {
            "flat": {"line": "1", "color": "#00ff00", "points": [[0, 0], [0, 0]]},
            "ok": {"line": "1", "color": "#00ff00", "points": [[0, 0], [1, 1]]},
        }

        with capture_logs() as logs:
            shapes = parse_shapes(data)

        assert [sh.id for sh in shapes] == ["ok"]
        assert {"event": "degenerate_shape_skipped", "shape_id": "flat", "line_id": "1", "log_level": "warning"} in logs

    def test_missing_stop_name_is_empty(self) -> None:
        assert parse_stops([{"id": "A", "name": None, "lat": 0, "lon": 0}])[0].name == ""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("FF0000", "#ff0000"), ("#00Aa00", "#00aa00"), ("", None), ("red", None), (None, None), ("#12345", None)],
    )
    def test_normalise_color(self, raw, expected) -> None:
        assert normalise_color(raw) == expected

    def test_natural_route_sort_key(self) -> None:
        labels = ["T1", "100", "Orbiter", "28", "3"]

        assert sorted(labels, key=natural_route_sort_key) == ["3", "28", "100", "Orbiter", "T1"]


class TestLoadDataset:
    def test_load_json_folder(self, dataset_dir) -> None:
        store = load_dataset(str(dataset_dir))

        assert [s.name for s in store.all_stops()] == ["Alpha", "Beta"]
        # duplicate line ids within a stop collapse
        assert store.lookup_meta("A") == StopMeta(is_tram=True, line_ids=("T1", "5"), accessible=True)
        assert store.lookup_meta("B") is None
        assert store.color_for_line("T1") == "#ff0000"
        assert store.color_for_line("5") == FALLBACK_COLOR

    def test_load_stops_csv(self, dataset_dir) -> None:
        (dataset_dir / "stops.json").unlink()
        (dataset_dir / "stops.csv").write_text(
            "stop_id,stop_name,stop_lat,stop_lon\nA,Alpha,-43.5,172.6\nB,,-43.6,172.7\n",
            encoding="utf-8",
        )

        store = load_dataset(str(dataset_dir))

        assert store.all_stops() == (Stop("A", "Alpha", -43.5, 172.6), Stop("B", "", -43.6, 172.7))

    def test_missing_folder(self, tmp_path) -> None:
        with pytest.raises(DatasetError, match="not found"):
            load_dataset(str(tmp_path / "nope"))

    def test_missing_file(self, dataset_dir) -> None:
        (dataset_dir / "shapes.json").unlink()

        with pytest.raises(DatasetError, match="shapes.json"):
            load_dataset(str(dataset_dir))

    def test_invalid_json(self, dataset_dir) -> None:
        (dataset_dir / "stop_meta.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(DatasetError, match="Invalid JSON"):
            load_dataset(str(dataset_dir))

    def test_stop_meta_must_be_object(self, dataset_dir) -> None:
        (dataset_dir / "stop_meta.json").write_text(json.dumps([]), encoding="utf-8")

        with pytest.raises(DatasetError):
            load_dataset(str(dataset_dir))

    def test_bundled_sample_loads(self, sample_dir) -> None:
        store = load_dataset(str(sample_dir))

        assert len(store.all_stops()) == 10
        assert store.lookup_meta("S10") is None
        assert "T1" in store.known_lines()
        assert store.color_for_line("Orbiter") == "#7ab800"


class TestLoadGtfs:
    def test_stops_exclude_stations(self, gtfs_dir) -> None:
        store = load_gtfs_dataset(str(gtfs_dir))

        assert [s.id for s in store.all_stops()] == ["st1", "st2", "st3"]

    def test_stop_meta_from_serving_routes(self, gtfs_dir) -> None:
        store = load_gtfs_dataset(str(gtfs_dir))

        assert store.lookup_meta("st1") == StopMeta(is_tram=True, line_ids=("T1",), accessible=True)
        # a stop served by any tram route counts as tram
        assert store.lookup_meta("st2") == StopMeta(is_tram=True, line_ids=("42", "T1"), accessible=False)
        assert store.lookup_meta("st3") == StopMeta(is_tram=False, line_ids=("42",), accessible=True)

    def test_shapes_ordered_and_deduplicated(self, gtfs_dir) -> None:
        store = load_gtfs_dataset(str(gtfs_dir))
        shapes = {sh.id: sh for sh in store.all_shapes()}

        assert shapes["sh_t1"].points == ((-43.531, 172.636), (-43.533, 172.637))
        assert shapes["sh_42"].points == ((-43.533, 172.637), (-43.54, 172.65))
        assert shapes["sh_t1"].line_id == "T1"
        assert shapes["sh_42"].line_id == "42"

    def test_route_colours(self, gtfs_dir) -> None:
        store = load_gtfs_dataset(str(gtfs_dir))

        assert store.color_for_line("T1") == "#8b1a1a"
        assert store.color_for_line("42") == FALLBACK_COLOR

    def test_single_location_shape_is_skipped(self, gtfs_dir) -> None:
        (gtfs_dir / "shapes.txt").write_text(
            "shape_id,shape_pt_lat,shape_pt_lon,shape_pt_sequence\n"
            "sh_t1,-43.531,172.636,1\n"
            "sh_t1,-43.531,172.636,2\n"
            "sh_42,-43.540,172.650,1\n"
            "sh_42,-43.533,172.637,2\n",
            encoding="utf-8",
        )

        store = load_gtfs_dataset(str(gtfs_dir))

        assert [sh.id for sh in store.all_shapes()] == ["sh_42"]

    def test_blank_stop_id_rejected(self, gtfs_dir) -> None:
        with open(gtfs_dir / "stops.txt", "a", encoding="utf-8") as f:
            f.write(",Nameless,-43.5,172.6,0,\n")

        with pytest.raises(DatasetError, match="has no id"):
            load_gtfs_dataset(str(gtfs_dir))

    def test_missing_gtfs_file(self, gtfs_dir) -> None:
        (gtfs_dir / "stop_times.txt").unlink()

        with pytest.raises(DatasetError, match="stop_times.txt"):
            load_gtfs_dataset(str(gtfs_dir))
