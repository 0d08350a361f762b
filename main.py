#!/usr/bin/env python3
"""main.py

Build a standalone HTML map of a transit network showing:
- stop markers (bus / tram icons, clustered) with line badges in the popup
- route polylines coloured by line

The same filters as the interactive dashboard (app.py) are available as flags:
hide stops, hide bus or tram stops, restrict to lines, search the line list.

Dependencies:
  pip install folium pandas shapely structlog

Usage example:
  python3 main.py --data data/sample --out map.html
  python3 main.py --gtfs gtfs --no-bus --lines T1,T2 --out trams.html
"""

from __future__ import annotations

import argparse
from typing import List, Optional

from transit_data import DatasetError, DatasetStore, load_dataset, load_gtfs_dataset
from transit_dashboard import Dashboard
from transit_logging import configure_logging
from transit_render import FoliumLayers


def add_dataset_args(ap: argparse.ArgumentParser) -> None:
    src = ap.add_mutually_exclusive_group()
    src.add_argument("--data", default=None, help="Dataset folder (stops.json|stops.csv, stop_meta.json, shapes.json)")
    src.add_argument("--gtfs", default=None, help="GTFS folder (routes.txt, stops.txt, shapes.txt, trips.txt, stop_times.txt)")
    ap.add_argument("--verbose", action="store_true", help="Debug logging")


def load_store(args: argparse.Namespace, default_data: str = "data/sample") -> DatasetStore:
    """Load the dataset named by --data/--gtfs. Load errors abort with a diagnostic."""
    try:
        if args.gtfs:
            return load_gtfs_dataset(args.gtfs)
        return load_dataset(args.data or default_data)
    except DatasetError as e:
        raise SystemExit(f"Could not load dataset: {e}") from e


def parse_lines(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [x.strip() for x in str(raw).split(",") if x.strip()]


def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Render a filtered transit stop/route map to HTML.")
    add_dataset_args(ap)
    ap.add_argument("--out", default="map.html", help="Output HTML filename")

    ap.add_argument("--hide-stops", action="store_true", help="Draw no stop markers (routes only)")
    ap.add_argument("--no-bus", action="store_true", help="Hide bus stops")
    ap.add_argument("--no-tram", action="store_true", help="Hide tram stops")
    ap.add_argument("--lines", default=None, help="Only these lines (comma-separated, e.g. T1,42)")
    ap.add_argument("--search", default="", help="Case-insensitive filter for the printed line list")
    ap.add_argument("--show-all-lines", action="store_true", help="Print every line, not just the top 6")
    ap.add_argument("--tiles", default="CartoDB positron", help="folium tile set")

    args = ap.parse_args(argv)
    configure_logging(args.verbose)

    store = load_store(args)
    dash = Dashboard(store, layers=FoliumLayers(tiles=args.tiles))

    if args.hide_stops:
        dash.toggle_stops()
    if args.no_bus:
        dash.toggle_bus()
    if args.no_tram:
        dash.toggle_tram()
    for line_id in parse_lines(args.lines):
        dash.toggle_line(line_id)
    if args.search:
        dash.set_search(args.search)
    if args.show_all_lines:
        dash.toggle_show_all_lines()

    view = dash.view
    dash.layers.build_map().save(args.out)

    print(f"Wrote: {args.out}")
    print(
        f"Stops: {len(view.visible_stops):,} of {len(store.all_stops()):,} | "
        f"Routes: {len(view.visible_shapes):,} of {len(store.all_shapes()):,}"
    )
    if dash.state.selected_line_ids:
        print(f"Lines selected: {', '.join(sorted(dash.state.selected_line_ids))}")
    print(f"Lines ({len(view.line_stats)} of {view.matching_line_count}):")
    for stat in view.line_stats:
        print(f"  {stat.line_id:<10} {stat.stop_count:>5} stops")


if __name__ == "__main__":
    main()
