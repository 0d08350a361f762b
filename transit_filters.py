"""transit_filters.py

Pure derivations from the dataset + current filter state:

  stops  --(mode filter)--> typed stops --(line filter)--> visible stops
                                 |
                                 +--(line counts, rank, search, cap)--> line stats
  shapes --(both-modes-off / line selection)--> visible shapes

Route shapes carry no bus/tram tag, so the mode toggles only hide shapes when
both modes are switched off. A tram-only view still draws bus route lines.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence, Set, Tuple

import structlog

from transit_data import RouteShape, Stop, StopMeta

logger = structlog.get_logger(__name__)

STATS_LIMIT = 6


@dataclass
class FilterState:
    stops_visible: bool = True
    bus_visible: bool = True
    tram_visible: bool = True
    selected_line_ids: Set[str] = field(default_factory=set)
    search_text: str = ""
    show_all_lines: bool = False


@dataclass(frozen=True)
class LineStat:
    line_id: str
    stop_count: int


@dataclass(frozen=True)
class DerivedView:
    visible_stops: Tuple[Stop, ...] = ()
    visible_shapes: Tuple[RouteShape, ...] = ()
    line_stats: Tuple[LineStat, ...] = ()
    # stats entries matching the search before the display cap
    matching_line_count: int = 0


def is_tram(meta: Optional[StopMeta]) -> bool:
    return meta is not None and meta.is_tram


def filter_by_mode(
    stops: Sequence[Stop], meta: Mapping[str, StopMeta], state: FilterState
) -> Tuple[Stop, ...]:
    """Keep stops whose mode toggle is on. Stops without metadata count as bus."""
    return tuple(
        s for s in stops
        if (state.tram_visible if is_tram(meta.get(s.id)) else state.bus_visible)
    )


def filter_by_lines(
    stops: Sequence[Stop], meta: Mapping[str, StopMeta], state: FilterState
) -> Tuple[Stop, ...]:
    if not state.stops_visible:
        return ()
    if not state.selected_line_ids:
        return tuple(stops)
    selected = state.selected_line_ids
    out = []
    for s in stops:
        m = meta.get(s.id)
        if m is not None and not selected.isdisjoint(m.line_ids):
            out.append(s)
    return tuple(out)


def filter_shapes(shapes: Sequence[RouteShape], state: FilterState) -> Tuple[RouteShape, ...]:
    if not state.bus_visible and not state.tram_visible:
        return ()
    if not state.selected_line_ids:
        return tuple(shapes)
    return tuple(sh for sh in shapes if sh.line_id in state.selected_line_ids)


def line_stats(
    typed_stops: Sequence[Stop], meta: Mapping[str, StopMeta], state: FilterState
) -> Tuple[Tuple[LineStat, ...], int]:
    """Count stops per line, rank by count (ties keep first-seen order), search, cap.

    Returns (stats to display, number of entries matching the search).
    """
    counts: Counter = Counter()
    for s in typed_stops:
        m = meta.get(s.id)
        if m is not None:
            counts.update(m.line_ids)

    # Counter keeps insertion order and sorted() is stable
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)

    needle = state.search_text.lower()
    if needle:
        ranked = [kv for kv in ranked if needle in kv[0].lower()]

    matching = len(ranked)
    if not needle and not state.show_all_lines:
        ranked = ranked[:STATS_LIMIT]
    return tuple(LineStat(line_id=lid, stop_count=n) for lid, n in ranked), matching


def derive_view(
    stops: Sequence[Stop],
    meta: Mapping[str, StopMeta],
    shapes: Sequence[RouteShape],
    state: FilterState,
) -> DerivedView:
    typed = filter_by_mode(stops, meta, state)
    stats, matching = line_stats(typed, meta, state)
    view = DerivedView(
        visible_stops=filter_by_lines(typed, meta, state),
        visible_shapes=filter_shapes(shapes, state),
        line_stats=stats,
        matching_line_count=matching,
    )
    logger.debug(
        "view_derived",
        stops=len(view.visible_stops),
        shapes=len(view.visible_shapes),
        lines=len(view.line_stats),
    )
    return view
