"""transit_dashboard.py

User actions for the dashboard. Each action mutates the filter state, derives
a fresh view and redraws both map layers before returning.
"""

from __future__ import annotations

from typing import Optional

import structlog

from transit_data import DatasetStore
from transit_filters import DerivedView, FilterState, derive_view
from transit_render import FoliumLayers, MapLayers, RenderSynchronizer

logger = structlog.get_logger(__name__)


class Dashboard:
    def __init__(
        self,
        store: DatasetStore,
        layers: Optional[MapLayers] = None,
        state: Optional[FilterState] = None,
    ) -> None:
        self.store = store
        self.layers = layers if layers is not None else FoliumLayers()
        self.state = state if state is not None else FilterState()
        self.synchronizer = RenderSynchronizer(self.layers, store.lookup_meta, store.color_for_line)
        self.view = self.refresh()

    def refresh(self) -> DerivedView:
        """Recompute the derived view and redraw markers and routes."""
        view = derive_view(self.store.all_stops(), self.store.meta, self.store.all_shapes(), self.state)
        self.synchronizer.sync_markers(view.visible_stops)
        self.synchronizer.sync_shapes(view.visible_shapes)
        self.view = view
        return view

    def _action(self, name: str, **fields) -> DerivedView:
        view = self.refresh()
        logger.info(
            "dashboard_action",
            action=name,
            stops=len(view.visible_stops),
            shapes=len(view.visible_shapes),
            **fields,
        )
        return view

    # ---------- actions ----------

    def toggle_stops(self) -> DerivedView:
        self.state.stops_visible = not self.state.stops_visible
        return self._action("toggle_stops", value=self.state.stops_visible)

    def toggle_bus(self) -> DerivedView:
        self.state.bus_visible = not self.state.bus_visible
        return self._action("toggle_bus", value=self.state.bus_visible)

    def toggle_tram(self) -> DerivedView:
        self.state.tram_visible = not self.state.tram_visible
        return self._action("toggle_tram", value=self.state.tram_visible)

    def toggle_line(self, line_id: str) -> DerivedView:
        """Select or deselect a line. Unknown line ids are never added."""
        selected = self.state.selected_line_ids
        if line_id in selected:
            selected.discard(line_id)
        elif line_id in self.store.known_lines():
            selected.add(line_id)
        else:
            logger.warning("unknown_line_ignored", line_id=line_id)
        return self._action("toggle_line", line_id=line_id, selected=sorted(selected))

    def clear_lines(self) -> DerivedView:
        self.state.selected_line_ids.clear()
        return self._action("clear_lines")

    def set_search(self, text: str) -> DerivedView:
        self.state.search_text = text or ""
        return self._action("set_search", text=self.state.search_text)

    def toggle_show_all_lines(self) -> DerivedView:
        self.state.show_all_lines = not self.state.show_all_lines
        return self._action("toggle_show_all_lines", value=self.state.show_all_lines)
