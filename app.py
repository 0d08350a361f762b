#!/usr/bin/env python3
"""
Transit network dashboard (Streamlit).

Run:
  streamlit run app.py -- --data data/sample
  streamlit run app.py -- --gtfs gtfs
"""

import argparse

import streamlit as st
from streamlit_folium import st_folium

from main import add_dataset_args, load_store
from transit_dashboard import Dashboard
from transit_logging import configure_logging

st.set_page_config(page_title="Transit network", page_icon="\U0001F68B", layout="wide")


def parse_app_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser()
    add_dataset_args(ap)
    args, _ = ap.parse_known_args()
    return args


@st.cache_resource(show_spinner=False)
def get_store(data, gtfs, verbose):
    configure_logging(verbose)
    return load_store(argparse.Namespace(data=data, gtfs=gtfs))


args = parse_app_args()
if "dashboard" not in st.session_state:
    st.session_state["dashboard"] = Dashboard(get_store(args.data, args.gtfs, args.verbose))
dash: Dashboard = st.session_state["dashboard"]


def on_search_change() -> None:
    dash.set_search(st.session_state["search"])


# =========================
#           UI
# =========================
with st.sidebar:
    st.subheader("Layers")
    st.toggle("Show stops", value=dash.state.stops_visible, key="stops", on_change=dash.toggle_stops)
    st.toggle("\U0001F68C Bus", value=dash.state.bus_visible, key="bus", on_change=dash.toggle_bus)
    st.toggle("\U0001F68B Tram", value=dash.state.tram_visible, key="tram", on_change=dash.toggle_tram)

    st.divider()
    st.subheader("Lines")
    st.text_input("Search lines", value=dash.state.search_text, key="search", on_change=on_search_change)

    view = dash.view
    for stat in view.line_stats:
        mark = "✓ " if stat.line_id in dash.state.selected_line_ids else ""
        st.button(
            f"{mark}{stat.line_id} · {stat.stop_count} stops",
            key=f"line_{stat.line_id}",
            on_click=dash.toggle_line,
            args=(stat.line_id,),
            use_container_width=True,
        )
    if not view.line_stats:
        st.caption("No lines match.")

    if not dash.state.search_text and view.matching_line_count > len(view.line_stats):
        st.button(f"Show all ({view.matching_line_count})", on_click=dash.toggle_show_all_lines)
    elif dash.state.show_all_lines and not dash.state.search_text:
        st.button("Show fewer", on_click=dash.toggle_show_all_lines)

    if dash.state.selected_line_ids:
        st.button("Clear selected lines", on_click=dash.clear_lines)

view = dash.view
st.title("Transit network")
c1, c2, c3 = st.columns(3)
c1.metric("Stops shown", f"{len(view.visible_stops):,}")
c2.metric("Route shapes shown", f"{len(view.visible_shapes):,}")
c3.metric("Lines selected", len(dash.state.selected_line_ids))

st_folium(dash.layers.build_map(), width=None, height=640, returned_objects=[])
