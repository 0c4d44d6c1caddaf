# pages/03_Umrah_Bookings.py
from __future__ import annotations

import streamlit as st

from ost_filters import search_all_values
from ost_models import UMRAH
from ost_ui import (create_form, edit_button, edit_panel, get_editor, live_records, notify,
                    pdf_download, pick_record, require_login, setup_page, show_table)

setup_page("Umrah Bookings", "🕋")
actor = require_login("03_Umrah_Bookings", live=True)

tab_new, tab_search = st.tabs(["➕ New booking", "🔍 Quick search"])

with tab_new:
    st.caption("Nights are counted from check-in to check-out. Profit = received − payable.")
    create_form("umrah", UMRAH, actor)

with tab_search:
    # every agent's Umrah bookings, newest first
    cache = live_records(f"umrah_search:{actor.uid}", UMRAH, None, sort=[("createdAt", -1)])
    editor = get_editor("umrah_q", UMRAH, actor)

    c1, c2, c3 = st.columns([4, 1, 1])
    with c1:
        term = st.text_input("Search", placeholder="Name, passport or phone", key="umrah_q",
                             label_visibility="collapsed")
    with c2:
        if st.button("🔍 Search", key="umrah_q_search", use_container_width=True):
            if not term.strip():
                notify("error", "Enter a name, passport or phone")
                st.session_state.pop("umrah_q_term", None)
                st.session_state.pop("umrah_q_all", None)
            else:
                st.session_state["umrah_q_term"] = term.strip()
                st.session_state.pop("umrah_q_all", None)
    with c3:
        if st.button("📋 Show all", key="umrah_q_show_all", use_container_width=True):
            st.session_state["umrah_q_all"] = True
            st.session_state.pop("umrah_q_term", None)

    active = st.session_state.get("umrah_q_term")
    if st.session_state.get("umrah_q_all"):
        hits = list(cache.records)
        st.caption(f"All **{len(hits)}** Umrah booking(s)")
    elif active:
        hits = search_all_values(cache.records, active)
        st.caption(f"{len(hits)} booking(s) matching **{active}**")
    else:
        hits = None

    if hits is not None:
        show_table(hits, UMRAH, empty_msg="No bookings found.")
        rec = pick_record("umrah_q", hits, UMRAH)
        if rec is not None:
            b1, b2 = st.columns(2)
            with b1:
                edit_button("umrah_q", editor, rec)
            with b2:
                pdf_download("umrah_q", rec, UMRAH)

    edit_panel("umrah_q", editor)
