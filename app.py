# app.py
from __future__ import annotations

import logging

import streamlit as st
from pymongo.errors import PyMongoError

from ost_filters import format_money, totals
from ost_models import HOTEL, UMRAH, VISA, materialize_snapshot
from ost_ui import get_collection, owner_query, require_login, setup_page

logger = logging.getLogger(__name__)

# ----------------- App config -----------------
setup_page("OS Travels & Tours – Back Office", "🧭")

actor = require_login("app")

st.markdown(
    f"Welcome **{actor.name}**. Use the pages in the sidebar to add bookings, "
    "review your records and download reports."
)

# ----------------- My totals -----------------
st.subheader("📊 My bookings")


def _my_summary(schema):
    docs = get_collection(schema).find(owner_query(schema, actor))
    return totals(materialize_snapshot(docs, schema), schema)


cols = st.columns(3)
for col, schema in zip(cols, (VISA, UMRAH, HOTEL)):
    with col:
        st.markdown(f"**{schema.label}**")
        try:
            t = _my_summary(schema)
        except PyMongoError as e:
            logger.error("summary for %s failed: %s", schema.collection, e)
            st.error(f"Could not load {schema.label.lower()} bookings.")
            continue
        st.metric("Bookings", t["count"])
        st.metric("Profit", format_money(t["profit"]))
        st.caption(
            f"{schema.label_for(schema.received_field)}: {format_money(t['received'])} · "
            f"{schema.label_for(schema.payable_field)}: {format_money(t['payable'])}"
        )

if actor.is_admin:
    st.info("🛡️ You have admin access. See **Admin All Bookings** for every agent's records and **Admin Logs** for user activity.")
