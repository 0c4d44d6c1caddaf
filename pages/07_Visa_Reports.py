# pages/07_Visa_Reports.py
from __future__ import annotations

import streamlit as st

from ost_models import VISA
from ost_ui import (live_records, owner_query, pdf_download, pick_record, require_login,
                    setup_page, show_table)

setup_page("Visa Reports", "📄")
actor = require_login("07_Visa_Reports", live=True)

cache = live_records(f"visa_reports:{actor.uid}", VISA, owner_query(VISA, actor), sort=[("date", -1)])

passport = st.text_input("Passport number", placeholder="Enter passport number", key="vr_passport")
q = passport.strip().lower()
if not q:
    st.info("Enter a passport number to find the booking.")
    st.stop()

hits = [r for r in cache.records if q in str(r.get("passport") or "").lower()]
if not hits:
    st.warning("No visa booking found for this passport.")
    st.stop()

show_table(hits, VISA)
rec = hits[0] if len(hits) == 1 else pick_record("visa_reports", hits, VISA, label="Several bookings match, pick one")
if rec is not None:
    pdf_download("visa_reports", rec, VISA)
