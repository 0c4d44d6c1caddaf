# pages/08_Visa_Search.py
from __future__ import annotations

import streamlit as st

from ost_filters import SEARCH_WINDOWS, distinct_values, filter_records
from ost_models import PAYMENT_STATUSES, VISA
from ost_ui import (filter_controls, list_downloads, live_records, owner_query, require_login,
                    setup_page, show_table, show_totals)

setup_page("Visa Search", "🔎")
actor = require_login("08_Visa_Search", live=True)

cache = live_records(f"visa_search:{actor.uid}", VISA, owner_query(VISA, actor), sort=[("date", -1)])

vf = filter_controls(
    "visa_search", VISA, SEARCH_WINDOWS,
    categories=[
        ("paymentStatus", PAYMENT_STATUSES),
        ("country", distinct_values(cache.records, "country")),
    ],
)
shown = filter_records(cache.records, vf, VISA)

show_totals(shown, VISA)
show_table(shown, VISA)
list_downloads("visa_search", shown, VISA, "Visa Search")
