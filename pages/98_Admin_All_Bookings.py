# pages/98_Admin_All_Bookings.py
from __future__ import annotations

import streamlit as st

from ost_filters import VIEW_ALL_WINDOWS, VISA_WINDOWS
from ost_models import HOTEL, PAYMENT_STATUSES, UMRAH, VISA
from ost_ui import records_page, require_admin, require_login, setup_page

setup_page("Admin – All Bookings", "🗂️")
actor = require_login("98_Admin_All_Bookings", live=True)
require_admin(actor)

# one live list at a time: switching type closes the previous subscription
kind = st.radio("Booking type", [VISA.label, UMRAH.label, HOTEL.label], horizontal=True, key="admin_kind")

if kind == VISA.label:
    records_page(
        "admin_visas", VISA, actor,
        query=None,
        windows=VISA_WINDOWS,
        title="All Visa Bookings",
        categories=[("paymentStatus", PAYMENT_STATUSES)],
        with_totals=True,
        with_exports=True,
    )
elif kind == UMRAH.label:
    records_page(
        "admin_umrah", UMRAH, actor,
        query=None,
        windows=VIEW_ALL_WINDOWS,
        title="All Umrah Bookings",
        with_totals=True,
        with_exports=True,
    )
else:
    records_page(
        "admin_hotels", HOTEL, actor,
        query=None,
        windows=VIEW_ALL_WINDOWS,
        title="All Hotel Bookings",
        with_totals=True,
        with_exports=True,
    )
