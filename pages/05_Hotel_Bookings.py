# pages/05_Hotel_Bookings.py
from __future__ import annotations

import streamlit as st

from ost_models import HOTEL
from ost_ui import create_form, require_login, setup_page

setup_page("Hotel Bookings", "🏨")
actor = require_login("05_Hotel_Bookings")

st.subheader("➕ New hotel booking")
create_form("hotel", HOTEL, actor)
