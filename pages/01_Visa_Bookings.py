# pages/01_Visa_Bookings.py
from __future__ import annotations

import streamlit as st

from ost_models import VISA
from ost_ui import create_form, require_login, setup_page

setup_page("Visa Bookings", "🛂")
actor = require_login("01_Visa_Bookings")

st.subheader("➕ New visa booking")
st.caption("Vendor details are asked for on Appointment visas only. Profit = total fee − received fee.")
create_form("visa", VISA, actor)
