# pages/06_All_Hotel_Bookings.py
from __future__ import annotations

from ost_filters import VIEW_ALL_WINDOWS
from ost_models import HOTEL
from ost_ui import records_page, require_login, setup_page

setup_page("All Hotel Bookings", "🏨")
actor = require_login("06_All_Hotel_Bookings", live=True)

# hotel bookings are shared across the team
records_page(
    "all_hotels", HOTEL, actor,
    query=None,
    windows=VIEW_ALL_WINDOWS,
    title="Hotel Bookings",
    with_totals=True,
    with_exports=True,
)
