# pages/04_My_Umrah_Bookings.py
from __future__ import annotations

from ost_filters import VIEW_ALL_WINDOWS
from ost_models import UMRAH
from ost_ui import owner_query, records_page, require_login, setup_page

setup_page("My Umrah Bookings", "📒")
actor = require_login("04_My_Umrah_Bookings", live=True)

records_page(
    "my_umrah", UMRAH, actor,
    query=owner_query(UMRAH, actor),
    windows=VIEW_ALL_WINDOWS,
    title="Umrah Bookings",
    with_totals=True,
    with_exports=True,
)
