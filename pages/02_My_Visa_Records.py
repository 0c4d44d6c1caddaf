# pages/02_My_Visa_Records.py
from __future__ import annotations

from ost_filters import VISA_WINDOWS
from ost_models import VISA
from ost_ui import owner_query, records_page, require_login, setup_page

setup_page("My Visa Records", "📋")
actor = require_login("02_My_Visa_Records", live=True)

# one row per passport + country, newest application first
records_page(
    "my_visas", VISA, actor,
    query=owner_query(VISA, actor),
    windows=VISA_WINDOWS,
    title="My Visa Records",
)
