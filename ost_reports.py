# ost_reports.py
from __future__ import annotations
import re
from datetime import date, datetime
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from fpdf import FPDF
from fpdf.fonts import FontFace
from fpdf.enums import TableCellFillMode, XPos, YPos

from ost_db import today_local
from ost_filters import format_money, record_day, total_label, totals
from ost_models import RecordSchema, RecordType, stored_value

ORG = {
    "name": "OS TRAVELS & TOURS",
    "authorized": "Authorized by OS Travels & Tours",
}

MONEY_FIELDS = {"totalFee", "receivedFee", "remainingFee", "embassyFee", "vendorFee",
                "payable", "received", "profit"}

# ReportType, tagline, title band
_HEADERS = {
    RecordType.VISA: ("Visa_Booking", "Your Trusted Travel Partner", "VISA BOOKING REPORT"),
    RecordType.UMRAH: ("Umrah_Booking", "Your Trusted Umrah Partner", "UMRAH BOOKING REPORT"),
    RecordType.HOTEL: ("Hotel_Booking", "Your Trusted Hotel Partner", "HOTEL BOOKING REPORT"),
}

# (label, field, label, field) per table row, in print order
_ROWS = {
    RecordType.VISA: [
        ("Passport Number", "passport", "Full Name", "fullName"),
        ("Visa Type", "visaType", "Application Date", "date"),
        ("Expiry Date", "expiryDate", "Sent To Embassy", "sentToEmbassy"),
        ("Received From Embassy", "receiveFromEmbassy", "Country", "country"),
        ("Visa Status", "visaStatus", "Total Fee", "totalFee"),
        ("Received Fee", "receivedFee", "Remaining Fee", "remainingFee"),
        ("Reference", "reference", "Embassy Fee", "embassyFee"),
        ("Payment Status", "paymentStatus", "Email", "email"),
        ("Phone", "phone", "Remarks", "remarks"),
        ("Vendor Fee", "vendorFee", "Vendor Contact", "vendorContact"),
        ("Profit", "profit", "Vendor", "vendor"),
    ],
    RecordType.UMRAH: [
        ("Full Name", "fullName", "Phone", "phone"),
        ("Passport Number", "passportNumber", "Visa Number", "visaNumber"),
        ("Vendor", "vendor", "Profit", "profit"),
        ("Payable", "payable", "Received", "received"),
        ("Makkah Hotel", "makkahHotel", "Nights", "makkahNights"),
        ("Check In", "makkahCheckIn", "Check Out", "makkahCheckOut"),
        ("Madinah Hotel", "madinahHotel", "Nights", "madinahNights"),
        ("Check In", "madinahCheckIn", "Check Out", "madinahCheckOut"),
        ("2nd Makkah Hotel", "makkahagainhotel", "Nights", "makkahagainNights"),
        ("Check In", "makkahCheckInagain", "Check Out", "makkahCheckOutagain"),
    ],
    RecordType.HOTEL: [
        ("Booking ID", "bookingId", "Client Name", "clientName"),
        ("Property", "property", "Payment Method", "paymentMethod"),
        ("No. of Rooms", "numberOfRooms", "Nights Stayed", "nightsStayed"),
        ("No. of Adults", "numberOfAdults", "No. of Children", "numberOfChildren"),
        ("Arrival Date", "arrivalDate", "Departure Date", "departureDate"),
        ("Payable", "payable", "Received", "received"),
        ("Profit", "profit", "Notes", "notes"),
    ],
}

# columns of the list report / CSV
LIST_COLUMNS = {
    RecordType.VISA: ["passport", "fullName", "country", "visaType", "date", "visaStatus",
                      "paymentStatus", "totalFee", "receivedFee", "remainingFee", "profit"],
    RecordType.UMRAH: ["fullName", "passportNumber", "visaNumber", "phone", "makkahHotel",
                       "makkahNights", "madinahHotel", "madinahNights", "vendor",
                       "payable", "received", "profit"],
    RecordType.HOTEL: ["bookingId", "clientName", "property", "arrivalDate", "departureDate",
                       "nightsStayed", "paymentMethod", "payable", "received", "profit"],
}


# ================= text helpers =================
def _ascii_downgrade(s: str) -> str:
    return (str(s)
            .replace("₨", "Rs ")
            .replace("—", "-").replace("–", "-").replace("•", "-").replace("→", "->")
            .replace("“", '"').replace("”", '"').replace("’", "'").replace("‘", "'")
            .replace("™", "(TM)"))


def _txt(s: Any) -> str:
    # core fonts are latin-1 only
    return _ascii_downgrade("" if s is None else s).encode("latin-1", "replace").decode("latin-1")


def _display(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    if isinstance(value, date):
        return value.isoformat()
    return "" if value is None else str(value)


def cell_value(record: Mapping[str, Any], schema: RecordSchema, name: str) -> str:
    v = stored_value(schema, record, name)
    if name in MONEY_FIELDS:
        return format_money(v)
    s = _display(v).strip()
    if not s:
        return "No remarks" if name == "remarks" else "-"
    return s


def _safe_part(s: Any) -> str:
    part = re.sub(r"[^A-Za-z0-9.-]+", "-", str(s or "").strip()).strip("-")
    return part or "NA"


def report_filename(report_type: str, primary: Any, secondary: Any, today: Optional[date] = None) -> str:
    today = today or today_local()
    return f"{report_type}_{_safe_part(primary)}_{_safe_part(secondary)}_{today.isoformat()}.pdf"


def record_report_filename(record: Mapping[str, Any], schema: RecordSchema, today: Optional[date] = None) -> str:
    report_type = _HEADERS[schema.type][0]
    p, s = schema.identifier_fields
    return report_filename(report_type, record.get(p), record.get(s), today)


def record_table_rows(record: Mapping[str, Any], schema: RecordSchema) -> List[Tuple[str, str, str, str]]:
    return [(l1, cell_value(record, schema, f1), l2, cell_value(record, schema, f2))
            for l1, f1, l2, f2 in _ROWS[schema.type]]


# ================ FPDF class =====================
class ReportPDF(FPDF):
    def __init__(self, tagline: str, title_band: str, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tagline = tagline
        self.title_band = title_band
        self.set_title(title_band.title())
        self.set_author(ORG["name"])
        self.set_creator("OS Travels back office")

    def letterhead(self) -> None:
        self.set_font("Helvetica", "B", 18)
        self.cell(0, 9, _txt(ORG["name"]), align="C", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.set_font("Helvetica", "I", 10)
        self.cell(0, 6, _txt(self.tagline), align="C", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.set_draw_color(50, 50, 50)
        self.line(self.l_margin, self.get_y() + 2, self.w - self.r_margin, self.get_y() + 2)
        self.ln(6)

        self.set_fill_color(34, 139, 34)
        self.set_text_color(255, 255, 255)
        self.set_font("Helvetica", "B", 12)
        self.cell(0, 8, _txt(self.title_band), align="C", fill=True, new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.set_text_color(0, 0, 0)
        self.ln(4)

    def signoff(self, today: date) -> None:
        self.ln(12)
        self.set_font("Helvetica", "I", 9)
        y = self.get_y()
        self.cell(0, 5, _txt(ORG["authorized"]), align="L")
        self.set_xy(self.l_margin, y)
        self.cell(0, 5, _txt(f"Generated on: {today.isoformat()}"), align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT)


_HEAD_STYLE = FontFace(emphasis="BOLD", color=(255, 255, 255), fill_color=(40, 40, 40))


def _pdf_bytes(pdf: FPDF) -> bytes:
    return bytes(pdf.output())


def build_record_pdf(record: Mapping[str, Any], schema: RecordSchema, today: Optional[date] = None) -> bytes:
    today = today or today_local()
    _, tagline, band = _HEADERS[schema.type]
    pdf = ReportPDF(tagline, band, orientation="P", unit="mm", format="A4")
    pdf.set_margins(15, 15, 15)
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()
    pdf.letterhead()

    pdf.set_font("Helvetica", "", 9)
    with pdf.table(
        col_widths=(28, 22, 28, 22),
        line_height=6,
        headings_style=_HEAD_STYLE,
        cell_fill_color=(245, 245, 245),
        cell_fill_mode=TableCellFillMode.ROWS,
    ) as table:
        head = table.row()
        for h in ("Field", "Value", "Field", "Value"):
            head.cell(h)
        for data_row in record_table_rows(record, schema):
            row = table.row()
            for datum in data_row:
                row.cell(_txt(datum))

    pdf.signoff(today)
    return _pdf_bytes(pdf)


def summary_lines(records: Sequence[Mapping[str, Any]], schema: RecordSchema) -> List[str]:
    t = totals(records, schema)
    return [
        f"Records: {t['count']}",
        f"{total_label(schema, schema.received_field)}: {format_money(t['received'])}",
        f"{total_label(schema, schema.payable_field)}: {format_money(t['payable'])}",
        f"Total Profit: {format_money(t['profit'])}",
    ]


def build_list_pdf(records: Sequence[Mapping[str, Any]], schema: RecordSchema, title: str,
                   today: Optional[date] = None) -> bytes:
    today = today or today_local()
    _, tagline, _ = _HEADERS[schema.type]
    pdf = ReportPDF(tagline, title.upper(), orientation="L", unit="mm", format="A4")
    pdf.set_margins(10, 12, 10)
    pdf.set_auto_page_break(auto=True, margin=12)
    pdf.add_page()
    pdf.letterhead()

    pdf.set_font("Helvetica", "B", 10)
    pdf.cell(0, 6, _txt("   |   ".join(summary_lines(records, schema))), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(3)

    cols = LIST_COLUMNS[schema.type]
    pdf.set_font("Helvetica", "", 7)
    with pdf.table(
        line_height=5,
        headings_style=_HEAD_STYLE,
        cell_fill_color=(245, 245, 245),
        cell_fill_mode=TableCellFillMode.ROWS,
    ) as table:
        head = table.row()
        head.cell("#")
        for c in cols:
            head.cell(_txt(schema.label_for(c)))
        for i, r in enumerate(records, start=1):
            row = table.row()
            row.cell(str(i))
            for c in cols:
                row.cell(_txt(cell_value(r, schema, c)))

    pdf.signoff(today)
    return _pdf_bytes(pdf)


def list_report_filename(schema: RecordSchema, today: Optional[date] = None) -> str:
    today = today or today_local()
    return f"{_HEADERS[schema.type][0]}s_{today.isoformat()}.pdf"


# ================ CSV =====================
def records_to_frame(records: Sequence[Mapping[str, Any]], schema: RecordSchema) -> pd.DataFrame:
    cols = list(LIST_COLUMNS[schema.type])
    created = schema.date_field not in cols
    headers = ["id"] + [schema.label_for(c) for c in cols] + (["Created On"] if created else [])
    rows: List[List[Any]] = []
    for r in records:
        row: List[Any] = [r.get("id", "")]
        for c in cols:
            v = stored_value(schema, r, c)
            row.append(_display(v) if isinstance(v, (date, datetime)) else ("" if v is None else v))
        if created:
            d = record_day(r.get(schema.date_field))
            row.append(d.isoformat() if d else "")
        rows.append(row)
    return pd.DataFrame(rows, columns=headers)


def records_to_csv_bytes(records: Sequence[Mapping[str, Any]], schema: RecordSchema) -> bytes:
    return records_to_frame(records, schema).to_csv(index=False).encode("utf-8")
