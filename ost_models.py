# ost_models.py
"""
Record schemas for the three booking variants (visa / Umrah / hotel).

A schema is the single place that says, for one record type: which
collection it lives in, who owns it, which date drives the date-window
filters, which fields are required on create, which may be written on
edit, and which fields are derived.
"""
from __future__ import annotations
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ost_db import COL_HOTELS, COL_UMRAH, COL_VISAS
from ost_derived import DerivedRule, apply_derived, nights_rule, profit_rule, to_date, to_number

ALL = "All"


class RecordType(str, Enum):
    VISA = "visa"
    UMRAH = "umrah"
    HOTEL = "hotel"


class ValidationError(ValueError):
    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = list(errors)


@dataclass(frozen=True)
class FieldSpec:
    name: str
    label: str
    kind: str = "text"  # text | number | date | choice | email | textarea
    options: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ConditionalFields:
    """Fields that only exist on a record while `discriminator == value`."""
    discriminator: str
    value: str
    fields: Tuple[str, ...]

    def active(self, record: Mapping[str, Any]) -> bool:
        return str(record.get(self.discriminator) or "").strip() == self.value


@dataclass(frozen=True, eq=False)
class RecordSchema:
    type: RecordType
    label: str
    collection: str
    owner_field: str
    owner_email_field: str
    date_field: str
    fields: Tuple[FieldSpec, ...]
    mutable_fields: Tuple[str, ...]
    required_fields: Tuple[str, ...]
    received_field: str
    payable_field: str
    derived: Tuple[DerivedRule, ...] = ()
    conditional: Tuple[ConditionalFields, ...] = ()
    enforce_owner: bool = False
    status_field: Optional[str] = None
    status_options: Tuple[str, ...] = ()
    search_fields: Tuple[str, ...] = ()
    dedupe_key: Tuple[str, ...] = ()
    aliases: Mapping[str, str] = field(default_factory=dict)
    identifier_fields: Tuple[str, str] = ("", "")
    extra_checks: Optional[Callable[[Mapping[str, Any]], List[str]]] = None

    @property
    def numeric_fields(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields if f.kind == "number")

    @property
    def derived_fields(self) -> Tuple[str, ...]:
        return tuple(r.target for r in self.derived)

    def spec_for(self, name: str) -> Optional[FieldSpec]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def label_for(self, name: str) -> str:
        f = self.spec_for(name)
        return f.label if f else name

    def writable_fields(self, record: Mapping[str, Any]) -> Tuple[str, ...]:
        """Mutable fields for this record, conditional ones resolved."""
        out = list(self.mutable_fields)
        for cond in self.conditional:
            if cond.active(record):
                out.extend(f for f in cond.fields if f not in out)
            else:
                out = [f for f in out if f not in cond.fields]
        return tuple(out)


# =========================================================
# Helpers
# =========================================================
def stored_value(schema: RecordSchema, record: Mapping[str, Any], name: str) -> Any:
    """Value of a storage field, falling back to its legacy/alias spelling."""
    v = record.get(name)
    if v in (None, "") and name in schema.aliases:
        v = record.get(schema.aliases[name], v)
    return v


def _sort_key(value: Any) -> float:
    if isinstance(value, datetime):
        return value.timestamp()
    d = to_date(value)
    if d is None:
        return float("-inf")
    return datetime(d.year, d.month, d.day).timestamp()


def materialize(doc: Mapping[str, Any], schema: RecordSchema) -> Dict[str, Any]:
    rec = {k: v for k, v in doc.items() if k != "_id"}
    rec["id"] = str(doc.get("_id", doc.get("id", "")))
    return apply_derived(rec, schema.derived)


def dedupe_newest(records: Sequence[Mapping[str, Any]], key: Tuple[str, ...], date_field: str) -> List[Dict[str, Any]]:
    """Newest first by `date_field`; keep the first record per composite key."""
    ordered = sorted(records, key=lambda r: _sort_key(r.get(date_field)), reverse=True)
    seen = set()
    out = []
    for r in ordered:
        k = tuple(str(r.get(f) or "") for f in key)
        if k in seen:
            continue
        seen.add(k)
        out.append(dict(r))
    return out


def materialize_snapshot(docs, schema: RecordSchema) -> List[Dict[str, Any]]:
    records = [materialize(d, schema) for d in docs]
    if schema.dedupe_key:
        records = dedupe_newest(records, schema.dedupe_key, schema.date_field)
    return records


def validate_new_record(form: Mapping[str, Any], schema: RecordSchema) -> List[str]:
    errors: List[str] = []
    required = list(schema.required_fields)
    for cond in schema.conditional:
        if cond.active(form):
            required.extend(f for f in cond.fields if f not in required)
    for name in required:
        v = form.get(name)
        if v is None or (isinstance(v, str) and not v.strip()):
            errors.append(f"Please enter {schema.label_for(name).lower()}.")
    if schema.extra_checks:
        errors.extend(schema.extra_checks(form))
    return errors


# =========================================================
# Visa
# =========================================================
VISA_TYPES = ("Business", "Tourism", "Family Visit", "National Visa", "Appointment")
VISA_STATUSES = ("Approved", "Rejected", "Processing")
PAYMENT_STATUSES = ("Paid", "Unpaid", "Partially Paid")

_NAME_RE = re.compile(r"^[A-Za-z ]+$")
_PHONE_RE = re.compile(r"^\d{10,15}$")


def _is_number(x: Any) -> bool:
    if x is None or (isinstance(x, str) and not x.strip()):
        return False
    try:
        float(str(x).replace(",", ""))
        return True
    except ValueError:
        return False


def _add_months(d: date, months: int) -> date:
    y = d.year + (d.month - 1 + months) // 12
    m = (d.month - 1 + months) % 12 + 1
    for day in (d.day, 30, 29, 28):
        try:
            return date(y, m, day)
        except ValueError:
            continue
    return date(y, m, 28)


def _visa_checks(form: Mapping[str, Any]) -> List[str]:
    errors: List[str] = []
    name = str(form.get("fullName") or "").strip()
    if name and not _NAME_RE.match(name):
        errors.append("Name must contain only letters.")
    if form.get("totalFee") not in (None, "") and not _is_number(form.get("totalFee")):
        errors.append("Enter valid total fee.")
    rf = form.get("receivedFee")
    if rf not in (None, ""):
        if not _is_number(rf):
            errors.append("Enter valid received fee.")
        elif to_number(rf) < 0:
            errors.append("Received fee cannot be negative.")
        elif to_number(rf) > to_number(form.get("totalFee")):
            errors.append("Received fee cannot exceed total fee.")
    if form.get("embassyFee") not in (None, "") and not _is_number(form.get("embassyFee")):
        errors.append("Enter valid embassy fee.")
    phone = str(form.get("phone") or "").strip()
    if phone and not _PHONE_RE.match(phone):
        errors.append("Phone must be 10-15 digits.")
    applied, expiry = to_date(form.get("date")), to_date(form.get("expiryDate"))
    if applied and expiry and expiry < _add_months(applied, 7):
        errors.append("Expiry must be at least 7 months after application date.")
    if str(form.get("visaType") or "") == "Appointment":
        vf = form.get("vendorFee")
        if vf not in (None, "") and not _is_number(vf):
            errors.append("Vendor fee must be a number.")
    return errors


VISA = RecordSchema(
    type=RecordType.VISA,
    label="Visa",
    collection=COL_VISAS,
    owner_field="userId",
    owner_email_field="userEmail",
    date_field="date",
    fields=(
        FieldSpec("passport", "Passport No"),
        FieldSpec("expiryDate", "Expiry Date", "date"),
        FieldSpec("fullName", "Full Name"),
        FieldSpec("visaType", "Visa Type", "choice", VISA_TYPES),
        FieldSpec("date", "Application Date", "date"),
        FieldSpec("country", "Country"),
        FieldSpec("visaStatus", "Visa Status", "choice", VISA_STATUSES),
        FieldSpec("totalFee", "Total Fee", "number"),
        FieldSpec("receivedFee", "Received Fee", "number"),
        FieldSpec("remainingFee", "Remaining Fee", "number"),
        FieldSpec("profit", "Profit", "number"),
        FieldSpec("paymentStatus", "Payment Status", "choice", PAYMENT_STATUSES),
        FieldSpec("embassyFee", "Embassy Fee", "number"),
        FieldSpec("sentToEmbassy", "Sent To Embassy", "date"),
        FieldSpec("receiveFromEmbassy", "Received From Embassy", "date"),
        FieldSpec("reference", "Reference"),
        FieldSpec("email", "Email", "email"),
        FieldSpec("phone", "Phone"),
        FieldSpec("remarks", "Remarks", "textarea"),
        FieldSpec("vendor", "Vendor Name"),
        FieldSpec("vendorContact", "Vendor Contact"),
        FieldSpec("vendorFee", "Vendor Fee", "number"),
    ),
    mutable_fields=(
        "passport", "fullName", "visaType", "country", "date", "totalFee",
        "receivedFee", "remainingFee", "paymentStatus", "visaStatus",
        "embassyFee", "sentToEmbassy", "receiveFromEmbassy", "email",
    ),
    required_fields=(
        "passport", "fullName", "visaType", "date", "totalFee", "receivedFee",
        "paymentStatus", "country", "visaStatus", "embassyFee", "email",
        "phone", "expiryDate",
    ),
    received_field="totalFee",
    payable_field="receivedFee",
    derived=(profit_rule("totalFee", "receivedFee"),),
    conditional=(ConditionalFields("visaType", "Appointment", ("vendor", "vendorContact", "vendorFee")),),
    enforce_owner=True,
    status_field="visaStatus",
    status_options=VISA_STATUSES,
    search_fields=("fullName", "passport", "country"),
    dedupe_key=("passport", "country"),
    aliases={"receiveFromEmbassy": "receivedFromEmbassy"},
    identifier_fields=("passport", "country"),
    extra_checks=_visa_checks,
)

# =========================================================
# Umrah
# =========================================================
UMRAH = RecordSchema(
    type=RecordType.UMRAH,
    label="Umrah",
    collection=COL_UMRAH,
    owner_field="createdByUid",
    owner_email_field="createdByEmail",
    date_field="createdAt",
    fields=(
        FieldSpec("fullName", "Full Name"),
        FieldSpec("phone", "Phone"),
        FieldSpec("passportNumber", "Passport Number"),
        FieldSpec("visaNumber", "Visa Number"),
        FieldSpec("makkahHotel", "Makkah Hotel"),
        FieldSpec("makkahCheckIn", "Makkah Check In", "date"),
        FieldSpec("makkahCheckOut", "Makkah Check Out", "date"),
        FieldSpec("makkahNights", "Makkah Nights", "number"),
        FieldSpec("madinahHotel", "Madinah Hotel"),
        FieldSpec("madinahCheckIn", "Madinah Check In", "date"),
        FieldSpec("madinahCheckOut", "Madinah Check Out", "date"),
        FieldSpec("madinahNights", "Madinah Nights", "number"),
        FieldSpec("makkahagainhotel", "2nd Makkah Hotel"),
        FieldSpec("makkahCheckInagain", "2nd Makkah Check In", "date"),
        FieldSpec("makkahCheckOutagain", "2nd Makkah Check Out", "date"),
        FieldSpec("makkahagainNights", "2nd Makkah Nights", "number"),
        FieldSpec("vendor", "Vendor"),
        FieldSpec("payable", "Payable", "number"),
        FieldSpec("received", "Received", "number"),
        FieldSpec("profit", "Profit", "number"),
    ),
    mutable_fields=(
        "fullName", "phone", "passportNumber", "visaNumber",
        "makkahHotel", "makkahCheckIn", "makkahCheckOut",
        "madinahHotel", "madinahCheckIn", "madinahCheckOut",
        "makkahagainhotel", "makkahCheckInagain", "makkahCheckOutagain",
        "vendor", "payable", "received",
    ),
    required_fields=(
        "fullName", "phone", "passportNumber", "visaNumber",
        "makkahHotel", "makkahCheckIn", "makkahCheckOut",
        "madinahHotel", "madinahCheckIn", "madinahCheckOut",
        "vendor", "payable", "received",
    ),
    received_field="received",
    payable_field="payable",
    derived=(
        profit_rule("received", "payable"),
        nights_rule("makkahCheckIn", "makkahCheckOut", "makkahNights"),
        nights_rule("madinahCheckIn", "madinahCheckOut", "madinahNights"),
        nights_rule("makkahCheckInagain", "makkahCheckOutagain", "makkahagainNights"),
    ),
    identifier_fields=("passportNumber", "visaNumber"),
)

# =========================================================
# Hotel
# =========================================================
HOTEL = RecordSchema(
    type=RecordType.HOTEL,
    label="Hotel",
    collection=COL_HOTELS,
    owner_field="createdByUid",
    owner_email_field="userEmail",
    date_field="createdAt",
    fields=(
        FieldSpec("bookingId", "Booking ID"),
        FieldSpec("clientName", "Client Name"),
        FieldSpec("property", "Property"),
        FieldSpec("numberOfRooms", "No. of Rooms", "number"),
        FieldSpec("numberOfAdults", "No. of Adults", "number"),
        FieldSpec("numberOfChildren", "No. of Children", "number"),
        FieldSpec("arrivalDate", "Arrival Date", "date"),
        FieldSpec("departureDate", "Departure Date", "date"),
        FieldSpec("nightsStayed", "Nights Stayed", "number"),
        FieldSpec("paymentMethod", "Payment Method"),
        FieldSpec("payable", "Payable", "number"),
        FieldSpec("received", "Received", "number"),
        FieldSpec("profit", "Profit", "number"),
        FieldSpec("notes", "Notes", "textarea"),
    ),
    mutable_fields=(
        "bookingId", "clientName", "property", "numberOfRooms",
        "numberOfAdults", "numberOfChildren", "arrivalDate", "departureDate",
        "paymentMethod", "payable", "received", "notes",
    ),
    required_fields=(
        "bookingId", "clientName", "property", "numberOfRooms",
        "numberOfAdults", "numberOfChildren", "arrivalDate", "departureDate",
        "paymentMethod", "payable", "received",
    ),
    received_field="received",
    payable_field="payable",
    derived=(
        profit_rule("received", "payable"),
        nights_rule("arrivalDate", "departureDate", "nightsStayed"),
    ),
    identifier_fields=("bookingId", "property"),
)

SCHEMAS: Dict[RecordType, RecordSchema] = {s.type: s for s in (VISA, UMRAH, HOTEL)}
