from bson import ObjectId

from ost_models import (HOTEL, UMRAH, VISA, dedupe_newest, materialize, materialize_snapshot,
                        stored_value, validate_new_record)


def valid_visa_form(**kw):
    form = {
        "passport": "AB1234567", "fullName": "Ali Khan", "visaType": "Business",
        "date": "2024-01-10", "expiryDate": "2025-01-10", "country": "Germany",
        "visaStatus": "Processing", "totalFee": "1000", "receivedFee": "400",
        "remainingFee": "600", "paymentStatus": "Partially Paid", "embassyFee": "150",
        "email": "ali@example.com", "phone": "03001234567",
    }
    form.update(kw)
    return form


def test_materialize_exposes_string_id_and_derived_profit():
    oid = ObjectId()
    rec = materialize({"_id": oid, "totalFee": 1000, "receivedFee": 400, "profit": 1}, VISA)
    assert rec["id"] == str(oid)
    assert "_id" not in rec
    assert rec["profit"] == 600


def test_materialize_umrah_nights_and_profit():
    rec = materialize({"_id": "x", "received": 5000, "payable": 4200,
                       "makkahCheckIn": "2024-02-01", "makkahCheckOut": "2024-02-05",
                       "madinahCheckIn": "2024-02-05", "madinahCheckOut": "2024-02-04"}, UMRAH)
    assert rec["profit"] == 800
    assert rec["makkahNights"] == 4
    assert rec["madinahNights"] == 0
    assert rec["makkahagainNights"] == ""


def test_dedupe_keeps_newest_per_passport_and_country():
    docs = [
        {"_id": "old", "passport": "P1", "country": "Germany", "date": "2024-01-01"},
        {"_id": "new", "passport": "P1", "country": "Germany", "date": "2024-03-01"},
        {"_id": "fr", "passport": "P1", "country": "France", "date": "2023-06-01"},
    ]
    out = materialize_snapshot(docs, VISA)
    assert [r["id"] for r in out] == ["new", "fr"]


def test_dedupe_newest_without_dates_keeps_first_seen():
    out = dedupe_newest([{"k": 1, "d": ""}, {"k": 1, "d": None, "tag": "second"}], ("k",), "d")
    assert len(out) == 1


def test_umrah_and_hotel_are_not_deduped():
    docs = [{"_id": "a", "passportNumber": "P1"}, {"_id": "b", "passportNumber": "P1"}]
    assert len(materialize_snapshot(docs, UMRAH)) == 2


def test_stored_value_falls_back_to_legacy_spelling():
    assert stored_value(VISA, {"receivedFromEmbassy": "2024-03-01"}, "receiveFromEmbassy") == "2024-03-01"
    assert stored_value(VISA, {"receiveFromEmbassy": "2024-04-01", "receivedFromEmbassy": "x"},
                        "receiveFromEmbassy") == "2024-04-01"


def test_valid_visa_form_passes():
    assert validate_new_record(valid_visa_form(), VISA) == []


def test_missing_visa_fields_are_reported():
    errors = validate_new_record({}, VISA)
    assert "Please enter passport no." in errors
    assert "Please enter email." in errors
    assert "Please enter vendor name." not in errors


def test_visa_application_date_is_required():
    for blank in ("", "  ", None):
        errors = validate_new_record(valid_visa_form(date=blank), VISA)
        assert "Please enter application date." in errors


def test_visa_field_rules():
    errors = validate_new_record(valid_visa_form(
        fullName="Ali 007", receivedFee="1500", phone="12-34", expiryDate="2024-03-01", totalFee="1000"), VISA)
    assert "Name must contain only letters." in errors
    assert "Received fee cannot exceed total fee." in errors
    assert "Phone must be 10-15 digits." in errors
    assert "Expiry must be at least 7 months after application date." in errors


def test_negative_and_non_numeric_fees():
    assert "Received fee cannot be negative." in validate_new_record(valid_visa_form(receivedFee="-5"), VISA)
    assert "Enter valid total fee." in validate_new_record(valid_visa_form(totalFee="lots"), VISA)


def test_appointment_visa_needs_vendor_details():
    errors = validate_new_record(valid_visa_form(visaType="Appointment", vendorFee="abc"), VISA)
    assert "Please enter vendor name." in errors
    assert "Please enter vendor contact." in errors
    assert "Vendor fee must be a number." in errors


def test_writable_fields_follow_visa_type():
    assert "vendorFee" in VISA.writable_fields({"visaType": "Appointment"})
    assert "vendorFee" not in VISA.writable_fields({"visaType": "Business"})
    assert "visaStatus" in VISA.writable_fields({})


def test_umrah_second_makkah_stay_is_optional():
    form = {f: "x" for f in UMRAH.required_fields}
    form.update(payable="100", received="200")
    assert validate_new_record(form, UMRAH) == []


def test_hotel_notes_optional_everything_else_required():
    errors = validate_new_record({"notes": "late arrival"}, HOTEL)
    assert len(errors) == len(HOTEL.required_fields)
    assert "notes" not in HOTEL.required_fields
