# ost_editor.py
"""
Write paths: the per-record edit state machine and new-record submission.
"""
from __future__ import annotations
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from bson import ObjectId
from pymongo.errors import PyMongoError

from ost_auth import Actor
from ost_derived import apply_derived, to_number
from ost_live import Notify, log_notify
from ost_models import RecordSchema, ValidationError, stored_value, validate_new_record

logger = logging.getLogger(__name__)

AuditHook = Callable[[str, Mapping[str, Any]], None]


class EditorState(str, Enum):
    IDLE = "idle"
    EDITING = "editing"
    SAVING = "saving"


class OwnershipError(PermissionError):
    pass


def id_filter(record_id: str) -> Dict[str, Any]:
    s = str(record_id)
    return {"_id": ObjectId(s) if ObjectId.is_valid(s) else s}


def _clean(value: Any, numeric: bool) -> Any:
    if isinstance(value, str):
        value = value.strip()
    if numeric and value not in (None, ""):
        return to_number(value)
    return "" if value is None else value


def build_update(draft: Mapping[str, Any], schema: RecordSchema) -> Dict[str, Any]:
    """`$set` payload: the writable field set plus recomputed derived fields."""
    numeric = set(schema.numeric_fields)
    out: Dict[str, Any] = {}
    for name in schema.writable_fields(draft):
        src = schema.aliases.get(name, name)
        out[name] = _clean(draft.get(src), name in numeric)
    derived = apply_derived(out, schema.derived)
    for target in schema.derived_fields:
        out[target] = derived[target]
    for protected in ("_id", "id", schema.owner_field):
        out.pop(protected, None)
    return out


class RecordEditor:
    """
    Idle -> Editing -> Saving -> Idle, with Editing -> Idle on cancel.

    A failed save returns to Editing with the draft intact. `save()` only runs
    from Editing, so a second click while a save is in flight is a no-op.
    """

    def __init__(self, collection, schema: RecordSchema, actor: Actor,
                 notify: Optional[Notify] = None, audit: Optional[AuditHook] = None):
        self.collection = collection
        self.schema = schema
        self.actor = actor
        self.state = EditorState.IDLE
        self.record_id: Optional[str] = None
        self.draft: Dict[str, Any] = {}
        self._notify = notify or log_notify
        self._audit = audit

    @property
    def saving(self) -> bool:
        return self.state == EditorState.SAVING

    def is_editing(self, record_id: Optional[str] = None) -> bool:
        if self.state == EditorState.IDLE:
            return False
        return record_id is None or str(record_id) == self.record_id

    def _owner_checked(self) -> bool:
        # admins maintain every agent's records
        return self.schema.enforce_owner and not self.actor.is_admin

    def begin(self, record: Mapping[str, Any]) -> bool:
        if self.state == EditorState.SAVING:
            return False
        s = self.schema
        if self._owner_checked() and record.get(s.owner_field) != self.actor.uid:
            self._notify("error", "You can only edit your own records.")
            return False
        draft = dict(record)
        for storage, alias in s.aliases.items():
            draft[alias] = stored_value(s, record, storage)
        self.draft = apply_derived(draft, s.derived)
        self.record_id = str(record.get("id"))
        self.state = EditorState.EDITING
        return True

    def set_field(self, name: str, value: Any) -> None:
        if self.state != EditorState.EDITING:
            return
        updated = dict(self.draft)
        updated[name] = value
        self.draft = apply_derived(updated, self.schema.derived)

    def cancel(self) -> None:
        if self.state == EditorState.SAVING:
            return
        self._reset()

    def _reset(self) -> None:
        self.state = EditorState.IDLE
        self.record_id = None
        self.draft = {}

    def _check_owner(self, flt: Mapping[str, Any]) -> None:
        current = self.collection.find_one(flt)
        if current is None:
            raise OwnershipError("Record no longer exists.")
        if self._owner_checked() and current.get(self.schema.owner_field) != self.actor.uid:
            raise OwnershipError("You can only update your own records.")

    def save(self) -> bool:
        if self.state != EditorState.EDITING:
            return False
        self.state = EditorState.SAVING
        flt = id_filter(self.record_id)
        try:
            self._check_owner(flt)
            payload = build_update(self.draft, self.schema)
            self.collection.update_one(flt, {"$set": payload})
        except OwnershipError as e:
            self.state = EditorState.EDITING
            self._notify("error", str(e))
            return False
        except PyMongoError as e:
            logger.error("update %s/%s failed: %s", self.schema.collection, self.record_id, e)
            self.state = EditorState.EDITING
            self._notify("error", f"Error updating booking: {e}")
            return False

        if self._audit:
            self._audit("record_update", {"collection": self.schema.collection, "id": self.record_id})
        self._reset()
        self._notify("success", "Booking updated successfully!")
        return True


# =========================================================
# Create
# =========================================================
def build_new_document(form: Mapping[str, Any], schema: RecordSchema, actor: Actor,
                       now: Optional[datetime] = None) -> Dict[str, Any]:
    errors = validate_new_record(form, schema)
    if errors:
        raise ValidationError(errors)
    numeric = set(schema.numeric_fields)
    doc: Dict[str, Any] = {}
    for f in schema.fields:
        if f.name in schema.derived_fields:
            continue
        doc[f.name] = _clean(form.get(f.name), f.name in numeric)
    for cond in schema.conditional:
        if not cond.active(doc):
            for name in cond.fields:
                doc[name] = 0 if name in numeric else ""
    doc = apply_derived(doc, schema.derived)
    doc[schema.owner_field] = actor.uid
    doc[schema.owner_email_field] = actor.email
    if schema.owner_field == "createdByUid":
        doc["createdByName"] = actor.name
    doc["createdAt"] = now or datetime.now(timezone.utc)
    return doc


def create_record(collection, schema: RecordSchema, form: Mapping[str, Any], actor: Actor,
                  notify: Optional[Notify] = None, audit: Optional[AuditHook] = None) -> Optional[str]:
    """Validate and insert. Returns the new id, or None (already notified)."""
    notify = notify or log_notify
    try:
        doc = build_new_document(form, schema, actor)
    except ValidationError as e:
        for msg in e.errors:
            notify("error", msg)
        return None
    try:
        res = collection.insert_one(doc)
    except PyMongoError as e:
        logger.error("insert into %s failed: %s", schema.collection, e)
        notify("error", f"Failed to add {schema.label.lower()} booking.")
        return None
    new_id = str(res.inserted_id)
    if audit:
        audit("record_create", {"collection": schema.collection, "id": new_id})
    notify("success", f"{schema.label} booking added successfully!")
    return new_id
