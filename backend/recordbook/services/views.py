from dataclasses import dataclass, field
from datetime import date
from typing import Any

from recordbook.models.records import AMOUNT_FIELDS
from recordbook.services.formatting import format_difference, format_idr, format_short_date, local_today
from recordbook.services.records import compute_difference

FLASH_KEY = "_flash"


@dataclass(frozen=True)
class RecordRow:
    record_id: str
    date: date
    date_label: str
    transfer: str
    afternoon_shift: str
    night_shift: str
    system: str
    difference: int
    difference_label: str
    difference_tone: str
    raw: dict[str, Any]


@dataclass
class FormState:
    """Values and field errors of a record form, kept across a failed submit."""

    values: dict[str, Any]
    errors: dict[str, str] = field(default_factory=dict)

    @classmethod
    def blank(cls, today: date | None = None) -> "FormState":
        values: dict[str, Any] = {name: format_idr(0) for name in AMOUNT_FIELDS}
        values["date"] = (today or local_today()).isoformat()
        return cls(values=values)

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> "FormState":
        values: dict[str, Any] = {name: format_idr(int(row[name])) for name in AMOUNT_FIELDS}
        values["date"] = row["record_date"].isoformat()
        return cls(values=values)


@dataclass
class Dashboard:
    rows: list[RecordRow]
    edit: RecordRow | None = None
    delete: RecordRow | None = None
    edit_form: FormState | None = None

    @property
    def empty(self) -> bool:
        return not self.rows


def difference_tone(value: int) -> str:
    if value > 0:
        return "positive"
    if value < 0:
        return "negative"
    return ""


def build_row(row: dict[str, Any]) -> RecordRow:
    difference = compute_difference(row)
    return RecordRow(
        record_id=row["record_id"],
        date=row["record_date"],
        date_label=format_short_date(row["record_date"]),
        transfer=format_idr(int(row["transfer_amount"])),
        afternoon_shift=format_idr(int(row["afternoon_shift_amount"])),
        night_shift=format_idr(int(row["night_shift_amount"])),
        system=format_idr(int(row["system_amount"])),
        difference=difference,
        difference_label=format_difference(difference),
        difference_tone=difference_tone(difference),
        raw=row,
    )


def build_dashboard(
    records: list[dict[str, Any]],
    edit_id: str | None = None,
    delete_id: str | None = None,
    edit_form: FormState | None = None,
) -> Dashboard:
    """Table rows plus the dialog state.

    A dialog is open only when its id matches a listed record. Edit and delete
    are never open together; edit wins.
    """
    rows = [build_row(r) for r in records]
    by_id = {r.record_id: r for r in rows}
    selected_edit = by_id.get(edit_id) if edit_id else None
    selected_delete = None if selected_edit else (by_id.get(delete_id) if delete_id else None)
    if selected_edit and edit_form is None:
        edit_form = FormState.from_record(selected_edit.raw)
    return Dashboard(
        rows=rows,
        edit=selected_edit,
        delete=selected_delete,
        edit_form=edit_form if selected_edit else None,
    )


def flash(session: dict, kind: str, message: str) -> None:
    session.setdefault(FLASH_KEY, []).append({"kind": kind, "message": message})


def pop_flashes(session: dict) -> list[dict[str, str]]:
    return session.pop(FLASH_KEY, None) or []
