import datetime as dt

from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from recordbook.services.formatting import parse_client_date, to_local_day

AMOUNT_FIELDS = (
    "transfer_amount",
    "afternoon_shift_amount",
    "night_shift_amount",
    "system_amount",
)


class RecordInput(BaseModel):
    """Fields shared by record creation and update.

    ``date`` arrives as a day or an instant and leaves as a calendar day in the
    fixed timezone.
    """

    date: dt.date = Field(default=None, validate_default=True)
    transfer_amount: int = 0
    afternoon_shift_amount: int = 0
    night_shift_amount: int = 0
    system_amount: int = 0

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            raise PydanticCustomError("date_missing", "Please select a date")
        if isinstance(value, str):
            try:
                value = parse_client_date(value)
            except ValueError:
                raise PydanticCustomError("date_invalid", "Invalid date")
        if isinstance(value, (dt.date, dt.datetime)):
            try:
                return to_local_day(value)
            except OverflowError:
                # instant falls outside the datetime range once shifted into the fixed zone
                raise PydanticCustomError("date_invalid", "Invalid date")
        raise PydanticCustomError("date_invalid", "Invalid date")

    @field_validator(*AMOUNT_FIELDS)
    @classmethod
    def non_negative(cls, value: int) -> int:
        if value < 0:
            raise PydanticCustomError("amount_negative", "Amount cannot be negative")
        return value


class RecordOut(BaseModel):
    record_id: str
    date: dt.date
    transfer_amount: int
    afternoon_shift_amount: int
    night_shift_amount: int
    system_amount: int
    difference: int
    created_at: dt.datetime
    updated_at: dt.datetime


class RecordListResponse(BaseModel):
    records: list[RecordOut]


class RecordResponse(BaseModel):
    ok: bool = True
    record: RecordOut


class DeleteRecordResponse(BaseModel):
    ok: bool = True
    deleted: bool


class LoginRequest(BaseModel):
    username: str
    password: str


class RegisterRequest(BaseModel):
    username: str
    password: str
    full_name: str | None = None
    invite_code: str = Field(default="")


def validation_messages(exc: ValidationError | RequestValidationError) -> dict[str, str]:
    """Collapse a pydantic error into one message per field, first error wins."""
    errors: dict[str, str] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        field = loc[0] if loc else "__root__"
        errors.setdefault(field, err.get("msg", "Invalid value"))
    return errors
