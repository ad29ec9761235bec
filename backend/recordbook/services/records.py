import logging
import uuid
from typing import Any

import psycopg
from fastapi import HTTPException
from psycopg.errors import UniqueViolation

from recordbook.core.errors import DuplicateRecordDate, RecordNotFound, RecordStoreError
from recordbook.models.records import RecordInput

logger = logging.getLogger(__name__)

RECORD_DATE_CONSTRAINT = "daily_records_username_date_key"

RECORD_COLUMNS = """
    record_id::text AS record_id,
    record_date,
    transfer_amount,
    afternoon_shift_amount,
    night_shift_amount,
    system_amount,
    created_at,
    updated_at
"""


def parse_uuid_value(value: Any, field_name: str) -> str:
    raw = str(value or "").strip()
    if not raw:
        raise HTTPException(status_code=400, detail=f"{field_name} required")
    try:
        return str(uuid.UUID(raw))
    except (TypeError, ValueError, AttributeError):
        raise HTTPException(status_code=400, detail=f"Invalid {field_name}")


def compute_difference(row: dict[str, Any]) -> int:
    return (
        int(row["transfer_amount"])
        + int(row["afternoon_shift_amount"])
        + int(row["night_shift_amount"])
        - int(row["system_amount"])
    )


def serialize_record(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "record_id": row["record_id"],
        "date": row["record_date"],
        "transfer_amount": int(row["transfer_amount"]),
        "afternoon_shift_amount": int(row["afternoon_shift_amount"]),
        "night_shift_amount": int(row["night_shift_amount"]),
        "system_amount": int(row["system_amount"]),
        "difference": compute_difference(row),
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def _raise_for_write_error(exc: psycopg.Error, username: str, detail: str) -> None:
    if isinstance(exc, UniqueViolation) and exc.diag.constraint_name in (None, RECORD_DATE_CONSTRAINT):
        logger.info("Duplicate record date rejected", extra={"username": username})
        raise DuplicateRecordDate() from exc
    logger.error("Record write failed", exc_info=exc, extra={"username": username})
    raise RecordStoreError(detail) from exc


def list_records(cur, username: str) -> list[dict[str, Any]]:
    cur.execute(
        f"""
        SELECT {RECORD_COLUMNS}
        FROM daily_records
        WHERE username=%s
        ORDER BY record_date DESC, created_at DESC
        """,
        (username,),
    )
    return cur.fetchall()


def create_record(cur, username: str, payload: RecordInput) -> dict[str, Any]:
    record_id = str(uuid.uuid4())
    try:
        cur.execute(
            f"""
            INSERT INTO daily_records (
                record_id,
                username,
                record_date,
                transfer_amount,
                afternoon_shift_amount,
                night_shift_amount,
                system_amount
            )
            VALUES (%s::uuid, %s, %s, %s, %s, %s, %s)
            RETURNING {RECORD_COLUMNS}
            """,
            (
                record_id,
                username,
                payload.date,
                payload.transfer_amount,
                payload.afternoon_shift_amount,
                payload.night_shift_amount,
                payload.system_amount,
            ),
        )
    except psycopg.Error as exc:
        _raise_for_write_error(exc, username, "Failed to save record")
    row = cur.fetchone()
    logger.info("Record created", extra={"username": username, "record_id": record_id})
    return row


def update_record(cur, username: str, record_id: str, payload: RecordInput) -> dict[str, Any]:
    """Replace date and amounts of one owned record.

    Owner and id never change. A record that does not exist and one owned by
    someone else both answer ``RecordNotFound``.
    """
    record_id = parse_uuid_value(record_id, "record_id")
    try:
        cur.execute(
            f"""
            UPDATE daily_records
            SET record_date=%s,
                transfer_amount=%s,
                afternoon_shift_amount=%s,
                night_shift_amount=%s,
                system_amount=%s,
                updated_at=now()
            WHERE record_id=%s::uuid AND username=%s
            RETURNING {RECORD_COLUMNS}
            """,
            (
                payload.date,
                payload.transfer_amount,
                payload.afternoon_shift_amount,
                payload.night_shift_amount,
                payload.system_amount,
                record_id,
                username,
            ),
        )
    except psycopg.Error as exc:
        _raise_for_write_error(exc, username, "Failed to update record")
    row = cur.fetchone()
    if not row:
        raise RecordNotFound()
    logger.info("Record updated", extra={"username": username, "record_id": record_id})
    return row


def delete_record(cur, username: str, record_id: str) -> bool:
    """Delete one owned record. Returns False when nothing matched; that is not an error."""
    record_id = parse_uuid_value(record_id, "record_id")
    try:
        cur.execute(
            """
            DELETE FROM daily_records
            WHERE record_id=%s::uuid AND username=%s
            RETURNING record_id::text AS record_id
            """,
            (record_id, username),
        )
    except psycopg.Error as exc:
        logger.error("Record delete failed", exc_info=exc, extra={"username": username, "record_id": record_id})
        raise RecordStoreError("Failed to delete record") from exc
    deleted = cur.fetchone() is not None
    logger.info("Record delete", extra={"username": username, "record_id": record_id, "deleted": deleted})
    return deleted
