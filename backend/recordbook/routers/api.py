import json
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from psycopg.errors import UniqueViolation
from pydantic import ValidationError

from recordbook.core.config import settings
from recordbook.core.errors import RecordValidationError
from recordbook.db.pool import db_conn
from recordbook.models.records import (
    DeleteRecordResponse,
    LoginRequest,
    RecordInput,
    RecordListResponse,
    RecordResponse,
    RegisterRequest,
    validation_messages,
)
from recordbook.services.auth import (
    authenticate,
    check_credentials,
    clear_login_attempts,
    end_session,
    enforce_login_rate_limit,
    enforce_register_rate_limit,
    register_user,
    require_session_user,
    start_session,
)
from recordbook.services.records import (
    create_record,
    delete_record,
    list_records,
    serialize_record,
    update_record,
)

router = APIRouter()


async def read_json(req: Request) -> dict[str, Any]:
    try:
        data = await req.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="JSON object expected")
    return data


def parse_record_input(data: dict[str, Any]) -> RecordInput:
    try:
        return RecordInput.model_validate(data)
    except ValidationError as exc:
        raise RecordValidationError(validation_messages(exc))


@router.get("/health")
def health():
    return {"ok": True}


@router.post("/auth/register")
async def register(req: Request):
    enforce_register_rate_limit(req)
    try:
        payload = RegisterRequest.model_validate(await read_json(req))
    except ValidationError as exc:
        raise RecordValidationError(validation_messages(exc))

    with db_conn() as conn, conn.cursor() as cur:
        try:
            user = register_user(cur, payload.model_dump())
            conn.commit()
        except HTTPException:
            conn.rollback()
            raise
        except UniqueViolation:
            conn.rollback()
            raise HTTPException(status_code=400, detail="User already exists")

    return {"ok": True, "username": user["username"], "full_name": user["full_name"]}


@router.post("/auth/login")
async def login(req: Request):
    try:
        payload = LoginRequest.model_validate(await read_json(req))
    except ValidationError:
        raise HTTPException(status_code=400, detail="username and password required")
    username, password = check_credentials(payload.username, payload.password)
    enforce_login_rate_limit(req, username)

    with db_conn() as conn, conn.cursor() as cur:
        user = authenticate(cur, username, password)

    clear_login_attempts(username)
    current = start_session(req, user)
    return {"ok": True, "username": current.username, "full_name": current.full_name}


@router.post("/auth/logout")
def logout(req: Request):
    end_session(req)
    return {"ok": True}


@router.get("/me")
def me(req: Request):
    user = require_session_user(req)
    return {"username": user.username, "full_name": user.full_name, "tz": settings.tz}


@router.get("/api/records", response_model=RecordListResponse)
def get_records(req: Request):
    user = require_session_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        rows = list_records(cur, user.username)
    return {"records": [serialize_record(r) for r in rows]}


@router.post("/api/records", status_code=201, response_model=RecordResponse)
async def post_record(req: Request):
    user = require_session_user(req)
    payload = parse_record_input(await read_json(req))

    with db_conn() as conn, conn.cursor() as cur:
        try:
            row = create_record(cur, user.username, payload)
            conn.commit()
        except HTTPException:
            conn.rollback()
            raise

    return {"ok": True, "record": serialize_record(row)}


@router.put("/api/records/{record_id}", response_model=RecordResponse)
async def put_record(record_id: str, req: Request):
    user = require_session_user(req)
    payload = parse_record_input(await read_json(req))

    with db_conn() as conn, conn.cursor() as cur:
        try:
            row = update_record(cur, user.username, record_id, payload)
            conn.commit()
        except HTTPException:
            conn.rollback()
            raise

    return {"ok": True, "record": serialize_record(row)}


@router.delete("/api/records/{record_id}", response_model=DeleteRecordResponse)
def remove_record(record_id: str, req: Request):
    user = require_session_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        try:
            deleted = delete_record(cur, user.username, record_id)
            conn.commit()
        except HTTPException:
            conn.rollback()
            raise
    return {"ok": True, "deleted": deleted}
