from pathlib import Path
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from psycopg.errors import UniqueViolation
from pydantic import ValidationError

from recordbook.db.pool import db_conn
from recordbook.models.records import AMOUNT_FIELDS, RecordInput, validation_messages
from recordbook.services.auth import (
    authenticate,
    check_credentials,
    clear_login_attempts,
    current_user,
    end_session,
    enforce_login_rate_limit,
    enforce_register_rate_limit,
    register_user,
    require_page_user,
    start_session,
)
from recordbook.services.formatting import format_difference, format_idr, format_long_date, parse_idr
from recordbook.services.records import create_record, delete_record, list_records, update_record
from recordbook.services.views import FormState, build_dashboard, flash, pop_flashes

router = APIRouter()

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))
templates.env.filters["idr"] = format_idr
templates.env.filters["difference"] = format_difference
templates.env.filters["long_date"] = format_long_date

AMOUNT_LABELS = {
    "transfer_amount": "Transfer Amount",
    "afternoon_shift_amount": "Afternoon Shift Amount",
    "night_shift_amount": "Night Shift Amount",
    "system_amount": "System Amount",
}


def render(
    req: Request,
    name: str,
    context: dict[str, Any] | None = None,
    status_code: int = 200,
    notices: list[dict[str, str]] | None = None,
) -> HTMLResponse:
    ctx = {
        "user": current_user(req),
        "flashes": pop_flashes(req.session) + (notices or []),
        "amount_labels": AMOUNT_LABELS,
    }
    ctx.update(context or {})
    return templates.TemplateResponse(req, name, ctx, status_code=status_code)


def redirect(path: str) -> RedirectResponse:
    return RedirectResponse(path, status_code=303)


def safe_next(target: str | None) -> str:
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return "/dashboard"


def read_record_form(form) -> tuple[FormState, RecordInput | None]:
    """Keep the raw submitted values for re-rendering and validate the parsed ones."""
    values = {"date": str(form.get("date") or "")}
    data: dict[str, Any] = {"date": values["date"]}
    for name in AMOUNT_FIELDS:
        raw = str(form.get(name) or "")
        values[name] = raw
        data[name] = parse_idr(raw)
    state = FormState(values=values)
    try:
        return state, RecordInput.model_validate(data)
    except ValidationError as exc:
        state.errors = validation_messages(exc)
        return state, None


@router.get("/", response_class=HTMLResponse)
def home(req: Request):
    return render(req, "home.html")


@router.get("/login", response_class=HTMLResponse)
def login_page(req: Request, next: str | None = None):
    if current_user(req):
        return redirect(safe_next(next))
    return render(req, "login.html", {"next": safe_next(next), "username": ""})


@router.post("/login", response_class=HTMLResponse)
async def login_submit(req: Request):
    form = await req.form()
    next_path = safe_next(form.get("next"))
    try:
        username, password = check_credentials(form.get("username"), form.get("password"))
        enforce_login_rate_limit(req, username)
        with db_conn() as conn, conn.cursor() as cur:
            user = authenticate(cur, username, password)
    except HTTPException as exc:
        return render(
            req,
            "login.html",
            {"next": next_path, "username": form.get("username") or "", "error": exc.detail},
            status_code=exc.status_code,
        )

    clear_login_attempts(username)
    start_session(req, user)
    return redirect(next_path)


@router.get("/signup", response_class=HTMLResponse)
def signup_page(req: Request):
    if current_user(req):
        return redirect("/dashboard")
    return render(req, "signup.html", {"values": {}})


@router.post("/signup", response_class=HTMLResponse)
async def signup_submit(req: Request):
    form = await req.form()
    values = {key: str(form.get(key) or "") for key in ("username", "full_name", "password", "invite_code")}
    try:
        enforce_register_rate_limit(req)
        with db_conn() as conn, conn.cursor() as cur:
            try:
                user = register_user(cur, values)
                conn.commit()
            except HTTPException:
                conn.rollback()
                raise
            except UniqueViolation:
                conn.rollback()
                raise HTTPException(status_code=400, detail="User already exists")
    except HTTPException as exc:
        values.pop("password", None)
        return render(req, "signup.html", {"values": values, "error": exc.detail}, status_code=exc.status_code)

    start_session(req, user)
    flash(req.session, "success", "Account created")
    return redirect("/dashboard")


@router.post("/logout")
def logout_submit(req: Request):
    end_session(req)
    return redirect("/login")


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(req: Request, edit: str | None = None, delete: str | None = None):
    user = require_page_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        records = list_records(cur, user.username)
    return render(req, "dashboard.html", {"board": build_dashboard(records, edit_id=edit, delete_id=delete)})


@router.get("/record", response_class=HTMLResponse)
def record_page(req: Request):
    require_page_user(req)
    return render(req, "record.html", {"form": FormState.blank()})


@router.post("/record", response_class=HTMLResponse)
async def record_submit(req: Request):
    user = require_page_user(req)
    state, payload = read_record_form(await req.form())
    if payload is None:
        return render(req, "record.html", {"form": state}, status_code=422)

    try:
        with db_conn() as conn, conn.cursor() as cur:
            try:
                create_record(cur, user.username, payload)
                conn.commit()
            except HTTPException:
                conn.rollback()
                raise
    except HTTPException as exc:
        return render(
            req,
            "record.html",
            {"form": state},
            status_code=exc.status_code,
            notices=[{"kind": "error", "message": exc.detail}],
        )

    flash(req.session, "success", "Record saved successfully")
    return redirect("/dashboard")


@router.post("/records/{record_id}/edit", response_class=HTMLResponse)
async def record_edit_submit(record_id: str, req: Request):
    user = require_page_user(req)
    state, payload = read_record_form(await req.form())

    notice = None
    status_code = 422
    if payload is not None:
        try:
            with db_conn() as conn, conn.cursor() as cur:
                try:
                    update_record(cur, user.username, record_id, payload)
                    conn.commit()
                except HTTPException:
                    conn.rollback()
                    raise
        except HTTPException as exc:
            if exc.status_code in (400, 404):
                flash(req.session, "error", "Record not found")
                return redirect("/dashboard")
            notice = {"kind": "error", "message": exc.detail}
            status_code = exc.status_code
        else:
            flash(req.session, "success", "Record updated successfully")
            return redirect("/dashboard")

    with db_conn() as conn, conn.cursor() as cur:
        records = list_records(cur, user.username)
    board = build_dashboard(records, edit_id=record_id, edit_form=state)
    if board.edit is None:
        flash(req.session, "error", "Record not found")
        return redirect("/dashboard")
    return render(
        req,
        "dashboard.html",
        {"board": board},
        status_code=status_code,
        notices=[notice] if notice else None,
    )


@router.post("/records/{record_id}/delete")
def record_delete_submit(record_id: str, req: Request):
    user = require_page_user(req)
    try:
        with db_conn() as conn, conn.cursor() as cur:
            try:
                delete_record(cur, user.username, record_id)
                conn.commit()
            except HTTPException:
                conn.rollback()
                raise
    except HTTPException:
        flash(req.session, "error", "Failed to delete record")
    else:
        flash(req.session, "success", "Record deleted successfully")
    return redirect("/dashboard")


def render_error_page(req: Request, status_code: int, detail: str) -> HTMLResponse:
    return render(req, "error.html", {"status_code": status_code, "detail": detail}, status_code=status_code)
