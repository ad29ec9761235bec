import logging
from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException, Request
from passlib.hash import bcrypt

from recordbook.core.config import settings
from recordbook.core.errors import LoginRequired, Unauthorized
from recordbook.services.state import rate_limiter

logger = logging.getLogger(__name__)

SESSION_USERNAME = "username"
SESSION_FULL_NAME = "full_name"


@dataclass(frozen=True)
class CurrentUser:
    username: str
    full_name: str


def get_client_ip(req: Request) -> str:
    forwarded = req.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = req.headers.get("x-real-ip", "")
    if real_ip:
        return real_ip.strip()
    if req.client:
        return req.client.host
    return "unknown"


def current_user(req: Request) -> CurrentUser | None:
    session = req.session or {}
    username = session.get(SESSION_USERNAME)
    if not username:
        return None
    return CurrentUser(username=username, full_name=session.get(SESSION_FULL_NAME) or username)


def require_session_user(req: Request) -> CurrentUser:
    user = current_user(req)
    if user is None:
        raise Unauthorized()
    return user


def require_page_user(req: Request) -> CurrentUser:
    user = current_user(req)
    if user is None:
        raise LoginRequired(req.url.path)
    return user


def start_session(req: Request, user: dict[str, Any]) -> CurrentUser:
    req.session.clear()
    req.session[SESSION_USERNAME] = user["username"]
    req.session[SESSION_FULL_NAME] = user["full_name"]
    return CurrentUser(username=user["username"], full_name=user["full_name"])


def end_session(req: Request) -> None:
    req.session.clear()


def enforce_login_rate_limit(req: Request, username: str) -> None:
    client_ip = get_client_ip(req)
    if rate_limiter.exceeded(f"login:ip:{client_ip}", settings.login_rate_limit, settings.login_rate_window) or (
        rate_limiter.exceeded(f"login:user:{username}", settings.login_user_rate_limit, settings.login_rate_window)
    ):
        logger.warning("Login rate limit hit", extra={"username": username, "client_ip": client_ip})
        raise HTTPException(status_code=429, detail="Too many login attempts. Try again later.")


def enforce_register_rate_limit(req: Request) -> None:
    client_ip = get_client_ip(req)
    if rate_limiter.exceeded(
        f"register:ip:{client_ip}",
        settings.register_rate_limit,
        settings.register_rate_window,
    ):
        logger.warning("Registration rate limit hit", extra={"client_ip": client_ip})
        raise HTTPException(status_code=429, detail="Too many registration attempts. Try again later.")


def check_credentials(username: str, password: str) -> tuple[str, str]:
    username = (username or "").strip()
    password = (password or "").strip()
    if not username or not password:
        raise HTTPException(status_code=400, detail="username and password required")
    if len(password.encode("utf-8")) > 72:
        raise HTTPException(status_code=400, detail="Password too long (max 72 bytes)")
    return username, password


def authenticate(cur, username: str, password: str) -> dict[str, Any]:
    cur.execute(
        "SELECT username, password_hash, full_name FROM users WHERE username=%s",
        (username,),
    )
    user = cur.fetchone()
    if not user or not bcrypt.verify(password, user["password_hash"]):
        logger.info("Login failed", extra={"username": username})
        raise HTTPException(status_code=401, detail="Invalid credentials")
    logger.info("Login succeeded", extra={"username": username})
    return user


def register_user(cur, data: dict[str, Any]) -> dict[str, Any]:
    invite_code = (data.get("invite_code") or "").strip()
    if not settings.invite_code:
        raise HTTPException(status_code=403, detail="Registration disabled")
    if invite_code != settings.invite_code:
        raise HTTPException(status_code=403, detail="Invalid invite code")

    username = (data.get("username") or "").strip()
    password = (data.get("password") or "").strip()
    if not username or not password:
        raise HTTPException(status_code=400, detail="username and password required")
    if not settings.username_re.fullmatch(username):
        raise HTTPException(
            status_code=400,
            detail="Invalid username. Use 3-32 chars: letters, numbers, dot, underscore, or hyphen.",
        )
    if len(password) < settings.password_min_len:
        raise HTTPException(status_code=400, detail=f"Password too short (min {settings.password_min_len})")
    if len(password.encode("utf-8")) > 72:
        raise HTTPException(status_code=400, detail="Password too long (max 72 bytes)")

    full_name = (data.get("full_name") or "").strip() or username
    cur.execute(
        "INSERT INTO users (username, password_hash, full_name) VALUES (%s, %s, %s)",
        (username, bcrypt.hash(password), full_name),
    )
    logger.info("User registered", extra={"username": username})
    return {"username": username, "full_name": full_name}


def clear_login_attempts(username: str) -> None:
    rate_limiter.reset(f"login:user:{username}")
