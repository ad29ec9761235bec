import logging
from contextlib import asynccontextmanager
from urllib.parse import quote

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from recordbook.core.config import settings
from recordbook.core.errors import LoginRequired, RecordValidationError
from recordbook.core.logging import configure_logging
from recordbook.db.pool import close_db_pool, ensure_schema, open_db_pool
from recordbook.models.records import validation_messages
from recordbook.routers.api import router as api_router
from recordbook.routers.pages import render_error_page
from recordbook.routers.pages import router as pages_router

configure_logging(settings.log_level)
logger = logging.getLogger("recordbook")


@asynccontextmanager
async def lifespan(_: FastAPI):
    open_db_pool()
    try:
        ensure_schema()
        logger.info("recordbook started", extra={"tz": settings.tz})
        yield
    finally:
        close_db_pool()


app = FastAPI(title="recordbook", lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    session_cookie="recordbook_session",
    same_site="strict",
    https_only=settings.cookie_secure,
)


app.include_router(api_router)
app.include_router(pages_router)


def wants_html(req: Request) -> bool:
    return "text/html" in req.headers.get("accept", "")


@app.exception_handler(LoginRequired)
def login_required_handler(_, exc: LoginRequired):
    return RedirectResponse(f"/login?next={quote(exc.next_path)}", status_code=303)


@app.exception_handler(StarletteHTTPException)
def http_exc_handler(req: Request, exc: StarletteHTTPException):
    if exc.status_code >= 500:
        logger.error("Request failed", extra={"path": req.url.path, "status": exc.status_code, "detail": exc.detail})
    if wants_html(req):
        return render_error_page(req, exc.status_code, str(exc.detail))
    content = {"ok": False, "detail": exc.detail}
    if isinstance(exc, RecordValidationError):
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
def request_validation_handler(_, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"ok": False, "detail": "Validation failed", "errors": validation_messages(exc)},
    )
