import logging
from contextlib import contextmanager
from pathlib import Path

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from recordbook.core.config import settings

logger = logging.getLogger(__name__)

DB_POOL = ConnectionPool(
    settings.database_url,
    min_size=settings.db_pool_min,
    max_size=settings.db_pool_max,
    timeout=settings.db_pool_timeout,
    max_waiting=settings.db_pool_max_waiting,
    open=False,
    kwargs={"row_factory": dict_row},
)


def open_db_pool() -> None:
    DB_POOL.open()
    logger.info("Database pool opened", extra={"min_size": settings.db_pool_min, "max_size": settings.db_pool_max})


def close_db_pool() -> None:
    DB_POOL.close()
    logger.info("Database pool closed")


@contextmanager
def db_conn():
    with DB_POOL.connection() as conn:
        yield conn


def load_schema_sql() -> str:
    return Path(__file__).with_name("schema.sql").read_text(encoding="utf-8")


def ensure_schema() -> None:
    """Create the tables when missing. Every statement in schema.sql is idempotent."""
    with db_conn() as conn, conn.cursor() as cur:
        cur.execute(load_schema_sql())
        conn.commit()
    logger.info("Database schema ensured")
