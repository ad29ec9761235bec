import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

from psycopg.errors import UniqueViolation


def _normalize(sql: str) -> str:
    return " ".join(sql.split())


class FakeStore:
    """In-memory stand-in for the connection pool, understanding the statements recordbook issues."""

    def __init__(self) -> None:
        self.users: dict[str, dict] = {}
        self.records: dict[str, dict] = {}
        self.statements: list[tuple[str, tuple | None]] = []
        self.commits = 0
        self.rollbacks = 0
        self.fail_with: Exception | None = None
        self._clock = datetime(2026, 10, 18, 1, 0, tzinfo=timezone.utc)

    def tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def add_user(self, username: str, password_hash: str, full_name: str | None = None) -> None:
        self.users[username] = {
            "username": username,
            "password_hash": password_hash,
            "full_name": full_name or username,
        }

    def add_record(self, username: str, record_date, amounts=(0, 0, 0, 0)) -> str:
        record_id = str(uuid.uuid4())
        now = self.tick()
        self.records[record_id] = {
            "record_id": record_id,
            "username": username,
            "record_date": record_date,
            "transfer_amount": amounts[0],
            "afternoon_shift_amount": amounts[1],
            "night_shift_amount": amounts[2],
            "system_amount": amounts[3],
            "created_at": now,
            "updated_at": now,
        }
        return record_id

    def owned_by(self, username: str) -> list[dict]:
        return [r for r in self.records.values() if r["username"] == username]

    def cursor(self) -> "FakeCursor":
        return FakeCursor(self)

    @contextmanager
    def connection(self):
        yield FakeConnection(self)


class FakeConnection:
    def __init__(self, store: FakeStore) -> None:
        self.store = store

    def cursor(self) -> "FakeCursor":
        return FakeCursor(self.store)

    def commit(self) -> None:
        self.store.commits += 1

    def rollback(self) -> None:
        self.store.rollbacks += 1


class FakeCursor:
    def __init__(self, store: FakeStore) -> None:
        self.store = store
        self._result: list[dict] = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    @staticmethod
    def _public(row: dict) -> dict:
        return {k: v for k, v in row.items() if k != "username"}

    def execute(self, sql, params=None):
        sql = _normalize(sql)
        self.store.statements.append((sql, params))
        self._result = []

        if sql.startswith(("INSERT INTO daily_records", "UPDATE daily_records")) and self.store.fail_with:
            raise self.store.fail_with

        if sql.startswith("SELECT") and "FROM daily_records" in sql:
            (username,) = params
            rows = sorted(
                self.store.owned_by(username),
                key=lambda r: (r["record_date"], r["created_at"]),
                reverse=True,
            )
            self._result = [self._public(r) for r in rows]
        elif sql.startswith("INSERT INTO daily_records"):
            record_id, username, record_date, transfer, afternoon, night, system = params
            if any(r["record_date"] == record_date for r in self.store.owned_by(username)):
                raise UniqueViolation('duplicate key value violates unique constraint "daily_records_username_date_key"')
            now = self.store.tick()
            row = {
                "record_id": record_id,
                "username": username,
                "record_date": record_date,
                "transfer_amount": transfer,
                "afternoon_shift_amount": afternoon,
                "night_shift_amount": night,
                "system_amount": system,
                "created_at": now,
                "updated_at": now,
            }
            self.store.records[record_id] = row
            self._result = [self._public(row)]
        elif sql.startswith("UPDATE daily_records"):
            record_date, transfer, afternoon, night, system, record_id, username = params
            row = self.store.records.get(record_id)
            if row and row["username"] == username:
                if any(
                    r["record_date"] == record_date and r["record_id"] != record_id
                    for r in self.store.owned_by(username)
                ):
                    raise UniqueViolation('duplicate key value violates unique constraint "daily_records_username_date_key"')
                row.update(
                    record_date=record_date,
                    transfer_amount=transfer,
                    afternoon_shift_amount=afternoon,
                    night_shift_amount=night,
                    system_amount=system,
                    updated_at=self.store.tick(),
                )
                self._result = [self._public(row)]
        elif sql.startswith("DELETE FROM daily_records"):
            record_id, username = params
            row = self.store.records.get(record_id)
            if row and row["username"] == username:
                del self.store.records[record_id]
                self._result = [{"record_id": record_id}]
        elif sql.startswith("SELECT") and "FROM users" in sql:
            (username,) = params
            user = self.store.users.get(username)
            self._result = [dict(user)] if user else []
        elif sql.startswith("INSERT INTO users"):
            username, password_hash, full_name = params
            if username in self.store.users:
                raise UniqueViolation('duplicate key value violates unique constraint "users_pkey"')
            self.store.add_user(username, password_hash, full_name)
        else:
            raise AssertionError(f"unexpected statement: {sql}")

    def fetchone(self):
        return self._result[0] if self._result else None

    def fetchall(self):
        return list(self._result)


class ForbiddenPool:
    """Pool that fails the test if anything asks it for a connection."""

    def __init__(self) -> None:
        self.requested = 0

    @contextmanager
    def connection(self):
        self.requested += 1
        raise AssertionError("store must not be touched")
        yield  # pragma: no cover
