"""Shared fixtures: a controllable clock and an in-memory asyncpg-like pool."""
import pytest

from hybrid_session.conf import HybridSessionConfig
from hybrid_session.cookies import CookieJar


class FakeClock:
    """Callable clock the tests can move forward."""

    def __init__(self, now: int = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return float(self.now)

    def advance(self, seconds: int) -> None:
        self.now += seconds


class FakeConnection:
    """Understands the handful of statements DatabaseBackend issues."""

    def __init__(self, rows: dict):
        self.rows = rows
        self.statements: list = []

    async def fetchrow(self, query: str, session_id: str, now: int):
        self.statements.append(("fetchrow", query.split()[0]))
        row = self.rows.get(session_id)
        if row is not None and row["expiry"] >= now:
            return {"data": row["data"]}
        return None

    async def execute(self, query: str, *args):
        verb = query.split()[0]
        self.statements.append(("execute", verb))
        if verb == "INSERT":
            session_id, expiry, data = args
            self.rows[session_id] = {"expiry": expiry, "data": data}
            return "INSERT 0 1"
        if verb == "DELETE" and "session_id" in query:
            removed = 1 if self.rows.pop(args[0], None) is not None else 0
            return f"DELETE {removed}"
        if verb == "DELETE":
            now = args[0]
            expired = [k for k, row in self.rows.items() if row["expiry"] < now]
            for key in expired:
                del self.rows[key]
            return f"DELETE {len(expired)}"
        raise AssertionError(f"unexpected statement: {query}")


class _Acquire:
    def __init__(self, conn):
        self.conn = conn

    async def __aenter__(self):
        return self.conn

    async def __aexit__(self, *exc):
        return False


class FakePool:
    def __init__(self):
        self.rows: dict = {}
        self.conn = FakeConnection(self.rows)
        self.acquired = 0

    def acquire(self):
        self.acquired += 1
        return _Acquire(self.conn)


@pytest.fixture(autouse=True)
def no_env_secret(monkeypatch):
    monkeypatch.delenv("HYBRID_SESSION_KEY", raising=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def pool():
    return FakePool()


@pytest.fixture
def config():
    return HybridSessionConfig(secret="s3cr3t", lifetime=1440)


@pytest.fixture
def jar():
    return CookieJar()
