"""
Database Backend — server-side session records in a PostgreSQL table.

Last backend in the hybrid chain: it has no size limit and never declines
a write.  Expects an asyncpg-compatible pool (``pool.acquire()`` yielding a
connection with ``fetchrow`` and ``execute``).

Logical schema::

    CREATE TABLE hybrid_sessions (
        session_id TEXT PRIMARY KEY,
        expiry BIGINT NOT NULL,
        data BYTEA NOT NULL
    );

Rows are independent: writes are a single upsert on the primary key and
garbage collection is a single filtered delete, so no locking is needed.
"""
from typing import Any, Optional

from ..conf import HybridSessionConfig
from ..exceptions import UnsupportedEngine
from .abstract import AbstractBackend, Clock

SUPPORTED_ENGINES = ("postgresql",)

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_SELECT_SESSION = """
SELECT data FROM {table}
WHERE session_id = $1 AND expiry >= $2
"""

_UPSERT_SESSION = """
INSERT INTO {table} (session_id, expiry, data)
VALUES ($1, $2, $3)
ON CONFLICT (session_id)
DO UPDATE SET expiry = EXCLUDED.expiry,
              data = EXCLUDED.data
"""

_DELETE_SESSION = """
DELETE FROM {table} WHERE session_id = $1
"""

_DELETE_EXPIRED = """
DELETE FROM {table} WHERE expiry < $1
"""


def _affected_rows(status: Any) -> int:
    """Parse the row count out of a command status such as ``DELETE 3``."""
    try:
        return int(str(status).rsplit(" ", 1)[-1])
    except (TypeError, ValueError):
        return 0


class DatabaseBackend(AbstractBackend):
    """Server-side session storage, last resort of the hybrid chain."""

    name = "database"

    def __init__(
        self,
        config: HybridSessionConfig,
        db_pool: Any,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(config, clock)
        self._db = db_pool
        table = config.db_table
        self._select = _SELECT_SESSION.format(table=table)
        self._upsert = _UPSERT_SESSION.format(table=table)
        self._delete = _DELETE_SESSION.format(table=table)
        self._delete_expired = _DELETE_EXPIRED.format(table=table)

    async def open(self, name: str) -> None:
        engine = self._config.db_engine
        if engine not in SUPPORTED_ENGINES:
            raise UnsupportedEngine(
                f"Hybrid sessions only work with {', '.join(SUPPORTED_ENGINES)} "
                f"databases, got {engine!r}"
            )
        if self._db is None:
            raise UnsupportedEngine(
                "Hybrid sessions need a database pool, none was configured"
            )

    async def read(self, session_id: str) -> Optional[bytes]:
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(self._select, session_id, self.now())
        if row is None:
            return None
        return bytes(row["data"])

    async def write(self, session_id: str, payload: bytes) -> bool:
        async with self._db.acquire() as conn:
            await conn.execute(self._upsert, session_id, self.expiry(), payload)
        self.logger.debug(
            "Stored %d bytes for session %s…", len(payload), session_id[:8]
        )
        return True

    async def destroy(self, session_id: str) -> None:
        async with self._db.acquire() as conn:
            await conn.execute(self._delete, session_id)

    async def gc(self, max_age: int) -> int:
        # expiry already carries the lifetime, max_age is not needed here
        async with self._db.acquire() as conn:
            status = await conn.execute(self._delete_expired, self.now())
        removed = _affected_rows(status)
        self.logger.info("Session gc removed %d expired record(s)", removed)
        return removed
