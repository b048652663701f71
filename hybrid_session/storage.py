"""
HybridCoordinator — one session interface over an ordered list of backends.

- ``read`` returns the first non-empty result.
- ``write`` stops at the first backend that accepts the write.
- ``open``, ``close``, ``destroy`` and ``gc`` reach every backend.

With the default chain the encrypted cookie is tried first and the
database table catches whatever the cookie cannot hold.
"""
import logging
from typing import Any, Optional
from collections.abc import Sequence

from .conf import HybridSessionConfig
from .cookies import CookieJar
from .exceptions import SessionWriteError
from .backends import AbstractBackend, CookieBackend, DatabaseBackend
from .backends.abstract import Clock

logger = logging.getLogger("hybrid_session.storage")


class HybridCoordinator:
    """Chain of session backends tried in priority order."""

    def __init__(
        self,
        backends: Sequence[AbstractBackend],
        strict_writes: bool = False,
    ) -> None:
        if not backends:
            raise ValueError("HybridCoordinator needs at least one backend")
        self._backends: tuple[AbstractBackend, ...] = tuple(backends)
        self.strict_writes = strict_writes

    def __repr__(self) -> str:
        names = ", ".join(b.name for b in self._backends)
        return f'<HybridCoordinator backends=[{names}]>'

    @property
    def backends(self) -> tuple[AbstractBackend, ...]:
        return self._backends

    @classmethod
    def create(
        cls,
        config: HybridSessionConfig,
        jar: CookieJar,
        db_pool: Any,
        clock: Optional[Clock] = None,
    ) -> "HybridCoordinator":
        """Build the default chain: encrypted cookie, then database."""
        return cls(
            [
                CookieBackend(config, jar, clock=clock),
                DatabaseBackend(config, db_pool, clock=clock),
            ],
            strict_writes=config.strict_writes,
        )

    async def open(self, name: str) -> bool:
        for backend in self._backends:
            await backend.open(name)
        return True

    async def close(self) -> bool:
        for backend in self._backends:
            await backend.close()
        return True

    async def read(self, session_id: str) -> bytes:
        for backend in self._backends:
            data = await backend.read(session_id)
            if data:
                return data
        return b""

    async def write(self, session_id: str, payload: bytes) -> bool:
        """Hand the payload to the first backend that accepts it.

        Returns:
            False if every backend declined; the data is then lost.

        Raises:
            SessionWriteError: if every backend declined and
                ``strict_writes`` is enabled.
        """
        for backend in self._backends:
            if await backend.write(session_id, payload):
                return True
        logger.warning(
            "No session backend accepted %d bytes for session %s…",
            len(payload), session_id[:8],
        )
        if self.strict_writes:
            raise SessionWriteError(
                f"All session backends declined the write for {session_id[:8]}…"
            )
        return False

    async def destroy(self, session_id: str) -> None:
        for backend in self._backends:
            await backend.destroy(session_id)

    async def gc(self, max_age: int) -> int:
        """Collect expired sessions on every backend.

        A failing backend does not stop the others; the first error is
        raised once all of them have run.
        """
        removed = 0
        error: Optional[Exception] = None
        for backend in self._backends:
            try:
                removed += await backend.gc(max_age)
            except Exception as err:
                logger.error("Session gc failed on %s backend: %s", backend.name, err)
                if error is None:
                    error = err
        if error is not None:
            raise error
        return removed
