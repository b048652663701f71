"""Base interface for session backends."""
import time
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from ..conf import HybridSessionConfig

Clock = Callable[[], float]


class AbstractBackend(ABC):
    """One session storage strategy.

    ``read`` returns None when the backend has no live session; ``write``
    returns False when the backend declines the write, so the next
    backend can take it.
    """

    name: str = "abstract"

    def __init__(
        self,
        config: HybridSessionConfig,
        clock: Optional[Clock] = None,
    ) -> None:
        self._config = config
        self._clock: Clock = clock or time.time
        self.logger = logging.getLogger(f"hybrid_session.{self.name}")

    def __repr__(self) -> str:
        return f'<{type(self).__name__} name={self.name}>'

    def now(self) -> int:
        return int(self._clock())

    def expiry(self) -> int:
        """Unix timestamp a record written now stops being readable."""
        return self.now() + self._config.lifetime

    @abstractmethod
    async def open(self, name: str) -> None:
        pass

    async def close(self) -> None:
        pass

    @abstractmethod
    async def read(self, session_id: str) -> Optional[bytes]:
        pass

    @abstractmethod
    async def write(self, session_id: str, payload: bytes) -> bool:
        pass

    @abstractmethod
    async def destroy(self, session_id: str) -> None:
        pass

    @abstractmethod
    async def gc(self, max_age: int) -> int:
        """Remove expired records, returning how many were removed."""
