"""Session storage backends, in the order the hybrid store tries them."""
from .abstract import AbstractBackend
from .cookie import CookieBackend, SessionRecord
from .database import DatabaseBackend, SUPPORTED_ENGINES

__all__ = [
    "AbstractBackend",
    "CookieBackend",
    "SessionRecord",
    "DatabaseBackend",
    "SUPPORTED_ENGINES",
]
