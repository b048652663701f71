"""Hybrid Session — encrypted cookie sessions with database fallback.

Security Note (Threat Model):
    Session payloads travel to the client encrypted under a key derived
    from the shared secret and the session id.  Anyone holding the secret
    can read and forge cookie sessions; keep it out of logs and source
    control.  The legacy token format does not authenticate its IV, so
    new deployments should keep the default ``aead`` format.
"""

from .version import __version__
from .conf import HybridSessionConfig, generate_secret
from .crypto import SessionCrypto
from .cookies import CookieJar
from .data import SessionData
from .exceptions import (
    SessionError,
    AuthenticationFailure,
    ConfigurationError,
    UnsupportedEngine,
    SessionWriteError,
)
from .backends import AbstractBackend, CookieBackend, DatabaseBackend, SessionRecord
from .storage import HybridCoordinator
from .middleware import setup, get_session, new_session, collect_garbage

__all__ = [
    "__version__",
    "HybridSessionConfig",
    "generate_secret",
    "SessionCrypto",
    "CookieJar",
    "SessionData",
    "SessionError",
    "AuthenticationFailure",
    "ConfigurationError",
    "UnsupportedEngine",
    "SessionWriteError",
    "AbstractBackend",
    "CookieBackend",
    "DatabaseBackend",
    "SessionRecord",
    "HybridCoordinator",
    "setup",
    "get_session",
    "new_session",
    "collect_garbage",
]
