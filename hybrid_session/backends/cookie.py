"""
Cookie Backend — session data held by the client in an encrypted cookie.

The server needs no shared storage to read these sessions: the client sends
the whole session back with every request.  Cookies are small (we keep the
payload under 1 KiB) and can only be set before the response headers go
out, so the inbound cookie is cleared as soon as the backend opens and a
write is declined whenever the cookie can no longer be set.  The next
backend in the chain picks those writes up.

Security Note:
    Never log tokens or decrypted payloads.
"""
from typing import Optional
from dataclasses import dataclass

from ..conf import HybridSessionConfig
from ..cookies import CookieJar
from ..crypto import SessionCrypto
from ..exceptions import AuthenticationFailure
from .abstract import AbstractBackend, Clock

EXPIRY_DIGITS = 10


@dataclass(frozen=True)
class SessionRecord:
    """Expiry timestamp plus opaque session payload."""
    expiry: int
    payload: bytes

    def encode(self) -> bytes:
        return b"%010d" % self.expiry + self.payload

    @classmethod
    def decode(cls, plaintext: bytes) -> Optional["SessionRecord"]:
        prefix = plaintext[:EXPIRY_DIGITS]
        if len(prefix) != EXPIRY_DIGITS or not prefix.isdigit():
            return None
        return cls(expiry=int(prefix), payload=plaintext[EXPIRY_DIGITS:])

    def is_live(self, now: int) -> bool:
        return self.expiry > now


class CookieBackend(AbstractBackend):
    """Encrypted cookie storage, first in the hybrid chain."""

    name = "cookie"

    def __init__(
        self,
        config: HybridSessionConfig,
        jar: CookieJar,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(config, clock)
        self._jar = jar
        self._secret: Optional[bytes] = None
        self._crypto: Optional[SessionCrypto] = None
        self._cookie: Optional[str] = None
        self._incoming: Optional[str] = None

    @property
    def cookie_name(self) -> Optional[str]:
        return self._cookie

    @property
    def enabled(self) -> bool:
        return self._secret is not None

    async def open(self, name: str) -> None:
        self._secret = self._config.resolve_secret()
        if self._secret is None:
            self.logger.warning(
                "No session secret configured, disabling cookie-based storage"
            )
        self._cookie = f"{name}{self._config.cookie_suffix}"
        # capture then clear now: a later write may come after headers are sent
        self._incoming = self._jar.get(self._cookie)
        if self._incoming:
            self._jar.force_expiry(
                self._cookie,
                path=self._config.cookie_path,
                domain=self._config.cookie_domain,
            )

    async def close(self) -> None:
        self._incoming = None
        self._crypto = None

    def _crypto_for(self, session_id: str) -> SessionCrypto:
        if self._crypto is None or not self._crypto.matches(session_id):
            self._crypto = SessionCrypto(
                self._secret,
                session_id,
                token_format=self._config.token_format,
                cipher_backend=self._config.cipher_backend,
            )
        return self._crypto

    async def read(self, session_id: str) -> Optional[bytes]:
        if not self.enabled or not self._incoming:
            return None
        crypto = self._crypto_for(session_id)
        try:
            plaintext = crypto.decrypt(self._incoming)
        except AuthenticationFailure:
            self.logger.debug(
                "Session cookie failed verification for %s…", session_id[:8]
            )
            if not self._config.fail_open:
                raise
            return None
        record = SessionRecord.decode(plaintext)
        if record is None or not record.is_live(self.now()):
            return None
        return record.payload

    async def write(self, session_id: str, payload: bytes) -> bool:
        if not self.enabled:
            return False
        if len(payload) >= self._config.max_cookie_payload:
            self.logger.debug(
                "Session payload of %d bytes too large for a cookie", len(payload)
            )
            return False
        if self._jar.headers_sent:
            self.logger.debug("Headers already sent, cannot write session cookie")
            return False
        crypto = self._crypto_for(session_id)
        record = SessionRecord(expiry=self.expiry(), payload=payload)
        return self._jar.set(
            self._cookie,
            crypto.encrypt(record.encode()),
            max_age=self._config.lifetime,
            path=self._config.cookie_path,
            domain=self._config.cookie_domain,
            secure=self._config.cookie_secure,
            httponly=self._config.cookie_httponly,
            samesite=self._config.cookie_samesite,
        )

    async def destroy(self, session_id: str) -> None:
        self._jar.force_expiry(
            self._cookie or f"{self._config.cookie_name}{self._config.cookie_suffix}",
            path=self._config.cookie_path,
            domain=self._config.cookie_domain,
        )

    async def gc(self, max_age: int) -> int:
        # cookies expire on the client
        return 0
