"""
Session Crypto Core — Key derivation and authenticated encryption of session tokens.

A per-session key is derived from the shared secret, using the session id as salt:
    PBKDF2-HMAC-SHA256(secret, session_id, 1000) → 32-byte key

Two token formats are supported:
- aead (default): base64([nonce 12B][ciphertext + tag 16B]), AES-GCM or
  ChaCha20-Poly1305, the session id bound as associated data.
- legacy: base64([iv 16B][hmac 32B][ciphertext]), AES-256-CBC with zero-byte
  padding and HMAC-SHA256 over the ciphertext only.  Kept so existing
  cookies stay readable.  The IV is not authenticated in this format.

Security Note:
    Never log plaintext, tokens or key material.
"""
import os
import base64
import logging
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .exceptions import AuthenticationFailure

logger = logging.getLogger("hybrid_session.crypto")

KEY_SIZE = 32  # AES-256
PBKDF2_ITERATIONS = 1000
BLOCK_SIZE = 16  # AES block
IV_SIZE = BLOCK_SIZE
MAC_SIZE = 32  # HMAC-SHA256 digest
NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16

_AEAD_CIPHERS = {
    "aesgcm": AESGCM,
    "chacha20": ChaCha20Poly1305,
}

BytesLike = Union[str, bytes]


def _to_bytes(value: BytesLike) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(secret: bytes, salt: bytes) -> bytes:
    """Derive a 32-byte session key using PBKDF2-HMAC-SHA256.

    Args:
        secret: Shared base secret.
        salt: Session identifier bytes.

    Returns:
        KEY_SIZE-byte derived key.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(secret)


# ---------------------------------------------------------------------------
# Zero-byte padding (legacy format)
# ---------------------------------------------------------------------------

def zero_pad(data: bytes) -> bytes:
    """Pad data with zero bytes to a multiple of the block size.

    Empty input becomes one zero block; input already aligned is unchanged.
    """
    if not data:
        return b"\x00" * BLOCK_SIZE
    remainder = len(data) % BLOCK_SIZE
    if remainder:
        data += b"\x00" * (BLOCK_SIZE - remainder)
    return data


def zero_unpad(data: bytes) -> bytes:
    """Trim trailing zero bytes. Payloads ending in NUL lose them."""
    return data.rstrip(b"\x00")


def _b64decode(token: BytesLike) -> bytes:
    try:
        return base64.b64decode(token, validate=True)
    except ValueError:
        raise AuthenticationFailure() from None


class SessionCrypto:
    """Derive a per-session key and encrypt/decrypt session tokens.

    The derived key is computed on first use and cached for this
    instance; assigning a different ``salt`` discards it.
    """

    def __init__(
        self,
        secret: BytesLike,
        salt: BytesLike,
        token_format: str = "aead",
        cipher_backend: str = "aesgcm",
    ):
        if token_format not in ("aead", "legacy"):
            raise ValueError(f"Unsupported token format: {token_format}")
        if cipher_backend not in _AEAD_CIPHERS:
            raise ValueError(f"Unsupported cipher backend: {cipher_backend}")
        self._secret = _to_bytes(secret)
        self._salt = _to_bytes(salt)
        self._key: Optional[bytes] = None
        self.token_format = token_format
        self.cipher_backend = cipher_backend

    @property
    def salt(self) -> bytes:
        return self._salt

    @salt.setter
    def salt(self, value: BytesLike) -> None:
        value = _to_bytes(value)
        if value != self._salt:
            self._salt = value
            self._key = None

    def matches(self, salt: BytesLike) -> bool:
        """True if this instance is already bound to ``salt``."""
        return _to_bytes(salt) == self._salt

    @property
    def key(self) -> bytes:
        if self._key is None:
            self._key = derive_key(self._secret, self._salt)
        return self._key

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: bytes) -> str:
        """Encrypt and authenticate plaintext.

        Args:
            plaintext: Bytes to protect.

        Returns:
            The token as base64 ASCII.
        """
        if self.token_format == "legacy":
            raw = self._encrypt_legacy(plaintext)
        else:
            raw = self._encrypt_aead(plaintext)
        return base64.b64encode(raw).decode("ascii")

    def decrypt(self, token: BytesLike) -> bytes:
        """Verify a token and return its plaintext.

        Args:
            token: base64 token produced by :meth:`encrypt`.

        Returns:
            Decrypted plaintext bytes.

        Raises:
            AuthenticationFailure: If the token is malformed or was tampered with.
        """
        try:
            raw = _b64decode(token)
        except AuthenticationFailure:
            self._reject()
            raise
        if self.token_format == "legacy":
            return self._decrypt_legacy(raw)
        return self._decrypt_aead(raw)

    def _reject(self) -> None:
        """Spend the same key derivation and MAC work as a forged token."""
        self._mac(b"").finalize()

    # ------------------------------------------------------------------
    # aead format
    # ------------------------------------------------------------------

    def _aead(self):
        return _AEAD_CIPHERS[self.cipher_backend](self.key)

    def _encrypt_aead(self, plaintext: bytes) -> bytes:
        nonce = os.urandom(NONCE_SIZE)
        return nonce + self._aead().encrypt(nonce, plaintext, self._salt)

    def _decrypt_aead(self, raw: bytes) -> bytes:
        if len(raw) < NONCE_SIZE + TAG_SIZE:
            self._reject()
            raise AuthenticationFailure()
        nonce, ct = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        try:
            return self._aead().decrypt(nonce, ct, self._salt)
        except InvalidTag:
            raise AuthenticationFailure() from None

    # ------------------------------------------------------------------
    # legacy format
    # ------------------------------------------------------------------

    def _mac(self, ciphertext: bytes) -> hmac.HMAC:
        mac = hmac.HMAC(self.key, hashes.SHA256())
        mac.update(ciphertext)
        return mac

    def _encrypt_legacy(self, plaintext: bytes) -> bytes:
        iv = os.urandom(IV_SIZE)
        encryptor = Cipher(algorithms.AES(self.key), modes.CBC(iv)).encryptor()
        ct = encryptor.update(zero_pad(plaintext)) + encryptor.finalize()
        return iv + self._mac(ct).finalize() + ct

    def _decrypt_legacy(self, raw: bytes) -> bytes:
        if len(raw) < IV_SIZE + MAC_SIZE:
            self._reject()
            raise AuthenticationFailure()
        iv = raw[:IV_SIZE]
        tag = raw[IV_SIZE:IV_SIZE + MAC_SIZE]
        ct = raw[IV_SIZE + MAC_SIZE:]
        plaintext: Optional[bytes]
        try:
            decryptor = Cipher(algorithms.AES(self.key), modes.CBC(iv)).decryptor()
            plaintext = zero_unpad(decryptor.update(ct) + decryptor.finalize())
        except ValueError:
            # ciphertext not block aligned; still verify below
            plaintext = None
        # MAC check runs after decryption so every token costs the same work
        try:
            self._mac(ct).verify(tag)
        except InvalidSignature:
            raise AuthenticationFailure() from None
        if plaintext is None:
            raise AuthenticationFailure()
        return plaintext
