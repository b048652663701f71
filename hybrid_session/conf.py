"""
Hybrid Session Configuration — validated settings and secret resolution.

Reads optional overrides from environment variables:
    HYBRID_SESSION_KEY = <shared secret used to encrypt session cookies>
    HYBRID_SESSION_<FIELD> = <value>   (e.g. HYBRID_SESSION_LIFETIME=3600)

Security Note:
    Never log the secret or anything derived from it.
"""
import os
import re
import base64
import secrets
import logging
from typing import Optional

from pydantic import BaseModel, Field, SecretStr, field_validator

logger = logging.getLogger("hybrid_session")

SECRET_ENV_VAR = "HYBRID_SESSION_KEY"
ENV_PREFIX = "HYBRID_SESSION_"

# payloads of this size or larger never go into a cookie
MAX_COOKIE_PAYLOAD = 1024

TOKEN_FORMATS = ("aead", "legacy")
CIPHER_BACKENDS = ("aesgcm", "chacha20")
DECRYPT_FAILURE_POLICIES = ("fail-open", "strict")

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def generate_secret() -> str:
    """Generate a random 32-byte secret and return it as a base64 string.

    This is a utility for operators to generate new secrets.

    Returns:
        Base64-encoded 32-byte secret string.
    """
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


class HybridSessionConfig(BaseModel):
    """Validated hybrid session configuration.

    Cookie attributes mirror the host session cookie; the encrypted
    session cookie is named ``cookie_name + cookie_suffix``.
    """

    secret: Optional[SecretStr] = None
    cookie_name: str = Field(default="NAVSESSID", min_length=1)
    cookie_suffix: str = Field(default="_2", min_length=1)
    lifetime: int = Field(default=1440, ge=1)
    cookie_path: str = "/"
    cookie_domain: Optional[str] = None
    cookie_secure: bool = False
    cookie_httponly: bool = True
    cookie_samesite: Optional[str] = "Lax"
    max_cookie_payload: int = Field(default=MAX_COOKIE_PAYLOAD, ge=1)
    token_format: str = Field(default="aead")
    cipher_backend: str = Field(default="aesgcm")
    decrypt_failure: str = Field(default="fail-open")
    strict_writes: bool = False
    db_engine: str = "postgresql"
    db_table: str = "hybrid_sessions"
    gc_interval: Optional[int] = Field(default=None, ge=1)

    @field_validator("token_format")
    @classmethod
    def validate_token_format(cls, v: str) -> str:
        """Validate token format is supported."""
        if v not in TOKEN_FORMATS:
            raise ValueError(f"Unsupported token format: {v}")
        return v

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        if v not in CIPHER_BACKENDS:
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @field_validator("decrypt_failure")
    @classmethod
    def validate_decrypt_failure(cls, v: str) -> str:
        if v not in DECRYPT_FAILURE_POLICIES:
            raise ValueError(f"Unsupported decrypt failure policy: {v}")
        return v

    @field_validator("cookie_samesite")
    @classmethod
    def validate_samesite(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in ("Lax", "Strict", "None"):
            raise ValueError(f"Invalid SameSite value: {v}")
        return v

    @field_validator("db_table")
    @classmethod
    def validate_table(cls, v: str) -> str:
        """Table names are interpolated into SQL, so only identifiers pass."""
        if not _TABLE_NAME.match(v):
            raise ValueError(f"Invalid table name: {v!r}")
        return v

    @property
    def fail_open(self) -> bool:
        return self.decrypt_failure == "fail-open"

    def resolve_secret(self) -> Optional[bytes]:
        """Return the shared secret, falling back to HYBRID_SESSION_KEY.

        Returns:
            Secret bytes, or None if neither source provides one.
        """
        if self.secret is not None and self.secret.get_secret_value():
            return self.secret.get_secret_value().encode("utf-8")
        value = os.environ.get(SECRET_ENV_VAR)
        if value:
            return value.encode("utf-8")
        return None

    @classmethod
    def from_env(cls, **overrides) -> "HybridSessionConfig":
        """Create HybridSessionConfig from HYBRID_SESSION_* environment variables.

        Explicit keyword overrides win over the environment.

        Returns:
            Populated HybridSessionConfig instance.
        """
        values: dict = {}
        for name in cls.model_fields:
            if name == "secret":
                # resolved lazily through resolve_secret()
                continue
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                values[name] = raw
        values.update(overrides)
        config = cls(**values)
        logger.debug(
            "Loaded session config: cookie=%s lifetime=%d format=%s",
            config.cookie_name, config.lifetime, config.token_format,
        )
        return config
