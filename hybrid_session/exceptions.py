"""Hybrid Session exceptions."""


class SessionError(Exception):
    """Base class for all Hybrid Session errors."""


class AuthenticationFailure(SessionError):
    """A session token could not be verified.

    Raised for malformed and tampered tokens alike; the message never
    carries any part of the recovered plaintext.
    """

    def __init__(self, message: str = "Session token failed verification"):
        super().__init__(message)


class ConfigurationError(SessionError):
    """Session storage is misconfigured and cannot be used."""


class UnsupportedEngine(ConfigurationError):
    """The configured record store engine is not supported."""


class SessionWriteError(SessionError):
    """No backend accepted a session write (only raised when requested)."""
