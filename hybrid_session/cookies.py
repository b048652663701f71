"""
Request-scoped cookie jar.

Captures the inbound cookies of a request and queues outbound ones until
the response headers are prepared.  Once :meth:`CookieJar.apply` has run,
``headers_sent`` is True and no more cookies can be queued.
"""
import logging
from typing import Any, Optional
from collections.abc import Mapping
from http.cookies import Morsel, SimpleCookie
from aiohttp import hdrs, web

logger = logging.getLogger("hybrid_session.cookies")

_EPOCH = "Thu, 01 Jan 1970 00:00:00 GMT"


class CookieJar:
    """Cookie get/set/expire API for one request."""

    def __init__(self, incoming: Optional[Mapping[str, str]] = None) -> None:
        self._incoming: dict[str, str] = dict(incoming or {})
        self._outgoing: dict[str, dict[str, Any]] = {}
        self._headers_sent = False

    def __repr__(self) -> str:
        return (
            f'<CookieJar incoming={sorted(self._incoming)} '
            f'outgoing={sorted(self._outgoing)} sent={self._headers_sent}>'
        )

    @classmethod
    def from_request(cls, request: web.Request) -> "CookieJar":
        return cls(request.cookies)

    @property
    def headers_sent(self) -> bool:
        return self._headers_sent

    @property
    def outgoing(self) -> dict[str, dict[str, Any]]:
        """Queued cookies, keyed by name."""
        return self._outgoing

    def get(self, name: str) -> Optional[str]:
        """Return the inbound value of a cookie, if the client sent one."""
        return self._incoming.get(name) or None

    def set(
        self,
        name: str,
        value: str,
        *,
        max_age: Optional[int] = None,
        path: str = "/",
        domain: Optional[str] = None,
        secure: bool = False,
        httponly: bool = True,
        samesite: Optional[str] = None,
    ) -> bool:
        """Queue a cookie for the response.

        Returns:
            False if the headers were already sent.
        """
        if self._headers_sent:
            logger.warning("Cannot set cookie %s: headers already sent", name)
            return False
        self._outgoing[name] = {
            "value": value,
            "max_age": max_age,
            "path": path,
            "domain": domain,
            "secure": secure,
            "httponly": httponly,
            "samesite": samesite,
        }
        return True

    def force_expiry(
        self,
        name: str,
        *,
        path: str = "/",
        domain: Optional[str] = None,
    ) -> bool:
        """Queue an already-expired cookie so the client drops it."""
        if self._headers_sent:
            logger.warning("Cannot expire cookie %s: headers already sent", name)
            return False
        self._outgoing[name] = {
            "value": "",
            "max_age": 0,
            "expires": _EPOCH,
            "path": path,
            "domain": domain,
        }
        return True

    def apply(self, response: web.StreamResponse) -> None:
        """Add queued cookies to the response headers and close the jar.

        Headers are written directly, so this also works from an
        ``on_response_prepare`` hook that runs after aiohttp has already
        serialized ``response.cookies``.
        """
        if self._headers_sent:
            return
        for name, params in self._outgoing.items():
            response.headers.add(hdrs.SET_COOKIE, _morsel(name, params).OutputString())
        self._headers_sent = True


def _morsel(name: str, params: Mapping[str, Any]) -> Morsel:
    cookie: SimpleCookie = SimpleCookie()
    cookie[name] = params["value"]
    morsel = cookie[name]
    if params.get("max_age") is not None:
        morsel["max-age"] = str(params["max_age"])
    if params.get("expires"):
        morsel["expires"] = params["expires"]
    morsel["path"] = params.get("path") or "/"
    if params.get("domain"):
        morsel["domain"] = params["domain"]
    if params.get("secure"):
        morsel["secure"] = True
    if params.get("httponly"):
        morsel["httponly"] = True
    if params.get("samesite"):
        morsel["samesite"] = params["samesite"]
    return morsel
