"""
aiohttp integration for hybrid sessions.

``setup(app, config, db_pool)`` installs a middleware that, per request:

1. opens a HybridCoordinator over a fresh CookieJar,
2. reads the session named by the host session cookie into a SessionData,
3. runs the handler,
4. writes the session back (or destroys it if it was invalidated),
5. closes the coordinator.

Queued cookies are added to the response once the handler returns, or in
``on_response_prepare`` for responses the handler prepared itself.  A
handler that streams its response early therefore makes the cookie
backend decline and the session lands in the database.
"""
import asyncio
import logging
from typing import Any, Optional
from aiohttp import web

from .conf import HybridSessionConfig
from .cookies import CookieJar
from .data import SessionData
from .storage import HybridCoordinator

logger = logging.getLogger("hybrid_session.middleware")

SESSION_CONFIG = web.AppKey("hybrid_session_config", HybridSessionConfig)
SESSION_POOL = web.AppKey("hybrid_session_pool", object)
SESSION_KEY = web.RequestKey("hybrid_session", SessionData)
SESSION_STORAGE = web.RequestKey("hybrid_session_storage", HybridCoordinator)
SESSION_JAR = web.RequestKey("hybrid_session_jar", CookieJar)


def setup(
    app: web.Application,
    config: Optional[HybridSessionConfig] = None,
    db_pool: Any = None
) -> HybridSessionConfig:
    """Install hybrid sessions on an aiohttp application.

    The pool may also be assigned later, e.g. from an ``on_startup``
    handler, through ``app[SESSION_POOL]``.
    """
    config = config or HybridSessionConfig.from_env()
    app[SESSION_CONFIG] = config
    app[SESSION_POOL] = db_pool
    app.middlewares.append(session_middleware)
    app.on_response_prepare.append(_flush_cookies)
    if config.gc_interval:
        app.cleanup_ctx.append(_gc_context)
    logger.info(
        "Hybrid sessions enabled: cookie=%s table=%s format=%s",
        config.cookie_name, config.db_table, config.token_format
    )
    return config


def get_session(request: web.Request) -> SessionData:
    try:
        return request[SESSION_KEY]
    except KeyError:
        raise RuntimeError(
            "Hybrid session middleware is not installed, call setup(app) first"
        ) from None


async def new_session(request: web.Request) -> SessionData:
    """Destroy the current session and start a new one with a fresh id."""
    old = get_session(request)
    store: HybridCoordinator = request[SESSION_STORAGE]
    await store.destroy(old.session_id)
    session = SessionData(new=True)
    request[SESSION_KEY] = session
    return session


@web.middleware
async def session_middleware(request: web.Request, handler):
    config = request.app[SESSION_CONFIG]
    jar = CookieJar.from_request(request)
    request[SESSION_JAR] = jar
    store = HybridCoordinator.create(config, jar, request.app[SESSION_POOL])
    await store.open(config.cookie_name)
    request[SESSION_STORAGE] = store
    try:
        session_id = jar.get(config.cookie_name)
        payload = await store.read(session_id) if session_id else b""
        if payload:
            session = SessionData.from_payload(session_id, payload)
        else:
            # never adopt a client-chosen id for a session we do not hold
            session = SessionData(new=True)
        request[SESSION_KEY] = session
        try:
            response = await handler(request)
        finally:
            await _persist(request, store, config, jar)
        if not response.prepared:
            jar.apply(response)
        return response
    finally:
        await store.close()


async def _persist(
    request: web.Request,
    store: HybridCoordinator,
    config: HybridSessionConfig,
    jar: CookieJar
) -> None:
    session: SessionData = request[SESSION_KEY]
    sid = session.session_id
    if session.invalidated:
        await store.destroy(sid)
        jar.force_expiry(
            config.cookie_name,
            path=config.cookie_path,
            domain=config.cookie_domain
        )
        return
    if session.new and not session.persistent():
        return
    # the inbound data cookie was cleared on open, so always write back
    await store.write(sid, session.to_payload())
    if session.new or session.is_changed:
        jar.set(
            config.cookie_name,
            sid,
            max_age=config.lifetime,
            path=config.cookie_path,
            domain=config.cookie_domain,
            secure=config.cookie_secure,
            httponly=config.cookie_httponly,
            samesite=config.cookie_samesite,
        )


async def _flush_cookies(request: web.Request, response: web.StreamResponse) -> None:
    jar: Optional[CookieJar] = request.get(SESSION_JAR)
    if jar is not None:
        jar.apply(response)


async def collect_garbage(app: web.Application) -> int:
    """Remove expired sessions from every backend, out of band."""
    config = app[SESSION_CONFIG]
    store = HybridCoordinator.create(config, CookieJar(), app[SESSION_POOL])
    await store.open(config.cookie_name)
    try:
        return await store.gc(config.lifetime)
    finally:
        await store.close()


async def _gc_loop(app: web.Application, interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await collect_garbage(app)
        except Exception as err:
            logger.error("Periodic session gc failed: %s", err)


async def _gc_context(app: web.Application):
    task = asyncio.create_task(_gc_loop(app, app[SESSION_CONFIG].gc_interval))
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
