"""
Session-scoped token store.

The Concur token is cached once per browser session and reused for every
later request in that session. The token itself never leaves the server:
the signed Flask session cookie only carries an opaque session id, and the
token is stored under ``authToken:<session id>`` in a backend.

Backends:
  - Redis (REDIS_URL=redis://...) for multi-worker deployments
  - a process-local dict (REDIS_URL=memory://) for development / testing

Entries expire after PERMANENT_SESSION_LIFETIME so the token dies with
the session.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid

import redis
from flask import current_app, session

logger = logging.getLogger(__name__)

SESSION_ID_KEY = "sid"
TOKEN_KEY_PREFIX = "authToken:"


# ── Backends ──────────────────────────────────────────────────────────────


class MemoryBackend:
    """Simple dict store for dev/testing (per process)."""

    def __init__(self) -> None:
        self._store: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            val, expires = entry
            if expires and time.time() > expires:
                self._store.pop(key, None)
                return None
            return val

    def setex(self, key, ttl_seconds, value):
        now = time.time()
        with self._lock:
            self._purge_expired(now)
            self._store[key] = (value, now + ttl_seconds)

    def _purge_expired(self, now):
        # Tokens of ended sessions are never read again; drop them on write
        expired = [k for k, (_, expires) in self._store.items() if expires and now > expires]
        for k in expired:
            del self._store[k]

    def delete(self, *keys):
        with self._lock:
            for k in keys:
                self._store.pop(k, None)

    def flushdb(self):
        with self._lock:
            self._store.clear()

    def ping(self):
        return True


def create_backend(redis_url: str | None):
    """Return a Redis client for *redis_url*, or a MemoryBackend.

    Falls back to memory (with a warning) when Redis cannot be reached
    or the URL is malformed.
    """
    if redis_url and not redis_url.startswith("memory://"):
        try:
            client = redis.from_url(redis_url, decode_responses=True)
            client.ping()
            logger.info("Token store: using Redis at %s", redis_url.split("@")[-1])
            return client
        except (redis.RedisError, ValueError) as exc:
            logger.warning("Redis unavailable (%s), falling back to memory token store", exc)
    return MemoryBackend()


def backend_name(backend) -> str:
    return "memory" if isinstance(backend, MemoryBackend) else "redis"


# ── Store ─────────────────────────────────────────────────────────────────


class SessionTokenStore:
    """get / set / clear for one session's Concur token.

    Args:
        backend:    MemoryBackend or redis client (decode_responses=True).
        session_id: Opaque id of the browser session.
        ttl:        Seconds before the cached token is dropped.
    """

    def __init__(self, backend, session_id: str, ttl: int) -> None:
        self.backend = backend
        self.session_id = session_id
        self.ttl = ttl

    @property
    def key(self) -> str:
        return f"{TOKEN_KEY_PREFIX}{self.session_id}"

    def get(self) -> str | None:
        return self.backend.get(self.key)

    def set(self, token: str) -> None:
        self.backend.setex(self.key, self.ttl, token)

    def clear(self) -> None:
        self.backend.delete(self.key)


def token_store_for_request() -> SessionTokenStore:
    """Return the token store bound to the current browser session.

    Creates the session id on first use (the equivalent of
    ``request.getSession(true)``).
    """
    sid = session.get(SESSION_ID_KEY)
    if not sid:
        sid = uuid.uuid4().hex
        session[SESSION_ID_KEY] = sid
        session.permanent = True
        logger.debug("New browser session created")

    lifetime = current_app.permanent_session_lifetime
    return SessionTokenStore(
        backend=current_app.extensions["token_store_backend"],
        session_id=sid,
        ttl=int(lifetime.total_seconds()),
    )
