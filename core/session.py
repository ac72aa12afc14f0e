"""Server-side sessions.

A ``Session`` is created per request by the front controller from the
session cookie and saved back into a ``SessionStore`` after the response is
built. Handlers receive it explicitly through the request context.
"""
import copy
import logging
import secrets
import threading
import time

from core.data_client import DataClientError
from core.security import rate_limit_key

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session:"

IDENTITY_KEYS = ("user_id", "email", "username", "display_name", "role", "access_token", "refresh_token")


class SessionStore:
    """Key-value storage shared by sessions and rate-limit counters."""

    def get(self, key):
        raise NotImplementedError

    def set(self, key, value, timeout=None):
        raise NotImplementedError

    def delete(self, key):
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    """Process-local store. Values are copied in and out so callers never share state."""

    def __init__(self, clock=time.time):
        self._data = {}
        self._clock = clock
        self._lock = threading.Lock()

    def _expired(self, expires_at, now):
        return expires_at is not None and expires_at <= now

    def get(self, key):
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, expires_at = item
            if self._expired(expires_at, self._clock()):
                self._data.pop(key, None)
                return None
            return copy.deepcopy(value)

    def set(self, key, value, timeout=None):
        now = self._clock()
        expires_at = now + timeout if timeout else None
        with self._lock:
            # Брошенные сессии никто не читает, поэтому чистим при записи
            for stale in [k for k, (_, exp) in self._data.items() if self._expired(exp, now)]:
                del self._data[stale]
            self._data[key] = (copy.deepcopy(value), expires_at)

    def delete(self, key):
        with self._lock:
            self._data.pop(key, None)

    def __len__(self):
        with self._lock:
            return len(self._data)

    def __contains__(self, key):
        return self.get(key) is not None


class CacheSessionStore(SessionStore):
    """Store backed by a Flask-Caching ``Cache`` (FileSystemCache in production)."""

    def __init__(self, cache):
        self.cache = cache

    def get(self, key):
        return self.cache.get(key)

    def set(self, key, value, timeout=None):
        self.cache.set(key, value, timeout=timeout or 0)

    def delete(self, key):
        self.cache.delete(key)


class Session:
    def __init__(self, store, sid=None, timeout=3600, clock=time.time, auth_client=None):
        self.store = store
        self.sid = sid
        self.timeout = timeout
        self.clock = clock
        # Used for the remote sign-out on logout; attached by the front controller.
        self.auth_client = auth_client
        self.data = {}
        self._started = False

    def start(self):
        if self._started:
            return self
        stored = self.store.get(SESSION_KEY_PREFIX + self.sid) if self.sid else None
        if stored is None:
            self.sid = self._new_sid()
            self.data = {}
        else:
            self.data = stored
        self._started = True
        return self

    @staticmethod
    def _new_sid():
        return secrets.token_urlsafe(32)

    def regenerate_id(self):
        if self.sid:
            self.store.delete(SESSION_KEY_PREFIX + self.sid)
        self.sid = self._new_sid()

    def save(self):
        self.store.set(SESSION_KEY_PREFIX + self.sid, self.data, timeout=self.timeout)

    def get(self, key, default=None):
        return self.data.get(key, default)

    def set(self, key, value):
        self.data[key] = value

    def has(self, key):
        return self.data.get(key) is not None

    def remove(self, key):
        self.data.pop(key, None)

    def login(self, identity):
        self.regenerate_id()

        now = int(self.clock())
        self.data["user_id"] = identity["id"]
        self.data["email"] = identity.get("email") or ""
        self.data["username"] = identity.get("username") or ""
        self.data["display_name"] = identity.get("display_name") or ""
        self.data["role"] = identity.get("role") or "user"
        self.data["access_token"] = identity.get("access_token") or ""
        self.data["refresh_token"] = identity.get("refresh_token") or ""
        self.data["login_time"] = now
        self.data["last_activity"] = now

        for identifier in (identity.get("email"), identity.get("username")):
            if identifier:
                self.store.delete(rate_limit_key(identifier))

    def is_logged_in(self):
        if self.data.get("user_id") is None:
            return False

        last_activity = self.data.get("last_activity")
        now = int(self.clock())
        if last_activity is None or now - last_activity > self.timeout:
            self.logout()
            return False

        self.data["last_activity"] = now
        return True

    def get_user(self):
        if not self.is_logged_in():
            return None
        user = {key: self.data.get(key) for key in IDENTITY_KEYS}
        user["id"] = user.pop("user_id")
        return user

    def is_admin(self):
        return self.is_logged_in() and self.data.get("role") == "admin"

    def logout(self):
        access_token = self.data.get("access_token")
        if self.auth_client is not None and access_token:
            try:
                self.auth_client.sign_out(access_token)
            except DataClientError as e:
                logger.warning("Remote sign-out failed: %s", e)

        self.data = {}
        self.regenerate_id()

    def set_flash(self, type, message):
        self.data.setdefault("flash", {})[type] = message

    def get_flash(self, type):
        flashes = self.data.get("flash") or {}
        message = flashes.pop(type, None)
        if not flashes:
            self.data.pop("flash", None)
        return message

    def get_all_flashes(self):
        return self.data.pop("flash", None) or {}

    def set_form_data(self, data):
        self.data["form_data"] = dict(data)

    def get_form_data(self):
        return self.data.pop("form_data", None) or {}
