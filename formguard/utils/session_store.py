"""
Session storage backends.
A store maps session id -> dict of values with a sliding expiry.
The CSRF guard only relies on the atomic operations defined here.
"""
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from database import crud

logger = logging.getLogger(__name__)

# Optimistic write attempts before giving up in SqlSessionStore
MAX_WRITE_ATTEMPTS = 5


class SessionExpired(Exception):
    """The session record existed but is past its expiry."""


class SessionConflict(Exception):
    """A write kept losing to concurrent writers."""


class SessionStore(ABC):
    """Key/value storage per session id."""

    def __init__(self, max_age: int):
        self.max_age = max_age

    def _expiry(self) -> float:
        return time.time() + self.max_age

    @abstractmethod
    def get(self, session_id: str, key: str, default: Any = None) -> Any:
        """Return a value; raises SessionExpired for an expired record."""

    @abstractmethod
    def set(self, session_id: str, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def setdefault(self, session_id: str, key: str, factory: Callable[[], Any]) -> Any:
        """Store factory() under key unless a value is present. Atomic."""

    @abstractmethod
    def compare_and_swap(self, session_id: str, key: str, expected: Any, new: Any) -> bool:
        """Replace the value only if it still equals expected. Atomic."""

    @abstractmethod
    def delete(self, session_id: str) -> None:
        ...

    @abstractmethod
    def purge_expired(self) -> int:
        ...


class MemorySessionStore(SessionStore):
    """
    In-process store.
    Fine for a single worker; sessions are lost on restart.
    """

    def __init__(self, max_age: int, cleanup_interval: int = 300):
        super().__init__(max_age)
        self.cleanup_interval = cleanup_interval
        self.last_cleanup = time.time()
        # Storage: {session_id: {'data': dict, 'expires_at': float}}
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _live_entry(self, session_id: str, create: bool = False) -> Optional[Dict[str, Any]]:
        """Return the entry for session_id. Caller must hold the lock."""
        entry = self.sessions.get(session_id)
        if entry is not None and entry['expires_at'] <= time.time():
            del self.sessions[session_id]
            if not create:
                raise SessionExpired(session_id)
            entry = None
        if entry is None and create:
            entry = {'data': {}, 'expires_at': self._expiry()}
            self.sessions[session_id] = entry
        return entry

    def _cleanup_old_records(self):
        """Purge expired sessions at most once per cleanup_interval."""
        now = time.time()
        if now - self.last_cleanup < self.cleanup_interval:
            return
        self.last_cleanup = now
        self.purge_expired()

    def get(self, session_id, key, default=None):
        with self._lock:
            entry = self._live_entry(session_id)
            if entry is None:
                return default
            entry['expires_at'] = self._expiry()
            return entry['data'].get(key, default)

    def set(self, session_id, key, value):
        self._cleanup_old_records()
        with self._lock:
            entry = self._live_entry(session_id, create=True)
            entry['data'][key] = value
            entry['expires_at'] = self._expiry()

    def setdefault(self, session_id, key, factory):
        self._cleanup_old_records()
        with self._lock:
            entry = self._live_entry(session_id, create=True)
            if entry['data'].get(key) is None:
                entry['data'][key] = factory()
            entry['expires_at'] = self._expiry()
            return entry['data'][key]

    def compare_and_swap(self, session_id, key, expected, new):
        with self._lock:
            try:
                entry = self._live_entry(session_id)
            except SessionExpired:
                return False
            if entry is None or entry['data'].get(key) != expected:
                return False
            entry['data'][key] = new
            entry['expires_at'] = self._expiry()
            return True

    def delete(self, session_id):
        with self._lock:
            self.sessions.pop(session_id, None)

    def purge_expired(self):
        now = time.time()
        with self._lock:
            to_remove = [
                session_id for session_id, entry in self.sessions.items()
                if entry['expires_at'] <= now
            ]
            for session_id in to_remove:
                del self.sessions[session_id]

        if to_remove:
            logger.debug(f"Session cleanup: removed {len(to_remove)} expired sessions")
        return len(to_remove)


class SqlSessionStore(SessionStore):
    """
    Store backed by the web_sessions table.
    Writes are optimistic: UPDATE ... WHERE version = <version read>,
    retried on conflict, so several workers can share one database.
    """

    def __init__(self, session_factory: sessionmaker, max_age: int):
        super().__init__(max_age)
        self.session_factory = session_factory

    def _load(self, db, session_id: str, touch: bool = False):
        """Return (data, version) or (None, None); raises SessionExpired."""
        record = crud.get_web_session(db, session_id)
        if record is None:
            return None, None
        if record.expires_at <= time.time():
            crud.delete_web_session(db, session_id)
            raise SessionExpired(session_id)
        data, version = crud.load_data(record), record.version
        if touch:
            crud.touch_web_session(db, session_id, self._expiry())
        return data, version

    def _modify(self, session_id: str, mutate: Callable[[dict], Any], create: bool = True):
        """
        Read-modify-write loop.
        mutate(data) changes data in place and returns (changed, result).
        """
        for _ in range(MAX_WRITE_ATTEMPTS):
            with self.session_factory() as db:
                try:
                    data, version = self._load(db, session_id)
                except SessionExpired:
                    if not create:
                        raise
                    data, version = None, None

                if data is None:
                    if not create:
                        return False, None
                    data = {}

                changed, result = mutate(data)
                if not changed:
                    if version is not None:
                        crud.touch_web_session(db, session_id, self._expiry())
                    return False, result

                if version is None:
                    try:
                        crud.create_web_session(db, session_id, data, self._expiry())
                        return True, result
                    except IntegrityError:
                        db.rollback()
                        continue
                if crud.update_web_session(db, session_id, data, self._expiry(), version):
                    return True, result

            logger.debug(f"Session write conflict for {session_id[:8]}..., retrying")

        raise SessionConflict(session_id)

    def get(self, session_id, key, default=None):
        with self.session_factory() as db:
            data, _ = self._load(db, session_id, touch=True)
        if data is None:
            return default
        return data.get(key, default)

    def set(self, session_id, key, value):
        def mutate(data):
            data[key] = value
            return True, value
        self._modify(session_id, mutate)

    def setdefault(self, session_id, key, factory):
        def mutate(data):
            if data.get(key) is not None:
                return False, data[key]
            data[key] = factory()
            return True, data[key]
        _, value = self._modify(session_id, mutate)
        return value

    def compare_and_swap(self, session_id, key, expected, new):
        def mutate(data):
            if data.get(key) != expected:
                return False, False
            data[key] = new
            return True, True
        try:
            _, swapped = self._modify(session_id, mutate, create=False)
        except SessionExpired:
            return False
        return bool(swapped)

    def delete(self, session_id):
        with self.session_factory() as db:
            crud.delete_web_session(db, session_id)

    def purge_expired(self):
        with self.session_factory() as db:
            removed = crud.delete_expired_web_sessions(db, time.time())
        if removed:
            logger.debug(f"Session cleanup: removed {removed} expired sessions")
        return removed


def build_session_store(app_settings) -> SessionStore:
    """Create the store selected by settings.session_store."""
    if app_settings.is_sql_store:
        from database import init_db, make_engine

        engine = make_engine(app_settings.database_url, echo=app_settings.debug)
        init_db(engine)
        store = SqlSessionStore(sessionmaker(engine, expire_on_commit=False), app_settings.session_max_age)
        store.purge_expired()
        logger.info("Using SQL session store")
        return store

    logger.info("Using in-memory session store")
    return MemorySessionStore(app_settings.session_max_age)
