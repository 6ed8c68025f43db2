from types import SimpleNamespace

import pytest

from config import Settings
from database import crud
from formguard.utils import session_store
from formguard.utils.session_store import (
    MemorySessionStore,
    SessionConflict,
    SessionExpired,
    SqlSessionStore,
    build_session_store,
)


class TestStoreContract:
    """Behaviour shared by every backend."""

    def test_get_unknown_session_returns_default(self, any_store):
        assert any_store.get("missing", "key") is None
        assert any_store.get("missing", "key", "fallback") == "fallback"

    def test_set_then_get(self, any_store):
        any_store.set("s", "user", "admin")
        assert any_store.get("s", "user") == "admin"
        assert any_store.get("s", "other") is None

    def test_setdefault_keeps_first_value(self, any_store):
        assert any_store.setdefault("s", "k", lambda: "first") == "first"
        assert any_store.setdefault("s", "k", lambda: "second") == "first"

    def test_compare_and_swap(self, any_store):
        any_store.set("s", "k", "old")
        assert any_store.compare_and_swap("s", "k", "stale", "new") is False
        assert any_store.get("s", "k") == "old"
        assert any_store.compare_and_swap("s", "k", "old", "new") is True
        assert any_store.get("s", "k") == "new"

    def test_compare_and_swap_on_unknown_session(self, any_store):
        assert any_store.compare_and_swap("missing", "k", None, "new") is False
        assert any_store.get("missing", "k") is None

    def test_delete_is_idempotent(self, any_store):
        any_store.set("s", "k", "v")
        any_store.delete("s")
        any_store.delete("s")
        assert any_store.get("s", "k") is None

    def test_sessions_are_isolated(self, any_store):
        any_store.set("a", "k", "1")
        any_store.set("b", "k", "2")
        assert any_store.get("a", "k") == "1"
        assert any_store.get("b", "k") == "2"


class TestExpiry:
    @pytest.fixture()
    def clock(self, monkeypatch):
        now = SimpleNamespace(value=1000.0)
        monkeypatch.setattr(session_store, "time", SimpleNamespace(time=lambda: now.value))
        return now

    def test_reads_extend_the_session(self, any_store, clock):
        any_store.max_age = 100
        any_store.set("s", "k", "v")
        for _ in range(5):
            clock.value += 80
            assert any_store.get("s", "k") == "v"

    def test_reissue_extends_the_session(self, any_store, clock):
        any_store.max_age = 100
        token = any_store.setdefault("s", "k", lambda: "token")
        for _ in range(5):
            clock.value += 80
            assert any_store.setdefault("s", "k", lambda: "other") == token

    def test_idle_session_expires(self, any_store, clock):
        any_store.max_age = 100
        any_store.set("s", "k", "v")
        clock.value += 101
        with pytest.raises(SessionExpired):
            any_store.get("s", "k")

    def test_memory_expired_session_raises_once(self):
        store = MemorySessionStore(max_age=0)
        store.set("s", "k", "v")
        with pytest.raises(SessionExpired):
            store.get("s", "k")
        # The expired record was purged
        assert store.get("s", "k") is None

    def test_memory_expired_session_is_recreated_on_write(self):
        store = MemorySessionStore(max_age=0)
        store.set("s", "k", "old")
        store.max_age = 3600
        assert store.setdefault("s", "k", lambda: "new") == "new"

    def test_memory_purge_expired(self):
        store = MemorySessionStore(max_age=0)
        store.set("a", "k", "v")
        store.set("b", "k", "v")
        assert store.purge_expired() == 2
        assert store.sessions == {}

    def test_sql_expired_session_raises(self, sql_store):
        sql_store.max_age = 0
        sql_store.set("s", "k", "v")
        with pytest.raises(SessionExpired):
            sql_store.get("s", "k")
        assert sql_store.get("s", "k") is None

    def test_sql_purge_expired(self, sql_store):
        sql_store.set("live", "k", "v")
        sql_store.max_age = 0
        sql_store.set("dead", "k", "v")
        assert sql_store.purge_expired() == 1
        assert sql_store.get("live", "k") == "v"


class TestSqlSessionStore:
    def test_writes_bump_version(self, sql_store):
        sql_store.set("s", "a", 1)
        sql_store.set("s", "b", 2)
        with sql_store.session_factory() as db:
            record = crud.get_web_session(db, "s")
            assert record.version == 2
            assert crud.load_data(record) == {"a": 1, "b": 2}

    def test_stale_version_update_is_refused(self, sql_store):
        sql_store.set("s", "k", "v")
        with sql_store.session_factory() as db:
            assert crud.update_web_session(db, "s", {"k": "x"}, 0.0, seen_version=7) is False
        assert sql_store.get("s", "k") == "v"

    def test_corrupted_data_reads_as_empty(self, sql_store):
        sql_store.set("s", "k", "v")
        with sql_store.session_factory() as db:
            record = crud.get_web_session(db, "s")
            record.data = "not json"
            db.commit()
        assert sql_store.get("s", "k") is None

    def test_gives_up_after_repeated_conflicts(self, sql_store, monkeypatch):
        sql_store.set("s", "k", "v")
        monkeypatch.setattr(crud, "update_web_session", lambda *args, **kwargs: False)
        with pytest.raises(SessionConflict):
            sql_store.set("s", "k", "w")


class TestBuildSessionStore:
    def test_memory_by_default(self):
        store = build_session_store(Settings(_env_file=None))
        assert isinstance(store, MemorySessionStore)

    def test_sql_store_creates_tables(self):
        app_settings = Settings(_env_file=None, session_store="sql", database_url="sqlite://")
        store = build_session_store(app_settings)
        assert isinstance(store, SqlSessionStore)
        store.set("s", "k", "v")
        assert store.get("s", "k") == "v"

    def test_memory_store_ignores_database_url(self):
        # No engine is built unless the SQL store is selected
        app_settings = Settings(_env_file=None, database_url="postgresql+psycopg://nobody@nowhere/db")
        assert isinstance(build_session_store(app_settings), MemorySessionStore)

    def test_database_package_has_no_import_time_engine(self):
        import database
        from database import database as database_module

        assert not hasattr(database_module, "engine")
        assert not hasattr(database, "db_session")
