"""Tests for settings loading, JSON helpers and db session helpers."""
from __future__ import annotations

import pydantic
import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from riskmatch.config import Settings, load_settings
from riskmatch.models import Base, VendorProfile
from riskmatch.utils import json_list, json_parse


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings(environ={})
        assert settings.gap_threshold == 3.0
        assert settings.price_tolerance == 1.25
        assert settings.match_threshold == 80
        assert settings.top_vendor_limit == 3

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "riskmatch.yaml"
        path.write_text("gap_threshold: 2.5\ntop_vendor_limit: 5\n", encoding="utf-8")
        settings = load_settings(environ={"RISKMATCH_CONFIG": str(path)})
        assert settings.gap_threshold == 2.5
        assert settings.top_vendor_limit == 5

    def test_env_wins_over_file(self, tmp_path):
        path = tmp_path / "riskmatch.yaml"
        path.write_text("gap_threshold: 2.5\n", encoding="utf-8")
        settings = load_settings(path, environ={
            "RISKMATCH_GAP_THRESHOLD": "2.0",
            "RISKMATCH_DB_PATH": str(tmp_path / "x.db"),
        })
        assert settings.gap_threshold == 2.0
        assert settings.database_path == tmp_path / "x.db"

    def test_empty_yaml_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_settings(path, environ={}).gap_threshold == 3.0

    def test_out_of_range_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            load_settings(environ={"RISKMATCH_GAP_THRESHOLD": "7"})
        with pytest.raises(pydantic.ValidationError):
            Settings(price_tolerance=0.5)


class TestJsonParse:
    def test_valid(self):
        assert json_parse('["a", "b"]') == ["a", "b"]

    def test_invalid_returns_default(self):
        assert json_parse("not json") == []
        assert json_parse(None, {}) == {}

    def test_json_list(self):
        assert json_list('["a", 1, null]') == ("a", "1")
        assert json_list('{"a": 1}') == ()
        assert json_list("") == ()


@pytest.fixture()
def engine():
    eng = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(eng)
    return eng


class TestSessionManagement:
    @pytest.fixture(autouse=True)
    def _wire_db(self, engine, monkeypatch):
        import riskmatch.db as db_mod
        monkeypatch.setattr(db_mod, "_engine", engine)
        monkeypatch.setattr(
            db_mod, "_SessionLocal",
            sessionmaker(bind=engine, autoflush=False, expire_on_commit=False),
        )

    def test_session_scope(self):
        from riskmatch.db import session_scope
        with session_scope() as sess:
            assert isinstance(sess, Session)
            sess.add(VendorProfile(name="ScopeTest"))
            sess.commit()
        with session_scope() as sess:
            names = sess.execute(select(VendorProfile.name)).scalars().all()
        assert names == ["ScopeTest"]

    def test_session_scope_rollback(self):
        from riskmatch.db import session_scope
        with pytest.raises(ValueError):
            with session_scope() as sess:
                sess.add(VendorProfile(name="WillFail"))
                sess.flush()
                raise ValueError("boom")
        with session_scope() as sess:
            assert sess.execute(select(VendorProfile)).scalars().first() is None

    def test_session_generator(self):
        from riskmatch.db import session_generator
        gen = session_generator()
        sess = next(gen)
        assert isinstance(sess, Session)
        gen.close()

    def test_get_session_requires_init(self, monkeypatch):
        import riskmatch.db as db_mod
        monkeypatch.setattr(db_mod, "_SessionLocal", None)
        with pytest.raises(RuntimeError, match="init_db"):
            db_mod.get_session()


class TestInitDb:
    def test_creates_file_database(self, tmp_path, monkeypatch):
        import riskmatch.db as db_mod
        monkeypatch.setattr(db_mod, "_engine", None)
        monkeypatch.setattr(db_mod, "_SessionLocal", None)
        path = tmp_path / "sub" / "risk.db"
        db_mod.init_db(path)
        try:
            assert path.exists()
            with db_mod.session_scope() as session:
                assert str(session.get_bind().url).endswith("risk.db")
        finally:
            db_mod._engine.dispose()
