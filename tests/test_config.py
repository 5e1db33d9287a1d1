"""Tests for settings resolution from .env files and the environment."""
import os
from pathlib import Path

import pytest

from zettelmem.config import DEFAULT_MEM0_BASE_URL, Settings, load_settings


@pytest.fixture(autouse=True)
def _restore_environ():
    """load_dotenv writes straight into os.environ; undo whatever it added."""
    saved = dict(os.environ)
    yield
    os.environ.clear()
    os.environ.update(saved)


def test_defaults(tmp_home):
    s = load_settings()
    assert s.home == tmp_home
    assert s.db_path == tmp_home / "notes-db.sqlite"
    assert s.mem0_api_key is None
    assert not s.remote_enabled
    assert s.mem0_base_url == DEFAULT_MEM0_BASE_URL
    assert s.user_id == "zettelkasten_mcp"
    assert s.remote_timeout_ms == 5000
    assert s.flush_interval_ms == 10000
    assert s.search_limit == 10
    assert s.log_level == "WARNING"


def test_environment_overrides(tmp_home, tmp_path, monkeypatch):
    monkeypatch.setenv("ZETTEL_DB_PATH", str(tmp_path / "custom.sqlite"))
    monkeypatch.setenv("MEM0_API_KEY", "k-123")
    monkeypatch.setenv("MEM0_BASE_URL", "https://mem0.internal/")
    monkeypatch.setenv("ZETTEL_USER_ID", "alice")
    monkeypatch.setenv("ZETTEL_REMOTE_TIMEOUT_MS", "750")
    monkeypatch.setenv("ZETTEL_SEARCH_LIMIT", "25")
    monkeypatch.setenv("ZETTEL_LOG_LEVEL", "debug")

    s = load_settings()
    assert s.db_path == tmp_path / "custom.sqlite"
    assert s.remote_enabled
    assert s.mem0_base_url == "https://mem0.internal"
    assert s.user_id == "alice"
    assert s.remote_timeout_ms == 750
    assert s.search_limit == 25
    assert s.log_level == "DEBUG"


def test_invalid_and_out_of_range_ints(tmp_home, monkeypatch):
    monkeypatch.setenv("ZETTEL_REMOTE_TIMEOUT_MS", "soon")
    monkeypatch.setenv("ZETTEL_SEARCH_LIMIT", "-4")
    monkeypatch.setenv("ZETTEL_HTTP_PORT", "99999")
    s = load_settings()
    assert s.remote_timeout_ms == 5000
    assert s.search_limit == 1
    assert s.http_port == 65535


def test_home_expands_user(tmp_home, monkeypatch):
    monkeypatch.setenv("ZETTEL_HOME", "~/zk-notes")
    s = load_settings()
    assert s.home == Path.home() / "zk-notes"


def test_env_file_loaded_without_overriding(tmp_home, tmp_path, monkeypatch):
    env_file = tmp_path / "custom.env"
    env_file.write_text("ZETTEL_USER_ID=from-file\nZETTEL_SEARCH_LIMIT=4\n")
    monkeypatch.setenv("ZETTEL_SEARCH_LIMIT", "9")

    s = load_settings(str(env_file))
    assert s.user_id == "from-file"
    assert s.search_limit == 9


def test_home_env_file(tmp_home, monkeypatch):
    (tmp_home / ".env").write_text("ZETTEL_FLUSH_INTERVAL_MS=2500\n")
    monkeypatch.chdir(tmp_home)
    s = load_settings()
    assert s.flush_interval_ms == 2500


def test_asdict_masks_key(tmp_home):
    s = Settings(home=tmp_home, mem0_api_key="very-secret")
    data = s.asdict()
    assert data["mem0_api_key"] == "***"
    assert data["home"] == str(tmp_home)
    assert "very-secret" not in repr(s)


def test_cors_origins(tmp_home, monkeypatch):
    assert load_settings().cors_origins == ["*"]
    monkeypatch.setenv("ZETTEL_CORS_ORIGINS", "http://localhost:3000, https://notes.example ,")
    assert load_settings().cors_origins == ["http://localhost:3000", "https://notes.example"]
