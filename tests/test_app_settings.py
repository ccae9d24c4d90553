from pathlib import Path

from utils.app_settings import (
    DEFAULT_CHANGE_RETENTION_S,
    DEFAULT_POLL_MS,
    DEFAULT_PUBLIC_URL,
    load_settings,
)


def test_defaults(tmp_path):
    settings = load_settings()
    assert settings.data_dir == Path(tmp_path)
    assert settings.public_url == DEFAULT_PUBLIC_URL
    assert settings.poll_interval_ms == DEFAULT_POLL_MS
    assert settings.db_path == Path(tmp_path) / "formbuilder.db"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("FORMBUILDER_PUBLIC_URL", "https://forms.acme.org/")
    monkeypatch.setenv("FORMBUILDER_POLL_MS", "125")
    settings = load_settings()
    assert settings.public_url == "https://forms.acme.org"
    assert settings.poll_interval_ms == 125


def test_ini_wins_over_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("FORMBUILDER_POLL_MS", "125")
    (tmp_path / "app.ini").write_text(
        "[formbuilder]\npublic_url = https://ini.acme.org\npoll_ms = 900\ndb_name = alt.db\n"
    )
    settings = load_settings()
    assert settings.public_url == "https://ini.acme.org"
    assert settings.poll_interval_ms == 900
    assert settings.db_path.name == "alt.db"


def test_invalid_poll_interval_falls_back(monkeypatch, caplog):
    monkeypatch.setenv("FORMBUILDER_POLL_MS", "soon")
    assert load_settings().poll_interval_ms == DEFAULT_POLL_MS
    assert "invalid poll interval" in caplog.text


def test_change_retention_setting(monkeypatch):
    assert load_settings().change_retention_s == DEFAULT_CHANGE_RETENTION_S
    monkeypatch.setenv("FORMBUILDER_CHANGE_RETENTION_S", "120")
    assert load_settings().change_retention_s == 120
