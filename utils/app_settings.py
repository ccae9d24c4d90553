"""Application settings for the form builder.

Values come from environment variables and may be overridden by a config INI
in the data directory (``data/app.ini`` by default)::

    [formbuilder]
    public_url = https://forms.example.org
    poll_ms = 250
    db_name = formbuilder.db
    change_retention_s = 3600

Environment variables: ``FORMBUILDER_DATA_DIR``, ``FORMBUILDER_PUBLIC_URL``,
``FORMBUILDER_POLL_MS`` and ``FORMBUILDER_CHANGE_RETENTION_S``.
"""

from __future__ import annotations

import configparser
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_PUBLIC_URL = "http://localhost:3000"
DEFAULT_POLL_MS = 500
DEFAULT_DB_NAME = "formbuilder.db"
# Change-log rows older than this are pruned from the shared store
DEFAULT_CHANGE_RETENTION_S = 3600


@dataclass(slots=True)
class FormBuilderSettings:
    data_dir: Path
    public_url: str = DEFAULT_PUBLIC_URL
    poll_interval_ms: int = DEFAULT_POLL_MS
    db_name: str = DEFAULT_DB_NAME
    change_retention_s: int = DEFAULT_CHANGE_RETENTION_S

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name


def _read_ini(data_dir: Path) -> dict[str, str]:
    """Return the ``[formbuilder]`` section of ``app.ini`` if present."""
    ini_path = data_dir / "app.ini"
    if not ini_path.exists():
        return {}
    cp = configparser.ConfigParser()
    try:
        cp.read(ini_path)
    except configparser.Error as e:
        logger.warning("[settings] ignoring unreadable %s: %s", ini_path, e)
        return {}
    if not cp.has_section("formbuilder"):
        return {}
    return dict(cp.items("formbuilder"))


def _as_int(raw: str | None, fallback: int, what: str) -> int:
    if raw is None or str(raw).strip() == "":
        return fallback
    try:
        value = int(str(raw).strip())
    except ValueError:
        logger.warning("[settings] invalid %s %r, using %s", what, raw, fallback)
        return fallback
    return value if value > 0 else fallback


def load_settings() -> FormBuilderSettings:
    """Resolve settings; the INI file wins over the environment."""
    data_dir = Path(os.environ.get("FORMBUILDER_DATA_DIR", "data"))
    ini = _read_ini(data_dir)

    public_url = ini.get("public_url") or os.environ.get("FORMBUILDER_PUBLIC_URL") or DEFAULT_PUBLIC_URL
    poll_raw = ini.get("poll_ms") or os.environ.get("FORMBUILDER_POLL_MS")
    db_name = ini.get("db_name") or DEFAULT_DB_NAME
    retention_raw = ini.get("change_retention_s") or os.environ.get("FORMBUILDER_CHANGE_RETENTION_S")

    return FormBuilderSettings(
        data_dir=data_dir,
        public_url=public_url.rstrip("/"),
        poll_interval_ms=_as_int(poll_raw, DEFAULT_POLL_MS, "poll interval"),
        db_name=db_name,
        change_retention_s=_as_int(retention_raw, DEFAULT_CHANGE_RETENTION_S, "change retention"),
    )


__all__ = ["FormBuilderSettings", "load_settings"]
