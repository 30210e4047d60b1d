"""Environment-variable-based configuration."""

import os
from pathlib import Path


def get_db_path() -> Path:
    """Return the SQLite database file path from DBEXEC_DB_PATH."""
    raw = os.environ.get("DBEXEC_DB_PATH", "~/.local/share/dbexec/dbexec.db")
    return Path(raw).expanduser()


def get_database_url() -> str | None:
    """Return the database URL from DBEXEC_DATABASE_URL, if set."""
    return os.environ.get("DBEXEC_DATABASE_URL") or None


def get_command_timeout() -> float | None:
    """Return the default command timeout in seconds from DBEXEC_COMMAND_TIMEOUT."""
    raw = os.environ.get("DBEXEC_COMMAND_TIMEOUT", "")
    if not raw:
        return None
    return float(raw)


def get_log_level() -> str:
    """Return the logging level from DBEXEC_LOG_LEVEL."""
    return os.environ.get("DBEXEC_LOG_LEVEL", "WARNING").upper()
