# bizadmin/database/__init__.py
from __future__ import annotations

from pathlib import Path
import sqlite3

from ..config import DB_PATH
from . import schema as schema_module
from .versioning import ensure_version
from .seeders.default_data import seed as seed_default_data


def configure_connection(conn: sqlite3.Connection) -> sqlite3.Connection:
    """
    Per-connection settings every caller relies on:
      - row_factory = sqlite3.Row (rows behave like dicts and tuples)
      - foreign_keys ON
    """
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def get_connection(db_path: Path | str | None = None, *, seed: bool = True) -> sqlite3.Connection:
    """
    Returns a sqlite3.Connection with WAL mode, foreign keys on and Row
    factory. Ensures schema, version stamp and seed data are applied
    idempotently. Pass ":memory:" for a throwaway database.
    """
    target = str(db_path) if db_path is not None else str(DB_PATH)
    if target != ":memory:":
        Path(target).parent.mkdir(parents=True, exist_ok=True)

    conn = configure_connection(sqlite3.connect(target))
    if target != ":memory:":
        conn.execute("PRAGMA journal_mode = WAL;")

    schema_module.apply_schema(conn)
    ensure_version(conn)

    if seed:
        seed_default_data(conn)

    conn.commit()
    return conn


__all__ = [
    "configure_connection",
    "get_connection",
]
