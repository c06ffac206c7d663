"""
Generic data-access interface consumed by the document flows.

The flows only ever see `DataStore`: insert/update/delete/select on named
collections plus named procedures (`call`). Every call carries an explicit
`TenantContext`; tenant-scoped collections (those with a `company_id`
column) are stamped and filtered by it.

`SQLiteDataStore` commits each call on its own, like a remote REST store
would: there is no way for a caller to group several calls into one
transaction. Multi-step atomicity is the caller's job (see modules.documents).

Errors leave this module as `StoreError` carrying a machine-checkable
`StoreErrorKind`. Only `_translate()` looks at raw driver messages.
"""

from __future__ import annotations

import abc
import json
import logging
import re
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional

_log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Context & errors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TenantContext:
    company_id: str
    user_id: Optional[str] = None
    user_email: Optional[str] = None


class StoreErrorKind(str, Enum):
    UNIQUE_VIOLATION = "unique_violation"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"
    CHECK_VIOLATION = "check_violation"
    NOT_NULL_VIOLATION = "not_null_violation"
    REJECTED = "rejected"                    # trigger / procedure refused the write
    UNDEFINED_TABLE = "undefined_table"
    UNDEFINED_COLUMN = "undefined_column"
    UNDEFINED_FUNCTION = "undefined_function"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


# SQLSTATE-style codes, so logs read the same as a Postgres-backed store's
SQLSTATE = {
    StoreErrorKind.UNIQUE_VIOLATION: "23505",
    StoreErrorKind.FOREIGN_KEY_VIOLATION: "23503",
    StoreErrorKind.CHECK_VIOLATION: "23514",
    StoreErrorKind.NOT_NULL_VIOLATION: "23502",
    StoreErrorKind.REJECTED: "P0001",
    StoreErrorKind.UNDEFINED_TABLE: "42P01",
    StoreErrorKind.UNDEFINED_COLUMN: "42703",
    StoreErrorKind.UNDEFINED_FUNCTION: "42883",
    StoreErrorKind.NOT_FOUND: "PGRST116",
    StoreErrorKind.UNKNOWN: "XX000",
}


class StoreError(Exception):
    """Failure reported by a DataStore call."""

    def __init__(
        self,
        kind: StoreErrorKind,
        message: str,
        *,
        collection: str | None = None,
        column: str | None = None,
        constraint: str | None = None,
        details: str | None = None,
        hint: str | None = None,
    ):
        super().__init__(message)
        self.kind = StoreErrorKind(kind)
        self.code = SQLSTATE[self.kind]
        self.message = message
        self.collection = collection
        self.column = column
        self.constraint = constraint
        self.details = details
        self.hint = hint

    def __repr__(self) -> str:
        return f"StoreError({self.kind.value}, {self.message!r}, collection={self.collection!r}, column={self.column!r})"


Where = Mapping[str, Any]


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class DataStore(abc.ABC):
    """Abstract CRUD + procedure interface."""

    @abc.abstractmethod
    def insert(self, collection: str, row: dict | list[dict], *, tenant: TenantContext) -> dict | None:
        """Insert one row (returns it as stored) or a list of rows (returns None)."""

    @abc.abstractmethod
    def update(self, collection: str, id: str, patch: dict, *, tenant: TenantContext) -> dict:
        """Patch one row by id; returns the updated row. NOT_FOUND if absent."""

    @abc.abstractmethod
    def delete(self, collection: str, where: Where, *, tenant: TenantContext) -> int:
        """Delete rows matching `where`; returns the number deleted."""

    @abc.abstractmethod
    def select(
        self,
        collection: str,
        where: Where | None = None,
        *,
        tenant: TenantContext,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """Rows matching `where` (column -> value; list/tuple value means IN, None means IS NULL)."""

    @abc.abstractmethod
    def call(self, procedure: str, args: dict | None = None, *, tenant: TenantContext) -> Any:
        """Run a named procedure."""

    # ---- conveniences built on the primitives ----

    def get(self, collection: str, id: str, *, tenant: TenantContext) -> dict | None:
        rows = self.select(collection, {"id": id}, tenant=tenant, limit=1)
        return rows[0] if rows else None

    def require(self, collection: str, id: str, *, tenant: TenantContext) -> dict:
        row = self.get(collection, id, tenant=tenant)
        if row is None:
            raise StoreError(
                StoreErrorKind.NOT_FOUND,
                f"No row with id {id!r} in {collection}",
                collection=collection,
            )
        return row


# ---------------------------------------------------------------------------
# SQLite implementation
# ---------------------------------------------------------------------------

Procedure = Callable[..., Any]

_IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_ORDER = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)(\s+(ASC|DESC))?$", re.IGNORECASE)

# child collections without their own company_id, scoped through the parent row
PARENT_SCOPE = {
    "quotation_items": ("quotation_id", "quotations"),
    "invoice_items": ("invoice_id", "invoices"),
    "credit_note_items": ("credit_note_id", "credit_notes"),
    "payment_allocations": ("payment_id", "payments"),
}


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


class SQLiteDataStore(DataStore):
    """
    DataStore over a sqlite3 connection (see database.get_connection()).

    Procedures are plain callables `fn(conn, tenant, **args)` registered by
    name; the defaults live in database.procedures.
    """

    def __init__(self, conn: sqlite3.Connection, procedures: Mapping[str, Procedure] | None = None):
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self._columns_cache: dict[str, tuple[str, ...]] = {}
        if procedures is None:
            from .procedures import PROCEDURES
            procedures = PROCEDURES
        self._procedures: dict[str, Procedure] = dict(procedures)

    # ---- introspection ------------------------------------------------

    def columns(self, collection: str) -> tuple[str, ...]:
        if not _IDENT.match(collection or ""):
            raise StoreError(StoreErrorKind.UNDEFINED_TABLE, f'relation "{collection}" does not exist',
                             collection=collection)
        cols = self._columns_cache.get(collection)
        if cols is None:
            cols = tuple(r[1] for r in self.conn.execute(f"PRAGMA table_info({collection})").fetchall())
            if not cols:
                raise StoreError(
                    StoreErrorKind.UNDEFINED_TABLE,
                    f'relation "{collection}" does not exist',
                    collection=collection,
                    hint="Run the database setup to create missing tables.",
                )
            self._columns_cache[collection] = cols
        return cols

    def _is_scoped(self, collection: str) -> bool:
        return "company_id" in self.columns(collection)

    @staticmethod
    def _claim_company(collection: str, value: Any, tenant: TenantContext) -> None:
        if value != tenant.company_id:
            raise StoreError(StoreErrorKind.REJECTED,
                             f"{collection} rows of another company are not accessible",
                             collection=collection, column="company_id")

    def _check_parent(self, collection: str, row: Mapping, tenant: TenantContext) -> None:
        """Refuse to attach a child row to a parent owned by another company."""
        scope = PARENT_SCOPE.get(collection)
        if scope is None or row.get(scope[0]) is None:
            return
        fk, parent = scope
        owner = self.conn.execute(f"SELECT company_id FROM {parent} WHERE id = ?", (row[fk],)).fetchone()
        # a missing parent is left to the foreign key
        if owner is not None and owner[0] != tenant.company_id:
            raise StoreError(StoreErrorKind.REJECTED,
                             f"{parent} row {row[fk]!r} belongs to another company",
                             collection=collection, column=fk)

    def _check_columns(self, collection: str, names: Iterable[str]) -> None:
        known = set(self.columns(collection))
        for name in names:
            if name not in known:
                raise StoreError(
                    StoreErrorKind.UNDEFINED_COLUMN,
                    f"Could not find the '{name}' column of '{collection}'",
                    collection=collection,
                    column=name,
                )

    # ---- value coercion -----------------------------------------------

    @staticmethod
    def _to_db(value: Any) -> Any:
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, (dict, list)):
            return json.dumps(value, default=str, sort_keys=True)
        return value

    @staticmethod
    def _row_to_dict(r: sqlite3.Row | None) -> dict | None:
        return dict(r) if r is not None else None

    # ---- WHERE building -------------------------------------------------

    def _where_sql(self, collection: str, where: Where | None, tenant: TenantContext) -> tuple[str, list]:
        clauses: list[str] = []
        params: list = []
        where = dict(where or {})
        if self._is_scoped(collection):
            self._claim_company(collection, where.get("company_id", tenant.company_id), tenant)
            where["company_id"] = tenant.company_id
        self._check_columns(collection, where)
        for col, val in where.items():
            if val is None:
                clauses.append(f"{col} IS NULL")
            elif isinstance(val, (list, tuple, set, frozenset)):
                vals = list(val)
                if not vals:
                    clauses.append("0")
                    continue
                clauses.append(f"{col} IN ({','.join('?' * len(vals))})")
                params.extend(self._to_db(v) for v in vals)
            else:
                clauses.append(f"{col} = ?")
                params.append(self._to_db(val))
        scope = PARENT_SCOPE.get(collection)
        if scope is not None:
            fk, parent = scope
            clauses.append(f"{fk} IN (SELECT id FROM {parent} WHERE company_id = ?)")
            params.append(tenant.company_id)
        sql = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        return sql, params

    # ---- CRUD -----------------------------------------------------------

    def _prepare_row(self, collection: str, row: dict, tenant: TenantContext) -> dict:
        out = {k: v for k, v in row.items()}
        out.setdefault("id", str(uuid.uuid4()))
        if self._is_scoped(collection):
            self._claim_company(collection, out.get("company_id", tenant.company_id), tenant)
            out["company_id"] = tenant.company_id
        self._check_columns(collection, out)
        self._check_parent(collection, out, tenant)
        return out

    def _insert_one(self, collection: str, row: dict) -> None:
        cols = list(row)
        sql = f"INSERT INTO {collection} ({', '.join(cols)}) VALUES ({', '.join('?' * len(cols))})"
        try:
            self.conn.execute(sql, [self._to_db(row[c]) for c in cols])
        except sqlite3.Error as e:
            raise self._translate(e, collection, row) from e

    def insert(self, collection: str, row: dict | list[dict], *, tenant: TenantContext) -> dict | None:
        if isinstance(row, (list, tuple)):
            rows = [self._prepare_row(collection, r, tenant) for r in row]
            if not rows:
                return None
            with self.conn:
                for r in rows:
                    self._insert_one(collection, r)
            _log.debug("inserted %d row(s) into %s", len(rows), collection)
            return None

        prepared = self._prepare_row(collection, row, tenant)
        with self.conn:
            self._insert_one(collection, prepared)
        return self.get(collection, prepared["id"], tenant=tenant)

    def update(self, collection: str, id: str, patch: dict, *, tenant: TenantContext) -> dict:
        if "company_id" in patch and self._is_scoped(collection):
            self._claim_company(collection, patch["company_id"], tenant)
        patch = {k: v for k, v in patch.items() if k not in ("id", "company_id")}
        self._check_parent(collection, patch, tenant)
        if "updated_at" in self.columns(collection):
            patch.setdefault("updated_at", _now())
        self._check_columns(collection, patch)
        where_sql, params = self._where_sql(collection, {"id": id}, tenant)
        if patch:
            sets = ", ".join(f"{c} = ?" for c in patch)
            sql = f"UPDATE {collection} SET {sets}{where_sql}"
            try:
                with self.conn:
                    cur = self.conn.execute(sql, [self._to_db(v) for v in patch.values()] + params)
            except sqlite3.Error as e:
                raise self._translate(e, collection, patch) from e
            if cur.rowcount == 0:
                raise StoreError(StoreErrorKind.NOT_FOUND, f"No row with id {id!r} in {collection}",
                                 collection=collection)
        return self.require(collection, id, tenant=tenant)

    def delete(self, collection: str, where: Where, *, tenant: TenantContext) -> int:
        if not where:
            raise ValueError("delete() requires a non-empty filter")
        where_sql, params = self._where_sql(collection, where, tenant)
        try:
            with self.conn:
                cur = self.conn.execute(f"DELETE FROM {collection}{where_sql}", params)
        except sqlite3.Error as e:
            raise self._translate(e, collection, None) from e
        return int(cur.rowcount)

    def select(
        self,
        collection: str,
        where: Where | None = None,
        *,
        tenant: TenantContext,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        where_sql, params = self._where_sql(collection, where, tenant)
        sql = f"SELECT * FROM {collection}{where_sql}"
        if order_by:
            parts = []
            for piece in order_by.split(","):
                m = _ORDER.match(piece.strip())
                if not m:
                    raise ValueError(f"Bad order_by fragment: {piece!r}")
                self._check_columns(collection, [m.group(1)])
                parts.append(piece.strip())
            sql += " ORDER BY " + ", ".join(parts)
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        try:
            rows = self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise self._translate(e, collection, None) from e
        return [dict(r) for r in rows]

    # ---- procedures -----------------------------------------------------

    def register(self, name: str, fn: Procedure) -> None:
        self._procedures[name] = fn

    def call(self, procedure: str, args: dict | None = None, *, tenant: TenantContext) -> Any:
        fn = self._procedures.get(procedure)
        if fn is None:
            raise StoreError(
                StoreErrorKind.UNDEFINED_FUNCTION,
                f"function {procedure} does not exist",
                hint="Run the database setup to install missing functions.",
            )
        try:
            with self.conn:
                return fn(self.conn, tenant, **(args or {}))
        except StoreError:
            raise
        except sqlite3.Error as e:
            raise self._translate(e, None, args) from e

    # ---- error translation ----------------------------------------------

    def _translate(self, e: sqlite3.Error, collection: str | None, row: Mapping | None) -> StoreError:
        msg = str(e)
        low = msg.lower()

        if isinstance(e, sqlite3.IntegrityError):
            if low.startswith("unique constraint failed"):
                cols = [c.strip().split(".")[-1] for c in msg.split(":", 1)[-1].split(",")]
                return StoreError(
                    StoreErrorKind.UNIQUE_VIOLATION,
                    f"duplicate key value violates unique constraint on {collection}({', '.join(cols)})",
                    collection=collection,
                    column=cols[-1] if cols else None,
                    constraint=msg.split(":", 1)[-1].strip(),
                    details=msg,
                )
            if low.startswith("foreign key constraint failed"):
                column = self._offending_foreign_key(collection, row)
                return StoreError(
                    StoreErrorKind.FOREIGN_KEY_VIOLATION,
                    f"insert or update on {collection} violates foreign key constraint"
                    + (f" on column {column}" if column else ""),
                    collection=collection,
                    column=column,
                    constraint=f"{collection}_{column}_fkey" if column else None,
                    details=msg,
                )
            if low.startswith("not null constraint failed"):
                column = msg.split(":", 1)[-1].strip().split(".")[-1]
                return StoreError(StoreErrorKind.NOT_NULL_VIOLATION,
                                  f'null value in column "{column}" violates not-null constraint',
                                  collection=collection, column=column, details=msg)
            if low.startswith("check constraint failed"):
                return StoreError(StoreErrorKind.CHECK_VIOLATION,
                                  f"new row for {collection} violates check constraint",
                                  collection=collection,
                                  constraint=msg.split(":", 1)[-1].strip(), details=msg)
            # RAISE(ABORT, ...) from a trigger
            return StoreError(StoreErrorKind.REJECTED, msg, collection=collection)

        if isinstance(e, sqlite3.OperationalError):
            if "no such table" in low:
                name = msg.split(":", 1)[-1].strip()
                return StoreError(StoreErrorKind.UNDEFINED_TABLE, f'relation "{name}" does not exist',
                                  collection=name, details=msg)
            if "no such column" in low or "has no column named" in low:
                return StoreError(StoreErrorKind.UNDEFINED_COLUMN, msg, collection=collection, details=msg)

        return StoreError(StoreErrorKind.UNKNOWN, msg, collection=collection, details=msg)

    def _offending_foreign_key(self, collection: str | None, row: Mapping | None) -> str | None:
        """
        SQLite does not say which FK failed; find the first one whose value
        has no parent row.
        """
        if not collection or not row:
            return None
        try:
            fks = self.conn.execute(f"PRAGMA foreign_key_list({collection})").fetchall()
        except sqlite3.Error:
            return None
        for fk in fks:
            parent, col, parent_col = fk[2], fk[3], fk[4] or "id"
            if col not in row or row[col] is None:
                continue
            hit = self.conn.execute(
                f"SELECT 1 FROM {parent} WHERE {parent_col} = ? LIMIT 1", (self._to_db(row[col]),)
            ).fetchone()
            if hit is None:
                return col
        return None
