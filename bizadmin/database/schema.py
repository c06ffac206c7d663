from pathlib import Path
import sqlite3
import sys

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== TENANCY ======================== */

/* -------- companies (tenants) -------- */
CREATE TABLE IF NOT EXISTS companies (
    id         TEXT PRIMARY KEY,
    name       TEXT NOT NULL,
    address    TEXT,
    currency   TEXT NOT NULL DEFAULT 'KES',
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

/* -------- users -------- */
CREATE TABLE IF NOT EXISTS users (
    id         TEXT PRIMARY KEY,
    company_id TEXT REFERENCES companies(id) ON DELETE SET NULL,
    email      TEXT UNIQUE,
    full_name  TEXT,
    role       TEXT NOT NULL DEFAULT 'user',
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

/* ======================== PARTIES & PRODUCTS ======================== */

CREATE TABLE IF NOT EXISTS customers (
    id            TEXT PRIMARY KEY,
    company_id    TEXT NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
    customer_code TEXT,
    name          TEXT NOT NULL,
    email         TEXT,
    phone         TEXT,
    address       TEXT,
    is_active     INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    created_at    TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at    TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_customers_company ON customers(company_id);
CREATE UNIQUE INDEX IF NOT EXISTS idx_customers_code ON customers(company_id, customer_code);

CREATE TABLE IF NOT EXISTS products (
    id              TEXT PRIMARY KEY,
    company_id      TEXT NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
    product_code    TEXT,
    name            TEXT NOT NULL,
    unit_of_measure TEXT NOT NULL DEFAULT 'pcs',
    unit_price      NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(unit_price AS REAL) >= 0),
    cost_price      NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(cost_price AS REAL) >= 0),
    stock_quantity  NUMERIC NOT NULL DEFAULT 0,
    min_stock_level NUMERIC NOT NULL DEFAULT 0,
    is_active       INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    created_at      TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at      TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_products_company ON products(company_id);

/* -------- number sequences (generate_document_number) -------- */
CREATE TABLE IF NOT EXISTS document_sequences (
    company_id TEXT NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
    prefix     TEXT NOT NULL,
    day        TEXT NOT NULL,
    last_value INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (company_id, prefix, day)
);

/* ======================== QUOTATIONS ======================== */

CREATE TABLE IF NOT EXISTS quotations (
    id                   TEXT PRIMARY KEY,
    company_id           TEXT NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
    customer_id          TEXT NOT NULL REFERENCES customers(id),
    quotation_number     TEXT NOT NULL,
    quotation_date       DATE NOT NULL DEFAULT CURRENT_DATE,
    valid_until          DATE,
    status               TEXT NOT NULL DEFAULT 'draft'
                         CHECK (status IN ('draft','sent','accepted','rejected','expired','converted')),
    subtotal             NUMERIC NOT NULL DEFAULT 0,
    tax_amount           NUMERIC NOT NULL DEFAULT 0,
    total_amount         NUMERIC NOT NULL DEFAULT 0,
    notes                TEXT,
    terms_and_conditions TEXT,
    created_by           TEXT REFERENCES users(id),
    created_at           TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at           TIMESTAMP,
    UNIQUE (company_id, quotation_number)
);

CREATE TABLE IF NOT EXISTS quotation_items (
    id               TEXT PRIMARY KEY,
    quotation_id     TEXT NOT NULL REFERENCES quotations(id) ON DELETE CASCADE,
    product_id       TEXT REFERENCES products(id),
    description      TEXT NOT NULL DEFAULT '',
    quantity         NUMERIC NOT NULL CHECK (CAST(quantity AS REAL) > 0),
    unit_price       NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(unit_price AS REAL) >= 0),
    discount_percent NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(discount_percent AS REAL) BETWEEN 0 AND 100),
    tax_percent      NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(tax_percent AS REAL) BETWEEN 0 AND 100),
    tax_inclusive    INTEGER NOT NULL DEFAULT 0 CHECK (tax_inclusive IN (0,1)),
    tax_amount       NUMERIC NOT NULL DEFAULT 0,
    line_total       NUMERIC NOT NULL DEFAULT 0,
    sort_order       INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_quotation_items_parent ON quotation_items(quotation_id);

/* ======================== INVOICES ======================== */

CREATE TABLE IF NOT EXISTS invoices (
    id                   TEXT PRIMARY KEY,
    company_id           TEXT NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
    customer_id          TEXT NOT NULL REFERENCES customers(id),
    quotation_id         TEXT REFERENCES quotations(id) ON DELETE SET NULL,
    invoice_number       TEXT NOT NULL,
    invoice_date         DATE NOT NULL DEFAULT CURRENT_DATE,
    due_date             DATE,
    status               TEXT NOT NULL DEFAULT 'draft'
                         CHECK (status IN ('draft','sent','partial','paid','overdue','cancelled')),
    subtotal             NUMERIC NOT NULL DEFAULT 0,
    tax_amount           NUMERIC NOT NULL DEFAULT 0,
    total_amount         NUMERIC NOT NULL DEFAULT 0,
    paid_amount          NUMERIC NOT NULL DEFAULT 0,
    balance_due          NUMERIC NOT NULL DEFAULT 0,
    affects_inventory    INTEGER NOT NULL DEFAULT 1 CHECK (affects_inventory IN (0,1)),
    notes                TEXT,
    terms_and_conditions TEXT,
    created_by           TEXT REFERENCES users(id),
    created_at           TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at           TIMESTAMP,
    UNIQUE (company_id, invoice_number)
);
CREATE INDEX IF NOT EXISTS idx_invoices_customer ON invoices(customer_id);

CREATE TABLE IF NOT EXISTS invoice_items (
    id               TEXT PRIMARY KEY,
    invoice_id       TEXT NOT NULL REFERENCES invoices(id) ON DELETE CASCADE,
    product_id       TEXT REFERENCES products(id),
    description      TEXT NOT NULL DEFAULT '',
    quantity         NUMERIC NOT NULL CHECK (CAST(quantity AS REAL) > 0),
    unit_price       NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(unit_price AS REAL) >= 0),
    discount_percent NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(discount_percent AS REAL) BETWEEN 0 AND 100),
    tax_percent      NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(tax_percent AS REAL) BETWEEN 0 AND 100),
    tax_inclusive    INTEGER NOT NULL DEFAULT 0 CHECK (tax_inclusive IN (0,1)),
    tax_amount       NUMERIC NOT NULL DEFAULT 0,
    line_total       NUMERIC NOT NULL DEFAULT 0,
    sort_order       INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_invoice_items_parent ON invoice_items(invoice_id);

/* ======================== CREDIT NOTES ======================== */

CREATE TABLE IF NOT EXISTS credit_notes (
    id                 TEXT PRIMARY KEY,
    company_id         TEXT NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
    customer_id        TEXT NOT NULL REFERENCES customers(id),
    invoice_id         TEXT REFERENCES invoices(id) ON DELETE SET NULL,
    credit_note_number TEXT NOT NULL,
    credit_note_date   DATE NOT NULL DEFAULT CURRENT_DATE,
    status             TEXT NOT NULL DEFAULT 'draft'
                       CHECK (status IN ('draft','sent','applied','cancelled')),
    reason             TEXT,
    subtotal           NUMERIC NOT NULL DEFAULT 0,
    tax_amount         NUMERIC NOT NULL DEFAULT 0,
    total_amount       NUMERIC NOT NULL DEFAULT 0,
    applied_amount     NUMERIC NOT NULL DEFAULT 0,
    balance            NUMERIC NOT NULL DEFAULT 0,
    affects_inventory  INTEGER NOT NULL DEFAULT 0 CHECK (affects_inventory IN (0,1)),
    notes              TEXT,
    created_by         TEXT REFERENCES users(id),
    created_at         TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at         TIMESTAMP,
    UNIQUE (company_id, credit_note_number)
);

CREATE TABLE IF NOT EXISTS credit_note_items (
    id               TEXT PRIMARY KEY,
    credit_note_id   TEXT NOT NULL REFERENCES credit_notes(id) ON DELETE CASCADE,
    product_id       TEXT REFERENCES products(id),
    description      TEXT NOT NULL DEFAULT '',
    quantity         NUMERIC NOT NULL CHECK (CAST(quantity AS REAL) > 0),
    unit_price       NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(unit_price AS REAL) >= 0),
    discount_percent NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(discount_percent AS REAL) BETWEEN 0 AND 100),
    tax_percent      NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(tax_percent AS REAL) BETWEEN 0 AND 100),
    tax_inclusive    INTEGER NOT NULL DEFAULT 0 CHECK (tax_inclusive IN (0,1)),
    tax_amount       NUMERIC NOT NULL DEFAULT 0,
    line_total       NUMERIC NOT NULL DEFAULT 0,
    sort_order       INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_credit_note_items_parent ON credit_note_items(credit_note_id);

CREATE TABLE IF NOT EXISTS credit_note_allocations (
    id               TEXT PRIMARY KEY,
    company_id       TEXT NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
    credit_note_id   TEXT NOT NULL REFERENCES credit_notes(id) ON DELETE CASCADE,
    invoice_id       TEXT NOT NULL REFERENCES invoices(id) ON DELETE CASCADE,
    allocated_amount NUMERIC NOT NULL CHECK (CAST(allocated_amount AS REAL) > 0),
    allocation_date  DATE NOT NULL DEFAULT CURRENT_DATE,
    notes            TEXT,
    created_by       TEXT REFERENCES users(id),
    created_at       TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_cn_alloc_credit_note ON credit_note_allocations(credit_note_id);
CREATE INDEX IF NOT EXISTS idx_cn_alloc_invoice     ON credit_note_allocations(invoice_id);

/* ======================== PAYMENTS ======================== */

CREATE TABLE IF NOT EXISTS payments (
    id               TEXT PRIMARY KEY,
    company_id       TEXT NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
    customer_id      TEXT NOT NULL REFERENCES customers(id),
    payment_number   TEXT NOT NULL,
    payment_date     DATE NOT NULL DEFAULT CURRENT_DATE,
    amount           NUMERIC NOT NULL CHECK (CAST(amount AS REAL) <> 0),
    payment_method   TEXT NOT NULL DEFAULT 'cash',
    reference_number TEXT,
    notes            TEXT,
    created_by       TEXT REFERENCES users(id),
    created_at       TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (company_id, payment_number)
);

CREATE TABLE IF NOT EXISTS payment_allocations (
    id               TEXT PRIMARY KEY,
    payment_id       TEXT NOT NULL REFERENCES payments(id) ON DELETE CASCADE,
    invoice_id       TEXT NOT NULL REFERENCES invoices(id) ON DELETE CASCADE,
    amount_allocated NUMERIC NOT NULL,
    created_at       TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_pay_alloc_payment ON payment_allocations(payment_id);
CREATE INDEX IF NOT EXISTS idx_pay_alloc_invoice ON payment_allocations(invoice_id);

/* ======================== STOCK LEDGER ======================== */

/*
  Append-only. A reversal is a new row with the opposite movement_type,
  reference_type '<TYPE>_REVERSAL', the same reference_id, and
  reverses_movement_id pointing at the row it cancels.
  reference_id is polymorphic (invoice / credit note id), hence no FK.
*/
CREATE TABLE IF NOT EXISTS stock_movements (
    id                   TEXT PRIMARY KEY,
    company_id           TEXT NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
    product_id           TEXT NOT NULL REFERENCES products(id),
    movement_type        TEXT NOT NULL CHECK (movement_type IN ('IN','OUT')),
    reference_type       TEXT NOT NULL,
    reference_id         TEXT,
    reverses_movement_id TEXT REFERENCES stock_movements(id),
    quantity             NUMERIC NOT NULL CHECK (CAST(quantity AS REAL) > 0),
    cost_per_unit        NUMERIC,
    notes                TEXT,
    created_at           TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_stock_movements_ref     ON stock_movements(reference_type, reference_id);
CREATE INDEX IF NOT EXISTS idx_stock_movements_product ON stock_movements(product_id);
/* a movement can be reversed at most once */
CREATE UNIQUE INDEX IF NOT EXISTS idx_stock_movements_one_reversal
ON stock_movements(reverses_movement_id) WHERE reverses_movement_id IS NOT NULL;

DROP TRIGGER IF EXISTS trg_stock_movements_no_update;
CREATE TRIGGER trg_stock_movements_no_update
BEFORE UPDATE ON stock_movements
BEGIN
  SELECT RAISE(ABORT, 'stock_movements is append-only; insert a reversal instead');
END;

DROP TRIGGER IF EXISTS trg_stock_movements_no_delete;
CREATE TRIGGER trg_stock_movements_no_delete
BEFORE DELETE ON stock_movements
BEGIN
  SELECT RAISE(ABORT, 'stock_movements is append-only; insert a reversal instead');
END;

/* ======================== AUDIT ======================== */

CREATE TABLE IF NOT EXISTS audit_logs (
    id            TEXT PRIMARY KEY,
    company_id    TEXT REFERENCES companies(id) ON DELETE CASCADE,
    action        TEXT NOT NULL,
    entity_type   TEXT NOT NULL,
    record_id     TEXT,
    actor_user_id TEXT,
    actor_email   TEXT,
    details       TEXT,
    created_at    TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_audit_logs_record ON audit_logs(entity_type, record_id);

/* ======================== VIEWS ======================== */

DROP VIEW IF EXISTS v_stock_ledger_balance;
CREATE VIEW v_stock_ledger_balance AS
SELECT
    p.id         AS product_id,
    p.company_id AS company_id,
    p.name       AS product_name,
    CAST(p.stock_quantity AS REAL) AS stock_quantity,
    COALESCE(SUM(CASE sm.movement_type
                   WHEN 'IN'  THEN  CAST(sm.quantity AS REAL)
                   WHEN 'OUT' THEN -CAST(sm.quantity AS REAL)
                 END), 0.0) AS ledger_quantity
FROM products p
LEFT JOIN stock_movements sm ON sm.product_id = p.id
GROUP BY p.id;
"""


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply the (idempotent) schema on an open connection."""
    conn.executescript(SQL)
    conn.commit()


def init_schema(db_path: Path | str = "bizadmin.db") -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        apply_schema(conn)
    finally:
        conn.close()


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else Path(__file__).resolve().parents[2] / "data" / "bizadmin.db"
    init_schema(target)
    print(f"✓ DB applied to {target}")
