# bizadmin/constants.py

# storage
DATA_DIR = "data"
DB_FILE_NAME = "bizadmin.db"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.0.0"

# stock ledger
MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
REVERSAL_SUFFIX = "_REVERSAL"

REF_INVOICE = "INVOICE"
REF_CREDIT_NOTE = "CREDIT_NOTE"

# tax
DEFAULT_TAX_RATE = 16.0

# document number prefixes (<PREFIX>-<YYYYMMDD>-<NNNN>)
NUMBER_PREFIXES = {
    "quotation": "QT",
    "invoice": "INV",
    "credit_note": "CN",
    "payment": "PAY",
}

# query-cache keys signalled after a commit
CACHE_INVOICES = "invoices"
CACHE_CUSTOMER_INVOICES = "customer_invoices"
CACHE_CREDIT_NOTES = "credit_notes"
CACHE_CUSTOMER_CREDIT_NOTES = "customer_credit_notes"
CACHE_CREDIT_NOTE_ALLOCATIONS = "credit_note_allocations"
CACHE_QUOTATIONS = "quotations"
CACHE_PRODUCTS = "products"
CACHE_STOCK_MOVEMENTS = "stock_movements"
CACHE_PAYMENTS = "payments"
