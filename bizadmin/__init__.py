"""bizadmin: quotations, invoices, credit notes, payments and stock over a SQLite store."""

__version__ = "0.1.0"
