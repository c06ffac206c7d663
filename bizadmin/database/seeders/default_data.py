import uuid

DEFAULT_COMPANY_NAME = "My Company"


def seed(conn) -> str:
    """
    Make sure at least one company (tenant) and one admin user exist.
    Idempotent; returns the id of the first company.
    """
    row = conn.execute("SELECT id FROM companies ORDER BY created_at, id LIMIT 1").fetchone()
    if row is not None:
        return row[0]

    company_id = str(uuid.uuid4())
    conn.execute(
        "INSERT INTO companies(id, name, currency) VALUES (?, ?, 'KES')",
        (company_id, DEFAULT_COMPANY_NAME),
    )
    conn.execute(
        "INSERT INTO users(id, company_id, email, full_name, role) VALUES (?, ?, ?, ?, 'admin')",
        (str(uuid.uuid4()), company_id, "admin@example.com", "Administrator"),
    )
    conn.commit()
    return company_id
