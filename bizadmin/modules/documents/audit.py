from __future__ import annotations

from ...database.datastore import DataStore, TenantContext

AUDIT_LOGS = "audit_logs"


class AuditLogger:
    """Writes audit_logs rows; callers decide whether a failure matters."""

    def __init__(self, store: DataStore, tenant: TenantContext):
        self.store = store
        self.tenant = tenant

    def record(self, action: str, entity_type: str, record_id: str | None, details: dict) -> dict:
        return self.store.insert(
            AUDIT_LOGS,
            {
                "action": action,
                "entity_type": entity_type,
                "record_id": record_id,
                "actor_user_id": self.tenant.user_id,
                "actor_email": self.tenant.user_email,
                "details": details,
            },
            tenant=self.tenant,
        )
