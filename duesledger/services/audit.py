from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from ..models.ledger import AuditEntry
from .ledger_store import LedgerStore


def _serialize(data: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    if not data:
        return {}
    return {key: value if isinstance(value, (int, bool)) or value is None else str(value) for key, value in data.items()}


def audit_log(
    store: LedgerStore,
    actor: Optional[str],
    action: str,
    target_entity_type: Optional[str] = None,
    target_entity_id: Optional[str] = None,
    after: Optional[Mapping[str, Any]] = None,
    timestamp: Optional[datetime] = None,
) -> AuditEntry:
    entry = AuditEntry(
        actor=actor or "system",
        action=action,
        timestamp=timestamp or datetime.now(timezone.utc),
        target_entity_type=target_entity_type,
        target_entity_id=target_entity_id,
        after=_serialize(after),
    )
    store.add_audit(entry)
    return entry
