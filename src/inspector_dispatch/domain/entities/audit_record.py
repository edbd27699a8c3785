"""Audit record emitted alongside state changes."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict


@dataclass(frozen=True)
class AuditRecord:
    """Immutable audit trail entry for a change to an entity."""

    entity_type: str
    entity_id: str
    action: str
    changes: Dict[str, Any]
    actor: int
    timestamp: datetime
    record_id: int = field(default=0, compare=False)
