"""In-memory repository implementations for testing and development."""

import asyncio
import copy
import itertools
from datetime import datetime
from typing import Any, Dict, List, Optional

from src.inspector_dispatch.application.ports.repositories import AuditSink, InspectorRepository, UnitOfWork
from src.inspector_dispatch.domain.entities.audit_record import AuditRecord
from src.inspector_dispatch.domain.entities.inspector import Inspector
from src.inspector_dispatch.domain.exceptions import DuplicateBadgeNumber, DuplicateTestKit
from src.inspector_dispatch.domain.value_objects.geo_point import GeoPoint, bounding_box


class InMemoryInspectorStore:
    """Shared state behind the in-memory repositories.

    Entities are copied on the way in and out so callers never share
    references with the store.
    """

    def __init__(self):
        self.inspectors: Dict[int, Inspector] = {}
        self.audit_records: List[AuditRecord] = []
        self._inspector_ids = itertools.count(1)
        self._audit_ids = itertools.count(1)
        self._row_locks: Dict[int, asyncio.Lock] = {}

    def next_inspector_id(self) -> int:
        return next(self._inspector_ids)

    def next_audit_id(self) -> int:
        return next(self._audit_ids)

    def row_lock(self, inspector_id: int) -> asyncio.Lock:
        """Get the lock serializing transactions on one inspector."""
        if inspector_id not in self._row_locks:
            self._row_locks[inspector_id] = asyncio.Lock()
        return self._row_locks[inspector_id]

    def badge_owner(self, badge_number: str) -> Optional[int]:
        for inspector in self.inspectors.values():
            if inspector.badge_number == badge_number:
                return inspector.id
        return None

    def test_kit_owner(self, test_kit_id: str) -> Optional[int]:
        for inspector in self.inspectors.values():
            if inspector.find_drug_test(test_kit_id) is not None:
                return inspector.id
        return None

    def in_bounding_box(self, point: GeoPoint, radius_meters: float) -> List[Inspector]:
        box = bounding_box(point, radius_meters)
        matches = []
        for inspector in sorted(self.inspectors.values(), key=lambda item: item.id):
            latitude, longitude = inspector.location.latitude, inspector.location.longitude
            if not box.min_latitude <= latitude <= box.max_latitude:
                continue
            if not box.spans_all_longitudes and not box.min_longitude <= longitude <= box.max_longitude:
                continue
            matches.append(copy.deepcopy(inspector))
        return matches


class InMemoryInspectorRepository(InspectorRepository):
    """In-memory implementation of inspector repository.

    Writes go straight to the store; use InMemoryUnitOfWork for
    transactional writes.
    """

    def __init__(self, store: Optional[InMemoryInspectorStore] = None):
        self._store = store or InMemoryInspectorStore()

    @property
    def store(self) -> InMemoryInspectorStore:
        return self._store

    async def save(self, inspector: Inspector) -> Inspector:
        """Save an inspector."""
        owner = self._store.badge_owner(inspector.badge_number)
        if owner is not None and owner != inspector.id:
            raise DuplicateBadgeNumber(inspector.badge_number)
        if inspector.id is None:
            inspector.assign_id(self._store.next_inspector_id())
        self._store.inspectors[inspector.id] = copy.deepcopy(inspector)
        return inspector

    async def find_by_id(self, inspector_id: int, for_update: bool = False) -> Optional[Inspector]:
        """Find inspector by ID."""
        inspector = self._store.inspectors.get(inspector_id)
        return copy.deepcopy(inspector) if inspector else None

    async def find_by_badge_number(self, badge_number: str) -> Optional[Inspector]:
        """Find inspector by badge number."""
        owner = self._store.badge_owner(badge_number.strip().upper())
        return await self.find_by_id(owner) if owner is not None else None

    async def find_in_radius(self, point: GeoPoint, radius_meters: float) -> List[Inspector]:
        """Find inspectors inside the bounding box of the radius."""
        return self._store.in_bounding_box(point, radius_meters)

    async def test_kit_exists(self, test_kit_id: str) -> bool:
        """Check whether a test kit ID is already recorded."""
        return self._store.test_kit_owner(test_kit_id.strip().upper()) is not None


class InMemoryAuditSink(AuditSink):
    """Audit sink that stages records until the unit of work commits."""

    def __init__(self):
        self.pending: List[Dict[str, Any]] = []

    async def append(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        changes: Dict[str, Any],
        actor: int,
        timestamp: datetime
    ) -> None:
        """Stage an audit record."""
        self.pending.append({
            "entity_type": entity_type,
            "entity_id": entity_id,
            "action": action,
            "changes": copy.deepcopy(changes),
            "actor": actor,
            "timestamp": timestamp,
        })


class _TransactionalInspectorRepository(InspectorRepository):
    """Inspector repository whose writes are staged in a unit of work."""

    def __init__(self, store: InMemoryInspectorStore, unit_of_work: "InMemoryUnitOfWork"):
        self._store = store
        self._unit_of_work = unit_of_work

    async def save(self, inspector: Inspector) -> Inspector:
        if inspector.id is None:
            inspector.assign_id(self._store.next_inspector_id())
        self._unit_of_work.staged[inspector.id] = copy.deepcopy(inspector)
        return inspector

    async def find_by_id(self, inspector_id: int, for_update: bool = False) -> Optional[Inspector]:
        if for_update:
            await self._unit_of_work.acquire_row_lock(inspector_id)
        inspector = self._unit_of_work.staged.get(inspector_id) or self._store.inspectors.get(inspector_id)
        return copy.deepcopy(inspector) if inspector else None

    async def find_by_badge_number(self, badge_number: str) -> Optional[Inspector]:
        normalized = badge_number.strip().upper()
        for inspector in self._unit_of_work.staged.values():
            if inspector.badge_number == normalized:
                return copy.deepcopy(inspector)
        owner = self._store.badge_owner(normalized)
        return await self.find_by_id(owner) if owner is not None else None

    async def find_in_radius(self, point: GeoPoint, radius_meters: float) -> List[Inspector]:
        return self._store.in_bounding_box(point, radius_meters)

    async def test_kit_exists(self, test_kit_id: str) -> bool:
        normalized = test_kit_id.strip().upper()
        if any(inspector.find_drug_test(normalized) for inspector in self._unit_of_work.staged.values()):
            return True
        return self._store.test_kit_owner(normalized) is not None


class InMemoryUnitOfWork(UnitOfWork):
    """Unit of work over the in-memory store.

    Rows loaded ``for_update`` stay locked until commit or rollback. Commit
    applies staged inspectors and audit records in one step, enforcing the
    same uniqueness rules as the database.
    """

    def __init__(self, store: InMemoryInspectorStore):
        self._store = store
        self.staged: Dict[int, Inspector] = {}
        self.inspectors = _TransactionalInspectorRepository(store, self)
        self.audit = InMemoryAuditSink()
        self._held_locks: Dict[int, asyncio.Lock] = {}
        self._committed = False

    async def begin(self) -> None:
        """Begin the transaction."""
        self.staged.clear()
        self.audit.pending.clear()
        self._committed = False

    async def acquire_row_lock(self, inspector_id: int) -> None:
        if inspector_id in self._held_locks:
            return
        lock = self._store.row_lock(inspector_id)
        await lock.acquire()
        self._held_locks[inspector_id] = lock

    async def commit(self) -> None:
        """Apply staged changes atomically."""
        for inspector in self.staged.values():
            owner = self._store.badge_owner(inspector.badge_number)
            if owner is not None and owner != inspector.id:
                raise DuplicateBadgeNumber(inspector.badge_number)
            for drug_test in inspector.drug_tests:
                kit_owner = self._store.test_kit_owner(drug_test.test_kit_id)
                if kit_owner is not None and kit_owner != inspector.id:
                    raise DuplicateTestKit(drug_test.test_kit_id)

        self._store.inspectors.update(self.staged)
        for record in self.audit.pending:
            self._store.audit_records.append(AuditRecord(record_id=self._store.next_audit_id(), **record))

        self.staged.clear()
        self.audit.pending.clear()
        self._committed = True
        self._release_locks()

    async def rollback(self) -> None:
        """Discard staged changes."""
        self.staged.clear()
        self.audit.pending.clear()
        self._release_locks()

    async def close(self) -> None:
        """Release any locks still held."""
        self._release_locks()

    @property
    def committed(self) -> bool:
        return self._committed

    def _release_locks(self) -> None:
        for lock in self._held_locks.values():
            lock.release()
        self._held_locks.clear()
