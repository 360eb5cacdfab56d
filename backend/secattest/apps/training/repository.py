from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from ...storage import FindOptions, StorageAdapter, TransactionContext
from ..workflow import is_terminal_session_state
from .models import MODULES_COLLECTION, SESSIONS_COLLECTION
from .schemas import TrainingModule, TrainingSession


@dataclass
class VersionConflict(Exception):
    entity: str
    id: str

    def __str__(self) -> str:
        return f"{self.entity} '{self.id}' was modified concurrently"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrainingRepository:
    """
    Tenant-scoped reads and writes for training sessions and their modules.

    Every mutation is a read-check-write inside one storage transaction:
    the stored ``version`` must equal the caller's ``expected_version`` or
    the write fails with VersionConflict. Conflicts are never retried here.
    """

    def __init__(self, storage: StorageAdapter) -> None:
        self.storage = storage

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, tenant_id: str, data: Dict[str, Any]) -> TrainingSession:
        now = _utcnow()
        record = self.storage.create(
            tenant_id,
            SESSIONS_COLLECTION,
            {**data, "tenant_id": tenant_id, "version": 1, "created_at": now, "updated_at": now},
        )
        return TrainingSession.model_validate(record)

    def find_session_by_id(self, tenant_id: str, session_id: str) -> Optional[TrainingSession]:
        record = self.storage.find_by_id(tenant_id, SESSIONS_COLLECTION, session_id)
        return TrainingSession.model_validate(record) if record else None

    def find_active_session(self, tenant_id: str, employee_id: str) -> Optional[TrainingSession]:
        # Storage has no "not in" filter, so terminal statuses are dropped here.
        records = self.storage.find_many(
            tenant_id,
            SESSIONS_COLLECTION,
            FindOptions(where={"employee_id": employee_id}, order_by=[("created_at", "desc")]),
        )
        for record in records:
            session = TrainingSession.model_validate(record)
            if not is_terminal_session_state(session.status):
                return session
        return None

    def find_session_history(
        self,
        tenant_id: str,
        employee_id: str,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[TrainingSession]:
        records = self.storage.find_many(
            tenant_id,
            SESSIONS_COLLECTION,
            FindOptions(
                where={"employee_id": employee_id},
                order_by=[("created_at", "desc")],
                limit=limit,
                offset=offset,
            ),
        )
        return [TrainingSession.model_validate(record) for record in records]

    def update_session(
        self,
        tenant_id: str,
        session_id: str,
        patch: Dict[str, Any],
        expected_version: int,
    ) -> TrainingSession:
        record = self._versioned_update(
            tenant_id, SESSIONS_COLLECTION, "TrainingSession", session_id, patch, expected_version
        )
        return TrainingSession.model_validate(record)

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    def create_modules(self, tenant_id: str, modules: Iterable[Dict[str, Any]]) -> List[TrainingModule]:
        now = _utcnow()
        items = [
            {**data, "tenant_id": tenant_id, "version": 1, "created_at": now, "updated_at": now}
            for data in modules
        ]

        def _create_all(tx: TransactionContext) -> List[Dict[str, Any]]:
            return [tx.create(MODULES_COLLECTION, item) for item in items]

        records = self.storage.transaction(tenant_id, _create_all)
        return [TrainingModule.model_validate(record) for record in records]

    def find_modules_by_session(
        self,
        tenant_id: str,
        session_id: str,
        attempt_number: Optional[int] = None,
    ) -> List[TrainingModule]:
        where: Dict[str, Any] = {"session_id": session_id}
        if attempt_number is not None:
            where["attempt_number"] = attempt_number
        records = self.storage.find_many(
            tenant_id,
            MODULES_COLLECTION,
            FindOptions(where=where, order_by=[("attempt_number", "asc"), ("module_index", "asc")]),
        )
        return [TrainingModule.model_validate(record) for record in records]

    def find_modules_updated_before(self, tenant_id: str, cutoff: datetime) -> List[TrainingModule]:
        records = self.storage.find_many(
            tenant_id,
            MODULES_COLLECTION,
            FindOptions(order_by=[("updated_at", "asc")]),
        )
        modules = [TrainingModule.model_validate(record) for record in records]
        return [module for module in modules if module.updated_at <= cutoff]

    def find_module(
        self,
        tenant_id: str,
        session_id: str,
        module_index: int,
        attempt_number: Optional[int] = None,
    ) -> Optional[TrainingModule]:
        where: Dict[str, Any] = {"session_id": session_id, "module_index": module_index}
        if attempt_number is not None:
            where["attempt_number"] = attempt_number
        records = self.storage.find_many(
            tenant_id,
            MODULES_COLLECTION,
            FindOptions(where=where, order_by=[("attempt_number", "desc")], limit=1),
        )
        return TrainingModule.model_validate(records[0]) if records else None

    def update_module(
        self,
        tenant_id: str,
        module_id: str,
        patch: Dict[str, Any],
        expected_version: int,
    ) -> TrainingModule:
        record = self._versioned_update(
            tenant_id, MODULES_COLLECTION, "TrainingModule", module_id, patch, expected_version
        )
        return TrainingModule.model_validate(record)

    # ------------------------------------------------------------------

    def _versioned_update(
        self,
        tenant_id: str,
        collection: str,
        entity: str,
        entity_id: str,
        patch: Dict[str, Any],
        expected_version: int,
    ) -> Dict[str, Any]:
        def _apply(tx: TransactionContext) -> Dict[str, Any]:
            current = tx.find_by_id(collection, entity_id)
            # A missing record fails closed, exactly like a stale version.
            if current is None or current.get("version") != expected_version:
                raise VersionConflict(entity=entity, id=entity_id)
            return tx.update(
                collection,
                entity_id,
                {**patch, "version": expected_version + 1, "updated_at": _utcnow()},
            )

        return self.storage.transaction(tenant_id, _apply)
