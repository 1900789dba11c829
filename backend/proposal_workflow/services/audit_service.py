"""Append-only audit trail for proposals.

The recorder never lets a storage failure reach its caller: a broken audit
pipe must not block an approval. Storage lives behind ``AuditBackend`` so the
same recording rules apply whichever store is plugged in.
"""
import logging
from datetime import datetime, timezone
from itertools import count
from typing import Dict, List, Optional, Tuple, Union

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from proposal_workflow.config import settings
from proposal_workflow.core.constants import AuditActionType, AUDIT_ACTION_MAP
from proposal_workflow.core.exceptions import NotFoundError
from proposal_workflow.models import AuditLog, Proposal

logger = logging.getLogger(__name__)

PROPOSALS_TABLE = "proposals"


def map_action(action: Union[str, AuditActionType]) -> Tuple[AuditActionType, bool]:
    """Resolve a loosely named action to the closed enum.

    Returns ``(action_type, mapped)``; ``mapped`` is False when the name was
    unknown and fell back to UPDATE.
    """
    if isinstance(action, AuditActionType):
        return action, True

    name = (action or "").strip()
    if name.lower() in AUDIT_ACTION_MAP:
        return AUDIT_ACTION_MAP[name.lower()], True
    if name.upper() in AuditActionType.__members__:
        return AuditActionType[name.upper()], True

    return AuditActionType.UPDATE, False


class AuditBackend:
    """Storage strategy used by ``AuditRecorder``."""

    name = "abstract"

    async def resolve_proposal_id(self, proposal_uuid: str) -> Optional[int]:
        raise NotImplementedError

    async def insert(self, values: dict) -> AuditLog:
        raise NotImplementedError

    async def list_for_record(self, record_id: int, limit: int, offset: int) -> List[AuditLog]:
        raise NotImplementedError

    async def stats_for_record(self, record_id: int) -> List[dict]:
        raise NotImplementedError


class SqlAlchemyAuditBackend(AuditBackend):
    name = "sqlalchemy"

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_proposal_id(self, proposal_uuid: str) -> Optional[int]:
        result = await self.db.execute(
            select(Proposal.id).where(Proposal.uuid == proposal_uuid)
        )
        return result.scalar_one_or_none()

    async def insert(self, values: dict) -> AuditLog:
        entry = AuditLog(**values)
        self.db.add(entry)
        try:
            await self.db.flush()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return entry

    async def list_for_record(self, record_id: int, limit: int, offset: int) -> List[AuditLog]:
        result = await self.db.execute(
            select(AuditLog)
            .where(AuditLog.table_name == PROPOSALS_TABLE, AuditLog.record_id == record_id)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def stats_for_record(self, record_id: int) -> List[dict]:
        result = await self.db.execute(
            select(
                AuditLog.action_type,
                func.count(AuditLog.id),
                func.min(AuditLog.created_at),
                func.max(AuditLog.created_at),
            )
            .where(AuditLog.table_name == PROPOSALS_TABLE, AuditLog.record_id == record_id)
            .group_by(AuditLog.action_type)
            .order_by(func.count(AuditLog.id).desc())
        )
        return [
            {"action_type": row[0], "count": row[1], "first_at": row[2], "last_at": row[3]}
            for row in result.all()
        ]


class MemoryAuditBackend(AuditBackend):
    """Process-local store, for tooling and tests."""

    name = "memory"

    def __init__(self, proposals: Optional[Dict[str, int]] = None):
        self.proposals: Dict[str, int] = dict(proposals or {})
        self.entries: List[AuditLog] = []
        self._ids = count(1)

    def register_proposal(self, proposal_uuid: str, proposal_id: int) -> None:
        self.proposals[proposal_uuid] = proposal_id

    async def resolve_proposal_id(self, proposal_uuid: str) -> Optional[int]:
        return self.proposals.get(proposal_uuid)

    async def insert(self, values: dict) -> AuditLog:
        entry = AuditLog(id=next(self._ids), **values)
        self.entries.append(entry)
        return entry

    def _for_record(self, record_id: int) -> List[AuditLog]:
        return [
            e for e in self.entries
            if e.table_name == PROPOSALS_TABLE and e.record_id == record_id
        ]

    async def list_for_record(self, record_id: int, limit: int, offset: int) -> List[AuditLog]:
        rows = sorted(self._for_record(record_id), key=lambda e: (e.created_at, e.id), reverse=True)
        return rows[offset:offset + limit]

    async def stats_for_record(self, record_id: int) -> List[dict]:
        grouped: Dict[AuditActionType, dict] = {}
        for entry in self._for_record(record_id):
            bucket = grouped.setdefault(
                entry.action_type,
                {"action_type": entry.action_type, "count": 0, "first_at": entry.created_at, "last_at": entry.created_at},
            )
            bucket["count"] += 1
            bucket["first_at"] = min(bucket["first_at"], entry.created_at)
            bucket["last_at"] = max(bucket["last_at"], entry.created_at)
        return sorted(grouped.values(), key=lambda b: b["count"], reverse=True)


class AuditRecorder:
    def __init__(self, backend: AuditBackend):
        self.backend = backend

    async def record(
        self,
        proposal_uuid: str,
        action: Union[str, AuditActionType],
        actor_id: Optional[int] = None,
        note: Optional[str] = None,
        meta: Optional[dict] = None,
        old_values: Optional[dict] = None,
        new_values: Optional[dict] = None,
    ) -> Optional[AuditLog]:
        """Append one entry. Returns None instead of raising on any failure."""
        try:
            proposal_id = await self.backend.resolve_proposal_id(proposal_uuid)
            if proposal_id is None:
                logger.warning(f"Audit skipped: proposal {proposal_uuid} not found (action={action})")
                return None

            action_type, mapped = map_action(action)
            info = dict(meta or {})
            info["action"] = action.value if isinstance(action, AuditActionType) else action
            info["proposal_uuid"] = proposal_uuid
            if note:
                info["note"] = note
            if not mapped:
                info["unmapped_action"] = True
                logger.warning(
                    f"Unmapped audit action '{action}' for proposal {proposal_uuid}; stored as UPDATE"
                )

            return await self.backend.insert({
                "user_id": actor_id,
                "action_type": action_type,
                "table_name": PROPOSALS_TABLE,
                "record_id": proposal_id,
                "old_values": old_values,
                "new_values": new_values,
                "additional_info": info,
                "created_at": datetime.now(timezone.utc),
            })
        except Exception:
            logger.exception(f"Failed to record audit action '{action}' for proposal {proposal_uuid}")
            return None

    async def _require_proposal_id(self, proposal_uuid: str) -> int:
        proposal_id = await self.backend.resolve_proposal_id(proposal_uuid)
        if proposal_id is None:
            raise NotFoundError("Proposal", proposal_uuid)
        return proposal_id

    async def list(self, proposal_uuid: str, limit: int = 50, offset: int = 0) -> List[AuditLog]:
        proposal_id = await self._require_proposal_id(proposal_uuid)
        return await self.backend.list_for_record(proposal_id, limit, offset)

    async def stats(self, proposal_uuid: str) -> List[dict]:
        proposal_id = await self._require_proposal_id(proposal_uuid)
        return await self.backend.stats_for_record(proposal_id)

    async def export(self, proposal_uuid: str, limit: int = 1000) -> dict:
        proposal_id = await self._require_proposal_id(proposal_uuid)
        entries = await self.backend.list_for_record(proposal_id, limit, 0)
        stats = await self.backend.stats_for_record(proposal_id)
        return {
            "version": settings.AUDIT_EXPORT_VERSION,
            "exported_at": datetime.now(timezone.utc),
            "proposal_uuid": proposal_uuid,
            "proposal_id": proposal_id,
            "entries": entries,
            "stats": stats,
            "debug": {
                "backend": self.backend.name,
                "entry_count": len(entries),
                "action_types": sorted({s["action_type"].value for s in stats}),
                "generated_by": settings.APP_NAME,
            },
        }
