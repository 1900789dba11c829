import logging
from unittest.mock import AsyncMock

import pytest

from proposal_workflow.core.constants import AuditActionType
from proposal_workflow.core.exceptions import NotFoundError
from proposal_workflow.services.audit_service import (
    AuditRecorder,
    MemoryAuditBackend,
    SqlAlchemyAuditBackend,
    map_action,
)


def test_known_actions_map_to_closed_enum():
    assert map_action("proposal_created") == (AuditActionType.CREATE, True)
    assert map_action("proposal_submitted") == (AuditActionType.UPDATE, True)
    assert map_action("report_submitted") == (AuditActionType.UPDATE, True)
    assert map_action("proposal_approved") == (AuditActionType.APPROVE, True)
    assert map_action("proposal_rejected") == (AuditActionType.REJECT, True)
    assert map_action("proposal_deleted") == (AuditActionType.DELETE, True)
    assert map_action("audit_exported") == (AuditActionType.EXPORT, True)


def test_enum_names_resolve_directly():
    assert map_action("APPROVE") == (AuditActionType.APPROVE, True)
    assert map_action("view") == (AuditActionType.VIEW, True)
    assert map_action(AuditActionType.LOGIN) == (AuditActionType.LOGIN, True)


def test_unknown_action_falls_back_to_update():
    assert map_action("proposal_teleported") == (AuditActionType.UPDATE, False)
    assert map_action("") == (AuditActionType.UPDATE, False)


@pytest.fixture
def memory_recorder():
    backend = MemoryAuditBackend()
    backend.register_proposal("abc-123", 7)
    return AuditRecorder(backend)


@pytest.mark.asyncio
async def test_record_and_list_newest_first(memory_recorder):
    await memory_recorder.record("abc-123", "proposal_created", actor_id=1)
    await memory_recorder.record("abc-123", "proposal_submitted", actor_id=1, note="first try")
    await memory_recorder.record("abc-123", "proposal_approved", actor_id=2)

    entries = await memory_recorder.list("abc-123")
    assert [e.action_type for e in entries] == [
        AuditActionType.APPROVE,
        AuditActionType.UPDATE,
        AuditActionType.CREATE,
    ]
    assert entries[1].additional_info["note"] == "first try"
    assert entries[1].additional_info["proposal_uuid"] == "abc-123"
    assert all(e.record_id == 7 and e.table_name == "proposals" for e in entries)

    page = await memory_recorder.list("abc-123", limit=1, offset=1)
    assert [e.action_type for e in page] == [AuditActionType.UPDATE]


@pytest.mark.asyncio
async def test_unmapped_action_is_flagged_and_logged(memory_recorder, caplog):
    caplog.set_level(logging.WARNING)

    entry = await memory_recorder.record("abc-123", "proposal_teleported", actor_id=1)

    assert entry.action_type == AuditActionType.UPDATE
    assert entry.additional_info["unmapped_action"] is True
    assert entry.additional_info["action"] == "proposal_teleported"
    assert "Unmapped audit action 'proposal_teleported'" in caplog.text


@pytest.mark.asyncio
async def test_mapped_action_is_not_flagged(memory_recorder):
    entry = await memory_recorder.record("abc-123", "proposal_updated")
    assert "unmapped_action" not in entry.additional_info


@pytest.mark.asyncio
async def test_unknown_proposal_returns_none(memory_recorder, caplog):
    caplog.set_level(logging.WARNING)

    assert await memory_recorder.record("nope", "proposal_created") is None
    assert "proposal nope not found" in caplog.text
    assert memory_recorder.backend.entries == []


@pytest.mark.asyncio
async def test_storage_failure_never_escapes(caplog):
    backend = MemoryAuditBackend({"abc-123": 7})
    backend.insert = AsyncMock(side_effect=OSError("disk full"))
    recorder = AuditRecorder(backend)

    assert await recorder.record("abc-123", "proposal_approved", actor_id=1) is None
    assert "Failed to record audit action" in caplog.text


@pytest.mark.asyncio
async def test_resolution_failure_never_escapes():
    backend = MemoryAuditBackend()
    backend.resolve_proposal_id = AsyncMock(side_effect=ConnectionError("db gone"))

    assert await AuditRecorder(backend).record("abc-123", "proposal_approved") is None


@pytest.mark.asyncio
async def test_stats_group_by_action(memory_recorder):
    await memory_recorder.record("abc-123", "proposal_updated")
    await memory_recorder.record("abc-123", "proposal_submitted")
    await memory_recorder.record("abc-123", "proposal_approved")

    stats = await memory_recorder.stats("abc-123")
    assert stats[0]["action_type"] == AuditActionType.UPDATE
    assert stats[0]["count"] == 2
    assert stats[0]["first_at"] <= stats[0]["last_at"]
    assert {s["action_type"] for s in stats} == {AuditActionType.UPDATE, AuditActionType.APPROVE}


@pytest.mark.asyncio
async def test_read_side_requires_known_proposal(memory_recorder):
    with pytest.raises(NotFoundError):
        await memory_recorder.list("nope")
    with pytest.raises(NotFoundError):
        await memory_recorder.stats("nope")
    with pytest.raises(NotFoundError):
        await memory_recorder.export("nope")


@pytest.mark.asyncio
async def test_export_bundles_entries_stats_and_debug(memory_recorder):
    await memory_recorder.record("abc-123", "proposal_created")
    await memory_recorder.record("abc-123", "proposal_approved")

    payload = await memory_recorder.export("abc-123")

    assert payload["version"] == "1.0"
    assert payload["proposal_uuid"] == "abc-123"
    assert payload["proposal_id"] == 7
    assert len(payload["entries"]) == 2
    assert payload["debug"]["backend"] == "memory"
    assert payload["debug"]["entry_count"] == 2
    assert payload["debug"]["action_types"] == ["APPROVE", "CREATE"]


# === Database backend ===

@pytest.mark.asyncio
async def test_sqlalchemy_backend_persists_entries(db_session, draft_proposal, student_user):
    recorder = AuditRecorder(SqlAlchemyAuditBackend(db_session))

    entry = await recorder.record(
        "abc-123",
        "proposal_updated",
        actor_id=student_user.id,
        old_values={"event_name": "Old"},
        new_values={"event_name": "New"},
    )

    assert entry.id is not None
    assert entry.record_id == draft_proposal.id

    entries = await recorder.list("abc-123")
    assert len(entries) == 1
    assert entries[0].new_values == {"event_name": "New"}

    stats = await recorder.stats("abc-123")
    assert len(stats) == 1
    assert stats[0]["action_type"] == AuditActionType.UPDATE
    assert stats[0]["count"] == 1
    assert stats[0]["first_at"] is not None

    payload = await recorder.export("abc-123")
    assert payload["debug"]["backend"] == "sqlalchemy"


@pytest.mark.asyncio
async def test_sqlalchemy_backend_skips_unknown_proposal(db_session):
    recorder = AuditRecorder(SqlAlchemyAuditBackend(db_session))
    assert await recorder.record("missing", "proposal_created") is None


@pytest.mark.asyncio
async def test_registered_proposal_becomes_auditable(memory_recorder):
    assert await memory_recorder.record("later-1", "proposal_created") is None

    memory_recorder.backend.register_proposal("later-1", 8)
    entry = await memory_recorder.record("later-1", "proposal_created")

    assert entry.record_id == 8
    assert [e.record_id for e in await memory_recorder.list("later-1")] == [8]
