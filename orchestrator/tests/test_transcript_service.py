from __future__ import annotations

import asyncio

from orchestrator.features.transcript import service as transcript_service


def _append(db, session_id, role, content, metadata=None):
    return asyncio.run(
        transcript_service.append_message(
            db,
            session_id=session_id,
            role=role,
            content=content,
            metadata=metadata,
        )
    )


def test_messages_are_listed_in_creation_order(store, db):
    row = store.add_session()
    for index in range(5):
        _append(db, row.id, "user" if index % 2 == 0 else "assistant", f"message {index}")

    first = asyncio.run(transcript_service.list_messages(db, session_id=str(row.id)))
    second = asyncio.run(transcript_service.list_messages(db, session_id=row.id))

    assert [m.content for m in first] == [f"message {index}" for index in range(5)]
    assert [m.id for m in first] == [m.id for m in second]


def test_append_never_rewrites_existing_messages(store, db):
    row = store.add_session()
    original = _append(db, row.id, "user", "add dark mode")
    snapshot = dict(vars(original))

    _append(db, row.id, "assistant", '{"summary": "Dark mode"}', metadata={"type": "plan"})
    _append(db, row.id, "system", "Plan approved. Starting build...")

    assert vars(store.messages_for(row.id)[0]) == snapshot
    assert len(store.messages_for(row.id)) == 3


def test_latest_plan_message_skips_non_plan_assistant_messages(store, db):
    row = store.add_session()
    old_plan = _append(db, row.id, "assistant", '{"summary": "v1"}', metadata={"type": "plan"})
    new_plan = _append(db, row.id, "assistant", '{"summary": "v2"}', metadata={"type": "plan"})
    _append(db, row.id, "assistant", "Build completed.", metadata={"type": "build_complete"})

    latest = asyncio.run(transcript_service.latest_plan_message(db, session_id=row.id))

    assert latest.id == new_plan.id
    assert latest.id != old_plan.id


def test_message_out_exposes_metadata():
    from datetime import datetime, timezone
    from types import SimpleNamespace
    from uuid import uuid4

    row = SimpleNamespace(
        id=uuid4(),
        session_id=uuid4(),
        user_id=None,
        role="system",
        content="Pull request created: https://github.com/acme/storefront/pull/7",
        phase=None,
        meta={"type": "pull_request", "prNumber": 7},
        created_at=datetime.now(timezone.utc),
    )

    out = transcript_service.to_message_out(row)

    assert out.metadata == {"type": "pull_request", "prNumber": 7}
    assert out.session_id == str(row.session_id)
