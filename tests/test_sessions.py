import pytest

from scorelens.app.models import AnalysisResult, SessionCreateRequest, UserAction, UserActionType
from scorelens.app.sessions import SessionManager, UnknownSessionError


@pytest.mark.asyncio
async def test_create_session_starts_empty() -> None:
    manager = SessionManager()
    summary = await manager.create_session(SessionCreateRequest(name="rehearsal"))
    assert summary.session_id.startswith("session-")
    assert summary.name == "rehearsal"
    assert summary.preferences == {}
    assert await manager.session_exists(summary.session_id)
    assert len(await manager.all_summaries()) == 1


@pytest.mark.asyncio
async def test_sessions_keep_separate_preferences() -> None:
    manager = SessionManager()
    first = await manager.create_session(SessionCreateRequest())
    second = await manager.create_session(SessionCreateRequest())

    stats = await manager.record_user_action(
        first.session_id, UserAction(action=UserActionType.ACCEPT, tokens=["circle"])
    )
    assert stats.accepted == 1

    first_context = await manager.get_context(first.session_id)
    second_context = await manager.get_context(second.session_id)
    assert first_context.preferences() == {"circle": 1.0}
    assert second_context.preferences() == {}


@pytest.mark.asyncio
async def test_export_snapshots_then_clears() -> None:
    manager = SessionManager()
    summary = await manager.create_session(SessionCreateRequest())
    session_id = summary.session_id
    await manager.record_user_action(
        session_id, UserAction(action=UserActionType.REJECT, tokens=["star", "wave"])
    )
    await manager.store_analysis(session_id, AnalysisResult(form="Binary Form (AB)"))

    exported = await manager.export(session_id)
    assert exported.preferences == {"star": -1.0, "wave": -1.0}
    assert exported.statistics.rejected == 1
    assert exported.last_form == "Binary Form (AB)"
    assert exported.extras["export_count"] == 1

    after = await manager.get_summary(session_id)
    assert after is not None
    assert after.preferences == {}
    assert after.statistics.total_actions == 0
    assert after.last_form == "Binary Form (AB)"


@pytest.mark.asyncio
async def test_clear_preferences_resets_statistics() -> None:
    manager = SessionManager()
    summary = await manager.create_session(SessionCreateRequest())
    await manager.record_user_action(
        summary.session_id, UserAction(action=UserActionType.MODIFY, tokens=["grid"])
    )
    await manager.clear_preferences(summary.session_id)
    stats = await manager.get_preference_statistics(summary.session_id)
    assert stats.total_actions == 0
    assert stats.tracked_tokens == 0


@pytest.mark.asyncio
async def test_unknown_session_raises() -> None:
    manager = SessionManager()
    with pytest.raises(UnknownSessionError):
        await manager.get_context("session-missing")
    with pytest.raises(UnknownSessionError):
        await manager.record_user_action(
            "session-missing", UserAction(action=UserActionType.ACCEPT, tokens=["circle"])
        )
    with pytest.raises(UnknownSessionError):
        await manager.export("session-missing")
    assert await manager.get_summary("session-missing") is None
