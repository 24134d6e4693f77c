import asyncio

import pytest

from mafia_client.models.event import ABSTAIN_VOTE, OutboundEvent

pytestmark = pytest.mark.anyio

DELAY = 0.02


async def _settle():
    await asyncio.sleep(DELAY * 4)


async def test_host_starts_day_after_night_resolves(session_factory, transport):
    session = session_factory(is_host=True, advance_delay=DELAY)
    transport.deliver("night-start", {"timeToVote": 30})
    transport.deliver("night-end", {"playerKilled": "A", "isGameOver": False})

    assert session.adapter.pending_advance is True
    assert transport.emitted == []
    await _settle()
    assert transport.emitted == [("start-day", {})]


async def test_trial_with_abstain_schedules_start_night(session_factory, transport, reach_day):
    session = session_factory(is_host=True, advance_delay=DELAY)
    reach_day()
    transport.deliver("discussion-end", {"playerOnTrial": "A"})
    await _settle()
    transport.deliver("trial-start", {"timeToVote": 20})
    transport.deliver("trial-end", {"playerKilled": ABSTAIN_VOTE, "isGameOver": False})
    await _settle()

    assert transport.emitted_names() == ["start-trial", "start-night"]
    assert session.snapshot.status == "Nobody was killed in the Trial!"


async def test_skip_trial_schedules_start_night(session_factory, transport, reach_day):
    session_factory(is_host=True, advance_delay=DELAY)
    reach_day()
    transport.deliver("discussion-end", {"playerOnTrial": None})
    await _settle()
    assert transport.emitted_names() == ["start-night"]


async def test_no_advance_when_game_is_over(session_factory, transport):
    session_factory(is_host=True, advance_delay=DELAY)
    transport.deliver("night-start", {})
    transport.deliver("night-end", {"playerKilled": "A", "isGameOver": True})
    transport.deliver("game-over", {"winningRole": "MAFIA", "winners": ["me"]})
    await _settle()
    assert transport.emitted == []


async def test_game_over_cancels_pending_advance(session_factory, transport, reach_day):
    session = session_factory(is_host=True, advance_delay=DELAY)
    reach_day()
    transport.deliver("discussion-end", {"playerOnTrial": "B"})
    transport.deliver("trial-start", {})
    transport.deliver("trial-end", {"playerKilled": "B", "isGameOver": False})
    assert session.adapter.pending_advance is True

    transport.deliver("game-over", {"winningRole": "civilian", "winners": ["A"]})
    assert session.adapter.pending_advance is False
    await _settle()
    assert transport.emitted == []


async def test_superseding_phase_cancels_pending_advance(session_factory, transport):
    session_factory(is_host=True, advance_delay=DELAY)
    transport.deliver("night-start", {})
    transport.deliver("night-end", {"playerKilled": None, "isGameOver": False})
    # le serveur a déjà avancé (autre hôte, reconnexion...)
    transport.deliver("day-start", {"timeToVote": 60})
    await _settle()
    assert transport.emitted == []


async def test_vote_updates_do_not_cancel_pending_advance(session_factory, transport, reach_day):
    session_factory(is_host=True, advance_delay=DELAY)
    reach_day()
    transport.deliver("discussion-end", {"playerOnTrial": "A"})
    transport.deliver("trial-vote-update", {"voteMap": {"B": 1}})
    await _settle()
    assert transport.emitted_names() == ["start-trial"]


async def test_close_cancels_timer_and_late_emit_is_noop(session_factory, transport):
    session = session_factory(is_host=True, advance_delay=DELAY)
    transport.deliver("night-start", {})
    transport.deliver("night-end", {"playerKilled": None, "isGameOver": False})

    await session.close()
    await _settle()

    assert transport.emitted == []
    assert transport.emit("start-day") is False
    assert transport.handler_count() == 0


async def test_stale_timer_is_discarded(session_factory, transport):
    session = session_factory(is_host=True, advance_delay=DELAY)
    transport.deliver("night-start", {})
    transport.deliver("night-end", {"playerKilled": None, "isGameOver": False})
    token = session.store.phase_token

    # tâche planifiée sur une identité de phase dépassée
    session.adapter.cancel_advance()
    await session.adapter._advance_after_delay(OutboundEvent.START_DAY, token - 1)
    assert transport.emitted == []


async def test_redelivered_resolution_keeps_a_single_advance(session_factory, transport):
    session = session_factory(is_host=True, advance_delay=DELAY)
    transport.deliver("night-start", {})
    transport.deliver("night-end", {"playerKilled": None, "isGameOver": False})
    task = session.adapter._advance_task

    transport.deliver("night-end", {"playerKilled": None, "isGameOver": False})
    assert session.adapter._advance_task is task
    await _settle()
    assert transport.emitted == [("start-day", {})]


async def test_stale_resolution_during_day_schedules_nothing(session_factory, transport, reach_day):
    session = session_factory(is_host=True, advance_delay=DELAY)
    reach_day()
    transport.deliver("night-end", {"playerKilled": None, "isGameOver": False})
    assert session.adapter.pending_advance is False
    await _settle()
    assert transport.emitted == []
