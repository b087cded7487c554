"""Tests for the housekeeping pass."""

import asyncio
from datetime import timedelta

import pytest

from ladder.database.models import GameTitle, MatchStatus
from ladder.utils.clock import utc_now
from factories import register_players

VALORANT = GameTitle.VALORANT


async def match_formed_at(engine, formed_at):
    ids = await register_players(engine, 4)
    for player_id in ids:
        await engine.queues.join(player_id, VALORANT, now=formed_at - timedelta(minutes=5))
    result = await engine.matches.form_match(VALORANT, now=formed_at)
    assert result.success
    return result.match


class TestHousekeeping:

    @pytest.mark.asyncio
    async def test_expires_old_queue_entries(self, engine):
        t0 = utc_now()
        ids = await register_players(engine, 3)
        await engine.queues.join(ids[0], VALORANT, now=t0 - timedelta(minutes=45))
        await engine.queues.join(ids[1], VALORANT, now=t0 - timedelta(minutes=31))
        await engine.queues.join(ids[2], VALORANT, now=t0 - timedelta(minutes=5))

        report = await engine.housekeeping.run_once(now=t0)

        assert report.expired_entries == ids[:2]
        status = await engine.queues.get_status(VALORANT)
        assert [entry.player_id for entry in status.entries] == [ids[2]]

    @pytest.mark.asyncio
    async def test_locked_queue_is_not_expired(self, engine):
        t0 = utc_now()
        match = await match_formed_at(engine, t0 - timedelta(hours=1))
        await engine.matches.confirm_host(match.match_id, match.host_id)

        report = await engine.housekeeping.run_once(now=t0)

        assert not report.changed
        assert engine.queues.store(VALORANT).size() == 4
        assert engine.matches.active_match(VALORANT).status == MatchStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_reassigns_unconfirmed_host(self, engine):
        t0 = utc_now()
        match = await match_formed_at(engine, t0)

        report = await engine.housekeeping.run_once(now=t0 + timedelta(minutes=11))

        assert report.reassigned_hosts == [match.match_id]
        updated = engine.matches.active_match(VALORANT)
        assert updated.host_id != match.host_id
        assert updated.status == MatchStatus.PENDING

        again = await engine.housekeeping.run_once(now=t0 + timedelta(minutes=12))
        assert again.reassigned_hosts == []

    @pytest.mark.asyncio
    async def test_cancels_stale_pending_match(self, engine):
        t0 = utc_now()
        match = await match_formed_at(engine, t0)

        report = await engine.housekeeping.run_once(now=t0 + timedelta(hours=7))

        assert report.cancelled_matches == [match.match_id]
        assert report.reassigned_hosts == []
        assert (await engine.matches.get_match(match.match_id)).status == MatchStatus.CANCELLED
        status = await engine.queues.get_status(VALORANT)
        assert not status.locked
        assert status.size == 0

    @pytest.mark.asyncio
    async def test_in_progress_match_is_never_stale(self, engine):
        t0 = utc_now()
        match = await match_formed_at(engine, t0)
        await engine.matches.start_match(match.match_id)

        report = await engine.housekeeping.run_once(now=t0 + timedelta(hours=7))

        assert report.cancelled_matches == []
        assert engine.matches.active_match(VALORANT) is not None

    @pytest.mark.asyncio
    async def test_background_loop_starts_and_stops(self, engine):
        engine.housekeeping.start(interval_seconds=0.01)
        assert engine.housekeeping.running
        engine.housekeeping.start(interval_seconds=0.01)

        await asyncio.sleep(0.05)
        await engine.housekeeping.stop()

        assert not engine.housekeeping.running
