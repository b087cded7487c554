"""
Match Operations Module

Owns the match lifecycle from a full, locked queue to an applied result.

State machine:
    pending -> in-progress -> completed
    pending | in-progress -> cancelled

Key functionality:
- form_match(): lock a full queue, validate the team split, snapshot ratings
- confirm_host() / start_match() / reassign_host(): host handling while pending
- report_result(): the only path into completed; applies ratings atomically
- cancel_match(): the escape transition, releasing the queue

The queue stays locked with its roster while the match is active and is
cleared when the match completes or is cancelled, so a title never has more
than one active match. Every mutation of a match runs under that match's
lock. Public methods return MatchActionResult and never raise for
validation, state or persistence problems.
"""

import asyncio
import random
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ladder.config import Config
from ladder.database.models import GameTitle, MatchStatus, TeamSide
from ladder.data_models.match import (
    Match, MatchActionResult, MatchFailure, MatchPlayer, PlayerReport, Team
)
from ladder.operations.rating_operations import RatingOperations
from ladder.operations.team_balancing import TeamBalancer, validate_split
from ladder.utils.clock import utc_now
from ladder.utils.exceptions import (
    MatchOperationError, MatchStateError, MatchValidationError, PersistenceError
)
from ladder.utils.logger import setup_logger
from ladder.utils.rating import is_finite_number

logger = setup_logger(__name__)


class MatchOperations:
    """
    Business logic for the match lifecycle.

    Active matches live in memory as the authoritative working state; every
    transition is written through to the database before it is committed to
    memory, so a failed write leaves the match exactly as it was. Completed
    and cancelled matches are dropped from memory and read back from the
    database on demand.
    """

    TRANSITIONS = {
        MatchStatus.PENDING: {MatchStatus.IN_PROGRESS, MatchStatus.CANCELLED},
        MatchStatus.IN_PROGRESS: {MatchStatus.COMPLETED, MatchStatus.CANCELLED},
        MatchStatus.COMPLETED: set(),
        MatchStatus.CANCELLED: set(),
    }

    def __init__(
        self,
        database,
        queue_ops,
        rating_ops: RatingOperations,
        notifier,
        balancer: TeamBalancer = None,
        rng: random.Random = None,
        require_host_confirmation: bool = None,
    ):
        self.db = database
        self.queues = queue_ops
        self.ratings = rating_ops
        self.notifier = notifier
        self.rng = rng or random.Random()
        self.balancer = balancer or TeamBalancer(rng=self.rng)
        if require_host_confirmation is None:
            require_host_confirmation = Config.REQUIRE_HOST_CONFIRMATION
        self.require_host_confirmation = require_host_confirmation
        self.team_size = self.queues.capacity // 2

        self.matches: Dict[str, Match] = {}
        self._active: Dict[GameTitle, str] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self.logger = logger

    # Helpers

    def _match_lock(self, match_id: str) -> asyncio.Lock:
        lock = self._locks.get(match_id)
        if lock is None:
            lock = self._locks[match_id] = asyncio.Lock()
        return lock

    async def _require_match(self, match_id: str) -> Match:
        """Working match, or the stored one if it has already finished"""
        match = self.matches.get(match_id)
        if match is not None:
            return match
        stored = await self.db.load_match(match_id)
        if stored is not None and stored.is_terminal:
            return stored
        raise MatchOperationError(
            f"Match {match_id} not found",
            "Match not found.",
            MatchFailure.NOT_FOUND,
        )

    def _transition(self, match: Match, new_status: MatchStatus):
        """Move a match to ``new_status`` or raise MatchStateError"""
        if new_status not in self.TRANSITIONS[match.status]:
            raise MatchStateError(
                f"Invalid transition {match.status.value} -> {new_status.value} for {match.match_id}",
                f"Match is already {match.status.value}.",
            )
        match.status = new_status

    @staticmethod
    def _new_match_id(now: datetime) -> str:
        return f"match-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:9]}"

    @staticmethod
    def _failure(error: Exception) -> MatchActionResult:
        if isinstance(error, PersistenceError):
            return MatchActionResult(False, error.user_message, MatchFailure.PERSISTENCE)
        return MatchActionResult(False, error.user_message, error.reason)

    async def _commit(self, updated: Match):
        """Write the match header through, then adopt it as the working state"""
        await self.db.save_match(updated)
        self.matches[updated.match_id] = updated

    def _release(self, match: Match):
        """Drop a finished match from the working state; the mirror keeps it"""
        if self._active.get(match.title) == match.match_id:
            del self._active[match.title]
        self.matches.pop(match.match_id, None)
        self._locks.pop(match.match_id, None)

    async def _free_queue(self, title: GameTitle):
        """Clear the title's queue; if the mirror refuses, at least unlock it"""
        result = await self.queues.clear(title)
        if not result.success:
            self.logger.error(f"Could not clear {title.value} queue after match; unlocking it in place")
            await self.queues.unlock(title)

    # Queries

    def active_match(self, title: GameTitle) -> Optional[Match]:
        match_id = self._active.get(title)
        return self.matches.get(match_id) if match_id else None

    def active_matches(self) -> List[Match]:
        return [self.matches[match_id] for match_id in self._active.values()]

    async def get_match(self, match_id: str) -> Optional[Match]:
        """In-memory match, or the stored one for matches this process never saw"""
        match = self.matches.get(match_id)
        if match is not None:
            return match
        try:
            return await self.db.load_match(match_id)
        except PersistenceError as e:
            self.logger.warning(f"Could not load match {match_id}: {e}")
            return None

    async def restore_active_matches(self) -> int:
        """Adopt stored pending/in-progress matches and re-lock their queues"""
        restored = 0
        for match in await self.db.load_active_matches():
            if match.title in self._active:
                self.logger.warning(
                    f"Ignoring extra active match {match.match_id} for {match.title.value}; "
                    f"{self._active[match.title]} already holds the queue"
                )
                continue
            if match.title not in self.queues.stores:
                continue
            self.matches[match.match_id] = match
            self._active[match.title] = match.match_id
            await self.queues.lock(match.title)
            restored += 1
        if restored:
            self.logger.info(f"Restored {restored} active match(es)")
        return restored

    # Formation

    async def form_match(
        self,
        title: GameTitle,
        team_split: Optional[Tuple[Sequence[int], Sequence[int]]] = None,
        host_id: Optional[int] = None,
        now: datetime = None,
    ) -> MatchActionResult:
        """
        Form a match from a full queue.

        The capacity check runs against a fresh read of the mirror under the
        title lock, and the queue is locked before any further await, so no
        join can slip in. Without ``team_split`` the balancer drafts the teams.
        The host defaults to a random team A player.
        """
        now = now or utc_now()
        async with self.queues.title_lock(title):
            active = self.active_match(title)
            if active is not None:
                return MatchActionResult(
                    False, "A match is already in progress for this game.",
                    MatchFailure.ACTIVE_MATCH_EXISTS, active,
                )

            store = self.queues.store(title)
            if store.locked:
                return MatchActionResult(False, "Queue is locked.", MatchFailure.QUEUE_NOT_READY)

            if not await self.queues.refresh(title):
                return MatchActionResult(
                    False, "Could not verify the queue. Please try again later.", MatchFailure.PERSISTENCE
                )
            if not store.is_full():
                return MatchActionResult(
                    False,
                    f"Queue is not full ({store.size()}/{store.capacity}).",
                    MatchFailure.QUEUE_NOT_READY,
                )

            roster = store.player_ids()
            store.lock()
            try:
                match = await self._build_match(title, roster, team_split, host_id, now)
                await self.db.save_match(match)
            except (MatchOperationError, PersistenceError) as e:
                store.unlock()
                self.logger.warning(f"Match formation for {title.value} failed: {e}")
                return self._failure(e)

            self.matches[match.match_id] = match
            self._active[title] = match.match_id

        self.logger.info(
            f"Formed {title.value} match {match.match_id}: A={match.team_a.player_ids} "
            f"(avg {match.team_a.average_rating:.0f}) vs B={match.team_b.player_ids} "
            f"(avg {match.team_b.average_rating:.0f}), host {match.host_id}"
        )
        return MatchActionResult(True, "Match created.", match=match)

    async def _build_match(
        self,
        title: GameTitle,
        roster: List[int],
        team_split,
        host_id: Optional[int],
        now: datetime,
    ) -> Match:
        profiles = await self.db.load_player_profiles(roster)
        unknown = [player_id for player_id in roster if player_id not in profiles]
        if unknown:
            raise MatchValidationError(
                f"Unregistered players in queue: {unknown}",
                "Some queued players are not registered.",
                MatchFailure.UNKNOWN_PLAYER,
            )

        snapshot = {
            player_id: profiles[player_id].rating_for(title, Config.STARTING_RATING)
            for player_id in roster
        }
        team_a_ids, team_b_ids = team_split if team_split is not None else self.balancer.split(snapshot)
        validate_split(roster, team_a_ids, team_b_ids, self.team_size)

        if host_id is None:
            host_id = self.rng.choice(list(team_a_ids))
        elif host_id not in snapshot:
            raise MatchValidationError(
                f"Host {host_id} is not in the roster",
                "The host must be one of the match players.",
            )

        return Match(
            match_id=self._new_match_id(now),
            title=title,
            team_a=Team(TeamSide.A, tuple(MatchPlayer(pid, snapshot[pid]) for pid in team_a_ids)),
            team_b=Team(TeamSide.B, tuple(MatchPlayer(pid, snapshot[pid]) for pid in team_b_ids)),
            host_id=host_id,
            started_at=now,
            host_selected_at=now,
        )

    # Host handling

    async def confirm_host(self, match_id: str, player_id: int, now: datetime = None) -> MatchActionResult:
        """The designated host confirms; the match moves to in-progress"""
        now = now or utc_now()
        async with self._match_lock(match_id):
            try:
                match = await self._require_match(match_id)
                if player_id != match.host_id:
                    raise MatchOperationError(
                        f"Player {player_id} is not the host of {match_id}",
                        "Only the selected host can confirm hosting.",
                        MatchFailure.NOT_HOST,
                    )
                updated = replace(match, host_confirmed=True, host_confirmed_at=now)
                self._transition(updated, MatchStatus.IN_PROGRESS)
                await self._commit(updated)
            except (MatchOperationError, PersistenceError) as e:
                return self._failure(e)

        self.logger.info(f"Host {player_id} confirmed match {match_id}")
        return MatchActionResult(True, "Host confirmed. Match started.", match=updated)

    async def start_match(self, match_id: str, now: datetime = None) -> MatchActionResult:
        async with self._match_lock(match_id):
            try:
                match = await self._require_match(match_id)
                if match.status == MatchStatus.PENDING and self.require_host_confirmation and not match.host_confirmed:
                    raise MatchStateError(
                        f"Match {match_id} is waiting for host confirmation",
                        "The host has to confirm before the match can start.",
                    )
                updated = replace(match)
                self._transition(updated, MatchStatus.IN_PROGRESS)
                await self._commit(updated)
            except (MatchOperationError, PersistenceError) as e:
                return self._failure(e)

        self.logger.info(f"Match {match_id} started")
        return MatchActionResult(True, "Match started.", match=updated)

    async def reassign_host(
        self,
        match_id: str,
        now: datetime = None,
        new_host_id: Optional[int] = None,
    ) -> MatchActionResult:
        """
        Replace a host who has not confirmed.

        Picks a random team A player other than the current host, falling back
        to team B. Only allowed while the match is pending.
        """
        now = now or utc_now()
        async with self._match_lock(match_id):
            try:
                match = await self._require_match(match_id)
                if match.status != MatchStatus.PENDING or match.host_confirmed:
                    raise MatchStateError(
                        f"Cannot reassign host of {match_id} ({match.status.value}, confirmed={match.host_confirmed})",
                        "The host can only be changed before the match starts.",
                    )
                if new_host_id is None:
                    candidates = [pid for pid in match.team_a.player_ids if pid != match.host_id]
                    if not candidates:
                        candidates = [pid for pid in match.team_b.player_ids if pid != match.host_id]
                    if not candidates:
                        raise MatchStateError(
                            f"No eligible replacement host for {match_id}",
                            "No other player can host this match.",
                        )
                    new_host_id = self.rng.choice(candidates)
                elif new_host_id not in match.roster_ids or new_host_id == match.host_id:
                    raise MatchValidationError(
                        f"Player {new_host_id} cannot take over hosting {match_id}",
                        "The new host must be another player in the match.",
                    )
                updated = replace(match, host_id=new_host_id, host_selected_at=now)
                await self._commit(updated)
            except (MatchOperationError, PersistenceError) as e:
                return self._failure(e)

        self.logger.info(f"Host of {match_id} reassigned from {match.host_id} to {new_host_id}")
        return MatchActionResult(True, "A new host has been selected.", match=updated)

    # Result and cancellation

    @staticmethod
    def _parse_winner(winner) -> TeamSide:
        if isinstance(winner, TeamSide):
            return winner
        if isinstance(winner, str) and winner.upper() in ('A', 'B'):
            return TeamSide(winner.upper())
        raise MatchValidationError(f"Invalid winner {winner!r}", "Winner must be team A or team B.")

    @staticmethod
    def _validate_reports(match: Match, reports: Mapping[int, PlayerReport]):
        roster = set(match.roster_ids)
        missing = sorted(roster - set(reports))
        if missing:
            raise MatchValidationError(
                f"Report for {match.match_id} is missing stats for {missing}",
                "Stats are required for every player in the match.",
                MatchFailure.INCOMPLETE_REPORT,
            )
        extra = sorted(set(reports) - roster)
        if extra:
            raise MatchValidationError(
                f"Report for {match.match_id} includes players outside the match: {extra}",
                "The report includes players who were not in this match.",
            )
        for player_id, report in reports.items():
            if not isinstance(report, PlayerReport):
                raise MatchValidationError(
                    f"Report for player {player_id} is {type(report).__name__}, not PlayerReport",
                    "Stats are required for every player in the match.",
                    MatchFailure.INCOMPLETE_REPORT,
                )

    @staticmethod
    def _validate_score(score) -> Optional[Tuple[int, int]]:
        if score is None:
            return None
        try:
            team_a_score, team_b_score = score
        except (TypeError, ValueError):
            raise MatchValidationError(f"Invalid score {score!r}", "Score must be two numbers.") from None
        for value in (team_a_score, team_b_score):
            if not is_finite_number(value) or value < 0 or int(value) != value:
                raise MatchValidationError(f"Invalid score {score!r}", "Score must be two non-negative numbers.")
        return int(team_a_score), int(team_b_score)

    async def report_result(
        self,
        match_id: str,
        winner,
        reports: Mapping[int, PlayerReport],
        score: Optional[Tuple[int, int]] = None,
        now: datetime = None,
    ) -> MatchActionResult:
        """
        Complete a match and apply rating changes.

        Requires a winner and counters for every roster member. Either the whole
        result (stats, ratings, displayed ranks, history) is stored in one
        transaction, or nothing changes. On success the title's queue is freed
        and tier-change events are emitted.
        """
        now = now or utc_now()
        async with self._match_lock(match_id):
            try:
                match = await self._require_match(match_id)
                if match.is_terminal:
                    raise MatchStateError(
                        f"Match {match_id} is already {match.status.value}",
                        f"Match is already {match.status.value}.",
                    )
                side = self._parse_winner(winner)
                self._validate_reports(match, reports)
                final_score = self._validate_score(score)

                profiles = await self.db.load_player_profiles(match.roster_ids)
                unknown = [pid for pid in match.roster_ids if pid not in profiles]
                if unknown:
                    raise MatchValidationError(
                        f"Unregistered players in match {match_id}: {unknown}",
                        "Some players in this match are not registered.",
                        MatchFailure.UNKNOWN_PLAYER,
                    )

                updated = replace(match, stats={})
                if updated.status == MatchStatus.PENDING:
                    self._transition(updated, MatchStatus.IN_PROGRESS)
                self._transition(updated, MatchStatus.COMPLETED)
                updated.winner = side
                updated.score = final_score
                updated.ended_at = now

                rating_update = self.ratings.compute_match_update(updated, side, reports, profiles, now)
                updated.stats = dict(rating_update.stats)
                await self.db.save_match_result(
                    updated, rating_update.stats, rating_update.changes, rating_update.history
                )
            except (MatchOperationError, PersistenceError) as e:
                self.logger.warning(f"Result report for {match_id} rejected: {e}")
                return self._failure(e)

            self._release(updated)

        await self._free_queue(updated.title)
        await self.notifier.emit(rating_update.events)

        for change in rating_update.changes:
            self.logger.info(f"Player {change.player_id} {updated.title.value}: {self.ratings.describe(change)}")
        fallbacks = sum(1 for change in rating_update.changes if change.used_fallback)
        if fallbacks:
            self.logger.warning(f"Match {match_id} applied fallback points for {fallbacks} player(s)")

        self.logger.info(f"Match {match_id} completed, team {side.value} won")
        return MatchActionResult(
            True, f"Match reported. Team {side.value} wins.",
            match=updated, changes=tuple(rating_update.changes),
        )

    async def cancel_match(self, match_id: str, reason: str = None, now: datetime = None) -> MatchActionResult:
        """Cancel a pending or in-progress match; no rating effects, queue is freed"""
        now = now or utc_now()
        async with self._match_lock(match_id):
            try:
                match = await self._require_match(match_id)
                updated = replace(match, ended_at=now)
                self._transition(updated, MatchStatus.CANCELLED)
                await self._commit(updated)
            except (MatchOperationError, PersistenceError) as e:
                return self._failure(e)
            self._release(updated)

        await self._free_queue(updated.title)
        self.logger.info(f"Match {match_id} cancelled" + (f": {reason}" if reason else ""))
        return MatchActionResult(True, "Match cancelled.", match=updated)

    # Housekeeping hooks

    def unconfirmed_hosts(self, cutoff: datetime) -> List[Match]:
        """Pending matches whose host was selected before ``cutoff`` and has not confirmed"""
        return [
            match for match in self.active_matches()
            if match.status == MatchStatus.PENDING
            and not match.host_confirmed
            and match.host_selected_at is not None
            and match.host_selected_at < cutoff
        ]

    def stale_pending(self, cutoff: datetime) -> List[Match]:
        """Matches still pending that were formed before ``cutoff``"""
        return [
            match for match in self.active_matches()
            if match.status == MatchStatus.PENDING and match.started_at < cutoff
        ]
