from typing import Dict, Iterable, List, Optional
from contextlib import asynccontextmanager

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ladder.config import Config
from ladder.database.models import (
    Base, Player, PlayerTitleRating, QueueEntryRecord, MatchRecord,
    MatchPlayerStatRecord, RankHistory, GameTitle, MatchStatus, ResolutionMode, TeamSide
)
from ladder.data_models.match import Match, MatchPlayer, MatchPlayerStat, Team
from ladder.data_models.queue import QueueEntry
from ladder.data_models.ranking import (
    CombinedRank, PlayerProfile, RankHistoryEntry, RatingChange, TitleRank
)
from ladder.utils.clock import utc_now
from ladder.utils.exceptions import PersistenceError
from ladder.utils.logger import setup_logger

class Database:
    """
    Durable mirror of the engine's working state.

    Every persistence-boundary method raises PersistenceError when the store
    cannot be read or written; callers decide how to surface it.
    """

    def __init__(self, database_url: str = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url or Config.DATABASE_URL
        self.engine = None
        self.async_session = None

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        # Convert sqlite URL to async if needed
        database_url = self.database_url
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        self.engine = create_async_engine(
            database_url,
            echo=Config.DEBUG,
            future=True
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context are committed together on success,
        or rolled back together on failure.
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def _guarded(self, operation: str, write: bool = True):
        """Session scope that converts store failures into PersistenceError"""
        scope = self.transaction() if write else self.get_session()
        try:
            async with scope as session:
                yield session
        except SQLAlchemyError as e:
            self.logger.error(f"Persistence failure during {operation}: {e}")
            raise PersistenceError(operation, str(e)) from e

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # Player operations
    async def create_player(
        self,
        discord_id: int,
        username: str,
        resolution_mode: ResolutionMode = ResolutionMode.HIGHEST,
        primary_title: GameTitle = GameTitle.VALORANT
    ) -> Player:
        """Create a new player with no per-title ratings yet"""
        async with self._guarded('create_player') as session:
            player = Player(
                discord_id=discord_id,
                username=username,
                resolution_mode=resolution_mode,
                primary_title=primary_title,
            )
            session.add(player)
            await session.flush()
            await session.refresh(player)
            return player

    async def get_player_by_discord_id(self, discord_id: int) -> Optional[Player]:
        """Get a player by their Discord ID"""
        async with self._guarded('get_player_by_discord_id', write=False) as session:
            result = await session.execute(
                select(Player).where(Player.discord_id == discord_id)
            )
            return result.scalar_one_or_none()

    @staticmethod
    def _to_profile(player: Player) -> PlayerProfile:
        ratings = {
            row.title: TitleRank(
                title=row.title,
                rating=row.rating,
                tier=row.tier,
                tier_value=row.tier_value,
                peak_rating=row.peak_rating,
            )
            for row in player.title_ratings
        }
        return PlayerProfile(
            player_id=player.id,
            discord_id=player.discord_id,
            username=player.username,
            resolution_mode=player.resolution_mode,
            primary_title=player.primary_title,
            ratings=ratings,
            display=CombinedRank(
                title=player.display_title,
                tier=player.display_rank,
                tier_value=player.display_rank_value,
                rating=player.display_rating,
            ),
        )

    async def load_player_profiles(self, player_ids: Iterable[int]) -> Dict[int, PlayerProfile]:
        """Load players with every per-title rating"""
        ids = list(player_ids)
        if not ids:
            return {}
        async with self._guarded('load_player_profiles', write=False) as session:
            result = await session.execute(
                select(Player)
                .options(selectinload(Player.title_ratings))
                .where(Player.id.in_(ids))
            )
            return {player.id: self._to_profile(player) for player in result.scalars().all()}

    async def load_player_profile(self, player_id: int) -> Optional[PlayerProfile]:
        profiles = await self.load_player_profiles([player_id])
        return profiles.get(player_id)

    @staticmethod
    async def _upsert_title_rank(session: AsyncSession, player_id: int, rank: TitleRank):
        result = await session.execute(
            select(PlayerTitleRating)
            .where(PlayerTitleRating.player_id == player_id)
            .where(PlayerTitleRating.title == rank.title)
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = PlayerTitleRating(player_id=player_id, title=rank.title)
            session.add(row)
        row.rating = rank.rating
        row.tier = rank.tier
        row.tier_value = rank.tier_value
        row.peak_rating = max(row.peak_rating or 0, rank.peak_rating, rank.rating)

    @staticmethod
    async def _store_display(session: AsyncSession, player_id: int, display: CombinedRank, **extra):
        player = await session.get(Player, player_id)
        if player is None:
            raise PersistenceError('store_display', f"player {player_id} does not exist")
        player.display_title = display.title
        player.display_rank = display.tier
        player.display_rank_value = display.tier_value
        player.display_rating = display.rating
        for key, value in extra.items():
            setattr(player, key, value)

    @staticmethod
    def _history_row(entry: RankHistoryEntry) -> RankHistory:
        return RankHistory(
            player_id=entry.player_id,
            title=entry.title,
            old_rank=entry.old_rank,
            new_rank=entry.new_rank,
            old_rating=entry.old_rating,
            new_rating=entry.new_rating,
            reason=entry.reason,
            match_id=entry.match_id,
            created_at=entry.created_at or utc_now(),
        )

    async def save_title_rank(
        self,
        player_id: int,
        rank: TitleRank,
        display: CombinedRank,
        history: Optional[RankHistoryEntry] = None
    ):
        """Store one title's rank together with the recomputed displayed rank"""
        async with self._guarded('save_title_rank') as session:
            await self._upsert_title_rank(session, player_id, rank)
            await self._store_display(session, player_id, display)
            if history is not None:
                session.add(self._history_row(history))

    async def save_resolution_mode(
        self,
        player_id: int,
        mode: ResolutionMode,
        primary_title: GameTitle,
        display: CombinedRank,
        history: Optional[RankHistoryEntry] = None
    ):
        async with self._guarded('save_resolution_mode') as session:
            await self._store_display(
                session, player_id, display,
                resolution_mode=mode, primary_title=primary_title
            )
            if history is not None:
                session.add(self._history_row(history))

    async def append_rank_history(self, entry: RankHistoryEntry):
        """Append one audit entry; history rows are never updated or deleted"""
        async with self._guarded('append_rank_history') as session:
            session.add(self._history_row(entry))

    # Queue operations
    async def load_queue(self, title: GameTitle) -> List[QueueEntry]:
        """Queue entries for a title in join order"""
        async with self._guarded('load_queue', write=False) as session:
            result = await session.execute(
                select(QueueEntryRecord)
                .where(QueueEntryRecord.title == title)
                .order_by(QueueEntryRecord.joined_at, QueueEntryRecord.id)
            )
            return [
                QueueEntry(player_id=row.player_id, title=row.title, joined_at=row.joined_at)
                for row in result.scalars().all()
            ]

    async def save_queue_join(self, entry: QueueEntry) -> bool:
        """Persist a join. Returns False when the player is already queued for the title"""
        try:
            async with self.transaction() as session:
                existing = await session.execute(
                    select(QueueEntryRecord.id)
                    .where(QueueEntryRecord.title == entry.title)
                    .where(QueueEntryRecord.player_id == entry.player_id)
                )
                if existing.scalar_one_or_none() is not None:
                    return False
                session.add(QueueEntryRecord(
                    player_id=entry.player_id,
                    title=entry.title,
                    joined_at=entry.joined_at,
                ))
            return True
        except IntegrityError:
            return False
        except SQLAlchemyError as e:
            self.logger.error(f"Persistence failure during save_queue_join: {e}")
            raise PersistenceError('save_queue_join', str(e)) from e

    async def save_queue_leave(self, title: GameTitle, player_id: int) -> bool:
        """Persist a leave. Returns False when the player was not queued"""
        async with self._guarded('save_queue_leave') as session:
            result = await session.execute(
                delete(QueueEntryRecord)
                .where(QueueEntryRecord.title == title)
                .where(QueueEntryRecord.player_id == player_id)
            )
            return result.rowcount > 0

    async def save_queue_clear(self, title: GameTitle) -> int:
        async with self._guarded('save_queue_clear') as session:
            result = await session.execute(
                delete(QueueEntryRecord).where(QueueEntryRecord.title == title)
            )
            return result.rowcount

    # Match operations
    async def save_match(self, match: Match):
        """Insert or update a match header; the roster is written once at formation"""
        async with self._guarded('save_match') as session:
            result = await session.execute(
                select(MatchRecord).where(MatchRecord.match_id == match.match_id)
            )
            record = result.scalar_one_or_none()
            if record is None:
                record = MatchRecord(match_id=match.match_id, title=match.title)
                self._apply_header(record, match)
                session.add(record)
                await session.flush()
                for team in (match.team_a, match.team_b):
                    for position, member in enumerate(team.players):
                        session.add(MatchPlayerStatRecord(
                            match_id=record.id,
                            player_id=member.player_id,
                            team=team.team_id,
                            position=position,
                            rating_before=member.rating_before,
                        ))
            self._apply_header(record, match)

    @staticmethod
    def _apply_header(record: MatchRecord, match: Match):
        record.status = match.status
        record.host_player_id = match.host_id
        record.host_confirmed = match.host_confirmed
        record.host_selected_at = match.host_selected_at
        record.host_confirmed_at = match.host_confirmed_at
        record.started_at = match.started_at
        record.ended_at = match.ended_at
        record.winner = match.winner
        if match.score is not None:
            record.team_a_score, record.team_b_score = match.score

    async def save_match_result(
        self,
        match: Match,
        stats: Dict[int, MatchPlayerStat],
        changes: List[RatingChange],
        history: List[RankHistoryEntry]
    ):
        """
        Persist a completed match in one transaction: header, per-player stats,
        new per-title ratings, displayed ranks and rank history.
        """
        async with self._guarded('save_match_result') as session:
            result = await session.execute(
                select(MatchRecord)
                .options(selectinload(MatchRecord.stats))
                .where(MatchRecord.match_id == match.match_id)
            )
            record = result.scalar_one_or_none()
            if record is None:
                raise PersistenceError('save_match_result', f"match {match.match_id} is not stored")
            if record.status in (MatchStatus.COMPLETED, MatchStatus.CANCELLED):
                raise PersistenceError(
                    'save_match_result',
                    f"match {match.match_id} is already {record.status.value} in the store"
                )

            self._apply_header(record, match)
            rows = {row.player_id: row for row in record.stats}
            for player_id, stat in stats.items():
                row = rows[player_id]
                row.kills = stat.kills
                row.deaths = stat.deaths
                row.assists = stat.assists
                row.mvp = stat.mvp
                row.rating_after = stat.rating_after
                row.points_earned = stat.points_earned

            for change in changes:
                await self._upsert_title_rank(session, change.player_id, TitleRank(
                    title=change.title,
                    rating=change.rating_after,
                    tier=change.new_tier,
                    tier_value=change.new_tier_value,
                    peak_rating=change.peak_rating,
                ))
                await self._store_display(session, change.player_id, change.display_after)

            for entry in history:
                session.add(self._history_row(entry))

    @staticmethod
    def _to_match(record: MatchRecord) -> Match:
        rows = sorted(record.stats, key=lambda row: (row.team.value, row.position))
        teams = {TeamSide.A: [], TeamSide.B: []}
        stats = {}
        for row in rows:
            teams[row.team].append(MatchPlayer(player_id=row.player_id, rating_before=row.rating_before))
            if row.rating_after is not None:
                stats[row.player_id] = MatchPlayerStat(
                    player_id=row.player_id,
                    team=row.team,
                    kills=row.kills,
                    deaths=row.deaths,
                    assists=row.assists,
                    mvp=bool(row.mvp),
                    rating_before=row.rating_before,
                    rating_after=row.rating_after,
                    points_earned=row.points_earned,
                )
        score = None
        if record.team_a_score is not None and record.team_b_score is not None:
            score = (record.team_a_score, record.team_b_score)
        return Match(
            match_id=record.match_id,
            title=record.title,
            team_a=Team(TeamSide.A, tuple(teams[TeamSide.A])),
            team_b=Team(TeamSide.B, tuple(teams[TeamSide.B])),
            host_id=record.host_player_id,
            started_at=record.started_at,
            status=record.status,
            host_confirmed=bool(record.host_confirmed),
            host_selected_at=record.host_selected_at,
            host_confirmed_at=record.host_confirmed_at,
            ended_at=record.ended_at,
            winner=record.winner,
            score=score,
            stats=stats,
        )

    async def load_match(self, match_id: str) -> Optional[Match]:
        async with self._guarded('load_match', write=False) as session:
            result = await session.execute(
                select(MatchRecord)
                .options(selectinload(MatchRecord.stats))
                .where(MatchRecord.match_id == match_id)
            )
            record = result.scalar_one_or_none()
            return self._to_match(record) if record else None

    async def load_active_matches(self) -> List[Match]:
        """Pending and in-progress matches, oldest first"""
        async with self._guarded('load_active_matches', write=False) as session:
            result = await session.execute(
                select(MatchRecord)
                .options(selectinload(MatchRecord.stats))
                .where(MatchRecord.status.in_([MatchStatus.PENDING, MatchStatus.IN_PROGRESS]))
                .order_by(MatchRecord.started_at)
            )
            return [self._to_match(record) for record in result.scalars().all()]
