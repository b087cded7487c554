from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean,
    ForeignKey, BigInteger, Enum as SQLEnum, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from enum import Enum

Base = declarative_base()

class GameTitle(Enum):
    """Supported game titles. Declaration order breaks exact combined-rank ties."""
    VALORANT = "valorant"
    MARVEL_RIVALS = "marvel_rivals"

class ResolutionMode(Enum):
    HIGHEST = "highest"
    PRIMARY = "primary"

class MatchStatus(Enum):
    """Status of a match from formation to result"""
    PENDING = "pending"           # Teams drawn, waiting on host
    IN_PROGRESS = "in-progress"   # Host confirmed or match started
    COMPLETED = "completed"       # Result reported and ratings applied
    CANCELLED = "cancelled"       # Cancelled before a result

class TeamSide(Enum):
    A = "A"
    B = "B"

class Player(Base):
    __tablename__ = 'players'
    
    id = Column(Integer, primary_key=True)
    discord_id = Column(BigInteger, unique=True, nullable=False, index=True)
    username = Column(String(100), nullable=False)
    
    # Combined-rank policy
    resolution_mode = Column(SQLEnum(ResolutionMode), default=ResolutionMode.HIGHEST, nullable=False)
    primary_title = Column(SQLEnum(GameTitle), default=GameTitle.VALORANT, nullable=False)
    
    # Displayed rank (cache of the combined-rank resolver)
    display_title = Column(SQLEnum(GameTitle), nullable=True)
    display_rank = Column(String(50), default="Unranked")
    display_rank_value = Column(Integer, default=0)
    display_rating = Column(Integer, default=0)
    
    # Metadata
    registered_at = Column(DateTime, default=func.now())
    
    title_ratings = relationship("PlayerTitleRating", back_populates="player", cascade="all, delete-orphan")
    
    def __repr__(self):
        return f"<Player(discord_id={self.discord_id}, username='{self.username}', rank='{self.display_rank}')>"

class PlayerTitleRating(Base):
    """Per-title rating. Tier and tier_value are caches of the rank tier table."""
    __tablename__ = 'player_title_ratings'
    
    id = Column(Integer, primary_key=True)
    player_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    title = Column(SQLEnum(GameTitle), nullable=False)
    
    rating = Column(Integer, nullable=False, default=0)
    tier = Column(String(50), nullable=False)
    tier_value = Column(Integer, nullable=False)
    peak_rating = Column(Integer, nullable=False, default=0)
    
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
    
    player = relationship("Player", back_populates="title_ratings")
    
    __table_args__ = (
        UniqueConstraint('player_id', 'title'),
        CheckConstraint('rating >= 0', name='ck_title_rating_non_negative'),
    )
    
    def __repr__(self):
        return f"<PlayerTitleRating(player_id={self.player_id}, title={self.title.value}, rating={self.rating})>"

class QueueEntryRecord(Base):
    __tablename__ = 'queue_entries'
    
    id = Column(Integer, primary_key=True)
    player_id = Column(Integer, ForeignKey('players.id'), nullable=False)
    title = Column(SQLEnum(GameTitle), nullable=False, index=True)
    joined_at = Column(DateTime, nullable=False)
    
    # A player appears at most once in a given title's queue
    __table_args__ = (UniqueConstraint('player_id', 'title'),)
    
    def __repr__(self):
        return f"<QueueEntryRecord(player_id={self.player_id}, title={self.title.value})>"

class MatchRecord(Base):
    __tablename__ = 'matches'
    
    id = Column(Integer, primary_key=True)
    match_id = Column(String(64), unique=True, nullable=False, index=True)
    title = Column(SQLEnum(GameTitle), nullable=False)
    status = Column(SQLEnum(MatchStatus), nullable=False, default=MatchStatus.PENDING)
    
    # Host handling
    host_player_id = Column(Integer, ForeignKey('players.id'), nullable=False)
    host_confirmed = Column(Boolean, default=False)
    host_selected_at = Column(DateTime, nullable=True)
    host_confirmed_at = Column(DateTime, nullable=True)
    
    # Timing
    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    
    # Result
    winner = Column(SQLEnum(TeamSide), nullable=True)
    team_a_score = Column(Integer, nullable=True)
    team_b_score = Column(Integer, nullable=True)
    
    created_at = Column(DateTime, default=func.now())
    
    stats = relationship("MatchPlayerStatRecord", back_populates="match", cascade="all, delete-orphan")
    
    def __repr__(self):
        return f"<MatchRecord(match_id='{self.match_id}', title={self.title.value}, status={self.status.value})>"

class MatchPlayerStatRecord(Base):
    """Roster row, created at formation with the rating snapshot and filled on report."""
    __tablename__ = 'match_player_stats'
    
    id = Column(Integer, primary_key=True)
    match_id = Column(Integer, ForeignKey('matches.id'), nullable=False, index=True)
    player_id = Column(Integer, ForeignKey('players.id'), nullable=False)
    team = Column(SQLEnum(TeamSide), nullable=False)
    position = Column(Integer, nullable=False, default=0)  # Order inside the team
    
    kills = Column(Integer, nullable=True)
    deaths = Column(Integer, nullable=True)
    assists = Column(Integer, nullable=True)
    mvp = Column(Boolean, default=False)
    
    rating_before = Column(Integer, nullable=False)
    rating_after = Column(Integer, nullable=True)
    points_earned = Column(Integer, nullable=True)
    
    match = relationship("MatchRecord", back_populates="stats")
    player = relationship("Player")
    
    __table_args__ = (UniqueConstraint('match_id', 'player_id'),)

class RankHistory(Base):
    """Append-only audit trail of rank changes"""
    __tablename__ = 'rank_history'
    
    id = Column(Integer, primary_key=True)
    player_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    title = Column(SQLEnum(GameTitle), nullable=True)
    
    old_rank = Column(String(50), nullable=False)
    new_rank = Column(String(50), nullable=False)
    old_rating = Column(Integer, nullable=False)
    new_rating = Column(Integer, nullable=False)
    
    reason = Column(String(50), nullable=False)  # 'match', 'placement', 'mode_change'
    match_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=func.now())
    
    def __repr__(self):
        return f"<RankHistory(player_id={self.player_id}, {self.old_rank} -> {self.new_rank})>"
