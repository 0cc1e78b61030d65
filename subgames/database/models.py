from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Float,
    ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship
from enum import Enum

from subgames.utils.cycle import utc_now

Base = declarative_base()

class AccountType(Enum):
    PLAYER = "player"
    CREATOR = "creator"

class User(Base):
    __tablename__ = 'users'

    id = Column(String(64), primary_key=True)  # Opaque caller identity (Discord user id)
    display_name = Column(String(100), nullable=False)
    photo_url = Column(String(500), default='')
    promotional_url = Column(String(500), default='')
    account_type = Column(String(20), nullable=False, default=AccountType.PLAYER.value)

    # Aggregate play stats
    total_games_played = Column(Integer, nullable=False, default=0)
    total_points_earned = Column(Integer, nullable=False, default=0)
    referral_clicks = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utc_now)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {'version_id_col': version}

    @property
    def is_creator(self) -> bool:
        return self.account_type == AccountType.CREATOR.value

    def __repr__(self):
        return f"<User(id='{self.id}', name='{self.display_name}', type='{self.account_type}')>"

class GameSession(Base):
    """Single-use, short-lived token for one anti-cheat gated play attempt."""
    __tablename__ = 'game_sessions'

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), ForeignKey('users.id'), nullable=False, index=True)
    game_type = Column(String(50), nullable=False)
    difficulty = Column(String(20), nullable=False)
    start_time = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used = Column(Boolean, nullable=False, default=False)
    expected_point_value = Column(Integer, nullable=False)

    __table_args__ = (
        Index('ix_game_sessions_used_expires', 'used', 'expires_at'),
    )

    def __repr__(self):
        return f"<GameSession(id='{self.id}', user='{self.user_id}', game='{self.game_type}', used={self.used})>"

class CyclePick(Base):
    """A player's creator choice for one cycle."""
    __tablename__ = 'cycle_picks'

    id = Column(Integer, primary_key=True)
    cycle_id = Column(String(20), nullable=False)
    user_id = Column(String(64), ForeignKey('users.id'), nullable=False)
    creator_id = Column(String(64), ForeignKey('users.id'), nullable=False)

    points_earned = Column(Integer, nullable=False, default=0)  # Only ever incremented within a cycle
    picked_at = Column(DateTime, nullable=False, default=utc_now)
    last_switched_at = Column(DateTime, nullable=False, default=utc_now)
    switch_count = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint('cycle_id', 'user_id', name='uq_cycle_pick_user'),
        Index('ix_cycle_picks_cycle_creator', 'cycle_id', 'creator_id'),
    )
    __mapper_args__ = {'version_id_col': version}

    def __repr__(self):
        return f"<CyclePick(cycle='{self.cycle_id}', user='{self.user_id}', creator='{self.creator_id}', points={self.points_earned})>"

class LeaderboardEntry(Base):
    """Per (cycle, creator) point aggregate, maintained incrementally."""
    __tablename__ = 'leaderboard_entries'

    id = Column(Integer, primary_key=True)
    cycle_id = Column(String(20), nullable=False)
    creator_id = Column(String(64), ForeignKey('users.id'), nullable=False)

    total_points = Column(Integer, nullable=False, default=0)
    supporter_count = Column(Integer, nullable=False, default=0)
    first_to_reach_current_score = Column(DateTime, nullable=False, default=utc_now)  # Tie-break: earlier wins
    last_updated = Column(DateTime, nullable=False, default=utc_now)
    version = Column(Integer, nullable=False)

    supporters = relationship(
        "LeaderboardSupporter",
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    __table_args__ = (
        UniqueConstraint('cycle_id', 'creator_id', name='uq_leaderboard_cycle_creator'),
    )
    __mapper_args__ = {'version_id_col': version}

    @property
    def supporter_ids(self) -> set:
        return {s.user_id for s in self.supporters}

    def __repr__(self):
        return f"<LeaderboardEntry(cycle='{self.cycle_id}', creator='{self.creator_id}', points={self.total_points})>"

class LeaderboardSupporter(Base):
    __tablename__ = 'leaderboard_supporters'

    id = Column(Integer, primary_key=True)
    entry_id = Column(Integer, ForeignKey('leaderboard_entries.id'), nullable=False)
    user_id = Column(String(64), ForeignKey('users.id'), nullable=False)

    entry = relationship("LeaderboardEntry", back_populates="supporters")

    __table_args__ = (
        UniqueConstraint('entry_id', 'user_id', name='uq_leaderboard_supporter'),
    )

class CycleWinner(Base):
    """Settled result of one cycle, keyed by the cycle id."""
    __tablename__ = 'cycle_winners'

    cycle_id = Column(String(20), primary_key=True)
    winner_id = Column(String(64), ForeignKey('users.id'), nullable=False)
    winner_name = Column(String(100), nullable=False)
    winner_photo_url = Column(String(500), default='')
    promotional_url = Column(String(500), default='')
    final_score = Column(Integer, nullable=False)
    supporter_count = Column(Integer, nullable=False)
    first_to_reach_score = Column(DateTime, nullable=False)
    announced_at = Column(DateTime, nullable=False, default=utc_now)
    cycle_start_time = Column(DateTime, nullable=False)
    cycle_end_time = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<CycleWinner(cycle='{self.cycle_id}', winner='{self.winner_id}', score={self.final_score})>"

class PityEligibility(Base):
    __tablename__ = 'pity_eligibility'

    id = Column(Integer, primary_key=True)
    cycle_id = Column(String(20), nullable=False)
    user_id = Column(String(64), ForeignKey('users.id'), nullable=False)
    eligible_for_pity_point = Column(Boolean, nullable=False, default=True)
    clicked_winner_link = Column(Boolean, nullable=False, default=False)  # Spent once true
    winner_id = Column(String(64), nullable=False)
    their_creator_id = Column(String(64), nullable=False)
    clicked_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint('cycle_id', 'user_id', name='uq_pity_cycle_user'),
    )

    @property
    def is_redeemable(self) -> bool:
        return bool(self.eligible_for_pity_point and not self.clicked_winner_link)

    def __repr__(self):
        return f"<PityEligibility(cycle='{self.cycle_id}', user='{self.user_id}', clicked={self.clicked_winner_link})>"

class StartingBonus(Base):
    """Audit of pity points funneled into a cycle; the leaderboard stays authoritative."""
    __tablename__ = 'starting_bonuses'

    id = Column(Integer, primary_key=True)
    cycle_id = Column(String(20), nullable=False)
    creator_id = Column(String(64), ForeignKey('users.id'), nullable=False)
    pity_points_received = Column(Integer, nullable=False, default=0)

    from_supporters = relationship(
        "StartingBonusSupporter",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    __table_args__ = (
        UniqueConstraint('cycle_id', 'creator_id', name='uq_starting_bonus_cycle_creator'),
    )

class StartingBonusSupporter(Base):
    __tablename__ = 'starting_bonus_supporters'

    id = Column(Integer, primary_key=True)
    bonus_id = Column(Integer, ForeignKey('starting_bonuses.id'), nullable=False)
    user_id = Column(String(64), ForeignKey('users.id'), nullable=False)

    __table_args__ = (
        UniqueConstraint('bonus_id', 'user_id', name='uq_starting_bonus_supporter'),
    )

class GameResult(Base):
    """Append-only audit record of a validated play; never updated."""
    __tablename__ = 'game_results'

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), ForeignKey('users.id'), nullable=False, index=True)
    session_id = Column(String(36), nullable=False, unique=True)
    cycle_id = Column(String(20), nullable=False)
    game_type = Column(String(50), nullable=False)
    points_awarded = Column(Integer, nullable=False)
    elapsed_seconds = Column(Float, nullable=False)  # Server measured
    client_time_taken = Column(Float, nullable=True)  # Client reported, audit only
    tipped_to_creator = Column(String(64), nullable=False)
    validated = Column(Boolean, nullable=False, default=True)
    completed_at = Column(DateTime, nullable=False, default=utc_now)

class ReferralClick(Base):
    __tablename__ = 'referral_clicks'

    id = Column(Integer, primary_key=True)
    creator_id = Column(String(64), ForeignKey('users.id'), nullable=False, index=True)
    clicked_by = Column(String(64), nullable=False, default='anonymous')
    clicked_at = Column(DateTime, nullable=False, default=utc_now)
