"""
Result data models for the scoring core.

Immutable data transfer objects returned by the services and consumed by the
Discord cogs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass(frozen=True)
class SubmitResultOutcome:
    """Points committed for one validated game session."""
    success: bool
    points_awarded: int
    creator_id: str
    cycle_id: str
    elapsed_seconds: float


@dataclass(frozen=True)
class PickOutcome:
    """Result of picking or switching a creator for the current cycle."""
    cycle_id: str
    creator_id: str
    previous_creator_id: Optional[str]
    points_earned: int
    switch_count: int

    @property
    def switched(self) -> bool:
        return self.previous_creator_id is not None and self.previous_creator_id != self.creator_id


@dataclass(frozen=True)
class CycleWinnerAnnounced:
    """Published once per newly written winner record."""
    cycle_id: str
    winner_id: str


@dataclass(frozen=True)
class WinnerSummary:
    cycle_id: str
    winner_id: str
    winner_name: str
    winner_photo_url: str
    promotional_url: str
    final_score: int
    supporter_count: int
    first_to_reach_score: datetime
    announced_at: datetime
    cycle_start_time: datetime
    cycle_end_time: datetime


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of settling one cycle."""
    cycle_id: str
    winner: Optional[WinnerSummary] = None
    created: bool = False  # False when the cycle was already settled

    @property
    def no_entries(self) -> bool:
        return self.winner is None


@dataclass(frozen=True)
class PityIssueResult:
    cycle_id: str
    winner_id: Optional[str]
    eligible_count: int


@dataclass(frozen=True)
class PityRedemption:
    """Result of redeeming a pity point; non-applicable redemptions are not errors."""
    pity_point_applied: bool
    points_awarded: int = 0
    to_creator: Optional[str] = None
    cycle_id: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class PityStatus:
    cycle_id: str
    has_pity_point: bool
    winner_id: Optional[str] = None


@dataclass(frozen=True)
class LeaderboardRow:
    rank: int
    creator_id: str
    display_name: str
    total_points: int
    supporter_count: int
    first_to_reach_current_score: datetime


@dataclass(frozen=True)
class CycleLeaderboard:
    cycle_id: str
    rows: List[LeaderboardRow] = field(default_factory=list)

    @property
    def total_points(self) -> int:
        return sum(row.total_points for row in self.rows)


@dataclass(frozen=True)
class RecentResult:
    game_type: str
    points_awarded: int
    elapsed_seconds: float
    tipped_to_creator: str
    completed_at: datetime


@dataclass(frozen=True)
class UserStats:
    user_id: str
    total_games_played: int
    total_points_earned: int
    cycle_id: str
    current_creator_id: Optional[str]
    cycle_points: int
    recent_results: List[RecentResult] = field(default_factory=list)
