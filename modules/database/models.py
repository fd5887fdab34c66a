"""
Database Module for Settlement - Records
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Plain records passed in and out of the persistence layer.

:copyright: (c) 2024-present Settlement contributors
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class SeatResult:
    """One occupied seat at the end of a game."""

    name: str
    score: int
    is_robot: bool = False


@dataclass
class GameResult:
    """
    Outcome of a finished game, as handed over by the game engine.

    ``seats`` holds one entry per seat (4 or 6 for the standard boards);
    ``None`` marks a vacant seat. ``winner`` is the winning seat number, if any.
    """

    name: str
    seats: List[Optional[SeatResult]]
    winner: Optional[int] = None
    start_time: datetime = field(default_factory=datetime.now)

    @property
    def max_players(self) -> int:
        return len(self.seats)

    def is_seat_vacant(self, seat: int) -> bool:
        return seat >= len(self.seats) or self.seats[seat] is None


@dataclass
class RobotParameters:
    """Tuning values for one robot player."""

    max_game_length: int
    max_eta: int
    eta_bonus_factor: float
    adversarial_factor: float
    leader_adversarial_factor: float
    dev_card_multiplier: float
    threat_multiplier: float
    strategy_type: int
    trade_flag: int
