from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class BetChoice(str, Enum):
    TEAM1 = "TEAM1"
    DRAW = "DRAW"
    TEAM2 = "TEAM2"
    SKIP = "SKIP"  # no bet

    @classmethod
    def parse(cls, value) -> "BetChoice":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().upper())


OUTCOMES: Tuple[BetChoice, ...] = (BetChoice.TEAM1, BetChoice.DRAW, BetChoice.TEAM2)


class GamePhase(str, Enum):
    SETUP = "SETUP"
    BETTING = "BETTING"
    RESOLVING = "RESOLVING"
    SETTLED = "SETTLED"


@dataclass(frozen=True)
class Player:
    id: str
    name: str
    balance: int  # cents
    wager: int = 0  # cents
    choice: BetChoice = BetChoice.SKIP


@dataclass(frozen=True)
class Odds:
    team1_win: float
    draw: float
    team2_win: float

    @property
    def total(self) -> float:
        return self.team1_win + self.draw + self.team2_win

    def for_outcome(self, outcome: BetChoice) -> float:
        if outcome == BetChoice.TEAM1:
            return self.team1_win
        if outcome == BetChoice.DRAW:
            return self.draw
        if outcome == BetChoice.TEAM2:
            return self.team2_win
        raise ValueError(f"{outcome!r} is not a match outcome")

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.team1_win, self.draw, self.team2_win)


@dataclass(frozen=True)
class Score:
    team1: int = 0
    team2: int = 0

    @property
    def outcome(self) -> BetChoice:
        if self.team1 > self.team2:
            return BetChoice.TEAM1
        if self.team2 > self.team1:
            return BetChoice.TEAM2
        return BetChoice.DRAW

    @property
    def total_goals(self) -> int:
        return self.team1 + self.team2


@dataclass(frozen=True)
class NarrativeAction:
    text: str
    suspense: bool = False
    score: Score = field(default_factory=Score)


@dataclass(frozen=True)
class Match:
    team1: str
    team2: str
    odds: Odds
    actions: Tuple[NarrativeAction, ...] = ()
    result: Optional[BetChoice] = None
    source: str = "fallback"  # "openai" | "fallback" | "stub"


@dataclass(frozen=True)
class SettlementResult:
    player_id: str
    player_name: str
    wager: int
    choice: BetChoice
    payout: int  # net, signed
    round_bonus: int
    new_balance: int

    @property
    def status(self) -> str:
        if self.choice == BetChoice.SKIP or self.payout == 0:
            return "skipped"
        return "won" if self.payout > 0 else "lost"


@dataclass(frozen=True)
class BetValidation:
    valid: bool
    errors: Tuple[str, ...] = ()
