from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import BetChoice, Match, Player, SettlementResult
from .money import from_cents

Phase = Literal["SETUP", "BETTING", "RESOLVING", "SETTLED"]


# =========================
# Generator responses (validated once at the boundary)
# =========================


class OddsSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    team1_win: float = Field(alias="team1Win", ge=0, le=1)
    draw: float = Field(ge=0, le=1)
    team2_win: float = Field(alias="team2Win", ge=0, le=1)

    @property
    def total(self) -> float:
        return self.team1_win + self.draw + self.team2_win


class GeneratedMatchSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    team1: str = Field(min_length=1)
    team2: str = Field(min_length=1)
    odds: OddsSchema


class ScoreSchema(BaseModel):
    team1: int = Field(ge=0)
    team2: int = Field(ge=0)


class NarrativeActionSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: str = Field(min_length=1)
    suspense: bool = False
    score: ScoreSchema


class NarrativeResponseSchema(BaseModel):
    actions: List[NarrativeActionSchema] = Field(min_length=1)


# =========================
# HTTP requests
# =========================


class PlayerCreate(BaseModel):
    name: str
    starting_balance: Optional[Decimal] = None


class RoundBonusUpdate(BaseModel):
    amount: Decimal


class BetUpdate(BaseModel):
    amount: Optional[Decimal] = None
    choice: Optional[BetChoice] = None
    all_in: bool = False


class BetAdjust(BaseModel):
    delta: Decimal


# =========================
# HTTP responses
# =========================


class PlayerItem(BaseModel):
    id: str
    name: str
    balance: Decimal
    wager: Decimal
    choice: BetChoice

    @classmethod
    def from_player(cls, player: Player) -> "PlayerItem":
        return cls(
            id=player.id,
            name=player.name,
            balance=from_cents(player.balance),
            wager=from_cents(player.wager),
            choice=player.choice,
        )


class OddsItem(BaseModel):
    outcome: BetChoice
    probability: float
    percent: int
    multiplier: Decimal


class NarrativeActionItem(BaseModel):
    text: str
    suspense: bool
    score: ScoreSchema


class MatchItem(BaseModel):
    team1: str
    team2: str
    odds: List[OddsItem]
    result: Optional[BetChoice] = None
    actions: List[NarrativeActionItem] = []

    @classmethod
    def from_match(cls, match: Match, odds_rows: List[dict]) -> "MatchItem":
        return cls(
            team1=match.team1,
            team2=match.team2,
            odds=[OddsItem(**row) for row in odds_rows],
            result=match.result,
            actions=[
                NarrativeActionItem(
                    text=a.text,
                    suspense=a.suspense,
                    score=ScoreSchema(team1=a.score.team1, team2=a.score.team2),
                )
                for a in match.actions
            ],
        )


class SettlementItem(BaseModel):
    player_id: str
    player_name: str
    wager: Decimal
    choice: BetChoice
    payout: Decimal
    round_bonus: Decimal
    new_balance: Decimal
    status: Literal["won", "lost", "skipped"]

    @classmethod
    def from_result(cls, result: SettlementResult) -> "SettlementItem":
        return cls(
            player_id=result.player_id,
            player_name=result.player_name,
            wager=from_cents(result.wager),
            choice=result.choice,
            payout=from_cents(result.payout),
            round_bonus=from_cents(result.round_bonus),
            new_balance=from_cents(result.new_balance),
            status=result.status,
        )


class JournalItem(BaseModel):
    round_number: int
    action: str
    detail: dict


class StateResponse(BaseModel):
    phase: Phase
    round_number: int
    round_bonus: Decimal
    players: List[PlayerItem]
    match: Optional[MatchItem] = None
    next_match_ready: bool = False
    results: List[SettlementItem] = []
    journal: List[JournalItem] = []


class ErrorResponse(BaseModel):
    detail: str
    errors: List[str] = []
