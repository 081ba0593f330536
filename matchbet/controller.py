"""Round orchestration and the game phase state machine.

``GameController`` owns the only mutable game state. Every operation checks
the current phase first, so settlement can happen at most once per drawn
result.
"""

import asyncio
import logging
import random
from collections import deque
from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple

from . import engine, ledger
from .errors import InvalidInput, InvariantViolation, PhaseError, ValidationFailure
from .generator import MatchSource
from .models import BetChoice, GamePhase, Match, Player, SettlementResult
from .money import format_cents, to_cents

logger = logging.getLogger(__name__)

JOURNAL_SIZE = 200

TRANSITIONS = {
    GamePhase.SETUP: {GamePhase.BETTING},
    GamePhase.BETTING: {GamePhase.RESOLVING},
    GamePhase.RESOLVING: {GamePhase.SETTLED},
    GamePhase.SETTLED: {GamePhase.BETTING},
}


@dataclass(frozen=True)
class GameSnapshot:
    phase: GamePhase
    round_number: int
    round_bonus: int
    players: Tuple[Player, ...]
    current_match: Optional[Match]
    next_match_ready: bool
    results: Tuple[SettlementResult, ...]
    journal: Tuple[Dict, ...]


class GameController:
    def __init__(
        self,
        match_source: MatchSource,
        round_bonus="5.00",
        starting_balance="100.00",
        rng=None,
    ):
        self.match_source = match_source
        self.rng = rng or random.Random()
        self.phase = GamePhase.SETUP
        self.ledger = ledger.Ledger()
        self.round_number = 0
        self.round_bonus = 0
        self.set_round_bonus(round_bonus)
        self.default_starting_balance = starting_balance
        self.current_match: Optional[Match] = None
        self.next_match: Optional[Match] = None
        self.last_results: Tuple[SettlementResult, ...] = ()
        self.journal = deque(maxlen=JOURNAL_SIZE)
        self._lock = asyncio.Lock()

    # ----- helpers -----

    def _require(self, *phases: GamePhase) -> None:
        if self.phase not in phases:
            allowed = ", ".join(p.value for p in phases)
            raise PhaseError(f"Not allowed in phase {self.phase.value} (expected {allowed})")

    def _transition(self, target: GamePhase) -> None:
        if target not in TRANSITIONS[self.phase]:
            raise PhaseError(f"Illegal transition {self.phase.value} -> {target.value}")
        logger.info("Round %d: %s -> %s", self.round_number, self.phase.value, target.value)
        self.phase = target

    def _record(self, action: str, detail: dict) -> None:
        self.journal.append({"round_number": self.round_number, "action": action, "detail": detail})

    async def _take_match(self) -> Match:
        if self.next_match is not None:
            match, self.next_match = self.next_match, None
            logger.info("Using pre-generated match %s vs %s", match.team1, match.team2)
            return match
        return await self.match_source.fetch_match()

    # ----- setup -----

    def add_player(self, name: str, starting_balance=None) -> Player:
        self._require(GamePhase.SETUP)
        if starting_balance is None:
            starting_balance = self.default_starting_balance
        player = self.ledger.add(ledger.create_player(name, starting_balance))
        self._record("add_player", {"player_id": player.id, "name": player.name, "balance": format_cents(player.balance)})
        return player

    def remove_player(self, player_id: str) -> Player:
        self._require(GamePhase.SETUP)
        player = self.ledger.remove(player_id)
        self._record("remove_player", {"player_id": player.id, "name": player.name})
        return player

    def set_round_bonus(self, amount) -> int:
        if self.phase != GamePhase.SETUP:
            raise PhaseError("Round bonus can only be changed during setup")
        try:
            cents = to_cents(amount)
        except ValueError as exc:
            raise InvalidInput(f"Invalid round bonus: {amount!r}") from exc
        if cents < 0:
            raise InvalidInput("Round bonus cannot be negative")
        self.round_bonus = cents
        return cents

    # ----- betting -----

    def set_wager(self, player_id: str, amount) -> Player:
        self._require(GamePhase.BETTING)
        return self.ledger.update(player_id, ledger.set_wager, amount)

    def adjust_wager(self, player_id: str, delta) -> Player:
        self._require(GamePhase.BETTING)
        return self.ledger.update(player_id, ledger.adjust_wager, delta)

    def all_in(self, player_id: str) -> Player:
        self._require(GamePhase.BETTING)
        return self.ledger.update(player_id, ledger.all_in)

    def set_choice(self, player_id: str, choice) -> Player:
        self._require(GamePhase.BETTING)
        return self.ledger.update(player_id, ledger.set_choice, choice)

    # ----- transitions -----

    async def start_game(self) -> Match:
        async with self._lock:
            self._require(GamePhase.SETUP)
            if len(self.ledger) == 0:
                raise InvalidInput("At least one player is required to start")
            match = await self._take_match()
            self.current_match = match
            self.round_number += 1
            self._transition(GamePhase.BETTING)
            self._record(
                "start",
                {"team1": match.team1, "team2": match.team2, "round_bonus": format_cents(self.round_bonus)},
            )
            return match

    def lock_bets(self) -> BetChoice:
        """Validate all bets, then draw the result for the current match."""
        self._require(GamePhase.BETTING)
        if self.current_match is None:
            raise InvariantViolation("No current match to bet on")
        validation = engine.validate_bets(self.ledger)
        if not validation.valid:
            logger.info("Bets rejected: %s", validation.errors)
            raise ValidationFailure(list(validation.errors))

        result = engine.draw_result(self.current_match.odds, self.rng)
        self._transition(GamePhase.RESOLVING)
        self.current_match = replace(self.current_match, result=result)
        logger.info(
            "Match result: %s vs %s -> %s", self.current_match.team1, self.current_match.team2, result.value
        )
        self._record(
            "lock",
            {
                "result": result.value,
                "bets": [
                    {"player_id": p.id, "wager": format_cents(p.wager), "choice": p.choice.value}
                    for p in self.ledger
                ],
            },
        )
        return result

    async def resolve(self) -> Tuple[SettlementResult, ...]:
        """Attach the narrative, settle the round once and move to SETTLED."""
        async with self._lock:
            self._require(GamePhase.RESOLVING)
            match = self.current_match
            if match is None or match.result is None:
                raise InvariantViolation("Cannot resolve before the result is drawn")

            actions = await self.match_source.fetch_narrative(match, match.result)
            match = replace(match, actions=actions)

            results = engine.settle_round(self.ledger.players, match, self.round_bonus)
            self.ledger.replace_all(engine.apply_settlement(self.ledger.players, results))
            self.current_match = match
            self.last_results = tuple(results)
            self._transition(GamePhase.SETTLED)
            self._record(
                "settle",
                {
                    "result": match.result.value,
                    "payouts": {r.player_id: format_cents(r.payout) for r in results},
                    "round_bonus": format_cents(self.round_bonus),
                },
            )
            return self.last_results

    async def next_round(self) -> Match:
        async with self._lock:
            self._require(GamePhase.SETTLED)
            match = await self._take_match()
            self.ledger.replace_all(ledger.reset_for_new_round(p) for p in self.ledger)
            self.current_match = match
            self.last_results = ()
            self.round_number += 1
            self._transition(GamePhase.BETTING)
            self._record("next_round", {"team1": match.team1, "team2": match.team2})
            return match

    async def prefetch_next_match(self) -> Match:
        """Fill the next-match slot; players and results are never touched.

        Holds the transition lock, so a ``next_round`` that arrives mid-fetch
        waits and then takes this match instead of fetching its own.
        """
        async with self._lock:
            if self.next_match is None:
                self.next_match = await self.match_source.fetch_match()
                logger.info(
                    "Next match pre-generated: %s vs %s", self.next_match.team1, self.next_match.team2
                )
            return self.next_match

    # ----- read side -----

    def snapshot(self) -> GameSnapshot:
        return GameSnapshot(
            phase=self.phase,
            round_number=self.round_number,
            round_bonus=self.round_bonus,
            players=self.ledger.players,
            current_match=self.current_match,
            next_match_ready=self.next_match is not None,
            results=self.last_results,
            journal=tuple(self.journal),
        )
