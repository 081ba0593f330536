"""Betting rules: payout math, outcome draw, bet validation and settlement.

Everything here is a pure function over explicit players/match arguments.
Amounts are integer cents (see ``money.py``).
"""

import logging
import random
from dataclasses import replace
from decimal import Decimal
from typing import Dict, Iterable, List, Sequence, Tuple

from .errors import InvariantViolation
from .models import OUTCOMES, BetChoice, BetValidation, Match, Odds, Player, SettlementResult
from .money import CENT, round_cents, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal(0)


# =========================
# Odds & payouts
# =========================


def multiplier_from_probability(probability) -> Decimal:
    """Fair-odds multiplier ``1/p``; an unbacked (zero probability) outcome pays nothing."""
    p = to_decimal(probability)
    if p == ZERO:
        return ZERO
    return Decimal(1) / p


def calculate_payout(wager: int, choice: BetChoice, result: BetChoice, odds: Odds) -> int:
    """Net balance change in cents for one bet.

    The stake is not handed back separately: a winner moves by
    ``wager * multiplier - wager`` and a loser by ``-wager``.
    """
    if choice == BetChoice.SKIP or wager == 0:
        return 0
    if choice != result:
        return -wager
    multiplier = multiplier_from_probability(odds.for_outcome(result))
    return round_cents(Decimal(wager) * multiplier) - wager


def potential_return(wager: int, choice: BetChoice, odds: Odds) -> int:
    """Gross cents a wager would return if ``choice`` wins."""
    if choice == BetChoice.SKIP or wager <= 0:
        return 0
    return round_cents(Decimal(wager) * multiplier_from_probability(odds.for_outcome(choice)))


def odds_table(odds: Odds) -> List[Dict]:
    rows = []
    for outcome in OUTCOMES:
        probability = odds.for_outcome(outcome)
        rows.append(
            {
                "outcome": outcome.value,
                "probability": probability,
                "percent": round(probability * 100),
                "multiplier": multiplier_from_probability(probability).quantize(CENT),
            }
        )
    return rows


# =========================
# Outcome draw
# =========================


def draw_result(odds: Odds, rng=None) -> BetChoice:
    """Weighted three-way draw using cumulative bands.

    ``r`` is scaled by the odds total, which is the same as renormalizing the
    triple, so overround (sum > 1) or underround triples keep their
    proportions. Banding the raw values against an unscaled ``r`` would
    instead shrink the TEAM2 band whenever the sum exceeds 1. The last band
    is an unconditional else.
    """
    p1, p_draw, p2 = odds.as_tuple()
    if min(p1, p_draw, p2) < 0:
        raise InvariantViolation(f"Negative probability in odds: {odds}")
    total = p1 + p_draw + p2
    if total <= 0:
        raise InvariantViolation(f"Odds must have a positive sum: {odds}")

    rng = rng or random
    r = rng.random() * total
    if r < p1:
        return BetChoice.TEAM1
    if r < p1 + p_draw:
        return BetChoice.DRAW
    return BetChoice.TEAM2


# =========================
# Validation
# =========================


def validate_bets(players: Iterable[Player]) -> BetValidation:
    errors: List[str] = []
    for player in players:
        if player.wager < 0:
            errors.append(f"{player.name}: Bet cannot be negative")
        if player.wager > player.balance:
            errors.append(f"{player.name}: Insufficient balance")
        if player.wager > 0 and player.choice == BetChoice.SKIP:
            errors.append(f"{player.name}: Must select a bet choice")
    return BetValidation(valid=not errors, errors=tuple(errors))


# =========================
# Settlement
# =========================


def _check_locked(player: Player) -> None:
    if player.wager < 0:
        raise InvariantViolation(f"{player.id}: negative wager {player.wager}")
    if player.wager > player.balance:
        raise InvariantViolation(
            f"{player.id}: wager {player.wager} exceeds balance {player.balance}"
        )
    if player.wager > 0 and player.choice == BetChoice.SKIP:
        raise InvariantViolation(f"{player.id}: wager {player.wager} without a choice")


def settle_round(players: Sequence[Player], match: Match, round_bonus: int) -> List[SettlementResult]:
    """Compute every player's payout and resulting balance for the drawn result.

    Nothing is mutated; feed the output to ``apply_settlement``.
    """
    if match.result is None:
        raise InvariantViolation("Cannot settle a match without a result")
    if round_bonus < 0:
        raise InvariantViolation(f"Round bonus cannot be negative: {round_bonus}")

    results = []
    for player in players:
        _check_locked(player)
        payout = calculate_payout(player.wager, player.choice, match.result, match.odds)
        results.append(
            SettlementResult(
                player_id=player.id,
                player_name=player.name,
                wager=player.wager,
                choice=player.choice,
                payout=payout,
                round_bonus=round_bonus,
                new_balance=player.balance + payout + round_bonus,
            )
        )
    logger.info(
        "Settled %s vs %s (%s): %d players, net payout %d cents",
        match.team1,
        match.team2,
        match.result.value,
        len(results),
        sum(r.payout for r in results),
    )
    return results


def apply_settlement(
    players: Sequence[Player], results: Sequence[SettlementResult]
) -> Tuple[Player, ...]:
    by_player = {}
    for result in results:
        if result.player_id in by_player:
            raise InvariantViolation(f"Duplicate settlement for {result.player_id}")
        by_player[result.player_id] = result
    if set(by_player) != {p.id for p in players}:
        raise InvariantViolation("Settlement results do not match the player set")
    return tuple(replace(p, balance=by_player[p.id].new_balance) for p in players)
