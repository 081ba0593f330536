import logging
import uuid
from dataclasses import replace
from typing import Callable, Iterable, Iterator, Tuple

from .errors import InvalidInput, PlayerNotFound
from .models import BetChoice, Player
from .money import clamp_cents, from_cents, parse_amount, to_cents

logger = logging.getLogger(__name__)


def new_player_id() -> str:
    return f"player_{uuid.uuid4().hex}"


def create_player(name: str, starting_balance) -> Player:
    """Build a fresh player; rejects blank names and negative balances."""
    clean_name = (name or "").strip()
    if not clean_name:
        raise InvalidInput("Player name cannot be empty")
    try:
        balance = to_cents(starting_balance)
    except ValueError as exc:
        raise InvalidInput(f"Invalid starting balance: {starting_balance!r}") from exc
    if balance < 0:
        raise InvalidInput("Starting balance cannot be negative")
    return Player(id=new_player_id(), name=clean_name, balance=balance)


def set_wager(player: Player, amount) -> Player:
    """Round ``amount`` to the nearest cent and clamp it to ``[0, balance]``.

    Unparsable input counts as zero; infinities clamp like any other number.
    """
    try:
        value = parse_amount(amount)
    except ValueError:
        return replace(player, wager=0)
    return replace(player, wager=clamp_cents(value, 0, player.balance))


def adjust_wager(player: Player, delta) -> Player:
    try:
        value = parse_amount(delta)
    except ValueError:
        return player
    target = from_cents(player.wager) + value
    return replace(player, wager=clamp_cents(target, 0, player.balance))


def all_in(player: Player) -> Player:
    return replace(player, wager=player.balance)


def set_choice(player: Player, choice) -> Player:
    try:
        parsed = BetChoice.parse(choice)
    except ValueError as exc:
        raise InvalidInput(f"Unknown bet choice: {choice!r}") from exc
    return replace(player, choice=parsed)


def reset_for_new_round(player: Player) -> Player:
    return replace(player, wager=0, choice=BetChoice.SKIP)


class Ledger:
    """Ordered player collection, replaced wholesale on every change."""

    def __init__(self, players: Iterable[Player] = ()):
        self._players: Tuple[Player, ...] = tuple(players)

    def __iter__(self) -> Iterator[Player]:
        return iter(self._players)

    def __len__(self) -> int:
        return len(self._players)

    @property
    def players(self) -> Tuple[Player, ...]:
        return self._players

    def get(self, player_id: str) -> Player:
        for player in self._players:
            if player.id == player_id:
                return player
        raise PlayerNotFound(f"Unknown player: {player_id}")

    def add(self, player: Player) -> Player:
        if any(p.id == player.id for p in self._players):
            raise InvalidInput(f"Duplicate player id: {player.id}")
        self._players = self._players + (player,)
        logger.info("Player added: %s (%s)", player.name, player.id)
        return player

    def remove(self, player_id: str) -> Player:
        player = self.get(player_id)
        self._players = tuple(p for p in self._players if p.id != player_id)
        logger.info("Player removed: %s (%s)", player.name, player.id)
        return player

    def update(self, player_id: str, fn: Callable[..., Player], *args) -> Player:
        updated = fn(self.get(player_id), *args)
        self._players = tuple(updated if p.id == player_id else p for p in self._players)
        return updated

    def replace_all(self, players: Iterable[Player]) -> None:
        self._players = tuple(players)
