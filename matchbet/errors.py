from typing import List


class GameError(Exception):
    """Base class for matchbet errors."""


class InvalidInput(GameError):
    """Raised for malformed construction arguments (empty name, negative balance)."""


class PlayerNotFound(InvalidInput):
    """Raised when a player id is not part of the ledger."""


class ValidationFailure(GameError):
    """Raised when one or more bets break the lock-in rules.

    ``errors`` holds one human readable message per complaint.
    """

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "bets are invalid")


class GenerationFailure(GameError):
    """Raised when the match/narrative generator errors or returns unusable data."""


class InvariantViolation(GameError):
    """Raised when core state breaks an invariant validation should have guaranteed."""


class PhaseError(GameError):
    """Raised when an operation is attempted in the wrong game phase."""
