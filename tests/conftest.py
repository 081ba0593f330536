import random

import pytest

from matchbet.config import Settings
from matchbet.controller import GameController
from matchbet.generator import MatchSource
from tests import FixedRandom, StubGenerator


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def stub_generator():
    return StubGenerator()


@pytest.fixture
def make_controller(settings, stub_generator):
    def _make(draw=0.1, round_bonus="5.00", generator=None):
        source = MatchSource(settings, generator or stub_generator, rng=random.Random(7))
        return GameController(source, round_bonus=round_bonus, rng=FixedRandom(draw))

    return _make
