import asyncio
import json
import random
from types import SimpleNamespace

import pytest

from matchbet.config import Settings
from matchbet.errors import GenerationFailure
from matchbet.generator import (
    FALLBACK_TEAMS,
    MAX_GOALS,
    GeminiMatchGenerator,
    MatchSource,
    OpenAIMatchGenerator,
    fallback_match,
    fallback_narrative,
    generate_scoreline,
    parse_match,
    parse_narrative,
)
from matchbet.models import BetChoice, Match, Odds, Score
from tests import ARSENAL_CHELSEA, StubGenerator

MATCH = Match(team1="Arsenal", team2="Chelsea", odds=Odds(0.4, 0.3, 0.3))


@pytest.mark.parametrize("result", [BetChoice.TEAM1, BetChoice.DRAW, BetChoice.TEAM2])
def test_scoreline_agrees_with_result(result):
    rng = random.Random(5)
    for _ in range(500):
        score = generate_scoreline(result, rng)
        assert score.outcome == result
        assert 0 <= score.team1 <= MAX_GOALS
        assert 0 <= score.team2 <= MAX_GOALS


def test_fallback_match_odds_are_in_range():
    rng = random.Random(3)
    for _ in range(200):
        match = fallback_match(rng)
        assert (match.team1, match.team2) in FALLBACK_TEAMS
        assert 0.2 <= match.odds.team1_win <= 0.6
        assert 0.15 <= match.odds.draw <= 0.4
        assert match.odds.team2_win >= 0
        assert 0.95 <= match.odds.total <= 1.2
        assert match.source == "fallback"


def test_fallback_narrative_tracks_the_score():
    final = Score(3, 1)
    actions = fallback_narrative("Ajax", "PSV", final, 8, random.Random(1))
    assert actions[0].text.startswith("⚽ Kickoff!")
    assert actions[-1].score == final
    assert "Final whistle" in actions[-1].text
    goals = [a for a in actions if "GOAL!" in a.text]
    assert len(goals) == 4
    totals = [a.score.total_goals for a in actions]
    assert totals == sorted(totals)


def test_fallback_narrative_goalless_draw():
    actions = fallback_narrative("Ajax", "PSV", Score(0, 0), 0, random.Random(1))
    assert len(actions) == 2
    assert actions[-1].score == Score(0, 0)


def test_parse_match_accepts_valid_payload(settings):
    match = parse_match(json.dumps(ARSENAL_CHELSEA), settings)
    assert (match.team1, match.team2) == ("Arsenal", "Chelsea")
    assert match.odds == Odds(0.40, 0.30, 0.30)


@pytest.mark.parametrize(
    "payload",
    [
        "not json at all",
        {"team1": "A", "team2": "B"},
        {"team1": "", "team2": "B", "odds": {"team1Win": 0.4, "draw": 0.3, "team2Win": 0.3}},
        {"team1": "  ", "team2": "B", "odds": {"team1Win": 0.4, "draw": 0.3, "team2Win": 0.3}},
        {"team1": "A", "team2": "B", "odds": {"team1Win": 0.8, "draw": 0.3, "team2Win": 0.3}},
        {"team1": "A", "team2": "B", "odds": {"team1Win": 0.3, "draw": 0.3, "team2Win": 0.3}},
        {"team1": "A", "team2": "B", "odds": {"team1Win": 1.5, "draw": -0.3, "team2Win": 0.0}},
    ],
)
def test_parse_match_rejects_bad_payloads(settings, payload):
    with pytest.raises(GenerationFailure):
        parse_match(payload, settings)


def test_odds_range_is_configurable():
    relaxed = Settings(odds_sum_min=0.5, odds_sum_max=1.5)
    payload = {"team1": "A", "team2": "B", "odds": {"team1Win": 0.8, "draw": 0.3, "team2Win": 0.3}}
    assert parse_match(payload, relaxed).odds.total == pytest.approx(1.4)


def test_parse_narrative_requires_matching_final_score():
    payload = {"actions": [{"text": "FT", "score": {"team1": 2, "team2": 1}}]}
    assert parse_narrative(payload, BetChoice.TEAM1)[-1].score == Score(2, 1)
    with pytest.raises(GenerationFailure):
        parse_narrative(payload, BetChoice.DRAW)


def test_parse_narrative_rejects_loose_entries():
    with pytest.raises(GenerationFailure):
        parse_narrative({"actions": ["Kickoff!", "Goal!"]}, BetChoice.DRAW)
    with pytest.raises(GenerationFailure):
        parse_narrative({"actions": []}, BetChoice.DRAW)


def test_source_without_generator_uses_fallback(settings):
    source = MatchSource(settings, None, rng=random.Random(2))
    match = asyncio.run(source.fetch_match())
    assert match.source == "fallback"
    actions = asyncio.run(source.fetch_narrative(match, BetChoice.TEAM2))
    assert actions[-1].score.outcome == BetChoice.TEAM2


def test_source_uses_valid_generator_output(settings):
    generator = StubGenerator()
    source = MatchSource(settings, generator, rng=random.Random(2))
    match = asyncio.run(source.fetch_match())
    assert match.source == "stub"
    assert match.team1 == "Arsenal"
    actions = asyncio.run(source.fetch_narrative(match, BetChoice.DRAW))
    assert actions[1].suspense is True
    assert actions[-1].score.outcome == BetChoice.DRAW
    assert generator.match_calls == 1 and generator.narrative_calls == 1


@pytest.mark.parametrize(
    "bad",
    [
        RuntimeError("provider down"),
        "{broken",
        {"team1": "A", "team2": "B", "odds": {"team1Win": 0.9, "draw": 0.9, "team2Win": 0.9}},
    ],
)
def test_source_falls_back_once_on_bad_match(settings, bad):
    generator = StubGenerator(matches=[bad])
    source = MatchSource(settings, generator, rng=random.Random(2))
    match = asyncio.run(source.fetch_match())
    assert match.source == "fallback"
    assert generator.match_calls == 1


def test_source_falls_back_on_inconsistent_narrative(settings):
    wrong = {"actions": [{"text": "FT", "score": {"team1": 0, "team2": 3}}]}
    generator = StubGenerator(narratives=[wrong])
    source = MatchSource(settings, generator, rng=random.Random(2))
    actions = asyncio.run(source.fetch_narrative(MATCH, BetChoice.TEAM1))
    assert "Final whistle" in actions[-1].text
    assert actions[-1].score.outcome == BetChoice.TEAM1
    assert generator.narrative_calls == 1


class FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _fake_client(content):
    completions = FakeCompletions(content)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def test_openai_generator_requests_json(settings):
    client, completions = _fake_client(json.dumps(ARSENAL_CHELSEA))
    generator = OpenAIMatchGenerator(settings, client=client, rng=random.Random(4))
    source = MatchSource(settings, generator, rng=random.Random(4))

    match = asyncio.run(source.fetch_match())

    assert match.source == "openai"
    assert match.team2 == "Chelsea"
    [call] = completions.calls
    assert call["model"] == settings.openai_model
    assert call["response_format"] == {"type": "json_object"}
    assert call["messages"][0]["role"] == "system"


def test_openai_generator_narrative_prompt_carries_score(settings):
    client, completions = _fake_client("")
    generator = OpenAIMatchGenerator(settings, client=client, rng=random.Random(4))
    with pytest.raises(GenerationFailure):
        asyncio.run(generator.generate_narrative("A", "B", BetChoice.TEAM1, Score(2, 0), 4))
    prompt = completions.calls[0]["messages"][1]["content"]
    assert "A 2-0 B" in prompt
    assert "exactly 2 GOAL actions" in prompt


class FakeGeminiModels:
    def __init__(self, text):
        self.text = text
        self.calls = []

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(text=self.text)


def _fake_gemini(text):
    models = FakeGeminiModels(text)
    return SimpleNamespace(aio=SimpleNamespace(models=models)), models


def test_gemini_generator_extracts_fenced_json(settings):
    reply = "```json\n" + json.dumps(ARSENAL_CHELSEA) + "\n```"
    client, models = _fake_gemini(reply)
    generator = GeminiMatchGenerator(settings, client=client, rng=random.Random(4))
    source = MatchSource(settings, generator, rng=random.Random(4))

    match = asyncio.run(source.fetch_match())

    assert match.source == "gemini"
    assert (match.team1, match.team2) == ("Arsenal", "Chelsea")
    [call] = models.calls
    assert call["model"] == settings.gemini_model
    assert call["config"].response_mime_type == "application/json"
    assert call["config"].temperature == settings.gemini_temperature
    assert "Return ONLY valid JSON" in call["contents"]


def test_gemini_reply_without_json_falls_back(settings):
    client, models = _fake_gemini("Sorry, I can't help with that.")
    generator = GeminiMatchGenerator(settings, client=client, rng=random.Random(4))
    with pytest.raises(GenerationFailure):
        asyncio.run(generator.generate_match())

    source = MatchSource(settings, generator, rng=random.Random(4))
    assert asyncio.run(source.fetch_match()).source == "fallback"
    assert len(models.calls) == 2
