"""Match and narrative generation.

The external generator (an LLM behind the OpenAI or Google Gen AI SDK) is an
opaque collaborator that returns JSON text. ``MatchSource`` is the only thing the
game talks to: it makes one attempt, validates the reply with the pydantic
schemas in ``schemas.py`` and falls back to local synthesis on any failure.
"""

import json
import logging
import math
import random
import re
import time
from typing import List, Optional, Protocol, Tuple, Union

from google import genai
from google.genai import types
from openai import AsyncOpenAI
from pydantic import ValidationError

from .config import Settings
from .errors import GenerationFailure
from .models import BetChoice, Match, NarrativeAction, Odds, Score
from .schemas import GeneratedMatchSchema, NarrativeResponseSchema

logger = logging.getLogger(__name__)

MAX_GOALS = 7
GOALS_MEAN = 0.9
GOALS_STDDEV = 0.8
MIN_HIGHLIGHTS = 6
THRILLER_CHANCE = 0.55

LEAGUES = ["Premier League", "La Liga", "Serie A", "Bundesliga", "Ligue 1"]

FALLBACK_TEAMS = [
    ("Manchester United", "Liverpool"),
    ("Real Madrid", "Barcelona"),
    ("Bayern Munich", "Borussia Dortmund"),
    ("AC Milan", "Inter Milan"),
    ("Arsenal", "Chelsea"),
    ("PSG", "Lyon"),
    ("Ajax", "PSV"),
    ("Celtic", "Rangers"),
    ("The Thunderbolts", "The Lightning Strikers"),
    ("Dragon FC", "Phoenix United"),
]

BUILD_UP_TEMPLATES = [
    "🏃 {team} building up pressure",
    "💨 Quick attack by {team}",
    "⚡ {team} on the counter!",
    "🎯 Great chance for {team}!",
]

Payload = Union[str, dict]

JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class MatchGenerator(Protocol):
    source: str

    async def generate_match(self) -> Payload:
        ...

    async def generate_narrative(
        self, team1: str, team2: str, result: BetChoice, final_score: Score, highlight_count: int
    ) -> Payload:
        ...


# =========================
# Local synthesis
# =========================


def _goals(rng) -> int:
    goals = math.floor(rng.gauss(GOALS_MEAN, GOALS_STDDEV) + 0.5)
    return max(0, min(MAX_GOALS, goals))


def generate_scoreline(result: BetChoice, rng=None) -> Score:
    """Bell-curve scoreline consistent with ``result`` (1-0 is the most likely win)."""
    rng = rng or random
    if result == BetChoice.DRAW:
        goals = _goals(rng)
        return Score(goals, goals)
    # loser first, so narrow wins dominate
    loser = _goals(rng)
    winner = _goals(rng)
    if winner <= loser:
        winner = loser + 1
    winner = min(MAX_GOALS, winner)
    if loser >= winner:
        loser = winner - 1
    if result == BetChoice.TEAM1:
        return Score(winner, loser)
    return Score(loser, winner)


def fallback_match(rng=None) -> Match:
    rng = rng or random
    team1, team2 = rng.choice(FALLBACK_TEAMS)
    team1_win = round(0.2 + rng.random() * 0.4, 2)
    draw = round(0.15 + rng.random() * 0.25, 2)
    team2_win = max(0.0, round(1 - team1_win - draw, 2))
    return Match(team1=team1, team2=team2, odds=Odds(team1_win, draw, team2_win), source="fallback")


def fallback_narrative(
    team1: str, team2: str, final_score: Score, highlight_count: int = 0, rng=None
) -> Tuple[NarrativeAction, ...]:
    rng = rng or random
    total_goals = final_score.total_goals
    highlights = max(MIN_HIGHLIGHTS, highlight_count or total_goals * 2)

    actions: List[NarrativeAction] = [
        NarrativeAction(text=f"⚽ Kickoff! {team1} vs {team2} begins!")
    ]

    goals = ["team1"] * final_score.team1 + ["team2"] * final_score.team2
    rng.shuffle(goals)

    t1, t2 = 0, 0
    for index, scorer in enumerate(goals):
        name = team1 if scorer == "team1" else team2
        if len(actions) < highlights - len(goals) + index:
            actions.append(
                NarrativeAction(
                    text=rng.choice(BUILD_UP_TEMPLATES).format(team=name), score=Score(t1, t2)
                )
            )
        if scorer == "team1":
            t1 += 1
        else:
            t2 += 1
        actions.append(NarrativeAction(text=f"⚽ GOAL! {name} scores! {t1}-{t2}", score=Score(t1, t2)))

    actions.append(
        NarrativeAction(
            text=f"⏱️ Final whistle! {team1} {final_score.team1}-{final_score.team2} {team2}",
            score=final_score,
        )
    )
    return tuple(actions)


# =========================
# LLM providers
# =========================


MATCH_SYSTEM_PROMPT = "You are a football match generator that returns valid JSON only."
NARRATIVE_SYSTEM_PROMPT = "You are a football commentator that returns valid JSON only."

MATCH_PROMPT = """[Request ID: {request_id}]
Generate a unique football match for a betting game, preferably from {league}. Return ONLY valid JSON with this exact structure:
{{"team1": "Real team name", "team2": "Real team name", "odds": {{"team1Win": 0.45, "draw": 0.25, "team2Win": 0.30}}}}

Requirements:
- Use ONLY REAL football teams from major leagues and vary them across leagues and countries
- Consider the teams' actual relative strengths when setting odds
- Odds MUST be realistic betting probabilities with a small overround (sum typically 1.00-1.10)
- Return ONLY the JSON, no additional text"""

NARRATIVE_PROMPT = """Write {highlight_count} short live-commentary highlights for {team1} vs {team2}.
Final score MUST be: {team1} {score1}-{score2} {team2}.
Return ONLY valid JSON with this exact structure:
{{"actions": [{{"text": "Action 1", "suspense": false, "score": {{"team1": 0, "team2": 0}}}}]}}

Requirements:
- Start with kickoff and end with the final whistle
- Generate exactly {goals} GOAL actions to reach the final score
- Include the "score" field with the current score after each action; scores only change on goals
- The LAST action's score MUST be exactly {score1}-{score2}
- Mark {suspense_hint} of the most suspenseful moments (VAR checks, penalties, late chances) with "suspense": true"""


class PromptedGenerator:
    """Builds the match and narrative prompts; subclasses send them to a provider."""

    source = "llm"

    def __init__(self, settings: Settings, client=None, rng=None):
        self.settings = settings
        self.rng = rng or random.Random()
        self.client = client if client is not None else self._make_client()

    def _make_client(self):
        raise NotImplementedError

    async def _complete(self, system: str, prompt: str) -> str:
        raise NotImplementedError

    async def generate_match(self) -> Payload:
        prompt = MATCH_PROMPT.format(
            request_id=f"{int(time.time() * 1000)}-{self.rng.random()}",
            league=self.rng.choice(LEAGUES),
        )
        return await self._complete(MATCH_SYSTEM_PROMPT, prompt)

    async def generate_narrative(self, team1, team2, result, final_score, highlight_count) -> Payload:
        thriller = self.rng.random() < THRILLER_CHANCE
        prompt = NARRATIVE_PROMPT.format(
            highlight_count=max(MIN_HIGHLIGHTS, highlight_count),
            team1=team1,
            team2=team2,
            score1=final_score.team1,
            score2=final_score.team2,
            goals=final_score.total_goals,
            suspense_hint="3-5" if thriller else "2-4",
        )
        return await self._complete(NARRATIVE_SYSTEM_PROMPT, prompt)


class OpenAIMatchGenerator(PromptedGenerator):
    source = "openai"

    def _make_client(self):
        return AsyncOpenAI(api_key=self.settings.openai_api_key)

    async def _complete(self, system: str, prompt: str) -> str:
        completion = await self.client.chat.completions.create(
            model=self.settings.openai_model,
            temperature=self.settings.temperature,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        )
        text = completion.choices[0].message.content
        if not text:
            raise GenerationFailure("Empty completion")
        logger.debug("Raw completion: %s", text)
        return text


class GeminiMatchGenerator(PromptedGenerator):
    source = "gemini"

    def _make_client(self):
        return genai.Client(api_key=self.settings.gemini_api_key)

    async def _complete(self, system: str, prompt: str) -> str:
        response = await self.client.aio.models.generate_content(
            model=self.settings.gemini_model,
            contents=prompt,
            config=types.GenerateContentConfig(
                system_instruction=system,
                temperature=self.settings.gemini_temperature,
                response_mime_type="application/json",
            ),
        )
        text = response.text or ""
        logger.debug("Raw Gemini output: %s", text)
        # Gemini sometimes wraps the object in prose or code fences
        found = JSON_OBJECT.search(text)
        if found is None:
            raise GenerationFailure("No JSON object in Gemini reply")
        return found.group(0)


# =========================
# Boundary
# =========================


def _validate(schema, payload: Payload):
    try:
        if isinstance(payload, (str, bytes)):
            return schema.model_validate_json(payload)
        return schema.model_validate(payload)
    except (ValidationError, json.JSONDecodeError) as exc:
        raise GenerationFailure(f"Malformed generator output: {exc}") from exc


def parse_match(payload: Payload, settings: Settings, source: str = "openai") -> Match:
    data = _validate(GeneratedMatchSchema, payload)
    team1, team2 = data.team1.strip(), data.team2.strip()
    if not team1 or not team2:
        raise GenerationFailure("Team name is empty")
    total = data.odds.total
    if total < settings.odds_sum_min or total > settings.odds_sum_max:
        raise GenerationFailure(f"Odds sum out of realistic range: {total:.3f}")
    odds = Odds(data.odds.team1_win, data.odds.draw, data.odds.team2_win)
    return Match(team1=team1, team2=team2, odds=odds, source=source)


def parse_narrative(payload: Payload, result: BetChoice) -> Tuple[NarrativeAction, ...]:
    data = _validate(NarrativeResponseSchema, payload)
    actions = tuple(
        NarrativeAction(
            text=a.text,
            suspense=a.suspense,
            score=Score(a.score.team1, a.score.team2),
        )
        for a in data.actions
    )
    if actions[-1].score.outcome != result:
        raise GenerationFailure("Final score doesn't match result")
    return actions


class MatchSource:
    """One attempt at the configured generator, then deterministic fallback."""

    def __init__(self, settings: Settings, generator: Optional[MatchGenerator] = None, rng=None):
        self.settings = settings
        self.generator = generator
        self.rng = rng or random.Random()

    @classmethod
    def from_settings(cls, settings: Settings, rng=None) -> "MatchSource":
        """OpenAI when its key is set, otherwise Gemini, otherwise the local fallback."""
        generator = None
        provider = settings.ai_provider
        if provider == "openai":
            generator = OpenAIMatchGenerator(settings, rng=rng)
            logger.info("Using OpenAI (%s) for match generation", settings.openai_model)
        elif provider == "gemini":
            generator = GeminiMatchGenerator(settings, rng=rng)
            logger.info("Using Gemini (%s) for match generation", settings.gemini_model)
        else:
            logger.warning("No AI provider configured, matches will use the local fallback")
        return cls(settings, generator, rng)

    async def fetch_match(self) -> Match:
        if self.generator is None:
            return fallback_match(self.rng)
        try:
            payload = await self.generator.generate_match()
            match = parse_match(payload, self.settings, source=self.generator.source)
        except Exception as exc:
            logger.warning("Match generation failed, using fallback: %s", exc)
            return fallback_match(self.rng)
        logger.info("Generated match: %s vs %s %s", match.team1, match.team2, match.odds.as_tuple())
        return match

    async def fetch_narrative(self, match: Match, result: BetChoice) -> Tuple[NarrativeAction, ...]:
        final_score = generate_scoreline(result, self.rng)
        highlight_count = final_score.total_goals * 2
        logger.info(
            "Scoreline %d-%d (%d highlights)", final_score.team1, final_score.team2, highlight_count
        )
        if self.generator is None:
            return fallback_narrative(match.team1, match.team2, final_score, highlight_count, self.rng)
        try:
            payload = await self.generator.generate_narrative(
                match.team1, match.team2, result, final_score, highlight_count
            )
            return parse_narrative(payload, result)
        except Exception as exc:
            logger.warning("Narrative generation failed, using fallback: %s", exc)
            return fallback_narrative(match.team1, match.team2, final_score, highlight_count, self.rng)
