"""Shared test doubles for the matchbet suite."""

ARSENAL_CHELSEA = {
    "team1": "Arsenal",
    "team2": "Chelsea",
    "odds": {"team1Win": 0.40, "draw": 0.30, "team2Win": 0.30},
}


class FixedRandom:
    """Stands in for ``random.Random`` where only ``random()`` is used."""

    def __init__(self, *values):
        self.values = list(values)

    def random(self):
        if len(self.values) > 1:
            return self.values.pop(0)
        return self.values[0]


def narrative_for(final_score):
    return {
        "actions": [
            {"text": "Kickoff", "suspense": False, "score": {"team1": 0, "team2": 0}},
            {"text": "VAR check...", "suspense": True, "score": {"team1": 0, "team2": 0}},
            {
                "text": "Full time",
                "suspense": False,
                "score": {"team1": final_score.team1, "team2": final_score.team2},
            },
        ]
    }


class StubGenerator:
    source = "stub"

    def __init__(self, matches=None, narratives=None):
        self.matches = list(matches or [])
        self.narratives = list(narratives or [])
        self.match_calls = 0
        self.narrative_calls = 0

    async def generate_match(self):
        self.match_calls += 1
        item = self.matches.pop(0) if self.matches else ARSENAL_CHELSEA
        if isinstance(item, Exception):
            raise item
        return item

    async def generate_narrative(self, team1, team2, result, final_score, highlight_count):
        self.narrative_calls += 1
        if self.narratives:
            item = self.narratives.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return narrative_for(final_score)
