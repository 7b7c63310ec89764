"""Shared fixtures for all test modules."""

import pytest

import news_lag_arb.config as config_module
from news_lag_arb.config import Config
from news_lag_arb.errors import MalformedResponseError
from news_lag_arb.models import MarketQuote


class FakeLLM:
    """Deterministic stand-in for LLMClient.

    `answers` is consumed in order; an Exception instance is raised instead
    of returned. Prompts are recorded for assertions.
    """

    def __init__(self, *answers, live_search=True):
        self.answers = list(answers)
        self.prompts = []
        self.supports_live_search = live_search

    async def complete_json(self, prompt, system="", temperature=0.1, live_search=False):
        self.prompts.append(prompt)
        answer = self.answers.pop(0) if self.answers else None
        if isinstance(answer, Exception):
            raise answer
        if answer is None:
            raise MalformedResponseError("no answer queued")
        return answer


class FakeSearch:
    """MarketSearch stand-in returning fixed quotes."""

    def __init__(self, quotes=None, kalshi=None, polymarket=None, error=None):
        self.quotes = quotes or []
        self.kalshi = kalshi or []
        self.polymarket = polymarket or []
        self.error = error
        self.queries = []

    async def search(self, query, venues=None, active_only=True, limit=10):
        self.queries.append(query)
        if self.error:
            raise self.error
        return self.quotes[:limit]

    async def search_kalshi(self, query, limit=20):
        return self.kalshi[:limit]

    async def search_polymarket(self, query, limit=20, active=True):
        return self.polymarket[:limit]


def make_quote(venue="KALSHI", market_id="M1", question="Will the Fed cut rates in January 2026?",
               yes_price=0.5, liquidity=100000, **kwargs):
    return MarketQuote(venue=venue, market_id=market_id, question=question,
                       yes_price=yes_price, liquidity=liquidity, **kwargs)


@pytest.fixture
def mock_config(monkeypatch):
    """A keyless Config injected as the global config."""
    cfg = Config()
    monkeypatch.setattr(config_module, "_config", cfg)
    return cfg
