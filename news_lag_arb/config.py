"""Configuration loader — single source of truth for all settings.

Secrets are loaded from environment variables (or a .env file).
Non-secret tuning parameters can optionally be set in config.yaml.

Environment variables:
  LLM_PROVIDER, LLM_API_KEY, LLM_BASE_URL, LLM_MODEL
  GROK_API_KEY, REPLAY_LABS_API_KEY, REPLAY_LABS_BASE_URL
  KALSHI_API_KEY, KALSHI_USE_DEMO

Optional config.yaml (non-secret params):
  poll_interval_seconds, news_categories, max_markets_per_news,
  max_position_size, min_match_similarity, news_source, classifier, ...

Missing credentials never stop the program: every collaborator has an
offline fallback and reports that it is running degraded.
"""

import os
import sys
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

import yaml
from dotenv import load_dotenv

# Load .env file if present (no-op if missing)
load_dotenv()

DEFAULT_CATEGORIES = [
    "federal reserve", "interest rates", "inflation", "CPI", "Fed", "FOMC",
    "Bitcoin", "crypto", "ETF", "SEC", "election", "Trump", "tariffs",
    "recession", "GDP", "jobs report", "unemployment",
]

VALID_PROVIDERS = {"", "xai", "openai", "gemini", "anthropic"}
VALID_NEWS_SOURCES = {"auto", "grok", "rss"}
VALID_CLASSIFIERS = {"heuristic", "llm"}


@dataclass
class Config:
    """All configuration for the news-lag scanner."""

    # Monitoring loop
    poll_interval_seconds: float = 30.0
    news_categories: list[str] = field(default_factory=lambda: list(DEFAULT_CATEGORIES))
    max_markets_per_news: int = 5
    news_source: str = "auto"        # "auto" (grok if keyed, else rss), "grok", "rss"
    classifier: str = "heuristic"    # "heuristic" (regex) or "llm"
    rss_feeds_per_cycle: int = 6

    # Headline dedup
    dedup_capacity: int = 1000
    dedup_similarity_threshold: float = 0.8

    # Fair value / sizing
    default_liquidity: float = 50000.0
    max_position_size: float = 250.0
    min_signal_edge: float = 0.03     # scanner only sizes markets past this |edge|
    max_signals: int = 5

    # Cross-venue verification
    min_match_similarity: float = 0.6
    max_pairs_to_verify: int = 5
    arb_min_spread_cents: float = 3.0
    venue_search_limit: int = 20

    # Market search
    search_limit: int = 10
    replay_labs_base_url: str = "https://api.replaylab.io"
    replay_labs_api_key: str = ""
    kalshi_api_key: str = ""
    kalshi_use_demo: bool = False

    # LLM
    llm_provider: str = ""           # "xai", "openai" (+ compatible proxies), "gemini", "anthropic"
    llm_base_url: str = ""           # e.g. "http://127.0.0.1:8045/v1" for local proxy
    llm_api_key: str = ""            # from env var LLM_API_KEY
    llm_model: str = ""              # e.g. "grok-2-latest", "gpt-4o-mini"
    grok_api_key: str = ""           # from env var GROK_API_KEY (live X search)
    http_timeout: float = 30.0

    @property
    def kalshi_base_url(self) -> str:
        if self.kalshi_use_demo:
            return "https://demo-api.kalshi.co/trade-api/v2"
        return "https://trading-api.kalshi.com/trade-api/v2"

    def missing_keys(self) -> list[str]:
        """Credentials that are absent — the matching collaborators run on mock data."""
        missing = []
        if not (self.grok_api_key or self.llm_api_key):
            missing.append("GROK_API_KEY / LLM_API_KEY (news search, LLM analysis)")
        if not self.replay_labs_api_key:
            missing.append("REPLAY_LABS_API_KEY (semantic market search)")
        if not self.kalshi_api_key:
            missing.append("KALSHI_API_KEY (Kalshi market search)")
        return missing

    def validate(self) -> list[str]:
        """Validate config and return list of errors."""
        errors = []

        if self.poll_interval_seconds <= 0:
            errors.append("poll_interval_seconds must be positive")

        if self.max_markets_per_news < 1:
            errors.append("max_markets_per_news must be at least 1")

        if self.dedup_capacity < 1:
            errors.append("dedup_capacity must be at least 1")

        if not (0 < self.dedup_similarity_threshold <= 1):
            errors.append("dedup_similarity_threshold must be between 0 and 1")

        if self.max_position_size < 25:
            errors.append("max_position_size must be at least 25")

        if not (0 <= self.min_match_similarity <= 1):
            errors.append("min_match_similarity must be between 0 and 1")

        if self.llm_provider not in VALID_PROVIDERS:
            errors.append(f"llm_provider must be one of: {sorted(VALID_PROVIDERS)}")

        if self.news_source not in VALID_NEWS_SOURCES:
            errors.append(f"news_source must be one of: {sorted(VALID_NEWS_SOURCES)}")

        if self.classifier not in VALID_CLASSIFIERS:
            errors.append(f"classifier must be one of: {sorted(VALID_CLASSIFIERS)}")

        return errors


# Global config instance
_config: Optional[Config] = None


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration.

    Secrets always come from environment variables.
    Non-secret params can optionally be overridden via config.yaml.
    """
    global _config

    # --- Non-secret params from optional config.yaml ---
    yaml_data: dict = {}
    if config_path is None:
        candidates = [
            Path.cwd() / "config.yaml",
            Path.home() / ".config" / "news-lag-arb" / "config.yaml",
        ]
        env_path = os.environ.get("NEWS_LAG_CONFIG")
        if env_path:
            candidates.insert(0, Path(env_path))
        for p in candidates:
            if p.exists():
                config_path = p
                break

    if config_path and Path(config_path).exists():
        with open(config_path) as f:
            yaml_data = yaml.safe_load(f) or {}

    # Non-secret fields allowed from yaml (explicitly whitelisted)
    YAML_ALLOWED = {
        # Monitoring loop
        "poll_interval_seconds", "news_categories", "max_markets_per_news",
        "news_source", "classifier", "rss_feeds_per_cycle",
        # Dedup
        "dedup_capacity", "dedup_similarity_threshold",
        # Fair value / sizing
        "default_liquidity", "max_position_size", "min_signal_edge", "max_signals",
        # Verification
        "min_match_similarity", "max_pairs_to_verify", "arb_min_spread_cents",
        "venue_search_limit",
        # Search / HTTP
        "search_limit", "replay_labs_base_url", "http_timeout",
        # LLM
        "llm_provider", "llm_base_url", "llm_model",
    }
    params = {k: v for k, v in yaml_data.items() if k in YAML_ALLOWED}

    # Env overrides for the routing knobs, secrets always from env
    if os.environ.get("LLM_PROVIDER"):
        params["llm_provider"] = os.environ["LLM_PROVIDER"]
    if os.environ.get("LLM_MODEL"):
        params["llm_model"] = os.environ["LLM_MODEL"]
    if os.environ.get("LLM_BASE_URL"):
        params["llm_base_url"] = os.environ["LLM_BASE_URL"]
    if os.environ.get("REPLAY_LABS_BASE_URL"):
        params["replay_labs_base_url"] = os.environ["REPLAY_LABS_BASE_URL"]

    _config = Config(
        llm_api_key=os.environ.get("LLM_API_KEY", ""),
        grok_api_key=os.environ.get("GROK_API_KEY", ""),
        replay_labs_api_key=os.environ.get("REPLAY_LABS_API_KEY", ""),
        kalshi_api_key=os.environ.get("KALSHI_API_KEY", ""),
        kalshi_use_demo=_env_bool("KALSHI_USE_DEMO"),
        **params,
    )

    errors = _config.validate()
    if errors:
        print("Config validation errors:", file=sys.stderr)
        for e in errors:
            print(f"  - {e}", file=sys.stderr)
        sys.exit(1)

    return _config


def get_config() -> Config:
    """Get the loaded config, or load it if not yet loaded."""
    global _config
    if _config is None:
        _config = load_config()
    return _config
