"""Polsim — Engine configuration via environment variables."""

from __future__ import annotations

from datetime import date

from pydantic_settings import BaseSettings


class PolsimSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # ── Text generation ────────────────────────────────────────
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    narrative_model: str = "openai/gpt-4o-mini"
    narrative_temperature: float = 0.3

    # ── Storage ────────────────────────────────────────────────
    database_url: str = "sqlite:///polsim.db"

    # ── Turn clock ─────────────────────────────────────────────
    turn_length_hours: int = 24
    in_game_days_per_turn: int = 36
    game_start_date: date = date(1853, 1, 1)

    # ── Reputation ─────────────────────────────────────────────
    reputation_decay_rate: float = 0.02
    reputation_baseline: float = 40.0
    organic_default_approval: float = 40.0
    session_default_approval: float = 50.0
    reputation_history_limit: int = 50
    history_compaction_interval: int = 3
    prediction_preview_limit: int = 20

    # ── Campaigns ──────────────────────────────────────────────
    campaign_duration_turns: int = 12
    campaign_boost_min: int = 1
    campaign_boost_max: int = 5

    # ── Annual cadence ─────────────────────────────────────────
    immigration_month: int = 1
    immigration_rate: float = 0.02
    election_month: int = 11
    election_base_year: int = 1855
    election_interval_years: int = 3

    # ── Elections ──────────────────────────────────────────────
    default_province_population: int = 10000

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def turn_length_seconds(self) -> float:
        return self.turn_length_hours * 3600.0


settings = PolsimSettings()
