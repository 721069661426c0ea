"""
Pulse - Centralized Configuration
==================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``SLACK_BOT_TOKEN``, ``GOOGLE_API_KEY`` and ``REDIS_DATABASE`` are typed
  as ``SecretStr`` and have **no default value**.  If one is missing at
  startup, Pydantic raises a ``ValidationError`` with a clear message.
  The raw values are never exposed in repr, logs, or tracebacks.
- The Redis URL carries credentials and must never leak into logs.

Transport
---------
When ``PORT`` is unset the bot connects over Socket Mode using
``SLACK_APP_TOKEN``; otherwise it serves Slack's HTTP events on ``PORT``.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_WHITELIST_SPLIT_RE = re.compile(r"[\s,]+")


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).
    Fields *without* a default are **required**.

    Attributes
    ----------
    SLACK_BOT_TOKEN : SecretStr
        Bot user OAuth token (``xoxb-…``).  **Required.**
    SLACK_SIGNING_SECRET : SecretStr | None
        Request signing secret, needed in HTTP mode.
    SLACK_APP_TOKEN : SecretStr | None
        App-level token (``xapp-…``), needed in Socket Mode.
    PORT : int | None
        HTTP port.  ``None`` selects Socket Mode.
    REDIS_DATABASE : SecretStr
        Redis connection URL holding the message cache.  **Required.**
    INSTANCE_ID : str
        Deployment identifier; prefixes the message cache key.
    WHITELIST : str
        Comma/space separated user ids exempt from rate limiting.
    GOOGLE_API_KEY : SecretStr
        API key for Google AI Studio (Gemini).  **Required.**
    CHUNK_SIZE / CHUNK_OVERLAP : int
        Token budget per chunk and overlap between consecutive chunks.
    MESSAGE_WINDOW : int
        Number of most-recent messages the global index is built from.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    LANCEDB_PATH: Path = BASE_DIR / "data" / "lancedb"

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"

    # ── Slack (bot token REQUIRED) ─────────────────────────────────────
    SLACK_BOT_TOKEN: SecretStr
    SLACK_SIGNING_SECRET: SecretStr | None = None
    SLACK_APP_TOKEN: SecretStr | None = None
    PORT: int | None = None

    # ── Message cache (REQUIRED) ───────────────────────────────────────
    REDIS_DATABASE: SecretStr
    INSTANCE_ID: str = "production"

    # ── Rate limiting ──────────────────────────────────────────────────
    WHITELIST: str = ""
    RATE_LIMIT_SECONDS: float = 60.0

    # ── API Keys (REQUIRED, no default) ───────────────────────────────
    GOOGLE_API_KEY: SecretStr

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/gemini-embedding-001"
    LLM_MODEL: str = "gemini-2.0-flash"
    LLM_TEMPERATURE: float = 0.0
    MODEL_MAX_RETRIES: int = 0

    # ── Ingestion Parameters ───────────────────────────────────────────
    CHUNK_SIZE: int = 100
    CHUNK_OVERLAP: int = 20
    TOKEN_ENCODING: str = "cl100k_base"
    MESSAGE_WINDOW: int = 100
    CHANNEL_HISTORY_LIMIT: int = 100
    CHANNEL_DIRECTORY_URL: str = "http://l.hack.club/channels"

    # ── Retrieval ──────────────────────────────────────────────────────
    RETRIEVER_TOP_K: int = 4

    # ── LanceDB ────────────────────────────────────────────────────────
    GLOBAL_COLLECTION: str = "pulse_global"
    LOCAL_COLLECTION_PREFIX: str = "pulse_channel"

    # ── Schedules (seconds) ────────────────────────────────────────────
    INDEX_REFRESH_SECONDS: float = 60 * 5 * 9
    DIGEST_REFRESH_SECONDS: float = 60 * 5

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("CHUNK_SIZE", "MESSAGE_WINDOW", "RETRIEVER_TOP_K")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"value must be ≥ 1, got {v}")
        return v


    @model_validator(mode="after")
    def _overlap_below_size(self) -> "Settings":
        if not 0 <= self.CHUNK_OVERLAP < self.CHUNK_SIZE:
            raise ValueError(f"CHUNK_OVERLAP must be in [0, CHUNK_SIZE), got {self.CHUNK_OVERLAP} (CHUNK_SIZE={self.CHUNK_SIZE})")
        return self

    # ── Derived values ─────────────────────────────────────────────────

    @property
    def message_cache_key(self) -> str:
        return f"{self.INSTANCE_ID}.messageCache"


    @property
    def whitelist_ids(self) -> frozenset[str]:
        return frozenset(part for part in _WHITELIST_SPLIT_RE.split(self.WHITELIST) if part)


    @property
    def socket_mode(self) -> bool:
        return self.PORT is None

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from pulse.config.settings import settings
settings = Settings()
