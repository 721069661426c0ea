"""
Pulse - MessageStore
=====================
Read-only adapter over the Redis list that the workspace listener fills
with raw Slack message events.

The list lives at ``{INSTANCE_ID}.messageCache``; new messages are
pushed to the head, so the list is newest-first.  ``load_recent_messages``
returns the most recent ``MESSAGE_WINDOW`` messages with text, oldest
first.

Connectivity errors propagate to the caller; there is no retry.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

import redis.asyncio as aioredis
from pydantic import BaseModel, ConfigDict, ValidationError

from pulse.config.settings import settings
from pulse.src.utils.logger import get_logger

logger = get_logger(__name__)


class RawMessage(BaseModel):
    """One Slack message as cached by the listener (unknown keys ignored)."""

    model_config = ConfigDict(extra="ignore")

    ts: float
    channel: str
    user: str | None = None
    text: str | None = None
    thread_ts: str | None = None


def validate_messages(items: Iterable[dict[str, Any]]) -> list[RawMessage]:
    """Validate decoded records, logging and dropping the invalid ones."""
    messages: list[RawMessage] = []
    for item in items:
        try:
            messages.append(RawMessage.model_validate(item))
        except ValidationError as exc:
            logger.warning("Dropping invalid message record: %s", exc)
    return messages


def parse_messages(records: Iterable[str | bytes]) -> list[RawMessage]:
    """Decode JSON records, logging and dropping the ones that do not parse."""
    decoded: list[dict[str, Any]] = []
    for raw in records:
        try:
            decoded.append(json.loads(raw))
        except json.JSONDecodeError as exc:
            logger.warning("Dropping malformed message record: %s", exc)
    return validate_messages(decoded)


def recent_window(messages: list[RawMessage], window: int) -> list[RawMessage]:
    """Keep messages with non-empty text and truncate to the last *window*."""
    with_text = [msg for msg in messages if msg.text]
    return with_text[-window:]


class MessageStore:
    """
    Parameters
    ----------
    client
        A ``redis.asyncio.Redis`` client (injected for tests).
    key
        List key.  Defaults to ``settings.message_cache_key``.
    window
        Maximum number of messages returned.  Defaults to ``settings.MESSAGE_WINDOW``.
    """

    __slots__ = ("_client", "_key", "_window")

    def __init__(self, client: aioredis.Redis, key: str | None = None, window: int | None = None) -> None:
        self._client = client
        self._key = key or settings.message_cache_key
        self._window = window or settings.MESSAGE_WINDOW


    @classmethod
    def from_url(cls, url: str | None = None) -> "MessageStore":
        """Build a store with its own Redis client from a connection URL."""
        client = aioredis.from_url(url or settings.REDIS_DATABASE.get_secret_value(), decode_responses=True)
        return cls(client)


    async def load_recent_messages(self) -> list[RawMessage]:
        """Return the recent message window, oldest first."""
        records = await self._client.lrange(self._key, 0, -1)
        messages = parse_messages(records)
        messages.reverse()
        window = recent_window(messages, self._window)
        logger.info("Loaded %d message(s) from '%s' (%d in window).", len(records), self._key, len(window))
        return window


    async def close(self) -> None:
        await self._client.aclose()
