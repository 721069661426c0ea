"""
Pulse - Slash Command Handlers
===============================
Thin controllers between Slack and the RAG engine.  Each handler
acknowledges the command immediately and replies through ``respond``.

    /whatsgoingon   cached global digest (no rate limit)
    /prompt         free-form question over the global collection
    /channeldigest  digest of the invoking channel's history

``/prompt`` and ``/channeldigest`` share one per-user cooldown;
whitelisted users are exempt.  Channel digests index into a collection
named from a fresh UUID per invocation, dropped once the answer is
sent, so concurrent digests never see each other's messages.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import Any

from langchain_core.language_models import BaseChatModel
from slack_bolt.async_app import AsyncApp
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from pulse.config.prompt_templates import CHANNEL_DIGEST_DIRECTIVE, CHANNEL_PLACEHOLDER_REPLY, CHANNEL_SYSTEM_TEMPLATE, DIGEST_PENDING_REPLY, EMPTY_CHANNEL_REPLY, EMPTY_QUERY_REPLY, MISSING_CHANNEL_REPLY, QUERY_PLACEHOLDER_REPLY, RATE_LIMITED_REPLY
from pulse.config.settings import settings
from pulse.src.core.ingestor import IndexRefresher
from pulse.src.core.rag_engine import RAGChain
from pulse.src.core.state import BotState
from pulse.src.database.channel_directory import ChannelDirectory
from pulse.src.database.message_store import RawMessage, validate_messages
from pulse.src.database.vector_store import PulseVectorStore
from pulse.src.utils.logger import get_logger
from pulse.src.utils.text_utils import format_channel_references

logger = get_logger(__name__)

Respond = Callable[..., Any]


class CommandHandlers:
    """
    Parameters
    ----------
    state
        Shared ``BotState`` (cached digest + rate limiter).
    query_chain
        Chain over the global collection used by ``/prompt``.
    refresher
        Indexes channel history for ``/channeldigest``.
    vector_store
        Provides retrievers over per-invocation collections.
    llm
        Chat model for channel digests.
    directory
        Channel names for the digest directive.
    """

    def __init__(self, state: BotState, query_chain: RAGChain, refresher: IndexRefresher, vector_store: PulseVectorStore, llm: BaseChatModel, directory: ChannelDirectory) -> None:
        self._state = state
        self._query_chain = query_chain
        self._refresher = refresher
        self._vectors = vector_store
        self._llm = llm
        self._directory = directory


    def register(self, app: AsyncApp) -> None:
        app.command("/whatsgoingon")(self.whats_going_on)
        app.command("/prompt")(self.prompt)
        app.command("/channeldigest")(self.channel_digest)
        logger.info("Registered slash commands: /whatsgoingon, /prompt, /channeldigest")

    # ══════════════════════════════════════════════════════════════════
    #  /whatsgoingon
    # ══════════════════════════════════════════════════════════════════

    async def whats_going_on(self, ack: Callable[..., Any], respond: Respond) -> None:
        await ack()
        digest = self._state.cached_digest
        if not digest:
            await respond(DIGEST_PENDING_REPLY)
            return
        await respond(format_channel_references(digest))

    # ══════════════════════════════════════════════════════════════════
    #  /prompt
    # ══════════════════════════════════════════════════════════════════

    async def prompt(self, ack: Callable[..., Any], command: dict[str, Any], respond: Respond) -> None:
        await ack()
        text = (command.get("text") or "").strip()
        if not text:
            await respond(EMPTY_QUERY_REPLY)
            return

        user_id = command.get("user_id", "")
        if not self._state.rate_limiter.try_acquire(user_id):
            logger.info("Rate limited /prompt for user %s.", user_id)
            await respond(RATE_LIMITED_REPLY)
            return

        await respond(QUERY_PLACEHOLDER_REPLY)
        try:
            answer = await self._query_chain.answer(text)
        except Exception:
            logger.exception("/prompt failed for user %s.", user_id)
            raise
        await respond(format_channel_references(answer))

    # ══════════════════════════════════════════════════════════════════
    #  /channeldigest
    # ══════════════════════════════════════════════════════════════════

    async def channel_digest(self, ack: Callable[..., Any], command: dict[str, Any], respond: Respond, client: AsyncWebClient) -> None:
        await ack()
        channel_id = command.get("channel_id")
        if not channel_id:
            await respond(MISSING_CHANNEL_REPLY)
            return

        user_id = command.get("user_id", "")
        if not self._state.rate_limiter.try_acquire(user_id):
            logger.info("Rate limited /channeldigest for user %s.", user_id)
            await respond(RATE_LIMITED_REPLY)
            return

        await respond(CHANNEL_PLACEHOLDER_REPLY)
        await self._join_channel(client, channel_id)

        history = await client.conversations_history(channel=channel_id, limit=settings.CHANNEL_HISTORY_LIMIT)
        messages = self._history_to_messages(history.get("messages", []), channel_id)
        if not messages:
            await respond(EMPTY_CHANNEL_REPLY)
            return

        collection = f"{settings.LOCAL_COLLECTION_PREFIX}_{uuid.uuid4().hex}"
        try:
            await self._refresher.refresh_channel(collection, messages)
            chain = RAGChain(self._vectors.as_retriever(collection), self._llm, CHANNEL_SYSTEM_TEMPLATE)
            directive = CHANNEL_DIGEST_DIRECTIVE.format(channel_name=self._directory.name_for(channel_id), channel_id=channel_id)
            answer = await chain.answer(directive)
        except Exception:
            logger.exception("/channeldigest failed for channel %s.", channel_id)
            raise
        finally:
            await self._refresher.drop(collection)

        await respond(format_channel_references(answer))


    @staticmethod
    async def _join_channel(client: AsyncWebClient, channel_id: str) -> None:
        """Best-effort join so history can be read from public channels."""
        try:
            await client.conversations_join(channel=channel_id)
        except SlackApiError as exc:
            logger.warning("Could not join channel %s: %s", channel_id, exc.response.get("error", exc))


    @staticmethod
    def _history_to_messages(raw: list[dict[str, Any]], channel_id: str) -> list[RawMessage]:
        """History items carry no channel key; tag them, oldest first."""
        messages = validate_messages({**item, "channel": channel_id} for item in raw)
        messages.reverse()
        return [msg for msg in messages if msg.text]
