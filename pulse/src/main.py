"""
Pulse - Application Entry Point
================================
Wires every component together and runs the Slack app.

Startup order:
    1. Settings (fail-fast on missing secrets) + models.
    2. Redis message store, channel directory (HTTP, once).
    3. LanceDB store + initial global index build.
    4. Digest scheduler (digest regenerated immediately).
    5. Slack ``AsyncApp`` with the slash commands registered, served over
       Socket Mode (``PORT`` unset) or HTTP on ``PORT``.

Run:
    python -m pulse.src.main
"""

from __future__ import annotations

import asyncio

from aiohttp import web
from slack_bolt.adapter.socket_mode.async_handler import AsyncSocketModeHandler
from slack_bolt.async_app import AsyncApp

from pulse.config.prompt_templates import GLOBAL_SYSTEM_TEMPLATE, QUERY_SYSTEM_TEMPLATE
from pulse.config.settings import settings
from pulse.src.bot.commands import CommandHandlers
from pulse.src.core.ingestor import IndexRefresher
from pulse.src.core.rag_engine import RAGChain, build_embedder, build_llm
from pulse.src.core.scheduler import DigestScheduler
from pulse.src.core.state import BotState
from pulse.src.database.channel_directory import ChannelDirectory
from pulse.src.database.message_store import MessageStore
from pulse.src.database.vector_store import PulseVectorStore
from pulse.src.utils.logger import get_logger, quiet_third_party

logger = get_logger(__name__)


def build_app() -> AsyncApp:
    signing_secret = settings.SLACK_SIGNING_SECRET.get_secret_value() if settings.SLACK_SIGNING_SECRET else None
    return AsyncApp(token=settings.SLACK_BOT_TOKEN.get_secret_value(), signing_secret=signing_secret)


async def serve(app: AsyncApp) -> None:
    """Block serving Slack traffic until cancelled."""
    if settings.socket_mode:
        if settings.SLACK_APP_TOKEN is None:
            raise RuntimeError("SLACK_APP_TOKEN is required in Socket Mode (PORT is unset).")
        handler = AsyncSocketModeHandler(app, settings.SLACK_APP_TOKEN.get_secret_value())
        logger.info("Started (Socket Mode).")
        await handler.start_async()
        return

    runner = web.AppRunner(app.web_app(port=settings.PORT))
    await runner.setup()
    await web.TCPSite(runner, port=settings.PORT).start()
    logger.info("Started (HTTP on port %d).", settings.PORT)
    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


async def main() -> None:
    quiet_third_party()
    llm = build_llm()
    embedder = build_embedder()

    message_store = MessageStore.from_url()
    directory = await ChannelDirectory.load()
    vector_store = PulseVectorStore(embedder)

    refresher = IndexRefresher(message_store, directory, vector_store)
    await refresher.refresh()

    global_retriever = vector_store.as_retriever(settings.GLOBAL_COLLECTION)
    digest_chain = RAGChain(global_retriever, llm, GLOBAL_SYSTEM_TEMPLATE)
    query_chain = RAGChain(global_retriever, llm, QUERY_SYSTEM_TEMPLATE)

    state = BotState()
    scheduler = DigestScheduler(refresher, digest_chain, state)
    scheduler.start()

    app = build_app()
    CommandHandlers(state, query_chain, refresher, vector_store, llm, directory).register(app)

    try:
        await serve(app)
    finally:
        await scheduler.stop()
        await message_store.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
