"""
Pulse - Digest Scheduler
=========================
Fixed-rate periodic jobs on the asyncio event loop.

``PeriodicJob``
    Ticks every ``interval`` seconds.  Each tick starts the job as a
    task unless the previous run is still in flight, in which case the
    tick is skipped (single-flight).  A failing run is logged and the
    loop keeps ticking; there is no retry.

``DigestScheduler``
    Owns the two jobs of the bot:
        • index refresh:  rebuild the global collection (45 min)
        • digest refresh: regenerate the cached global digest (5 min),
          run once immediately at startup.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

from pulse.config.prompt_templates import GLOBAL_DIGEST_DIRECTIVE
from pulse.config.settings import settings
from pulse.src.core.ingestor import IndexRefresher
from pulse.src.core.rag_engine import RAGChain
from pulse.src.core.state import BotState
from pulse.src.utils.logger import get_logger
from pulse.src.utils.text_utils import strip_bold

logger = get_logger(__name__)

JobFunc = Callable[[], Awaitable[object]]


class PeriodicJob:
    """
    Parameters
    ----------
    name
        Label used in log lines.
    interval
        Seconds between ticks.
    func
        Coroutine function to run on every tick.
    run_immediately
        Tick once at ``start()`` instead of waiting a full interval.
    """

    __slots__ = ("name", "_interval", "_func", "_run_immediately", "_loop_task", "_run_task")

    def __init__(self, name: str, interval: float, func: JobFunc, run_immediately: bool = False) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self.name = name
        self._interval = interval
        self._func = func
        self._run_immediately = run_immediately
        self._loop_task: asyncio.Task | None = None
        self._run_task: asyncio.Task | None = None


    @property
    def in_flight(self) -> bool:
        return self._run_task is not None and not self._run_task.done()


    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()


    def trigger(self) -> asyncio.Task | None:
        """Start one run now; returns ``None`` when a run is already in flight."""
        if self.in_flight:
            logger.warning("[%s] Previous run still in progress, skipping tick.", self.name)
            return None
        self._run_task = asyncio.create_task(self._run_once(), name=f"{self.name}-run")
        return self._run_task


    def start(self) -> None:
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._loop(), name=f"{self.name}-loop")
        logger.info("[%s] Scheduled every %.0fs.", self.name, self._interval)


    async def stop(self) -> None:
        """Cancel the loop and any in-flight run."""
        for task in (self._loop_task, self._run_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._loop_task = None
        self._run_task = None


    async def _loop(self) -> None:
        if self._run_immediately:
            self.trigger()
        while True:
            await asyncio.sleep(self._interval)
            self.trigger()


    async def _run_once(self) -> None:
        t_start = time.perf_counter()
        try:
            await self._func()
        except Exception:
            logger.exception("[%s] Run failed.", self.name)
            return
        logger.info("[%s] Run completed in %.2fs.", self.name, time.perf_counter() - t_start)


class DigestScheduler:
    """
    Parameters
    ----------
    refresher
        Rebuilds the global collection.
    digest_chain
        Chain answering ``GLOBAL_DIGEST_DIRECTIVE``.
    state
        Where the regenerated digest is cached.
    """

    __slots__ = ("_refresher", "_chain", "_state", "index_job", "digest_job")

    def __init__(self, refresher: IndexRefresher, digest_chain: RAGChain, state: BotState, index_interval: float | None = None, digest_interval: float | None = None) -> None:
        self._refresher = refresher
        self._chain = digest_chain
        self._state = state
        self.index_job = PeriodicJob("index-refresh", index_interval or settings.INDEX_REFRESH_SECONDS, self._refresher.refresh)
        self.digest_job = PeriodicJob("digest-refresh", digest_interval or settings.DIGEST_REFRESH_SECONDS, self.regenerate_digest, run_immediately=True)


    async def regenerate_digest(self) -> str:
        """Answer the global directive and overwrite the cached digest; blank answers keep the previous one."""
        logger.info("Generating global digest …")
        digest = strip_bold(await self._chain.answer(GLOBAL_DIGEST_DIRECTIVE))
        if not digest.strip():
            logger.warning("Model returned an empty global digest; keeping the previous one.")
            return self._state.cached_digest or ""
        self._state.cached_digest = digest
        logger.info("Global digest generated (%d chars).", len(digest))
        return digest


    def start(self) -> None:
        self.index_job.start()
        self.digest_job.start()


    async def stop(self) -> None:
        await self.index_job.stop()
        await self.digest_job.stop()
