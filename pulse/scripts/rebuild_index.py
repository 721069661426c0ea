"""
Pulse - Offline Index Rebuild
==============================
CLI entry point that orchestrates:
    1. Load settings (fail-fast on missing secrets).
    2. Initialise the embedder, Redis message store, channel directory
       and ``PulseVectorStore``.
    3. Run one global ``IndexRefresher.refresh()``.
    4. Optionally run a similarity search against the rebuilt collection.
    5. Print a structured execution summary with timing breakdown.

Flags:
    --drop-only     Clear the global collection and exit (no rebuild).
    --query TEXT    After rebuilding, print the top hits for TEXT.
    --limit N       Number of hits shown for --query (default 5).

Usage:
    python -m pulse.scripts.rebuild_index
    python -m pulse.scripts.rebuild_index --query "hackathon"
    python -m pulse.scripts.rebuild_index --drop-only
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="rebuild_index", description="Pulse: rebuild the global message index from the Redis cache.")
    parser.add_argument("--drop-only", action="store_true", default=False, help="Clear the global collection and exit (no rebuild).")
    parser.add_argument("--query", default=None, help="Run a similarity search against the rebuilt collection.")
    parser.add_argument("--limit", type=int, default=5, help="Number of hits printed for --query.")
    return parser.parse_args(argv)


# ── Main Orchestration ─────────────────────────────────────────────────

async def _run(args: argparse.Namespace) -> None:
    t_start = time.perf_counter()

    # ── 0. Load settings + .env (timed) ────────────────────────────────
    t_settings = time.perf_counter()
    try:
        from pulse.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error, check your .env file:\n")
        print(f"  {exc}")
        print()
        sys.exit(1)
    settings_ms = (time.perf_counter() - t_settings) * 1000

    # Settings must load before the logger reads ENV
    from pulse.src.utils.logger import get_logger
    logger = get_logger(__name__)

    _print_header(settings)

    # ── 1. Initialise embedder + store (timed) ─────────────────────────
    from pulse.src.core.rag_engine import build_embedder
    from pulse.src.database.vector_store import PulseVectorStore

    t_init = time.perf_counter()
    embedder = build_embedder()
    store = PulseVectorStore(embedder)
    init_ms = (time.perf_counter() - t_init) * 1000
    logger.info("Embedder + LanceDB ready in %.1fms", init_ms)

    if args.drop_only:
        store.clear(settings.GLOBAL_COLLECTION)
        logger.info("--drop-only: Collection '%s' cleared. Exiting.", settings.GLOBAL_COLLECTION)
        _print_footer(0, time.perf_counter() - t_start, settings_ms, init_ms)
        return

    # ── 2. Message store + channel directory ───────────────────────────
    from pulse.src.core.ingestor import IndexRefresher
    from pulse.src.database.channel_directory import ChannelDirectory
    from pulse.src.database.message_store import MessageStore

    message_store = MessageStore.from_url()
    try:
        directory = await ChannelDirectory.load()
        refresher = IndexRefresher(message_store, directory, store)

        # ── 3. Rebuild ─────────────────────────────────────────────────
        total_chunks = await refresher.refresh()
    finally:
        await message_store.close()

    # ── 4. Optional verification query ─────────────────────────────────
    if args.query:
        _print_hits(args.query, store.search(settings.GLOBAL_COLLECTION, args.query, limit=args.limit))

    _print_footer(total_chunks, time.perf_counter() - t_start, settings_ms, init_ms)


def main(argv: list[str] | None = None) -> None:
    asyncio.run(_run(_parse_args(argv)))


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(settings: object) -> None:
    redis_url = settings.REDIS_DATABASE.get_secret_value()  # type: ignore[attr-defined]
    redis_masked = redis_url.split("@")[-1] if "@" in redis_url else redis_url

    print()
    print("=" * 60)
    print("  PULSE  Global Index Rebuild")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")                          # type: ignore[attr-defined]
    print(f"  Embedding    : {settings.EMBEDDING_MODEL}")              # type: ignore[attr-defined]
    print(f"  LanceDB path : {settings.LANCEDB_PATH}")                 # type: ignore[attr-defined]
    print(f"  Collection   : {settings.GLOBAL_COLLECTION}")            # type: ignore[attr-defined]
    print(f"  Redis        : {redis_masked} (key: {settings.message_cache_key})")  # type: ignore[attr-defined]
    print(f"  Window       : {settings.MESSAGE_WINDOW} messages")      # type: ignore[attr-defined]
    print(f"  Chunking     : {settings.CHUNK_SIZE} tokens / {settings.CHUNK_OVERLAP} overlap")  # type: ignore[attr-defined]
    print("=" * 60)
    print()


def _print_hits(query: str, hits: list[dict]) -> None:
    print()
    print(f"Query: {query}")
    print("=" * 60)
    for i, hit in enumerate(hits, 1):
        print(f"\n--- Result {i} ---")
        print(f"  Channel:   {hit.get('channel_name', 'N/A')}")
        print(f"  Date:      {hit.get('date', 'N/A')}")
        print(f"  Distance:  {hit.get('_distance', 0.0):.4f}")
        print(f"  Text:")
        print(f"    {hit.get('text', '')}")


def _print_footer(total_chunks: int, elapsed: float, settings_ms: float, init_ms: float) -> None:
    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    print(f"  Total chunks stored  : {total_chunks}")
    print("-" * 60)
    print(f"  Settings + .env load : {settings_ms:>8.1f}ms")
    print(f"  Embedder + LanceDB   : {init_ms:>8.1f}ms")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


# ── Entry point ────────────────────────────────────────────────────────

if __name__ == "__main__":
    main()
