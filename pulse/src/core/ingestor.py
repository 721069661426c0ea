"""
Pulse - Ingestion Pipeline
===========================
Turns the cached Slack message window into an embedded vector
collection: load → build documents → chunk → rebuild collection.

Key design decisions:
    • **Dependency Injection** – ``IndexRefresher`` receives the message
      store, channel directory, chunker and ``PulseVectorStore``.
    • **Replace, never accumulate** – every refresh rebuilds the
      document set from scratch, bounded to the last ``MESSAGE_WINDOW``
      messages; the startup build and the periodic refresh share one
      code path and one channel policy.
    • **Token chunking** – documents are split into ``CHUNK_SIZE``-token
      windows overlapping by ``CHUNK_OVERLAP`` tokens via
      ``langchain_text_splitters.split_text_on_tokens``.
    • **Off-loop I/O** – embedding + LanceDB writes are synchronous and
      run in a worker thread (``asyncio.to_thread``).

Usage:
    refresher = IndexRefresher(store, directory, vector_store)
    chunks    = await refresher.refresh()
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable, Iterable
from typing import Any

from langchain_core.documents import Document
from langchain_text_splitters.base import Tokenizer, split_text_on_tokens

from pulse.config.settings import settings
from pulse.src.database.channel_directory import ChannelDirectory
from pulse.src.database.message_store import MessageStore, RawMessage
from pulse.src.database.vector_store import PulseVectorStore
from pulse.src.utils.logger import get_logger
from pulse.src.utils.text_utils import slack_ts_to_iso

logger = get_logger(__name__)

_METADATA_OPEN = "--- METADATA ---"
_METADATA_CLOSE = "--- METADATA END ---"


# ══════════════════════════════════════════════════════════════════════
#  DOCUMENT BUILDER
# ══════════════════════════════════════════════════════════════════════


class DocumentBuilder:
    """
    Pure transform from ``RawMessage`` to LangChain ``Document``.

    Every document body embeds its own metadata block so the model can
    cite date and channel from the retrieved text alone::

        TEXT: hello
        --- METADATA ---
        DATE: 2023-11-14T22:13:20.000Z
        CHANNEL: #general
        --- METADATA END ---
    """

    __slots__ = ("_directory",)

    def __init__(self, directory: ChannelDirectory) -> None:
        self._directory = directory


    def build(self, messages: Iterable[RawMessage], *, skip_unresolved: bool = True) -> list[Document]:
        """
        Build one document per message with text.

        Parameters
        ----------
        skip_unresolved
            Drop messages whose channel is not in the directory.  When
            false the raw channel id stands in for the name.
        """
        documents: list[Document] = []
        dropped = 0

        for msg in messages:
            if not msg.text:
                dropped += 1
                continue
            if skip_unresolved and msg.channel not in self._directory:
                dropped += 1
                continue
            documents.append(self.to_document(msg))

        logger.info("Built %d document(s) (%d message(s) dropped).", len(documents), dropped)
        return documents


    def to_document(self, msg: RawMessage) -> Document:
        date = slack_ts_to_iso(msg.ts)
        channel_name = f"#{self._directory.name_for(msg.channel)}"

        lines = [f"TEXT: {msg.text}", _METADATA_OPEN, f"DATE: {date}", f"CHANNEL: {channel_name}"]
        if msg.thread_ts:
            lines.append(f"THREAD ID: {msg.thread_ts}")
        lines.append(_METADATA_CLOSE)

        metadata: dict[str, Any] = {"user": msg.user, "date": date, "channel_name": channel_name}
        if msg.thread_ts:
            metadata["thread_ts"] = msg.thread_ts

        return Document(id=str(uuid.uuid4()), page_content="\n".join(lines).strip(), metadata=metadata)


# ══════════════════════════════════════════════════════════════════════
#  CHUNKING STAGE
# ══════════════════════════════════════════════════════════════════════


class MessageChunker:
    """
    Token-window splitter.

    Parameters
    ----------
    chunk_size / chunk_overlap
        Token budget per chunk and overlap between neighbours.
        Default to ``settings.CHUNK_SIZE`` / ``settings.CHUNK_OVERLAP``.
    encode / decode
        Tokenizer pair.  Defaults to the ``tiktoken`` encoding named by
        ``settings.TOKEN_ENCODING``.
    """

    __slots__ = ("_tokenizer",)

    def __init__(self, chunk_size: int | None = None, chunk_overlap: int | None = None, encode: Callable[[str], list[int]] | None = None, decode: Callable[[list[int]], str] | None = None) -> None:
        size = chunk_size if chunk_size is not None else settings.CHUNK_SIZE
        overlap = chunk_overlap if chunk_overlap is not None else settings.CHUNK_OVERLAP
        if not 0 <= overlap < size:
            raise ValueError(f"chunk_overlap must be in [0, chunk_size), got {overlap} (chunk_size={size})")

        if encode is None or decode is None:
            import tiktoken

            encoding = tiktoken.get_encoding(settings.TOKEN_ENCODING)
            encode = lambda text: encoding.encode(text, disallowed_special=())  # noqa: E731
            decode = encoding.decode

        self._tokenizer = Tokenizer(chunk_overlap=overlap, tokens_per_chunk=size, decode=decode, encode=encode)


    def split_text(self, text: str) -> list[str]:
        return split_text_on_tokens(text=text, tokenizer=self._tokenizer)


    def split_documents(self, documents: Iterable[Document]) -> list[Document]:
        """Split each document; chunks inherit the parent's metadata."""
        t_start = time.perf_counter()
        chunks: list[Document] = []
        parents = 0

        for doc in documents:
            parents += 1
            for idx, piece in enumerate(self.split_text(doc.page_content)):
                metadata = {**doc.metadata, "doc_id": doc.id, "chunk_index": idx}
                chunks.append(Document(page_content=piece, metadata=metadata))

        logger.info("Split %d document(s) into %d chunk(s) in %.1fms.", parents, len(chunks), (time.perf_counter() - t_start) * 1000)
        return chunks


# ══════════════════════════════════════════════════════════════════════
#  INDEX REFRESHER
# ══════════════════════════════════════════════════════════════════════


class IndexRefresher:
    """
    Rebuilds vector collections from Slack messages.

    Parameters
    ----------
    message_store
        Source of the global message window.
    directory
        Channel id → name lookup.
    vector_store
        Target ``PulseVectorStore``.
    chunker
        Optional custom ``MessageChunker``.
    collection
        Global collection name.  Defaults to ``settings.GLOBAL_COLLECTION``.
    """

    __slots__ = ("_messages", "_builder", "_chunker", "_vectors", "_collection")

    def __init__(self, message_store: MessageStore, directory: ChannelDirectory, vector_store: PulseVectorStore, chunker: MessageChunker | None = None, collection: str | None = None) -> None:
        self._messages = message_store
        self._builder = DocumentBuilder(directory)
        self._chunker = chunker or MessageChunker()
        self._vectors = vector_store
        self._collection = collection or settings.GLOBAL_COLLECTION


    @property
    def collection(self) -> str:
        return self._collection


    async def refresh(self) -> int:
        """Rebuild the global collection from the current message window."""
        t_start = time.perf_counter()

        messages = await self._messages.load_recent_messages()
        documents = self._builder.build(messages, skip_unresolved=True)
        chunks = self._chunker.split_documents(documents)
        added = await asyncio.to_thread(self._vectors.rebuild, self._collection, chunks)

        logger.info("Global index '%s' rebuilt: %d message(s), %d chunk(s) in %.2fs.", self._collection, len(messages), added, time.perf_counter() - t_start)
        return added


    async def refresh_channel(self, collection: str, messages: Iterable[RawMessage]) -> int:
        """Rebuild *collection* from one channel's history (unknown channel names fall back to the id)."""
        documents = self._builder.build(messages, skip_unresolved=False)
        chunks = self._chunker.split_documents(documents)
        return await asyncio.to_thread(self._vectors.rebuild, collection, chunks)


    async def drop(self, collection: str) -> None:
        await asyncio.to_thread(self._vectors.clear, collection)
