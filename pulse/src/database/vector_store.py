"""
Pulse - PulseVectorStore
=========================
OOP wrapper around LanceDB that manages *named collections* (one
LanceDB table each) of embedded message chunks:
  • Full rebuild of a collection (clear → add) per refresh cycle
  • Batched embedding + insertion with a fixed-size vector schema
  • Top-k similarity search, exposed to LangChain as a ``BaseRetriever``

Design decisions:
  • **Singleton DB connection**: ``_get_connection()`` caches the
    ``lancedb.DBConnection`` per path to avoid file-lock issues.
  • **Dependency Injection**: the embedder is injected, never
    hard-coded, making the store testable with fake embedders.
  • **Full rebuild, not upsert**: a collection only ever holds the
    current sliding window.  ``rebuild`` is *not* atomic: a search that
    lands between the clear and the add sees an empty collection.

Usage:
    store = PulseVectorStore(embedder)
    store.rebuild("pulse_global", chunks)
    retriever = store.as_retriever("pulse_global", k=4)
"""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

import lancedb
import pyarrow as pa
from langchain_core.callbacks import CallbackManagerForRetrieverRun
from langchain_core.documents import Document
from langchain_core.retrievers import BaseRetriever
from pydantic import ConfigDict

from pulse.config.settings import settings
from pulse.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
ChunkRecord = dict[str, str | int | list[float]]
SearchResult = dict[str, str | int | float | list[float]]


@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible embedding model."""

    def embed_documents(self, texts: list[str]) -> list[list[float]]: ...

    def embed_query(self, text: str) -> list[float]: ...


# Metadata columns stored next to every vector; missing keys become "".
METADATA_FIELDS: tuple[str, ...] = ("user", "date", "channel_name", "thread_ts", "doc_id")

_EMBED_BATCH_SIZE = 64
_DB_LOCK = threading.Lock()
_db_connection_cache: dict[str, lancedb.DBConnection] = {}


def _get_connection(db_path: str) -> lancedb.DBConnection:
    """
    Return a **singleton** ``lancedb.DBConnection`` for *db_path*.

    Thread-safe via ``_DB_LOCK``.
    """
    if db_path not in _db_connection_cache:
        with _DB_LOCK:
            if db_path not in _db_connection_cache:
                logger.info("Opening new LanceDB connection: %s", db_path)
                _db_connection_cache[db_path] = lancedb.connect(db_path)
    return _db_connection_cache[db_path]


def _is_missing_table(exc: Exception) -> bool:
    message = str(exc).lower()
    return "not found" in message or "does not exist" in message


def chunk_schema(dimension: int) -> pa.Schema:
    """Arrow schema for a collection whose embeddings have *dimension* floats."""
    return pa.schema(
        [pa.field("vector", pa.list_(pa.float32(), dimension)), pa.field("text", pa.utf8())]
        + [pa.field(name, pa.utf8()) for name in METADATA_FIELDS]
        + [pa.field("chunk_index", pa.int32())]
    )


class PulseVectorStore:
    """
    Named-collection vector index over LanceDB.

    Parameters
    ----------
    embedder : Embedder
        Any object satisfying the ``Embedder`` protocol.
    db_path
        Override the database directory.  Defaults to ``settings.LANCEDB_PATH``.
    """

    __slots__ = ("embedder", "_db_path", "db")

    def __init__(self, embedder: Embedder, db_path: str | None = None) -> None:
        self.embedder: Embedder = embedder
        self._db_path: str = str(db_path or settings.LANCEDB_PATH)
        try:
            self.db: lancedb.DBConnection = _get_connection(self._db_path)
        except OSError as exc:
            logger.error("LanceDB filesystem error at %s: %s", self._db_path, exc)
            raise


    def collection_exists(self, collection: str) -> bool:
        return collection in self.db.table_names()


    def clear(self, collection: str) -> None:
        """Delete every row of *collection* by dropping its table."""
        if not self.collection_exists(collection):
            logger.debug("Collection '%s' does not exist; nothing to clear.", collection)
            return
        self.db.drop_table(collection)
        logger.info("Cleared collection '%s'.", collection)


    def add_documents(self, collection: str, documents: list[Document]) -> int:
        """
        Embed *documents* and append them to *collection*.

        The table is created on first insert, with the vector width taken
        from the embedder's output.

        Returns
        -------
        int
            Number of rows added.
        """
        if not documents:
            logger.info("No documents to add to '%s'.", collection)
            return 0

        texts = [doc.page_content for doc in documents]
        logger.info("Embedding %d chunks in batches of %d …", len(texts), _EMBED_BATCH_SIZE)

        vectors: list[list[float]] = []
        for i in range(0, len(texts), _EMBED_BATCH_SIZE):
            batch = texts[i : i + _EMBED_BATCH_SIZE]
            try:
                vectors.extend(self.embedder.embed_documents(batch))
            except Exception as exc:
                logger.error("Embedding batch %d–%d failed: %s", i, i + len(batch) - 1, exc)
                raise

        if len(vectors) != len(texts):
            raise ValueError(f"Embedder returned {len(vectors)} vectors for {len(texts)} texts.")

        records: list[ChunkRecord] = [self._to_record(doc, vec) for doc, vec in zip(documents, vectors)]
        data = pa.Table.from_pylist(records, schema=chunk_schema(len(vectors[0])))

        if self.collection_exists(collection):
            self.db.open_table(collection).add(data)
        else:
            self.db.create_table(collection, data=data)

        logger.info("Added %d chunks to '%s'.", len(records), collection)
        return len(records)


    def rebuild(self, collection: str, documents: list[Document]) -> int:
        """Clear *collection* and re-add *documents* (not atomic)."""
        self.clear(collection)
        return self.add_documents(collection, documents)


    def search(self, collection: str, query_text: str, limit: int = 4) -> list[SearchResult]:
        """
        Top-*limit* rows nearest to *query_text*, closest first.

        A collection that does not exist (never built, or cleared
        mid-rebuild) yields no results.
        """
        if not self.collection_exists(collection):
            logger.warning("Search on missing collection '%s', returning no results.", collection)
            return []

        try:
            query_vector = self.embedder.embed_query(query_text)
        except Exception as exc:
            logger.error("Failed to embed query: %s", exc)
            raise

        # A concurrent rebuild may drop the table after the existence check.
        try:
            results: list[SearchResult] = self.db.open_table(collection).search(query_vector).limit(limit).to_list()
        except (ValueError, RuntimeError, FileNotFoundError) as exc:
            if not _is_missing_table(exc) and self.collection_exists(collection):
                raise
            logger.warning("Collection '%s' vanished mid-search (%s), returning no results.", collection, exc)
            return []
        logger.info("Search on '%s' returned %d results.", collection, len(results))
        return results


    def count(self, collection: str) -> int:
        if not self.collection_exists(collection):
            return 0
        return self.db.open_table(collection).count_rows()


    def as_retriever(self, collection: str, k: int | None = None) -> "VectorRetriever":
        return VectorRetriever(store=self, collection=collection, k=k or settings.RETRIEVER_TOP_K)


    @staticmethod
    def _to_record(doc: Document, vector: list[float]) -> ChunkRecord:
        record: ChunkRecord = {"vector": vector, "text": doc.page_content}
        for name in METADATA_FIELDS:
            value = doc.metadata.get(name)
            record[name] = "" if value is None else str(value)
        record["chunk_index"] = int(doc.metadata.get("chunk_index", 0))
        return record


    def __repr__(self) -> str:
        return f"PulseVectorStore(db='{self._db_path}')"


class VectorRetriever(BaseRetriever):
    """LangChain retriever performing top-k search on one named collection."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    store: PulseVectorStore
    collection: str
    k: int = 4

    def _get_relevant_documents(self, query: str, *, run_manager: CallbackManagerForRetrieverRun) -> list[Document]:
        rows = self.store.search(self.collection, query, limit=self.k)
        documents: list[Document] = []
        for row in rows:
            metadata = {name: row[name] for name in METADATA_FIELDS if row.get(name)}
            metadata["chunk_index"] = row.get("chunk_index", 0)
            metadata["distance"] = row.get("_distance")
            documents.append(Document(page_content=str(row["text"]), metadata=metadata))
        return documents
