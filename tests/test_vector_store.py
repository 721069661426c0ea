from unittest.mock import MagicMock

import pytest
from langchain_core.documents import Document

from pulse.src.database.vector_store import PulseVectorStore, VectorRetriever


def _docs(*texts: str) -> list[Document]:
    return [Document(page_content=text, metadata={"user": "U1", "channel_name": "#general", "chunk_index": i}) for i, text in enumerate(texts)]


def test_rebuild_clears_previous_rows(vector_store) -> None:
    vector_store.rebuild("global", _docs("a", "b", "c"))
    vector_store.rebuild("global", _docs("d"))

    assert vector_store.count("global") == 1
    assert [row["text"] for row in vector_store.search("global", "d", limit=10)] == ["d"]


def test_rebuild_is_idempotent_for_a_fixed_query(vector_store) -> None:
    docs = _docs("pizza party in the lounge", "new robotics club", "hackathon this weekend")

    vector_store.rebuild("global", docs)
    first = [row["text"] for row in vector_store.search("global", "robotics", limit=3)]
    vector_store.rebuild("global", docs)
    second = [row["text"] for row in vector_store.search("global", "robotics", limit=3)]

    assert first == second
    assert vector_store.count("global") == 3


def test_exact_text_query_ranks_its_chunk_first(vector_store) -> None:
    vector_store.rebuild("global", _docs("alpha", "beta", "gamma"))

    [top, *_] = vector_store.search("global", "beta", limit=3)

    assert top["text"] == "beta"
    assert top["channel_name"] == "#general"
    assert top["thread_ts"] == ""


def test_collections_are_isolated(vector_store) -> None:
    vector_store.rebuild("one", _docs("first"))
    vector_store.rebuild("two", _docs("second", "third"))

    vector_store.clear("one")

    assert not vector_store.collection_exists("one")
    assert vector_store.count("two") == 2


def test_search_on_missing_collection_returns_nothing(vector_store) -> None:
    assert vector_store.search("never-built", "anything") == []
    assert vector_store.count("never-built") == 0


def test_rebuild_with_no_documents_leaves_collection_empty(vector_store) -> None:
    vector_store.rebuild("global", _docs("a"))

    assert vector_store.rebuild("global", []) == 0
    assert vector_store.count("global") == 0


def test_embedding_errors_propagate(tmp_path) -> None:
    embedder = MagicMock()
    embedder.embed_documents.side_effect = RuntimeError("quota exceeded")
    store = PulseVectorStore(embedder, db_path=str(tmp_path / "db"))

    with pytest.raises(RuntimeError, match="quota exceeded"):
        store.rebuild("global", _docs("a"))


def test_retriever_returns_documents_with_metadata(vector_store) -> None:
    vector_store.rebuild("global", _docs("alpha", "beta"))

    retriever = vector_store.as_retriever("global", k=1)
    [doc] = retriever.invoke("alpha")

    assert isinstance(retriever, VectorRetriever)
    assert doc.page_content == "alpha"
    assert doc.metadata["channel_name"] == "#general"
    assert doc.metadata["user"] == "U1"
    assert "thread_ts" not in doc.metadata


class _DroppingEmbedder:
    """Drops the collection while the query is being embedded, like a refresh landing mid-search."""

    def __init__(self, inner, store_ref: list) -> None:
        self._inner = inner
        self._store_ref = store_ref

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return self._inner.embed_documents(texts)

    def embed_query(self, text: str) -> list[float]:
        self._store_ref[0].clear("global")
        return self._inner.embed_query(text)


def test_search_during_concurrent_clear_returns_nothing(tmp_path, embedder) -> None:
    store_ref: list = []
    store = PulseVectorStore(_DroppingEmbedder(embedder, store_ref), db_path=str(tmp_path / "racing"))
    store_ref.append(store)
    store.rebuild("global", _docs("hello"))

    assert store.search("global", "hello") == []
    assert not store.collection_exists("global")
