import math

import pytest
from langchain_core.documents import Document

from conftest import StubRedis, decode_chars, encode_chars, message_record
from pulse.src.core.ingestor import DocumentBuilder, IndexRefresher, MessageChunker
from pulse.src.database.message_store import MessageStore, RawMessage


# ── DocumentBuilder ────────────────────────────────────────────────────


def test_document_body_embeds_date_and_channel(directory) -> None:
    builder = DocumentBuilder(directory)
    msg = RawMessage(ts=1700000000, channel="C123", user="U1", text="hello")

    [doc] = builder.build([msg])

    assert doc.page_content == "TEXT: hello\n--- METADATA ---\nDATE: 2023-11-14T22:13:20.000Z\nCHANNEL: #general\n--- METADATA END ---"
    assert doc.metadata == {"user": "U1", "date": "2023-11-14T22:13:20.000Z", "channel_name": "#general"}
    assert doc.id


def test_thread_id_is_rendered_when_present(directory) -> None:
    msg = RawMessage(ts=1700000000, channel="C123", user="U1", text="reply", thread_ts="1699999999.000100")

    doc = DocumentBuilder(directory).to_document(msg)

    assert "THREAD ID: 1699999999.000100" in doc.page_content
    assert doc.metadata["thread_ts"] == "1699999999.000100"


def test_unresolved_channels_are_skipped_by_default(directory) -> None:
    messages = [
        RawMessage(ts=1, channel="C123", text="known"),
        RawMessage(ts=2, channel="C999", text="unknown"),
        RawMessage(ts=3, channel="C456", text=""),
    ]

    documents = DocumentBuilder(directory).build(messages)

    assert len(documents) <= len(messages)
    assert [doc.metadata["channel_name"] for doc in documents] == ["#general"]


def test_unresolved_channels_fall_back_to_raw_id_when_kept(directory) -> None:
    documents = DocumentBuilder(directory).build([RawMessage(ts=2, channel="C999", text="unknown")], skip_unresolved=False)

    assert "CHANNEL: #C999" in documents[0].page_content


def test_every_document_gets_a_unique_id(directory) -> None:
    messages = [RawMessage(ts=i, channel="C123", text="same") for i in range(5)]

    ids = {doc.id for doc in DocumentBuilder(directory).build(messages)}

    assert len(ids) == 5


# ── MessageChunker ─────────────────────────────────────────────────────


def test_short_document_is_a_single_chunk(char_chunker) -> None:
    doc = Document(id="d1", page_content="short text", metadata={"channel_name": "#general"})

    [chunk] = char_chunker.split_documents([doc])

    assert chunk.page_content == "short text"
    assert chunk.metadata == {"channel_name": "#general", "doc_id": "d1", "chunk_index": 0}


@pytest.mark.parametrize("length", [101, 170, 250, 1000])
def test_chunks_respect_budget_and_overlap(char_chunker, length) -> None:
    text = "".join(chr(ord("a") + i % 26) for i in range(length))

    chunks = char_chunker.split_text(text)

    # Windows start every (size - overlap) tokens until one reaches the end
    assert len(chunks) >= math.ceil((length - 20) / 80)
    assert all(len(chunk) <= 100 for chunk in chunks)
    for i, chunk in enumerate(chunks[: math.ceil((length - 20) / 80)]):
        assert chunk == text[80 * i : 80 * i + 100]
    assert chunks[0][80:] == chunks[1][:20]


def test_chunks_inherit_parent_metadata(char_chunker) -> None:
    doc = Document(id="d1", page_content="x" * 250, metadata={"user": "U1", "date": "2023-11-14T22:13:20.000Z"})

    chunks = char_chunker.split_documents([doc])

    assert [chunk.metadata["chunk_index"] for chunk in chunks][:3] == [0, 1, 2]
    assert all(chunk.metadata["user"] == "U1" and chunk.metadata["doc_id"] == "d1" for chunk in chunks)


def test_chunker_rejects_overlap_not_below_size() -> None:
    with pytest.raises(ValueError):
        MessageChunker(chunk_size=20, chunk_overlap=20, encode=encode_chars, decode=decode_chars)


# ── IndexRefresher ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_refresh_replaces_rather_than_accumulates(directory, vector_store, doc_chunker) -> None:
    client = StubRedis([message_record(2.0, "C123", "second"), message_record(1.0, "C123", "first")])
    refresher = IndexRefresher(MessageStore(client), directory, vector_store, chunker=doc_chunker, collection="global")

    first = await refresher.refresh()
    second = await refresher.refresh()

    assert first == second == 2
    assert vector_store.count("global") == 2


@pytest.mark.asyncio
async def test_refresh_skips_unknown_channels(directory, vector_store, doc_chunker) -> None:
    client = StubRedis([message_record(2.0, "C999", "stray"), message_record(1.0, "C456", "kept")])
    refresher = IndexRefresher(MessageStore(client), directory, vector_store, chunker=doc_chunker, collection="global")

    assert await refresher.refresh() == 1
    [hit] = vector_store.search("global", "kept", limit=5)
    assert hit["channel_name"] == "#random"


@pytest.mark.asyncio
async def test_refresh_channel_indexes_and_drop_removes_collection(directory, vector_store, doc_chunker) -> None:
    refresher = IndexRefresher(MessageStore(StubRedis([])), directory, vector_store, chunker=doc_chunker)
    messages = [RawMessage(ts=1, channel="C777", text="standup notes")]

    assert await refresher.refresh_channel("local_1", messages) == 1
    assert vector_store.collection_exists("local_1")

    await refresher.drop("local_1")

    assert not vector_store.collection_exists("local_1")
