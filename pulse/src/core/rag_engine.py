"""
Pulse - RAG Engine
===================
Retrieval + generation over a vector collection of Slack messages.

``RAGChain``
    retriever → ``{context}`` → ``ChatPromptTemplate`` (system + human)
    → chat model → answer text.  The composition is identical for every
    call site; only the system template and the retriever differ.

Post-processing (bold stripping, channel-reference rewriting) is the
caller's job, see ``pulse.src.utils.text_utils``.

Model factories build the Gemini clients with ``max_retries`` taken
from ``settings.MODEL_MAX_RETRIES`` (0: a failed call fails the
invocation).

Usage:
    chain  = RAGChain(vector_store.as_retriever("pulse_global"), build_llm(), QUERY_SYSTEM_TEMPLATE)
    answer = await chain.answer("what are people building?")
"""

from __future__ import annotations

import time

from langchain_core.documents import Document
from langchain_core.language_models import BaseChatModel
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.retrievers import BaseRetriever

from pulse.config.settings import settings
from pulse.src.utils.logger import get_logger

logger = get_logger(__name__)


def build_llm() -> BaseChatModel:
    """Initialise the Gemini chat model via LangChain."""
    from langchain_google_genai import ChatGoogleGenerativeAI

    llm = ChatGoogleGenerativeAI(model=settings.LLM_MODEL, temperature=settings.LLM_TEMPERATURE, max_retries=settings.MODEL_MAX_RETRIES, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    logger.info("LLM initialised: %s (temperature=%.1f, max_retries=%d)", settings.LLM_MODEL, settings.LLM_TEMPERATURE, settings.MODEL_MAX_RETRIES)
    return llm


def build_embedder():
    """Initialise the Gemini embedding model via LangChain."""
    from langchain_google_genai import GoogleGenerativeAIEmbeddings

    embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    logger.info("Embedder initialised: %s", settings.EMBEDDING_MODEL)
    return embedder


def format_context(documents: list[Document]) -> str:
    """Join retrieved chunks into the ``{context}`` block."""
    return "\n\n".join(doc.page_content for doc in documents)


class RAGChain:
    """
    Parameters
    ----------
    retriever
        Any LangChain retriever (usually ``PulseVectorStore.as_retriever``).
    llm
        Chat model answering the prompt.
    system_template
        System message; must contain ``{context}``.
    """

    __slots__ = ("_retriever", "_llm", "_prompt", "_parser")

    def __init__(self, retriever: BaseRetriever, llm: BaseChatModel, system_template: str) -> None:
        if "{context}" not in system_template:
            raise ValueError("system_template must contain a {context} placeholder.")
        self._retriever = retriever
        self._llm = llm
        self._prompt = ChatPromptTemplate.from_messages([("system", system_template), ("human", "{input}")])
        self._parser = StrOutputParser()


    async def answer(self, query: str) -> str:
        """Retrieve context for *query* and return the model's answer text."""
        t_search = time.perf_counter()
        documents = await self._retriever.ainvoke(query)
        search_ms = (time.perf_counter() - t_search) * 1000

        messages = self._prompt.format_messages(context=format_context(documents), input=query)

        t_llm = time.perf_counter()
        response = await self._llm.ainvoke(messages)
        llm_ms = (time.perf_counter() - t_llm) * 1000

        answer = self._parser.invoke(response)
        logger.info("[RAG] %d chunk(s) retrieved in %.1fms; LLM answered in %.1fms (%d chars).", len(documents), search_ms, llm_ms, len(answer))
        return answer
