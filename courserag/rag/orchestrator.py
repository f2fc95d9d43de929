"""RAG orchestrator: retrieval, prompt assembly and generation."""
from typing import Any, Dict, List

import structlog

from courserag import config
from courserag.errors import GenerationServiceError, ValidationError
from courserag.llm_client import GenerationClient
from courserag.rag.models import RAGAnswer, RetrievalResult
from courserag.rag.retriever import Retriever, format_context

logger = structlog.get_logger()

SYSTEM_PROMPT = (
    "You are a helpful assistant for the Physical AI & Humanoid Robotics course. "
    "Use the provided context to answer questions accurately and reference the "
    "relevant modules when possible. Be concise but comprehensive."
)

USER_PROMPT_TEMPLATE = (
    "Context: {context}\n\n"
    "Question: {query}\n\n"
    "Please provide a helpful answer based on the context. If the context doesn't "
    "contain relevant information, please say so and suggest where the user might "
    "find the information in the course."
)

GENERATION_FAILED_NOTICE = (
    "Could not generate a response due to an API error, but here are some relevant documents:"
)
NO_ANSWER_NOTICE = (
    "Could not generate a response and no relevant course content was found for this question."
)


def build_messages(query: str, context: str) -> List[Dict[str, str]]:
    """System + user prompt pair for the generation model."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": USER_PROMPT_TEMPLATE.format(context=context, query=query)},
    ]


def validate_query(query: Any) -> str:
    """Return the stripped query or raise ValidationError."""
    if not isinstance(query, str) or not query.strip():
        raise ValidationError("Query is required")
    return query.strip()


class RAGOrchestrator:
    """Answers a query from retrieved course content."""

    def __init__(
        self,
        retriever: Retriever,
        generator: GenerationClient,
        top_k: int = None,
        max_context_chars: int = None,
    ):
        self.retriever = retriever
        self.generator = generator
        self.top_k = top_k or config.RETRIEVAL_TOP_K
        self.max_context_chars = max_context_chars or config.MAX_CONTEXT_CHARS

    def _fallback(self, results: List[RetrievalResult], sources: List[str]) -> RAGAnswer:
        if not results:
            return RAGAnswer(response=NO_ANSWER_NOTICE, sources=[], retrieved_count=0, fallback_context="")
        return RAGAnswer(
            response=GENERATION_FAILED_NOTICE,
            sources=sources,
            retrieved_count=len(results),
            fallback_context="\n\n".join(r.content for r in results),
        )

    async def answer(self, query: Any) -> RAGAnswer:
        """Answer a query with retrieval-augmented generation.

        Args:
            query: User query text

        Returns:
            RAGAnswer; when generation fails it carries the retrieved
            passages as ``fallback_context`` instead of a generated answer

        Raises:
            ValidationError: If the query is missing or blank
        """
        query = validate_query(query)

        logger.info("rag_request_received", query_length=len(query), query_preview=query[:100])

        results = await self.retriever.retrieve(query, top_k=self.top_k)
        sources = [r.source for r in results]
        context = format_context(results, max_chars=self.max_context_chars)

        if not results:
            logger.info("no_relevant_context_found")

        try:
            text = await self.generator.chat(build_messages(query, context))
        except GenerationServiceError as e:
            logger.error(
                "generation_failed_returning_passages",
                error=str(e),
                retryable=e.retryable,
                retrieved=len(results),
            )
            return self._fallback(results, sources)

        logger.info(
            "rag_response_generated",
            response_length=len(text),
            retrieved=len(results),
            context_length=len(context),
        )

        return RAGAnswer(response=text, sources=sources, retrieved_count=len(results))
