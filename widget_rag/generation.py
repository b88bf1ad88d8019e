"""Chat orchestration: retrieved context plus conversation history to an LLM.

Provides:
- LLMProvider: interface for chat completion backends.
- OpenAIChatProvider: default provider using OpenAI chat completions.
- build_system_prompt: bot instructions plus either the retrieved context block or
  an instruction to say the knowledge base does not cover the question.
- ChatOrchestrator: retrieve, prompt, complete.

Configuration is read from widget_rag.config.settings.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence

import openai
from openai import OpenAI

from widget_rag.config import settings
from widget_rag.embedding import classify_openai_error
from widget_rag.errors import DependencyError
from widget_rag.retrieval import RetrievalService
from widget_rag.scope import Scope

logger = logging.getLogger(__name__)

Message = Dict[str, str]

DEFAULT_INSTRUCTIONS = (
    "You are a helpful assistant embedded on a business website. Answer visitor questions "
    "politely and concisely."
)


class LLMProvider(Protocol):
    def complete(self, system_prompt: str, messages: Sequence[Message]) -> str:
        ...


class OpenAIChatProvider:
    """Chat completions via the OpenAI API."""

    def __init__(self, client: Optional[OpenAI] = None, model: Optional[str] = None, max_tokens: Optional[int] = None):
        self._client = client or OpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
            max_retries=0,
        )
        self.model = model or settings.OPENAI_MODEL
        self.max_tokens = max_tokens or settings.MAX_OUTPUT_TOKENS

    def complete(self, system_prompt: str, messages: Sequence[Message]) -> str:
        try:
            resp = self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "system", "content": system_prompt}, *messages],
                temperature=0.2,
                max_tokens=self.max_tokens,
            )
        except openai.OpenAIError as exc:
            raise classify_openai_error(exc) from exc
        return (resp.choices[0].message.content or "").strip()


def _build_context(chunks: Sequence[str]) -> str:
    """Enumerated context block from retrieved chunks."""
    return "\n\n".join(f"[{i}] {c}" for i, c in enumerate(chunks, start=1))


def build_system_prompt(instructions: Optional[str], chunks: Sequence[str]) -> str:
    base = (instructions or DEFAULT_INSTRUCTIONS).strip()
    if not chunks:
        return (
            f"{base}\n\n"
            "The knowledge base has no information relevant to this question. Tell the visitor "
            "you don't have that information and suggest contacting the business directly. "
            "Do not guess or invent an answer."
        )
    return (
        f"{base}\n\n"
        "Use ONLY the following knowledge base excerpts to answer. If the answer is not clearly "
        "supported by them, say you don't know.\n\n"
        f"Knowledge base:\n{_build_context(chunks)}"
    )


@dataclass
class ChatReply:
    """Assistant answer plus what retrieval contributed.

    Attributes:
        answer: Assistant text.
        context_found: Whether any chunk cleared the relevance threshold.
        retrieval_error: Set when retrieval was empty because a dependency failed.
    """
    answer: str
    context_found: bool
    retrieval_error: Optional[DependencyError] = None


class ChatOrchestrator:
    """Thin consumer of the retrieval service and an LLM provider."""

    def __init__(self, retrieval: RetrievalService, llm: LLMProvider, top_k: int = 5, max_history: int = 10):
        self.retrieval = retrieval
        self.llm = llm
        self.top_k = top_k
        self.max_history = max_history

    def answer(
        self,
        scope: Scope,
        message: str,
        history: Optional[List[Message]] = None,
        instructions: Optional[str] = None,
    ) -> ChatReply:
        """Answer ``message`` using context retrieved inside ``scope``.

        Raises:
            DependencyError: If the LLM call fails.
        """
        found = self.retrieval.search(scope, message, self.top_k)
        system_prompt = build_system_prompt(instructions, found.chunks)
        messages = list(history or [])[-self.max_history:] + [{"role": "user", "content": message}]
        answer = self.llm.complete(system_prompt, messages)
        logger.info("Chat answered for %r with %d context chunks", scope, len(found.chunks))
        return ChatReply(answer=answer, context_found=bool(found.chunks), retrieval_error=found.error)
