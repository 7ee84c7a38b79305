"""
Streamed analytical answers relayed as typed chunks.

A producer task pushes chunk messages into a bounded asyncio.Queue; the
consumer drains it as an async iterator. Each stream ends with exactly one
terminal chunk (done or error). Closing the consumer cancels the producer.
"""
from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence

from config import EXCLUDED_ANSWER_SOURCES
from threat_monitor.errors import AuthRequired, InputRejected, UpstreamUnavailable
from threat_monitor.providers import AnswerProvider
from threat_monitor.schema import ConflictStreamChunk, EntityStreamChunk, Source, to_sources

logger = logging.getLogger(__name__)

CURRENT_CONFLICTS_QUERY = (
    "List all current, ongoing, or brewing conflicts, wars, military tensions, and security threats "
    "involving {country} as of 2024-2026. Include active military operations, border disputes, civil "
    "unrest, terrorism threats, and geopolitical tensions. If there are no current conflicts, state that clearly."
)
PAST_CONFLICTS_QUERY = (
    "List all major historical wars, conflicts, and military engagements that {country} has been involved "
    "in throughout history (excluding any ongoing conflicts). Include the dates, opposing parties, and brief "
    "outcomes for each conflict. Focus on conflicts that have ended."
)
ENTITY_OVERVIEW_QUERY = """Provide a comprehensive overview of {name}. Include:
- What/who they are and their background
- Key facts, history, and significance
- Notable activities, operations, or achievements
- Current status and recent developments
- Geographic presence and areas of operation

Be thorough but concise. Focus on verified facts from reliable sources."""

NO_PAST_CONFLICTS = "No historical conflict information found."
NO_CURRENT_CONFLICTS = "No current conflict information found."


def _text(contents) -> str:
    if contents is None:
        return ""
    return contents if isinstance(contents, str) else json.dumps(contents)


class ChunkRelay:
    """Base relay: subclasses implement _produce() and name the chunk model."""

    chunk_model: Any = None

    def __init__(
        self,
        answers: AnswerProvider,
        buffer_size: int = 32,
        excluded_sources: Sequence[str] = tuple(EXCLUDED_ANSWER_SOURCES),
    ):
        self.answers = answers
        self.buffer_size = max(1, buffer_size)
        self.excluded_sources = tuple(excluded_sources)

    def _chunk(self, type_: str, **fields):
        return self.chunk_model(type=type_, **fields)

    async def _produce(self, emit: Callable[[Any], Awaitable[None]], subject: str, access_token: Optional[str]) -> None:
        raise NotImplementedError

    async def _phase(
        self,
        emit: Callable[[Any], Awaitable[None]],
        query: str,
        content_type: str,
        sources_type: str,
        access_token: Optional[str],
    ) -> None:
        """One answer: content chunks as they arrive, then at most one sources chunk."""
        sources: List[Source] = []
        saw_sources = False

        if self.answers.supports_streaming and not access_token:
            async with contextlib.aclosing(self.answers.answer_stream(query, self.excluded_sources)) as messages:
                async for msg in messages:
                    if msg.get("type") == "content" and msg.get("content"):
                        await emit(self._chunk(content_type, content=_text(msg["content"])))
                    elif msg.get("type") == "search_results" and msg.get("search_results") is not None:
                        saw_sources = True
                        sources.extend(to_sources(msg["search_results"]))
        else:
            data = await self.answers.answer(query, self.excluded_sources, access_token=access_token)
            contents = _text(data.get("contents"))
            if contents:
                await emit(self._chunk(content_type, content=contents))
            if data.get("search_results") is not None:
                saw_sources = True
                sources = to_sources(data["search_results"])

        if saw_sources:
            await emit(self._chunk(sources_type, sources=sources))

    async def _run(self, queue: asyncio.Queue, subject: str, access_token: Optional[str]) -> None:
        try:
            await self._produce(queue.put, subject, access_token)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[RELAY] {type(self).__name__} failed for {subject!r}: {e}")
            await queue.put(self._chunk("error", error=str(e) or "Unknown error occurred"))
        else:
            await queue.put(self._chunk("done"))

    async def _relay(self, subject: str, access_token: Optional[str]) -> AsyncIterator:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.buffer_size)
        producer = asyncio.create_task(self._run(queue, subject, access_token))
        try:
            while True:
                chunk = await queue.get()
                yield chunk
                if chunk.is_terminal:
                    break
        finally:
            producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await producer

    def stream(self, subject: str, access_token: Optional[str] = None) -> AsyncIterator:
        subject = (subject or "").strip()
        if not subject:
            raise InputRejected("a subject is required to stream")
        return self._relay(subject, access_token)


class ConflictStreamRelay(ChunkRelay):
    """Country conflicts: current situation first, then history."""

    chunk_model = ConflictStreamChunk

    async def _produce(self, emit, country: str, access_token: Optional[str]) -> None:
        await self._phase(
            emit, CURRENT_CONFLICTS_QUERY.format(country=country), "current_content", "current_sources", access_token
        )
        await self._phase(
            emit, PAST_CONFLICTS_QUERY.format(country=country), "past_content", "past_sources", access_token
        )

    async def fetch(self, country: str, access_token: Optional[str] = None) -> Dict[str, Any]:
        """Both phases at once, without streaming."""
        country = (country or "").strip()
        if not country:
            raise InputRejected("Country parameter is required")

        past, current = await asyncio.gather(
            self.answers.answer(PAST_CONFLICTS_QUERY.format(country=country), self.excluded_sources, access_token=access_token),
            self.answers.answer(CURRENT_CONFLICTS_QUERY.format(country=country), self.excluded_sources, access_token=access_token),
            return_exceptions=True,
        )

        def _section(result, fallback: str) -> Dict[str, Any]:
            if isinstance(result, AuthRequired):
                raise result
            if isinstance(result, UpstreamUnavailable):
                logger.warning(f"[RELAY] conflict answer failed for {country!r}: {result}")
                result = {}
            elif isinstance(result, BaseException):
                raise result
            return {
                "conflicts": _text(result.get("contents")) or fallback,
                "sources": [s.to_wire() for s in to_sources(result.get("search_results"))],
            }

        return {
            "past": _section(past, NO_PAST_CONFLICTS),
            "current": _section(current, NO_CURRENT_CONFLICTS),
        }


class EntityResearchRelay(ChunkRelay):
    """Entity overview as content chunks, then sources."""

    chunk_model = EntityStreamChunk

    async def _produce(self, emit, name: str, access_token: Optional[str]) -> None:
        await self._phase(emit, ENTITY_OVERVIEW_QUERY.format(name=name), "content", "sources", access_token)
