"""
Provider contracts consumed by the monitor core.

Concrete adapters live in valyu.py, geocoder.py and llm.py; tests substitute
in-memory fakes with the same shape.
"""
from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence

from threat_monitor.schema import SearchResponse


class SearchProvider(Protocol):
    async def search(
        self,
        query: str,
        max_results: int = 20,
        freshness: Optional[str] = None,
        access_token: Optional[str] = None,
        search_type: str = "news",
    ) -> SearchResponse: ...


class AnswerProvider(Protocol):
    @property
    def supports_streaming(self) -> bool: ...

    async def answer(
        self,
        query: str,
        excluded_sources: Sequence[str] = (),
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]: ...

    def answer_stream(
        self,
        query: str,
        excluded_sources: Sequence[str] = (),
    ) -> AsyncIterator[Dict[str, Any]]: ...


class DeepResearchProvider(Protocol):
    async def create_task(
        self,
        query: str,
        mode: str,
        output_formats: Sequence[str],
        deliverables: Sequence[Dict[str, Any]],
        access_token: Optional[str] = None,
    ) -> str: ...

    async def task_status(self, task_id: str, access_token: Optional[str] = None) -> Dict[str, Any]: ...


class GeocodingProvider(Protocol):
    async def forward(self, place_name: str) -> List[Dict[str, Any]]: ...

    async def reverse_country(self, lng: float, lat: float) -> Optional[str]: ...


class ChatProvider(Protocol):
    @property
    def configured(self) -> bool: ...

    async def complete(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 200,
        temperature: float = 0.0,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> str: ...
