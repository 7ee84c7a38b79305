"""
Valyu search / answer / deep-research client.

Two call paths:
  - direct: the server's VALYU_API_KEY against the public API
  - proxied: a user's OAuth access token through the platform proxy, which
    forwards {path, method, body} to the same API
Search results are normalised to SearchResult rows.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, Optional, Sequence

import httpx
from dateutil import parser

from threat_monitor.errors import AuthRequired, UpstreamUnavailable
from threat_monitor.schema import SearchResponse, SearchResult

logger = logging.getLogger(__name__)

FRESHNESS_DAYS = {"day": 1, "week": 7, "month": 30}


def _parse_published(value) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # epoch millis vs seconds
        seconds = value / 1000.0 if value > 1e12 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, datetime):
        ts = value
    else:
        try:
            ts = parser.parse(str(value))
        except (ValueError, OverflowError):
            return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.isoformat()


def _to_result(raw: Dict[str, Any]) -> SearchResult:
    content = raw.get("content")
    return SearchResult(
        title=str(raw.get("title") or "Untitled"),
        url=str(raw.get("url") or ""),
        content=content if isinstance(content, str) else "",
        published_date=_parse_published(raw.get("date") or raw.get("publication_date")),
        source=raw.get("source") or None,
    )


def _json_body(resp: httpx.Response, path: str) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError as e:
        raise UpstreamUnavailable(f"{path} returned invalid JSON") from e
    if not isinstance(data, dict):
        raise UpstreamUnavailable(f"{path} returned an unexpected body")
    return data


def _stream_message(message) -> Optional[Dict[str, Any]]:
    """One answer stream event -> {"type": "content"|"search_results", ...} or None."""
    if not isinstance(message, dict):
        return None
    if message.get("search_results") is not None:
        return {"type": "search_results", "search_results": message["search_results"]}
    if message.get("type") == "content" and message.get("content"):
        return {"type": "content", "content": message["content"]}
    # chat-completions style delta
    choices = message.get("choices") or []
    if choices and isinstance(choices[0], dict):
        text = (choices[0].get("delta") or {}).get("content")
        if text:
            return {"type": "content", "content": text}
    return None


class ValyuClient:
    def __init__(
        self,
        api_key: str = "",
        base_url: str = "https://api.valyu.ai",
        oauth_proxy_url: str = "https://platform.valyu.ai/api/oauth/proxy",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.oauth_proxy_url = oauth_proxy_url
        self.timeout = timeout
        self._transport = transport

    @property
    def supports_streaming(self) -> bool:
        return bool(self.api_key)

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout or self.timeout, transport=self._transport)

    async def _call_direct(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.api_key:
            raise UpstreamUnavailable("VALYU_API_KEY environment variable is not set")
        headers = {"x-api-key": self.api_key, "Content-Type": "application/json"}
        try:
            async with self._client() as client:
                resp = await client.request(method, f"{self.base_url}{path}", json=body, headers=headers)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"{path} request failed: {e}") from e
        if resp.status_code in (401, 403):
            raise UpstreamUnavailable(f"{path} rejected the server API key (HTTP {resp.status_code})")
        if not resp.is_success:
            raise UpstreamUnavailable(f"{path} failed: HTTP {resp.status_code}")
        return _json_body(resp, path)

    async def _call_proxy(
        self, method: str, path: str, body: Optional[Dict[str, Any]], access_token: str
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"path": path, "method": method}
        if body is not None:
            payload["body"] = body
        headers = {"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"}
        try:
            async with self._client() as client:
                resp = await client.post(self.oauth_proxy_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"proxy call to {path} failed: {e}") from e
        if resp.status_code in (401, 403):
            raise AuthRequired("Session expired. Please sign in again.")
        if not resp.is_success:
            raise UpstreamUnavailable(f"proxy call to {path} failed: HTTP {resp.status_code}")
        return _json_body(resp, path)

    async def _call(
        self, method: str, path: str, body: Optional[Dict[str, Any]] = None, access_token: Optional[str] = None
    ) -> Dict[str, Any]:
        if access_token:
            return await self._call_proxy(method, path, body, access_token)
        return await self._call_direct(method, path, body)

    # ----------------------------
    # search
    # ----------------------------
    async def search(
        self,
        query: str,
        max_results: int = 20,
        freshness: Optional[str] = None,
        access_token: Optional[str] = None,
        search_type: str = "news",
    ) -> SearchResponse:
        body: Dict[str, Any] = {
            "query": query,
            "search_type": search_type,
            "max_num_results": max_results,
        }
        if freshness in FRESHNESS_DAYS:
            start = datetime.now(timezone.utc) - timedelta(days=FRESHNESS_DAYS[freshness])
            body["start_date"] = start.date().isoformat()

        try:
            data = await self._call("POST", "/v1/search", body, access_token)
        except AuthRequired:
            return SearchResponse(results=[], requires_reauth=True)

        rows = data.get("results") or []
        return SearchResponse(results=[_to_result(r) for r in rows if isinstance(r, dict)])

    # ----------------------------
    # answer
    # ----------------------------
    async def answer(
        self,
        query: str,
        excluded_sources: Sequence[str] = (),
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        body = {"query": query, "excluded_sources": list(excluded_sources), "streaming": False}
        return await self._call("POST", "/v1/answer", body, access_token)

    async def answer_stream(
        self,
        query: str,
        excluded_sources: Sequence[str] = (),
    ) -> AsyncIterator[Dict[str, Any]]:
        if not self.api_key:
            raise UpstreamUnavailable("VALYU_API_KEY environment variable is not set")
        body = {"query": query, "excluded_sources": list(excluded_sources), "streaming": True}
        headers = {"x-api-key": self.api_key, "Accept": "text/event-stream"}

        # answers can take minutes; only the connect phase is bounded
        timeout = httpx.Timeout(self.timeout, read=None)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                async with client.stream("POST", f"{self.base_url}/v1/answer", json=body, headers=headers) as resp:
                    if not resp.is_success:
                        raise UpstreamUnavailable(f"/v1/answer stream failed: HTTP {resp.status_code}")
                    async for line in resp.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if not data:
                            continue
                        if data == "[DONE]":
                            return
                        try:
                            message = json.loads(data)
                        except json.JSONDecodeError:
                            logger.warning(f"[VALYU] skipping malformed stream line: {data[:80]}")
                            continue
                        normalized = _stream_message(message)
                        if normalized is not None:
                            yield normalized
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"/v1/answer stream failed: {e}") from e

    # ----------------------------
    # deep research
    # ----------------------------
    async def create_task(
        self,
        query: str,
        mode: str,
        output_formats: Sequence[str],
        deliverables: Sequence[Dict[str, Any]],
        access_token: Optional[str] = None,
    ) -> str:
        body = {
            "query": query,
            "mode": mode,
            "output_formats": list(output_formats),
            "deliverables": list(deliverables),
        }
        data = await self._call("POST", "/v1/deepresearch/tasks", body, access_token)
        if data.get("success") is False:
            raise UpstreamUnavailable(data.get("error") or "Failed to create research task")
        task_id = data.get("deepresearch_id") or data.get("id")
        if not task_id:
            raise UpstreamUnavailable("deep research provider returned no task id")
        return str(task_id)

    async def task_status(self, task_id: str, access_token: Optional[str] = None) -> Dict[str, Any]:
        return await self._call("GET", f"/v1/deepresearch/tasks/{task_id}/status", None, access_token)
