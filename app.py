# app.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from config import Settings
from threat_monitor.classifier import EventClassifier
from threat_monitor.dossier import DossierTaskClient
from threat_monitor.entities import EntityResearcher
from threat_monitor.errors import AuthRequired, InputRejected, UpstreamUnavailable
from threat_monitor.geo_lookup import LocationResolver
from threat_monitor.geocoder import MapboxGeocoder
from threat_monitor.ingest import EventAssembler, ingest_all
from threat_monitor.llm import ChatClient
from threat_monitor.providers import (
    AnswerProvider,
    ChatProvider,
    DeepResearchProvider,
    GeocodingProvider,
    SearchProvider,
)
from threat_monitor.relay import ConflictStreamRelay, EntityResearchRelay
from threat_monitor.store import EventsStore
from threat_monitor.valyu import ValyuClient

logger = logging.getLogger(__name__)


# ----------------------------
# composition root
# ----------------------------
@dataclass
class Services:
    settings: Settings
    search: SearchProvider
    resolver: LocationResolver
    assembler: EventAssembler
    store: EventsStore
    dossiers: DossierTaskClient
    conflicts: ConflictStreamRelay
    entity_stream: EntityResearchRelay
    entities: EntityResearcher

    @classmethod
    def from_providers(
        cls,
        settings: Settings,
        search: SearchProvider,
        answers: AnswerProvider,
        deep_research: DeepResearchProvider,
        geocoder: Optional[GeocodingProvider] = None,
        chat: Optional[ChatProvider] = None,
    ) -> "Services":
        resolver = LocationResolver(geocoder, chat, fuzzy_cutoff=settings.gazetteer_fuzzy_cutoff)
        classifier = EventClassifier.build(resolver, chat)
        dossiers = DossierTaskClient(deep_research)
        return cls(
            settings=settings,
            search=search,
            resolver=resolver,
            assembler=EventAssembler(classifier, max_concurrent=settings.max_concurrent_classifications),
            store=EventsStore(limit=settings.events_cache_limit),
            dossiers=dossiers,
            conflicts=ConflictStreamRelay(answers, buffer_size=settings.stream_buffer_size),
            entity_stream=EntityResearchRelay(answers, buffer_size=settings.stream_buffer_size),
            entities=EntityResearcher(search, resolver, dossiers),
        )


def build_services(settings: Settings) -> Services:
    valyu = ValyuClient(
        api_key=settings.valyu_api_key,
        base_url=settings.valyu_base_url,
        oauth_proxy_url=settings.valyu_oauth_proxy_url,
        timeout=settings.http_timeout_seconds,
    )
    geocoder = MapboxGeocoder(settings.mapbox_token, timeout=settings.http_timeout_seconds) if settings.mapbox_token else None
    chat = (
        ChatClient(
            settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            timeout=settings.http_timeout_seconds,
        )
        if settings.openai_api_key
        else None
    )
    return Services.from_providers(settings, valyu, valyu, valyu, geocoder=geocoder, chat=chat)


# ----------------------------
# request bodies
# ----------------------------
class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: Optional[str] = Field(default=None, alias="accessToken")


class EventsRequest(_Body):
    queries: Optional[List[str]] = None


class DeepResearchRequest(_Body):
    topic: str = ""


class ReportRequest(_Body):
    topic: str = ""
    type: Optional[str] = None


class EntityRequest(_Body):
    name: str = ""
    include_deep_research: bool = Field(default=False, alias="includeDeepResearch")


# ----------------------------
# helpers
# ----------------------------
def _user_token(settings: Settings, access_token: Optional[str]) -> Optional[str]:
    """The token to forward upstream; self-hosted mode never forwards one."""
    if not settings.requires_user_token:
        return None
    if not access_token:
        raise AuthRequired("Authentication required")
    return access_token


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sse(chunks: AsyncIterator) -> StreamingResponse:
    async def event_generator():
        try:
            async for chunk in chunks:
                yield f"data: {json.dumps(chunk.to_wire())}\n\n"
        finally:
            await chunks.aclose()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = settings or (services.settings if services else Settings())
    services = services or build_services(settings)

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    app = FastAPI(
        title="Global Threat Monitor",
        description="Geolocated, threat-ranked security events and streamed intelligence briefings",
        version="0.1.0",
    )
    app.state.services = services

    # ----------------------------
    # error mapping
    # ----------------------------
    @app.exception_handler(AuthRequired)
    async def _auth_required(request: Request, exc: AuthRequired):
        return JSONResponse(
            status_code=401,
            content={"error": "auth_error", "message": str(exc), "requiresReauth": True},
        )

    @app.exception_handler(InputRejected)
    async def _input_rejected(request: Request, exc: InputRejected):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(UpstreamUnavailable)
    async def _upstream_unavailable(request: Request, exc: UpstreamUnavailable):
        logger.warning(f"[API] {request.method} {request.url.path} upstream failure: {exc}")
        return JSONResponse(status_code=502, content={"error": str(exc)})

    # ----------------------------
    # events
    # ----------------------------
    async def _fetch_events(queries: Optional[List[str]], access_token: Optional[str]) -> dict:
        events = await ingest_all(
            services.search,
            services.assembler,
            queries=queries,
            access_token=access_token,
            max_results=settings.search_max_results,
            max_queries=settings.max_queries,
            default_count=settings.default_query_count,
        )
        services.store.add_events(events)
        return {"events": [e.to_wire() for e in events], "count": len(events), "timestamp": _now_iso()}

    @app.post("/events")
    async def post_events(body: EventsRequest):
        token = _user_token(settings, body.access_token)
        return await _fetch_events(body.queries, token)

    @app.get("/events")
    async def get_events(q: Optional[str] = None):
        token = _user_token(settings, None)
        return await _fetch_events([q] if q else None, token)

    # ----------------------------
    # country conflicts
    # ----------------------------
    @app.get("/countries/conflicts")
    async def country_conflicts(
        country: str = "",
        stream: bool = False,
        access_token: Optional[str] = Query(default=None, alias="accessToken"),
    ):
        if not country.strip():
            raise InputRejected("Country parameter is required")
        access_token = _user_token(settings, access_token)

        if stream:
            return _sse(services.conflicts.stream(country, access_token=access_token))

        result = await services.conflicts.fetch(country, access_token=access_token)
        return {"country": country, **result, "timestamp": _now_iso()}

    # ----------------------------
    # deep research
    # ----------------------------
    @app.post("/deepresearch")
    async def create_deepresearch(body: DeepResearchRequest):
        if not body.topic.strip():
            raise InputRejected("Research topic is required")
        token = _user_token(settings, body.access_token)
        task_id = await services.dossiers.create(body.topic, access_token=token)
        return {"taskId": task_id, "status": "queued"}

    @app.get("/deepresearch/{task_id}")
    async def get_deepresearch(task_id: str, access_token: Optional[str] = Query(default=None, alias="accessToken")):
        access_token = _user_token(settings, access_token)
        task = await services.dossiers.poll(task_id, access_token=access_token)
        return task.to_wire()

    @app.post("/reports")
    async def create_report(body: ReportRequest):
        if not body.topic.strip():
            raise InputRejected("Research topic is required")
        token = _user_token(settings, body.access_token)
        report = await services.dossiers.run_report(
            body.topic,
            report_type=body.type,
            access_token=token,
            poll_interval=settings.deepresearch_poll_seconds,
            max_attempts=settings.deepresearch_max_attempts,
        )
        return {"report": report}

    # ----------------------------
    # entities
    # ----------------------------
    @app.post("/entities")
    async def research_entity(body: EntityRequest):
        if not body.name.strip():
            raise InputRejected("Entity name is required")
        token = _user_token(settings, body.access_token)
        profile = await services.entities.research(
            body.name,
            include_deep_research=body.include_deep_research,
            access_token=token,
            poll_interval=settings.deepresearch_poll_seconds,
            max_attempts=settings.deepresearch_max_attempts,
        )
        if profile is None:
            return JSONResponse(status_code=404, content={"error": "Entity not found"})
        return {"entity": profile.to_wire()}

    @app.get("/entities/stream")
    async def stream_entity(name: str = "", access_token: Optional[str] = Query(default=None, alias="accessToken")):
        if not name.strip():
            raise InputRejected("Entity name is required")
        access_token = _user_token(settings, access_token)
        return _sse(services.entity_stream.stream(name, access_token=access_token))

    return app


app = create_app()
