"""
Deep-research dossiers: create a task, poll it, wait for it.

The provider owns task state; DeepResearchTask is a read-only snapshot of
the latest status call. Waiting never raises on timeout; it returns a
synthesized failed task instead.
"""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from threat_monitor.errors import InputRejected, UpstreamUnavailable
from threat_monitor.providers import DeepResearchProvider
from threat_monitor.schema import DeepResearchTask, Deliverable, TaskProgress, TaskStatus, to_sources

logger = logging.getLogger(__name__)

DOSSIER_PROMPT = """Intelligence dossier on {topic}. Include:
- Background and overview
- Key locations and geographic presence (with specific city/country names)
- Organizational structure and leadership
- Related entities, allies, and adversaries
- Recent activities and incidents (2023-2025)
- Threat assessment and capabilities
- Timeline of significant events"""

CSV_COLUMNS = [
    "Category",
    "Name",
    "Description",
    "Location",
    "Latitude",
    "Longitude",
    "Date",
    "Relationship",
    "Source URL",
]

PPTX_SLIDES = 8

# report type -> query template
REPORT_QUERIES = {
    "geopolitical": "geopolitical analysis {topic} regional tensions diplomatic relations",
    "economic": "economic analysis {topic} trade sanctions financial impact",
    "security": "security threat analysis {topic} military defense",
    "humanitarian": "humanitarian crisis {topic} refugee displacement aid",
}
DEFAULT_REPORT_QUERY = "comprehensive analysis {topic}"

_STATUS_MAP: Dict[str, TaskStatus] = {
    "queued": "queued",
    "pending": "queued",
    "running": "running",
    "in_progress": "running",
    "processing": "running",
    "unknown": "running",
    "completed": "completed",
    "failed": "failed",
    "error": "failed",
    "cancelled": "failed",
}


def build_deliverables(topic: str) -> List[Dict[str, Any]]:
    return [
        {
            "type": "csv",
            "description": (
                f"Intelligence data export for {topic}. Include all locations with coordinates, key figures, "
                "related organizations, significant events with dates, and source URLs."
            ),
            "columns": list(CSV_COLUMNS),
            "include_headers": True,
        },
        {
            "type": "pptx",
            "description": (
                f"Executive intelligence briefing on {topic}. Include: overview slide, threat assessment, "
                "key locations map, organizational structure, recent activity timeline, related entities "
                "network, and recommendations."
            ),
            "slides": PPTX_SLIDES,
        },
    ]


def enhance_report_topic(topic: str, report_type: Optional[str] = None) -> str:
    return REPORT_QUERIES.get(report_type or "", DEFAULT_REPORT_QUERY).format(topic=topic)


def normalize_status(raw) -> TaskStatus:
    return _STATUS_MAP.get(str(raw or "unknown").strip().lower(), "running")


def _progress(raw) -> Optional[TaskProgress]:
    if not isinstance(raw, dict):
        return None
    cur = raw.get("current_step", raw.get("currentStep"))
    total = raw.get("total_steps", raw.get("totalSteps"))
    if cur is None or total is None:
        return None
    try:
        return TaskProgress(current_step=int(cur), total_steps=int(total))
    except (TypeError, ValueError):
        return None


def _deliverables(raw) -> Optional[List[Deliverable]]:
    if not isinstance(raw, list):
        return None
    out = []
    for d in raw:
        if not isinstance(d, dict):
            continue
        out.append(
            Deliverable(
                type=str(d.get("type") or "file"),
                title=str(d.get("title") or ""),
                url=d.get("url") or None,
                status=str(d.get("status") or "pending"),
            )
        )
    return out


def to_task(task_id: str, data: Dict[str, Any]) -> DeepResearchTask:
    output = data.get("output")
    if output is not None and not isinstance(output, str):
        output = json.dumps(output)

    return DeepResearchTask(
        task_id=task_id,
        status=normalize_status(data.get("status")),
        progress=_progress(data.get("progress")),
        output=output,
        sources=to_sources(data["sources"]) if isinstance(data.get("sources"), list) else None,
        deliverables=_deliverables(data.get("deliverables")),
        pdf_url=data.get("pdf_url") or data.get("pdfUrl") or None,
        error=data.get("error") or None,
    )


class DossierTaskClient:
    def __init__(
        self,
        provider: DeepResearchProvider,
        mode: str = "fast",
        output_formats: Sequence[str] = ("markdown", "pdf"),
    ):
        self.provider = provider
        self.mode = mode
        self.output_formats = tuple(output_formats)

    async def create(
        self,
        topic: str,
        deliverable_spec: Optional[Sequence[Dict[str, Any]]] = None,
        access_token: Optional[str] = None,
    ) -> str:
        topic = (topic or "").strip()
        if not topic:
            raise InputRejected("Research topic is required")

        deliverables = build_deliverables(topic) if deliverable_spec is None else list(deliverable_spec)
        task_id = await self.provider.create_task(
            DOSSIER_PROMPT.format(topic=topic),
            self.mode,
            self.output_formats,
            deliverables,
            access_token=access_token,
        )
        logger.info(f"[DOSSIER] created task={task_id} topic={topic!r}")
        return task_id

    async def poll(self, task_id: str, access_token: Optional[str] = None) -> DeepResearchTask:
        if not task_id:
            raise InputRejected("Task ID is required")

        data = await self.provider.task_status(task_id, access_token=access_token)
        if data.get("success") is False and not data.get("status"):
            raise UpstreamUnavailable(data.get("error") or "Failed to get task status")
        return to_task(task_id, data)

    async def wait_to_completion(
        self,
        task_id: str,
        poll_interval: float = 5.0,
        max_attempts: int = 120,
        cancel_event: Optional[asyncio.Event] = None,
        on_progress: Optional[Callable[[DeepResearchTask], None]] = None,
        access_token: Optional[str] = None,
    ) -> DeepResearchTask:
        """
        Poll until the task is terminal or max_attempts polls have been made.

        Transient provider failures are retried on the next interval.
        Setting cancel_event returns the latest snapshot early; cancelling
        the awaiting task raises CancelledError with no sleep left pending.
        """
        last = DeepResearchTask(task_id=task_id, status="queued")

        for attempt in range(1, max_attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                return last

            try:
                last = await self.poll(task_id, access_token=access_token)
            except UpstreamUnavailable as e:
                logger.warning(f"[DOSSIER] poll {attempt}/{max_attempts} failed for task={task_id}: {e}")
            else:
                if on_progress is not None:
                    on_progress(last)
                if last.progress:
                    logger.info(
                        f"[DOSSIER] task={task_id} progress={last.progress.current_step}/{last.progress.total_steps}"
                    )
                if last.is_terminal:
                    return last

            if attempt == max_attempts:
                break

            if cancel_event is None:
                await asyncio.sleep(poll_interval)
            else:
                try:
                    await asyncio.wait_for(cancel_event.wait(), timeout=poll_interval)
                except asyncio.TimeoutError:
                    continue
                logger.info(f"[DOSSIER] wait cancelled for task={task_id}")
                return last

        logger.warning(f"[DOSSIER] task={task_id} timed out after {max_attempts} attempts")
        return DeepResearchTask(
            task_id=task_id,
            status="failed",
            progress=last.progress,
            error=f"Research timed out after {max_attempts} attempts",
        )

    async def run_report(
        self,
        topic: str,
        report_type: Optional[str] = None,
        access_token: Optional[str] = None,
        poll_interval: float = 5.0,
        max_attempts: int = 120,
    ) -> Dict[str, Any]:
        """Create a dossier for an enhanced topic and block until it settles."""
        topic = (topic or "").strip()
        if not topic:
            raise InputRejected("Research topic is required")

        task_id = await self.create(enhance_report_topic(topic, report_type), access_token=access_token)
        task = await self.wait_to_completion(
            task_id, poll_interval=poll_interval, max_attempts=max_attempts, access_token=access_token
        )

        if task.status == "completed":
            summary = task.output or ""
        elif task.error and "timed out" in task.error:
            summary = "Research timed out."
        else:
            summary = "Research did not complete successfully."

        now = datetime.now(timezone.utc)
        return {
            "id": f"report_{int(now.timestamp() * 1000)}",
            "topic": topic,
            "type": report_type or "general",
            "summary": summary,
            "sources": [s.to_wire() for s in task.sources or []],
            "deliverables": [d.to_wire() for d in task.available_deliverables],
            "pdfUrl": task.pdf_url,
            "generatedAt": now.isoformat(),
        }
