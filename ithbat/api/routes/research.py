from __future__ import annotations

import json

from fastapi import APIRouter, HTTPException
from sse_starlette.sse import EventSourceResponse

from ithbat.agents.orchestrator import ResearchOrchestrator
from ithbat.models.schemas import ResearchRequest
from ithbat.services import logger as log_service

router = APIRouter(prefix="/api/research", tags=["research"])


def build_orchestrator(session_id: str | None = None) -> ResearchOrchestrator:
    return ResearchOrchestrator(session_id=session_id)


@router.post("")
async def research(request: ResearchRequest):
    """Run a research session, streaming its events as SSE."""
    query = (request.query or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="Query is required")

    orchestrator = build_orchestrator(request.session_id)
    history = [turn.to_turn() for turn in request.conversation_history]

    async def event_generator():
        try:
            async for event in orchestrator.research(query, history, request.language):
                yield {"data": json.dumps(event.payload(), ensure_ascii=False)}
        finally:
            if orchestrator.cancelled:
                log_service.log_event(
                    event_type="research_cancelled",
                    message="Client disconnected",
                    session_id=orchestrator.session_id,
                )

    return EventSourceResponse(event_generator(), sep="\n")
