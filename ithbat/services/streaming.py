from __future__ import annotations

from ithbat.models.events import EventType, SSEEvent
from ithbat.models.research import DEFAULT_STEP_TITLES, Source, StepType


def session_init(session_id: str) -> SSEEvent:
    return SSEEvent(event=EventType.SESSION_INIT, data={"sessionId": session_id})


def personal_question() -> SSEEvent:
    return SSEEvent(event=EventType.PERSONAL_QUESTION)


def step_start(step: StepType, title: str | None = None) -> SSEEvent:
    return SSEEvent(
        event=EventType.STEP_START,
        data={"step": step.value, "stepTitle": title or DEFAULT_STEP_TITLES[step]},
    )


def step_content(step: StepType, content: str) -> SSEEvent:
    return SSEEvent(event=EventType.STEP_CONTENT, data={"step": step.value, "content": content})


def step_complete(step: StepType) -> SSEEvent:
    return SSEEvent(event=EventType.STEP_COMPLETE, data={"step": step.value})


def source(src: Source) -> SSEEvent:
    return SSEEvent(event=EventType.SOURCE, data={"source": src.to_dict()})


def response_start() -> SSEEvent:
    return SSEEvent(event=EventType.RESPONSE_START)


def response_content(chunk: str) -> SSEEvent:
    return SSEEvent(event=EventType.RESPONSE_CONTENT, data={"content": chunk})


def error(message: str) -> SSEEvent:
    return SSEEvent(event=EventType.ERROR, data={"error": message})


def done() -> SSEEvent:
    return SSEEvent(event=EventType.DONE)
