from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ithbat.models.events import EventType, SSEEvent


class StepType(str, Enum):
    UNDERSTANDING = "understanding"
    SEARCHING = "searching"
    EXPLORING = "exploring"
    SYNTHESIZING = "synthesizing"


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


DEFAULT_STEP_TITLES: dict[StepType, str] = {
    StepType.UNDERSTANDING: "Understanding your question",
    StepType.SEARCHING: "Researching Islamic sources",
    StepType.EXPLORING: "Verifying sources",
    StepType.SYNTHESIZING: "Compiling evidence",
}

# Allowed forward moves; anything else is a regression.
_TRANSITIONS: dict[StepStatus, tuple[StepStatus, ...]] = {
    StepStatus.PENDING: (StepStatus.IN_PROGRESS, StepStatus.ERROR),
    StepStatus.IN_PROGRESS: (StepStatus.COMPLETED, StepStatus.ERROR),
    StepStatus.COMPLETED: (),
    StepStatus.ERROR: (),
}


class StepTransitionError(ValueError):
    """Raised when a step would move backwards or append outside in_progress."""


@dataclass
class PipelineStep:
    """One stage of a research session. Content is append-only."""

    id: str
    type: StepType
    title: str
    status: StepStatus = StepStatus.PENDING
    content: str = ""
    start_time: float | None = None
    end_time: float | None = None

    def _move(self, target: StepStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise StepTransitionError(
                f"Step {self.type.value} cannot move from {self.status.value} to {target.value}"
            )
        self.status = target

    def start(self) -> None:
        self._move(StepStatus.IN_PROGRESS)
        self.start_time = time.time()

    def append(self, delta: str) -> None:
        if self.status != StepStatus.IN_PROGRESS:
            raise StepTransitionError(
                f"Cannot append to step {self.type.value} while {self.status.value}"
            )
        self.content += delta

    def complete(self) -> None:
        self._move(StepStatus.COMPLETED)
        self.end_time = time.time()

    def fail(self) -> None:
        self._move(StepStatus.ERROR)
        self.end_time = time.time()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "status": self.status.value,
            "title": self.title,
            "content": self.content,
            "startTime": self.start_time,
            "endTime": self.end_time,
        }


@dataclass(frozen=True, slots=True)
class Source:
    id: int
    title: str
    url: str
    domain: str
    trusted: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "domain": self.domain,
            "trusted": self.trusted,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Source":
        return cls(
            id=int(data["id"]),
            title=str(data.get("title", "")),
            url=str(data["url"]),
            domain=str(data.get("domain", "")),
            trusted=bool(data.get("trusted", False)),
        )


@dataclass(frozen=True, slots=True)
class ConversationTurn:
    query: str
    response: str


def session_state(
    steps: list[PipelineStep],
    sources: list[Source],
    response: str,
) -> dict[str, Any]:
    """Comparable view of a session, without wall-clock fields."""
    return {
        "steps": [
            {
                "type": s.type.value,
                "status": s.status.value,
                "title": s.title,
                "content": s.content,
            }
            for s in steps
        ],
        "sources": [s.to_dict() for s in sources],
        "response": response,
    }


@dataclass
class ResearchTranscript:
    """Rebuilds a session's state by folding its event stream in order.

    A client that replays every event of a session through ``apply`` ends
    with the same steps, sources and response text the server produced.
    """

    session_id: str | None = None
    steps: list[PipelineStep] = field(default_factory=list)
    sources: list[Source] = field(default_factory=list)
    response: str = ""
    response_started: bool = False
    personal_question: bool = False
    error: str | None = None
    done: bool = False

    def _step(self, step_type: str) -> PipelineStep:
        for step in reversed(self.steps):
            if step.type.value == step_type:
                return step
        raise StepTransitionError(f"No step started for {step_type}")

    def apply(self, event: SSEEvent) -> None:
        data = event.data
        etype = event.event

        if etype == EventType.SESSION_INIT:
            self.session_id = data.get("sessionId")
        elif etype == EventType.PERSONAL_QUESTION:
            self.personal_question = True
        elif etype == EventType.STEP_START:
            step_type = StepType(data["step"])
            step = PipelineStep(
                id=f"{step_type.value}-{len(self.steps) + 1}",
                type=step_type,
                title=data.get("stepTitle") or DEFAULT_STEP_TITLES[step_type],
            )
            step.start()
            self.steps.append(step)
        elif etype == EventType.STEP_CONTENT:
            self._step(data["step"]).append(data.get("content", ""))
        elif etype == EventType.STEP_COMPLETE:
            self._step(data["step"]).complete()
        elif etype == EventType.SOURCE:
            self.sources.append(Source.from_dict(data["source"]))
        elif etype == EventType.RESPONSE_START:
            self.response_started = True
        elif etype == EventType.RESPONSE_CONTENT:
            self.response += data.get("content", "")
        elif etype == EventType.ERROR:
            self.error = data.get("error", "")
            for step in self.steps:
                if step.status == StepStatus.IN_PROGRESS:
                    step.fail()
        elif etype == EventType.DONE:
            self.done = True

    def state(self) -> dict[str, Any]:
        return session_state(self.steps, self.sources, self.response)
