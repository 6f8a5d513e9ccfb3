from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    SESSION_INIT = "session_init"
    PERSONAL_QUESTION = "personal_question"
    STEP_START = "step_start"
    STEP_CONTENT = "step_content"
    STEP_COMPLETE = "step_complete"
    SOURCE = "source"
    RESPONSE_START = "response_start"
    RESPONSE_CONTENT = "response_content"
    ERROR = "error"
    DONE = "done"


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def payload(self) -> dict[str, Any]:
        """Wire shape: the event type inlined with its fields."""
        return {"type": self.event.value, **self.data}

    def format(self) -> str:
        return f"data: {json.dumps(self.payload(), ensure_ascii=False)}\n\n"

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SSEEvent":
        data = dict(payload)
        event = EventType(data.pop("type"))
        return cls(event=event, data=data)
