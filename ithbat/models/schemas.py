from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ithbat.models.research import ConversationTurn


# --- Requests ---


class ConversationTurnModel(BaseModel):
    query: str
    response: str = ""

    def to_turn(self) -> ConversationTurn:
        return ConversationTurn(query=self.query, response=self.response)


class ResearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str | None = None
    conversation_history: list[ConversationTurnModel] = Field(
        default_factory=list, alias="conversationHistory"
    )
    language: str = "en"
    session_id: str | None = Field(default=None, alias="sessionId")


class ReferencesRequest(BaseModel):
    text: str


# --- Responses ---


class ParsedReferenceModel(BaseModel):
    type: str
    text: str
    url: str
    details: dict[str, Any] = Field(default_factory=dict)


class ReferencesResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    processed_text: str = Field(alias="processedText")
    references: list[ParsedReferenceModel]


class SiteSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    domain: str
    name: str
    languages: list[str]
    evidence_types: list[str] = Field(alias="evidenceTypes")
    description: str = ""
    search_url_template: str = Field(alias="searchUrlTemplate")


class SitesResponse(BaseModel):
    sites: list[SiteSummary]
