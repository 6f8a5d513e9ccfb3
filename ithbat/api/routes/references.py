from __future__ import annotations

from fastapi import APIRouter

from ithbat.models.schemas import ParsedReferenceModel, ReferencesRequest, ReferencesResponse
from ithbat.research_core.references.resolver import extract_references

router = APIRouter(prefix="/api/references", tags=["references"])


@router.post("", response_model=ReferencesResponse, response_model_by_alias=True)
async def resolve_references(request: ReferencesRequest):
    """Rewrite textual citations in ``text`` into canonical markdown links."""
    result = extract_references(request.text)
    return ReferencesResponse(
        processed_text=result.processed_text,
        references=[ParsedReferenceModel(**ref.to_dict()) for ref in result.references],
    )
