from __future__ import annotations

from fastapi import APIRouter

from ithbat.models.schemas import SiteSummary, SitesResponse
from ithbat.traverser.config_store import get_config_store

router = APIRouter(prefix="/api/sites", tags=["sites"])


@router.get("", response_model=SitesResponse, response_model_by_alias=True)
async def list_sites():
    """Trusted sites with extraction configs."""
    return SitesResponse(
        sites=[
            SiteSummary(
                domain=config.domain,
                name=config.name,
                languages=list(config.languages),
                evidence_types=[t.value for t in config.evidence_types],
                description=config.description,
                search_url_template=config.search.url_template,
            )
            for config in get_config_store().all()
        ]
    )
