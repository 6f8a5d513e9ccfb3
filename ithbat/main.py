from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ithbat.api.routes import references, research, sites
from ithbat.config import settings
from ithbat.traverser.config_store import get_config_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Load site configs before the first request.
    get_config_store().all()
    yield


app = FastAPI(
    title="Ithbat",
    description="Islamic knowledge research with verified, cited evidence",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(research.router)
app.include_router(references.router)
app.include_router(sites.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "ithbat"}
