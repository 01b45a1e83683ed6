from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from degen_research.api import deps
from degen_research.api.routes import research
from degen_research.config import settings
from degen_research.models.schemas import HealthResponse


@asynccontextmanager
async def lifespan(app: FastAPI):
    keys = deps.api_keys_status()
    missing = [name for name, present in keys.items() if not present]
    if missing:
        logger.warning(f"Missing API keys: {', '.join(missing)}")
    yield


app = FastAPI(
    title="Degen Research",
    description="Crypto project research reports from multi-stage web search and LLM analysis",
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


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        apiKeys=deps.api_keys_status(),
    )
