"""FastAPI application entrypoint. No business logic; only wiring and middleware."""

from dotenv import load_dotenv

load_dotenv()

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vulngraph import __version__
from vulngraph.api.v1 import router as v1_router
from vulngraph.core.config import settings
from vulngraph.core.graph_store import GraphStore


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """One GraphStore per application; the driver is created on first use and closed on shutdown."""
    app.state.graph_store = GraphStore(settings)
    try:
        yield
    finally:
        await app.state.graph_store.close()


app = FastAPI(
    title="VulnGraph API",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.APP_ENV == "dev" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(v1_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
def root() -> dict[str, str]:
    """Root route; minimal payload for discovery."""
    return {"message": "VulnGraph API"}
