from contextlib import asynccontextmanager
from fastapi import FastAPI
from teamcity_graph.services.teamcity_client import close_client

# Routers
from teamcity_graph.api.routers.graph import router as graph_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Close the shared TeamCity HTTP client on shutdown."""
    try:
        yield
    finally:
        await close_client()


app = FastAPI(title="TeamCity Package Graph", version="0.1", lifespan=lifespan)

app.include_router(graph_router)
