from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from leadgen.api.routes import searches
from leadgen.config import settings
from leadgen.services.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("leadgen API starting")
    yield
    logger.info("leadgen API stopped")


app = FastAPI(
    title="Leadgen Orchestrator",
    description="Persona generation, business discovery and market research for lead-gen searches",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(searches.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "leadgen"}
