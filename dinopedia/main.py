from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from dinopedia.agents.dinosaur_agent import DinosaurAgent
from dinopedia.api.routes import ai_agent, dinosaurs
from dinopedia.config import settings
from dinopedia.errors import ConfigurationError
from dinopedia.services import logger as log_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: the research agent is optional; CRUD works without it.
    try:
        app.state.agent = DinosaurAgent()
        log_service.log_event("agent_initialized", "AI-Agent initialized")
    except ConfigurationError as e:
        app.state.agent = None
        logger.warning(f"AI-Agent not initialized: {e}")
    yield
    # Shutdown
    if app.state.agent is not None:
        await app.state.agent.aclose()


app = FastAPI(
    title="Dinopedia",
    description="Dinosaur encyclopedia API with an AI research agent",
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
app.include_router(dinosaurs.router)
app.include_router(ai_agent.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "dinopedia"}
