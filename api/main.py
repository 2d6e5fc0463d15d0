"""
FastAPI Application

Main entry point for the Signal Intelligence API.
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Add project root to path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from api.endpoints import router, get_orchestrator, peek_orchestrator
from pipeline.errors import PipelineError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Signal Intelligence API starting up...")

    # Startup: build the orchestrator so settings errors surface early
    try:
        orchestrator = get_orchestrator()
        logger.info(f"Orchestrator ready with {orchestrator.status()['run_count']} prior runs")
    except PipelineError as e:
        logger.error(f"Failed to initialize pipeline: {e}")

    yield

    # Shutdown: no new scheduled runs after this
    orchestrator = peek_orchestrator()
    if orchestrator is not None:
        orchestrator.stop()
    logger.info("API shutting down...")


# Create FastAPI application
app = FastAPI(
    title="Signal Intelligence API",
    description="""
    Scores, filters and analyses external signals and compiles intelligence digests.

    ## Key Endpoints

    - `POST /runs` - Run the pipeline once (409 if a run is in progress)
    - `GET /runs` - Run history
    - `GET /status` - Operational status and performance averages
    - `GET /digests/latest` - Latest digest (`?format=markdown` for text)
    - `GET /filter/performance` - Filter statistics and thresholds
    - `POST /filter/optimize` - Retune filter thresholds
    - `GET /trends/summary` - Trend history summary
    - `POST /schedule/start`, `POST /schedule/stop` - Continuous runs
    """,
    version="1.0.0",
    lifespan=lifespan
)

# Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api/v1")

# Also mount at root for convenience
app.include_router(router)


@app.get("/")
async def root():
    """API root endpoint."""
    return {
        "name": "Signal Intelligence API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }


# For running directly with uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8001,
        reload=True
    )
