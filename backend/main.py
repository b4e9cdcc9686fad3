"""
SwingSense Backend API

FastAPI application for baseball/softball swing analysis: pose tracking,
swing event segmentation, biomechanical scoring and coaching cards.

Run with:
    uvicorn main:app --reload --host 0.0.0.0 --port 8000
    # or: python main.py (honours SWINGSENSE_HOST / SWINGSENSE_PORT)

API docs available at:
    http://localhost:8000/docs (Swagger UI)
    http://localhost:8000/redoc (ReDoc)
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import API_VERSION, router as api_router
from api.websocket import manager, websocket_endpoint
from core.config import LOG_FORMAT, ServerSettings, load_drill_catalog, load_metric_specs
from core.services import PoseDetector

settings = ServerSettings.from_env()

# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan (startup/shutdown)
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Validate the scoring configuration before serving requests.

    A broken metric_specs.yaml raises InvalidMetricSpec here and stops
    startup. Open WebSocket sessions are closed on shutdown.
    """
    specs = load_metric_specs()
    catalog = load_drill_catalog()
    logger.info(f"SwingSense API {API_VERSION}: {len(specs)} metric specs, {len(catalog)} drills")

    if PoseDetector.is_available():
        logger.info("MediaPipe available; video analysis enabled")
    else:
        logger.warning("MediaPipe not installed; only keypoint analysis is available")

    yield

    for websocket in list(manager.active_connections):
        await manager.disconnect(websocket)
    logger.info("SwingSense API stopped")


# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="SwingSense API",
    description="""
    **Baseball/Softball Swing Analyzer**

    Tracks the hitter's pose, finds the swing events (load, stride, launch,
    contact, extension, finish), scores the mechanics against configurable
    target windows and returns coaching cards with drills.

    ## Endpoints

    - `GET /api/health` - Service status and configuration counts
    - `GET /api/metrics/specs` - Active metric specifications
    - `POST /api/analysis/video` - Analyze an uploaded video
    - `POST /api/analysis/frames` - Analyze keypoints detected on the client
    - `POST /api/scoring/evaluate` - Score metric values directly
    - `WS /ws/analysis` - Analysis with live progress and cancellation

    ## WebSocket Protocol

    Send `start_analysis` with either `video_base64` or `frames` + `fps`.
    The server streams `progress` messages, then exactly one of
    `analysis_result`, `needs_retake`, `cancelled` or `error`. Sending
    `start_analysis` again replaces the running attempt; `cancel` stops it.
    """,
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")
app.websocket("/ws/analysis")(websocket_endpoint)


@app.get("/", tags=["Root"])
async def root():
    """Service name and where to find things."""
    return {
        "name": "SwingSense API",
        "version": API_VERSION,
        "description": "Baseball/Softball Swing Analyzer",
        "docs": "/docs",
        "health": "/api/health",
        "metric_specs": "/api/metrics/specs",
        "websocket": "/ws/analysis",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
