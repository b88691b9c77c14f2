"""FastAPI application serving extraction jobs and their live updates."""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, WebSocket, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from database.connection import DatabaseConnection
from database.checkpoint_store import CheckpointStore
from database.repositories.job_repo import JobRepository
from database.repositories.user_repo import UserRepository
from api.routes import extractions_router
from api.services.orchestrator import ExtractionOrchestrator
from api.services.publisher import PublisherService
from api.websocket import websocket_endpoint, redis_subscriber
from consumer.scraper import PlaceScraper
from shared.config import settings
from shared.errors import BadRequestError


logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect stores, wire the orchestrator and resume interrupted work."""
    db = await DatabaseConnection.init_mongo(settings)
    redis_client = await DatabaseConnection.init_redis(settings)

    job_repo = JobRepository(db)
    scraper = PlaceScraper(settings)
    orchestrator = ExtractionOrchestrator(
        job_repo=job_repo,
        quota=UserRepository(db, settings.default_daily_quota),
        publisher=PublisherService(redis_client),
        checkpoints=CheckpointStore(job_repo, settings),
        scraper=scraper,
        config=settings
    )
    app.state.orchestrator = orchestrator

    await scraper.debug_sink.cleanup_old_debug_files()

    await orchestrator.recover_interrupted()

    subscriber = asyncio.create_task(redis_subscriber(redis_client), name="progress-subscriber")
    logger.info("Extraction service started")

    yield

    subscriber.cancel()
    try:
        await subscriber
    except asyncio.CancelledError:
        pass

    await orchestrator.shutdown()
    await DatabaseConnection.close_connections()
    logger.info("Extraction service stopped")


app = FastAPI(
    title="Google Maps Extraction Service",
    description="Checkpointed extraction of business listings from Google Maps searches",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BadRequestError)
async def bad_request_handler(request: Request, exc: BadRequestError):
    """Violated preconditions of extraction operations."""
    return JSONResponse(
        status_code=400,
        content={"error": "Bad request", "detail": exc.message}
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Anything that escaped a route is logged and reported as a 500."""
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "detail": str(exc)}
    )


app.include_router(extractions_router)


@app.websocket("/ws")
async def websocket_all(websocket: WebSocket):
    """WebSocket endpoint for all extraction updates."""
    await websocket_endpoint(websocket)


@app.websocket("/ws/extractions/{job_id}")
async def websocket_extraction(websocket: WebSocket, job_id: str):
    """WebSocket endpoint for a single extraction's updates."""
    await websocket_endpoint(websocket, job_id)


@app.get("/health")
async def health():
    """Liveness plus the number of extractions running in this process."""
    orchestrator = getattr(app.state, "orchestrator", None)
    return {
        "status": "healthy",
        "active_extractions": orchestrator.active_count if orchestrator else 0
    }


@app.get("/")
async def service_info():
    return {
        "name": app.title,
        "version": app.version,
        "docs": "/docs",
        "endpoints": ["/extractions", "/ws", "/ws/extractions/{job_id}", "/health"]
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug
    )
