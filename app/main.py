import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from app.core.db import init_db
from app.core.deps import get_knowledge_store
from app.core.logging import setup_logging
from app.core.settings import get_settings
from app.routers.api import voice
from app.services.voice.session_manager import set_store_directory
from app.utils.error_logger import log_error

# Initialize
settings = get_settings()
logger = setup_logging()

# Create app
app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description="Realtime voice assistant backend for a vinyl record shop",
)


# Request logging middleware with timing
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming HTTP requests with timing information."""
    start_time = time.perf_counter()

    response = await call_next(request)

    duration_ms = (time.perf_counter() - start_time) * 1000
    response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

    method = request.method
    path = request.url.path
    time_str = f"{duration_ms:.2f}ms"
    if duration_ms < 500:
        logger.info(f"<<< {method} {path} - {response.status_code} [{time_str}]")
    else:
        logger.warning(f"<<< {method} {path} - {response.status_code} [{time_str}] (very slow)")

    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(voice.router, prefix="/api")


async def load_store_directory() -> int:
    """Populate the read-only store directory cache; failures leave it empty."""
    try:
        stores = await get_knowledge_store().list_stores()
    except Exception as exc:
        log_error("startup", exc, operation="load_store_directory")
        stores = []
    set_store_directory(stores)
    return len(stores)


# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    logger.info("Starting up...")
    init_db()
    store_count = await load_store_directory()
    logger.info(f"Store directory loaded ({store_count} stores)")


@app.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "WebSocket server is running"


# Health check
@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": settings.app_name}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
