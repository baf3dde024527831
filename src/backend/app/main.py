import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from starlette.staticfiles import StaticFiles
from starlette.responses import FileResponse
from fastapi.middleware.cors import CORSMiddleware

from .core.config import get_settings
from .core.errors import register_exception_handlers
from .core.notify import Broadcaster
from .core.registry import init_registry, close_registry
from .services.sessions import init_sessions, close_sessions
from .api.transcripts import router as transcripts_router
from .api.sessions import router as sessions_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    registry = await init_registry(app, max_buffered=settings.sse_max_buffered_events)
    await init_sessions(app, Broadcaster(registry))
    logger.info("%s ready for package %s", settings.app_name, settings.package_name)
    try:
        yield
    finally:
        # Shutdown: end every open stream so clients reconnect elsewhere
        await close_sessions(app)
        await close_registry(app)


app = FastAPI(title="Transcript Relay API", lifespan=lifespan)
register_exception_handlers(app)

settings_for_cors = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings_for_cors.cors_allow_origins,
    allow_credentials="*" not in settings_for_cors.cors_allow_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
    max_age=3600,
)


@app.middleware("http")
async def security_headers(request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    response.headers.setdefault(
        "Permissions-Policy",
        "geolocation=(), microphone=(), camera=(), payment=()",
    )
    env = get_settings().app_env.lower()
    if env not in ("development", "dev", "test"):
        response.headers.setdefault(
            "Content-Security-Policy",
            "default-src 'self'; img-src 'self' data:; style-src 'self' 'unsafe-inline'; script-src 'self'; connect-src 'self'; object-src 'none'; frame-ancestors 'none'",
        )
    return response


@app.get("/api/health")
def health():
    return {"status": "ok", "timestamp": int(time.time() * 1000)}


app.include_router(transcripts_router)
app.include_router(sessions_router)


# Serve the dashboard when its directory is present
_FRONTEND_DIR = Path(get_settings().frontend_dir)
if _FRONTEND_DIR.is_dir():
    app.mount("/static", StaticFiles(directory=str(_FRONTEND_DIR)), name="frontend")

    @app.get("/")
    def dashboard_page():
        return FileResponse(str(_FRONTEND_DIR / "index.html"))


def serve() -> None:
    import uvicorn

    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())
