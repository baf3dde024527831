import os
import sys
from pathlib import Path

import pytest_asyncio

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("PACKAGE_NAME", "com.example.transcriptrelay.test")
os.environ.setdefault("PLATFORM_API_KEY", "test-platform-key")
os.environ.setdefault("APP_SECRET", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("APP_ENV", "test")

from src.backend.app.main import app
from src.backend.app.core.config import get_settings
from src.backend.app.core.notify import Broadcaster
from src.backend.app.core.registry import REGISTRY_KEY, init_registry, close_registry
from src.backend.app.core.security import create_user_token
from src.backend.app.services.sessions import SESSIONS_KEY, init_sessions, close_sessions


@pytest_asyncio.fixture
async def realtime_state():
    # ASGITransport does not run the lifespan, so build the state per test
    if getattr(app.state, REGISTRY_KEY, None) is None:
        registry = await init_registry(app)
    else:
        registry = getattr(app.state, REGISTRY_KEY)
    if getattr(app.state, SESSIONS_KEY, None) is None:
        await init_sessions(app, Broadcaster(registry))
    try:
        yield
    finally:
        await close_sessions(app)
        await close_registry(app)


@pytest_asyncio.fixture
async def registry(realtime_state):
    return getattr(app.state, REGISTRY_KEY)


@pytest_asyncio.fixture
async def sessions(realtime_state):
    return getattr(app.state, SESSIONS_KEY)


def user_headers(user_id, extra=None):
    headers = {"Authorization": f"Bearer {create_user_token(user_id)}"}
    if extra:
        headers.update(extra)
    return headers


def platform_headers(extra=None):
    headers = {"X-API-Key": get_settings().platform_api_key}
    if extra:
        headers.update(extra)
    return headers
