from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
from functools import lru_cache
from pathlib import Path
import os
from dotenv import load_dotenv


_DEFAULT_FRONTEND_DIR = Path(__file__).resolve().parents[3] / "frontend"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(frozen=True, extra="ignore")

    app_name: str
    app_env: str
    log_level: str
    package_name: str
    platform_api_key: str
    secret_key: str
    port: int = 3000
    cors_allow_origins: List[str] = ["*"]
    sse_heartbeat_seconds: float = 15.0
    sse_max_buffered_events: int = 0
    frontend_dir: str = ""

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings):
        # Environment is read explicitly in get_settings()
        return (init_settings,)


@lru_cache()
def get_settings() -> Settings:
    load_dotenv()
    package_name = os.getenv('PACKAGE_NAME')
    if not package_name:
        raise RuntimeError('PACKAGE_NAME must be set in environment (see .env)')

    platform_api_key = os.getenv('PLATFORM_API_KEY')
    if not platform_api_key:
        raise RuntimeError('PLATFORM_API_KEY must be set in environment (see .env)')

    # Signs the user tokens the dashboard presents on /api/transcripts
    secret_key = os.getenv('APP_SECRET')
    if not secret_key:
        raise RuntimeError('APP_SECRET must be set in environment (see .env)')

    app_env = os.getenv('APP_ENV', 'development')
    log_level = os.getenv('LOG_LEVEL', 'INFO').upper()

    try:
        port = int(os.getenv('PORT', '3000'))
    except ValueError as exc:
        raise RuntimeError('PORT must be an integer') from exc

    cors_origins = os.getenv('CORS_ALLOW_ORIGINS')
    if cors_origins:
        cors_allow_origins = [o.strip() for o in cors_origins.split(',') if o.strip()]
    else:
        cors_allow_origins = ["*"]

    try:
        sse_heartbeat_seconds = float(os.getenv('SSE_HEARTBEAT_SECONDS', '15'))
    except ValueError as exc:
        raise RuntimeError('SSE_HEARTBEAT_SECONDS must be a number') from exc
    if sse_heartbeat_seconds <= 0:
        raise RuntimeError('SSE_HEARTBEAT_SECONDS must be positive')

    try:
        sse_max_buffered_events = int(os.getenv('SSE_MAX_BUFFERED_EVENTS', '0'))
    except ValueError as exc:
        raise RuntimeError('SSE_MAX_BUFFERED_EVENTS must be an integer') from exc

    frontend_dir = os.getenv('FRONTEND_DIR') or str(_DEFAULT_FRONTEND_DIR)

    return Settings(
        app_name="transcript-relay",
        app_env=app_env,
        log_level=log_level,
        package_name=package_name,
        platform_api_key=platform_api_key,
        secret_key=secret_key,
        port=port,
        cors_allow_origins=cors_allow_origins,
        sse_heartbeat_seconds=sse_heartbeat_seconds,
        sse_max_buffered_events=max(sse_max_buffered_events, 0),
        frontend_dir=frontend_dir,
    )
