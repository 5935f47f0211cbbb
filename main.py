"""Spotify now-playing server.

Runs the OAuth Authorization Code flow against Spotify, keeps the resulting
token pair in a token store, and serves the currently playing track:

- /login     redirect to Spotify with a one-time state
- /callback  exchange the code, persist tokens
- /current   currently playing track (refreshes the access token on 401)
- /health    liveness probe
"""
import logging
import sys
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from supabase import create_client, Client

from config import Settings, load_env, load_settings
from logging_config import setup_logging
from now_playing import router as player_router
from oauth.endpoints import router as oauth_router
from oauth.errors import ConfigError
from oauth.flow import AuthFlow
from oauth.session import SessionState
from oauth.state import StateRegistry
from oauth.stores import TokenStore, create_token_store
from player import UpstreamClient

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def create_app(
    settings: Settings,
    store: TokenStore = None,
    http_client: httpx.AsyncClient = None,
    supabase: Client = None,
    sleep=None,
) -> FastAPI:
    """Wire the services together and return the ASGI app.

    ``store``, ``http_client`` and ``sleep`` may be injected; otherwise they
    are built from settings.
    """
    if store is None:
        store = create_token_store(settings, supabase)
    owns_client = http_client is None
    if owns_client:
        http_client = httpx.AsyncClient(timeout=settings.http_timeout)

    session = SessionState(store)
    auth_flow = AuthFlow.from_settings(settings, http_client, session)
    upstream_kwargs = {"max_rate_limit_retries": settings.rate_limit_max_retries}
    if sleep is not None:
        upstream_kwargs["sleep"] = sleep
    upstream = UpstreamClient(http_client, session, auth_flow, **upstream_kwargs)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await session.load()
        logger.info(f"[STARTUP] Token store: {store.describe()}")
        logger.info(f"[STARTUP] Authenticated: {session.is_authenticated}")
        logger.info(f"[STARTUP] Callback response mode: {settings.response_mode}")
        try:
            yield
        finally:
            if owns_client:
                await http_client.aclose()

    app = FastAPI(
        title="Spotify Now Playing",
        description="Currently playing track from Spotify with persisted OAuth tokens",
        version=VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session = session
    app.state.state_registry = StateRegistry(ttl=settings.state_ttl_seconds)
    app.state.auth_flow = auth_flow
    app.state.upstream = upstream

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(oauth_router)
    app.include_router(player_router)

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "spotify-now-playing",
            "authenticated": request.app.state.session.is_authenticated,
        }

    @app.get("/")
    async def root():
        """Root endpoint with server info."""
        return {
            "name": "Spotify Now Playing",
            "version": VERSION,
            "endpoints": {
                "login": "/login",
                "callback": "/callback",
                "current": "/current",
                "health": "/health",
            },
        }

    return app


def load_validated_settings() -> Settings:
    """Load .env + environment and exit(1) if required settings are missing."""
    load_env()
    try:
        return load_settings().validate()
    except ConfigError as e:
        print(f"[ERROR] {e.message}", file=sys.stderr)
        sys.exit(1)


def build_app(settings: Settings) -> FastAPI:
    """Configure logging and create the app for a real deployment."""
    supabase: Client = None
    if settings.has_supabase():
        supabase = create_client(settings.supabase_url, settings.supabase_key)

    setup_logging(
        level=settings.log_level,
        supabase_client=supabase if settings.remote_logging else None,
    )
    return create_app(settings, supabase=supabase)


def main():
    import uvicorn

    settings = load_validated_settings()
    app = build_app(settings)
    logger.info(f"[STARTUP] Server running at http://{settings.host}:{settings.port}")
    logger.info(f"[STARTUP] Login endpoint: http://{settings.host}:{settings.port}/login")
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
