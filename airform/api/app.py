"""
FastAPI application factory for AirForm.

Creates and configures the FastAPI app, the stores, the Airtable
clients, and routes.

Run with:
    uvicorn airform.api.app:app --reload
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from airform.airtable.client import AirtableClient
from airform.airtable.oauth import OAuthClient
from airform.airtable.tokens import TokenProvider
from airform.api.routes import auth_router, configure_routes, router, webhook_router
from airform.config import Settings
from airform.core.storage import InMemoryRepository, SQLiteRepository
from airform.core.submission import ResponseSink

# Logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings.from_env()

    application = FastAPI(
        title="AirForm",
        description="Airtable-backed form builder with conditional questions",
        version="0.1.0",
    )

    # Cookies carry the session, so origins must be explicit
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if settings.database_path:
        repository = SQLiteRepository(settings.database_path)
    else:
        repository = InMemoryRepository()

    oauth_client = OAuthClient(settings)
    token_provider = TokenProvider(repository, oauth_client)

    def client_factory(access_token: str) -> AirtableClient:
        return AirtableClient(
            access_token,
            base_url=settings.airtable_api_url,
            timeout=settings.http_timeout_seconds,
            log_requests=settings.log_airtable_curl,
        )

    response_sink = ResponseSink(
        repository,
        token_provider,
        client_factory,
        enforce_visibility=settings.enforce_visibility_on_submit,
    )

    configure_routes(repository, settings, oauth_client, token_provider, client_factory, response_sink)
    application.include_router(auth_router)
    application.include_router(router, prefix="/api")
    application.include_router(webhook_router)

    @application.on_event("startup")
    async def on_startup():
        logger.info("AirForm backend starting up")
        logger.info("Storage: %s", settings.database_path or "in-memory")
        logger.info("Server-side visibility enforcement: %s", settings.enforce_visibility_on_submit)
        if not settings.oauth_configured:
            logger.warning("AIRTABLE_CLIENT_ID / AIRTABLE_CLIENT_SECRET not set; login is disabled")

    return application


# Create the app instance (used by uvicorn)
app = create_app()
