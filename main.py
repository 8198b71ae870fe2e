"""
FastAPI application factory.

`build_app` wires already-constructed clients into the services, routers
and middleware; `create_app` builds those clients from Vault secrets.
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from api.tasks import create_tasks_router
from auth.api import create_auth_router, create_passkey_router
from auth.ceremony import CeremonyTracker
from auth.config import AuthConfig
from auth.database import CredentialStore, UserDirectory
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger
from auth.security_middleware import AuthMiddleware
from auth.service import PasskeyCeremonyService
from auth.session import SessionManager
from clients.passkey_client import PasskeyProviderClient
from clients.record_store import RecordStore
from clients.valkey_client import ValkeyClient
from clients.vault_client import (
    get_database_url,
    get_passkey_config,
    get_session_secret,
    get_valkey_url,
)
from core.services.task_service import TaskService

logger = logging.getLogger(__name__)


def build_app(
    store: RecordStore,
    valkey: ValkeyClient,
    provider: PasskeyProviderClient,
    session_secret: str,
    config: AuthConfig | None = None,
) -> FastAPI:
    """
    Assemble the application around injected clients.

    Returns:
        Configured FastAPI instance
    """
    config = config or AuthConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.init_schema()
        logger.info("Task board API started")
        yield
        store.close()
        valkey.close()
        logger.info("Task board API stopped")

    users = UserDirectory(store)
    credentials = CredentialStore(store)
    security_logger = SecurityLogger(store)
    session_manager = SessionManager(session_secret, config)
    ceremony_service = PasskeyCeremonyService(
        users=users,
        credentials=credentials,
        provider=provider,
        ceremonies=CeremonyTracker(valkey, config),
        rate_limiter=RateLimiter(valkey, config),
        security_logger=security_logger,
    )

    app = FastAPI(title="Task Board API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        AuthMiddleware,
        session_manager=session_manager,
        users=users,
        security_logger=security_logger,
    )
    register_error_handlers(app)

    app.include_router(create_passkey_router(ceremony_service, session_manager, security_logger))
    app.include_router(create_auth_router(session_manager, security_logger))
    app.include_router(create_tasks_router(TaskService(store)))

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok"}

    return app


def create_app() -> FastAPI:
    """
    Create the application from Vault-held secrets.

    Raises:
        PermissionError: Vault denied or lacks a secret
        ValueError: Vault environment variables are missing
        redis.ConnectionError: Valkey is unreachable
    """
    load_dotenv()

    passkey = get_passkey_config()
    provider = PasskeyProviderClient(
        base_url=passkey["base_url"],
        tenant_id=passkey["tenant_id"],
        api_key=passkey["api_key"],
    )

    config = AuthConfig(
        session_cookie_secure=os.getenv("SESSION_COOKIE_SECURE", "true").lower() != "false",
    )

    return build_app(
        store=RecordStore(get_database_url()),
        valkey=ValkeyClient(get_valkey_url()),
        provider=provider,
        session_secret=get_session_secret(),
        config=config,
    )


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        create_app(),
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )
