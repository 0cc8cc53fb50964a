"""FastAPI application wiring for the users service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import register_exception_handlers, router as users_router
from .config import Settings, get_settings
from .domain.contracts import CredentialStore
from .domain.lockout import LockoutPolicy
from .domain.service import UserService
from .memory_repository import InMemoryAccountRepository
from .repository import AccountRepository
from .security.passwords import PasswordHasher
from .security.tokens import AuthorizationGate, TokenIssuer

settings = get_settings()

logger = logging.getLogger(__name__)


def build_user_service(settings: Settings, repository: CredentialStore) -> UserService:
    """Assemble the authentication components around ``repository``."""
    secret = settings.require_signing_secret()
    hasher = PasswordHasher(
        time_cost=settings.argon2_time_cost,
        memory_cost=settings.argon2_memory_cost,
        parallelism=settings.argon2_parallelism,
    )
    policy = LockoutPolicy(
        hasher,
        max_attempts=settings.max_login_attempts,
        suspension=timedelta(hours=settings.suspension_hours),
    )
    return UserService(repository, hasher, TokenIssuer(secret), policy)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the signing secret and open the account store for the app lifecycle."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    secret = settings.require_signing_secret()
    app.state.authorization_gate = AuthorizationGate(secret)

    pool: ConnectionPool | None = None
    if settings.store_backend == "memory":
        logger.warning("using in-memory account store; data is lost on restart")
        repository: CredentialStore = InMemoryAccountRepository()
    else:
        pool = ConnectionPool(settings.database_url, open=False)
        pool.open()
        app.state.pool = pool
        postgres_repository = AccountRepository(pool)
        postgres_repository.ensure_schema()
        repository = postgres_repository

    app.state.user_service = build_user_service(settings, repository)
    try:
        yield
    finally:
        if pool is not None:
            pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)

register_exception_handlers(app)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", tags=["health"])
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(users_router)
