"""HTTP route definitions for the users service."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from psycopg import Error as DatabaseError
from pydantic import BaseModel, EmailStr, Field, model_validator

from bcard_schemas import Address, Image, PersonName, Role, UserProfile

from ..config import get_settings
from ..domain.contracts import RegisterUserInput
from ..domain.service import MAX_SUSPENSION_HOURS, UserService
from ..errors import UnauthenticatedError, UsersServiceError, ValidationError
from ..security.rate_limiter import SlidingWindowRateLimiter
from ..security.redis_rate_limiter import RedisSlidingWindowRateLimiter
from ..security.tokens import AuthorizationGate, Claims

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

bearer_scheme = HTTPBearer(auto_error=False)


class RegisterRequest(BaseModel):
    """Payload accepted when registering a new user."""

    name: PersonName
    phone: str = Field(..., min_length=4, max_length=13)
    email: EmailStr
    password: str
    address: Address
    image: Image | None = None
    gender: str | None = None
    role: Role = Role.regular


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    """Signed session token returned after registration or login."""

    access_token: str
    token_type: str = "bearer"


class UserPatchRequest(BaseModel):
    """Administrative update: either a role change or a suspension override.

    ``suspend_hours > 0`` suspends the account for that many hours from now;
    zero or a negative value lifts any suspension.
    """

    role: Role | None = None
    suspend_hours: float | None = Field(None, le=MAX_SUSPENSION_HOURS, allow_inf_nan=False)

    @model_validator(mode="after")
    def _exactly_one_change(self) -> "UserPatchRequest":
        if (self.role is None) == (self.suspend_hours is None):
            raise ValueError("provide exactly one of 'role' or 'suspend_hours'")
        return self


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str


settings = get_settings()


def _build_rate_limiter() -> SlidingWindowRateLimiter | RedisSlidingWindowRateLimiter:
    """Instantiate the configured rate limiter backend, preferring Redis when available."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            import redis

            client = redis.from_url(settings.redis_url)
            client.ping()
            logger.info("rate limiter configured for redis backend at %s", settings.redis_url)
            return RedisSlidingWindowRateLimiter(
                client,
                max_requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
            )
        except Exception as exc:  # pragma: no cover - depends on live redis
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)

    logger.info("rate limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


rate_limiter = _build_rate_limiter()


def get_service(request: Request) -> UserService:
    """Resolve the `UserService` stored on the FastAPI application state."""
    service: UserService = request.app.state.user_service
    return service


def require_claims(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Claims:
    """Verify the bearer token and hand its claims to the route."""
    gate: AuthorizationGate = request.app.state.authorization_gate
    try:
        return gate.verify(credentials.credentials if credentials else None)
    except UnauthenticatedError as exc:
        raise _http_error_from_domain_error(exc) from exc


def _throttle(key: str) -> None:
    if not rate_limiter.allow(key):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"kind": "rate_limited", "message": "rate limited"},
            headers={"Retry-After": str(rate_limiter.retry_after(key))},
        )


@router.post("", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    request: Request,
    payload: RegisterRequest,
    service: UserService = Depends(get_service),
) -> TokenResponse:
    """Register a user and return a signed token for it."""
    client_host = request.client.host if request.client else "unknown"
    _throttle(f"register:{client_host}")
    try:
        _, token = service.register(
            RegisterUserInput(
                name=payload.name,
                phone=payload.phone,
                email=payload.email,
                password=payload.password,
                address=payload.address,
                role=payload.role,
                image=payload.image,
                gender=payload.gender,
            )
        )
    except UsersServiceError as exc:
        raise _http_error_from_domain_error(exc) from exc
    return TokenResponse(access_token=token)


@router.post("/login", response_model=TokenResponse)
def login(
    payload: LoginRequest,
    service: UserService = Depends(get_service),
) -> TokenResponse:
    """Authenticate with email and password under the lockout policy."""
    _throttle(f"login:{payload.email.lower()}")
    try:
        token = service.login(payload.email, payload.password)
    except UsersServiceError as exc:
        raise _http_error_from_domain_error(exc) from exc
    return TokenResponse(access_token=token)


@router.get("", response_model=list[UserProfile])
def list_users(service: UserService = Depends(get_service)) -> list[UserProfile]:
    return [account.profile() for account in service.list_users()]


@router.get("/{account_id}", response_model=UserProfile)
def get_user(
    account_id: str,
    claims: Claims = Depends(require_claims),
    service: UserService = Depends(get_service),
) -> UserProfile:
    """Return one user's public profile."""
    try:
        return service.get_user(account_id).profile()
    except UsersServiceError as exc:
        raise _http_error_from_domain_error(exc) from exc


@router.patch("/{account_id}", response_model=UserProfile)
def patch_user(
    account_id: str,
    payload: UserPatchRequest,
    claims: Claims = Depends(require_claims),
    service: UserService = Depends(get_service),
) -> UserProfile:
    """Change a user's role or override their suspension (admins only)."""
    try:
        if payload.role is not None:
            account = service.update_role(account_id, payload.role, actor=claims)
        else:
            account = service.override_suspension(account_id, payload.suspend_hours, actor=claims)
    except UsersServiceError as exc:
        raise _http_error_from_domain_error(exc) from exc
    return account.profile()


@router.put("/{account_id}/password", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    account_id: str,
    payload: PasswordChangeRequest,
    claims: Claims = Depends(require_claims),
    service: UserService = Depends(get_service),
) -> Response:
    try:
        service.change_password(
            account_id,
            payload.current_password,
            payload.new_password,
            actor=claims,
        )
    except UsersServiceError as exc:
        raise _http_error_from_domain_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _http_error_from_domain_error(exc: UsersServiceError) -> HTTPException:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthenticatedError) else None
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail(), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Answer malformed bodies with 400 and storage failures with a generic 500."""

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = [
            f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
            for err in exc.errors()
        ]
        error = ValidationError("; ".join(messages) or "invalid request")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": error.to_detail()})

    @app.exception_handler(DatabaseError)
    async def _database_error(request: Request, exc: DatabaseError) -> JSONResponse:
        logger.exception("storage failure while handling %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": {"kind": "internal_error", "message": "internal error"}},
        )
