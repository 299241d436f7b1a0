# app/transport/http_app.py
"""
HTTP application for the circle notification dispatcher.

Endpoints:
1. POST /send-notification      - one recipient, definitive outcome
2. POST /notify-circle-members  - explicit circle code, sender excluded
3. POST /notify-admin-circle    - circle derived from the admin's own code
4. POST /notify-role            - every recipient with a role
5. GET  /health, GET /metrics

Routes are thin: parse request → call DispatchEngine → map DispatchError
→ return JSON.  Every response carries ``success`` plus a payload or an
``error`` string.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError as PydanticValidationError

from app.config import settings
from app.core.dispatch.engine import DispatchEngine
from app.core.dispatch.models import GroupSelector
from app.core.errors import DispatchError
from app.infra.logging_config import setup_logging, get_logger
from app.infra.metrics import get_metrics_collector
from app.transport.middleware import (
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    ErrorHandlingMiddleware,
    SecurityHeadersMiddleware,
)
from app.transport.schemas import (
    NotifyAdminCircleIn,
    NotifyCircleIn,
    NotifyRoleIn,
    SendNotificationIn,
    batch_to_response,
    missing_fields,
)

# Initialize logging first
setup_logging(
    level=settings.log_level,
    use_json=settings.is_production
)

logger = get_logger(__name__)


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_engine(request: Request) -> DispatchEngine:
    """Get engine from app state"""
    return request.app.state.engine


def _parse(model, payload: dict):
    """Build a request model; any missing or empty field is a 400."""
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail=f"Missing fields: {', '.join(missing_fields(exc))}",
        )


# ============================================================================
# APP FACTORY
# ============================================================================

def create_app(engine: DispatchEngine | None = None) -> FastAPI:
    """
    Build the FastAPI app.

    ``engine`` replaces the settings-built engine (tests, embedding).
    """

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        logger.info(
            f"Starting application: env={settings.app_env}, "
            f"store_backend={settings.store_backend}, push_provider={settings.push_provider}"
        )

        if settings.is_production:
            missing = settings.validate_required_for_production()
            if missing:
                logger.critical(f"Missing required production settings: {missing}")
                raise RuntimeError(f"Missing production config: {missing}")

            if settings.push_provider == "disabled":
                logger.critical("PUSH_PROVIDER=disabled is not allowed in production")
                raise RuntimeError("Push delivery disabled in production")

        if engine is not None:
            fastapi_app.state.engine = engine
        else:
            from app.infra.container import build_engine
            fastapi_app.state.engine = build_engine(settings)

        logger.info("Application startup complete")

        yield

        logger.info("Shutting down application")

        from app.infra.http_client import close_all_sessions
        await close_all_sessions()

        if engine is None:
            from app.infra.firebase_app import close_firebase_app
            close_firebase_app()

        logger.info("Application shutdown complete")

    fastapi_app = FastAPI(
        title="Circle Notify",
        description="Fan-out push notification dispatcher for circles",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        openapi_url=None if settings.is_production else "/openapi.json",
    )

    if settings.is_production or settings.is_staging:
        fastapi_app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins if settings.allowed_origins != ["*"] else [],
            allow_credentials=False,
            allow_methods=["GET", "POST"],
            allow_headers=["Content-Type", "Authorization"],
        )
    else:
        fastapi_app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    fastapi_app.add_middleware(SecurityHeadersMiddleware)
    fastapi_app.add_middleware(ErrorHandlingMiddleware, is_production=settings.is_production)
    fastapi_app.add_middleware(RequestLoggingMiddleware, enabled=settings.enable_request_logging)
    fastapi_app.add_middleware(RequestIDMiddleware)

    _register_exception_handlers(fastapi_app)
    _register_routes(fastapi_app)
    return fastapi_app


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

def _register_exception_handlers(fastapi_app: FastAPI) -> None:

    @fastapi_app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with appropriate logging"""
        if exc.status_code >= 500:
            logger.error(f"Server error: {exc.detail}", extra={"status_code": exc.status_code})

        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
            headers=exc.headers,
        )

    @fastapi_app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Body is not a JSON object"""
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid request body"},
        )


# ============================================================================
# ROUTES
# ============================================================================

def _register_routes(fastapi_app: FastAPI) -> None:

    @fastapi_app.get("/health")
    def health():
        """Basic health check for load balancers."""
        return {"status": "healthy"}

    @fastapi_app.get("/metrics")
    def metrics():
        """In-process dispatch counters and histograms."""
        if not settings.enable_metrics:
            raise HTTPException(status_code=404, detail="Not found")
        return get_metrics_collector().get_metrics()

    @fastapi_app.post("/send-notification")
    async def send_notification(payload: dict, request: Request):
        """Send a notification to one recipient."""
        req = _parse(SendNotificationIn, payload)
        engine = get_engine(request)
        try:
            result = await engine.dispatch_to_one(req.recipient_id, req.title, req.body)
        except DispatchError as exc:
            raise HTTPException(status_code=exc.status_code, detail=exc.detail)
        return {"success": True, "response": result.receipt}

    @fastapi_app.post("/notify-circle-members")
    async def notify_circle_members(payload: dict, request: Request):
        """Notify members of a circle (optionally narrowed by role), excluding the sender."""
        req = _parse(NotifyCircleIn, payload)
        engine = get_engine(request)
        selector = GroupSelector.for_circle(
            req.circle_code,
            req.sender_id,
            role=settings.circle_member_role,
            include_location=req.include_location,
        )
        try:
            batch = await engine.dispatch_to_group(selector, req.title, req.body)
        except DispatchError as exc:
            raise HTTPException(status_code=exc.status_code, detail=exc.detail)
        return batch_to_response(batch)

    @fastapi_app.post("/notify-admin-circle")
    async def notify_admin_circle(payload: dict, request: Request):
        """Notify the circle the admin belongs to, excluding the admin."""
        req = _parse(NotifyAdminCircleIn, payload)
        engine = get_engine(request)
        try:
            selector = await engine.selector_for_admin(
                req.admin_id,
                include_location=req.include_location,
            )
            batch = await engine.dispatch_to_group(selector, req.title, req.body)
        except DispatchError as exc:
            raise HTTPException(status_code=exc.status_code, detail=exc.detail)
        return batch_to_response(batch)

    @fastapi_app.post("/notify-role")
    async def notify_role(payload: dict, request: Request):
        """Notify every recipient holding a role (defaults to BROADCAST_ROLE)."""
        req = _parse(NotifyRoleIn, payload)
        engine = get_engine(request)
        selector = GroupSelector.for_role(
            req.role or settings.broadcast_role,
            include_location=req.include_location,
        )
        try:
            batch = await engine.dispatch_to_group(selector, req.title, req.body)
        except DispatchError as exc:
            raise HTTPException(status_code=exc.status_code, detail=exc.detail)
        return batch_to_response(batch)


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.transport.http_app:app",
        host="0.0.0.0",
        port=settings.port,
        reload=not settings.is_production,
        log_level=settings.log_level.lower(),
        access_log=not settings.is_production,  # Disable in prod (use middleware logging)
        server_header=False,
        date_header=False,
    )
