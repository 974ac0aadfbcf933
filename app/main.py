"""
FastAPI application: Rollout CRM demo backend.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from app.config import settings
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.middleware import CORSMiddleware, RequestContextMiddleware
from app.routes import appointments, credentials, health, people, session
from app.services.rollout.client import rollout_client

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)

SESSION_COOKIE = "rollout.sid"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Close the shared Rollout HTTP client on shutdown."""
    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        rollout_api_base=settings.ROLLOUT_API_BASE,
        rollout_crm_api_base=settings.ROLLOUT_CRM_API_BASE,
    )

    yield

    logger.info("Application shutting down")
    try:
        await rollout_client.close()
    except Exception as e:
        logger.error("Error closing Rollout client", error=str(e))


app = FastAPI(
    title="Rollout CRM Demo",
    description="Connect CRM credentials through Rollout and browse person insights",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render errors as {"error": message} for the UI."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed input is a 400 in the same {"error": message} shape."""
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{message}: {first.get('msg', 'invalid value')}"
        if location:
            message = f"{message} ({location})"
    logger.info("Request validation failed", path=request.url.path, errors=len(errors))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


# Outermost last: CORS wraps request context, which wraps the session
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET,
    session_cookie=SESSION_COOKIE,
    max_age=settings.SESSION_MAX_AGE_SECS,
    same_site="lax",
    https_only=settings.session_cookie_secure(),
)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(CORSMiddleware, allowed_origins=settings.allowed_origins())

# Include routers
app.include_router(health.router)
app.include_router(session.router)
app.include_router(credentials.router)
app.include_router(people.router)
app.include_router(appointments.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=5174)
