import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.core.exceptions import DeploymentError
from app.modules.auth import routes as auth_routes
from app.modules.connections import routes as connections_routes
from app.modules.deployments import routes as deployments_routes
from app.modules.deployments import task_runner

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit],
    storage_uri=settings.rate_limit_storage_uri,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.app_name} starting ({settings.environment})")
    yield
    # In-flight pollers are dropped; listing deployments times their records out later
    task_runner.shutdown(wait=False)
    logger.info(f"{settings.app_name} stopped")


async def deployment_error_handler(request: Request, exc: DeploymentError):
    # Only the formatted message is returned; raw provider payloads stay in the logs
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r} raw={getattr(exc, 'raw', None)}")
    content = {"detail": exc.message}
    missing = getattr(exc, "missing_scopes", None)
    if missing:
        content["missing_scopes"] = missing
    return JSONResponse(status_code=exc.status_code, content=content)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    detail = "Internal server error" if settings.is_production else str(exc)
    return JSONResponse(status_code=500, content={"detail": detail})


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, debug=settings.debug, redirect_slashes=False, lifespan=lifespan)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(DeploymentError, deployment_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for module in (auth_routes, connections_routes, deployments_routes):
        app.include_router(module.router, prefix=API_PREFIX)

    @app.get("/")
    async def root():
        return {"message": f"Welcome to {settings.app_name}", "status": "healthy"}

    @app.get("/health")
    @limiter.exempt
    async def health():
        return {"status": "healthy"}

    @app.get("/ready")
    @limiter.exempt
    async def ready():
        """Readiness probe: extend here with Supabase/provider checks if needed."""
        return {"status": "ready"}

    return app


app = create_app()
