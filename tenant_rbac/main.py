from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from tenant_rbac.core import config
from tenant_rbac.core.database.engine import init_db
from tenant_rbac.core.errors import RBACError
from tenant_rbac.features.applications.routes import router as application_router
from tenant_rbac.features.audit.sink import LoggingAuditSink
from tenant_rbac.features.identity.dependencies import get_authorization_header
from tenant_rbac.features.organizations.routes import router as organization_router
from tenant_rbac.features.permissions.cache import PermissionCache
from tenant_rbac.features.permissions.routes import router as permission_router
from tenant_rbac.features.roles.routes import router as role_router
from tenant_rbac.utils import get_logger


log = get_logger(__name__)


def install_permission_state(app: FastAPI) -> None:
    """Process-wide permission caches and audit sink, shared by every request."""
    app.state.permission_cache = PermissionCache(
        ttl_seconds=config.PERMISSION_CACHE_TTL_SECONDS,
        max_entries=config.PERMISSION_CACHE_MAX_ENTRIES,
    )
    app.state.permission_check_cache = PermissionCache(
        ttl_seconds=config.PERMISSION_CACHE_TTL_SECONDS,
        max_entries=config.PERMISSION_CHECK_CACHE_MAX_ENTRIES,
    )
    app.state.audit_sink = LoggingAuditSink()


log.info("Initializing server")
app = FastAPI(
    title="Tenant RBAC",
    description="Multi-tenant role-based access control service",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None,
)
limiter = Limiter(key_func=get_authorization_header)
app.state.limiter = limiter
install_permission_state(app)


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.tenant_rbac.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(RBACError)
async def rbac_exception_handler(_request: Request, exc: RBACError):
    log.info("%s: %s", exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.on_event("startup")
async def startup():
    """Initialize database on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Tenant RBAC API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Every endpoint except / and /health requires a Bearer token in the Authorization header",
        },
        "features": {
            "applications": "Per-organization catalogue of applications, resources and actions",
            "roles": "Application roles with action grants, and custom organization roles",
            "permissions": "Three-tier effective permission resolution with caching",
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Organization, catalogue and role administration
app.include_router(organization_router, prefix="/organizations", tags=["organizations"])
app.include_router(application_router, prefix="/organizations", tags=["applications"])
app.include_router(role_router, prefix="/organizations", tags=["roles"])

# Permission queries
app.include_router(permission_router, prefix="/rbac", tags=["rbac"])
