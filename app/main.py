from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.cache import build_cache_backend
from app.core.database.engine import AsyncSessionLocal, init_db
from app.core.errors import Conflict, CycleDetected, InvalidInput, NotFound, RBACError, StoreUnavailable
from app.core.rate_limit import limiter
from app.features.departments.routes import router as department_router
from app.features.employees.routes import router as employee_router
from app.features.permissions.engine import AccessControl
from app.features.permissions.routes import router as permission_router
from app.features.roles.routes import router as role_router
from app.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="RBAC Service",
    description="Department-scoped role-based access control with hierarchical roles",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.app.features."), timing=timing, tags=tags))


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


ERROR_STATUS = {
    InvalidInput: 400,
    NotFound: 404,
    Conflict: 409,
    CycleDetected: 409,
    StoreUnavailable: 503,
}


@app.exception_handler(RBACError)
async def rbac_exception_handler(request: Request, exc: RBACError):
    status_code = ERROR_STATUS.get(type(exc), 500)
    if status_code >= 500:
        log.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        log.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.on_event("startup")
async def startup():
    """Initialize database and access control on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")
    app.state.cache_backend = build_cache_backend()
    app.state.access = AccessControl.from_config(AsyncSessionLocal, app.state.cache_backend)


@app.on_event("shutdown")
async def shutdown():
    backend = getattr(app.state, "cache_backend", None)
    if backend is not None:
        await backend.close()


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "RBAC Service API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "actor": "Send X-Employee-ID to attribute changes in the audit log",
        "features": {
            "departments": "Departments, also used as the scope of scoped grants",
            "roles": "Hierarchical roles; a role inherits every grant of its ancestors",
            "permissions": "Permissions, scoped grants, single and batch checks, decision cache",
            "employees": "Role assignments, subordinates and effective permissions"
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(department_router, prefix="/departments", tags=["departments"])
app.include_router(role_router, prefix="/roles", tags=["roles"])
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])
app.include_router(employee_router, prefix="/employees", tags=["employees"])
