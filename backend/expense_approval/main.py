"""
Expense Approval Backend - Main FastAPI Application

Wires the expense, workflow and manager routers behind correlation-id
logging and the domain error handlers. Startup prepares the MongoDB
indexes and checks that the conditional rule catalog loads.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

from .config.settings import settings
from .api.routes import api_router
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .domain.errors import DomainError
from .engine.rule_catalog import RuleCatalog
from .repositories.mongo_client import create_indexes, close_connection, health_check
from .utils.logger import setup_logging, get_logger

# Setup logging first
setup_logging()
logger = get_logger(__name__)

APP_VERSION = "1.0.0"
API_PREFIX = "/api/v1"


def _approval_config() -> dict:
    return {
        "base_currency": settings.base_currency,
        "manager_only_max_amount": settings.manager_only_max_amount,
        "finance_max_amount": settings.finance_max_amount,
        "allow_approval_restart": settings.allow_approval_restart,
        "rule_catalog": settings.rule_catalog_path or "builtin",
    }


def _check_rule_catalog() -> None:
    try:
        rules = RuleCatalog().load_available_rules()
    except DomainError as e:
        logger.error(f"Rule catalog failed to load: {e.message}", extra={"error_code": e.error_code})
        return
    logger.info(f"Rule catalog loaded with {len(rules)} rules")


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: MongoDB indexes, rule catalog check.
    Shutdown: close the MongoDB client.
    """
    logger.info(
        f"Starting Expense Approval Backend ({settings.environment}), "
        f"tiers <= {settings.manager_only_max_amount:g} / <= {settings.finance_max_amount:g} "
        f"{settings.base_currency}"
    )

    try:
        create_indexes()
    except PyMongoError as e:
        logger.error(f"Failed to create indexes: {e}")

    _check_rule_catalog()

    yield

    close_connection()
    logger.info("Application shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """Build the FastAPI application"""
    application = FastAPI(
        title="Expense Approval Backend",
        description="Expense submission with multi-step approval chains and conditional approval rules",
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
    )

    allow_all = settings.cors_origins.strip() == "*"
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_origins_list,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
        # Content-Disposition for CSV downloads
        expose_headers=["X-Correlation-Id", "Content-Disposition"],
    )
    application.add_middleware(CorrelationIdMiddleware)

    register_error_handlers(application)
    application.include_router(api_router, prefix=API_PREFIX)
    _add_service_endpoints(application)

    return application


def _add_service_endpoints(app: FastAPI) -> None:
    """Unauthenticated health and index endpoints"""

    @app.get("/health", tags=["Health"])
    async def health():
        """Database connectivity plus the active approval configuration"""
        mongo_health = health_check()
        return {
            "status": "healthy" if mongo_health.get("status") == "healthy" else "degraded",
            "version": APP_VERSION,
            "environment": settings.environment,
            "mongo": mongo_health,
            "approval": _approval_config(),
        }

    @app.get("/", tags=["Health"])
    async def root():
        return {
            "name": "Expense Approval Backend",
            "version": APP_VERSION,
            "endpoints": {
                "expenses": f"{API_PREFIX}/expenses",
                "workflow": f"{API_PREFIX}/workflow",
                "manager": f"{API_PREFIX}/manager",
            },
            "docs": "/api/docs" if settings.debug else None,
        }


app = create_app()
