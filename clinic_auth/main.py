"""
Main FastAPI application entry point.
Configures the application, middleware, and includes routers.
"""
from dotenv import load_dotenv

# Load environment variables from .env file first
load_dotenv()

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from .auth.router import router as auth_router
from .auth.service import cleanup_expired_tokens
from .config import settings
from .core.bootstrap import bootstrap_admin_if_needed
from .core.middleware import setup_middlewares
from .core.rate_limit import limiter
from .database import Database
from .exceptions import register_exception_handlers
from .users.router import router as users_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def _prepare_database(database: Database) -> None:
    """Create missing tables, the bootstrap admin, and drop expired tokens."""
    database.create_all()
    db = database.session()
    try:
        bootstrap_admin_if_needed(db)
        cleanup_expired_tokens(db)
    except SQLAlchemyError as e:
        logger.error(f"Startup database maintenance failed: {str(e)}")
    finally:
        db.close()


def create_app(database: Optional[Database] = None) -> FastAPI:
    """
    Build the application.

    Args:
        database: Database to use; defaults to one built from settings. It is
            connected when the app starts and closed when it stops.
    """
    database = database or Database.from_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Clinic Auth API...")
        database.connect()
        _prepare_database(database)
        yield
        database.close()
        logger.info("Clinic Auth API stopped")

    app = FastAPI(
        title="Clinic Auth API",
        description="Authentication and authorization for the chiropractic clinic backend",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.database = database
    app.state.limiter = limiter

    # Register exception handlers
    register_exception_handlers(app)

    # Configure CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Setup custom middleware
    setup_middlewares(app)

    # Include routers
    app.include_router(auth_router)
    app.include_router(users_router)

    @app.get("/")
    def root():
        """
        Root endpoint for API health check.

        Returns:
            dict: Simple welcome message
        """
        return {"message": "Welcome to the Clinic Auth API", "version": __version__}

    @app.get("/health")
    def health_check(request: Request):
        """
        Health check endpoint for monitoring.

        A database that cannot be reached answers 503 through the
        database-unavailable handler.
        """
        request.app.state.database.ping()
        return {"status": "healthy", "database": "connected"}

    return app


app = create_app()
