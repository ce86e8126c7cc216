"""
Parish Ledger - Main Application Entry Point

Bank statement reconciliation, general ledger and membership dues for a
parish, as a modular monolith.
"""

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from parish_ledger.core.config import settings

# Import module routers
from parish_ledger.ingestion.router import router as ingestion_router
from parish_ledger.modules.bank.router import router as bank_router
from parish_ledger.modules.finance.router import router as finance_router
from parish_ledger.modules.dues.router import router as dues_router

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Parish bank reconciliation, ledger and membership dues",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    cors_origins = ["*"] if settings.CORS_ALLOW_ALL else settings.CORS_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register module routers
    app.include_router(ingestion_router, prefix="/api/v1/bank", tags=["Bank Import"])
    app.include_router(bank_router, prefix="/api/v1/bank", tags=["Bank Reconciliation"])
    app.include_router(finance_router, prefix="/api/v1", tags=["Finance"])
    app.include_router(dues_router, prefix="/api/v1/dues", tags=["Dues"])

    @app.get("/", tags=["Health"])
    async def root():
        """Root endpoint - health check."""
        return {
            "application": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "status": "running"
        }

    @app.get("/api/health", tags=["Health"])
    async def health_check():
        """API health check endpoint."""
        return {"status": "healthy"}

    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} configured")
    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("parish_ledger.main:app", host="0.0.0.0", port=8000, reload=True)
