"""
Zuri Payment Coordinator API - Main Application.

FastAPI application with CORS enabled for frontend communication. The payment
processor and solver loops run on the application's event loop and are started
and stopped with the application.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from api.routers import payments, quotes
from services.context import PaymentContext, build_context
from services.scheduler import LoopScheduler
from settings import Settings, load_settings

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    context: Optional[PaymentContext] = None,
    start_loops: bool = True,
) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Validated settings; loaded from the environment when omitted
        context: Prebuilt context (tests pass a stub context)
        start_loops: Start the processor and solver loops with the app
    """
    if context is None:
        context = build_context(settings or load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler = None
        if start_loops:
            scheduler = LoopScheduler(context)
            scheduler.start()
        app.state.scheduler = scheduler
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown()

    app = FastAPI(
        title="Zuri Payment Coordinator API",
        description="Cross-chain privacy-shielded payments: create, fund and track payments",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.context = context

    # Configure CORS - Allow all origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["Health"])
    def health_check():
        """
        Health check endpoint.

        Returns the API status, version and payment counts per status.
        """
        counts = context.payments.count_by_status()
        return {
            "status": "healthy",
            "version": __version__,
            "service": "zuri-payment-coordinator",
            "liveProviders": context.settings.live_providers,
            "ledgerDegraded": context.ledger.is_degraded,
            "payments": {status.value: count for status, count in counts.items()},
        }

    @app.get("/api/health", tags=["Health"])
    def api_health_check():
        return {"status": "ok"}

    @app.get("/", tags=["Root"])
    def root():
        """
        Root endpoint with API information.
        """
        return {
            "message": "Zuri Payment Coordinator API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health"
        }

    app.include_router(payments.router, prefix="/api", tags=["Payments"])
    app.include_router(quotes.router, prefix="/api", tags=["Quotes"])
    return app


app = create_app()
