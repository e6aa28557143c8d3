# storefront/main.py
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.core.config import get_settings
from storefront.core.errors import StorefrontError
from storefront.session import SESSION_HEADER, SessionRegistry

# Routers
from storefront.routers.cart import router as cart_router
from storefront.routers.checkout import router as checkout_router
from storefront.routers.orders import router as orders_router
from storefront.routers.addresses import router as addresses_router
from storefront.routers.wishlist import router as wishlist_router
from storefront.routers.profile import router as profile_router
from storefront.routers.reviews import router as reviews_router
from storefront.routers.session import router as session_router

settings = get_settings()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("uvicorn")


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def create_app(registry: SessionRegistry | None = None) -> FastAPI:
    """
    Build the storefront API.

    `registry` holds the browser sessions; tests pass one built with a
    fake remote factory.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.

        Startup:
          - Create the session registry.

        Shutdown:
          - Flush pending cart writes and close live subscriptions.
        """
        app.state.sessions = registry if registry is not None else SessionRegistry()
        logger.info("🔄 Startup: storefront sessions ready (backend %s)", settings.SUPABASE_URL)
        yield
        logger.info("Shutdown: closing %d storefront sessions...", len(app.state.sessions))
        await app.state.sessions.close_all()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version="0.1.0",
        lifespan=lifespan,
    )

    # --- CORS configuration ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER],
    )

    app.add_exception_handler(StorefrontError, storefront_error_handler)

    # Versioned API prefix, e.g. /api/v1
    for router in (
        cart_router,
        checkout_router,
        orders_router,
        addresses_router,
        wishlist_router,
        profile_router,
        reviews_router,
        session_router,
    ):
        app.include_router(router, prefix=settings.API_V1_STR)

    @app.get("/")
    def root():
        """Health check endpoint."""
        return {"status": "ok", "service": "matica-storefront"}

    return app


app = create_app()
