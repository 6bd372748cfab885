import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api_routers.v1 import api_router
from app.middlewares.rate_limit import RateLimitMiddleware
from app.platform.config import Settings, settings
from app.platform.exceptions import add_exception_handlers
from app.platform.services.email import EmailDispatcher
from app.platform.services.rate_limiter import RateLimiter

# Configure logging to show INFO level messages
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    app_settings = app_settings or settings

    app = FastAPI(
        title=f"{app_settings.APP_NAME} Waitlist API",
        description="Waitlist signup, verification and unsubscribe API",
        version="1.0.0",
        debug=app_settings.DEBUG,
    )

    app.state.settings = app_settings
    app.state.rate_limiter = RateLimiter.from_settings(app_settings)
    app.state.email_dispatcher = EmailDispatcher.from_settings(app_settings)

    # Root endpoint for basic info
    @app.get("/", tags=["Info"])
    def root():
        return {
            "app_name": f"{app_settings.APP_NAME} Waitlist API",
            "description": "Collects waitlist signups with verification and bot filtering.",
            "version": "1.0.0",
            "docs_url": "/docs",
            "api_base": "/api/waitlist",
        }

    add_exception_handlers(app)

    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "HEAD", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    return app


app = create_app()
