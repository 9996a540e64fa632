from fastapi import FastAPI

from game_analytics.api.routes.analytics import router as analytics_router
from game_analytics.api.routes.health import router as health_router
from game_analytics.core.config import settings
from game_analytics.core.logging import setup_logging


def create_app() -> FastAPI:
    setup_logging(settings.log_level)
    application = FastAPI(title="Game Analytics API")
    application.include_router(health_router)
    application.include_router(analytics_router)
    return application


app = create_app()
