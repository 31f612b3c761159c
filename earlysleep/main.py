import uvicorn
from fastapi import FastAPI

from earlysleep.api.routes.checkins import router as checkins_router
from earlysleep.api.routes.friends import router as friends_router
from earlysleep.api.routes.goodnight import router as goodnight_router
from earlysleep.api.routes.health import router as health_router
from earlysleep.api.routes.internal_jobs import router as internal_jobs_router
from earlysleep.api.routes.proxy import router as proxy_router
from earlysleep.api.routes.users import router as users_router
from earlysleep.core.config import get_settings
from earlysleep.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Early Sleep API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.include_router(health_router)
    app.include_router(users_router)
    app.include_router(checkins_router)
    app.include_router(friends_router)
    app.include_router(goodnight_router)
    app.include_router(proxy_router)
    app.include_router(internal_jobs_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "earlysleep.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
