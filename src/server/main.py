"""
FastAPI application factory.

Run locally with::

    uvicorn src.server.main:app --port 4000
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config.logging_config import configure_logging
from src.config.settings import get_frontend_url, get_port
from src.server.app.files import router as files_router
from src.server.dependencies.storage import get_file_storage

logger = logging.getLogger(__name__)

APP_TITLE = "NAS Web Storage"


@asynccontextmanager
async def lifespan(app: FastAPI):
    storage = app.dependency_overrides.get(get_file_storage, get_file_storage)()
    logger.info(f"{APP_TITLE} serving {storage.root}")
    yield


def create_app(*, configure_logs: bool = True) -> FastAPI:
    if configure_logs:
        configure_logging()

    app = FastAPI(title=APP_TITLE, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[get_frontend_url()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "Content-Length"],
    )

    @app.get("/health")
    async def health():
        return {"ok": True, "service": APP_TITLE}

    app.include_router(files_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_port())
