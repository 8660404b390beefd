import logging
import os
import tomllib
from contextlib import asynccontextmanager
from pathlib import Path

import setproctitle

import settings
from brotli_asgi import BrotliMiddleware
from fastapi import FastAPI, APIRouter

from routes.friendship import router as friendship_router
from routes.users import router as users_router
from services.auth import TokenVerifier
from services.cache import ProfileCache
from services.directory import Directory
from services.relationships import RelationshipService
from services.store import build_store
from settings import PROJECT_PATH
from starlette.middleware import Middleware
from starlette.middleware.sessions import SessionMiddleware

from utils import setup_logs

logger = logging.getLogger("friendgraph.main")
setup_logs()
setproctitle.setproctitle("Friendgraph API")


def get_version() -> str:
    """Read version from pyproject.toml"""

    with open(PROJECT_PATH / "pyproject.toml", "rb") as f:
        pyproject = tomllib.load(f)
    return pyproject["project"]["version"]


def update_database():  # pragma: no cover
    """Init the DB or run the Alembic migrations"""
    import alembic.config

    if not Path("alembic.ini").is_file():
        os.chdir(settings.BACKEND_DIR)

    try:
        alembic.config.main(
            argv=[
                "--raiseerr",
                "upgrade",
                "head",
            ]
        )
    except Exception as e:
        logger.exception(f"Cannot run DB migrations: {e}")


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI app"""
    logger.debug("Starting...")
    if settings.STORE_BACKEND == "sql":
        update_database()
    store = build_store()
    directory = Directory()
    app.state.directory = directory
    app.state.verifier = TokenVerifier()
    app.state.profiles = ProfileCache(directory)
    app.state.relationships = RelationshipService(store, directory)
    yield
    await app.state.verifier.close()
    await directory.close()
    await store.close()
    logger.debug("Closing app")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""

    app = FastAPI(
        title="Friendgraph",
        description="Friends and friend requests",
        version=get_version(),
        middleware=[
            Middleware(BrotliMiddleware, minimum_size=1000),
            Middleware(SessionMiddleware, secret_key=settings.SESSION_SECRET_KEY),
        ],
        swagger_ui_parameters={
            "defaultModelsExpandDepth": 0,
        },  # collapse the swagger schema
        lifespan=app_lifespan,
    )

    # Mount routers
    api_router = APIRouter()
    api_router.include_router(friendship_router, tags=["friendship"])
    api_router.include_router(users_router, tags=["users"])
    app.include_router(api_router, prefix=settings.API_PREFIX)
    return app
