import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request

from dal.photo_dal import PhotoDAL
from routes.look_route import router as look_router
from routes.photo_route import router as photo_router
from routes.vault_route import router as vault_router
from services.image_compressor import CompressOptions, ImageCompressor
from services.look_store import LookStore
from services.photo_store import PhotoStore
from utils.database_init import AsyncDatabaseInitializer
from utils.kv_storage import JsonFileKeyValueStorage
from utils.settings import Settings

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - settings from the environment (DATABASE_DIR is required)
      - the key-value photo store and look vault (DATABASE_DIR/photos.json)
      - the SQLite fallback store (DATABASE_DIR/fitcheck.db), schema upgraded in place
    and attach them to `app.state`.
    """
    settings = Settings.from_env()
    app.state.settings = settings

    http_client = httpx.AsyncClient(follow_redirects=True)
    compressor = ImageCompressor(
        CompressOptions(
            max_width=1280,
            max_height=1920,
            max_megapixels=3.2,
            byte_ceiling=settings.max_item_bytes,
        ),
        http_client=http_client,
    )
    storage = JsonFileKeyValueStorage(settings.kv_path)

    app.state.compressor = compressor
    app.state.photo_store = PhotoStore(
        storage,
        compressor,
        byte_budget=settings.byte_budget,
        ttl_days=settings.ttl_days,
    )
    app.state.look_store = LookStore(storage)

    db_initializer = AsyncDatabaseInitializer(settings.db_path, max_bytes=settings.db_max_bytes)
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer
    app.state.photo_dal = PhotoDAL(db_initializer)
    app.state.persisted = await app.state.photo_dal.request_persistence()
    LOGGER.info("Photo database at %s (persisted=%s)", settings.db_path, app.state.persisted)

    try:
        yield
    finally:
        await http_client.aclose()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    app = FastAPI(title="FitCheck photo store", lifespan=lifespan)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that reports which stores are initialized.
        """
        state = request.app.state
        return {
            "ok": True,
            "photo_store": hasattr(state, "photo_store"),
            "db_initialized": hasattr(state, "db_initializer"),
            "persisted": getattr(state, "persisted", False),
        }

    # Register application routers
    app.include_router(photo_router)
    app.include_router(vault_router)
    app.include_router(look_router)

    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
