import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from backend.routes import router
from backend import storage
from storydesigner.config import load_settings

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def create_app(data_dir: Path | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    storage.init_storage(resolved, load_settings())

    app = FastAPI(title="Story Designer")
    app.include_router(router, prefix="/api")

    # Avatar images referenced by community posts
    app.mount("/emoji", StaticFiles(directory=storage.emoji_dir(), check_dir=False), name="emoji")
    logging.getLogger(__name__).info("story designer app ready, data in %s", resolved)
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
