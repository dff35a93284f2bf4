"""FastAPI application entrypoint."""
import logging
import os
from pathlib import Path

# Project root (parent of aura_intake/)
_ROOT = Path(__file__).resolve().parent.parent

# Load .env FIRST so SUPABASE_*, NVIDIA_*, etc. are set before any app code reads them.
# override=True so .env wins (uvicorn reload spawns a worker that may not inherit env).
from dotenv import load_dotenv
load_dotenv(_ROOT / ".env", override=True)

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from aura_intake.api.chat import router as chat_router
from aura_intake.api.deps import get_session_registry
from aura_intake.api.routes import router
from aura_intake.core.config import get_settings

logging.basicConfig(level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO))
_log = logging.getLogger(__name__)

# Prevent third-party HTTP libs from logging at DEBUG (avoids leaking API keys/headers into logs)
for _name in ("httpx", "httpcore", "hpack", "urllib3"):
    logging.getLogger(_name).setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.supabase_enabled:
        _log.info("Supabase enabled: leads and contacts will be stored.")
    else:
        _log.info("Supabase disabled (SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY not set). Submissions will fail.")
    if not settings.nvidia_api_key:
        _log.info("NVIDIA_API_KEY not set: chat sessions will open but not be ready.")
    yield
    # Chat history is not kept across restarts
    get_session_registry().clear()


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["POST", "OPTIONS", "GET", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.include_router(router)
    app.include_router(chat_router)
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run("aura_intake.main:app", host=settings.host, port=settings.port, reload=True)
