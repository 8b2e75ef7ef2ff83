"""FastAPI app, CORS, error responses, and route registration."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(name)s: %(message)s",
)

from songvault.api.state import AppState, get_state
from songvault.config import ALLOWED_ORIGINS, CLEANUP_TEST_SONGS, ensure_upload_dir
from songvault.core.external import call_external
from songvault.core.songs import cleanup_test_songs
from songvault.errors import DependencyFailure, SongVaultError

from songvault.api.routes import health, songs, upload

__all__ = ["app", "AppState", "get_state"]

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_upload_dir()
    state = get_state()
    try:
        await call_external("user index setup", state.users.ensure_indexes)
    except DependencyFailure as e:
        logger.error("MongoDB not reachable at startup: %s", e.message)
    else:
        logger.info("Connected to MongoDB")
        if CLEANUP_TEST_SONGS:
            await cleanup_test_songs(state.catalog)

    yield

    state.close()


app = FastAPI(
    title="SongVault API",
    description="Music catalog: song uploads to object storage, metadata in MongoDB",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization"],
)


@app.exception_handler(SongVaultError)
async def songvault_error_handler(request: Request, exc: SongVaultError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    elif exc.status_code == 401:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:])
    message = f"{field}: {first.get('msg')}" if field else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.include_router(songs.router, prefix="/api/songs", tags=["songs"])
app.include_router(upload.router, prefix="/api", tags=["upload"])
app.include_router(health.router, prefix="/api", tags=["health"])
