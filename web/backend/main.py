from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from slughouse import __version__
from slughouse.core.errors import SlughouseError

from web.backend.deps import get_config

app = FastAPI(title="Slughouse API", version=__version__)

# CORS: ALLOWED_ORIGINS env overrides config.toml (see load_config)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SlughouseError)
async def slughouse_error_handler(request: Request, exc: SlughouseError) -> JSONResponse:
    """Map domain errors that escape a router onto their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


# Include routers
from web.backend.routers import media, tracks

app.include_router(tracks.router, tags=["tracks"])
app.include_router(media.router, tags=["media"])


@app.get("/health")
async def health_check():
    return {"status": "ok"}
