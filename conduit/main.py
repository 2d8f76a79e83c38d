import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from conduit.cache import cache
from conduit.config import settings
from conduit.database import database
from conduit.exceptions import ConduitError
from conduit.jobs.cleanup import scheduler
from conduit.routers import articles, profiles, tags, users

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    database.connect()
    await cache.connect()
    if settings.CLEANUP_ENABLED:
        scheduler.start()
    yield
    # Shutdown
    await scheduler.stop()
    await cache.disconnect()
    await database.disconnect()


app = FastAPI(
    title="Conduit API",
    description="RealWorld Medium.com clone: articles, comments, tags, favorites and follows",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(users.router)
app.include_router(profiles.router)
app.include_router(articles.router)
app.include_router(tags.router)


@app.exception_handler(ConduitError)
async def conduit_error_handler(request: Request, exc: ConduitError):
    return JSONResponse(status_code=exc.status_code, content=exc.body)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Unhandled database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"errors": {"server": ["internal error"]}})


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0", "cache": cache.available}
