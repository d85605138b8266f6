from contextlib import asynccontextmanager
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from timbre.api import extract
from timbre.config import settings

log = structlog.get_logger()

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("startup", env=settings.APP_ENV, version=VERSION,
             sample_rate=settings.SAMPLE_RATE, components=settings.TIMBRE_COMPONENTS)
    yield
    log.info("shutdown")


app = FastAPI(
    title="Timbre Distribution API",
    description="MFCC Gaussian-mixture timbre models for song similarity",
    version=VERSION,
    lifespan=lifespan,
)

# CORS_ORIGINS may arrive as a comma-separated string from the environment
cors_origins = settings.CORS_ORIGINS
if isinstance(cors_origins, str):
    cors_origins = [o.strip() for o in cors_origins.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(extract.router, prefix="/api/v1/timbre", tags=["Timbre"])


@app.get("/health", tags=["System"])
async def health():
    return {"status": "ok", "version": VERSION, "env": settings.APP_ENV}


@app.get("/", tags=["System"])
async def root():
    return {"name": "Timbre Distribution API", "docs": "/docs", "health": "/health"}
