"""
Timbre API:

Upload → decode + resample → TimbreDistributionExtractor in a
ThreadPoolExecutor → JSON mixture. Nothing is stored; the caller keeps
the distribution.
"""
import asyncio
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import structlog
from fastapi import APIRouter, File, HTTPException, Query, UploadFile

from timbre.config import settings
from timbre.core.audio import AudioDecodeError, decode_stream
from timbre.core.errors import ConfigurationError, InputTooShortError, ModelFittingError
from timbre.core.extractor import ExtractionConfig, TimbreDistributionExtractor
from timbre.schemas.distribution import (
    ComponentSchema, ExtractionDefaults, TimbreDistributionResponse,
)

router = APIRouter()

_pool = ThreadPoolExecutor(max_workers=2)
log   = structlog.get_logger()


def _validate(file: UploadFile):
    ext = os.path.splitext(file.filename or "")[1].lower()
    if ext not in settings.ALLOWED_AUDIO_EXTENSIONS:
        raise HTTPException(400, detail=f"Format not allowed: {ext}")


def _config(components, skip_intro, skip_outro, min_length) -> ExtractionConfig:
    return ExtractionConfig(
        n_components=settings.TIMBRE_COMPONENTS if components is None else components,
        skip_intro_seconds=settings.SKIP_INTRO_SECONDS if skip_intro is None else skip_intro,
        skip_outro_seconds=settings.SKIP_OUTRO_SECONDS if skip_outro is None else skip_outro,
        minimum_stream_seconds=settings.MIN_STREAM_SECONDS if min_length is None else min_length,
    )


# ── Pure sync worker ───────────────────────────────────────────────────────

def _run(raw: bytes, filename: str, config: ExtractionConfig) -> TimbreDistributionResponse:
    """Runs in a thread. One fresh stream and extractor per request."""
    stream    = decode_stream(raw, filename, sample_rate=settings.SAMPLE_RATE)
    extractor = TimbreDistributionExtractor.from_settings(settings, config=config)
    td        = extractor.extract(stream)

    model = td.model
    return TimbreDistributionResponse(
        type=td.ATTRIBUTE_TYPE,
        name=str(extractor),
        filename=filename,
        sample_rate=stream.sample_rate,
        duration_sec=round(stream.duration_sec, 2),
        n_components=td.n_components,
        dimension=td.dimension,
        components=[
            ComponentSchema(weight=float(w), mean=m.tolist(), covariance=c.tolist())
            for w, m, c in zip(model.weights, model.means, model.covariances)
        ],
    )


# ── Endpoints ──────────────────────────────────────────────────────────────

@router.get("/defaults", response_model=ExtractionDefaults)
async def get_defaults():
    return ExtractionDefaults(
        components=settings.TIMBRE_COMPONENTS,
        skip_intro=settings.SKIP_INTRO_SECONDS,
        skip_outro=settings.SKIP_OUTRO_SECONDS,
        min_length=settings.MIN_STREAM_SECONDS,
        sample_rate=settings.SAMPLE_RATE,
        window_size=settings.WINDOW_SIZE,
        n_mfcc=settings.N_MFCC,
    )


@router.post("/extract", response_model=TimbreDistributionResponse)
async def extract_distribution(
    file: UploadFile = File(...),
    components: Optional[int] = Query(None, description="Number of Gaussian components"),
    skip_intro: Optional[float] = Query(None, description="Seconds skipped at the start"),
    skip_outro: Optional[float] = Query(None, description="Seconds skipped at the end"),
    min_length: Optional[float] = Query(None, description="Minimum seconds left after trimming"),
):
    _validate(file)

    try:
        config = _config(components, skip_intro, skip_outro, min_length)
    except ConfigurationError as e:
        raise HTTPException(400, detail=str(e))

    raw   = await file.read()
    fname = file.filename or "audio.wav"
    if len(raw) > settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024:
        raise HTTPException(413, detail=f"File larger than {settings.MAX_UPLOAD_SIZE_MB} MB")

    log.info("extract_request", filename=fname, size=len(raw), components=config.n_components)

    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(_pool, _run, raw, fname, config)
    except AudioDecodeError as e:
        raise HTTPException(400, detail=str(e))
    except InputTooShortError as e:
        log.info("extract_rejected", filename=fname, reason="too_short", frames=e.frame_count)
        raise HTTPException(422, detail=str(e))
    except ModelFittingError as e:
        log.warning("extract_rejected", filename=fname, reason="model_fitting", attempts=e.attempts)
        raise HTTPException(422, detail=str(e))
