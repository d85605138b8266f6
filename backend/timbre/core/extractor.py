"""
Timbre distribution extraction.

MFCCs are computed for short overlapping windows (50 % overlap) and their
distribution is summarised by a Gaussian mixture; the mixture is the
song's timbre model and can be compared to other songs' models.

  1. skip the intro (seconds at the stream's native rate)
  2. MFCC frames for everything that is left
  3. drop the outro frames, reject streams that end up too short
  4. k-means seed → EM refinement, one corrected retry on singularity

All per-call state lives in extract()'s locals, so one extractor can be
reused for any number of songs. Each call consumes its stream.

Ref: Aucouturier & Pachet, "Improving Timbre Similarity: How high's the sky?",
     Journal of Negative Results in Speech and Audio Sciences 1(1), 2004.
"""
import math
import numbers
from dataclasses import dataclass
from typing import Optional

import structlog

from timbre.core.audio import AudioStream
from timbre.core.clustering import Initializer, KMeansInitializer
from timbre.core.errors import ConfigurationError, InputTooShortError, InputTypeError
from timbre.core.features import FrameSource, MfccFrameSource
from timbre.core.fitting import ModelFitter
from timbre.core.mixture import EMRefiner, Refiner, TimbreDistribution
from timbre.core.trimming import TrimmingPolicy

log = structlog.get_logger()

DEFAULT_COMPONENTS     = 3
DEFAULT_SKIP_INTRO     = 30
DEFAULT_SKIP_OUTRO     = 30
DEFAULT_MINIMUM_LENGTH = 30


def _is_number(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


@dataclass(frozen=True)
class ExtractionConfig:
    n_components:           int   = DEFAULT_COMPONENTS
    skip_intro_seconds:     float = DEFAULT_SKIP_INTRO
    skip_outro_seconds:     float = DEFAULT_SKIP_OUTRO
    minimum_stream_seconds: float = DEFAULT_MINIMUM_LENGTH

    def __post_init__(self):
        if not isinstance(self.n_components, numbers.Integral) or isinstance(self.n_components, bool):
            raise ConfigurationError(f"n_components must be an integer, got {self.n_components!r}")
        for name in ("skip_intro_seconds", "skip_outro_seconds", "minimum_stream_seconds"):
            if not _is_number(getattr(self, name)):
                raise ConfigurationError(f"{name} must be a number, got {getattr(self, name)!r}")
            if not math.isfinite(getattr(self, name)):
                raise ConfigurationError(f"{name} must be finite, got {getattr(self, name)!r}")

        if self.n_components < 1:
            raise ConfigurationError(f"n_components must be >= 1, got {self.n_components}")
        if not self.skip_intro_seconds >= 0:
            raise ConfigurationError(f"skip_intro_seconds must be >= 0, got {self.skip_intro_seconds}")
        if not self.skip_outro_seconds >= 0:
            raise ConfigurationError(f"skip_outro_seconds must be >= 0, got {self.skip_outro_seconds}")
        if not self.minimum_stream_seconds >= 1:
            raise ConfigurationError(
                f"minimum_stream_seconds must be >= 1, got {self.minimum_stream_seconds}")

    @classmethod
    def from_settings(cls, settings) -> "ExtractionConfig":
        return cls(
            n_components=settings.TIMBRE_COMPONENTS,
            skip_intro_seconds=settings.SKIP_INTRO_SECONDS,
            skip_outro_seconds=settings.SKIP_OUTRO_SECONDS,
            minimum_stream_seconds=settings.MIN_STREAM_SECONDS,
        )


class TimbreDistributionExtractor:

    name           = TimbreDistribution.NAME
    attribute_type = TimbreDistribution.ATTRIBUTE_TYPE

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        frame_source: Optional[FrameSource] = None,
        initializer: Optional[Initializer] = None,
        refiner: Optional[Refiner] = None,
    ):
        self.config       = config if config is not None else ExtractionConfig()
        self.frame_source = frame_source if frame_source is not None else MfccFrameSource()
        self.fitter       = ModelFitter(
            initializer if initializer is not None else KMeansInitializer(),
            refiner if refiner is not None else EMRefiner(),
        )

    @classmethod
    def from_settings(cls, settings, config: Optional[ExtractionConfig] = None) -> "TimbreDistributionExtractor":
        return cls(
            config=config if config is not None else ExtractionConfig.from_settings(settings),
            frame_source=MfccFrameSource.from_settings(settings),
            initializer=KMeansInitializer.from_settings(settings),
            refiner=EMRefiner.from_settings(settings),
        )

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"TimbreDistributionExtractor({self.config!r})"

    def extract(self, stream: AudioStream) -> TimbreDistribution:
        """
        Fit the timbre distribution of one stream.

        Raises:
            InputTypeError:      stream is None or not an AudioStream
            InputTooShortError:  no frames, or too few left after trimming
            ModelFittingError:   the mixture could not be fitted
            OSError / soundfile errors from the stream, unchanged
        """
        if stream is None or not isinstance(stream, AudioStream):
            raise InputTypeError(
                f"expected an AudioStream, got {type(stream).__name__}")

        cfg = self.config
        sr  = stream.sample_rate
        log.info("timbre_extraction_start", sample_rate=sr, components=cfg.n_components,
                 skip_intro=cfg.skip_intro_seconds, skip_outro=cfg.skip_outro_seconds)

        # ── Intro ─────────────────────────────────────────────────────────────
        stream.skip(int(cfg.skip_intro_seconds * sr))

        # ── Frames ────────────────────────────────────────────────────────────
        frames = self.frame_source.frames(stream)
        if len(frames) == 0:
            raise InputTooShortError("the input stream is too short to process",
                                     frame_count=0, required=1)

        # ── Outro + minimum length ────────────────────────────────────────────
        policy = TrimmingPolicy(
            sample_rate=sr,
            window_size=self.frame_source.window_size,
            skip_outro_seconds=cfg.skip_outro_seconds,
            minimum_stream_seconds=cfg.minimum_stream_seconds,
        )
        points = policy.trim(frames)
        log.info("frames_extracted", frames=len(frames), dropped=policy.frames_to_drop,
                 kept=len(points), minimum=policy.minimum_frame_count)

        if not policy.is_admissible(points):
            raise InputTooShortError(
                f"the input stream is too short to process: {len(points)} frames after "
                f"trimming, {policy.minimum_frames_exact:.1f} required",
                frame_count=len(points), required=policy.minimum_frames_exact)

        # ── Fit ───────────────────────────────────────────────────────────────
        result = self.fitter.fit(points, cfg.n_components)

        log.info("timbre_extraction_complete", components=result.model.n_components,
                 dimension=result.model.dimension, attempts=result.attempts,
                 points=len(result.points))
        return TimbreDistribution(result.model)
