"""
MFCC frame source: one timbre vector per analysis window.

Windows are WINDOW_SIZE samples with a hop of WINDOW_SIZE // 2 (50 %
overlap) and no centering/padding, so a stream of S samples yields
1 + (S - WINDOW_SIZE) // hop frames, and none at all when S < WINDOW_SIZE.
The trimming policy relies on that stride to turn seconds into frames.
"""
from typing import Protocol

import numpy as np
import structlog

from timbre.core.audio import AudioStream

log = structlog.get_logger()

# ── Constants ──────────────────────────────────────────────────────────────────

WINDOW_SIZE         = 512
N_MFCC              = 20
N_MELS              = 40
FMIN                = 20.0
FMAX                = 16000.0


class FrameSource(Protocol):
    window_size: int

    def frames(self, stream: AudioStream) -> np.ndarray: ...


class MfccFrameSource:

    def __init__(self, window_size: int = WINDOW_SIZE, n_mfcc: int = N_MFCC,
                 n_mels: int = N_MELS, fmin: float = FMIN, fmax: float = FMAX):
        if window_size < 2 or window_size % 2:
            raise ValueError(f"window_size must be an even number >= 2, got {window_size}")
        if n_mfcc < 1:
            raise ValueError(f"n_mfcc must be >= 1, got {n_mfcc}")
        self.window_size = window_size
        self.n_mfcc      = n_mfcc
        self.n_mels      = n_mels
        self.fmin        = fmin
        self.fmax        = fmax

    @classmethod
    def from_settings(cls, settings) -> "MfccFrameSource":
        return cls(
            window_size=settings.WINDOW_SIZE,
            n_mfcc=settings.N_MFCC,
            n_mels=settings.N_MELS,
            fmin=settings.FMIN,
            fmax=settings.FMAX,
        )

    @property
    def hop_length(self) -> int:
        return self.window_size // 2

    def frames(self, stream: AudioStream) -> np.ndarray:
        """
        Read everything left in the stream and return an (n_frames, n_mfcc)
        float64 array in time order.
        """
        import librosa

        y  = np.asarray(stream.read(), dtype=np.float32)
        sr = stream.sample_rate

        if len(y) < self.window_size:
            log.info("mfcc_no_complete_window", samples=len(y), window_size=self.window_size)
            return np.empty((0, self.n_mfcc), dtype=np.float64)

        mfcc = librosa.feature.mfcc(
            y=y, sr=sr,
            n_mfcc=self.n_mfcc,
            n_fft=self.window_size,
            hop_length=self.hop_length,
            center=False,
            n_mels=self.n_mels,
            fmin=self.fmin,
            fmax=min(self.fmax, sr / 2.0),
        )
        frames = np.ascontiguousarray(mfcc.T, dtype=np.float64)

        log.info("mfcc_frames_computed",
                 frames=frames.shape[0], dimension=frames.shape[1], sample_rate=sr)
        return frames
