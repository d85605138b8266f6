"""
Trimming policy: seconds → frame counts at the frame source's stride.

The stride is half a window, so one second of audio is
sample_rate / (window_size / 2) frames.
"""
import math
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class TrimmingPolicy:
    sample_rate:            int
    window_size:            int
    skip_outro_seconds:     float
    minimum_stream_seconds: float

    def _frames(self, seconds: float) -> float:
        # multiply before dividing; sr / hop alone is inexact and can floor one low
        return seconds * self.sample_rate / (self.window_size / 2)

    @property
    def frames_to_drop(self) -> int:
        """Trailing frames removed for the outro; never negative."""
        return max(0, math.floor(self._frames(self.skip_outro_seconds)))

    @property
    def minimum_frame_count(self) -> int:
        return math.floor(self._frames(self.minimum_stream_seconds))

    @property
    def minimum_frames_exact(self) -> float:
        # Unfloored threshold; admission compares against this so that any
        # stream shorter than intro + minimum + outro is rejected.
        return self._frames(self.minimum_stream_seconds)

    def trim(self, frames: np.ndarray) -> np.ndarray:
        """Return frames[0 : n - frames_to_drop], order untouched. May be empty."""
        keep = max(0, len(frames) - self.frames_to_drop)
        return frames[:keep]

    def is_admissible(self, points: np.ndarray) -> bool:
        return len(points) >= self.minimum_frames_exact
