"""
Shared fixtures: deterministic stand-ins for the frame source, the k-means
initializer and the EM refiner, so orchestration can be tested without
librosa or scikit-learn doing real work.
"""
import numpy as np
import pytest

from timbre.core.audio import ArrayAudioStream
from timbre.core.mixture import CovarianceSingularity, MixtureModel, Refined

SR     = 1024      # 512-sample window → 256 hop → exactly 4 frames per second
WINDOW = 512
DIM    = 3


def make_stream(seconds: float, sr: int = SR) -> ArrayAudioStream:
    n = int(round(seconds * sr))
    return ArrayAudioStream(np.linspace(-1.0, 1.0, n, dtype=np.float32), sr)


class CountingFrameSource:
    """One frame per complete half-overlapping window; row i is (i, i², i mod 5)."""

    def __init__(self, window_size: int = WINDOW):
        self.window_size = window_size
        self.samples_seen = None
        self.last_frames = None

    def frames(self, stream):
        y = stream.read()
        self.samples_seen = len(y)
        hop = self.window_size // 2
        n = 0 if len(y) < self.window_size else 1 + (len(y) - self.window_size) // hop
        idx = np.arange(n, dtype=np.float64)
        self.last_frames = np.column_stack([idx, idx ** 2, idx % 5]) if n else np.empty((0, DIM))
        return self.last_frames


class RecordingInitializer:

    def __init__(self):
        self.calls = []

    def initialize(self, points, n_components):
        self.calls.append(np.array(points, copy=True))
        d = points.shape[1]
        return MixtureModel(
            weights=np.full(n_components, 1.0 / n_components),
            means=np.zeros((n_components, d)),
            covariances=np.tile(np.eye(d), (n_components, 1, 1)),
        )


class ScriptedRefiner:
    """
    Plays back a script of "ok" / "singular" / exception outcomes. A
    singularity hands back every other point as the corrected set.
    """

    def __init__(self, *script):
        self.script = list(script)
        self.calls = []

    def refine(self, seed, points):
        self.calls.append(np.array(points, copy=True))
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        if step == "singular":
            return CovarianceSingularity(corrected_points=points[::2], component=0)
        return Refined(model=seed, iterations=3, log_likelihood=-1.0, converged=True)


@pytest.fixture
def frame_source():
    return CountingFrameSource()


@pytest.fixture
def initializer():
    return RecordingInitializer()
