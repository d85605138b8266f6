import numpy as np
import pytest

from timbre.core.trimming import TrimmingPolicy


def test_outro_frames_at_cd_rate():
    """2 s outro at 44.1 kHz with a 1024 window drops floor(2 * 44100 / 512) frames."""
    policy = TrimmingPolicy(sample_rate=44100, window_size=1024,
                            skip_outro_seconds=2, minimum_stream_seconds=1)
    assert policy.frames_to_drop == 172
    assert policy.minimum_frame_count == 86


def test_trim_keeps_prefix_in_order():
    policy = TrimmingPolicy(sample_rate=1024, window_size=512,
                            skip_outro_seconds=2, minimum_stream_seconds=1)
    frames = np.arange(40, dtype=float).reshape(20, 2)
    kept = policy.trim(frames)
    assert policy.frames_to_drop == 8
    assert kept.shape == (12, 2)
    np.testing.assert_array_equal(kept, frames[:12])


def test_zero_outro_drops_nothing():
    policy = TrimmingPolicy(sample_rate=1024, window_size=512,
                            skip_outro_seconds=0, minimum_stream_seconds=1)
    frames = np.ones((7, 3))
    assert policy.frames_to_drop == 0
    assert len(policy.trim(frames)) == 7


def test_outro_longer_than_stream_gives_empty_set():
    policy = TrimmingPolicy(sample_rate=1024, window_size=512,
                            skip_outro_seconds=10, minimum_stream_seconds=1)
    kept = policy.trim(np.ones((5, 3)))
    assert kept.shape == (0, 3)
    assert not policy.is_admissible(kept)


@pytest.mark.parametrize("n_frames, ok", [(3, False), (4, True), (9, True)])
def test_admission_threshold(n_frames, ok):
    policy = TrimmingPolicy(sample_rate=1024, window_size=512,
                            skip_outro_seconds=0, minimum_stream_seconds=1)
    assert policy.is_admissible(np.ones((n_frames, 2))) is ok


def test_admission_uses_unfloored_threshold():
    """86.13 frames per second at 44.1 kHz, so 86 frames is still short of one second."""
    policy = TrimmingPolicy(sample_rate=44100, window_size=1024,
                            skip_outro_seconds=0, minimum_stream_seconds=1)
    assert not policy.is_admissible(np.ones((86, 2)))
    assert policy.is_admissible(np.ones((87, 2)))


@pytest.mark.parametrize("sr, window, seconds, expected", [
    (8000, 152, 19, 2000),
    (44100, 1024, 30, 2583),
    (11025, 512, 30, 1291),
])
def test_frame_counts_multiply_before_dividing(sr, window, seconds, expected):
    policy = TrimmingPolicy(sample_rate=sr, window_size=window,
                            skip_outro_seconds=seconds, minimum_stream_seconds=seconds)
    assert policy.frames_to_drop == expected
    assert policy.minimum_frame_count == expected
    assert policy.is_admissible(np.ones((expected, 1))) is (seconds * sr % (window // 2) == 0)
