"""
Audio stream handles.

The extractor only needs three things from a stream: its native sample
rate, a forward skip by sample count, and a read of everything that is
left. Two handles implement that:

  ArrayAudioStream: decoded samples already in memory (uploads, tests)
  SoundFileStream:  file-backed via soundfile, seeks instead of decoding

decode_stream() turns raw upload bytes into an ArrayAudioStream: soundfile
first, librosa (audioread) as fallback for compressed formats, mono
downmix and optional resampling.
"""
import io
import os
import tempfile
from typing import Optional, Protocol, runtime_checkable

import numpy as np
import soundfile as sf
import structlog

log = structlog.get_logger()

_SOUNDFILE_EXTS = (".wav", ".flac", ".aiff", ".aif", ".ogg")
_SKIP_BLOCK     = 65536


class AudioDecodeError(ValueError):
    """Upload bytes could not be decoded into audio."""


@runtime_checkable
class AudioStream(Protocol):
    sample_rate: int

    def skip(self, n_samples: int) -> int: ...

    def read(self) -> np.ndarray: ...


def _to_mono(audio: np.ndarray) -> np.ndarray:
    audio = np.asarray(audio, dtype=np.float32)
    if audio.ndim > 1:
        audio = audio.mean(axis=1) if audio.shape[1] > 1 else audio[:, 0]
    return np.ascontiguousarray(audio, dtype=np.float32)


class ArrayAudioStream:
    """Forward-only view over mono samples held in memory."""

    def __init__(self, samples: np.ndarray, sample_rate: int):
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        self.sample_rate = int(sample_rate)
        self._samples    = _to_mono(samples)
        self._pos        = 0

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def remaining(self) -> int:
        return len(self._samples) - self._pos

    @property
    def duration_sec(self) -> float:
        return len(self._samples) / self.sample_rate

    def skip(self, n_samples: int) -> int:
        if n_samples < 0:
            raise ValueError("cannot skip backwards")
        n = min(int(n_samples), self.remaining)
        self._pos += n
        return n

    def read(self) -> np.ndarray:
        out       = self._samples[self._pos:]
        self._pos = len(self._samples)
        return out


class SoundFileStream:
    """
    File-backed stream. Reads are mono float32 at the file's native rate;
    read/seek failures surface as soundfile.LibsndfileError and are not
    caught here.
    """

    def __init__(self, file):
        self._file       = sf.SoundFile(file)
        self.sample_rate = int(self._file.samplerate)

    def __enter__(self) -> "SoundFileStream":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._file.close()

    @property
    def remaining(self) -> int:
        return self._file.frames - self._file.tell()

    def skip(self, n_samples: int) -> int:
        if n_samples < 0:
            raise ValueError("cannot skip backwards")
        n = min(int(n_samples), self.remaining)
        if self._file.seekable():
            self._file.seek(n, sf.SEEK_CUR)
            return n
        # Non-seekable container, decode and discard
        left = n
        while left > 0:
            block = self._file.read(min(left, _SKIP_BLOCK), dtype="float32", always_2d=True)
            if len(block) == 0:
                break
            left -= len(block)
        return n - left

    def read(self) -> np.ndarray:
        return _to_mono(self._file.read(dtype="float32", always_2d=True))


# ── Decoding uploads ───────────────────────────────────────────────────────

def _decode(raw_bytes: bytes, ext: str) -> tuple[np.ndarray, int]:
    """Decode to (samples, sr). soundfile first, librosa/audioread as fallback."""
    if ext in _SOUNDFILE_EXTS:
        try:
            arr, sr = sf.read(io.BytesIO(raw_bytes), dtype="float32", always_2d=True)
            return arr, sr
        except Exception as e:
            log.warning("soundfile_failed", ext=ext, error=str(e))

    import librosa

    # audioread backends need a real path
    with tempfile.NamedTemporaryFile(suffix=ext or ".audio", delete=False) as tmp:
        tmp.write(raw_bytes)
        tmp_path = tmp.name
    try:
        y, sr = librosa.load(tmp_path, sr=None, mono=True)
    finally:
        os.unlink(tmp_path)
    return y, int(sr)


def decode_stream(raw_bytes: bytes, filename: str = "audio",
                  sample_rate: Optional[int] = None) -> ArrayAudioStream:
    """
    Decode upload bytes into a mono ArrayAudioStream, resampled to
    sample_rate when one is given.
    """
    ext = os.path.splitext(filename)[1].lower()
    log.info("decode_start", filename=filename, ext=ext, size=len(raw_bytes))

    try:
        audio, sr = _decode(raw_bytes, ext)
    except Exception as e:
        raise AudioDecodeError(f"could not decode audio file {filename!r}: {e}") from e

    mono = _to_mono(audio)
    if sample_rate and sr != sample_rate:
        import librosa
        mono = librosa.resample(mono, orig_sr=sr, target_sr=sample_rate).astype(np.float32)
        sr   = sample_rate

    stream = ArrayAudioStream(mono, sr)
    log.info("decode_complete", duration_sec=round(stream.duration_sec, 2), sample_rate=sr)
    return stream
