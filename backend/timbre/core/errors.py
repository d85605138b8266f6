"""
Error taxonomy for timbre extraction.

Everything raised by the core derives from TimbreError so callers (API, CLI)
can map failures with a single except clause. IO errors from the audio
stream are never wrapped; they propagate as OSError / LibsndfileError.
"""


class TimbreError(Exception):
    """Base class for all classified extraction failures."""


class ConfigurationError(TimbreError, ValueError):
    """Invalid construction parameters. Nothing is built."""


class InputTypeError(TimbreError, TypeError):
    """Input handle missing or not an AudioStream."""


class InputTooShortError(TimbreError):
    """Not enough frames left after feature extraction or trimming."""

    def __init__(self, message: str, frame_count: int = 0, required: float = 0.0):
        super().__init__(message)
        self.frame_count = frame_count
        self.required    = required


class ModelFittingError(TimbreError):
    """The mixture could not be fitted, even after the corrected retry."""

    def __init__(self, message: str, attempts: int = 0, transitions=None):
        super().__init__(message)
        self.attempts    = attempts
        self.transitions = list(transitions or [])   # FitState sequence up to the failure
