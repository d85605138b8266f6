from timbre.core.audio import ArrayAudioStream, AudioStream, SoundFileStream, decode_stream
from timbre.core.errors import (
    ConfigurationError, InputTooShortError, InputTypeError, ModelFittingError, TimbreError,
)
from timbre.core.extractor import ExtractionConfig, TimbreDistributionExtractor
from timbre.core.mixture import MixtureModel, TimbreDistribution

__all__ = [
    "ArrayAudioStream", "AudioStream", "SoundFileStream", "decode_stream",
    "ConfigurationError", "InputTooShortError", "InputTypeError", "ModelFittingError", "TimbreError",
    "ExtractionConfig", "TimbreDistributionExtractor",
    "MixtureModel", "TimbreDistribution",
]
