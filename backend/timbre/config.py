from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    APP_ENV: str = "development"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    CORS_ORIGINS: List[str] = ["*"]

    # Extraction defaults
    TIMBRE_COMPONENTS: int = 3
    SKIP_INTRO_SECONDS: float = 30
    SKIP_OUTRO_SECONDS: float = 30
    MIN_STREAM_SECONDS: float = 30

    # MFCC frame source
    SAMPLE_RATE: int = 11025     # uploads are resampled to this rate
    WINDOW_SIZE: int = 512       # hop is WINDOW_SIZE // 2 (50 % overlap)
    N_MFCC: int = 20
    N_MELS: int = 40
    FMIN: float = 20.0
    FMAX: float = 16000.0        # clipped to Nyquist per stream

    # EM refinement
    EM_MAX_ITER: int = 100
    EM_TOL: float = 1e-4
    RANDOM_STATE: Optional[int] = None

    # Upload
    MAX_UPLOAD_SIZE_MB: int = 200
    ALLOWED_AUDIO_EXTENSIONS: List[str] = [".wav", ".flac", ".aiff", ".aif", ".ogg", ".mp3"]


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
