from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # App Settings
    PROJECT_NAME: str = "Transcript Reconciler"
    DEBUG: bool = False

    # Correction service (no default for the key, must be set in .env)
    GROQ_API_KEY: str
    LLM_MODEL: str = "llama-3.3-70b-versatile"
    LLM_TEMPERATURE: float = 0.0
    LLM_MAX_RETRIES: int = 3

    # Chunk planning / dispatch policy
    MAX_CHUNK_SEGMENTS: int = 500
    CHUNK_OVERLAP: int = 100
    MAX_CHUNK_TOKENS: Optional[int] = None
    CONCURRENCY_LIMIT: int = 3
    PREVIOUS_CONTEXT_SEGMENTS: int = 20

    # Subtitle layout
    SUBTITLE_MAX_CHARS_PER_LINE: int = 16
    SUBTITLE_MAX_LINES: int = 2

    # Known-term substitutions fed to every correction prompt
    DICTIONARY_PATH: Optional[str] = None

    @field_validator("MAX_CHUNK_TOKENS", "DICTIONARY_PATH", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        # Empty values in .env mean "not configured"
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("CONCURRENCY_LIMIT", "MAX_CHUNK_SEGMENTS", "SUBTITLE_MAX_CHARS_PER_LINE", "SUBTITLE_MAX_LINES")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()
