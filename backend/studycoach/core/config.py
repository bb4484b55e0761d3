# backend/studycoach/core/config.py
import os
from typing import List
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _float_list(raw: str) -> List[float]:
    return [float(part) for part in raw.split(",") if part.strip()]


class Settings:
    """Application settings loaded from environment variables"""

    # Google AI Configuration
    GOOGLE_API_KEY: str = os.getenv("GOOGLE_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    GEMINI_FAST_MODEL: str = os.getenv("GEMINI_FAST_MODEL", "gemini-2.5-flash-lite")
    LLM_TIMEOUT_SECONDS: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))
    LLM_RETRY_ATTEMPTS: int = int(os.getenv("LLM_RETRY_ATTEMPTS", "2"))
    LLM_COMPLEXITY_THRESHOLD: float = float(os.getenv("LLM_COMPLEXITY_THRESHOLD", "0.4"))

    # Storage Configuration
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "memory")
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_PASSWORD: str = os.getenv("REDIS_PASSWORD", "")

    # Memory Lane Configuration
    MEMORY_TOP_K: int = int(os.getenv("MEMORY_TOP_K", "8"))
    MEMORY_CHAR_BUDGET: int = int(os.getenv("MEMORY_CHAR_BUDGET", "1200"))
    MEMORY_LOW_IMPORTANCE_WINDOW_DAYS: int = int(os.getenv("MEMORY_LOW_IMPORTANCE_WINDOW_DAYS", "90"))
    MEMORY_MAX_PER_STUDENT: int = int(os.getenv("MEMORY_MAX_PER_STUDENT", "1000"))
    # recency, relevance, importance, emotional, mastery_gap, frequency
    RERANK_WEIGHTS: List[float] = _float_list(
        os.getenv("RERANK_WEIGHTS", "0.20,0.25,0.20,0.10,0.15,0.10")
    )
    PATTERN_CACHE_TTL_SECONDS: int = int(os.getenv("PATTERN_CACHE_TTL_SECONDS", "300"))

    # Mastery Configuration
    MASTERY_MAX_INTERVAL_DAYS: int = int(os.getenv("MASTERY_MAX_INTERVAL_DAYS", "180"))

    # Application Configuration
    TRANSCRIPT_DIR: str = os.getenv("TRANSCRIPT_DIR", "")
    DEBUG: bool = os.getenv("DEBUG", "True").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def __init__(self):
        if len(self.RERANK_WEIGHTS) != 6:
            raise ValueError("RERANK_WEIGHTS must list six comma-separated weights")
        if self.STORAGE_BACKEND not in ("memory", "redis"):
            raise ValueError(f"Unknown STORAGE_BACKEND: {self.STORAGE_BACKEND}")


# Create global settings instance
settings = Settings()
