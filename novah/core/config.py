from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── AI Providers ──────────────────────────────────────────────────────────
    AI_PROVIDER: str = "hybrid"

    @field_validator("AI_PROVIDER")
    @classmethod
    def validate_ai_provider(cls, v: str) -> str:
        allowed = {"hybrid", "groq", "gemini"}
        if v.lower() not in allowed:
            raise ValueError(f"AI_PROVIDER must be one of {allowed}, got '{v}'")
        return v.lower()

    # Groq (Llama 3 - High Speed)
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.3-70b-versatile"

    # Google (Gemini - Complex Reasoning)
    GOOGLE_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.0-flash"

    AI_CALL_TIMEOUT_SECONDS: int = 60  # single provider call
    AI_TIMEOUT_SECONDS: int = 300  # whole research request

    # ── Uploads ───────────────────────────────────────────────────────────────
    MAX_FILE_SIZE_MB: int = 20
    MAX_FILES_PER_REQUEST: int = 2
    ALLOWED_EXTENSIONS: List[str] = [".txt", ".pdf", ".doc", ".docx"]

    # ── Document pipeline ─────────────────────────────────────────────────────
    CHUNK_SIZE_SMALL: int = 600
    CHUNK_SIZE_LARGE: int = 1000
    LARGE_DOCUMENT_THRESHOLD: int = 20000  # chars; above this use CHUNK_SIZE_LARGE

    SUMMARY_MAX_WORDS: int = 250
    SUMMARY_MAX_DEPTH: int = 3
    SUMMARY_CONCURRENCY: int = 8
    MAX_KEYWORDS: int = 6

    MERGE_BATCH_SIZE: int = 10
    MERGE_CHAR_LIMIT: int = 10000

    # ── Mind map ──────────────────────────────────────────────────────────────
    MINDMAP_MAX_DEPTH: int = 4
    EXPANSION_MAX_CHILDREN: int = 5
    EXPANSION_MAX_LEVEL: int = 6

    # ── Research modes ────────────────────────────────────────────────────────
    NORMAL_MAX_QUERIES: int = 2
    DEEP_MAX_QUERIES: int = 5
    LEARNINGS_PER_QUERY: int = 3
    NORMAL_WORD_BUDGET: int = 200
    DEEP_WORD_BUDGET: int = 500

    # ── Core ──────────────────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:5174",
        "http://localhost:3000",
    ]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
