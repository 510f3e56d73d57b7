"""Application configuration using Pydantic Settings."""

import logging
import warnings

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="NOTEFORGE_"
    )

    # App
    app_name: str = "note-forge"
    debug: bool = True
    log_level: str = "INFO"

    # Snapshot persistence
    database_url: str = "sqlite:///./noteforge.db"

    # Classifier (Ollama)
    ollama_url: str = "http://localhost:11434"
    ollama_api_key: str | None = None
    classifier_model_flash: str = "qwen3:4b-instruct"
    classifier_model_pro: str = "qwen3:14b"
    default_model_tier: str = "flash"
    classifier_timeout: float = 120.0

    # Local embedding model
    embedding_model: str = "all-MiniLM-L6-v2"
    embedding_dimensions: int = 384
    embedding_device: str | None = None
    embedding_init_retries: int = 2
    embedding_retry_delay: float = 0.5  # seconds, doubled per retry
    embedding_preload: bool = False
    query_embedding_timeout: float = 5.0

    # Search
    search_debounce_ms: int = 300
    search_limit: int = 20
    search_similarity_threshold: float = 0.6
    search_headline_boost: float = 2.0
    search_category_boost: float = 1.5
    search_text_weight: float = 0.5
    search_vector_weight: float = 0.5

    # Reference context document
    context_max_bytes: int = 4 * 1024 * 1024

    # CORS
    cors_origins: list[str] = ["*"]

    def __init__(self, **kwargs):
        """Initialize settings and validate production configuration."""
        super().__init__(**kwargs)
        self._validate_production_settings()

    def _validate_production_settings(self) -> None:
        """Validate and warn about insecure production settings."""
        if not self.debug and "*" in self.cors_origins:
            warnings.warn(
                "CORS is configured to allow all origins (*). Restrict this in production!",
                UserWarning,
                stacklevel=2,
            )
            logger.warning(
                "CORS is configured to allow all origins (*). Restrict this in production!"
            )

    @property
    def classifier_models(self) -> dict[str, str]:
        """Map of model tier to Ollama model name."""
        return {
            "flash": self.classifier_model_flash,
            "pro": self.classifier_model_pro,
        }


settings = Settings()
