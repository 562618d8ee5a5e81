"""
Application Configuration using Pydantic Settings

Loads configuration from environment variables with sensible defaults.
"""

from typing import List
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # ========================================================================
    # SaGe Query Settings
    # ========================================================================
    DEFAULT_ENDPOINT: str = "http://sage.univ-nantes.fr/sparql/dbpedia-2016-04"
    DEFAULT_QUERY: str = (
        "SELECT ?label WHERE {\n"
        "  ?s <http://www.w3.org/2000/01/rdf-schema#label> ?label\n"
        "}"
    )

    # Number of results buffered before the visible result set is extended.
    # Read once when the session controller is built.
    RESULT_BUCKET_SIZE: int = 10

    # Rows per page in the results table.
    RESULTS_PAGE_SIZE: int = 50

    # Number of per-item conversion failures after which a session is failed.
    # 0 keeps them as soft failures forever.
    ITEM_ERROR_ESCALATION_LIMIT: int = 0

    # ========================================================================
    # HTTP Transport Settings
    # ========================================================================
    # Per-request timeout. A single SaGe page is bounded by the server quantum,
    # so this only needs to cover one round-trip.
    HTTP_TIMEOUT_SECONDS: float = 60.0
    HTTP_MAX_CONNECTIONS: int = 10

    # ========================================================================
    # Application Settings
    # ========================================================================
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    APP_DEBUG: bool = True
    APP_RELOAD: bool = True

    # ========================================================================
    # WebSocket Settings
    # ========================================================================
    # Live stats tick while a session is running.
    WS_SNAPSHOT_INTERVAL_SECONDS: float = 1.0

    # ========================================================================
    # Security Settings
    # ========================================================================
    CORS_ORIGINS: List[str] = []

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _build_cors_origins(cls, v, info):
        if v:
            if isinstance(v, str):
                import json

                return json.loads(v)
            return v
        host = info.data.get("APP_HOST", "127.0.0.1")
        port = info.data.get("APP_PORT", 8000)
        origins = [f"http://{host}:{port}"]
        if host == "127.0.0.1":
            origins.append(f"http://localhost:{port}")
        elif host == "localhost":
            origins.append(f"http://127.0.0.1:{port}")
        return origins

    # ========================================================================
    # Logging Settings
    # ========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# Create global settings instance
settings = Settings()
