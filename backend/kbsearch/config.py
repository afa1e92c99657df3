from pathlib import Path

from pydantic_settings import BaseSettings
from functools import lru_cache

BACKEND_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    # Agent
    agent_base_url: str = "http://localhost:8000"
    agent_query_path: str = "/api/agent"
    agent_api_key: str | None = None
    agent_id: str = "697cd6c0d36f070193f5c3d9"

    # RAG knowledge base
    rag_base_url: str = "http://localhost:8000"
    rag_api_key: str | None = None
    rag_id: str = "697cd6ad47177de38546d9dd"

    # HTTP
    request_timeout: float = 120.0
    upload_timeout: float = 300.0

    # Uploads
    max_upload_mb: int = 50
    allowed_upload_types: list[str] = ["application/pdf"]

    # App
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Demo
    demo_script_path: str = str(BACKEND_DIR / "scripts" / "hello_world.py")
    demo_timeout: float = 30.0

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
