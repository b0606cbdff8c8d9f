from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./dottie.db"

    # JWT (tokens are issued by the auth service; we only verify them)
    secret_key: str = "your-secret-key-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7  # 7 days

    # Frontend URL for CORS
    frontend_url: str = "http://localhost:3000"

    log_level: str = "INFO"

    # Vertex AI (Gemini) for the assistant
    vertex_project_id: str = ""
    vertex_location: str = "us-central1"
    vertex_credentials_path: str = ""  # path to service account JSON; empty = use ADC
    gemini_model: str = "gemini-2.0-flash"
    gemini_temperature: float = 0.7
    gemini_max_output_tokens: int = 1024

    # Response strategy: "ai" | "mock" | "auto" (auto = ai when Vertex is configured)
    chat_service_mode: str = "auto"
    # On AI failure answer with the mock responder (tagged responseCategory=fallback)
    chat_fallback_to_mock: bool = False

    # Context window sent to the model on follow-up messages
    chat_history_max_messages: int = 20
    chat_message_max_length: int = 4000
    chat_preview_max_chars: int = 50

    # Redis (optional cache for follow-up context; empty = no Redis, DB only)
    redis_url: str = ""  # e.g. redis://localhost:6379/0

    # Chat cache TTL in seconds (1 day)
    chat_cache_ttl_seconds: int = 86400

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
