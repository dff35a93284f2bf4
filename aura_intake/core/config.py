"""Application settings from environment."""
import os
from functools import lru_cache


@lru_cache
def get_settings() -> "Settings":
    return Settings()


class Settings:
    """Central config. Load .env in main/run_api/cli before using. Properties read env at access time."""

    # NVIDIA LLM (properties so they read after .env is loaded)
    @property
    def nvidia_api_key(self) -> str:
        return os.getenv("NVIDIA_API_KEY", "").strip()

    @property
    def nvidia_model(self) -> str:
        return (os.getenv("NVIDIA_MODEL", "") or "").strip()

    @property
    def chat_temperature(self) -> float:
        raw = os.getenv("CHAT_TEMPERATURE", "0.2").strip()
        try:
            return max(0.0, min(1.0, float(raw)))
        except ValueError:
            return 0.2

    @property
    def chat_max_tokens(self) -> int:
        raw = os.getenv("CHAT_MAX_TOKENS", "1024").strip()
        try:
            return max(64, min(8192, int(raw)))
        except ValueError:
            return 1024

    # Live chat sessions kept in memory (one per mounted widget)
    @property
    def chat_max_sessions(self) -> int:
        raw = os.getenv("CHAT_MAX_SESSIONS", "500").strip()
        try:
            return max(1, int(raw))
        except ValueError:
            return 500

    # Supabase: use SERVICE ROLE key (Settings → API), not the anon/publishable key
    @property
    def supabase_url(self) -> str:
        return os.getenv("SUPABASE_URL", "").strip()

    @property
    def supabase_key(self) -> str:
        return (os.getenv("SUPABASE_SERVICE_ROLE_KEY", "") or os.getenv("SUPABASE_KEY", "")).strip()

    @property
    def supabase_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @property
    def supabase_timeout_seconds(self) -> float:
        raw = os.getenv("SUPABASE_TIMEOUT_SECONDS", "10").strip()
        try:
            return max(1.0, min(60.0, float(raw)))
        except ValueError:
            return 10.0

    # API
    @property
    def api_title(self) -> str:
        return os.getenv("API_TITLE", "Aura Studio Intake API").strip()

    @property
    def api_version(self) -> str:
        return os.getenv("API_VERSION", "0.1.0").strip()

    @property
    def host(self) -> str:
        return os.getenv("HOST", "127.0.0.1").strip()

    @property
    def port(self) -> int:
        return int(os.getenv("PORT", "8000"))

    @property
    def log_level(self) -> str:
        return os.getenv("LOG_LEVEL", "INFO").strip().upper()

    # CORS: comma-separated origins (e.g. http://localhost:3000) or * for all
    @property
    def cors_origins(self) -> list[str]:
        raw = os.getenv("CORS_ORIGINS", "*").strip()
        if not raw or raw == "*":
            return ["*"]
        return [o.strip() for o in raw.split(",") if o.strip()]
