"""Configuration settings for the workout parse API."""
import os
from typing import Literal


EnvironmentType = Literal["development", "staging", "production"]


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() == "true"


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


class Settings:
    """Application settings."""

    # Feature flags
    HELICONE_ENABLED: bool = False
    AGENT_SUMMARY_PARSING: bool = True
    AGENT_PARALLEL_TOOL_CALLS: bool = False

    # Environment
    ENVIRONMENT: EnvironmentType = "development"

    # API Keys
    OPENAI_API_KEY: str | None = None
    ANTHROPIC_API_KEY: str | None = None
    HELICONE_API_KEY: str | None = None

    # Supabase
    SUPABASE_URL: str | None = None
    SUPABASE_SERVICE_ROLE_KEY: str | None = None
    SUPABASE_JWT_SECRET: str | None = None

    # Service API keys, "key" or "key:user_id"
    API_KEYS: list[str] = []

    # Models
    PARSER_MODEL: str = "gpt-4o-mini"
    PARSER_FALLBACK_MODEL: str | None = "claude-3-5-haiku-latest"
    AGENT_MODEL: str = "gpt-4o-mini"
    METADATA_MODEL: str = "gpt-4o-mini"

    # Pipeline limits
    PARSE_TIMEOUT_SECONDS: float = 90.0
    AGENT_MAX_ITERATIONS: int = 20
    TRIGRAM_SIMILARITY_THRESHOLD: float = 0.35
    FALLBACK_SIMILARITY_THRESHOLD: float = 0.5

    def __init__(self):
        # Environment
        env = os.getenv("ENVIRONMENT", "development").lower()
        if env in ("development", "staging", "production"):
            self.ENVIRONMENT = env  # type: ignore
        else:
            self.ENVIRONMENT = "development"

        # Feature flags
        self.HELICONE_ENABLED = _env_bool("HELICONE_ENABLED", False)
        self.AGENT_SUMMARY_PARSING = _env_bool("AGENT_SUMMARY_PARSING", True)
        self.AGENT_PARALLEL_TOOL_CALLS = _env_bool("AGENT_PARALLEL_TOOL_CALLS", False)

        # API Keys
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
        self.ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
        self.HELICONE_API_KEY = os.getenv("HELICONE_API_KEY")

        # Supabase
        self.SUPABASE_URL = os.getenv("SUPABASE_URL")
        self.SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
        self.SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET")

        self.API_KEYS = [k.strip() for k in os.getenv("API_KEYS", "").split(",") if k.strip()]

        # Models
        self.PARSER_MODEL = os.getenv("PARSER_MODEL", "gpt-4o-mini")
        # An empty value disables the fallback model
        self.PARSER_FALLBACK_MODEL = os.getenv("PARSER_FALLBACK_MODEL", "claude-3-5-haiku-latest") or None
        self.AGENT_MODEL = os.getenv("AGENT_MODEL", "gpt-4o-mini")
        self.METADATA_MODEL = os.getenv("METADATA_MODEL", "gpt-4o-mini")

        # Pipeline limits
        self.PARSE_TIMEOUT_SECONDS = _env_float("PARSE_TIMEOUT_SECONDS", 90.0)
        self.AGENT_MAX_ITERATIONS = _env_int("AGENT_MAX_ITERATIONS", 20)
        self.TRIGRAM_SIMILARITY_THRESHOLD = _env_float("TRIGRAM_SIMILARITY_THRESHOLD", 0.35)
        self.FALLBACK_SIMILARITY_THRESHOLD = _env_float("FALLBACK_SIMILARITY_THRESHOLD", 0.5)


settings = Settings()
