"""AI client factory with Helicone integration support."""
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from workout_parse_api.config import settings


logger = logging.getLogger(__name__)

# Helicone proxy URLs (private - implementation detail)
_HELICONE_OPENAI_BASE_URL = "https://oai.helicone.ai/v1"
_HELICONE_ANTHROPIC_BASE_URL = "https://anthropic.helicone.ai"

# Default client timeout
DEFAULT_TIMEOUT = 60.0

Provider = Literal["openai", "anthropic"]


def provider_for_model(model: str) -> Provider:
    """Route a model name to its provider (claude-* models go to Anthropic)."""
    return "anthropic" if model.strip().lower().startswith("claude") else "openai"


@dataclass
class AIRequestContext:
    """Context for AI requests, used for tracking and observability."""

    user_id: str | None = None
    session_id: str | None = None
    feature_name: str | None = None
    request_id: str | None = None
    custom_properties: dict[str, str] = field(default_factory=dict)

    def to_tracking_headers(self) -> dict[str, str]:
        """Convert context to provider-specific tracking headers.

        Currently generates Helicone headers. The public API is
        provider-agnostic to allow future observability provider changes
        without affecting callers.
        """
        headers: dict[str, str] = {}

        if self.user_id:
            headers["Helicone-User-Id"] = self.user_id

        if self.session_id:
            headers["Helicone-Session-Id"] = self.session_id

        if self.feature_name:
            headers["Helicone-Property-Feature"] = self.feature_name

        if self.request_id:
            headers["Helicone-Request-Id"] = self.request_id

        # Add environment for filtering in Helicone dashboard
        headers["Helicone-Property-Environment"] = settings.ENVIRONMENT

        # Add custom properties
        for key, value in self.custom_properties.items():
            header_key = f"Helicone-Property-{key.replace('_', '-').title()}"
            headers[header_key] = str(value)

        return headers

    def request_headers(self) -> dict[str, str]:
        """Per-call headers; empty unless the Helicone proxy is in use."""
        if settings.HELICONE_ENABLED and settings.HELICONE_API_KEY:
            return self.to_tracking_headers()
        return {}


class AIClientFactory:
    """Factory for creating async AI clients with optional Helicone integration."""

    @staticmethod
    def _proxy_kwargs(base_url: str, provider_name: str) -> dict[str, Any]:
        if not settings.HELICONE_ENABLED:
            return {}
        if not settings.HELICONE_API_KEY:
            logger.warning(
                f"HELICONE_ENABLED=true but HELICONE_API_KEY not set. "
                f"Falling back to direct {provider_name} API calls."
            )
            return {}
        logger.debug(f"Creating {provider_name} client with Helicone proxy")
        return {
            "base_url": base_url,
            "default_headers": {"Helicone-Auth": f"Bearer {settings.HELICONE_API_KEY}"},
        }

    @staticmethod
    def create_openai_client(timeout: float = DEFAULT_TIMEOUT) -> Any:
        """
        Create an AsyncOpenAI client, optionally proxied through Helicone.

        Raises:
            ValueError: If OPENAI_API_KEY is not configured
        """
        import openai

        api_key = settings.OPENAI_API_KEY
        if not api_key:
            raise ValueError("OpenAI API key not configured. Set OPENAI_API_KEY environment variable.")

        client_kwargs: dict[str, Any] = {
            "api_key": api_key,
            "timeout": timeout,
            # Retries are decided by ai.retry, not the SDK
            "max_retries": 0,
        }
        client_kwargs.update(AIClientFactory._proxy_kwargs(_HELICONE_OPENAI_BASE_URL, "OpenAI"))
        return openai.AsyncOpenAI(**client_kwargs)

    @staticmethod
    def create_anthropic_client(timeout: float = DEFAULT_TIMEOUT) -> Any:
        """
        Create an AsyncAnthropic client, optionally proxied through Helicone.

        Raises:
            ValueError: If ANTHROPIC_API_KEY is not configured
        """
        from anthropic import AsyncAnthropic

        api_key = settings.ANTHROPIC_API_KEY
        if not api_key:
            raise ValueError("Anthropic API key not configured. Set ANTHROPIC_API_KEY environment variable.")

        client_kwargs: dict[str, Any] = {
            "api_key": api_key,
            "timeout": timeout,
            "max_retries": 0,
        }
        client_kwargs.update(AIClientFactory._proxy_kwargs(_HELICONE_ANTHROPIC_BASE_URL, "Anthropic"))
        return AsyncAnthropic(**client_kwargs)


class AIClients:
    """
    Lazily created, process-wide model clients.

    Clients are stateless and built on first use; request-specific tracking
    travels in per-call headers, never in the client.
    """

    def __init__(self, openai_client: Any = None, anthropic_client: Any = None):
        self._openai = openai_client
        self._anthropic = anthropic_client

    @property
    def openai(self) -> Any:
        if self._openai is None:
            self._openai = AIClientFactory.create_openai_client()
        return self._openai

    @property
    def anthropic(self) -> Any:
        if self._anthropic is None:
            self._anthropic = AIClientFactory.create_anthropic_client()
        return self._anthropic
