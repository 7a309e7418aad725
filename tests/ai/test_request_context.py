"""Unit tests for AIRequestContext headers, provider routing and client creation."""
import pytest
from unittest.mock import MagicMock, patch

from workout_parse_api.ai.client_factory import (
    AIClientFactory,
    AIClients,
    AIRequestContext,
    provider_for_model,
)


class TestAIRequestContextHeaders:
    """Test Helicone header generation from AIRequestContext."""

    def test_empty_context_includes_environment_only(self):
        """Empty context should still include environment header."""
        with patch("workout_parse_api.ai.client_factory.settings") as mock_settings:
            mock_settings.ENVIRONMENT = "production"

            headers = AIRequestContext().to_tracking_headers()

            assert headers == {"Helicone-Property-Environment": "production"}

    def test_parse_request_context(self):
        """A parse call carries the user, feature and correlation id."""
        with patch("workout_parse_api.ai.client_factory.settings") as mock_settings:
            mock_settings.ENVIRONMENT = "staging"

            context = AIRequestContext(
                user_id="user_456",
                feature_name="parse_workout",
                request_id="3f0c9b4e-cid",
                custom_properties={"weight_unit": "lb"},
            )
            headers = context.to_tracking_headers()

            assert headers == {
                "Helicone-User-Id": "user_456",
                "Helicone-Property-Feature": "parse_workout",
                "Helicone-Request-Id": "3f0c9b4e-cid",
                "Helicone-Property-Environment": "staging",
                "Helicone-Property-Weight-Unit": "lb",
            }

    def test_empty_user_id_is_excluded(self):
        with patch("workout_parse_api.ai.client_factory.settings") as mock_settings:
            mock_settings.ENVIRONMENT = "development"

            headers = AIRequestContext(user_id="", session_id=None).to_tracking_headers()

            assert "Helicone-User-Id" not in headers
            assert "Helicone-Session-Id" not in headers

    def test_custom_property_value_converted_to_string(self):
        with patch("workout_parse_api.ai.client_factory.settings") as mock_settings:
            mock_settings.ENVIRONMENT = "test"

            headers = AIRequestContext(custom_properties={"exercise_count": 3}).to_tracking_headers()

            assert headers["Helicone-Property-Exercise-Count"] == "3"


class TestRequestHeaders:
    """Per-call headers are only sent when the proxy is in use."""

    def test_no_headers_when_helicone_disabled(self):
        with patch("workout_parse_api.ai.client_factory.settings") as mock_settings:
            mock_settings.HELICONE_ENABLED = False
            mock_settings.HELICONE_API_KEY = "sk-helicone"

            assert AIRequestContext(user_id="u1").request_headers() == {}

    def test_no_headers_without_helicone_key(self):
        with patch("workout_parse_api.ai.client_factory.settings") as mock_settings:
            mock_settings.HELICONE_ENABLED = True
            mock_settings.HELICONE_API_KEY = None

            assert AIRequestContext(user_id="u1").request_headers() == {}

    def test_headers_when_helicone_enabled(self):
        with patch("workout_parse_api.ai.client_factory.settings") as mock_settings:
            mock_settings.HELICONE_ENABLED = True
            mock_settings.HELICONE_API_KEY = "sk-helicone"
            mock_settings.ENVIRONMENT = "production"

            headers = AIRequestContext(user_id="u1", feature_name="resolve_exercises").request_headers()

            assert headers["Helicone-User-Id"] == "u1"
            assert headers["Helicone-Property-Feature"] == "resolve_exercises"


class TestProviderRouting:
    @pytest.mark.parametrize(
        "model,provider",
        [
            ("gpt-4o-mini", "openai"),
            ("gpt-4o", "openai"),
            ("claude-3-5-haiku-latest", "anthropic"),
            (" Claude-3-5-sonnet ", "anthropic"),
        ],
    )
    def test_provider_for_model(self, model, provider):
        assert provider_for_model(model) == provider


class TestClientCreation:
    def test_missing_openai_key_raises(self):
        with patch("workout_parse_api.ai.client_factory.settings") as mock_settings:
            mock_settings.OPENAI_API_KEY = None

            with pytest.raises(ValueError, match="OPENAI_API_KEY"):
                AIClientFactory.create_openai_client()

    def test_missing_anthropic_key_raises(self):
        with patch("workout_parse_api.ai.client_factory.settings") as mock_settings:
            mock_settings.ANTHROPIC_API_KEY = None

            with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
                AIClientFactory.create_anthropic_client()

    def test_openai_client_without_proxy(self):
        with patch("workout_parse_api.ai.client_factory.settings") as mock_settings:
            mock_settings.OPENAI_API_KEY = "sk-test"
            mock_settings.HELICONE_ENABLED = False

            with patch("openai.AsyncOpenAI") as mock_openai:
                AIClientFactory.create_openai_client(timeout=30.0)

            kwargs = mock_openai.call_args.kwargs
            assert kwargs["api_key"] == "sk-test"
            assert kwargs["timeout"] == 30.0
            assert kwargs["max_retries"] == 0
            assert "base_url" not in kwargs

    def test_openai_client_through_helicone(self):
        with patch("workout_parse_api.ai.client_factory.settings") as mock_settings:
            mock_settings.OPENAI_API_KEY = "sk-test"
            mock_settings.HELICONE_ENABLED = True
            mock_settings.HELICONE_API_KEY = "sk-helicone"

            with patch("openai.AsyncOpenAI") as mock_openai:
                AIClientFactory.create_openai_client()

            kwargs = mock_openai.call_args.kwargs
            assert kwargs["base_url"] == "https://oai.helicone.ai/v1"
            assert kwargs["default_headers"] == {"Helicone-Auth": "Bearer sk-helicone"}

    def test_clients_are_created_once(self):
        with patch.object(AIClientFactory, "create_openai_client", return_value=MagicMock()) as create:
            clients = AIClients()

            first = clients.openai
            second = clients.openai

        assert first is second
        create.assert_called_once()
