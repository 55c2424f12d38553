"""
Tests for the Gemini provider and the provider factory.

The google.generativeai SDK is mocked; no network call is made.
"""

import os
from types import SimpleNamespace
from unittest.mock import patch, MagicMock, PropertyMock

import pytest

from src.dramaanalyst.config import Settings
from src.dramaanalyst.providers import factory
from src.dramaanalyst.providers.factory import (
    create_model_client,
    create_provider,
    get_default_client,
    reset_default_client,
)
from src.dramaanalyst.providers.gemini import GeminiProvider
from src.dramaanalyst.utils.errors import ModelConfigurationError
from src.dramaanalyst.utils.llm import ModelClient
from src.dramaanalyst.utils.llm_constants import MAX_OUTPUT_TOKENS, MODEL_FLASH, MODEL_PRO
from src.dramaanalyst.utils.throttle import NullThrottle


class TestProviderInitialization:
    """Test provider construction."""

    def test_missing_api_key(self):
        """Test that a missing API key raises ModelConfigurationError."""
        with patch.dict(os.environ, {}, clear=True):
            with patch('google.generativeai.configure'):
                with pytest.raises(ModelConfigurationError) as exc_info:
                    GeminiProvider()
        assert "GOOGLE_API_KEY" in str(exc_info.value)

    def test_gemini_api_key_env(self):
        """Test that GEMINI_API_KEY is accepted when GOOGLE_API_KEY is absent."""
        with patch.dict(os.environ, {"GEMINI_API_KEY": "alt_key"}, clear=True):
            with patch('google.generativeai.configure') as mock_configure:
                provider = GeminiProvider()
        assert provider.api_key == "alt_key"
        mock_configure.assert_called_once_with(api_key="alt_key")

    def test_invalid_default_model(self):
        """Test that a disallowed default model is rejected."""
        with patch('google.generativeai.configure'):
            with pytest.raises(ModelConfigurationError):
                GeminiProvider(api_key="test_key", model_name="invalid-model")

    def test_default_model(self, mock_gemini_provider):
        """Test that the provider defaults to the flash model."""
        assert mock_gemini_provider.model_name == MODEL_FLASH


class TestGenerate:
    """Test text generation through the SDK."""

    def test_generation_config(self, mock_gemini_provider):
        """Test that generation parameters are sent as a plain dict."""
        result = mock_gemini_provider.generate("Prompt")

        assert result == "Generated response"
        mock_gemini_provider._mock_model_class.assert_called_once_with(MODEL_FLASH)
        call = mock_gemini_provider._mock_model.generate_content.call_args
        assert call.args[0] == "Prompt"
        assert call.kwargs["generation_config"] == {
            "temperature": 0.7,
            "max_output_tokens": MAX_OUTPUT_TOKENS,
        }
        assert call.kwargs["request_options"] is None

    def test_overrides_and_timeout(self, mock_gemini_provider):
        """Test model, temperature, token and timeout overrides."""
        mock_gemini_provider.generate(
            "Prompt", model_name=MODEL_PRO, temperature=0.2, max_tokens=512, timeout=30.0
        )

        mock_gemini_provider._mock_model_class.assert_called_once_with(MODEL_PRO)
        call = mock_gemini_provider._mock_model.generate_content.call_args
        assert call.kwargs["generation_config"] == {"temperature": 0.2, "max_output_tokens": 512}
        assert call.kwargs["request_options"] == {"timeout": 30.0}

    def test_invalid_model_override(self, mock_gemini_provider):
        """Test that a disallowed per-call model is rejected."""
        with pytest.raises(ModelConfigurationError):
            mock_gemini_provider.generate("Prompt", model_name="gpt-4")

    def test_text_is_stripped(self, mock_gemini_provider):
        """Test that surrounding whitespace is removed."""
        mock_gemini_provider._mock_model.generate_content.return_value.text = "  hello  \n"
        assert mock_gemini_provider.generate("Prompt") == "hello"

    def test_blocked_response_returns_empty(self, mock_gemini_provider):
        """Test that a response whose .text raises yields an empty string."""
        blocked = MagicMock()
        type(blocked).text = PropertyMock(side_effect=ValueError("no candidates"))
        blocked.candidates = [SimpleNamespace(finish_reason="SAFETY")]
        mock_gemini_provider._mock_model.generate_content.return_value = blocked

        assert mock_gemini_provider.generate("Prompt") == ""

    def test_network_error_propagates(self, mock_gemini_provider):
        """Test that transport errors are re-raised."""
        mock_gemini_provider._mock_model.generate_content.side_effect = ConnectionError("down")
        with pytest.raises(ConnectionError):
            mock_gemini_provider.generate("Prompt")

    def test_api_error_propagates(self, mock_gemini_provider):
        """Test that SDK errors are re-raised."""
        mock_gemini_provider._mock_model.generate_content.side_effect = RuntimeError("quota")
        with pytest.raises(RuntimeError):
            mock_gemini_provider.generate("Prompt")


class TestAvailability:
    """Test availability checks."""

    def test_available(self, mock_gemini_provider):
        """Test that a listed model is reported available."""
        listed = [SimpleNamespace(name=f"models/{MODEL_FLASH}")]
        with patch('google.generativeai.list_models', return_value=listed):
            assert mock_gemini_provider.check_availability() is True

    def test_not_listed(self, mock_gemini_provider):
        """Test that an unlisted model is reported unavailable."""
        listed = [SimpleNamespace(name=f"models/{MODEL_PRO}")]
        with patch('google.generativeai.list_models', return_value=listed):
            assert mock_gemini_provider.check_availability() is False

    def test_listing_error(self, mock_gemini_provider):
        """Test that a listing error is reported as unavailable."""
        with patch('google.generativeai.list_models', side_effect=ConnectionError("down")):
            assert mock_gemini_provider.check_availability() is False


class TestFactory:
    """Test provider and client factories."""

    def test_create_gemini_provider(self):
        """Test that the gemini provider is created from settings."""
        settings = Settings(api_key="test_key", default_model=MODEL_PRO, temperature=0.4)
        with patch('google.generativeai.configure'):
            provider = create_provider("gemini", settings=settings)
        assert isinstance(provider, GeminiProvider)
        assert provider.model_name == MODEL_PRO
        assert provider.temperature == 0.4

    def test_unknown_provider(self):
        """Test that an unknown provider name raises ValueError."""
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            create_provider("openai", settings=Settings(api_key="test_key"))

    def test_create_model_client(self, scripted_backend):
        """Test that the client picks up models and timeout from settings."""
        settings = Settings(api_key="test_key", fallback_model=None, request_timeout=5.0)
        throttle = NullThrottle()
        client = create_model_client(settings, backend=scripted_backend, throttle=throttle)

        assert isinstance(client, ModelClient)
        assert client.backend is scripted_backend
        assert client.throttle is throttle
        assert client.default_model == MODEL_FLASH
        assert client.fallback_model is None
        assert client.request_timeout == 5.0

    def test_default_client_is_cached(self):
        """Test that get_default_client returns one shared instance until reset."""
        reset_default_client()
        try:
            with patch.object(factory, 'create_model_client') as mock_create:
                mock_create.side_effect = lambda: MagicMock(spec=ModelClient, default_model=MODEL_FLASH)
                first = get_default_client()
                second = get_default_client()
                assert first is second
                assert mock_create.call_count == 1

                reset_default_client()
                assert get_default_client() is not first
        finally:
            reset_default_client()
