"""
Tests for environment-driven settings and logging setup.
"""

import logging
import os
from unittest.mock import patch

import pytest

from src.dramaanalyst.config import (
    DEFAULT_OUTPUT_DIR,
    LOG_FORMAT,
    Settings,
    configure_logging,
    load_settings,
)
from src.dramaanalyst.utils.errors import ModelConfigurationError
from src.dramaanalyst.utils.llm_constants import MODEL_FLASH, MODEL_FLASH_LITE, MODEL_PRO


def load_with_env(env):
    with patch.dict(os.environ, env, clear=True):
        with patch('src.dramaanalyst.config.load_dotenv'):
            return load_settings()


class TestLoadSettings:
    """Test load_settings."""

    def test_defaults(self):
        """Test the values used when nothing is configured."""
        settings = load_with_env({})
        assert settings.api_key is None
        assert settings.default_model == MODEL_FLASH
        assert settings.fallback_model == MODEL_FLASH_LITE
        assert settings.request_timeout == 60.0
        assert settings.stage_delay == 6.0
        assert settings.temperature == 0.7
        assert settings.output_dir == DEFAULT_OUTPUT_DIR
        assert settings.log_level == "INFO"

    def test_dataclass_defaults_match_loader(self):
        """Test that Settings() and load_settings() agree on defaults."""
        assert load_with_env({}) == Settings()

    def test_environment_overrides(self):
        """Test that every variable is read."""
        settings = load_with_env({
            "GOOGLE_API_KEY": "key",
            "DRAMA_DEFAULT_MODEL": MODEL_PRO,
            "DRAMA_FALLBACK_MODEL": MODEL_FLASH,
            "DRAMA_REQUEST_TIMEOUT": "30",
            "DRAMA_STAGE_DELAY": "0",
            "DRAMA_TEMPERATURE": "0.2",
            "DRAMA_OUTPUT_DIR": "/tmp/reports",
            "LOG_LEVEL": "debug",
        })
        assert settings.api_key == "key"
        assert settings.default_model == MODEL_PRO
        assert settings.fallback_model == MODEL_FLASH
        assert settings.request_timeout == 30.0
        assert settings.stage_delay == 0.0
        assert settings.temperature == 0.2
        assert settings.output_dir == "/tmp/reports"
        assert settings.log_level == "DEBUG"

    def test_gemini_api_key(self):
        """Test the GEMINI_API_KEY alternative."""
        assert load_with_env({"GEMINI_API_KEY": "alt"}).api_key == "alt"

    def test_empty_fallback_disables_it(self):
        """Test that an empty DRAMA_FALLBACK_MODEL turns fallback off."""
        assert load_with_env({"DRAMA_FALLBACK_MODEL": ""}).fallback_model is None

    def test_non_numeric_value(self):
        """Test that a non-numeric number variable raises ModelConfigurationError."""
        with pytest.raises(ModelConfigurationError) as exc_info:
            load_with_env({"DRAMA_STAGE_DELAY": "soon"})
        assert exc_info.value.details == {"variable": "DRAMA_STAGE_DELAY"}

    def test_env_file_is_loaded(self):
        """Test that load_dotenv receives the given path."""
        with patch.dict(os.environ, {}, clear=True):
            with patch('src.dramaanalyst.config.load_dotenv') as mock_load:
                load_settings(env_file="custom.env")
        mock_load.assert_called_once_with("custom.env")


class TestConfigureLogging:
    """Test logging configuration."""

    def test_level_and_format(self):
        """Test that basicConfig receives the level and project format."""
        with patch('logging.basicConfig') as mock_basic:
            configure_logging("debug")
        mock_basic.assert_called_once_with(level=logging.DEBUG, format=LOG_FORMAT)

    def test_unknown_level_falls_back_to_info(self):
        """Test that an unknown level name uses INFO."""
        with patch('logging.basicConfig') as mock_basic:
            configure_logging("chatty")
        assert mock_basic.call_args.kwargs["level"] == logging.INFO
