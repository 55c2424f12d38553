"""
Runtime configuration for the analysis pipeline.

Settings are read from the process environment after loading a ``.env``
file with python-dotenv.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .utils.errors import ModelConfigurationError
from .utils.llm_constants import (
    DEFAULT_FALLBACK_MODEL,
    DEFAULT_MODEL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_STAGE_DELAY,
    DEFAULT_TEMPERATURE,
)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_OUTPUT_DIR = "analysis_output"


@dataclass
class Settings:
    """Pipeline settings."""
    api_key: Optional[str] = None
    default_model: str = DEFAULT_MODEL
    fallback_model: Optional[str] = DEFAULT_FALLBACK_MODEL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    stage_delay: float = DEFAULT_STAGE_DELAY
    temperature: float = DEFAULT_TEMPERATURE
    output_dir: str = DEFAULT_OUTPUT_DIR
    log_level: str = "INFO"


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ModelConfigurationError(
            f"Environment variable {name} must be a number, got '{raw}'",
            details={"variable": name},
        )


def load_settings(env_file: Optional[str] = None) -> Settings:
    """
    Build Settings from the environment.

    Environment variables:
    - GOOGLE_API_KEY (or GEMINI_API_KEY): API key for the Gemini provider
    - DRAMA_DEFAULT_MODEL: primary model id
    - DRAMA_FALLBACK_MODEL: fallback model id (empty string disables fallback)
    - DRAMA_REQUEST_TIMEOUT: per-request timeout in seconds
    - DRAMA_STAGE_DELAY: pause between stations in seconds
    - DRAMA_TEMPERATURE: default generation temperature
    - DRAMA_OUTPUT_DIR: directory for report artifacts
    - LOG_LEVEL: logging level name

    Args:
        env_file: Optional path of a .env file (default: search from cwd)

    Returns:
        Settings instance
    """
    load_dotenv(env_file)

    fallback = os.getenv("DRAMA_FALLBACK_MODEL")
    if fallback is None:
        fallback = DEFAULT_FALLBACK_MODEL

    return Settings(
        api_key=os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY"),
        default_model=os.getenv("DRAMA_DEFAULT_MODEL") or DEFAULT_MODEL,
        fallback_model=fallback.strip() or None,
        request_timeout=_float_env("DRAMA_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
        stage_delay=_float_env("DRAMA_STAGE_DELAY", DEFAULT_STAGE_DELAY),
        temperature=_float_env("DRAMA_TEMPERATURE", DEFAULT_TEMPERATURE),
        output_dir=os.getenv("DRAMA_OUTPUT_DIR") or DEFAULT_OUTPUT_DIR,
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with the project's format."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
