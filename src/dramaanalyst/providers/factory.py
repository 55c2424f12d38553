"""
LLM Provider Factory.

This module provides factory functions for creating the generation backend
and the model client the stations share. It handles provider selection
based on environment configuration and provides a default client instance.
"""

import os
import logging
from typing import Optional

from .gemini import GeminiProvider
from ..config import Settings, load_settings
from ..utils.llm import BaseLLMClient, ModelClient
from ..utils.throttle import ModelThrottle

logger = logging.getLogger(__name__)

_default_client: Optional[ModelClient] = None


def create_provider(
    provider_name: Optional[str] = None,
    settings: Optional[Settings] = None,
    **kwargs
) -> BaseLLMClient:
    """
    Create an LLM provider instance.

    Args:
        provider_name: Name of provider to create ('gemini' or None for auto-detect)
        settings: Settings to read defaults from (loaded from env if None)
        **kwargs: Provider-specific overrides (api_key, model_name, temperature)

    Returns:
        BaseLLMClient instance

    Raises:
        ValueError: If provider_name is invalid
    """
    if provider_name is None:
        provider_name = os.getenv("LLM_PROVIDER", "gemini").lower()
    settings = settings or load_settings()

    if provider_name == "gemini":
        return GeminiProvider(
            api_key=kwargs.get("api_key", settings.api_key),
            model_name=kwargs.get("model_name", settings.default_model),
            temperature=kwargs.get("temperature", settings.temperature),
        )
    raise ValueError(
        f"Unknown LLM provider: {provider_name}. "
        f"Supported providers: gemini"
    )


def create_model_client(
    settings: Optional[Settings] = None,
    backend: Optional[BaseLLMClient] = None,
    throttle: Optional[ModelThrottle] = None,
) -> ModelClient:
    """
    Create a ModelClient wired to a backend and a throttle.

    Args:
        settings: Settings (loaded from env if None)
        backend: Transport to use (a Gemini provider if None)
        throttle: Per-model limiter (a fresh one if None)

    Returns:
        ModelClient instance
    """
    settings = settings or load_settings()
    return ModelClient(
        backend=backend or create_provider(settings=settings),
        throttle=throttle or ModelThrottle(),
        default_model=settings.default_model,
        fallback_model=settings.fallback_model,
        temperature=settings.temperature,
        request_timeout=settings.request_timeout,
    )


def get_default_client() -> ModelClient:
    """
    Get or create the default model client.

    Returns:
        ModelClient instance configured from the environment
    """
    global _default_client

    if _default_client is None:
        _default_client = create_model_client()
        logger.info(f"Created default model client for {_default_client.default_model}")

    return _default_client


def reset_default_client() -> None:
    """
    Reset the default client instance.

    This is useful for testing or when configuration changes.
    """
    global _default_client
    _default_client = None
    logger.info("Reset default model client")
