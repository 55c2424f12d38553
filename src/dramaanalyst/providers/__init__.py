"""
LLM Provider implementations.

This module provides concrete implementations of LLM providers.
Currently supports Google Gemini API via GeminiProvider.
"""

from .gemini import GeminiProvider
from .factory import create_provider, create_model_client, get_default_client

__all__ = [
    "GeminiProvider",
    "create_provider",
    "create_model_client",
    "get_default_client",
]
