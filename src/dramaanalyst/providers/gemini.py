"""
Google Gemini LLM Provider implementation.

This module provides the GeminiProvider class for interacting with
Google's Generative AI models. All Gemini-specific code is isolated here.
"""

import os
import logging
import time
from typing import Optional, List

import google.generativeai as genai  # type: ignore

from ..utils.errors import ModelConfigurationError
from ..utils.llm import BaseLLMClient, validate_model_name
from ..utils.llm_constants import (
    ALLOWED_MODELS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    MAX_OUTPUT_TOKENS,
)

logger = logging.getLogger(__name__)


class GeminiProvider(BaseLLMClient):
    """
    Provider for interacting with Google Gemini API.

    Implements the synchronous BaseLLMClient transport. The model client
    runs ``generate`` in a worker thread and handles throttling, fallback
    and JSON recovery; this class only moves text to and from the API.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = DEFAULT_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
        allowed_models: Optional[List[str]] = None,
    ):
        """
        Initialize Gemini provider.

        Args:
            api_key: Google API key (if None, uses GOOGLE_API_KEY or GEMINI_API_KEY env var)
            model_name: Default model name
            temperature: Default generation temperature
            allowed_models: Accepted model names (default: ALLOWED_MODELS)

        Raises:
            ModelConfigurationError: If the API key is missing or the model is not allowed
        """
        self.api_key = api_key or os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
        if not self.api_key:
            raise ModelConfigurationError("GOOGLE_API_KEY environment variable is required")

        genai.configure(api_key=self.api_key)  # type: ignore[attr-defined]
        self._genai = genai

        self.available_models = list(allowed_models or ALLOWED_MODELS)
        self._model_name = validate_model_name(model_name, self.available_models)
        self.temperature = temperature

        logger.info(f"Initialized GeminiProvider with model: {self._model_name}")

    @property
    def model_name(self) -> str:
        """Get the default model name used by this provider."""
        return self._model_name

    def generate(
        self,
        prompt: str,
        model_name: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Generate text using a Gemini model.

        Args:
            prompt: Full prompt text
            model_name: Model to call (overrides instance default)
            temperature: Generation temperature (overrides instance default)
            max_tokens: Maximum output tokens (default: MAX_OUTPUT_TOKENS)
            timeout: Request timeout in seconds

        Returns:
            Generated text, or an empty string when the API returned none

        Raises:
            Exception: If generation fails
        """
        name = validate_model_name(model_name, self.available_models) if model_name else self._model_name
        start_time = time.time()

        try:
            model = self._genai.GenerativeModel(name)  # type: ignore
            generation_config = {
                "temperature": temperature if temperature is not None else self.temperature,
                "max_output_tokens": max_tokens or MAX_OUTPUT_TOKENS,
            }
            request_options = {"timeout": timeout} if timeout else None

            response = model.generate_content(  # type: ignore
                prompt,
                generation_config=generation_config,
                request_options=request_options,
            )

            finish_reason = "STOP"
            if getattr(response, "candidates", None):
                finish_reason = getattr(response.candidates[0], "finish_reason", "STOP")

            try:
                text = response.text
            except ValueError:
                # Blocked or empty candidates raise on .text
                text = ""

            if not text:
                logger.warning(f"Gemini generation finished with reason: {finish_reason}. No text returned.")
                return ""

            if str(finish_reason).endswith("MAX_TOKENS"):
                logger.warning(
                    f"Gemini generation hit MAX_TOKENS limit ({generation_config['max_output_tokens']} tokens). "
                    f"Output may be truncated. Text length: {len(text)} chars"
                )

            duration = time.time() - start_time
            logger.debug(f"Gemini {name} generated {len(text)} chars in {duration:.2f}s")
            return text.strip()

        except (ConnectionError, TimeoutError, OSError) as e:
            logger.error(f"Network error generating content with Gemini: {e}", exc_info=True)
            raise
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(f"Configuration error generating content with Gemini: {e}", exc_info=True)
            raise
        except Exception as e:
            # Google API exceptions and anything else the SDK raises
            logger.error(f"Error generating content with Gemini: {e}", exc_info=True)
            raise

    def check_availability(self) -> bool:
        """
        Check if the configured model is listed by the Gemini API.

        Returns:
            True if API is available, False otherwise
        """
        try:
            listed = [
                getattr(model, "name", str(model)).replace("models/", "")
                for model in self._genai.list_models()  # type: ignore
            ]
        except Exception as e:
            logger.error(f"Error checking Gemini API availability: {e}", exc_info=True)
            return False

        is_available = self._model_name in listed
        if not is_available:
            logger.warning(f"Configured Gemini model '{self._model_name}' not found in available models")
        return is_available
