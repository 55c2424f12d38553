"""
Model client for the generative text service.

This module provides the provider-agnostic ``BaseLLMClient`` interface and
the ``ModelClient`` that every analysis station talks to. The client builds
the full prompt, picks the model, retries once against a fallback model,
throttles per model, and turns raw text into a ``Structured`` or
``Unstructured`` payload.
"""

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from .errors import (
    AnalysisError,
    ModelConfigurationError,
    ModelServiceError,
    ResponseValidationError,
)
from .json_extraction import (
    ParsedContent,
    Structured,
    Unstructured,
    parse_payload,
    sanitize_partial_payload,
)
from .llm_constants import (
    ALLOWED_MODELS,
    CHARS_PER_TOKEN_ESTIMATE,
    DEFAULT_FALLBACK_MODEL,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    MAX_OUTPUT_TOKENS,
    PLACEHOLDER_NA,
)
from .throttle import ModelThrottle

logger = logging.getLogger(__name__)


class BaseLLMClient(ABC):
    """Synchronous transport to a text-completion backend."""

    @abstractmethod
    def generate(
        self,
        prompt: str,
        model_name: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Generate raw text for a prompt.

        Args:
            prompt: Full prompt text
            model_name: Model to call (provider default if None)
            temperature: Generation temperature
            max_tokens: Maximum output tokens
            timeout: Per-request timeout in seconds

        Returns:
            Generated text (may be empty)
        """

    def check_availability(self) -> bool:
        """Return True if the backend is reachable and configured."""
        return True


def estimate_tokens(text: Optional[str]) -> int:
    """
    Estimate token count from character length.

    Args:
        text: Text to estimate tokens for

    Returns:
        ceil(len(text) / 4), 0 for empty text
    """
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN_ESTIMATE)


def validate_model_name(model_name: str, allowed_models: Optional[List[str]] = None) -> str:
    """
    Validate that the model name is in the allowed list.

    Args:
        model_name: Model name, with or without the 'models/' prefix
        allowed_models: Accepted names (default: ALLOWED_MODELS)

    Returns:
        The model name without the 'models/' prefix

    Raises:
        ModelConfigurationError: If the model is not allowed
    """
    allowed = allowed_models if allowed_models is not None else ALLOWED_MODELS
    base_name = (model_name or "").replace("models/", "")
    if base_name not in allowed:
        raise ModelConfigurationError(
            f"Model '{model_name}' is not allowed. Allowed models: {', '.join(allowed)}",
            details={"model": model_name},
        )
    return base_name


@dataclass
class GenerationRequest:
    """One logical generation call."""
    prompt: str
    context: Optional[str] = None
    system_instruction: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    model: Optional[str] = None
    validator: Optional[Callable[[Any], bool]] = None
    allow_partial: bool = False
    on_partial_fallback: Optional[Callable[[Any], Any]] = None


@dataclass
class Usage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class GenerationResponse:
    """Result of a generation call."""
    model: str
    content: ParsedContent
    text: str
    usage: Usage
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    latency_ms: float = 0.0

    @property
    def data(self) -> Any:
        """Parsed payload, or None for unstructured content."""
        if isinstance(self.content, Structured):
            return self.content.data
        return None

    @property
    def is_structured(self) -> bool:
        return isinstance(self.content, Structured)


def build_full_prompt(
    prompt: str,
    context: Optional[str] = None,
    system_instruction: Optional[str] = None,
) -> str:
    """Concatenate system instruction, context and prompt into one string."""
    return (
        f"{system_instruction or ''}\n\n"
        f"Context: {context or PLACEHOLDER_NA}\n\n"
        f"Prompt: {prompt}"
    )


class ModelClient:
    """
    Defensive client used by every analysis station.

    Calls go through the injected throttle, run the blocking backend in a
    worker thread, and fail over to the fallback model exactly once.
    """

    def __init__(
        self,
        backend: BaseLLMClient,
        throttle: Optional[ModelThrottle] = None,
        default_model: str = DEFAULT_MODEL,
        fallback_model: Optional[str] = DEFAULT_FALLBACK_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = MAX_OUTPUT_TOKENS,
        request_timeout: Optional[float] = None,
        allowed_models: Optional[List[str]] = None,
    ):
        """
        Initialize the model client.

        Args:
            backend: Transport that produces raw text
            throttle: Per-model limiter (a fresh ModelThrottle if None)
            default_model: Primary model id
            fallback_model: Model retried once when the primary fails
            temperature: Default generation temperature
            max_tokens: Default output token budget
            request_timeout: Per-request transport timeout in seconds
            allowed_models: Accepted model ids (default: ALLOWED_MODELS)

        Raises:
            ModelConfigurationError: If a configured model is not allowed
        """
        self._allowed_models = allowed_models
        self.backend = backend
        self.throttle = throttle if throttle is not None else ModelThrottle()
        self.default_model = validate_model_name(default_model, allowed_models)
        self.fallback_model = (
            validate_model_name(fallback_model, allowed_models) if fallback_model else None
        )
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.request_timeout = request_timeout

    def scoped(
        self,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> "ModelClient":
        """
        Return a client with different defaults sharing backend and throttle.

        Args:
            model: Primary model override
            temperature: Temperature override
            max_tokens: Output budget override

        Returns:
            A new ModelClient
        """
        return ModelClient(
            backend=self.backend,
            throttle=self.throttle,
            default_model=model or self.default_model,
            fallback_model=self.fallback_model,
            temperature=self.temperature if temperature is None else temperature,
            max_tokens=max_tokens or self.max_tokens,
            request_timeout=self.request_timeout,
            allowed_models=self._allowed_models,
        )

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """
        Run one generation call with single-retry fallback.

        Args:
            request: The generation request

        Returns:
            GenerationResponse with parsed content, usage and latency

        Raises:
            ModelServiceError: If the primary (and the fallback, when distinct) fail
            ResponseValidationError: If the payload fails validation without partial acceptance
        """
        primary = (
            validate_model_name(request.model, self._allowed_models)
            if request.model else self.default_model
        )
        try:
            return await self._perform_request(request, primary)
        except AnalysisError as e:
            fallback = self.fallback_model
            if fallback and fallback != primary:
                logger.warning(
                    f"Model {primary} failed ({e.message}); retrying with fallback {fallback}"
                )
                return await self._perform_request(request, fallback)
            raise

    async def _perform_request(self, request: GenerationRequest, model: str) -> GenerationResponse:
        await self.throttle.wait(model)

        full_prompt = build_full_prompt(
            request.prompt, request.context, request.system_instruction
        )
        temperature = self.temperature if request.temperature is None else request.temperature
        max_tokens = request.max_tokens or self.max_tokens

        start_time = time.perf_counter()
        try:
            text = await asyncio.to_thread(
                self.backend.generate,
                full_prompt,
                model_name=model,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self.request_timeout,
            )
        except Exception as e:
            logger.error(f"Generation failed for model {model}: {type(e).__name__}: {e}")
            raise ModelServiceError(model, f"Generation failed for model {model}: {e}") from e
        latency_ms = (time.perf_counter() - start_time) * 1000

        text = text or ""
        content = self._parse_response(text, request, model)
        prompt_tokens = estimate_tokens(full_prompt)
        completion_tokens = estimate_tokens(text)

        logger.debug(
            f"Model {model} responded in {latency_ms:.0f}ms "
            f"({prompt_tokens} prompt / {completion_tokens} completion tokens est.)"
        )
        return GenerationResponse(
            model=model,
            content=content,
            text=text,
            usage=Usage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            latency_ms=latency_ms,
        )

    def _parse_response(self, text: str, request: GenerationRequest, model: str) -> ParsedContent:
        content = parse_payload(text)
        if isinstance(content, Unstructured) or request.validator is None:
            return content

        if request.validator(content.data):
            return content

        if request.allow_partial:
            if request.on_partial_fallback is not None:
                partial = request.on_partial_fallback(content.data)
            else:
                partial = sanitize_partial_payload(content.data)
            logger.warning(f"Accepting partial payload from model {model}")
            return Structured(data=partial)

        raise ResponseValidationError(model)
