"""
Utility modules for the Drama Analyst pipeline.

Modules:
- errors: Exception hierarchy
- json_extraction: Lenient JSON recovery from model output
- throttle: Per-model request throttling
- llm: Model client and backend interface
- storage: UTF-8 text artifacts on disk
- text: Text coercion and markdown stripping
"""

from .errors import (
    AnalysisError,
    InputValidationError,
    ModelConfigurationError,
    ModelServiceError,
    ResponseValidationError,
    StageError,
    PipelineAbortedError,
)
from .json_extraction import Structured, Unstructured, extract_json, parse_payload
from .throttle import ModelThrottle, NullThrottle
from .llm import BaseLLMClient, GenerationRequest, GenerationResponse, ModelClient

__all__ = [
    "AnalysisError",
    "InputValidationError",
    "ModelConfigurationError",
    "ModelServiceError",
    "ResponseValidationError",
    "StageError",
    "PipelineAbortedError",
    "Structured",
    "Unstructured",
    "extract_json",
    "parse_payload",
    "ModelThrottle",
    "NullThrottle",
    "BaseLLMClient",
    "GenerationRequest",
    "GenerationResponse",
    "ModelClient",
]
