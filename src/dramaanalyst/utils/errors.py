"""
Error handling utilities for the Drama Analyst pipeline.

Provides structured exception classes shared by the model client,
the stations and the pipeline orchestrator.
"""

import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class AnalysisError(Exception):
    """Base exception for analysis pipeline errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "ANALYSIS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize analysis error.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for transport to the caller."""
        payload = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class InputValidationError(AnalysisError):
    """Raised when the pipeline input is malformed or missing required fields."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details=details
        )


class ModelConfigurationError(AnalysisError):
    """Raised when a model client or provider is configured with invalid values."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="MODEL_CONFIGURATION_ERROR",
            details=details
        )


class ModelServiceError(AnalysisError):
    """Raised when the generative service call fails for a given model."""

    def __init__(self, model: str, message: Optional[str] = None):
        error_message = message or f"Model '{model}' is currently unavailable."
        super().__init__(
            message=error_message,
            error_code="MODEL_SERVICE_ERROR",
            details={"model": model}
        )
        self.model = model


class ResponseValidationError(AnalysisError):
    """Raised when a parsed model response fails its validator and no partial payload is allowed."""

    def __init__(self, model: str, message: Optional[str] = None):
        super().__init__(
            message=message or f"Response from model '{model}' failed validation",
            error_code="RESPONSE_VALIDATION_ERROR",
            details={"model": model}
        )
        self.model = model


class StageError(AnalysisError):
    """Failure of a single station, contained by the station wrapper."""

    def __init__(
        self,
        stage_name: str,
        message: str,
        cause: Optional[BaseException] = None
    ):
        details: Dict[str, Any] = {"stage": stage_name}
        if cause is not None:
            details["cause"] = type(cause).__name__
        super().__init__(
            message=message,
            error_code="STAGE_ERROR",
            details=details
        )
        self.stage_name = stage_name
        self.cause = cause


class PipelineAbortedError(AnalysisError):
    """Raised when a station fails outside its own containment boundary."""

    def __init__(self, stage_number: int, message: str):
        super().__init__(
            message=f"Station {stage_number} aborted the pipeline: {message}",
            error_code="PIPELINE_ABORTED",
            details={"stage": stage_number}
        )
        self.stage_number = stage_number
