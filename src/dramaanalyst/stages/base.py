"""
Generic station wrapper.

``BaseStage.execute`` validates input, runs the station's ``process`` and
validates its output. ``process`` returns ``Ok(output)`` or
``Err(StageError)``; any ``Err`` (or exception raised from within the
boundary) is logged with a small diagnostic snapshot of the input and
replaced by the station's fixed fallback output with status ``Failed``.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Generic, Optional, TypeVar, Union

from ..models import StageStatus, utc_now
from ..utils.errors import AnalysisError, StageError
from ..utils.llm import GenerationRequest, GenerationResponse, ModelClient

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")
ValueT = TypeVar("ValueT")

LANGUAGE_NAMES = {"ar": "Arabic", "en": "English"}


@dataclass(frozen=True)
class Ok(Generic[ValueT]):
    value: ValueT


@dataclass(frozen=True)
class Err:
    error: StageError


StageOutcome = Union[Ok[OutputT], Err]


@dataclass
class StageConfig(Generic[InputT, OutputT]):
    """Static configuration of one station."""
    stage_number: int
    name: str
    description: str = ""
    input_validator: Optional[Callable[[InputT], bool]] = None
    output_validator: Optional[Callable[[OutputT], bool]] = None
    enable_performance_tracking: bool = True


@dataclass(frozen=True)
class StageResult(Generic[OutputT]):
    """Outcome of one station invocation; never mutated after creation."""
    output: OutputT
    execution_time: float
    status: StageStatus
    timestamp: datetime
    error: Optional[StageError] = None


def language_instruction(language: str) -> str:
    """Instruction telling the model which language to write values in."""
    name = LANGUAGE_NAMES.get(language, LANGUAGE_NAMES["en"])
    return f"Write every value in {name}. Keep JSON keys exactly as given in English."


class BaseStage(ABC, Generic[InputT, OutputT]):
    """
    Base class for the seven analysis stations.

    Subclasses implement ``process`` and ``get_error_fallback``; they may
    override ``extract_required_data`` to choose what is logged on failure.
    """

    def __init__(self, config: StageConfig, client: ModelClient):
        """
        Initialize the station.

        Args:
            config: Station configuration
            client: Model client shared by the run

        Raises:
            ValueError: If config or client is missing
        """
        if config is None:
            raise ValueError("Station config is required")
        if client is None:
            raise ValueError("Model client is required")
        self.config = config
        self.client = client

    @property
    def name(self) -> str:
        return self.config.name

    @abstractmethod
    async def process(self, stage_input: InputT) -> StageOutcome:
        """Run the station logic and return Ok(output) or Err(StageError)."""

    @abstractmethod
    def get_error_fallback(self) -> OutputT:
        """Fixed output returned when the station fails."""

    def extract_required_data(self, stage_input: InputT) -> Dict[str, Any]:
        """Small diagnostic view of the input for failure logs (never the full text)."""
        return {"input_type": type(stage_input).__name__}

    def output_status(self, output: OutputT) -> StageStatus:
        metadata = getattr(output, "metadata", None)
        return getattr(metadata, "status", StageStatus.SUCCESS)

    def fail(self, message: str, cause: Optional[BaseException] = None) -> Err:
        return Err(StageError(self.name, message, cause=cause))

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Shortcut for the shared model client."""
        return await self.client.generate(request)

    async def _run_process(self, stage_input: InputT) -> StageOutcome:
        try:
            return await self.process(stage_input)
        except AnalysisError as e:
            return self.fail(e.message, cause=e)
        except Exception as e:
            return self.fail(f"{type(e).__name__}: {e}", cause=e)

    async def execute(self, stage_input: InputT) -> StageResult[OutputT]:
        """
        Execute the station without propagating failures.

        Args:
            stage_input: Station input

        Returns:
            StageResult with the station output, or its fallback on failure
        """
        start_time = time.perf_counter()

        validator = self.config.input_validator
        if validator is not None and not self._passes(validator, stage_input):
            outcome: StageOutcome = self.fail("Invalid input data")
        else:
            outcome = await self._run_process(stage_input)

        if isinstance(outcome, Ok):
            validator = self.config.output_validator
            if validator is not None and not self._passes(validator, outcome.value):
                outcome = self.fail("Invalid output data")

        execution_time = (time.perf_counter() - start_time) * 1000

        if isinstance(outcome, Err):
            logger.error(
                f"{self.name} failed after {execution_time:.0f}ms: {outcome.error.message} "
                f"| input: {self._diagnostics(stage_input)}"
            )
            return StageResult(
                output=self.get_error_fallback(),
                execution_time=execution_time,
                status=StageStatus.FAILED,
                timestamp=utc_now(),
                error=outcome.error,
            )

        if self.config.enable_performance_tracking:
            logger.info(f"{self.name} completed in {execution_time:.0f}ms")
        return StageResult(
            output=outcome.value,
            execution_time=execution_time,
            status=self.output_status(outcome.value),
            timestamp=utc_now(),
        )

    def _passes(self, validator: Callable[[Any], bool], value: Any) -> bool:
        try:
            return bool(validator(value))
        except Exception as e:
            logger.warning(f"{self.name} validator raised {type(e).__name__}: {e}")
            return False

    def _diagnostics(self, stage_input: InputT) -> Dict[str, Any]:
        try:
            return self.extract_required_data(stage_input)
        except Exception as e:
            return {"diagnostics_error": f"{type(e).__name__}: {e}"}
