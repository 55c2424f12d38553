"""
Tests for the generic station wrapper.
"""

import asyncio

import pytest
from pydantic import Field

from src.dramaanalyst.models import CamelModel, StageMetadata, StageStatus
from src.dramaanalyst.stages.base import BaseStage, Err, Ok, StageConfig
from src.dramaanalyst.utils.errors import ModelServiceError, StageError


class DummyOutput(CamelModel):
    value: str
    metadata: StageMetadata = Field(default_factory=StageMetadata)


class DummyStage(BaseStage):
    """Station whose process behavior is injected."""

    def __init__(self, client, behavior, config=None):
        super().__init__(config or StageConfig(stage_number=1, name="Dummy"), client)
        self.behavior = behavior
        self.calls = 0

    async def process(self, stage_input):
        self.calls += 1
        return self.behavior(stage_input)

    def get_error_fallback(self):
        return DummyOutput(value="fallback", metadata=StageMetadata(status=StageStatus.FAILED))


def run(stage, stage_input="input"):
    return asyncio.run(stage.execute(stage_input))


def raise_(error):
    raise error


class TestExecute:
    """Test execute containment."""

    def test_success(self, model_client):
        """Test that Ok output is returned with its own status."""
        stage = DummyStage(model_client, lambda data: Ok(DummyOutput(value=data)))
        result = run(stage)
        assert result.output.value == "input"
        assert result.status == StageStatus.SUCCESS
        assert result.error is None
        assert result.execution_time >= 0

    def test_partial_status_propagates(self, model_client):
        """Test that a Partial output keeps its status."""
        stage = DummyStage(model_client, lambda data: Ok(DummyOutput(
            value=data, metadata=StageMetadata(status=StageStatus.PARTIAL),
        )))
        assert run(stage).status == StageStatus.PARTIAL

    def test_exception_becomes_fallback(self, model_client):
        """Test that an exception from process yields the fallback with Failed status."""
        stage = DummyStage(model_client, lambda data: raise_(RuntimeError("boom")))
        result = run(stage)
        assert result.output.value == "fallback"
        assert result.status == StageStatus.FAILED
        assert isinstance(result.error, StageError)
        assert "RuntimeError: boom" in result.error.message
        assert isinstance(result.error.cause, RuntimeError)

    def test_analysis_error_keeps_message(self, model_client):
        """Test that pipeline errors keep their own message."""
        error = ModelServiceError("gemini-2.0-flash-001", "service down")
        stage = DummyStage(model_client, lambda data: raise_(error))
        result = run(stage)
        assert result.error.message == "service down"
        assert result.error.cause is error

    def test_err_outcome(self, model_client):
        """Test that an explicit Err yields the fallback."""
        stage = DummyStage(model_client, lambda data: Err(StageError("Dummy", "no data")))
        result = run(stage)
        assert result.status == StageStatus.FAILED
        assert result.error.message == "no data"

    def test_invalid_input_skips_process(self, model_client):
        """Test that a failing input validator never calls process."""
        config = StageConfig(stage_number=1, name="Dummy", input_validator=lambda data: False)
        stage = DummyStage(model_client, lambda data: Ok(DummyOutput(value=data)), config)
        result = run(stage)
        assert result.status == StageStatus.FAILED
        assert result.error.message == "Invalid input data"
        assert stage.calls == 0

    def test_invalid_output(self, model_client):
        """Test that a failing output validator yields the fallback."""
        config = StageConfig(stage_number=1, name="Dummy", output_validator=lambda output: output.value == "x")
        stage = DummyStage(model_client, lambda data: Ok(DummyOutput(value=data)), config)
        result = run(stage)
        assert result.output.value == "fallback"
        assert result.error.message == "Invalid output data"

    def test_raising_validator_counts_as_failure(self, model_client):
        """Test that a validator raising is treated as a rejection."""
        config = StageConfig(stage_number=1, name="Dummy", input_validator=lambda data: data.missing)
        stage = DummyStage(model_client, lambda data: Ok(DummyOutput(value=data)), config)
        assert run(stage).status == StageStatus.FAILED

    def test_broken_diagnostics_do_not_escape(self, model_client):
        """Test that a failing extract_required_data does not break containment."""
        stage = DummyStage(model_client, lambda data: raise_(ValueError("bad")))
        stage.extract_required_data = lambda data: raise_(KeyError("k"))
        assert run(stage).status == StageStatus.FAILED


class TestConstruction:
    """Test station construction."""

    def test_missing_client(self):
        """Test that a station needs a client."""
        with pytest.raises(ValueError, match="client"):
            DummyStage(None, lambda data: None)

    def test_missing_config(self, model_client):
        """Test that a station needs a config."""
        with pytest.raises(ValueError, match="config"):
            BaseStage.__init__(DummyStage.__new__(DummyStage), None, model_client)

    def test_name_from_config(self, model_client):
        """Test that the station name comes from its config."""
        assert DummyStage(model_client, lambda data: None).name == "Dummy"
