"""
Seven-station drama analysis pipeline.

This module implements the orchestrator that runs the stations strictly in
order:
1. Text analysis
2. Conceptual analysis
3. Conflict network builder
4. Efficiency metrics
5. Dynamic, symbolic and stylistic analysis
6. Diagnostics and treatment
7. Finalization
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ConfigDict, Field

from .config import Settings, load_settings
from .exports import AnalysisExporter
from .models import CamelModel, PipelineInput, utc_now, validate_pipeline_input
from .stages.base import BaseStage, StageResult
from .stages.conceptual_analysis import ConceptualAnalysisStage, Station2Input, Station2Output
from .stages.diagnostics import DiagnosticsStage, Station6Input, Station6Output
from .stages.dynamic_analysis import DynamicAnalysisStage, Station5Input, Station5Output
from .stages.efficiency_metrics import EfficiencyMetricsStage, Station4Input, Station4Output
from .stages.finalization import FinalizationStage, Station7Input, Station7Output
from .stages.network_builder import NetworkBuilderStage, Station3Input, Station3Output
from .stages.text_analysis import Station1Input, Station1Output, TextAnalysisStage
from .utils.errors import PipelineAbortedError
from .utils.llm import ModelClient

logger = logging.getLogger(__name__)

STAGE_COUNT = 7


class StageState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class StationOutputs(CamelModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    station1: Station1Output
    station2: Station2Output
    station3: Station3Output
    station4: Station4Output
    station5: Station5Output
    station6: Station6Output
    station7: Station7Output


class PipelineMetadata(CamelModel):
    stages_completed: int
    total_execution_time: float
    started_at: str
    finished_at: str
    stage_execution_times: Dict[str, float] = Field(default_factory=dict)


class PipelineRunResult(CamelModel):
    """Aggregate result of one pipeline run."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    project_name: str
    station_outputs: StationOutputs
    pipeline_metadata: PipelineMetadata
    station_statuses: Dict[str, str] = Field(default_factory=dict)


class AnalysisPipeline:
    """
    Orchestrates the seven analysis stations.

    Each station moves pending -> running -> completed, or -> error when it
    fails outside its own containment (construction or an exception escaping
    ``execute``), which aborts the run.
    """

    def __init__(
        self,
        client: ModelClient,
        settings: Optional[Settings] = None,
        stage_delay: Optional[float] = None,
        output_dir: Optional[str] = None,
        export_reports: bool = True,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the pipeline.

        Args:
            client: Model client shared by all stations
            settings: Settings (defaults used if None)
            stage_delay: Seconds to pause after stations 1-6 (default: settings.stage_delay)
            output_dir: Directory for report artifacts (default: settings.output_dir)
            export_reports: Write per-station text reports after the run
            sleep: Coroutine used for the inter-station pause
        """
        self.client = client
        self.settings = settings or Settings()
        self.stage_delay = self.settings.stage_delay if stage_delay is None else stage_delay
        self.output_dir = output_dir or self.settings.output_dir
        self.export_reports = export_reports
        self._sleep = sleep
        self._stage_status: Dict[int, StageState] = {}
        self._reset_status()

    def _reset_status(self) -> None:
        self._stage_status = {number: StageState.PENDING for number in range(1, STAGE_COUNT + 1)}

    def get_stage_status(self) -> Dict[str, str]:
        """Current state of every station, keyed 'station1'..'station7'."""
        return {f"station{number}": state.value for number, state in self._stage_status.items()}

    def _client_for(self, pipeline_input: PipelineInput) -> ModelClient:
        agents = pipeline_input.agents
        if agents.model or agents.temperature is not None or agents.max_tokens:
            return self.client.scoped(
                model=agents.model,
                temperature=agents.temperature,
                max_tokens=agents.max_tokens,
            )
        return self.client

    async def _run_stage(
        self,
        number: int,
        build_stage: Callable[[], BaseStage],
        build_input: Callable[[], Any],
    ) -> StageResult:
        self._stage_status[number] = StageState.RUNNING
        logger.info(f"Starting station {number}")
        try:
            stage = build_stage()
            result = await stage.execute(build_input())
        except Exception as e:
            self._stage_status[number] = StageState.ERROR
            logger.error(f"Station {number} aborted the pipeline: {type(e).__name__}: {e}", exc_info=True)
            raise PipelineAbortedError(number, str(e)) from e
        self._stage_status[number] = StageState.COMPLETED
        logger.info(f"Station {number} finished with status {result.status.value}")
        return result

    async def _pause(self, number: int, fast_mode: bool) -> None:
        if number < STAGE_COUNT and not fast_mode and self.stage_delay > 0:
            logger.debug(f"Waiting {self.stage_delay}s before station {number + 1}")
            await self._sleep(self.stage_delay)

    async def run_full_analysis(self, raw_input: Any) -> PipelineRunResult:
        """
        Run all seven stations on a drama text.

        Args:
            raw_input: Untyped input mapping (aliases such as 'text', 'script',
                'screenplayText' and 'project' are accepted)

        Returns:
            PipelineRunResult

        Raises:
            InputValidationError: If the input is missing required fields
            PipelineAbortedError: If a station fails outside its containment
        """
        pipeline_input = validate_pipeline_input(raw_input)
        self._reset_status()

        package_logger = logging.getLogger(__name__.rsplit(".", 1)[0])
        previous_level = package_logger.level
        if pipeline_input.flags.verbose_logging:
            package_logger.setLevel(logging.DEBUG)
        try:
            return await self._run_stations(pipeline_input)
        finally:
            package_logger.setLevel(previous_level)

    async def _run_stations(self, pipeline_input: PipelineInput) -> PipelineRunResult:
        client = self._client_for(pipeline_input)
        language = pipeline_input.language
        fast_mode = pipeline_input.flags.fast_mode
        full_text = pipeline_input.full_text
        project_name = pipeline_input.project_name

        started_at = utc_now()
        start_time = time.perf_counter()
        logger.info(f"Starting analysis of '{project_name}' ({len(full_text)} chars, language={language})")

        results: Dict[int, StageResult] = {}

        results[1] = await self._run_stage(
            1,
            lambda: TextAnalysisStage(client),
            lambda: Station1Input(
                full_text=full_text,
                project_name=project_name,
                language=language,
                context=pipeline_input.context,
            ),
        )
        await self._pause(1, fast_mode)

        results[2] = await self._run_stage(
            2,
            lambda: ConceptualAnalysisStage(client),
            lambda: Station2Input(
                station1_output=results[1].output,
                full_text=full_text,
                language=language,
            ),
        )
        await self._pause(2, fast_mode)

        results[3] = await self._run_stage(
            3,
            lambda: NetworkBuilderStage(client),
            lambda: Station3Input(
                station1_output=results[1].output,
                station2_output=results[2].output,
                full_text=full_text,
                project_name=project_name,
                language=language,
            ),
        )
        await self._pause(3, fast_mode)

        results[4] = await self._run_stage(
            4,
            lambda: EfficiencyMetricsStage(client),
            lambda: Station4Input(station3_output=results[3].output, language=language),
        )
        await self._pause(4, fast_mode)

        results[5] = await self._run_stage(
            5,
            lambda: DynamicAnalysisStage(client),
            lambda: Station5Input(
                station3_output=results[3].output,
                station4_output=results[4].output,
                full_text=full_text,
                language=language,
            ),
        )
        await self._pause(5, fast_mode)

        results[6] = await self._run_stage(
            6,
            lambda: DiagnosticsStage(client),
            lambda: Station6Input(
                station3_output=results[3].output,
                station4_output=results[4].output,
                station5_output=results[5].output,
                full_text=full_text,
                language=language,
            ),
        )
        await self._pause(6, fast_mode)

        results[7] = await self._run_stage(
            7,
            lambda: FinalizationStage(client, output_dir=self.output_dir, language=language),
            lambda: Station7Input(
                station1_output=results[1].output,
                station2_output=results[2].output,
                station3_output=results[3].output,
                station4_output=results[4].output,
                station5_output=results[5].output,
                station6_output=results[6].output,
                project_name=project_name,
                language=language,
            ),
        )

        finished_at = utc_now()
        total_ms = (time.perf_counter() - start_time) * 1000
        completed = sum(1 for state in self._stage_status.values() if state == StageState.COMPLETED)

        run_result = PipelineRunResult(
            project_name=project_name,
            station_outputs=StationOutputs(
                **{f"station{number}": result.output for number, result in results.items()}
            ),
            pipeline_metadata=PipelineMetadata(
                stages_completed=completed,
                total_execution_time=total_ms,
                started_at=started_at.isoformat(),
                finished_at=finished_at.isoformat(),
                stage_execution_times={
                    f"station{number}": round(result.execution_time, 2)
                    for number, result in results.items()
                },
            ),
            station_statuses={
                f"station{number}": result.status.value for number, result in results.items()
            },
        )
        logger.info(f"Analysis of '{project_name}' finished: {completed}/{STAGE_COUNT} stations in {total_ms:.0f}ms")

        if self.export_reports:
            try:
                AnalysisExporter(self.output_dir).export(run_result, language=language)
            except OSError as e:
                logger.error(f"Could not export reports to {self.output_dir}: {e}")

        return run_result

    def run_analysis(self, raw_input: Any) -> PipelineRunResult:
        """Synchronous wrapper around run_full_analysis for callers without an event loop."""
        return asyncio.run(self.run_full_analysis(raw_input))


def create_pipeline(settings: Optional[Settings] = None, **kwargs) -> AnalysisPipeline:
    """
    Build a pipeline with a Gemini-backed model client.

    Args:
        settings: Settings (loaded from env if None)
        **kwargs: Extra AnalysisPipeline arguments

    Returns:
        AnalysisPipeline instance
    """
    from .providers.factory import create_model_client

    settings = settings or load_settings()
    return AnalysisPipeline(create_model_client(settings), settings=settings, **kwargs)
