"""
Station 7: finalization.

Synthesizes a plain-prose final report from the six prior station outputs,
strips any markdown the model produced, and saves the report as a text
artifact.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field

from ..models import CamelModel, StageMetadata, StageStatus
from ..utils.json_extraction import Structured
from ..utils.llm import GenerationRequest
from ..utils.llm_constants import MIN_FINAL_REPORT_LENGTH
from ..utils.storage import save_text
from ..utils.text import strip_markdown, to_text
from .base import BaseStage, Ok, StageConfig, StageOutcome, LANGUAGE_NAMES
from .conceptual_analysis import Station2Output, summarize_station1
from .diagnostics import Station6Output
from .dynamic_analysis import Station5Output
from .efficiency_metrics import Station4Output
from .network_builder import Station3Output
from .text_analysis import Station1Output

logger = logging.getLogger(__name__)

FINAL_REPORT_FILENAME = "final-report.txt"

SYSTEM_INSTRUCTION = (
    "You are a senior dramaturg writing a final analysis report. "
    "Write plain prose only: no markdown, no headings with symbols, no bullet lists, "
    "no bold or italic markers, no code blocks."
)

FALLBACK_REPORT = {
    "ar": "تعذر إنشاء التقرير النهائي. يرجى مراجعة مخرجات المحطات السابقة.",
    "en": "The final report could not be generated. Please review the outputs of the previous stations.",
}

# Keys a model may wrap the report in when it answers with JSON anyway
_REPORT_KEYS = ("final_report", "report", "final_report_text", "text", "content")


@dataclass
class Station7Input:
    station1_output: Station1Output
    station2_output: Station2Output
    station3_output: Station3Output
    station4_output: Station4Output
    station5_output: Station5Output
    station6_output: Station6Output
    project_name: str = ""
    language: str = "ar"


class Station7Output(CamelModel):
    final_report_text: str
    report_path: Optional[str] = None
    metadata: StageMetadata = Field(default_factory=StageMetadata)


def build_final_report_prompt(stage_input: Station7Input) -> str:
    """Summarize all six station outputs into one synthesis prompt."""
    s2 = stage_input.station2_output
    s3 = stage_input.station3_output.network_summary
    s4 = stage_input.station4_output
    s5 = stage_input.station5_output
    s6 = stage_input.station6_output.diagnostics_report
    language = LANGUAGE_NAMES.get(stage_input.language, LANGUAGE_NAMES["en"])

    critical = "; ".join(issue.description for issue in s6.critical_issues) or "none"
    actions = "; ".join(s4.recommendations.priority_actions) or "none"
    symbols = ", ".join(s5.symbolic_analysis_results.key_symbols) or "none"

    return (
        f"Write the final analysis report of the project '{stage_input.project_name}' in {language}.\n\n"
        f"1. Characters and style\n{summarize_station1(stage_input.station1_output)}\n\n"
        f"2. Concept\nStory statement: {s2.story_statement}\n"
        f"Elevator pitch: {s2.elevator_pitch}\nHybrid genre: {s2.hybrid_genre}\n\n"
        f"3. Conflict network\n{s3.characters_count} characters, {s3.relationships_count} relationships, "
        f"{s3.conflicts_count} conflicts\n\n"
        f"4. Efficiency\nScore {s4.efficiency_metrics.overall_efficiency_score} "
        f"({s4.efficiency_metrics.overall_rating}); priority actions: {actions}\n\n"
        f"5. Dynamics and symbols\nKey symbols: {symbols}; "
        f"tone: {s5.stylistic_analysis_results.tone_assessment}\n\n"
        f"6. Diagnostics\nHealth score {s6.overall_health_score}; "
        f"{s6.total_issues_found} issues; critical: {critical}\n\n"
        "Cover an executive summary, strengths, weaknesses and concrete recommendations, "
        "in flowing paragraphs."
    )


class FinalizationStage(BaseStage[Station7Input, Station7Output]):
    """Station 7: final report."""

    def __init__(
        self,
        client,
        output_dir: str = "analysis_output",
        language: str = "ar",
        config: Optional[StageConfig] = None,
    ):
        super().__init__(
            config or StageConfig(
                stage_number=7,
                name="Station 7: Finalization",
                input_validator=lambda data: data.station6_output is not None,
            ),
            client,
        )
        self.output_dir = output_dir
        self.language = language

    async def process(self, stage_input: Station7Input) -> StageOutcome:
        start_time = time.perf_counter()
        language = stage_input.language

        response = await self.generate(GenerationRequest(
            prompt=build_final_report_prompt(stage_input),
            system_instruction=SYSTEM_INSTRUCTION,
        ))

        raw_report = response.text
        if isinstance(response.content, Structured) and isinstance(response.content.data, dict):
            wrapped = next(
                (response.content.data[key] for key in _REPORT_KEYS if response.content.data.get(key)),
                None,
            )
            if wrapped is not None:
                raw_report = to_text(wrapped)

        report = strip_markdown(raw_report)
        status = StageStatus.SUCCESS
        if len(report) < MIN_FINAL_REPORT_LENGTH:
            logger.warning(f"Final report too short ({len(report)} chars); using fallback text")
            report = FALLBACK_REPORT.get(language, FALLBACK_REPORT["en"])
            status = StageStatus.PARTIAL

        report_path = self.save_report(report)
        if report_path is None:
            status = StageStatus.PARTIAL

        return Ok(Station7Output(
            final_report_text=report,
            report_path=str(report_path) if report_path else None,
            metadata=StageMetadata(
                status=status,
                processing_time=(time.perf_counter() - start_time) * 1000,
            ),
        ))

    def save_report(self, report: str) -> Optional[Path]:
        try:
            path = save_text(self.output_dir, FINAL_REPORT_FILENAME, report)
        except OSError as e:
            logger.error(f"Could not save final report to {self.output_dir}: {e}")
            return None
        logger.info(f"Final report saved to {path}")
        return path

    def extract_required_data(self, stage_input: Station7Input) -> Dict[str, Any]:
        return {
            "project_name": stage_input.project_name,
            "health_score": stage_input.station6_output.diagnostics_report.overall_health_score,
        }

    def get_error_fallback(self) -> Station7Output:
        return Station7Output(
            final_report_text=FALLBACK_REPORT.get(self.language, FALLBACK_REPORT["en"]),
            metadata=StageMetadata(status=StageStatus.FAILED),
        )
