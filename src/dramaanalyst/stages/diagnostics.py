"""
Station 6: diagnostics and treatment.

Classifies issues found in the network into critical / warning / suggestion
buckets, each with a severity and a suggested fix, and assembles a
prioritized treatment plan.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field

from ..models import CamelModel, ConflictScope, StageMetadata, StageStatus, clamp_strength
from ..network import ConflictNetwork
from ..utils.json_extraction import Structured
from ..utils.llm import GenerationRequest
from ..utils.llm_constants import TEXT_LIMIT_BRIEF
from ..utils.text import safe_sub, text_or_placeholder, undetermined
from .base import BaseStage, Ok, StageConfig, StageOutcome, language_instruction
from .dynamic_analysis import Station5Output
from .efficiency_metrics import Station4Output
from .network_builder import Station3Output

logger = logging.getLogger(__name__)

CRITICAL = "critical"
WARNING = "warning"
SUGGESTION = "suggestion"

# Health score penalty per issue
BUCKET_PENALTY = {CRITICAL: 15, WARNING: 7, SUGGESTION: 2}
BUCKET_RANK = {CRITICAL: 0, WARNING: 1, SUGGESTION: 2}

IMBALANCE_GINI = 0.5
LOW_DENSITY = 0.2
WEAK_CONFLICT_STRENGTH = 3


@dataclass
class Station6Input:
    station3_output: Station3Output
    station4_output: Station4Output
    station5_output: Station5Output
    full_text: str
    language: str = "ar"


class DiagnosticIssue(CamelModel):
    id: str
    bucket: str
    category: str
    description: str
    severity: int = Field(ge=1, le=10)
    suggested_fix: str
    affected_elements: List[str] = Field(default_factory=list)
    source: str = "rule"


class DiagnosticsReport(CamelModel):
    overall_health_score: float
    critical_issues: List[DiagnosticIssue] = Field(default_factory=list)
    warnings: List[DiagnosticIssue] = Field(default_factory=list)
    suggestions: List[DiagnosticIssue] = Field(default_factory=list)
    total_issues_found: int = 0


class TreatmentStep(CamelModel):
    priority: int
    issue_id: str
    bucket: str
    severity: int
    action: str


class TreatmentPlan(CamelModel):
    prioritized_recommendations: List[TreatmentStep] = Field(default_factory=list)
    estimated_improvement: float = 0.0
    implementation_complexity: str = "low"


class Station6Output(CamelModel):
    diagnostics_report: DiagnosticsReport
    treatment_plan: TreatmentPlan = Field(default_factory=TreatmentPlan)
    metadata: StageMetadata = Field(default_factory=StageMetadata)


class NetworkDiagnostics:
    """Rule-based checks over the conflict network and upstream metrics."""

    def __init__(self):
        self._issues: List[DiagnosticIssue] = []

    def _add(self, bucket: str, category: str, description: str, severity: int,
             suggested_fix: str, affected: Optional[List[str]] = None) -> None:
        self._issues.append(DiagnosticIssue(
            id=f"issue_{len(self._issues) + 1}",
            bucket=bucket,
            category=category,
            description=description,
            severity=severity,
            suggested_fix=suggested_fix,
            affected_elements=affected or [],
        ))

    def run(
        self,
        network: ConflictNetwork,
        station4: Station4Output,
        station5: Station5Output,
    ) -> List[DiagnosticIssue]:
        self._issues = []
        characters = network.characters

        if not characters:
            self._add(CRITICAL, "characters", "No characters were identified.", 10,
                      "Make the principal characters explicit in the text.")
        if len(characters) >= 2 and not network.relationships:
            self._add(CRITICAL, "relationships", "No relationships connect the characters.", 9,
                      "Establish explicit bonds between the principal characters.")
        if characters and not network.conflicts:
            self._add(CRITICAL, "conflicts", "The network contains no conflict.", 10,
                      "Introduce a central conflict that drives the action.")

        isolated = [cid for cid in characters if network.involvement(cid) == 0]
        if isolated and len(characters) > 1:
            names = [characters[cid].name for cid in isolated]
            self._add(WARNING, "isolation",
                      f"Characters without relationships or conflicts: {', '.join(names)}.", 6,
                      "Tie these characters to a relationship or conflict, or cut them.",
                      isolated)

        for conflict in network.conflicts.values():
            if len(conflict.involved_characters) == 1 and conflict.scope != ConflictScope.INTERNAL:
                self._add(SUGGESTION, "conflicts",
                          f"Conflict '{conflict.name}' involves a single character.", 4,
                          "Give the conflict an opposing character or make it explicitly internal.",
                          [conflict.id])
            if conflict.strength <= WEAK_CONFLICT_STRENGTH:
                self._add(SUGGESTION, "conflicts",
                          f"Conflict '{conflict.name}' is weak (strength {conflict.strength}).", 3,
                          "Raise the stakes or merge it into a stronger conflict.",
                          [conflict.id])

        metrics = station4.efficiency_metrics
        if characters and metrics.dramatic_balance.gini_coefficient >= IMBALANCE_GINI:
            self._add(WARNING, "balance",
                      f"Dramatic involvement is unbalanced (Gini {metrics.dramatic_balance.gini_coefficient}).", 6,
                      "Distribute dramatic weight across more characters.")
        if len(characters) >= 3 and metrics.narrative_density < LOW_DENSITY:
            self._add(WARNING, "density",
                      f"The relationship network is sparse (density {metrics.narrative_density}).", 5,
                      "Add relationships between characters that share scenes or goals.")
        redundancy = metrics.redundancy_metrics
        if redundancy.redundant_relationships or redundancy.redundant_conflicts:
            self._add(SUGGESTION, "redundancy",
                      f"{redundancy.redundant_relationships} redundant relationships and "
                      f"{redundancy.redundant_conflicts} redundant conflicts.", 4,
                      "Merge duplicated relationships and conflicts.")

        if not station5.symbolic_analysis_results.key_symbols:
            self._add(SUGGESTION, "symbolism", "No recurring symbols were identified.", 3,
                      "Introduce a recurring image or object that carries the theme.")
        return list(self._issues)


def build_report(issues: List[DiagnosticIssue]) -> DiagnosticsReport:
    buckets: Dict[str, List[DiagnosticIssue]] = {CRITICAL: [], WARNING: [], SUGGESTION: []}
    for issue in issues:
        buckets.setdefault(issue.bucket, []).append(issue)
    penalty = sum(BUCKET_PENALTY.get(issue.bucket, 0) for issue in issues)
    return DiagnosticsReport(
        overall_health_score=float(max(0, 100 - penalty)),
        critical_issues=buckets[CRITICAL],
        warnings=buckets[WARNING],
        suggestions=buckets[SUGGESTION],
        total_issues_found=len(issues),
    )


def build_treatment_plan(issues: List[DiagnosticIssue], health_score: float) -> TreatmentPlan:
    ordered = sorted(issues, key=lambda issue: (BUCKET_RANK.get(issue.bucket, 3), -issue.severity))
    steps = [
        TreatmentStep(
            priority=index,
            issue_id=issue.id,
            bucket=issue.bucket,
            severity=issue.severity,
            action=issue.suggested_fix,
        )
        for index, issue in enumerate(ordered, start=1)
    ]
    recoverable = sum(BUCKET_PENALTY.get(issue.bucket, 0) for issue in issues)
    critical = sum(1 for issue in issues if issue.bucket == CRITICAL)
    if critical >= 2:
        complexity = "high"
    elif critical == 1 or len(issues) > 5:
        complexity = "medium"
    else:
        complexity = "low"
    return TreatmentPlan(
        prioritized_recommendations=steps,
        estimated_improvement=float(min(recoverable, 100 - health_score)),
        implementation_complexity=complexity,
    )


class DiagnosticsStage(BaseStage[Station6Input, Station6Output]):
    """Station 6: diagnostics and treatment plan."""

    def __init__(self, client, config: Optional[StageConfig] = None):
        super().__init__(
            config or StageConfig(
                stage_number=6,
                name="Station 6: Diagnostics and Treatment",
                input_validator=lambda data: data.station3_output is not None,
            ),
            client,
        )
        self.rules = NetworkDiagnostics()

    async def process(self, stage_input: Station6Input) -> StageOutcome:
        network = stage_input.station3_output.conflict_network
        issues = self.rules.run(network, stage_input.station4_output, stage_input.station5_output)

        model_issues, structured = await self.collect_model_issues(stage_input, len(issues))
        issues.extend(model_issues)

        report = build_report(issues)
        plan = build_treatment_plan(issues, report.overall_health_score)
        logger.info(
            f"Diagnostics found {report.total_issues_found} issues "
            f"(health {report.overall_health_score})"
        )
        return Ok(Station6Output(
            diagnostics_report=report,
            treatment_plan=plan,
            metadata=StageMetadata(status=StageStatus.SUCCESS if structured else StageStatus.PARTIAL),
        ))

    async def collect_model_issues(
        self, stage_input: Station6Input, offset: int
    ) -> Tuple[List[DiagnosticIssue], bool]:
        network = stage_input.station3_output.conflict_network
        metrics = stage_input.station4_output.efficiency_metrics
        language = stage_input.language
        prompt = (
            "Diagnose dramaturgical weaknesses of this drama beyond its network statistics.\n"
            f"Network: {network.summary()}\n"
            f"Efficiency score: {metrics.overall_efficiency_score} ({metrics.overall_rating})\n"
            f"{language_instruction(language)}\n"
            'Return JSON: {"critical_issues": [{"description": "...", "severity": 1-10, '
            '"suggested_fix": "..."}], "warnings": [...], "suggestions": [...]}'
        )
        response = await self.generate(GenerationRequest(
            prompt=prompt,
            context=safe_sub(stage_input.full_text, TEXT_LIMIT_BRIEF),
            system_instruction="You are a script doctor. Answer only with the JSON structure requested.",
        ))
        if not (isinstance(response.content, Structured) and isinstance(response.content.data, dict)):
            return [], False

        data = response.content.data
        placeholder = undetermined(language)
        issues = []
        for key, bucket in (("critical_issues", CRITICAL), ("warnings", WARNING), ("suggestions", SUGGESTION)):
            items = data.get(key)
            for item in items if isinstance(items, list) else []:
                if not isinstance(item, dict) or not item.get("description"):
                    continue
                issues.append(DiagnosticIssue(
                    id=f"issue_{offset + len(issues) + 1}",
                    bucket=bucket,
                    category="dramaturgy",
                    description=text_or_placeholder(item.get("description"), placeholder),
                    severity=clamp_strength(item.get("severity")),
                    suggested_fix=text_or_placeholder(item.get("suggested_fix"), placeholder),
                    source="model",
                ))
        return issues, True

    def extract_required_data(self, stage_input: Station6Input) -> Dict[str, Any]:
        return {
            "network": stage_input.station3_output.conflict_network.summary(),
            "efficiency_rating": stage_input.station4_output.efficiency_metrics.overall_rating,
        }

    def get_error_fallback(self) -> Station6Output:
        return Station6Output(
            diagnostics_report=DiagnosticsReport(overall_health_score=0.0),
            metadata=StageMetadata(status=StageStatus.FAILED),
        )
