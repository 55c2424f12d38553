"""
Station 4: efficiency metrics.

Computes graph-derived efficiency scores from the conflict network and asks
the model for a prioritized set of recommendations.
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field

from ..models import CamelModel, StageMetadata, StageStatus
from ..network import ConflictNetwork
from ..utils.json_extraction import Structured
from ..utils.llm import GenerationRequest
from ..utils.text import string_list
from .base import BaseStage, Ok, StageConfig, StageOutcome, language_instruction
from .network_builder import Station3Output

logger = logging.getLogger(__name__)

# Weights of the overall efficiency score
SCORE_WEIGHTS = {
    "cohesion": 0.25,
    "balance": 0.20,
    "efficiency": 0.30,
    "density": 0.15,
    "redundancy": 0.10,
}

# Minimum overall score per rating, best first
RATING_THRESHOLDS = [
    (85.0, "Excellent"),
    (70.0, "Good"),
    (55.0, "Fair"),
    (40.0, "Poor"),
]
LOWEST_RATING = "Critical"


@dataclass
class Station4Input:
    station3_output: Station3Output
    language: str = "ar"


class DramaticBalance(CamelModel):
    balance_score: float
    gini_coefficient: float
    character_involvement: Dict[str, int] = Field(default_factory=dict)


class NarrativeEfficiency(CamelModel):
    character_efficiency: float
    relationship_efficiency: float
    conflict_efficiency: float


class RedundancyMetrics(CamelModel):
    redundant_relationships: int
    redundant_conflicts: int
    redundancy_ratio: float


class EfficiencyMetrics(CamelModel):
    overall_efficiency_score: float
    overall_rating: str
    conflict_cohesion: float
    dramatic_balance: DramaticBalance
    narrative_efficiency: NarrativeEfficiency
    narrative_density: float
    redundancy_metrics: RedundancyMetrics


class Recommendations(CamelModel):
    priority_actions: List[str] = Field(default_factory=list)
    quick_fixes: List[str] = Field(default_factory=list)
    structural_revisions: List[str] = Field(default_factory=list)


class Station4Output(CamelModel):
    efficiency_metrics: EfficiencyMetrics
    recommendations: Recommendations = Field(default_factory=Recommendations)
    metadata: StageMetadata = Field(default_factory=StageMetadata)


def gini_coefficient(values: List[float]) -> float:
    """
    Gini coefficient of a distribution.

    Returns 1.0 (maximal inequality) when the distribution is empty or sums
    to zero.
    """
    total = sum(values)
    if not values or total <= 0:
        return 1.0
    n = len(values)
    mean = total / n
    diff_sum = sum(abs(a - b) for a in values for b in values)
    return diff_sum / (2 * n * n * mean)


def rating_for(score: float) -> str:
    for threshold, rating in RATING_THRESHOLDS:
        if score >= threshold:
            return rating
    return LOWEST_RATING


class EfficiencyAnalyzer:
    """Pure graph metrics over a ConflictNetwork."""

    def conflict_cohesion(self, network: ConflictNetwork) -> float:
        """Average share of participant pairs in a conflict that are directly related."""
        linked = {
            frozenset((rel.source, rel.target)) for rel in network.relationships.values()
        }
        scores = []
        for conflict in network.conflicts.values():
            pairs = list(itertools.combinations(conflict.involved_characters, 2))
            if not pairs:
                continue
            scores.append(sum(1 for pair in pairs if frozenset(pair) in linked) / len(pairs))
        return sum(scores) / len(scores) if scores else 0.0

    def dramatic_balance(self, network: ConflictNetwork) -> DramaticBalance:
        involvement = {cid: network.involvement(cid) for cid in network.characters}
        gini = gini_coefficient(list(involvement.values()))
        return DramaticBalance(
            balance_score=round(1.0 - gini, 4),
            gini_coefficient=round(gini, 4),
            character_involvement=involvement,
        )

    def narrative_efficiency(self, network: ConflictNetwork) -> NarrativeEfficiency:
        characters = list(network.characters)
        relationships = list(network.relationships.values())
        conflicts = list(network.conflicts.values())

        active = [cid for cid in characters if network.involvement(cid) > 0]
        character_efficiency = len(active) / len(characters) if characters else 0.0

        referenced = {rid for c in conflicts for rid in c.related_relationships}
        shared = [set(c.involved_characters) for c in conflicts]
        useful = [
            rel for rel in relationships
            if rel.id in referenced or any({rel.source, rel.target} <= group for group in shared)
        ]
        relationship_efficiency = len(useful) / len(relationships) if relationships else 0.0

        conflict_efficiency = (
            sum(c.strength for c in conflicts) / (10 * len(conflicts)) if conflicts else 0.0
        )
        return NarrativeEfficiency(
            character_efficiency=round(character_efficiency, 4),
            relationship_efficiency=round(relationship_efficiency, 4),
            conflict_efficiency=round(conflict_efficiency, 4),
        )

    def narrative_density(self, network: ConflictNetwork) -> float:
        """Relationships over the number of possible character pairs."""
        n = len(network.characters)
        possible = n * (n - 1) / 2
        if possible == 0:
            return 0.0
        return round(min(1.0, len(network.relationships) / possible), 4)

    def redundancy(self, network: ConflictNetwork) -> RedundancyMetrics:
        pairs = [frozenset((rel.source, rel.target)) for rel in network.relationships.values()]
        redundant_relationships = len(pairs) - len(set(pairs))
        signatures = [
            (frozenset(c.involved_characters), c.subject) for c in network.conflicts.values()
        ]
        redundant_conflicts = len(signatures) - len(set(signatures))
        total = len(pairs) + len(signatures)
        ratio = (redundant_relationships + redundant_conflicts) / total if total else 0.0
        return RedundancyMetrics(
            redundant_relationships=redundant_relationships,
            redundant_conflicts=redundant_conflicts,
            redundancy_ratio=round(ratio, 4),
        )

    def calculate(self, network: ConflictNetwork) -> EfficiencyMetrics:
        cohesion = self.conflict_cohesion(network)
        balance = self.dramatic_balance(network)
        efficiency = self.narrative_efficiency(network)
        density = self.narrative_density(network)
        redundancy = self.redundancy(network)

        efficiency_mean = (
            efficiency.character_efficiency
            + efficiency.relationship_efficiency
            + efficiency.conflict_efficiency
        ) / 3
        score = 100 * (
            SCORE_WEIGHTS["cohesion"] * cohesion
            + SCORE_WEIGHTS["balance"] * balance.balance_score
            + SCORE_WEIGHTS["efficiency"] * efficiency_mean
            + SCORE_WEIGHTS["density"] * density
            + SCORE_WEIGHTS["redundancy"] * (1 - redundancy.redundancy_ratio)
        )
        if not network.characters:
            score = 0.0
        score = round(max(0.0, min(100.0, score)), 2)

        return EfficiencyMetrics(
            overall_efficiency_score=score,
            overall_rating=rating_for(score),
            conflict_cohesion=round(cohesion, 4),
            dramatic_balance=balance,
            narrative_efficiency=efficiency,
            narrative_density=density,
            redundancy_metrics=redundancy,
        )


class EfficiencyMetricsStage(BaseStage[Station4Input, Station4Output]):
    """Station 4: efficiency metrics and recommendations."""

    def __init__(self, client, config: Optional[StageConfig] = None):
        super().__init__(
            config or StageConfig(
                stage_number=4,
                name="Station 4: Efficiency Metrics",
                input_validator=lambda data: data.station3_output is not None,
            ),
            client,
        )
        self.analyzer = EfficiencyAnalyzer()

    async def process(self, stage_input: Station4Input) -> StageOutcome:
        network = stage_input.station3_output.conflict_network
        metrics = self.analyzer.calculate(network)

        for character_id, count in metrics.dramatic_balance.character_involvement.items():
            network.enrich_character(character_id, involvement=count)

        recommendations, structured = await self.generate_recommendations(
            metrics, stage_input.language
        )
        return Ok(Station4Output(
            efficiency_metrics=metrics,
            recommendations=recommendations,
            metadata=StageMetadata(status=StageStatus.SUCCESS if structured else StageStatus.PARTIAL),
        ))

    async def generate_recommendations(
        self, metrics: EfficiencyMetrics, language: str
    ) -> Tuple[Recommendations, bool]:
        prompt = (
            "Given these efficiency metrics of a drama's conflict network, propose improvements.\n"
            f"Overall score: {metrics.overall_efficiency_score} ({metrics.overall_rating})\n"
            f"Conflict cohesion: {metrics.conflict_cohesion}\n"
            f"Dramatic balance: {metrics.dramatic_balance.balance_score} "
            f"(Gini {metrics.dramatic_balance.gini_coefficient})\n"
            f"Narrative density: {metrics.narrative_density}\n"
            f"Redundancy ratio: {metrics.redundancy_metrics.redundancy_ratio}\n"
            f"{language_instruction(language)}\n"
            'Return JSON: {"priority_actions": ["..."], "quick_fixes": ["..."], '
            '"structural_revisions": ["..."]}'
        )
        response = await self.generate(GenerationRequest(
            prompt=prompt,
            system_instruction="You are a script doctor. Answer only with the JSON structure requested.",
            validator=lambda data: isinstance(data, dict) and "priority_actions" in data,
            allow_partial=True,
        ))

        if isinstance(response.content, Structured) and isinstance(response.content.data, dict):
            data = response.content.data
            return Recommendations(
                priority_actions=string_list(data.get("priority_actions")),
                quick_fixes=string_list(data.get("quick_fixes")),
                structural_revisions=string_list(data.get("structural_revisions")),
            ), True
        return Recommendations(priority_actions=string_list(response.text)), False

    def extract_required_data(self, stage_input: Station4Input) -> Dict[str, Any]:
        return {"network": stage_input.station3_output.conflict_network.summary()}

    def get_error_fallback(self) -> Station4Output:
        return Station4Output(
            efficiency_metrics=EfficiencyMetrics(
                overall_efficiency_score=0.0,
                overall_rating=LOWEST_RATING,
                conflict_cohesion=0.0,
                dramatic_balance=DramaticBalance(balance_score=0.0, gini_coefficient=1.0),
                narrative_efficiency=NarrativeEfficiency(
                    character_efficiency=0.0,
                    relationship_efficiency=0.0,
                    conflict_efficiency=0.0,
                ),
                narrative_density=0.0,
                redundancy_metrics=RedundancyMetrics(
                    redundant_relationships=0,
                    redundant_conflicts=0,
                    redundancy_ratio=0.0,
                ),
            ),
            metadata=StageMetadata(status=StageStatus.FAILED),
        )
