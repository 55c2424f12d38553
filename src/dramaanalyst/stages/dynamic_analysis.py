"""
Station 5: dynamic, symbolic and stylistic analysis.

Derives an event timeline, evolution and stability metrics and per-character
development from the network's snapshot history, plans an episodic
structure, and asks the model for symbolic and stylistic commentary.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field

from ..models import CamelModel, ConflictPhase, StageMetadata, StageStatus
from ..network import ConflictNetwork, NetworkSnapshot
from ..utils.json_extraction import Structured
from ..utils.llm import GenerationRequest, GenerationResponse
from ..utils.llm_constants import TEXT_LIMIT_BRIEF
from ..utils.text import safe_sub, string_list, text_or_placeholder, undetermined
from .base import BaseStage, Ok, StageConfig, StageOutcome, language_instruction
from .efficiency_metrics import Station4Output
from .network_builder import Station3Output

logger = logging.getLogger(__name__)

DYNAMIC_SNAPSHOT = "Network state before dynamic analysis"

# Episodic planning
MIN_EPISODES = 6
MAX_EPISODES = 12
EPISODE_RUNTIME_MINUTES = 45
HIGH_IMPACT_THRESHOLD = 8


@dataclass
class Station5Input:
    station3_output: Station3Output
    station4_output: Station4Output
    full_text: str
    language: str = "ar"


class TimelineEvent(CamelModel):
    timestamp: str
    event_type: str
    description: str
    characters: List[str] = Field(default_factory=list)


class EvolutionMetrics(CamelModel):
    snapshots_analyzed: int
    growth_rate: float
    critical_transition_points: List[str] = Field(default_factory=list)


class StabilityMetrics(CamelModel):
    structural_stability: float
    relationship_volatility: float
    conflict_intensity: float


class CharacterDevelopment(CamelModel):
    name: str
    involvement: int
    conflict_phases: List[str] = Field(default_factory=list)
    development_stage: str
    potential_arc: str = ""


class DynamicAnalysisResults(CamelModel):
    event_timeline: List[TimelineEvent] = Field(default_factory=list)
    network_evolution_analysis: EvolutionMetrics
    stability_metrics: StabilityMetrics
    character_development_tracking: Dict[str, CharacterDevelopment] = Field(default_factory=dict)


class Episode(CamelModel):
    number: int
    title: str
    focus_conflict: Optional[str] = None
    featured_characters: List[str] = Field(default_factory=list)
    runtime_minutes: int = EPISODE_RUNTIME_MINUTES


class EpisodicIntegration(CamelModel):
    seasons: int
    episodes_per_season: int
    total_runtime_minutes: int
    episodes: List[Episode] = Field(default_factory=list)
    balance_report: Dict[str, int] = Field(default_factory=dict)


class SymbolicAnalysis(CamelModel):
    key_symbols: List[str] = Field(default_factory=list)
    recurring_motifs: List[str] = Field(default_factory=list)
    central_themes_hinted: List[str] = Field(default_factory=list)
    interpretation: str = ""


class StylisticAnalysis(CamelModel):
    tone_assessment: str
    pacing_assessment: str
    language_register: str
    consistency_notes: str = ""


class Station5Output(CamelModel):
    dynamic_analysis_results: DynamicAnalysisResults
    episodic_integration_results: EpisodicIntegration
    symbolic_analysis_results: SymbolicAnalysis = Field(default_factory=SymbolicAnalysis)
    stylistic_analysis_results: StylisticAnalysis
    metadata: StageMetadata = Field(default_factory=StageMetadata)


def _element_count(snapshot: NetworkSnapshot) -> int:
    return len(snapshot.characters) + len(snapshot.relationships) + len(snapshot.conflicts)


def _state_signature(snapshot: NetworkSnapshot) -> set:
    signature = set()
    for rid, rel in snapshot.relationships.items():
        signature.add(("rel", rid, rel.strength, rel.nature))
    for cid, conflict in snapshot.conflicts.items():
        signature.add(("conflict", cid, conflict.phase, conflict.strength))
    signature.update(("char", cid) for cid in snapshot.characters)
    return signature


def build_event_timeline(network: ConflictNetwork) -> List[TimelineEvent]:
    """Snapshots, conflict onsets and pivot points as a single event list."""
    events = [
        TimelineEvent(
            timestamp=snapshot.timestamp.isoformat(),
            event_type="snapshot",
            description=snapshot.description,
        )
        for snapshot in network.snapshots
    ]
    for conflict in network.conflicts.values():
        onset = conflict.timestamps[0].isoformat() if conflict.timestamps else ""
        events.append(TimelineEvent(
            timestamp=onset,
            event_type=f"conflict_{conflict.phase.value}",
            description=conflict.name,
            characters=list(conflict.involved_characters),
        ))
        for point in conflict.pivot_points:
            events.append(TimelineEvent(
                timestamp=point.timestamp,
                event_type="pivot_point",
                description=point.description,
                characters=list(conflict.involved_characters),
            ))
    return events


def evolution_metrics(network: ConflictNetwork) -> EvolutionMetrics:
    snapshots = network.snapshots
    growth = 0.0
    if len(snapshots) > 1:
        growth = (_element_count(snapshots[-1]) - _element_count(snapshots[0])) / (len(snapshots) - 1)

    transitions = [
        f"{snapshots[i].description} -> {snapshots[i + 1].description}"
        for i in range(len(snapshots) - 1)
        if _state_signature(snapshots[i]) != _state_signature(snapshots[i + 1])
    ]
    for conflict in network.conflicts.values():
        if ConflictPhase.ESCALATING <= conflict.phase <= ConflictPhase.CLIMAX:
            transitions.append(f"{conflict.name} ({conflict.phase.value})")
        transitions.extend(
            point.description for point in conflict.pivot_points
            if point.impact >= HIGH_IMPACT_THRESHOLD
        )
    return EvolutionMetrics(
        snapshots_analyzed=len(snapshots),
        growth_rate=round(growth, 4),
        critical_transition_points=transitions,
    )


def stability_metrics(network: ConflictNetwork) -> StabilityMetrics:
    snapshots = network.snapshots
    changes = []
    for earlier, later in zip(snapshots, snapshots[1:]):
        before, after = _state_signature(earlier), _state_signature(later)
        union = before | after
        changes.append(len(before ^ after) / len(union) if union else 0.0)
    structural = 1.0 - (sum(changes) / len(changes)) if changes else 1.0

    volatility = 0.0
    if len(snapshots) > 1:
        first, last = snapshots[0].relationships, snapshots[-1].relationships
        common = [rid for rid in first if rid in last]
        if common:
            moved = sum(1 for rid in common if first[rid].strength != last[rid].strength)
            volatility = moved / len(common)

    conflicts = list(network.conflicts.values())
    intensity = sum(c.strength for c in conflicts) / (10 * len(conflicts)) if conflicts else 0.0
    return StabilityMetrics(
        structural_stability=round(structural, 4),
        relationship_volatility=round(volatility, 4),
        conflict_intensity=round(intensity, 4),
    )


def _development_stage(phases: List[ConflictPhase]) -> str:
    if not phases:
        return "static"
    furthest = max(phases)
    if furthest >= ConflictPhase.RESOLUTION:
        return "resolved"
    if furthest >= ConflictPhase.ESCALATING:
        return "transforming"
    return "emerging"


def character_development(network: ConflictNetwork) -> Dict[str, CharacterDevelopment]:
    tracking = {}
    for cid, character in network.characters.items():
        phases = [c.phase for c in network.conflicts_of(cid)]
        tracking[cid] = CharacterDevelopment(
            name=character.name,
            involvement=network.involvement(cid),
            conflict_phases=[phase.value for phase in phases],
            development_stage=_development_stage(phases),
            potential_arc=character.profile.potential_arc if character.profile else "",
        )
    return tracking


def plan_episodes(network: ConflictNetwork) -> EpisodicIntegration:
    """Deterministic single-season plan that rotates conflicts across episodes."""
    conflicts = list(network.conflicts.values())
    characters = network.characters
    count = max(MIN_EPISODES, min(MAX_EPISODES, 2 * len(conflicts) + len(characters)))

    episodes = []
    appearances = {character.name: 0 for character in characters.values()}
    for number in range(1, count + 1):
        focus = conflicts[(number - 1) % len(conflicts)] if conflicts else None
        featured = [characters[cid].name for cid in focus.involved_characters] if focus else []
        if not featured and characters:
            featured = [list(characters.values())[(number - 1) % len(characters)].name]
        for name in featured:
            appearances[name] += 1
        episodes.append(Episode(
            number=number,
            title=f"Episode {number}" + (f": {focus.name}" if focus else ""),
            focus_conflict=focus.id if focus else None,
            featured_characters=featured,
        ))

    return EpisodicIntegration(
        seasons=1,
        episodes_per_season=count,
        total_runtime_minutes=count * EPISODE_RUNTIME_MINUTES,
        episodes=episodes,
        balance_report=appearances,
    )


def _dict_payload(response: GenerationResponse) -> Dict[str, Any]:
    if isinstance(response.content, Structured) and isinstance(response.content.data, dict):
        return response.content.data
    return {}


class DynamicAnalysisStage(BaseStage[Station5Input, Station5Output]):
    """Station 5: dynamics, episodes, symbols and style."""

    def __init__(self, client, config: Optional[StageConfig] = None):
        super().__init__(
            config or StageConfig(
                stage_number=5,
                name="Station 5: Dynamic, Symbolic and Stylistic Analysis",
                input_validator=lambda data: data.station3_output is not None and data.station4_output is not None,
            ),
            client,
        )

    async def process(self, stage_input: Station5Input) -> StageOutcome:
        network = stage_input.station3_output.conflict_network
        network.create_snapshot(DYNAMIC_SNAPSHOT)

        dynamic = DynamicAnalysisResults(
            event_timeline=build_event_timeline(network),
            network_evolution_analysis=evolution_metrics(network),
            stability_metrics=stability_metrics(network),
            character_development_tracking=character_development(network),
        )
        episodes = plan_episodes(network)

        excerpt = safe_sub(stage_input.full_text, TEXT_LIMIT_BRIEF)
        (symbolic, symbolic_ok), (stylistic, stylistic_ok) = await asyncio.gather(
            self.analyze_symbolism(excerpt, stage_input.language),
            self.analyze_style(excerpt, stage_input.language),
        )

        complete = symbolic_ok and stylistic_ok
        return Ok(Station5Output(
            dynamic_analysis_results=dynamic,
            episodic_integration_results=episodes,
            symbolic_analysis_results=symbolic,
            stylistic_analysis_results=stylistic,
            metadata=StageMetadata(status=StageStatus.SUCCESS if complete else StageStatus.PARTIAL),
        ))

    async def analyze_symbolism(self, excerpt: str, language: str) -> Tuple[SymbolicAnalysis, bool]:
        response = await self.generate(GenerationRequest(
            prompt=(
                "Identify the key symbols, recurring motifs and hinted central themes of the text.\n"
                f"{language_instruction(language)}\n"
                'Return JSON: {"key_symbols": ["..."], "recurring_motifs": ["..."], '
                '"central_themes_hinted": ["..."], "interpretation": "..."}'
            ),
            context=excerpt,
            system_instruction="You are a literary critic. Answer only with the JSON structure requested.",
        ))
        data = _dict_payload(response)
        if not data:
            return SymbolicAnalysis(
                interpretation=text_or_placeholder(response.text, undetermined(language)),
            ), False
        return SymbolicAnalysis(
            key_symbols=string_list(data.get("key_symbols")),
            recurring_motifs=string_list(data.get("recurring_motifs")),
            central_themes_hinted=string_list(data.get("central_themes_hinted")),
            interpretation=text_or_placeholder(data.get("interpretation"), undetermined(language)),
        ), True

    async def analyze_style(self, excerpt: str, language: str) -> Tuple[StylisticAnalysis, bool]:
        response = await self.generate(GenerationRequest(
            prompt=(
                "Assess the style of the text: tone, pacing, language register and consistency.\n"
                f"{language_instruction(language)}\n"
                'Return JSON: {"tone_assessment": "...", "pacing_assessment": "...", '
                '"language_register": "...", "consistency_notes": "..."}'
            ),
            context=excerpt,
            system_instruction="You are a literary critic. Answer only with the JSON structure requested.",
        ))
        data = _dict_payload(response)
        placeholder = undetermined(language)
        if not data:
            return StylisticAnalysis(
                tone_assessment=text_or_placeholder(response.text, placeholder),
                pacing_assessment=placeholder,
                language_register=placeholder,
            ), False
        return StylisticAnalysis(
            tone_assessment=text_or_placeholder(data.get("tone_assessment"), placeholder),
            pacing_assessment=text_or_placeholder(data.get("pacing_assessment"), placeholder),
            language_register=text_or_placeholder(data.get("language_register"), placeholder),
            consistency_notes=text_or_placeholder(data.get("consistency_notes"), ""),
        ), True

    def extract_required_data(self, stage_input: Station5Input) -> Dict[str, Any]:
        network = stage_input.station3_output.conflict_network
        return {
            "network": network.summary(),
            "efficiency_score": stage_input.station4_output.efficiency_metrics.overall_efficiency_score,
        }

    def get_error_fallback(self) -> Station5Output:
        return Station5Output(
            dynamic_analysis_results=DynamicAnalysisResults(
                network_evolution_analysis=EvolutionMetrics(snapshots_analyzed=0, growth_rate=0.0),
                stability_metrics=StabilityMetrics(
                    structural_stability=0.0,
                    relationship_volatility=0.0,
                    conflict_intensity=0.0,
                ),
            ),
            episodic_integration_results=EpisodicIntegration(
                seasons=0,
                episodes_per_season=0,
                total_runtime_minutes=0,
            ),
            stylistic_analysis_results=StylisticAnalysis(
                tone_assessment="N/A",
                pacing_assessment="N/A",
                language_register="N/A",
            ),
            metadata=StageMetadata(status=StageStatus.FAILED),
        )
