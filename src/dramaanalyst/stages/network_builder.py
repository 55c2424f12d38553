"""
Station 3: conflict network builder.

Creates characters from the station-1 names, infers relationships and
conflicts between them, assembles the ConflictNetwork and records its
initial snapshot.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ConfigDict, Field, field_serializer

from ..models import (
    CamelModel,
    Character,
    CharacterProfile,
    Conflict,
    ConflictPhase,
    ConflictScope,
    ConflictSubject,
    PivotPoint,
    Relationship,
    RelationshipDirection,
    RelationshipNature,
    RelationshipType,
    StageMetadata,
    StageStatus,
    clamp_strength,
    parse_enum,
    utc_now,
)
from ..network import ConflictNetwork
from ..utils.json_extraction import Structured
from ..utils.llm import GenerationRequest
from ..utils.llm_constants import TEXT_LIMIT_SMALL
from ..utils.text import safe_sub, string_list, text_or_placeholder, to_text, undetermined
from .base import BaseStage, Ok, StageConfig, StageOutcome, language_instruction
from .conceptual_analysis import Station2Output
from .text_analysis import Station1Output

logger = logging.getLogger(__name__)

INITIAL_SNAPSHOT = "Initial network state after AI inference"

SYSTEM_INSTRUCTION = (
    "You are a dramaturg mapping the relationship and conflict network of a drama. "
    "Answer only with a JSON array."
)


@dataclass
class Station3Input:
    station1_output: Station1Output
    station2_output: Station2Output
    full_text: str
    project_name: str = ""
    language: str = "ar"


class NetworkSummary(CamelModel):
    characters_count: int
    relationships_count: int
    conflicts_count: int
    snapshots_count: int


class Station3Output(CamelModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    conflict_network: ConflictNetwork
    network_summary: NetworkSummary
    metadata: StageMetadata = Field(default_factory=StageMetadata)

    @field_serializer("conflict_network")
    def _serialize_network(self, network: ConflictNetwork) -> Dict[str, Any]:
        return network.to_dict()


def _character_roster(characters: List[Character]) -> str:
    return ", ".join(f"'{c.name}' (ID: {c.id})" for c in characters)


def _context_summary(station1: Station1Output, station2: Station2Output, full_text: str) -> str:
    return (
        f"Story statement: {station2.story_statement}\n"
        f"Hybrid genre: {station2.hybrid_genre}\n"
        f"Relationships overview: {station1.relationship_analysis.summary or 'N/A'}\n\n"
        f"Text excerpt:\n{safe_sub(full_text, TEXT_LIMIT_SMALL)}"
    )


class RelationshipInferenceEngine:
    """Infers typed relationships between known characters."""

    def __init__(self, stage: BaseStage):
        self.stage = stage

    async def infer(
        self, network: ConflictNetwork, context: str, language: str
    ) -> Tuple[List[Relationship], bool]:
        characters = list(network.characters.values())
        if len(characters) < 2:
            return [], True

        prompt = (
            "Infer the main relationships between these characters: "
            f"{_character_roster(characters)}.\n"
            f"{language_instruction(language)}\n"
            "Return a JSON array; each item: "
            '{"character1_name_or_id": "...", "character2_name_or_id": "...", '
            '"relationship_type": "family|romantic|friendship|professional|rivalry|mentorship|other", '
            '"relationship_nature": "supportive|conflictual|ambiguous|neutral", '
            '"direction": "unidirectional|bidirectional", "strength": 1-10, '
            '"description_rationale": "...", "triggers": ["..."]}'
        )
        response = await self.stage.generate(GenerationRequest(
            prompt=prompt,
            context=context,
            system_instruction=SYSTEM_INSTRUCTION,
        ))

        if isinstance(response.content, Structured):
            return self.convert(response.content.data, network), True
        return self.placeholder(response.content.raw_text, characters, language), False

    def convert(self, data: Any, network: ConflictNetwork) -> List[Relationship]:
        """Map every AI-returned item with two known, distinct characters to a Relationship."""
        if isinstance(data, dict):
            data = data.get("relationships", [data])
        relationships = []
        for item in data if isinstance(data, list) else []:
            if not isinstance(item, dict):
                continue
            source = network.find_character(item.get("character1_name_or_id"))
            target = network.find_character(item.get("character2_name_or_id"))
            if source is None or target is None or source.id == target.id:
                logger.debug(f"Skipping relationship item with unresolved characters: {item}")
                continue
            relationships.append(Relationship(
                id=f"rel_{len(relationships) + 1}",
                source=source.id,
                target=target.id,
                type=parse_enum(RelationshipType, item.get("relationship_type"), RelationshipType.OTHER),
                nature=parse_enum(RelationshipNature, item.get("relationship_nature"), RelationshipNature.NEUTRAL),
                direction=parse_enum(
                    RelationshipDirection, item.get("direction"), RelationshipDirection.BIDIRECTIONAL
                ),
                strength=clamp_strength(item.get("strength")),
                description=to_text(item.get("description_rationale")).strip(),
                triggers=string_list(item.get("triggers")),
                metadata={"source": "ai_inference", "inference_timestamp": utc_now().isoformat()},
            ))
        return relationships

    @staticmethod
    def placeholder(raw_text: str, characters: List[Character], language: str) -> List[Relationship]:
        """Single descriptive relationship carrying the unstructured answer."""
        return [Relationship(
            id="rel_1",
            source=characters[0].id,
            target=characters[1].id,
            description=text_or_placeholder(raw_text, undetermined(language)),
            metadata={"source": "unstructured_inference"},
        )]


class ConflictInferenceEngine:
    """Infers typed conflicts over known characters and relationships."""

    def __init__(self, stage: BaseStage):
        self.stage = stage

    async def infer(
        self, network: ConflictNetwork, context: str, language: str
    ) -> Tuple[List[Conflict], bool]:
        characters = list(network.characters.values())
        if not characters:
            return [], True

        relationships = "; ".join(
            f"{rel.id}: {rel.source} -> {rel.target} ({rel.type.value})"
            for rel in network.relationships.values()
        ) or "none"
        prompt = (
            f"Infer the main conflicts involving these characters: {_character_roster(characters)}.\n"
            f"Known relationships: {relationships}\n"
            f"{language_instruction(language)}\n"
            "Return a JSON array; each item: "
            '{"conflict_name": "...", "involved_character_names_or_ids": ["..."], '
            '"subject": "power|love|revenge|ideology|survival|resources|identity|other", '
            '"scope": "internal|personal|group|societal|universal", '
            '"initial_phase": "latent|emerging|escalating|climax|deescalating|resolution|aftermath", '
            '"strength": 1-10, "description_rationale": "...", '
            '"related_relationships": ["rel_1"], '
            '"pivot_points": [{"timestamp": "...", "description": "...", "impact": 1-10}]}'
        )
        response = await self.stage.generate(GenerationRequest(
            prompt=prompt,
            context=context,
            system_instruction=SYSTEM_INSTRUCTION,
        ))

        if isinstance(response.content, Structured):
            return self.convert(response.content.data, network, language), True
        return self.placeholder(response.content.raw_text, characters, language), False

    def convert(self, data: Any, network: ConflictNetwork, language: str) -> List[Conflict]:
        """Map every AI-returned item with at least one known character to a Conflict."""
        if isinstance(data, dict):
            data = data.get("conflicts", [data])
        conflicts = []
        for item in data if isinstance(data, list) else []:
            if not isinstance(item, dict):
                continue
            involved = []
            for ref in string_list(item.get("involved_character_names_or_ids")):
                character = network.find_character(ref)
                if character is not None and character.id not in involved:
                    involved.append(character.id)
            if not involved:
                logger.debug(f"Skipping conflict item with no known characters: {item}")
                continue
            index = len(conflicts) + 1
            conflicts.append(Conflict(
                id=f"conflict_{index}",
                name=text_or_placeholder(item.get("conflict_name"), f"Conflict {index}"),
                description=to_text(item.get("description_rationale")).strip(),
                involved_characters=involved,
                subject=parse_enum(ConflictSubject, item.get("subject"), ConflictSubject.OTHER),
                scope=parse_enum(ConflictScope, item.get("scope"), ConflictScope.PERSONAL),
                phase=parse_enum(ConflictPhase, item.get("initial_phase"), ConflictPhase.EMERGING),
                strength=clamp_strength(item.get("strength")),
                related_relationships=[
                    rid for rid in string_list(item.get("related_relationships"))
                    if rid in network.relationships
                ],
                pivot_points=[
                    PivotPoint(
                        timestamp=to_text(point.get("timestamp")),
                        description=text_or_placeholder(point.get("description"), undetermined(language)),
                        impact=clamp_strength(point.get("impact")),
                    )
                    for point in item.get("pivot_points") or []
                    if isinstance(point, dict)
                ],
                timestamps=[utc_now()],
                metadata={"source": "ai_inference", "inference_timestamp": utc_now().isoformat()},
            ))
        return conflicts

    @staticmethod
    def placeholder(raw_text: str, characters: List[Character], language: str) -> List[Conflict]:
        """Single descriptive conflict carrying the unstructured answer."""
        return [Conflict(
            id="conflict_1",
            name=undetermined(language),
            description=text_or_placeholder(raw_text, undetermined(language)),
            involved_characters=[c.id for c in characters[:2]],
            timestamps=[utc_now()],
            metadata={"source": "unstructured_inference"},
        )]


class NetworkBuilderStage(BaseStage[Station3Input, Station3Output]):
    """Station 3: build the conflict network."""

    def __init__(self, client, config: Optional[StageConfig] = None):
        super().__init__(
            config or StageConfig(
                stage_number=3,
                name="Station 3: Network Builder",
                input_validator=lambda data: data.station1_output is not None and data.station2_output is not None,
            ),
            client,
        )
        self.relationship_engine = RelationshipInferenceEngine(self)
        self.conflict_engine = ConflictInferenceEngine(self)

    async def process(self, stage_input: Station3Input) -> StageOutcome:
        station1 = stage_input.station1_output
        language = stage_input.language
        network = ConflictNetwork(name=f"{stage_input.project_name or 'drama'} network")

        for index, name in enumerate(station1.major_characters):
            analysis = station1.character_analysis.get(name)
            profile = None
            if analysis is not None:
                profile = CharacterProfile(
                    personality_traits=analysis.personality_traits,
                    motivations_goals=analysis.motivations_goals,
                    potential_arc=analysis.potential_arc,
                )
            network.add_character(Character(
                id=f"char_{index + 1}",
                name=name,
                description=analysis.narrative_function if analysis else "",
                profile=profile,
                metadata={"source": "station1"},
            ))

        context = _context_summary(station1, stage_input.station2_output, stage_input.full_text)

        relationships, relationships_ok = await self.relationship_engine.infer(network, context, language)
        for relationship in relationships:
            network.add_relationship(relationship)

        conflicts, conflicts_ok = await self.conflict_engine.infer(network, context, language)
        for conflict in conflicts:
            network.add_conflict(conflict)

        network.create_snapshot(INITIAL_SNAPSHOT)
        summary = network.summary()
        logger.info(
            f"Built network with {summary['characters_count']} characters, "
            f"{summary['relationships_count']} relationships, {summary['conflicts_count']} conflicts"
        )

        complete = relationships_ok and conflicts_ok
        return Ok(Station3Output(
            conflict_network=network,
            network_summary=NetworkSummary(**summary),
            metadata=StageMetadata(status=StageStatus.SUCCESS if complete else StageStatus.PARTIAL),
        ))

    def extract_required_data(self, stage_input: Station3Input) -> Dict[str, Any]:
        return {
            "characters": stage_input.station1_output.major_characters,
            "story_statement": stage_input.station2_output.story_statement[:120],
        }

    def get_error_fallback(self) -> Station3Output:
        return Station3Output(
            conflict_network=ConflictNetwork(name="fallback network"),
            network_summary=NetworkSummary(
                characters_count=0,
                relationships_count=0,
                conflicts_count=0,
                snapshots_count=0,
            ),
            metadata=StageMetadata(status=StageStatus.FAILED),
        )
