"""
Station 2: conceptual analysis.

Derives story statements, a three-axis narrative map and hybrid-genre
candidates, then builds the elevator pitch, genre-contribution matrix,
stage-by-stage tone table and artistic references on top of them.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field

from ..models import CamelModel, StageMetadata, StageStatus
from ..utils.json_extraction import Structured
from ..utils.llm import GenerationRequest, GenerationResponse
from ..utils.llm_constants import PLACEHOLDER_NA, TEXT_LIMIT_BRIEF, TEXT_LIMIT_MEDIUM
from ..utils.text import safe_sub, string_list, text_or_placeholder, undetermined
from .base import BaseStage, Ok, StageConfig, StageOutcome, language_instruction
from .text_analysis import Station1Output

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are a story consultant building the conceptual frame of a drama. "
    "Answer only with the JSON structure requested."
)

TONE_STAGES = ("opening", "rising_action", "climax", "resolution")


@dataclass
class Station2Input:
    station1_output: Station1Output
    full_text: str
    language: str = "ar"


class MapEvent(CamelModel):
    event: str
    timestamp: str = ""


class MeaningLayer(CamelModel):
    event_reference: str
    symbolic_layer: str


class TemporalDevelopment(CamelModel):
    past_influence: str
    present_choices: str
    future_expectations: str
    hero_arc_connection: str


class ThreeDMap(CamelModel):
    horizontal_events_axis: List[MapEvent] = Field(default_factory=list)
    vertical_meaning_axis: List[MeaningLayer] = Field(default_factory=list)
    temporal_development_axis: TemporalDevelopment


class GenreContribution(CamelModel):
    conflict_contribution: str
    pacing_contribution: str
    visual_composition_contribution: str
    sound_music_contribution: str
    characters_contribution: str


class ToneStage(CamelModel):
    visual_atmosphere: str
    written_pacing: str
    dialogue_structure: str
    sound_indicators: str
    emotional_structure: str


class VisualReference(CamelModel):
    work: str
    artist: str = ""
    reason: str = ""
    scene_application: str = ""


class ArtisticReferences(CamelModel):
    visual_references: List[VisualReference] = Field(default_factory=list)
    music_or_sound_design: str = PLACEHOLDER_NA
    cinematic_strategy: str = PLACEHOLDER_NA


class Station2Output(CamelModel):
    story_statement: str
    story_statements: List[str] = Field(default_factory=list)
    three_d_map: ThreeDMap
    elevator_pitch: str
    hybrid_genre: str
    hybrid_genres: List[str] = Field(default_factory=list)
    genre_contribution_matrix: Dict[str, GenreContribution] = Field(default_factory=dict)
    dynamic_tone: Dict[str, ToneStage] = Field(default_factory=dict)
    artistic_references: ArtisticReferences = Field(default_factory=ArtisticReferences)
    metadata: StageMetadata = Field(default_factory=StageMetadata)


def _dict_payload(response: GenerationResponse) -> Dict[str, Any]:
    if isinstance(response.content, Structured) and isinstance(response.content.data, dict):
        return response.content.data
    return {}


def _dict_items(value: Any) -> List[Dict[str, Any]]:
    return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []


def summarize_station1(output: Station1Output) -> str:
    """Compact text summary of station 1 used as prompt context."""
    lines = ["Major characters: " + (", ".join(output.major_characters) or PLACEHOLDER_NA)]
    for name, analysis in output.character_analysis.items():
        lines.append(f"- {name}: {analysis.narrative_function}; arc: {analysis.potential_arc}")
    style = output.narrative_style_analysis
    lines.append(f"Tone: {style.overall_tone}. Pacing: {style.pacing_analysis}.")
    if output.relationship_analysis.summary:
        lines.append(f"Relationships: {output.relationship_analysis.summary}")
    return "\n".join(lines)


class ConceptualAnalysisStage(BaseStage[Station2Input, Station2Output]):
    """Station 2: story statement, narrative map and genre frame."""

    def __init__(self, client, config: Optional[StageConfig] = None):
        super().__init__(
            config or StageConfig(
                stage_number=2,
                name="Station 2: Conceptual Analysis",
                input_validator=lambda data: data.station1_output is not None and bool(data.full_text),
            ),
            client,
        )

    async def _ask(self, prompt: str, context: str, language: str) -> GenerationResponse:
        return await self.generate(GenerationRequest(
            prompt=f"{prompt}\n{language_instruction(language)}",
            context=context,
            system_instruction=SYSTEM_INSTRUCTION,
        ))

    async def process(self, stage_input: Station2Input) -> StageOutcome:
        language = stage_input.language
        context = (
            summarize_station1(stage_input.station1_output)
            + "\n\nText excerpt:\n"
            + safe_sub(stage_input.full_text, TEXT_LIMIT_MEDIUM)
        )

        (statements, statements_ok), (three_d_map, map_ok), (genres, genres_ok) = await asyncio.gather(
            self.generate_story_statements(context, language),
            self.generate_three_d_map(context, language),
            self.generate_hybrid_genres(context, language),
        )
        placeholder = undetermined(language)
        story_statement = statements[0] if statements else placeholder
        hybrid_genre = genres[0] if genres else placeholder

        (pitch, pitch_ok), (matrix, matrix_ok), (tone, tone_ok), (references, references_ok) = (
            await asyncio.gather(
                self.generate_elevator_pitch(story_statement, context, language),
                self.generate_genre_matrix(hybrid_genre, context, language),
                self.generate_dynamic_tone(hybrid_genre, context, language),
                self.generate_artistic_references(hybrid_genre, context, language),
            )
        )

        complete = all((statements_ok, map_ok, genres_ok, pitch_ok, matrix_ok, tone_ok, references_ok))
        return Ok(Station2Output(
            story_statement=story_statement,
            story_statements=statements,
            three_d_map=three_d_map,
            elevator_pitch=pitch,
            hybrid_genre=hybrid_genre,
            hybrid_genres=genres,
            genre_contribution_matrix=matrix,
            dynamic_tone=tone,
            artistic_references=references,
            metadata=StageMetadata(status=StageStatus.SUCCESS if complete else StageStatus.PARTIAL),
        ))

    async def generate_story_statements(self, context: str, language: str) -> Tuple[List[str], bool]:
        response = await self._ask(
            "Propose up to three candidate story statements, one sentence each, "
            "capturing the core dramatic premise.\n"
            'Return JSON: {"story_statements": ["...", "..."]}',
            context, language,
        )
        data = response.data
        if data is not None:
            statements = string_list(data.get("story_statements") if isinstance(data, dict) else data)
            return statements, bool(statements)
        return string_list(response.text)[:3], False

    async def generate_three_d_map(self, context: str, language: str) -> Tuple[ThreeDMap, bool]:
        response = await self._ask(
            "Build a three-axis narrative map: the horizontal events axis (key events in order), "
            "the vertical meaning axis (symbolic layer of events) and the temporal development axis.\n"
            'Return JSON: {"horizontal_events_axis": [{"event": "...", "timestamp": "..."}], '
            '"vertical_meaning_axis": [{"event_reference": "...", "symbolic_layer": "..."}], '
            '"temporal_development_axis": {"past_influence": "...", "present_choices": "...", '
            '"future_expectations": "...", "hero_arc_connection": "..."}}',
            context, language,
        )
        data = _dict_payload(response)
        placeholder = undetermined(language)
        temporal = data.get("temporal_development_axis")
        temporal = temporal if isinstance(temporal, dict) else {}

        three_d_map = ThreeDMap(
            horizontal_events_axis=[
                MapEvent(
                    event=text_or_placeholder(item.get("event"), placeholder),
                    timestamp=text_or_placeholder(item.get("timestamp"), ""),
                )
                for item in _dict_items(data.get("horizontal_events_axis"))
            ],
            vertical_meaning_axis=[
                MeaningLayer(
                    event_reference=text_or_placeholder(item.get("event_reference"), placeholder),
                    symbolic_layer=text_or_placeholder(item.get("symbolic_layer"), placeholder),
                )
                for item in _dict_items(data.get("vertical_meaning_axis"))
            ],
            temporal_development_axis=TemporalDevelopment(
                past_influence=text_or_placeholder(
                    temporal.get("past_influence") or (None if data else response.text), placeholder
                ),
                present_choices=text_or_placeholder(temporal.get("present_choices"), placeholder),
                future_expectations=text_or_placeholder(temporal.get("future_expectations"), placeholder),
                hero_arc_connection=text_or_placeholder(temporal.get("hero_arc_connection"), placeholder),
            ),
        )
        return three_d_map, bool(data)

    async def generate_hybrid_genres(self, context: str, language: str) -> Tuple[List[str], bool]:
        response = await self._ask(
            "Propose up to three hybrid-genre labels that describe this drama.\n"
            'Return JSON: {"hybrid_genres": ["...", "..."]}',
            context, language,
        )
        data = response.data
        if data is not None:
            genres = string_list(data.get("hybrid_genres") if isinstance(data, dict) else data)
            return genres, bool(genres)
        return string_list(response.text)[:3], False

    async def generate_elevator_pitch(
        self, story_statement: str, context: str, language: str
    ) -> Tuple[str, bool]:
        response = await self._ask(
            f"Story statement: {story_statement}\n"
            "Write a compelling elevator pitch of at most 40 words.\n"
            'Return JSON: {"elevator_pitch": "..."}',
            context, language,
        )
        data = _dict_payload(response)
        if data:
            return text_or_placeholder(data.get("elevator_pitch"), undetermined(language)), True
        return text_or_placeholder(response.text, undetermined(language)), False

    async def generate_genre_matrix(
        self, hybrid_genre: str, context: str, language: str
    ) -> Tuple[Dict[str, GenreContribution], bool]:
        response = await self._ask(
            f"Hybrid genre: {hybrid_genre}\n"
            "For each component genre, describe its contribution to conflict, pacing, "
            "visual composition, sound and music, and characters.\n"
            'Return JSON: {"<genre>": {"conflict_contribution": "...", "pacing_contribution": "...", '
            '"visual_composition_contribution": "...", "sound_music_contribution": "...", '
            '"characters_contribution": "..."}}',
            context, language,
        )
        data = _dict_payload(response)
        placeholder = undetermined(language)
        matrix = {
            str(genre): GenreContribution(
                conflict_contribution=text_or_placeholder(values.get("conflict_contribution"), placeholder),
                pacing_contribution=text_or_placeholder(values.get("pacing_contribution"), placeholder),
                visual_composition_contribution=text_or_placeholder(
                    values.get("visual_composition_contribution"), placeholder
                ),
                sound_music_contribution=text_or_placeholder(values.get("sound_music_contribution"), placeholder),
                characters_contribution=text_or_placeholder(values.get("characters_contribution"), placeholder),
            )
            for genre, values in data.items()
            if isinstance(values, dict)
        }
        return matrix, bool(matrix)

    async def generate_dynamic_tone(
        self, hybrid_genre: str, context: str, language: str
    ) -> Tuple[Dict[str, ToneStage], bool]:
        response = await self._ask(
            f"Hybrid genre: {hybrid_genre}\n"
            f"Describe how the tone evolves across the stages {', '.join(TONE_STAGES)}.\n"
            'Return JSON: {"<stage>": {"visual_atmosphere": "...", "written_pacing": "...", '
            '"dialogue_structure": "...", "sound_indicators": "...", "emotional_structure": "..."}}',
            context, language,
        )
        data = _dict_payload(response)
        placeholder = undetermined(language)
        tone = {
            str(stage): ToneStage(
                visual_atmosphere=text_or_placeholder(values.get("visual_atmosphere"), placeholder),
                written_pacing=text_or_placeholder(values.get("written_pacing"), placeholder),
                dialogue_structure=text_or_placeholder(values.get("dialogue_structure"), placeholder),
                sound_indicators=text_or_placeholder(values.get("sound_indicators"), placeholder),
                emotional_structure=text_or_placeholder(values.get("emotional_structure"), placeholder),
            )
            for stage, values in data.items()
            if isinstance(values, dict)
        }
        return tone, bool(tone)

    async def generate_artistic_references(
        self, hybrid_genre: str, context: str, language: str
    ) -> Tuple[ArtisticReferences, bool]:
        response = await self._ask(
            f"Hybrid genre: {hybrid_genre}\n"
            "Suggest artistic references that could guide a production of this drama.\n"
            'Return JSON: {"visual_references": [{"work": "...", "artist": "...", "reason": "...", '
            '"scene_application": "..."}], "music_or_sound_design": "...", "cinematic_strategy": "..."}',
            safe_sub(context, TEXT_LIMIT_BRIEF), language,
        )
        data = _dict_payload(response)
        placeholder = undetermined(language)
        if not data:
            return ArtisticReferences(
                cinematic_strategy=text_or_placeholder(response.text, placeholder),
            ), False
        return ArtisticReferences(
            visual_references=[
                VisualReference(
                    work=text_or_placeholder(item.get("work"), placeholder),
                    artist=text_or_placeholder(item.get("artist"), ""),
                    reason=text_or_placeholder(item.get("reason"), ""),
                    scene_application=text_or_placeholder(item.get("scene_application"), ""),
                )
                for item in _dict_items(data.get("visual_references"))
            ],
            music_or_sound_design=text_or_placeholder(data.get("music_or_sound_design"), placeholder),
            cinematic_strategy=text_or_placeholder(data.get("cinematic_strategy"), placeholder),
        ), True

    def extract_required_data(self, stage_input: Station2Input) -> Dict[str, Any]:
        return {
            "characters": len(stage_input.station1_output.major_characters),
            "text_length": len(stage_input.full_text or ""),
        }

    def get_error_fallback(self) -> Station2Output:
        return Station2Output(
            story_statement=PLACEHOLDER_NA,
            three_d_map=ThreeDMap(
                temporal_development_axis=TemporalDevelopment(
                    past_influence=PLACEHOLDER_NA,
                    present_choices=PLACEHOLDER_NA,
                    future_expectations=PLACEHOLDER_NA,
                    hero_arc_connection=PLACEHOLDER_NA,
                ),
            ),
            elevator_pitch=PLACEHOLDER_NA,
            hybrid_genre=PLACEHOLDER_NA,
            metadata=StageMetadata(status=StageStatus.FAILED),
        )
