"""
Station 1: text analysis.

Identifies the major characters, summarizes their key relationships,
characterizes the narrative style, then analyzes each character in depth.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field

from ..models import AnalysisContext, CamelModel, StageMetadata, StageStatus
from ..utils.json_extraction import Structured
from ..utils.llm import GenerationRequest
from ..utils.llm_constants import (
    MAX_MAJOR_CHARACTERS,
    MIN_MAJOR_CHARACTERS,
    TEXT_LIMIT_LARGE,
    TEXT_LIMIT_MEDIUM,
    TEXT_LIMIT_SMALL,
)
from ..utils.text import safe_sub, string_list, text_or_placeholder, undetermined
from .base import BaseStage, Ok, StageConfig, StageOutcome, language_instruction

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are an expert dramaturg analysing dramatic texts. "
    "Answer only with the JSON structure requested."
)


@dataclass
class Station1Input:
    full_text: str
    project_name: str
    language: str = "ar"
    context: AnalysisContext = field(default_factory=AnalysisContext)


class CharacterAnalysis(CamelModel):
    personality_traits: str
    motivations_goals: str
    key_relationships_brief: str
    narrative_function: str
    potential_arc: str


class KeyRelationship(CamelModel):
    characters: List[str] = Field(default_factory=list)
    dynamic: str = ""
    narrative_importance: str = ""


class RelationshipAnalysis(CamelModel):
    key_relationships: List[KeyRelationship] = Field(default_factory=list)
    summary: str = ""


class NarrativeStyleAnalysis(CamelModel):
    overall_tone: str
    pacing_analysis: str
    language_style: str


class Station1Output(CamelModel):
    major_characters: List[str] = Field(default_factory=list)
    character_analysis: Dict[str, CharacterAnalysis] = Field(default_factory=dict)
    relationship_analysis: RelationshipAnalysis = Field(default_factory=RelationshipAnalysis)
    narrative_style_analysis: NarrativeStyleAnalysis
    metadata: StageMetadata = Field(default_factory=StageMetadata)


def _context_hints(context: AnalysisContext) -> str:
    hints = []
    if context.title:
        hints.append(f"Title: {context.title}")
    if context.author:
        hints.append(f"Author: {context.author}")
    if context.genre:
        hints.append(f"Declared genre: {context.genre}")
    if context.description:
        hints.append(f"Description: {context.description}")
    if context.scene_hints:
        hints.append("Scene hints: " + "; ".join(context.scene_hints))
    return "\n".join(hints)


class TextAnalysisStage(BaseStage[Station1Input, Station1Output]):
    """Station 1: characters, relationships and narrative style."""

    def __init__(self, client, config: Optional[StageConfig] = None):
        super().__init__(
            config or StageConfig(
                stage_number=1,
                name="Station 1: Text Analysis",
                input_validator=lambda data: bool(data.full_text and data.full_text.strip()),
                output_validator=lambda output: output is not None,
            ),
            client,
        )

    async def process(self, stage_input: Station1Input) -> StageOutcome:
        language = stage_input.language
        hints = _context_hints(stage_input.context)

        (characters, characters_ok), (relationships, relationships_ok), (style, style_ok) = (
            await asyncio.gather(
                self.identify_major_characters(stage_input.full_text, language, hints),
                self.analyze_relationships(stage_input.full_text, language),
                self.analyze_narrative_style(stage_input.full_text, language),
            )
        )

        analyses = await asyncio.gather(
            *(self.analyze_character(name, stage_input.full_text, language) for name in characters)
        )
        character_analysis = {name: analysis for name, (analysis, _) in zip(characters, analyses)}
        analyses_ok = all(ok for _, ok in analyses)

        complete = characters_ok and relationships_ok and style_ok and analyses_ok and bool(characters)
        return Ok(Station1Output(
            major_characters=characters,
            character_analysis=character_analysis,
            relationship_analysis=relationships,
            narrative_style_analysis=style,
            metadata=StageMetadata(status=StageStatus.SUCCESS if complete else StageStatus.PARTIAL),
        ))

    async def identify_major_characters(
        self, full_text: str, language: str, hints: str = ""
    ) -> Tuple[List[str], bool]:
        """
        Identify 3-7 major character names.

        Returns:
            (names, structured) where structured is False when the names were
            recovered from unstructured text
        """
        prompt = (
            f"Identify the {MIN_MAJOR_CHARACTERS}-{MAX_MAJOR_CHARACTERS} major characters of the text. "
            f"{language_instruction(language)}\n"
            + (f"{hints}\n" if hints else "")
            + 'Return JSON: {"major_characters": ["name 1", "name 2"]}'
        )
        response = await self.generate(GenerationRequest(
            prompt=prompt,
            context=safe_sub(full_text, TEXT_LIMIT_LARGE),
            system_instruction=SYSTEM_INSTRUCTION,
        ))

        if isinstance(response.content, Structured):
            data = response.content.data
            raw_names = data.get("major_characters") if isinstance(data, dict) else data
            names = string_list(raw_names)
            structured = True
        else:
            names = [line for line in string_list(response.content.raw_text) if len(line) <= 60]
            structured = False

        unique = list(dict.fromkeys(names))[:MAX_MAJOR_CHARACTERS]
        logger.info(f"Identified {len(unique)} major characters")
        return unique, structured

    async def analyze_character(
        self, name: str, full_text: str, language: str
    ) -> Tuple[CharacterAnalysis, bool]:
        prompt = (
            f"Analyse the character '{name}' in depth. {language_instruction(language)}\n"
            "Return JSON: {"
            '"personality_traits": "...", "motivations_goals": "...", '
            '"key_relationships_brief": "...", "narrative_function": "...", '
            '"potential_arc": "..."}'
        )
        response = await self.generate(GenerationRequest(
            prompt=prompt,
            context=safe_sub(full_text, TEXT_LIMIT_LARGE),
            system_instruction=SYSTEM_INSTRUCTION,
        ))
        placeholder = undetermined(language)

        if isinstance(response.content, Structured) and isinstance(response.content.data, dict):
            data = response.content.data
            return CharacterAnalysis(
                personality_traits=text_or_placeholder(data.get("personality_traits"), placeholder),
                motivations_goals=text_or_placeholder(data.get("motivations_goals"), placeholder),
                key_relationships_brief=text_or_placeholder(data.get("key_relationships_brief"), placeholder),
                narrative_function=text_or_placeholder(data.get("narrative_function"), placeholder),
                potential_arc=text_or_placeholder(data.get("potential_arc"), placeholder),
            ), True

        raw = response.text.strip()
        return CharacterAnalysis(
            personality_traits=raw or placeholder,
            motivations_goals=placeholder,
            key_relationships_brief=placeholder,
            narrative_function=placeholder,
            potential_arc=placeholder,
        ), False

    async def analyze_relationships(
        self, full_text: str, language: str
    ) -> Tuple[RelationshipAnalysis, bool]:
        prompt = (
            "Summarize the key relationships between the characters. "
            f"{language_instruction(language)}\n"
            'Return JSON: {"key_relationships": [{"characters": ["A", "B"], '
            '"dynamic": "...", "narrative_importance": "..."}], "summary": "..."}'
        )
        response = await self.generate(GenerationRequest(
            prompt=prompt,
            context=safe_sub(full_text, TEXT_LIMIT_MEDIUM),
            system_instruction=SYSTEM_INSTRUCTION,
        ))

        if isinstance(response.content, Structured):
            data = response.content.data
            items = data.get("key_relationships") if isinstance(data, dict) else data
            relationships = [
                self._key_relationship(item, language)
                for item in (items if isinstance(items, list) else [])
                if isinstance(item, dict)
            ]
            summary = data.get("summary") if isinstance(data, dict) else None
            return RelationshipAnalysis(
                key_relationships=relationships,
                summary=text_or_placeholder(summary, undetermined(language)),
            ), True

        return RelationshipAnalysis(
            summary=text_or_placeholder(response.content.raw_text, undetermined(language)),
        ), False

    @staticmethod
    def _key_relationship(item: Dict[str, Any], language: str) -> KeyRelationship:
        placeholder = undetermined(language)
        return KeyRelationship(
            characters=string_list(item.get("characters"))[:2],
            dynamic=text_or_placeholder(item.get("dynamic"), placeholder),
            narrative_importance=text_or_placeholder(item.get("narrative_importance"), placeholder),
        )

    async def analyze_narrative_style(
        self, full_text: str, language: str
    ) -> Tuple[NarrativeStyleAnalysis, bool]:
        prompt = (
            "Characterize the narrative style of the text. "
            f"{language_instruction(language)}\n"
            'Return JSON: {"overall_tone": "...", "pacing_analysis": "...", "language_style": "..."}'
        )
        response = await self.generate(GenerationRequest(
            prompt=prompt,
            context=safe_sub(full_text, TEXT_LIMIT_SMALL),
            system_instruction=SYSTEM_INSTRUCTION,
        ))
        placeholder = undetermined(language)

        if isinstance(response.content, Structured) and isinstance(response.content.data, dict):
            data = response.content.data
            return NarrativeStyleAnalysis(
                overall_tone=text_or_placeholder(data.get("overall_tone"), placeholder),
                pacing_analysis=text_or_placeholder(data.get("pacing_analysis"), placeholder),
                language_style=text_or_placeholder(data.get("language_style"), placeholder),
            ), True

        return NarrativeStyleAnalysis(
            overall_tone=text_or_placeholder(response.text, placeholder),
            pacing_analysis=placeholder,
            language_style=placeholder,
        ), False

    def extract_required_data(self, stage_input: Station1Input) -> Dict[str, Any]:
        return {
            "project_name": stage_input.project_name,
            "text_length": len(stage_input.full_text or ""),
            "language": stage_input.language,
        }

    def get_error_fallback(self) -> Station1Output:
        return Station1Output(
            major_characters=[],
            character_analysis={},
            relationship_analysis=RelationshipAnalysis(),
            narrative_style_analysis=NarrativeStyleAnalysis(
                overall_tone="N/A",
                pacing_analysis="N/A",
                language_style="N/A",
            ),
            metadata=StageMetadata(status=StageStatus.FAILED),
        )
