"""
Standardized analysis data model.

This module defines the narrative entities (characters, relationships,
conflicts) and the canonical pipeline input using Pydantic for validation
and type safety. Transport serialization uses camelCase field names.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional, List, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .utils.errors import InputValidationError

DEFAULT_PROJECT_NAME = "untitled-project"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to plain JSON-compatible data."""
        return self.model_dump(by_alias=True, mode="json")


class StageStatus(str, Enum):
    SUCCESS = "Success"
    PARTIAL = "Partial"
    FAILED = "Failed"


class RelationshipType(str, Enum):
    FAMILY = "family"
    ROMANTIC = "romantic"
    FRIENDSHIP = "friendship"
    PROFESSIONAL = "professional"
    RIVALRY = "rivalry"
    MENTORSHIP = "mentorship"
    OTHER = "other"


class RelationshipNature(str, Enum):
    SUPPORTIVE = "supportive"
    CONFLICTUAL = "conflictual"
    AMBIGUOUS = "ambiguous"
    NEUTRAL = "neutral"


class RelationshipDirection(str, Enum):
    UNIDIRECTIONAL = "unidirectional"
    BIDIRECTIONAL = "bidirectional"


class ConflictSubject(str, Enum):
    POWER = "power"
    LOVE = "love"
    REVENGE = "revenge"
    IDEOLOGY = "ideology"
    SURVIVAL = "survival"
    RESOURCES = "resources"
    IDENTITY = "identity"
    OTHER = "other"


class ConflictScope(str, Enum):
    INTERNAL = "internal"
    PERSONAL = "personal"
    GROUP = "group"
    SOCIETAL = "societal"
    UNIVERSAL = "universal"


class ConflictPhase(str, Enum):
    """Conflict lifecycle; members are declared in lifecycle order."""
    LATENT = "latent"
    EMERGING = "emerging"
    ESCALATING = "escalating"
    CLIMAX = "climax"
    DEESCALATING = "deescalating"
    RESOLUTION = "resolution"
    AFTERMATH = "aftermath"

    @property
    def order(self) -> int:
        return list(ConflictPhase).index(self)

    def __lt__(self, other):
        if isinstance(other, ConflictPhase):
            return self.order < other.order
        return NotImplemented

    def __le__(self, other):
        if isinstance(other, ConflictPhase):
            return self.order <= other.order
        return NotImplemented

    def __gt__(self, other):
        if isinstance(other, ConflictPhase):
            return self.order > other.order
        return NotImplemented

    def __ge__(self, other):
        if isinstance(other, ConflictPhase):
            return self.order >= other.order
        return NotImplemented


def parse_enum(enum_cls, value: Any, default):
    """
    Leniently map a model-returned label onto an enum member.

    Matches member values and names case-insensitively, ignoring spaces,
    hyphens and underscores.
    """
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return default
    key = value.strip().lower().replace("-", "").replace("_", "").replace(" ", "")
    for member in enum_cls:
        if key in (member.value.replace("_", ""), member.name.lower().replace("_", "")):
            return member
    return default


class CharacterProfile(CamelModel):
    personality_traits: str = ""
    motivations_goals: str = ""
    potential_arc: str = ""


class Character(CamelModel):
    """A character in the conflict network."""
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = ""
    profile: Optional[CharacterProfile] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Relationship(CamelModel):
    """An edge between two characters."""
    id: str = Field(..., min_length=1)
    source: str
    target: str
    type: RelationshipType = RelationshipType.OTHER
    nature: RelationshipNature = RelationshipNature.NEUTRAL
    direction: RelationshipDirection = RelationshipDirection.BIDIRECTIONAL
    strength: int = Field(default=5, ge=1, le=10)
    description: str = ""
    triggers: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PivotPoint(CamelModel):
    timestamp: str = ""
    description: str = ""
    impact: int = Field(default=5, ge=1, le=10)


class Conflict(CamelModel):
    """A named narrative tension between one or more characters."""
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = ""
    involved_characters: List[str] = Field(..., min_length=1)
    subject: ConflictSubject = ConflictSubject.OTHER
    scope: ConflictScope = ConflictScope.PERSONAL
    phase: ConflictPhase = ConflictPhase.EMERGING
    strength: int = Field(default=5, ge=1, le=10)
    related_relationships: List[str] = Field(default_factory=list)
    pivot_points: List[PivotPoint] = Field(default_factory=list)
    timestamps: List[datetime] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


def clamp_strength(value: Any, default: int = 5) -> int:
    """Coerce a model-returned strength onto the 1-10 scale."""
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        return default
    return max(1, min(10, number))


class StageMetadata(CamelModel):
    analysis_timestamp: datetime = Field(default_factory=utc_now)
    status: StageStatus = StageStatus.SUCCESS
    processing_time: Optional[float] = None


# Pipeline input

class AnalysisContext(CamelModel):
    title: Optional[str] = None
    author: Optional[str] = None
    scene_hints: List[str] = Field(default_factory=list)
    genre: Optional[str] = None
    description: Optional[str] = None


class AnalysisFlags(CamelModel):
    fast_mode: bool = False
    verbose_logging: bool = False


class AgentOverrides(CamelModel):
    set: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    model: Optional[str] = None


class PipelineInput(CamelModel):
    """Canonical pipeline input."""
    full_text: str = Field(..., min_length=1)
    project_name: str = Field(default=DEFAULT_PROJECT_NAME, min_length=1)
    language: Literal["ar", "en"] = "ar"
    prose_file_path: Optional[str] = None
    context: AnalysisContext = Field(default_factory=AnalysisContext)
    flags: AnalysisFlags = Field(default_factory=AnalysisFlags)
    agents: AgentOverrides = Field(default_factory=AgentOverrides)

    @field_validator("full_text")
    @classmethod
    def full_text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("full text must not be blank")
        return value


_TEXT_ALIASES = ("fullText", "full_text", "screenplayText", "screenplay_text", "text", "script")
_PROJECT_ALIASES = ("projectName", "project_name", "project", "title")


def normalize_pipeline_input(raw: Any) -> Dict[str, Any]:
    """
    Map alternate field names of an untyped input onto canonical ones.

    Args:
        raw: Mapping supplied by the caller

    Returns:
        A new dict with ``fullText`` and ``projectName`` populated when any
        of their aliases was present
    """
    if not isinstance(raw, dict):
        return {}
    data = dict(raw)

    full_text = next((data[key] for key in _TEXT_ALIASES if data.get(key)), None)
    for key in _TEXT_ALIASES:
        data.pop(key, None)
    if full_text is not None:
        data["fullText"] = full_text

    project_name = next((data[key] for key in _PROJECT_ALIASES if data.get(key)), None)
    for key in ("projectName", "project_name", "project"):
        data.pop(key, None)
    if project_name is not None:
        data["projectName"] = project_name
    title = data.pop("title", None)
    if title:
        context = data.get("context")
        context = dict(context) if isinstance(context, dict) else {}
        context.setdefault("title", title)
        data["context"] = context

    return data


def validate_pipeline_input(raw: Any) -> PipelineInput:
    """
    Normalize and validate an untyped pipeline input.

    Args:
        raw: Mapping (or PipelineInput) supplied by the caller

    Returns:
        PipelineInput

    Raises:
        InputValidationError: If required fields are missing or invalid
    """
    if isinstance(raw, PipelineInput):
        return raw
    if not isinstance(raw, dict):
        raise InputValidationError(
            "Pipeline input must be a mapping",
            details={"received": type(raw).__name__},
        )
    try:
        return PipelineInput.model_validate(normalize_pipeline_input(raw))
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise InputValidationError("Invalid pipeline input", details={"errors": errors}) from e
