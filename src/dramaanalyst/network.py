"""
Conflict network: the versioned graph of characters, relationships and conflicts.

Station 3 builds the network; stations 4-7 read it, enrich character
metadata and record snapshots. Records that would break the graph
invariants (unknown endpoints, self-links, conflicts with no known
participant) are dropped and logged instead of raised.
"""

import copy
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from .models import Character, Conflict, Relationship, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetworkSnapshot:
    """Point-in-time, read-only deep copy of the network state."""
    timestamp: datetime
    description: str
    characters: Mapping[str, Character]
    relationships: Mapping[str, Relationship]
    conflicts: Mapping[str, Conflict]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "description": self.description,
            "characters": {k: v.to_dict() for k, v in self.characters.items()},
            "relationships": {k: v.to_dict() for k, v in self.relationships.items()},
            "conflicts": {k: v.to_dict() for k, v in self.conflicts.items()},
        }


class ConflictNetwork:
    """
    Mutable graph owned by a single pipeline run.

    Iteration follows insertion order; equality does not depend on it.
    """

    def __init__(self, network_id: Optional[str] = None, name: str = ""):
        self.id = network_id or f"network_{uuid.uuid4().hex[:8]}"
        self.name = name
        self._characters: Dict[str, Character] = {}
        self._relationships: Dict[str, Relationship] = {}
        self._conflicts: Dict[str, Conflict] = {}
        self._snapshots: List[NetworkSnapshot] = []

    @property
    def characters(self) -> Mapping[str, Character]:
        return MappingProxyType(self._characters)

    @property
    def relationships(self) -> Mapping[str, Relationship]:
        return MappingProxyType(self._relationships)

    @property
    def conflicts(self) -> Mapping[str, Conflict]:
        return MappingProxyType(self._conflicts)

    @property
    def snapshots(self) -> List[NetworkSnapshot]:
        return list(self._snapshots)

    def add_character(self, character: Character) -> bool:
        """
        Add a character.

        Returns:
            False if a character with the same id already exists
        """
        if character.id in self._characters:
            logger.warning(f"Dropping duplicate character id {character.id}")
            return False
        self._characters[character.id] = character
        return True

    def enrich_character(self, character_id: str, **metadata: Any) -> bool:
        """Merge metadata into an existing character; the only allowed mutation."""
        character = self._characters.get(character_id)
        if character is None:
            return False
        character.metadata.update(metadata)
        return True

    def find_character(self, name_or_id: Any) -> Optional[Character]:
        """Look up a character by id, then by case-insensitive name."""
        if not isinstance(name_or_id, str):
            return None
        key = name_or_id.strip()
        if key in self._characters:
            return self._characters[key]
        lowered = key.lower()
        for character in self._characters.values():
            if character.name.strip().lower() == lowered:
                return character
        return None

    def add_relationship(self, relationship: Relationship) -> bool:
        """
        Add a relationship whose endpoints are distinct, known characters.

        Returns:
            True if added; False if the relationship was dropped
        """
        if relationship.source == relationship.target:
            logger.warning(f"Dropping self-relationship {relationship.id} on {relationship.source}")
            return False
        missing = [
            endpoint for endpoint in (relationship.source, relationship.target)
            if endpoint not in self._characters
        ]
        if missing:
            logger.warning(f"Dropping relationship {relationship.id}: unknown characters {missing}")
            return False
        if relationship.id in self._relationships:
            logger.warning(f"Dropping duplicate relationship id {relationship.id}")
            return False
        self._relationships[relationship.id] = relationship
        return True

    def add_conflict(self, conflict: Conflict) -> bool:
        """
        Add a conflict, keeping only participants present in the network.

        Unknown character ids and unknown related relationships are filtered
        out; the conflict is dropped if no participant remains.

        Returns:
            True if added; False if the conflict was dropped
        """
        involved = [cid for cid in dict.fromkeys(conflict.involved_characters) if cid in self._characters]
        if not involved:
            logger.warning(f"Dropping conflict {conflict.id}: no known characters involved")
            return False
        if conflict.id in self._conflicts:
            logger.warning(f"Dropping duplicate conflict id {conflict.id}")
            return False
        related = [rid for rid in conflict.related_relationships if rid in self._relationships]
        self._conflicts[conflict.id] = conflict.model_copy(
            update={"involved_characters": involved, "related_relationships": related}
        )
        return True

    def relationships_of(self, character_id: str) -> List[Relationship]:
        return [
            rel for rel in self._relationships.values()
            if character_id in (rel.source, rel.target)
        ]

    def conflicts_of(self, character_id: str) -> List[Conflict]:
        return [c for c in self._conflicts.values() if character_id in c.involved_characters]

    def involvement(self, character_id: str) -> int:
        """Number of relationships and conflicts a character takes part in."""
        return len(self.relationships_of(character_id)) + len(self.conflicts_of(character_id))

    def create_snapshot(self, description: str) -> NetworkSnapshot:
        """
        Record an immutable deep copy of the current state.

        Args:
            description: Human-readable label

        Returns:
            The recorded snapshot
        """
        snapshot = NetworkSnapshot(
            timestamp=utc_now(),
            description=description,
            characters=MappingProxyType(copy.deepcopy(self._characters)),
            relationships=MappingProxyType(copy.deepcopy(self._relationships)),
            conflicts=MappingProxyType(copy.deepcopy(self._conflicts)),
        )
        self._snapshots.append(snapshot)
        logger.debug(f"Snapshot '{description}' recorded for network {self.id}")
        return snapshot

    def summary(self) -> Dict[str, int]:
        return {
            "characters_count": len(self._characters),
            "relationships_count": len(self._relationships),
            "conflicts_count": len(self._conflicts),
            "snapshots_count": len(self._snapshots),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with keyed maps as plain, insertion-ordered objects."""
        return {
            "id": self.id,
            "name": self.name,
            "characters": {k: v.to_dict() for k, v in self._characters.items()},
            "relationships": {k: v.to_dict() for k, v in self._relationships.items()},
            "conflicts": {k: v.to_dict() for k, v in self._conflicts.items()},
            "snapshots": [snapshot.to_dict() for snapshot in self._snapshots],
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConflictNetwork):
            return NotImplemented
        return (
            self.id == other.id
            and self.name == other.name
            and self._characters == other._characters
            and self._relationships == other._relationships
            and self._conflicts == other._conflicts
        )

    def __repr__(self) -> str:
        counts = self.summary()
        return (
            f"ConflictNetwork(id={self.id!r}, characters={counts['characters_count']}, "
            f"relationships={counts['relationships_count']}, conflicts={counts['conflicts_count']})"
        )
