"""
Tests for station 3: conflict network builder.
"""

import asyncio
import json

from src.dramaanalyst.models import (
    Character,
    ConflictPhase,
    ConflictSubject,
    RelationshipDirection,
    RelationshipNature,
    RelationshipType,
    StageStatus,
)
from src.dramaanalyst.network import ConflictNetwork
from src.dramaanalyst.stages.network_builder import (
    INITIAL_SNAPSHOT,
    ConflictInferenceEngine,
    NetworkBuilderStage,
    RelationshipInferenceEngine,
    Station3Input,
)


def run_station3(client, station1_output, station2_output, text):
    stage_input = Station3Input(
        station1_output=station1_output,
        station2_output=station2_output,
        full_text=text,
        project_name="بيت الموج",
    )
    return asyncio.run(NetworkBuilderStage(client).execute(stage_input))


def two_character_network():
    network = ConflictNetwork()
    network.add_character(Character(id="char_1", name="Laila"))
    network.add_character(Character(id="char_2", name="Salem"))
    return network


class TestNetworkBuilder:
    """Test the network builder station."""

    def test_builds_network(self, model_client, station1_output, station2_output, sample_drama_text):
        """Test characters, relationships, conflicts and the initial snapshot."""
        result = run_station3(model_client, station1_output, station2_output, sample_drama_text)
        network = result.output.conflict_network

        assert result.status == StageStatus.SUCCESS
        assert [c.name for c in network.characters.values()] == ["ليلى", "سالم", "نور"]
        assert list(network.characters) == ["char_1", "char_2", "char_3"]
        assert network.characters["char_1"].profile.personality_traits == "حازمة وقلقة"

        # the item naming an unknown character is skipped
        assert list(network.relationships) == ["rel_1", "rel_2"]
        rel_1 = network.relationships["rel_1"]
        assert (rel_1.source, rel_1.target) == ("char_1", "char_2")
        assert rel_1.type == RelationshipType.FAMILY
        assert rel_1.nature == RelationshipNature.CONFLICTUAL
        assert rel_1.triggers == ["الدين"]
        rel_2 = network.relationships["rel_2"]
        assert (rel_2.source, rel_2.target) == ("char_3", "char_2")
        assert rel_2.direction == RelationshipDirection.UNIDIRECTIONAL

        conflict = network.conflicts["conflict_1"]
        assert conflict.involved_characters == ["char_1", "char_2", "char_3"]
        assert conflict.subject == ConflictSubject.SURVIVAL
        assert conflict.phase == ConflictPhase.ESCALATING
        assert conflict.related_relationships == ["rel_1"]
        assert conflict.pivot_points[0].impact == 9

        assert [s.description for s in network.snapshots] == [INITIAL_SNAPSHOT]

    def test_summary_matches_network(self, station3_output, station1_output):
        """Test that the summary counts agree with the network."""
        summary = station3_output.network_summary
        network = station3_output.conflict_network
        assert summary.characters_count == len(station1_output.major_characters) == 3
        assert summary.relationships_count == len(network.relationships) == 2
        assert summary.conflicts_count == 1
        assert summary.snapshots_count == 1

    def test_serialization(self, station3_output):
        """Test that the network serializes as plain data."""
        data = station3_output.to_dict()
        assert data["conflictNetwork"]["characters"]["char_1"]["name"] == "ليلى"
        assert data["networkSummary"]["charactersCount"] == 3
        json.dumps(data, ensure_ascii=False)

    def test_unstructured_relationships(self, client_factory, station1_output, station2_output, sample_drama_text):
        """Test that prose relationships degrade to one placeholder record."""
        client, _ = client_factory([("Infer the main relationships", "ليلى وسالم أخوان.")])
        result = run_station3(client, station1_output, station2_output, sample_drama_text)
        network = result.output.conflict_network

        assert result.status == StageStatus.PARTIAL
        assert len(network.relationships) == 1
        placeholder = network.relationships["rel_1"]
        assert (placeholder.source, placeholder.target) == ("char_1", "char_2")
        assert placeholder.description == "ليلى وسالم أخوان."
        assert placeholder.metadata["source"] == "unstructured_inference"

    def test_unstructured_conflicts(self, client_factory, station1_output, station2_output, sample_drama_text):
        """Test that prose conflicts degrade to one placeholder record."""
        client, _ = client_factory([("Infer the main conflicts", "صراع حول الدين.")])
        result = run_station3(client, station1_output, station2_output, sample_drama_text)
        conflicts = result.output.conflict_network.conflicts

        assert result.status == StageStatus.PARTIAL
        assert list(conflicts) == ["conflict_1"]
        assert conflicts["conflict_1"].involved_characters == ["char_1", "char_2"]

    def test_failure_returns_empty_fallback(self, client_factory, station1_output, station2_output, sample_drama_text):
        """Test that a service failure yields an empty fallback network."""
        client, _ = client_factory([("Infer the main relationships", RuntimeError("down"))])
        result = run_station3(client, station1_output, station2_output, sample_drama_text)
        assert result.status == StageStatus.FAILED
        assert result.output.network_summary.characters_count == 0
        assert len(result.output.conflict_network.characters) == 0


class TestInferenceEngines:
    """Test conversion of inferred items."""

    def test_relationship_wrapper_object(self, model_client):
        """Test that a {"relationships": [...]} wrapper is accepted."""
        engine = RelationshipInferenceEngine(NetworkBuilderStage(model_client))
        data = {"relationships": [{
            "character1_name_or_id": "laila",
            "character2_name_or_id": "char_2",
            "relationship_type": "Rivalry",
            "strength": 15,
        }]}
        relationships = engine.convert(data, two_character_network())
        assert len(relationships) == 1
        assert relationships[0].type == RelationshipType.RIVALRY
        assert relationships[0].strength == 10

    def test_relationship_self_link_skipped(self, model_client):
        """Test that items resolving to one character are skipped."""
        engine = RelationshipInferenceEngine(NetworkBuilderStage(model_client))
        data = [{"character1_name_or_id": "Laila", "character2_name_or_id": "char_1"}]
        assert engine.convert(data, two_character_network()) == []

    def test_single_character_needs_no_relationship_call(self, model_client, scripted_backend):
        """Test that fewer than two characters skips relationship inference."""
        engine = RelationshipInferenceEngine(NetworkBuilderStage(model_client))
        network = ConflictNetwork()
        network.add_character(Character(id="char_1", name="Laila"))

        relationships, structured = asyncio.run(engine.infer(network, "", "ar"))
        assert relationships == []
        assert structured is True
        assert scripted_backend.calls == []

    def test_conflict_defaults(self, model_client):
        """Test defaults for missing conflict fields."""
        engine = ConflictInferenceEngine(NetworkBuilderStage(model_client))
        conflicts = engine.convert(
            [{"involved_character_names_or_ids": ["Salem", "ghost"], "subject": "unknown"}],
            two_character_network(),
            "en",
        )
        assert len(conflicts) == 1
        assert conflicts[0].name == "Conflict 1"
        assert conflicts[0].involved_characters == ["char_2"]
        assert conflicts[0].subject == ConflictSubject.OTHER
        assert conflicts[0].phase == ConflictPhase.EMERGING
        assert len(conflicts[0].timestamps) == 1
