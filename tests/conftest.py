"""
Shared pytest fixtures for test suite.

This module provides common fixtures used across multiple test files,
reducing duplication and ensuring consistency.
"""

import asyncio
import json
import os
from typing import List, Optional, Tuple, Union
from unittest.mock import patch, MagicMock

import pytest

from src.dramaanalyst.config import Settings
from src.dramaanalyst.pipeline import AnalysisPipeline
from src.dramaanalyst.providers.gemini import GeminiProvider
from src.dramaanalyst.stages.conceptual_analysis import ConceptualAnalysisStage, Station2Input
from src.dramaanalyst.stages.diagnostics import DiagnosticsStage, Station6Input
from src.dramaanalyst.stages.dynamic_analysis import DynamicAnalysisStage, Station5Input
from src.dramaanalyst.stages.efficiency_metrics import EfficiencyMetricsStage, Station4Input
from src.dramaanalyst.stages.finalization import Station7Input
from src.dramaanalyst.stages.network_builder import NetworkBuilderStage, Station3Input
from src.dramaanalyst.stages.text_analysis import Station1Input, TextAnalysisStage
from src.dramaanalyst.utils.llm import BaseLLMClient, ModelClient
from src.dramaanalyst.utils.llm_constants import MODEL_FLASH, MODEL_FLASH_LITE
from src.dramaanalyst.utils.throttle import NullThrottle


SAMPLE_DRAMA_TEXT = (
    "المشهد الأول: بيت قديم في حي الجمالية. الليل.\n"
    "ليلى تقف عند النافذة تنتظر عودة أخيها سالم من الميناء.\n"
    "ليلى: تأخر سالم مرة أخرى. أبي لن يسامحه هذه المرة.\n"
    "نور تدخل حاملة مصباحا زيتيا.\n"
    "نور: الريح شديدة يا ليلى، والبحر لا يرحم من يعانده.\n"
    "ليلى: البحر ليس المشكلة. المشكلة هي الدين الذي أخفاه عنا.\n"
    "يدخل سالم مبللا، يحمل صندوقا خشبيا مغلقا.\n"
    "سالم: لا تسألاني عن شيء الليلة. غدا سأدفع كل ما علينا.\n"
    "نور: ومن أين لك المال؟ الصيادون يقولون إنك تعمل مع المهرب.\n"
    "سالم: الصيادون يقولون الكثير. أنا أفعل ما يجب لإنقاذ البيت.\n"
    "ليلى: إن عرف أبي فلن يبقى لك بيت تنقذه.\n"
    "صمت طويل. صوت الموج يعلو. سالم يضع الصندوق تحت السرير.\n"
    "نور: سأحفظ سرك يا سالم، لكن لا تجعلني أندم.\n"
    "ليلى تنظر إلى الصندوق ثم إلى أخيها، وتطفئ المصباح."
)


def response_json(payload) -> str:
    return json.dumps(payload, ensure_ascii=False)


# Ordered (substring, response) rules; the first rule whose substring occurs
# in the full prompt answers the call.
SCRIPTED_RESPONSES: List[Tuple[str, str]] = [
    ("final analysis report", (
        "## Executive summary\n\n"
        "**The drama** builds a compact family tragedy around debt, secrecy and the sea. "
        "Laila, Salem and Nour form a triangle of loyalty and suspicion.\n\n"
        "- Strength: the sealed box is a clear symbol of the hidden debt.\n"
        "- Weakness: the father remains offstage and the central conflict needs a sharper climax."
    )),
    ("major characters of the text", response_json({"major_characters": ["ليلى", "سالم", "نور"]})),
    ("Analyse the character", response_json({
        "personality_traits": "حازمة وقلقة",
        "motivations_goals": "حماية العائلة",
        "key_relationships_brief": "أخت سالم",
        "narrative_function": "محركة الصراع",
        "potential_arc": "من الشك إلى المواجهة",
    })),
    ("Summarize the key relationships", response_json({
        "key_relationships": [
            {"characters": ["ليلى", "سالم"], "dynamic": "أخوة متوترة", "narrative_importance": "عالية"}
        ],
        "summary": "عائلة يمزقها الدين والسر",
    })),
    ("Characterize the narrative style", response_json({
        "overall_tone": "قاتم",
        "pacing_analysis": "بطيء ثم متصاعد",
        "language_style": "حوار مقتضب",
    })),
    ("candidate story statements", response_json({
        "story_statements": ["أخ يخفي دينا قد يدمر بيت العائلة", "سر واحد يختبر ولاء أختين"]
    })),
    ("three-axis narrative map", response_json({
        "horizontal_events_axis": [{"event": "عودة سالم", "timestamp": "الليل"}],
        "vertical_meaning_axis": [{"event_reference": "الصندوق", "symbolic_layer": "الذنب المخفي"}],
        "temporal_development_axis": {
            "past_influence": "الدين القديم",
            "present_choices": "التهريب",
            "future_expectations": "انكشاف السر",
            "hero_arc_connection": "سقوط سالم",
        },
    })),
    ("hybrid-genre labels", response_json({"hybrid_genres": ["دراما عائلية نوار"]})),
    ("elevator pitch", "```json\n" + response_json({"elevator_pitch": "أخ يغامر بكل شيء لإنقاذ بيت يغرق"}) + "\n```"),
    ("contribution to conflict", response_json({
        "دراما عائلية": {
            "conflict_contribution": "صراع الولاء",
            "pacing_contribution": "بطء مشحون",
            "visual_composition_contribution": "إضاءة خافتة",
            "sound_music_contribution": "صوت الموج",
            "characters_contribution": "أسرة مأزومة",
        }
    })),
    ("how the tone evolves", response_json({
        "opening": {
            "visual_atmosphere": "ليل",
            "written_pacing": "بطيء",
            "dialogue_structure": "جمل قصيرة",
            "sound_indicators": "ريح",
            "emotional_structure": "ترقب",
        }
    })),
    ("artistic references", response_json({
        "visual_references": [{"work": "الليالي البيضاء", "artist": "فيسكونتي", "reason": "العزلة"}],
        "music_or_sound_design": "أصوات البحر",
        "cinematic_strategy": "لقطات قريبة",
    })),
    ("Infer the main relationships", response_json([
        {
            "character1_name_or_id": "ليلى", "character2_name_or_id": "سالم",
            "relationship_type": "family", "relationship_nature": "conflictual",
            "direction": "bidirectional", "strength": 8,
            "description_rationale": "أخوة يهددها السر", "triggers": ["الدين"],
        },
        {
            "character1_name_or_id": "char_3", "character2_name_or_id": "سالم",
            "relationship_type": "family", "relationship_nature": "supportive",
            "direction": "unidirectional", "strength": 6,
            "description_rationale": "نور تحمي سالم",
        },
        {
            "character1_name_or_id": "مجهول", "character2_name_or_id": "سالم",
            "relationship_type": "rivalry", "strength": 4,
        },
    ])),
    ("Infer the main conflicts", response_json([
        {
            "conflict_name": "سر الدين", "involved_character_names_or_ids": ["ليلى", "سالم", "نور"],
            "subject": "survival", "scope": "personal", "initial_phase": "escalating",
            "strength": 8, "description_rationale": "الدين يهدد البيت",
            "related_relationships": ["rel_1"],
            "pivot_points": [{"timestamp": "الليل", "description": "إخفاء الصندوق", "impact": 9}],
        },
    ])),
    ("efficiency metrics of a drama", response_json({
        "priority_actions": ["أظهر الأب على المسرح"],
        "quick_fixes": ["وضح مصدر الدين"],
        "structural_revisions": ["أضف مشهد مواجهة"],
    })),
    ("key symbols, recurring motifs", response_json({
        "key_symbols": ["الصندوق", "المصباح"],
        "recurring_motifs": ["البحر"],
        "central_themes_hinted": ["الذنب"],
        "interpretation": "الصندوق يجسد السر",
    })),
    ("Assess the style", response_json({
        "tone_assessment": "قاتم",
        "pacing_assessment": "متصاعد",
        "language_register": "فصحى مبسطة",
        "consistency_notes": "متسق",
    })),
    ("Diagnose dramaturgical", response_json({
        "critical_issues": [],
        "warnings": [{"description": "الأب غائب", "severity": 6, "suggested_fix": "أدخل الأب"}],
        "suggestions": [{"description": "البداية بطيئة", "severity": 3, "suggested_fix": "اختصر"}],
    })),
]


class ScriptedBackend(BaseLLMClient):
    """
    Fake generation backend answering from ordered substring rules.

    Records every call as (prompt, model_name). Models listed in
    ``failing_models`` raise ConnectionError.
    """

    def __init__(
        self,
        rules: Optional[List[Tuple[str, Union[str, Exception]]]] = None,
        default: str = "",
        failing_models: Optional[List[str]] = None,
    ):
        self.rules = list(SCRIPTED_RESPONSES if rules is None else rules)
        self.default = default
        self.failing_models = set(failing_models or [])
        self.calls: List[Tuple[str, Optional[str]]] = []

    def generate(self, prompt, model_name=None, temperature=None, max_tokens=None, timeout=None):
        self.calls.append((prompt, model_name))
        if model_name in self.failing_models:
            raise ConnectionError(f"{model_name} unavailable")
        for needle, answer in self.rules:
            if needle in prompt:
                if isinstance(answer, Exception):
                    raise answer
                return answer
        return self.default

    def calls_matching(self, needle: str) -> List[Tuple[str, Optional[str]]]:
        return [call for call in self.calls if needle in call[0]]


@pytest.fixture
def sample_drama_text():
    """Arabic drama excerpt of roughly 600 characters."""
    return SAMPLE_DRAMA_TEXT


@pytest.fixture
def scripted_backend():
    """Backend answering every station prompt with well-formed JSON."""
    return ScriptedBackend()


@pytest.fixture
def model_client(scripted_backend):
    """Model client over the scripted backend with no throttling."""
    return ModelClient(
        backend=scripted_backend,
        throttle=NullThrottle(),
        default_model=MODEL_FLASH,
        fallback_model=MODEL_FLASH_LITE,
    )


@pytest.fixture
def test_settings(tmp_path):
    """Settings writing artifacts to a temporary directory."""
    return Settings(
        api_key="test_key",
        stage_delay=0.0,
        output_dir=str(tmp_path / "analysis_output"),
    )


@pytest.fixture
def pipeline(model_client, test_settings):
    """Pipeline over the scripted backend with no inter-station pause."""
    return AnalysisPipeline(model_client, settings=test_settings)


@pytest.fixture
def mock_gemini_provider():
    """
    Standardized fixture for mocking the Gemini provider.

    Patches google.generativeai so no network call is made; the mocked
    model returns "Generated response".
    """
    with patch.dict(os.environ, {"GOOGLE_API_KEY": "test_key"}):
        with patch('google.generativeai.configure'):
            with patch('google.generativeai.GenerativeModel') as mock_model_class:
                mock_model = MagicMock()
                mock_response = MagicMock()
                mock_response.text = "Generated response"
                mock_response.candidates = []
                mock_model.generate_content.return_value = mock_response
                mock_model_class.return_value = mock_model

                provider = GeminiProvider(api_key="test_key")
                provider._mock_model = mock_model
                provider._mock_model_class = mock_model_class
                yield provider


@pytest.fixture
def client_factory():
    """
    Build (client, backend) pairs with extra rules placed ahead of the defaults.

    Usage: client, backend = client_factory([("Infer the main conflicts", "prose")])
    """
    def _make(overrides=None, failing_models=None, default=""):
        backend = ScriptedBackend(
            rules=list(overrides or []) + SCRIPTED_RESPONSES,
            default=default,
            failing_models=failing_models,
        )
        client = ModelClient(
            backend=backend,
            throttle=NullThrottle(),
            default_model=MODEL_FLASH,
            fallback_model=MODEL_FLASH_LITE,
        )
        return client, backend
    return _make


# Station outputs produced by the real stations over the scripted backend

@pytest.fixture
def station1_output(model_client, sample_drama_text):
    stage_input = Station1Input(full_text=sample_drama_text, project_name="بيت الموج")
    return asyncio.run(TextAnalysisStage(model_client).execute(stage_input)).output


@pytest.fixture
def station2_output(model_client, station1_output, sample_drama_text):
    stage_input = Station2Input(station1_output=station1_output, full_text=sample_drama_text)
    return asyncio.run(ConceptualAnalysisStage(model_client).execute(stage_input)).output


@pytest.fixture
def station3_output(model_client, station1_output, station2_output, sample_drama_text):
    stage_input = Station3Input(
        station1_output=station1_output,
        station2_output=station2_output,
        full_text=sample_drama_text,
        project_name="بيت الموج",
    )
    return asyncio.run(NetworkBuilderStage(model_client).execute(stage_input)).output


@pytest.fixture
def station4_output(model_client, station3_output):
    stage_input = Station4Input(station3_output=station3_output)
    return asyncio.run(EfficiencyMetricsStage(model_client).execute(stage_input)).output


@pytest.fixture
def station5_output(model_client, station3_output, station4_output, sample_drama_text):
    stage_input = Station5Input(
        station3_output=station3_output,
        station4_output=station4_output,
        full_text=sample_drama_text,
    )
    return asyncio.run(DynamicAnalysisStage(model_client).execute(stage_input)).output


@pytest.fixture
def station6_output(model_client, station3_output, station4_output, station5_output, sample_drama_text):
    stage_input = Station6Input(
        station3_output=station3_output,
        station4_output=station4_output,
        station5_output=station5_output,
        full_text=sample_drama_text,
    )
    return asyncio.run(DiagnosticsStage(model_client).execute(stage_input)).output


@pytest.fixture
def station7_input(station1_output, station2_output, station3_output,
                   station4_output, station5_output, station6_output):
    return Station7Input(
        station1_output=station1_output,
        station2_output=station2_output,
        station3_output=station3_output,
        station4_output=station4_output,
        station5_output=station5_output,
        station6_output=station6_output,
        project_name="بيت الموج",
    )
