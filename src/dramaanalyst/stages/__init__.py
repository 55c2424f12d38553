"""
Analysis stations.

Each station wraps its logic in BaseStage.execute, which never propagates
failures and returns the station's fallback output instead.
"""

from .base import BaseStage, Err, Ok, StageConfig, StageResult
from .text_analysis import TextAnalysisStage
from .conceptual_analysis import ConceptualAnalysisStage
from .network_builder import NetworkBuilderStage
from .efficiency_metrics import EfficiencyAnalyzer, EfficiencyMetricsStage
from .dynamic_analysis import DynamicAnalysisStage
from .diagnostics import DiagnosticsStage
from .finalization import FinalizationStage

__all__ = [
    "BaseStage",
    "Err",
    "Ok",
    "StageConfig",
    "StageResult",
    "TextAnalysisStage",
    "ConceptualAnalysisStage",
    "NetworkBuilderStage",
    "EfficiencyAnalyzer",
    "EfficiencyMetricsStage",
    "DynamicAnalysisStage",
    "DiagnosticsStage",
    "FinalizationStage",
]
