"""
Drama Analyst Pipeline

A seven-station pipeline that turns a dramatic text into a structured,
multi-facet narrative analysis using a generative text service.
"""

from .config import Settings, load_settings, configure_logging
from .models import PipelineInput, validate_pipeline_input
from .network import ConflictNetwork, NetworkSnapshot
from .pipeline import AnalysisPipeline, PipelineRunResult, create_pipeline

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "load_settings",
    "configure_logging",
    "PipelineInput",
    "validate_pipeline_input",
    "ConflictNetwork",
    "NetworkSnapshot",
    "AnalysisPipeline",
    "PipelineRunResult",
    "create_pipeline",
]
