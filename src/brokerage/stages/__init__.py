"""Client pipeline stages.

This module manages the stages a client progresses through:
- lead-intake → client-onboarding → budget-processing ↔ document-management
- → billing-automation → completed

Custom pipelines with their own stages can be registered alongside the
default one.
"""

from src.brokerage.stages.graph import StageGraph
from src.brokerage.stages.models import (
    DEFAULT_PIPELINE_ID,
    DEFAULT_PIPELINES,
    DEFAULT_STAGE_CONFIGS,
    CustomPipeline,
    DefaultStage,
    DocumentType,
    StageConfig,
    stage_value,
)
from src.brokerage.stages.registry import (
    PipelineConfigError,
    PipelineRegistry,
    build_registry,
    load_pipelines_file,
)
from src.brokerage.stages.validator import StageTransitionValidator

__all__ = [
    "CustomPipeline",
    "DEFAULT_PIPELINE_ID",
    "DEFAULT_PIPELINES",
    "DEFAULT_STAGE_CONFIGS",
    "DefaultStage",
    "DocumentType",
    "PipelineConfigError",
    "PipelineRegistry",
    "StageConfig",
    "StageGraph",
    "StageTransitionValidator",
    "build_registry",
    "load_pipelines_file",
    "stage_value",
]
