"""
Pipeline stages for turn processing.

Each stage encapsulates one logical step of a therapy turn. Stages execute
sequentially in the TurnPipeline orchestrator.
"""

from .context_loading_stage import ContextLoadingStage
from .context_assembly_stage import ContextAssemblyStage
from .response_generation_stage import ResponseGenerationStage
from .phase_advancement_stage import PhaseAdvancementStage
from .turn_commit_stage import TurnCommitStage

__all__ = [
    "ContextLoadingStage",
    "ContextAssemblyStage",
    "ResponseGenerationStage",
    "PhaseAdvancementStage",
    "TurnCommitStage",
]
