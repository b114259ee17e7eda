"""
Turn processing pipeline.

Composable stages for ProcessTurn: load the session, assemble context,
generate the reply, decide phase advancement, commit the turn.
"""

from .base import TurnStage
from .context import PipelineContext
from .pipeline import TurnPipeline
from .result import TurnResult

__all__ = [
    "TurnStage",
    "PipelineContext",
    "TurnPipeline",
    "TurnResult",
]
