"""
Pipeline orchestrator for turn processing.

TurnPipeline executes stages sequentially with timing and error handling.
"""

import time
from typing import List

import structlog

from .base import TurnStage
from .context import PipelineContext
from .result import TurnResult

log = structlog.get_logger(__name__)


class TurnPipeline:
    """
    Orchestrates execution of pipeline stages.

    Executes stages sequentially, tracking timing and handling errors.
    """

    def __init__(self, stages: List[TurnStage]):
        """
        Initialize pipeline with a list of stages.

        Args:
            stages: Ordered list of TurnStage instances
        """
        self.stages = stages

    async def execute(self, context: PipelineContext) -> TurnResult:
        """
        Execute all stages sequentially.

        Args:
            context: Initial turn context with session_id and user_input

        Returns:
            TurnResult with reply and resulting phase

        Raises:
            Exception: If any stage fails
        """
        start_time = time.perf_counter()

        log.info(
            "pipeline_started",
            session_id=context.session_id,
            num_stages=len(self.stages),
        )

        for stage in self.stages:
            stage_start = time.perf_counter()

            try:
                log.debug(
                    "stage_started",
                    stage_name=stage.stage_name,
                    session_id=context.session_id,
                )

                context = await stage.process(context)

                stage_elapsed = (time.perf_counter() - stage_start) * 1000
                context.stage_timings[stage.stage_name] = stage_elapsed

                log.debug(
                    "stage_completed",
                    stage_name=stage.stage_name,
                    duration_ms=stage_elapsed,
                )

            except Exception as e:
                log.error(
                    "stage_failed",
                    stage_name=stage.stage_name,
                    session_id=context.session_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                raise

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        log.info(
            "pipeline_completed",
            session_id=context.session_id,
            latency_ms=latency_ms,
            stage_timings=context.stage_timings,
        )

        return self._build_result(context, latency_ms)

    def _build_result(self, context: PipelineContext, latency_ms: int) -> TurnResult:
        advancement = context.phase_advancement_output
        commit = context.turn_commit_output
        if advancement is None or commit is None:
            raise RuntimeError(
                "Pipeline contract violation: result requested before "
                "PhaseAdvancementStage and TurnCommitStage completed. "
                f"Session: {context.session_id}"
            )

        return TurnResult(
            session_id=context.session_id,
            reply=advancement.reply,
            phase=advancement.phase,
            previous_phase=advancement.previous_phase,
            advanced=advancement.advanced,
            degraded=context.degraded,
            phase_turn_count=advancement.phase_turn_count,
            transcript_length=commit.transcript_length,
            latency_ms=latency_ms,
        )
