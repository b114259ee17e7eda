"""
Session API routes.

Thin adapters over SessionService: start, turn, end, status.
"""

from fastapi import APIRouter, status
import structlog

from src.api.dependencies import SessionServiceDep
from src.api.schemas import (
    EndSessionRequest,
    EndSessionResponse,
    SessionCreate,
    SessionStatusResponse,
    SessionSummarySchema,
    StartSessionResponse,
    TurnRequest,
    TurnResponse,
)

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post(
    "",
    response_model=StartSessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_session(request: SessionCreate, service: SessionServiceDep):
    """Start a therapy session for a profile and return the opening message."""
    handle = await service.start_session(request.profile_id, request.therapy_method)

    return StartSessionResponse(
        session_id=handle.session_id,
        session_number=handle.session_number,
        continuity_status=handle.continuity_status,
        phase=handle.phase,
        opening_message=handle.opening_message,
        degraded=handle.degraded,
    )


@router.post("/{session_id}/messages", response_model=TurnResponse)
async def process_turn(
    session_id: str, request: TurnRequest, service: SessionServiceDep
):
    """Send a client message and receive the therapist's reply.

    A provider failure is not an HTTP error: the reply is the fallback text
    and ``degraded`` is true.
    """
    result = await service.process_turn(session_id, request.text)

    return TurnResponse(
        session_id=result.session_id,
        reply=result.reply,
        phase=result.phase,
        previous_phase=result.previous_phase,
        advanced=result.advanced,
        degraded=result.degraded,
        phase_turn_count=result.phase_turn_count,
        latency_ms=result.latency_ms,
    )


@router.put("/{session_id}/end", response_model=EndSessionResponse)
async def end_session(
    session_id: str,
    service: SessionServiceDep,
    request: EndSessionRequest | None = None,
):
    """End a session from any phase and return its structured summary."""
    request = request or EndSessionRequest()
    result = await service.end_session(
        session_id,
        emotional_state_end=request.emotional_state_end,
        effectiveness_rating=request.effectiveness_rating,
    )

    return EndSessionResponse(
        session_id=result.session_id,
        summary=SessionSummarySchema(**result.summary.model_dump()),
        closing_message=result.closing_message,
        metrics=result.metrics,
        phase=result.phase,
        is_completed=result.is_completed,
        end_time=result.end_time,
        degraded=result.degraded,
    )


@router.get("/{session_id}", response_model=SessionStatusResponse)
async def get_session_status(session_id: str, service: SessionServiceDep):
    """Current phase, turn counts and completion of a session."""
    s = await service.get_status(session_id)

    return SessionStatusResponse(
        session_id=s.session_id,
        profile_id=s.profile_id,
        session_number=s.session_number,
        continuity_status=s.continuity_status,
        phase=s.phase,
        phase_turn_count=s.phase_turn_count,
        user_turn_count=s.user_turn_count,
        transcript_length=s.transcript_length,
        is_completed=s.is_completed,
        start_time=s.start_time,
        end_time=s.end_time,
    )
