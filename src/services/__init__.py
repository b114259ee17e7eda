# noqa
from src.services.session_service import SessionService
from src.services.context_assembler import ContextAssembler
from src.services.flow_state_machine import FlowStateMachine

__all__ = ["SessionService", "ContextAssembler", "FlowStateMachine"]
