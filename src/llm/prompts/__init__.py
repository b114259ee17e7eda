# noqa
from src.llm.prompts.therapy import (
    SUMMARY_FORMAT_INSTRUCTIONS,
    SUMMARY_TAGS,
    get_advance_marker_instruction,
    get_phase_classifier_prompt,
    get_phase_instruction,
    get_therapy_system_prompt,
)

__all__ = [
    "SUMMARY_FORMAT_INSTRUCTIONS",
    "SUMMARY_TAGS",
    "get_advance_marker_instruction",
    "get_phase_classifier_prompt",
    "get_phase_instruction",
    "get_therapy_system_prompt",
]
