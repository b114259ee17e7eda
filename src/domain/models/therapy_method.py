"""Supported therapy methods."""

from enum import Enum


class TherapyMethod(str, Enum):
    """Therapeutic approach a session is conducted in."""

    COGNITIVE_BEHAVIORAL = "cognitive_behavioral"
    PSYCHODYNAMIC = "psychodynamic"
    HUMANISTIC = "humanistic"
    SYSTEMIC = "systemic"
    SOLUTION_FOCUSED = "solution_focused"
