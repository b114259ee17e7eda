"""Therapy phase definitions and the legal transitions between them.

A session moves through a fixed conversational flow:

    initialize -> mood_check -> set_agenda -> main_therapy
        -> {main_therapy | summarize} -> feedback -> end

main_therapy is the only phase with more than one successor: it may loop on
itself for any number of turns before moving on to summarize. end has no
successors.
"""

from enum import Enum
from typing import Dict, Tuple


class TherapyPhase(str, Enum):
    """Named stage of the therapeutic conversation flow."""

    INITIALIZE = "initialize"
    MOOD_CHECK = "mood_check"
    SET_AGENDA = "set_agenda"
    MAIN_THERAPY = "main_therapy"
    SUMMARIZE = "summarize"
    FEEDBACK = "feedback"
    END = "end"


INITIAL_PHASE = TherapyPhase.INITIALIZE
TERMINAL_PHASE = TherapyPhase.END

# Successor order matters: an unqualified transition takes the first entry.
PHASE_TRANSITIONS: Dict[TherapyPhase, Tuple[TherapyPhase, ...]] = {
    TherapyPhase.INITIALIZE: (TherapyPhase.MOOD_CHECK,),
    TherapyPhase.MOOD_CHECK: (TherapyPhase.SET_AGENDA,),
    TherapyPhase.SET_AGENDA: (TherapyPhase.MAIN_THERAPY,),
    TherapyPhase.MAIN_THERAPY: (TherapyPhase.MAIN_THERAPY, TherapyPhase.SUMMARIZE),
    TherapyPhase.SUMMARIZE: (TherapyPhase.FEEDBACK,),
    TherapyPhase.FEEDBACK: (TherapyPhase.END,),
    TherapyPhase.END: (),
}

