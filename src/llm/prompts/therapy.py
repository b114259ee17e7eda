"""
Prompts for therapy session turns.

Provides:
- Phase instructions: one short imperative sentence per TherapyPhase
- Therapy method descriptions folded into the system prompt, plus
  method-specific techniques for the main therapeutic phase
- The system prompt builder used by the context assembler
- Tagged output format for the closing summary turn
"""

from typing import Dict, List, Optional

from src.domain.models.context import SessionContext
from src.domain.models.phase import TherapyPhase
from src.domain.models.therapy_method import TherapyMethod


PHASE_INSTRUCTIONS: Dict[TherapyPhase, str] = {
    TherapyPhase.INITIALIZE: (
        "You are starting a new therapy session. Greet the client and explain "
        "how the session will proceed."
    ),
    TherapyPhase.MOOD_CHECK: (
        "Ask the client about their current mood and well-being, comparing with "
        "previous sessions if this is not the first one."
    ),
    TherapyPhase.SET_AGENDA: (
        "Agree on today's agenda with the client by asking which topics they want "
        "to discuss and what they expect."
    ),
    TherapyPhase.MAIN_THERAPY: (
        "Conduct the main therapeutic work using techniques appropriate to the "
        "chosen therapy method."
    ),
    TherapyPhase.SUMMARIZE: (
        "Summarize the main topics and discoveries of today's session, "
        "highlighting progress and areas for further work."
    ),
    TherapyPhase.FEEDBACK: (
        "Ask the client for feedback on the session: what helped and what "
        "could be improved."
    ),
    TherapyPhase.END: (
        "Close the session by thanking the client, reminding them of their "
        "homework and agreeing on the next session."
    ),
}

DEFAULT_PHASE_INSTRUCTION = (
    "Continue the therapy session in a natural and empathetic way."
)


THERAPY_METHODS: Dict[TherapyMethod, Dict[str, str]] = {
    TherapyMethod.COGNITIVE_BEHAVIORAL: {
        "display_name": "Cognitive Behavioral Therapy (CBT)",
        "approach": (
            "Help the client identify, question and change distorted thinking "
            "patterns and behaviours, using Socratic questions rather than "
            "ready-made answers."
        ),
        "main_therapy": (
            "Work with the issues the client raised: help them spot cognitive "
            "distortions such as catastrophising or overgeneralising, weigh the "
            "evidence for and against automatic thoughts, suggest behavioural "
            "experiments, teach breathing or muscle relaxation when anxiety is "
            "high, and solve problems step by step toward an action plan."
        ),
    },
    TherapyMethod.PSYCHODYNAMIC: {
        "display_name": "Psychodynamic Therapy",
        "approach": (
            "Explore how past experiences and unconscious patterns shape the "
            "client's present feelings and relationships."
        ),
        "main_therapy": (
            "Invite free association, notice recurring relationship patterns and "
            "defence mechanisms, connect present reactions to earlier "
            "experiences, and gently explore what happens between you and the "
            "client in the session."
        ),
    },
    TherapyMethod.HUMANISTIC: {
        "display_name": "Humanistic Therapy",
        "approach": (
            "Offer unconditional positive regard and empathic understanding, "
            "following the client's own direction toward growth."
        ),
        "main_therapy": (
            "Stay non-directive: listen actively, reflect feelings back, stay "
            "with the here and now, and help the client explore their values, "
            "choices and sense of meaning."
        ),
    },
    TherapyMethod.SYSTEMIC: {
        "display_name": "Systemic Therapy",
        "approach": (
            "Look at the client's difficulties in the context of their family "
            "and relationship systems, and the patterns between people."
        ),
        "main_therapy": (
            "Ask circular questions about how others react and relate, map the "
            "roles, boundaries and communication patterns involved, and reframe "
            "the problem in terms of the interactions that maintain it."
        ),
    },
    TherapyMethod.SOLUTION_FOCUSED: {
        "display_name": "Solution-Focused Brief Therapy",
        "approach": (
            "Focus on the client's strengths, past successes and concrete next "
            "steps toward a preferred future rather than on problems."
        ),
        "main_therapy": (
            "Use the miracle question, look for exceptions when the problem is "
            "absent or smaller, use scaling questions from 1 to 10 to mark "
            "progress, and compliment the client's resources."
        ),
    },
}


# Section tags the summary turn must emit; parsed by summary extraction.
SUMMARY_TAGS: Dict[str, str] = {
    "main_topics": "TOPICS",
    "key_insights": "INSIGHT",
    "progress": "PROGRESS",
    "homework": "HOMEWORK",
}

SUMMARY_FORMAT_INSTRUCTIONS = """

## Output format
Write your closing summary for the client, then append these sections exactly:
###TOPICS###
<main topics of the session, comma-separated>
###INSIGHT###
<the single most important insight, one or two sentences>
###PROGRESS###
<one sentence on the progress made>
###HOMEWORK###
<the exercise the client should practise before the next session>"""


def get_phase_instruction(phase: Optional[TherapyPhase]) -> str:
    """Phase-specific instruction, or the default for an unrecognized phase."""
    if phase is None:
        return DEFAULT_PHASE_INSTRUCTION
    return PHASE_INSTRUCTIONS.get(phase, DEFAULT_PHASE_INSTRUCTION)


def get_method_display_name(method: TherapyMethod) -> str:
    return THERAPY_METHODS[method]["display_name"]


def get_method_phase_guidance(
    method: TherapyMethod, phase: Optional[TherapyPhase]
) -> Optional[str]:
    """Method-specific techniques for ``phase``, if the method defines any."""
    if phase is None:
        return None
    return THERAPY_METHODS.get(method, {}).get(phase.value)


def get_therapy_system_prompt(
    context: SessionContext,
    phase: Optional[TherapyPhase],
    extra_instructions: Optional[List[str]] = None,
) -> str:
    """
    Build the system prompt for one turn.

    Args:
        context: Assembled session context
        phase: Phase driving this turn
        extra_instructions: Additional sentences appended after the phase
            instruction (output format, advancement marker)

    Returns:
        System prompt string
    """
    method = context.session_info.therapy_method
    method_info = THERAPY_METHODS.get(method, {})
    client = context.client_profile
    progress = context.therapy_progress
    previous = context.previous_session_summary

    parts = [
        f"You are a therapist conducting a therapy session using "
        f"{method_info.get('display_name', method.value)}."
    ]
    if method_info.get("approach"):
        parts.append(method_info["approach"])

    parts.append(f"Your client's name is {client.name}.")

    if client.goals:
        parts.append(f"The client's therapy goals are: {', '.join(client.goals)}.")

    if client.challenges:
        parts.append(
            f"The client is struggling with the following challenges: "
            f"{', '.join(client.challenges)}."
        )

    parts.append(f"Overall therapy status: {progress.overall_status}.")

    if previous is not None:
        topics = ", ".join(previous.main_topics) or "no recorded topics"
        parts.append(
            f"In the previous session (no. {previous.session_number}) the topics "
            f"discussed were: {topics}."
        )
        if previous.key_insights:
            parts.append(f"Key insight: {previous.key_insights.rstrip('.')}.")
        if previous.homework:
            parts.append(f"Assigned homework: {previous.homework.rstrip('.')}.")

    parts.append(get_phase_instruction(phase))
    guidance = get_method_phase_guidance(method, phase)
    if guidance:
        parts.append(guidance)

    prompt = " ".join(parts)
    for instruction in extra_instructions or []:
        prompt += instruction if instruction.startswith("\n") else f" {instruction}"
    return prompt


def get_advance_marker_instruction(marker: str) -> str:
    """Ask the model to signal when the current phase's goal is met."""
    return (
        f"When the goal of this part of the session has been achieved, end your "
        f"reply with the token {marker}. Otherwise do not mention it."
    )


def get_phase_classifier_prompt(
    phase: TherapyPhase, user_message: str, assistant_reply: str
) -> str:
    """Yes/no question deciding whether a phase's goal has been met."""
    return (
        f"A therapy session is in the phase '{phase.value}'. The goal of this "
        f"phase is: {get_phase_instruction(phase)}\n\n"
        f"Client: {user_message}\n"
        f"Therapist: {assistant_reply}\n\n"
        f"Has the goal of this phase been achieved so that the session can move "
        f"on? Answer with exactly one word: YES or NO."
    )
