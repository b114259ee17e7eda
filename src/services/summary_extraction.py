"""
Structured summary extraction from the closing summary turn.

The summary prompt asks the model to append tagged sections:

    ###TOPICS###    comma/semicolon/newline separated topics
    ###INSIGHT###   key insight
    ###PROGRESS###  progress note
    ###HOMEWORK###  assigned exercise

Each section runs until the next tag or the end of the reply. Missing tags
degrade gracefully: no topics, the insight falls back to the start of the
untagged reply, progress and homework stay empty.
"""

import re
from dataclasses import dataclass
from typing import Dict, List

from src.domain.models.session import SessionSummary
from src.llm.prompts.therapy import SUMMARY_TAGS

FALLBACK_INSIGHT_LENGTH = 200

_TAG_PATTERN = re.compile(r"###([A-Z]+)###")
_TOPIC_SPLIT = re.compile(r"[,;\n]")


@dataclass(frozen=True)
class ExtractedSummary:
    """Parsed summary plus the reply text to show and persist."""

    summary: SessionSummary
    display_text: str
    tagged: bool


def _split_sections(reply: str) -> Dict[str, str]:
    """Map tag name -> section body for every tag present in ``reply``."""
    sections: Dict[str, str] = {}
    matches = list(_TAG_PATTERN.finditer(reply))
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(reply)
        sections[match.group(1)] = reply[match.end() : end].strip()
    return sections


def _split_topics(text: str) -> List[str]:
    return [t.strip(" -*\t") for t in _TOPIC_SPLIT.split(text) if t.strip(" -*\t")]


def strip_tags(reply: str) -> str:
    """Reply with every known summary section removed."""
    known = set(SUMMARY_TAGS.values())
    first = next(
        (m for m in _TAG_PATTERN.finditer(reply) if m.group(1) in known), None
    )
    return reply[: first.start()].strip() if first else reply.strip()


def extract_summary(reply: str) -> ExtractedSummary:
    """
    Parse a summary-turn reply into a SessionSummary.

    Args:
        reply: Raw model reply for the summary turn

    Returns:
        ExtractedSummary with the parsed fields and the reply without tags
    """
    sections = _split_sections(reply)
    known = {tag: sections[tag] for tag in SUMMARY_TAGS.values() if tag in sections}
    display_text = strip_tags(reply)

    if not known:
        return ExtractedSummary(
            summary=SessionSummary(
                key_insights=reply.strip()[:FALLBACK_INSIGHT_LENGTH],
            ),
            display_text=display_text,
            tagged=False,
        )

    summary = SessionSummary(
        main_topics=_split_topics(known.get(SUMMARY_TAGS["main_topics"], "")),
        key_insights=known.get(SUMMARY_TAGS["key_insights"], ""),
        progress=known.get(SUMMARY_TAGS["progress"], ""),
        homework=known.get(SUMMARY_TAGS["homework"], ""),
    )
    return ExtractedSummary(
        summary=summary,
        # A reply made only of tagged sections still needs a visible message
        display_text=display_text or summary.key_insights,
        tagged=True,
    )
