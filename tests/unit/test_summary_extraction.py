"""Tests for structured summary extraction."""

from src.services.summary_extraction import extract_summary, strip_tags

TAGGED_REPLY = """Thank you for today, Anna. We looked at how worry affects your sleep.

###TOPICS###
sleep problems, worry at night; work stress
###INSIGHT###
Rumination starts when you check work email in bed.
###PROGRESS###
You named three concrete triggers.
###HOMEWORK###
Keep a worry journal for one week."""


class TestTaggedReply:
    def test_all_sections_parsed(self):
        result = extract_summary(TAGGED_REPLY)

        assert result.tagged
        assert result.summary.main_topics == [
            "sleep problems",
            "worry at night",
            "work stress",
        ]
        assert result.summary.key_insights == (
            "Rumination starts when you check work email in bed."
        )
        assert result.summary.progress == "You named three concrete triggers."
        assert result.summary.homework == "Keep a worry journal for one week."

    def test_display_text_has_no_tags(self):
        result = extract_summary(TAGGED_REPLY)

        assert "###" not in result.display_text
        assert result.display_text.startswith("Thank you for today, Anna.")
        assert "worry journal" not in result.display_text

    def test_topics_split_on_newlines_and_bullets(self):
        reply = "Done.\n###TOPICS###\n- sleep\n- family\n\n###INSIGHT###\nX"
        assert extract_summary(reply).summary.main_topics == ["sleep", "family"]

    def test_missing_sections_are_empty(self):
        result = extract_summary("Summary.\n###INSIGHT###\nOnly this.")

        assert result.tagged
        assert result.summary.main_topics == []
        assert result.summary.key_insights == "Only this."
        assert result.summary.progress == ""
        assert result.summary.homework == ""

    def test_reply_of_only_tags_keeps_visible_message(self):
        result = extract_summary("###INSIGHT###\nBreathing helps.")
        assert result.display_text == "Breathing helps."


class TestUntaggedReply:
    def test_fallback_insight_is_reply_prefix(self):
        reply = "A" * 500
        result = extract_summary(reply)

        assert not result.tagged
        assert result.summary.main_topics == []
        assert result.summary.key_insights == "A" * 200
        assert result.summary.progress == ""
        assert result.summary.homework == ""
        assert result.display_text == reply

    def test_unknown_tags_are_ignored(self):
        result = extract_summary("Hello ###MOOD### fine")
        assert not result.tagged
        assert result.display_text == "Hello ###MOOD### fine"


def test_strip_tags_without_tags_is_trimmed_reply():
    assert strip_tags("  plain reply \n") == "plain reply"
