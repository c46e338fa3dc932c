"""Unit tests for transcript speaker extraction."""

from __future__ import annotations

import pytest

from src.teamnotes.meetings.speakers import (
    extract_names_from_text,
    extract_speaker_names,
    is_valid_speaker_name,
)


class TestExtractSpeakerNames:
    def test_colon_form(self):
        assert extract_speaker_names("Jane Smith: I'll review it.") == ["Jane Smith"]

    def test_keyword_label_is_not_a_speaker(self):
        assert extract_speaker_names("Meeting: agenda item") == []

    @pytest.mark.parametrize(
        "line",
        [
            "Jane Smith - I'll review it.",
            "[Jane Smith] I'll review it.",
            "(Jane Smith) I'll review it.",
            "Jane Smith | I'll review it.",
            "Jane Smith > I'll review it.",
        ],
    )
    def test_separator_forms(self, line):
        assert extract_speaker_names(line) == ["Jane Smith"]

    def test_timestamp_prefix(self):
        transcript = "[00:01:23] Bob Jones: Let's start.\n10:02 Alice: Sounds good."
        assert extract_speaker_names(transcript) == ["Bob Jones", "Alice"]

    def test_distinct_in_first_appearance_order(self):
        transcript = "\n".join(
            [
                "Carol: Morning all.",
                "Bob Jones: Hi.",
                "Carol: First item.",
                "Alice Smith: Agreed.",
                "Bob Jones: Done.",
            ]
        )
        assert extract_speaker_names(transcript) == ["Carol", "Bob Jones", "Alice Smith"]

    def test_rejects_digits_and_keywords(self):
        transcript = "\n".join(
            [
                "Speaker 1: hello",
                "Action Items: ship it",
                "Audio Recording: started",
                "[Recording] on",
            ]
        )
        assert extract_speaker_names(transcript) == []

    def test_empty_and_unlabeled_text(self):
        assert extract_speaker_names("") == []
        assert extract_speaker_names("just some notes without any labels") == []

    def test_particles_allowed(self):
        assert extract_speaker_names("Ludwig van Beethoven: Da da da dum.") == [
            "Ludwig van Beethoven"
        ]


class TestIsValidSpeakerName:
    @pytest.mark.parametrize("name", ["Jane", "Jane Smith", "Mary-Kate O'Neil"])
    def test_accepts_names(self, name):
        assert is_valid_speaker_name(name)

    @pytest.mark.parametrize(
        "name",
        ["J", "agent007", "Meeting", "jane smith", "Jane smith", "A" * 41, "Next Steps"],
    )
    def test_rejects_non_names(self, name):
        assert not is_valid_speaker_name(name)


class TestExtractNamesFromText:
    def test_pairs_adjacent_capitalized_words(self):
        assert extract_names_from_text("Jane Smith will update the docs for Carol") == [
            "Jane Smith",
            "Carol",
        ]

    def test_skips_short_words_and_keywords(self):
        assert extract_names_from_text("Meeting notes for Bob") == ["Bob"]
