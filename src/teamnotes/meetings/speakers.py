"""Speaker name extraction from free-form transcript text.

Recognizes the speaker-label conventions common in exported transcripts:

    Jane Smith: I'll review it.
    Jane Smith - I'll review it.
    [Jane Smith] I'll review it.
    (Jane Smith) I'll review it.
    Jane Smith | I'll review it.
    Jane Smith > I'll review it.

Line-prefixed forms may follow a ``[00:01:23]`` style timestamp. Candidates
are validated (no digits, no transcript keywords, 2-40 characters,
capitalized components) and anything else is silently dropped, so
extraction degrades to an empty list instead of raising.

Exports:
    extract_speaker_names: Distinct speaker names in order of first appearance.
    extract_names_from_text: Capitalized name candidates from free text.
    is_valid_speaker_name: Validation applied to every candidate.
"""

from __future__ import annotations

import re

MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 40

# Words that label transcript structure rather than people.
NON_NAME_KEYWORDS: frozenset[str] = frozenset({
    "action", "actions", "agenda", "attendees", "audio", "call", "conference",
    "date", "decision", "decisions", "discussion", "follow", "item", "items",
    "meeting", "meetings", "minutes", "next", "note", "notes", "participants",
    "recording", "session", "steps", "subject", "summary", "time", "todo",
    "topic", "topics", "transcript", "update", "updates", "video",
})

# Lowercase surname particles allowed between capitalized components.
NAME_PARTICLES: frozenset[str] = frozenset({
    "al", "bin", "da", "de", "del", "der", "di", "du", "la", "le", "van", "von",
})

_NAME = r"[A-Z][A-Za-z'.\-]*(?:[ \t]+[A-Za-z][A-Za-z'.\-]*){0,3}"
_TIMESTAMP = r"(?:[\[(]?\d{1,2}:\d{2}(?::\d{2})?[\])]?[ \t]*)?"
_LINE_START = rf"^[ \t]*{_TIMESTAMP}"

_LINE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"{_LINE_START}(?P<name>{_NAME})[ \t]*:"),
    re.compile(rf"{_LINE_START}(?P<name>{_NAME})[ \t]+-[ \t]+"),
    re.compile(rf"{_LINE_START}(?P<name>{_NAME})[ \t]*\|"),
    re.compile(rf"{_LINE_START}(?P<name>{_NAME})[ \t]*>"),
)

_ENCLOSED_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\[(?P<name>[^\[\]\n]{1,60})\]"),
    re.compile(r"\((?P<name>[^()\n]{1,60})\)"),
)

_NAME_FULL = re.compile(_NAME)
_CAPITALIZED_WORD = re.compile(r"^[A-Z][a-z]+$")


def is_valid_speaker_name(name: str) -> bool:
    """Check whether a candidate token looks like a person's name."""
    name = name.strip()
    if not MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH:
        return False
    if any(ch.isdigit() for ch in name):
        return False
    if not _NAME_FULL.fullmatch(name):
        return False

    words = name.split()
    for word in words:
        if word.lower().strip(".'-") in NON_NAME_KEYWORDS:
            return False
    for word in words[1:]:
        if not (word[0].isupper() or word.lower() in NAME_PARTICLES):
            return False
    return True


def _normalize_whitespace(name: str) -> str:
    return " ".join(name.split())


def extract_speaker_names(transcript: str) -> list[str]:
    """Extract distinct candidate speaker names from a transcript.

    Args:
        transcript: Raw transcript text.

    Returns:
        Names in order of first appearance; empty for empty or unlabeled text.
    """
    if not transcript:
        return []

    seen: dict[str, None] = {}
    for line in transcript.splitlines():
        found: list[tuple[int, str]] = []
        for pattern in _LINE_PATTERNS:
            match = pattern.match(line)
            if match:
                found.append((match.start("name"), match.group("name")))
        for pattern in _ENCLOSED_PATTERNS:
            for match in pattern.finditer(line):
                found.append((match.start("name"), match.group("name")))

        for _, raw in sorted(found, key=lambda pair: pair[0]):
            name = _normalize_whitespace(raw)
            if name not in seen and is_valid_speaker_name(name):
                seen[name] = None

    return list(seen)


def extract_names_from_text(text: str) -> list[str]:
    """Pull capitalized name candidates out of free text.

    Adjacent capitalized words are paired into a full name ("Jane Smith"),
    lone capitalized words are returned as single names. Keywords are skipped.

    Args:
        text: Any text, e.g. an action item description.

    Returns:
        Candidate names in order of appearance (may contain duplicates).
    """
    words = [re.sub(r"[^\w]", "", w) for w in text.split()]
    names: list[str] = []
    i = 0
    while i < len(words):
        word = words[i]
        if (
            len(word) > 2
            and _CAPITALIZED_WORD.match(word)
            and word.lower() not in NON_NAME_KEYWORDS
        ):
            nxt = words[i + 1] if i + 1 < len(words) else ""
            if _CAPITALIZED_WORD.match(nxt) and nxt.lower() not in NON_NAME_KEYWORDS:
                names.append(f"{word} {nxt}")
                i += 2
                continue
            names.append(word)
        i += 1
    return names
