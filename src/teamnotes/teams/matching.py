"""Speaker-to-team-member matching.

Maps a free-text name (a transcript speaker or an AI-suggested action item
owner) onto a roster entry with an ordered, case-insensitive heuristic;
the first rule that hits wins:

1. exact display name
2. the member's first name
3. the member's email local part, ignoring dots, spaces, underscores, hyphens
4. no match

What happens on "no match" with a non-empty roster is a named policy:
``strict_matching=True`` returns None, ``strict_matching=False`` falls back
to the first roster member. An empty roster always yields None.
"""

from __future__ import annotations

import re

import structlog

from src.teamnotes.config import get_settings
from src.teamnotes.teams.schemas import TeamMember

logger = structlog.get_logger(__name__)

_PUNCTUATION = re.compile(r"[^\w\s]")
_SEPARATORS = re.compile(r"[\s._\-]+")


def normalize_name(name: str) -> str:
    """Lowercase, strip punctuation, and collapse whitespace."""
    return " ".join(_PUNCTUATION.sub("", name.lower()).split())


def _compact(value: str) -> str:
    return _SEPARATORS.sub("", value.lower().strip())


def _email_local_part(email: str) -> str:
    return email.split("@", 1)[0]


class MemberMatcher:
    """Matches candidate names to team members.

    Args:
        strict_matching: No-match policy. Defaults to ``Settings.STRICT_MATCHING``.
    """

    def __init__(self, strict_matching: bool | None = None) -> None:
        if strict_matching is None:
            strict_matching = get_settings().STRICT_MATCHING
        self.strict_matching = strict_matching

    def match(self, name: str | None, roster: list[TeamMember]) -> TeamMember | None:
        """Match one candidate name against a roster.

        Args:
            name: Candidate name (speaker label or owner hint).
            roster: Team members to match against, in roster order.

        Returns:
            The matched member, the first member under the lenient policy,
            or None.
        """
        if not roster:
            return None

        normalized = normalize_name(name or "")
        if normalized:
            rules = (
                ("display_name", lambda: self._by_display_name(normalized, roster)),
                ("first_name", lambda: self._by_first_name(normalized, roster)),
                ("email_prefix", lambda: self._by_email_prefix(name or "", roster)),
            )
            for rule, apply_rule in rules:
                member = apply_rule()
                if member is not None:
                    logger.debug(
                        "matching.member_matched",
                        candidate=name,
                        user_id=member.user_id,
                        rule=rule,
                    )
                    return member

        if self.strict_matching:
            return None

        logger.debug(
            "matching.fallback_to_first_member",
            candidate=name,
            user_id=roster[0].user_id,
        )
        return roster[0]

    def match_multiple(
        self, names: list[str], roster: list[TeamMember]
    ) -> dict[str, TeamMember | None]:
        """Match each name independently; keys keep input order."""
        return {name: self.match(name, roster) for name in names}

    # ── Rules ────────────────────────────────────────────────────────────

    @staticmethod
    def _by_display_name(
        normalized: str, roster: list[TeamMember]
    ) -> TeamMember | None:
        for member in roster:
            if normalize_name(member.display_name) == normalized:
                return member
        return None

    @staticmethod
    def _by_first_name(
        normalized: str, roster: list[TeamMember]
    ) -> TeamMember | None:
        for member in roster:
            parts = normalize_name(member.display_name).split()
            if parts and parts[0] == normalized:
                return member
        return None

    @staticmethod
    def _by_email_prefix(name: str, roster: list[TeamMember]) -> TeamMember | None:
        candidate = _compact(name)
        if not candidate:
            return None
        for member in roster:
            if not member.email:
                continue
            if _compact(_email_local_part(member.email)) == candidate:
                return member
        return None
