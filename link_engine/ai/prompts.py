"""Centralized prompt templates and answer parsing for link classification."""

import re
from typing import Optional

from pydantic import BaseModel

# The only accepted answer grammar: a 1-based index or the literal "none"
_ANSWER_RE = re.compile(r"^\s*(none|[1-9][0-9]*)\s*$", re.IGNORECASE)


class AnswerParseError(ValueError):
    """Raised when a classifier answer is outside the accepted grammar."""


def parse_index_answer(text: Optional[str], count: int) -> Optional[int]:
    """
    Parse a classifier answer into a 0-based index.

    Args:
        text: Raw classifier output
        count: Number of options that were presented

    Returns:
        0-based index of the chosen option, or None for "none"

    Raises:
        AnswerParseError: If the answer is not an integer or "none", or the
            integer is out of range
    """
    match = _ANSWER_RE.match(text or "")
    if not match:
        raise AnswerParseError(f"Unparseable classifier answer: {(text or '')[:50]!r}")

    token = match.group(1).lower()
    if token == "none":
        return None

    index = int(token)
    if index > count:
        raise AnswerParseError(f"Answer {index} out of range (1..{count})")
    return index - 1


class ListMatchOption(BaseModel):
    link_type: str
    title: Optional[str] = None
    url: str


class ListMatchPrompt(BaseModel):
    """Exhaustive exact-match prompt used for small catalogs."""

    slice_description: str
    options: list[ListMatchOption]

    def to_prompt(self) -> str:
        lines = [
            f"{i}. [{o.link_type}] {o.title or 'Untitled'} -> {o.url}"
            for i, o in enumerate(self.options, 1)
        ]
        return "\n".join([
            f'A slice of an email shows: "{self.slice_description}"',
            "",
            "Here are all known product/collection links for this brand:",
            *lines,
            "",
            "Which link is the CORRECT match for what's shown in the slice?",
            "",
            "MATCHING RULES:",
            "1. If the slice shows a SPECIFIC PRODUCT, you must find that exact product URL.",
            "2. A collection URL is NOT a valid match for a specific product.",
            "3. Only match collection URLs when the slice promotes a COLLECTION.",
            "4. Related is not the same as correct.",
            "5. Dates, seasons and versions must match exactly: 'Winter 2025' is NOT 'Winter 2024'.",
            "6. If the exact link is not in the list, answer none.",
            "",
            "Respond with ONLY the number of the exact correct link, or the word none.",
        ])


class CandidateOption(BaseModel):
    title: Optional[str] = None
    url: str
    similarity: float


class CandidateConfirmPrompt(BaseModel):
    """Confirmation prompt for medium-confidence vector candidates."""

    slice_description: str
    candidates: list[CandidateOption]

    def to_prompt(self) -> str:
        lines = [
            f"{i}. {c.title or 'Untitled'} ({round(c.similarity * 100)}% match) -> {c.url}"
            for i, c in enumerate(self.candidates, 1)
        ]
        return "\n".join([
            f'A slice shows: "{self.slice_description}"',
            "",
            "Top matching links from the brand's catalog:",
            *lines,
            "",
            "Which is the correct match? A collection is never a substitute for a specific "
            "product, and mismatched dates, seasons or versions are not matches.",
            "Respond with ONLY the number, or the word none if none are correct.",
        ])
