"""
Word Diff Utility - Before/after comparison for recommendation previews

Splits both texts into word tokens (each word keeps its trailing
whitespace) and aligns them with difflib.SequenceMatcher. Adjacent spans
with the same tag are merged, so the output alternates between
unchanged/added/removed runs.

Usage:
    spans = diff_words("Focus on growth.", "Focus on growth and risk.")
    # [DiffSpan("unchanged", "Focus on "), DiffSpan("removed", "growth."),
    #  DiffSpan("added", "growth and risk.")]
"""

import difflib
import re
from dataclasses import dataclass
from typing import List

UNCHANGED = "unchanged"
ADDED = "added"
REMOVED = "removed"

_TOKEN_RE = re.compile(r"\S+\s*|\s+")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class DiffSpan:
    tag: str
    text: str


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace to one space and trim the ends."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def tokenize(text: str) -> List[str]:
    return _TOKEN_RE.findall(text or "")


def diff_words(before: str, after: str) -> List[DiffSpan]:
    """
    Word-level diff between two texts.

    Args:
        before: Original text
        after: Changed text

    Returns:
        Ordered spans; concatenating unchanged+removed gives ``before``,
        unchanged+added gives ``after``. Identical inputs give a single
        unchanged span.
    """
    if before == after:
        return [DiffSpan(UNCHANGED, before)]

    old_tokens = tokenize(before)
    new_tokens = tokenize(after)
    matcher = difflib.SequenceMatcher(None, old_tokens, new_tokens, autojunk=False)

    spans: List[DiffSpan] = []
    for op, i1, i2, j1, j2 in matcher.get_opcodes():
        if op == "equal":
            _append(spans, UNCHANGED, "".join(old_tokens[i1:i2]))
        elif op == "delete":
            _append(spans, REMOVED, "".join(old_tokens[i1:i2]))
        elif op == "insert":
            _append(spans, ADDED, "".join(new_tokens[j1:j2]))
        else:  # replace
            _append(spans, REMOVED, "".join(old_tokens[i1:i2]))
            _append(spans, ADDED, "".join(new_tokens[j1:j2]))
    return spans


def _append(spans: List[DiffSpan], tag: str, text: str) -> None:
    if not text:
        return
    if spans and spans[-1].tag == tag:
        spans[-1] = DiffSpan(tag, spans[-1].text + text)
    else:
        spans.append(DiffSpan(tag, text))


def has_changes(before: str, after: str) -> bool:
    """True if the whitespace-normalized texts differ by at least one word."""
    spans = diff_words(normalize_whitespace(before), normalize_whitespace(after))
    return any(span.tag != UNCHANGED for span in spans)
