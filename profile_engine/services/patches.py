"""
Section Edit Primitives - Apply one add/remove/modify edit to section text

Shared by the generator (to compute previewAfter for a single edit) and by
the patch applier (to apply a batch against a working copy).

Matching Rules:
    - Target text is matched whitespace-insensitively: "growth  metrics"
      matches "growth\\nmetrics". Only the first occurrence is touched.
    - add always succeeds and appends after a blank line.
    - remove/modify raise ConflictError when the target text is absent,
      which at apply time means the section drifted since generation.
"""

import re
from typing import Optional, Protocol, Tuple

from profile_engine.errors import ConflictError, ValidationError
from profile_engine.services.diff import normalize_whitespace

ADD_SEPARATOR = "\n\n"
_NO_SPACE_BEFORE = set(".,;:!?)]}")


class SectionEdit(Protocol):
    """Anything shaped like a recommendation (ORM row or validated draft)."""

    type: str
    added_content: Optional[str]
    removed_content: Optional[str]
    modified_from: Optional[str]
    modified_to: Optional[str]


def find_normalized(content: str, target: str) -> Optional[Tuple[int, int]]:
    """
    Locate the first whitespace-insensitive occurrence of target.

    Returns:
        (start, end) offsets into ``content``, or None when absent
    """
    words = (target or "").split()
    if not words:
        return None
    pattern = r"\s+".join(re.escape(word) for word in words)
    match = re.search(pattern, content or "")
    if match is None:
        return None
    return match.span()


def contains_normalized(content: str, target: str) -> bool:
    return find_normalized(content, target) is not None


def append_content(content: str, added: str) -> str:
    base = (content or "").rstrip()
    addition = added.strip()
    if not base:
        return addition
    return f"{base}{ADD_SEPARATOR}{addition}"


def remove_content(content: str, removed: str) -> str:
    span = find_normalized(content, removed)
    if span is None:
        raise ConflictError("Text to remove is no longer present in the section")
    start, end = span

    left = content[:start].rstrip(" \t")
    right = content[end:].lstrip(" \t")

    if left.endswith("\n") and right.startswith("\n"):
        right = right.lstrip("\n")
        separator = ""
    elif not left or not right or left.endswith("\n") or right.startswith("\n"):
        separator = ""
    elif right[0] in _NO_SPACE_BEFORE:
        separator = ""
    else:
        separator = " "
    return (left + separator + right).strip()


def replace_content(content: str, old: str, new: str) -> str:
    span = find_normalized(content, old)
    if span is None:
        raise ConflictError("Text to modify is no longer present in the section")
    start, end = span
    return content[:start] + new.strip() + content[end:]


def check_precondition(content: str, edit: SectionEdit) -> None:
    """Raise ConflictError if the edit no longer fits the section content."""
    if edit.type == "add":
        return
    if edit.type == "remove":
        if not contains_normalized(content, edit.removed_content or ""):
            raise ConflictError("Text to remove is no longer present in the section")
        return
    if edit.type == "modify":
        if not contains_normalized(content, edit.modified_from or ""):
            raise ConflictError("Text to modify is no longer present in the section")
        return
    raise ValidationError(f"Unknown recommendation type: {edit.type}")


def apply_edit(content: str, edit: SectionEdit) -> str:
    """
    Apply one edit to a section's text.

    Raises:
        ConflictError: target text for remove/modify is not in ``content``
        ValidationError: unknown edit type
    """
    check_precondition(content, edit)
    if edit.type == "add":
        return append_content(content, edit.added_content or "")
    if edit.type == "remove":
        return remove_content(content, edit.removed_content or "")
    return replace_content(content, edit.modified_from or "", edit.modified_to or "")


def is_stale(current: str, preview_before: str) -> bool:
    """True when a section no longer matches the content a preview was built from."""
    return normalize_whitespace(current) != normalize_whitespace(preview_before)
