"""
Analyzer Draft Boundary - Untrusted tagged union of proposed edits

The analyzer returns free-form JSON. Each entry of its "recommendations"
array is validated on its own against a discriminated union keyed by
``type``:

    add     → addedContent required
    remove  → removedContent required
    modify  → modifiedFrom and modifiedTo required

Required text fields are strict (no coercion from numbers/null) and must
be non-empty after trimming. A draft that fails is rejected with a
ValidationError; the caller decides to drop it. Nothing here knows about
the current profile; coherence checks against section content live in
the generator.
"""

import json
from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field, StringConstraints, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from profile_engine.errors import AnalyzerError, ValidationError
from profile_engine.schemas.recommendation import AnalysisSummary

SectionKey = Literal[
    "identityRole",
    "communicationStyle",
    "contentPriorities",
    "engagementApproach",
    "keyFramings",
]

RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1), Field(strict=True)]

MAX_SUMMARY_BULLETS = 3
DEFAULT_RATIONALE = "Based on testing feedback."


@dataclass(frozen=True)
class DraftEdit:
    """A structurally valid draft, flattened to the recommendation shape."""

    type: str
    target_section: str
    added_content: Optional[str] = None
    removed_content: Optional[str] = None
    modified_from: Optional[str] = None
    modified_to: Optional[str] = None
    summary_bullets: List[str] = field(default_factory=list)
    rationale: str = DEFAULT_RATIONALE
    related_comment_ids: List[str] = field(default_factory=list)


class _DraftBase(BaseModel):
    model_config = ConfigDict(
        alias_generator=AliasGenerator(validation_alias=to_camel),
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    target_section: SectionKey
    summary_bullets: Optional[List[str]] = None
    rationale: Optional[str] = None
    related_comment_ids: Optional[List[str]] = None

    def _common(self) -> Dict[str, Any]:
        bullets = [b.strip() for b in (self.summary_bullets or []) if b.strip()]
        return {
            "target_section": self.target_section,
            "summary_bullets": bullets[:MAX_SUMMARY_BULLETS],
            "rationale": (self.rationale or "").strip() or DEFAULT_RATIONALE,
            "related_comment_ids": list(self.related_comment_ids or []),
        }


class AddDraft(_DraftBase):
    type: Literal["add"]
    added_content: RequiredText

    def to_edit(self) -> DraftEdit:
        return DraftEdit(type="add", added_content=self.added_content, **self._common())


class RemoveDraft(_DraftBase):
    type: Literal["remove"]
    removed_content: RequiredText

    def to_edit(self) -> DraftEdit:
        return DraftEdit(type="remove", removed_content=self.removed_content, **self._common())


class ModifyDraft(_DraftBase):
    type: Literal["modify"]
    modified_from: RequiredText
    modified_to: RequiredText

    def to_edit(self) -> DraftEdit:
        return DraftEdit(
            type="modify",
            modified_from=self.modified_from,
            modified_to=self.modified_to,
            **self._common(),
        )


Draft = Annotated[Union[AddDraft, RemoveDraft, ModifyDraft], Field(discriminator="type")]
_draft_adapter: TypeAdapter = TypeAdapter(Draft)


def validate_draft(raw: Any) -> DraftEdit:
    """
    Validate one analyzer draft.

    Raises:
        ValidationError: unknown/missing type, unknown section, or a
            required field for the declared type is missing or empty
    """
    if not isinstance(raw, dict):
        raise ValidationError("Draft is not an object")
    try:
        draft = _draft_adapter.validate_python(raw)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'draft'}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid draft: {problems}", details=e.errors(include_url=False, include_context=False)) from e
    return draft.to_edit()


def parse_analyzer_response(payload: Union[str, Dict[str, Any]]) -> Tuple[AnalysisSummary, List[Any]]:
    """
    Split an analyzer reply into its summary and raw draft list.

    Args:
        payload: JSON text (optionally wrapped in a markdown code fence)
            or an already-decoded dict

    Returns:
        (AnalysisSummary, list of raw draft objects)

    Raises:
        AnalyzerError: reply is empty, not JSON, or not a JSON object
    """
    if isinstance(payload, str):
        content = payload.strip()
        if not content:
            raise AnalyzerError("Analyzer returned an empty response")

        # Handle markdown code blocks
        if content.startswith("```"):
            lines = content.split("\n")
            content = "\n".join(lines[1:-1])

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise AnalyzerError("Failed to parse analyzer response as JSON") from e
    else:
        data = payload

    if not isinstance(data, dict):
        raise AnalyzerError("Analyzer response is not a JSON object")

    raw_summary = data.get("analysisSummary")
    summary = AnalysisSummary.model_validate(raw_summary if isinstance(raw_summary, dict) else {})

    drafts = data.get("recommendations")
    if not isinstance(drafts, list):
        drafts = []
    return summary, drafts
