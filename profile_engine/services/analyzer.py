"""
Profile Analyzer - LLM call that turns feedback into draft recommendations

One request/response round trip: the current five profile sections plus the
formatted reviewer comments go in, a JSON object with ``analysisSummary`` and
``recommendations`` comes out. The reply is returned raw; parsing and
validation happen in the generator, which also owns the timeout.

Cost Notes:
    - JSON mode keeps replies parseable without retries
    - Comments are capped upstream (max_comments) and each AI response is
      excerpted to 200 characters to bound the prompt

Usage:
    from profile_engine.services.analyzer import get_profile_analyzer

    analyzer = get_profile_analyzer()
    raw = await analyzer.analyze(AnalysisRequest(sections=..., comments=...))
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Union

from profile_engine.models import SECTION_KEYS, SECTION_TITLES
from profile_engine.services.evidence import EvidenceComment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisRequest:
    sections: Dict[str, str]
    comments: List[EvidenceComment]


class ProfileAnalyzer(Protocol):
    """External analyzer contract: one synchronous request/response."""

    async def analyze(self, request: AnalysisRequest) -> Union[str, Dict[str, Any]]:
        ...


SYSTEM_PROMPT = (
    "You analyze AI agent testing feedback and generate profile section recommendations. "
    "Always return valid JSON. Generate AT MOST ONE recommendation per section."
)

PROFILE_ANALYSIS_PROMPT = """You analyze AI agent testing feedback and generate profile recommendations.

## Current Profile Sections

{sections}

## Testing Feedback Comments ({total_comments} total)

{comments}

## Your Task

Analyze ALL the feedback comments holistically. Generate recommendations for profile sections.

CRITICAL RULES:
1. Generate AT MOST ONE recommendation per section
2. If multiple comments affect the same section, SYNTHESIZE them into ONE recommendation
3. Use ONLY these operation types:
   - ADD: Append new content to existing section (preserves all existing content)
   - REMOVE: Remove specific phrase ONLY if directly contradicted by feedback
   - MODIFY: Change specific phrase (use sparingly, prefer ADD)
4. NEVER suggest deleting content that is unrelated to the feedback
5. NEVER generate full section replacements
6. Include 2-3 summary bullets for each recommendation

Return JSON:
{{
  "analysisSummary": {{
    "overview": "2-3 sentence analysis of all feedback",
    "feedbackThemes": ["theme1", "theme2"],
    "configAlignment": "good" | "needs_update" | "partial",
    "noChangeReason": "Required if no recommendations"
  }},
  "recommendations": [
    {{
      "type": "add",
      "targetSection": "communicationStyle",
      "addedContent": "NEW content to append",
      "summaryBullets": ["Bullet 1", "Bullet 2"],
      "rationale": "Why this change is needed based on specific comment feedback",
      "relatedCommentIds": ["comment-123"]
    }}
  ]
}}

Valid targetSection values: {section_keys}

CRITICAL FIELD REQUIREMENTS:
- For "add" type: "addedContent" is REQUIRED and must contain NEW text to append
- For "remove" type: "removedContent" is REQUIRED and must be EXACT text that exists in the current section
- For "modify" type: "modifiedFrom" (EXACT existing text) and "modifiedTo" (replacement text) are BOTH REQUIRED

Each recommendation MUST result in an actual change to the profile. If no changes are needed,
return an empty recommendations array with noChangeReason."""


def format_sections(sections: Dict[str, str]) -> str:
    return "\n\n".join(
        f"### {SECTION_TITLES[key]} ({key})\n{sections.get(key, '')}" for key in SECTION_KEYS
    )


def format_comments(comments: List[EvidenceComment]) -> str:
    blocks = []
    for i, comment in enumerate(comments, start=1):
        template = f" [{comment.template_id}]" if comment.template_id else ""
        blocks.append(
            f"Comment {i} (ID: {comment.id}){template}:\n"
            f'  Feedback: "{comment.content}"\n'
            f'  On AI response: "{comment.message_excerpt}..."'
        )
    return "\n\n".join(blocks)


def build_analysis_prompt(request: AnalysisRequest) -> str:
    return PROFILE_ANALYSIS_PROMPT.format(
        sections=format_sections(request.sections),
        total_comments=len(request.comments),
        comments=format_comments(request.comments),
        section_keys=", ".join(SECTION_KEYS),
    )


class OpenAIProfileAnalyzer:
    """
    ProfileAnalyzer backed by the OpenAI chat completions API.

    Attributes:
        client: Async OpenAI client
        model: Chat model used for analysis
        temperature: Sampling temperature
        max_tokens: Reply token cap
    """

    def __init__(
        self,
        openai_client: Any,
        model: str = "gpt-4-turbo",
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ):
        self.client = openai_client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def analyze(self, request: AnalysisRequest) -> str:
        prompt = build_analysis_prompt(request)

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

        content = response.choices[0].message.content
        logger.debug(f"Analyzer replied with {len(content or '')} characters")
        return content or ""


# ==============================================================================
# Singleton Pattern for Dependency Injection
# ==============================================================================

_profile_analyzer: Optional[OpenAIProfileAnalyzer] = None


def get_profile_analyzer() -> OpenAIProfileAnalyzer:
    """
    Get shared OpenAIProfileAnalyzer instance (singleton pattern).

    Reuses one AsyncOpenAI client (and its connection pool) across requests.
    The client timeout matches the generator's so a hung connection is
    released when the generator gives up.
    """
    global _profile_analyzer
    if _profile_analyzer is None:
        from openai import AsyncOpenAI
        from profile_engine.config import get_settings

        settings = get_settings()
        client = AsyncOpenAI(api_key=settings.openai_api_key, timeout=settings.analyzer_timeout_seconds)
        _profile_analyzer = OpenAIProfileAnalyzer(
            openai_client=client,
            model=settings.analyzer_model,
            temperature=settings.analyzer_temperature,
            max_tokens=settings.analyzer_max_tokens,
        )
        logger.info("Created singleton OpenAIProfileAnalyzer instance")
    return _profile_analyzer
