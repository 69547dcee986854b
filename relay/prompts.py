"""Prompt composition: turns a request body into the text sent upstream.

Shared by the relay (server side) and the stream consumer (client side) so
both build the same career-coach instruction from a résumé and target role.
"""

from __future__ import annotations

import logging

from relay.errors import ValidationError
from relay.schemas import PromptRequest

logger = logging.getLogger(__name__)

COACH_TEMPLATE = (
    'You are an expert career coach. Analyze the following resume text for a '
    'candidate targeting a "{target_role}" position. Provide personalized, '
    "actionable feedback in Markdown format with two sections: "
    '"Resume Improvement Suggestions" and "Skill-Gap Action Plan".'
)


def compose_prompt(
    target_role: str,
    resume_text: str,
    missing_skills: list[str] | None = None,
) -> str:
    """Build the fixed coaching prompt.

    compose_prompt("Data Analyst", "SQL, Excel", ["Python"]) ->
        'You are an expert career coach. ... "Data Analyst" position. ...

        Skills missing for this role: Python

        Resume:
        SQL, Excel'
    """
    parts = [COACH_TEMPLATE.format(target_role=target_role.strip())]
    skills = [s.strip() for s in missing_skills or [] if s and s.strip()]
    if skills:
        parts.append(f"Skills missing for this role: {', '.join(skills)}")
    parts.append(f"Resume:\n{resume_text.strip()}")
    return "\n\n".join(parts)


def resolve_prompt(request: PromptRequest) -> str:
    """Pick the prompt for a request. Raises ValidationError when there is none.

    An explicit non-blank ``prompt`` wins; otherwise a role + résumé pair
    composes one.
    """
    if request.prompt and request.prompt.strip():
        return request.prompt

    if (
        request.target_role and request.target_role.strip()
        and request.resume_text and request.resume_text.strip()
    ):
        return compose_prompt(
            request.target_role, request.resume_text, request.missing_skills
        )

    raise ValidationError("No prompt provided")


def truncate_prompt(prompt: str, max_chars: int) -> str:
    """Cut a prompt down to ``max_chars``. Over-long prompts are never rejected."""
    if len(prompt) <= max_chars:
        return prompt
    logger.warning(f"Prompt truncated from {len(prompt)} to {max_chars} characters")
    return prompt[:max_chars]
