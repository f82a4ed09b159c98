"""Prompt template rendering and the built-in prompt buttons."""

import re
from typing import Dict, List

from app.schemas import ContextBundle, PromptTemplate

# Replaced everywhere they appear.
PRIMARY_PLACEHOLDERS = ("topic", "context", "curriculum", "grade")

# Older templates used these; only their first occurrence is replaced.
LEGACY_PLACEHOLDERS = ("topicText", "level", "goals", "task", "subject")

PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_]+)\s*\}\}")

DEFAULT_NEW_TEMPLATE = "Can you write a MCQ for {{topic}} using the article in the {{context}}?"

SEED_PROMPTS: List[Dict[str, str]] = [
    {
        "id": "btn-lesson-plan",
        "label": "Lesson plan",
        "template": (
            "Create a concise lesson plan for {{topic}} aligned with {{curriculum}} for grade {{grade}}. "
            "Include: Do Now, Introduction, Guided Practice, Independent Practice, Closure, Exit Ticket. "
            "If helpful, use information from {{context}}."
        ),
    },
    {
        "id": "btn-myp-task-clarifications",
        "label": "MYP task clarifications",
        "template": (
            "Write student-friendly task clarifications and success criteria for an MYP task on {{topic}}. "
            "Reference relevant command terms and assessment criteria. "
            "Use article/notes from {{context}} if provided."
        ),
    },
    {
        "id": "btn-atl-skills",
        "label": "ATL skills",
        "template": (
            "Suggest specific ATL (Approaches to Learning) skills to target while teaching {{topic}} "
            "to grade {{grade}}. Provide practical classroom strategies and quick checks for understanding. "
            "Consider any info in {{context}}."
        ),
    },
    {
        "id": "btn-summative-ideas",
        "label": "Summative assessment ideas",
        "template": (
            "Propose 3–5 summative assessment ideas for {{topic}} aligned to {{curriculum}} and appropriate "
            "for grade {{grade}}. Include a short rubric outline and opportunities for differentiation. "
            "Use {{context}} where relevant."
        ),
    },
]


def seed_prompts() -> List[PromptTemplate]:
    """Fresh copies of the four built-in prompt buttons."""
    return [PromptTemplate(**p) for p in SEED_PROMPTS]


def _values(bundle: ContextBundle) -> Dict[str, str]:
    return {
        "topic": bundle.topic_text,
        "context": bundle.context,
        "curriculum": bundle.curriculum,
        "grade": bundle.grade,
        "topicText": bundle.topic_text,
        "level": bundle.level,
        "goals": bundle.goals,
        "task": bundle.task,
        "subject": bundle.subject,
    }


def render(template: str, bundle: ContextBundle) -> str:
    """
    Fill a prompt template from a context bundle.

    Two passes with different multiplicities: primary placeholders are
    replaced at every occurrence, legacy ones at their first occurrence only.
    Unknown ``{{names}}`` are left untouched.
    """
    values = _values(bundle)
    result = template
    for name in PRIMARY_PLACEHOLDERS:
        result = result.replace("{{" + name + "}}", values[name])
    for name in LEGACY_PLACEHOLDERS:
        result = result.replace("{{" + name + "}}", values[name], 1)
    return result


def list_placeholders(template: str) -> List[str]:
    """Placeholder names used by a template, in order of first appearance."""
    seen: List[str] = []
    for match in PLACEHOLDER_RE.finditer(template):
        name = match.group(1)
        if name not in seen:
            seen.append(name)
    return seen


def unknown_placeholders(template: str) -> List[str]:
    """Placeholders that ``render`` would leave verbatim."""
    known = set(PRIMARY_PLACEHOLDERS) | set(LEGACY_PLACEHOLDERS)
    return [name for name in list_placeholders(template) if name not in known]
