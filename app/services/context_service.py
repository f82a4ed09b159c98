"""Assembles the context bundle used to fill prompt templates."""

import re
from typing import Dict, List, Optional

from app.schemas import Attachment, ClassSettings, ContextBundle, SessionState, Topic

SNIPPET_CHARS = 1200

NOTE_KEY_RE = re.compile(r"^([a-zA-Z ]+):\s*(.+)$")
LINK_SPLIT_RE = re.compile(r"[\s,;]+")

DEFAULT_TOPIC = "your class topic"
DEFAULT_CURRICULUM = "unspecified curriculum"
DEFAULT_GRADE = "unspecified grade"


def parse_note_keys(notes: str) -> Dict[str, str]:
    """Collect ``Key: value`` lines from free-text notes (later lines win)."""
    keys: Dict[str, str] = {}
    for line in notes.split("\n"):
        line = line.strip()
        if not line:
            continue
        match = NOTE_KEY_RE.match(line)
        if match:
            keys[match.group(1).strip().lower()] = match.group(2)
    return keys


def format_links(links: str) -> str:
    """Normalize a pasted list of links to ``a, b, c``."""
    return ", ".join(part.strip() for part in LINK_SPLIT_RE.split(links) if part.strip())


def attachment_snippets(attachments: List[Attachment]) -> List[str]:
    """Labeled leading snippets of text attachments, in original order."""
    return [
        f"[{a.name}] {a.content[:SNIPPET_CHARS]}"
        for a in attachments
        if a.kind == "text"
    ]


def build_context(
    notes: str = "",
    links: str = "",
    attachments: Optional[List[Attachment]] = None,
    topics: Optional[List[Topic]] = None,
    selected_topic: str = "",
    settings: Optional[ClassSettings] = None,
) -> ContextBundle:
    """
    Resolve the template values for the current session.

    The ``context`` string always has a NOTES, LINKS and ATTACHMENTS section,
    using ``(none)`` markers where there is nothing to show.
    """
    notes = notes or ""
    attachments = attachments or []
    settings = settings or ClassSettings()
    keys = parse_note_keys(notes)

    selected = next((t for t in (topics or []) if t.id == selected_topic), None) if selected_topic else None
    topic_text = (selected.title if selected else "") or keys.get("topic") or keys.get("subject") or DEFAULT_TOPIC

    link_list = format_links(links or "")
    snippets = attachment_snippets(attachments)

    sections = [
        "NOTES:", notes or "(none)",
        "LINKS:", link_list or "(none)",
    ]
    if snippets:
        sections.append("ATTACHMENTS (snippets):")
        sections.extend(snippets)
    else:
        sections.append("ATTACHMENTS: (none)")

    return ContextBundle(
        context="\n".join(sections),
        topic_text=topic_text,
        curriculum=settings.curriculum or DEFAULT_CURRICULUM,
        grade=settings.grade or DEFAULT_GRADE,
        level=keys.get("level") or "unspecified",
        goals=keys.get("goals") or "unspecified",
        task=keys.get("task") or "the described task",
        subject=keys.get("subject") or keys.get("topic") or "the subject",
    )


def build_context_for_state(state: SessionState) -> ContextBundle:
    return build_context(
        notes=state.context_notes,
        links=state.links,
        attachments=state.attachments,
        topics=state.topics,
        selected_topic=state.selected_topic,
        settings=state.settings,
    )
