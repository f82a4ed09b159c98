"""Teaching session workflow: topics, prompt buttons, generation and refinement."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, Optional

from app.core.logging import logger
from app.schemas import (
    Attachment,
    ChatMessage,
    ClassSettings,
    HistoryEntry,
    LogEntry,
    PromptTemplate,
    SessionState,
    Topic,
    new_id,
    now_ms,
)
from app.services.completion_service import CompletionClient, CompletionError
from app.services.context_service import build_context_for_state
from app.services.redaction_service import prepare_outgoing
from app.services.state_service import BaseStateStore
from app.services.template_service import render, unknown_placeholders

SAFETY_PROMPT = (
    "Safety: If content seems to include student names/PII, generalize it unless explicitly allowed."
)
NO_CONTENT = "[no content]"

MAX_TITLE_CHARS = 10000
MAX_LABEL_CHARS = 200
MAX_TEMPLATE_CHARS = 10000
PREVIEW_CHARS = 180
LOG_SNIPPET_CHARS = 120

CURRICULUM_OPTIONS = [
    "IB PYP", "IB MYP", "IB DP",
    "Cambridge IGCSE", "Cambridge A Levels",
    "US Common Core", "NGSS",
    "UK National Curriculum", "Australian Curriculum",
    "CBSE", "ICSE", "Other",
]
GRADE_OPTIONS = ["K"] + [str(i) for i in range(1, 13)]


class SessionError(Exception):
    """Base class for session workflow failures."""


class NotFoundError(SessionError):
    """A profile, topic, prompt, attachment or history entry id is unknown."""


class SessionBusyError(SessionError):
    """Another AI request is already running for this profile."""


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


class TeachingSession:
    """
    Operations on one profile's state.

    Every method mutates ``self.state`` in place. AI operations only touch
    messages, output and history after the completion succeeds; a failed call
    leaves a single ``error`` log entry behind and re-raises.
    """

    def __init__(self, state: SessionState, client: CompletionClient):
        self.state = state
        self.client = client

    # ─── Audit trail ─────────────────────────────────────────────────────────

    def log(self, kind: str, detail: str) -> LogEntry:
        entry = LogEntry(id=new_id("log"), at=now_ms(), kind=kind, detail=detail)
        self.state.logs = [entry, *self.state.logs]
        return entry

    def _record(self, kind: str, input_preview: str, output: str, prompt_label: Optional[str] = None) -> None:
        entry = HistoryEntry(
            id=new_id("h"),
            at=now_ms(),
            kind=kind,
            prompt_label=prompt_label,
            input_preview=input_preview[:PREVIEW_CHARS],
            output=output,
        )
        self.state.history = [entry, *self.state.history]

    # ─── Topics ──────────────────────────────────────────────────────────────

    def add_topic(self, title: str, description: Optional[str] = None) -> Topic:
        title = (title or "").strip()[:MAX_TITLE_CHARS]
        if not title:
            raise ValueError("Topic title is required")
        description = (description or "").strip()[:MAX_TITLE_CHARS] or None
        topic = Topic(id=new_id("topic"), title=title, description=description)
        self.state.topics = [topic, *self.state.topics]
        self.state.selected_topic = topic.id
        self.log("edit", f"Added topic “{topic.title}”")
        return topic

    def delete_topic(self, topic_id: str) -> None:
        topic = self._find_topic(topic_id)
        self.state.topics = [t for t in self.state.topics if t.id != topic_id]
        if self.state.selected_topic == topic_id:
            self.state.selected_topic = ""
        self.log("edit", f"Deleted topic “{topic.title}”")

    def select_topic(self, topic_id: str) -> None:
        self._find_topic(topic_id)
        self.state.selected_topic = topic_id

    def _find_topic(self, topic_id: str) -> Topic:
        topic = next((t for t in self.state.topics if t.id == topic_id), None)
        if topic is None:
            raise NotFoundError(f"Topic {topic_id} not found")
        return topic

    # ─── Prompt buttons ──────────────────────────────────────────────────────

    def add_prompt(self, label: str, template: str) -> PromptTemplate:
        label = (label or "").strip()[:MAX_LABEL_CHARS]
        template = (template or "").strip()[:MAX_TEMPLATE_CHARS]
        if not label or not template:
            raise ValueError("Both label and template are required")
        unknown = unknown_placeholders(template)
        if unknown:
            logger.warning(f"Prompt “{label}” uses unknown placeholders: {', '.join(unknown)}")
        prompt = PromptTemplate(id=new_id("btn"), label=label, template=template)
        self.state.prompts = [prompt, *self.state.prompts]
        self.log("edit", f"Created button “{prompt.label}”")
        return prompt

    def edit_prompt(self, prompt_id: str, label: Optional[str] = None, template: Optional[str] = None) -> PromptTemplate:
        current = self._find_prompt(prompt_id)
        updated = PromptTemplate(
            id=current.id,
            label=(label or "").strip() or current.label,
            template=(template or "").strip() or current.template,
        )
        self.state.prompts = [updated if p.id == prompt_id else p for p in self.state.prompts]
        self.log("edit", f"Edited button “{updated.label}”")
        return updated

    def _find_prompt(self, prompt_id: str) -> PromptTemplate:
        prompt = next((p for p in self.state.prompts if p.id == prompt_id), None)
        if prompt is None:
            raise NotFoundError(f"Prompt {prompt_id} not found")
        return prompt

    # ─── Context, attachments, privacy ───────────────────────────────────────

    def update_settings(self, settings: ClassSettings) -> None:
        self.state.settings = settings

    def update_context(self, notes: Optional[str] = None, links: Optional[str] = None) -> None:
        if notes is not None:
            self.state.context_notes = notes
        if links is not None:
            self.state.links = links

    def add_attachment(self, attachment: Attachment) -> None:
        self.state.attachments = [attachment, *self.state.attachments]
        self.log("attach", f"Attached {attachment.kind}: {attachment.name}")

    def remove_attachment(self, attachment_id: str) -> None:
        attachment = next((a for a in self.state.attachments if a.id == attachment_id), None)
        if attachment is None:
            raise NotFoundError(f"Attachment {attachment_id} not found")
        self.state.attachments = [a for a in self.state.attachments if a.id != attachment_id]
        self.log("attach", f"Removed attachment: {attachment.name}")

    def set_redact(self, enabled: bool) -> None:
        self.state.redact = enabled
        self.log("privacy", f"Redaction {'enabled' if enabled else 'disabled'} at {_timestamp()}")

    def set_allow_names(self, allowed: bool) -> None:
        self.state.allow_names = allowed
        self.log("privacy", f"Allow student names = {str(allowed).lower()} at {_timestamp()}")

    # ─── Output editor ───────────────────────────────────────────────────────

    def edit_output(self, output: str, output_html: Optional[str] = None) -> None:
        self.state.output = output
        self.state.output_html = output_html
        self.log("edit", f"Edited output at {_timestamp()}")

    def load_history(self, entry_id: str) -> HistoryEntry:
        entry = next((h for h in self.state.history if h.id == entry_id), None)
        if entry is None:
            raise NotFoundError(f"History entry {entry_id} not found")
        self.state.output = entry.output
        self.state.output_html = None
        return entry

    # ─── AI operations ───────────────────────────────────────────────────────

    async def _call_ai(self, user_content: str) -> str:
        outgoing = prepare_outgoing(user_content, self.state.redact, self.state.allow_names)
        user_message = ChatMessage(role="user", content=outgoing)
        messages = [
            ChatMessage(role="system", content=SAFETY_PROMPT),
            *self.state.messages,
            user_message,
        ]
        try:
            result = await self.client.complete(messages)
        except CompletionError as e:
            self.log("error", f"AI request failed ({e.__class__.__name__}): {e} at {_timestamp()}")
            raise

        text = result.text or NO_CONTENT
        self.state.messages = [
            *self.state.messages,
            user_message,
            ChatMessage(role="assistant", content=text),
        ]
        return text

    async def run_prompt(self, prompt_id: str) -> str:
        prompt = self._find_prompt(prompt_id)
        bundle = build_context_for_state(self.state)
        filled = render(prompt.template, bundle)
        user_text = f"Use the following instruction for the teacher:\n{filled}\n\nContext:\n{bundle.context}"

        text = await self._call_ai(user_text)
        self.state.output = text
        self.state.output_html = None
        self.log("generate", f"Generated with “{prompt.label}” at {_timestamp()}")
        self._record("generate", filled, text, prompt_label=prompt.label)
        return text

    async def chat_refine(self, message: str) -> Optional[str]:
        if not (message or "").strip():
            return None
        bundle = build_context_for_state(self.state)
        user_text = (
            f"Refine the current output per this request: {message}\n\n"
            f"Current Output:\n{self.state.output}\n\n"
            f"Additional Context:\n{bundle.context}"
        )

        text = await self._call_ai(user_text)
        self.state.output = text
        self.state.output_html = None
        self.log("chat", f"Refinement: “{message[:LOG_SNIPPET_CHARS]}” at {_timestamp()}")
        self._record("chat", message, text)
        return text

    async def edit_selection(self, start: int, end: int, instruction: str) -> str:
        output = self.state.output
        if not (0 <= start < end <= len(output)):
            raise ValueError("Selection must be a non-empty range inside the output")
        if not (instruction or "").strip():
            raise ValueError("Instruction is required")

        bundle = build_context_for_state(self.state)
        user_text = (
            "Rewrite or edit the SELECTED TEXT according to the teacher's instruction.\n"
            f"Instruction: {instruction}\n\n"
            f"SELECTED TEXT:\n{output[start:end]}\n\n"
            f"Broader context (may help but do not repeat it):\n{bundle.context}\n"
            "Return ONLY the revised text, no extra commentary."
        )

        edited = await self._call_ai(user_text)
        new_output = output[:start] + edited + output[end:]
        self.state.output = new_output
        self.state.output_html = None
        self.log("edit", f"Selection edited at {_timestamp()}")
        self._record("selection", instruction, new_output)
        return edited


class SessionManager:
    """Serializes access to each profile's state record."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock_for(self, profile_id: str) -> asyncio.Lock:
        if profile_id not in self._locks:
            self._locks[profile_id] = asyncio.Lock()
        return self._locks[profile_id]

    def is_busy(self, profile_id: str) -> bool:
        lock = self._locks.get(profile_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def open(
        self,
        store: BaseStateStore,
        profile_id: str,
        client: CompletionClient,
        *,
        wait: bool = True,
    ) -> AsyncIterator[TeachingSession]:
        """
        Load a profile's state, yield a session over it, then save it back.

        With ``wait=False`` a profile that is already in use raises
        SessionBusyError instead of queueing; AI operations use this so a
        second click does not start a second completion.
        """
        # Locks are only created for profiles that exist.
        if await store.get_profile(profile_id) is None:
            raise NotFoundError(f"Profile {profile_id} not found")

        lock = self.lock_for(profile_id)
        if not wait and lock.locked():
            raise SessionBusyError("A request is already running for this profile")

        async with lock:
            session = TeachingSession(await store.load_or_default(profile_id), client)
            try:
                yield session
            finally:
                await store.save(profile_id, session.state)


# Singleton instance
session_manager = SessionManager()


def get_session_manager() -> SessionManager:
    return session_manager
