"""Pydantic schemas for session state and request/response validation."""

import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


def new_id(prefix: str = "id") -> str:
    """Generate a locally unique identifier such as ``topic_3f9a1c2b7d4e``."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


Role = Literal["system", "user", "assistant"]
LogKind = Literal["generate", "edit", "chat", "attach", "privacy", "profile", "error"]
HistoryKind = Literal["generate", "chat", "selection"]


# ─── Session entities ────────────────────────────────────────────────────────

class Topic(BaseModel):
    id: str
    title: str
    description: Optional[str] = None


class PromptTemplate(BaseModel):
    id: str
    label: str
    template: str


class Attachment(BaseModel):
    id: str
    name: str
    kind: Literal["link", "text"]
    content: str


class ClassSettings(BaseModel):
    curriculum: Optional[str] = ""
    grade: Optional[str] = ""


class ChatMessage(BaseModel):
    role: Role
    content: str


class LogEntry(BaseModel):
    id: str
    at: int
    kind: LogKind
    detail: str

    class Config:
        frozen = True


class HistoryEntry(BaseModel):
    id: str
    at: int
    kind: HistoryKind
    prompt_label: Optional[str] = Field(default=None, alias="promptLabel")
    input_preview: str = Field(alias="inputPreview")
    output: str

    class Config:
        frozen = True
        populate_by_name = True


class ContextBundle(BaseModel):
    """Resolved values used to render a prompt template."""

    context: str
    topic_text: str = Field(alias="topicText")
    curriculum: str
    grade: str
    level: str
    goals: str
    task: str
    subject: str

    class Config:
        populate_by_name = True


class SessionState(BaseModel):
    """Everything a profile owns; persisted as one serialized record."""

    topics: List[Topic] = Field(default_factory=list)
    prompts: List[PromptTemplate] = Field(default_factory=list)
    selected_topic: str = Field(default="", alias="selectedTopic")
    settings: ClassSettings = Field(default_factory=ClassSettings)
    context_notes: str = Field(default="", alias="contextNotes")
    links: str = ""
    attachments: List[Attachment] = Field(default_factory=list)
    output: str = ""
    output_html: Optional[str] = Field(default=None, alias="outputHtml")
    logs: List[LogEntry] = Field(default_factory=list)
    history: List[HistoryEntry] = Field(default_factory=list)
    messages: List[ChatMessage] = Field(default_factory=list)
    redact: bool = True
    allow_names: bool = Field(default=False, alias="allowNames")

    class Config:
        populate_by_name = True


# ─── Profiles ────────────────────────────────────────────────────────────────

class ProfileCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class ProfileResponse(BaseModel):
    id: str
    name: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ─── Session actions ─────────────────────────────────────────────────────────

class TopicCreate(BaseModel):
    title: str
    description: Optional[str] = None


class PromptCreate(BaseModel):
    label: str
    template: str


class PromptUpdate(BaseModel):
    label: Optional[str] = None
    template: Optional[str] = None


class ContextUpdate(BaseModel):
    notes: Optional[str] = None
    links: Optional[str] = None


class PrivacyUpdate(BaseModel):
    redact: Optional[bool] = None
    allow_names: Optional[bool] = Field(default=None, alias="allowNames")

    class Config:
        populate_by_name = True


class LinkAttachmentCreate(BaseModel):
    url: str = Field(min_length=1)
    name: Optional[str] = None


class ChatRequest(BaseModel):
    message: str


class SelectionEditRequest(BaseModel):
    start: int
    end: int
    instruction: str


class OutputUpdate(BaseModel):
    output: str
    output_html: Optional[str] = Field(default=None, alias="outputHtml")

    class Config:
        populate_by_name = True


class SessionActionResponse(BaseModel):
    reply: Optional[str] = None
    state: SessionState


class OptionsResponse(BaseModel):
    curricula: List[str]
    grades: List[str]
    placeholders: List[str]
    default_template: str


# ─── Completion proxy ────────────────────────────────────────────────────────

class GenerateRequest(BaseModel):
    """Either a raw message list or the structured fields the UI fills in."""

    messages: Optional[Any] = None
    model: Optional[str] = None
    temperature: Optional[Any] = None
    top_p: Optional[Any] = None
    max_tokens: Optional[Any] = None

    topic: Optional[str] = None
    context: Optional[str] = None
    grade: Optional[str] = None
    curriculum: Optional[str] = None
    template: Optional[str] = None
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")

    class Config:
        populate_by_name = True


class GenerateResponse(BaseModel):
    content: str
    text: str
    model: str
    provider: str
    usage: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[Any] = None
