"""Profile and teaching-session endpoints."""

from typing import Awaitable, Callable, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from app.core.logging import logger
from app.schemas import (
    ChatRequest,
    ClassSettings,
    ContextUpdate,
    LinkAttachmentCreate,
    OptionsResponse,
    OutputUpdate,
    PrivacyUpdate,
    ProfileCreate,
    ProfileResponse,
    PromptCreate,
    PromptUpdate,
    SelectionEditRequest,
    SessionActionResponse,
    SessionState,
    TopicCreate,
)
from app.api.v1.endpoints.generate import completion_error_response
from app.services.attachment_service import attachment_service
from app.services.completion_service import CompletionClient, CompletionError, get_completion_client
from app.services.session_service import (
    CURRICULUM_OPTIONS,
    GRADE_OPTIONS,
    NotFoundError,
    SessionBusyError,
    SessionManager,
    TeachingSession,
    get_session_manager,
)
from app.services.state_service import BaseStateStore, get_state_store
from app.services.template_service import DEFAULT_NEW_TEMPLATE, PRIMARY_PLACEHOLDERS

router = APIRouter()

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


class SessionContext:
    """Bundles the per-request collaborators a session endpoint needs."""

    def __init__(
        self,
        store: BaseStateStore = Depends(get_state_store),
        client: CompletionClient = Depends(get_completion_client),
        manager: SessionManager = Depends(get_session_manager),
    ):
        self.store = store
        self.client = client
        self.manager = manager


async def _mutate(
    ctx: SessionContext,
    profile_id: str,
    action: Callable[[TeachingSession], None],
) -> SessionState:
    """Apply a synchronous edit to a profile and return the saved state."""
    try:
        async with ctx.manager.open(ctx.store, profile_id, ctx.client) as session:
            action(session)
            return session.state
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def _run_ai(
    ctx: SessionContext,
    profile_id: str,
    action: Callable[[TeachingSession], Awaitable[Optional[str]]],
):
    """
    Run an AI operation on a profile.

    Completion failures are answered here, inside the session, so the error
    log entry is still saved with the profile's state.
    """
    try:
        async with ctx.manager.open(ctx.store, profile_id, ctx.client, wait=False) as session:
            try:
                reply = await action(session)
            except CompletionError as e:
                logger.warning(f"AI operation failed for profile {profile_id}: {e}")
                return completion_error_response(e, ctx.client, ctx.client.model)
            return SessionActionResponse(reply=reply, state=session.state)
    except SessionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ─── Profiles ────────────────────────────────────────────────────────────────

@router.get("/options", response_model=OptionsResponse)
async def get_options():
    """Curriculum and grade choices, and the placeholders templates may use."""
    return OptionsResponse(
        curricula=CURRICULUM_OPTIONS,
        grades=GRADE_OPTIONS,
        placeholders=[f"{{{{{name}}}}}" for name in PRIMARY_PLACEHOLDERS],
        default_template=DEFAULT_NEW_TEMPLATE,
    )


@router.get("", response_model=List[ProfileResponse])
async def list_profiles(store: BaseStateStore = Depends(get_state_store)):
    """List profiles, creating a default one on first use."""
    return await store.ensure_default_profile()


@router.post("", response_model=ProfileResponse, status_code=201)
async def create_profile(data: ProfileCreate, store: BaseStateStore = Depends(get_state_store)):
    """Create a profile with the default state (seeded prompt buttons, no topics)."""
    name = data.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Profile name is required")
    profile = await store.create_profile(name)
    logger.info(f"Profile created: {profile.name} ({profile.id})")
    return profile


@router.post("/{profile_id}/activate", response_model=SessionState)
async def activate_profile(profile_id: str, ctx: SessionContext = Depends()):
    """Switch to a profile; recorded in that profile's change log."""
    profile = await ctx.store.get_profile(profile_id)
    if profile is None:
        raise HTTPException(status_code=404, detail=f"Profile {profile_id} not found")
    return await _mutate(ctx, profile_id, lambda s: s.log("profile", f"Switched to profile “{profile.name}”"))


@router.get("/{profile_id}/state", response_model=SessionState)
async def get_state(profile_id: str, store: BaseStateStore = Depends(get_state_store)):
    if await store.get_profile(profile_id) is None:
        raise HTTPException(status_code=404, detail=f"Profile {profile_id} not found")
    return await store.load_or_default(profile_id)


@router.put("/{profile_id}/state", response_model=SessionState)
async def replace_state(profile_id: str, state: SessionState, ctx: SessionContext = Depends()):
    """Replace a profile's whole state record."""

    def _replace(session: TeachingSession) -> None:
        session.state = state

    return await _mutate(ctx, profile_id, _replace)


# ─── Topics ──────────────────────────────────────────────────────────────────

@router.post("/{profile_id}/topics", response_model=SessionState)
async def add_topic(profile_id: str, data: TopicCreate, ctx: SessionContext = Depends()):
    return await _mutate(ctx, profile_id, lambda s: s.add_topic(data.title, data.description))


@router.delete("/{profile_id}/topics/{topic_id}", response_model=SessionState)
async def delete_topic(profile_id: str, topic_id: str, ctx: SessionContext = Depends()):
    return await _mutate(ctx, profile_id, lambda s: s.delete_topic(topic_id))


@router.post("/{profile_id}/topics/{topic_id}/select", response_model=SessionState)
async def select_topic(profile_id: str, topic_id: str, ctx: SessionContext = Depends()):
    return await _mutate(ctx, profile_id, lambda s: s.select_topic(topic_id))


# ─── Prompt buttons ──────────────────────────────────────────────────────────

@router.post("/{profile_id}/prompts", response_model=SessionState)
async def add_prompt(profile_id: str, data: PromptCreate, ctx: SessionContext = Depends()):
    return await _mutate(ctx, profile_id, lambda s: s.add_prompt(data.label, data.template))


@router.put("/{profile_id}/prompts/{prompt_id}", response_model=SessionState)
async def edit_prompt(profile_id: str, prompt_id: str, data: PromptUpdate, ctx: SessionContext = Depends()):
    return await _mutate(ctx, profile_id, lambda s: s.edit_prompt(prompt_id, data.label, data.template))


@router.post("/{profile_id}/prompts/{prompt_id}/run", response_model=SessionActionResponse)
async def run_prompt(profile_id: str, prompt_id: str, ctx: SessionContext = Depends()):
    """Fill a prompt button's template with the current context and generate output."""
    return await _run_ai(ctx, profile_id, lambda s: s.run_prompt(prompt_id))


# ─── Settings, context, privacy ──────────────────────────────────────────────

@router.put("/{profile_id}/settings", response_model=SessionState)
async def update_settings(profile_id: str, data: ClassSettings, ctx: SessionContext = Depends()):
    return await _mutate(ctx, profile_id, lambda s: s.update_settings(data))


@router.put("/{profile_id}/context", response_model=SessionState)
async def update_context(profile_id: str, data: ContextUpdate, ctx: SessionContext = Depends()):
    return await _mutate(ctx, profile_id, lambda s: s.update_context(data.notes, data.links))


@router.put("/{profile_id}/privacy", response_model=SessionState)
async def update_privacy(profile_id: str, data: PrivacyUpdate, ctx: SessionContext = Depends()):
    def _apply(session: TeachingSession) -> None:
        if data.redact is not None:
            session.set_redact(data.redact)
        if data.allow_names is not None:
            session.set_allow_names(data.allow_names)

    return await _mutate(ctx, profile_id, _apply)


# ─── Attachments ─────────────────────────────────────────────────────────────

@router.post("/{profile_id}/attachments", response_model=SessionState)
async def upload_attachments(
    profile_id: str,
    files: List[UploadFile] = File(...),
    ctx: SessionContext = Depends(),
):
    """Attach text or PDF files; their text is read locally, never stored as files."""
    attachments = []
    for file in files:
        content = await file.read()
        if len(content) > MAX_UPLOAD_BYTES:
            raise HTTPException(status_code=400, detail=f"File '{file.filename}' exceeds 10 MB")
        attachments.append(attachment_service.read_upload(file.filename, file.content_type, content))

    def _attach(session: TeachingSession) -> None:
        for attachment in attachments:
            session.add_attachment(attachment)

    return await _mutate(ctx, profile_id, _attach)


@router.post("/{profile_id}/attachments/link", response_model=SessionState)
async def add_link_attachment(profile_id: str, data: LinkAttachmentCreate, ctx: SessionContext = Depends()):
    attachment = attachment_service.link(data.url, data.name)
    return await _mutate(ctx, profile_id, lambda s: s.add_attachment(attachment))


@router.delete("/{profile_id}/attachments/{attachment_id}", response_model=SessionState)
async def remove_attachment(profile_id: str, attachment_id: str, ctx: SessionContext = Depends()):
    return await _mutate(ctx, profile_id, lambda s: s.remove_attachment(attachment_id))


# ─── Output, chat, selection, history ────────────────────────────────────────

@router.put("/{profile_id}/output", response_model=SessionState)
async def edit_output(profile_id: str, data: OutputUpdate, ctx: SessionContext = Depends()):
    return await _mutate(ctx, profile_id, lambda s: s.edit_output(data.output, data.output_html))


@router.post("/{profile_id}/chat", response_model=SessionActionResponse)
async def chat_refine(profile_id: str, data: ChatRequest, ctx: SessionContext = Depends()):
    """Ask the assistant to refine the current output."""
    return await _run_ai(ctx, profile_id, lambda s: s.chat_refine(data.message))


@router.post("/{profile_id}/selection", response_model=SessionActionResponse)
async def edit_selection(profile_id: str, data: SelectionEditRequest, ctx: SessionContext = Depends()):
    """Rewrite a highlighted span of the output and splice the result back in."""
    return await _run_ai(ctx, profile_id, lambda s: s.edit_selection(data.start, data.end, data.instruction))


@router.post("/{profile_id}/history/{entry_id}/load", response_model=SessionState)
async def load_history(profile_id: str, entry_id: str, ctx: SessionContext = Depends()):
    """Load a past output back into the editor."""
    return await _mutate(ctx, profile_id, lambda s: s.load_history(entry_id))


@router.get("/{profile_id}/busy")
async def is_busy(profile_id: str, ctx: SessionContext = Depends()):
    """Advisory flag the UI uses to disable generate/send controls."""
    if await ctx.store.get_profile(profile_id) is None:
        raise HTTPException(status_code=404, detail=f"Profile {profile_id} not found")
    return JSONResponse(content={"busy": ctx.manager.is_busy(profile_id)})
