"""Completion proxy endpoint."""

import traceback
from typing import Dict, List

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.logging import logger
from app.schemas import ErrorResponse, GenerateRequest, GenerateResponse
from app.services.completion_service import (
    CompletionClient,
    CompletionError,
    CompletionTimeout,
    ConfigurationError,
    MessageValidationError,
    UpstreamError,
    get_completion_client,
)

router = APIRouter()

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful curriculum assistant. "
    "Prefer bullet points, clear structure, and actionable steps."
)
# Used when a structured request gives no temperature.
STRUCTURED_TEMPERATURE = 0.7
STRUCTURED_INSTRUCTION = (
    "Generate helpful teacher-facing output that is concise, practical, and classroom-ready."
)


def build_structured_messages(body: GenerateRequest) -> List[Dict[str, str]]:
    """Expand the structured request fields into a system/user message pair."""
    lines = [
        f"Curriculum: {body.curriculum}" if body.curriculum else "",
        f"Grade: {body.grade}" if body.grade else "",
        f"Topic: {body.topic}" if body.topic else "",
        f"Context: {body.context}" if body.context else "",
        f"Template: {body.template}" if body.template else "",
    ]
    lines = [line for line in lines if line]
    user_prompt = ("\n".join(lines) + "\n\n" if lines else "") + STRUCTURED_INSTRUCTION

    return [
        {"role": "system", "content": body.system_prompt or DEFAULT_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def completion_error_response(exc: CompletionError, client: CompletionClient, model: str) -> JSONResponse:
    """Map a completion failure to the proxy's JSON error shape."""
    if isinstance(exc, MessageValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc)})
    if isinstance(exc, ConfigurationError):
        return JSONResponse(status_code=500, content={"error": str(exc)})
    if isinstance(exc, UpstreamError):
        return JSONResponse(
            status_code=502,
            content={
                "error": str(exc),
                "detail": exc.body,
                "model": model,
                "provider": client.provider,
            },
        )
    if isinstance(exc, CompletionTimeout):
        return JSONResponse(
            status_code=504,
            content={"error": "Upstream request timed out", "detail": str(exc)},
        )
    return JSONResponse(status_code=502, content={"error": "Upstream request failed", "detail": str(exc)})


@router.post(
    "",
    response_model=GenerateResponse,
    response_model_exclude_none=True,
    responses={code: {"model": ErrorResponse} for code in (400, 500, 502, 504)},
)
async def generate(
    body: GenerateRequest,
    client: CompletionClient = Depends(get_completion_client),
):
    """
    Forward a chat-completion request to the configured provider.

    Accepts either ``{messages: [...]}`` or the structured fields
    ``{topic, context, grade, curriculum, template, systemPrompt}``.
    """
    structured = body.messages is None
    messages = build_structured_messages(body) if structured else body.messages
    model = (body.model or client.model).strip()
    temperature = body.temperature
    if structured and temperature is None:
        temperature = STRUCTURED_TEMPERATURE

    try:
        result = await client.complete(
            messages,
            model=model,
            temperature=temperature,
            top_p=body.top_p,
            max_tokens=body.max_tokens,
        )
    except CompletionError as e:
        return completion_error_response(e, client, model)
    except Exception as e:
        logger.error(f"API /generate failed: {e.__class__.__name__}: {e}")
        if settings.DEBUG:
            logger.error(f"Traceback:\n{traceback.format_exc()}")
        return JSONResponse(status_code=500, content={"error": "Server error", "detail": str(e)})

    return GenerateResponse(
        content=result.text,
        text=result.text,
        model=result.model,
        provider=result.provider,
        usage=result.usage,
    )


@router.api_route("", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def generate_method_not_allowed():
    return JSONResponse(status_code=405, content={"error": "Method not allowed"}, headers={"Allow": "POST"})
