"""AI chat endpoints.

``/api/ai-chat`` answers a stored conversation: the client sends the
conversation history and the id of the user message to answer, and only a
relevant slice of earlier user turns goes to the provider.

``/api/ai-chat/temporary`` answers a stateless chat whose full transcript
is sent with every request; the newest turns are kept within a budget.
"""

from datetime import datetime, timezone
from typing import List, Literal, Optional, Sequence

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from chatguard.app.api.dependencies import ProviderClientDep
from chatguard.app.api.errors import bad_request, internal_server_error, log_server_error
from chatguard.app.core.logging import get_logger
from chatguard.app.exceptions import ProviderError
from chatguard.app.middleware.guard import (
    MAX_CHAT_MESSAGE_CHARS,
    MAX_CHAT_MESSAGES,
    MAX_CHAT_TOTAL_CHARS,
    MAX_TEXT_REQUEST_BYTES,
    enforce_array_size_limit,
    enforce_character_count_limit,
    enforce_text_limit,
    raise_if_rejected,
    require_guards,
)
from chatguard.app.middleware.request_id import get_request_id
from chatguard.app.providers.client import ProviderClient
from chatguard.app.services.context import ConversationTurn, pick_context, trim_recent_turns
from chatguard.app.services.prompts import build_chat_prompt, build_transcript_prompt

logger = get_logger(__name__)

router = APIRouter(tags=["ai"])

GENERIC_CHAT_ERROR = "Failed to generate response"


class HistoryTurn(BaseModel):
    id: str
    role: Literal["user", "assistant"]
    content: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        # Naive timestamps are UTC
        return v.replace(tzinfo=timezone.utc) if v.tzinfo is None else v


class ChatRequest(BaseModel):
    history: List[HistoryTurn] = Field(default_factory=list)
    message_id: Optional[str] = None
    system_prompt: Optional[str] = None
    response_language: Optional[str] = None


class TemporaryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class TemporaryChatRequest(BaseModel):
    messages: List[TemporaryMessage] = Field(default_factory=list)


def _enforce_message_limits(contents: Sequence[str]) -> None:
    raise_if_rejected(enforce_array_size_limit("messages", len(contents), MAX_CHAT_MESSAGES))
    raise_if_rejected(
        enforce_character_count_limit(
            "messages", sum(len(content) for content in contents), MAX_CHAT_TOTAL_CHARS
        )
    )
    for content in contents:
        raise_if_rejected(enforce_text_limit("message", content, MAX_CHAT_MESSAGE_CHARS))


async def _generate_reply(
    request: Request, client: ProviderClient, prompt: str, scope: str
) -> JSONResponse:
    if not client.is_configured():
        return JSONResponse(status_code=500, content={"error": "AI service not configured"})

    try:
        result = await client.generate(prompt)
    except ProviderError as exc:
        request_id = get_request_id(request)
        log_server_error(scope, request_id, exc)
        return internal_server_error(GENERIC_CHAT_ERROR, request_id)

    content = result.text().strip()
    if not content:
        request_id = get_request_id(request)
        logger.error(
            f"[{scope}] request_id={request_id} empty response from model {result.model}",
            extra={"request_id": request_id, "route": scope},
        )
        return internal_server_error(GENERIC_CHAT_ERROR, request_id)

    return JSONResponse({"content": content})


@router.post(
    "/api/ai-chat",
    dependencies=[Depends(require_guards("aiChat", "aiText", MAX_TEXT_REQUEST_BYTES))],
)
async def ai_chat(
    request: Request,
    payload: ChatRequest,
    client: ProviderClientDep,
) -> JSONResponse:
    _enforce_message_limits([turn.content for turn in payload.history])

    history = sorted(
        (
            ConversationTurn(
                id=turn.id, role=turn.role, content=turn.content, created_at=turn.created_at
            )
            for turn in payload.history
        ),
        key=lambda turn: turn.created_at,
    )
    selection = pick_context(history, payload.message_id)
    if selection.current is None or not selection.current.content.strip():
        return bad_request("No user message found")

    prompt = build_chat_prompt(
        selection.current,
        selection.context,
        system_prompt=payload.system_prompt,
        response_language=payload.response_language,
    )
    return await _generate_reply(request, client, prompt, "ai-chat API")


@router.post(
    "/api/ai-chat/temporary",
    dependencies=[Depends(require_guards("aiChatTemporary", "aiText", MAX_TEXT_REQUEST_BYTES))],
)
async def ai_chat_temporary(
    request: Request,
    payload: TemporaryChatRequest,
    client: ProviderClientDep,
) -> JSONResponse:
    _enforce_message_limits([message.content for message in payload.messages])

    if not payload.messages:
        return bad_request("No messages provided")

    last_user = None
    for index, message in enumerate(payload.messages):
        if message.role == "user" and message.content.strip():
            last_user = index
    if last_user is None:
        return bad_request("No user message found")

    # Transcript order is authoritative; timestamps only satisfy the turn type
    received_at = datetime.now(timezone.utc)
    turns = [
        ConversationTurn(
            id=f"temp-{index}", role=message.role, content=message.content, created_at=received_at
        )
        for index, message in enumerate(payload.messages[: last_user + 1])
    ]

    prompt = build_transcript_prompt(trim_recent_turns(turns))
    return await _generate_reply(request, client, prompt, "ai-chat temporary API")
