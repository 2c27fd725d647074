"""Translation endpoint."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator

from chatguard.app.api.dependencies import ProviderClientDep
from chatguard.app.api.errors import bad_request, internal_server_error, log_server_error
from chatguard.app.exceptions import ProviderError
from chatguard.app.middleware.guard import (
    MAX_LANGUAGE_TAG_CHARS,
    MAX_TEXT_INPUT_CHARS,
    MAX_TEXT_REQUEST_BYTES,
    enforce_text_limit,
    raise_if_rejected,
    require_guards,
)
from chatguard.app.middleware.request_id import get_request_id
from chatguard.app.services.prompts import build_translation_prompt

router = APIRouter(tags=["ai"])


class TranslateRequest(BaseModel):
    """Text to translate. Missing fields are reported as a 400, not a 422."""
    text: str = ""
    source_lang: str = ""
    target_lang: str = ""

    @field_validator("text", "source_lang", "target_lang", mode="before")
    @classmethod
    def strip_strings(cls, v):
        return v.strip() if isinstance(v, str) else ""


@router.post(
    "/api/translate",
    dependencies=[Depends(require_guards("translate", "aiText", MAX_TEXT_REQUEST_BYTES))],
)
async def translate(
    request: Request,
    payload: TranslateRequest,
    client: ProviderClientDep,
) -> JSONResponse:
    if not payload.text or not payload.source_lang or not payload.target_lang:
        return bad_request("Missing required fields: text, source_lang, target_lang")

    raise_if_rejected(enforce_text_limit("text", payload.text, MAX_TEXT_INPUT_CHARS))
    raise_if_rejected(enforce_text_limit("source_lang", payload.source_lang, MAX_LANGUAGE_TAG_CHARS))
    raise_if_rejected(enforce_text_limit("target_lang", payload.target_lang, MAX_LANGUAGE_TAG_CHARS))

    if payload.source_lang == payload.target_lang:
        return JSONResponse({
            "translated_text": payload.text,
            "source_language": payload.source_lang,
            "target_language": payload.target_lang,
        })

    if not client.is_configured():
        return JSONResponse(
            status_code=500, content={"error": "Translation service not configured"}
        )

    prompt = build_translation_prompt(payload.text, payload.source_lang, payload.target_lang)
    try:
        result = await client.generate(prompt)
    except ProviderError as exc:
        request_id = get_request_id(request)
        log_server_error("translate API", request_id, exc)
        return internal_server_error("Translation failed", request_id)

    return JSONResponse({
        "translated_text": result.text().strip(),
        "source_language": payload.source_lang,
        "target_language": payload.target_lang,
    })
