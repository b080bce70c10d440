"""
OpenAI Compatible API

Provides OpenAI-compatible Chat Completions, Responses and Models endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from app.api.deps import TranslatorDep, require_bridge_key
from app.api.proxy.common import handle_conversation
from app.common.protocol.requests import parse_chat_request, parse_responses_request
from app.config import Settings, get_settings
from app.serializers.openai_chat import ChatCompletionsSerializer
from app.serializers.openai_responses import ResponsesSerializer

router = APIRouter(tags=["OpenAI"], dependencies=[Depends(require_bridge_key)])


@router.get("/v1/models")
async def list_models(settings: Annotated[Settings, Depends(get_settings)]):
    """
    OpenAI Models API (List)

    Returns the single model served by the backend session.
    """
    return {
        "object": "list",
        "data": [
            {
                "id": settings.MODEL_ID,
                "object": "model",
                "owned_by": "system",
            }
        ],
    }


@router.post("/v1/chat/completions")
async def chat_completions(
    request: Request,
    translator: TranslatorDep,
) -> Response:
    """
    OpenAI Chat Completions API
    """
    return await handle_conversation(request, translator, parse_chat_request, ChatCompletionsSerializer)


@router.post("/v1/responses")
async def responses(
    request: Request,
    translator: TranslatorDep,
) -> Response:
    """
    OpenAI Responses API

    Function tools are taught to the model in the prompt; calls are reported as
    `function_call` output items.
    """
    return await handle_conversation(request, translator, parse_responses_request, ResponsesSerializer)
