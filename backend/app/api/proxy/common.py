"""
Shared conversation endpoint handling

Parses the caller body, resolves remote images and hands the request to the
translator. Errors are rendered in the caller protocol's native shape.
"""

import logging
from typing import Any, Callable

from fastapi import Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from app.common.errors import AppError, InvalidRequestError
from app.common.protocol.requests import fetch_remote_images
from app.domain.conversation import ConversationRequest
from app.serializers.base import ProtocolSerializer
from app.services.translator import ResponseTranslator

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


async def read_json_body(request: Request) -> Any:
    """
    Read the request body as JSON

    Raises:
        InvalidRequestError: Body is not valid JSON
    """
    try:
        return await request.json()
    except ValueError:
        raise InvalidRequestError("Request body is not valid JSON", code="invalid_json")


async def handle_conversation(
    request: Request,
    translator: ResponseTranslator,
    parse: Callable[[Any], ConversationRequest],
    serializer_cls: type[ProtocolSerializer],
) -> Response:
    """
    Handle one conversation request

    Args:
        request: Incoming HTTP request
        translator: Response translator
        parse: Protocol request adapter
        serializer_cls: Protocol serializer

    Returns:
        Response: JSON document or SSE stream
    """
    settings = translator.settings
    try:
        conversation = parse(await read_json_body(request))
        conversation = await fetch_remote_images(
            conversation,
            timeout=settings.IMAGE_FETCH_TIMEOUT,
            max_bytes=settings.IMAGE_MAX_BYTES,
        )
        serializer = serializer_cls(conversation.model or settings.MODEL_ID)

        if conversation.stream:
            frames = await translator.stream(conversation, serializer)
            return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS)

        return JSONResponse(content=await translator.complete(conversation, serializer))

    except AppError as e:
        logger.warning(
            "Request rejected: path=%s, status=%d, error=%s",
            request.url.path,
            e.status_code,
            e.message,
        )
        return JSONResponse(
            content=serializer_cls(settings.MODEL_ID).error_body(e),
            status_code=e.status_code,
        )
