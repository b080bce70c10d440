"""
Request Adapters

Parse each caller protocol's JSON body into a ConversationRequest.
Validation failures raise InvalidRequestError before the backend is touched.
"""

import base64
import dataclasses
import json
import logging
from typing import Any, Optional

import httpx

from app.common.errors import InvalidRequestError
from app.domain.conversation import (
    ContentBlock,
    ConversationRequest,
    ImageBlock,
    ImageUrlBlock,
    Message,
    TextBlock,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
)

logger = logging.getLogger(__name__)


# ============ Shared helpers ============


def _require_object(body: Any) -> dict[str, Any]:
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return body


def _require_messages(body: dict[str, Any]) -> list[Any]:
    messages = body.get("messages")
    if messages is None:
        raise InvalidRequestError("messages: Field required", code="missing_messages")
    if not isinstance(messages, list) or not messages:
        raise InvalidRequestError("messages must be a non-empty array", code="missing_messages")
    return messages


def _optional_positive_int(body: dict[str, Any], *keys: str) -> Optional[int]:
    for key in keys:
        value = body.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise InvalidRequestError(f"{key} must be a positive integer", code="invalid_max_tokens")
        return value
    return None


def _parse_arguments(raw: Any) -> dict[str, Any]:
    """Tool arguments arrive as a JSON string (OpenAI) or an object (Anthropic)"""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = json.loads(raw)
        except ValueError:
            return {}
        if isinstance(parsed, dict):
            return parsed
    return {}


def _text_of(content: Any) -> str:
    """Flatten string-or-parts content to text, keeping text parts only"""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text") or ""
            for part in content
            if isinstance(part, dict) and part.get("type") in ("text", "input_text", "output_text")
        )
    return ""


def parse_image_url(url: Any) -> Optional[ContentBlock]:
    """
    Map an image URL onto a content block

    data: URLs become inline images, https: URLs are fetched later,
    anything else is ignored.
    """
    if not isinstance(url, str):
        return None
    if url.startswith("data:"):
        header, sep, data = url.partition(",")
        if not sep or ";base64" not in header:
            return None
        mime = header[len("data:"):].split(";")[0]
        return ImageBlock(data=data, format=mime.split("/")[-1] or "png")
    if url.startswith("https://"):
        return ImageUrlBlock(url=url)
    logger.warning("Ignoring unsupported image URL scheme: %s", url[:40])
    return None


def _parse_tools(raw_tools: Any, flat: bool) -> tuple[ToolDefinition, ...]:
    if raw_tools is None:
        return ()
    if not isinstance(raw_tools, list):
        raise InvalidRequestError("tools must be an array", code="invalid_tools")

    tools: list[ToolDefinition] = []
    for raw in raw_tools:
        if not isinstance(raw, dict):
            continue
        definition = raw
        if not flat or isinstance(raw.get("function"), dict):
            definition = raw.get("function") if isinstance(raw.get("function"), dict) else raw
        name = definition.get("name")
        if not name:
            continue
        parameters = definition.get("parameters")
        if parameters is None:
            parameters = definition.get("input_schema")
        tools.append(
            ToolDefinition(
                name=str(name),
                description=definition.get("description") or "",
                parameters=parameters if isinstance(parameters, dict) else {},
            )
        )
    return tuple(tools)


# ============ Messages protocol ============


def _parse_anthropic_block(block: Any) -> Optional[ContentBlock]:
    if isinstance(block, str):
        return TextBlock(text=block)
    if not isinstance(block, dict):
        return None
    block_type = block.get("type")
    if block_type == "text":
        return TextBlock(text=block.get("text") or "")
    if block_type == "image":
        source = block.get("source")
        if not isinstance(source, dict):
            raise InvalidRequestError("image source must be an object", code="invalid_image")
        if source.get("type") == "base64":
            media_type = source.get("media_type") or "image/png"
            return ImageBlock(data=source.get("data") or "", format=media_type.split("/")[-1])
        if source.get("type") == "url":
            return parse_image_url(source.get("url"))
        return None
    if block_type == "tool_use":
        return ToolUseBlock(
            id=block.get("id") or "",
            name=block.get("name") or "",
            arguments=_parse_arguments(block.get("input")),
        )
    if block_type == "tool_result":
        return ToolResultBlock(
            tool_use_id=block.get("tool_use_id") or "",
            content=_text_of(block.get("content")),
        )
    # thinking, redacted_thinking, documents...
    return None


def parse_messages_request(body: Any) -> ConversationRequest:
    """
    Parse an Anthropic Messages request

    Raises:
        InvalidRequestError: missing/empty messages or max_tokens not positive
    """
    body = _require_object(body)
    raw_messages = _require_messages(body)
    if body.get("max_tokens") is None:
        raise InvalidRequestError("max_tokens: Field required", code="invalid_max_tokens")
    max_tokens = _optional_positive_int(body, "max_tokens")

    system = body.get("system")
    if isinstance(system, list):
        system = "\n".join(
            b.get("text") or "" for b in system if isinstance(b, dict) and b.get("type") == "text"
        )
    elif not isinstance(system, str):
        system = None

    messages: list[Message] = []
    for raw in raw_messages:
        if not isinstance(raw, dict):
            raise InvalidRequestError("Each message must be an object")
        content = raw.get("content")
        if isinstance(content, str):
            blocks: list[ContentBlock] = [TextBlock(text=content)]
        elif isinstance(content, list):
            blocks = [b for b in (_parse_anthropic_block(c) for c in content) if b is not None]
        else:
            blocks = []
        messages.append(Message(role=raw.get("role") or "user", content=tuple(blocks)))

    return ConversationRequest(
        model=str(body.get("model") or ""),
        messages=tuple(messages),
        system=system or None,
        tools=_parse_tools(body.get("tools"), flat=True),
        stream=body.get("stream") is True,
        max_output_tokens=max_tokens,
    )


# ============ Chat Completions protocol ============


def _parse_chat_part(part: Any) -> Optional[ContentBlock]:
    if isinstance(part, str):
        return TextBlock(text=part)
    if not isinstance(part, dict):
        return None
    part_type = part.get("type")
    if part_type == "text":
        return TextBlock(text=part.get("text") or "")
    if part_type == "image_url":
        image_url = part.get("image_url")
        url = image_url.get("url") if isinstance(image_url, dict) else image_url
        return parse_image_url(url)
    return None


def parse_chat_request(body: Any) -> ConversationRequest:
    """Parse an OpenAI Chat Completions request"""
    body = _require_object(body)
    raw_messages = _require_messages(body)

    messages: list[Message] = []
    for raw in raw_messages:
        if not isinstance(raw, dict):
            raise InvalidRequestError("Each message must be an object")
        role = raw.get("role") or "user"
        content = raw.get("content")

        if role == "tool":
            block = ToolResultBlock(
                tool_use_id=raw.get("tool_call_id") or "",
                content=_text_of(content),
            )
            messages.append(Message(role=role, content=(block,)))
            continue

        blocks: list[ContentBlock] = []
        if isinstance(content, str):
            blocks.append(TextBlock(text=content))
        elif isinstance(content, list):
            blocks.extend(b for b in (_parse_chat_part(p) for p in content) if b is not None)

        for call in raw.get("tool_calls") or []:
            if not isinstance(call, dict):
                continue
            function = call.get("function")
            if not isinstance(function, dict):
                raise InvalidRequestError("tool_calls[].function must be an object", code="invalid_tool_calls")
            blocks.append(
                ToolUseBlock(
                    id=call.get("id") or "",
                    name=function.get("name") or "",
                    arguments=_parse_arguments(function.get("arguments")),
                )
            )
        messages.append(Message(role=role, content=tuple(blocks)))

    return ConversationRequest(
        model=str(body.get("model") or ""),
        messages=tuple(messages),
        tools=_parse_tools(body.get("tools"), flat=False),
        stream=body.get("stream") is True,
        max_output_tokens=_optional_positive_int(body, "max_completion_tokens", "max_tokens"),
    )


# ============ Responses protocol ============


def _parse_responses_part(part: Any) -> Optional[ContentBlock]:
    if isinstance(part, str):
        return TextBlock(text=part)
    if not isinstance(part, dict):
        return None
    part_type = part.get("type")
    if part_type in ("input_text", "output_text", "text"):
        return TextBlock(text=part.get("text") or "")
    if part_type == "input_image":
        image_url = part.get("image_url")
        url = image_url.get("url") if isinstance(image_url, dict) else image_url
        return parse_image_url(url)
    return None


def parse_responses_request(body: Any) -> ConversationRequest:
    """Parse an OpenAI Responses request"""
    body = _require_object(body)
    raw_input = body.get("input")
    if raw_input is None or raw_input == "" or raw_input == []:
        raise InvalidRequestError("input: Field required", code="missing_input")

    messages: list[Message] = []
    if isinstance(raw_input, str):
        messages.append(Message(role="user", content=(TextBlock(text=raw_input),)))
    elif isinstance(raw_input, list):
        for item in raw_input:
            if not isinstance(item, dict):
                raise InvalidRequestError("Each input item must be an object")
            item_type = item.get("type")
            if item_type == "function_call":
                block = ToolUseBlock(
                    id=item.get("call_id") or item.get("id") or "",
                    name=item.get("name") or "",
                    arguments=_parse_arguments(item.get("arguments")),
                )
                messages.append(Message(role="assistant", content=(block,)))
            elif item_type == "function_call_output":
                output = item.get("output")
                result = ToolResultBlock(
                    tool_use_id=item.get("call_id") or "",
                    content=output if isinstance(output, str) else _text_of(output),
                )
                messages.append(Message(role="tool", content=(result,)))
            elif item_type in (None, "message"):
                content = item.get("content")
                if isinstance(content, list):
                    blocks = tuple(
                        b for b in (_parse_responses_part(p) for p in content) if b is not None
                    )
                else:
                    blocks = (TextBlock(text=content or ""),)
                messages.append(Message(role=item.get("role") or "user", content=blocks))
            # reasoning and other item types carry nothing the prompt needs
    else:
        raise InvalidRequestError("input must be a string or an array", code="missing_input")

    if not messages:
        raise InvalidRequestError("input contains no usable items", code="missing_input")

    instructions = body.get("instructions")
    return ConversationRequest(
        model=str(body.get("model") or ""),
        messages=tuple(messages),
        system=instructions if isinstance(instructions, str) and instructions else None,
        tools=_parse_tools(body.get("tools"), flat=True),
        stream=body.get("stream") is True,
        max_output_tokens=_optional_positive_int(body, "max_output_tokens"),
    )


# ============ Remote images ============


DEFAULT_IMAGE_MAX_BYTES = 10 * 1024 * 1024


async def _fetch_image(client: httpx.AsyncClient, url: str, max_bytes: int) -> Optional[ImageBlock]:
    try:
        async with client.stream("GET", url, follow_redirects=True) as response:
            response.raise_for_status()
            content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
            if not content_type.startswith("image/"):
                logger.warning(
                    "Failed to fetch image, skipping: url=%s, error=unsupported content-type %r",
                    url,
                    content_type,
                )
                return None

            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) > max_bytes:
                    logger.warning(
                        "Failed to fetch image, skipping: url=%s, error=larger than %d bytes",
                        url,
                        max_bytes,
                    )
                    return None
    except httpx.HTTPError as e:
        logger.warning("Failed to fetch image, skipping: url=%s, error=%s", url, e)
        return None

    return ImageBlock(
        data=base64.b64encode(bytes(body)).decode("ascii"),
        format=content_type.split("/")[-1] or "png",
    )


async def fetch_remote_images(
    request: ConversationRequest,
    timeout: float = 15.0,
    max_bytes: int = DEFAULT_IMAGE_MAX_BYTES,
    client: Optional[httpx.AsyncClient] = None,
) -> ConversationRequest:
    """
    Replace https image references with inline images

    A failed fetch, a non-image content type or an oversized body drops the
    image; it never fails the request.

    Args:
        request: Parsed request
        timeout: Per-request timeout (seconds)
        max_bytes: Largest image body accepted; bigger images are dropped
        client: Optional client to reuse (tests inject a mock transport here)

    Returns:
        ConversationRequest: Request without ImageUrlBlock entries
    """
    if not any(
        isinstance(block, ImageUrlBlock) for message in request.messages for block in message.content
    ):
        return request

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=httpx.Timeout(timeout))
    try:
        messages: list[Message] = []
        for message in request.messages:
            blocks: list[ContentBlock] = []
            for block in message.content:
                if isinstance(block, ImageUrlBlock):
                    fetched = await _fetch_image(client, block.url, max_bytes)
                    if fetched is not None:
                        blocks.append(fetched)
                else:
                    blocks.append(block)
            messages.append(dataclasses.replace(message, content=tuple(blocks)))
    finally:
        if owns_client:
            await client.aclose()

    return dataclasses.replace(request, messages=tuple(messages))
