"""
Response Translator

Runs one caller request end to end:

    request -> prompt converter -> session bridge
            -> think stripper -> output guard -> tool-call parser -> serializer

The same pipeline serves every caller protocol; only the serializer at the
tail differs. The parser stage is skipped when the request declares no tools.
"""

import asyncio
import logging
from typing import AsyncIterator, Iterable, Optional

from app.common.errors import AppError, BackendError, CircuitOpenError
from app.common.prompt_converter import convert, estimate_tokens
from app.common.think_stripper import ThinkStripper, strip_think
from app.common.tool_parser import (
    MalformedEvent,
    ParserEvent,
    TextEvent,
    ToolCallEvent,
    ToolCallParser,
)
from app.config import Settings
from app.domain.conversation import ConversationRequest, ConvertedPrompt
from app.providers.base import TokenUsage
from app.serializers.base import ContentItem, ProtocolSerializer, TextItem, ToolCallItem, Usage
from app.services.session_bridge import PromptOptions, PromptResult, SessionBridge

logger = logging.getLogger(__name__)

_STREAM_END = object()
# Marks the start of a retry on a fresh session
_ATTEMPT_RESTART = object()


class OutputGuard:
    """
    Output length guard

    Budget is max(floor, max_output_tokens * chars_per_token) characters; no
    budget when the caller gave no maximum. The fragment that crosses the
    budget and everything after it are dropped.
    """

    def __init__(self, max_output_tokens: Optional[int], floor: int = 1000, chars_per_token: int = 4):
        self.budget = None if max_output_tokens is None else max(floor, max_output_tokens * chars_per_token)
        self.emitted = 0
        self.truncated = False

    def admit(self, fragment: str) -> str:
        if self.budget is None or not fragment:
            return fragment
        if self.truncated:
            return ""
        if self.emitted + len(fragment) > self.budget:
            self.truncated = True
            logger.info("Output budget of %d chars reached, dropping remaining output", self.budget)
            return ""
        self.emitted += len(fragment)
        return fragment

    def clip(self, text: str) -> str:
        if self.budget is None or len(text) <= self.budget:
            return text
        self.truncated = True
        logger.info("Output clipped to %d chars", self.budget)
        return text[: self.budget]


def build_items(events: Iterable[ParserEvent], full_text: str) -> list[ContentItem]:
    """
    Turn parser events into the items of a complete response

    Malformed calls degrade to text. Whitespace-only text items are dropped;
    when nothing is left, the whole text becomes the single item.
    """
    items: list[ContentItem] = []
    for event in events:
        if isinstance(event, ToolCallEvent):
            items.append(ToolCallItem(name=event.name, arguments=event.arguments))
            continue
        text = event.content if isinstance(event, TextEvent) else event.raw_content
        if items and isinstance(items[-1], TextItem):
            items[-1].text += text
        else:
            items.append(TextItem(text=text))

    items = [item for item in items if not isinstance(item, TextItem) or item.text.strip()]
    if not items:
        items = [TextItem(text=full_text)]
    return items


def _as_app_error(error: BaseException) -> AppError:
    if isinstance(error, AppError):
        return error
    return BackendError(message=str(error) or "Backend inference failed")


class ResponseTranslator:
    """Response Translator"""

    def __init__(self, bridge: SessionBridge, settings: Settings):
        self.bridge = bridge
        self.settings = settings

    def _convert(self, request: ConversationRequest) -> ConvertedPrompt:
        converted = convert(
            request.messages,
            request.system,
            request.tools,
            system_max_chars=self.settings.SYSTEM_PROMPT_MAX_CHARS,
        )
        logger.debug(
            "Prompt (%d chars, %d images): %s",
            len(converted.prompt),
            len(converted.images),
            converted.prompt[: self.settings.DEBUG_PROMPT_PREVIEW_CHARS],
        )
        return converted

    def _admit(self) -> None:
        if self.bridge.is_circuit_open():
            raise CircuitOpenError(last_error=self.bridge.get_circuit_error())

    def _new_guard(self, request: ConversationRequest) -> OutputGuard:
        return OutputGuard(
            request.max_output_tokens,
            floor=self.settings.OUTPUT_CHAR_FLOOR,
            chars_per_token=self.settings.CHARS_PER_TOKEN,
        )

    @staticmethod
    def _usage(token_usage: Optional[TokenUsage], prompt: str, output_text: str) -> Usage:
        input_tokens = token_usage.prompt_tokens if token_usage and token_usage.prompt_tokens else 0
        output_tokens = token_usage.completion_tokens if token_usage and token_usage.completion_tokens else 0
        return Usage(
            input_tokens=input_tokens or estimate_tokens(prompt),
            output_tokens=output_tokens or estimate_tokens(output_text),
        )

    # ============ Complete responses ============

    async def complete(self, request: ConversationRequest, serializer: ProtocolSerializer) -> dict:
        """
        Run a request and return the complete response document

        Raises:
            InvalidRequestError: The conversation cannot be converted
            CircuitOpenError: Circuit open
            AppError: Backend failure (BackendError for unexpected errors)
        """
        self._admit()
        converted = self._convert(request)
        serializer.input_tokens = estimate_tokens(converted.prompt)

        try:
            result = await self.bridge.send_prompt(
                converted.prompt, options=PromptOptions(images=converted.images)
            )
        except Exception as e:
            raise _as_app_error(e) from e

        text = self._new_guard(request).clip(strip_think(result.response, self.settings.THINK_MAX_CHARS))
        if request.has_tools:
            parser = ToolCallParser()
            events = parser.feed(text) + parser.flush()
        else:
            events = [TextEvent(content=text)] if text else []

        items = build_items(events, text)
        usage = self._usage(result.token_usage, converted.prompt, text)
        response = serializer.build_response(items, usage)
        logger.info(
            "Request completed: model=%s, input_tokens=%d, output_tokens=%d, tool_calls=%s",
            serializer.model,
            usage.input_tokens,
            usage.output_tokens,
            serializer.has_tool_calls,
        )
        return response

    # ============ Streaming ============

    async def stream(
        self, request: ConversationRequest, serializer: ProtocolSerializer
    ) -> AsyncIterator[str]:
        """
        Validate and admit a request, then return its SSE frame iterator

        Everything that must fail with a plain HTTP error (conversion, open
        circuit) fails here, before the caller's stream opens.
        """
        self._admit()
        converted = self._convert(request)
        serializer.input_tokens = estimate_tokens(converted.prompt)
        return self._stream_frames(request, converted, serializer)

    async def _stream_frames(
        self,
        request: ConversationRequest,
        converted: ConvertedPrompt,
        serializer: ProtocolSerializer,
    ) -> AsyncIterator[str]:
        # The token callback only enqueues, so a slow reader never stalls the backend
        tokens: asyncio.Queue = asyncio.Queue()

        def on_done(task: asyncio.Task) -> None:
            if not task.cancelled():
                task.exception()
            tokens.put_nowait(_STREAM_END)

        # Runs to completion even if the caller disconnects
        task = asyncio.get_running_loop().create_task(
            self.bridge.send_prompt(
                converted.prompt,
                on_token=tokens.put_nowait,
                options=PromptOptions(
                    images=converted.images,
                    on_retry=lambda: tokens.put_nowait(_ATTEMPT_RESTART),
                ),
            )
        )
        task.add_done_callback(on_done)

        stripper = ThinkStripper(max_chars=self.settings.THINK_MAX_CHARS)
        guard = self._new_guard(request)
        parser = ToolCallParser() if request.has_tools else None
        emitted: list[str] = []

        def to_events(fragment: str, final: bool = False) -> list[ParserEvent]:
            fragment = guard.admit(fragment)
            if parser is None:
                return [TextEvent(content=fragment)] if fragment else []
            events = parser.feed(fragment)
            if final:
                events += parser.flush()
            return events

        def to_frames(events: list[ParserEvent]) -> list[str]:
            frames: list[str] = []
            for event in events:
                if isinstance(event, ToolCallEvent):
                    frames += serializer.tool_call(event.name, event.arguments)
                else:
                    text = event.content if isinstance(event, TextEvent) else event.raw_content
                    emitted.append(text)
                    frames += serializer.text(text)
            return frames

        for frame in serializer.start():
            yield frame

        while True:
            token = await tokens.get()
            if token is _STREAM_END:
                break
            if token is _ATTEMPT_RESTART:
                # Output held back from the failed attempt is dropped; the guard keeps counting sent text
                logger.debug("Backend attempt restarted, discarding buffered output")
                stripper = ThinkStripper(max_chars=self.settings.THINK_MAX_CHARS)
                parser = ToolCallParser() if request.has_tools else None
                continue
            logger.debug("Token: %r", token)
            for frame in to_frames(to_events(stripper.feed(token))):
                yield frame

        error: Optional[AppError] = None
        if task.cancelled():
            error = BackendError("Backend call was cancelled")
        elif task.exception() is not None:
            error = _as_app_error(task.exception())
        if error is not None:
            logger.warning("Streaming request failed: model=%s, error=%s", serializer.model, error.message)
            for frame in serializer.error(error):
                yield frame
            return

        for frame in to_frames(to_events(stripper.flush(), final=True)):
            yield frame

        result: PromptResult = task.result()
        usage = self._usage(result.token_usage, converted.prompt, "".join(emitted))
        logger.info(
            "Stream completed: model=%s, input_tokens=%d, output_tokens=%d, tool_calls=%s, truncated=%s",
            serializer.model,
            usage.input_tokens,
            usage.output_tokens,
            serializer.has_tool_calls,
            guard.truncated,
        )
        for frame in serializer.finish(usage):
            yield frame
