"""
Protocol Serializer Base Class

Every caller protocol is produced from the same internal event sequence
(text, tool call, finish, error). The base class owns the shared unit
lifecycle: which text unit is open, the monotonically increasing unit index
and whether any tool call was produced. Subclasses only render frames.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from app.common.errors import AppError


@dataclass
class Usage:
    """Token usage reported to the caller"""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class TextItem:
    """Text content of a complete response"""

    text: str


@dataclass
class ToolCallItem:
    """Tool invocation of a complete response"""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


ContentItem = Union[TextItem, ToolCallItem]


def format_sse(event_type: Optional[str], data: Union[dict[str, Any], str]) -> str:
    """
    Format one server-sent event

    Args:
        event_type: Optional `event:` name
        data: JSON payload or raw string

    Returns:
        str: Frame terminated by a blank line
    """
    lines = []
    if event_type:
        lines.append(f"event: {event_type}")
    if isinstance(data, str):
        lines.append(f"data: {data}")
    else:
        lines.append(f"data: {json.dumps(data, ensure_ascii=False)}")
    return "\n".join(lines) + "\n\n"


class ProtocolSerializer(ABC):
    """
    Protocol Serializer

    Streaming: call `start()`, then `text()` / `tool_call()` per parser event,
    then `finish()` or `error()`. Each call returns the SSE frames to send.
    Complete responses use `build_response()`.
    """

    # Whether a text unit is opened right after the start frames
    eager_text_unit = False

    def __init__(self, model: str, input_tokens: int = 0):
        self.model = model
        self.input_tokens = input_tokens
        self.has_tool_calls = False
        self._next_index = 0
        self._text_index: Optional[int] = None
        self._text_parts: list[str] = []

    # ============ Streaming lifecycle ============

    def start(self) -> list[str]:
        frames = self._start_frames()
        if self.eager_text_unit:
            frames += self._open_text()
        return frames

    def text(self, content: str) -> list[str]:
        if not content:
            return []
        frames: list[str] = []
        if self._text_index is None:
            frames += self._open_text()
        self._text_parts.append(content)
        frames += self._text_delta_frames(self._text_index, content)
        return frames

    def tool_call(self, name: str, arguments: dict[str, Any]) -> list[str]:
        frames = self._close_text()
        index = self._allocate_index()
        self.has_tool_calls = True
        frames += self._tool_call_frames(index, name, arguments)
        return frames

    def finish(self, usage: Usage) -> list[str]:
        frames = self._close_text()
        frames += self._finish_frames(usage)
        return frames

    def error(self, error: AppError) -> list[str]:
        return self._error_frames(error)

    def _allocate_index(self) -> int:
        index = self._next_index
        self._next_index += 1
        return index

    def _open_text(self) -> list[str]:
        self._text_index = self._allocate_index()
        self._text_parts = []
        return self._open_text_frames(self._text_index)

    def _close_text(self) -> list[str]:
        if self._text_index is None:
            return []
        frames = self._close_text_frames(self._text_index, "".join(self._text_parts))
        self._text_index = None
        self._text_parts = []
        return frames

    # ============ Protocol hooks ============

    @abstractmethod
    def _start_frames(self) -> list[str]:
        pass

    def _open_text_frames(self, index: int) -> list[str]:
        return []

    @abstractmethod
    def _text_delta_frames(self, index: int, content: str) -> list[str]:
        pass

    def _close_text_frames(self, index: int, text: str) -> list[str]:
        return []

    @abstractmethod
    def _tool_call_frames(self, index: int, name: str, arguments: dict[str, Any]) -> list[str]:
        pass

    @abstractmethod
    def _finish_frames(self, usage: Usage) -> list[str]:
        pass

    @abstractmethod
    def _error_frames(self, error: AppError) -> list[str]:
        pass

    # ============ Complete responses ============

    @abstractmethod
    def build_response(self, items: list[ContentItem], usage: Usage) -> dict[str, Any]:
        """Render a complete (non-streaming) response document"""
        pass

    def error_body(self, error: AppError) -> dict[str, Any]:
        """Protocol-native error document"""
        return error.to_dict()
