"""
Anthropic Messages Serializer

Stream: message_start, then per block content_block_start /
content_block_delta / content_block_stop, then message_delta and
message_stop. Text block 0 opens right after message_start.
"""

import json
import uuid
from typing import Any

from app.common.errors import AppError
from app.serializers.base import (
    ContentItem,
    ProtocolSerializer,
    TextItem,
    ToolCallItem,
    Usage,
    format_sse,
)


def _tool_use_id() -> str:
    return f"toolu_{uuid.uuid4().hex[:24]}"


class AnthropicSerializer(ProtocolSerializer):
    """Messages protocol serializer"""

    eager_text_unit = True

    def __init__(self, model: str, input_tokens: int = 0):
        super().__init__(model, input_tokens)
        self.message_id = f"msg_{uuid.uuid4().hex[:24]}"

    @property
    def stop_reason(self) -> str:
        return "tool_use" if self.has_tool_calls else "end_turn"

    @staticmethod
    def _event(event_type: str, payload: dict[str, Any]) -> str:
        return format_sse(event_type, {"type": event_type, **payload})

    def _start_frames(self) -> list[str]:
        return [
            self._event(
                "message_start",
                {
                    "message": {
                        "id": self.message_id,
                        "type": "message",
                        "role": "assistant",
                        "content": [],
                        "model": self.model,
                        "stop_reason": None,
                        "stop_sequence": None,
                        "usage": {"input_tokens": self.input_tokens, "output_tokens": 0},
                    }
                },
            )
        ]

    def _open_text_frames(self, index: int) -> list[str]:
        return [
            self._event(
                "content_block_start",
                {"index": index, "content_block": {"type": "text", "text": ""}},
            )
        ]

    def _text_delta_frames(self, index: int, content: str) -> list[str]:
        return [
            self._event(
                "content_block_delta",
                {"index": index, "delta": {"type": "text_delta", "text": content}},
            )
        ]

    def _close_text_frames(self, index: int, text: str) -> list[str]:
        return [self._event("content_block_stop", {"index": index})]

    def _tool_call_frames(self, index: int, name: str, arguments: dict[str, Any]) -> list[str]:
        return [
            self._event(
                "content_block_start",
                {
                    "index": index,
                    "content_block": {"type": "tool_use", "id": _tool_use_id(), "name": name, "input": {}},
                },
            ),
            self._event(
                "content_block_delta",
                {
                    "index": index,
                    "delta": {
                        "type": "input_json_delta",
                        "partial_json": json.dumps(arguments, ensure_ascii=False),
                    },
                },
            ),
            self._event("content_block_stop", {"index": index}),
        ]

    def _finish_frames(self, usage: Usage) -> list[str]:
        return [
            self._event(
                "message_delta",
                {
                    "delta": {"stop_reason": self.stop_reason, "stop_sequence": None},
                    "usage": {"output_tokens": usage.output_tokens},
                },
            ),
            self._event("message_stop", {}),
        ]

    def _error_frames(self, error: AppError) -> list[str]:
        return [format_sse("error", self.error_body(error))]

    def build_response(self, items: list[ContentItem], usage: Usage) -> dict[str, Any]:
        content: list[dict[str, Any]] = []
        for item in items:
            if isinstance(item, ToolCallItem):
                self.has_tool_calls = True
                content.append(
                    {"type": "tool_use", "id": _tool_use_id(), "name": item.name, "input": item.arguments}
                )
            elif isinstance(item, TextItem):
                content.append({"type": "text", "text": item.text})

        return {
            "id": self.message_id,
            "type": "message",
            "role": "assistant",
            "model": self.model,
            "content": content,
            "stop_reason": self.stop_reason,
            "stop_sequence": None,
            "usage": {
                "input_tokens": usage.input_tokens,
                "output_tokens": usage.output_tokens,
            },
        }

    def error_body(self, error: AppError) -> dict[str, Any]:
        return {
            "type": "error",
            "error": {"type": error.error_type, "message": error.message},
        }
