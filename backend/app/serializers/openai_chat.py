"""
OpenAI Chat Completions Serializer

Stream: a role-first chunk, content deltas, one chunk per tool call, a
finish chunk carrying `finish_reason` and `usage`, then `data: [DONE]`.
Chunks carry no block lifecycle; clients accumulate deltas themselves.
"""

import json
import time
import uuid
from typing import Any, Optional

from app.common.errors import AppError
from app.serializers.base import (
    ContentItem,
    ProtocolSerializer,
    TextItem,
    ToolCallItem,
    Usage,
    format_sse,
)

DONE_FRAME = format_sse(None, "[DONE]")


def _call_id() -> str:
    return f"call_{uuid.uuid4().hex[:24]}"


def _usage_dict(usage: Usage) -> dict[str, int]:
    return {
        "prompt_tokens": usage.input_tokens,
        "completion_tokens": usage.output_tokens,
        "total_tokens": usage.total_tokens,
    }


class ChatCompletionsSerializer(ProtocolSerializer):
    """Chat Completions protocol serializer"""

    def __init__(self, model: str, input_tokens: int = 0):
        super().__init__(model, input_tokens)
        self.completion_id = f"chatcmpl-{uuid.uuid4().hex}"
        self.created = int(time.time())
        # tool_calls[].index counts tool calls only
        self._tool_index = 0

    @property
    def finish_reason(self) -> str:
        return "tool_calls" if self.has_tool_calls else "stop"

    def _chunk(
        self,
        delta: dict[str, Any],
        finish_reason: Optional[str] = None,
        usage: Optional[Usage] = None,
    ) -> str:
        chunk: dict[str, Any] = {
            "id": self.completion_id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
        }
        if usage is not None:
            chunk["usage"] = _usage_dict(usage)
        return format_sse(None, chunk)

    def _start_frames(self) -> list[str]:
        return [self._chunk({"role": "assistant", "content": ""})]

    def _text_delta_frames(self, index: int, content: str) -> list[str]:
        return [self._chunk({"content": content})]

    def _tool_call_frames(self, index: int, name: str, arguments: dict[str, Any]) -> list[str]:
        tool_index = self._tool_index
        self._tool_index += 1
        return [
            self._chunk(
                {
                    "tool_calls": [
                        {
                            "index": tool_index,
                            "id": _call_id(),
                            "type": "function",
                            "function": {
                                "name": name,
                                "arguments": json.dumps(arguments, ensure_ascii=False),
                            },
                        }
                    ]
                }
            )
        ]

    def _finish_frames(self, usage: Usage) -> list[str]:
        return [self._chunk({}, finish_reason=self.finish_reason, usage=usage), DONE_FRAME]

    def _error_frames(self, error: AppError) -> list[str]:
        return [format_sse(None, self.error_body(error)), DONE_FRAME]

    def build_response(self, items: list[ContentItem], usage: Usage) -> dict[str, Any]:
        texts: list[str] = []
        tool_calls: list[dict[str, Any]] = []
        for item in items:
            if isinstance(item, ToolCallItem):
                tool_calls.append(
                    {
                        "id": _call_id(),
                        "type": "function",
                        "function": {
                            "name": item.name,
                            "arguments": json.dumps(item.arguments, ensure_ascii=False),
                        },
                    }
                )
            elif isinstance(item, TextItem):
                texts.append(item.text)

        self.has_tool_calls = bool(tool_calls)
        message: dict[str, Any] = {
            "role": "assistant",
            "content": "".join(texts) if texts else None,
        }
        if tool_calls:
            message["tool_calls"] = tool_calls

        return {
            "id": self.completion_id,
            "object": "chat.completion",
            "created": self.created,
            "model": self.model,
            "choices": [{"index": 0, "message": message, "finish_reason": self.finish_reason}],
            "usage": _usage_dict(usage),
        }
