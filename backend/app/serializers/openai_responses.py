"""
OpenAI Responses Serializer

Every event is named, self-describes its `type` and carries a per-response
`sequence_number` starting at 0. Output items:
- message: output_item.added, content_part.added, output_text.delta*,
  output_text.done, content_part.done, output_item.done
- function_call: output_item.added, function_call_arguments.delta,
  function_call_arguments.done, output_item.done
The stream is wrapped in response.created / response.in_progress and ends
with response.completed (or response.failed).
"""

import json
import time
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


def _gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:24]}"


def _message_item(item_id: str, text: str, status: str = "completed") -> dict[str, Any]:
    content = [] if status == "in_progress" else [
        {"type": "output_text", "text": text, "annotations": []}
    ]
    return {
        "id": item_id,
        "type": "message",
        "status": status,
        "role": "assistant",
        "content": content,
    }


def _function_call_item(name: str, arguments: str, status: str = "completed") -> dict[str, Any]:
    return {
        "id": _gen_id("fc"),
        "type": "function_call",
        "status": status,
        "call_id": _gen_id("call"),
        "name": name,
        "arguments": arguments,
    }


class ResponsesSerializer(ProtocolSerializer):
    """Responses protocol serializer"""

    eager_text_unit = True

    def __init__(self, model: str, input_tokens: int = 0):
        super().__init__(model, input_tokens)
        self.response_id = _gen_id("resp")
        self.created_at = int(time.time())
        self._sequence = 0
        self._output: list[dict[str, Any]] = []
        self._text_item_id = ""

    def _event(self, event_type: str, payload: dict[str, Any]) -> str:
        data = {"type": event_type, "sequence_number": self._sequence, **payload}
        self._sequence += 1
        return format_sse(event_type, data)

    def _response(self, status: str, **extra: Any) -> dict[str, Any]:
        body: dict[str, Any] = {
            "id": self.response_id,
            "object": "response",
            "created_at": self.created_at,
            "status": status,
            "model": self.model,
            "output": list(self._output),
        }
        body.update(extra)
        return body

    @staticmethod
    def _usage_dict(usage: Usage) -> dict[str, int]:
        return {
            "input_tokens": usage.input_tokens,
            "output_tokens": usage.output_tokens,
            "total_tokens": usage.total_tokens,
        }

    def _start_frames(self) -> list[str]:
        return [
            self._event("response.created", {"response": self._response("in_progress")}),
            self._event("response.in_progress", {"response": self._response("in_progress")}),
        ]

    def _open_text_frames(self, index: int) -> list[str]:
        self._text_item_id = _gen_id("msg")
        part = {"type": "output_text", "text": "", "annotations": []}
        return [
            self._event(
                "response.output_item.added",
                {"output_index": index, "item": _message_item(self._text_item_id, "", "in_progress")},
            ),
            self._event(
                "response.content_part.added",
                {"item_id": self._text_item_id, "output_index": index, "content_index": 0, "part": part},
            ),
        ]

    def _text_delta_frames(self, index: int, content: str) -> list[str]:
        return [
            self._event(
                "response.output_text.delta",
                {"item_id": self._text_item_id, "output_index": index, "content_index": 0, "delta": content},
            )
        ]

    def _close_text_frames(self, index: int, text: str) -> list[str]:
        item = _message_item(self._text_item_id, text)
        self._output.append(item)
        return [
            self._event(
                "response.output_text.done",
                {"item_id": self._text_item_id, "output_index": index, "content_index": 0, "text": text},
            ),
            self._event(
                "response.content_part.done",
                {
                    "item_id": self._text_item_id,
                    "output_index": index,
                    "content_index": 0,
                    "part": {"type": "output_text", "text": text, "annotations": []},
                },
            ),
            self._event("response.output_item.done", {"output_index": index, "item": item}),
        ]

    def _tool_call_frames(self, index: int, name: str, arguments: dict[str, Any]) -> list[str]:
        args_json = json.dumps(arguments, ensure_ascii=False)
        item = _function_call_item(name, args_json)
        added = {**item, "status": "in_progress", "arguments": ""}
        self._output.append(item)
        return [
            self._event("response.output_item.added", {"output_index": index, "item": added}),
            self._event(
                "response.function_call_arguments.delta",
                {"item_id": item["id"], "output_index": index, "delta": args_json},
            ),
            self._event(
                "response.function_call_arguments.done",
                {"item_id": item["id"], "output_index": index, "arguments": args_json},
            ),
            self._event("response.output_item.done", {"output_index": index, "item": item}),
        ]

    def _finish_frames(self, usage: Usage) -> list[str]:
        return [
            self._event(
                "response.completed",
                {"response": self._response("completed", usage=self._usage_dict(usage))},
            )
        ]

    def _error_frames(self, error: AppError) -> list[str]:
        return [
            self._event(
                "response.failed",
                {
                    "response": self._response(
                        "failed", error={"code": error.code, "message": error.message}
                    )
                },
            )
        ]

    def build_response(self, items: list[ContentItem], usage: Usage) -> dict[str, Any]:
        self._output = []
        for item in items:
            if isinstance(item, ToolCallItem):
                self.has_tool_calls = True
                self._output.append(
                    _function_call_item(item.name, json.dumps(item.arguments, ensure_ascii=False))
                )
            elif isinstance(item, TextItem):
                self._output.append(_message_item(_gen_id("msg"), item.text))
        return self._response("completed", usage=self._usage_dict(usage))
