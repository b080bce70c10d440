"""
Protocol serializers

One serializer per caller wire protocol, all driven from the same event sequence.
"""

from app.serializers.anthropic import AnthropicSerializer
from app.serializers.base import (
    ContentItem,
    ProtocolSerializer,
    TextItem,
    ToolCallItem,
    Usage,
    format_sse,
)
from app.serializers.openai_chat import ChatCompletionsSerializer
from app.serializers.openai_responses import ResponsesSerializer

__all__ = [
    "AnthropicSerializer",
    "ChatCompletionsSerializer",
    "ContentItem",
    "ProtocolSerializer",
    "ResponsesSerializer",
    "TextItem",
    "ToolCallItem",
    "Usage",
    "format_sse",
]
