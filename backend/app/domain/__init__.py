"""
领域模型模块初始化
"""

from app.domain.conversation import (
    ContentBlock,
    ConversationRequest,
    ConvertedPrompt,
    ImageAttachment,
    ImageBlock,
    ImageUrlBlock,
    Message,
    TextBlock,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
)

__all__ = [
    "ContentBlock",
    "ConversationRequest",
    "ConvertedPrompt",
    "ImageAttachment",
    "ImageBlock",
    "ImageUrlBlock",
    "Message",
    "TextBlock",
    "ToolDefinition",
    "ToolResultBlock",
    "ToolUseBlock",
]
