"""
Conversation Domain Model

Protocol-neutral representation of an inbound request. Every caller protocol
is parsed into these structures before prompt conversion.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union


@dataclass(frozen=True)
class TextBlock:
    """Plain text content"""

    text: str


@dataclass(frozen=True)
class ImageBlock:
    """
    Inline image content

    `data` is base64 without the data-URL prefix, `format` is the MIME subtype
    (png, jpeg, ...).
    """

    data: str
    format: str


@dataclass(frozen=True)
class ImageUrlBlock:
    """Remote image that still has to be fetched"""

    url: str


@dataclass(frozen=True)
class ToolUseBlock:
    """A tool invocation previously made by the assistant"""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResultBlock:
    """The output of a tool invocation, reported back by the caller"""

    tool_use_id: str
    content: str


ContentBlock = Union[TextBlock, ImageBlock, ImageUrlBlock, ToolUseBlock, ToolResultBlock]


@dataclass(frozen=True)
class Message:
    """
    Conversation Message

    `content` keeps blocks in the order the caller sent them.
    """

    role: str
    content: tuple[ContentBlock, ...] = ()


@dataclass(frozen=True)
class ToolDefinition:
    """Tool declared by the caller"""

    name: str
    description: str = ""
    # JSON schema of the tool arguments
    parameters: dict[str, Any] = field(default_factory=dict)

    @property
    def required_params(self) -> list[str]:
        """Names listed in the schema's `required` array"""
        required = self.parameters.get("required") if isinstance(self.parameters, dict) else None
        if not isinstance(required, list):
            return []
        return [str(name) for name in required]


@dataclass(frozen=True)
class ImageAttachment:
    """Image passed to the backend alongside the prompt"""

    data: str
    format: str


@dataclass(frozen=True)
class ConvertedPrompt:
    """Output of prompt conversion"""

    prompt: str
    images: tuple[ImageAttachment, ...] = ()


@dataclass(frozen=True)
class ConversationRequest:
    """
    Conversation Request

    Immutable once parsed from the caller's body.
    """

    # Model name requested by the caller (echoed back in responses)
    model: str
    messages: tuple[Message, ...]
    system: Optional[str] = None
    tools: tuple[ToolDefinition, ...] = ()
    stream: bool = False
    # Caller's requested output ceiling in tokens, None when not given
    max_output_tokens: Optional[int] = None

    @property
    def has_tools(self) -> bool:
        """Whether the caller declared any tools"""
        return bool(self.tools)
