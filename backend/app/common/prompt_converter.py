"""
Prompt Converter

Flattens a protocol-neutral conversation into one ChatML-style prompt plus
the list of images it references. Pure and deterministic.

Layout:
    <|im_start|>system
    {capped system text}

    # Tools
    ...
    <|im_end|>
    <|im_start|>user
    Hello
    <|im_end|>
    <|im_start|>assistant
"""

import json
import math
from typing import Any, Optional, Sequence

from app.common.errors import PromptConversionError
from app.common.tool_parser import CLOSE_MARKER, OPEN_MARKER
from app.domain.conversation import (
    ConvertedPrompt,
    ImageAttachment,
    ImageBlock,
    Message,
    TextBlock,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
)

TURN_START = "<|im_start|>"
TURN_END = "<|im_end|>"

OBSERVATION_ROLE = "observation"
# Roles whose content belongs in the system section
SYSTEM_ROLES = ("system", "developer")

DEFAULT_SYSTEM_PROMPT_MAX_CHARS = 1000
TOOL_DESCRIPTION_MAX_CHARS = 80


def estimate_tokens(text: str) -> int:
    """Local token estimate used when the backend reports no usage"""
    return math.ceil(len(text) / 4)


def format_turn(role: str, text: str) -> str:
    return f"{TURN_START}{role}\n{text}\n{TURN_END}"


def format_tool_call(name: str, arguments: dict[str, Any]) -> str:
    """Serialize a tool invocation in the tag syntax the model is taught to emit"""
    parts = [OPEN_MARKER, name]
    for key, value in arguments.items():
        if not isinstance(value, str):
            value = json.dumps(value, ensure_ascii=False)
        parts.append(f"<arg_key>{key}</arg_key><arg_value>{value}</arg_value>")
    parts.append(CLOSE_MARKER)
    return "".join(parts)


def format_tool_catalogue(tools: Sequence[ToolDefinition]) -> str:
    """
    Render the tool catalogue and the output-format instructions

    Without literal format instructions small models describe actions in
    prose instead of emitting tags.
    """
    lines = ["# Tools"]
    for tool in tools:
        description = (tool.description or "").split("\n")[0][:TOOL_DESCRIPTION_MAX_CHARS]
        required = tool.required_params
        suffix = f" [{', '.join(required)}]" if required else ""
        lines.append(f"- {tool.name}: {description}{suffix}")
    lines.append("")
    lines.append(f"IMPORTANT: To perform actions, you MUST output {OPEN_MARKER} tags and no other text.")
    lines.append(
        f"Format: {OPEN_MARKER}ToolName<arg_key>param</arg_key><arg_value>value</arg_value>{CLOSE_MARKER}"
    )
    lines.append(
        f"Example: {OPEN_MARKER}Bash<arg_key>command</arg_key><arg_value>npm install</arg_value>{CLOSE_MARKER}"
    )
    return "\n".join(lines)


def _build_system_section(
    system: Optional[str],
    folded: list[str],
    tools: Sequence[ToolDefinition],
    max_chars: int,
) -> str:
    texts = [t for t in [system or "", *folded] if t]
    caller_text = "\n\n".join(texts)[:max_chars]
    sections = [caller_text] if caller_text else []
    if tools:
        sections.append(format_tool_catalogue(tools))
    return "\n\n".join(sections)


def convert(
    messages: Sequence[Message],
    system: Optional[str] = None,
    tools: Optional[Sequence[ToolDefinition]] = None,
    *,
    system_max_chars: int = DEFAULT_SYSTEM_PROMPT_MAX_CHARS,
) -> ConvertedPrompt:
    """
    Convert a conversation into a prompt

    Args:
        messages: Ordered conversation messages, must not be empty
        system: Caller system text
        tools: Tool catalogue; when present the model is taught the tag syntax
        system_max_chars: Cap on caller system text, applied before tool injection

    Returns:
        ConvertedPrompt: Prompt string and images in encounter order

    Raises:
        PromptConversionError: `messages` is empty
    """
    if not messages:
        raise PromptConversionError("messages must contain at least one message")

    tools = tools or ()
    turns: list[str] = []
    images: list[ImageAttachment] = []
    folded_system: list[str] = []

    for message in messages:
        if message.role in SYSTEM_ROLES:
            text = "".join(b.text for b in message.content if isinstance(b, TextBlock))
            if text:
                folded_system.append(text)
            continue

        pending: list[str] = []

        def flush_pending() -> None:
            text = "".join(pending)
            pending.clear()
            if text:
                turns.append(format_turn(message.role, text))

        for block in message.content:
            if isinstance(block, TextBlock):
                pending.append(block.text)
            elif isinstance(block, ImageBlock):
                images.append(ImageAttachment(data=block.data, format=block.format))
            elif isinstance(block, ToolUseBlock):
                pending.append(format_tool_call(block.name, block.arguments))
            elif isinstance(block, ToolResultBlock):
                flush_pending()
                turns.append(format_turn(OBSERVATION_ROLE, block.content))
            # Unfetched remote images never reach the backend
        flush_pending()

    system_section = _build_system_section(system, folded_system, tools, system_max_chars)
    if system_section:
        turns.insert(0, format_turn("system", system_section))

    turns.append(f"{TURN_START}assistant\n")
    return ConvertedPrompt(prompt="\n".join(turns), images=tuple(images))
