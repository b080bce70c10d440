"""
Incremental Tool-Call Parser

The backend model has no native tool channel; it is taught to emit calls
inline as `<tool_call>...</tool_call>` tags. This parser recognizes those tags
in a stream of arbitrary-sized text fragments and turns the stream into
typed events.

Accepted payloads between the markers:
- JSON object: {"name": "get_weather", "arguments": {"city": "London"}}
  (`parameters` is accepted as a synonym of `arguments`)
- Tag form: get_weather<arg_key>city</arg_key><arg_value>London</arg_value>
- Bare tool name: get_weather
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

OPEN_MARKER = "<tool_call>"
CLOSE_MARKER = "</tool_call>"

# Payloads longer than this without a close marker are given up on
DEFAULT_MAX_PAYLOAD_CHARS = 32768

_TOOL_NAME_RE = re.compile(r"^[A-Za-z_][\w.\-]*$")
_ARG_PAIR_RE = re.compile(
    r"\s*<arg_key>(.*?)</arg_key>\s*<arg_value>(.*?)</arg_value>\s*",
    re.DOTALL,
)
_ARGUMENT_KEYS = ("arguments", "parameters")


class ParserState(str, Enum):
    """Parser state"""

    TEXT = "text"
    MAYBE_TAG = "maybe_tag"
    IN_TAG = "in_tag"


@dataclass(frozen=True)
class TextEvent:
    """Ordinary model output"""

    content: str


@dataclass(frozen=True)
class ToolCallEvent:
    """A complete, successfully parsed tool invocation"""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MalformedEvent:
    """A tag whose payload could not be parsed; carries the untouched inner span"""

    raw_content: str


ParserEvent = Union[TextEvent, ToolCallEvent, MalformedEvent]


def is_valid_tool_name(name: Any) -> bool:
    """Check whether a value can be used as a tool name"""
    return isinstance(name, str) and bool(_TOOL_NAME_RE.match(name))


def normalize_arguments(arguments: dict[str, Any]) -> dict[str, Any]:
    """
    Unwrap a redundant {"arguments": {...}} (or "parameters") wrapper

    Small models sometimes nest the real argument map one level deeper.
    """
    if len(arguments) == 1:
        key, value = next(iter(arguments.items()))
        if key in _ARGUMENT_KEYS:
            if isinstance(value, str):
                value = _decode_json(value)
            if isinstance(value, dict):
                return value
    return arguments


def _decode_json(value: str) -> Any:
    try:
        return json.loads(value)
    except ValueError:
        return value


def _decode_tag_value(value: str) -> Any:
    """Decode a tag-form argument value that looks like JSON, keep others as strings"""
    candidate = value.strip()
    if candidate[:1] in ("{", "[") or candidate in ("true", "false", "null"):
        return _decode_json(candidate)
    return value


def _parse_json_payload(payload: str) -> Optional[ToolCallEvent]:
    try:
        data = json.loads(payload)
    except ValueError:
        return None
    if not isinstance(data, dict) or not is_valid_tool_name(data.get("name")):
        return None

    arguments: Any = None
    for key in _ARGUMENT_KEYS:
        if key in data:
            arguments = data[key]
            break
    if arguments is None:
        arguments = {}
    if isinstance(arguments, str):
        arguments = _decode_json(arguments) if arguments.strip() else {}
    if not isinstance(arguments, dict):
        return None
    return ToolCallEvent(name=data["name"], arguments=normalize_arguments(arguments))


def _parse_tag_payload(payload: str) -> Optional[ToolCallEvent]:
    first_tag = payload.find("<")
    name = payload[:first_tag].strip()
    if not is_valid_tool_name(name):
        return None

    rest = payload[first_tag:]
    arguments: dict[str, Any] = {}
    pos = 0
    while pos < len(rest):
        match = _ARG_PAIR_RE.match(rest, pos)
        if match is None or match.end() == pos:
            return None
        arguments[match.group(1).strip()] = _decode_tag_value(match.group(2))
        pos = match.end()
    return ToolCallEvent(name=name, arguments=normalize_arguments(arguments))


def parse_tool_payload(raw: str) -> ParserEvent:
    """
    Parse the content found between the open and close markers

    Args:
        raw: Inner span, untouched

    Returns:
        ToolCallEvent on success, MalformedEvent carrying `raw` otherwise
    """
    payload = raw.strip()
    event: Optional[ToolCallEvent] = None
    if payload.startswith("{"):
        event = _parse_json_payload(payload)
    elif "<" in payload:
        event = _parse_tag_payload(payload)
    elif is_valid_tool_name(payload):
        event = ToolCallEvent(name=payload, arguments={})

    if event is None:
        logger.debug("Malformed tool call payload: %r", raw[:200])
        return MalformedEvent(raw_content=raw)
    return event


class ToolCallParser:
    """
    Incremental tool-call tag parser

    Feed fragments as they arrive; call `flush()` once at end of stream.
    Text is released as soon as it provably cannot start an open marker, so
    the buffer only ever holds a marker prefix or an open tag's payload.
    """

    def __init__(self, max_payload_chars: int = DEFAULT_MAX_PAYLOAD_CHARS):
        self.max_payload_chars = max_payload_chars
        self._state = ParserState.TEXT
        self._buffer = ""

    @property
    def state(self) -> ParserState:
        return self._state

    def feed(self, fragment: str) -> list[ParserEvent]:
        """
        Consume one fragment

        Adjacent text produced by this call is coalesced into one TextEvent.
        """
        events: list[ParserEvent] = []
        pending_text: list[str] = []
        if not fragment:
            return events

        self._buffer += fragment
        while self._buffer:
            if self._state == ParserState.IN_TAG:
                close_at = self._buffer.find(CLOSE_MARKER)
                if close_at == -1:
                    if len(self._buffer) > self.max_payload_chars:
                        logger.warning(
                            "Tool call payload exceeded %d chars without a close marker",
                            self.max_payload_chars,
                        )
                        self._emit_text(events, pending_text)
                        events.append(MalformedEvent(raw_content=self._buffer))
                        self._buffer = ""
                        self._state = ParserState.TEXT
                    break
                payload = self._buffer[:close_at]
                self._buffer = self._buffer[close_at + len(CLOSE_MARKER):]
                self._state = ParserState.TEXT
                self._emit_text(events, pending_text)
                events.append(parse_tool_payload(payload))
                continue

            lt = self._buffer.find("<")
            if lt == -1:
                pending_text.append(self._buffer)
                self._buffer = ""
                self._state = ParserState.TEXT
                break
            if lt > 0:
                pending_text.append(self._buffer[:lt])
                self._buffer = self._buffer[lt:]

            if self._buffer.startswith(OPEN_MARKER):
                self._buffer = self._buffer[len(OPEN_MARKER):]
                self._state = ParserState.IN_TAG
                continue
            if OPEN_MARKER.startswith(self._buffer):
                self._state = ParserState.MAYBE_TAG
                break

            # Diverged from the marker: release up to the next candidate
            next_lt = self._buffer.find("<", 1)
            if next_lt == -1:
                pending_text.append(self._buffer)
                self._buffer = ""
            else:
                pending_text.append(self._buffer[:next_lt])
                self._buffer = self._buffer[next_lt:]
            self._state = ParserState.TEXT

        self._emit_text(events, pending_text)
        return events

    def flush(self) -> list[ParserEvent]:
        """
        Emit whatever is still buffered as text

        An unterminated tag is released together with its open marker.
        """
        events: list[ParserEvent] = []
        if self._state == ParserState.IN_TAG:
            remainder = OPEN_MARKER + self._buffer
        else:
            remainder = self._buffer
        if remainder:
            events.append(TextEvent(content=remainder))
        self.reset()
        return events

    def reset(self) -> None:
        self._state = ParserState.TEXT
        self._buffer = ""

    @staticmethod
    def _emit_text(events: list[ParserEvent], pending_text: list[str]) -> None:
        if pending_text:
            text = "".join(pending_text)
            pending_text.clear()
            if text:
                events.append(TextEvent(content=text))
