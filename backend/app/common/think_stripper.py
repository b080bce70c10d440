"""
Reasoning Span Stripper

Removes a leading `<think>...</think>` span from model output. In streaming
mode output is only held back while it could still be the start of such a
span; once that is ruled out, tokens pass through unbuffered.
"""

import logging

logger = logging.getLogger(__name__)

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"

DEFAULT_THINK_MAX_CHARS = 8000


class ThinkStripper:
    """Streaming filter for a leading reasoning span"""

    _DETECT = "detect"
    _IN_THINK = "in_think"
    _PASS = "pass"

    def __init__(self, max_chars: int = DEFAULT_THINK_MAX_CHARS):
        self.max_chars = max_chars
        self._mode = self._DETECT
        self._buffer = ""
        # Whitespace right after the close marker is dropped
        self._trim_leading = False

    def feed(self, token: str) -> str:
        """Consume one token, return the text that may be shown"""
        if not token:
            return ""
        if self._mode == self._PASS:
            return self._trim(token)

        self._buffer += token
        if self._mode == self._DETECT:
            head = self._buffer.lstrip()
            if not head:
                return ""
            if head.startswith(THINK_OPEN):
                self._mode = self._IN_THINK
            elif THINK_OPEN.startswith(head):
                return ""
            else:
                return self._release()

        close_at = self._buffer.find(THINK_CLOSE)
        if close_at != -1:
            rest = self._buffer[close_at + len(THINK_CLOSE):]
            self._buffer = ""
            self._mode = self._PASS
            self._trim_leading = True
            return self._trim(rest)

        if len(self._buffer) > self.max_chars:
            logger.warning(
                "Reasoning span exceeded %d chars without a close marker, releasing as text",
                self.max_chars,
            )
            return self._release()
        return ""

    def flush(self) -> str:
        """
        End of stream

        An unterminated reasoning span is dropped; an ambiguous prefix such as
        `<thi` is released as text.
        """
        out = ""
        if self._mode == self._DETECT:
            out = self._buffer
        elif self._mode == self._IN_THINK:
            logger.debug("Dropping unterminated reasoning span (%d chars)", len(self._buffer))
        self._mode = self._DETECT
        self._buffer = ""
        self._trim_leading = False
        return out

    def _release(self) -> str:
        out = self._buffer
        self._buffer = ""
        self._mode = self._PASS
        return out

    def _trim(self, text: str) -> str:
        if self._trim_leading:
            text = text.lstrip()
            if text:
                self._trim_leading = False
        return text


def strip_think(text: str, max_chars: int = DEFAULT_THINK_MAX_CHARS) -> str:
    """Remove a leading reasoning span from a complete string"""
    stripper = ThinkStripper(max_chars=max_chars)
    return stripper.feed(text) + stripper.flush()
