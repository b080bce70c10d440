"""
Echo Transport

In-process development transport. Replies with the last user turn, streamed
word by word, so the gateway can run without a real backend.
"""

import asyncio
import logging
import re
import uuid
from typing import Optional, Sequence

from app.domain.conversation import ImageAttachment
from app.providers.base import (
    InferenceTransport,
    SessionConfig,
    TokenCallback,
    TokenUsage,
    TransportError,
    TransportErrorCode,
)

logger = logging.getLogger(__name__)

_LAST_USER_TURN_RE = re.compile(r"<\|im_start\|>user\n(.*?)\n<\|im_end\|>", re.DOTALL)


class EchoTransport(InferenceTransport):
    """Echo transport"""

    def __init__(self, token_delay: float = 0.0):
        self.token_delay = token_delay
        self._sessions: dict[str, SessionConfig] = {}
        self._usage: dict[str, TokenUsage] = {}

    async def start_session(self, config: SessionConfig) -> str:
        session_id = f"echo-{uuid.uuid4().hex[:12]}"
        self._sessions[session_id] = config
        logger.info("Echo session started: session_id=%s, model=%s", session_id, config.model_id)
        return session_id

    async def send_prompt_streaming(
        self,
        session_id: str,
        prompt: str,
        on_token: Optional[TokenCallback] = None,
        *,
        images: Optional[Sequence[ImageAttachment]] = None,
    ) -> str:
        if session_id not in self._sessions:
            raise TransportError(
                f"Session {session_id} not found",
                code=TransportErrorCode.SESSION_NOT_FOUND,
            )

        turns = _LAST_USER_TURN_RE.findall(prompt)
        reply = f"Echo: {turns[-1]}" if turns else "Echo: (empty)"
        if images:
            reply += f" [{len(images)} image(s)]"

        tokens = re.findall(r"\S+\s*", reply)
        for token in tokens:
            if on_token is not None:
                on_token(token)
            await asyncio.sleep(self.token_delay)

        self._usage[session_id] = TokenUsage(
            prompt_tokens=len(prompt) // 4,
            completion_tokens=len(tokens),
            total_tokens=len(prompt) // 4 + len(tokens),
        )
        return reply

    async def get_last_token_usage(self, session_id: str) -> Optional[TokenUsage]:
        return self._usage.get(session_id)

    async def end_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._usage.pop(session_id, None)
