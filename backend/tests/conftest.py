"""
Test Configuration Module
"""

import asyncio
from typing import Optional, Sequence, Union

import pytest

from app.config import Settings
from app.domain.conversation import ImageAttachment
from app.providers.base import InferenceTransport, SessionConfig, TokenCallback, TokenUsage
from app.services.circuit_breaker import CircuitBreaker
from app.services.session_bridge import SessionBridge

# One scripted backend outcome: the tokens to stream, or the error to raise.
# An error inside the token list is raised after the tokens before it were streamed.
Outcome = Union[list[Union[str, BaseException]], BaseException]


class FakeTransport(InferenceTransport):
    """
    Scriptable in-memory transport

    Each prompt consumes the next outcome; when the script runs out the
    transport streams "ok".
    """

    def __init__(self, outcomes: Optional[list[Outcome]] = None, usage: Optional[TokenUsage] = None):
        self.outcomes = list(outcomes or [])
        self.usage = usage
        self.start_error: Optional[BaseException] = None
        self.started: list[str] = []
        self.ended: list[str] = []
        self.prompts: list[tuple[str, str, list[ImageAttachment]]] = []

    async def start_session(self, config: SessionConfig) -> str:
        if self.start_error is not None:
            raise self.start_error
        session_id = f"session-{len(self.started) + 1}"
        self.started.append(session_id)
        return session_id

    async def send_prompt_streaming(
        self,
        session_id: str,
        prompt: str,
        on_token: Optional[TokenCallback] = None,
        *,
        images: Optional[Sequence[ImageAttachment]] = None,
    ) -> str:
        self.prompts.append((session_id, prompt, list(images or [])))
        outcome = self.outcomes.pop(0) if self.outcomes else ["ok"]
        if isinstance(outcome, BaseException):
            raise outcome
        for token in outcome:
            if isinstance(token, BaseException):
                raise token
            if on_token is not None:
                on_token(token)
            await asyncio.sleep(0)
        return "".join(outcome)

    async def get_last_token_usage(self, session_id: str) -> Optional[TokenUsage]:
        return self.usage

    async def end_session(self, session_id: str) -> None:
        self.ended.append(session_id)


def make_session_config() -> SessionConfig:
    return SessionConfig(
        model_id="test-model",
        deposit_amount="0.5",
        price_per_token=5000,
        proof_interval=1000,
        duration=3600,
    )


def make_bridge(transport: InferenceTransport, threshold: int = 2, cooldown: float = 60.0) -> SessionBridge:
    return SessionBridge(
        transport,
        make_session_config(),
        CircuitBreaker(failure_threshold=threshold, cooldown_seconds=cooldown),
    )


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults, independent of the environment's BRIDGE_API_KEY"""
    return Settings(BRIDGE_API_KEY=None, MODEL_ID="test-model")


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_transport():
    """Factory for scripted transports"""
    return FakeTransport


@pytest.fixture
def bridge_factory():
    """Factory for bridges over a given transport"""
    return make_bridge
