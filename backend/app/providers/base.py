"""
Inference Transport Base Class

Defines the abstract interface of the session-oriented inference backend.
Encryption, payment accounting and host discovery live behind this
interface and are not the gateway's concern.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from app.domain.conversation import ImageAttachment

# Per-token callback invoked synchronously by the transport
TokenCallback = Callable[[str], None]


class TransportErrorCode(str, Enum):
    """Classification codes reported by a transport"""

    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_NOT_ACTIVE = "SESSION_NOT_ACTIVE"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    DECRYPTION_FAILED = "DECRYPTION_FAILED"
    CONNECTION_CLOSED = "CONNECTION_CLOSED"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    MODEL_NOT_AVAILABLE = "MODEL_NOT_AVAILABLE"
    RATE_LIMITED = "RATE_LIMITED"
    BACKEND_ERROR = "BACKEND_ERROR"
    UNKNOWN = "UNKNOWN"


class TransportError(Exception):
    """
    Transport Error

    Raised by transports; `code` drives session recovery.
    """

    def __init__(self, message: str, code: Optional[TransportErrorCode] = None):
        super().__init__(message)
        self.message = message
        self.code = code


@dataclass
class SessionConfig:
    """
    Session Configuration

    Fixed for the lifetime of a bridge.
    """

    # Model to run
    model_id: str
    # Deposit placed when the session opens
    deposit_amount: str
    # Price per generated token
    price_per_token: int
    # Tokens between payment proofs
    proof_interval: int
    # Session duration (seconds)
    duration: int
    # Explicit backend address, None to let the transport choose
    host_address: Optional[str] = None


@dataclass
class TokenUsage:
    """Token usage of the last prompt on a session"""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class InferenceTransport(ABC):
    """
    Inference Transport Abstract Base Class

    One transport instance may serve many sessions; the gateway only ever
    keeps one open at a time.
    """

    @abstractmethod
    async def start_session(self, config: SessionConfig) -> str:
        """
        Open a session

        Args:
            config: Session configuration

        Returns:
            str: Session identifier
        """
        pass

    @abstractmethod
    async def send_prompt_streaming(
        self,
        session_id: str,
        prompt: str,
        on_token: Optional[TokenCallback] = None,
        *,
        images: Optional[Sequence[ImageAttachment]] = None,
    ) -> str:
        """
        Run one prompt through a session

        Args:
            session_id: Session identifier
            prompt: Full prompt text
            on_token: Called with each produced fragment
            images: Image attachments

        Returns:
            str: Complete response text
        """
        pass

    @abstractmethod
    async def get_last_token_usage(self, session_id: str) -> Optional[TokenUsage]:
        """Token usage of the most recent prompt, None when unknown"""
        pass

    @abstractmethod
    async def end_session(self, session_id: str) -> None:
        """Close a session"""
        pass
