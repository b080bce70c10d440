"""
Inference transport module initialization
"""

from app.providers.base import (
    InferenceTransport,
    SessionConfig,
    TokenCallback,
    TokenUsage,
    TransportError,
    TransportErrorCode,
)
from app.providers.echo import EchoTransport
from app.providers.factory import create_transport, load_transport_class

__all__ = [
    "InferenceTransport",
    "SessionConfig",
    "TokenCallback",
    "TokenUsage",
    "TransportError",
    "TransportErrorCode",
    "EchoTransport",
    "create_transport",
    "load_transport_class",
]
