"""
Service Layer Module Initialization
"""

from app.services.circuit_breaker import CircuitBreaker, CircuitPhase, CircuitState
from app.services.recovery import RecoveryAction, classify_error
from app.services.session_bridge import PromptOptions, PromptResult, SessionBridge
from app.services.translator import OutputGuard, ResponseTranslator

__all__ = [
    "CircuitBreaker",
    "CircuitPhase",
    "CircuitState",
    "RecoveryAction",
    "classify_error",
    "PromptOptions",
    "PromptResult",
    "SessionBridge",
    "OutputGuard",
    "ResponseTranslator",
]
