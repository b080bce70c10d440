"""
API Router Module Initialization
"""

from app.api.deps import get_bridge, get_translator, require_bridge_key

__all__ = [
    "get_bridge",
    "get_translator",
    "require_bridge_key",
]
