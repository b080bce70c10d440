"""
Transport Factory Module

Creates the inference transport named by configuration.
"""

import importlib

from app.config import Settings
from app.providers.base import InferenceTransport


def load_transport_class(path: str) -> type[InferenceTransport]:
    """
    Resolve a "module:Class" path

    Args:
        path: Dotted module path and class name separated by a colon

    Returns:
        type[InferenceTransport]: Transport class

    Raises:
        ValueError: Malformed path or class is not an InferenceTransport
    """
    module_name, sep, class_name = path.partition(":")
    if not sep or not module_name or not class_name:
        raise ValueError(f"Invalid transport class path: {path}")

    module = importlib.import_module(module_name)
    cls = getattr(module, class_name, None)
    if not isinstance(cls, type) or not issubclass(cls, InferenceTransport):
        raise ValueError(f"Not an inference transport: {path}")
    return cls


def create_transport(settings: Settings) -> InferenceTransport:
    """
    Instantiate the configured transport

    Args:
        settings: Application settings (TRANSPORT_CLASS)

    Returns:
        InferenceTransport: New transport instance
    """
    return load_transport_class(settings.TRANSPORT_CLASS)()
