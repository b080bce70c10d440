"""
Caller Protocol Module

Request adapters for the three caller wire protocols:
- Anthropic Messages (`/v1/messages`)
- OpenAI Chat Completions (`/v1/chat/completions`)
- OpenAI Responses (`/v1/responses`)
"""

from app.common.protocol.requests import (
    fetch_remote_images,
    parse_chat_request,
    parse_messages_request,
    parse_responses_request,
)

__all__ = [
    "fetch_remote_images",
    "parse_chat_request",
    "parse_messages_request",
    "parse_responses_request",
]
