"""
Request Adapter Unit Tests
"""

import base64

import httpx
import pytest

from app.common.errors import InvalidRequestError
from app.common.protocol.requests import (
    fetch_remote_images,
    parse_chat_request,
    parse_image_url,
    parse_messages_request,
    parse_responses_request,
)
from app.domain.conversation import (
    ImageBlock,
    ImageUrlBlock,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)


class TestParseMessagesRequest:
    """Anthropic Messages bodies"""

    def test_minimal(self):
        req = parse_messages_request(
            {"model": "claude", "max_tokens": 100, "messages": [{"role": "user", "content": "Hello"}]}
        )
        assert req.model == "claude"
        assert req.max_output_tokens == 100
        assert req.messages[0].content == (TextBlock("Hello"),)
        assert req.stream is False
        assert req.has_tools is False

    @pytest.mark.parametrize(
        "body",
        [
            {"max_tokens": 10},
            {"max_tokens": 10, "messages": []},
            {"messages": [{"role": "user", "content": "Hi"}]},
            {"max_tokens": 0, "messages": [{"role": "user", "content": "Hi"}]},
            {"max_tokens": -5, "messages": [{"role": "user", "content": "Hi"}]},
            ["not", "an", "object"],
        ],
    )
    def test_validation_errors(self, body):
        with pytest.raises(InvalidRequestError) as exc_info:
            parse_messages_request(body)
        assert exc_info.value.status_code == 400
        assert exc_info.value.error_type == "invalid_request_error"

    def test_system_as_text_blocks(self):
        req = parse_messages_request(
            {
                "max_tokens": 10,
                "system": [{"type": "text", "text": "One"}, {"type": "text", "text": "Two"}],
                "messages": [{"role": "user", "content": "Hi"}],
            }
        )
        assert req.system == "One\nTwo"

    def test_content_blocks(self):
        req = parse_messages_request(
            {
                "max_tokens": 10,
                "messages": [
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": "Look"},
                            {"type": "image", "source": {"type": "base64", "media_type": "image/jpeg", "data": "QUJD"}},
                        ],
                    },
                    {
                        "role": "assistant",
                        "content": [{"type": "tool_use", "id": "toolu_1", "name": "Bash", "input": {"command": "ls"}}],
                    },
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "tool_result",
                                "tool_use_id": "toolu_1",
                                "content": [{"type": "text", "text": "a.txt"}],
                            }
                        ],
                    },
                ],
            }
        )
        assert req.messages[0].content == (TextBlock("Look"), ImageBlock(data="QUJD", format="jpeg"))
        assert req.messages[1].content == (ToolUseBlock(id="toolu_1", name="Bash", arguments={"command": "ls"}),)
        assert req.messages[2].content == (ToolResultBlock(tool_use_id="toolu_1", content="a.txt"),)

    def test_tools_use_input_schema(self):
        req = parse_messages_request(
            {
                "max_tokens": 10,
                "messages": [{"role": "user", "content": "Hi"}],
                "tools": [
                    {
                        "name": "get_weather",
                        "description": "Weather",
                        "input_schema": {"type": "object", "required": ["city"]},
                    }
                ],
            }
        )
        assert req.tools[0].name == "get_weather"
        assert req.tools[0].required_params == ["city"]


class TestParseChatRequest:
    """OpenAI Chat Completions bodies"""

    def test_messages_required(self):
        with pytest.raises(InvalidRequestError):
            parse_chat_request({"model": "gpt"})

    def test_max_tokens_optional(self):
        req = parse_chat_request({"messages": [{"role": "user", "content": "Hi"}]})
        assert req.max_output_tokens is None

    def test_max_completion_tokens(self):
        req = parse_chat_request(
            {"messages": [{"role": "user", "content": "Hi"}], "max_completion_tokens": 50}
        )
        assert req.max_output_tokens == 50

    def test_image_parts(self):
        req = parse_chat_request(
            {
                "messages": [
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": "What is this?"},
                            {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,/9j/4AAQ"}},
                            {"type": "image_url", "image_url": {"url": "https://example.com/cat.png"}},
                        ],
                    }
                ]
            }
        )
        assert req.messages[0].content == (
            TextBlock("What is this?"),
            ImageBlock(data="/9j/4AAQ", format="jpeg"),
            ImageUrlBlock(url="https://example.com/cat.png"),
        )

    def test_tool_calls_and_tool_messages(self):
        req = parse_chat_request(
            {
                "messages": [
                    {"role": "user", "content": "Weather?"},
                    {
                        "role": "assistant",
                        "content": None,
                        "tool_calls": [
                            {
                                "id": "call_1",
                                "type": "function",
                                "function": {"name": "get_weather", "arguments": '{"city":"London"}'},
                            }
                        ],
                    },
                    {"role": "tool", "tool_call_id": "call_1", "content": '{"temp": 20}'},
                ],
                "tools": [
                    {
                        "type": "function",
                        "function": {"name": "get_weather", "description": "Weather", "parameters": {}},
                    }
                ],
            }
        )
        assert req.messages[1].content == (
            ToolUseBlock(id="call_1", name="get_weather", arguments={"city": "London"}),
        )
        assert req.messages[2].content == (ToolResultBlock(tool_use_id="call_1", content='{"temp": 20}'),)
        assert req.tools[0].name == "get_weather"


class TestParseResponsesRequest:
    """OpenAI Responses bodies"""

    def test_string_input(self):
        req = parse_responses_request({"model": "gpt", "input": "Hi", "instructions": "Be brief"})
        assert req.messages[0].role == "user"
        assert req.messages[0].content == (TextBlock("Hi"),)
        assert req.system == "Be brief"

    def test_input_required(self):
        with pytest.raises(InvalidRequestError):
            parse_responses_request({"model": "gpt"})

    def test_item_list(self):
        req = parse_responses_request(
            {
                "input": [
                    {"type": "message", "role": "user", "content": [{"type": "input_text", "text": "Run ls"}]},
                    {"type": "function_call", "call_id": "call_1", "name": "Bash", "arguments": '{"command": "ls"}'},
                    {"type": "function_call_output", "call_id": "call_1", "output": "a.txt"},
                ],
                "tools": [{"type": "function", "name": "Bash", "description": "Run", "parameters": {}}],
                "max_output_tokens": 64,
            }
        )
        assert req.messages[0].content == (TextBlock("Run ls"),)
        assert req.messages[1].content == (ToolUseBlock(id="call_1", name="Bash", arguments={"command": "ls"}),)
        assert req.messages[2].content == (ToolResultBlock(tool_use_id="call_1", content="a.txt"),)
        assert req.tools[0].name == "Bash"
        assert req.max_output_tokens == 64


class TestImages:
    """Image URL handling"""

    def test_parse_image_url_schemes(self):
        assert parse_image_url("data:image/png;base64,iVBORw0KGgo=") == ImageBlock("iVBORw0KGgo=", "png")
        assert parse_image_url("https://example.com/a.png") == ImageUrlBlock("https://example.com/a.png")
        assert parse_image_url("ftp://example.com/a.png") is None

    @pytest.mark.asyncio
    async def test_fetch_remote_images(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/ok.png":
                return httpx.Response(200, content=b"PNGDATA", headers={"content-type": "image/png"})
            return httpx.Response(404)

        req = parse_chat_request(
            {
                "messages": [
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": "Two images"},
                            {"type": "image_url", "image_url": {"url": "https://img.test/ok.png"}},
                            {"type": "image_url", "image_url": {"url": "https://img.test/missing.png"}},
                        ],
                    }
                ]
            }
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetched = await fetch_remote_images(req, client=client)

        assert fetched.messages[0].content == (
            TextBlock("Two images"),
            ImageBlock(data=base64.b64encode(b"PNGDATA").decode(), format="png"),
        )

    @pytest.mark.asyncio
    async def test_fetch_skipped_without_remote_images(self):
        req = parse_chat_request({"messages": [{"role": "user", "content": "Hi"}]})
        assert await fetch_remote_images(req) is req

    @staticmethod
    def single_image_request(url: str):
        return parse_chat_request(
            {
                "messages": [
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": "Look"},
                            {"type": "image_url", "image_url": {"url": url}},
                        ],
                    }
                ]
            }
        )

    @pytest.mark.asyncio
    async def test_fetch_drops_non_image_content_type(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html></html>", headers={"content-type": "text/html"})

        req = self.single_image_request("https://img.test/page")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetched = await fetch_remote_images(req, client=client)

        assert fetched.messages[0].content == (TextBlock("Look"),)

    @pytest.mark.asyncio
    async def test_fetch_drops_oversized_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"x" * 2048, headers={"content-type": "image/png"})

        req = self.single_image_request("https://img.test/huge.png")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetched = await fetch_remote_images(req, max_bytes=1024, client=client)

        assert fetched.messages[0].content == (TextBlock("Look"),)

    @pytest.mark.asyncio
    async def test_fetch_keeps_body_at_limit(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"x" * 1024, headers={"content-type": "image/jpeg; charset=binary"})

        req = self.single_image_request("https://img.test/fits.jpg")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetched = await fetch_remote_images(req, max_bytes=1024, client=client)

        assert fetched.messages[0].content[1] == ImageBlock(
            data=base64.b64encode(b"x" * 1024).decode(), format="jpeg"
        )


class TestMalformedShapes:
    """Wrong JSON types are validation errors, not crashes"""

    def test_image_source_must_be_object(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            parse_messages_request(
                {
                    "max_tokens": 10,
                    "messages": [{"role": "user", "content": [{"type": "image", "source": "cat.png"}]}],
                }
            )
        assert exc_info.value.status_code == 400

    def test_tool_call_function_must_be_object(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            parse_chat_request(
                {
                    "messages": [
                        {"role": "assistant", "content": None, "tool_calls": [{"id": "c1", "function": "ls"}]}
                    ]
                }
            )
        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize("value", ["false", "true", 1, None])
    def test_stream_requires_literal_true(self, value):
        messages = [{"role": "user", "content": "Hi"}]
        assert parse_messages_request({"max_tokens": 10, "messages": messages, "stream": value}).stream is False
        assert parse_chat_request({"messages": messages, "stream": value}).stream is False
        assert parse_responses_request({"input": "Hi", "stream": value}).stream is False

    def test_stream_true(self):
        assert parse_chat_request({"messages": [{"role": "user", "content": "Hi"}], "stream": True}).stream is True
