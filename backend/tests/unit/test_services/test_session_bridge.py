"""
Session Bridge Unit Tests
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from app.common.errors import BackendError, CircuitOpenError
from app.domain.conversation import ImageAttachment
from app.providers.base import TokenUsage, TransportError, TransportErrorCode
from app.services.session_bridge import PromptOptions


def session_error() -> TransportError:
    return TransportError("Session not found", code=TransportErrorCode.SESSION_NOT_FOUND)


class TestEnsureSession:
    """ensure_session()"""

    @pytest.mark.asyncio
    async def test_creates_once(self, make_transport, bridge_factory):
        transport = make_transport()
        bridge = bridge_factory(transport)
        first = await bridge.ensure_session()
        second = await bridge.ensure_session()
        assert first == second == "session-1"
        assert transport.started == ["session-1"]

    @pytest.mark.asyncio
    async def test_concurrent_calls_create_one_session(self, make_transport, bridge_factory):
        transport = make_transport()
        bridge = bridge_factory(transport)
        ids = await asyncio.gather(*(bridge.ensure_session() for _ in range(5)))
        assert set(ids) == {"session-1"}
        assert len(transport.started) == 1

    @pytest.mark.asyncio
    async def test_reset_session_replaces_session(self, make_transport, bridge_factory):
        transport = make_transport()
        bridge = bridge_factory(transport)
        await bridge.ensure_session()
        new_id = await bridge.reset_session()
        assert new_id == "session-2"
        assert transport.ended == ["session-1"]
        assert bridge.session_id == "session-2"


class TestSendPrompt:
    """send_prompt()"""

    @pytest.mark.asyncio
    async def test_success_streams_tokens(self, make_transport, bridge_factory):
        usage = TokenUsage(prompt_tokens=7, completion_tokens=2, total_tokens=9)
        transport = make_transport([["Hello", " world"]], usage=usage)
        bridge = bridge_factory(transport)
        tokens = []

        result = await bridge.send_prompt("prompt", on_token=tokens.append)

        assert result.response == "Hello world"
        assert result.token_usage == usage
        assert tokens == ["Hello", " world"]
        assert transport.prompts[0][:2] == ("session-1", "prompt")

    @pytest.mark.asyncio
    async def test_images_forwarded(self, make_transport, bridge_factory):
        transport = make_transport()
        bridge = bridge_factory(transport)
        image = ImageAttachment(data="AAA", format="png")
        await bridge.send_prompt("p", options=PromptOptions(images=(image,)))
        assert transport.prompts[0][2] == [image]

    @pytest.mark.asyncio
    async def test_session_error_retries_once_on_new_session(self, make_transport, bridge_factory):
        transport = make_transport([session_error(), ["ok"]])
        bridge = bridge_factory(transport, threshold=3)

        result = await bridge.send_prompt("p")

        assert result.response == "ok"
        assert transport.started == ["session-1", "session-2"]
        assert [p[0] for p in transport.prompts] == ["session-1", "session-2"]
        assert transport.ended == ["session-1"]
        assert bridge.circuit.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_retry_boundary_signalled_between_attempts(self, make_transport, bridge_factory):
        transport = make_transport([["par", session_error()], ["full"]])
        bridge = bridge_factory(transport, threshold=3)
        seen = []

        result = await bridge.send_prompt(
            "p",
            on_token=seen.append,
            options=PromptOptions(on_retry=lambda: seen.append("<retry>")),
        )

        assert result.response == "full"
        assert seen == ["par", "<retry>", "full"]

    @pytest.mark.asyncio
    async def test_no_retry_signal_without_session_error(self, make_transport, bridge_factory):
        error = TransportError("Insufficient funds", code=TransportErrorCode.INSUFFICIENT_FUNDS)
        bridge = bridge_factory(make_transport([error]))
        retries = []

        with pytest.raises(TransportError):
            await bridge.send_prompt("p", options=PromptOptions(on_retry=lambda: retries.append(1)))

        assert retries == []

    @pytest.mark.asyncio
    async def test_non_session_error_not_retried(self, make_transport, bridge_factory):
        error = TransportError("Insufficient funds", code=TransportErrorCode.INSUFFICIENT_FUNDS)
        transport = make_transport([error])
        bridge = bridge_factory(transport)

        with pytest.raises(TransportError):
            await bridge.send_prompt("p")

        assert transport.started == ["session-1"]
        assert len(transport.prompts) == 1
        assert bridge.circuit.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_retry_failure_opens_circuit(self, make_transport, bridge_factory):
        transport = make_transport([session_error(), session_error()])
        bridge = bridge_factory(transport)

        with pytest.raises(TransportError):
            await bridge.send_prompt("p")

        assert len(transport.prompts) == 2
        assert bridge.is_circuit_open()
        assert "Session not found" in bridge.get_circuit_error()

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self, make_transport, bridge_factory):
        transport = make_transport([session_error(), session_error()])
        bridge = bridge_factory(transport)
        with pytest.raises(TransportError):
            await bridge.send_prompt("p")
        calls_before = len(transport.prompts)
        sessions_before = len(transport.started)

        with pytest.raises(CircuitOpenError) as exc_info:
            await bridge.send_prompt("p")

        assert "Session not found" in exc_info.value.message
        assert len(transport.prompts) == calls_before
        assert len(transport.started) == sessions_before

    @pytest.mark.asyncio
    async def test_reset_circuit_allows_calls(self, make_transport, bridge_factory):
        transport = make_transport([session_error(), session_error(), ["back"]])
        bridge = bridge_factory(transport)
        with pytest.raises(TransportError):
            await bridge.send_prompt("p")

        bridge.reset_circuit()
        result = await bridge.send_prompt("p")

        assert result.response == "back"
        assert not bridge.is_circuit_open()

    @pytest.mark.asyncio
    async def test_trial_after_cooldown(self, make_transport, bridge_factory):
        transport = make_transport([session_error(), session_error(), ["recovered"]])
        bridge = bridge_factory(transport, cooldown=0.0)
        with pytest.raises(TransportError):
            await bridge.send_prompt("p")

        result = await bridge.send_prompt("p")

        assert result.response == "recovered"
        assert bridge.circuit.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_prompts_processed_in_arrival_order(self, make_transport, bridge_factory):
        transport = make_transport([["a"], ["b"], ["c"]])
        bridge = bridge_factory(transport)

        results = await asyncio.gather(*(bridge.send_prompt(p) for p in ("p1", "p2", "p3")))

        assert [r.response for r in results] == ["a", "b", "c"]
        assert [p[1] for p in transport.prompts] == ["p1", "p2", "p3"]

    @pytest.mark.asyncio
    async def test_one_prompt_in_flight_at_a_time(self, make_transport, bridge_factory):
        transport = make_transport([["x"] * 5, ["y"] * 5])
        bridge = bridge_factory(transport)
        order = []

        await asyncio.gather(
            bridge.send_prompt("p1", on_token=lambda t: order.append(("p1", t))),
            bridge.send_prompt("p2", on_token=lambda t: order.append(("p2", t))),
        )

        assert order == [("p1", "x")] * 5 + [("p2", "y")] * 5


class TestShutdown:
    """shutdown()"""

    @pytest.mark.asyncio
    async def test_ends_session(self, make_transport, bridge_factory):
        transport = make_transport()
        bridge = bridge_factory(transport)
        await bridge.send_prompt("p")
        await bridge.shutdown()
        assert transport.ended == ["session-1"]
        assert bridge.session_id is None

    @pytest.mark.asyncio
    async def test_end_session_errors_swallowed(self, make_transport, bridge_factory):
        transport = make_transport()
        transport.end_session = AsyncMock(side_effect=RuntimeError("network down"))
        bridge = bridge_factory(transport)
        await bridge.ensure_session()
        await bridge.shutdown()
        transport.end_session.assert_awaited_once_with("session-1")
        assert bridge.session_id is None

    @pytest.mark.asyncio
    async def test_rejects_prompts_after_shutdown(self, make_transport, bridge_factory):
        bridge = bridge_factory(make_transport())
        await bridge.shutdown()
        with pytest.raises(BackendError):
            await bridge.send_prompt("p")
