"""
Session Bridge Module

Owns the single backend session of the gateway and serializes every prompt
through it.

- The session is created lazily on first use and replaced on recovery.
- Prompts wait in a FIFO queue drained by one worker task; the next prompt
  starts only after the previous backend call settled.
- A session-class failure discards the session and retries exactly once
  against a fresh one.
- A circuit breaker fails fast while the backend keeps failing.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from app.common.errors import BackendError
from app.config import Settings
from app.domain.conversation import ImageAttachment
from app.providers.base import InferenceTransport, SessionConfig, TokenCallback, TokenUsage
from app.services.circuit_breaker import CircuitBreaker, CircuitState
from app.services.recovery import RecoveryAction, classify_error

logger = logging.getLogger(__name__)


@dataclass
class PromptOptions:
    """Per-prompt options passed to the transport"""

    images: tuple[ImageAttachment, ...] = ()
    # Called before the retry on a fresh session; tokens after it belong to the new attempt
    on_retry: Optional[Callable[[], None]] = None


@dataclass
class PromptResult:
    """Outcome of one prompt"""

    # Complete response text as returned by the transport
    response: str
    # Backend-reported usage, None when the backend did not report it
    token_usage: Optional[TokenUsage] = None


@dataclass
class QueueEntry:
    """A prompt waiting for its turn on the session"""

    prompt: str
    on_token: Optional[TokenCallback]
    options: PromptOptions
    future: asyncio.Future = field(repr=False)


class SessionBridge:
    """
    Session Bridge

    One instance per gateway process. Circuit state is shared by every call.
    """

    def __init__(
        self,
        transport: InferenceTransport,
        config: SessionConfig,
        breaker: Optional[CircuitBreaker] = None,
    ):
        """
        Initialize bridge

        Args:
            transport: Inference transport
            config: Session configuration used for every new session
            breaker: Circuit breaker, defaults to threshold 2 / cooldown 60s
        """
        self.transport = transport
        self.config = config
        self.breaker = breaker or CircuitBreaker()
        self._session_id: Optional[str] = None
        self._session_lock = asyncio.Lock()
        self._queue: asyncio.Queue[QueueEntry] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._current: Optional[QueueEntry] = None
        self._closed = False

    @classmethod
    def from_settings(cls, transport: InferenceTransport, settings: Settings) -> "SessionBridge":
        config = SessionConfig(
            model_id=settings.MODEL_ID,
            deposit_amount=settings.DEPOSIT_AMOUNT,
            price_per_token=settings.PRICE_PER_TOKEN,
            proof_interval=settings.PROOF_INTERVAL,
            duration=settings.SESSION_DURATION,
            host_address=settings.HOST_ADDRESS or None,
        )
        breaker = CircuitBreaker(
            failure_threshold=settings.CIRCUIT_FAILURE_THRESHOLD,
            cooldown_seconds=settings.CIRCUIT_COOLDOWN_SECONDS,
        )
        return cls(transport, config, breaker)

    # ============ Session ============

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    async def ensure_session(self) -> str:
        """
        Return the active session, creating it on first use

        Returns:
            str: Session identifier
        """
        async with self._session_lock:
            if self._session_id is None:
                self._session_id = await self.transport.start_session(self.config)
                logger.info(
                    "Backend session started: session_id=%s, model=%s, host=%s",
                    self._session_id,
                    self.config.model_id,
                    self.config.host_address or "auto",
                )
            return self._session_id

    async def reset_session(self) -> str:
        """
        Discard the current session and open a new one

        Returns:
            str: New session identifier
        """
        await self._discard_session()
        return await self.ensure_session()

    async def _discard_session(self) -> None:
        session_id, self._session_id = self._session_id, None
        if session_id is None:
            return
        try:
            await self.transport.end_session(session_id)
        except Exception as e:
            logger.debug("Ignoring error while ending session %s: %s", session_id, e)

    # ============ Circuit ============

    @property
    def circuit(self) -> CircuitState:
        return self.breaker.state

    def is_circuit_open(self) -> bool:
        return self.breaker.is_open()

    def get_circuit_error(self) -> Optional[str]:
        return self.breaker.last_error

    def reset_circuit(self) -> None:
        logger.info("Circuit reset by operator")
        self.breaker.reset()

    # ============ Prompts ============

    async def send_prompt(
        self,
        prompt: str,
        on_token: Optional[TokenCallback] = None,
        options: Optional[PromptOptions] = None,
    ) -> PromptResult:
        """
        Queue a prompt and wait for its result

        Args:
            prompt: Full prompt text
            on_token: Called synchronously with each produced fragment
            options: Images and other per-prompt options

        Returns:
            PromptResult: Response text and usage

        Raises:
            CircuitOpenError: Circuit open at admission time
            BackendError: Bridge already shut down
            Exception: The transport error of the last failed attempt
        """
        if self._closed:
            raise BackendError("Session bridge is shut down", code="bridge_closed", status_code=503)

        future = asyncio.get_running_loop().create_future()
        await self._queue.put(
            QueueEntry(prompt=prompt, on_token=on_token, options=options or PromptOptions(), future=future)
        )
        self._ensure_worker()
        return await future

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            entry = await self._queue.get()
            self._current = entry
            try:
                result = await self._execute(entry)
            except Exception as e:
                if not entry.future.done():
                    entry.future.set_exception(e)
            else:
                if not entry.future.done():
                    entry.future.set_result(result)
            finally:
                self._current = None
                self._queue.task_done()

    async def _execute(self, entry: QueueEntry) -> PromptResult:
        self.breaker.before_call()

        try:
            result = await self._attempt(entry)
        except Exception as error:
            self.breaker.record_failure(error)
            if classify_error(error) != RecoveryAction.RENEW_SESSION:
                logger.warning("Backend call failed: error=%s", error)
                raise
            logger.warning(
                "Session error, retrying on a new session: session_id=%s, error=%s",
                self._session_id,
                error,
            )
            await self._discard_session()
            if entry.options.on_retry is not None:
                entry.options.on_retry()
            try:
                result = await self._attempt(entry)
            except Exception as retry_error:
                self.breaker.record_failure(retry_error)
                logger.warning("Retry on new session failed: error=%s", retry_error)
                raise

        self.breaker.record_success()
        return result

    async def _attempt(self, entry: QueueEntry) -> PromptResult:
        session_id = await self.ensure_session()
        response = await self.transport.send_prompt_streaming(
            session_id,
            entry.prompt,
            entry.on_token,
            images=list(entry.options.images),
        )
        try:
            usage = await self.transport.get_last_token_usage(session_id)
        except Exception as e:
            logger.warning("Could not read token usage: session_id=%s, error=%s", session_id, e)
            usage = None
        return PromptResult(response=response, token_usage=usage)

    # ============ Lifecycle ============

    async def shutdown(self) -> None:
        """
        Stop the worker and end the session

        Errors while ending the session are swallowed; nobody is left to report them to.
        """
        self._closed = True
        pending = [self._current] if self._current is not None else []
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        while not self._queue.empty():
            pending.append(self._queue.get_nowait())
        for entry in pending:
            if not entry.future.done():
                entry.future.set_exception(
                    BackendError("Session bridge is shut down", code="bridge_closed", status_code=503)
                )

        await self._discard_session()
        logger.info("Session bridge shut down")
