"""Half-duplex command dispatch: the command queue and the response router.

The EBB answers commands strictly in order and never interleaves replies, so
the client keeps exactly one command in flight::

    enqueue() ──► CommandQueue ──► write "CMD\\r" ──► device
                      │                                 │
                      └── await_lines(n) ◄── ResponseRouter ◄── line

:class:`ResponseRouter` owns the FIFO of single-line handlers. Each incoming
line goes to the oldest handler; a line with no handler waiting is logged and
dropped. :class:`CommandQueue` owns the FIFO of pending commands and only
starts the next one once the current one has collected all of its reply lines,
failed, or timed out.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from ..errors import CommandTimeoutError
from .framing import frame_command

if TYPE_CHECKING:
    from ..transport.base import LineTransport

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 3000

# How long a timed-out command keeps absorbing its late reply lines
LATE_REPLY_GRACE_MS = 3000


class LineCollector:
    """Reply buffer for one command.

    Resolves :attr:`future` with the collected lines once ``expected`` lines
    have arrived. Once expired its handlers stay queued and swallow the late
    lines still owed to it, so they never reach a later command.
    """

    def __init__(self, command: str, expected: int) -> None:
        self.command = command
        self.expected = expected
        self.lines: list[str] = []
        self.expired = False
        self.future: asyncio.Future[list[str]] = asyncio.get_running_loop().create_future()
        if expected == 0:
            self.future.set_result([])

    @property
    def outstanding(self) -> int:
        return self.expected - len(self.lines)

    def push(self, line: str) -> None:
        if self.expired or self.future.done():
            logger.debug("Discarding late line %r for %r", line, self.command)
            return
        self.lines.append(line)
        if len(self.lines) == self.expected:
            self.future.set_result(list(self.lines))

    def expire(self) -> None:
        self.expired = True


@dataclass
class ResponseHandler:
    """Receives exactly one reply line on behalf of its collector."""

    collector: LineCollector

    def __call__(self, line: str) -> None:
        self.collector.push(line)


class ResponseRouter:
    """FIFO of pending single-line handlers, fed by the transport."""

    def __init__(self) -> None:
        self._handlers: deque[ResponseHandler] = deque()

    @property
    def pending(self) -> int:
        return len(self._handlers)

    def await_lines(self, command: str, count: int) -> LineCollector:
        """Register ``count`` handlers for ``command`` in one step."""
        collector = LineCollector(command, count)
        self._handlers.extend(ResponseHandler(collector) for _ in range(count))
        logger.debug("Awaiting %d line(s) for %r", count, command)
        return collector

    def feed_line(self, line: str) -> None:
        """Route one received line to the oldest pending handler."""
        if not self._handlers:
            logger.info("Received unsolicited message from EBB: %r", line)
            return
        handler = self._handlers.popleft()
        handler(line)

    def discard(self, collector: LineCollector) -> None:
        """Drop the handlers still registered for ``collector``."""
        collector.expire()
        self._handlers = deque(h for h in self._handlers if h.collector is not collector)

    def clear(self) -> None:
        for handler in self._handlers:
            handler.collector.expire()
        self._handlers.clear()


class QueueState(Enum):
    IDLE = "idle"
    AWAITING = "awaiting"


@dataclass
class PendingCommand:
    """A queued or in-flight command and the caller's completion future."""

    text: str
    response_lines: int
    timeout_ms: float
    future: asyncio.Future[list[str]] = field(repr=False)


class CommandQueue:
    """Serializes commands over one transport.

    One instance per connection. Commands are written in the order they were
    enqueued, and the next command is only written after the current one has
    completed, failed or timed out.
    """

    def __init__(
        self,
        transport: LineTransport,
        router: ResponseRouter,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
        late_reply_grace_ms: float = LATE_REPLY_GRACE_MS,
    ) -> None:
        self._transport = transport
        self._router = router
        self.timeout_ms = timeout_ms
        self.late_reply_grace_ms = late_reply_grace_ms
        self._pending: deque[PendingCommand] = deque()
        self._active: asyncio.Task | None = None
        self._collector: LineCollector | None = None
        self._state = QueueState.IDLE

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def outstanding(self) -> int:
        """Reply lines the in-flight command is still waiting for."""
        if self._state is not QueueState.AWAITING or self._collector is None:
            return 0
        return self._collector.outstanding

    def __len__(self) -> int:
        return len(self._pending)

    async def enqueue(
        self,
        text: str,
        response_lines: int = 1,
        timeout_ms: float | None = None,
    ) -> list[str]:
        """Queue a command and wait for its reply lines.

        Args:
            text: Command text without the ``\\r`` terminator.
            response_lines: Number of reply lines to collect.
            timeout_ms: Reply budget, measured from write completion.
                Defaults to the queue's timeout.

        Returns:
            The reply lines in arrival order.

        Raises:
            CommandTimeoutError: If the lines did not all arrive in time.
            TransportError: If the transport failed to write.
        """
        loop = asyncio.get_running_loop()
        pending = PendingCommand(
            text=text,
            response_lines=response_lines,
            timeout_ms=self.timeout_ms if timeout_ms is None else timeout_ms,
            future=loop.create_future(),
        )
        self._pending.append(pending)
        if len(self._pending) == 1:
            self._start_next()
        return await pending.future

    def _start_next(self) -> None:
        # Callers that gave up while queued never reach the wire
        while self._pending and self._pending[0].future.done():
            skipped = self._pending.popleft()
            logger.debug("Skipping cancelled command %r", skipped.text)
        if self._pending:
            self._active = asyncio.get_running_loop().create_task(
                self._execute(self._pending[0])
            )
        else:
            self._active = None

    async def _execute(self, pending: PendingCommand) -> None:
        try:
            lines = await self._run(pending)
        except Exception as e:
            if not pending.future.done():
                pending.future.set_exception(e)
        else:
            if not pending.future.done():
                pending.future.set_result(lines)
        finally:
            self._state = QueueState.IDLE
            self._collector = None
            if self._pending and self._pending[0] is pending:
                self._pending.popleft()
                self._start_next()

    async def _run(self, pending: PendingCommand) -> list[str]:
        # Handlers go in before the write so an immediate reply can't slip past
        collector = self._router.await_lines(pending.text, pending.response_lines)
        try:
            await asyncio.wait_for(
                self._transport.print(frame_command(pending.text)), pending.timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            # Nothing reached the device, so no reply is owed
            self._router.discard(collector)
            logger.warning("Write of %r stalled past %g ms", pending.text, pending.timeout_ms)
            raise CommandTimeoutError(pending.text, pending.timeout_ms) from None
        except BaseException:
            self._router.discard(collector)
            raise

        self._collector = collector
        self._state = QueueState.AWAITING
        try:
            return await asyncio.wait_for(collector.future, pending.timeout_ms / 1000)
        except asyncio.TimeoutError:
            # Handlers stay queued to swallow the late reply, then are dropped
            collector.expire()
            asyncio.get_running_loop().call_later(
                self.late_reply_grace_ms / 1000, self._router.discard, collector
            )
            logger.warning("Command %r timed out after %g ms", pending.text, pending.timeout_ms)
            raise CommandTimeoutError(pending.text, pending.timeout_ms) from None

    def abort(self, exc: BaseException) -> None:
        """Fail every queued and in-flight command with ``exc``."""
        pending, self._pending = self._pending, deque()
        for entry in pending:
            if not entry.future.done():
                entry.future.set_exception(exc)
        if self._active is not None and not self._active.done():
            self._active.cancel()
        self._active = None
        self._collector = None
        self._state = QueueState.IDLE
        self._router.clear()
