"""Tests for the command queue and response router."""

from __future__ import annotations

import asyncio
import logging

import pytest

from ebb_mcp.errors import CommandTimeoutError, TransportError
from ebb_mcp.protocol.dispatch import CommandQueue, QueueState, ResponseRouter
from ebb_mcp.transport.scripted import ScriptedTransport


class RecordingTransport(ScriptedTransport):
    """Scripted transport that logs writes and replies in one timeline."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.events: list[tuple[str, str]] = []

    async def print(self, text: str) -> None:
        self.events.append(("tx", text))
        await super().print(text)

    def feed(self, *lines: str) -> None:
        for line in lines:
            self.events.append(("rx", line))
        super().feed(*lines)


class FailingTransport(ScriptedTransport):
    """Fails the write of one specific command."""

    def __init__(self, fail_on: str, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.fail_on = fail_on

    async def print(self, text: str) -> None:
        if text == self.fail_on + "\r":
            raise TransportError("write failed")
        await super().print(text)


class StallingTransport(ScriptedTransport):
    """Never finishes writing one specific command."""

    def __init__(self, stall_on: str, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.stall_on = stall_on

    async def print(self, text: str) -> None:
        if text == self.stall_on + "\r":
            await asyncio.Event().wait()
        await super().print(text)


def _make_queue(
    transport: ScriptedTransport,
    timeout_ms: float = 3000,
    late_reply_grace_ms: float = 3000,
) -> CommandQueue:
    router = ResponseRouter()
    transport.set_line_handler(router.feed_line)
    return CommandQueue(transport, router, timeout_ms, late_reply_grace_ms)


# ─── ROUTER ──────────────────────────────────────────────────────────

def test_router_fills_handlers_fifo():
    """Lines go to the oldest outstanding handler across commands."""

    async def run():
        router = ResponseRouter()
        first = router.await_lines("QS", 2)
        second = router.await_lines("QG", 1)
        assert router.pending == 3

        for line in ("1421,-429", "OK", "3E"):
            router.feed_line(line)

        assert await first.future == ["1421,-429", "OK"]
        assert await second.future == ["3E"]
        assert router.pending == 0

    asyncio.run(run())


def test_router_zero_lines_resolves_immediately():
    async def run():
        router = ResponseRouter()
        collector = router.await_lines("RB", 0)
        assert collector.future.done()
        assert await collector.future == []
        assert router.pending == 0

    asyncio.run(run())


def test_router_logs_unsolicited_line(caplog):
    """A line with no pending handler is logged and dropped."""
    caplog.set_level(logging.INFO, logger="ebb_mcp.protocol.dispatch")
    router = ResponseRouter()
    router.feed_line("Stray")
    assert "unsolicited" in caplog.text
    assert "Stray" in caplog.text


def test_router_discard_keeps_other_handlers():
    async def run():
        router = ResponseRouter()
        dropped = router.await_lines("QC", 2)
        kept = router.await_lines("V", 1)
        router.discard(dropped)
        assert router.pending == 1
        router.feed_line("EBBv13")
        assert await kept.future == ["EBBv13"]
        assert not dropped.future.done()

    asyncio.run(run())


# ─── QUEUE ───────────────────────────────────────────────────────────

def test_enqueue_returns_reply_lines():
    async def run():
        transport = ScriptedTransport({"QE": ["4,16", "OK"]})
        await transport.connect()
        queue = _make_queue(transport)
        assert await queue.enqueue("QE", 2) == ["4,16", "OK"]
        assert transport.written == ["QE\r"]
        assert queue.state is QueueState.IDLE
        assert len(queue) == 0

    asyncio.run(run())


def test_writes_are_serialized_under_reply_delays():
    """B is only written after A's reply, whatever the reply delays."""
    delays = {"CS": 0.05, "ND": 0.0, "NI": 0.02}

    async def run():
        transport = RecordingTransport(
            {"CS": "OK", "ND": "OK", "NI": "OK"},
            delay=lambda command: delays[command],
        )
        await transport.connect()
        queue = _make_queue(transport)

        results = await asyncio.gather(
            queue.enqueue("CS"),
            queue.enqueue("ND"),
            queue.enqueue("NI"),
        )
        assert results == [["OK"], ["OK"], ["OK"]]
        assert transport.events == [
            ("tx", "CS\r"), ("rx", "OK"),
            ("tx", "ND\r"), ("rx", "OK"),
            ("tx", "NI\r"), ("rx", "OK"),
        ]

    asyncio.run(run())


def test_state_while_awaiting():
    async def run():
        transport = ScriptedTransport()
        await transport.connect()
        queue = _make_queue(transport)

        task = asyncio.ensure_future(queue.enqueue("QC", 2))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert queue.state is QueueState.AWAITING
        assert queue.outstanding == 2

        transport.feed("1023,1023")
        assert queue.outstanding == 1
        transport.feed("OK")
        assert await task == ["1023,1023", "OK"]
        assert queue.state is QueueState.IDLE
        assert queue.outstanding == 0

    asyncio.run(run())


def test_timeout_fires_at_budget_and_queue_advances():
    async def run():
        transport = ScriptedTransport({"V": "EBBv13"})
        await transport.connect()
        queue = _make_queue(transport, timeout_ms=50, late_reply_grace_ms=20)
        loop = asyncio.get_running_loop()

        start = loop.time()
        with pytest.raises(CommandTimeoutError) as exc_info:
            await queue.enqueue("QG")
        elapsed = loop.time() - start

        assert elapsed >= 0.045
        assert exc_info.value.command == "QG"
        assert exc_info.value.timeout_ms == 50
        assert "timed out after 50 ms" in str(exc_info.value)
        assert queue.state is QueueState.IDLE

        # QG never answers; once its grace period lapses V gets its own reply
        await asyncio.sleep(0.03)
        assert await queue.enqueue("V") == ["EBBv13"]
        assert transport.written == ["QG\r", "V\r"]

    asyncio.run(run())


def test_timeout_error_is_builtin_timeout():
    async def run():
        transport = ScriptedTransport()
        await transport.connect()
        queue = _make_queue(transport, timeout_ms=10)
        with pytest.raises(TimeoutError):
            await queue.enqueue("QG")

    asyncio.run(run())


def test_per_call_timeout_override():
    async def run():
        transport = ScriptedTransport()
        await transport.connect()
        queue = _make_queue(transport, timeout_ms=10_000)
        with pytest.raises(CommandTimeoutError) as exc_info:
            await queue.enqueue("QG", 1, timeout_ms=20)
        assert exc_info.value.timeout_ms == 20

    asyncio.run(run())


def test_queued_commands_run_after_timeout():
    """Commands waiting behind a timed-out one still execute."""

    async def run():
        transport = ScriptedTransport(
            {"QG": "3E", "CS": "OK"},
            delay=lambda command: 0.06 if command == "QG" else 0.1,
        )
        await transport.connect()
        queue = _make_queue(transport, timeout_ms=30)

        results = await asyncio.gather(
            queue.enqueue("QG"),
            queue.enqueue("CS", 1, timeout_ms=500),
            return_exceptions=True,
        )
        assert isinstance(results[0], CommandTimeoutError)
        assert results[1] == ["OK"]

    asyncio.run(run())


def test_late_reply_is_not_taken_by_next_command(caplog):
    """The next command is written straight away and must not see CS's late OK."""
    caplog.set_level(logging.DEBUG, logger="ebb_mcp.protocol.dispatch")

    async def run():
        transport = ScriptedTransport({"CS": "OK"}, delay=0.1)
        await transport.connect()
        queue = _make_queue(transport)

        with pytest.raises(CommandTimeoutError):
            await queue.enqueue("CS", 1, timeout_ms=30)
        # NI gets no reply from the device at all
        with pytest.raises(CommandTimeoutError):
            await queue.enqueue("NI", 1, timeout_ms=500)
        assert transport.written == ["CS\r", "NI\r"]

    asyncio.run(run())
    assert "Discarding late line 'OK' for 'CS'" in caplog.text


def test_late_reply_swallowed_before_next_reply(caplog):
    caplog.set_level(logging.DEBUG, logger="ebb_mcp.protocol.dispatch")

    async def run():
        transport = ScriptedTransport(
            {"QG": "3E", "CS": "OK"},
            delay=lambda command: 0.1 if command == "QG" else 0.15,
        )
        await transport.connect()
        queue = _make_queue(transport, timeout_ms=30)

        with pytest.raises(CommandTimeoutError):
            await queue.enqueue("QG")
        assert await queue.enqueue("CS", 1, timeout_ms=500) == ["OK"]

    asyncio.run(run())
    assert "Discarding late line '3E' for 'QG'" in caplog.text


def test_expired_handlers_dropped_after_grace_period():
    async def run():
        transport = ScriptedTransport()
        await transport.connect()
        router = ResponseRouter()
        transport.set_line_handler(router.feed_line)
        queue = CommandQueue(transport, router, timeout_ms=20, late_reply_grace_ms=30)

        with pytest.raises(CommandTimeoutError):
            await queue.enqueue("QC", 2)
        assert router.pending == 2

        await asyncio.sleep(0.05)
        assert router.pending == 0

    asyncio.run(run())


def test_abort_drops_expired_handlers():
    async def run():
        transport = ScriptedTransport()
        await transport.connect()
        router = ResponseRouter()
        transport.set_line_handler(router.feed_line)
        queue = CommandQueue(transport, router, timeout_ms=20)

        with pytest.raises(CommandTimeoutError):
            await queue.enqueue("QG")
        assert router.pending == 1

        queue.abort(TransportError("Disconnected"))
        assert router.pending == 0

    asyncio.run(run())


def test_stalled_write_times_out_and_queue_advances():
    async def run():
        transport = StallingTransport("QG", {"V": "EBBv13"})
        await transport.connect()
        router = ResponseRouter()
        transport.set_line_handler(router.feed_line)
        queue = CommandQueue(transport, router, timeout_ms=50)

        with pytest.raises(CommandTimeoutError) as exc_info:
            await queue.enqueue("QG")
        assert exc_info.value.command == "QG"
        # Nothing was written, so no handler waits for a reply
        assert router.pending == 0
        assert queue.state is QueueState.IDLE

        assert await queue.enqueue("V") == ["EBBv13"]
        assert transport.written == ["V\r"]

    asyncio.run(run())


def test_transport_failure_propagates_and_queue_advances():
    async def run():
        transport = FailingTransport("SL,1", {"SL": "OK"})
        await transport.connect()
        queue = _make_queue(transport)

        results = await asyncio.gather(
            queue.enqueue("SL,1"),
            queue.enqueue("SL,2"),
            return_exceptions=True,
        )
        assert isinstance(results[0], TransportError)
        assert results[1] == ["OK"]
        assert transport.written == ["SL,2\r"]

    asyncio.run(run())


def test_not_connected_raises_transport_error():
    async def run():
        queue = _make_queue(ScriptedTransport({"V": "EBBv13"}))
        with pytest.raises(TransportError):
            await queue.enqueue("V")
        assert queue.state is QueueState.IDLE

    asyncio.run(run())


def test_cancelled_queued_command_is_never_written():
    async def run():
        transport = ScriptedTransport({"ND": "OK", "NI": "OK"})
        await transport.connect()
        queue = _make_queue(transport)

        first = asyncio.ensure_future(queue.enqueue("QG"))
        second = asyncio.ensure_future(queue.enqueue("ND"))
        third = asyncio.ensure_future(queue.enqueue("NI"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        second.cancel()
        transport.feed("3E")

        assert await first == ["3E"]
        assert await third == ["OK"]
        with pytest.raises(asyncio.CancelledError):
            await second
        assert transport.written == ["QG\r", "NI\r"]

    asyncio.run(run())


def test_cancelled_in_flight_command_still_advances():
    async def run():
        transport = ScriptedTransport({"NI": "OK"})
        await transport.connect()
        queue = _make_queue(transport)

        first = asyncio.ensure_future(queue.enqueue("QG"))
        second = asyncio.ensure_future(queue.enqueue("NI"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        first.cancel()
        transport.feed("3E")

        assert await second == ["OK"]
        assert transport.written == ["QG\r", "NI\r"]

    asyncio.run(run())


def test_abort_fails_pending_commands():
    async def run():
        transport = ScriptedTransport()
        await transport.connect()
        queue = _make_queue(transport)

        first = asyncio.ensure_future(queue.enqueue("QG"))
        second = asyncio.ensure_future(queue.enqueue("QM"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        queue.abort(TransportError("Disconnected"))
        for task in (first, second):
            with pytest.raises(TransportError):
                await task
        assert len(queue) == 0
        assert queue.state is QueueState.IDLE

    asyncio.run(run())
