"""Tests for abort signals and cancellation tokens."""

from __future__ import annotations

import asyncio

import pytest

from browser_bridge.cancellation import (
    AbortController,
    AbortError,
    CancellationTokenSource,
    bind_abort_signal,
    race_abort,
)


@pytest.mark.unit
class TestAbortSignal:
    """Tests for signal and listener behaviour."""

    def test_listeners_fire_once(self) -> None:
        controller = AbortController()
        calls = []
        controller.signal.add_listener(lambda: calls.append("fired"))

        controller.abort("first")
        controller.abort("second")

        assert calls == ["fired"]
        assert controller.signal.aborted
        assert controller.signal.reason == "first"

    def test_failing_listener_does_not_block_others(self) -> None:
        controller = AbortController()
        calls = []

        def broken():
            raise RuntimeError("listener bug")

        controller.signal.add_listener(broken)
        controller.signal.add_listener(lambda: calls.append("second"))
        controller.abort()

        assert calls == ["second"]

    def test_token_source(self) -> None:
        source = CancellationTokenSource()
        assert not source.token.is_cancellation_requested

        source.cancel()

        assert source.token.is_cancellation_requested


@pytest.mark.unit
class TestBindAbortSignal:
    """Tests for the listener-binding context manager."""

    def test_forwards_abort_inside_block(self) -> None:
        controller = AbortController()
        source = CancellationTokenSource()

        with bind_abort_signal(controller.signal, source.cancel):
            assert controller.signal.listener_count == 1
            controller.abort()

        assert source.token.is_cancellation_requested

    def test_removes_listener_on_exit(self) -> None:
        controller = AbortController()
        source = CancellationTokenSource()

        with bind_abort_signal(controller.signal, source.cancel):
            pass
        controller.abort()

        assert controller.signal.listener_count == 0
        assert not source.token.is_cancellation_requested

    def test_removes_listener_on_error(self) -> None:
        controller = AbortController()

        with pytest.raises(RuntimeError):
            with bind_abort_signal(controller.signal, lambda: None):
                raise RuntimeError("boom")

        assert controller.signal.listener_count == 0

    def test_already_aborted_fires_immediately(self) -> None:
        controller = AbortController()
        controller.abort()
        calls = []

        with bind_abort_signal(controller.signal, lambda: calls.append(1)):
            assert calls == [1]

    def test_none_signal(self) -> None:
        with bind_abort_signal(None, lambda: None):
            pass


@pytest.mark.unit
class TestRaceAbort:
    """Tests for racing an awaitable against a signal."""

    @pytest.mark.asyncio
    async def test_returns_result(self) -> None:
        async def work():
            return 42

        assert await race_abort(work(), AbortController().signal) == 42

    @pytest.mark.asyncio
    async def test_without_signal(self) -> None:
        async def work():
            return "ok"

        assert await race_abort(work(), None) == "ok"

    @pytest.mark.asyncio
    async def test_abort_wins_and_cancels_work(self) -> None:
        controller = AbortController()
        cancelled = asyncio.Event()

        async def slow():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        asyncio.get_running_loop().call_later(0.01, controller.abort, "stop")

        with pytest.raises(AbortError) as exc_info:
            await race_abort(slow(), controller.signal)

        assert exc_info.value.reason == "stop"
        await asyncio.wait_for(cancelled.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_already_aborted(self) -> None:
        controller = AbortController()
        controller.abort()

        with pytest.raises(AbortError):
            await race_abort(asyncio.sleep(10), controller.signal)

    @pytest.mark.asyncio
    async def test_work_error_propagates(self) -> None:
        async def failing():
            raise ValueError("bad")

        with pytest.raises(ValueError, match="bad"):
            await race_abort(failing(), AbortController().signal)
