# memobench/listener.py
"""
Confirmation listener: consumes the log stream for the test wallet and matches
each confirmation back to the send that produced it.

Events are handled one at a time, in delivery order. The listener stops itself once
everything that was sent has landed; the run controller can also stop it on the
deadline or on an operator interrupt.
"""
import asyncio
import logging
from enum import StrEnum
from typing import Any, Awaitable, Callable, Protocol

from memobench.ledger import Landing, Ledger
from memobench.memo import MemoTag
from memobench.ws import LogEvent, StreamClosed
import memobench.constants as C

log = logging.getLogger("memobench.listener")


class ListenerState(StrEnum):
    IDLE      = "IDLE"
    LISTENING = "LISTENING"
    STOPPED   = "STOPPED"


class LogStream(Protocol):
    async def recv(self) -> LogEvent | None: ...
    async def unsubscribe(self) -> None: ...


class ConfirmationListener:
    def __init__(
        self,
        ledger: Ledger,
        run_id: str,
        subscribe: Callable[[], Awaitable[LogStream]],
    ):
        self.ledger = ledger
        self.run_id = run_id
        self._subscribe = subscribe
        self._stream: LogStream | None = None
        self._halt = asyncio.Event()
        self.state = ListenerState.IDLE
        self.stop_reason: C.StopReason | None = None

    @property
    def listening(self) -> bool:
        return self.state is ListenerState.LISTENING

    def stop(self, reason: C.StopReason = C.StopReason.INTERRUPTED) -> bool:
        """Stop listening. Only the first call has any effect; returns whether it was this one."""
        if self.state is ListenerState.STOPPED:
            return False
        self.state = ListenerState.STOPPED
        self.stop_reason = reason
        self._halt.set()
        log.info("Listener stopping (%s)", reason)
        return True

    async def check_complete(self) -> bool:
        if await self.ledger.is_complete():
            self.stop(C.StopReason.COMPLETED)
            return True
        return False

    async def run(self, on_ready: Callable[[], Any] | None = None) -> None:
        """Subscribe, call ``on_ready`` once the stream is live, then drain events until stopped."""
        if self.state is ListenerState.LISTENING:
            raise RuntimeError("listener already running")
        if self.state is ListenerState.STOPPED:
            return

        self._stream = await self._subscribe()
        try:
            if self.state is ListenerState.STOPPED:
                # Stopped while we were still subscribing
                return
            self.state = ListenerState.LISTENING
            log.info("Listening for transactions...")

            # start sending transactions now that the stream is ready
            if on_ready is not None:
                on_ready()

            halt_task = asyncio.create_task(self._halt.wait(), name="listener-halt")
            try:
                while self.state is ListenerState.LISTENING:
                    event = await self._next_event(halt_task)
                    if event is not None:
                        await self.handle_event(event)
            finally:
                halt_task.cancel()
        finally:
            if self.state is not ListenerState.STOPPED:
                self.stop(C.StopReason.ABORTED)
            await self._stream.unsubscribe()
            log.info("Stopped listening for log events")

    async def _next_event(self, halt_task: asyncio.Task) -> LogEvent | None:
        recv_task = asyncio.create_task(self._stream.recv(), name="listener-recv")
        done, _ = await asyncio.wait({recv_task, halt_task}, return_when=asyncio.FIRST_COMPLETED)

        if recv_task not in done:
            recv_task.cancel()
            return None
        if self.state is not ListenerState.LISTENING:
            return None

        try:
            return recv_task.result()
        except StreamClosed as e:
            log.error("Log stream closed: %s", e)
            self.stop(C.StopReason.STREAM_CLOSED)
        except Exception as e:
            log.error("Error receiving log event: %s", e, exc_info=True)
        return None

    async def handle_event(self, event: LogEvent) -> Landing | None:
        if event.err is not None:
            log.debug("Skipping errored tx %s: %s", event.signature, event.err)
            return None

        for line in event.logs:
            tag = MemoTag.parse(line)
            if tag is None:
                continue

            if tag.run_id != self.run_id:
                log.warning(
                    "Received unexpected run id: num=%d id=%s sig=%s",
                    tag.sequence, tag.run_id, event.signature,
                )
                continue

            landing = await self.ledger.record_landed(event.signature, event.slot)
            if landing is None:
                # Not in pending: left over from a restarted run, or already matched
                log.debug("Skipping untracked tx num=%d sig=%s", tag.sequence, event.signature)
                return None

            if landing.sequence != tag.sequence:
                log.warning(
                    "Memo sequence %d differs from tracked sequence %d for sig=%s",
                    tag.sequence, landing.sequence, event.signature,
                )

            log.info(
                "Tx processed: num=%d sig=%s delta=%dms landed=%d/%d",
                landing.sequence, landing.signature, int(landing.delta * 1000), landing.processed, landing.sent,
            )
            if landing.complete:
                self.stop(C.StopReason.COMPLETED)
            return landing

        return None
