import asyncio

import pytest
from solders.transaction import Transaction

from memobench.memo import MemoTag
from memobench.ws import LogEvent

RUN_ID = "0badc0de"


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStream:
    """Stands in for a LogSubscription: events are pushed in, recv() hands them out."""

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.unsubscribe_calls = 0

    def push(self, item) -> None:
        self.queue.put_nowait(item)

    async def recv(self):
        item = await self.queue.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def unsubscribe(self) -> None:
        self.unsubscribe_calls += 1


def memo_event(signature: str, sequence: int, slot: int, run_id: str = RUN_ID, err=None) -> LogEvent:
    return LogEvent(
        slot=slot,
        signature=signature,
        err=err,
        logs=(
            "Program MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr invoke [1]",
            f'Program log: Memo (len 29): "{MemoTag(sequence, run_id).render()}"',
            "Program MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr consumed 7410 of 200000 compute units",
        ),
    )


def decode_memo(raw: bytes) -> tuple[str, MemoTag]:
    """Signature and memo tag of a serialized memo transaction."""
    tx = Transaction.from_bytes(raw)
    memo = tx.message.instructions[-1].data.decode()
    return str(tx.signatures[0]), MemoTag.parse(memo)


async def no_sleep(seconds: float) -> None:
    await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock(100.0)


@pytest.fixture
def stream():
    return FakeStream()
