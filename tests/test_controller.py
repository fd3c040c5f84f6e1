import asyncio

import pytest
from solders.hash import Hash
from solders.keypair import Keypair

from conftest import RUN_ID, FakeStream, decode_memo, memo_event, no_sleep
from memobench.config import BenchConfig
from memobench.constants import StopReason
from memobench.controller import Deadline, InsufficientBalance, RunController, SetupError
from memobench.ledger import Ledger
from memobench.limiter import RateLimiter
from memobench.listener import ListenerState
from memobench.rpc import RpcError, TransportError


class FakeRpc:
    def __init__(self, balance=10**9, blockhash_error=None, blockhash=None):
        self.balance = balance
        self.blockhash_error = blockhash_error
        self.blockhash = blockhash or str(Hash.default())
        self.balance_calls = []

    async def get_latest_blockhash(self, commitment):
        if self.blockhash_error:
            raise self.blockhash_error
        return self.blockhash

    async def get_balance(self, pubkey, commitment):
        self.balance_calls.append((pubkey, commitment))
        if isinstance(self.balance, Exception):
            raise self.balance
        return self.balance


class LandingSubmitter:
    """Accepts every send and, if given slots, makes the confirmation show up shortly after."""

    def __init__(self, stream: FakeStream, slots: dict[int, int] | None = None, fail=()):
        self.stream = stream
        self.slots = slots or {}
        self.fail = set(fail)

    async def send_transaction(self, raw, *, skip_preflight=True, max_retries=None):
        signature, tag = decode_memo(raw)
        if tag.sequence in self.fail:
            raise RpcError(-32005, "Node is behind")
        if tag.sequence in self.slots:
            event = memo_event(signature, tag.sequence, self.slots[tag.sequence])
            asyncio.get_running_loop().call_later(0.01, self.stream.push, event)
        return signature


def make_controller(stream, submitter, *, rpc=None, tx_count=5, deadline=5.0, prio_fee=0.0):
    async def subscribe():
        return stream

    config = BenchConfig(private_key="", rpc_url="http://localhost:8899", tx_count=tx_count, prio_fee=prio_fee)
    return RunController(
        config,
        Keypair(),
        RUN_ID,
        rpc=rpc or FakeRpc(),
        submitter=submitter,
        subscribe=subscribe,
        limiter=RateLimiter(1000, 1000),
        deadline_seconds=deadline,
        emitter_options={"sleep": no_sleep},
    )


@pytest.mark.asyncio
async def test_end_to_end_natural_completion(stream):
    slots = {1: 10, 2: 10, 3: 11, 4: 10, 5: 11}
    controller = make_controller(stream, LandingSubmitter(stream, slots))

    snap = await asyncio.wait_for(controller.run(), timeout=3)

    assert (snap.sent, snap.processed) == (5, 5)
    assert snap.block_counts == {10: 3, 11: 2}
    assert len(snap.deltas) == 5
    assert controller.listener.state is ListenerState.STOPPED
    assert controller.listener.stop_reason is StopReason.COMPLETED
    assert not controller.deadline.fired
    assert not controller.deadline.armed
    assert stream.unsubscribe_calls == 1


@pytest.mark.asyncio
async def test_deadline_ends_run_without_confirmations(stream):
    controller = make_controller(stream, LandingSubmitter(stream), deadline=0.05)

    snap = await asyncio.wait_for(controller.run(), timeout=3)

    assert (snap.sent, snap.processed, snap.outstanding) == (5, 0, 5)
    assert snap.deltas == ()
    assert controller.listener.stop_reason is StopReason.DEADLINE
    assert controller.deadline.fired


@pytest.mark.asyncio
async def test_partial_landing_then_deadline(stream):
    controller = make_controller(stream, LandingSubmitter(stream, {1: 7, 3: 8}), deadline=0.1)

    snap = await asyncio.wait_for(controller.run(), timeout=3)

    assert (snap.sent, snap.processed) == (5, 2)
    assert snap.block_counts == {7: 1, 8: 1}
    assert controller.listener.stop_reason is StopReason.DEADLINE


@pytest.mark.asyncio
async def test_failed_sends_shrink_the_target(stream):
    slots = {1: 3, 2: 3, 3: 4}
    controller = make_controller(stream, LandingSubmitter(stream, slots, fail={4, 5}))

    snap = await asyncio.wait_for(controller.run(), timeout=3)

    assert (snap.sent, snap.processed) == (3, 3)
    assert controller.listener.stop_reason is StopReason.COMPLETED


@pytest.mark.asyncio
async def test_all_sends_failing_stops_immediately(stream):
    controller = make_controller(stream, LandingSubmitter(stream, fail={1, 2, 3, 4, 5}))

    snap = await asyncio.wait_for(controller.run(), timeout=3)

    assert (snap.sent, snap.processed) == (0, 0)
    assert controller.listener.stop_reason is StopReason.COMPLETED


@pytest.mark.asyncio
async def test_blockhash_failure_is_fatal(stream):
    rpc = FakeRpc(blockhash_error=TransportError("connection refused"))
    controller = make_controller(stream, LandingSubmitter(stream), rpc=rpc)

    with pytest.raises(SetupError, match="blockhash"):
        await asyncio.wait_for(controller.run(), timeout=3)

    assert controller.listener.stop_reason is StopReason.ABORTED
    assert stream.unsubscribe_calls == 1
    assert controller.ledger.sent == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "rpc",
    [
        FakeRpc(blockhash_error=KeyError("value")),
        FakeRpc(blockhash_error=AttributeError("'list' object has no attribute 'get'")),
        FakeRpc(blockhash="not-a-blockhash"),
    ],
)
async def test_unexpected_blockhash_failure_still_ends_run(stream, rpc):
    controller = make_controller(stream, LandingSubmitter(stream), rpc=rpc, deadline=60)

    with pytest.raises(SetupError, match="blockhash"):
        await asyncio.wait_for(controller.run(), timeout=3)

    assert controller.listener.stop_reason is StopReason.ABORTED
    assert not controller.deadline.armed
    assert stream.unsubscribe_calls == 1
    assert controller.ledger.sent == 0
    assert controller._emission.done() and controller._emission.exception() is None


@pytest.mark.asyncio
async def test_interrupt(stream):
    controller = make_controller(stream, LandingSubmitter(stream), deadline=60)
    # nothing to stop yet
    assert controller.interrupt() is False

    task = asyncio.create_task(controller.run())
    for _ in range(100):
        if controller.listener.listening:
            break
        await asyncio.sleep(0.001)

    assert controller.interrupt() is True
    await asyncio.wait_for(task, timeout=3)
    assert controller.listener.stop_reason is StopReason.INTERRUPTED


@pytest.mark.asyncio
async def test_balance_check(stream):
    # 5 txs * (0.5 * 30_000 + 5_000) = 100_000 lamports worst case
    ok = make_controller(stream, None, rpc=FakeRpc(balance=50_000), prio_fee=0.5)
    assert await ok.check_balance() == 50_000
    assert ok.rpc.balance_calls[0][1] == "finalized"

    short = make_controller(stream, None, rpc=FakeRpc(balance=49_999), prio_fee=0.5)
    with pytest.raises(InsufficientBalance) as exc:
        await short.check_balance()
    assert exc.value.required == 100_000

    broken = make_controller(stream, None, rpc=FakeRpc(balance=RpcError(-32600, "bad request")))
    with pytest.raises(SetupError):
        await broken.check_balance()


@pytest.mark.asyncio
async def test_deadline_fires_once():
    fired = []
    deadline = Deadline(lambda: fired.append(1))
    deadline.arm(0.01)
    assert deadline.armed
    with pytest.raises(RuntimeError):
        deadline.arm(0.01)

    await asyncio.sleep(0.05)
    assert fired == [1]
    deadline.cancel()
    assert not deadline.armed


@pytest.mark.asyncio
async def test_cancelled_deadline_never_fires():
    fired = []
    deadline = Deadline(lambda: fired.append(1))
    deadline.arm(0.01)
    deadline.cancel()

    await asyncio.sleep(0.05)
    assert fired == []
    assert not deadline.fired
