import asyncio
import logging
import time
from typing import Awaitable, Callable, Protocol

from solders.hash import Hash
from solders.keypair import Keypair

from memobench.ledger import Ledger
from memobench.limiter import RateLimiter
from memobench.memo import MemoTag
from memobench.rpc import RpcError, TransportError
from memobench.txn import build_memo_transaction
import memobench.constants as C

log = logging.getLogger("memobench.emitter")


class Submitter(Protocol):
    async def send_transaction(self, raw: bytes, *, skip_preflight: bool = True, max_retries: int | None = None) -> str: ...


def start_boundary(now: float, interval: float = C.START_INTERVAL, offset: float = C.START_OFFSET) -> float:
    """Next point on the ``interval`` grid, plus ``offset``. Keeps separate runs roughly in step."""
    return now - (now % interval) + offset


class TransactionEmitter:
    """Sends ``tx_count`` memo transactions, one task each.

    Tasks all sleep to a common start boundary before asking the limiter for a token,
    so the limiter's wait reflects throttling and not task start-up skew.
    """

    def __init__(
        self,
        *,
        keypair: Keypair,
        submitter: Submitter,
        ledger: Ledger,
        limiter: RateLimiter,
        run_id: str,
        tx_count: int,
        prio_fee: float = 0.0,
        node_retries: int | None = None,
        wall_clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        start_interval: float = C.START_INTERVAL,
        start_offset: float = C.START_OFFSET,
    ):
        self.keypair = keypair
        self.submitter = submitter
        self.ledger = ledger
        self.limiter = limiter
        self.run_id = run_id
        self.tx_count = tx_count
        self.prio_fee = prio_fee
        self.node_retries = node_retries
        self._wall_clock = wall_clock
        self._sleep = sleep
        self.start_interval = start_interval
        self.start_offset = start_offset

    async def run(self, blockhash: Hash) -> tuple[int, int]:
        """Send every transaction against the shared ``blockhash``. Returns (succeeded, failed)."""
        start_at = start_boundary(self._wall_clock(), self.start_interval, self.start_offset)
        async with asyncio.TaskGroup() as tg:
            tasks = [
                tg.create_task(self._send_one(seq, blockhash, start_at), name=f"send-{seq}")
                for seq in range(1, self.tx_count + 1)
            ]
        succeeded = sum(1 for t in tasks if t.result())
        failed = len(tasks) - succeeded
        log.info("Emission finished: %d sent, %d failed", succeeded, failed)
        return succeeded, failed

    async def _send_one(self, sequence: int, blockhash: Hash, start_at: float) -> bool:
        delay = start_at - self._wall_clock()
        # only log the first time, to avoid spamming logs
        if sequence == 1:
            log.info("Tasks sleeping until starting spam (delay=%.3fs)", max(delay, 0.0))
        if delay > 0:
            await self._sleep(delay)

        throttled = await self.limiter.acquire()
        if throttled > 0:
            log.info("Task %d throttled %.3fs to respect rate limit, sending now", sequence, throttled)

        tx = build_memo_transaction(self.keypair, MemoTag(sequence, self.run_id), blockhash, self.prio_fee)
        log.info("Sending tx %d [%s]", sequence, tx.signatures[0])

        try:
            signature = await self.submitter.send_transaction(
                bytes(tx),
                skip_preflight=True,
                max_retries=self.node_retries,
            )
        except RpcError as e:
            log.error("Error sending tx %d: received RPC error: %s", sequence, e.message)
            return False
        except TransportError as e:
            log.error("Error sending tx %d: %s", sequence, e)
            return False
        except Exception as e:
            log.error("Error sending tx %d: %s", sequence, e, exc_info=True)
            return False

        await self.ledger.record_sent(signature, sequence)
        return True
