import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from solders.hash import Hash
from solders.keypair import Keypair

from memobench.config import BenchConfig
from memobench.emitter import Submitter, TransactionEmitter
from memobench.ledger import Ledger, LedgerSnapshot
from memobench.limiter import RateLimiter
from memobench.listener import ConfirmationListener, LogStream
from memobench.rpc import RpcError, SolanaRpc, TransportError
import memobench.constants as C

log = logging.getLogger("memobench.controller")


class SetupError(Exception):
    """The run couldn't get going (no blockhash, no balance). Nothing was sent."""


class InsufficientBalance(SetupError):
    def __init__(self, balance: int, required: int):
        super().__init__(
            f"Insufficient balance in test wallet: balance={balance / C.LAMPORTS_PER_SOL:.6f} SOL "
            f"required={required / C.LAMPORTS_PER_SOL:.6f} SOL"
        )
        self.balance = balance
        self.required = required


class Deadline:
    """One-shot timer that runs ``action`` at most once, unless cancelled first."""

    def __init__(self, action: Callable[[], Any]):
        self._action = action
        self._handle: asyncio.TimerHandle | None = None
        self.at: float | None = None
        self.fired = False

    @property
    def armed(self) -> bool:
        return self._handle is not None and not self.fired and not self._handle.cancelled()

    def arm(self, delay: float) -> None:
        if self._handle is not None:
            raise RuntimeError("deadline already armed")
        self.at = time.time() + delay
        self._handle = asyncio.get_running_loop().call_later(delay, self._fire)
        log.info("Deadline armed: stopping in %.1fs at the latest", delay)

    def _fire(self) -> None:
        self.fired = True
        log.info("Deadline reached")
        self._action()

    def cancel(self) -> None:
        if self._handle is not None and not self.fired:
            self._handle.cancel()


class RunController:
    def __init__(
        self,
        config: BenchConfig,
        keypair: Keypair,
        run_id: str,
        *,
        rpc: SolanaRpc,
        submitter: Submitter,
        subscribe: Callable[[], Awaitable[LogStream]],
        ledger: Ledger | None = None,
        limiter: RateLimiter | None = None,
        deadline_seconds: float = C.DEADLINE_SECONDS,
        emitter_options: dict | None = None,
    ):
        self.config = config
        self.keypair = keypair
        self.run_id = run_id
        self.rpc = rpc
        self.submitter = submitter
        self.ledger = ledger or Ledger()
        self.limiter = limiter or RateLimiter(config.rate_limit, config.burst)
        self.deadline_seconds = deadline_seconds
        self.emitter_options = emitter_options or {}
        self.listener = ConfirmationListener(self.ledger, run_id, subscribe)
        self.deadline = Deadline(lambda: self.listener.stop(C.StopReason.DEADLINE))
        self._emission: asyncio.Task | None = None
        self._failure: BaseException | None = None

    async def check_balance(self) -> int:
        """Abort if the wallet holds less than half of the worst case cost of the batch."""
        pubkey = str(self.keypair.pubkey())
        try:
            balance = await self.rpc.get_balance(pubkey, C.Commitment.FINALIZED)
        except (RpcError, TransportError) as e:
            raise SetupError(f"error getting test wallet balance: {e}") from e
        required = self.config.total_cost
        if balance < required / 2:
            raise InsufficientBalance(balance, required)
        log.info("Test wallet balance %.6f SOL covers %d txs", balance / C.LAMPORTS_PER_SOL, self.config.tx_count)
        return balance

    def interrupt(self) -> bool:
        """Operator asked to stop. Returns False if there was nothing listening to stop."""
        log.info("CTRL+C detected, force stopping the test")
        if not self.listener.listening:
            return False
        self.listener.stop(C.StopReason.INTERRUPTED)
        return True

    async def run(self) -> LedgerSnapshot:
        try:
            await self.listener.run(on_ready=self._start_emission)
        finally:
            self.deadline.cancel()
            if self._emission is not None and not self._emission.done():
                self._emission.cancel()
                try:
                    await self._emission
                except asyncio.CancelledError:
                    log.info("Emission cancelled with sends still outstanding")

        if self._failure is not None:
            raise self._failure

        snapshot = await self.ledger.snapshot()
        log.info(
            "Run finished (%s): landed %d/%d",
            self.listener.stop_reason, snapshot.processed, snapshot.sent,
        )
        return snapshot

    def _start_emission(self) -> None:
        self._emission = asyncio.create_task(self._emit(), name="emitter")

    async def _emit(self) -> None:
        # nothing may escape before the deadline is armed, or the listener waits forever
        try:
            blockhash = Hash.from_string(await self.rpc.get_latest_blockhash(C.Commitment.FINALIZED))
        except (RpcError, TransportError) as e:
            self._abort(SetupError(f"error getting recent blockhash: {e}"))
            return
        except Exception as e:
            log.error("Unexpected error getting recent blockhash: %s", e, exc_info=True)
            self._abort(SetupError(f"error getting recent blockhash: {e!r}"))
            return

        # the blockhash is only good for ~150 blocks, don't wait for landings past that
        self.deadline.arm(self.deadline_seconds)

        emitter = TransactionEmitter(
            keypair=self.keypair,
            submitter=self.submitter,
            ledger=self.ledger,
            limiter=self.limiter,
            run_id=self.run_id,
            tx_count=self.config.tx_count,
            prio_fee=self.config.prio_fee,
            node_retries=self.config.node_retries,
            **self.emitter_options,
        )
        try:
            await emitter.run(blockhash)
        except Exception as e:
            log.error("Emission failed: %s", e, exc_info=True)
            self._abort(SetupError(f"emission failed: {e}"))
            return

        await self.ledger.finish_emission()
        await self.listener.check_complete()

    def _abort(self, failure: SetupError) -> None:
        self._failure = failure
        self.listener.stop(C.StopReason.ABORTED)
