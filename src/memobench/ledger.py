"""Shared send/confirm state for one benchmark run."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

log = logging.getLogger("memobench.ledger")


@dataclass(frozen=True, slots=True)
class PendingSend:
    sequence: int
    sent_at: float


@dataclass(frozen=True, slots=True)
class Landing:
    """Outcome of matching one confirmation, read inside the ledger lock."""

    signature: str
    sequence: int
    slot: int
    delta: float
    processed: int
    sent: int
    complete: bool


@dataclass(frozen=True)
class LedgerSnapshot:
    sent: int
    processed: int
    outstanding: int
    deltas: tuple[float, ...]
    block_counts: dict[int, int] = field(default_factory=dict)

    @property
    def landed_pct(self) -> float:
        if not self.sent:
            return 0.0
        return self.processed / self.sent * 100.0


class Ledger:
    """Counters, pending sends, landing deltas and per-slot counts.

    Every read-modify-write happens under one asyncio.Lock, including the
    "is everything that was sent now confirmed" decision.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = asyncio.Lock()
        self._clock = clock
        self.sent = 0
        self.processed = 0
        self.pending: dict[str, PendingSend] = {}
        self.deltas: list[float] = []
        self.block_counts: dict[int, int] = {}
        self.emission_done = False

    def _complete(self) -> bool:
        return self.emission_done and self.processed >= self.sent

    async def record_sent(self, signature: str, sequence: int) -> int:
        """Track a submitted transaction. Returns the updated sent count."""
        async with self._lock:
            if signature in self.pending:
                log.warning("Signature %s already pending (seq=%d), not counting twice", signature, sequence)
                return self.sent
            self.pending[signature] = PendingSend(sequence=sequence, sent_at=self._clock())
            self.sent += 1
            return self.sent

    async def record_landed(self, signature: str, slot: int) -> Landing | None:
        """Consume the pending entry for ``signature``.

        Returns None when the signature isn't pending (foreign run, or already
        matched); nothing is counted in that case.
        """
        async with self._lock:
            p = self.pending.pop(signature, None)
            if p is None:
                return None
            delta = self._clock() - p.sent_at
            self.processed += 1
            self.deltas.append(delta)
            self.block_counts[slot] = self.block_counts.get(slot, 0) + 1
            return Landing(
                signature=signature,
                sequence=p.sequence,
                slot=slot,
                delta=delta,
                processed=self.processed,
                sent=self.sent,
                complete=self._complete(),
            )

    async def finish_emission(self) -> bool:
        """Mark that no more sends will be recorded. Returns whether the run is complete."""
        async with self._lock:
            self.emission_done = True
            return self._complete()

    async def is_complete(self) -> bool:
        async with self._lock:
            return self._complete()

    async def snapshot(self) -> LedgerSnapshot:
        async with self._lock:
            return LedgerSnapshot(
                sent=self.sent,
                processed=self.processed,
                outstanding=len(self.pending),
                deltas=tuple(self.deltas),
                block_counts=dict(self.block_counts),
            )
