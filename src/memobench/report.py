"""Run header and results summary.

Everything here goes through the bare ``memobench.results`` logger so it lands on
the console and in the run's log file without timestamps.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime

import numpy as np

from memobench.config import BenchConfig
from memobench.ledger import LedgerSnapshot
import memobench.constants as C

results = logging.getLogger("memobench.results")


def format_duration(seconds: float) -> str:
    """Truncate to whole milliseconds: ``850ms``, ``1.234s``."""
    ms = int(seconds * 1000)
    if ms < 1000:
        return f"{ms}ms"
    return f"{ms / 1000:.3f}".rstrip("0").rstrip(".") + "s"


@dataclass(frozen=True)
class LandingStats:
    minimum: float
    maximum: float
    mean: float
    median: float
    p90: float
    p95: float
    p99: float

    @classmethod
    def from_deltas(cls, deltas) -> "LandingStats | None":
        if len(deltas) == 0:
            return None
        arr = np.asarray(deltas, dtype=float)
        p90, p95, p99 = np.percentile(arr, [90, 95, 99])
        return cls(
            minimum=float(arr.min()),
            maximum=float(arr.max()),
            mean=float(arr.mean()),
            median=float(np.median(arr)),
            p90=float(p90),
            p95=float(p95),
            p99=float(p99),
        )


def histogram_lines(block_counts: dict[int, int], processed: int) -> list[str]:
    """One line per slot from the first to the last one anything landed in."""
    if not block_counts or processed <= 0:
        return []
    lines = []
    for block in range(min(block_counts), max(block_counts) + 1):
        count = block_counts.get(block, 0)
        if not count:
            lines.append(f"Block {block:,} : {count:3d}")
            continue
        share = count / processed * 100
        # round up so a block with anything in it always gets a star
        stars = math.ceil(share)
        lines.append(f"Block {block:,} : {count:3d} | {share:5.1f}% | {'*' * stars}")
    return lines


def _config_lines(config: BenchConfig, width: int) -> list[str]:
    fee_sol = config.cost_per_tx / C.LAMPORTS_PER_SOL
    rows = [
        ("RPC URL", config.rpc_url),
        ("WS URL", config.ws_endpoint),
        ("RPC Send URL", config.send_endpoint),
        ("Transaction Count", config.tx_count),
        ("Rate Limit", config.rate_limit),
        ("Priority Fee/CU", f"{config.prio_fee:f} Lamports ({fee_sol:.9f} SOL)"),
        ("Node Retries", config.node_retries),
    ]
    return [f"{label:<{width}}: {value}" for label, value in rows]


def header_lines(config: BenchConfig, run_id: str, wallet: str, now: datetime | None = None) -> list[str]:
    now = now or datetime.now(timezone.utc)
    width = 20
    return [
        f"{'Date':<{width}}: {format_datetime(now, usegmt=True)}",
        f"{'Test Wallet':<{width}}: {wallet}",
        f"{'Starting Test ID':<{width}}: {run_id}",
        *_config_lines(config, width),
        "",
    ]


def summary_lines(config: BenchConfig, run_id: str, snapshot: LedgerSnapshot) -> list[str]:
    width = 23
    lines = [
        "",
        f"{'Finished Test ID':<{width}}: {run_id}",
        *_config_lines(config, width),
        f"{'Transactions Landed':<{width}}: {snapshot.processed}/{snapshot.sent} ({snapshot.landed_pct:.1f}%)",
    ]

    stats = LandingStats.from_deltas(snapshot.deltas)
    if stats is None:
        return lines

    lines += [
        f"{'Min Tx Landing Time':<{width}}: {format_duration(stats.minimum)}",
        f"{'Max Tx Landing Time':<{width}}: {format_duration(stats.maximum)}",
        f"{'Avg Tx Landing Time':<{width}}: {format_duration(stats.mean)}",
        f"{'Median Tx Landing Time':<{width}}: {format_duration(stats.median)}",
        f"{'P90 Tx Landing Time':<{width}}: {format_duration(stats.p90)}",
        f"{'P95 Tx Landing Time':<{width}}: {format_duration(stats.p95)}",
        f"{'P99 Tx Landing Time':<{width}}: {format_duration(stats.p99)}",
        "",
        *histogram_lines(snapshot.block_counts, snapshot.processed),
    ]
    return lines


class StatsReporter:
    def __init__(self, logger: logging.Logger = results):
        self.log = logger

    def _emit(self, lines: list[str]) -> None:
        for line in lines:
            self.log.info(line)

    def header(self, config: BenchConfig, run_id: str, wallet: str) -> None:
        self._emit(header_lines(config, run_id, wallet))

    def summary(self, config: BenchConfig, run_id: str, snapshot: LedgerSnapshot) -> None:
        self._emit(summary_lines(config, run_id, snapshot))
