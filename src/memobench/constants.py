from typing import Final
from enum import StrEnum

MEMO_PROGRAM_ID: Final = "MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr"
MEMO_MARKER: Final = "memobench:"

LAMPORTS_PER_SOL: Final = 1_000_000_000
MICRO_LAMPORTS_PER_LAMPORT: Final = 1_000_000
BASE_FEE_LAMPORTS: Final = 5_000  # one signature
COMPUTE_UNIT_LIMIT: Final = 30_000

RUN_ID_BYTES = 4

# Blockhashes expire after 150 blocks (~400ms each); 160 leaves some slack.
DEADLINE_BLOCKS = 160
BLOCK_TIME = 0.4
DEADLINE_SECONDS = DEADLINE_BLOCKS * BLOCK_TIME

# Emitter tasks start together at the next 5s grid point plus 10s.
START_INTERVAL = 5.0
START_OFFSET = 10.0

RPC_TIMEOUT = 10.0
SUBSCRIBE_TIMEOUT = 10.0


class Commitment(StrEnum):
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"


class StopReason(StrEnum):
    COMPLETED     = "completed"
    DEADLINE      = "deadline"
    INTERRUPTED   = "interrupted"
    STREAM_CLOSED = "stream_closed"
    ABORTED       = "aborted"


__all__ = [
    "BASE_FEE_LAMPORTS",
    "BLOCK_TIME",
    "COMPUTE_UNIT_LIMIT",
    "DEADLINE_BLOCKS",
    "DEADLINE_SECONDS",
    "LAMPORTS_PER_SOL",
    "MEMO_MARKER",
    "MEMO_PROGRAM_ID",
    "MICRO_LAMPORTS_PER_LAMPORT",
    "RPC_TIMEOUT",
    "RUN_ID_BYTES",
    "START_INTERVAL",
    "START_OFFSET",
    "SUBSCRIBE_TIMEOUT",

    ######
    "Commitment",
    "StopReason",
]
