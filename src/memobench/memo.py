"""Memo payload carried by every benchmark transaction.

The memo program echoes its data into the transaction logs, e.g.

    Program log: Memo (len 29): "memobench: Test 17 [9f3c01ab]"

so the listener can recover the sequence number and the run id from the log
stream. The layout is ``<marker> ... <sequence> ... [<run id>]``.
"""

import secrets
import string
from dataclasses import dataclass

import memobench.constants as C


def new_run_id() -> str:
    return secrets.token_hex(C.RUN_ID_BYTES)


@dataclass(frozen=True, slots=True)
class MemoTag:
    sequence: int
    run_id: str

    def render(self) -> str:
        return f"{C.MEMO_MARKER} Test {self.sequence} [{self.run_id}]"

    @classmethod
    def parse(cls, line: str) -> "MemoTag | None":
        """Pull (sequence, run id) out of a log line, or None if it isn't one of ours.

        The sequence is the first run of digits after the marker. The run id is the
        text inside the last ``[...]`` pair that follows it.
        """
        at = line.find(C.MEMO_MARKER)
        if at < 0:
            return None
        rest = line[at + len(C.MEMO_MARKER):]

        start = next((i for i, ch in enumerate(rest) if ch in string.digits), None)
        if start is None:
            return None
        end = start
        while end < len(rest) and rest[end] in string.digits:
            end += 1
        tail = rest[end:]

        opening = tail.rfind("[")
        while opening >= 0 and tail.find("]", opening + 1) < 0:
            opening = tail.rfind("[", 0, opening)
        if opening < 0:
            return None
        closing = tail.find("]", opening + 1)

        return cls(sequence=int(rest[start:end]), run_id=tail[opening + 1:closing])
