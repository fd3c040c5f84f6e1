import logging

import base58
from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from memobench.config import ConfigError
from memobench.memo import MemoTag
import memobench.constants as C

log = logging.getLogger("memobench.txn")

MEMO_PROGRAM = Pubkey.from_string(C.MEMO_PROGRAM_ID)
KEYPAIR_LEN = 64


def load_keypair(encoded: str) -> Keypair:
    """Decode a base58 64-byte secret key (the format wallets export)."""
    if not encoded or not encoded.strip():
        raise ConfigError("error parsing private key: private_key is empty")
    try:
        raw = base58.b58decode(encoded.strip())
    except ValueError as e:
        raise ConfigError(f"error parsing private key: {e}") from e
    if len(raw) != KEYPAIR_LEN:
        raise ConfigError(f"error parsing private key: expected {KEYPAIR_LEN} bytes, got {len(raw)}")
    try:
        return Keypair.from_bytes(raw)
    except ValueError as e:
        raise ConfigError(f"error parsing private key: {e}") from e


def priority_fee_instructions(prio_fee: float) -> list[Instruction]:
    if prio_fee <= 0:
        return []
    return [
        set_compute_unit_price(int(prio_fee * C.MICRO_LAMPORTS_PER_LAMPORT)),
        set_compute_unit_limit(C.COMPUTE_UNIT_LIMIT),
    ]


def memo_instruction(signer: Pubkey, tag: MemoTag) -> Instruction:
    return Instruction(
        MEMO_PROGRAM,
        tag.render().encode(),
        [AccountMeta(signer, is_signer=True, is_writable=False)],
    )


def build_memo_transaction(keypair: Keypair, tag: MemoTag, blockhash: Hash, prio_fee: float = 0.0) -> Transaction:
    payer = keypair.pubkey()
    instructions = [*priority_fee_instructions(prio_fee), memo_instruction(payer, tag)]
    message = Message.new_with_blockhash(instructions, payer, blockhash)
    return Transaction([keypair], message, blockhash)
