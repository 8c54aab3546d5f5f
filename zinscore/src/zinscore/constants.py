"""
Zcash transparent-pool and inscription protocol constants.

Transactions are built in the Sapling (v4, overwintered) format with empty
shielded components. Fee numbers follow ZIP-317.
"""

from __future__ import annotations

# Transaction format
TX_VERSION = 4
OVERWINTERED_FLAG = 0x80000000
SAPLING_VERSION_GROUP_ID = 0x892F2085

# Signature hashing
SIGHASH_ALL = 0x01

# Known consensus branch ids, used for log output only.
# The active id must always be fetched (or explicitly overridden).
CONSENSUS_BRANCH_NAMES: dict[int, str] = {
    0x5BA81B19: "Overwinter",
    0x76B809BB: "Sapling",
    0x2BB40E60: "Blossom",
    0xF5B9230B: "Heartwood",
    0xE9FF75A6: "Canopy",
    0xC2D6D0B4: "NU5",
    0xC8E71055: "NU6",
}

# Input sequence numbers. Commit and split inputs opt in to replacement, the reveal is final.
DEFAULT_SEQUENCE = 0xFFFFFFFD
FINAL_SEQUENCE = 0xFFFFFFFF

# Script limits
MAX_SCRIPT_ELEMENT_SIZE = 520  # bytes per single push
MAX_SCRIPT_SIZE = 10_000  # bytes per script

# Standard P2PKH dust limit in zatoshis
DUST_LIMIT = 546

# ZIP-317 conventional fee: marginal fee per logical action, with a floor of
# two grace actions (2 * 5_000 = 10_000 zats)
MARGINAL_FEE = 5_000
GRACE_ACTIONS = 2
MIN_FEE_FLOOR = GRACE_ACTIONS * MARGINAL_FEE

# Inscription defaults
ENVELOPE_MARKER = b"ord"
DEFAULT_INSCRIPTION_AMOUNT = 60_000
DEFAULT_CONTENT_TYPE = "text/plain;charset=utf-8"

# Coordination
STALE_LOCK_SECONDS = 15 * 60
CONTEXT_RETENTION_SECONDS = 24 * 60 * 60
EPOCH_CACHE_TTL_SECONDS = 10 * 60
