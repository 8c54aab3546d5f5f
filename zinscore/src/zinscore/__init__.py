"""
zinscore - Core library for Zcash inscriptions

Provides the transaction codec, signature hashing, envelope scripts and fee
policy. No network I/O.
"""

__version__ = "0.1.0"

from zinscore.codec import (
    TransactionSkeleton,
    TxInput,
    TxKind,
    TxOutput,
    WireTransaction,
    decode_transaction,
    serialize_transaction,
    transaction_id,
)
from zinscore.errors import (
    BroadcastRejectedError,
    CodecError,
    ContextNotFoundError,
    EpochUnavailableError,
    InputUnavailableError,
    InscriptionError,
    InvalidContextStateError,
    LockConflictError,
    MalformedEnvelopeError,
    ProviderFailure,
    ProviderUnavailableError,
    SignatureError,
)
from zinscore.fees import FeePolicy, compute_fee
from zinscore.models import FundingInput, NetworkType, Outpoint
from zinscore.script import (
    Envelope,
    InscriptionScripts,
    Literal,
    Operator,
    Push,
    parse_envelope,
    push,
)
from zinscore.sighash import (
    encode_der_signature,
    normalize_signature,
    sign_digest,
    signature_digest,
    verify_digest_signature,
)

__all__ = [
    "BroadcastRejectedError",
    "CodecError",
    "ContextNotFoundError",
    "Envelope",
    "EpochUnavailableError",
    "FeePolicy",
    "FundingInput",
    "InputUnavailableError",
    "InscriptionError",
    "InscriptionScripts",
    "InvalidContextStateError",
    "Literal",
    "LockConflictError",
    "MalformedEnvelopeError",
    "NetworkType",
    "Operator",
    "Outpoint",
    "ProviderFailure",
    "ProviderUnavailableError",
    "Push",
    "SignatureError",
    "TransactionSkeleton",
    "TxInput",
    "TxKind",
    "TxOutput",
    "WireTransaction",
    "compute_fee",
    "decode_transaction",
    "encode_der_signature",
    "normalize_signature",
    "parse_envelope",
    "push",
    "serialize_transaction",
    "sign_digest",
    "signature_digest",
    "transaction_id",
]
