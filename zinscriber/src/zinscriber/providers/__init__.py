"""
External service providers.
"""

from zinscriber.providers.base import (
    Broadcaster,
    ChainInfo,
    InscriptionIndex,
    InscriptionRecorder,
    Provider,
    UtxoIndex,
)
from zinscriber.providers.fallback import (
    FallbackBroadcaster,
    FallbackChainInfo,
    FallbackInscriptionIndex,
    FallbackUtxoIndex,
)

__all__ = [
    "Broadcaster",
    "ChainInfo",
    "FallbackBroadcaster",
    "FallbackChainInfo",
    "FallbackInscriptionIndex",
    "FallbackUtxoIndex",
    "InscriptionIndex",
    "InscriptionRecorder",
    "Provider",
    "UtxoIndex",
]
