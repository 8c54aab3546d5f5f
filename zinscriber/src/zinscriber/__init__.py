"""
zinscriber - Inscription coordination service

Selects and locks funding, tracks commit/reveal signing contexts and talks
to the chain through pluggable providers.
"""

__version__ = "0.1.0"

from zinscriber.config import InscriberSettings, get_settings
from zinscriber.context import ContextKind, ContextStatus, ContextStore, TransactionContext
from zinscriber.coordinator import UtxoCoordinator
from zinscriber.epoch import EpochCache
from zinscriber.locks import Lock, LockTable
from zinscriber.logging_setup import setup_logging
from zinscriber.records import InscriptionRecord, MemoryInscriptionRecorder
from zinscriber.service import (
    CommitResult,
    InscriptionService,
    PreparedCommit,
    PreparedSplit,
    RevealResult,
    SplitResult,
    SweepResult,
    build_service,
)

__all__ = [
    "CommitResult",
    "ContextKind",
    "ContextStatus",
    "ContextStore",
    "EpochCache",
    "InscriberSettings",
    "InscriptionRecord",
    "InscriptionService",
    "Lock",
    "LockTable",
    "MemoryInscriptionRecorder",
    "PreparedCommit",
    "PreparedSplit",
    "RevealResult",
    "SplitResult",
    "SweepResult",
    "TransactionContext",
    "UtxoCoordinator",
    "build_service",
    "get_settings",
    "setup_logging",
]
