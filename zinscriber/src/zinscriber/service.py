"""
Inscription service: drives commit/reveal and split transactions through
their signing phases.

Client-signed flow::

    prepared = await service.prepare_commit(address, pubkey, body)
    committed = await service.finalize_commit(prepared.context_id, [sig, ...])
    revealed = await service.broadcast_reveal(prepared.context_id, reveal_sig)

``inscribe`` runs the same phases with a local private key.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from coincurve import PrivateKey
from loguru import logger

from zinscore.codec import (
    TransactionSkeleton,
    TxInput,
    TxKind,
    TxOutput,
    serialize_transaction,
    transaction_id,
)
from zinscore.constants import (
    CONTEXT_RETENTION_SECONDS,
    DEFAULT_CONTENT_TYPE,
    DEFAULT_INSCRIPTION_AMOUNT,
    FINAL_SEQUENCE,
    MAX_SCRIPT_SIZE,
)
from zinscore.crypto import (
    AddressKind,
    decode_address,
    decode_wif,
    encode_address,
    hash160,
    load_public_key,
    pubkey_to_address,
)
from zinscore.errors import InvalidContextStateError, LockConflictError, SignatureError
from zinscore.fees import FeePolicy
from zinscore.models import NetworkType, Outpoint
from zinscore.script import (
    Envelope,
    InscriptionScripts,
    address_to_script,
    p2pkh_script_sig,
    parse_envelope,
    reveal_script_sig,
)
from zinscore.sighash import (
    encode_der_signature,
    normalize_signature,
    sign_digest,
    signature_digest,
    verify_digest_signature,
)
from zinscriber.config import InscriberSettings
from zinscriber.context import (
    ContextKind,
    ContextStatus,
    ContextStore,
    TransactionContext,
    new_context_id,
)
from zinscriber.coordinator import UtxoCoordinator
from zinscriber.epoch import EpochCache
from zinscriber.providers.base import Broadcaster, InscriptionRecorder
from zinscriber.providers.fallback import (
    FallbackBroadcaster,
    FallbackChainInfo,
    FallbackInscriptionIndex,
    FallbackUtxoIndex,
)
from zinscriber.providers.http import (
    BlockchairProvider,
    NodeRpcProvider,
    ZerdinalsIndexer,
    ZerdinalsProvider,
)
from zinscriber.records import (
    InscriptionRecord,
    MemoryInscriptionRecorder,
    classify_content,
    inscription_id_for,
)

# Upper bound for a DER signature push plus the redeem script push header
REVEAL_SIG_OVERHEAD = 1 + 73 + 3


@dataclass(frozen=True)
class PreparedCommit:
    context_id: str
    commit_sighashes: list[str]
    inscription_amount: int
    fee: int
    inscription_address: str


@dataclass(frozen=True)
class CommitResult:
    context_id: str
    commit_txid: str
    reveal_sighash: str


@dataclass(frozen=True)
class RevealResult:
    context_id: str
    commit_txid: str
    reveal_txid: str
    inscription_id: str


@dataclass(frozen=True)
class PreparedSplit:
    context_id: str
    sighashes: list[str]
    fee: int


@dataclass(frozen=True)
class SplitResult:
    context_id: str
    txid: str


@dataclass(frozen=True)
class SweepResult:
    released_locks: int = 0
    pruned_contexts: int = 0
    errors: list[str] = field(default_factory=list)


def _same_network(a: NetworkType, b: NetworkType) -> bool:
    # testnet and regtest share address prefixes
    return a == b or {a, b} <= {NetworkType.TESTNET, NetworkType.REGTEST}


class InscriptionService:
    def __init__(
        self,
        coordinator: UtxoCoordinator,
        epoch: EpochCache,
        broadcaster: Broadcaster,
        recorder: InscriptionRecorder | None = None,
        contexts: ContextStore | None = None,
        fee_policy: FeePolicy | None = None,
        network: NetworkType = NetworkType.MAINNET,
        inscription_amount: int = DEFAULT_INSCRIPTION_AMOUNT,
        platform_fee: int = 0,
        treasury_address: str = "",
        context_retention_seconds: float = CONTEXT_RETENTION_SECONDS,
    ):
        if platform_fee > 0 and not treasury_address:
            raise ValueError("platform_fee requires treasury_address")
        self.coordinator = coordinator
        self.epoch = epoch
        self.broadcaster = broadcaster
        self.recorder = recorder if recorder is not None else MemoryInscriptionRecorder()
        self.contexts = contexts if contexts is not None else ContextStore()
        self.fee_policy = fee_policy or FeePolicy()
        self.network = network
        self.inscription_amount = inscription_amount
        self.platform_fee = platform_fee
        self.treasury_address = treasury_address
        self.context_retention_seconds = context_retention_seconds

    # Skeleton builders. Each rebuilds the same bytes from a stored context.

    def _commit_skeleton(self, ctx: TransactionContext) -> TransactionSkeleton:
        owner_script = address_to_script(ctx.owner_address)
        outputs = self.fee_policy.plan_commit_outputs(
            input_value=ctx.input_value,
            inscription_amount=ctx.inscription_amount,
            fee=ctx.fee,
            locking_script=bytes.fromhex(ctx.locking_script),
            change_script=owner_script,
            platform_fee=ctx.platform_fee,
            platform_script=address_to_script(ctx.treasury_address) if ctx.platform_fee else None,
        )
        return TransactionSkeleton(
            kind=TxKind.COMMIT,
            epoch_id=ctx.epoch_id,
            inputs=[
                TxInput(outpoint=f.outpoint, value=f.value, script_code=owner_script)
                for f in ctx.inputs
            ],
            outputs=outputs,
        )

    def _reveal_skeleton(self, ctx: TransactionContext, commit_txid: str) -> TransactionSkeleton:
        return TransactionSkeleton(
            kind=TxKind.REVEAL,
            epoch_id=ctx.epoch_id,
            inputs=[
                TxInput(
                    outpoint=Outpoint(txid=commit_txid, vout=0),
                    value=ctx.inscription_amount,
                    script_code=bytes.fromhex(ctx.redeem_script),
                    sequence=FINAL_SEQUENCE,
                )
            ],
            outputs=[
                TxOutput(
                    value=ctx.inscription_amount - ctx.fee,
                    script_pubkey=address_to_script(ctx.owner_address),
                )
            ],
        )

    def _split_skeleton(self, ctx: TransactionContext) -> TransactionSkeleton:
        owner_script = address_to_script(ctx.owner_address)
        outputs = self.fee_policy.plan_split_outputs(
            input_value=ctx.input_value,
            count=ctx.split_count,
            amount_each=ctx.split_amount,
            fee=ctx.fee,
            output_script=owner_script,
        )
        return TransactionSkeleton(
            kind=TxKind.SPLIT,
            epoch_id=ctx.epoch_id,
            inputs=[
                TxInput(outpoint=f.outpoint, value=f.value, script_code=owner_script)
                for f in ctx.inputs
            ],
            outputs=outputs,
        )

    def _check_owner(self, address: str, pubkey: bytes) -> None:
        kind, payload, network = decode_address(address)
        if kind != AddressKind.P2PKH:
            raise ValueError(f"Owner address {address} is not a P2PKH address")
        if not _same_network(network, self.network):
            raise ValueError(f"Address {address} is not a {self.network.value} address")
        if payload != hash160(pubkey):
            raise ValueError(f"Public key does not match address {address}")

    def _check_signatures(
        self,
        ctx: TransactionContext,
        skeleton: TransactionSkeleton,
        signatures: Sequence[bytes | str],
    ) -> list[bytes]:
        if len(signatures) != len(skeleton.inputs):
            raise SignatureError(
                f"Expected {len(skeleton.inputs)} signature(s), got {len(signatures)}"
            )
        pubkey = bytes.fromhex(ctx.pubkey)
        checked = []
        for index, sig in enumerate(signatures):
            compact = normalize_signature(sig)
            digest = signature_digest(skeleton, index)
            if not verify_digest_signature(pubkey, digest, compact):
                raise SignatureError(f"Signature for input {index} does not verify")
            checked.append(compact)
        return checked

    async def _fail(self, context_id: str, reason: str) -> None:
        """Mark a context failed and release its locks without raising."""
        try:
            await self.contexts.transition(context_id, ContextStatus.FAILED, error=reason)
        except Exception as e:
            logger.error(f"Could not mark context {context_id} failed: {e}")
        await self.coordinator.release(context_id)

    async def _reclaim_inputs(self, ctx: TransactionContext) -> None:
        """
        Re-assert the context's input locks before its inputs are spent.

        A stale sweep may have dropped them and another attempt may now hold
        an input. In that case the context is failed and the conflict raised.
        """
        try:
            await self.coordinator.lock_inputs(ctx.inputs, ctx.owner_address, ctx.context_id)
        except LockConflictError as e:
            logger.warning(f"Context {ctx.context_id} lost input {e.outpoint} to {e.attempt_id}")
            await self._fail(ctx.context_id, f"Input {e.outpoint} is held by another attempt")
            raise

    async def _broadcast(self, context_id: str, raw: bytes) -> str:
        """Broadcast, failing the context on any error. Returns the local txid."""
        local_txid = transaction_id(raw)
        try:
            reported = await self.broadcaster.broadcast(raw.hex())
        except Exception as e:
            await self._fail(context_id, str(e))
            raise
        if reported != local_txid:
            logger.warning(f"Broadcaster reported txid {reported}, computed {local_txid}")
        return local_txid

    async def prepare_commit(
        self,
        address: str,
        pubkey: bytes | str,
        content: bytes | str,
        content_type: str = DEFAULT_CONTENT_TYPE,
        inscription_amount: int | None = None,
        fee: int | None = None,
    ) -> PreparedCommit:
        """
        Select and lock funding, build the commit and return its digests.

        Raises:
            InputUnavailableError: No eligible funding covers the commit
            EpochUnavailableError: The branch id cannot be obtained
        """
        pubkey_bytes = load_public_key(pubkey)
        self._check_owner(address, pubkey_bytes)

        body = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        envelope = Envelope(content_type=content_type, body=body)
        scripts = InscriptionScripts.build(pubkey_bytes, envelope)
        script_sig_size = (
            len(scripts.envelope_script) + REVEAL_SIG_OVERHEAD + len(scripts.redeem_script)
        )
        if script_sig_size > MAX_SCRIPT_SIZE:
            raise ValueError(
                f"Content too large: reveal scriptSig would be {script_sig_size} bytes"
            )

        epoch_id = await self.epoch.get()

        policy = self.fee_policy
        platform_fee = self.platform_fee
        requested_amount = (
            self.inscription_amount if inscription_amount is None else inscription_amount
        )
        commit_outputs = 3 if platform_fee else 2

        def required_for(n_inputs: int) -> int:
            fee_n = max(
                fee or 0,
                policy.compute_fee(n_inputs, commit_outputs),
                policy.compute_fee(1, 1),
            )
            amount = max(requested_amount, policy.minimum_inscription_amount(fee_n))
            return amount + platform_fee + fee_n

        context_id = new_context_id()
        inputs = await self.coordinator.select_funding(
            address, required_for, owner=address, attempt_id=context_id
        )

        try:
            final_fee = policy.inscription_fee(fee, len(inputs), bool(platform_fee))
            amount = policy.resolve_inscription_amount(requested_amount, final_fee)
            _, preview, _ = classify_content(content_type, body)
            ctx = TransactionContext(
                context_id=context_id,
                kind=ContextKind.INSCRIPTION,
                owner_address=address,
                pubkey=pubkey_bytes.hex(),
                inputs=inputs,
                epoch_id=epoch_id,
                fee=final_fee,
                inscription_amount=amount,
                platform_fee=platform_fee,
                treasury_address=self.treasury_address if platform_fee else "",
                envelope_script=scripts.envelope_script.hex(),
                redeem_script=scripts.redeem_script.hex(),
                locking_script=scripts.locking_script.hex(),
                content_type=content_type,
                content_size=len(body),
                content_preview=preview,
            )
            skeleton = self._commit_skeleton(ctx)
            sighashes = [
                signature_digest(skeleton, i).hex() for i in range(len(skeleton.inputs))
            ]
            ctx = await self.contexts.create(ctx.model_copy(update={"sighashes": sighashes}))
        except BaseException:
            await self.coordinator.release(context_id)
            raise

        logger.info(
            f"Prepared commit {context_id}: {len(inputs)} input(s), "
            f"inscription {amount} zats, fee {final_fee} zats"
        )
        return PreparedCommit(
            context_id=context_id,
            commit_sighashes=sighashes,
            inscription_amount=amount,
            fee=final_fee,
            inscription_address=self._p2sh_address(scripts.redeem_script),
        )

    def _p2sh_address(self, redeem_script: bytes) -> str:
        return encode_address(AddressKind.P2SH, hash160(redeem_script), self.network)

    async def finalize_commit(
        self, context_id: str, signatures: Sequence[bytes | str]
    ) -> CommitResult:
        """
        Assemble and broadcast the signed commit; return the reveal digest.

        Invalid signatures raise ``SignatureError`` and leave the context
        untouched. A broadcast failure fails the context and releases its
        locks.
        """
        async with self.contexts.lock_for(context_id):
            ctx = self.contexts.require(context_id, ContextStatus.PREPARED)
            if ctx.kind != ContextKind.INSCRIPTION:
                raise InvalidContextStateError(context_id, ContextKind.INSCRIPTION, ctx.kind)
            await self._reclaim_inputs(ctx)

            skeleton = self._commit_skeleton(ctx)
            checked = self._check_signatures(ctx, skeleton, signatures)
            pubkey = bytes.fromhex(ctx.pubkey)
            script_sigs = [p2pkh_script_sig(encode_der_signature(sig), pubkey) for sig in checked]
            raw = serialize_transaction(skeleton, script_sigs)

            commit_txid = await self._broadcast(context_id, raw)

            reveal_digest = signature_digest(self._reveal_skeleton(ctx, commit_txid), 0).hex()
            await self.contexts.transition(
                context_id,
                ContextStatus.BROADCAST,
                commit_txid=commit_txid,
                sighashes=[reveal_digest],
            )
            return CommitResult(
                context_id=context_id, commit_txid=commit_txid, reveal_sighash=reveal_digest
            )

    async def broadcast_reveal(self, context_id: str, signature: bytes | str) -> RevealResult:
        """Assemble and broadcast the signed reveal, then record the inscription."""
        async with self.contexts.lock_for(context_id):
            ctx = self.contexts.require(context_id, ContextStatus.BROADCAST)
            assert ctx.commit_txid is not None

            skeleton = self._reveal_skeleton(ctx, ctx.commit_txid)
            (sig,) = self._check_signatures(ctx, skeleton, [signature])
            redeem = bytes.fromhex(ctx.redeem_script)
            script_sig = reveal_script_sig(
                bytes.fromhex(ctx.envelope_script), encode_der_signature(sig), redeem
            )
            raw = serialize_transaction(skeleton, [script_sig])

            reveal_txid = await self._broadcast(context_id, raw)
            inscription_id = inscription_id_for(reveal_txid)

            await self._record(ctx, reveal_txid, inscription_id)
            await self.contexts.transition(
                context_id, ContextStatus.COMPLETED, reveal_txid=reveal_txid
            )
            await self.coordinator.release(context_id)

        logger.info(f"Inscription {inscription_id} revealed for {ctx.owner_address}")
        return RevealResult(
            context_id=context_id,
            commit_txid=ctx.commit_txid,
            reveal_txid=reveal_txid,
            inscription_id=inscription_id,
        )

    async def _record(self, ctx: TransactionContext, reveal_txid: str, inscription_id: str) -> None:
        """Persist the inscription record. Failures are logged; the reveal is already on chain."""
        try:
            envelope = parse_envelope(bytes.fromhex(ctx.envelope_script))
            kind, preview, zrc20 = classify_content(envelope.content_type, envelope.body)
            record = InscriptionRecord(
                inscription_id=inscription_id,
                commit_txid=ctx.commit_txid or "",
                reveal_txid=reveal_txid,
                address=ctx.owner_address,
                content_type=envelope.content_type,
                content_size=len(envelope.body),
                content_preview=preview,
                kind=kind,
                zrc20=zrc20,
                platform_fee=ctx.platform_fee,
                treasury_address=ctx.treasury_address,
            )
            await self.recorder.record(record)
        except Exception as e:
            logger.error(f"Failed to record inscription {inscription_id}: {e}")

    async def prepare_split(
        self,
        address: str,
        pubkey: bytes | str,
        count: int,
        amount_each: int,
        fee: int | None = None,
    ) -> PreparedSplit:
        """Select funding and build a transaction splitting it into ``count`` equal outputs."""
        pubkey_bytes = load_public_key(pubkey)
        self._check_owner(address, pubkey_bytes)
        if count < 1:
            raise ValueError(f"Split count must be positive, got {count}")
        if amount_each <= self.fee_policy.dust_limit:
            raise ValueError(f"Split amount {amount_each} is not above dust")

        epoch_id = await self.epoch.get()
        policy = self.fee_policy
        n_outputs = count + 1

        def required_for(n_inputs: int) -> int:
            return count * amount_each + max(fee or 0, policy.compute_fee(n_inputs, n_outputs))

        context_id = new_context_id()
        inputs = await self.coordinator.select_funding(
            address, required_for, owner=address, attempt_id=context_id
        )

        try:
            ctx = TransactionContext(
                context_id=context_id,
                kind=ContextKind.SPLIT,
                owner_address=address,
                pubkey=pubkey_bytes.hex(),
                inputs=inputs,
                epoch_id=epoch_id,
                fee=policy.resolve_fee(fee, len(inputs), n_outputs),
                split_count=count,
                split_amount=amount_each,
            )
            skeleton = self._split_skeleton(ctx)
            sighashes = [
                signature_digest(skeleton, i).hex() for i in range(len(skeleton.inputs))
            ]
            ctx = await self.contexts.create(ctx.model_copy(update={"sighashes": sighashes}))
        except BaseException:
            await self.coordinator.release(context_id)
            raise

        logger.info(f"Prepared split {context_id}: {count} x {amount_each} zats")
        return PreparedSplit(context_id=context_id, sighashes=sighashes, fee=ctx.fee)

    async def broadcast_split(
        self, context_id: str, signatures: Sequence[bytes | str]
    ) -> SplitResult:
        async with self.contexts.lock_for(context_id):
            ctx = self.contexts.require(context_id, ContextStatus.PREPARED)
            if ctx.kind != ContextKind.SPLIT:
                raise InvalidContextStateError(context_id, ContextKind.SPLIT, ctx.kind)
            await self._reclaim_inputs(ctx)

            skeleton = self._split_skeleton(ctx)
            checked = self._check_signatures(ctx, skeleton, signatures)
            pubkey = bytes.fromhex(ctx.pubkey)
            script_sigs = [p2pkh_script_sig(encode_der_signature(sig), pubkey) for sig in checked]
            raw = serialize_transaction(skeleton, script_sigs)

            txid = await self._broadcast(context_id, raw)
            await self.contexts.transition(context_id, ContextStatus.COMPLETED, commit_txid=txid)
            await self.coordinator.release(context_id)

        logger.info(f"Split {context_id} broadcast: {txid}")
        return SplitResult(context_id=context_id, txid=txid)

    async def fail(self, context_id: str, reason: str) -> TransactionContext:
        """Abandon a live context and release its inputs."""
        async with self.contexts.lock_for(context_id):
            ctx = self.contexts.get(context_id)
            if ctx.status.is_terminal:
                raise InvalidContextStateError(
                    context_id, (ContextStatus.PREPARED, ContextStatus.BROADCAST), ctx.status
                )
            ctx = await self.contexts.transition(context_id, ContextStatus.FAILED, error=reason)
            await self.coordinator.release(context_id)
            return ctx

    async def inscribe(
        self,
        private_key: PrivateKey | str,
        content: bytes | str,
        content_type: str = DEFAULT_CONTENT_TYPE,
        inscription_amount: int | None = None,
        fee: int | None = None,
    ) -> RevealResult:
        """Run every phase with a local key (a ``PrivateKey`` or WIF string)."""
        if isinstance(private_key, str):
            private_key, compressed, _ = decode_wif(private_key)
        else:
            compressed = True
        pubkey = private_key.public_key.format(compressed=compressed)
        address = pubkey_to_address(pubkey, self.network)

        prepared = await self.prepare_commit(
            address, pubkey, content, content_type, inscription_amount, fee
        )
        context_id = prepared.context_id
        try:
            commit_sigs = [
                sign_digest(private_key, bytes.fromhex(d)) for d in prepared.commit_sighashes
            ]
            committed = await self.finalize_commit(context_id, commit_sigs)
            reveal_sig = sign_digest(private_key, bytes.fromhex(committed.reveal_sighash))
            return await self.broadcast_reveal(context_id, reveal_sig)
        except Exception as e:
            if not self.contexts.get(context_id).status.is_terminal:
                await self._fail(context_id, str(e) or type(e).__name__)
            raise

    def get_context(self, context_id: str) -> TransactionContext:
        return self.contexts.get(context_id)

    async def sweep(self) -> SweepResult:
        """Prune stale locks and expired terminal contexts."""
        errors = []
        released = pruned = 0
        try:
            released = await self.coordinator.sweep_stale()
        except Exception as e:
            logger.error(f"Stale lock sweep failed: {e}")
            errors.append(str(e))
        try:
            pruned = await self.contexts.prune_terminal(self.context_retention_seconds)
        except Exception as e:
            logger.error(f"Context prune failed: {e}")
            errors.append(str(e))
        return SweepResult(released_locks=released, pruned_contexts=pruned, errors=errors)

    async def close(self) -> None:
        for provider in (
            self.coordinator.utxo_index,
            self.coordinator.inscription_index,
            self.epoch.source,
            self.broadcaster,
        ):
            if provider is not None:
                await provider.close()


def build_service(settings: InscriberSettings | None = None) -> InscriptionService:
    """Wire the HTTP providers and fallback chains from settings."""
    settings = settings or InscriberSettings()
    timeout = settings.provider_timeout

    blockchair = BlockchairProvider(
        settings.blockchair_url, settings.blockchair_api_key, timeout=timeout
    )
    zerdinals = ZerdinalsProvider(settings.zerdinals_url, timeout=timeout)
    indexer = ZerdinalsIndexer(settings.zerdinals_indexer_url, timeout=timeout)
    node = (
        NodeRpcProvider(
            settings.node_rpc_url,
            api_key=settings.node_rpc_api_key,
            rpc_user=settings.node_rpc_user,
            rpc_password=settings.node_rpc_password,
            timeout=timeout,
        )
        if settings.node_rpc_url
        else None
    )
    with_node = [node] if node is not None else []

    coordinator = UtxoCoordinator(
        FallbackUtxoIndex([blockchair, zerdinals], timeout),
        FallbackInscriptionIndex([indexer, *with_node], timeout),
        stale_lock_seconds=settings.stale_lock_seconds,
    )
    epoch = EpochCache(
        FallbackChainInfo(with_node, timeout),
        ttl=settings.epoch_cache_ttl,
        override=settings.epoch_id_override,
    )
    broadcaster = FallbackBroadcaster([zerdinals, *with_node, blockchair], timeout)

    return InscriptionService(
        coordinator=coordinator,
        epoch=epoch,
        broadcaster=broadcaster,
        fee_policy=settings.fee_policy(),
        network=settings.network,
        inscription_amount=settings.inscription_amount,
        platform_fee=settings.platform_fee,
        treasury_address=settings.treasury_address,
        context_retention_seconds=settings.context_retention_seconds,
    )
