"""
Transaction Submitter
Turns an ordered list of instructions into one committed transaction.

anchor -> assemble -> sign -> send -> poll until the commitment level is
reached. A transaction whose anchor expires before confirmation is
reported as ``StaleAnchor`` and never resent with the same anchor; one
that neither confirms nor expires within the timeout is ``Unconfirmed``
and may or may not have landed, so callers re-read state first.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from hookregistry.config import COMMITMENT, CONFIRM_TIMEOUT_SECONDS, POLL_INTERVAL_SECONDS
from hookregistry.errors import (
    InvalidArgument,
    StaleAnchor,
    TransactionRejected,
    Unconfirmed,
)
from hookregistry.rpc import LedgerRpc, commitment_rank
from hookregistry.signer import Signer

logger = logging.getLogger(__name__)


class TransactionSubmitter:
    def __init__(
        self,
        rpc: LedgerRpc,
        signer: Signer,
        commitment: str = COMMITMENT,
        confirm_timeout: float = CONFIRM_TIMEOUT_SECONDS,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ):
        commitment_rank(commitment)
        self.rpc = rpc
        self.signer = signer
        self.commitment = commitment
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval

    async def build_transaction(
        self,
        calls: Sequence[Instruction],
        blockhash: Hash,
        fee_payer: Optional[Pubkey] = None,
        co_signers: Sequence[Keypair] = (),
    ) -> Transaction:
        """Assemble and fully sign a transaction.

        Every required signer must be either the external signer or one of
        *co_signers* (typically a freshly supplied mint keypair).
        """
        if not calls:
            raise InvalidArgument("A transaction needs at least one instruction")
        payer = fee_payer if fee_payer is not None else self.signer.pubkey
        message = Message.new_with_blockhash(list(calls), payer, blockhash)
        message_bytes = bytes(message)

        local = {kp.pubkey(): kp for kp in co_signers}
        required = message.account_keys[: message.header.num_required_signatures]
        signatures = []
        for key in required:
            if key in local:
                signatures.append(local[key].sign_message(message_bytes))
            elif key == self.signer.pubkey:
                signatures.append(Signature.from_bytes(await self.signer.sign(message_bytes)))
            else:
                raise InvalidArgument(f"No signer available for required signer {key}")
        return Transaction.populate(message, signatures)

    async def submit(
        self,
        calls: Sequence[Instruction],
        fee_payer: Optional[Pubkey] = None,
        co_signers: Sequence[Keypair] = (),
    ) -> Signature:
        if not calls:
            raise InvalidArgument("A transaction needs at least one instruction")
        anchor = await self.rpc.get_latest_anchor()
        tx = await self.build_transaction(calls, anchor.blockhash, fee_payer, co_signers)
        local_signature = tx.signatures[0]

        try:
            signature = await self.rpc.send(bytes(tx))
        except TransactionRejected as exc:
            exc.signature = local_signature
            logger.info("transaction %s rejected at preflight: %s", local_signature, exc.err)
            raise
        logger.debug("sent %s (%d instruction(s))", signature, len(calls))

        await self._await_commit(signature, anchor.last_valid_block_height)
        logger.info("committed %s at %s", signature, self.commitment)
        return signature

    async def _await_commit(self, signature: Signature, last_valid_block_height: int) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.confirm_timeout
        while True:
            status = await self.rpc.confirm(signature)
            if status is not None and status.err is not None:
                logger.info("transaction %s failed: %s", signature, status.err)
                raise TransactionRejected(status.err, signature=signature)
            if status is not None and status.reached(self.commitment):
                return

            height = await self.rpc.get_block_height()
            if height > last_valid_block_height:
                logger.warning("anchor expired for %s at height %d", signature, height)
                raise StaleAnchor(signature, last_valid_block_height)
            if loop.time() >= deadline:
                logger.warning("%s unconfirmed after %.1fs", signature, self.confirm_timeout)
                raise Unconfirmed(signature, self.confirm_timeout)
            await asyncio.sleep(self.poll_interval)
