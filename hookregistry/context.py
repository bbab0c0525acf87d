"""
Cluster Context
Everything a workflow operation needs, passed explicitly: the RPC
endpoint, the signer, the program set, confirmation policy and a clock.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

from solders.pubkey import Pubkey

from hookregistry.config import (
    COMMITMENT,
    CONFIRM_TIMEOUT_SECONDS,
    POLL_INTERVAL_SECONDS,
    ProgramIds,
)
from hookregistry.rpc import HttpLedgerRpc, LedgerRpc
from hookregistry.signer import Signer
from hookregistry.submitter import TransactionSubmitter


def _unix_now() -> int:
    return int(time.time())


@dataclass
class ClusterContext:
    rpc: LedgerRpc
    signer: Signer
    programs: ProgramIds = field(default_factory=ProgramIds)
    clock: Callable[[], int] = _unix_now  # unix seconds
    commitment: str = COMMITMENT
    confirm_timeout: float = CONFIRM_TIMEOUT_SECONDS
    poll_interval: float = POLL_INTERVAL_SECONDS

    @classmethod
    def connect(cls, signer: Signer, url: str | None = None, **kwargs) -> "ClusterContext":
        """Context over JSON-RPC at *url* (defaults to the configured endpoint)."""
        commitment = kwargs.get("commitment", COMMITMENT)
        rpc = HttpLedgerRpc(url, commitment) if url else HttpLedgerRpc(commitment=commitment)
        return cls(rpc=rpc, signer=signer, **kwargs)

    @property
    def payer(self) -> Pubkey:
        return self.signer.pubkey

    def submitter(self) -> TransactionSubmitter:
        return TransactionSubmitter(
            self.rpc,
            self.signer,
            commitment=self.commitment,
            confirm_timeout=self.confirm_timeout,
            poll_interval=self.poll_interval,
        )
