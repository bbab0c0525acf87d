"""
Ledger RPC
The network boundary: a small async protocol plus a JSON-RPC
implementation over httpx.

Each call opens its own ``httpx.AsyncClient``; nothing holds a connection
between operations.
"""

from __future__ import annotations

import base64
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature

from hookregistry.config import COMMITMENT, COMMITMENT_LEVELS, HTTP_TIMEOUT_SECONDS, RPC_URL
from hookregistry.errors import InvalidArgument, RpcError, TransactionRejected

logger = logging.getLogger(__name__)

# JSON-RPC error code for a failed preflight simulation.
PREFLIGHT_FAILURE_CODE = -32002


# ---------------------------------------------------------------------------
# Values crossing the boundary
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Anchor:
    """Freshness anchor: a recent blockhash and the last height it is valid at."""
    blockhash: Hash
    last_valid_block_height: int


@dataclass(frozen=True)
class AccountSnapshot:
    address: Pubkey
    data: bytes
    owner: Pubkey
    lamports: int
    executable: bool = False


@dataclass(frozen=True)
class CommitStatus:
    confirmation_status: Optional[str]
    err: Any = None
    slot: Optional[int] = None

    def reached(self, commitment: str) -> bool:
        if self.confirmation_status is None:
            return False
        return commitment_rank(self.confirmation_status) >= commitment_rank(commitment)


def commitment_rank(level: str) -> int:
    try:
        return COMMITMENT_LEVELS.index(level)
    except ValueError as exc:
        raise InvalidArgument(f"Unknown commitment level {level!r}") from exc


class LedgerRpc(Protocol):
    async def get_latest_anchor(self) -> Anchor: ...

    async def get_account(self, address: Pubkey) -> Optional[AccountSnapshot]: ...

    async def send(self, tx_bytes: bytes) -> Signature: ...

    async def confirm(self, signature: Signature) -> Optional[CommitStatus]: ...

    async def get_block_height(self) -> int: ...

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int: ...


# ---------------------------------------------------------------------------
# JSON-RPC over httpx
# ---------------------------------------------------------------------------

class HttpLedgerRpc:
    """Solana JSON-RPC client.

    ``transport`` is passed to every ``httpx.AsyncClient`` it opens, which
    is how tests substitute an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        url: str = RPC_URL,
        commitment: str = COMMITMENT,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        commitment_rank(commitment)
        self.url = url
        self.commitment = commitment
        self.timeout = timeout
        self._transport = transport
        self._ids = itertools.count(1)

    async def _call(self, method: str, params: Optional[list] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        logger.debug("rpc %s", method)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.url, json=payload)
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPError as exc:
            raise RpcError(method, str(exc)) from exc
        except ValueError as exc:
            raise RpcError(method, f"invalid JSON response: {exc}") from exc

        error = body.get("error")
        if error is not None:
            code = error.get("code")
            data = error.get("data")
            if method == "sendTransaction" and code == PREFLIGHT_FAILURE_CODE and isinstance(data, dict):
                raise TransactionRejected(data.get("err"), data.get("logs"))
            raise RpcError(method, error.get("message", "unknown error"), code, data)
        return body.get("result")

    async def get_latest_anchor(self) -> Anchor:
        result = await self._call("getLatestBlockhash", [{"commitment": self.commitment}])
        value = result["value"]
        return Anchor(
            blockhash=Hash.from_string(value["blockhash"]),
            last_valid_block_height=int(value["lastValidBlockHeight"]),
        )

    async def get_account(self, address: Pubkey) -> Optional[AccountSnapshot]:
        result = await self._call(
            "getAccountInfo",
            [str(address), {"encoding": "base64", "commitment": self.commitment}],
        )
        value = result["value"] if result else None
        if value is None:
            return None
        raw, encoding = value["data"]
        if encoding != "base64":
            raise RpcError("getAccountInfo", f"unexpected data encoding {encoding}")
        return AccountSnapshot(
            address=address,
            data=base64.b64decode(raw),
            owner=Pubkey.from_string(value["owner"]),
            lamports=int(value["lamports"]),
            executable=bool(value.get("executable", False)),
        )

    async def send(self, tx_bytes: bytes) -> Signature:
        result = await self._call(
            "sendTransaction",
            [
                base64.b64encode(tx_bytes).decode("ascii"),
                {"encoding": "base64", "preflightCommitment": self.commitment},
            ],
        )
        return Signature.from_string(result)

    async def confirm(self, signature: Signature) -> Optional[CommitStatus]:
        result = await self._call(
            "getSignatureStatuses",
            [[str(signature)], {"searchTransactionHistory": True}],
        )
        statuses = result["value"]
        status = statuses[0] if statuses else None
        if status is None:
            return None
        return CommitStatus(
            confirmation_status=status.get("confirmationStatus"),
            err=status.get("err"),
            slot=status.get("slot"),
        )

    async def get_block_height(self) -> int:
        return int(await self._call("getBlockHeight", [{"commitment": self.commitment}]))

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        return int(await self._call("getMinimumBalanceForRentExemption", [size]))
