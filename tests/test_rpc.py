"""
JSON-RPC Client Test Suite
Tests request shapes and response parsing of HttpLedgerRpc against an
httpx mock transport.

Usage:
    pytest tests/test_rpc.py
"""

from __future__ import annotations

import base64
import json

import httpx
import pytest
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature

from hookregistry.errors import InvalidArgument, RpcError, TransactionRejected
from hookregistry.rpc import CommitStatus, HttpLedgerRpc


def rpc_with(handler) -> tuple[HttpLedgerRpc, list[dict]]:
    seen: list[dict] = []

    def wrapped(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        seen.append(payload)
        return handler(payload)

    return HttpLedgerRpc("http://ledger.test", transport=httpx.MockTransport(wrapped)), seen


def result(payload: dict, value) -> httpx.Response:
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": value})


class TestReads:
    @pytest.mark.asyncio
    async def test_latest_anchor(self):
        blockhash = Hash.new_unique()
        rpc, seen = rpc_with(lambda p: result(p, {
            "context": {"slot": 1},
            "value": {"blockhash": str(blockhash), "lastValidBlockHeight": 1234},
        }))
        anchor = await rpc.get_latest_anchor()
        assert anchor.blockhash == blockhash
        assert anchor.last_valid_block_height == 1234
        assert seen[0]["method"] == "getLatestBlockhash"
        assert seen[0]["params"] == [{"commitment": "confirmed"}]

    @pytest.mark.asyncio
    async def test_account_present(self):
        owner = Pubkey.new_unique()
        address = Pubkey.new_unique()
        rpc, seen = rpc_with(lambda p: result(p, {
            "context": {"slot": 1},
            "value": {
                "data": [base64.b64encode(b"\x01\x02").decode(), "base64"],
                "owner": str(owner),
                "lamports": 5,
                "executable": False,
            },
        }))
        snapshot = await rpc.get_account(address)
        assert snapshot.data == b"\x01\x02"
        assert snapshot.owner == owner
        assert snapshot.address == address
        assert seen[0]["params"][0] == str(address)
        assert seen[0]["params"][1]["encoding"] == "base64"

    @pytest.mark.asyncio
    async def test_account_absent(self):
        rpc, _ = rpc_with(lambda p: result(p, {"context": {"slot": 1}, "value": None}))
        assert await rpc.get_account(Pubkey.new_unique()) is None

    @pytest.mark.asyncio
    async def test_rent_and_height(self):
        rpc, seen = rpc_with(lambda p: result(p, 2_000_000 if p["method"] == "getMinimumBalanceForRentExemption" else 77))
        assert await rpc.get_minimum_balance_for_rent_exemption(234) == 2_000_000
        assert seen[0]["params"] == [234]
        assert await rpc.get_block_height() == 77


class TestSendAndConfirm:
    @pytest.mark.asyncio
    async def test_send_encodes_base64(self):
        signature = Signature.new_unique()
        rpc, seen = rpc_with(lambda p: result(p, str(signature)))
        assert await rpc.send(b"\xde\xad") == signature
        assert seen[0]["params"][0] == base64.b64encode(b"\xde\xad").decode()

    @pytest.mark.asyncio
    async def test_preflight_failure_is_rejection(self):
        err = {"InstructionError": [0, {"Custom": 6002}]}
        rpc, _ = rpc_with(lambda p: httpx.Response(200, json={
            "jsonrpc": "2.0", "id": p["id"],
            "error": {"code": -32002, "message": "Transaction simulation failed",
                      "data": {"err": err, "logs": ["Program log: AnchorError"]}},
        }))
        with pytest.raises(TransactionRejected) as exc_info:
            await rpc.send(b"\x00")
        assert exc_info.value.instruction_index == 0
        assert exc_info.value.custom_code == 6002
        assert exc_info.value.logs == ["Program log: AnchorError"]

    @pytest.mark.asyncio
    async def test_other_errors_are_rpc_errors(self):
        rpc, _ = rpc_with(lambda p: httpx.Response(200, json={
            "jsonrpc": "2.0", "id": p["id"], "error": {"code": -32601, "message": "Method not found"},
        }))
        with pytest.raises(RpcError) as exc_info:
            await rpc.get_block_height()
        assert exc_info.value.code == -32601
        assert exc_info.value.retry_safe

    @pytest.mark.asyncio
    async def test_http_failure(self):
        rpc, _ = rpc_with(lambda p: httpx.Response(503))
        with pytest.raises(RpcError):
            await rpc.get_block_height()

    @pytest.mark.asyncio
    async def test_failed_send_is_not_retry_safe(self):
        rpc, _ = rpc_with(lambda p: httpx.Response(502))
        with pytest.raises(RpcError) as exc_info:
            await rpc.send(b"\x00")
        assert exc_info.value.method == "sendTransaction"
        assert exc_info.value.kind == "network"
        assert exc_info.value.retry_safe is False

    @pytest.mark.asyncio
    async def test_send_error_response_is_not_retry_safe(self):
        rpc, _ = rpc_with(lambda p: httpx.Response(200, json={
            "jsonrpc": "2.0", "id": p["id"], "error": {"code": -32005, "message": "Node is behind"},
        }))
        with pytest.raises(RpcError) as exc_info:
            await rpc.send(b"\x00")
        assert not exc_info.value.retry_safe

    @pytest.mark.asyncio
    async def test_confirm(self):
        rpc, seen = rpc_with(lambda p: result(p, {
            "context": {"slot": 9},
            "value": [{"slot": 9, "confirmations": None, "err": None, "confirmationStatus": "finalized"}],
        }))
        status = await rpc.confirm(Signature.new_unique())
        assert status == CommitStatus("finalized", None, 9)
        assert status.reached("confirmed")
        assert seen[0]["params"][1] == {"searchTransactionHistory": True}

    @pytest.mark.asyncio
    async def test_confirm_unknown_signature(self):
        rpc, _ = rpc_with(lambda p: result(p, {"context": {"slot": 9}, "value": [None]}))
        assert await rpc.confirm(Signature.new_unique()) is None


def test_commitment_levels():
    assert not CommitStatus("processed").reached("confirmed")
    assert CommitStatus("confirmed").reached("processed")
    with pytest.raises(InvalidArgument):
        HttpLedgerRpc(commitment="eventual")
