#!/usr/bin/env python3
"""
Hook Registry — End-to-End Demo Script

Walks through the full approval loop on a live cluster: initialize the
registry, launch a royalty token, assess its hook, open review, vote,
finalize, issue the pool badge and create a pool.

Usage:
    1. solana-keygen new -o demo-keypair.json && solana airdrop 2 -k demo-keypair.json
    2. KEYPAIR_PATH=demo-keypair.json python scripts/demo.py

The review step waits out the registry's review period, so run it against
a registry initialized with a short one (REVIEW_PERIOD_SECONDS).

Requires: httpx, pydantic, solders, borsh-construct
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from solders.keypair import Keypair

from hookregistry.config import RPC_URL
from hookregistry.errors import HookRegistryError
from hookregistry.risk import RiskFlags
from hookregistry_sdk.client import HookRegistryClient

KEYPAIR_PATH = os.environ.get("KEYPAIR_PATH", str(Path.home() / ".config/solana/id.json"))
REVIEW_PERIOD_SECONDS = int(os.environ.get("REVIEW_PERIOD_SECONDS", "30"))
QUOTE_MINT = os.environ.get("QUOTE_MINT", "So11111111111111111111111111111111111111112")

# ---------------------------------------------------------------------------
# Terminal colors (ANSI)
# ---------------------------------------------------------------------------

class C:
    RESET   = "\033[0m"
    BOLD    = "\033[1m"
    DIM     = "\033[2m"
    RED     = "\033[91m"
    GREEN   = "\033[92m"
    YELLOW  = "\033[93m"
    BLUE    = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN    = "\033[96m"
    WHITE   = "\033[97m"
    BG_RED  = "\033[41m"
    BG_GREEN = "\033[42m"
    BG_YELLOW = "\033[43m"


def banner(text: str, color: str = C.CYAN):
    width = 64
    print()
    print(f"{color}{C.BOLD}{'=' * width}{C.RESET}")
    print(f"{color}{C.BOLD}  {text}{C.RESET}")
    print(f"{color}{C.BOLD}{'=' * width}{C.RESET}")
    print()


def step(n: int, text: str):
    print(f"  {C.BOLD}{C.WHITE}[Step {n}]{C.RESET} {text}")


def ok(text: str):
    print(f"  {C.GREEN}{C.BOLD}OK{C.RESET} {text}")


def fail(text: str):
    print(f"  {C.RED}{C.BOLD}FAIL{C.RESET} {text}")


def info(text: str):
    print(f"  {C.DIM}{text}{C.RESET}")


def status_badge(status: str) -> str:
    if status == "approved":
        return f"{C.BG_GREEN}{C.WHITE}{C.BOLD} APPROVED {C.RESET}"
    elif status == "rejected":
        return f"{C.BG_RED}{C.WHITE}{C.BOLD} REJECTED {C.RESET}"
    elif status == "under_review":
        return f"{C.BG_YELLOW}{C.WHITE}{C.BOLD} UNDER REVIEW {C.RESET}"
    return f"{C.BOLD} {status.upper()} {C.RESET}"


def receipt_line(result) -> None:
    if result.already_done:
        info(f"{result.operation}: already done ({result.address})")
    else:
        ok(f"{result.operation}: {result.address}")
        if result.explorer_url:
            info(result.explorer_url)


def load_keypair(path: str) -> Keypair:
    with open(path) as f:
        return Keypair.from_bytes(bytes(json.load(f)))


# ---------------------------------------------------------------------------
# Demo steps
# ---------------------------------------------------------------------------

async def run(client: HookRegistryClient) -> int:
    banner("HOOK REGISTRY  --  Transfer Hook Approval", C.MAGENTA)
    print(f"  {C.DIM}Cluster: {RPC_URL}{C.RESET}")
    print(f"  {C.DIM}Payer:   {client.pubkey}{C.RESET}")
    print()

    banner("1. Registry", C.BLUE)
    step(1, "initialize (idempotent)")
    receipt_line(await client.initialize(0.6, REVIEW_PERIOD_SECONDS, 70))
    registry = await client.registry()
    info(f"threshold {registry.governance_threshold:.0%}, review {registry.review_period_seconds}s, "
         f"max risk {registry.max_risk_score}")

    banner("2. Token Launch", C.BLUE)
    mint = Keypair()
    step(2, f"launch royalty token {mint.pubkey()}")
    record = await client.launch_token(mint, "Demo Royalty", "DRY", 6, "royalty", initial_supply=1_000_000_000)
    for s in record.steps:
        marker = ok if s.settled else fail
        marker(f"{s.step.value}: {s.status.value}" + (f" ({s.error})" if s.error else ""))
    if not record.is_complete:
        info("resume later with client.resume_launch(record, mint_keypair)")
        return 1
    hook = record.hook_program

    banner("3. Review", C.BLUE)
    step(3, "risk assessment")
    receipt_line(await client.assess(hook, RiskFlags(is_audited=True, source_code_available=True)))
    submission = await client.submission(hook)
    if submission.status == "pending":
        step(4, "begin review")
        receipt_line(await client.begin_review(hook, "demo review"))
    step(5, "vote")
    try:
        receipt_line(await client.vote(hook, True, "demo approval"))
    except HookRegistryError as e:
        info(f"vote skipped: {e}")

    submission = await client.submission(hook)
    wait = submission.review_ends_at - int(time.time())
    if wait > 0:
        info(f"waiting {wait}s for the review period to end")
        await asyncio.sleep(wait + 2)

    step(6, "finalize")
    try:
        receipt_line(await client.finalize(hook))
    except HookRegistryError as e:
        info(f"finalize skipped: {e}")
    submission = await client.submission(hook)
    print(f"\n  Hook status: {status_badge(submission.status)}")
    info(f"votes {submission.votes_for}/{submission.votes_against}, risk {submission.risk_score} "
         f"({submission.risk_band})")
    if submission.status != "approved":
        return 1

    banner("4. Liquidity", C.BLUE)
    step(7, "issue token badge")
    receipt_line(await client.approve_badge(hook, mint.pubkey()))
    step(8, f"create pool against {QUOTE_MINT}")
    pool = await client.create_pool(mint.pubkey(), QUOTE_MINT, "0.001")
    ok(f"pool {pool.pool}" + (" (existing)" if pool.already_done else ""))

    banner("Done", C.GREEN)
    return 0


def main():
    try:
        keypair = load_keypair(KEYPAIR_PATH)
    except (OSError, ValueError) as e:
        fail(f"cannot load keypair from {KEYPAIR_PATH}: {e}")
        sys.exit(1)
    client = HookRegistryClient(keypair)
    try:
        code = asyncio.run(run(client))
    except HookRegistryError as e:
        fail(f"{e.kind}: {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
