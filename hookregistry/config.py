"""
Configuration
Cluster endpoint, confirmation policy and program identifiers.

Every value can be overridden from the environment; the defaults target
devnet and the deployed registry/hook programs.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from solders.pubkey import Pubkey


# ---------------------------------------------------------------------------
# Cluster / confirmation (from env vars with defaults)
# ---------------------------------------------------------------------------

RPC_URL = os.environ.get("HOOK_REGISTRY_RPC_URL", "https://api.devnet.solana.com")
COMMITMENT = os.environ.get("HOOK_REGISTRY_COMMITMENT", "confirmed")
CONFIRM_TIMEOUT_SECONDS = float(
    os.environ.get("HOOK_REGISTRY_CONFIRM_TIMEOUT_SECONDS", "60")
)
POLL_INTERVAL_SECONDS = float(
    os.environ.get("HOOK_REGISTRY_POLL_INTERVAL_SECONDS", "0.5")
)
HTTP_TIMEOUT_SECONDS = float(
    os.environ.get("HOOK_REGISTRY_HTTP_TIMEOUT_SECONDS", "10")
)
EXPLORER_CLUSTER = os.environ.get("HOOK_REGISTRY_EXPLORER_CLUSTER", "devnet")

COMMITMENT_LEVELS = ("processed", "confirmed", "finalized")


# ---------------------------------------------------------------------------
# Program identifiers
# ---------------------------------------------------------------------------

REGISTRY_PROGRAM_ID = Pubkey.from_string(
    os.environ.get("HOOK_REGISTRY_PROGRAM_ID", "A8UEmdwPDW5pqsU7iMEvwDn2C7fC6bsZGoRceukLzadE")
)
WHIRLPOOL_PROGRAM_ID = Pubkey.from_string(
    os.environ.get("WHIRLPOOL_PROGRAM_ID", "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc")
)
ROYALTY_HOOK_PROGRAM_ID = Pubkey.from_string(
    os.environ.get("ROYALTY_HOOK_PROGRAM_ID", "7NsQqWLbikjv3kWqujtb2YQGToY4LSdn35egQs4AJEHC")
)
WHIRLPOOLS_CONFIG = Pubkey.from_string(
    os.environ.get("WHIRLPOOLS_CONFIG", "2LecshUwdy9xi7meFgHtFJQNSKk4KdTrcpvaB56dP2NQ")
)

SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
TOKEN_2022_PROGRAM_ID = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")


@dataclass(frozen=True)
class ProgramIds:
    """The set of deployed programs a context talks to."""
    registry: Pubkey = REGISTRY_PROGRAM_ID
    whirlpool: Pubkey = WHIRLPOOL_PROGRAM_ID
    whirlpools_config: Pubkey = WHIRLPOOLS_CONFIG
    token: Pubkey = TOKEN_2022_PROGRAM_ID
    legacy_token: Pubkey = TOKEN_PROGRAM_ID
    associated_token: Pubkey = ASSOCIATED_TOKEN_PROGRAM_ID
    system: Pubkey = field(default=SYSTEM_PROGRAM_ID)

    @property
    def token_programs(self) -> tuple[Pubkey, Pubkey]:
        """Owners a mint may have (wrapped SOL and USDC are legacy mints)."""
        return (self.token, self.legacy_token)


def explorer_url(signature: str, cluster: str = EXPLORER_CLUSTER) -> str:
    """Explorer link for a transaction signature."""
    if cluster == "mainnet-beta":
        return f"https://explorer.solana.com/tx/{signature}"
    return f"https://explorer.solana.com/tx/{signature}?cluster={cluster}"
