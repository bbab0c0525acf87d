"""
Address Deriver
Deterministic, namespaced derivation of program-owned addresses.

Candidates come from solders' ``Pubkey.create_program_address`` with the
bump counting down from 255; the first one that lands off the ed25519
curve wins. Identical inputs always give identical output; the workflow
relies on this to re-find submissions, votes and registrations without
any stored mapping.
"""

from __future__ import annotations

import logging
from typing import Sequence, Union

from solders.pubkey import Pubkey

from hookregistry.codec import encode_u16
from hookregistry.errors import InvalidAddress, InvalidSeeds, NoValidDerivation

logger = logging.getLogger(__name__)

MAX_SEED_LEN = 32
MAX_SEEDS = 16  # including the bump byte

# Seed namespaces (shared by every builder and query).
REGISTRY_SEED = b"registry"
SUBMISSION_SEED = b"submission"
RISK_ASSESSMENT_SEED = b"risk_assessment"
VOTE_SEED = b"vote"
EXTRA_ACCOUNT_METAS_SEED = b"extra-account-metas"
TOKEN_BADGE_SEED = b"token_badge"
WHIRLPOOL_SEED = b"whirlpool"
CONFIG_EXTENSION_SEED = b"config_extension"


# ---------------------------------------------------------------------------
# Address parsing
# ---------------------------------------------------------------------------

def as_address(value: Union[Pubkey, str, bytes]) -> Pubkey:
    """Coerce a base58 string, 32 raw bytes or Pubkey to a Pubkey."""
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 32:
            raise InvalidAddress(value, f"expected 32 bytes, got {len(value)}")
        return Pubkey(bytes(value))
    if isinstance(value, str):
        try:
            return Pubkey.from_string(value.strip())
        except Exception as exc:  # noqa: BLE001 - solders raises its own parse errors
            raise InvalidAddress(value, str(exc)) from exc
    raise InvalidAddress(value, f"unsupported type {type(value).__name__}")


# ---------------------------------------------------------------------------
# Core derivation
# ---------------------------------------------------------------------------

def _check_seeds(seeds: Sequence[bytes]) -> list[bytes]:
    checked = [bytes(s) for s in seeds]
    if len(checked) >= MAX_SEEDS:
        raise InvalidSeeds(f"At most {MAX_SEEDS - 1} seeds allowed, got {len(checked)}")
    for i, seed in enumerate(checked):
        if len(seed) > MAX_SEED_LEN:
            raise InvalidSeeds(f"Seed {i} is {len(seed)} bytes (max {MAX_SEED_LEN})")
    return checked


def create_program_address(seeds: Sequence[bytes], bump: int, program_id: Pubkey) -> Pubkey | None:
    """One candidate. Returns None when solders rejects it as an on-curve point."""
    try:
        return Pubkey.create_program_address([*seeds, bytes([bump])], program_id)
    except Exception:  # noqa: BLE001 - solders raises its own PubkeyError
        return None


def derive(program_id: Pubkey, seeds: Sequence[bytes]) -> tuple[Pubkey, int]:
    """Return ``(address, bump)`` for *seeds* under *program_id*."""
    checked = _check_seeds(seeds)
    for bump in range(255, -1, -1):
        address = create_program_address(checked, bump, program_id)
        if address is not None:
            return address, bump
    raise NoValidDerivation(program_id, checked)


# ---------------------------------------------------------------------------
# Namespaced helpers
# ---------------------------------------------------------------------------

def registry_config_address(registry_program: Pubkey) -> tuple[Pubkey, int]:
    return derive(registry_program, [REGISTRY_SEED])


def submission_address(registry_program: Pubkey, hook_program_id: Pubkey) -> tuple[Pubkey, int]:
    return derive(registry_program, [SUBMISSION_SEED, bytes(hook_program_id)])


def risk_assessment_address(registry_program: Pubkey, submission: Pubkey) -> tuple[Pubkey, int]:
    return derive(registry_program, [RISK_ASSESSMENT_SEED, bytes(submission)])


def vote_address(registry_program: Pubkey, submission: Pubkey, voter: Pubkey) -> tuple[Pubkey, int]:
    return derive(registry_program, [VOTE_SEED, bytes(submission), bytes(voter)])


def extra_account_metas_address(hook_program: Pubkey, mint: Pubkey) -> tuple[Pubkey, int]:
    return derive(hook_program, [EXTRA_ACCOUNT_METAS_SEED, bytes(mint)])


def token_badge_address(whirlpool_program: Pubkey, config: Pubkey, mint: Pubkey) -> tuple[Pubkey, int]:
    return derive(whirlpool_program, [TOKEN_BADGE_SEED, bytes(config), bytes(mint)])


def config_extension_address(whirlpool_program: Pubkey, config: Pubkey) -> tuple[Pubkey, int]:
    return derive(whirlpool_program, [CONFIG_EXTENSION_SEED, bytes(config)])


def whirlpool_address(
    whirlpool_program: Pubkey,
    mint_a: Pubkey,
    mint_b: Pubkey,
    fee_tier: int,
) -> tuple[Pubkey, int]:
    """Pool address; the fee tier is two little-endian bytes."""
    return derive(
        whirlpool_program,
        [WHIRLPOOL_SEED, bytes(mint_a), bytes(mint_b), encode_u16(fee_tier)],
    )


def associated_token_address(
    owner: Pubkey,
    mint: Pubkey,
    token_program: Pubkey,
    associated_token_program: Pubkey,
) -> Pubkey:
    """Standard associated token account (owner may itself be off-curve)."""
    address, _ = derive(
        associated_token_program, [bytes(owner), bytes(token_program), bytes(mint)]
    )
    return address
