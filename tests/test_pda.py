"""
Address Deriver Test Suite
Tests derivation determinism, agreement with the ledger's reference
derivation, seed validation and namespace separation.

Usage:
    pytest tests/test_pda.py
"""

from __future__ import annotations

import pytest
from solders.pubkey import Pubkey

from hookregistry.config import ProgramIds
from hookregistry.errors import InvalidAddress, InvalidSeeds, NoValidDerivation
from hookregistry.pda import (
    as_address,
    associated_token_address,
    derive,
    extra_account_metas_address,
    registry_config_address,
    risk_assessment_address,
    submission_address,
    token_badge_address,
    vote_address,
    whirlpool_address,
)

PROGRAMS = ProgramIds()


class TestDerive:
    def test_deterministic(self):
        hook = Pubkey.new_unique()
        assert submission_address(PROGRAMS.registry, hook) == submission_address(PROGRAMS.registry, hook)

    @pytest.mark.parametrize("seeds", [
        [b"registry"],
        [b"submission", bytes(32)],
        [b"vote", bytes(range(32)), bytes(reversed(range(32)))],
        [],
    ])
    def test_matches_reference_derivation(self, seeds):
        assert derive(PROGRAMS.registry, seeds) == Pubkey.find_program_address(seeds, PROGRAMS.registry)

    def test_result_is_off_curve(self):
        address, _ = registry_config_address(PROGRAMS.registry)
        assert not address.is_on_curve()

    def test_namespaces_do_not_collide(self):
        key = Pubkey.new_unique()
        submission, _ = submission_address(PROGRAMS.registry, key)
        assessment, _ = risk_assessment_address(PROGRAMS.registry, key)
        assert submission != assessment

    def test_vote_depends_on_voter(self):
        submission = Pubkey.new_unique()
        a, _ = vote_address(PROGRAMS.registry, submission, Pubkey.new_unique())
        b, _ = vote_address(PROGRAMS.registry, submission, Pubkey.new_unique())
        assert a != b

    def test_seed_too_long(self):
        with pytest.raises(InvalidSeeds):
            derive(PROGRAMS.registry, [bytes(33)])

    def test_too_many_seeds(self):
        with pytest.raises(InvalidSeeds):
            derive(PROGRAMS.registry, [b"x"] * 16)
        derive(PROGRAMS.registry, [b"x"] * 15)

    def test_exhausted_bumps(self, monkeypatch):
        monkeypatch.setattr("hookregistry.pda.create_program_address", lambda seeds, bump, program_id: None)
        with pytest.raises(NoValidDerivation) as exc_info:
            derive(PROGRAMS.registry, [b"registry"])
        assert exc_info.value.program_id == PROGRAMS.registry
        assert exc_info.value.seeds == [b"registry"]


class TestHelpers:
    def test_associated_token_address_matches_reference(self):
        owner, mint = Pubkey.new_unique(), Pubkey.new_unique()
        expected, _ = Pubkey.find_program_address(
            [bytes(owner), bytes(PROGRAMS.token), bytes(mint)], PROGRAMS.associated_token,
        )
        assert associated_token_address(owner, mint, PROGRAMS.token, PROGRAMS.associated_token) == expected

    def test_whirlpool_fee_tier_is_part_of_address(self):
        a, b = Pubkey.new_unique(), Pubkey.new_unique()
        low, _ = whirlpool_address(PROGRAMS.whirlpool, a, b, 64)
        high, _ = whirlpool_address(PROGRAMS.whirlpool, a, b, 128)
        assert low != high
        expected, _ = Pubkey.find_program_address(
            [b"whirlpool", bytes(a), bytes(b), (64).to_bytes(2, "little")], PROGRAMS.whirlpool,
        )
        assert low == expected

    def test_extra_metas_and_badge(self):
        hook, mint = Pubkey.new_unique(), Pubkey.new_unique()
        expected, _ = Pubkey.find_program_address([b"extra-account-metas", bytes(mint)], hook)
        assert extra_account_metas_address(hook, mint)[0] == expected
        badge, _ = token_badge_address(PROGRAMS.whirlpool, PROGRAMS.whirlpools_config, mint)
        expected, _ = Pubkey.find_program_address(
            [b"token_badge", bytes(PROGRAMS.whirlpools_config), bytes(mint)], PROGRAMS.whirlpool,
        )
        assert badge == expected


class TestAsAddress:
    def test_string_and_bytes(self):
        key = Pubkey.new_unique()
        assert as_address(str(key)) == key
        assert as_address(bytes(key)) == key
        assert as_address(key) is key

    @pytest.mark.parametrize("value", ["not-base58!", b"short", 42])
    def test_invalid(self, value):
        with pytest.raises(InvalidAddress):
            as_address(value)
