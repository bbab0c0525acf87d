"""
Account Layout Test Suite
Tests fixed-offset decoding, discriminator checks and the Token-2022
transfer hook extension parser.

Usage:
    pytest tests/test_accounts.py
"""

from __future__ import annotations

import pytest
from solders.pubkey import Pubkey

from hookregistry.accounts import (
    DISCRIMINATOR_LEN,
    ExtraAccountMetaList,
    HookSubmission,
    MintInfo,
    RegistryConfig,
    TransferHookExtension,
    account_discriminator,
)
from hookregistry.errors import UnexpectedAccountLayout
from hookregistry.instructions import ApprovalStatus
from hookregistry.token_instructions import MINT_WITH_TRANSFER_HOOK_LEN, ExtraAccountMeta, Seed


def make_submission(**overrides) -> HookSubmission:
    values = dict(
        program_id=Pubkey.new_unique(),
        submitter=Pubkey.new_unique(),
        status=ApprovalStatus.UNDER_REVIEW,
        submitted_at=1_700_000_000,
        review_ends_at=1_700_003_600,
        last_updated_at=1_700_000_100,
        metadata_uri="https://example.com/hook.json",
        votes_for=45,
        votes_against=3,
        risk_score=25,
        automated_checks_passed=True,
        bump=254,
    )
    values.update(overrides)
    return HookSubmission(**values)


class TestRegistryAccounts:
    def test_submission_decodes_at_fixed_offsets(self):
        submission = make_submission(governance_proposal_id=Pubkey.new_unique())
        assert HookSubmission.unpack(submission.pack()) == submission

    def test_unused_allocation_is_ignored(self):
        submission = make_submission()
        padded = submission.pack() + bytes(200)
        assert HookSubmission.unpack(padded) == submission

    def test_discriminator_mismatch(self):
        config = RegistryConfig(Pubkey.new_unique(), 8_000, 3_600, 70)
        address = Pubkey.new_unique()
        with pytest.raises(UnexpectedAccountLayout) as exc_info:
            HookSubmission.unpack(config.pack(), address)
        assert exc_info.value.address == address
        assert exc_info.value.offset == 0

    def test_truncated_account_reports_offset(self):
        data = make_submission().pack()[:DISCRIMINATOR_LEN + 40]
        with pytest.raises(UnexpectedAccountLayout) as exc_info:
            HookSubmission.unpack(data)
        assert exc_info.value.offset > DISCRIMINATOR_LEN

    def test_deprecated_status_decodes(self):
        submission = make_submission(status=ApprovalStatus.DEPRECATED)
        assert HookSubmission.unpack(submission.pack()).status is ApprovalStatus.DEPRECATED

    def test_unknown_status_is_a_layout_error(self):
        data = bytearray(make_submission().pack())
        data[DISCRIMINATOR_LEN + 64] = 9
        with pytest.raises(UnexpectedAccountLayout):
            HookSubmission.unpack(bytes(data))

    def test_threshold_ratio(self):
        assert RegistryConfig(Pubkey.new_unique(), 8_000, 1, 70).governance_threshold == 0.8

    def test_discriminator_is_name_hash(self):
        assert len(account_discriminator("HookSubmission")) == 8
        assert account_discriminator("HookSubmission") != account_discriminator("RegistryConfig")


class TestMint:
    def test_transfer_hook_extension(self):
        hook = Pubkey.new_unique()
        info = MintInfo(
            Pubkey.new_unique(), 1_000, 6, True, None,
            TransferHookExtension(Pubkey.new_unique(), hook),
        )
        data = info.pack()
        assert len(data) == MINT_WITH_TRANSFER_HOOK_LEN
        decoded = MintInfo.unpack(data)
        assert decoded.hook_program == hook
        assert decoded.supply == 1_000
        assert decoded.extension_types == [14]

    def test_plain_mint_has_no_hook(self):
        info = MintInfo(Pubkey.new_unique(), 0, 9, True, None)
        decoded = MintInfo.unpack(info.pack())
        assert decoded.transfer_hook is None
        assert decoded.hook_program is None

    def test_unset_hook_program(self):
        info = MintInfo(None, 0, 0, True, None, TransferHookExtension(None, None))
        assert MintInfo.unpack(info.pack()).hook_program is None


class TestExtraAccountMetaList:
    def test_parse(self):
        metas = [ExtraAccountMeta.from_seeds([Seed.literal(b"royalty_vault")], is_writable=True)]
        decoded = ExtraAccountMetaList.unpack(ExtraAccountMetaList(metas).pack())
        assert decoded.metas == metas

    def test_wrong_discriminator(self):
        with pytest.raises(UnexpectedAccountLayout):
            ExtraAccountMetaList.unpack(bytes(16))
