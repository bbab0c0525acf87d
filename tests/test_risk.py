"""
Risk Model Test Suite
Tests score bands, flag scoring, the automated-checks verdict and notes.

Usage:
    pytest tests/test_risk.py
"""

from __future__ import annotations

import pytest

from hookregistry.errors import InvalidArgument
from hookregistry.risk import (
    RiskBand,
    RiskFlags,
    RiskReport,
    assessment_notes,
    classify_risk,
    passes_automated_checks,
    score_flags,
)


@pytest.mark.parametrize("score,band", [
    (0, RiskBand.LOW), (30, RiskBand.LOW),
    (31, RiskBand.MEDIUM), (60, RiskBand.MEDIUM),
    (61, RiskBand.HIGH), (100, RiskBand.HIGH),
])
def test_classify_risk(score, band):
    assert classify_risk(score) is band


@pytest.mark.parametrize("score", [-1, 101])
def test_classify_out_of_range(score):
    with pytest.raises(InvalidArgument):
        classify_risk(score)


def test_default_flags_assume_upgrade_authority():
    assert score_flags(RiskFlags()) == 15


def test_worst_case_score():
    flags = RiskFlags(
        has_upgrade_authority=True, performs_token_transfers=True,
        requests_many_accounts=True, can_block_transfers=True,
    )
    assert score_flags(flags) == 70


def test_credits_saturate_at_zero():
    flags = RiskFlags(
        has_upgrade_authority=False, is_verified_build=True, is_audited=True,
        source_code_available=True, follows_best_practices=True,
    )
    assert score_flags(flags) == 0


def test_automated_checks():
    clean = RiskFlags(has_upgrade_authority=False, source_code_available=True)
    assert passes_automated_checks(clean, score_flags(clean))
    blocking = RiskFlags(source_code_available=True, can_block_transfers=True)
    assert not passes_automated_checks(blocking, score_flags(blocking))
    closed = RiskFlags(has_upgrade_authority=False)
    assert not passes_automated_checks(closed, 0)


def test_report_from_flags():
    report = RiskReport.from_flags(RiskFlags(is_audited=True, source_code_available=True))
    assert report.risk_score == 0
    assert report.automated_checks_passed
    assert report.band is RiskBand.LOW
    assert not report.requires_manual_review
    assert "Program has been audited" in report.notes


def test_notes_fallback():
    assert "manual review" in assessment_notes(RiskFlags(has_upgrade_authority=False))
