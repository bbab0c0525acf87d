"""
Risk Model
Scoring, classification and notes for transfer hook risk assessments.

An assessor observes eight flags about a hook program and turns them into
an overall score (0-100, higher = riskier) and an automated-checks verdict.
Bands are for display/classification only; the finalize gate uses the
registry's configured maximum score.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum

from borsh_construct import CStruct

from hookregistry.codec import BOOL, DataclassAdapter
from hookregistry.errors import InvalidArgument


class RiskBand(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def classify_risk(score: int) -> RiskBand:
    """0-30 low, 31-60 medium, 61-100 high."""
    if not 0 <= score <= 100:
        raise InvalidArgument(f"Risk score must be within 0-100, got {score}")
    if score <= 30:
        return RiskBand.LOW
    if score <= 60:
        return RiskBand.MEDIUM
    return RiskBand.HIGH


# ---------------------------------------------------------------------------
# Flags
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RiskFlags:
    has_upgrade_authority: bool = True  # assume worst case
    is_verified_build: bool = False
    performs_token_transfers: bool = False
    requests_many_accounts: bool = False
    can_block_transfers: bool = False
    is_audited: bool = False
    source_code_available: bool = False
    follows_best_practices: bool = False


# Eight bool bytes in declaration order.
RISK_FLAGS = DataclassAdapter(RiskFlags, CStruct(*(f.name / BOOL for f in fields(RiskFlags))))


_PENALTIES = (
    ("has_upgrade_authority", 15),
    ("performs_token_transfers", 25),
    ("requests_many_accounts", 10),
    ("can_block_transfers", 20),
)
_CREDITS = (
    ("is_verified_build", 15),
    ("is_audited", 20),
    ("source_code_available", 10),
    ("follows_best_practices", 10),
)


def score_flags(flags: RiskFlags) -> int:
    """Penalties first, then credits, saturating at zero."""
    score = sum(points for name, points in _PENALTIES if getattr(flags, name))
    for name, points in _CREDITS:
        if getattr(flags, name):
            score = max(score - points, 0)
    return min(score, 100)


def passes_automated_checks(flags: RiskFlags, score: int) -> bool:
    return (
        not flags.performs_token_transfers
        and not flags.can_block_transfers
        and flags.source_code_available
        and score <= 40
    )


def requires_manual_review(score: int) -> bool:
    return score > 60


def assessment_notes(flags: RiskFlags) -> str:
    notes = []
    if flags.is_verified_build:
        notes.append("Program has verified build")
    if flags.source_code_available:
        notes.append("Source code is publicly available")
    if flags.is_audited:
        notes.append("Program has been audited")
    if flags.follows_best_practices:
        notes.append("Program follows development best practices")
    if flags.has_upgrade_authority:
        notes.append("Program has upgrade authority")
    if flags.performs_token_transfers:
        notes.append("Program performs token transfers")
    if flags.can_block_transfers:
        notes.append("Program can block transfers")
    if flags.requests_many_accounts:
        notes.append("Program requests many accounts")
    if not notes:
        notes.append("Basic risk assessment completed - manual review recommended")
    return "; ".join(notes)


@dataclass(frozen=True)
class RiskReport:
    """Everything an assessor submits with ``assess-hook-risk``."""
    risk_score: int
    automated_checks_passed: bool
    flags: RiskFlags
    notes: str = ""

    @property
    def band(self) -> RiskBand:
        return classify_risk(self.risk_score)

    @property
    def requires_manual_review(self) -> bool:
        return requires_manual_review(self.risk_score)

    @classmethod
    def from_flags(cls, flags: RiskFlags) -> "RiskReport":
        score = score_flags(flags)
        return cls(
            risk_score=score,
            automated_checks_passed=passes_automated_checks(flags, score),
            flags=flags,
            notes=assessment_notes(flags),
        )
