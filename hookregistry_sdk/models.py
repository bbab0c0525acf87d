"""
Hook Registry SDK — Data Models
"""

from __future__ import annotations

from pydantic import BaseModel

from hookregistry.accounts import HookSubmission, RegistryConfig
from hookregistry.risk import classify_risk
from hookregistry.workflow import OperationReceipt, approval_ratio


class ReceiptResult(BaseModel):
    """Outcome of one committed (or already satisfied) operation."""
    operation: str
    address: str
    signature: str | None = None
    already_done: bool = False
    status: str | None = None   # pending | under_review | approved | ...
    explorer_url: str | None = None

    @classmethod
    def from_receipt(cls, receipt: OperationReceipt) -> "ReceiptResult":
        return cls(
            operation=receipt.operation.value,
            address=str(receipt.address),
            signature=str(receipt.signature) if receipt.signature is not None else None,
            already_done=receipt.already_done,
            status=receipt.status.label if receipt.status is not None else None,
            explorer_url=receipt.explorer_url,
        )


class SubmissionView(BaseModel):
    program_id: str
    submitter: str
    status: str
    risk_score: int
    risk_band: str
    automated_checks_passed: bool
    votes_for: int
    votes_against: int
    approval_ratio: float | None = None
    submitted_at: int
    review_ends_at: int
    metadata_uri: str

    @classmethod
    def from_account(cls, submission: HookSubmission) -> "SubmissionView":
        return cls(
            program_id=str(submission.program_id),
            submitter=str(submission.submitter),
            status=submission.status.label,
            risk_score=submission.risk_score,
            risk_band=classify_risk(submission.risk_score).value,
            automated_checks_passed=submission.automated_checks_passed,
            votes_for=submission.votes_for,
            votes_against=submission.votes_against,
            approval_ratio=approval_ratio(submission.votes_for, submission.votes_against),
            submitted_at=submission.submitted_at,
            review_ends_at=submission.review_ends_at,
            metadata_uri=submission.metadata_uri,
        )


class RegistryView(BaseModel):
    authority: str
    governance_threshold: float
    review_period_seconds: int
    max_risk_score: int
    total_submissions: int
    total_approved: int

    @classmethod
    def from_account(cls, config: RegistryConfig) -> "RegistryView":
        return cls(
            authority=str(config.authority),
            governance_threshold=config.governance_threshold,
            review_period_seconds=config.review_period_seconds,
            max_risk_score=config.max_risk_score,
            total_submissions=config.total_submissions,
            total_approved=config.total_approved,
        )


class PoolResult(BaseModel):
    pool: str
    mint_a: str
    mint_b: str
    signature: str | None = None
    already_done: bool = False
