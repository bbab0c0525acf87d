"""
Registry Instruction Builders
One pure builder per transfer hook registry operation.

Each builder derives every address it touches, lays the accounts out in
the order the program expects (the order is part of the wire contract),
encodes the payload behind a one-byte discriminator and returns an
``Instruction``. Nothing here touches the network.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, Union

from borsh_construct import U8, U64, CStruct, String
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from hookregistry.codec import (
    BOOL,
    PUBKEY,
    IntEnumAdapter,
    Reader,
    StrictOption,
    build,
    ensure_max_len,
    field_values,
)
from hookregistry.config import ProgramIds
from hookregistry.errors import InvalidArgument, UnknownInstruction
from hookregistry.pda import (
    config_extension_address,
    registry_config_address,
    risk_assessment_address,
    submission_address,
    token_badge_address,
    vote_address,
)
from hookregistry.risk import RISK_FLAGS, RiskFlags, RiskReport

MAX_METADATA_URI_LEN = 256
MAX_RATIONALE_LEN = 256
MAX_REASON_LEN = 256
MAX_NOTES_LEN = 512
BPS_DENOMINATOR = 10_000


class RegistryInstruction(IntEnum):
    INITIALIZE_REGISTRY = 0
    SUBMIT_HOOK_FOR_APPROVAL = 1
    ASSESS_HOOK_RISK = 2
    CAST_GOVERNANCE_VOTE = 3
    FINALIZE_HOOK_APPROVAL = 4
    UPDATE_HOOK_STATUS = 5
    AUTO_APPROVE_TOKEN_BADGE = 6


class ApprovalStatus(IntEnum):
    """On-chain status enum; the value is the wire byte."""
    PENDING = 0
    UNDER_REVIEW = 1
    APPROVED = 2
    REJECTED = 3
    SUSPENDED = 4
    DEPRECATED = 5

    @property
    def label(self) -> str:
        return self.name.lower()

    @property
    def is_terminal(self) -> bool:
        return self in (ApprovalStatus.REJECTED, ApprovalStatus.SUSPENDED, ApprovalStatus.DEPRECATED)


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

InitializeRegistryLayout = CStruct(
    "authority" / PUBKEY,
    "governance_threshold_bps" / U64,
    "review_period_seconds" / U64,
    "max_risk_score" / U8,
)

SubmitHookLayout = CStruct(
    "program_id" / PUBKEY,
    "metadata_uri" / String,
    "governance_proposal_id" / StrictOption(PUBKEY),
)

AssessHookRiskLayout = CStruct(
    "risk_score" / U8,
    "automated_checks_passed" / BOOL,
    "flags" / RISK_FLAGS,
    "notes" / String,
)

CastVoteLayout = CStruct(
    "vote" / BOOL,
    "rationale" / String,
)

UpdateHookStatusLayout = CStruct(
    "new_status" / IntEnumAdapter(U8, ApprovalStatus),
    "reason" / String,
)

AutoApproveTokenBadgeLayout = CStruct(
    "whirlpools_config" / PUBKEY,
    "token_mint" / PUBKEY,
)


class _Payload:
    """One discriminator byte followed by ``LAYOUT``."""

    LAYOUT = CStruct()

    def pack(self) -> bytes:
        return bytes([self.discriminator]) + build(
            self.LAYOUT, field_values(self.LAYOUT, self), self.discriminator.name.lower(),
        )

    @classmethod
    def read(cls, reader: Reader):
        return cls(**reader.read_struct(cls.LAYOUT))


@dataclass(frozen=True)
class InitializeRegistryArgs(_Payload):
    authority: Pubkey
    governance_threshold_bps: int
    review_period_seconds: int
    max_risk_score: int

    discriminator = RegistryInstruction.INITIALIZE_REGISTRY
    LAYOUT = InitializeRegistryLayout

    def pack(self) -> bytes:
        if not 0 < self.governance_threshold_bps <= BPS_DENOMINATOR:
            raise InvalidArgument("Governance threshold must be within (0, 10000] bps")
        if self.review_period_seconds <= 0:
            raise InvalidArgument("Review period must be positive")
        if not 0 <= self.max_risk_score <= 100:
            raise InvalidArgument("Max risk score must be within 0-100")
        return super().pack()


@dataclass(frozen=True)
class SubmitHookArgs(_Payload):
    program_id: Pubkey
    metadata_uri: str
    governance_proposal_id: Optional[Pubkey] = None

    discriminator = RegistryInstruction.SUBMIT_HOOK_FOR_APPROVAL
    LAYOUT = SubmitHookLayout

    def pack(self) -> bytes:
        ensure_max_len(self.metadata_uri, MAX_METADATA_URI_LEN, "metadata_uri")
        if self.program_id == Pubkey.default():
            raise InvalidArgument("Hook program id cannot be the system program")
        return super().pack()


@dataclass(frozen=True)
class AssessHookRiskArgs(_Payload):
    risk_score: int
    automated_checks_passed: bool
    flags: RiskFlags = field(default_factory=RiskFlags)
    notes: str = ""

    discriminator = RegistryInstruction.ASSESS_HOOK_RISK
    LAYOUT = AssessHookRiskLayout

    @classmethod
    def from_report(cls, report: RiskReport) -> "AssessHookRiskArgs":
        return cls(report.risk_score, report.automated_checks_passed, report.flags, report.notes)

    def pack(self) -> bytes:
        if not 0 <= self.risk_score <= 100:
            raise InvalidArgument(f"Risk score must be within 0-100, got {self.risk_score}")
        ensure_max_len(self.notes, MAX_NOTES_LEN, "notes")
        return super().pack()


@dataclass(frozen=True)
class CastVoteArgs(_Payload):
    vote: bool
    rationale: str = ""

    discriminator = RegistryInstruction.CAST_GOVERNANCE_VOTE
    LAYOUT = CastVoteLayout

    def pack(self) -> bytes:
        ensure_max_len(self.rationale, MAX_RATIONALE_LEN, "rationale")
        return super().pack()


@dataclass(frozen=True)
class FinalizeArgs(_Payload):
    discriminator = RegistryInstruction.FINALIZE_HOOK_APPROVAL


@dataclass(frozen=True)
class UpdateHookStatusArgs(_Payload):
    new_status: ApprovalStatus
    reason: str = ""

    discriminator = RegistryInstruction.UPDATE_HOOK_STATUS
    LAYOUT = UpdateHookStatusLayout

    def pack(self) -> bytes:
        ensure_max_len(self.reason, MAX_REASON_LEN, "reason")
        return super().pack()


@dataclass(frozen=True)
class AutoApproveTokenBadgeArgs(_Payload):
    whirlpools_config: Pubkey
    token_mint: Pubkey

    discriminator = RegistryInstruction.AUTO_APPROVE_TOKEN_BADGE
    LAYOUT = AutoApproveTokenBadgeLayout


RegistryArgs = Union[
    InitializeRegistryArgs,
    SubmitHookArgs,
    AssessHookRiskArgs,
    CastVoteArgs,
    FinalizeArgs,
    UpdateHookStatusArgs,
    AutoApproveTokenBadgeArgs,
]

_ARGS_BY_DISCRIMINATOR = {
    RegistryInstruction.INITIALIZE_REGISTRY: InitializeRegistryArgs,
    RegistryInstruction.SUBMIT_HOOK_FOR_APPROVAL: SubmitHookArgs,
    RegistryInstruction.ASSESS_HOOK_RISK: AssessHookRiskArgs,
    RegistryInstruction.CAST_GOVERNANCE_VOTE: CastVoteArgs,
    RegistryInstruction.FINALIZE_HOOK_APPROVAL: FinalizeArgs,
    RegistryInstruction.UPDATE_HOOK_STATUS: UpdateHookStatusArgs,
    RegistryInstruction.AUTO_APPROVE_TOKEN_BADGE: AutoApproveTokenBadgeArgs,
}


def decode_registry_instruction(data: bytes) -> RegistryArgs:
    """Inverse of ``pack()`` for every registry payload."""
    reader = Reader(data)
    raw = reader.read_u8("discriminator")
    try:
        discriminator = RegistryInstruction(raw)
    except ValueError as exc:
        raise UnknownInstruction(raw) from exc
    args = _ARGS_BY_DISCRIMINATOR[discriminator].read(reader)
    reader.expect_end(discriminator.name.lower())
    return args


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def _meta(pubkey: Pubkey, signer: bool = False, writable: bool = False) -> AccountMeta:
    return AccountMeta(pubkey, signer, writable)


def build_initialize_registry(
    programs: ProgramIds,
    payer: Pubkey,
    args: InitializeRegistryArgs,
) -> Instruction:
    """Accounts: registry_config(w), payer(s,w), system program."""
    config, _ = registry_config_address(programs.registry)
    return Instruction(programs.registry, args.pack(), [
        _meta(config, writable=True),
        _meta(payer, signer=True, writable=True),
        _meta(programs.system),
    ])


def build_submit_hook(
    programs: ProgramIds,
    submitter: Pubkey,
    args: SubmitHookArgs,
) -> Instruction:
    """Accounts: registry_config(w), hook_submission(w), submitter(s,w),
    system program, hook program (read-only, checked for executability).
    """
    config, _ = registry_config_address(programs.registry)
    submission, _ = submission_address(programs.registry, args.program_id)
    return Instruction(programs.registry, args.pack(), [
        _meta(config, writable=True),
        _meta(submission, writable=True),
        _meta(submitter, signer=True, writable=True),
        _meta(programs.system),
        _meta(args.program_id),
    ])


def build_assess_hook_risk(
    programs: ProgramIds,
    hook_program_id: Pubkey,
    assessor: Pubkey,
    args: AssessHookRiskArgs,
) -> Instruction:
    """Accounts: hook_submission(w), risk_assessment(w), hook program,
    assessor(s,w), system program.
    """
    submission, _ = submission_address(programs.registry, hook_program_id)
    assessment, _ = risk_assessment_address(programs.registry, submission)
    return Instruction(programs.registry, args.pack(), [
        _meta(submission, writable=True),
        _meta(assessment, writable=True),
        _meta(hook_program_id),
        _meta(assessor, signer=True, writable=True),
        _meta(programs.system),
    ])


def build_cast_vote(
    programs: ProgramIds,
    hook_program_id: Pubkey,
    voter: Pubkey,
    args: CastVoteArgs,
) -> Instruction:
    """Accounts: hook_submission(w), governance_vote(w), voter(s,w), system.

    The vote address is derived from (submission, voter), which is what
    makes a second vote by the same voter fail.
    """
    submission, _ = submission_address(programs.registry, hook_program_id)
    vote, _ = vote_address(programs.registry, submission, voter)
    return Instruction(programs.registry, args.pack(), [
        _meta(submission, writable=True),
        _meta(vote, writable=True),
        _meta(voter, signer=True, writable=True),
        _meta(programs.system),
    ])


def build_finalize(
    programs: ProgramIds,
    hook_program_id: Pubkey,
    finalizer: Pubkey,
) -> Instruction:
    """Accounts: registry_config(w), hook_submission(w), risk_assessment,
    finalizer(s).
    """
    config, _ = registry_config_address(programs.registry)
    submission, _ = submission_address(programs.registry, hook_program_id)
    assessment, _ = risk_assessment_address(programs.registry, submission)
    return Instruction(programs.registry, FinalizeArgs().pack(), [
        _meta(config, writable=True),
        _meta(submission, writable=True),
        _meta(assessment),
        _meta(finalizer, signer=True),
    ])


def build_update_hook_status(
    programs: ProgramIds,
    hook_program_id: Pubkey,
    authority: Pubkey,
    args: UpdateHookStatusArgs,
) -> Instruction:
    """Accounts: registry_config, hook_submission(w), authority(s)."""
    config, _ = registry_config_address(programs.registry)
    submission, _ = submission_address(programs.registry, hook_program_id)
    return Instruction(programs.registry, args.pack(), [
        _meta(config),
        _meta(submission, writable=True),
        _meta(authority, signer=True),
    ])


def build_auto_approve_token_badge(
    programs: ProgramIds,
    hook_program_id: Pubkey,
    payer: Pubkey,
    args: AutoApproveTokenBadgeArgs,
    badge_authority: Optional[Pubkey] = None,
) -> Instruction:
    """Accounts: hook_submission, token_mint, whirlpools_config(w),
    token_badge(w), config_extension, payer(s,w), token_badge_authority(s),
    whirlpool program, system program.
    """
    submission, _ = submission_address(programs.registry, hook_program_id)
    badge, _ = token_badge_address(programs.whirlpool, args.whirlpools_config, args.token_mint)
    extension, _ = config_extension_address(programs.whirlpool, args.whirlpools_config)
    authority = badge_authority if badge_authority is not None else payer
    return Instruction(programs.registry, args.pack(), [
        _meta(submission),
        _meta(args.token_mint),
        _meta(args.whirlpools_config, writable=True),
        _meta(badge, writable=True),
        _meta(extension),
        _meta(payer, signer=True, writable=True),
        _meta(authority, signer=True),
        _meta(programs.whirlpool),
        _meta(programs.system),
    ])
