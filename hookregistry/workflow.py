"""
Registry Workflow
Async operations over the hook approval lifecycle.

    Pending -> UnderReview -> Approved | Rejected
    Approved -> Suspended

Each operation reads current state, refuses transitions that cannot
succeed, builds its instruction and commits it. Nothing is cached across
operations and nothing is retried automatically. Commit-time program
errors are translated back to the same state errors the pre-flight
checks raise, so a caller sees one error for one cause whichever side
detected it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Union

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature

from hookregistry.accounts import HookSubmission, RegistryConfig
from hookregistry.config import explorer_url
from hookregistry.context import ClusterContext
from hookregistry.errors import (
    AlreadySubmitted,
    DuplicateVote,
    HookNotApproved,
    IncompatibleHook,
    InvalidArgument,
    InvalidTransition,
    NoTransferHookExtension,
    RegistryNotInitialized,
    ReviewNotEnded,
    SubmissionNotFound,
    SYSTEM_ACCOUNT_ALREADY_IN_USE,
    TransactionRejected,
    Unauthorized,
    VoteWindowClosed,
    registry_error_name,
)
from hookregistry.instructions import (
    BPS_DENOMINATOR,
    ApprovalStatus,
    AssessHookRiskArgs,
    AutoApproveTokenBadgeArgs,
    CastVoteArgs,
    InitializeRegistryArgs,
    SubmitHookArgs,
    UpdateHookStatusArgs,
    build_assess_hook_risk,
    build_auto_approve_token_badge,
    build_cast_vote,
    build_finalize,
    build_initialize_registry,
    build_submit_hook,
    build_update_hook_status,
)
from hookregistry.pda import (
    registry_config_address,
    risk_assessment_address,
    submission_address,
    token_badge_address,
    vote_address,
)
from hookregistry.query import LedgerQuery
from hookregistry.risk import RiskReport

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    INITIALIZE = "initialize"
    SUBMIT = "submit"
    ASSESS = "assess"
    BEGIN_REVIEW = "begin_review"
    VOTE = "vote"
    FINALIZE = "finalize"
    SUSPEND = "suspend"
    BADGE = "badge"


@dataclass(frozen=True)
class OperationReceipt:
    operation: Operation
    address: Pubkey
    signature: Optional[Signature] = None
    already_done: bool = False
    status: Optional[ApprovalStatus] = None

    @property
    def explorer_url(self) -> Optional[str]:
        if self.signature is None:
            return None
        return explorer_url(str(self.signature))


# ---------------------------------------------------------------------------
# Pure rules
# ---------------------------------------------------------------------------

ALLOWED_FROM: dict[Operation, frozenset[ApprovalStatus]] = {
    Operation.ASSESS: frozenset({ApprovalStatus.PENDING, ApprovalStatus.UNDER_REVIEW}),
    Operation.BEGIN_REVIEW: frozenset({ApprovalStatus.PENDING}),
    Operation.VOTE: frozenset({ApprovalStatus.UNDER_REVIEW}),
    Operation.FINALIZE: frozenset({ApprovalStatus.UNDER_REVIEW}),
    Operation.SUSPEND: frozenset({ApprovalStatus.APPROVED}),
}


def check_transition(current: ApprovalStatus, operation: Operation) -> None:
    """Raise ``InvalidTransition`` unless *operation* is legal from *current*."""
    allowed = ALLOWED_FROM.get(operation)
    if allowed is None or current not in allowed:
        raise InvalidTransition(current.label, operation.value)


def approval_ratio(votes_for: int, votes_against: int) -> Optional[float]:
    """for / (for + against), or None when nobody voted."""
    total = votes_for + votes_against
    if total == 0:
        return None
    return votes_for / total


def decide_outcome(submission: HookSubmission, config: RegistryConfig) -> ApprovalStatus:
    """Approved iff there are votes, the ratio meets the threshold, the
    automated checks passed and the score is below the registry maximum.
    """
    total = submission.total_votes
    meets_threshold = (
        total > 0
        # integer form of for/total >= bps/10000
        and submission.votes_for * BPS_DENOMINATOR >= config.governance_threshold_bps * total
    )
    if (
        meets_threshold
        and submission.automated_checks_passed
        and submission.risk_score < config.max_risk_score
    ):
        return ApprovalStatus.APPROVED
    return ApprovalStatus.REJECTED


def translate_rejection(
    exc: TransactionRejected,
    operation: Operation,
    hook_program_id: Optional[Pubkey] = None,
    submission: Optional[Pubkey] = None,
    voter: Optional[Pubkey] = None,
    status: Optional[ApprovalStatus] = None,
    review_ends_at: Optional[int] = None,
) -> Exception:
    """Map a commit-time failure to the matching state error (or *exc*).

    *status* and *review_ends_at* are what the caller read before sending;
    they fill in the state errors the program only reports by code.
    """
    code = exc.custom_code
    if code is None:
        return exc
    if code == SYSTEM_ACCOUNT_ALREADY_IN_USE:
        if operation is Operation.SUBMIT:
            return AlreadySubmitted(hook_program_id, submission)
        if operation is Operation.VOTE:
            return DuplicateVote(submission, voter)
        return exc

    name = registry_error_name(code)
    if name == "HookAlreadySubmitted":
        return AlreadySubmitted(hook_program_id, submission)
    if name == "AlreadyVoted":
        return DuplicateVote(submission, voter)
    if name == "ReviewPeriodEnded":
        return VoteWindowClosed(submission, review_ends_at)
    if name == "ReviewPeriodNotEnded":
        return ReviewNotEnded(submission, review_ends_at)
    if name in ("InvalidStatusTransition", "CannotFinalize"):
        return InvalidTransition(status.label if status is not None else "unknown", operation.value)
    if name == "SubmissionNotFound":
        return SubmissionNotFound(hook_program_id)
    if name == "RegistryNotInitialized":
        return RegistryNotInitialized(None)
    if name == "HookNotApproved":
        return HookNotApproved(hook_program_id, "unknown")
    if name == "Unauthorized":
        return Unauthorized("Signer is not the registry authority")
    if name == "NoTransferHookExtension":
        return NoTransferHookExtension(None)
    if name == "IncompatibleHook":
        return IncompatibleHook(None, hook_program_id, None)
    if name in ("MetadataUriTooLong", "RationaleTooLong", "AssessmentNotesTooLong",
                "InvalidProgramId", "ProgramNotExecutable", "RiskScoreTooHigh"):
        return InvalidArgument(f"Rejected by the registry program: {name}")
    return exc


# ---------------------------------------------------------------------------
# Workflow engine
# ---------------------------------------------------------------------------

class RegistryWorkflow:
    def __init__(self, ctx: ClusterContext):
        self.ctx = ctx
        self.query = LedgerQuery(ctx.rpc, ctx.programs)

    @property
    def programs(self):
        return self.ctx.programs

    async def _commit(
        self,
        operation: Operation,
        calls: Sequence[Instruction],
        co_signers: Sequence[Keypair] = (),
        **error_context,
    ) -> Signature:
        try:
            return await self.ctx.submitter().submit(calls, co_signers=co_signers)
        except TransactionRejected as exc:
            translated = translate_rejection(exc, operation, **error_context)
            if translated is exc:
                raise
            logger.info("%s rejected on-chain: %s", operation.value, translated)
            raise translated from exc

    async def _require_config(self) -> RegistryConfig:
        config = await self.query.registry_config()
        if config is None:
            address, _ = registry_config_address(self.programs.registry)
            raise RegistryNotInitialized(address)
        return config

    async def _require_submission(self, hook_program_id: Pubkey) -> HookSubmission:
        submission = await self.query.submission(hook_program_id)
        if submission is None:
            raise SubmissionNotFound(hook_program_id)
        return submission

    async def _require_authority(self) -> RegistryConfig:
        config = await self._require_config()
        if config.authority != self.ctx.payer:
            raise Unauthorized(f"{self.ctx.payer} is not the registry authority {config.authority}")
        return config

    def _submission_address(self, hook_program_id: Pubkey) -> Pubkey:
        address, _ = submission_address(self.programs.registry, hook_program_id)
        return address

    # -- operations ---------------------------------------------------------

    async def initialize_registry(
        self,
        governance_threshold_bps: int,
        review_period_seconds: int,
        max_risk_score: int,
        authority: Optional[Pubkey] = None,
    ) -> OperationReceipt:
        """Create the registry config. A config that already exists is
        reported with ``already_done`` and left untouched.
        """
        args = InitializeRegistryArgs(
            authority=authority or self.ctx.payer,
            governance_threshold_bps=governance_threshold_bps,
            review_period_seconds=review_period_seconds,
            max_risk_score=max_risk_score,
        )
        ix = build_initialize_registry(self.programs, self.ctx.payer, args)
        address, _ = registry_config_address(self.programs.registry)
        if await self.query.registry_config() is not None:
            return OperationReceipt(Operation.INITIALIZE, address, already_done=True)
        signature = await self._commit(Operation.INITIALIZE, [ix])
        logger.info("registry initialized at %s", address)
        return OperationReceipt(Operation.INITIALIZE, address, signature)

    async def submit_hook(
        self,
        hook_program_id: Pubkey,
        metadata_uri: str,
        governance_proposal_id: Optional[Pubkey] = None,
    ) -> OperationReceipt:
        args = SubmitHookArgs(hook_program_id, metadata_uri, governance_proposal_id)
        ix = build_submit_hook(self.programs, self.ctx.payer, args)
        address = self._submission_address(hook_program_id)

        await self._require_config()
        if await self.query.account_exists(address):
            raise AlreadySubmitted(hook_program_id, address)
        if not await self.query.program_is_executable(hook_program_id):
            raise InvalidArgument(f"{hook_program_id} is not an executable program")

        signature = await self._commit(
            Operation.SUBMIT, [ix], hook_program_id=hook_program_id, submission=address,
        )
        logger.info("submitted hook %s as %s", hook_program_id, address)
        return OperationReceipt(Operation.SUBMIT, address, signature, status=ApprovalStatus.PENDING)

    async def assess_hook_risk(
        self,
        hook_program_id: Pubkey,
        assessment: Union[RiskReport, AssessHookRiskArgs],
    ) -> OperationReceipt:
        args = (
            AssessHookRiskArgs.from_report(assessment)
            if isinstance(assessment, RiskReport) else assessment
        )
        ix = build_assess_hook_risk(self.programs, hook_program_id, self.ctx.payer, args)
        submission = await self._require_submission(hook_program_id)
        check_transition(submission.status, Operation.ASSESS)

        address = self._submission_address(hook_program_id)
        signature = await self._commit(
            Operation.ASSESS, [ix], hook_program_id=hook_program_id, submission=address,
            status=submission.status,
        )
        assessment_address, _ = risk_assessment_address(self.programs.registry, address)
        logger.info("assessed %s: score %d", hook_program_id, args.risk_score)
        return OperationReceipt(Operation.ASSESS, assessment_address, signature, status=submission.status)

    async def update_hook_status(
        self,
        hook_program_id: Pubkey,
        new_status: ApprovalStatus,
        reason: str = "",
    ) -> OperationReceipt:
        """Authority-only status change: Pending -> UnderReview or
        Approved -> Suspended. Approval and rejection only come from
        ``finalize``.
        """
        if new_status is ApprovalStatus.UNDER_REVIEW:
            operation = Operation.BEGIN_REVIEW
        elif new_status is ApprovalStatus.SUSPENDED:
            operation = Operation.SUSPEND
        else:
            raise InvalidTransition("any", f"set status {new_status.label} on")

        ix = build_update_hook_status(
            self.programs, hook_program_id, self.ctx.payer,
            UpdateHookStatusArgs(new_status, reason),
        )
        await self._require_authority()
        submission = await self._require_submission(hook_program_id)
        check_transition(submission.status, operation)

        address = self._submission_address(hook_program_id)
        signature = await self._commit(
            operation, [ix], hook_program_id=hook_program_id, submission=address,
            status=submission.status,
        )
        logger.info("%s: %s -> %s", hook_program_id, submission.status.label, new_status.label)
        return OperationReceipt(operation, address, signature, status=new_status)

    async def begin_review(self, hook_program_id: Pubkey, reason: str = "") -> OperationReceipt:
        return await self.update_hook_status(hook_program_id, ApprovalStatus.UNDER_REVIEW, reason)

    async def suspend(self, hook_program_id: Pubkey, reason: str = "") -> OperationReceipt:
        return await self.update_hook_status(hook_program_id, ApprovalStatus.SUSPENDED, reason)

    async def cast_vote(
        self,
        hook_program_id: Pubkey,
        approve: bool,
        rationale: str = "",
    ) -> OperationReceipt:
        voter = self.ctx.payer
        ix = build_cast_vote(self.programs, hook_program_id, voter, CastVoteArgs(approve, rationale))
        address = self._submission_address(hook_program_id)
        vote, _ = vote_address(self.programs.registry, address, voter)

        submission = await self._require_submission(hook_program_id)
        check_transition(submission.status, Operation.VOTE)
        if self.ctx.clock() >= submission.review_ends_at:
            raise VoteWindowClosed(address, submission.review_ends_at)
        if await self.query.account_exists(vote):
            raise DuplicateVote(address, voter)

        signature = await self._commit(
            Operation.VOTE, [ix], hook_program_id=hook_program_id, submission=address, voter=voter,
            status=submission.status, review_ends_at=submission.review_ends_at,
        )
        logger.debug("vote %s by %s on %s", "for" if approve else "against", voter, hook_program_id)
        return OperationReceipt(Operation.VOTE, vote, signature, status=submission.status)

    async def finalize(self, hook_program_id: Pubkey) -> OperationReceipt:
        ix = build_finalize(self.programs, hook_program_id, self.ctx.payer)
        address = self._submission_address(hook_program_id)
        await self._require_config()
        submission = await self._require_submission(hook_program_id)
        if self.ctx.clock() < submission.review_ends_at:
            raise ReviewNotEnded(address, submission.review_ends_at)
        check_transition(submission.status, Operation.FINALIZE)

        signature = await self._commit(
            Operation.FINALIZE, [ix], hook_program_id=hook_program_id, submission=address,
            status=submission.status, review_ends_at=submission.review_ends_at,
        )
        final = await self._require_submission(hook_program_id)
        logger.info(
            "finalized %s: %s (%d for / %d against)",
            hook_program_id, final.status.label, final.votes_for, final.votes_against,
        )
        return OperationReceipt(Operation.FINALIZE, address, signature, status=final.status)

    async def auto_approve_token_badge(
        self,
        hook_program_id: Pubkey,
        mint: Pubkey,
        whirlpools_config: Optional[Pubkey] = None,
        badge_authority: Optional[Keypair] = None,
    ) -> OperationReceipt:
        """Issue the pool program's token badge for *mint*.

        Idempotent: an existing badge returns ``already_done`` and nothing
        is sent.
        """
        config = whirlpools_config or self.programs.whirlpools_config
        args = AutoApproveTokenBadgeArgs(config, mint)
        ix = build_auto_approve_token_badge(
            self.programs, hook_program_id, self.ctx.payer, args,
            badge_authority.pubkey() if badge_authority is not None else None,
        )
        badge, _ = token_badge_address(self.programs.whirlpool, config, mint)

        submission = await self._require_submission(hook_program_id)
        if submission.status is not ApprovalStatus.APPROVED:
            raise HookNotApproved(hook_program_id, submission.status.label)
        if await self.query.account_exists(badge):
            logger.debug("badge %s already exists", badge)
            return OperationReceipt(Operation.BADGE, badge, already_done=True, status=submission.status)
        mint_info = await self.query.mint(mint)
        if mint_info is None:
            raise InvalidArgument(f"Mint {mint} does not exist")
        if mint_info.hook_program is None:
            raise NoTransferHookExtension(mint)
        if mint_info.hook_program != hook_program_id:
            raise IncompatibleHook(mint, hook_program_id, mint_info.hook_program)

        co_signers = [badge_authority] if badge_authority is not None else []
        signature = await self._commit(
            Operation.BADGE, [ix], co_signers=co_signers,
            hook_program_id=hook_program_id, submission=self._submission_address(hook_program_id),
        )
        logger.info("token badge issued for %s at %s", mint, badge)
        return OperationReceipt(Operation.BADGE, badge, signature, status=submission.status)
