"""
Hook Registry SDK — Client
Thin async wrapper over the registry workflow, token launch and pools.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Union

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from hookregistry.config import COMMITMENT, RPC_URL, ProgramIds
from hookregistry.context import ClusterContext
from hookregistry.extensions import ExtensionKind
from hookregistry.instructions import AssessHookRiskArgs
from hookregistry.launch import LaunchOrchestrator, LaunchRecord
from hookregistry.pda import as_address
from hookregistry.pools import DEFAULT_FEE_TIER, PoolWorkflow
from hookregistry.query import LedgerQuery
from hookregistry.risk import RiskFlags, RiskReport
from hookregistry.rpc import HttpLedgerRpc, LedgerRpc
from hookregistry.signer import KeypairSigner
from hookregistry.workflow import RegistryWorkflow
from hookregistry_sdk.models import PoolResult, ReceiptResult, RegistryView, SubmissionView

Address = Union[Pubkey, str]


class HookRegistryClient:
    """
    Client for the transfer hook registry.

    Submits hooks for approval, records risk assessments and votes,
    finalizes reviews, issues pool badges and launches hook-bearing tokens.
    Addresses may be given as base58 strings or Pubkeys.
    """

    def __init__(
        self,
        keypair: Keypair,
        rpc_url: str = RPC_URL,
        programs: ProgramIds | None = None,
        commitment: str = COMMITMENT,
        rpc: LedgerRpc | None = None,
        clock: Callable[[], int] | None = None,
        **context_options,
    ):
        """
        Args:
            keypair: Fee payer and signer for every operation
            rpc_url: JSON-RPC endpoint (ignored when ``rpc`` is given)
            programs: Program ids to talk to (defaults from configuration)
            commitment: Commitment level to confirm at
            rpc: Pre-built RPC implementation
            clock: Unix-seconds clock used for deadline pre-checks
        """
        self.signer = KeypairSigner(keypair)
        kwargs = dict(context_options)
        if clock is not None:
            kwargs["clock"] = clock
        self.ctx = ClusterContext(
            rpc=rpc or HttpLedgerRpc(rpc_url, commitment),
            signer=self.signer,
            programs=programs or ProgramIds(),
            commitment=commitment,
            **kwargs,
        )
        self.query = LedgerQuery(self.ctx.rpc, self.ctx.programs)
        self.workflow = RegistryWorkflow(self.ctx)
        self.launcher = LaunchOrchestrator(self.ctx)
        self.pools = PoolWorkflow(self.ctx)

    @property
    def pubkey(self) -> Pubkey:
        return self.signer.pubkey

    # -- reads --------------------------------------------------------------

    async def registry(self) -> RegistryView | None:
        config = await self.query.registry_config()
        return RegistryView.from_account(config) if config is not None else None

    async def submission(self, program_id: Address) -> SubmissionView | None:
        submission = await self.query.submission(as_address(program_id))
        return SubmissionView.from_account(submission) if submission is not None else None

    async def has_badge(self, mint: Address) -> bool:
        return await self.query.token_badge(as_address(mint)) is not None

    # -- registry lifecycle -------------------------------------------------

    async def initialize(
        self,
        governance_threshold: float,
        review_period_seconds: int,
        max_risk_score: int,
    ) -> ReceiptResult:
        """
        Create the registry config with this client as authority.

        Args:
            governance_threshold: Required for/(for+against) ratio, e.g. 0.8
            review_period_seconds: Voting window after submission
            max_risk_score: Scores at or above this are rejected at finalize
        """
        bps = round(governance_threshold * 10_000)
        receipt = await self.workflow.initialize_registry(bps, review_period_seconds, max_risk_score)
        return ReceiptResult.from_receipt(receipt)

    async def submit(self, program_id: Address, metadata_uri: str) -> ReceiptResult:
        receipt = await self.workflow.submit_hook(as_address(program_id), metadata_uri)
        return ReceiptResult.from_receipt(receipt)

    async def assess(
        self,
        program_id: Address,
        flags: RiskFlags | None = None,
        risk_score: int | None = None,
        automated_checks_passed: bool | None = None,
        notes: str | None = None,
    ) -> ReceiptResult:
        """
        Record a risk assessment.

        With only ``flags`` the score, verdict and notes are computed from
        them; explicit values override the computed ones.
        """
        report = RiskReport.from_flags(flags or RiskFlags())
        args = AssessHookRiskArgs(
            risk_score=report.risk_score if risk_score is None else risk_score,
            automated_checks_passed=(
                report.automated_checks_passed
                if automated_checks_passed is None else automated_checks_passed
            ),
            flags=report.flags,
            notes=report.notes if notes is None else notes,
        )
        receipt = await self.workflow.assess_hook_risk(as_address(program_id), args)
        return ReceiptResult.from_receipt(receipt)

    async def begin_review(self, program_id: Address, reason: str = "") -> ReceiptResult:
        return ReceiptResult.from_receipt(
            await self.workflow.begin_review(as_address(program_id), reason)
        )

    async def vote(self, program_id: Address, approve: bool, rationale: str = "") -> ReceiptResult:
        return ReceiptResult.from_receipt(
            await self.workflow.cast_vote(as_address(program_id), approve, rationale)
        )

    async def finalize(self, program_id: Address) -> ReceiptResult:
        return ReceiptResult.from_receipt(await self.workflow.finalize(as_address(program_id)))

    async def suspend(self, program_id: Address, reason: str = "") -> ReceiptResult:
        return ReceiptResult.from_receipt(
            await self.workflow.suspend(as_address(program_id), reason)
        )

    async def approve_badge(self, program_id: Address, mint: Address) -> ReceiptResult:
        receipt = await self.workflow.auto_approve_token_badge(
            as_address(program_id), as_address(mint)
        )
        return ReceiptResult.from_receipt(receipt)

    # -- tokens and pools ---------------------------------------------------

    async def launch_token(
        self,
        mint_keypair: Keypair,
        name: str,
        symbol: str,
        decimals: int,
        extension: ExtensionKind | str,
        initial_supply: int = 0,
        custom_program_id: Address | None = None,
        description: str = "",
    ) -> LaunchRecord:
        """Plan and run a token launch; inspect the returned record's steps."""
        record = self.launcher.plan(
            mint_keypair.pubkey(), name, symbol, decimals, extension,
            initial_supply=initial_supply,
            custom_program_id=custom_program_id,
            description=description,
        )
        return await self.launcher.run(record, mint_keypair)

    async def resume_launch(self, record: LaunchRecord, mint_keypair: Keypair | None = None) -> LaunchRecord:
        return await self.launcher.run(record, mint_keypair)

    async def create_pool(
        self,
        mint_x: Address,
        mint_y: Address,
        price: Decimal | float | str,
        fee_tier: int = DEFAULT_FEE_TIER,
    ) -> PoolResult:
        receipt = await self.pools.create_pool(as_address(mint_x), as_address(mint_y), price, fee_tier)
        return PoolResult(
            pool=str(receipt.pool),
            mint_a=str(receipt.mint_a),
            mint_b=str(receipt.mint_b),
            signature=str(receipt.signature) if receipt.signature is not None else None,
            already_done=receipt.already_done,
        )

    async def swap(
        self,
        mint_x: Address,
        mint_y: Address,
        input_mint: Address,
        amount: int,
        min_amount_out: int = 0,
        fee_tier: int = DEFAULT_FEE_TIER,
    ) -> str:
        signature = await self.pools.swap(
            as_address(mint_x), as_address(mint_y), as_address(input_mint),
            amount, min_amount_out, fee_tier,
        )
        return str(signature)
