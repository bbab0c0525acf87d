"""
Token Launch
Resumable multi-transaction launch of an extension-bearing token.

    create mint -> register extra account metas -> submit hook to registry

Each step is its own network commit, so a launch can stop part-way. The
``LaunchRecord`` is the saga's state: every step carries its status,
signature and the classification of its last error. ``run`` is safe to
call again on the same record; before (re)executing a step it checks the
chain for the step's effect, so an unconfirmed commit that actually
landed is recorded as done rather than attempted twice.
"""

from __future__ import annotations

import base64
import json
import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from hookregistry.codec import ensure_max_len
from hookregistry.context import ClusterContext
from hookregistry.errors import AlreadySubmitted, HookRegistryError, InvalidArgument, Unconfirmed
from hookregistry.extensions import ExtensionKind, get_template, resolve_hook_program
from hookregistry.instructions import MAX_METADATA_URI_LEN
from hookregistry.pda import as_address
from hookregistry.query import LedgerQuery
from hookregistry.token_instructions import (
    MINT_WITH_TRANSFER_HOOK_LEN,
    ExtensionDescriptor,
    build_create_extension_mint,
    build_initialize_extra_account_metas,
)
from hookregistry.workflow import RegistryWorkflow

logger = logging.getLogger(__name__)


class LaunchStep(str, Enum):
    CREATE_MINT = "create_mint"
    INIT_EXTRA_METAS = "init_extra_metas"
    SUBMIT_HOOK = "submit_hook"


class StepStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"
    UNCONFIRMED = "unconfirmed"
    SKIPPED = "skipped"


class StepRecord(BaseModel):
    step: LaunchStep
    status: StepStatus = StepStatus.PENDING
    signature: str | None = None
    attempts: int = 0
    error: str | None = None
    error_kind: str | None = None
    retry_safe: bool | None = None
    note: str | None = None

    @property
    def settled(self) -> bool:
        return self.status in (StepStatus.DONE, StepStatus.SKIPPED)


class LaunchRecord(BaseModel):
    """State of one token launch; serializable, so it can be persisted
    by the caller and resumed later.
    """
    mint: str
    name: str
    symbol: str
    decimals: int
    initial_supply: int = 0
    extension: ExtensionKind
    hook_program: str
    metadata_uri: str
    steps: list[StepRecord]

    def step(self, step: LaunchStep) -> StepRecord:
        for record in self.steps:
            if record.step == step:
                return record
        raise KeyError(step)

    @property
    def is_complete(self) -> bool:
        return all(record.settled for record in self.steps)

    @property
    def next_step(self) -> StepRecord | None:
        for record in self.steps:
            if not record.settled:
                return record
        return None


def metadata_data_uri(name: str, symbol: str, extension: ExtensionKind, description: str = "") -> str:
    """Self-contained ``data:`` URI holding the token's JSON metadata."""
    document = {"name": name, "symbol": symbol, "extension": extension.value}
    if description:
        document["description"] = description
    encoded = base64.b64encode(json.dumps(document, separators=(",", ":")).encode()).decode()
    return f"data:application/json;base64,{encoded}"


class LaunchOrchestrator:
    def __init__(self, ctx: ClusterContext):
        self.ctx = ctx
        self.query = LedgerQuery(ctx.rpc, ctx.programs)
        self.workflow = RegistryWorkflow(ctx)

    def plan(
        self,
        mint: Pubkey,
        name: str,
        symbol: str,
        decimals: int,
        extension: ExtensionKind | str,
        initial_supply: int = 0,
        custom_program_id: Pubkey | str | None = None,
        description: str = "",
        metadata_uri: Optional[str] = None,
    ) -> LaunchRecord:
        """Validate the request and lay out the steps. Nothing is sent."""
        if not name.strip() or not symbol.strip():
            raise InvalidArgument("Token name and symbol are required")
        if not 0 <= decimals <= 9:
            raise InvalidArgument(f"Decimals must be within 0-9, got {decimals}")
        if initial_supply < 0:
            raise InvalidArgument("Initial supply cannot be negative")
        template = get_template(extension)
        hook_program = resolve_hook_program(template.kind, custom_program_id)
        uri = metadata_uri or metadata_data_uri(name, symbol, template.kind, description)
        ensure_max_len(uri, MAX_METADATA_URI_LEN, "metadata_uri")

        steps = [StepRecord(step=LaunchStep.CREATE_MINT)]
        if template.requires_extra_account_metas:
            steps.append(StepRecord(step=LaunchStep.INIT_EXTRA_METAS))
        else:
            steps.append(StepRecord(
                step=LaunchStep.INIT_EXTRA_METAS,
                status=StepStatus.SKIPPED,
                note="hook needs no extra accounts",
            ))
        steps.append(StepRecord(step=LaunchStep.SUBMIT_HOOK))
        return LaunchRecord(
            mint=str(as_address(mint)),
            name=name.strip(),
            symbol=symbol.strip().upper(),
            decimals=decimals,
            initial_supply=initial_supply,
            extension=template.kind,
            hook_program=str(hook_program),
            metadata_uri=uri,
            steps=steps,
        )

    async def run(self, record: LaunchRecord, mint_keypair: Optional[Keypair] = None) -> LaunchRecord:
        """Execute outstanding steps in order, stopping at the first failure.

        The failure is recorded on its step (status, error kind and whether
        a retry can help) and the record is returned.
        """
        mint = Pubkey.from_string(record.mint)
        if mint_keypair is not None and mint_keypair.pubkey() != mint:
            raise InvalidArgument("Mint keypair does not match the planned mint")

        for step in record.steps:
            if step.settled:
                continue
            try:
                if await self._reconcile(record, step):
                    continue
            except HookRegistryError as exc:
                self._record_failure(step, exc, StepStatus.FAILED)
                break
            step.attempts += 1
            try:
                step.signature = await self._execute(record, step, mint_keypair)
            except AlreadySubmitted as exc:
                step.status = StepStatus.SKIPPED
                step.note = str(exc)
                continue
            except Unconfirmed as exc:
                self._record_failure(step, exc, StepStatus.UNCONFIRMED)
                step.signature = str(exc.signature)
                break
            except HookRegistryError as exc:
                self._record_failure(step, exc, StepStatus.FAILED)
                break
            step.status = StepStatus.DONE
            step.error = step.error_kind = step.retry_safe = None
            logger.info("launch %s: %s done (%s)", record.symbol, step.step.value, step.signature)
        return record

    @staticmethod
    def _record_failure(step: StepRecord, exc: HookRegistryError, status: StepStatus) -> None:
        step.status = status
        step.error = str(exc)
        step.error_kind = exc.kind
        step.retry_safe = exc.retry_safe
        logger.warning("launch step %s %s: %s", step.step.value, status.value, exc)

    async def _reconcile(self, record: LaunchRecord, step: StepRecord) -> bool:
        """Mark *step* done when its effect is already on chain."""
        mint = Pubkey.from_string(record.mint)
        hook_program = Pubkey.from_string(record.hook_program)
        if step.step is LaunchStep.CREATE_MINT:
            info = await self.query.mint(mint)
            landed = info is not None and info.hook_program == hook_program
        elif step.step is LaunchStep.INIT_EXTRA_METAS:
            landed = await self.query.extra_account_metas(hook_program, mint) is not None
        else:
            landed = await self.query.submission(hook_program) is not None
            if landed and step.status is StepStatus.PENDING:
                # Submitted by an earlier launch of the same hook.
                step.status = StepStatus.SKIPPED
                step.note = "hook already submitted"
                return True
        if landed:
            step.status = StepStatus.DONE
            step.error = step.error_kind = step.retry_safe = None
            logger.info("launch %s: %s found on chain", record.symbol, step.step.value)
        return landed

    async def _execute(
        self,
        record: LaunchRecord,
        step: StepRecord,
        mint_keypair: Optional[Keypair],
    ) -> str:
        mint = Pubkey.from_string(record.mint)
        hook_program = Pubkey.from_string(record.hook_program)
        payer = self.ctx.payer
        programs = self.ctx.programs

        if step.step is LaunchStep.CREATE_MINT:
            if mint_keypair is None:
                raise InvalidArgument("Creating the mint requires the mint keypair")
            rent = await self.ctx.rpc.get_minimum_balance_for_rent_exemption(MINT_WITH_TRANSFER_HOOK_LEN)
            calls = build_create_extension_mint(
                ExtensionDescriptor(mint, hook_program, record.decimals, record.initial_supply),
                payer, rent, programs,
            )
            signature = await self.ctx.submitter().submit(calls, co_signers=[mint_keypair])
            return str(signature)

        if step.step is LaunchStep.INIT_EXTRA_METAS:
            metas = list(get_template(record.extension).extra_account_metas)
            ix = build_initialize_extra_account_metas(mint, hook_program, payer, metas, programs)
            return str(await self.ctx.submitter().submit([ix]))

        receipt = await self.workflow.submit_hook(hook_program, record.metadata_uri)
        return str(receipt.signature)
