"""
In-memory ledger implementing the RPC boundary.

Transactions are decoded from their wire bytes, signature-checked and
executed atomically against a dict of accounts. The registry, system,
Token-2022, associated-token, transfer-hook and pool programs are
simulated from their decoded instructions, including the account
addresses each one expects, so builder mistakes surface as rejections.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Any, Optional

from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from hookregistry.accounts import (
    ExtraAccountMetaList,
    GovernanceVote,
    HookSubmission,
    MintInfo,
    Pool,
    RegistryConfig,
    RiskAssessment,
    TokenBadge,
    TransferHookExtension,
)
from hookregistry.codec import PUBKEY, Reader
from hookregistry.config import ProgramIds
from hookregistry.errors import REGISTRY_ERROR_CODES, SYSTEM_ACCOUNT_ALREADY_IN_USE, TransactionRejected
from hookregistry.instructions import (
    ApprovalStatus,
    AssessHookRiskArgs,
    AutoApproveTokenBadgeArgs,
    CastVoteArgs,
    FinalizeArgs,
    InitializeRegistryArgs,
    SubmitHookArgs,
    UpdateHookStatusArgs,
    decode_registry_instruction,
)
from hookregistry.pda import (
    associated_token_address,
    config_extension_address,
    extra_account_metas_address,
    registry_config_address,
    risk_assessment_address,
    submission_address,
    token_badge_address,
    vote_address,
    whirlpool_address,
)
from hookregistry.pool_instructions import IX_CREATE_POOL, IX_SWAP, pool_vaults
from hookregistry.rpc import AccountSnapshot, Anchor, CommitStatus
from hookregistry.token_instructions import (
    ATA_CREATE_IDEMPOTENT,
    BASE_ACCOUNT_LEN,
    INITIALIZE_EXTRA_METAS_DISCRIMINATOR,
    IX_INITIALIZE_MINT2,
    IX_MINT_TO_CHECKED,
    IX_TRANSFER_HOOK_EXTENSION,
    ExtraAccountMeta,
)

CONSTRAINT_SEEDS = 2006
MISSING_REQUIRED_SIGNATURE = 2003
POOL_TOKEN_BADGE_REQUIRED = 6100
POOL_NOT_FOUND = 6101
POOL_TOKEN_PROGRAM_MISMATCH = 6102
BLOCKHASH_LIFETIME = 150


class ProgramFailure(Exception):
    def __init__(self, code: int):
        self.code = code
        super().__init__(code)


def _registry_error(name: str) -> ProgramFailure:
    return ProgramFailure(REGISTRY_ERROR_CODES[name])


@dataclass
class _Call:
    program_id: Pubkey
    accounts: list[Pubkey]
    data: bytes
    signers: set


class FakeLedger:
    def __init__(self, programs: Optional[ProgramIds] = None, now: int = 1_700_000_000):
        self.programs = programs or ProgramIds()
        self.now = now
        self.block_height = 1_000
        self.accounts: dict[Pubkey, AccountSnapshot] = {}
        self.statuses: dict[Signature, CommitStatus] = {}
        self.sent: list[Transaction] = []
        self.swaps: list[list[Pubkey]] = []
        # knobs
        self.preflight = False
        self.stall = False
        self.blocks_per_poll = 0
        self.pending_polls = 0
        self.apply_before_stall = True
        self.rpc_calls: list[str] = []
        for program in (self.programs.registry, self.programs.whirlpool, self.programs.token,
                        self.programs.legacy_token, self.programs.associated_token, self.programs.system):
            self.add_program(program)

    # -- test helpers -------------------------------------------------------

    def clock(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds

    def add_program(self, program_id: Pubkey) -> None:
        self.accounts[program_id] = AccountSnapshot(
            program_id, b"", Pubkey.from_string("BPFLoaderUpgradeab1e11111111111111111111111"),
            1, executable=True,
        )

    def put(self, address: Pubkey, data: bytes, owner: Pubkey, lamports: int = 1_000_000) -> None:
        self.accounts[address] = AccountSnapshot(address, bytes(data), owner, lamports)

    def count_sent(self) -> int:
        return len(self.sent)

    # -- LedgerRpc ------------------------------------------------------------

    async def get_latest_anchor(self) -> Anchor:
        await asyncio.sleep(0)
        self.rpc_calls.append("get_latest_anchor")
        return Anchor(Hash.new_unique(), self.block_height + BLOCKHASH_LIFETIME)

    async def get_account(self, address: Pubkey) -> Optional[AccountSnapshot]:
        await asyncio.sleep(0)
        self.rpc_calls.append("get_account")
        return self.accounts.get(address)

    async def get_block_height(self) -> int:
        await asyncio.sleep(0)
        self.block_height += self.blocks_per_poll
        return self.block_height

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        await asyncio.sleep(0)
        return (size + 128) * 6960

    async def confirm(self, signature: Signature) -> Optional[CommitStatus]:
        await asyncio.sleep(0)
        if self.stall:
            return None
        if self.pending_polls > 0:
            self.pending_polls -= 1
            return CommitStatus("processed")
        return self.statuses.get(signature)

    async def send(self, tx_bytes: bytes) -> Signature:
        await asyncio.sleep(0)
        tx = Transaction.from_bytes(tx_bytes)
        signature = tx.signatures[0]
        if not all(tx.verify_with_results()):
            raise TransactionRejected("SignatureFailure", signature=signature)
        self.sent.append(tx)
        err = None
        if not self.stall or self.apply_before_stall:
            err = self._execute(tx)
        if err is not None and self.preflight:
            raise TransactionRejected(err, ["Program log: simulated failure"])
        self.statuses[signature] = CommitStatus("finalized", err, self.block_height)
        return signature

    # -- execution ------------------------------------------------------------

    def _execute(self, tx: Transaction) -> Any:
        message = tx.message
        keys = list(message.account_keys)
        signers = set(keys[: message.header.num_required_signatures])
        snapshot = dict(self.accounts)
        for index, compiled in enumerate(message.instructions):
            call = _Call(
                program_id=keys[compiled.program_id_index],
                accounts=[keys[i] for i in bytes(compiled.accounts)],
                data=bytes(compiled.data),
                signers=signers,
            )
            try:
                self._dispatch(call)
            except ProgramFailure as failure:
                self.accounts = snapshot
                return {"InstructionError": [index, {"Custom": failure.code}]}
        return None

    def _dispatch(self, call: _Call) -> None:
        programs = self.programs
        if call.program_id == programs.system:
            self._system(call)
        elif call.program_id in programs.token_programs:
            self._token(call)
        elif call.program_id == programs.associated_token:
            self._associated_token(call)
        elif call.program_id == programs.registry:
            self._registry(call)
        elif call.program_id == programs.whirlpool:
            self._pool(call)
        elif call.data[:8] == INITIALIZE_EXTRA_METAS_DISCRIMINATOR:
            self._hook(call)
        else:
            raise ProgramFailure(1)

    @staticmethod
    def _expect(actual: Pubkey, expected: Pubkey) -> None:
        if actual != expected:
            raise ProgramFailure(CONSTRAINT_SEEDS)

    @staticmethod
    def _require_signer(call: _Call, key: Pubkey) -> None:
        if key not in call.signers:
            raise ProgramFailure(MISSING_REQUIRED_SIGNATURE)

    def _create(self, address: Pubkey, data: bytes, owner: Pubkey) -> None:
        if address in self.accounts:
            raise ProgramFailure(SYSTEM_ACCOUNT_ALREADY_IN_USE)
        self.put(address, data, owner)

    def _write(self, address: Pubkey, data: bytes) -> None:
        self.accounts[address] = replace(self.accounts[address], data=bytes(data))

    # -- system / token programs ---------------------------------------------

    def _system(self, call: _Call) -> None:
        r = Reader(call.data)
        if r.read_u32() != 0:
            raise ProgramFailure(1)
        lamports = r.read_u64()
        space = r.read_u64()
        owner = r.read_pubkey()
        payer, new = call.accounts[:2]
        self._require_signer(call, payer)
        self._require_signer(call, new)
        if new in self.accounts:
            raise ProgramFailure(SYSTEM_ACCOUNT_ALREADY_IN_USE)
        self.put(new, bytes(space), owner, lamports)

    def _token(self, call: _Call) -> None:
        mint = call.accounts[0]
        account = self.accounts.get(mint)
        if account is None or account.owner != call.program_id:
            raise ProgramFailure(3)
        opcode = call.data[0]
        if opcode == IX_TRANSFER_HOOK_EXTENSION:
            authority, program = call.data[2:34], call.data[34:66]
            info = MintInfo(None, 0, 0, False, None, TransferHookExtension(
                Pubkey(authority) if any(authority) else None, Pubkey(program),
            ))
            self._write(mint, info.pack())
        elif opcode == IX_INITIALIZE_MINT2:
            r = Reader(call.data, 1)
            decimals = r.read_u8()
            authority = r.read_pubkey()
            freeze = r.read_option(PUBKEY)
            hook = MintInfo.unpack(account.data).transfer_hook if any(account.data) else None
            self._write(mint, MintInfo(authority, 0, decimals, True, freeze, hook).pack())
        elif opcode == IX_MINT_TO_CHECKED:
            r = Reader(call.data, 1)
            amount = r.read_u64()
            info = MintInfo.unpack(account.data)
            self._require_signer(call, call.accounts[2])
            info.supply += amount
            self._write(mint, info.pack())
        else:
            raise ProgramFailure(12)

    def _associated_token(self, call: _Call) -> None:
        if call.data != bytes([ATA_CREATE_IDEMPOTENT]):
            raise ProgramFailure(1)
        funder, ata, owner, mint, _, token_program = call.accounts[:6]
        self._require_signer(call, funder)
        self._expect(ata, associated_token_address(
            owner, mint, token_program, self.programs.associated_token))
        if ata not in self.accounts:
            self.put(ata, bytes(BASE_ACCOUNT_LEN), token_program)

    def _hook(self, call: _Call) -> None:
        metas_address, mint, authority = call.accounts[:3]
        self._expect(metas_address, extra_account_metas_address(call.program_id, mint)[0])
        self._require_signer(call, authority)
        r = Reader(call.data, 8)
        count = r.read_u32()
        metas = [ExtraAccountMeta.read(r) for _ in range(count)]
        self._create(metas_address, ExtraAccountMetaList(metas).pack(), call.program_id)

    # -- registry program ----------------------------------------------------

    def _load(self, address: Pubkey, layout):
        account = self.accounts.get(address)
        if account is None:
            return None
        return layout.unpack(account.data)

    def _registry(self, call: _Call) -> None:
        args = decode_registry_instruction(call.data)
        registry = self.programs.registry
        config_address, config_bump = registry_config_address(registry)
        accounts = call.accounts

        if isinstance(args, InitializeRegistryArgs):
            self._expect(accounts[0], config_address)
            self._require_signer(call, accounts[1])
            self._create(config_address, RegistryConfig(
                args.authority, args.governance_threshold_bps, args.review_period_seconds,
                args.max_risk_score, bump=config_bump,
            ).pack(), registry)
            return

        if isinstance(args, SubmitHookArgs):
            self._expect(accounts[0], config_address)
            config = self._load(config_address, RegistryConfig)
            if config is None:
                raise _registry_error("RegistryNotInitialized")
            address, bump = submission_address(registry, args.program_id)
            self._expect(accounts[1], address)
            self._require_signer(call, accounts[2])
            self._expect(accounts[4], args.program_id)
            program = self.accounts.get(args.program_id)
            if program is None or not program.executable:
                raise _registry_error("ProgramNotExecutable")
            self._create(address, HookSubmission(
                program_id=args.program_id,
                submitter=accounts[2],
                status=ApprovalStatus.PENDING,
                submitted_at=self.now,
                review_ends_at=self.now + config.review_period_seconds,
                last_updated_at=self.now,
                metadata_uri=args.metadata_uri,
                governance_proposal_id=args.governance_proposal_id,
                bump=bump,
            ).pack(), registry)
            config.total_submissions += 1
            self._write(config_address, config.pack())
            return

        if isinstance(args, AssessHookRiskArgs):
            hook_program = accounts[2]
            address, _ = submission_address(registry, hook_program)
            self._expect(accounts[0], address)
            assessment_address, bump = risk_assessment_address(registry, address)
            self._expect(accounts[1], assessment_address)
            self._require_signer(call, accounts[3])
            submission = self._load(address, HookSubmission)
            if submission is None:
                raise _registry_error("SubmissionNotFound")
            if submission.status not in (ApprovalStatus.PENDING, ApprovalStatus.UNDER_REVIEW):
                raise _registry_error("InvalidStatusTransition")
            submission.risk_score = args.risk_score
            submission.automated_checks_passed = args.automated_checks_passed
            submission.last_updated_at = self.now
            self._write(address, submission.pack())
            assessment = RiskAssessment(
                address, args.risk_score, args.flags, self.now, accounts[3],
                args.notes, args.risk_score > 60, bump,
            ).pack()
            if assessment_address in self.accounts:
                self._write(assessment_address, assessment)
            else:
                self._create(assessment_address, assessment, registry)
            return

        if isinstance(args, CastVoteArgs):
            submission = self._load(accounts[0], HookSubmission)
            if submission is None:
                raise _registry_error("SubmissionNotFound")
            self._expect(accounts[0], submission_address(registry, submission.program_id)[0])
            voter = accounts[2]
            self._require_signer(call, voter)
            address, bump = vote_address(registry, accounts[0], voter)
            self._expect(accounts[1], address)
            if submission.status is not ApprovalStatus.UNDER_REVIEW:
                raise _registry_error("InvalidStatusTransition")
            if self.now >= submission.review_ends_at:
                raise _registry_error("ReviewPeriodEnded")
            self._create(address, GovernanceVote(
                accounts[0], voter, args.vote, 1, self.now, args.rationale, bump,
            ).pack(), registry)
            if args.vote:
                submission.votes_for += 1
            else:
                submission.votes_against += 1
            self._write(accounts[0], submission.pack())
            return

        if isinstance(args, FinalizeArgs):
            self._expect(accounts[0], config_address)
            config = self._load(config_address, RegistryConfig)
            submission = self._load(accounts[1], HookSubmission)
            if submission is None:
                raise _registry_error("SubmissionNotFound")
            self._expect(accounts[2], risk_assessment_address(registry, accounts[1])[0])
            self._require_signer(call, accounts[3])
            if self.now < submission.review_ends_at:
                raise _registry_error("ReviewPeriodNotEnded")
            if submission.status is not ApprovalStatus.UNDER_REVIEW:
                raise _registry_error("InvalidStatusTransition")
            total = submission.votes_for + submission.votes_against
            approved = (
                total > 0
                and submission.votes_for / total >= config.governance_threshold_bps / 10_000
                and submission.automated_checks_passed
                and submission.risk_score < config.max_risk_score
            )
            submission.status = ApprovalStatus.APPROVED if approved else ApprovalStatus.REJECTED
            submission.last_updated_at = self.now
            self._write(accounts[1], submission.pack())
            if approved:
                config.total_approved += 1
                self._write(config_address, config.pack())
            return

        if isinstance(args, UpdateHookStatusArgs):
            self._expect(accounts[0], config_address)
            config = self._load(config_address, RegistryConfig)
            self._require_signer(call, accounts[2])
            if accounts[2] != config.authority:
                raise _registry_error("Unauthorized")
            submission = self._load(accounts[1], HookSubmission)
            if submission is None:
                raise _registry_error("SubmissionNotFound")
            allowed = {
                ApprovalStatus.UNDER_REVIEW: ApprovalStatus.PENDING,
                ApprovalStatus.SUSPENDED: ApprovalStatus.APPROVED,
            }
            if allowed.get(args.new_status) is not submission.status:
                raise _registry_error("InvalidStatusTransition")
            submission.status = args.new_status
            submission.last_updated_at = self.now
            self._write(accounts[1], submission.pack())
            return

        if isinstance(args, AutoApproveTokenBadgeArgs):
            submission = self._load(accounts[0], HookSubmission)
            if submission is None:
                raise _registry_error("SubmissionNotFound")
            self._expect(accounts[1], args.token_mint)
            self._expect(accounts[2], args.whirlpools_config)
            badge, _ = token_badge_address(self.programs.whirlpool, args.whirlpools_config, args.token_mint)
            self._expect(accounts[3], badge)
            self._expect(accounts[4], config_extension_address(
                self.programs.whirlpool, args.whirlpools_config)[0])
            self._require_signer(call, accounts[5])
            self._require_signer(call, accounts[6])
            if submission.status is not ApprovalStatus.APPROVED:
                raise _registry_error("HookNotApproved")
            mint = self._load(args.token_mint, MintInfo)
            if mint is None or mint.hook_program is None:
                raise _registry_error("NoTransferHookExtension")
            if mint.hook_program != submission.program_id:
                raise _registry_error("IncompatibleHook")
            self._create(badge, TokenBadge(args.whirlpools_config, args.token_mint).pack(),
                         self.programs.whirlpool)
            return

        raise ProgramFailure(101)

    # -- pool program --------------------------------------------------------

    def _pool(self, call: _Call) -> None:
        r = Reader(call.data)
        opcode = r.read_u8()
        whirlpool = self.programs.whirlpool
        if opcode == IX_CREATE_POOL:
            fee_tier = r.read_u16()
            sqrt_price = r.read_u128()
            config, mint_a, mint_b, badge_a, badge_b, funder, pool = call.accounts[:7]
            vault_a, vault_b, token_a, token_b = call.accounts[7:11]
            self._require_signer(call, funder)
            address, bump = whirlpool_address(whirlpool, mint_a, mint_b, fee_tier)
            self._expect(pool, address)
            for mint, badge, token_program in ((mint_a, badge_a, token_a), (mint_b, badge_b, token_b)):
                self._expect(badge, token_badge_address(whirlpool, config, mint)[0])
                account = self.accounts.get(mint)
                if account is None or account.owner != token_program:
                    raise ProgramFailure(POOL_TOKEN_PROGRAM_MISMATCH)
                info = self._load(mint, MintInfo)
                if info.hook_program is not None and badge not in self.accounts:
                    raise ProgramFailure(POOL_TOKEN_BADGE_REQUIRED)
            self._create(pool, Pool(mint_a, mint_b, fee_tier, sqrt_price, 0, bump).pack(), whirlpool)
            expected_vaults = pool_vaults(pool, mint_a, mint_b, self.programs, (token_a, token_b))
            for vault, expected, token_program in zip((vault_a, vault_b), expected_vaults, (token_a, token_b)):
                self._expect(vault, expected)
                self.put(vault, bytes(BASE_ACCOUNT_LEN), token_program)
        elif opcode == IX_SWAP:
            pool = call.accounts[3]
            if pool not in self.accounts:
                raise ProgramFailure(POOL_NOT_FOUND)
            self._require_signer(call, call.accounts[2])
            self.swaps.append(list(call.accounts))
        else:
            raise ProgramFailure(101)
