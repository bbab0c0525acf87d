"""
Ledger Query
Read-side views over registry, pool and token program accounts.

Every read goes to the network; absence is ``None``, and a present
account that does not decode as expected is an ``UnexpectedAccountLayout``.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

from solders.pubkey import Pubkey

from hookregistry.accounts import (
    ExtraAccountMetaList,
    GovernanceVote,
    HookSubmission,
    MintInfo,
    Pool,
    RegistryConfig,
    RiskAssessment,
    TokenBadge,
)
from hookregistry.config import ProgramIds
from hookregistry.errors import UnexpectedAccountLayout
from hookregistry.pda import (
    extra_account_metas_address,
    registry_config_address,
    risk_assessment_address,
    submission_address,
    token_badge_address,
    vote_address,
    whirlpool_address,
)
from hookregistry.rpc import AccountSnapshot, LedgerRpc

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LedgerQuery:
    def __init__(self, rpc: LedgerRpc, programs: Optional[ProgramIds] = None):
        self.rpc = rpc
        self.programs = programs or ProgramIds()

    async def account_exists(self, address: Pubkey) -> bool:
        return await self.rpc.get_account(address) is not None

    async def program_is_executable(self, program_id: Pubkey) -> bool:
        snapshot = await self.rpc.get_account(program_id)
        return snapshot is not None and snapshot.executable

    async def _snapshot(self, address: Pubkey, owners: tuple[Pubkey, ...]) -> Optional[AccountSnapshot]:
        snapshot: Optional[AccountSnapshot] = await self.rpc.get_account(address)
        if snapshot is None:
            logger.debug("account %s not found", address)
            return None
        if snapshot.owner not in owners:
            expected = " or ".join(str(owner) for owner in owners)
            raise UnexpectedAccountLayout(
                address, 0, f"owned by {snapshot.owner}, expected {expected}"
            )
        return snapshot

    async def _fetch(
        self,
        address: Pubkey,
        owner: Pubkey,
        decode: Callable[[bytes, Pubkey], T],
    ) -> Optional[T]:
        snapshot = await self._snapshot(address, (owner,))
        if snapshot is None:
            return None
        return decode(snapshot.data, address)

    # -- registry -----------------------------------------------------------

    async def registry_config(self) -> Optional[RegistryConfig]:
        address, _ = registry_config_address(self.programs.registry)
        return await self._fetch(address, self.programs.registry, RegistryConfig.unpack)

    async def submission(self, hook_program_id: Pubkey) -> Optional[HookSubmission]:
        address, _ = submission_address(self.programs.registry, hook_program_id)
        return await self._fetch(address, self.programs.registry, HookSubmission.unpack)

    async def risk_assessment(self, hook_program_id: Pubkey) -> Optional[RiskAssessment]:
        submission, _ = submission_address(self.programs.registry, hook_program_id)
        address, _ = risk_assessment_address(self.programs.registry, submission)
        return await self._fetch(address, self.programs.registry, RiskAssessment.unpack)

    async def vote(self, hook_program_id: Pubkey, voter: Pubkey) -> Optional[GovernanceVote]:
        submission, _ = submission_address(self.programs.registry, hook_program_id)
        address, _ = vote_address(self.programs.registry, submission, voter)
        return await self._fetch(address, self.programs.registry, GovernanceVote.unpack)

    # -- pool program -------------------------------------------------------

    async def token_badge(self, mint: Pubkey, whirlpools_config: Optional[Pubkey] = None) -> Optional[TokenBadge]:
        config = whirlpools_config or self.programs.whirlpools_config
        address, _ = token_badge_address(self.programs.whirlpool, config, mint)
        return await self._fetch(address, self.programs.whirlpool, TokenBadge.unpack)

    async def pool(self, mint_a: Pubkey, mint_b: Pubkey, fee_tier: int) -> Optional[Pool]:
        address, _ = whirlpool_address(self.programs.whirlpool, mint_a, mint_b, fee_tier)
        return await self._fetch(address, self.programs.whirlpool, Pool.unpack)

    # -- token programs ------------------------------------------------------

    async def mint(self, mint: Pubkey) -> Optional[MintInfo]:
        """A Token-2022 or legacy SPL mint, tagged with its owning program."""
        snapshot = await self._snapshot(mint, self.programs.token_programs)
        if snapshot is None:
            return None
        return MintInfo.unpack(snapshot.data, mint, snapshot.owner)

    async def extra_account_metas(self, hook_program: Pubkey, mint: Pubkey) -> Optional[ExtraAccountMetaList]:
        address, _ = extra_account_metas_address(hook_program, mint)
        return await self._fetch(address, hook_program, ExtraAccountMetaList.unpack)
