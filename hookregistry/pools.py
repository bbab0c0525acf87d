"""
Pool Workflow
Creating liquidity pools for extension-bearing tokens and swapping
through them.

A mint carrying a transfer hook is only accepted by the pool program once
it holds a token badge, which the registry issues for approved hooks.
Swaps resolve each hook's extra accounts from the chain at call time.
The other side of a pool may be a legacy token mint such as wrapped SOL;
each mint's vault lives under whichever token program owns it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from solders.pubkey import Pubkey
from solders.signature import Signature

from hookregistry.accounts import MintInfo, Pool
from hookregistry.context import ClusterContext
from hookregistry.errors import BadgeRequired, InvalidArgument
from hookregistry.pda import associated_token_address, extra_account_metas_address, whirlpool_address
from hookregistry.pool_instructions import (
    HookAccounts,
    build_create_pool,
    build_swap,
    canonical_mints,
    pool_vaults,
    price_to_sqrt_price_x64,
)
from hookregistry.query import LedgerQuery
from hookregistry.token_instructions import resolve_extra_accounts

logger = logging.getLogger(__name__)

DEFAULT_FEE_TIER = 64


@dataclass(frozen=True)
class PoolReceipt:
    pool: Pubkey
    mint_a: Pubkey
    mint_b: Pubkey
    signature: Optional[Signature] = None
    already_done: bool = False


class PoolWorkflow:
    def __init__(self, ctx: ClusterContext):
        self.ctx = ctx
        self.query = LedgerQuery(ctx.rpc, ctx.programs)

    async def _require_mint(self, mint: Pubkey) -> MintInfo:
        info = await self.query.mint(mint)
        if info is None:
            raise InvalidArgument(f"Mint {mint} does not exist")
        return info

    async def _require_badge_if_hooked(self, mint: Pubkey, info: MintInfo) -> None:
        if info.hook_program is None:
            return
        if await self.query.token_badge(mint) is None:
            raise BadgeRequired(mint, info.hook_program)

    async def create_pool(
        self,
        mint_x: Pubkey,
        mint_y: Pubkey,
        price: Union[Decimal, float, str],
        fee_tier: int = DEFAULT_FEE_TIER,
    ) -> PoolReceipt:
        """Create the pool for two mints at *price* (units of *mint_y* per
        *mint_x*). Mints are reordered canonically and the price inverted
        to match.
        """
        mint_a, mint_b = canonical_mints(mint_x, mint_y)
        price = Decimal(str(price))
        if price <= 0:
            raise InvalidArgument(f"Price must be positive, got {price}")
        if mint_a != mint_x:
            price = 1 / price

        info_a = await self._require_mint(mint_a)
        info_b = await self._require_mint(mint_b)
        await self._require_badge_if_hooked(mint_a, info_a)
        await self._require_badge_if_hooked(mint_b, info_b)

        pool, _ = whirlpool_address(self.ctx.programs.whirlpool, mint_a, mint_b, fee_tier)
        if await self.query.account_exists(pool):
            return PoolReceipt(pool, mint_a, mint_b, already_done=True)

        sqrt_price = price_to_sqrt_price_x64(price, info_a.decimals, info_b.decimals)
        ix, pool = build_create_pool(
            self.ctx.programs, self.ctx.payer, mint_a, mint_b, fee_tier, sqrt_price,
            (info_a.token_program, info_b.token_program),
        )
        signature = await self.ctx.submitter().submit([ix])
        logger.info("pool %s created for %s / %s", pool, mint_a, mint_b)
        return PoolReceipt(pool, mint_a, mint_b, signature)

    async def _hook_accounts(
        self,
        mint: Pubkey,
        info: MintInfo,
        source: Pubkey,
        destination: Pubkey,
        owner: Pubkey,
    ) -> Optional[HookAccounts]:
        hook_program = info.hook_program
        if hook_program is None:
            return None
        meta_list = await self.query.extra_account_metas(hook_program, mint)
        if meta_list is None:
            raise InvalidArgument(f"Extra account metas for {mint} are not initialized")
        metas_address, _ = extra_account_metas_address(hook_program, mint)
        extras = resolve_extra_accounts(
            meta_list.metas, hook_program, [source, mint, destination, owner, metas_address],
        )
        return HookAccounts(mint, hook_program, tuple(extras))

    async def swap(
        self,
        mint_x: Pubkey,
        mint_y: Pubkey,
        input_mint: Pubkey,
        amount: int,
        min_amount_out: int = 0,
        fee_tier: int = DEFAULT_FEE_TIER,
    ) -> Signature:
        """Swap *amount* of *input_mint* through the pool of the two mints."""
        mint_a, mint_b = canonical_mints(mint_x, mint_y)
        if input_mint not in (mint_a, mint_b):
            raise InvalidArgument(f"{input_mint} is not one of the pool's mints")
        programs = self.ctx.programs
        pool_address, _ = whirlpool_address(programs.whirlpool, mint_a, mint_b, fee_tier)
        pool: Optional[Pool] = await self.query.pool(mint_a, mint_b, fee_tier)
        if pool is None:
            raise InvalidArgument(f"No pool for {mint_a} / {mint_b} at fee tier {fee_tier}")

        a_to_b = input_mint == mint_a
        authority = self.ctx.payer
        info_a = await self._require_mint(mint_a)
        info_b = await self._require_mint(mint_b)
        token_programs = (info_a.token_program, info_b.token_program)
        owner_a = associated_token_address(authority, mint_a, info_a.token_program, programs.associated_token)
        owner_b = associated_token_address(authority, mint_b, info_b.token_program, programs.associated_token)
        vault_a, vault_b = pool_vaults(pool_address, mint_a, mint_b, programs, token_programs)

        hooks = []
        for mint, info, owner_account, vault, inbound in (
            (mint_a, info_a, owner_a, vault_a, a_to_b),
            (mint_b, info_b, owner_b, vault_b, not a_to_b),
        ):
            if inbound:
                hook = await self._hook_accounts(mint, info, owner_account, vault, authority)
            else:
                hook = await self._hook_accounts(mint, info, vault, owner_account, pool_address)
            if hook is not None:
                hooks.append(hook)

        ix = build_swap(
            programs, authority, pool_address, mint_a, mint_b,
            amount, min_amount_out, a_to_b, hooks, (owner_a, owner_b), token_programs,
        )
        signature = await self.ctx.submitter().submit([ix])
        logger.info("swapped %d of %s in pool %s", amount, input_mint, pool_address)
        return signature
