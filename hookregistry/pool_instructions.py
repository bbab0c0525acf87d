"""
Pool Instruction Builders
Liquidity pool creation and extension-aware swaps.

The pool program takes a one-byte discriminator. Pool vaults are the
associated token accounts of the pool address itself. A swap touching a
mint with a transfer hook must carry, for each such mint, the hook
program, its extra-account-meta list and every account that list
resolves to.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, localcontext
from typing import Optional, Sequence, Union

from borsh_construct import U16, U64, U128, CStruct
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from hookregistry.codec import BOOL, build
from hookregistry.config import ProgramIds
from hookregistry.errors import InvalidArgument
from hookregistry.pda import (
    associated_token_address,
    extra_account_metas_address,
    token_badge_address,
    whirlpool_address,
)

IX_CREATE_POOL = 0
IX_SWAP = 1

Q64 = 1 << 64
MAX_SQRT_PRICE_X64 = 79226673515401279992447579055
MIN_SQRT_PRICE_X64 = 4295048016

CreatePoolLayout = CStruct(
    "fee_tier" / U16,
    "initial_sqrt_price" / U128,
)

SwapLayout = CStruct(
    "amount" / U64,
    "other_amount_threshold" / U64,
    "a_to_b" / BOOL,
)

TokenPrograms = tuple[Pubkey, Pubkey]


def canonical_mints(mint_a: Pubkey, mint_b: Pubkey) -> tuple[Pubkey, Pubkey]:
    """Order two mints by their raw bytes; identical mints are rejected."""
    if mint_a == mint_b:
        raise InvalidArgument("Pool mints must be distinct")
    if bytes(mint_a) < bytes(mint_b):
        return mint_a, mint_b
    return mint_b, mint_a


def price_to_sqrt_price_x64(
    price: Union[Decimal, float, str, int],
    decimals_a: int,
    decimals_b: int,
) -> int:
    """Human price of A in B to the pool's Q64.64 square-root price."""
    with localcontext() as ctx:
        ctx.prec = 60
        value = Decimal(str(price))
        if value <= 0:
            raise InvalidArgument(f"Price must be positive, got {price}")
        scaled = value.scaleb(decimals_b - decimals_a)
        sqrt_price = int(scaled.sqrt() * Q64)
    if not MIN_SQRT_PRICE_X64 <= sqrt_price <= MAX_SQRT_PRICE_X64:
        raise InvalidArgument(f"Price {price} is outside the pool's range")
    return sqrt_price


def sqrt_price_x64_to_price(sqrt_price: int, decimals_a: int, decimals_b: int) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = 60
        ratio = Decimal(sqrt_price) / Q64
        return (ratio * ratio).scaleb(decimals_a - decimals_b)


def _token_programs(programs: ProgramIds, token_programs: Optional[TokenPrograms]) -> TokenPrograms:
    if token_programs is None:
        return programs.token, programs.token
    return token_programs


def pool_vaults(
    pool: Pubkey,
    mint_a: Pubkey,
    mint_b: Pubkey,
    programs: ProgramIds,
    token_programs: Optional[TokenPrograms] = None,
) -> tuple[Pubkey, Pubkey]:
    """Each vault lives under its own mint's token program."""
    token_a, token_b = _token_programs(programs, token_programs)
    return (
        associated_token_address(pool, mint_a, token_a, programs.associated_token),
        associated_token_address(pool, mint_b, token_b, programs.associated_token),
    )


# ---------------------------------------------------------------------------
# create-liquidity-pool
# ---------------------------------------------------------------------------

def build_create_pool(
    programs: ProgramIds,
    funder: Pubkey,
    mint_a: Pubkey,
    mint_b: Pubkey,
    fee_tier: int,
    initial_sqrt_price: int,
    token_programs: Optional[TokenPrograms] = None,
) -> tuple[Instruction, Pubkey]:
    """Returns ``(instruction, pool_address)``.

    Accounts: whirlpools_config, mint_a, mint_b, badge_a, badge_b,
    funder(s,w), pool(w), vault_a(w), vault_b(w), token program a, token
    program b, system program, associated token program.
    """
    if (mint_a, mint_b) != canonical_mints(mint_a, mint_b):
        raise InvalidArgument("Pool mints must be in canonical order (mint_a < mint_b)")
    if not MIN_SQRT_PRICE_X64 <= initial_sqrt_price <= MAX_SQRT_PRICE_X64:
        raise InvalidArgument(f"Initial sqrt price out of range: {initial_sqrt_price}")

    config = programs.whirlpools_config
    pool, _ = whirlpool_address(programs.whirlpool, mint_a, mint_b, fee_tier)
    badge_a, _ = token_badge_address(programs.whirlpool, config, mint_a)
    badge_b, _ = token_badge_address(programs.whirlpool, config, mint_b)
    token_a, token_b = _token_programs(programs, token_programs)
    vault_a, vault_b = pool_vaults(pool, mint_a, mint_b, programs, (token_a, token_b))
    data = bytes([IX_CREATE_POOL]) + build(CreatePoolLayout, {
        "fee_tier": fee_tier,
        "initial_sqrt_price": initial_sqrt_price,
    }, "create pool")
    accounts = [
        AccountMeta(config, False, False),
        AccountMeta(mint_a, False, False),
        AccountMeta(mint_b, False, False),
        AccountMeta(badge_a, False, False),
        AccountMeta(badge_b, False, False),
        AccountMeta(funder, True, True),
        AccountMeta(pool, False, True),
        AccountMeta(vault_a, False, True),
        AccountMeta(vault_b, False, True),
        AccountMeta(token_a, False, False),
        AccountMeta(token_b, False, False),
        AccountMeta(programs.system, False, False),
        AccountMeta(programs.associated_token, False, False),
    ]
    return Instruction(programs.whirlpool, data, accounts), pool


# ---------------------------------------------------------------------------
# execute-extension-aware-swap
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HookAccounts:
    """Resolved transfer-hook accounts for one side of a swap."""
    mint: Pubkey
    hook_program: Pubkey
    extra_accounts: tuple[AccountMeta, ...] = field(default_factory=tuple)

    def metas(self) -> list[AccountMeta]:
        metas_address, _ = extra_account_metas_address(self.hook_program, self.mint)
        return [
            AccountMeta(self.hook_program, False, False),
            AccountMeta(metas_address, False, False),
            *self.extra_accounts,
        ]


def build_swap(
    programs: ProgramIds,
    authority: Pubkey,
    pool: Pubkey,
    mint_a: Pubkey,
    mint_b: Pubkey,
    amount: int,
    other_amount_threshold: int,
    a_to_b: bool,
    hooks: Sequence[HookAccounts] = (),
    owner_accounts: Optional[tuple[Pubkey, Pubkey]] = None,
    token_programs: Optional[TokenPrograms] = None,
) -> Instruction:
    """Accounts: token program a, token program b, authority(s), pool(w),
    mint_a, mint_b, owner_a(w), vault_a(w), owner_b(w), vault_b(w), then per
    hook-bearing mint (a before b): hook program, extra-metas list, resolved
    extras.
    """
    if amount <= 0:
        raise InvalidArgument("Swap amount must be positive")
    if other_amount_threshold < 0:
        raise InvalidArgument("Other amount threshold cannot be negative")
    token_a, token_b = _token_programs(programs, token_programs)
    if owner_accounts is None:
        owner_accounts = (
            associated_token_address(authority, mint_a, token_a, programs.associated_token),
            associated_token_address(authority, mint_b, token_b, programs.associated_token),
        )
    owner_a, owner_b = owner_accounts
    vault_a, vault_b = pool_vaults(pool, mint_a, mint_b, programs, (token_a, token_b))

    data = bytes([IX_SWAP]) + build(SwapLayout, {
        "amount": amount,
        "other_amount_threshold": other_amount_threshold,
        "a_to_b": a_to_b,
    }, "swap")
    accounts = [
        AccountMeta(token_a, False, False),
        AccountMeta(token_b, False, False),
        AccountMeta(authority, True, False),
        AccountMeta(pool, False, True),
        AccountMeta(mint_a, False, False),
        AccountMeta(mint_b, False, False),
        AccountMeta(owner_a, False, True),
        AccountMeta(vault_a, False, True),
        AccountMeta(owner_b, False, True),
        AccountMeta(vault_b, False, True),
    ]
    order = {mint_a: 0, mint_b: 1}
    for hook in sorted(hooks, key=lambda h: order.get(h.mint, 2)):
        if hook.mint not in order:
            raise InvalidArgument(f"Hook accounts given for {hook.mint}, which is not in the pool")
        accounts.extend(hook.metas())
    return Instruction(programs.whirlpool, data, accounts)
