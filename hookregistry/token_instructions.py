"""
Token-2022 Instruction Builders
Mint creation with a transfer hook extension, and the hook's
extra-account-meta registration.

These target external programs (system, Token-2022, associated token
account, transfer-hook interface), so they use each program's own
discriminators rather than the registry's one-byte scheme.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Optional, Sequence

from borsh_construct import U8, U64, CStruct, Vec
from construct import Bytes, GreedyBytes, Prefixed
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, create_account

from hookregistry.codec import (
    BOOL,
    NULLABLE_PUBKEY,
    PUBKEY,
    DataclassAdapter,
    Reader,
    StrictOption,
    build,
    field_values,
)
from hookregistry.config import ProgramIds
from hookregistry.errors import InvalidArgument
from hookregistry.pda import associated_token_address, derive, extra_account_metas_address

# ---------------------------------------------------------------------------
# Token-2022 constants
# ---------------------------------------------------------------------------

BASE_ACCOUNT_LEN = 165
MINT_BASE_LEN = 82
ACCOUNT_TYPE_MINT = 1
TLV_HEADER_LEN = 4
TRANSFER_HOOK_EXTENSION_TYPE = 14
TRANSFER_HOOK_EXTENSION_LEN = 64
MINT_WITH_TRANSFER_HOOK_LEN = (
    BASE_ACCOUNT_LEN + 1 + TLV_HEADER_LEN + TRANSFER_HOOK_EXTENSION_LEN
)

IX_MINT_TO_CHECKED = 14
IX_INITIALIZE_MINT2 = 20
IX_TRANSFER_HOOK_EXTENSION = 36
TRANSFER_HOOK_INITIALIZE = 0
ATA_CREATE_IDEMPOTENT = 1


def _interface_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"spl-transfer-hook-interface:{name}".encode()).digest()[:8]


EXECUTE_DISCRIMINATOR = _interface_discriminator("execute")
INITIALIZE_EXTRA_METAS_DISCRIMINATOR = _interface_discriminator("initialize-extra-account-metas")

EXTRA_META_LEN = 35
ADDRESS_CONFIG_LEN = 32


# ---------------------------------------------------------------------------
# Extra account metas
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Seed:
    """One seed component of an extra account's derivation recipe."""
    kind: int
    value: bytes = b""
    index: int = 0
    data_index: int = 0
    length: int = 0

    LITERAL = 1
    INSTRUCTION_DATA = 2
    ACCOUNT_KEY = 3
    ACCOUNT_DATA = 4

    @classmethod
    def literal(cls, value: bytes) -> "Seed":
        return cls(kind=cls.LITERAL, value=bytes(value))

    @classmethod
    def instruction_data(cls, index: int, length: int) -> "Seed":
        return cls(kind=cls.INSTRUCTION_DATA, index=index, length=length)

    @classmethod
    def account_key(cls, index: int) -> "Seed":
        return cls(kind=cls.ACCOUNT_KEY, index=index)

    @classmethod
    def account_data(cls, account_index: int, data_index: int, length: int) -> "Seed":
        return cls(kind=cls.ACCOUNT_DATA, index=account_index, data_index=data_index, length=length)

    def pack(self) -> bytes:
        layout = _SEED_LAYOUTS.get(self.kind)
        if layout is None:
            raise InvalidArgument(f"Unknown seed kind {self.kind}")
        return bytes([self.kind]) + build(layout, field_values(layout, self), "seed")


# Per-kind body after the kind byte.
_SEED_LAYOUTS = {
    Seed.LITERAL: CStruct("value" / Prefixed(U8, GreedyBytes)),
    Seed.INSTRUCTION_DATA: CStruct("index" / U8, "length" / U8),
    Seed.ACCOUNT_KEY: CStruct("index" / U8),
    Seed.ACCOUNT_DATA: CStruct("index" / U8, "data_index" / U8, "length" / U8),
}


def pack_seeds(seeds: Sequence[Seed]) -> bytes:
    packed = b"".join(seed.pack() for seed in seeds)
    if len(packed) > ADDRESS_CONFIG_LEN:
        raise InvalidArgument(f"Packed seeds are {len(packed)} bytes (max {ADDRESS_CONFIG_LEN})")
    return packed.ljust(ADDRESS_CONFIG_LEN, b"\x00")


def unpack_seeds(config: bytes) -> list[Seed]:
    seeds: list[Seed] = []
    reader = Reader(config)
    while reader.remaining and reader.data[reader.offset] != 0:
        kind = reader.read_u8("seed.kind")
        layout = _SEED_LAYOUTS.get(kind)
        if layout is None:
            raise InvalidArgument(f"Unknown seed kind {kind}")
        seeds.append(Seed(kind=kind, **reader.read_struct(layout)))
    return seeds


@dataclass(frozen=True)
class ExtraAccountMeta:
    """Fixed 35-byte entry: discriminator, address config, signer, writable.

    Discriminator 0 is a fixed address, 1 a PDA of the hook program, and
    128 + i a PDA of the program found at account index i.
    """
    discriminator: int
    address_config: bytes
    is_signer: bool
    is_writable: bool

    @classmethod
    def fixed(cls, address: Pubkey, is_signer: bool = False, is_writable: bool = False) -> "ExtraAccountMeta":
        return cls(0, bytes(address), is_signer, is_writable)

    @classmethod
    def from_seeds(cls, seeds: Sequence[Seed], is_signer: bool = False,
                   is_writable: bool = False, program_index: Optional[int] = None) -> "ExtraAccountMeta":
        discriminator = 1 if program_index is None else 128 + program_index
        return cls(discriminator, pack_seeds(seeds), is_signer, is_writable)

    def pack(self) -> bytes:
        return build(EXTRA_ACCOUNT_META, self, "extra account meta")

    @classmethod
    def read(cls, reader: Reader) -> "ExtraAccountMeta":
        return reader.read(EXTRA_ACCOUNT_META, "extra_meta")


EXTRA_ACCOUNT_META = DataclassAdapter(ExtraAccountMeta, CStruct(
    "discriminator" / U8,
    "address_config" / Bytes(ADDRESS_CONFIG_LEN),
    "is_signer" / BOOL,
    "is_writable" / BOOL,
))


def resolve_extra_accounts(
    metas: Sequence[ExtraAccountMeta],
    hook_program: Pubkey,
    base_accounts: Sequence[Pubkey],
    instruction_data: bytes = b"",
) -> list[AccountMeta]:
    """Resolve metas against an execute-instruction account list.

    *base_accounts* is ``[source, mint, destination, owner, extra_metas]``;
    each resolved account is appended so later seeds can refer to it.
    Account-data seeds need fetched state and are not resolvable here.
    """
    keys = list(base_accounts)
    resolved: list[AccountMeta] = []
    for meta in metas:
        if meta.discriminator == 0:
            address = Pubkey(meta.address_config)
        else:
            if meta.discriminator == 1:
                program = hook_program
            elif meta.discriminator >= 128:
                program_index = meta.discriminator - 128
                if program_index >= len(keys):
                    raise InvalidArgument(f"Program index {program_index} out of range")
                program = keys[program_index]
            else:
                raise InvalidArgument(f"Unknown extra meta discriminator {meta.discriminator}")
            seed_bytes: list[bytes] = []
            for seed in unpack_seeds(meta.address_config):
                if seed.kind == Seed.LITERAL:
                    seed_bytes.append(seed.value)
                elif seed.kind == Seed.ACCOUNT_KEY:
                    if seed.index >= len(keys):
                        raise InvalidArgument(f"Account index {seed.index} out of range")
                    seed_bytes.append(bytes(keys[seed.index]))
                elif seed.kind == Seed.INSTRUCTION_DATA:
                    end = seed.index + seed.length
                    if end > len(instruction_data):
                        raise InvalidArgument("Instruction data seed out of range")
                    seed_bytes.append(instruction_data[seed.index:end])
                else:
                    raise InvalidArgument("Account data seeds cannot be resolved offline")
            address, _ = derive(program, seed_bytes)
        keys.append(address)
        resolved.append(AccountMeta(address, meta.is_signer, meta.is_writable))
    return resolved


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

InitializeTransferHookLayout = CStruct(
    "authority" / NULLABLE_PUBKEY,
    "program_id" / PUBKEY,
)

InitializeMint2Layout = CStruct(
    "decimals" / U8,
    "mint_authority" / PUBKEY,
    "freeze_authority" / StrictOption(PUBKEY),
)

MintToCheckedLayout = CStruct(
    "amount" / U64,
    "decimals" / U8,
)

ExtraAccountMetasLayout = Vec(EXTRA_ACCOUNT_META)


def initialize_transfer_hook(
    mint: Pubkey,
    authority: Optional[Pubkey],
    hook_program: Pubkey,
    token_program: Pubkey,
) -> Instruction:
    """Accounts: mint(w). Unset pubkeys are encoded as 32 zero bytes."""
    data = bytes([IX_TRANSFER_HOOK_EXTENSION, TRANSFER_HOOK_INITIALIZE]) + build(
        InitializeTransferHookLayout, {"authority": authority, "program_id": hook_program},
    )
    return Instruction(token_program, data, [AccountMeta(mint, False, True)])


def initialize_mint2(
    mint: Pubkey,
    decimals: int,
    mint_authority: Pubkey,
    freeze_authority: Optional[Pubkey],
    token_program: Pubkey,
) -> Instruction:
    """Accounts: mint(w)."""
    data = bytes([IX_INITIALIZE_MINT2]) + build(InitializeMint2Layout, {
        "decimals": decimals,
        "mint_authority": mint_authority,
        "freeze_authority": freeze_authority,
    })
    return Instruction(token_program, data, [AccountMeta(mint, False, True)])


def create_associated_token_account_idempotent(
    funder: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
    programs: ProgramIds,
    token_program: Optional[Pubkey] = None,
) -> tuple[Instruction, Pubkey]:
    """Accounts: funder(s,w), ata(w), owner, mint, system, token program.

    *token_program* is the mint's owner and defaults to Token-2022.
    """
    if token_program is None:
        token_program = programs.token
    ata = associated_token_address(owner, mint, token_program, programs.associated_token)
    accounts = [
        AccountMeta(funder, True, True),
        AccountMeta(ata, False, True),
        AccountMeta(owner, False, False),
        AccountMeta(mint, False, False),
        AccountMeta(programs.system, False, False),
        AccountMeta(token_program, False, False),
    ]
    return Instruction(programs.associated_token, bytes([ATA_CREATE_IDEMPOTENT]), accounts), ata


def mint_to_checked(
    mint: Pubkey,
    destination: Pubkey,
    authority: Pubkey,
    amount: int,
    decimals: int,
    token_program: Pubkey,
) -> Instruction:
    """Accounts: mint(w), destination(w), authority(s)."""
    data = bytes([IX_MINT_TO_CHECKED]) + build(MintToCheckedLayout, {"amount": amount, "decimals": decimals})
    accounts = [
        AccountMeta(mint, False, True),
        AccountMeta(destination, False, True),
        AccountMeta(authority, True, False),
    ]
    return Instruction(token_program, data, accounts)


@dataclass(frozen=True)
class ExtensionDescriptor:
    """What a new extension-bearing mint is created with."""
    mint: Pubkey
    hook_program: Pubkey
    decimals: int
    initial_supply: int = 0


def build_create_extension_mint(
    descriptor: ExtensionDescriptor,
    payer: Pubkey,
    rent_lamports: int,
    programs: ProgramIds,
    freeze_authority: Optional[Pubkey] = None,
) -> list[Instruction]:
    """create-extension-mint.

    Order matters: the account is allocated, the hook extension is
    initialized, and only then the mint itself. The payer is mint, freeze
    and hook authority. A non-zero initial supply adds an idempotent
    associated-account creation and a checked mint-to for the payer.
    """
    if not 0 <= descriptor.decimals <= 255:
        raise InvalidArgument(f"Decimals out of range: {descriptor.decimals}")
    if descriptor.initial_supply < 0:
        raise InvalidArgument("Initial supply cannot be negative")
    if rent_lamports <= 0:
        raise InvalidArgument("Rent-exempt lamports must be positive")

    mint = descriptor.mint
    instructions = [
        create_account(CreateAccountParams(
            from_pubkey=payer,
            to_pubkey=mint,
            lamports=rent_lamports,
            space=MINT_WITH_TRANSFER_HOOK_LEN,
            owner=programs.token,
        )),
        initialize_transfer_hook(mint, payer, descriptor.hook_program, programs.token),
        initialize_mint2(
            mint,
            descriptor.decimals,
            payer,
            freeze_authority if freeze_authority is not None else payer,
            programs.token,
        ),
    ]
    if descriptor.initial_supply > 0:
        create_ata, ata = create_associated_token_account_idempotent(payer, payer, mint, programs)
        instructions.append(create_ata)
        instructions.append(mint_to_checked(
            mint, ata, payer, descriptor.initial_supply, descriptor.decimals, programs.token,
        ))
    return instructions


def build_initialize_extra_account_metas(
    mint: Pubkey,
    hook_program: Pubkey,
    authority: Pubkey,
    metas: Sequence[ExtraAccountMeta],
    programs: ProgramIds,
) -> Instruction:
    """initialize-extra-account-metas.

    Accounts: extra_account_metas(w), mint, authority(s), system program.
    """
    metas_address, _ = extra_account_metas_address(hook_program, mint)
    data = INITIALIZE_EXTRA_METAS_DISCRIMINATOR + build(ExtraAccountMetasLayout, list(metas), "extra account metas")
    accounts = [
        AccountMeta(metas_address, False, True),
        AccountMeta(mint, False, False),
        AccountMeta(authority, True, False),
        AccountMeta(programs.system, False, False),
    ]
    return Instruction(hook_program, data, accounts)
