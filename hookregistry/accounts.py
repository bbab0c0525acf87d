"""
Account Layouts
Fixed-offset pack/unpack for every account the client reads.

Registry and pool accounts start with an 8-byte discriminator,
``sha256("account:<Name>")[:8]``, followed by a borsh layout. Allocations
are sized for the longest strings, so unused tail bytes are ignored on
decode; everything before them is read at exact offsets.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Optional

from borsh_construct import U8, U16, U32, U64, U128, I64, CStruct, String, Vec
from construct import Adapter, ValidationError
from solders.pubkey import Pubkey

from hookregistry.codec import (
    BOOL,
    NULLABLE_PUBKEY,
    PUBKEY,
    DataclassAdapter,
    IntEnumAdapter,
    Reader,
    StrictOption,
    build,
    field_values,
)
from hookregistry.errors import DecodeError, UnexpectedAccountLayout
from hookregistry.instructions import ApprovalStatus
from hookregistry.risk import RISK_FLAGS, RiskFlags
from hookregistry.token_instructions import (
    ACCOUNT_TYPE_MINT,
    BASE_ACCOUNT_LEN,
    EXECUTE_DISCRIMINATOR,
    EXTRA_ACCOUNT_META,
    EXTRA_META_LEN,
    MINT_BASE_LEN,
    TLV_HEADER_LEN,
    TRANSFER_HOOK_EXTENSION_LEN,
    TRANSFER_HOOK_EXTENSION_TYPE,
    ExtraAccountMeta,
)

DISCRIMINATOR_LEN = 8
RESERVED_LEN = 64


def account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode()).digest()[:DISCRIMINATOR_LEN]


def _open(data: bytes, name: str, address: Any) -> Reader:
    """Check the discriminator and return a reader positioned after it."""
    expected = account_discriminator(name)
    if len(data) < DISCRIMINATOR_LEN:
        raise UnexpectedAccountLayout(address, 0, f"{len(data)} byte(s) is too short for {name}")
    if bytes(data[:DISCRIMINATOR_LEN]) != expected:
        raise UnexpectedAccountLayout(address, 0, f"discriminator is not {name}")
    return Reader(data, DISCRIMINATOR_LEN)


def _decoding(address: Any, reader: Reader, read):
    """Run *read*, re-raising decode failures with the account address."""
    try:
        return read()
    except UnexpectedAccountLayout:
        raise
    except DecodeError as exc:
        raise UnexpectedAccountLayout(address, reader.offset, str(exc)) from exc


class _Account:
    """Discriminator, then ``LAYOUT``, then ``RESERVED`` zero bytes."""

    NAME = ""
    LAYOUT = CStruct()
    RESERVED = 0

    def pack(self) -> bytes:
        return (
            account_discriminator(self.NAME)
            + build(self.LAYOUT, field_values(self.LAYOUT, self), self.NAME)
            + bytes(self.RESERVED)
        )

    @classmethod
    def unpack(cls, data: bytes, address: Any = None):
        r = _open(data, cls.NAME, address)

        def read():
            values = r.read_struct(cls.LAYOUT)
            r.take(cls.RESERVED, "reserved")
            return cls(**values)

        return _decoding(address, r, read)


# ---------------------------------------------------------------------------
# Registry accounts
# ---------------------------------------------------------------------------

RegistryConfigLayout = CStruct(
    "authority" / PUBKEY,
    "governance_threshold_bps" / U64,
    "review_period_seconds" / U64,
    "max_risk_score" / U8,
    "total_submissions" / U64,
    "total_approved" / U64,
    "bump" / U8,
)

HookSubmissionLayout = CStruct(
    "program_id" / PUBKEY,
    "submitter" / PUBKEY,
    "status" / IntEnumAdapter(U8, ApprovalStatus),
    "submitted_at" / I64,
    "review_ends_at" / I64,
    "last_updated_at" / I64,
    "metadata_uri" / String,
    "governance_proposal_id" / StrictOption(PUBKEY),
    "votes_for" / U64,
    "votes_against" / U64,
    "risk_score" / U8,
    "automated_checks_passed" / BOOL,
    "bump" / U8,
)

RiskAssessmentLayout = CStruct(
    "submission" / PUBKEY,
    "overall_score" / U8,
    "flags" / RISK_FLAGS,
    "assessed_at" / I64,
    "assessor" / PUBKEY,
    "notes" / String,
    "requires_manual_review" / BOOL,
    "bump" / U8,
)

GovernanceVoteLayout = CStruct(
    "submission" / PUBKEY,
    "voter" / PUBKEY,
    "vote" / BOOL,
    "weight" / U64,
    "voted_at" / I64,
    "rationale" / String,
    "bump" / U8,
)


@dataclass
class RegistryConfig(_Account):
    authority: Pubkey
    governance_threshold_bps: int
    review_period_seconds: int
    max_risk_score: int
    total_submissions: int = 0
    total_approved: int = 0
    bump: int = 0

    NAME = "RegistryConfig"
    LAYOUT = RegistryConfigLayout

    @property
    def governance_threshold(self) -> float:
        return self.governance_threshold_bps / 10_000


@dataclass
class HookSubmission(_Account):
    program_id: Pubkey
    submitter: Pubkey
    status: ApprovalStatus
    submitted_at: int
    review_ends_at: int
    last_updated_at: int
    metadata_uri: str
    governance_proposal_id: Optional[Pubkey] = None
    votes_for: int = 0
    votes_against: int = 0
    risk_score: int = 0
    automated_checks_passed: bool = False
    bump: int = 0

    NAME = "HookSubmission"
    LAYOUT = HookSubmissionLayout
    RESERVED = RESERVED_LEN

    @property
    def total_votes(self) -> int:
        return self.votes_for + self.votes_against


@dataclass
class RiskAssessment(_Account):
    submission: Pubkey
    overall_score: int
    flags: RiskFlags
    assessed_at: int
    assessor: Pubkey
    notes: str = ""
    requires_manual_review: bool = False
    bump: int = 0

    NAME = "RiskAssessment"
    LAYOUT = RiskAssessmentLayout


@dataclass
class GovernanceVote(_Account):
    submission: Pubkey
    voter: Pubkey
    vote: bool
    weight: int
    voted_at: int
    rationale: str = ""
    bump: int = 0

    NAME = "GovernanceVote"
    LAYOUT = GovernanceVoteLayout


# ---------------------------------------------------------------------------
# Pool program accounts
# ---------------------------------------------------------------------------

TokenBadgeLayout = CStruct(
    "whirlpools_config" / PUBKEY,
    "token_mint" / PUBKEY,
)

PoolLayout = CStruct(
    "mint_a" / PUBKEY,
    "mint_b" / PUBKEY,
    "fee_tier" / U16,
    "sqrt_price" / U128,
    "liquidity" / U128,
    "bump" / U8,
)


@dataclass
class TokenBadge(_Account):
    """A badge existing means the pool program accepts the mint."""
    whirlpools_config: Pubkey
    token_mint: Pubkey

    NAME = "TokenBadge"
    LAYOUT = TokenBadgeLayout


@dataclass
class Pool(_Account):
    mint_a: Pubkey
    mint_b: Pubkey
    fee_tier: int
    sqrt_price: int
    liquidity: int = 0
    bump: int = 0

    NAME = "Whirlpool"
    LAYOUT = PoolLayout


# ---------------------------------------------------------------------------
# Token mint + transfer hook extension
# ---------------------------------------------------------------------------

class COptionPubkey(Adapter):
    """u32 tag then 32 bytes; the key bytes are present even when unset."""

    def __init__(self):
        super().__init__(CStruct("tag" / U32, "key" / PUBKEY))

    def _decode(self, obj, context, path) -> Optional[Pubkey]:
        if obj.tag > 1:
            raise ValidationError(f"invalid COption tag {obj.tag}", path=path)
        return obj.key if obj.tag == 1 else None

    def _encode(self, obj, context, path) -> dict:
        if obj is None:
            return {"tag": 0, "key": Pubkey.default()}
        return {"tag": 1, "key": obj}


COPTION_PUBKEY = COptionPubkey()

MintLayout = CStruct(
    "mint_authority" / COPTION_PUBKEY,
    "supply" / U64,
    "decimals" / U8,
    "is_initialized" / BOOL,
    "freeze_authority" / COPTION_PUBKEY,
)

TlvHeaderLayout = CStruct(
    "type" / U16,
    "length" / U16,
)


@dataclass
class TransferHookExtension:
    authority: Optional[Pubkey]
    program_id: Optional[Pubkey]


TRANSFER_HOOK = DataclassAdapter(TransferHookExtension, CStruct(
    "authority" / NULLABLE_PUBKEY,
    "program_id" / NULLABLE_PUBKEY,
))


@dataclass
class MintInfo:
    """Base mint state plus any Token-2022 extensions.

    ``token_program`` is the account's owner when the mint was fetched from
    the chain; it is not part of the encoded data.
    """
    mint_authority: Optional[Pubkey]
    supply: int
    decimals: int
    is_initialized: bool
    freeze_authority: Optional[Pubkey]
    transfer_hook: Optional[TransferHookExtension] = None
    extension_types: list[int] = field(default_factory=list)
    token_program: Optional[Pubkey] = None

    @property
    def hook_program(self) -> Optional[Pubkey]:
        if self.transfer_hook is None:
            return None
        return self.transfer_hook.program_id

    def pack(self) -> bytes:
        base = build(MintLayout, field_values(MintLayout, self), "mint")
        if self.transfer_hook is None:
            return base
        return (
            base.ljust(BASE_ACCOUNT_LEN, b"\x00")
            + bytes([ACCOUNT_TYPE_MINT])
            + build(TlvHeaderLayout, {"type": TRANSFER_HOOK_EXTENSION_TYPE, "length": TRANSFER_HOOK_EXTENSION_LEN})
            + build(TRANSFER_HOOK, self.transfer_hook, "transfer hook extension")
        )

    @classmethod
    def unpack(cls, data: bytes, address: Any = None, token_program: Optional[Pubkey] = None) -> "MintInfo":
        r = Reader(data)

        def read() -> "MintInfo":
            info = cls(**r.read_struct(MintLayout), token_program=token_program)
            if len(data) <= MINT_BASE_LEN:
                return info
            # Extensions: padding up to the token-account length, an
            # account-type byte, then (type u16, length u16, value) entries.
            r.offset = BASE_ACCOUNT_LEN
            account_type = r.read_u8("account_type")
            if account_type != ACCOUNT_TYPE_MINT:
                raise DecodeError(f"Account type {account_type} is not a mint")
            while r.remaining >= TLV_HEADER_LEN:
                header = r.read_struct(TlvHeaderLayout)
                value = r.take(header["length"], "extension.value")
                if header["type"] == 0 and header["length"] == 0:
                    break
                info.extension_types.append(header["type"])
                if header["type"] == TRANSFER_HOOK_EXTENSION_TYPE:
                    if header["length"] != TRANSFER_HOOK_EXTENSION_LEN:
                        raise DecodeError(f"Transfer hook extension is {header['length']} bytes")
                    info.transfer_hook = Reader(value).read(TRANSFER_HOOK, "transfer_hook")
            return info

        return _decoding(address, r, read)


# ---------------------------------------------------------------------------
# Extra account meta list (transfer-hook interface)
# ---------------------------------------------------------------------------

ExtraAccountMetaListLayout = CStruct(
    "length" / U32,
    "metas" / Vec(EXTRA_ACCOUNT_META),
)


@dataclass
class ExtraAccountMetaList:
    """TLV entry keyed by the execute discriminator: u32 length, u32 count,
    then fixed 35-byte metas.
    """
    metas: list[ExtraAccountMeta]

    def pack(self) -> bytes:
        return EXECUTE_DISCRIMINATOR + build(ExtraAccountMetaListLayout, {
            "length": 4 + len(self.metas) * EXTRA_META_LEN,
            "metas": list(self.metas),
        }, "extra account metas")

    @classmethod
    def unpack(cls, data: bytes, address: Any = None) -> "ExtraAccountMetaList":
        if bytes(data[:8]) != EXECUTE_DISCRIMINATOR:
            raise UnexpectedAccountLayout(address, 0, "missing execute discriminator")
        r = Reader(data, 8)

        def read() -> "ExtraAccountMetaList":
            values = r.read_struct(ExtraAccountMetaListLayout)
            metas = list(values["metas"])
            if values["length"] != 4 + len(metas) * EXTRA_META_LEN:
                raise DecodeError(f"Length {values['length']} does not match {len(metas)} meta(s)")
            return cls(metas)

        return _decoding(address, r, read)
