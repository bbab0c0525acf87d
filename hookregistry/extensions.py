"""
Extension Catalogue
The closed set of transfer hook kinds a token can be launched with.

Each kind maps to a template: display data, its default risk level, the
deployed program (when one exists) and the extra accounts the program
needs at transfer time. Unknown kinds fail at construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from solders.pubkey import Pubkey

from hookregistry.config import ROYALTY_HOOK_PROGRAM_ID
from hookregistry.errors import ExtensionNotConfigured, InvalidArgument, UnknownExtensionKind
from hookregistry.pda import as_address
from hookregistry.risk import RiskBand
from hookregistry.token_instructions import ExtraAccountMeta, Seed


class ExtensionKind(str, Enum):
    ROYALTY = "royalty"
    COMPLIANCE = "compliance"
    LOGGING = "logging"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: Union[str, "ExtensionKind"]) -> "ExtensionKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise UnknownExtensionKind(str(value)) from exc


@dataclass(frozen=True)
class ExtensionTemplate:
    kind: ExtensionKind
    name: str
    description: str
    features: tuple[str, ...]
    risk_level: RiskBand
    program_id: Optional[Pubkey] = None
    extra_account_metas: tuple[ExtraAccountMeta, ...] = field(default_factory=tuple)

    @property
    def requires_extra_account_metas(self) -> bool:
        return bool(self.extra_account_metas)


ROYALTY_VAULT_SEED = b"royalty_vault"

TEMPLATES: dict[ExtensionKind, ExtensionTemplate] = {
    ExtensionKind.ROYALTY: ExtensionTemplate(
        kind=ExtensionKind.ROYALTY,
        name="Royalty Collection",
        description="Automatically collect royalties on token transfers",
        features=("Creator royalties", "Marketplace support", "Configurable rates"),
        risk_level=RiskBand.LOW,
        program_id=ROYALTY_HOOK_PROGRAM_ID,
        extra_account_metas=(
            ExtraAccountMeta.from_seeds(
                [Seed.literal(ROYALTY_VAULT_SEED)], is_signer=False, is_writable=True,
            ),
        ),
    ),
    ExtensionKind.COMPLIANCE: ExtensionTemplate(
        kind=ExtensionKind.COMPLIANCE,
        name="KYC/AML Compliance",
        description="Ensure transfers comply with regulatory requirements",
        features=("Whitelist validation", "Geographic restrictions", "Identity verification"),
        risk_level=RiskBand.MEDIUM,
    ),
    ExtensionKind.LOGGING: ExtensionTemplate(
        kind=ExtensionKind.LOGGING,
        name="Transfer Logging",
        description="Log all transfer events for analytics and compliance",
        features=("Event logging", "Analytics tracking", "Audit trails"),
        risk_level=RiskBand.LOW,
    ),
    ExtensionKind.CUSTOM: ExtensionTemplate(
        kind=ExtensionKind.CUSTOM,
        name="Custom Hook",
        description="Deploy your own Transfer Hook program",
        features=("Custom logic", "Full control", "Advanced features"),
        risk_level=RiskBand.HIGH,
    ),
}


def get_template(kind: Union[str, ExtensionKind]) -> ExtensionTemplate:
    return TEMPLATES[ExtensionKind.parse(kind)]


def resolve_hook_program(
    kind: Union[str, ExtensionKind],
    custom_program_id: Union[Pubkey, str, None] = None,
) -> Pubkey:
    """Program id for *kind*; ``custom`` requires an explicit id."""
    template = get_template(kind)
    if template.kind is ExtensionKind.CUSTOM:
        if custom_program_id is None:
            raise InvalidArgument("A custom transfer hook requires a program id")
        return as_address(custom_program_id)
    if template.program_id is None:
        raise ExtensionNotConfigured(template.kind.value)
    return template.program_id
