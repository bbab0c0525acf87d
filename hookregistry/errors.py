"""
Error Taxonomy
Every failure path raises exactly one of the classes below.

Input errors are rejected before any network call. Derivation errors signal
a configuration problem. State errors are surfaced verbatim: retrying them
does not change the outcome. Network/timing errors may be recovered by
rebuilding and resubmitting, but only the caller decides that. Decode errors
are fatal for the read that produced them.
"""

from __future__ import annotations

from typing import Any, Optional


class HookRegistryError(Exception):
    """Root of the hierarchy."""
    kind = "error"
    retry_safe = False


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------

class InputError(HookRegistryError, ValueError):
    kind = "input"


class InvalidAddress(InputError):
    def __init__(self, value: Any, reason: str = "not a valid 32-byte address"):
        self.value = value
        super().__init__(f"Invalid address {value!r}: {reason}")


class InvalidSeeds(InputError):
    pass


class InvalidArgument(InputError):
    pass


class UnknownInstruction(InputError):
    def __init__(self, discriminator: int):
        self.discriminator = discriminator
        super().__init__(f"Unknown instruction discriminator {discriminator}")


class UnknownExtensionKind(InputError):
    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Unknown transfer hook kind: {value}")


class ExtensionNotConfigured(InputError):
    def __init__(self, kind: str):
        self.extension_kind = kind
        super().__init__(f"Transfer hook program not configured for {kind}")


# ---------------------------------------------------------------------------
# Derivation errors
# ---------------------------------------------------------------------------

class DerivationError(HookRegistryError):
    kind = "derivation"


class NoValidDerivation(DerivationError):
    def __init__(self, program_id: Any, seeds: list[bytes]):
        self.program_id = program_id
        self.seeds = seeds
        super().__init__(
            f"No off-curve address for {len(seeds)} seed(s) under program {program_id}"
        )


# ---------------------------------------------------------------------------
# State errors
# ---------------------------------------------------------------------------

class StateError(HookRegistryError):
    kind = "state"


class AlreadySubmitted(StateError):
    def __init__(self, program_id: Any, submission: Any = None):
        self.program_id = program_id
        self.submission = submission
        super().__init__(f"Hook program {program_id} already submitted for approval")


class DuplicateVote(StateError):
    def __init__(self, submission: Any, voter: Any):
        self.submission = submission
        self.voter = voter
        super().__init__(f"Voter {voter} has already voted on submission {submission}")


class VoteWindowClosed(StateError):
    def __init__(self, submission: Any, review_ends_at: Optional[int]):
        self.submission = submission
        self.review_ends_at = review_ends_at
        ended = f" at {review_ends_at}" if review_ends_at is not None else ""
        super().__init__(f"Review period for {submission} ended{ended}; voting is closed")


class ReviewNotEnded(StateError):
    def __init__(self, submission: Any, review_ends_at: Optional[int]):
        self.submission = submission
        self.review_ends_at = review_ends_at
        ends = f" (ends at {review_ends_at})" if review_ends_at is not None else ""
        super().__init__(f"Review period for {submission} has not ended{ends}")


class InvalidTransition(StateError):
    def __init__(self, current: Any, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot {target} a submission in status {current}")


class SubmissionNotFound(StateError):
    def __init__(self, program_id: Any):
        self.program_id = program_id
        super().__init__(f"No submission found for hook program {program_id}")


class RegistryNotInitialized(StateError):
    def __init__(self, address: Any):
        self.address = address
        super().__init__(f"Registry config {address} is not initialized")


class HookNotApproved(StateError):
    def __init__(self, program_id: Any, status: Any):
        self.program_id = program_id
        self.status = status
        super().__init__(f"Hook program {program_id} is not approved (status {status})")


class NoTransferHookExtension(StateError):
    def __init__(self, mint: Any):
        self.mint = mint
        super().__init__(f"Mint {mint} does not carry a transfer hook extension")


class IncompatibleHook(StateError):
    def __init__(self, mint: Any, expected: Any, actual: Any):
        self.mint = mint
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Mint {mint} uses hook program {actual}, expected {expected}"
        )


class BadgeRequired(StateError):
    def __init__(self, mint: Any, hook_program: Any):
        self.mint = mint
        self.hook_program = hook_program
        super().__init__(
            f"Mint {mint} carries hook {hook_program} but has no token badge"
        )


class Unauthorized(StateError):
    pass


# ---------------------------------------------------------------------------
# Network / timing errors
# ---------------------------------------------------------------------------

class NetworkError(HookRegistryError):
    kind = "network"
    retry_safe = True


class RpcError(NetworkError):
    def __init__(self, method: str, message: str, code: Optional[int] = None,
                 data: Any = None):
        self.method = method
        self.code = code
        self.data = data
        # A send that failed in transit may still have landed.
        self.retry_safe = method != "sendTransaction"
        super().__init__(f"{method} failed: {message}" + (f" (code {code})" if code is not None else ""))


class StaleAnchor(NetworkError):
    def __init__(self, signature: Any, last_valid_block_height: int):
        self.signature = signature
        self.last_valid_block_height = last_valid_block_height
        super().__init__(
            f"Blockhash expired (last valid height {last_valid_block_height}) "
            f"before {signature} confirmed; rebuild and resubmit"
        )


class Unconfirmed(NetworkError):
    def __init__(self, signature: Any, timeout: float):
        self.signature = signature
        self.timeout = timeout
        super().__init__(
            f"Transaction {signature} not confirmed within {timeout:.1f}s; "
            f"re-query state before resubmitting"
        )


class TransactionRejected(NetworkError):
    """The network refused the transaction (preflight or execution)."""
    retry_safe = False

    def __init__(self, err: Any, logs: Optional[list[str]] = None,
                 signature: Any = None):
        self.err = err
        self.logs = logs or []
        self.signature = signature
        self.instruction_index, self.custom_code = parse_instruction_error(err)
        super().__init__(f"Transaction rejected: {err}")


def parse_instruction_error(err: Any) -> tuple[Optional[int], Optional[int]]:
    """Extract ``(instruction_index, custom_code)`` from a JSON-RPC ``err``.

    The RPC reports program failures as
    ``{"InstructionError": [index, {"Custom": code}]}``.
    """
    if not isinstance(err, dict) or "InstructionError" not in err:
        return None, None
    index, detail = err["InstructionError"]
    if isinstance(detail, dict) and "Custom" in detail:
        return index, int(detail["Custom"])
    return index, None


# ---------------------------------------------------------------------------
# Decode errors
# ---------------------------------------------------------------------------

class DecodeError(HookRegistryError):
    kind = "decode"


class ShortBuffer(DecodeError):
    """*needed* is None for variable-length fields."""

    def __init__(self, field: str, offset: int, needed: Optional[int], available: int):
        self.field = field
        self.offset = offset
        self.needed = needed
        self.available = available
        wanted = f"need {needed} byte(s)" if needed is not None else "need more"
        super().__init__(
            f"Buffer too short for {field} at offset {offset}: "
            f"{wanted}, {available} available"
        )


class UnexpectedAccountLayout(DecodeError):
    def __init__(self, address: Any, offset: int, reason: str):
        self.address = address
        self.offset = offset
        super().__init__(f"Unexpected layout for account {address} at offset {offset}: {reason}")


# ---------------------------------------------------------------------------
# Signer errors
# ---------------------------------------------------------------------------

class SignerError(HookRegistryError):
    kind = "signer"


class NotConnected(SignerError):
    def __init__(self):
        super().__init__("Signer is not connected: no key available")


# ---------------------------------------------------------------------------
# On-chain registry error codes
# ---------------------------------------------------------------------------

# Anchor custom errors start at 6000, in declaration order.
REGISTRY_ERROR_NAMES = [
    "RegistryNotInitialized",
    "Unauthorized",
    "HookAlreadySubmitted",
    "SubmissionNotFound",
    "ReviewPeriodNotEnded",
    "ReviewPeriodEnded",
    "CannotFinalize",
    "AlreadyVoted",
    "InvalidStatusTransition",
    "RiskAssessmentIncomplete",
    "RiskScoreTooHigh",
    "InsufficientVotes",
    "HookNotApproved",
    "MetadataUriTooLong",
    "RationaleTooLong",
    "InvalidProgramId",
    "ProgramNotExecutable",
    "AssessmentNotesTooLong",
    "IncompatibleHook",
    "NoTransferHookExtension",
    "WhirlpoolsConfigMismatch",
]
REGISTRY_ERROR_OFFSET = 6000
REGISTRY_ERROR_CODES = {
    name: REGISTRY_ERROR_OFFSET + i for i, name in enumerate(REGISTRY_ERROR_NAMES)
}

# System program: account already in use (returned when a derived address
# being initialized already holds data).
SYSTEM_ACCOUNT_ALREADY_IN_USE = 0


def registry_error_name(code: Optional[int]) -> Optional[str]:
    if code is None:
        return None
    index = code - REGISTRY_ERROR_OFFSET
    if 0 <= index < len(REGISTRY_ERROR_NAMES):
        return REGISTRY_ERROR_NAMES[index]
    return None
