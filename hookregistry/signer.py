"""
Signer
The external signing capability: a public key and ``sign(bytes)``.

Key custody stays with the caller; the library only asks for signatures.
"""

from __future__ import annotations

from typing import Optional, Protocol

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from hookregistry.errors import NotConnected


class Signer(Protocol):
    @property
    def pubkey(self) -> Pubkey: ...

    async def sign(self, message: bytes) -> bytes: ...


class KeypairSigner:
    """Signs with a caller-supplied keypair until ``disconnect()``."""

    def __init__(self, keypair: Optional[Keypair]):
        self._keypair = keypair

    @property
    def connected(self) -> bool:
        return self._keypair is not None

    @property
    def pubkey(self) -> Pubkey:
        if self._keypair is None:
            raise NotConnected()
        return self._keypair.pubkey()

    async def sign(self, message: bytes) -> bytes:
        if self._keypair is None:
            raise NotConnected()
        return bytes(self._keypair.sign_message(message))

    def disconnect(self) -> None:
        self._keypair = None
