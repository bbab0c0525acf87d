"""
Binary Codec
Borsh layouts and a cursor for the instruction and account wire format.

All integers are little-endian. Strings are a u32 byte length followed by
UTF-8. Options are a single 0x00 when absent and 0x01 + payload when
present. There is no message-level length prefix and no version byte, so
field order is the contract.

Layouts are ``borsh_construct`` structs. ``Reader`` parses them one field
at a time so a failure names the field and the offset it started at.
"""

from __future__ import annotations

import io
from typing import Any, Optional

from borsh_construct import U8, U16, U32, U64, U128, I64, CStruct, Option, String
from construct import Adapter, Construct, ConstructError, GreedyBytes, StreamError, ValidationError
from solders.pubkey import Pubkey

from hookregistry.errors import DecodeError, InvalidArgument, ShortBuffer

PUBKEY_LEN = 32


# ---------------------------------------------------------------------------
# Field types
# ---------------------------------------------------------------------------

class PubkeyAdapter(Adapter):
    """32 raw bytes <-> ``Pubkey``."""

    def _decode(self, obj, context, path) -> Pubkey:
        return Pubkey(bytes(obj))

    def _encode(self, obj, context, path) -> list[int]:
        return list(bytes(obj))


class StrictBool(Adapter):
    """A u8 that must be 0 or 1."""

    def _decode(self, obj, context, path) -> bool:
        if obj > 1:
            raise ValidationError(f"invalid bool {obj}", path=path)
        return obj == 1

    def _encode(self, obj, context, path) -> int:
        return 1 if obj else 0


class StrictOption(Option):
    """``Option`` that rejects tags other than 0 and 1."""

    def _decode(self, obj, context, path) -> Any:
        tag = obj[self._discriminator_key]
        if tag > 1:
            raise ValidationError(f"invalid option tag {tag}", path=path)
        return super()._decode(obj, context, path)


class NullablePubkey(Adapter):
    """32 zero bytes stand for an unset key."""

    def _decode(self, obj, context, path) -> Optional[Pubkey]:
        return None if obj == Pubkey.default() else obj

    def _encode(self, obj, context, path) -> Pubkey:
        return Pubkey.default() if obj is None else obj


class IntEnumAdapter(Adapter):
    def __init__(self, subcon: Construct, enum_cls):
        super().__init__(subcon)
        self.enum_cls = enum_cls

    def _decode(self, obj, context, path):
        try:
            return self.enum_cls(obj)
        except ValueError as exc:
            raise ValidationError(f"unknown {self.enum_cls.__name__} {obj}", path=path) from exc

    def _encode(self, obj, context, path) -> int:
        return int(obj)


class DataclassAdapter(Adapter):
    """Maps a ``CStruct`` to and from a dataclass with the same field names."""

    def __init__(self, cls, subcon: CStruct):
        super().__init__(subcon)
        self.cls = cls

    def _decode(self, obj, context, path):
        return self.cls(**{sub.name: obj[sub.name] for sub in self.subcon.subcons})

    def _encode(self, obj, context, path) -> dict:
        return field_values(self.subcon, obj)


PUBKEY = PubkeyAdapter(U8[PUBKEY_LEN])
BOOL = StrictBool(U8)
NULLABLE_PUBKEY = NullablePubkey(PUBKEY)


def field_values(layout: CStruct, obj: Any) -> dict:
    """The attributes of *obj* that *layout* encodes, by field name."""
    return {sub.name: getattr(obj, sub.name) for sub in layout.subcons}


def build(layout: Construct, value: Any, what: str = "payload") -> bytes:
    try:
        return layout.build(value)
    except ConstructError as exc:
        raise InvalidArgument(f"Cannot encode {what}: {exc}") from exc


def _static_size(layout: Construct) -> Optional[int]:
    try:
        return layout.sizeof()
    except (ConstructError, KeyError):
        return None


# ---------------------------------------------------------------------------
# Encoders
# ---------------------------------------------------------------------------

def encode_u8(n: int) -> bytes:
    return build(U8, n, "u8")


def encode_u16(n: int) -> bytes:
    return build(U16, n, "u16")


def encode_u32(n: int) -> bytes:
    return build(U32, n, "u32")


def encode_u64(n: int) -> bytes:
    """8 bytes little-endian."""
    return build(U64, n, "u64")


def encode_i64(n: int) -> bytes:
    return build(I64, n, "i64")


def encode_u128(n: int) -> bytes:
    return build(U128, n, "u128")


def encode_bool(value: bool) -> bytes:
    return build(BOOL, value, "bool")


def encode_pubkey(key: Pubkey) -> bytes:
    return build(PUBKEY, key, "pubkey")


def encode_length_prefixed_string(s: str) -> bytes:
    """4-byte little-endian length + UTF-8 bytes."""
    return build(String, s, "string")


def encode_option(payload: Optional[bytes]) -> bytes:
    """0x00 when absent, 0x01 + *payload* when present."""
    return build(StrictOption(GreedyBytes), payload, "option")


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------

class Reader:
    """Sequential cursor over a buffer.

    Every read either consumes exactly what its layout describes or raises
    ``ShortBuffer``/``DecodeError``; there is no partial-decode recovery.
    """

    def __init__(self, data: bytes, offset: int = 0):
        self.data = bytes(data)
        self.offset = offset
        self._stream = io.BytesIO(self.data)

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def take(self, n: int, field: str = "bytes") -> bytes:
        if n > self.remaining:
            raise ShortBuffer(field, self.offset, n, max(self.remaining, 0))
        chunk = self.data[self.offset:self.offset + n]
        self.offset += n
        return chunk

    def read(self, layout: Construct, field: str = "value") -> Any:
        self._stream.seek(self.offset)
        try:
            value = layout.parse_stream(self._stream)
        except StreamError as exc:
            raise ShortBuffer(field, self.offset, _static_size(layout), max(self.remaining, 0)) from exc
        except ConstructError as exc:
            raise DecodeError(f"Invalid {field} at offset {self.offset}: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise DecodeError(f"Invalid UTF-8 in {field} at offset {self.offset}") from exc
        self.offset = self._stream.tell()
        return value

    def read_struct(self, layout: CStruct) -> dict:
        """Parse *layout* field by field into a plain dict."""
        return {sub.name: self.read(sub.subcon, sub.name) for sub in layout.subcons}

    def read_u8(self, field: str = "u8") -> int:
        return self.read(U8, field)

    def read_u16(self, field: str = "u16") -> int:
        return self.read(U16, field)

    def read_u32(self, field: str = "u32") -> int:
        return self.read(U32, field)

    def read_u64(self, field: str = "u64") -> int:
        return self.read(U64, field)

    def read_i64(self, field: str = "i64") -> int:
        return self.read(I64, field)

    def read_u128(self, field: str = "u128") -> int:
        return self.read(U128, field)

    def read_bool(self, field: str = "bool") -> bool:
        return self.read(BOOL, field)

    def read_pubkey(self, field: str = "pubkey") -> Pubkey:
        return self.read(PUBKEY, field)

    def read_string(self, field: str = "string") -> str:
        return self.read(String, field)

    def read_option(self, layout: Construct, field: str = "option") -> Any:
        return self.read(StrictOption(layout), field)

    def expect_end(self, what: str = "payload") -> None:
        if self.remaining:
            raise DecodeError(
                f"{self.remaining} trailing byte(s) after {what} at offset {self.offset}"
            )


# ---------------------------------------------------------------------------
# Convenience decoders (exact inverses of the encoders)
# ---------------------------------------------------------------------------

def decode_u64(data: bytes) -> int:
    reader = Reader(data)
    value = reader.read_u64()
    reader.expect_end("u64")
    return value


def decode_length_prefixed_string(data: bytes) -> str:
    reader = Reader(data)
    value = reader.read_string()
    reader.expect_end("string")
    return value


def decode_option(data: bytes) -> Optional[bytes]:
    reader = Reader(data)
    value = reader.read_option(GreedyBytes)
    reader.expect_end("option")
    return value


def ensure_max_len(value: str, limit: int, name: str) -> str:
    """Reject strings whose UTF-8 encoding exceeds *limit* bytes."""
    if len(value.encode("utf-8")) > limit:
        raise InvalidArgument(f"{name} exceeds {limit} bytes")
    return value
