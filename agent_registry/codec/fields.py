"""
Field types for instruction arguments and account layouts (Borsh wire format).

Integers are little-endian at their declared width and range checked, strings
are a u32LE byte length followed by UTF-8, booleans a single 0x00/0x01 byte.
Each type encodes into a bytearray and decodes from (data, offset), returning
the value and the new offset, so layouts are walked field by field instead of
through hand-maintained byte offsets.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Any

from solders.pubkey import Pubkey

from agent_registry.errors import DecodeError, EncodingError, ErrorKind

PUBKEY_LEN = 32


class FieldType:
    """Base class; subclasses implement encode/decode for one wire type and set ``name``."""

    name: str

    def encode(self, value: Any, out: bytearray) -> None:
        raise NotImplementedError

    def decode(self, data: bytes, offset: int) -> tuple[Any, int]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return self.name


def _take(data: bytes, offset: int, size: int, what: str) -> bytes:
    end = offset + size
    if size < 0 or end > len(data):
        raise DecodeError(
            f"Unexpected end of data reading {what}: need {size} bytes at offset {offset}, have {len(data) - offset}",
            offset=offset,
            needed=size,
        )
    return data[offset:end]


@dataclass(frozen=True, repr=False)
class IntType(FieldType):
    name: str
    width: int
    signed: bool = False

    @property
    def _fmt(self) -> str:
        codes = {1: "b", 2: "h", 4: "i", 8: "q"}
        code = codes[self.width]
        return "<" + (code if self.signed else code.upper())

    @property
    def min_value(self) -> int:
        return -(1 << (self.width * 8 - 1)) if self.signed else 0

    @property
    def max_value(self) -> int:
        bits = self.width * 8
        return (1 << (bits - 1)) - 1 if self.signed else (1 << bits) - 1

    def encode(self, value: Any, out: bytearray) -> None:
        # bool is an int subclass; never accept it for a numeric field
        if isinstance(value, bool) or not isinstance(value, int):
            raise EncodingError(
                f"{self.name} expects int, got {type(value).__name__}",
                kind=ErrorKind.INVALID_VALUE,
                type=self.name,
            )
        if value < self.min_value or value > self.max_value:
            raise EncodingError(
                f"{value} out of range for {self.name} [{self.min_value}, {self.max_value}]",
                kind=ErrorKind.OVERFLOW,
                type=self.name,
                value=value,
            )
        out += struct.pack(self._fmt, value)

    def decode(self, data: bytes, offset: int) -> tuple[int, int]:
        raw = _take(data, offset, self.width, self.name)
        return struct.unpack(self._fmt, raw)[0], offset + self.width


U8 = IntType("u8", 1)
U16 = IntType("u16", 2)
U32 = IntType("u32", 4)
U64 = IntType("u64", 8)
I64 = IntType("i64", 8, signed=True)


class BoolType(FieldType):
    name = "bool"

    def encode(self, value: Any, out: bytearray) -> None:
        if not isinstance(value, bool):
            raise EncodingError(
                f"bool expects True/False, got {type(value).__name__}",
                kind=ErrorKind.INVALID_VALUE,
                type=self.name,
            )
        out.append(1 if value else 0)

    def decode(self, data: bytes, offset: int) -> tuple[bool, int]:
        raw = _take(data, offset, 1, self.name)[0]
        if raw not in (0, 1):
            raise DecodeError(f"Invalid bool byte 0x{raw:02x} at offset {offset}", offset=offset)
        return raw == 1, offset + 1


BOOL = BoolType()


class StringType(FieldType):
    """u32LE byte length + UTF-8. Program-side max lengths are not enforced here."""

    name = "string"

    def encode(self, value: Any, out: bytearray) -> None:
        if not isinstance(value, str):
            raise EncodingError(
                f"string expects str, got {type(value).__name__}",
                kind=ErrorKind.INVALID_VALUE,
                type=self.name,
            )
        raw = value.encode("utf-8")
        U32.encode(len(raw), out)
        out += raw

    def decode(self, data: bytes, offset: int) -> tuple[str, int]:
        length, offset = U32.decode(data, offset)
        raw = _take(data, offset, length, self.name)
        try:
            return raw.decode("utf-8"), offset + length
        except UnicodeDecodeError as e:
            raise DecodeError(f"Invalid UTF-8 in string at offset {offset}", offset=offset) from e


STRING = StringType()


@dataclass(frozen=True, repr=False)
class FixedBytes(FieldType):
    """Exactly ``size`` raw bytes; no padding, no truncation."""

    size: int

    @property
    def name(self) -> str:  # type: ignore[override]
        return f"[u8; {self.size}]"

    def encode(self, value: Any, out: bytearray) -> None:
        if not isinstance(value, (bytes, bytearray)):
            raise EncodingError(
                f"{self.name} expects bytes, got {type(value).__name__}",
                kind=ErrorKind.INVALID_VALUE,
                type=self.name,
            )
        if len(value) != self.size:
            raise EncodingError(
                f"{self.name} expects exactly {self.size} bytes, got {len(value)}",
                kind=ErrorKind.INVALID_VALUE,
                type=self.name,
                length=len(value),
            )
        out += bytes(value)

    def decode(self, data: bytes, offset: int) -> tuple[bytes, int]:
        return bytes(_take(data, offset, self.size, self.name)), offset + self.size


def to_pubkey(value: Any) -> Pubkey:
    """Accept a solders Pubkey, 32 raw bytes, or a base58 string."""
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, (bytes, bytearray)) and len(value) == PUBKEY_LEN:
        return Pubkey(bytes(value))
    if isinstance(value, str):
        try:
            return Pubkey.from_string(value.strip())
        except ValueError as e:
            raise EncodingError(
                f"Invalid base58 public key {value!r}",
                kind=ErrorKind.INVALID_VALUE,
                type="pubkey",
            ) from e
    raise EncodingError(
        f"pubkey expects Pubkey, 32 bytes or base58 str, got {type(value).__name__}",
        kind=ErrorKind.INVALID_VALUE,
        type="pubkey",
    )


class PublicKeyType(FieldType):
    name = "pubkey"

    def encode(self, value: Any, out: bytearray) -> None:
        out += bytes(to_pubkey(value))

    def decode(self, data: bytes, offset: int) -> tuple[Pubkey, int]:
        raw = _take(data, offset, PUBKEY_LEN, self.name)
        return Pubkey(bytes(raw)), offset + PUBKEY_LEN


PUBKEY = PublicKeyType()


@dataclass(frozen=True, repr=False)
class VecOf(FieldType):
    """u32LE item count followed by the items."""

    inner: FieldType

    @property
    def name(self) -> str:  # type: ignore[override]
        return f"vec<{self.inner.name}>"

    def encode(self, value: Any, out: bytearray) -> None:
        if isinstance(value, (str, bytes, bytearray)) or not isinstance(value, (list, tuple)):
            raise EncodingError(
                f"{self.name} expects a list, got {type(value).__name__}",
                kind=ErrorKind.INVALID_VALUE,
                type=self.name,
            )
        U32.encode(len(value), out)
        for item in value:
            self.inner.encode(item, out)

    def decode(self, data: bytes, offset: int) -> tuple[list[Any], int]:
        count, offset = U32.decode(data, offset)
        items: list[Any] = []
        for _ in range(count):
            item, offset = self.inner.decode(data, offset)
            items.append(item)
        return items, offset


@dataclass(frozen=True, repr=False)
class OptionOf(FieldType):
    """0x00 for None, 0x01 followed by the value."""

    inner: FieldType

    @property
    def name(self) -> str:  # type: ignore[override]
        return f"option<{self.inner.name}>"

    def encode(self, value: Any, out: bytearray) -> None:
        if value is None:
            out.append(0)
            return
        out.append(1)
        self.inner.encode(value, out)

    def decode(self, data: bytes, offset: int) -> tuple[Any, int]:
        tag = _take(data, offset, 1, self.name)[0]
        if tag == 0:
            return None, offset + 1
        if tag != 1:
            raise DecodeError(f"Invalid option tag 0x{tag:02x} at offset {offset}", offset=offset)
        return self.inner.decode(data, offset + 1)


@dataclass(frozen=True, repr=False)
class Enum(FieldType):
    """Unit-variant enum: one byte variant index; decodes to the variant name."""

    enum_name: str
    variants: tuple[str, ...]

    @property
    def name(self) -> str:  # type: ignore[override]
        return self.enum_name

    def encode(self, value: Any, out: bytearray) -> None:
        if isinstance(value, str) and value in self.variants:
            out.append(self.variants.index(value))
            return
        if isinstance(value, int) and not isinstance(value, bool) and 0 <= value < len(self.variants):
            out.append(value)
            return
        raise EncodingError(
            f"{value!r} is not a variant of {self.enum_name} {list(self.variants)}",
            kind=ErrorKind.INVALID_VALUE,
            type=self.name,
        )

    def decode(self, data: bytes, offset: int) -> tuple[str, int]:
        index = _take(data, offset, 1, self.name)[0]
        if index >= len(self.variants):
            raise DecodeError(
                f"Variant index {index} out of range for {self.enum_name}",
                offset=offset,
            )
        return self.variants[index], offset + 1
