"""
Instruction and account codec.

Instruction data = 8-byte discriminator (sha256("global:" + name)[:8]) followed
by the schema's fields in order. Account data = 8-byte discriminator
(sha256("account:" + Name)[:8]) followed by the layout's fields. Encoding is a
pure function: identical schema and values always give identical bytes.

Program-side string limits are NOT checked here; callers validate them with
check_limits() before encoding.
"""

from __future__ import annotations

import hashlib
from functools import lru_cache
from typing import Any, Mapping, Sequence

from agent_registry.codec.fields import (
    PUBKEY_LEN,
    BoolType,
    Enum,
    FieldType,
    FixedBytes,
    IntType,
    PublicKeyType,
)
from agent_registry.codec.schema import AccountLayout, InstructionSchema
from agent_registry.errors import DecodeError, EncodingError, ErrorKind, SchemaError

DISCRIMINATOR_LEN = 8

FieldList = tuple[tuple[str, FieldType], ...]


@lru_cache(maxsize=512)
def instruction_discriminator(name: str) -> bytes:
    """Anchor: instruction discriminator = first 8 bytes of sha256("global:instruction_name"). Name is hashed verbatim."""
    return hashlib.sha256(f"global:{name}".encode("utf-8")).digest()[:DISCRIMINATOR_LEN]


@lru_cache(maxsize=512)
def account_discriminator(name: str) -> bytes:
    """Anchor: account discriminator = first 8 bytes of sha256("account:AccountName")."""
    return hashlib.sha256(f"account:{name}".encode("utf-8")).digest()[:DISCRIMINATOR_LEN]


def schema_discriminator(schema: InstructionSchema) -> bytes:
    if schema.discriminator is not None:
        if len(schema.discriminator) != DISCRIMINATOR_LEN:
            raise SchemaError(
                f"Discriminator override for {schema.name} must be {DISCRIMINATOR_LEN} bytes",
                kind=ErrorKind.INVALID_VALUE,
                instruction=schema.name,
            )
        return bytes(schema.discriminator)
    return instruction_discriminator(schema.name)


def _ordered_values(
    fields: FieldList,
    values: Sequence[Any] | Mapping[str, Any],
    what: str,
) -> list[Any]:
    """Positional values are arity-checked; mappings must name every field exactly once."""
    names = [n for n, _ in fields]
    if isinstance(values, Mapping):
        missing = [n for n in names if n not in values]
        unknown = [k for k in values if k not in names]
        if missing or unknown:
            raise SchemaError(
                f"{what}: field names do not match schema (missing={missing}, unknown={unknown})",
                kind=ErrorKind.ARITY_MISMATCH,
                schema=what,
                missing=missing,
                unknown=unknown,
            )
        return [values[n] for n in names]
    if isinstance(values, (str, bytes, bytearray)):
        raise SchemaError(
            f"{what}: field values must be a sequence or mapping, got {type(values).__name__}",
            kind=ErrorKind.ARITY_MISMATCH,
            schema=what,
        )
    values = list(values)
    if len(values) != len(fields):
        raise SchemaError(
            f"{what}: expected {len(fields)} field values, got {len(values)}",
            kind=ErrorKind.ARITY_MISMATCH,
            schema=what,
            expected=len(fields),
            got=len(values),
        )
    return values


def encode_fields(
    fields: FieldList,
    values: Sequence[Any] | Mapping[str, Any],
    *,
    what: str = "fields",
) -> bytes:
    out = bytearray()
    for (name, ftype), value in zip(fields, _ordered_values(fields, values, what)):
        try:
            ftype.encode(value, out)
        except EncodingError as e:
            e.diagnostics.setdefault("field", name)
            e.diagnostics.setdefault("schema", what)
            raise
    return bytes(out)


def decode_fields(fields: FieldList, data: bytes, offset: int = 0) -> tuple[dict[str, Any], int]:
    out: dict[str, Any] = {}
    for name, ftype in fields:
        try:
            out[name], offset = ftype.decode(data, offset)
        except DecodeError as e:
            e.diagnostics.setdefault("field", name)
            raise
    return out, offset


def encode_instruction(schema: InstructionSchema, values: Sequence[Any] | Mapping[str, Any]) -> bytes:
    """Discriminator + encoded fields; the tag is always prepended."""
    return schema_discriminator(schema) + encode_fields(schema.fields, values, what=schema.name)


def decode_instruction(schema: InstructionSchema, data: bytes) -> dict[str, Any]:
    """Inverse of encode_instruction; trailing bytes are a layout error."""
    tag = schema_discriminator(schema)
    if bytes(data[:DISCRIMINATOR_LEN]) != tag:
        raise DecodeError(
            f"Instruction data does not start with the {schema.name} discriminator",
            instruction=schema.name,
            expected=tag,
            got=bytes(data[:DISCRIMINATOR_LEN]),
        )
    values, end = decode_fields(schema.fields, data, DISCRIMINATOR_LEN)
    if end != len(data):
        raise DecodeError(
            f"{len(data) - end} trailing bytes after {schema.name} arguments",
            instruction=schema.name,
            trailing=len(data) - end,
        )
    return values


def encode_account(layout: AccountLayout, values: Sequence[Any] | Mapping[str, Any]) -> bytes:
    return account_discriminator(layout.name) + encode_fields(layout.fields, values, what=layout.name)


def decode_account(layout: AccountLayout, data: bytes) -> dict[str, Any]:
    """
    Decode Anchor account data. Checks the leading tag, the allocated size and
    that every field is present. Any bytes after the last field, up to
    ``space``, are ignored: accounts are allocated at their maximum size and a
    string that shrinks leaves its old tail bytes behind, so the tail is not
    necessarily zero.
    """
    if len(data) < DISCRIMINATOR_LEN:
        raise DecodeError(
            f"{layout.name}: account data too short ({len(data)} bytes)",
            layout=layout.name,
            length=len(data),
        )
    tag = account_discriminator(layout.name)
    if bytes(data[:DISCRIMINATOR_LEN]) != tag:
        raise DecodeError(
            f"{layout.name}: unexpected account discriminator",
            layout=layout.name,
            expected=tag,
            got=bytes(data[:DISCRIMINATOR_LEN]),
        )
    if layout.space is not None and len(data) > layout.space:
        raise DecodeError(
            f"{layout.name}: {len(data)} bytes exceeds allocated space {layout.space}",
            layout=layout.name,
            length=len(data),
            space=layout.space,
        )
    try:
        values, _ = decode_fields(layout.fields, data, DISCRIMINATOR_LEN)
    except DecodeError as e:
        e.diagnostics.setdefault("layout", layout.name)
        raise
    return values


def check_limits(
    schema: InstructionSchema,
    values: Sequence[Any] | Mapping[str, Any],
    limits: Mapping[str, int],
) -> None:
    """
    Caller-side check of program limits per field name: max UTF-8 bytes for
    strings, max item count for lists.
    Raises EncodingError(INVALID_VALUE) naming the first offending field.
    """
    ordered = _ordered_values(schema.fields, values, schema.name)
    for (name, _), value in zip(schema.fields, ordered):
        limit = limits.get(name)
        if limit is None:
            continue
        if isinstance(value, str):
            size, unit = len(value.encode("utf-8")), "bytes"
        elif isinstance(value, (list, tuple)):
            size, unit = len(value), "items"
        else:
            continue
        if size > limit:
            raise EncodingError(
                f"{schema.name}.{name} is {size} {unit}; program limit is {limit}",
                kind=ErrorKind.INVALID_VALUE,
                instruction=schema.name,
                field=name,
                limit=limit,
                length=size,
            )


def _fixed_width(ftype: FieldType) -> int | None:
    if isinstance(ftype, IntType):
        return ftype.width
    if isinstance(ftype, FixedBytes):
        return ftype.size
    if isinstance(ftype, PublicKeyType):
        return PUBKEY_LEN
    if isinstance(ftype, (BoolType, Enum)):
        return 1
    return None


def field_offsets(layout: AccountLayout) -> dict[str, int]:
    """Byte offsets (discriminator included) of the fields whose position is fixed."""
    offsets: dict[str, int] = {}
    offset = DISCRIMINATOR_LEN
    for name, ftype in layout.fields:
        offsets[name] = offset
        width = _fixed_width(ftype)
        if width is None:
            break
        offset += width
    return offsets


def encode_field(layout: AccountLayout, name: str, value: Any) -> bytes:
    """Wire bytes of one layout field."""
    types = dict(layout.fields)
    if name not in types:
        raise SchemaError(
            f"{layout.name} has no field {name!r}",
            kind=ErrorKind.INVALID_VALUE,
            layout=layout.name,
            field=name,
        )
    out = bytearray()
    try:
        types[name].encode(value, out)
    except EncodingError as e:
        e.diagnostics.setdefault("field", name)
        e.diagnostics.setdefault("schema", layout.name)
        raise
    return bytes(out)


def account_filters(layout: AccountLayout, **values: Any) -> list[tuple[int, bytes]]:
    """
    memcmp filters (offset, bytes) selecting accounts of ``layout`` whose named
    fields equal ``values``. The first filter is always the account
    discriminator at offset 0. A field can only be matched when every field
    before it has a fixed width; its own value may be variable length.
    """
    offsets = field_offsets(layout)
    filters = [(0, account_discriminator(layout.name))]
    for name, value in values.items():
        raw = encode_field(layout, name, value)
        if name not in offsets:
            raise SchemaError(
                f"{layout.name}.{name} follows a variable-length field and cannot be filtered on",
                kind=ErrorKind.INVALID_VALUE,
                layout=layout.name,
                field=name,
            )
        filters.append((offsets[name], raw))
    return filters
