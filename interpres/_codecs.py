"""
Encoders and decoders between native Python values and ABI types.

Every codec owns one pairing of native values with ABI types and declares it
through ``can_encode()`` / ``can_decode()``.
The registry asks codecs in priority order, and the first one that accepts wins.

Encoding normalizes a native value into the form ``eth_abi`` accepts,
and the bytes are produced by ``eth_abi`` itself.
Decoding works on an explicit byte cursor: ``offset`` is the absolute position
of the first byte of the value's own encoding within ``data``.
For a dynamic value this is where its head pointer resolved to,
for a static value it is its slot in the head of the enclosing tuple.
"""

import dataclasses
import typing
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from enum import IntEnum
from typing import TYPE_CHECKING, Any

from ethereum_rpc import Address, Amount

from ._abi_types import (
    WORD_SIZE,
    ABIDecodingError,
    AddressType,
    Array,
    Bool,
    Bytes,
    Int,
    String,
    Struct,
    Type,
    UInt,
    decode_abi,
    read_slice,
    read_uint,
)

if TYPE_CHECKING:  # pragma: no cover
    from ._registry import CodecRegistry


class Encoder(ABC):
    """Converts native values of some runtime types into ABI-encoded values of some ABI types."""

    @abstractmethod
    def can_encode(self, native_type: type, abi_type: Type) -> bool:
        """Returns ``True`` if values of ``native_type`` can be encoded as ``abi_type``."""

    @abstractmethod
    def normalize(self, registry: "CodecRegistry", value: Any, abi_type: Type) -> Any:
        """
        Checks the value and converts it into the form accepted by ``eth_abi``.
        Raises ``TypeError`` or ``ValueError`` if the value does not fit into ``abi_type``.
        """

    def encode(self, registry: "CodecRegistry", value: Any, abi_type: Type) -> bytes:
        """Encodes the value as a single-element argument list."""
        return abi_type.encode(self.normalize(registry, value, abi_type))


class Decoder(ABC):
    """Converts ABI-encoded values of some ABI types into native values of some runtime types."""

    @abstractmethod
    def can_decode(self, registry: "CodecRegistry", target: Any, abi_type: Type) -> bool:
        """
        Returns ``True`` if a value of ``abi_type`` can be decoded into ``target``.
        ``target`` is ``None`` if the caller accepts any representation,
        in which case only the codec's natural ABI types are accepted.
        """

    @abstractmethod
    def decode(
        self, registry: "CodecRegistry", offset: int, data: bytes, abi_type: Type, target: Any
    ) -> Any:
        """Decodes the value whose encoding starts at the absolute position ``offset``."""


class ValueCodec(Encoder, Decoder):
    """A paired encoder and decoder for one native/ABI type pairing."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


def _is_class(target: Any, base: type) -> bool:
    # Parametrized generics like `list[int]` are not classes
    return (
        isinstance(target, type)
        and typing.get_origin(target) is None
        and issubclass(target, base)
    )


def _read_dynamic_bytes(data: bytes, offset: int) -> bytes:
    length = read_uint(data, offset)
    return read_slice(data, offset + WORD_SIZE, length)


def _read_static(data: bytes, offset: int, abi_type: Type) -> Any:
    return decode_abi(abi_type.canonical_form, read_slice(data, offset, WORD_SIZE))


def decode_sequence(
    registry: "CodecRegistry",
    base: int,
    data: bytes,
    types: Sequence[Type],
    decoders: Sequence[Decoder],
    targets: Sequence[Any],
) -> list[Any]:
    """
    Decodes the values of a tuple whose encoding starts at the absolute position ``base``.
    Dynamic members are located through their head pointers, which are relative to ``base``.
    """
    values = []
    head = base
    for tp, decoder, target in zip(types, decoders, targets, strict=True):
        position = base + read_uint(data, head) if tp.is_dynamic else head
        values.append(decoder.decode(registry, position, data, tp, target))
        head += tp.head_size
    return values


def _decode_members(
    registry: "CodecRegistry",
    base: int,
    data: bytes,
    types: Sequence[Type],
    targets: Sequence[Any],
) -> list[Any]:
    decoders = [
        registry.find_decoder(target, tp) for tp, target in zip(types, targets, strict=True)
    ]
    return decode_sequence(registry, base, data, types, decoders, targets)


def _normalize_members(
    registry: "CodecRegistry", values: Sequence[Any], types: Sequence[Type]
) -> list[Any]:
    return [
        registry.find_encoder(type(value), tp).normalize(registry, value, tp)
        for value, tp in zip(values, types, strict=True)
    ]


def decoding_target(annotation: Any) -> Any:
    """Returns the decoding target for an annotation: ``None`` for missing or ``Any``."""
    return None if annotation is Any else annotation


def record_field_types(cls: type) -> None | tuple[Any, ...]:
    """
    Returns the annotated field types of a dataclass or a ``NamedTuple`` class in order,
    or ``None`` if ``cls`` is neither.
    """
    if dataclasses.is_dataclass(cls):
        hints = typing.get_type_hints(cls)
        return tuple(
            decoding_target(hints.get(field.name))
            for field in dataclasses.fields(cls)
            if field.init
        )
    if _is_class(cls, tuple) and hasattr(cls, "_fields"):
        hints = typing.get_type_hints(cls)
        return tuple(decoding_target(hints.get(name)) for name in cls._fields)
    return None


def _record_values(value: Any) -> list[Any]:
    if dataclasses.is_dataclass(value):
        return [getattr(value, field.name) for field in dataclasses.fields(value) if field.init]
    return list(value)


class EnumCodec(ValueCodec):
    """``IntEnum`` subclasses to and from integer types."""

    def can_encode(self, native_type: type, abi_type: Type) -> bool:
        return issubclass(native_type, IntEnum) and isinstance(abi_type, UInt | Int)

    def normalize(self, registry: "CodecRegistry", value: Any, abi_type: Type) -> Any:
        val = int(value)
        abi_type.check_value(val)  # type: ignore[attr-defined]
        return val

    def can_decode(self, registry: "CodecRegistry", target: Any, abi_type: Type) -> bool:
        return _is_class(target, IntEnum) and isinstance(abi_type, UInt | Int)

    def decode(
        self, registry: "CodecRegistry", offset: int, data: bytes, abi_type: Type, target: Any
    ) -> Any:
        val = _read_static(data, offset, abi_type)
        try:
            return target(val)
        except ValueError as exc:
            raise ABIDecodingError(f"{val} is not a valid `{target.__name__}` value") from exc


class AmountCodec(ValueCodec):
    """:py:class:`ethereum_rpc.Amount` (and its subclasses) to and from unsigned integers (wei)."""

    def can_encode(self, native_type: type, abi_type: Type) -> bool:
        return issubclass(native_type, Amount) and isinstance(abi_type, UInt)

    def normalize(self, registry: "CodecRegistry", value: Any, abi_type: Type) -> Any:
        val = value.as_wei()
        abi_type.check_value(val)  # type: ignore[attr-defined]
        return val

    def can_decode(self, registry: "CodecRegistry", target: Any, abi_type: Type) -> bool:
        return _is_class(target, Amount) and isinstance(abi_type, UInt)

    def decode(
        self, registry: "CodecRegistry", offset: int, data: bytes, abi_type: Type, target: Any
    ) -> Any:
        return target.wei(_read_static(data, offset, abi_type))


class BoolCodec(ValueCodec):
    """``bool`` to and from ``bool``."""

    def can_encode(self, native_type: type, abi_type: Type) -> bool:
        return issubclass(native_type, bool) and isinstance(abi_type, Bool)

    def normalize(self, registry: "CodecRegistry", value: Any, abi_type: Type) -> Any:
        return bool(value)

    def can_decode(self, registry: "CodecRegistry", target: Any, abi_type: Type) -> bool:
        return target in (None, bool) and isinstance(abi_type, Bool)

    def decode(
        self, registry: "CodecRegistry", offset: int, data: bytes, abi_type: Type, target: Any
    ) -> Any:
        return _read_static(data, offset, abi_type)


class IntCodec(ValueCodec):
    """``int`` to and from ``uint<N>`` and ``int<N>``, preserving the full width."""

    def can_encode(self, native_type: type, abi_type: Type) -> bool:
        # `bool` is a subclass of `int`, but we would rather be more strict
        # and prevent possible bugs.
        return (
            issubclass(native_type, int)
            and not issubclass(native_type, bool)
            and isinstance(abi_type, UInt | Int)
        )

    def normalize(self, registry: "CodecRegistry", value: Any, abi_type: Type) -> Any:
        abi_type.check_value(value)  # type: ignore[attr-defined]
        return int(value)

    def can_decode(self, registry: "CodecRegistry", target: Any, abi_type: Type) -> bool:
        return target in (None, int) and isinstance(abi_type, UInt | Int)

    def decode(
        self, registry: "CodecRegistry", offset: int, data: bytes, abi_type: Type, target: Any
    ) -> Any:
        return _read_static(data, offset, abi_type)


class AddressCodec(ValueCodec):
    """:py:class:`ethereum_rpc.Address` to and from ``address``."""

    def can_encode(self, native_type: type, abi_type: Type) -> bool:
        return issubclass(native_type, Address) and isinstance(abi_type, AddressType)

    def normalize(self, registry: "CodecRegistry", value: Any, abi_type: Type) -> Any:
        return bytes(value)

    def can_decode(self, registry: "CodecRegistry", target: Any, abi_type: Type) -> bool:
        return target in (None, Address) and isinstance(abi_type, AddressType)

    def decode(
        self, registry: "CodecRegistry", offset: int, data: bytes, abi_type: Type, target: Any
    ) -> Any:
        return Address.from_hex(_read_static(data, offset, abi_type))


class StringCodec(ValueCodec):
    """``str`` to and from ``string``, or dynamic ``bytes`` holding UTF-8 text."""

    def can_encode(self, native_type: type, abi_type: Type) -> bool:
        return issubclass(native_type, str) and (
            isinstance(abi_type, String) or abi_type == Bytes()
        )

    def normalize(self, registry: "CodecRegistry", value: Any, abi_type: Type) -> Any:
        return value if isinstance(abi_type, String) else value.encode()

    def can_decode(self, registry: "CodecRegistry", target: Any, abi_type: Type) -> bool:
        if target is None:
            return isinstance(abi_type, String)
        return target is str and (isinstance(abi_type, String) or abi_type == Bytes())

    def decode(
        self, registry: "CodecRegistry", offset: int, data: bytes, abi_type: Type, target: Any
    ) -> Any:
        payload = _read_dynamic_bytes(data, offset)
        try:
            return payload.decode()
        except UnicodeDecodeError as exc:
            raise ABIDecodingError(f"Could not decode `{abi_type}` as UTF-8: {exc}") from exc


class BytesCodec(ValueCodec):
    """``bytes`` to and from ``bytes`` and ``bytes<N>``."""

    def can_encode(self, native_type: type, abi_type: Type) -> bool:
        return issubclass(native_type, bytes | bytearray) and isinstance(abi_type, Bytes)

    def normalize(self, registry: "CodecRegistry", value: Any, abi_type: Type) -> Any:
        val = bytes(value)
        abi_type.check_value(val)  # type: ignore[attr-defined]
        return val

    def can_decode(self, registry: "CodecRegistry", target: Any, abi_type: Type) -> bool:
        return target in (None, bytes) and isinstance(abi_type, Bytes)

    def decode(
        self, registry: "CodecRegistry", offset: int, data: bytes, abi_type: Type, target: Any
    ) -> Any:
        if abi_type.is_dynamic:
            return _read_dynamic_bytes(data, offset)
        return _read_static(data, offset, abi_type)


class MappingCodec(ValueCodec):
    """Dictionaries keyed by field names to and from structs."""

    def can_encode(self, native_type: type, abi_type: Type) -> bool:
        return issubclass(native_type, Mapping) and isinstance(abi_type, Struct)

    def normalize(self, registry: "CodecRegistry", value: Any, abi_type: Type) -> Any:
        assert isinstance(abi_type, Struct)  # noqa: S101
        if value.keys() != abi_type.fields.keys():
            raise ValueError(
                f"Expected fields {list(abi_type.fields.keys())}, got {list(value.keys())}"
            )
        values = [value[name] for name in abi_type.fields]
        return _normalize_members(registry, values, abi_type.field_types)

    def can_decode(self, registry: "CodecRegistry", target: Any, abi_type: Type) -> bool:
        return target in (None, dict) and isinstance(abi_type, Struct)

    def decode(
        self, registry: "CodecRegistry", offset: int, data: bytes, abi_type: Type, target: Any
    ) -> Any:
        assert isinstance(abi_type, Struct)  # noqa: S101
        types = abi_type.field_types
        values = _decode_members(registry, offset, data, types, [None] * len(types))
        return dict(zip(abi_type.fields, values, strict=True))


class RecordCodec(ValueCodec):
    """Dataclasses and named tuples to and from structs, field by field in declaration order."""

    def can_encode(self, native_type: type, abi_type: Type) -> bool:
        return record_field_types(native_type) is not None and isinstance(abi_type, Struct)

    def normalize(self, registry: "CodecRegistry", value: Any, abi_type: Type) -> Any:
        assert isinstance(abi_type, Struct)  # noqa: S101
        values = _record_values(value)
        abi_type.check_length(len(values))
        return _normalize_members(registry, values, abi_type.field_types)

    def can_decode(self, registry: "CodecRegistry", target: Any, abi_type: Type) -> bool:
        if not isinstance(abi_type, Struct) or not isinstance(target, type):
            return False
        field_types = record_field_types(target)
        if field_types is None or len(field_types) != len(abi_type.fields):
            return False
        return all(
            registry.has_decoder(field_type, tp)
            for field_type, tp in zip(field_types, abi_type.field_types, strict=True)
        )

    def decode(
        self, registry: "CodecRegistry", offset: int, data: bytes, abi_type: Type, target: Any
    ) -> Any:
        assert isinstance(abi_type, Struct)  # noqa: S101
        field_types = record_field_types(target)
        assert field_types is not None  # noqa: S101
        values = _decode_members(registry, offset, data, abi_type.field_types, field_types)
        return target(*values)


_SEQUENCE_ORIGINS = (list, tuple, Sequence)


def _is_fixed_tuple(target: Any) -> bool:
    if typing.get_origin(target) is not tuple:
        return False
    args = typing.get_args(target)
    return not (len(args) == 2 and args[1] is Ellipsis)  # noqa: PLR2004


class SequenceCodec(ValueCodec):
    """
    Lists and tuples to and from arrays, element by element.
    Plain tuples are also accepted for structs (positionally).
    """

    def can_encode(self, native_type: type, abi_type: Type) -> bool:
        if isinstance(abi_type, Array):
            return issubclass(native_type, list | tuple)
        return issubclass(native_type, list | tuple) and isinstance(abi_type, Struct)

    def normalize(self, registry: "CodecRegistry", value: Any, abi_type: Type) -> Any:
        if isinstance(abi_type, Struct):
            abi_type.check_length(len(value))
            return _normalize_members(registry, value, abi_type.field_types)

        assert isinstance(abi_type, Array)  # noqa: S101
        abi_type.check_length(len(value))
        return _normalize_members(registry, value, [abi_type.element_type] * len(value))

    def _element_targets(self, target: Any, length: int) -> None | list[Any]:
        """
        Returns the decoding targets for ``length`` elements of a sequence target,
        or ``None`` if ``target`` does not describe a sequence of that length.
        """
        if target is None or target in _SEQUENCE_ORIGINS:
            return [None] * length

        origin = typing.get_origin(target)
        if origin not in _SEQUENCE_ORIGINS:
            return None

        args = typing.get_args(target)
        if _is_fixed_tuple(target):
            # A heterogeneous tuple, like `tuple[int, str]`
            return list(args) if len(args) == length else None
        return [args[0] if args else None] * length

    def can_decode(self, registry: "CodecRegistry", target: Any, abi_type: Type) -> bool:
        if isinstance(abi_type, Array):
            # The length of a dynamic array is not known until decoding,
            # so only fixed arrays can be decoded into heterogeneous tuples.
            if abi_type.size is None and _is_fixed_tuple(target):
                return False
            length = abi_type.size if abi_type.size is not None else 1
            targets = self._element_targets(target, length)
            return targets is not None and all(
                registry.has_decoder(elem_target, abi_type.element_type) for elem_target in targets
            )

        if isinstance(abi_type, Struct) and target is not None:
            targets = self._element_targets(target, len(abi_type.fields))
            return targets is not None and all(
                registry.has_decoder(elem_target, tp)
                for elem_target, tp in zip(targets, abi_type.field_types, strict=True)
            )

        return False

    def _wrap(self, target: Any, values: list[Any]) -> Any:
        origin = typing.get_origin(target) or target
        return tuple(values) if origin is tuple else values

    def decode(
        self, registry: "CodecRegistry", offset: int, data: bytes, abi_type: Type, target: Any
    ) -> Any:
        if isinstance(abi_type, Struct):
            types = list(abi_type.field_types)
            base = offset
        else:
            assert isinstance(abi_type, Array)  # noqa: S101
            if abi_type.size is None:
                length = read_uint(data, offset)
                base = offset + WORD_SIZE
            else:
                length = abi_type.size
                base = offset
            # Every element takes at least one word in the head,
            # so a claimed length cannot exceed what the buffer can hold.
            if base + length * abi_type.element_type.head_size > len(data):
                raise ABIDecodingError(
                    f"Array length {length} at offset {offset} exceeds the buffer size"
                )
            types = [abi_type.element_type] * length

        targets = self._element_targets(target, len(types))
        if targets is None:
            raise ABIDecodingError(
                f"Cannot decode {len(types)} elements of `{abi_type}` into {target}"
            )
        values = _decode_members(registry, base, data, types, targets)
        return self._wrap(target, values)


def default_codecs() -> list[ValueCodec]:
    """Returns the built-in codecs in the order of their priority."""
    return [
        # More specific integer wrappers go before the generic integer codec
        EnumCodec(),
        AmountCodec(),
        BoolCodec(),
        IntCodec(),
        AddressCodec(),
        StringCodec(),
        BytesCodec(),
        MappingCodec(),
        RecordCodec(),
        SequenceCodec(),
    ]
