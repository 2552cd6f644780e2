import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from functools import cached_property
from typing import Any

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from ethereum_rpc import keccak

# The size of an ABI word in bytes.
WORD_SIZE = 32

ABI_JSON = None | bool | int | float | str | Sequence["ABI_JSON"] | Mapping[str, "ABI_JSON"]
"""Values serializable to JSON."""


class ABIDecodingError(Exception):
    """Raised on an error when decoding a value in an Eth ABI encoded bytestring."""


def decode_abi(signature: str, data: bytes) -> Any:
    """Decodes a single static value of the type ``signature`` from ``data``."""
    try:
        (value,) = decode([signature], data)
    except DecodingError as exc:
        # wrap possible `eth_abi` errors
        message = f"Could not decode a value of type {signature}: {exc}"
        raise ABIDecodingError(message) from exc
    return value


def read_slice(data: bytes, offset: int, length: int) -> bytes:
    """
    Returns ``length`` bytes of ``data`` starting from the absolute position ``offset``,
    raising :py:class:`ABIDecodingError` if the buffer is too short.
    """
    if offset < 0 or offset + length > len(data):
        raise ABIDecodingError(
            f"Tried to read {length} bytes at offset {offset}, "
            f"but the buffer is only {len(data)} bytes long"
        )
    return data[offset : offset + length]


def read_uint(data: bytes, offset: int) -> int:
    """Reads a big-endian unsigned integer word (used for offsets and lengths)."""
    return int.from_bytes(read_slice(data, offset, WORD_SIZE), byteorder="big")


class Type(ABC):
    """The base type for Solidity types."""

    @property
    @abstractmethod
    def canonical_form(self) -> str:
        """Returns the type as a string in the canonical form (for ``eth_abi`` consumption)."""

    @property
    def is_dynamic(self) -> bool:
        """
        Whether the values of this type are encoded in the tail of an enclosing tuple
        (with an offset stored in the head).
        """
        return False

    @property
    def head_size(self) -> int:
        """The number of bytes a value of this type occupies in the head of a tuple."""
        return WORD_SIZE

    def encode(self, val: Any) -> bytes:
        """
        Encodes the given normalized value (one accepted by ``eth_abi``)
        in the contract ABI format.
        """
        return encode([self.canonical_form], [val])

    def encode_to_topic(self, val: Any) -> bytes:
        """Encodes the given normalized value as an event topic."""
        # EVM uses a simpler encoding scheme for encoding values into event topics
        # because objects of reference types are just hashed,
        # and there is no need to unpack them later
        # (basically, all values are just concatenated without any length labels).
        return self._encode_to_topic_outer(val)

    def _encode_to_topic_outer(self, val: Any) -> bytes:
        """Encodes a value of the outer indexed type."""
        return self.encode(val)

    def _encode_to_topic_inner(self, val: Any) -> bytes:
        """Encodes a value contained within an indexed array or struct."""
        return self.encode(val)

    def __str__(self) -> str:
        return self.canonical_form

    def __repr__(self) -> str:
        return f"abi.{self.canonical_form}"

    def __hash__(self) -> int:
        return hash((type(self), self.canonical_form))

    def __getitem__(self, array_size: int | Any) -> "Array":
        # In Py3.10 they added EllipsisType which would work better here.
        # For now, relying on the documentation.
        if isinstance(array_size, int):
            return Array(self, array_size)
        if array_size == ...:
            return Array(self, None)
        raise TypeError(f"Invalid array size specifier type: {type(array_size).__name__}")


class UInt(Type):
    """Corresponds to the Solidity ``uint<bits>`` type."""

    def __init__(self, bits: int):
        if bits <= 0 or bits > 256 or bits % 8 != 0:  # noqa: PLR2004
            raise ValueError(f"Incorrect `uint` bit size: {bits}")
        self.bits = bits

    @property
    def canonical_form(self) -> str:
        return f"uint{self.bits}"

    def check_value(self, val: int) -> None:
        if val < 0:
            raise ValueError(
                f"`{self.canonical_form}` must correspond to a non-negative integer, got {val}"
            )
        if val >> self.bits != 0:
            raise ValueError(
                f"`{self.canonical_form}` must correspond to an unsigned integer "
                f"under {self.bits} bits, got {val}"
            )

    def __eq__(self, other: object) -> bool:
        return isinstance(other, UInt) and self.bits == other.bits

    __hash__ = Type.__hash__


class Int(Type):
    """Corresponds to the Solidity ``int<bits>`` type."""

    def __init__(self, bits: int):
        if bits <= 0 or bits > 256 or bits % 8 != 0:  # noqa: PLR2004
            raise ValueError(f"Incorrect `int` bit size: {bits}")
        self.bits = bits

    @property
    def canonical_form(self) -> str:
        return f"int{self.bits}"

    def check_value(self, val: int) -> None:
        if (val + (1 << (self.bits - 1))) >> self.bits != 0:
            raise ValueError(
                f"`{self.canonical_form}` must correspond to a signed integer "
                f"under {self.bits} bits, got {val}"
            )

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Int) and self.bits == other.bits

    __hash__ = Type.__hash__


class Bytes(Type):
    """Corresponds to the Solidity ``bytes<size>`` type."""

    def __init__(self, size: None | int = None):
        if size is not None and (size <= 0 or size > 32):  # noqa: PLR2004
            raise ValueError(f"Incorrect `bytes` size: {size}")
        self.size = size

    @property
    def canonical_form(self) -> str:
        return f"bytes{self.size if self.size else ''}"

    @property
    def is_dynamic(self) -> bool:
        return self.size is None

    def check_value(self, val: bytes) -> None:
        if self.size is not None and len(val) != self.size:
            raise ValueError(f"Expected {self.size} bytes, got {len(val)}")

    def _encode_to_topic_outer(self, val: bytes) -> bytes:
        if self.size is None:
            # Dynamic `bytes` is a reference type and is therefore hashed.
            return keccak(val)
        # Sized `bytes` is a value type, falls back to the base implementation.
        return super()._encode_to_topic_outer(val)

    def _encode_to_topic_inner(self, val: bytes) -> bytes:
        if self.size is None:
            # Dynamic `bytes` is padded to a multiple of 32 bytes.
            padding_len = (WORD_SIZE - len(val)) % WORD_SIZE
            return val + b"\x00" * padding_len
        return super()._encode_to_topic_inner(val)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Bytes) and self.size == other.size

    __hash__ = Type.__hash__


class AddressType(Type):
    """
    Corresponds to the Solidity ``address`` type.
    Not to be confused with :py:class:`ethereum_rpc.Address` which represents an address value.
    """

    @property
    def canonical_form(self) -> str:
        return "address"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, AddressType)

    __hash__ = Type.__hash__


class String(Type):
    """Corresponds to the Solidity ``string`` type."""

    @property
    def canonical_form(self) -> str:
        return "string"

    @property
    def is_dynamic(self) -> bool:
        return True

    def _encode_to_topic_outer(self, val: str) -> bytes:
        # `string` is encoded and treated as dynamic `bytes`
        return Bytes()._encode_to_topic_outer(val.encode())

    def _encode_to_topic_inner(self, val: str) -> bytes:
        # `string` is encoded and treated as dynamic `bytes`
        return Bytes()._encode_to_topic_inner(val.encode())

    def __eq__(self, other: object) -> bool:
        return isinstance(other, String)

    __hash__ = Type.__hash__


class Bool(Type):
    """Corresponds to the Solidity ``bool`` type."""

    @property
    def canonical_form(self) -> str:
        return "bool"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Bool)

    __hash__ = Type.__hash__


class Array(Type):
    """Corresponds to the Solidity array (``[<size>]``) type."""

    def __init__(self, element_type: Type, size: None | int = None):
        if size is not None and size <= 0:
            raise ValueError(f"Incorrect array size: {size}")
        self.element_type = element_type
        self.size = size

    @cached_property
    def canonical_form(self) -> str:
        return self.element_type.canonical_form + "[" + (str(self.size) if self.size else "") + "]"

    @property
    def is_dynamic(self) -> bool:
        return self.size is None or self.element_type.is_dynamic

    @property
    def head_size(self) -> int:
        if self.is_dynamic:
            return WORD_SIZE
        # `size` is not `None` here, otherwise the array would be dynamic
        return self.element_type.head_size * (self.size or 0)

    def check_length(self, length: int) -> None:
        if self.size is not None and length != self.size:
            raise ValueError(f"Expected {self.size} elements, got {length}")

    def _encode_to_topic_outer(self, val: Sequence[Any]) -> bytes:
        return keccak(self._encode_to_topic_inner(val))

    def _encode_to_topic_inner(self, val: Sequence[Any]) -> bytes:
        return b"".join(self.element_type._encode_to_topic_inner(elem) for elem in val)  # noqa: SLF001

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Array)
            and self.element_type == other.element_type
            and self.size == other.size
        )

    __hash__ = Type.__hash__


class Struct(Type):
    """Corresponds to the Solidity struct type (an ABI tuple)."""

    def __init__(self, fields: Mapping[str, Type]):
        self.fields = dict(fields)

    @cached_property
    def canonical_form(self) -> str:
        return "(" + ",".join(field.canonical_form for field in self.fields.values()) + ")"

    @property
    def field_types(self) -> tuple[Type, ...]:
        return tuple(self.fields.values())

    @property
    def is_dynamic(self) -> bool:
        return any(tp.is_dynamic for tp in self.fields.values())

    @property
    def head_size(self) -> int:
        if self.is_dynamic:
            return WORD_SIZE
        return sum(tp.head_size for tp in self.fields.values())

    def check_length(self, length: int) -> None:
        if length != len(self.fields):
            raise ValueError(f"Expected {len(self.fields)} elements, got {length}")

    def _encode_to_topic_outer(self, val: Sequence[Any]) -> bytes:
        return keccak(self._encode_to_topic_inner(val))

    def _encode_to_topic_inner(self, val: Sequence[Any]) -> bytes:
        return b"".join(
            tp._encode_to_topic_inner(elem)  # noqa: SLF001
            for elem, tp in zip(val, self.fields.values(), strict=True)
        )

    def __str__(self) -> str:
        # Overriding  the `Type`'s implementation because we want to show the field names too
        return "(" + ", ".join(str(tp) + " " + str(name) for name, tp in self.fields.items()) + ")"

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Struct)
            and self.fields == other.fields
            # structs with the same fields but in different order are not equal
            and list(self.fields) == list(other.fields)
        )

    def __hash__(self) -> int:
        return hash((Struct, tuple(self.fields.items())))


def is_reference_type(tp: Type) -> bool:
    """
    Returns ``True`` for the types that are hashed
    when used as indexed event fields.
    """
    return isinstance(tp, String | Array | Struct) or (isinstance(tp, Bytes) and tp.size is None)


_UINT_RE = re.compile(r"uint(\d+)")
_INT_RE = re.compile(r"int(\d+)")
_BYTES_RE = re.compile(r"bytes(\d+)?")

_NO_PARAMS = {
    "address": AddressType(),
    "string": String(),
    "bool": Bool(),
}


def type_from_abi_string(abi_string: str) -> Type:
    if match := _UINT_RE.fullmatch(abi_string):
        return UInt(int(match.group(1)))
    if match := _INT_RE.fullmatch(abi_string):
        return Int(int(match.group(1)))
    if match := _BYTES_RE.fullmatch(abi_string):
        size = match.group(1)
        return Bytes(int(size) if size else None)
    if abi_string in _NO_PARAMS:
        return _NO_PARAMS[abi_string]
    raise ValueError(f"Unknown type: {abi_string}")


def dispatch_type(abi_entry: Mapping[str, Any]) -> Type:
    type_str = abi_entry["type"]
    match = re.match(r"^([\w\d\[\]]*?)(\[(\d+)?\])?$", type_str)
    if not match:
        raise ValueError(f"Incorrect type format: {type_str}")

    element_type_name = match.group(1)
    is_array = match.group(2)
    array_size = match.group(3)
    if array_size is not None:
        array_size = int(array_size)

    if is_array:
        element_entry = dict(abi_entry)
        element_entry["type"] = element_type_name
        element_type = dispatch_type(element_entry)
        return Array(element_type, array_size)
    if element_type_name == "tuple":
        fields = {}
        for position, component in enumerate(abi_entry["components"]):
            # Tuple components can be anonymous
            name = component.get("name") or f"_{position}"
            fields[name] = dispatch_type(component)
        return Struct(fields)
    return type_from_abi_string(element_type_name)


def dispatch_parameter_types(
    abi_entry: Iterable[Mapping[str, Any]],
) -> list[tuple[str | None, Type]]:
    """Parses a list of JSON ABI parameters into pairs of names (``None`` if empty) and types."""
    return [(entry.get("name") or None, dispatch_type(entry)) for entry in abi_entry]


def canonical_signature(types: Iterable[Type]) -> str:
    return "(" + ",".join(tp.canonical_form for tp in types) + ")"


def encode_normalized(types: Sequence[Type], values: Sequence[Any]) -> bytes:
    """Encodes already normalized values as an argument list (an ABI tuple) of given types."""
    return encode([tp.canonical_form for tp in types], list(values))
