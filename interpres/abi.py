# This is the whole point of this module.
# ruff: noqa: A001

"""Aliases for various Solidity types."""

from ._abi_types import (
    AddressType,
    Array,
    Bool,
    Bytes,
    Int,
    String,
    Struct,
    Type,
    UInt,
    dispatch_type,
)

_PyInt = int


def uint(bits: _PyInt) -> UInt:
    """Returns the ``uint<bits>`` type."""
    return UInt(bits)


def int(bits: _PyInt) -> Int:
    """Returns the ``int<bits>`` type."""
    return Int(bits)


def bytes(size: None | _PyInt = None) -> Bytes:
    """Returns the ``bytes<size>`` type, or ``bytes`` if ``size`` is ``None``."""
    return Bytes(size)


def struct(**kwargs: Type) -> Struct:
    """Returns the structure (ABI tuple) type with given fields."""
    return Struct(kwargs)


address: AddressType = AddressType()
"""``address`` type."""

string: String = String()
"""``string`` type."""

bool: Bool = Bool()
"""``bool`` type."""


def array(element_type: Type, size: None | _PyInt = None) -> Array:
    """Returns the array type ``<element_type>[<size>]``, or ``<element_type>[]`` for ``None``."""
    return Array(element_type, size)


def parse(type_string: str) -> Type:
    """
    Parses a type in the canonical form, like ``"uint256"`` or ``"address[2][]"``.
    Tuples cannot be represented this way, use :py:func:`struct` for them.
    """
    return dispatch_type({"type": type_string})
