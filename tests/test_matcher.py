from dataclasses import dataclass, field
from typing import NamedTuple

import pytest
from ethereum_rpc import Address

from interpres import CodecRegistry, abi, first_matching_shape, match_signature, native_shape
from interpres._codecs import AddressCodec, IntCodec, StringCodec


@dataclass
class Transfer:
    source: Address
    destination: Address
    value: int


@dataclass
class WithDerivedField:
    value: int
    doubled: int = field(init=False)

    def __post_init__(self) -> None:
        self.doubled = self.value * 2


class Named(NamedTuple):
    name: str
    value: int


class PlainRecord:
    def __init__(self, name: str, value: int, extra):  # noqa: ANN001
        self.name = name
        self.value = value
        self.extra = extra


class Simple:
    def __init__(self, name: str, value: int):
        self.name = name
        self.value = value


class KeywordOnly:
    def __init__(self, *, name: str):
        self.name = name


@dataclass
class UnresolvedHint:
    name: str
    value: "Missing"  # type: ignore[name-defined] # noqa: F821


def test_native_shape() -> None:
    assert native_shape(Transfer) == (Address, Address, int)
    assert native_shape(WithDerivedField) == (int,)
    assert native_shape(Named) == (str, int)
    # Unannotated parameters accept any representation
    assert native_shape(PlainRecord) == (str, int, None)

    with pytest.raises(TypeError, match="must only have positional parameters"):
        native_shape(KeywordOnly)


def test_match_signature(registry: CodecRegistry) -> None:
    types = [abi.address, abi.address, abi.uint(256)]

    decoders = match_signature(registry, types, native_shape(Transfer))
    assert decoders is not None
    assert len(decoders) == 3
    assert isinstance(decoders[0], AddressCodec)
    assert isinstance(decoders[1], AddressCodec)
    assert isinstance(decoders[2], IntCodec)


def test_match_signature_all_or_nothing(registry: CodecRegistry) -> None:
    types = [abi.address, abi.string, abi.uint(256)]

    # The last position cannot be resolved
    assert match_signature(registry, types, (Address, str, str)) is None
    # Arity mismatch in either direction
    assert match_signature(registry, types, (Address, str)) is None
    assert match_signature(registry, types, (Address, str, int, int)) is None

    decoders = match_signature(registry, types, (Address, None, int))
    assert decoders is not None
    assert isinstance(decoders[1], StringCodec)

    assert match_signature(registry, [], ()) == ()


def test_first_matching_shape(registry: CodecRegistry) -> None:
    types = [abi.string, abi.uint(8)]

    match = first_matching_shape(registry, types, [Transfer, Named, PlainRecord])
    assert match is not None
    cls, decoders = match
    assert cls is Named
    assert len(decoders) == 2

    # The order of candidates is respected
    match = first_matching_shape(registry, types, [WithDerivedField, Simple, Named])
    assert match is not None
    assert match[0] is Simple
    match = first_matching_shape(registry, types, [Named, Simple])
    assert match is not None
    assert match[0] is Named

    assert first_matching_shape(registry, types, [Transfer, WithDerivedField]) is None

    # Classes unusable as a shape are skipped
    match = first_matching_shape(registry, [abi.string], [KeywordOnly, Named, PlainRecord])
    assert match is None
    match = first_matching_shape(registry, [abi.string, abi.uint(8)], [KeywordOnly, Named])
    assert match is not None
    assert match[0] is Named

    # A class with annotations that cannot be resolved is skipped too
    match = first_matching_shape(registry, types, [UnresolvedHint, Named])
    assert match is not None
    assert match[0] is Named
    assert first_matching_shape(registry, types, [UnresolvedHint]) is None
