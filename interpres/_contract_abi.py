from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import Any, cast

from ethereum_rpc import LogTopic, keccak

from ._abi_types import (
    ABI_JSON,
    Array,
    Bytes,
    Struct,
    Type,
    canonical_signature,
    dispatch_type,
    is_reference_type,
)

# Anonymous events can have at most 4 indexed fields
ANONYMOUS_EVENT_INDEXED_FIELDS = 4

# Non-anonymous events can have at most 3 indexed fields
EVENT_INDEXED_FIELDS = 3

# The number of bytes in a function selector.
SELECTOR_LENGTH = 4


class EntryKind(Enum):
    """Kinds of contract ABI entries."""

    FUNCTION = "function"
    EVENT = "event"
    CONSTRUCTOR = "constructor"
    FALLBACK = "fallback"
    RECEIVE = "receive"
    ERROR = "error"

    @classmethod
    def from_json(cls, entry: ABI_JSON) -> "EntryKind":
        try:
            return cls(entry)
        except ValueError as exc:
            raise ValueError(f"Unknown ABI entry type: {entry}") from exc


class Mutability(Enum):
    """Possible states of a contract's method mutability."""

    PURE = "pure"
    """Solidity's ``pure`` (does not read or write the contract state)."""
    VIEW = "view"
    """Solidity's ``view`` (may read the contract state)."""
    NONPAYABLE = "nonpayable"
    """Solidity's ``nonpayable`` (may write the contract state)."""
    PAYABLE = "payable"
    """
    Solidity's ``payable`` (may write the contract state
    and accept associated funds with transactions).
    """

    @classmethod
    def from_json(cls, entry: ABI_JSON) -> "Mutability":
        try:
            return cls(entry)
        except ValueError as exc:
            raise ValueError(f"Unknown mutability identifier: {entry}") from exc

    @property
    def payable(self) -> bool:
        return self == Mutability.PAYABLE

    @property
    def mutating(self) -> bool:
        return self in {Mutability.PAYABLE, Mutability.NONPAYABLE}


@dataclass(frozen=True)
class AbiParam:
    """A named (possibly anonymously), typed parameter of an ABI entry."""

    name: None | str
    """The parameter name, ``None`` if the parameter is anonymous."""

    type: Type
    """The parameter type."""

    indexed: bool = False
    """Whether this is an indexed event field."""

    @classmethod
    def from_json(cls, param_entry: Mapping[str, Any]) -> "AbiParam":
        return cls(
            name=param_entry.get("name") or None,
            type=dispatch_type(param_entry),
            indexed=bool(param_entry.get("indexed", False)),
        )

    @property
    def log_type(self) -> Type:
        """
        The type of the value as it appears in an event log.
        Indexed fields of reference types are stored as a hash of the value.
        """
        if self.indexed and is_reference_type(self.type):
            return Bytes(32)
        return self.type

    def to_json(self) -> ABI_JSON:
        # `tuple` types are serialized with their components
        entry = _type_to_json(self.type)
        entry["name"] = self.name or ""
        return entry

    def __str__(self) -> str:
        return (
            self.type.canonical_form
            + (" indexed" if self.indexed else "")
            + ((" " + self.name) if self.name is not None else "")
        )


def _type_to_json(tp: Type) -> dict[str, Any]:
    # Arrays of structs need to be unwrapped to find the components
    suffix = ""
    element = tp
    while isinstance(element, Array):
        suffix = "[" + (str(element.size) if element.size else "") + "]" + suffix
        element = element.element_type

    if isinstance(element, Struct):
        components = []
        for name, field_type in element.fields.items():
            component = _type_to_json(field_type)
            component["name"] = name
            components.append(component)
        return {"type": "tuple" + suffix, "components": components}

    return {"type": tp.canonical_form}


class AbiEntry:
    """
    A single element of a contract ABI: a function, an event, a constructor,
    a fallback or receive method, or an error.
    """

    kind: EntryKind
    """The kind of this entry."""

    name: str
    """The entry name (empty for constructors, fallback and receive methods)."""

    inputs: tuple[AbiParam, ...]
    """Input parameters (event fields for events)."""

    outputs: tuple[AbiParam, ...]
    """Output parameters (only functions have them)."""

    mutability: Mutability
    """State mutability (``nonpayable`` for events and errors)."""

    anonymous: bool
    """Whether this is an anonymous event."""

    @classmethod
    def from_json(cls, entry: ABI_JSON) -> "AbiEntry":
        """Creates this object from a JSON ABI entry."""
        entry_typed = cast("Mapping[str, Any]", entry)

        kind = EntryKind.from_json(entry_typed["type"])

        if kind in (EntryKind.CONSTRUCTOR, EntryKind.FALLBACK, EntryKind.RECEIVE):
            if "name" in entry_typed:
                raise ValueError(f"{kind.value.capitalize()}'s JSON entry cannot have a `name`")
            name = ""
        else:
            name = entry_typed["name"]

        if kind != EntryKind.FUNCTION and entry_typed.get("outputs"):
            raise ValueError(
                f"{kind.value.capitalize()}'s JSON entry cannot have non-empty `outputs`"
            )

        # Older compilers did not produce `stateMutability`
        if "stateMutability" in entry_typed:
            mutability = Mutability.from_json(entry_typed["stateMutability"])
        elif entry_typed.get("constant"):
            mutability = Mutability.VIEW
        elif entry_typed.get("payable"):
            mutability = Mutability.PAYABLE
        else:
            mutability = Mutability.NONPAYABLE

        if (
            kind in (EntryKind.CONSTRUCTOR, EntryKind.FALLBACK, EntryKind.RECEIVE)
            and not mutability.mutating
        ):
            raise ValueError(
                f"{kind.value.capitalize()}'s JSON entry state mutability "
                "must be `nonpayable` or `payable`"
            )

        inputs = [AbiParam.from_json(param) for param in entry_typed.get("inputs", [])]
        outputs = [AbiParam.from_json(param) for param in entry_typed.get("outputs", [])]

        return cls(
            kind=kind,
            name=name,
            inputs=inputs,
            outputs=outputs,
            mutability=mutability,
            anonymous=bool(entry_typed.get("anonymous", False)),
        )

    def __init__(
        self,
        kind: EntryKind,
        name: str = "",
        inputs: Iterable[AbiParam] = (),
        outputs: Iterable[AbiParam] = (),
        mutability: Mutability = Mutability.NONPAYABLE,
        *,
        anonymous: bool = False,
    ):
        self.kind = kind
        self.name = name
        self.inputs = tuple(inputs)
        self.outputs = tuple(outputs)
        self.mutability = mutability
        self.anonymous = anonymous

        if kind == EntryKind.EVENT:
            indexed_num = sum(param.indexed for param in self.inputs)
            if anonymous and indexed_num > ANONYMOUS_EVENT_INDEXED_FIELDS:
                raise ValueError(
                    "Anonymous events can have at most "
                    f"{ANONYMOUS_EVENT_INDEXED_FIELDS} indexed fields"
                )
            if not anonymous and indexed_num > EVENT_INDEXED_FIELDS:
                raise ValueError(
                    f"Non-anonymous events can have at most {EVENT_INDEXED_FIELDS} indexed fields"
                )

    @property
    def input_types(self) -> tuple[Type, ...]:
        return tuple(param.type for param in self.inputs)

    @property
    def output_types(self) -> tuple[Type, ...]:
        return tuple(param.type for param in self.outputs)

    @property
    def payable(self) -> bool:
        """Whether this entry accepts an associated payment."""
        return self.mutability.payable

    @property
    def mutating(self) -> bool:
        """Whether this entry may mutate the contract state."""
        return self.mutability.mutating

    @cached_property
    def signature(self) -> str:
        """The canonical signature, e.g. ``transfer(address,uint256)``."""
        return self.name + canonical_signature(self.input_types)

    @cached_property
    def selector(self) -> bytes:
        """The function or error selector."""
        if self.kind not in (EntryKind.FUNCTION, EntryKind.ERROR):
            raise ValueError(f"Entries of kind `{self.kind.value}` do not have a selector")
        return keccak(self.signature.encode())[:SELECTOR_LENGTH]

    @cached_property
    def topic(self) -> LogTopic:
        """The topic representing this event's signature."""
        if self.kind != EntryKind.EVENT:
            raise ValueError(f"Entries of kind `{self.kind.value}` do not have a topic")
        return LogTopic(keccak(self.signature.encode()))

    def to_json(self) -> ABI_JSON:
        """Returns this object's JSON ABI."""
        entry: dict[str, Any] = {"type": self.kind.value}
        if self.kind not in (EntryKind.CONSTRUCTOR, EntryKind.FALLBACK, EntryKind.RECEIVE):
            entry["name"] = self.name
        if self.kind != EntryKind.FALLBACK and self.kind != EntryKind.RECEIVE:
            inputs = []
            for param in self.inputs:
                param_json = cast("dict[str, Any]", param.to_json())
                if self.kind == EntryKind.EVENT:
                    param_json["indexed"] = param.indexed
                inputs.append(param_json)
            entry["inputs"] = inputs
        if self.kind == EntryKind.FUNCTION:
            entry["outputs"] = [param.to_json() for param in self.outputs]
        if self.kind == EntryKind.EVENT:
            entry["anonymous"] = self.anonymous
        elif self.kind != EntryKind.ERROR:
            entry["stateMutability"] = self.mutability.value
        return entry

    def __str__(self) -> str:
        inputs = "(" + ", ".join(str(param) for param in self.inputs) + ")"
        if self.kind == EntryKind.EVENT:
            return f"event {self.name}{inputs}" + (" anonymous" if self.anonymous else "")
        if self.kind == EntryKind.ERROR:
            return f"error {self.name}{inputs}"
        if self.kind == EntryKind.FUNCTION:
            outputs = "(" + ", ".join(str(param) for param in self.outputs) + ")"
            returns = f" returns {outputs}" if self.outputs else ""
            return f"function {self.name}{inputs} {self.mutability.value}{returns}"
        return f"{self.kind.value}{inputs} {self.mutability.value}"

    def __repr__(self) -> str:
        return f"AbiEntry({self})"


class Either:
    """Denotes an `OR` operation when filtering events."""

    def __init__(self, *items: Any):
        self.items = items


class ContractABI:
    """
    A parsed contract ABI.

    Entries are kept in their declaration order, including overloaded functions and events.
    """

    entries: tuple[AbiEntry, ...]
    """All the ABI entries."""

    @classmethod
    def from_json(cls, json_abi: ABI_JSON) -> "ContractABI":
        """Creates this object from a JSON ABI (e.g. generated by a Solidity compiler)."""
        json_abi_typed = cast("Sequence[ABI_JSON]", json_abi)
        return cls(AbiEntry.from_json(entry) for entry in json_abi_typed)

    def __init__(self, entries: Iterable[AbiEntry] = ()):
        self.entries = tuple(entries)

        for kind in (EntryKind.CONSTRUCTOR, EntryKind.FALLBACK, EntryKind.RECEIVE):
            if sum(entry.kind == kind for entry in self.entries) > 1:
                raise ValueError(f"JSON ABI contains more than one {kind.value} declarations")

    def of_kind(self, kind: EntryKind, name: None | str = None) -> list[AbiEntry]:
        """Returns the entries of the given kind (and name, if given) in declaration order."""
        return [
            entry
            for entry in self.entries
            if entry.kind == kind and (name is None or entry.name == name)
        ]

    def functions(self, name: None | str = None) -> list[AbiEntry]:
        """Returns function entries (with the given name, if given) in declaration order."""
        return self.of_kind(EntryKind.FUNCTION, name)

    def events(self, name: None | str = None) -> list[AbiEntry]:
        """Returns event entries (with the given name, if given) in declaration order."""
        return self.of_kind(EntryKind.EVENT, name)

    @property
    def constructor(self) -> AbiEntry:
        """
        The constructor entry.
        A contract without a declared constructor has an implicit one with no arguments.
        """
        constructors = self.of_kind(EntryKind.CONSTRUCTOR)
        if constructors:
            return constructors[0]
        return AbiEntry(EntryKind.CONSTRUCTOR)

    def to_json(self) -> ABI_JSON:
        """Returns the serialized list of contract entries."""
        return [entry.to_json() for entry in self.entries]

    def __str__(self) -> str:
        indent = "    "
        return "{\n" + "\n".join(indent + str(entry) for entry in self.entries) + "\n}"
