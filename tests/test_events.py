import os
from dataclasses import dataclass
from typing import Any, NamedTuple

import pytest
from eth_abi import encode
from ethereum_rpc import Address, LogTopic, keccak

from interpres import (
    AddressCodec,
    CodecRegistry,
    ContractABI,
    Either,
    IntCodec,
    SolidityEvent,
    abi,
    resolve_event,
)

from .chain import make_log_entry

JSON_ABI = [
    {
        "type": "event",
        "name": "Transfer",
        "anonymous": False,
        "inputs": [
            {"name": "source", "type": "address", "indexed": True},
            {"name": "destination", "type": "address", "indexed": True},
            {"name": "value", "type": "uint256", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "Data",
        "anonymous": False,
        "inputs": [
            {"name": "id", "type": "uint256", "indexed": True},
            {"name": "text", "type": "string", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "Data",
        "anonymous": False,
        "inputs": [
            {"name": "id", "type": "uint256", "indexed": True},
            {"name": "amount", "type": "uint256", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "Tagged",
        "anonymous": False,
        "inputs": [
            {"name": "tag", "type": "string", "indexed": True},
            {"name": "values", "type": "uint8[]", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "Anonymous",
        "anonymous": True,
        "inputs": [
            {"name": "id", "type": "uint256", "indexed": True},
            {"name": "flag", "type": "bool", "indexed": False},
        ],
    },
    {
        "type": "function",
        "name": "Transfer",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [],
    },
]


@dataclass
class Transfer:
    source: Address
    destination: Address
    value: int


class TextData(NamedTuple):
    id: int
    text: str


class AmountData(NamedTuple):
    id: int
    amount: int


@dataclass
class UntypedData:
    id: int
    payload: Any


@dataclass
class TaggedHash:
    tag_hash: bytes
    values: list[int]


@dataclass
class TaggedText:
    tag: str
    values: list[int]


@dataclass
class AnonymousEvent:
    id: int
    flag: bool


@pytest.fixture
def contract_abi() -> ContractABI:
    return ContractABI.from_json(JSON_ABI)


def address_topic(address: Address) -> LogTopic:
    return LogTopic(abi.address.encode_to_topic(bytes(address)))


def uint_topic(value: int) -> LogTopic:
    return LogTopic(abi.uint(256).encode_to_topic(value))


def test_resolve_transfer(contract_abi: ContractABI, registry: CodecRegistry) -> None:
    event = resolve_event(contract_abi, "Transfer", Transfer, registry)
    assert isinstance(event, SolidityEvent)
    assert event.name == "Transfer"
    assert event.shape is Transfer
    assert event.entry.signature == "Transfer(address,address,uint256)"

    # One decoder for each field, in the order of declaration
    assert len(event.decoders) == 3
    assert isinstance(event.decoders[0], AddressCodec)
    assert isinstance(event.decoders[1], AddressCodec)
    assert isinstance(event.decoders[2], IntCodec)


def test_no_match_is_not_an_error(contract_abi: ContractABI, registry: CodecRegistry) -> None:
    # No event with this name (a function with this name is not an event)
    assert resolve_event(contract_abi, "Approval", Transfer, registry) is None
    # An event with this name, but no decoders for the given shape
    assert resolve_event(contract_abi, "Transfer", TextData, registry) is None
    assert resolve_event(contract_abi, "Transfer", [], registry) is None


def test_overloaded_events(contract_abi: ContractABI, registry: CodecRegistry) -> None:
    # Only one of the overloads can be decoded into each shape
    text_event = resolve_event(contract_abi, "Data", TextData, registry)
    assert text_event is not None
    assert text_event.entry.signature == "Data(uint256,string)"

    amount_event = resolve_event(contract_abi, "Data", AmountData, registry)
    assert amount_event is not None
    assert amount_event.entry.signature == "Data(uint256,uint256)"

    # If several overloads match, the first one in the ABI order wins
    untyped_event = resolve_event(contract_abi, "Data", UntypedData, registry)
    assert untyped_event is not None
    assert untyped_event.entry.signature == "Data(uint256,string)"

    # Candidate shapes are tried for each entry in turn
    event = resolve_event(contract_abi, "Data", [AmountData, TextData], registry)
    assert event is not None
    assert event.entry.signature == "Data(uint256,string)"
    assert event.shape is TextData


def test_decode_log_entry(contract_abi: ContractABI, registry: CodecRegistry) -> None:
    event = resolve_event(contract_abi, "Transfer", Transfer, registry)
    assert event is not None

    source = Address(os.urandom(20))
    destination = Address(os.urandom(20))
    log_entry = make_log_entry(
        Address(os.urandom(20)),
        (event.entry.topic, address_topic(source), address_topic(destination)),
        encode(["uint256"], [2**256 - 1]),
    )
    assert event.decode_log_entry(log_entry) == Transfer(source, destination, 2**256 - 1)


def test_decode_log_entry_wrong_event(contract_abi: ContractABI, registry: CodecRegistry) -> None:
    event = resolve_event(contract_abi, "Transfer", Transfer, registry)
    assert event is not None

    source = Address(os.urandom(20))
    log_entry = make_log_entry(
        Address(os.urandom(20)),
        (LogTopic(keccak(b"Approval(address,address,uint256)")), address_topic(source)),
        encode(["uint256"], [1]),
    )
    with pytest.raises(ValueError, match="This log entry belongs to a different event"):
        event.decode_log_entry(log_entry)

    log_entry = make_log_entry(
        Address(os.urandom(20)),
        (event.entry.topic, address_topic(source)),
        encode(["uint256"], [1]),
    )
    with pytest.raises(
        ValueError,
        match=(
            r"The number of topics in the log entry \(1\) does not match "
            r"the number of indexed fields in the event \(2\)"
        ),
    ):
        event.decode_log_entry(log_entry)


def test_indexed_reference_types(contract_abi: ContractABI, registry: CodecRegistry) -> None:
    # Indexed strings are only present as a hash
    assert resolve_event(contract_abi, "Tagged", TaggedText, registry) is None

    event = resolve_event(contract_abi, "Tagged", TaggedHash, registry)
    assert event is not None

    tag_hash = keccak(b"some tag")
    log_entry = make_log_entry(
        Address(os.urandom(20)),
        (event.entry.topic, LogTopic(tag_hash)),
        encode(["uint8[]"], [[1, 2, 3]]),
    )
    assert event.decode_log_entry(log_entry) == TaggedHash(tag_hash, [1, 2, 3])

    # Filtering by a value hashes it
    assert event.topic_filter("some tag") == ((event.entry.topic,), (LogTopic(tag_hash),))


def test_anonymous_event(contract_abi: ContractABI, registry: CodecRegistry) -> None:
    event = resolve_event(contract_abi, "Anonymous", AnonymousEvent, registry)
    assert event is not None

    log_entry = make_log_entry(
        Address(os.urandom(20)), (uint_topic(7),), encode(["bool"], [True])
    )
    assert event.decode_log_entry(log_entry) == AnonymousEvent(7, True)

    # No signature topic
    assert event.topic_filter(7) == ((uint_topic(7),),)
    assert event.topic_filter() == ()


def test_topic_filter(contract_abi: ContractABI, registry: CodecRegistry) -> None:
    event = resolve_event(contract_abi, "Transfer", Transfer, registry)
    assert event is not None

    source = Address(os.urandom(20))
    destination1 = Address(os.urandom(20))
    destination2 = Address(os.urandom(20))
    topic = event.entry.topic

    assert event.topic_filter() == ((topic,),)
    # Trailing wildcards are dropped
    assert event.topic_filter(source) == ((topic,), (address_topic(source),))
    assert event.topic_filter(destination=destination1) == (
        (topic,),
        None,
        (address_topic(destination1),),
    )
    assert event.topic_filter(source, Either(destination1, destination2)) == (
        (topic,),
        (address_topic(source),),
        (address_topic(destination1), address_topic(destination2)),
    )

    with pytest.raises(TypeError, match="Event `Transfer` has 2 indexed fields, got 3 values"):
        event.topic_filter(source, destination1, destination2)
    with pytest.raises(TypeError, match="Event `Transfer` has no indexed field `value`"):
        event.topic_filter(value=1)
    with pytest.raises(TypeError, match="Multiple values for the indexed field `source`"):
        event.topic_filter(source, source=source)
