import logging
from collections.abc import Sequence
from typing import Any

from ethereum_rpc import LogEntry, LogTopic

from ._codecs import Decoder, decode_sequence
from ._contract_abi import AbiEntry, ContractABI, Either, EntryKind
from ._matcher import first_matching_shape, native_shape
from ._registry import CodecRegistry

logger = logging.getLogger(__name__)


class EventNotFound(Exception):
    """
    Raised when the ABI has no event with the requested name
    that can be decoded into the requested native shape.
    """


class SolidityEvent:
    """
    An ABI event entry bound to a resolved chain of decoders,
    one for each event field (indexed or not) in declaration order.

    Indexed fields of reference types (strings, dynamic bytes, arrays, structs)
    are only present in the log as a hash, so they are decoded as 32-byte values.
    """

    entry: AbiEntry
    """The event ABI entry."""

    decoders: tuple[Decoder, ...]
    """The resolved decoders."""

    shape: type
    """The native class log entries are decoded into."""

    def __init__(
        self,
        entry: AbiEntry,
        decoders: Sequence[Decoder],
        shape: type,
        targets: Sequence[Any],
        registry: CodecRegistry,
    ):
        if entry.kind != EntryKind.EVENT:
            raise ValueError(f"Expected an event entry, got `{entry}`")
        if len(decoders) != len(entry.inputs) or len(targets) != len(entry.inputs):
            raise ValueError("The number of decoders must match the number of event fields")

        self.entry = entry
        self.decoders = tuple(decoders)
        self.shape = shape
        self._targets = tuple(targets)
        self._registry = registry

    @property
    def name(self) -> str:
        return self.entry.name

    def topic_filter(self, *args: Any, **kwargs: Any) -> tuple[None | tuple[LogTopic, ...], ...]:
        """
        Creates a log topic filter from provided values for indexed fields
        (positionally in the order of indexed fields, or by name).
        Omitted fields match any value;
        :py:class:`Either` can be used to match either of several values of a field.
        """
        indexed = [param for param in self.entry.inputs if param.indexed]
        if len(args) > len(indexed):
            raise TypeError(
                f"Event `{self.name}` has {len(indexed)} indexed fields, got {len(args)} values"
            )

        values: dict[int, Any] = dict(enumerate(args))
        names = [param.name for param in indexed]
        for name, value in kwargs.items():
            if name not in names:
                raise TypeError(f"Event `{self.name}` has no indexed field `{name}`")
            position = names.index(name)
            if position in values:
                raise TypeError(f"Multiple values for the indexed field `{name}`")
            values[position] = value

        topics: list[None | tuple[LogTopic, ...]] = []
        if not self.entry.anonymous:
            topics.append((self.entry.topic,))
        for position, param in enumerate(indexed):
            if position not in values:
                topics.append(None)
                continue
            value = values[position]
            items = value.items if isinstance(value, Either) else (value,)
            topics.append(
                tuple(
                    LogTopic(param.type.encode_to_topic(self._registry.normalize(item, param.type)))
                    for item in items
                )
            )

        # remove trailing `None`s - they are redundant
        while topics and topics[-1] is None:
            topics.pop()

        return tuple(topics)

    def decode_log_entry(self, log_entry: LogEntry) -> Any:
        """
        Decodes the given log entry into an instance of :py:attr:`shape`,
        passing the field values positionally.
        """
        topics = log_entry.topics
        if not self.entry.anonymous:
            if not topics or topics[0] != self.entry.topic:
                raise ValueError("This log entry belongs to a different event")
            topics = topics[1:]

        indexed_positions = [i for i, param in enumerate(self.entry.inputs) if param.indexed]
        if len(topics) != len(indexed_positions):
            raise ValueError(
                f"The number of topics in the log entry ({len(topics)}) does not match "
                f"the number of indexed fields in the event ({len(indexed_positions)})"
            )

        values: list[Any] = [None] * len(self.entry.inputs)

        for position, topic in zip(indexed_positions, topics, strict=True):
            param = self.entry.inputs[position]
            values[position] = self.decoders[position].decode(
                self._registry, 0, bytes(topic), param.log_type, self._targets[position]
            )

        data_positions = [i for i, param in enumerate(self.entry.inputs) if not param.indexed]
        data_values = decode_sequence(
            self._registry,
            0,
            log_entry.data,
            [self.entry.inputs[i].log_type for i in data_positions],
            [self.decoders[i] for i in data_positions],
            [self._targets[i] for i in data_positions],
        )
        for position, value in zip(data_positions, data_values, strict=True):
            values[position] = value

        return self.shape(*values)

    def __repr__(self) -> str:
        return f"SolidityEvent({self.entry}, shape={self.shape.__name__})"


def resolve_event(
    contract_abi: ContractABI,
    name: str,
    shape: type | Sequence[type],
    registry: CodecRegistry,
) -> None | SolidityEvent:
    """
    Finds the first event entry (in the ABI order) named ``name``
    whose fields can all be decoded into the fields of ``shape``.

    ``shape`` can be a sequence of candidate classes,
    in which case the first one (in the given order) that matches is used.

    Returns ``None`` if no entry satisfies both conditions.
    """
    candidates = [shape] if isinstance(shape, type) else list(shape)

    for entry in contract_abi.events(name):
        log_types = [param.log_type for param in entry.inputs]
        match = first_matching_shape(registry, log_types, candidates)
        if match is None:
            logger.debug("Event entry `%s` does not match the requested shapes", entry)
            continue
        matched_shape, decoders = match
        logger.debug("Resolved `%s` into %s", entry, matched_shape.__name__)
        return SolidityEvent(entry, decoders, matched_shape, native_shape(matched_shape), registry)

    return None
