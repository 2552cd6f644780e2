import inspect
import typing
from collections.abc import Iterable, Sequence
from typing import Any

from ._abi_types import Type
from ._codecs import Decoder, decoding_target, record_field_types
from ._registry import CodecNotFound, CodecRegistry


def native_shape(cls: type) -> tuple[Any, ...]:
    """
    Returns the ordered field types of a native record class:
    dataclass fields, ``NamedTuple`` fields, or the annotated parameters of ``__init__``
    (in that order of preference).
    Unannotated fields are reported as ``None`` (accepting any representation).
    """
    field_types = record_field_types(cls)
    if field_types is not None:
        return field_types

    init = cls.__init__  # type: ignore[misc]
    hints = typing.get_type_hints(init)
    params = list(inspect.signature(init).parameters.values())[1:]  # skip `self`
    shape = []
    for param in params:
        if param.kind not in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            raise TypeError(
                f"`{cls.__name__}.__init__` must only have positional parameters "
                f"to be used as a native shape, got `{param}`"
            )
        shape.append(decoding_target(hints.get(param.name)))
    return tuple(shape)


def match_signature(
    registry: CodecRegistry, types: Sequence[Type], shape: Sequence[Any]
) -> None | tuple[Decoder, ...]:
    """
    Resolves a decoder for every position of ``types`` into the native type
    at the same position of ``shape``.

    Returns the decoders in order if every position resolved,
    and ``None`` otherwise (including a length mismatch).
    """
    if len(types) != len(shape):
        return None

    decoders = []
    for tp, target in zip(types, shape, strict=True):
        try:
            decoders.append(registry.find_decoder(target, tp))
        except CodecNotFound:
            return None
    return tuple(decoders)


def first_matching_shape(
    registry: CodecRegistry, types: Sequence[Type], candidates: Iterable[type]
) -> None | tuple[type, tuple[Decoder, ...]]:
    """
    Returns the first candidate class (in the given order) for which
    :py:func:`match_signature` fully succeeds, along with the resolved decoders.
    Candidates that cannot be used as a native shape are skipped.
    """
    for candidate in candidates:
        try:
            shape = native_shape(candidate)
        except (NameError, TypeError, ValueError):
            continue
        decoders = match_signature(registry, types, shape)
        if decoders is not None:
            return candidate, decoders
    return None
