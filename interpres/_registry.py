import logging
import threading
from collections.abc import Iterable, Sequence
from typing import Any

from ._abi_types import Type, encode_normalized, read_uint
from ._codecs import Decoder, Encoder, decode_sequence, default_codecs

logger = logging.getLogger(__name__)


class CodecNotFound(Exception):
    """Raised when no registered codec can handle the given pair of a native type and an ABI type."""

    native_type: Any
    """The native type (a runtime type when encoding, a target type when decoding)."""

    abi_type: Type
    """The ABI type."""

    def __init__(self, native_type: Any, abi_type: Type, *, decoding: bool = False):
        self.native_type = native_type
        self.abi_type = abi_type
        type_name = getattr(native_type, "__name__", repr(native_type))
        if decoding:
            message = f"Cannot decode `{abi_type.canonical_form}` into {type_name}"
        else:
            message = f"Cannot encode a value of type {type_name} as `{abi_type.canonical_form}`"
        super().__init__(message)


class CodecRegistry:
    """
    An ordered collection of encoders and decoders.

    Lookups go through the codecs in the order of registration
    and return the first one declaring it can handle the requested pair of types,
    so the codecs registered earlier take precedence.

    Lookups do not lock: the codec lists are immutable snapshots,
    and registering a codec replaces the snapshot.
    Registration is meant to happen at startup, before the registry is shared.
    """

    def __init__(self, encoders: Iterable[Encoder] = (), decoders: Iterable[Decoder] = ()):
        self._encoders: tuple[Encoder, ...] = tuple(encoders)
        self._decoders: tuple[Decoder, ...] = tuple(decoders)
        self._write_lock = threading.Lock()

    @classmethod
    def with_default_codecs(cls) -> "CodecRegistry":
        """Creates a new registry with the built-in codecs."""
        codecs = default_codecs()
        return cls(encoders=codecs, decoders=codecs)

    @property
    def encoders(self) -> tuple[Encoder, ...]:
        """Registered encoders in the order of priority."""
        return self._encoders

    @property
    def decoders(self) -> tuple[Decoder, ...]:
        """Registered decoders in the order of priority."""
        return self._decoders

    def register_encoder(self, encoder: Encoder, *, first: bool = False) -> None:
        """
        Adds an encoder at the end of the priority list,
        or at the start of it if ``first`` is ``True``.
        """
        with self._write_lock:
            if first:
                self._encoders = (encoder, *self._encoders)
            else:
                self._encoders = (*self._encoders, encoder)

    def register_decoder(self, decoder: Decoder, *, first: bool = False) -> None:
        """
        Adds a decoder at the end of the priority list,
        or at the start of it if ``first`` is ``True``.
        """
        with self._write_lock:
            if first:
                self._decoders = (decoder, *self._decoders)
            else:
                self._decoders = (*self._decoders, decoder)

    def register(self, codec: Any, *, first: bool = False) -> None:
        """Registers an object implementing both the encoder and the decoder interfaces."""
        self.register_encoder(codec, first=first)
        self.register_decoder(codec, first=first)

    def find_encoder(self, native_type: type, abi_type: Type) -> Encoder:
        """
        Returns the first encoder that can encode values of ``native_type`` as ``abi_type``.
        Raises :py:class:`CodecNotFound` if there is none.
        """
        for encoder in self._encoders:
            if encoder.can_encode(native_type, abi_type):
                return encoder
        raise CodecNotFound(native_type, abi_type)

    def find_decoder(self, target: Any, abi_type: Type) -> Decoder:
        """
        Returns the first decoder that can decode ``abi_type`` into ``target``.
        If ``target`` is ``None``, the first decoder declaring ``abi_type``
        as one of its natural types is returned.
        Raises :py:class:`CodecNotFound` if there is none.
        """
        for decoder in self._decoders:
            if decoder.can_decode(self, target, abi_type):
                return decoder
        raise CodecNotFound(target, abi_type, decoding=True)

    def has_decoder(self, target: Any, abi_type: Type) -> bool:
        """Returns ``True`` if ``abi_type`` can be decoded into ``target``."""
        return any(decoder.can_decode(self, target, abi_type) for decoder in self._decoders)

    def normalize(self, value: Any, abi_type: Type) -> Any:
        """Converts the value into the form accepted by ``eth_abi`` for ``abi_type``."""
        return self.find_encoder(type(value), abi_type).normalize(self, value, abi_type)

    def encode(self, value: Any, abi_type: Type) -> bytes:
        """
        Encodes ``value`` as ``abi_type`` choosing the encoder by the runtime type of the value.
        A dynamic type is encoded as a single-element argument list (with the head offset).
        """
        return self.find_encoder(type(value), abi_type).encode(self, value, abi_type)

    def decode(self, offset: int, data: bytes, abi_type: Type, target: Any = None) -> Any:
        """
        Decodes the value of ``abi_type`` occupying the head slot at ``offset``
        of the argument list ``data`` (e.g. the output of :py:meth:`encode`).
        If the type is dynamic, the slot holds a pointer relative to the start of ``data``,
        which is followed to the value's encoding.

        Codecs delegating to other codecs work with the position of the encoding itself,
        and should call the decoder from :py:meth:`find_decoder` directly.
        """
        decoder = self.find_decoder(target, abi_type)
        position = read_uint(data, offset) if abi_type.is_dynamic else offset
        return decoder.decode(self, position, data, abi_type, target)

    def encode_args(self, types: Sequence[Type], values: Sequence[Any]) -> bytes:
        """Encodes an argument list (an ABI tuple) of given types."""
        if len(types) != len(values):
            raise ValueError(f"Expected {len(types)} values, got {len(values)}")
        # Resolve all the encoders before producing any bytes.
        normalized = [self.normalize(value, tp) for value, tp in zip(values, types, strict=True)]
        return encode_normalized(types, normalized)

    def decode_args(
        self, types: Sequence[Type], data: bytes, targets: None | Sequence[Any] = None
    ) -> list[Any]:
        """Decodes an argument or return value list (an ABI tuple) of given types."""
        if targets is None:
            targets = [None] * len(types)
        decoders = [self.find_decoder(target, tp) for tp, target in zip(types, targets, strict=True)]
        return decode_sequence(self, 0, data, types, decoders, targets)


_DEFAULT_REGISTRY: None | CodecRegistry = None
_DEFAULT_REGISTRY_LOCK = threading.Lock()


def default_registry() -> CodecRegistry:
    """Returns the process-wide registry with the built-in codecs, creating it on first use."""
    global _DEFAULT_REGISTRY  # noqa: PLW0603
    if _DEFAULT_REGISTRY is None:
        with _DEFAULT_REGISTRY_LOCK:
            if _DEFAULT_REGISTRY is None:
                logger.debug("Creating the default codec registry")
                _DEFAULT_REGISTRY = CodecRegistry.with_default_codecs()
    return _DEFAULT_REGISTRY
