"""
Binds user-declared interface classes to deployed contracts.

The interface-to-ABI mapping is resolved once, when the proxy is created,
into a dispatch table keyed by the method name.
Calls on the proxy only look the method up in the table, encode the arguments
and hand the calldata over to the chain client.
"""

import inspect
import logging
import types
import typing
from collections.abc import Callable, Sequence
from concurrent.futures import Future
from enum import Enum
from functools import wraps
from typing import Any

from ethereum_rpc import Address, Amount

from ._abi_types import Type
from ._client import ChainClient, ExternalClientError
from ._codecs import Decoder, decode_sequence
from ._contract_abi import AbiEntry, ContractABI
from ._futures import chain_future, failed_future
from ._matcher import match_signature, native_shape
from ._registry import CodecNotFound, CodecRegistry
from ._signer import Signer

logger = logging.getLogger(__name__)

# The name of the keyword-only parameter carrying the amount sent along with a transaction.
AMOUNT_PARAMETER = "amount"


class MethodNotFound(Exception):
    """
    Raised when binding an interface if one of its methods
    has no matching function in the contract ABI.
    """


class SignatureMismatch(TypeError):
    """Raised when the arguments of a proxy call do not match the declared interface method."""


class CallStyle(Enum):
    """The way a bound method is executed."""

    READ = "read"
    """A non-mutating call executed by the client synchronously."""

    TRANSACTION = "transaction"
    """A state-mutating transaction, completed asynchronously."""


def _runtime_type(annotation: Any) -> None | type:
    """
    Returns the class values of the annotated parameter are expected to have,
    or ``None`` if the annotation does not constrain it.
    """
    if annotation is None or annotation is Any:
        return None
    if isinstance(annotation, type) and typing.get_origin(annotation) is None:
        return annotation
    origin = typing.get_origin(annotation)
    return origin if isinstance(origin, type) else None


class _Untyped:
    """A marker for a missing return annotation."""


class ResultDecoder:
    """Decodes the raw output of a function into the value the interface method declares."""

    def __init__(
        self,
        output_types: Sequence[Type],
        decoders: Sequence[Decoder],
        targets: Sequence[Any],
        wrap: Callable[[list[Any]], Any],
    ):
        self._output_types = tuple(output_types)
        self._decoders = tuple(decoders)
        self._targets = tuple(targets)
        self._wrap = wrap

    @classmethod
    def resolve(
        cls, registry: CodecRegistry, entry: AbiEntry, annotation: Any
    ) -> "None | ResultDecoder":
        """
        Resolves the decoders for the outputs of ``entry`` into ``annotation``.
        Returns ``None`` if the outputs cannot be decoded into it.
        """
        output_types = entry.output_types
        count = len(output_types)

        if annotation is type(None):
            # The caller is not interested in the return value
            return cls((), (), (), lambda _values: None)

        targets: Sequence[Any]
        wrap: Callable[[list[Any]], Any]
        if annotation is _Untyped or annotation is Any:
            targets = [None] * count
            wrap = _wrap_untyped
        elif count == 1:
            targets = [annotation]
            wrap = _wrap_single
        elif count == 0:
            return None
        elif annotation is tuple:
            targets = [None] * count
            wrap = tuple
        elif typing.get_origin(annotation) is tuple:
            args = typing.get_args(annotation)
            if len(args) == 2 and args[1] is Ellipsis:  # noqa: PLR2004
                targets = [args[0]] * count
            else:
                targets = list(args)
            wrap = tuple
        elif isinstance(annotation, type) and not issubclass(annotation, str | bytes | int):
            try:
                targets = native_shape(annotation)
            except (NameError, TypeError, ValueError):
                return None
            wrap = _wrap_record(annotation)
        else:
            return None

        decoders = match_signature(registry, output_types, targets)
        if decoders is None:
            return None
        return cls(output_types, decoders, targets, wrap)

    def __call__(self, registry: CodecRegistry, data: bytes) -> Any:
        if not self._output_types:
            return self._wrap([])
        values = decode_sequence(
            registry, 0, data, self._output_types, self._decoders, self._targets
        )
        return self._wrap(values)


def _wrap_untyped(values: list[Any]) -> Any:
    if not values:
        return None
    if len(values) == 1:
        return values[0]
    return tuple(values)


def _wrap_single(values: list[Any]) -> Any:
    return values[0]


def _wrap_record(cls: type) -> Callable[[list[Any]], Any]:
    def wrap(values: list[Any]) -> Any:
        return cls(*values)

    return wrap


class MethodBinding:
    """An interface method resolved into a contract ABI function."""

    name: str
    """The method name."""

    entry: AbiEntry
    """The ABI function the method is bound to."""

    style: CallStyle
    """Whether the method is executed as a read call or as a transaction."""

    def __init__(
        self,
        name: str,
        entry: AbiEntry,
        style: CallStyle,
        signature: inspect.Signature,
        result_decoder: ResultDecoder,
    ):
        self.name = name
        self.entry = entry
        self.style = style
        self._signature = signature
        self._positional = [
            param.name
            for param in signature.parameters.values()
            if param.kind
            in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        ]
        self._result_decoder = result_decoder

    def bind_arguments(
        self, args: Sequence[Any], kwargs: dict[str, Any]
    ) -> tuple[list[Any], None | Amount]:
        """
        Matches the call arguments against the interface method signature.
        Returns the ABI argument values in order and the amount to send, if any.
        """
        try:
            bound = self._signature.bind(*args, **kwargs)
        except TypeError as exc:
            raise SignatureMismatch(
                f"`{self.name}` expects {len(self.entry.inputs)} arguments "
                f"to match `{self.entry.signature}`: {exc}"
            ) from exc
        bound.apply_defaults()

        values = [bound.arguments[name] for name in self._positional]
        amount = bound.arguments.get(AMOUNT_PARAMETER)
        if amount is not None and not self.entry.payable:
            raise ValueError(f"`{self.entry.signature}` is not payable")
        return values, amount

    def encode_call(self, registry: CodecRegistry, values: Sequence[Any]) -> bytes:
        """Returns the calldata: the selector followed by the encoded arguments."""
        return self.entry.selector + registry.encode_args(self.entry.input_types, values)

    def decode_result(self, registry: CodecRegistry, data: bytes) -> Any:
        """Decodes the raw output of the function."""
        return self._result_decoder(registry, data)

    def __repr__(self) -> str:
        return f"MethodBinding({self.name} -> {self.entry}, {self.style.value})"


class ContractBinding:
    """An interface bound to a deployed contract: the state shared by a proxy's methods."""

    interface: type
    """The interface class."""

    contract_abi: ContractABI
    """The contract ABI the interface is bound against."""

    address: Address
    """The address of the deployed contract."""

    signer: Signer
    """The account transactions are sent from."""

    methods: dict[str, MethodBinding]
    """The dispatch table."""

    def __init__(
        self,
        interface: type,
        contract_abi: ContractABI,
        address: Address,
        signer: Signer,
        client: ChainClient,
        registry: CodecRegistry,
        methods: dict[str, MethodBinding],
    ):
        self.interface = interface
        self.contract_abi = contract_abi
        self.address = address
        self.signer = signer
        self.methods = methods
        self._client = client
        self._registry = registry

    def invoke(self, name: str, args: Sequence[Any], kwargs: dict[str, Any]) -> Any:
        """
        Executes the interface method ``name`` with the given arguments.

        Read calls return the decoded value.
        Transactions return a ``Future`` completed with the decoded value
        once the client reports the result of the execution.
        """
        method = self.methods[name]
        values, amount = method.bind_arguments(args, kwargs)

        # Raises `CodecNotFound` before anything reaches the client
        data = method.encode_call(self._registry, values)
        logger.debug(
            "Dispatching `%s` to %s as a %s call with selector %s",
            method.entry.signature,
            self.address,
            method.style.value,
            method.entry.selector.hex(),
        )

        if method.style == CallStyle.READ:
            output = self._client.call(data, self.address)
            return method.decode_result(self._registry, output)

        try:
            handle = self._client.submit_transaction(
                data, self.address, self.signer, amount if amount is not None else Amount.wei(0)
            )
        except ExternalClientError as exc:
            return failed_future(exc)
        return chain_future(handle, lambda output: method.decode_result(self._registry, output))

    def __repr__(self) -> str:
        return f"ContractBinding({self.interface.__name__} at {self.address})"


def _interface_methods(interface: type) -> dict[str, Callable[..., Any]]:
    return {
        name: member
        for name, member in inspect.getmembers(interface, inspect.isfunction)
        if not name.startswith("_")
    }


def _split_return_annotation(hints: dict[str, Any]) -> tuple[CallStyle, Any]:
    annotation = hints.get("return", _Untyped)
    if annotation is None:
        annotation = type(None)
    if typing.get_origin(annotation) is Future or annotation is Future:
        args = typing.get_args(annotation)
        result = args[0] if args else _Untyped
        return CallStyle.TRANSACTION, type(None) if result is None else result
    return CallStyle.READ, annotation


def _can_encode_arguments(
    registry: CodecRegistry, entry: AbiEntry, annotations: Sequence[Any]
) -> bool:
    for annotation, tp in zip(annotations, entry.input_types, strict=True):
        native_type = _runtime_type(annotation)
        if native_type is None:
            # Unconstrained parameter, will be checked on call
            continue
        try:
            registry.find_encoder(native_type, tp)
        except CodecNotFound:
            return False
    return True


def _bind_method(
    registry: CodecRegistry, contract_abi: ContractABI, name: str, method: Callable[..., Any]
) -> MethodBinding:
    signature = inspect.signature(method)
    params = list(signature.parameters.values())[1:]  # skip `self`
    signature = signature.replace(parameters=params)

    positional = []
    for param in params:
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            positional.append(param)
        elif param.kind != inspect.Parameter.KEYWORD_ONLY or param.name != AMOUNT_PARAMETER:
            raise MethodNotFound(
                f"`{name}` has an unsupported parameter `{param}`: "
                f"only positional parameters and the keyword-only `{AMOUNT_PARAMETER}` are allowed"
            )

    hints = typing.get_type_hints(method)
    annotations = [hints.get(param.name) for param in positional]
    style, result_annotation = _split_return_annotation(hints)

    for entry in contract_abi.functions(name):
        if len(entry.inputs) != len(positional):
            continue
        if not _can_encode_arguments(registry, entry, annotations):
            logger.debug("`%s`: arguments cannot be encoded for `%s`", name, entry)
            continue
        result_decoder = ResultDecoder.resolve(registry, entry, result_annotation)
        if result_decoder is None:
            logger.debug("`%s`: outputs cannot be decoded for `%s`", name, entry)
            continue
        return MethodBinding(name, entry, style, signature, result_decoder)

    raise MethodNotFound(
        f"No function in the contract ABI matches `{name}` with {len(positional)} arguments "
        f"and the declared argument and return types"
    )


def _make_proxy_method(name: str, method: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(method)
    def proxy_method(self: Any, *args: Any, **kwargs: Any) -> Any:
        return self._contract_binding.invoke(name, args, kwargs)  # noqa: SLF001

    # The interface method may be abstract, the proxy method is not
    proxy_method.__isabstractmethod__ = False  # type: ignore[attr-defined]
    return proxy_method


def bind_interface(
    interface: type,
    contract_abi: ContractABI,
    address: Address,
    signer: Signer,
    client: ChainClient,
    registry: CodecRegistry,
) -> Any:
    """
    Returns an instance of a generated subclass of ``interface``
    whose public methods execute the matching contract functions.

    Raises :py:class:`MethodNotFound` if any of the methods cannot be bound.
    """
    interface_methods = _interface_methods(interface)
    methods = {
        name: _bind_method(registry, contract_abi, name, method)
        for name, method in interface_methods.items()
    }
    for method_binding in methods.values():
        logger.debug("Bound %s", method_binding)

    binding = ContractBinding(interface, contract_abi, address, signer, client, registry, methods)

    def populate(namespace: dict[str, Any]) -> None:
        for name, method in interface_methods.items():
            namespace[name] = _make_proxy_method(name, method)

        def __init__(self: Any) -> None:  # noqa: N807
            self._contract_binding = binding

        def __repr__(self: Any) -> str:  # noqa: N807
            return f"<{interface.__name__} proxy at {address}>"

        namespace["__init__"] = __init__
        namespace["__repr__"] = __repr__
        namespace["__module__"] = interface.__module__

    proxy_class = types.new_class(f"{interface.__name__}Proxy", (interface,), exec_body=populate)
    return proxy_class()


def contract_binding(proxy: Any) -> ContractBinding:
    """Returns the binding behind a proxy created by :py:func:`bind_interface`."""
    return proxy._contract_binding  # noqa: SLF001
