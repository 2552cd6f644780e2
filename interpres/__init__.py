"""
Typed contract interfaces over the Ethereum contract ABI.

Contract interfaces
-------------------

A contract is used through an ordinary class declaring its methods
(an abstract base class, a ``Protocol``, or a plain class)::

    class Token:
        def balance_of(self, owner: Address) -> int: ...
        def transfer(self, to: Address, value: int) -> Future[bool]: ...
        def mint(self, to: Address, *, amount: Amount) -> Future[None]: ...

and :py:meth:`ContractFacade.create_contract_proxy` returns an object implementing it.

- Every public method (not starting with ``_``) is mapped to the ABI function
  with the same name and the same number of parameters.
  Among overloads, the first function (in the ABI order) whose parameters
  can all be encoded from the annotated types, and whose outputs can be
  decoded into the return annotation, is used.
  If there is none, :py:class:`MethodNotFound` is raised when the proxy is created.
- Positional parameters are the function arguments; their annotations are the native types.
  A keyword-only parameter named ``amount`` carries the funds sent with a payable transaction.
- A method annotated to return ``concurrent.futures.Future[T]`` is state-mutating:
  it is submitted as a transaction, and the returned ``Future`` completes
  with the output decoded into ``T`` (``Future[None]`` skips decoding).
- Any other method is a read call, returning the decoded output synchronously:
  ``None`` skips decoding, a single output is decoded into the annotation,
  and several outputs are decoded into a ``tuple[...]`` annotation,
  a record class (a dataclass, a ``NamedTuple``, or a class taking the fields in ``__init__``),
  or a plain tuple if the method is not annotated.
"""

from . import abi
from ._abi_types import ABIDecodingError
from ._client import ChainClient, ExternalClientError, TopicFilter, TransactionFailed
from ._codecs import (
    AddressCodec,
    AmountCodec,
    BoolCodec,
    BytesCodec,
    Decoder,
    Encoder,
    EnumCodec,
    IntCodec,
    MappingCodec,
    RecordCodec,
    SequenceCodec,
    StringCodec,
    ValueCodec,
)
from ._contract_abi import (
    AbiEntry,
    AbiParam,
    ContractABI,
    Either,
    EntryKind,
    Mutability,
)
from ._dispatcher import (
    CallStyle,
    ContractBinding,
    MethodBinding,
    MethodNotFound,
    SignatureMismatch,
    bind_interface,
    contract_binding,
)
from ._events import EventNotFound, SolidityEvent, resolve_event
from ._facade import ContractFacade
from ._matcher import first_matching_shape, match_signature, native_shape
from ._metadata import ContractMetadata, MetadataLink, MetadataStore, MetadataUnavailable
from ._registry import CodecNotFound, CodecRegistry, default_registry
from ._signer import AccountSigner, Signer

__all__ = [
    "ABIDecodingError",
    "AbiEntry",
    "AbiParam",
    "AccountSigner",
    "AddressCodec",
    "AmountCodec",
    "BoolCodec",
    "BytesCodec",
    "CallStyle",
    "ChainClient",
    "CodecNotFound",
    "CodecRegistry",
    "ContractABI",
    "ContractBinding",
    "ContractFacade",
    "ContractMetadata",
    "Decoder",
    "Either",
    "Encoder",
    "EntryKind",
    "EnumCodec",
    "EventNotFound",
    "ExternalClientError",
    "IntCodec",
    "MappingCodec",
    "MetadataLink",
    "MetadataStore",
    "MetadataUnavailable",
    "MethodBinding",
    "MethodNotFound",
    "Mutability",
    "RecordCodec",
    "SequenceCodec",
    "SignatureMismatch",
    "Signer",
    "SolidityEvent",
    "StringCodec",
    "TopicFilter",
    "TransactionFailed",
    "ValueCodec",
    "abi",
    "bind_interface",
    "contract_binding",
    "default_registry",
    "first_matching_shape",
    "match_signature",
    "native_shape",
    "resolve_event",
]
