import logging
from collections.abc import AsyncIterator, Sequence
from concurrent.futures import Future
from typing import Any, TypeVar

from ethereum_rpc import Address, Amount

from ._abi_types import Type
from ._client import ChainClient, ExternalClientError
from ._contract_abi import ContractABI
from ._dispatcher import bind_interface
from ._events import EventNotFound, SolidityEvent, resolve_event
from ._futures import failed_future
from ._metadata import ContractMetadata, MetadataLink, MetadataStore, MetadataUnavailable
from ._registry import CodecRegistry, default_registry
from ._signer import Signer

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class ContractFacade:
    """
    The entry point bundling the codec registry with the chain client
    and (optionally) the contract metadata store.
    """

    client: ChainClient
    """The chain client."""

    registry: CodecRegistry
    """The codec registry used for all the conversions."""

    def __init__(
        self,
        client: ChainClient,
        metadata_store: None | MetadataStore = None,
        registry: None | CodecRegistry = None,
    ):
        self.client = client
        self.registry = registry if registry is not None else default_registry()
        self._metadata_store = metadata_store

    def create_contract_proxy(
        self,
        interface: type[_T],
        address: Address,
        signer: Signer,
        contract_abi: None | ContractABI = None,
    ) -> _T:
        """
        Returns an object implementing ``interface`` that executes
        the functions of the contract deployed at ``address``.

        If ``contract_abi`` is not given, it is taken from the contract metadata,
        located through the link the compiler embeds in the deployed bytecode.
        """
        if contract_abi is None:
            contract_abi = self.fetch_contract_abi(address)
        proxy: _T = bind_interface(
            interface, contract_abi, address, signer, self.client, self.registry
        )
        return proxy

    def fetch_contract_abi(self, address: Address) -> ContractABI:
        """Returns the ABI of the contract deployed at ``address`` from its metadata."""
        bytecode = self.client.get_code(address)
        link = MetadataLink.from_bytecode(bytecode)
        if link is None:
            raise MetadataUnavailable(f"No metadata link found in the bytecode at {address}")
        logger.debug("Found metadata link %s for %s", link, address)
        return self.get_metadata(link).abi

    def get_metadata(self, link: MetadataLink) -> ContractMetadata:
        """Fetches the contract metadata from the metadata store."""
        store = self._require_metadata_store()
        try:
            return store.fetch_metadata(link)
        except OSError as exc:
            raise MetadataUnavailable(f"Failed to fetch the metadata at {link}: {exc}") from exc

    def publish_metadata(self, metadata: ContractMetadata) -> MetadataLink:
        """Puts the contract metadata into the metadata store."""
        return self._require_metadata_store().publish_metadata(metadata)

    def _require_metadata_store(self) -> MetadataStore:
        if self._metadata_store is None:
            raise MetadataUnavailable("No metadata store is configured")
        return self._metadata_store

    def deploy(
        self,
        bytecode: bytes,
        contract_abi: ContractABI,
        signer: Signer,
        *args: Any,
        amount: None | Amount = None,
    ) -> "Future[Address]":
        """
        Deploys the contract passing ``args`` to its constructor.
        Returns a handle completed with the address of the deployed contract.
        """
        constructor = contract_abi.constructor
        if amount is not None and not constructor.payable:
            raise ValueError("The constructor is not payable")

        # Raises before anything is submitted if the arguments cannot be encoded
        data = bytecode + self.registry.encode_args(constructor.input_types, args)
        logger.debug("Deploying a contract with %s", constructor)
        try:
            return self.client.deploy(data, signer, amount if amount is not None else Amount.wei(0))
        except ExternalClientError as exc:
            return failed_future(exc)

    def transfer(self, signer: Signer, address: Address, amount: Amount) -> "Future[None]":
        """Sends funds to ``address``."""
        try:
            return self.client.transfer(signer, address, amount)
        except ExternalClientError as exc:
            return failed_future(exc)

    def address_exists(self, address: Address) -> bool:
        """Returns ``True`` if there are any traces of ``address`` on the chain."""
        return self.client.address_exists(address)

    def get_balance(self, address: Address) -> Amount:
        """Returns the balance of ``address``."""
        return self.client.get_balance(address)

    def get_nonce(self, address: Address) -> int:
        """Returns the number of transactions sent from ``address``."""
        return self.client.get_nonce(address)

    def get_code(self, address: Address) -> bytes:
        """Returns the bytecode deployed at ``address``."""
        return self.client.get_code(address)

    def find_event_definition(
        self, contract_abi: ContractABI, name: str, shape: type | Sequence[type]
    ) -> None | SolidityEvent:
        """
        Returns the first event named ``name`` whose fields can be decoded into ``shape``
        (or into one of the classes in ``shape``, tried in order), or ``None``.
        """
        return resolve_event(contract_abi, name, shape, self.registry)

    def event_definition(
        self, contract_abi: ContractABI, name: str, shape: type | Sequence[type]
    ) -> SolidityEvent:
        """
        Same as :py:meth:`find_event_definition`,
        but raises :py:class:`EventNotFound` if there is no matching event.
        """
        event = self.find_event_definition(contract_abi, name, shape)
        if event is None:
            raise EventNotFound(f"No event `{name}` in the contract ABI matches {shape}")
        return event

    async def observe_events(
        self, event: SolidityEvent, address: Address, *args: Any, **kwargs: Any
    ) -> AsyncIterator[Any]:
        """
        Yields the events emitted by the contract at ``address``, decoded into ``event.shape``.
        ``args`` and ``kwargs`` restrict the values of indexed fields
        (see :py:meth:`SolidityEvent.topic_filter`).
        """
        topics = event.topic_filter(*args, **kwargs)
        async for log_entry in self.client.iter_logs(address, topics):
            yield event.decode_log_entry(log_entry)

    def encode(self, value: Any, abi_type: Type) -> bytes:
        """Encodes a single value as ``abi_type``."""
        return self.registry.encode(value, abi_type)

    def decode(self, offset: int, data: bytes, abi_type: Type, target: Any = None) -> Any:
        """
        Decodes the value of ``abi_type`` in the head slot at ``offset``
        of the argument list ``data`` into ``target``
        (or into the natural representation if ``target`` is ``None``).
        Dynamic values are found by following the pointer in the slot.
        """
        return self.registry.decode(offset, data, abi_type, target)
