from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from concurrent.futures import Future

from ethereum_rpc import Address, Amount, LogEntry, LogTopic

from ._signer import Signer

TopicFilter = Sequence[None | Sequence[LogTopic]]
"""
Log topic filter: for each topic position, either ``None`` (match anything)
or a sequence of acceptable values.
"""


class ExternalClientError(Exception):
    """
    The base class for errors raised by chain client implementations
    (e.g. a reverted execution or insufficient funds).

    These errors are passed to the caller unchanged.
    """


class TransactionFailed(ExternalClientError):
    """Raised for transactions that were submitted successfully, but could not be processed."""


class ChainClient(ABC):
    """
    The blockchain client used to submit transactions, execute read calls
    and stream event logs.

    Synchronous methods raise :py:class:`ExternalClientError` subclasses on failure.
    Methods returning a ``Future`` may also complete it with such an error
    once the chain reports the outcome.
    Cancelling a returned ``Future`` is a request to abandon waiting for the outcome,
    an implementation may ignore it.
    """

    @abstractmethod
    def call(self, data: bytes, address: Address) -> bytes:
        """
        Executes a non-mutating call of the contract at ``address``
        with the given calldata (selector and encoded arguments), returning the raw output.
        """

    @abstractmethod
    def submit_transaction(
        self, data: bytes, address: Address, signer: Signer, amount: Amount
    ) -> "Future[bytes]":
        """
        Signs and broadcasts a transaction with the given calldata to the contract at ``address``,
        returning without waiting for it to be mined.
        The returned handle completes with the raw return value of the execution.
        """

    @abstractmethod
    def deploy(self, data: bytes, signer: Signer, amount: Amount) -> "Future[Address]":
        """
        Broadcasts a contract creation transaction (bytecode followed by encoded
        constructor arguments).
        The returned handle completes with the address of the deployed contract.
        """

    @abstractmethod
    def transfer(self, signer: Signer, address: Address, amount: Amount) -> "Future[None]":
        """Broadcasts a transfer of funds to ``address``."""

    @abstractmethod
    def get_code(self, address: Address) -> bytes:
        """Returns the bytecode deployed at ``address`` (empty if there is none)."""

    @abstractmethod
    def get_balance(self, address: Address) -> Amount:
        """Returns the balance of ``address``."""

    @abstractmethod
    def get_nonce(self, address: Address) -> int:
        """Returns the number of transactions sent from ``address``."""

    @abstractmethod
    def iter_logs(self, address: Address, topics: TopicFilter) -> AsyncIterator[LogEntry]:
        """
        Yields log entries produced by the contract at ``address``
        and matching the topic filter, as they arrive. The iteration never ends by itself.
        """

    def address_exists(self, address: Address) -> bool:
        """
        Returns ``True`` if there are any traces of ``address`` on the chain:
        sent transactions, a non-zero balance, or deployed code.
        """
        return (
            self.get_nonce(address) > 0
            or self.get_balance(address).as_wei() > 0
            or len(self.get_code(address)) > 0
        )
