from abc import ABC, abstractmethod
from functools import cached_property

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_account.types import TransactionDictType
from ethereum_rpc import Address


class Signer(ABC):
    """The account contract transactions are sent from."""

    @property
    @abstractmethod
    def address(self) -> Address:
        """Returns the address corresponding to the signer's private key."""

    @abstractmethod
    def sign_transaction(self, tx_dict: TransactionDictType) -> bytes:
        """
        Signs the given transaction and returns the RLP-packed transaction
        along with the signature (ready to be passed to ``eth_sendRawTransaction``).
        """


class AccountSigner(Signer):
    """A signer wrapper for ``LocalAccount`` from ``eth-account`` package."""

    def __init__(self, account: LocalAccount):
        self._account = account

    @classmethod
    def create(cls) -> "AccountSigner":
        """Creates an account with a random private key."""
        return cls(Account.create())

    @classmethod
    def from_key(cls, private_key: bytes | str) -> "AccountSigner":
        """Creates a signer from a private key (bytes or a hex string)."""
        return cls(Account.from_key(private_key))

    @property
    def account(self) -> LocalAccount:
        """Returns the account object used to create this signer."""
        return self._account

    @cached_property
    def address(self) -> Address:
        return Address.from_hex(self._account.address)

    def sign_transaction(self, tx_dict: TransactionDictType) -> bytes:
        return bytes(self._account.sign_transaction(tx_dict).raw_transaction)

    def __repr__(self) -> str:
        return f"AccountSigner({self.address.checksum})"
