"""An in-memory chain client for tests."""

import math
from collections.abc import AsyncIterator, Callable, Mapping
from concurrent.futures import Future

import anyio
from ethereum_rpc import Address, Amount, BlockHash, LogEntry, LogTopic, TxHash

from interpres import ChainClient, ExternalClientError, Signer, TopicFilter
from interpres._contract_abi import SELECTOR_LENGTH

# Receives the encoded arguments (without the selector), returns the encoded outputs.
FunctionHandler = Callable[[bytes], bytes]


class Reverted(ExternalClientError):
    pass


class FakeChain(ChainClient):
    """
    Contracts are collections of Python functions keyed by selectors.
    Transactions are executed immediately, unless ``hold_transactions`` is set,
    in which case they wait for :py:meth:`mine`.
    """

    def __init__(self, *, hold_transactions: bool = False):
        self.hold_transactions = hold_transactions
        self.requests: list[tuple[str, bytes, Address | None]] = []
        self.pending: list[tuple[Future[bytes], Callable[[], bytes]]] = []
        self._functions: dict[Address, Mapping[bytes, FunctionHandler]] = {}
        self._code: dict[Address, bytes] = {}
        self._balances: dict[Address, int] = {}
        self._nonces: dict[Address, int] = {}
        self._log_send, self._log_receive = anyio.create_memory_object_stream[LogEntry](
            max_buffer_size=math.inf
        )

    def install(
        self,
        address: Address,
        functions: Mapping[bytes, FunctionHandler],
        code: bytes = b"\x60\x80",
    ) -> None:
        self._functions[address] = functions
        self._code[address] = code

    def emit(self, log_entry: LogEntry) -> None:
        self._log_send.send_nowait(log_entry)

    def close_logs(self) -> None:
        self._log_send.close()

    def set_balance(self, address: Address, amount: Amount) -> None:
        self._balances[address] = amount.as_wei()

    def _execute(self, data: bytes, address: Address) -> bytes:
        functions = self._functions.get(address)
        if functions is None:
            raise Reverted(f"No contract at {address}")
        handler = functions.get(data[:SELECTOR_LENGTH])
        if handler is None:
            raise Reverted(f"Unknown selector {data[:SELECTOR_LENGTH].hex()}")
        return handler(data[SELECTOR_LENGTH:])

    def _settle(self, future: "Future[bytes]", execute: Callable[[], bytes]) -> None:
        try:
            output = execute()
        except ExternalClientError as exc:
            future.set_exception(exc)
        else:
            future.set_result(output)

    def mine(self) -> None:
        pending, self.pending = self.pending, []
        for future, execute in pending:
            if not future.cancelled():
                self._settle(future, execute)

    def _bump_nonce(self, signer: Signer) -> None:
        self._nonces[signer.address] = self._nonces.get(signer.address, 0) + 1

    def call(self, data: bytes, address: Address) -> bytes:
        self.requests.append(("call", data, address))
        return self._execute(data, address)

    def submit_transaction(
        self, data: bytes, address: Address, signer: Signer, amount: Amount
    ) -> "Future[bytes]":
        self.requests.append(("transaction", data, address))
        if amount.as_wei() > self._balances.get(signer.address, 0):
            raise Reverted("Insufficient funds")
        self._bump_nonce(signer)

        future: Future[bytes] = Future()

        def execute() -> bytes:
            return self._execute(data, address)

        if self.hold_transactions:
            self.pending.append((future, execute))
        else:
            self._settle(future, execute)
        return future

    def deploy(self, data: bytes, signer: Signer, amount: Amount) -> "Future[Address]":
        self.requests.append(("deploy", data, None))
        self._bump_nonce(signer)
        address = Address((len(self._code) + 1).to_bytes(20, byteorder="big"))
        self._code[address] = data
        self._functions[address] = {}
        future: Future[Address] = Future()
        future.set_result(address)
        return future

    def transfer(self, signer: Signer, address: Address, amount: Amount) -> "Future[None]":
        self.requests.append(("transfer", b"", address))
        balance = self._balances.get(signer.address, 0)
        if amount.as_wei() > balance:
            raise Reverted("Insufficient funds")
        self._bump_nonce(signer)
        self._balances[signer.address] = balance - amount.as_wei()
        self._balances[address] = self._balances.get(address, 0) + amount.as_wei()
        future: Future[None] = Future()
        future.set_result(None)
        return future

    def get_code(self, address: Address) -> bytes:
        return self._code.get(address, b"")

    def get_balance(self, address: Address) -> Amount:
        return Amount.wei(self._balances.get(address, 0))

    def get_nonce(self, address: Address) -> int:
        return self._nonces.get(address, 0)

    async def iter_logs(self, address: Address, topics: TopicFilter) -> AsyncIterator[LogEntry]:
        async for log_entry in self._log_receive:
            if log_entry.address != address:
                continue
            if len(topics) > len(log_entry.topics):
                continue
            if all(
                allowed is None or topic in allowed
                for topic, allowed in zip(log_entry.topics, topics, strict=False)
            ):
                yield log_entry


def make_log_entry(address: Address, topics: tuple[LogTopic, ...], data: bytes) -> LogEntry:
    return LogEntry(
        address=address,
        topics=topics,
        data=data,
        # these fields do not matter for the tests
        removed=False,
        log_index=0,
        transaction_index=0,
        transaction_hash=TxHash(b"0" * 32),
        block_hash=BlockHash(b"0" * 32),
        block_number=0,
    )
