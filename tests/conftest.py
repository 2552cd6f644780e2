import os

import pytest
from ethereum_rpc import Address, Amount

from interpres import AccountSigner, CodecRegistry, ContractFacade

from .chain import FakeChain


@pytest.fixture
def registry() -> CodecRegistry:
    return CodecRegistry.with_default_codecs()


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def facade(chain: FakeChain, registry: CodecRegistry) -> ContractFacade:
    return ContractFacade(chain, registry=registry)


@pytest.fixture
def root_signer(chain: FakeChain) -> AccountSigner:
    signer = AccountSigner.create()
    chain.set_balance(signer.address, Amount.ether(100))
    return signer


@pytest.fixture
def another_signer() -> AccountSigner:
    return AccountSigner.create()


@pytest.fixture
def contract_address() -> Address:
    return Address(os.urandom(20))
