import json
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, cast

from ._abi_types import ABI_JSON
from ._contract_abi import ContractABI

# Length of the CBOR size suffix that Solidity appends to the deployed bytecode.
_CBOR_LENGTH_SIZE = 2

# CBOR-encoded keys of the metadata hash (a text string key followed by a byte string header)
# and the length of the hash following each of them.
_HASH_MARKERS = {
    "bzzr0": (b"\x65bzzr0\x58\x20", 32),
    "bzzr1": (b"\x65bzzr1\x58\x20", 32),
    "ipfs": (b"\x64ipfs\x58\x22", 34),
}


class MetadataUnavailable(Exception):
    """
    Raised when the contract metadata cannot be obtained:
    there is no metadata link in the bytecode, or the store lookup failed
    (in which case the underlying error is attached as ``__cause__``).
    """


@dataclass(frozen=True)
class MetadataLink:
    """A content address of the contract metadata, as embedded by the compiler."""

    scheme: str
    """``bzzr0``, ``bzzr1`` (Swarm), or ``ipfs``."""

    hash: bytes
    """The hash (or the multihash for IPFS) of the metadata document."""

    @classmethod
    def from_bytecode(cls, bytecode: bytes) -> "None | MetadataLink":
        """
        Finds the metadata hash in the CBOR trailer of the deployed bytecode.
        Returns ``None`` if there is none.
        """
        trailer = bytecode
        if len(bytecode) >= _CBOR_LENGTH_SIZE:
            cbor_length = int.from_bytes(bytecode[-_CBOR_LENGTH_SIZE:], byteorder="big")
            if 0 < cbor_length <= len(bytecode) - _CBOR_LENGTH_SIZE:
                trailer = bytecode[-_CBOR_LENGTH_SIZE - cbor_length : -_CBOR_LENGTH_SIZE]

        for scheme, (marker, hash_length) in _HASH_MARKERS.items():
            position = trailer.rfind(marker)
            if position == -1:
                continue
            start = position + len(marker)
            hash_bytes = trailer[start : start + hash_length]
            if len(hash_bytes) == hash_length:
                return cls(scheme, hash_bytes)

        return None

    def __str__(self) -> str:
        return f"{self.scheme}:{self.hash.hex()}"


class ContractMetadata:
    """The metadata document produced by the Solidity compiler for a contract."""

    abi: ContractABI
    """The parsed contract ABI."""

    compiler_version: None | str
    """The version of the compiler, if present in the metadata."""

    @classmethod
    def from_json(cls, metadata: str | bytes | Mapping[str, Any]) -> "ContractMetadata":
        """Parses the metadata document (a JSON string or an already parsed mapping)."""
        if isinstance(metadata, str | bytes):
            metadata = cast("Mapping[str, Any]", json.loads(metadata))
        try:
            json_abi = metadata["output"]["abi"]
        except (KeyError, TypeError) as exc:
            raise ValueError("The metadata document does not contain `output.abi`") from exc
        compiler_version = metadata.get("compiler", {}).get("version")
        return cls(ContractABI.from_json(json_abi), compiler_version, metadata)

    def __init__(
        self,
        abi: ContractABI,
        compiler_version: None | str = None,
        document: None | Mapping[str, Any] = None,
    ):
        self.abi = abi
        self.compiler_version = compiler_version
        self._document = document

    def to_json(self) -> ABI_JSON:
        """Returns the metadata document (the original one, if the object was parsed from it)."""
        if self._document is not None:
            return cast("ABI_JSON", self._document)
        document: dict[str, Any] = {"language": "Solidity", "output": {"abi": self.abi.to_json()}}
        if self.compiler_version is not None:
            document["compiler"] = {"version": self.compiler_version}
        return document


class MetadataStore(ABC):
    """A content-addressed store of contract metadata (e.g. Swarm or IPFS)."""

    @abstractmethod
    def fetch_metadata(self, link: MetadataLink) -> ContractMetadata:
        """
        Returns the metadata with the given address.
        Raises :py:class:`MetadataUnavailable` if it is not found.
        """

    @abstractmethod
    def publish_metadata(self, metadata: ContractMetadata) -> MetadataLink:
        """Stores the metadata and returns its content address."""
