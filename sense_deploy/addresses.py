"""
Per-chain address book.

The book is a JSON object mapping an entry name to a ``{chain_id: address}``
object, loaded once when a task starts:

    {
        "SENSE_MULTISIG": {"1": "0x...", "5": "0x..."},
        "RETH_TOKEN": {"1": "0xae78..."}
    }
"""

import json
import logging
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from web3 import Web3

from .errors import PreconditionError

logger = logging.getLogger(__name__)

SENSE_MULTISIG = "SENSE_MULTISIG"
RETH_TOKEN = "RETH_TOKEN"
AURA_VAULT = "AURA_WSTETH_RETH_SFRXETH_VAULT"
ROLLER_UTILS = "ROLLER_UTILS"
ROLLER_PERIPHERY = "ROLLER_PERIPHERY"
ETH_USD_PRICEFEED = "ETH_USD_PRICEFEED"


class AddressBook:
    """Read-only ``name -> chain id -> address`` lookups"""

    def __init__(self, entries: Mapping[str, Mapping[str, str]]):
        book: Dict[str, Mapping[int, str]] = {}
        for name, per_chain in entries.items():
            book[name] = MappingProxyType(
                {int(chain_id): Web3.to_checksum_address(address) for chain_id, address in per_chain.items()}
            )
        self._entries = MappingProxyType(book)

    @classmethod
    def from_file(cls, path: str) -> "AddressBook":
        try:
            with open(path, "r") as f:
                entries = json.load(f)
        except FileNotFoundError as e:
            raise PreconditionError(f"Address book not found at {path}") from e
        logger.info(f"Loaded address book from {path} ({len(entries)} entries)")
        return cls(entries)

    def find(self, name: str, chain_id: int) -> Optional[str]:
        return self._entries.get(name, {}).get(int(chain_id))

    def get(self, name: str, chain_id: int) -> str:
        address = self.find(name, chain_id)
        if address is None:
            raise PreconditionError(f"No {name} address configured for chain {chain_id}")
        return address
