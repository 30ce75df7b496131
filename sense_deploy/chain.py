"""
Web3 connection, signing and transaction confirmation.

Every state-changing call goes through ``ChainClient.transact`` which
submits one transaction and blocks until it is mined. The sender is always
an explicit ``CallContext``: the deployer context built at startup, or a
governance context handed out by ``impersonate`` on a local fork.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar

from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware

from .abis import ERC20_ABI
from .errors import PreconditionError, TransactionReverted

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
MAX_UINT256 = 2**256 - 1

# Balance mappings of common token implementations live in one of these slots
STORAGE_SLOT_SEARCH_DEPTH = 100

T = TypeVar("T")


def is_zero_address(address: Optional[str]) -> bool:
    return address is None or int(address, 16) == 0


def same_address(a: str, b: str) -> bool:
    return a.upper() == b.upper()


@dataclass(frozen=True)
class CallContext:
    """
    The account a transaction is sent from.

    With a private key the transaction is signed locally. Without one the
    node must hold the account unlocked, which is the case for its dev
    accounts and for impersonated accounts on a fork.
    """
    address: str
    private_key: Optional[str] = None

    @property
    def signs_locally(self) -> bool:
        return self.private_key is not None


class ChainClient:
    def __init__(self, w3: Web3, deployer: CallContext, tx_timeout: int = 300):
        self.w3 = w3
        self.deployer = deployer
        self.tx_timeout = tx_timeout
        self._chain_id: Optional[int] = None

    @classmethod
    def connect(cls, rpc_url: str, private_key: Optional[str] = None, tx_timeout: int = 300) -> "ChainClient":
        """Connect to ``rpc_url`` and pick the deployer account"""
        w3 = Web3(Web3.HTTPProvider(rpc_url))
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        if not w3.is_connected():
            raise PreconditionError(f"Could not connect to RPC URL: {rpc_url}")
        logger.info(f"Connected to blockchain at {rpc_url}")

        if private_key:
            account = w3.eth.account.from_key(private_key)
            deployer = CallContext(account.address, private_key)
        else:
            accounts = w3.eth.accounts
            if not accounts:
                raise PreconditionError("PRIVATE_KEY not set and the node exposes no unlocked accounts")
            deployer = CallContext(Web3.to_checksum_address(accounts[0]))
            logger.warning(f"PRIVATE_KEY not set, using unlocked node account {deployer.address}")
        return cls(w3, deployer, tx_timeout)

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(self.w3.eth.chain_id)
        return self._chain_id

    def contract(self, address: str, abi: Any):
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=abi,
            decode_tuples=True,
        )

    def static_call(self, call, ctx: Optional[CallContext] = None) -> Any:
        """Simulate ``call`` against the latest block and return its output"""
        ctx = ctx or self.deployer
        return call.call({'from': ctx.address})

    def transact(self, call, description: str, ctx: Optional[CallContext] = None) -> Dict[str, Any]:
        """
        Send ``call`` and wait for it to be mined.

        Raises:
            TransactionReverted: when the receipt reports a failed status
        """
        ctx = ctx or self.deployer
        params: Dict[str, Any] = {'from': ctx.address}

        if ctx.signs_locally:
            params['nonce'] = self.w3.eth.get_transaction_count(ctx.address, 'pending')
            params['chainId'] = self.chain_id
            tx = call.build_transaction(params)
            signed_tx = self.w3.eth.account.sign_transaction(tx, ctx.private_key)
            tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        else:
            tx_hash = call.transact(params)

        return self.wait(tx_hash, description)

    def wait(self, tx_hash, description: str) -> Dict[str, Any]:
        tx_hex = Web3.to_hex(tx_hash)
        logger.debug(f"{description}: sent {tx_hex}")
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.tx_timeout)
        if receipt['status'] != 1:
            raise TransactionReverted(description, tx_hex)
        logger.debug(f"{description}: confirmed in block {receipt['blockNumber']}")
        return receipt

    def approve(self, token, spender: str, amount: int = MAX_UINT256, ctx: Optional[CallContext] = None):
        return self.transact(
            token.functions.approve(spender, amount),
            f"approve {spender} on {token.address}",
            ctx,
        )

    # --- Local fork helpers ---

    def _rpc(self, method: str, params: list) -> Any:
        response = self.w3.provider.make_request(method, params)
        if response.get('error'):
            raise PreconditionError(f"{method} failed: {response['error']}")
        return response.get('result')

    @contextmanager
    def impersonate(self, address: str) -> Iterator[CallContext]:
        """
        Yield a context that sends from ``address`` on a local fork.

        Impersonation is stopped when the block exits, including on error,
        so no later call can go out under the governance account.
        """
        address = Web3.to_checksum_address(address)
        self._rpc("hardhat_impersonateAccount", [address])
        logger.info(f"Impersonating {address}")
        try:
            yield CallContext(address)
        finally:
            self._rpc("hardhat_stopImpersonatingAccount", [address])
            logger.info(f"Stopped impersonating {address}")

    def call_as(self, address: str, fn: Callable[[CallContext], T]) -> T:
        with self.impersonate(address) as ctx:
            return fn(ctx)

    def set_balance(self, address: str, amount: int):
        self._rpc("hardhat_setBalance", [Web3.to_checksum_address(address), hex(amount)])

    def _set_storage(self, token: str, slot: bytes, value: int):
        self._rpc(
            "hardhat_setStorageAt",
            [token, hex(int.from_bytes(slot, "big")), "0x" + value.to_bytes(32, "big").hex()],
        )

    def generate_tokens(self, token_address: str, to: str, amount: int):
        """
        Give ``to`` exactly ``amount`` of a token by writing its balance slot.

        Searches the first mapping slots using both the Solidity and the
        Vyper key layout and restores every slot that turned out wrong.
        """
        token_address = Web3.to_checksum_address(token_address)
        to = Web3.to_checksum_address(to)
        token = self.contract(token_address, ERC20_ABI)
        for slot in range(STORAGE_SLOT_SEARCH_DEPTH):
            for key in (
                Web3.keccak(self.w3.codec.encode(["address", "uint256"], [to, slot])),
                Web3.keccak(self.w3.codec.encode(["uint256", "address"], [slot, to])),
            ):
                previous = int.from_bytes(self.w3.eth.get_storage_at(token_address, int.from_bytes(key, "big")), "big")
                self._set_storage(token_address, key, amount)
                if token.functions.balanceOf(to).call() == amount:
                    logger.info(f"Minted {amount} of {token_address} to {to} (slot {slot})")
                    return
                self._set_storage(token_address, key, previous)
        raise PreconditionError(f"Could not locate the balance slot of {token_address}")
