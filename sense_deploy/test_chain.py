#!/usr/bin/env python3
"""
Tests for ChainClient transaction handling and fork helpers
"""

from unittest.mock import MagicMock

import pytest
from web3 import Web3

from sense_deploy.chain import (
    ZERO_ADDRESS,
    CallContext,
    ChainClient,
    is_zero_address,
    same_address,
)
from sense_deploy.errors import PreconditionError, TransactionReverted

DEPLOYER = "0x00000000000000000000000000000000000000d1"
MULTISIG = "0x00000000000000000000000000000000000000a5"
TOKEN = "0x0000000000000000000000000000000000000070"
TX_HASH = b"\x12" * 32


def make_client(ctx=None, status=1):
    w3 = MagicMock()
    w3.eth.wait_for_transaction_receipt.return_value = {'status': status, 'blockNumber': 42}
    w3.provider.make_request.return_value = {'jsonrpc': '2.0', 'id': 1, 'result': True}
    return ChainClient(w3, ctx or CallContext(DEPLOYER), tx_timeout=10)


class TestHelpers:
    """Test class for address helpers"""

    def test_same_address_ignores_case(self):
        assert same_address("0xAbC0000000000000000000000000000000000001", "0xabc0000000000000000000000000000000000001")
        assert not same_address(DEPLOYER, MULTISIG)

    def test_zero_address(self):
        assert is_zero_address(ZERO_ADDRESS)
        assert is_zero_address(None)
        assert not is_zero_address(DEPLOYER)

    def test_call_context(self):
        assert not CallContext(DEPLOYER).signs_locally
        assert CallContext(DEPLOYER, "0x" + "11" * 32).signs_locally


class TestTransact:
    """Test class for ChainClient.transact"""

    def test_unlocked_account_uses_node_signing(self):
        """Without a private key the node sends the transaction"""
        client = make_client()
        fn = MagicMock()
        fn.transact.return_value = TX_HASH

        receipt = client.transact(fn, "approve")

        fn.transact.assert_called_once_with({'from': DEPLOYER})
        fn.build_transaction.assert_not_called()
        client.w3.eth.wait_for_transaction_receipt.assert_called_once_with(TX_HASH, timeout=10)
        assert receipt['blockNumber'] == 42

    def test_local_key_signs_and_sends_raw(self):
        ctx = CallContext(DEPLOYER, "0x" + "11" * 32)
        client = make_client(ctx)
        client.w3.eth.chain_id = 31337
        client.w3.eth.get_transaction_count.return_value = 7
        client.w3.eth.send_raw_transaction.return_value = TX_HASH
        signed = client.w3.eth.account.sign_transaction.return_value
        fn = MagicMock()

        client.transact(fn, "issue")

        fn.build_transaction.assert_called_once_with({'from': DEPLOYER, 'nonce': 7, 'chainId': 31337})
        client.w3.eth.get_transaction_count.assert_called_once_with(DEPLOYER, 'pending')
        client.w3.eth.send_raw_transaction.assert_called_once_with(signed.raw_transaction)
        fn.transact.assert_not_called()

    def test_explicit_context_overrides_deployer(self):
        client = make_client()
        fn = MagicMock()
        fn.transact.return_value = TX_HASH

        client.transact(fn, "set guard", CallContext(MULTISIG))

        fn.transact.assert_called_once_with({'from': MULTISIG})

    def test_failed_receipt_raises(self):
        client = make_client(status=0)
        fn = MagicMock()
        fn.transact.return_value = TX_HASH

        with pytest.raises(TransactionReverted) as excinfo:
            client.transact(fn, "sponsor series")

        assert excinfo.value.tx_hash == Web3.to_hex(TX_HASH)
        assert "sponsor series" in str(excinfo.value)

    def test_static_call_sends_from_deployer(self):
        client = make_client()
        fn = MagicMock()
        fn.call.return_value = 5
        assert client.static_call(fn) == 5
        fn.call.assert_called_once_with({'from': DEPLOYER})


class TestImpersonation:
    """Test class for impersonation on a local fork"""

    def test_call_as_runs_under_the_impersonated_context(self):
        client = make_client()
        seen = []

        result = client.call_as(MULTISIG, lambda ctx: seen.append(ctx) or "done")

        assert result == "done"
        assert seen == [CallContext(Web3.to_checksum_address(MULTISIG))]
        methods = [c.args[0] for c in client.w3.provider.make_request.call_args_list]
        assert methods == ["hardhat_impersonateAccount", "hardhat_stopImpersonatingAccount"]

    def test_impersonation_stops_on_error(self):
        client = make_client()

        with pytest.raises(RuntimeError):
            with client.impersonate(MULTISIG):
                raise RuntimeError("reverted")

        client.w3.provider.make_request.assert_called_with(
            "hardhat_stopImpersonatingAccount", [Web3.to_checksum_address(MULTISIG)]
        )

    def test_rpc_error_raises(self):
        client = make_client()
        client.w3.provider.make_request.return_value = {'error': {'message': 'method not found'}}
        with pytest.raises(PreconditionError, match="hardhat_setBalance"):
            client.set_balance(MULTISIG, 10**18)

    def test_set_balance(self):
        client = make_client()
        client.set_balance(MULTISIG, 10**18)
        client.w3.provider.make_request.assert_called_once_with(
            "hardhat_setBalance", [Web3.to_checksum_address(MULTISIG), hex(10**18)]
        )


class TestGenerateTokens:
    """Test class for storage-slot token minting"""

    def setup_method(self):
        self.client = make_client()
        self.client.w3.codec = Web3(Web3.HTTPProvider("http://localhost:8545")).codec
        self.client.w3.eth.get_storage_at.return_value = b"\x00" * 32
        self.balance_of = self.client.w3.eth.contract.return_value.functions.balanceOf.return_value

    def test_finds_slot_and_restores_misses(self):
        """Slot 0 misses in both layouts, slot 1 (solidity layout) hits"""
        self.balance_of.call.side_effect = [0, 0, 5]

        self.client.generate_tokens(TOKEN, DEPLOYER, 5)

        calls = self.client.w3.provider.make_request.call_args_list
        assert [c.args[0] for c in calls] == ["hardhat_setStorageAt"] * 5
        values = [c.args[1][2] for c in calls]
        five = "0x" + (5).to_bytes(32, "big").hex()
        zero = "0x" + (0).to_bytes(32, "big").hex()
        assert values == [five, zero, five, zero, five]

        key = Web3.keccak(self.client.w3.codec.encode(["address", "uint256"], [Web3.to_checksum_address(DEPLOYER), 1]))
        assert calls[-1].args[1][1] == hex(int.from_bytes(key, "big"))

    def test_gives_up_after_search_depth(self):
        self.balance_of.call.return_value = 0
        with pytest.raises(PreconditionError, match="balance slot"):
            self.client.generate_tokens(TOKEN, DEPLOYER, 5)
