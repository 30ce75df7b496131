"""
Etherscan source verification for freshly deployed contracts.
"""

import json
import logging
import time
from typing import Any, Dict, Optional

import requests
from web3 import Web3

from .chain import ChainClient
from .errors import PreconditionError, VerificationError
from .registry import ArtifactStore, DeploymentStore

logger = logging.getLogger(__name__)

ETHERSCAN_API_URL = "https://api.etherscan.io/v2/api"


class EtherscanVerifier:
    def __init__(self, client: ChainClient, store: DeploymentStore, artifacts: ArtifactStore,
                 api_key: Optional[str], api_url: str = ETHERSCAN_API_URL,
                 poll_interval: float = 5.0, max_polls: int = 12):
        if not api_key:
            raise PreconditionError("ETHERSCAN_API_KEY is required to verify contracts on this network")
        self.client = client
        self.store = store
        self.artifacts = artifacts
        self.api_key = api_key
        self.api_url = api_url
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.session = requests.Session()

    def _constructor_arguments(self, tx_hash: str, bytecode: str) -> str:
        """ABI-encoded constructor arguments, read back from the deployment tx"""
        tx = self.client.w3.eth.get_transaction(tx_hash)
        data = Web3.to_hex(tx['input'])[2:]
        code = bytecode[2:] if bytecode.startswith("0x") else bytecode
        if not data.startswith(code):
            raise VerificationError(f"Deployment input of {tx_hash} does not start with the artifact bytecode")
        return data[len(code):]

    def _request(self, method: str, params: Dict[str, Any], data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        query = {'chainid': self.client.chain_id, 'apikey': self.api_key, **params}
        response = self.session.request(method, self.api_url, params=query, data=data, timeout=30)
        response.raise_for_status()
        return response.json()

    def submit(self, name: str) -> Optional[str]:
        """Submit ``name`` for verification, returning the Etherscan guid"""
        record = self.store.require(name)
        artifact = self.artifacts.load(record.contract_name or name)
        build_info = self.artifacts.build_info(artifact)
        if not record.transaction_hash:
            raise VerificationError(f"{name} has no deployment transaction recorded")

        payload = {
            'module': 'contract',
            'action': 'verifysourcecode',
            'contractaddress': record.address,
            'sourceCode': json.dumps(build_info['input']),
            'codeformat': 'solidity-standard-json-input',
            'contractname': artifact.fully_qualified_name,
            'compilerversion': f"v{build_info['solcLongVersion']}",
            'constructorArguements': self._constructor_arguments(record.transaction_hash, artifact.bytecode),
        }
        result = self._request('POST', {}, payload)
        if result.get('status') == '1':
            logger.info(f"Submitted {name} ({record.address}) for verification, guid {result['result']}")
            return result['result']
        if 'already verified' in str(result.get('result', '')).lower():
            logger.info(f"{name} is already verified")
            return None
        raise VerificationError(f"Etherscan rejected {name}: {result.get('result')}")

    def wait(self, guid: str) -> str:
        for _ in range(self.max_polls):
            time.sleep(self.poll_interval)
            result = self._request('GET', {'module': 'contract', 'action': 'checkverifystatus', 'guid': guid})
            status = str(result.get('result', ''))
            if status.startswith('Pass') or 'already verified' in status.lower():
                return status
            if not status.lower().startswith('pending'):
                raise VerificationError(f"Verification failed: {status}")
        raise VerificationError(f"Verification of {guid} still pending after {self.max_polls} checks")

    def verify(self, name: str):
        """Verify a deployed contract. Etherscan failures are logged and the run goes on."""
        logger.info("-------------------------------------------------------")
        logger.info(f"Verifying {name} on Etherscan")
        try:
            guid = self.submit(name)
            if guid is not None:
                status = self.wait(guid)
                logger.info(f"{name}: {status}")
        except (VerificationError, requests.RequestException) as e:
            logger.error(f"Failed to verify {name}: {e}")
