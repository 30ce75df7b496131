"""
Hardhat artifacts and per-network deployment records.

A deployment record is written once per network to
``<deployments_dir>/<network>/<name>.json`` and reused on later runs, so
re-running a task does not redeploy what is already on-chain.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from web3 import Web3

from .chain import CallContext, ChainClient
from .errors import PreconditionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Artifact:
    contract_name: str
    source_name: str
    abi: List[Dict[str, Any]]
    bytecode: str
    path: str

    @property
    def fully_qualified_name(self) -> str:
        return f"{self.source_name}:{self.contract_name}"


class ArtifactStore:
    """Looks up compiled contracts under a Hardhat ``artifacts`` directory"""

    def __init__(self, artifacts_dir: str):
        self.artifacts_dir = artifacts_dir

    def _candidates(self, name: str) -> List[str]:
        if ":" in name:
            source, contract = name.split(":", 1)
            path = os.path.join(self.artifacts_dir, source, f"{contract}.json")
            return [path] if os.path.exists(path) else []

        matches = []
        for root, dirs, files in os.walk(self.artifacts_dir):
            dirs[:] = [d for d in dirs if d != "build-info"]
            if f"{name}.json" in files:
                matches.append(os.path.join(root, f"{name}.json"))
        return matches

    def load(self, name: str) -> Artifact:
        matches = self._candidates(name)
        if not matches:
            raise PreconditionError(f"No artifact for {name} under {self.artifacts_dir}, compile the contracts first")
        if len(matches) > 1:
            raise PreconditionError(f"Several artifacts named {name}, use a fully qualified name: {matches}")

        with open(matches[0], 'r') as f:
            data = json.load(f)
        return Artifact(
            contract_name=data['contractName'],
            source_name=data['sourceName'],
            abi=data['abi'],
            bytecode=data.get('bytecode', '0x'),
            path=matches[0],
        )

    def build_info(self, artifact: Artifact) -> Dict[str, Any]:
        """The solc build-info (compiler version, standard JSON input) of an artifact"""
        dbg_path = artifact.path[: -len(".json")] + ".dbg.json"
        try:
            with open(dbg_path, 'r') as f:
                dbg = json.load(f)
            build_info_path = os.path.normpath(os.path.join(os.path.dirname(dbg_path), dbg['buildInfo']))
            with open(build_info_path, 'r') as f:
                return json.load(f)
        except (FileNotFoundError, KeyError) as e:
            raise PreconditionError(f"No build info for {artifact.fully_qualified_name}: {e}") from e


@dataclass
class DeploymentRecord:
    name: str
    address: str
    abi: List[Dict[str, Any]]
    args: List[Any] = field(default_factory=list)
    transaction_hash: Optional[str] = None
    contract_name: Optional[str] = None


def _jsonable(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, bytes):
        return Web3.to_hex(value)
    return value


class DeploymentStore:
    def __init__(self, deployments_dir: str, network: str):
        self.directory = os.path.join(deployments_dir, network)

    def _path(self, name: str) -> str:
        return os.path.join(self.directory, f"{name}.json")

    def get(self, name: str) -> Optional[DeploymentRecord]:
        path = self._path(name)
        if not os.path.exists(path):
            return None
        with open(path, 'r') as f:
            data = json.load(f)
        return DeploymentRecord(
            name=name,
            address=data['address'],
            abi=data['abi'],
            args=data.get('args', []),
            transaction_hash=data.get('transactionHash'),
            contract_name=data.get('contractName'),
        )

    def require(self, name: str) -> DeploymentRecord:
        record = self.get(name)
        if record is None:
            raise PreconditionError(f"{name} has not been deployed on this network ({self.directory})")
        return record

    def save(self, record: DeploymentRecord):
        os.makedirs(self.directory, exist_ok=True)
        data = asdict(record)
        payload = {
            'address': data['address'],
            'abi': data['abi'],
            'args': _jsonable(record.args),
            'transactionHash': data['transaction_hash'],
            'contractName': data['contract_name'],
        }
        with open(self._path(record.name), 'w') as f:
            json.dump(payload, f, indent=2)

    def names(self) -> List[str]:
        if not os.path.isdir(self.directory):
            return []
        return sorted(
            filename[: -len(".json")]
            for filename in os.listdir(self.directory)
            if filename.endswith(".json")
        )

    def all(self) -> List[DeploymentRecord]:
        return [self.require(name) for name in self.names()]


class ContractDeployer:
    """Deploys contracts from artifacts, reusing existing deployment records"""

    def __init__(self, client: ChainClient, store: DeploymentStore, artifacts: ArtifactStore):
        self.client = client
        self.store = store
        self.artifacts = artifacts

    def deploy(self, name: str, args: Sequence[Any] = (), contract: Optional[str] = None,
               ctx: Optional[CallContext] = None):
        record = self.store.get(name)
        if record is not None and self.client.w3.eth.get_code(Web3.to_checksum_address(record.address)):
            logger.info(f'reusing "{name}" at {record.address}')
            return self.client.contract(record.address, record.abi)

        artifact = self.artifacts.load(contract or name)
        factory = self.client.w3.eth.contract(abi=artifact.abi, bytecode=artifact.bytecode)
        receipt = self.client.transact(factory.constructor(*args), f"deploy {name}", ctx)
        address = receipt['contractAddress']
        tx_hash = Web3.to_hex(receipt['transactionHash'])
        logger.info(f'deploying "{name}" (tx: {tx_hash})...: deployed at {address} with {receipt["gasUsed"]} gas')

        self.store.save(DeploymentRecord(
            name=name,
            address=address,
            abi=artifact.abi,
            args=list(args),
            transaction_hash=tx_hash,
            contract_name=artifact.fully_qualified_name,
        ))
        return self.client.contract(address, artifact.abi)

    def handle(self, name: str):
        """Contract handle for an existing deployment"""
        record = self.store.require(name)
        return self.client.contract(record.address, record.abi)
