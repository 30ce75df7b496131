"""
Runtime configuration for the deployment tasks.

Connection and path settings come from the environment (a ``.env`` file is
honoured). Task inputs, the series plan and the adapter onboarding record,
are JSON files whose paths are themselves settings.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from web3 import Web3

from .errors import PreconditionError
from .network import MAINNET

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(log_file: str, level: int = logging.INFO):
    """Log to the console and to a file"""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )


def to_wei(value: Union[str, int, float, Decimal]) -> int:
    """Parse an ether-denominated amount ("0.25", 1000000) into wei"""
    return int(Web3.to_wei(Decimal(str(value)), "ether"))


def parse_maturity(value: Union[str, int]) -> int:
    """Accept a unix timestamp or an ISO date, read as UTC midnight"""
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def load_json(path: str, what: str) -> Any:
    try:
        with open(path, 'r') as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise PreconditionError(f"{what} not found at {path}") from e


@dataclass
class Settings:
    rpc_url: str = "http://localhost:8545"
    private_key: Optional[str] = None
    network: Optional[str] = None
    deployments_dir: str = "deployments"
    artifacts_dir: str = "artifacts"
    address_book: str = os.path.join("config", "addresses.json")
    series_config: str = os.path.join("config", "series.json")
    onboard_config: str = os.path.join("config", "onboard_adapter.json")
    etherscan_api_key: Optional[str] = None
    tx_timeout: int = 300
    periphery_dust_tolerance: Optional[int] = None
    log_file: str = "sense_deploy.log"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        dust = os.getenv("PERIPHERY_DUST_TOLERANCE")
        return cls(
            rpc_url=os.getenv("RPC_URL", cls.rpc_url),
            private_key=os.getenv("PRIVATE_KEY") or None,
            network=os.getenv("NETWORK") or None,
            deployments_dir=os.getenv("DEPLOYMENTS_DIR", cls.deployments_dir),
            artifacts_dir=os.getenv("ARTIFACTS_DIR", cls.artifacts_dir),
            address_book=os.getenv("ADDRESS_BOOK", cls.address_book),
            series_config=os.getenv("SERIES_CONFIG", cls.series_config),
            onboard_config=os.getenv("ONBOARD_CONFIG", cls.onboard_config),
            etherscan_api_key=os.getenv("ETHERSCAN_API_KEY") or None,
            tx_timeout=int(os.getenv("TX_TIMEOUT", str(cls.tx_timeout))),
            periphery_dust_tolerance=int(dust) if dust not in (None, "") else None,
            log_file=os.getenv("LOG_FILE", cls.log_file),
        )


# --- Series bootstrapper input ---

@dataclass(frozen=True)
class SeriesAmounts:
    """Amounts, in wei, used while seeding and exercising each series"""
    issue: int = to_wei(1_000_000)
    seed: int = to_wei(2_000_000)
    calibration: int = to_wei(40_000)
    probe: int = to_wei("0.1")
    swap_in: int = to_wei(1)
    swap_out: int = to_wei("0.5")
    top_up: int = to_wei(1)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SeriesAmounts":
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise PreconditionError(f"Unknown series amounts: {sorted(unknown)}")
        return cls(**{key: to_wei(value) for key, value in data.items()})


@dataclass(frozen=True)
class TargetSeries:
    name: str
    maturities: List[int]


@dataclass(frozen=True)
class SeriesPlan:
    targets: List[TargetSeries]
    amounts: SeriesAmounts = field(default_factory=SeriesAmounts)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SeriesPlan":
        targets = []
        for entry in data.get("targets", []):
            if "name" not in entry:
                raise PreconditionError(f"Series target entry without a name: {entry}")
            maturities = [parse_maturity(m) for m in entry.get("series", [])]
            targets.append(TargetSeries(name=entry["name"], maturities=maturities))
        return cls(targets=targets, amounts=SeriesAmounts.from_dict(data.get("amounts", {})))

    @classmethod
    def from_file(cls, path: str, chain_id: Optional[int] = None) -> "SeriesPlan":
        data = load_json(path, "Series plan")
        # Files may either hold one plan or one plan per chain id
        if chain_id is not None and str(chain_id) in data:
            data = data[str(chain_id)]
        plan = cls.from_dict(data)
        logger.info(f"Loaded series plan from {path}: {sum(len(t.maturities) for t in plan.targets)} series")
        return plan


# --- Adapter onboarding input ---

@dataclass(frozen=True)
class AdapterArgs:
    contract_name: str
    ifee: int
    stake: str
    stake_size: int
    minm: int
    maxm: int
    mode: int
    tilt: int
    level: int
    reward_tokens: List[str]
    guard: int
    contract: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdapterArgs":
        try:
            return cls(
                contract_name=data["contractName"],
                contract=data.get("contract"),
                ifee=to_wei(data["ifee"]),
                stake=Web3.to_checksum_address(data["stake"]),
                stake_size=to_wei(data["stakeSize"]),
                minm=int(data["minm"]),
                maxm=int(data["maxm"]),
                mode=int(data["mode"]),
                tilt=int(data["tilt"]),
                level=int(data["level"]),
                reward_tokens=[Web3.to_checksum_address(t) for t in data.get("rewardTokens", [])],
                guard=to_wei(data["guard"]),
            )
        except KeyError as e:
            raise PreconditionError(f"Adapter arguments missing {e}") from e


@dataclass(frozen=True)
class OnboardingInput:
    divider: str
    periphery: str
    rewards_recipient: str
    oracle: str
    rlv_factory: str
    adapter_args: AdapterArgs
    preview_helper_name: str = "ComposableStablePreview"
    wrapper_name: str = "AuraVaultWrapper"
    rewards_distributor_name: str = "MultiRewardsDistributor"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OnboardingInput":
        try:
            return cls(
                divider=Web3.to_checksum_address(data["divider"]),
                periphery=Web3.to_checksum_address(data["periphery"]),
                rewards_recipient=Web3.to_checksum_address(data["rewardsRecipient"]),
                oracle=Web3.to_checksum_address(data["oracle"]),
                rlv_factory=Web3.to_checksum_address(data["rlvFactory"]),
                adapter_args=AdapterArgs.from_dict(data["adapterArgs"]),
                preview_helper_name=data.get("previewHelper", cls.preview_helper_name),
                wrapper_name=data.get("wrapper", cls.wrapper_name),
                rewards_distributor_name=data.get("rewardsDistributor", cls.rewards_distributor_name),
            )
        except KeyError as e:
            raise PreconditionError(f"Onboarding input missing {e}") from e

    @classmethod
    def for_chain(cls, data: Dict[str, Any], chain_id: int) -> "OnboardingInput":
        """Pick the record for ``chain_id``, falling back to the mainnet one"""
        record = data.get(str(chain_id)) or data.get(str(MAINNET))
        if record is None:
            raise PreconditionError(f"No onboarding input for chain {chain_id} and no mainnet fallback")
        return cls.from_dict(record)

    @classmethod
    def from_file(cls, path: str, chain_id: int) -> "OnboardingInput":
        return cls.for_chain(load_json(path, "Onboarding input"), chain_id)
