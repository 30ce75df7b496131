#!/usr/bin/env python3
"""
Sponsor Series & sanity check swaps

For every configured (target, maturity) pair: sponsor the Series if it does
not exist yet, issue the first PT/YT, seed the Space pool, make a
calibration swap, report the implied rate and run one swap in each
direction through the Periphery.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from ..abis import ADAPTER_ABI, ERC20_ABI, SPACE_ABI
from ..chain import MAX_UINT256, ChainClient, is_zero_address
from ..config import SeriesPlan, Settings, TargetSeries, configure_logging
from ..errors import InvariantViolation, PreconditionError
from ..network import NetworkProfile
from ..rates import format_ether, implied_rate, price_from_swap_output, scale_to_float
from ..registry import ArtifactStore, ContractDeployer, DeploymentStore

logger = logging.getLogger(__name__)

SWAP_KIND_GIVEN_IN = 0
BANNER = "-------------------------------------------------------"


@dataclass(frozen=True)
class AdapterRef:
    target_name: str
    target_address: str
    adapter_address: str


@dataclass(frozen=True)
class Series:
    adapter: str
    maturity: int
    pt: str
    yt: str
    sponsored: bool


@dataclass(frozen=True)
class PoolRef:
    address: str
    pool_id: bytes


def format_maturity(maturity: int) -> str:
    return datetime.fromtimestamp(maturity, tz=timezone.utc).strftime('%Y-%m-%d')


def deployed_adapters(client: ChainClient, store: DeploymentStore) -> Dict[str, AdapterRef]:
    """Map each deployed target's name to the adapter deployed for it"""
    records = store.all()
    names_by_address = {record.address.lower(): record.name for record in records}
    adapters = {}
    for record in records:
        if not record.name.endswith("Adapter"):
            continue
        adapter = client.contract(record.address, ADAPTER_ABI)
        target_address = adapter.functions.target().call()
        target_name = names_by_address.get(target_address.lower())
        if target_name is None:
            logger.warning(f"{record.name} wraps {target_address} which has no deployment record, skipping")
            continue
        adapters[target_name] = AdapterRef(target_name, target_address, record.address)
    return adapters


class SeriesBootstrapper:
    def __init__(self, client: ChainClient, divider, periphery, stake, balancer_vault, space_factory,
                 adapters: Dict[str, AdapterRef], plan: SeriesPlan,
                 dust_tolerance: Optional[int] = None, clock: Callable[[], float] = time.time):
        self.client = client
        self.divider = divider
        self.periphery = periphery
        self.stake = stake
        self.balancer_vault = balancer_vault
        self.space_factory = space_factory
        self.adapters = adapters
        self.plan = plan
        self.amounts = plan.amounts
        self.dust_tolerance = dust_tolerance
        self.clock = clock

    @classmethod
    def from_deployments(cls, client: ChainClient, deployer: ContractDeployer, plan: SeriesPlan,
                         dust_tolerance: Optional[int] = None) -> "SeriesBootstrapper":
        return cls(
            client=client,
            divider=deployer.handle("Divider"),
            periphery=deployer.handle("Periphery"),
            stake=deployer.handle("STAKE"),
            balancer_vault=deployer.handle("Vault"),
            space_factory=deployer.handle("SpaceFactory"),
            adapters=deployed_adapters(client, deployer.store),
            plan=plan,
            dust_tolerance=dust_tolerance,
        )

    @property
    def deployer_address(self) -> str:
        return self.client.deployer.address

    def run(self):
        logger.info(BANNER)
        logger.info("SPONSOR SERIES & SANITY CHECK SWAPS")
        logger.info(BANNER)

        resolved = [(target, self.adapter_for(target.name)) for target in self.plan.targets]

        logger.info("Enable the Periphery to move the Deployer's STAKE for Series sponsorship")
        self.client.approve(self.stake, self.periphery.address)

        for target, adapter in resolved:
            self.sponsor_target(target, adapter)

    def adapter_for(self, target_name: str) -> AdapterRef:
        try:
            return self.adapters[target_name]
        except KeyError:
            raise PreconditionError(f"No adapter deployed for target {target_name}") from None

    def sponsor_target(self, target: TargetSeries, adapter: AdapterRef):
        target_token = self.client.contract(adapter.target_address, ERC20_ABI)

        logger.info(BANNER)
        logger.info(f"Enable the Divider to move the deployer's {target.name} for issuance")
        self.client.approve(target_token, self.divider.address)

        for maturity in target.maturities:
            self.bootstrap_series(adapter, target_token, maturity)

    def bootstrap_series(self, adapter: AdapterRef, target_token, maturity: int):
        logger.info(f"Initializing Series maturing on {format_maturity(maturity)} for {adapter.target_name}")
        series = self.ensure_series(adapter.adapter_address, maturity)

        logger.info(f"Have the deployer issue the first {format_ether(self.amounts.issue)} Target worth of PT/YT")
        self.client.transact(
            self.divider.functions.issue(adapter.adapter_address, maturity, self.amounts.issue),
            "issue",
        )

        pt = self.client.contract(series.pt, ERC20_ABI)
        yt = self.client.contract(series.yt, ERC20_ABI)
        pool = self.resolve_pool(adapter.adapter_address, maturity)
        pool_token = self.client.contract(pool.address, SPACE_ABI)

        self.approve_all(target_token, pt, yt, pool_token)
        self.seed_pool(adapter.adapter_address, maturity, pool, pool_token)

        rate = self.report_implied_rate(adapter, maturity, pool, pt, target_token)

        self.run_smoke_swaps(adapter.adapter_address, maturity, pt)
        self.check_periphery_dust(target_token)
        return rate

    def ensure_series(self, adapter_address: str, maturity: int) -> Series:
        """Sponsor the Series unless the Divider already knows it"""
        existing = self.divider.functions.series(adapter_address, maturity).call()
        if not is_zero_address(existing.pt):
            logger.info(f"Series {format_maturity(maturity)} already sponsored (PT {existing.pt}), skipping")
            return Series(adapter_address, maturity, existing.pt, existing.yt, sponsored=False)

        sponsor = self.periphery.functions.sponsorSeries(adapter_address, maturity, True)
        pt, yt = self.client.static_call(sponsor)
        self.client.transact(sponsor, f"sponsor series {maturity}")
        logger.info(f"Sponsored Series {format_maturity(maturity)}: PT {pt}, YT {yt}")
        return Series(adapter_address, maturity, pt, yt, sponsored=True)

    def resolve_pool(self, adapter_address: str, maturity: int) -> PoolRef:
        address = self.space_factory.functions.pools(adapter_address, maturity).call()
        if is_zero_address(address):
            raise PreconditionError(f"No Space pool for series {maturity} of adapter {adapter_address}")
        pool_id = self.client.contract(address, SPACE_ABI).functions.getPoolId().call()
        return PoolRef(address, pool_id)

    def approve_all(self, target_token, pt, yt, pool_token):
        logger.info("Sending PT to Balancer Vault")
        self.client.approve(target_token, self.balancer_vault.address)
        self.client.approve(pt, self.balancer_vault.address)

        logger.info("Make all Periphery approvals")
        for token in (target_token, pool_token, pt, yt):
            self.client.approve(token, self.periphery.address)

    def log_pool_state(self, pool: PoolRef, pool_token):
        tokens, balances, _ = self.balancer_vault.functions.getPoolTokens(pool.pool_id).call()
        logger.info(f"totalSupply {pool_token.functions.totalSupply().call()}")
        for token, balance in zip(tokens, balances):
            logger.info(f"{token} balance {balance}")

    def seed_pool(self, adapter_address: str, maturity: int, pool: PoolRef, pool_token):
        logger.info("Initializing Target in pool with the first Join")
        self.log_pool_state(pool, pool_token)

        logger.info("- adding liquidity via target")
        self.client.transact(
            self.periphery.functions.addLiquidityFromTarget(adapter_address, maturity, self.amounts.seed, 1, 0),
            "add liquidity from target",
        )
        self.log_pool_state(pool, pool_token)

        logger.info("Making swap to init PT")
        self.client.transact(
            self.periphery.functions.swapPTsForTarget(adapter_address, maturity, self.amounts.calibration, 0),
            "calibration swap PT for target",
        )

    def report_implied_rate(self, adapter: AdapterRef, maturity: int, pool: PoolRef, pt, target_token) -> Optional[float]:
        deployer = self.deployer_address
        probe = self.balancer_vault.functions.swap(
            {
                'poolId': pool.pool_id,
                'kind': SWAP_KIND_GIVEN_IN,
                'assetIn': pt.address,
                'assetOut': target_token.address,
                'amount': self.amounts.probe,
                'userData': self.client.w3.codec.encode(["uint256[]"], [[0, 0]]),
            },
            {
                'sender': deployer,
                'fromInternalBalance': False,
                'recipient': deployer,
                'toInternalBalance': False,
            },
            0,
            MAX_UINT256,
        )
        price_in_target = price_from_swap_output(self.client.static_call(probe))

        adapter_contract = self.client.contract(adapter.adapter_address, ADAPTER_ABI)
        scale = scale_to_float(self.client.static_call(adapter_contract.functions.scale()))
        price_in_underlying = price_in_target * scale

        try:
            rate = implied_rate(price_in_underlying, maturity, self.clock())
        except ValueError as e:
            logger.warning(f"Target {adapter.target_name} | Maturity: {format_maturity(maturity)} | "
                           f"No implied rate: {e} | PT price in Underlying: {price_in_underlying}")
            return None
        logger.info(
            f"Target {adapter.target_name} | Maturity: {format_maturity(maturity)} | "
            f"Implied rate: {rate} | PT price in Target: {price_in_target} | "
            f"PT price in Underlying: {price_in_underlying}"
        )
        return rate

    def run_smoke_swaps(self, adapter_address: str, maturity: int, pt):
        """One swap in every direction, then one more join"""
        a = self.amounts
        fns = self.periphery.functions

        logger.info("--- Sanity check swaps ---")
        logger.info("swapping target for pt")
        self.client.transact(fns.swapTargetForPTs(adapter_address, maturity, a.swap_in, 0), "swap target for PTs")

        logger.info("swapping target for yields")
        self.client.transact(fns.swapTargetForYTs(adapter_address, maturity, a.swap_in, 0), "swap target for YTs")

        logger.info("swapping pt for target")
        self.client.approve(pt, self.periphery.address)
        self.client.transact(fns.swapPTsForTarget(adapter_address, maturity, a.swap_out, 0), "swap PTs for target")

        logger.info("swapping yields for target")
        self.client.transact(fns.swapYTsForTarget(adapter_address, maturity, a.swap_out), "swap YTs for target")

        logger.info("adding liquidity via target")
        self.client.transact(
            fns.addLiquidityFromTarget(adapter_address, maturity, a.top_up, 1, 0),
            "add liquidity from target",
        )

    def check_periphery_dust(self, target_token):
        """Fail when the Periphery keeps more than the tolerated Target dust"""
        if self.dust_tolerance is None:
            logger.warning("Periphery dust check skipped, set PERIPHERY_DUST_TOLERANCE to enable it")
            return
        dust = target_token.functions.balanceOf(self.periphery.address).call()
        if dust > self.dust_tolerance:
            raise InvariantViolation(
                f"Periphery holds {dust} wei of Target dust (tolerance {self.dust_tolerance})"
            )
        logger.info(f"Periphery Target dust: {dust} wei")


def main():
    settings = Settings.from_env()
    configure_logging(settings.log_file)
    try:
        client = ChainClient.connect(settings.rpc_url, settings.private_key, settings.tx_timeout)
        profile = NetworkProfile.for_chain(client.chain_id)
        store = DeploymentStore(settings.deployments_dir, settings.network or profile.name)
        deployer = ContractDeployer(client, store, ArtifactStore(settings.artifacts_dir))
        plan = SeriesPlan.from_file(settings.series_config, profile.chain_id)

        logger.info(f"Sponsoring series from {client.deployer.address} on chain {profile.chain_id}")
        SeriesBootstrapper.from_deployments(
            client, deployer, plan, settings.periphery_dust_tolerance
        ).run()
    except Exception as e:
        logger.error(f"Series bootstrap failed: {e}")
        raise


if __name__ == "__main__":
    main()
