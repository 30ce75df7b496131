#!/usr/bin/env python3
"""
Adapter & auto-roller onboarding

Deploys an Aura vault wrapper and an ownable Aura adapter for it, sets the
adapter guard, onboards the adapter, deploys a rewards distributor and an
auto-roller (RLV) for it, rolls the first series on test networks and
finally hands every privilege held by the deployer to the Sense multisig.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .. import addresses as book
from ..abis import (
    AUTO_ROLLER_ABI,
    AUTO_ROLLER_FACTORY_ABI,
    CHAINLINK_ORACLE_ABI,
    DIVIDER_ABI,
    ERC20_ABI,
    PERIPHERY_ABI,
    ROLLER_PERIPHERY_ABI,
    ROLLER_UTILS_ABI,
)
from ..addresses import AddressBook
from ..chain import CallContext, ChainClient, same_address
from ..config import OnboardingInput, Settings, configure_logging, to_wei
from ..network import NetworkProfile
from ..rates import decimal_to_percentage, format_ether, usd_guard_in_eth
from ..registry import ArtifactStore, ContractDeployer, DeploymentStore
from ..verification import EtherscanVerifier

logger = logging.getLogger(__name__)

TARGET_DURATION = 4
BANNER = "-------------------------------------------------------"

GOVERNANCE_CHECKLIST = (
    "1. Onboard adapter via periphery.onboardAdapter (multisig)",
    "2. Set guard on adapter via divider.setGuard (multisig)",
    "3. Roll series (defender or other)",
)


@dataclass(frozen=True)
class ResolvedAddresses:
    """Address-book entries a run needs, all looked up before it starts"""
    multisig: str
    reward_token: str
    aura_vault: str
    eth_usd_feed: Optional[str] = None
    roller_utils: Optional[str] = None
    roller_periphery: Optional[str] = None

    @classmethod
    def resolve(cls, address_book: AddressBook, profile: NetworkProfile) -> "ResolvedAddresses":
        chain_id = profile.chain_id
        return cls(
            multisig=address_book.get(book.SENSE_MULTISIG, chain_id),
            reward_token=address_book.get(book.RETH_TOKEN, chain_id),
            aura_vault=address_book.get(book.AURA_VAULT, chain_id),
            eth_usd_feed=address_book.get(book.ETH_USD_PRICEFEED, chain_id) if profile.is_simulated else None,
            roller_utils=(
                address_book.get(book.ROLLER_UTILS, chain_id) if profile.run_lifecycle_exercise else None
            ),
            roller_periphery=(
                address_book.get(book.ROLLER_PERIPHERY, chain_id) if profile.run_lifecycle_exercise else None
            ),
        )


class AdapterOnboarding:
    def __init__(self, client: ChainClient, deployer: ContractDeployer, verifier: Optional[EtherscanVerifier],
                 address_book: AddressBook, inputs: OnboardingInput, profile: NetworkProfile):
        self.client = client
        self.deployer = deployer
        self.verifier = verifier
        self.address_book = address_book
        self.inputs = inputs
        self.args = inputs.adapter_args
        self.profile = profile
        self.addresses: Optional[ResolvedAddresses] = None

        self.divider = client.contract(inputs.divider, DIVIDER_ABI)
        self.periphery = client.contract(inputs.periphery, PERIPHERY_ABI)
        self.rlv_factory = client.contract(inputs.rlv_factory, AUTO_ROLLER_FACTORY_ABI)

    @property
    def deployer_address(self) -> str:
        return self.client.deployer.address

    def _verify(self, name: str):
        if self.profile.requires_verification and self.verifier is not None:
            self.verifier.verify(name)

    def run(self):
        self.addresses = ResolvedAddresses.resolve(self.address_book, self.profile)
        logger.info(f"Deploying from {self.deployer_address} on chain {self.profile.chain_id}")

        if self.profile.is_simulated:
            logger.info("- Fund multisig to be able to make calls from that address")
            self.client.set_balance(self.addresses.multisig, to_wei(1))

        preview_helper = self.deploy_preview_helper()
        wrapper = self.deploy_wrapper(preview_helper)
        adapter = self.deploy_adapter(wrapper)
        self.onboard_adapter(adapter)
        rlv, rewards_distributor = self.deploy_rlv(adapter)

        if self.profile.run_lifecycle_exercise:
            self.exercise_lifecycle(wrapper, rlv)

        self.transfer_trust(wrapper, adapter, rewards_distributor)

        if self.profile.requires_verification:
            self.print_governance_checklist()
        return adapter, rlv

    def deploy_preview_helper(self):
        name = self.inputs.preview_helper_name
        logger.info(BANNER)
        logger.info("Deploy Composable Preview Helper")
        logger.info(BANNER)
        preview_helper = self.deployer.deploy(name)
        self._verify(name)
        logger.info(f"{name} deployed to {preview_helper.address}")
        return preview_helper

    def deploy_wrapper(self, preview_helper):
        name = self.inputs.wrapper_name
        logger.info(BANNER)
        logger.info("Deploy Aura Vault Wrapper")
        logger.info(BANNER)
        wrapper = self.deployer.deploy(
            name,
            [self.addresses.reward_token, self.addresses.aura_vault, preview_helper.address],
        )
        self._verify(name)
        logger.info(f"{name} deployed to {wrapper.address}")
        return wrapper

    def deploy_adapter(self, wrapper):
        args = self.args
        logger.info(BANNER)
        logger.info(f"Deploy Ownable Aura Adapter for {wrapper.functions.name().call()}")
        logger.info(BANNER)

        adapter_params = (
            self.inputs.oracle, args.stake, args.stake_size, args.minm, args.maxm, args.tilt, args.level, args.mode,
        )
        logger.info(
            f"Adapter Params: oracle={self.inputs.oracle} stake={args.stake} stakeSize={args.stake_size} "
            f"minm={args.minm} maxm={args.maxm} tilt={args.tilt} level={args.level} mode={args.mode}"
        )
        logger.info(f"Adapter ifee: {args.ifee} ({decimal_to_percentage(format_ether(args.ifee))}%)")
        logger.info(f"Reward tokens: {args.reward_tokens}")

        adapter = self.deployer.deploy(
            args.contract_name,
            [
                self.inputs.divider,
                wrapper.address,
                self.inputs.rewards_recipient,
                args.ifee,
                adapter_params,
                args.reward_tokens,
            ],
            contract=args.contract,
        )
        logger.info(f"{args.contract_name} deployed to {adapter.address}")

        logger.info("- Set rlvFactory as trusted address of adapter")
        self.client.transact(
            adapter.functions.setIsTrusted(self.rlv_factory.address, True),
            "trust RLV factory on adapter",
        )

        if self.profile.allow_impersonation:
            self.client.call_as(self.addresses.multisig, lambda ctx: self.set_guard(adapter, ctx))

        logger.info("- Can call scale value")
        scale = self.client.static_call(adapter.functions.scale())
        logger.info(f"  -> scale: {scale}")
        meta = self.divider.functions.adapterMeta(adapter.address).call()
        logger.info(f"  -> adapter guard: {meta[2]}")

        self._verify(args.contract_name)
        return adapter

    def set_guard(self, adapter, ctx: CallContext):
        """Cap the adapter's issuance at the configured USD guard, priced in ETH"""
        logger.info("- Set guard")
        feed = self.client.contract(self.addresses.eth_usd_feed, CHAINLINK_ORACLE_ABI)
        eth_price = self.client.static_call(feed.functions.latestRoundData(), ctx)[1]
        guard_in_eth = usd_guard_in_eth(self.args.guard, eth_price)
        logger.info(f"- Guard set to: {format_ether(guard_in_eth)} ETH")
        self.client.transact(self.divider.functions.setGuard(adapter.address, guard_in_eth), "set guard", ctx)

    def onboard_adapter(self, adapter):
        if not self.profile.onboard_via_periphery:
            return

        def onboard(ctx: Optional[CallContext] = None):
            logger.info(f"- Onboard {adapter.functions.name().call()} adapter via Periphery")
            self.client.transact(
                self.periphery.functions.onboardAdapter(adapter.address, True),
                "onboard adapter",
                ctx,
            )

        if self.profile.allow_impersonation:
            self.client.call_as(self.addresses.multisig, onboard)
        else:
            onboard()

    def deploy_rlv(self, adapter):
        name = self.inputs.rewards_distributor_name
        reward_tokens = self.args.reward_tokens
        logger.info(f"Deploy MultiRewardsDistributor with reward tokens: {reward_tokens}")
        rewards_distributor = self.deployer.deploy(name, [reward_tokens])
        logger.info(f"- Rewards distributor deployed @ {rewards_distributor.address}")
        self._verify(name)

        logger.info(BANNER)
        logger.info(f"Create RLV for {adapter.functions.name().call()}")
        logger.info(BANNER)
        create = self.rlv_factory.functions.create(adapter.address, self.inputs.rewards_recipient, TARGET_DURATION)
        rlv_address = self.client.static_call(create)
        self.client.transact(create, "create RLV")
        rlv = self.client.contract(rlv_address, AUTO_ROLLER_ABI)
        logger.info(f"- RLV {rlv.functions.name().call()} deployed @ {rlv_address}")

        return rlv, rewards_distributor

    def exercise_lifecycle(self, wrapper, rlv):
        """Wrap target both ways, roll the first series, deposit and mint once"""
        client = self.client
        deployer = self.deployer_address
        stake = client.contract(self.args.stake, ERC20_ABI)
        reward_token = client.contract(self.addresses.reward_token, ERC20_ABI)
        ten = to_wei(10)
        one = to_wei(1)

        client.approve(wrapper, rlv.address, to_wei(2))
        client.approve(stake, rlv.address, self.args.stake_size)

        client.generate_tokens(stake.address, deployer, self.args.stake_size)
        bpt_address = wrapper.functions.pool().call()
        client.generate_tokens(bpt_address, deployer, ten)
        client.generate_tokens(reward_token.address, deployer, ten)

        bpt = client.contract(bpt_address, ERC20_ABI)
        client.approve(bpt, wrapper.address)
        client.transact(wrapper.functions.depositFromBPT(ten, deployer), "wrap BPT into target")

        client.approve(reward_token, wrapper.address)
        client.transact(wrapper.functions.deposit(ten, deployer), "wrap rETH into target")

        roller_utils = client.contract(self.addresses.roller_utils, ROLLER_UTILS_ABI)
        maturity = roller_utils.functions.getFutureMaturity(TARGET_DURATION).call()
        first = datetime.fromtimestamp(maturity, tz=timezone.utc).strftime('%d/%m/%Y')
        logger.info(f"- First series will be sponsored with maturity {first} ({maturity})")

        client.transact(rlv.functions.roll(), "roll first series")
        logger.info("- First series sucessfully rolled!")

        client.transact(rlv.functions.deposit(one, deployer), "deposit into RLV")
        logger.info("- 1 target sucessfully deposited!")

        roller_periphery = client.contract(self.addresses.roller_periphery, ROLLER_PERIPHERY_ABI)
        client.generate_tokens(reward_token.address, deployer, ten)
        client.approve(reward_token, roller_periphery.address)
        mint = roller_periphery.functions.mintFromUnderlying(rlv.address, one, deployer, ten)
        underlying_in = client.static_call(mint)
        client.transact(mint, "mint RLV shares from underlying")
        logger.info(f"- Minted 1 share using {format_ether(underlying_in)} underlying")

    def transfer_trust(self, wrapper, adapter, rewards_distributor) -> bool:
        multisig = self.addresses.multisig
        deployer = self.deployer_address
        if same_address(deployer, multisig):
            logger.info("Deployer is the multisig, nothing to hand over")
            return False

        logger.info(BANNER)
        logger.info("Unset deployer as trusted address and set multisig")
        logger.info(BANNER)
        for label, contract in (("Wrapper", wrapper), ("Adapter", adapter)):
            logger.info(f"- Set multisig as trusted address of {label}")
            self.client.transact(contract.functions.setIsTrusted(multisig, True), f"trust multisig on {label}")
            logger.info(f"- Unset deployer as trusted address of {label}")
            self.client.transact(contract.functions.setIsTrusted(deployer, False), f"untrust deployer on {label}")

        logger.info("- Transfer ownership of RewardsDistributor from deployer to multisig")
        self.client.transact(
            rewards_distributor.functions.transferOwnership(multisig),
            "transfer RewardsDistributor ownership",
        )
        return True

    def print_governance_checklist(self):
        logger.info(BANNER)
        logger.info("ACTIONS TO BE DONE ON DEFENDER: ")
        for item in GOVERNANCE_CHECKLIST:
            logger.info(item)


def main():
    settings = Settings.from_env()
    configure_logging(settings.log_file)
    try:
        address_book = AddressBook.from_file(settings.address_book)
        client = ChainClient.connect(settings.rpc_url, settings.private_key, settings.tx_timeout)
        profile = NetworkProfile.for_chain(client.chain_id)
        inputs = OnboardingInput.from_file(settings.onboard_config, profile.chain_id)

        store = DeploymentStore(settings.deployments_dir, settings.network or profile.name)
        artifacts = ArtifactStore(settings.artifacts_dir)
        deployer = ContractDeployer(client, store, artifacts)
        verifier = None
        if profile.requires_verification:
            verifier = EtherscanVerifier(client, store, artifacts, settings.etherscan_api_key)

        AdapterOnboarding(client, deployer, verifier, address_book, inputs, profile).run()
    except Exception as e:
        logger.error(f"Adapter onboarding failed: {e}")
        raise


if __name__ == "__main__":
    main()
