"""
Chain identifiers and the per-run network profile.

The profile is resolved once when a task starts and every step reads its
flags instead of comparing chain ids on its own.
"""

from dataclasses import dataclass

MAINNET = 1
GOERLI = 5
HARDHAT = 31337

VERIFY_CHAINS = (MAINNET, GOERLI)

NETWORK_NAMES = {
    MAINNET: "mainnet",
    GOERLI: "goerli",
    HARDHAT: "hardhat",
}


@dataclass(frozen=True)
class NetworkProfile:
    chain_id: int
    is_production: bool
    is_simulated: bool
    allow_impersonation: bool
    requires_verification: bool

    @classmethod
    def for_chain(cls, chain_id: int) -> "NetworkProfile":
        chain_id = int(chain_id)
        is_simulated = chain_id == HARDHAT
        return cls(
            chain_id=chain_id,
            is_production=chain_id == MAINNET,
            is_simulated=is_simulated,
            allow_impersonation=is_simulated,
            requires_verification=chain_id in VERIFY_CHAINS,
        )

    @property
    def name(self) -> str:
        return NETWORK_NAMES.get(self.chain_id, f"chain-{self.chain_id}")

    @property
    def onboard_via_periphery(self) -> bool:
        """Periphery onboarding is a governance action done by hand on mainnet"""
        return not self.is_production

    @property
    def run_lifecycle_exercise(self) -> bool:
        return not self.is_production
