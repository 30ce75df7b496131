"""
Errors raised by the deployment tasks.

Every error is fatal to the run that raised it. Transactions that were
already confirmed stay on-chain, so nothing here is retried.
"""


class DeploymentError(Exception):
    """Base class for orchestration failures"""


class PreconditionError(DeploymentError):
    """Required configuration or address-book entry is missing"""


class TransactionReverted(DeploymentError):
    """A submitted transaction was mined with a failed status"""

    def __init__(self, description: str, tx_hash: str):
        super().__init__(f"{description} reverted (tx {tx_hash})")
        self.description = description
        self.tx_hash = tx_hash


class InvariantViolation(DeploymentError):
    """A post-run check on chain state failed"""


class VerificationError(DeploymentError):
    """Etherscan rejected or could not process a verification request"""
