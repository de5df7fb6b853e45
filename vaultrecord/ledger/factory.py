"""
Gateway Factory

Picks the LedgerGateway implementation from configuration.

Mode is determined by environment variables:
- VAULTRECORD_LEDGER_DRIVER: Explicit driver selection (memory, web3)
- Contract addresses set: auto-selects web3
- Neither set: in-memory (development)
"""

from typing import Optional

from ..config import LedgerConfig, LedgerDriver, get_ledger_driver
from ..observability import get_logger
from .gateway import InMemoryLedgerGateway, LedgerGateway

logger = get_logger(__name__)


def create_gateway(config: Optional[LedgerConfig] = None) -> LedgerGateway:
    """
    Create the appropriate LedgerGateway based on configuration.

    Returns:
        InMemoryLedgerGateway for development/testing
        ContractLedgerGateway when contracts are configured
    """
    config = config or LedgerConfig.from_env()
    driver = get_ledger_driver(config)

    if driver == LedgerDriver.MEMORY:
        logger.info("Using in-memory ledger gateway (no chain)")
        return InMemoryLedgerGateway()

    from .contract import ContractLedgerGateway
    return ContractLedgerGateway.from_config(config)
