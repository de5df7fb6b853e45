"""
Configuration

Handles ledger and resolver settings from the environment.

Environment Variables:
    VAULTRECORD_RPC_URL: JSON-RPC endpoint of the ledger node
        (default http://localhost:7545)
    VAULTRECORD_RECORDS_ADDRESS: Address of the records contract
    VAULTRECORD_PERMISSIONS_ADDRESS: Address of the permissions contract
    VAULTRECORD_RPC_TIMEOUT: RPC request timeout in seconds (default 10)

    VAULTRECORD_IPFS_API_URL: IPFS HTTP API base (default http://127.0.0.1:5001/api/v0)
    VAULTRECORD_RESOLVER_TIMEOUT: Locator fetch timeout in seconds (default 30)

    VAULTRECORD_LEDGER_DRIVER: Which gateway to use
        - "memory" (default if no contracts configured)
        - "web3" (contract calls over JSON-RPC)
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LedgerDriver(str, Enum):
    """Supported LedgerGateway drivers."""
    MEMORY = "memory"
    WEB3 = "web3"


@dataclass
class LedgerConfig:
    """Ledger connection configuration."""
    rpc_url: str = "http://localhost:7545"
    records_address: Optional[str] = None
    permissions_address: Optional[str] = None
    request_timeout: float = 10.0  # seconds

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - VAULTRECORD_RPC_URL
        - VAULTRECORD_RECORDS_ADDRESS
        - VAULTRECORD_PERMISSIONS_ADDRESS
        - VAULTRECORD_RPC_TIMEOUT
        """
        return cls(
            rpc_url=os.getenv("VAULTRECORD_RPC_URL", "http://localhost:7545"),
            records_address=os.getenv("VAULTRECORD_RECORDS_ADDRESS") or None,
            permissions_address=os.getenv("VAULTRECORD_PERMISSIONS_ADDRESS") or None,
            request_timeout=float(os.getenv("VAULTRECORD_RPC_TIMEOUT", "10")),
        )

    @property
    def has_contracts(self) -> bool:
        """True when both contract addresses are configured."""
        return bool(self.records_address and self.permissions_address)


@dataclass
class ResolverConfig:
    """Locator resolver configuration."""
    ipfs_api_url: str = "http://127.0.0.1:5001/api/v0"
    timeout: float = 30.0  # seconds

    @classmethod
    def from_env(cls) -> "ResolverConfig":
        return cls(
            ipfs_api_url=os.getenv("VAULTRECORD_IPFS_API_URL", "http://127.0.0.1:5001/api/v0"),
            timeout=float(os.getenv("VAULTRECORD_RESOLVER_TIMEOUT", "30")),
        )


def get_ledger_driver(config: Optional[LedgerConfig] = None) -> LedgerDriver:
    """
    Get the LedgerGateway driver to use.

    Checks VAULTRECORD_LEDGER_DRIVER, then falls back to:
    - web3 if both contract addresses are configured
    - memory otherwise

    Returns:
        LedgerDriver enum value
    """
    explicit = os.getenv("VAULTRECORD_LEDGER_DRIVER", "").lower()

    if explicit:
        try:
            return LedgerDriver(explicit)
        except ValueError:
            raise ValueError(
                f"Unknown VAULTRECORD_LEDGER_DRIVER: {explicit}. "
                f"Valid values: memory, web3"
            ) from None

    config = config or LedgerConfig.from_env()
    if config.has_contracts:
        return LedgerDriver.WEB3

    return LedgerDriver.MEMORY
