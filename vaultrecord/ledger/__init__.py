"""
Ledger Layer

Provides:
- LedgerGateway abstraction (read-only)
- InMemoryLedgerGateway for development and tests
- ContractLedgerGateway over web3
- Locator sentinel codec
"""

from .gateway import (
    LedgerGateway,
    InMemoryLedgerGateway,
    ZERO_LOCATOR,
    ZERO_ADDRESS,
    decode_locator,
    encode_locator,
)
from .contract import ContractLedgerGateway
from .factory import create_gateway

__all__ = [
    "LedgerGateway",
    "InMemoryLedgerGateway",
    "ContractLedgerGateway",
    "ZERO_LOCATOR",
    "ZERO_ADDRESS",
    "decode_locator",
    "encode_locator",
    "create_gateway",
]
