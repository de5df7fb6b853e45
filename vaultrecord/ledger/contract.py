"""
Contract-backed Ledger Gateway

Reads record state from the records and permissions contracts over
JSON-RPC using web3.

Only view functions are called. No transaction is ever built or signed
here - granting, attesting, and appending records belong to whoever
owns the accounts, not to the reader.

Contract surface consumed:
    records(bytes32 dataHash)
        -> (address owner, bytes32 metadataHash, uint sigCount,
            uint irisScore, bytes32 dataUri, uint timestamp)
    sigExists(bytes32 dataHash, address provider) -> bool
    permissions(bytes32 dataHash, address viewer)
        -> (bool canAccess, bytes32 dataUri)
"""

from datetime import datetime, timezone
from typing import Any, Optional

import requests
from web3 import Web3
from web3.exceptions import Web3Exception

from ..config import LedgerConfig
from ..core.hasher import Hasher
from ..errors import IdentityFormatError, LedgerUnavailableError
from ..observability import get_logger
from ..schemas import Permission, RecordEntry
from .gateway import ZERO_ADDRESS, FingerprintLike, LedgerGateway, decode_locator

logger = get_logger(__name__)


RECORDS_ABI = [
    {
        "name": "records",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "", "type": "bytes32"}],
        "outputs": [
            {"name": "owner", "type": "address"},
            {"name": "metadataHash", "type": "bytes32"},
            {"name": "sigCount", "type": "uint256"},
            {"name": "irisScore", "type": "uint256"},
            {"name": "dataUri", "type": "bytes32"},
            {"name": "timestamp", "type": "uint256"},
        ],
    },
    {
        "name": "sigExists",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "dataHash", "type": "bytes32"},
            {"name": "provider", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
]

PERMISSIONS_ABI = [
    {
        "name": "permissions",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "", "type": "bytes32"},
            {"name": "", "type": "address"},
        ],
        "outputs": [
            {"name": "canAccess", "type": "bool"},
            {"name": "dataUri", "type": "bytes32"},
        ],
    },
]

# Anything in here means "could not ask", never "the answer is no"
_TRANSPORT_ERRORS = (requests.exceptions.RequestException, Web3Exception, OSError)


class ContractLedgerGateway(LedgerGateway):
    """
    LedgerGateway over deployed contracts.

    Usage:
        gateway = ContractLedgerGateway.from_config(LedgerConfig.from_env())
        gateway.get_attestation(fingerprint, provider_address)
    """

    def __init__(self, records_contract: Any, permissions_contract: Any, w3: Optional[Web3] = None):
        """
        Args:
            records_contract: web3 contract bound to the records ABI
            permissions_contract: web3 contract bound to the permissions ABI
            w3: The Web3 instance (used for reachability probes)
        """
        self._records = records_contract
        self._permissions = permissions_contract
        self._w3 = w3

    @classmethod
    def from_config(cls, config: LedgerConfig) -> "ContractLedgerGateway":
        """Connect to the node and bind both contracts."""
        if not config.has_contracts:
            raise ValueError(
                "Contract gateway requires VAULTRECORD_RECORDS_ADDRESS and "
                "VAULTRECORD_PERMISSIONS_ADDRESS"
            )

        w3 = Web3(Web3.HTTPProvider(
            config.rpc_url,
            request_kwargs={"timeout": config.request_timeout},
        ))
        records = w3.eth.contract(
            address=Web3.to_checksum_address(config.records_address),
            abi=RECORDS_ABI,
        )
        permissions = w3.eth.contract(
            address=Web3.to_checksum_address(config.permissions_address),
            abi=PERMISSIONS_ABI,
        )

        logger.info(
            "Contract gateway configured",
            rpc_url=config.rpc_url,
            records_address=config.records_address,
            permissions_address=config.permissions_address,
        )
        return cls(records, permissions, w3)

    def _call(self, what: str, fn) -> Any:
        """Run a view call, translating transport failures."""
        try:
            return fn.call()
        except _TRANSPORT_ERRORS as e:
            logger.warning("Ledger call failed", call=what, error=str(e))
            raise LedgerUnavailableError(f"Ledger call {what} failed: {e}") from e

    @staticmethod
    def _address(identity: str) -> str:
        try:
            return Web3.to_checksum_address(identity)
        except (TypeError, ValueError):
            raise IdentityFormatError(f"Invalid identity {identity!r}: not an account address") from None

    def get_attestation(self, fingerprint: FingerprintLike, identity: str) -> bool:
        key = Hasher.coerce(fingerprint)
        result = self._call(
            "sigExists",
            self._records.functions.sigExists(key, self._address(identity)),
        )
        return bool(result)

    def get_permission(self, fingerprint: FingerprintLike, identity: str) -> Permission:
        key = Hasher.coerce(fingerprint)
        can_access, data_uri = self._call(
            "permissions",
            self._permissions.functions.permissions(key, self._address(identity)),
        )

        locator = decode_locator(data_uri)
        if not can_access or locator is None:
            return Permission.denied()
        return Permission(can_access=True, data_uri=locator)

    def get_record(self, fingerprint: FingerprintLike) -> Optional[RecordEntry]:
        key = Hasher.coerce(fingerprint)
        owner, metadata_hash, sig_count, iris_score, data_uri, timestamp = self._call(
            "records",
            self._records.functions.records(key),
        )

        # Unset mapping slots read back as the zero address
        if owner is None or owner.lower() == ZERO_ADDRESS:
            return None

        return RecordEntry(
            data_hash=Hasher.to_hex(key),
            owner=owner.lower(),
            metadata_hash=decode_locator(metadata_hash),
            sig_count=int(sig_count),
            iris_score=int(iris_score),
            data_uri=decode_locator(data_uri),
            timestamp=(
                datetime.fromtimestamp(int(timestamp), tz=timezone.utc)
                if timestamp else None
            ),
        )

    def is_available(self) -> bool:
        if self._w3 is None:
            return True
        try:
            return bool(self._w3.is_connected())
        except _TRANSPORT_ERRORS:
            return False
