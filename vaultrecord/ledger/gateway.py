"""
Ledger Gateway Abstraction

This module defines the LedgerGateway interface and the in-memory
implementation used for development and testing. The contract-backed
implementation lives in ledger/contract.py.

The gateway is READ-ONLY. It answers three questions about a record,
keyed by fingerprint:
- Who attested to it?             get_attestation()
- Who may view it, and where?     get_permission()
- What does the ledger store?     get_record()

BOUNDARY CONTRACT:
- The ledger encodes "no locator" as 32 zero bytes. decode_locator()
  turns that into None; nothing past this module ever sees the sentinel.
- A valid-but-unknown (fingerprint, identity) pair is False / denied,
  never an exception.
- A ledger that cannot be reached raises LedgerUnavailableError.
  It is NEVER reported as False.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from threading import Lock
from typing import Optional, Union

from ..core.hasher import Hasher
from ..errors import LedgerUnavailableError
from ..schemas import Permission, RecordEntry

ZERO_LOCATOR = "0x" + "00" * 32
ZERO_ADDRESS = "0x" + "00" * 20

FingerprintLike = Union[bytes, str]


# ============================================================
# LOCATOR CODEC
# ============================================================

def decode_locator(value: Union[bytes, str, None]) -> Optional[str]:
    """
    Decode a locator as stored on the ledger.

    - None, empty, or all-zero -> None
    - 32 raw bytes (bytes32 slot) -> 0x-prefixed lowercase hex
    - other bytes -> UTF-8 text (dynamic string slot)
    - text -> unchanged, exactly as recorded at grant time
    """
    if value is None:
        return None

    if isinstance(value, str):
        if not value:
            return None
        if value[:2] in ("0x", "0X") and not value[2:].strip("0"):
            return None
        return value

    raw = bytes(value)
    if not raw.strip(b"\x00"):
        return None
    if len(raw) == 32:
        return "0x" + raw.hex()
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return "0x" + raw.hex()


def encode_locator(locator: Optional[str]) -> str:
    """
    Encode a locator the way the ledger reports it.

    None becomes the all-zero sentinel; anything else is unchanged.
    """
    if locator is None:
        return ZERO_LOCATOR
    return locator


def normalize_identity(identity: str) -> str:
    """Account addresses compare case-insensitively."""
    return identity.strip().lower()


# ============================================================
# ABSTRACT BASE CLASS
# ============================================================

class LedgerGateway(ABC):
    """
    Abstract base class for ledger reads.

    Implementations must ensure:
    1. No mutation of ledger state from any method here
    2. Unknown pairs answer False / Permission.denied()
    3. Transport failures raise LedgerUnavailableError
    """

    @abstractmethod
    def get_attestation(self, fingerprint: FingerprintLike, identity: str) -> bool:
        """
        Check whether identity attested to the record.

        Returns:
            True iff an attestation by identity is recorded
        """
        pass

    @abstractmethod
    def get_permission(self, fingerprint: FingerprintLike, identity: str) -> Permission:
        """
        Look up identity's access grant for the record.

        Returns:
            Permission (Permission.denied() if no grant exists)
        """
        pass

    @abstractmethod
    def get_record(self, fingerprint: FingerprintLike) -> Optional[RecordEntry]:
        """
        Read the ledger's row for a record.

        Returns:
            RecordEntry, or None if nothing is stored under fingerprint
        """
        pass

    def is_available(self) -> bool:
        """Cheap reachability probe for health checks."""
        return True


# ============================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================

class InMemoryLedgerGateway(LedgerGateway):
    """
    In-memory implementation of LedgerGateway.

    Suitable for:
    - Development
    - Testing (the seeding helpers build fixtures)
    - Demos without a chain

    NOT suitable for:
    - Anything that needs multi-party replication

    Locators are stored the way the ledger reports them (absent ones as
    the zero sentinel) and decoded on the way out.
    """

    def __init__(self):
        self._records: dict[bytes, dict] = {}
        self._attestations: dict[bytes, set[str]] = {}
        self._permissions: dict[tuple[bytes, str], str] = {}
        self._available = True
        self._lock = Lock()

    def _check_available(self) -> None:
        if not self._available:
            raise LedgerUnavailableError("In-memory ledger is marked unavailable")

    def set_available(self, available: bool) -> None:
        """Simulate an outage (for testing only)."""
        self._available = available

    # ================================================================
    # READS
    # ================================================================

    def get_attestation(self, fingerprint: FingerprintLike, identity: str) -> bool:
        self._check_available()
        key = Hasher.coerce(fingerprint)
        with self._lock:
            return normalize_identity(identity) in self._attestations.get(key, set())

    def get_permission(self, fingerprint: FingerprintLike, identity: str) -> Permission:
        self._check_available()
        key = (Hasher.coerce(fingerprint), normalize_identity(identity))
        with self._lock:
            stored = self._permissions.get(key, ZERO_LOCATOR)

        locator = decode_locator(stored)
        if locator is None:
            return Permission.denied()
        return Permission(can_access=True, data_uri=locator)

    def get_record(self, fingerprint: FingerprintLike) -> Optional[RecordEntry]:
        self._check_available()
        key = Hasher.coerce(fingerprint)
        with self._lock:
            row = self._records.get(key)
            if row is None:
                return None
            attesters = self._attestations.get(key, set())
            return RecordEntry(
                data_hash=Hasher.to_hex(key),
                owner=row["owner"],
                metadata_hash=row["metadata_hash"],
                sig_count=len(attesters),
                iris_score=row["iris_score"],
                data_uri=decode_locator(row["data_uri"]),
                timestamp=row["timestamp"],
            )

    def is_available(self) -> bool:
        return self._available

    # ================================================================
    # SEEDING (fixtures and demos only; the record core never writes)
    # ================================================================

    def add_record(
        self,
        fingerprint: FingerprintLike,
        owner: str,
        data_uri: Optional[str],
        metadata_hash: Optional[str] = None,
        provider: Optional[str] = None,
        iris_score: int = 0,
        timestamp: Optional[datetime] = None,
    ) -> RecordEntry:
        """
        Append a record row.

        If provider is given the record is attested by the provider,
        the way a provider-added record is on the real ledger.
        """
        key = Hasher.coerce(fingerprint)
        with self._lock:
            if key in self._records:
                raise ValueError(f"Record {Hasher.to_hex(key)} already exists")
            self._records[key] = {
                "owner": normalize_identity(owner),
                "metadata_hash": metadata_hash,
                "iris_score": iris_score,
                "data_uri": encode_locator(data_uri),
                "timestamp": timestamp or datetime.now(timezone.utc),
            }
            if provider is not None:
                self._attestations.setdefault(key, set()).add(normalize_identity(provider))

        return self.get_record(key)

    def attest(self, fingerprint: FingerprintLike, identity: str) -> None:
        """Record an attestation by identity."""
        key = Hasher.coerce(fingerprint)
        with self._lock:
            self._attestations.setdefault(key, set()).add(normalize_identity(identity))

    def grant_access(self, fingerprint: FingerprintLike, viewer: str, data_uri: str) -> None:
        """Grant viewer access to a copy of the record at data_uri."""
        if not data_uri:
            raise ValueError("A grant requires a data_uri")
        key = (Hasher.coerce(fingerprint), normalize_identity(viewer))
        with self._lock:
            self._permissions[key] = encode_locator(data_uri)

    def revoke_access(self, fingerprint: FingerprintLike, viewer: str) -> None:
        """Remove viewer's grant, if any."""
        key = (Hasher.coerce(fingerprint), normalize_identity(viewer))
        with self._lock:
            self._permissions.pop(key, None)

    def clear(self) -> None:
        """Drop all state (for testing only)."""
        with self._lock:
            self._records.clear()
            self._attestations.clear()
            self._permissions.clear()
