"""
vaultrecord - Ledger-anchored record verification and permissioned decryption

Given a record's fingerprint, a key, and a way to fetch ciphertext,
produce the original plaintext - but only if the ledger says you may
see it, and only if the plaintext is provably the data that was
fingerprinted.

Usage:
    from vaultrecord import RecordService, IpfsResolver
    from vaultrecord.ledger import create_gateway

    service = RecordService(create_gateway())
    record = service.get_record("0x38d1...")
    plaintext = record.decrypt_permissioned(viewer, private_key, IpfsResolver())
"""

__version__ = "0.1.0"

from .core import AsyncRecord, Cipher, Hasher, Record, RecordService
from .errors import (
    RecordError,
    LedgerUnavailableError,
    ResolutionError,
    DecryptionError,
    KeyFormatError,
    HashMismatchError,
    PermissionDeniedError,
    RecordNotFoundError,
    FingerprintFormatError,
    IdentityFormatError,
)
from .ledger import (
    LedgerGateway,
    InMemoryLedgerGateway,
    ContractLedgerGateway,
    create_gateway,
)
from .resolvers import DirectoryResolver, IpfsResolver
from .schemas import Permission, RecordEntry

__all__ = [
    # Core
    "Record",
    "AsyncRecord",
    "RecordService",
    "Hasher",
    "Cipher",
    # Errors
    "RecordError",
    "LedgerUnavailableError",
    "ResolutionError",
    "DecryptionError",
    "KeyFormatError",
    "HashMismatchError",
    "PermissionDeniedError",
    "RecordNotFoundError",
    "FingerprintFormatError",
    "IdentityFormatError",
    # Ledger
    "LedgerGateway",
    "InMemoryLedgerGateway",
    "ContractLedgerGateway",
    "create_gateway",
    # Resolvers
    "IpfsResolver",
    "DirectoryResolver",
    # Schemas
    "Permission",
    "RecordEntry",
]
