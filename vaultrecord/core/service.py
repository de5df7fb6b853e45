"""
Record Service

Entry point for host applications that already hold a ledger gateway.
Builds Record views and exposes the hashing/cipher utilities that
producers of record data need (fingerprint before upload, seal for a
recipient).
"""

from typing import Any, Tuple, Union

from .cipher import Cipher, KeyLike
from .hasher import Hasher
from .record import AsyncRecord, Record


class RecordService:
    """
    Facade over a LedgerGateway.

    Usage:
        service = RecordService(gateway)
        record = service.get_record(data_hash)
        record.decrypt_data(private_key, resolver)
    """

    def __init__(self, gateway: Any):
        self._gateway = gateway

    @property
    def gateway(self) -> Any:
        return self._gateway

    def get_record(self, fingerprint: Union[bytes, str]) -> Record:
        """Load the ledger row for fingerprint into a Record."""
        return Record.load(self._gateway, fingerprint)

    async def aget_record(self, fingerprint: Union[bytes, str]) -> AsyncRecord:
        """Load the ledger row for fingerprint into an AsyncRecord."""
        return await AsyncRecord.load(self._gateway, fingerprint)

    # ================================================================
    # UTILITIES
    # ================================================================

    @staticmethod
    def hash(data: Union[bytes, str]) -> str:
        """Fingerprint data, as 0x hex."""
        return Hasher.hash_hex(data)

    @staticmethod
    def encrypt(public_key: KeyLike, plaintext: Union[bytes, str]) -> bytes:
        return Cipher.encrypt(public_key, plaintext)

    @staticmethod
    def decrypt(private_key: KeyLike, ciphertext: bytes) -> bytes:
        return Cipher.decrypt(private_key, ciphertext)

    @staticmethod
    def generate_keypair() -> Tuple[str, str]:
        return Cipher.generate_keypair()
