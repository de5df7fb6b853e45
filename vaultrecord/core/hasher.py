"""
Content Fingerprinting Service

A fingerprint is the Keccak-256 digest of the plaintext bytes.
Same bytes -> same fingerprint. Always. Forever.

This is SACRED GROUND.

The ledger keys every record by this digest. If the algorithm here
ever drifts from the one used when the record was written, every
decrypt-and-verify call fails with a hash mismatch.

RULES:
1. Input is raw bytes; str is encoded as UTF-8 first
2. Digest: Keccak-256 (the EVM hash, NOT NIST SHA3-256)
3. Output: 32 raw bytes
4. Hex rendering: lowercase, "0x" prefix
5. Comparison: byte-wise, constant time
"""

import hmac
from typing import Union

from web3 import Web3

from ..errors import FingerprintFormatError


class Hasher:
    """
    Content fingerprinting.

    IMMUTABLE CONTRACT:
    - Same plaintext -> same fingerprint
    - Same algorithm for record identity and for post-decryption checks
    """

    DIGEST_SIZE = 32

    @staticmethod
    def _to_bytes(data: Union[bytes, bytearray, memoryview, str]) -> bytes:
        if isinstance(data, str):
            return data.encode("utf-8")
        if isinstance(data, (bytes, bytearray, memoryview)):
            return bytes(data)
        raise TypeError(
            f"Cannot fingerprint {type(data).__name__}. "
            "Only bytes or str can be fingerprinted."
        )

    @classmethod
    def fingerprint(cls, data: Union[bytes, str]) -> bytes:
        """
        Compute the fingerprint of plaintext data.

        Args:
            data: Plaintext bytes (or text, encoded as UTF-8)

        Returns:
            32-byte Keccak-256 digest
        """
        return bytes(Web3.keccak(cls._to_bytes(data)))

    @classmethod
    def hash_hex(cls, data: Union[bytes, str]) -> str:
        """Fingerprint rendered as 0x-prefixed lowercase hex."""
        return cls.to_hex(cls.fingerprint(data))

    @classmethod
    def to_hex(cls, fingerprint: bytes) -> str:
        """Render a fingerprint as 0x-prefixed lowercase hex."""
        return "0x" + cls.coerce(fingerprint).hex()

    @classmethod
    def from_hex(cls, text: str) -> bytes:
        """
        Parse a hex fingerprint.

        Accepts an optional 0x prefix and any letter case.

        Raises:
            FingerprintFormatError: If text is not 32 bytes of hex
        """
        body = text[2:] if text[:2] in ("0x", "0X") else text
        try:
            raw = bytes.fromhex(body)
        except ValueError:
            raise FingerprintFormatError(
                f"Invalid fingerprint {text!r}: not hexadecimal"
            ) from None
        if len(raw) != cls.DIGEST_SIZE:
            raise FingerprintFormatError(
                f"Invalid fingerprint {text!r}: expected {cls.DIGEST_SIZE} bytes, "
                f"got {len(raw)}"
            )
        return raw

    @classmethod
    def coerce(cls, fingerprint: Union[bytes, str]) -> bytes:
        """Accept a fingerprint as raw bytes or hex text; return raw bytes."""
        if isinstance(fingerprint, str):
            return cls.from_hex(fingerprint)
        if not isinstance(fingerprint, (bytes, bytearray, memoryview)):
            raise TypeError(
                f"Fingerprint must be bytes or hex text, not {type(fingerprint).__name__}"
            )
        raw = bytes(fingerprint)
        if len(raw) != cls.DIGEST_SIZE:
            raise FingerprintFormatError(
                f"Invalid fingerprint: expected {cls.DIGEST_SIZE} bytes, got {len(raw)}"
            )
        return raw

    @classmethod
    def equals(cls, a: Union[bytes, str], b: Union[bytes, str]) -> bool:
        """
        Compare two fingerprints byte-wise in constant time.

        Malformed input compares unequal rather than raising.
        """
        try:
            left = cls.coerce(a)
            right = cls.coerce(b)
        except (FingerprintFormatError, TypeError):
            return False
        return hmac.compare_digest(left, right)

    @classmethod
    def verify(cls, data: Union[bytes, str], expected: Union[bytes, str]) -> bool:
        """
        Verify that data hashes to the expected fingerprint.

        Recomputes from the data; never trusts a stored digest.
        """
        return cls.equals(cls.fingerprint(data), expected)
