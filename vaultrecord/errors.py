"""
Record Error Taxonomy

Every way a record query can fail has its own type.
Callers branch on the type, not on the message:

- LedgerUnavailableError  -> retry later
- ResolutionError         -> the ciphertext could not be fetched
- DecryptionError         -> wrong key or garbage ciphertext
- HashMismatchError       -> decrypted fine, but it is NOT the fingerprinted data
- PermissionDeniedError   -> request access from the owner

"Ledger says no" and "ledger could not be reached" are different answers.
Never collapse one into the other.
"""


class RecordError(Exception):
    """Base exception for record errors."""
    pass


class LedgerUnavailableError(RecordError):
    """Raised when the ledger cannot be reached or answered with garbage."""
    pass


class ResolutionError(RecordError):
    """Raised when a locator could not be resolved to ciphertext bytes."""
    pass


class DecryptionError(RecordError):
    """Raised when the cipher rejects the ciphertext/key pair."""
    pass


class KeyFormatError(DecryptionError):
    """Raised when a key is not a valid 32-byte Curve25519 key."""
    pass


class HashMismatchError(RecordError):
    """
    Raised when decryption succeeded but the plaintext does not
    reproduce the expected fingerprint.

    This is an integrity violation, not a key problem.
    """

    def __init__(self, message: str = "plaintext data hash mismatch"):
        super().__init__(message)


class PermissionDeniedError(RecordError):
    """Raised when the viewer has no granted access to the record."""

    def __init__(self, message: str = "viewer has no permission to view the data"):
        super().__init__(message)


class RecordNotFoundError(RecordError):
    """Raised when the ledger holds no record under a fingerprint."""
    pass


class FingerprintFormatError(RecordError, ValueError):
    """Raised when a fingerprint is not exactly 32 bytes."""
    pass


class IdentityFormatError(RecordError, ValueError):
    """Raised when an identity is not a valid account address."""
    pass
