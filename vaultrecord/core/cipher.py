"""
Asymmetric Cipher

Uses Curve25519 sealed boxes (X25519 + XSalsa20-Poly1305) to encrypt
record payloads for a single recipient.

The owner encrypts with the recipient's public key.
Only the matching private key can open the box.
A box opened with the wrong key fails loudly - it never yields garbage.
"""

import base64
import binascii
from typing import Tuple, Union

from nacl.exceptions import CryptoError
from nacl.public import PrivateKey, PublicKey, SealedBox

from ..errors import DecryptionError, KeyFormatError

KeyLike = Union[bytes, str]


class Cipher:
    """
    Sealed-box encryption for record payloads.

    Keys travel as base64 strings (like every other key in the system)
    but raw 32-byte values are accepted too.
    """

    KEY_SIZE = 32

    @classmethod
    def _key_bytes(cls, key: KeyLike) -> bytes:
        if isinstance(key, str):
            try:
                raw = base64.b64decode(key, validate=True)
            except (binascii.Error, ValueError):
                raise KeyFormatError("Key is not valid base64") from None
        else:
            raw = bytes(key)

        if len(raw) != cls.KEY_SIZE:
            raise KeyFormatError(
                f"Key must be {cls.KEY_SIZE} bytes, got {len(raw)}"
            )
        return raw

    @staticmethod
    def generate_keypair() -> Tuple[str, str]:
        """
        Generate a new Curve25519 keypair.

        Returns:
            Tuple of (private_key_b64, public_key_b64)
        """
        private_key = PrivateKey.generate()

        private_b64 = base64.b64encode(bytes(private_key)).decode("utf-8")
        public_b64 = base64.b64encode(bytes(private_key.public_key)).decode("utf-8")

        return private_b64, public_b64

    @classmethod
    def public_key_of(cls, private_key: KeyLike) -> str:
        """Derive the base64 public key for a private key."""
        key = PrivateKey(cls._key_bytes(private_key))
        return base64.b64encode(bytes(key.public_key)).decode("utf-8")

    @classmethod
    def encrypt(cls, public_key: KeyLike, plaintext: Union[bytes, str]) -> bytes:
        """
        Encrypt plaintext for the holder of public_key.

        Args:
            public_key: Recipient's public key (base64 or raw bytes)
            plaintext: Data to encrypt (str is encoded as UTF-8)

        Returns:
            Sealed-box ciphertext
        """
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")

        box = SealedBox(PublicKey(cls._key_bytes(public_key)))
        return bytes(box.encrypt(plaintext))

    @classmethod
    def decrypt(cls, private_key: KeyLike, ciphertext: bytes) -> bytes:
        """
        Decrypt a sealed box.

        Args:
            private_key: Recipient's private key (base64 or raw bytes)
            ciphertext: Sealed-box ciphertext

        Returns:
            Plaintext bytes

        Raises:
            KeyFormatError: If the key is malformed
            DecryptionError: If the box was not sealed for this key
                             or the ciphertext is corrupt
        """
        box = SealedBox(PrivateKey(cls._key_bytes(private_key)))

        try:
            return box.decrypt(bytes(ciphertext))
        except (CryptoError, ValueError) as e:
            raise DecryptionError(
                "Decryption failed: ciphertext was not sealed for this key "
                "or is corrupt"
            ) from e
