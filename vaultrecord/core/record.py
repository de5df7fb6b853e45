"""
Record - Verification and Permissioned Decryption

A Record is a view over one fingerprint. It owns nothing and caches
nothing it was not handed; every query goes to the ledger.

Decryption is a fixed pipeline:

    locator -> resolve -> decrypt -> recompute fingerprint -> compare

ORDERING IS MANDATORY:
- Permission is checked BEFORE the resolver is touched
- The hash is verified on the PLAINTEXT, never the ciphertext
- Verification is never skipped, even when decryption "succeeds"

The expected fingerprint is the one the Record was constructed with.
It is never re-read from ledger metadata inside the pipeline.

Two flavours with identical semantics:
- Record: plain calls
- AsyncRecord: coroutines; gateway methods and resolvers may be
  sync or async, awaitable results are awaited
"""

import inspect
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union

from ..errors import (
    RecordError,
    RecordNotFoundError,
    ResolutionError,
    PermissionDeniedError,
    HashMismatchError,
)
from ..observability import (
    data_hash_var,
    get_logger,
    get_metrics,
    new_operation_id,
    operation_id_var,
)
from ..schemas import Permission, RecordEntry
from .cipher import Cipher, KeyLike
from .hasher import Hasher

logger = get_logger(__name__)

Resolver = Callable[[str], Union[bytes, Awaitable[bytes]]]


class _RecordView:
    """State and pure checks shared by Record and AsyncRecord."""

    def __init__(
        self,
        fingerprint: Union[bytes, str],
        gateway: Any,
        entry: Optional[RecordEntry] = None,
    ):
        """
        Args:
            fingerprint: Expected fingerprint (raw bytes or 0x hex)
            gateway: LedgerGateway (or any object with the same read methods)
            entry: Ledger row, if already read (see load())
        """
        self._fingerprint = Hasher.coerce(fingerprint)
        self._gateway = gateway
        self._entry = entry

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.data_hash})"

    # ================================================================
    # IDENTITY AND METADATA
    # ================================================================

    @property
    def fingerprint(self) -> bytes:
        """The expected fingerprint (raw bytes)."""
        return self._fingerprint

    @property
    def data_hash(self) -> str:
        """The expected fingerprint as 0x hex."""
        return Hasher.to_hex(self._fingerprint)

    @property
    def entry(self) -> Optional[RecordEntry]:
        return self._entry

    @property
    def owner(self) -> Optional[str]:
        return self._entry.owner if self._entry else None

    @property
    def metadata_hash(self) -> Optional[str]:
        return self._entry.metadata_hash if self._entry else None

    @property
    def sig_count(self) -> Optional[int]:
        return self._entry.sig_count if self._entry else None

    @property
    def iris_score(self) -> Optional[int]:
        return self._entry.iris_score if self._entry else None

    @property
    def data_uri(self) -> Optional[str]:
        return self._entry.data_uri if self._entry else None

    @property
    def timestamp(self) -> Optional[datetime]:
        return self._entry.timestamp if self._entry else None

    # ================================================================
    # LOCAL VERIFICATION
    # ================================================================

    def verify_data(self, candidate: Union[bytes, str]) -> bool:
        """
        Check caller-supplied plaintext against the expected fingerprint.

        No ledger, no resolver, no cipher. Uses the same hasher as the
        decrypt path so the two can never disagree.
        """
        return Hasher.verify(candidate, self._fingerprint)

    def _check_plaintext(self, plaintext: bytes) -> bytes:
        if not Hasher.verify(plaintext, self._fingerprint):
            raise HashMismatchError()
        return plaintext

    # ================================================================
    # PIPELINE PIECES
    # ================================================================

    def _own_locator(self, entry: Optional[RecordEntry]) -> str:
        if entry is None:
            raise RecordNotFoundError(f"No record stored under {self.data_hash}")
        if entry.data_uri is None:
            raise ResolutionError(f"Record {self.data_hash} has no data locator")
        return entry.data_uri

    def _granted_locator(self, viewer: str, permission: Permission) -> str:
        if not permission.can_access:
            raise PermissionDeniedError()
        if permission.data_uri is None:
            raise ResolutionError(
                f"Grant for {viewer} on {self.data_hash} carries no data locator"
            )
        return permission.data_uri

    @staticmethod
    def _call_resolver(resolver: Resolver, locator: str) -> Any:
        try:
            return resolver(locator)
        except RecordError:
            raise
        except Exception as e:
            raise ResolutionError(f"Could not resolve {locator}: {e}") from e

    @staticmethod
    def _ciphertext(locator: str, value: Any) -> bytes:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        raise ResolutionError(
            f"Resolver returned {type(value).__name__} for {locator}, expected bytes"
        )

    def _open(self, private_key: KeyLike, ciphertext: bytes) -> bytes:
        plaintext = Cipher.decrypt(private_key, ciphertext)
        return self._check_plaintext(plaintext)

    @contextmanager
    def _operation(self, name: str, **fields):
        """Scope one decrypt: operation id, logging, and metrics."""
        op_token = None
        if not operation_id_var.get():
            op_token = operation_id_var.set(new_operation_id())
        hash_token = data_hash_var.set(self.data_hash)
        start = time.perf_counter()

        try:
            yield
        except Exception as e:
            elapsed = (time.perf_counter() - start) * 1000
            get_metrics().record_decrypt(elapsed, e)
            logger.warning(
                f"{name} failed",
                operation=name,
                error_kind=type(e).__name__,
                error=str(e),
                **fields,
            )
            raise
        else:
            elapsed = (time.perf_counter() - start) * 1000
            get_metrics().record_decrypt(elapsed)
            logger.info(
                f"{name} succeeded",
                operation=name,
                duration_ms=round(elapsed, 2),
                **fields,
            )
        finally:
            data_hash_var.reset(hash_token)
            if op_token is not None:
                operation_id_var.reset(op_token)


class Record(_RecordView):
    """
    Synchronous record view.

    Usage:
        record = Record.load(gateway, data_hash)
        if record.get_attestation(provider):
            plaintext = record.decrypt_permissioned(me, my_private_key, resolver)
    """

    @classmethod
    def load(cls, gateway: Any, fingerprint: Union[bytes, str]) -> "Record":
        """
        Read the ledger row and build a Record around it.

        Raises:
            RecordNotFoundError: If the ledger has no record under fingerprint
        """
        key = Hasher.coerce(fingerprint)
        entry = gateway.get_record(key)
        if entry is None:
            raise RecordNotFoundError(f"No record stored under {Hasher.to_hex(key)}")
        return cls(key, gateway, entry)

    def get_attestation(self, identity: str) -> bool:
        """True iff identity has attested to this record."""
        return self._gateway.get_attestation(self._fingerprint, identity)

    def get_permission(self, identity: str) -> Permission:
        """identity's access grant for this record."""
        return self._gateway.get_permission(self._fingerprint, identity)

    def _resolve(self, resolver: Resolver, locator: str) -> bytes:
        value = self._call_resolver(resolver, locator)
        if inspect.isawaitable(value):
            if inspect.iscoroutine(value):
                value.close()
            raise ResolutionError(
                "Resolver returned an awaitable; use AsyncRecord for async resolvers"
            )
        return self._ciphertext(locator, value)

    def decrypt_data(self, private_key: KeyLike, resolver: Resolver) -> bytes:
        """
        Fetch, decrypt, and verify the owner's copy of the record.

        Args:
            private_key: Key the owner's copy was sealed for
            resolver: Maps a locator to ciphertext bytes

        Returns:
            Plaintext whose fingerprint equals the expected fingerprint

        Raises:
            RecordNotFoundError, ResolutionError, DecryptionError,
            HashMismatchError, LedgerUnavailableError
        """
        with self._operation("decrypt_data"):
            entry = self._entry or self._gateway.get_record(self._fingerprint)
            locator = self._own_locator(entry)
            ciphertext = self._resolve(resolver, locator)
            return self._open(private_key, ciphertext)

    def decrypt_permissioned(
        self,
        viewer: str,
        private_key: KeyLike,
        resolver: Resolver,
    ) -> bytes:
        """
        Check viewer's grant, then fetch, decrypt, and verify viewer's copy.

        The resolver is NEVER invoked for a viewer without access.

        Raises:
            PermissionDeniedError, ResolutionError, DecryptionError,
            HashMismatchError, LedgerUnavailableError
        """
        with self._operation("decrypt_permissioned", viewer=viewer):
            permission = self.get_permission(viewer)
            locator = self._granted_locator(viewer, permission)
            ciphertext = self._resolve(resolver, locator)
            return self._open(private_key, ciphertext)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class AsyncRecord(_RecordView):
    """
    Asynchronous record view.

    Ledger reads and resolver calls are the suspension points.
    Cancelling the task abandons the in-flight call; nothing needs
    unwinding because nothing was written.

    Usage:
        record = await AsyncRecord.load(gateway, data_hash)
        plaintext = await record.decrypt_permissioned(me, key, fetch)
    """

    @classmethod
    async def load(cls, gateway: Any, fingerprint: Union[bytes, str]) -> "AsyncRecord":
        key = Hasher.coerce(fingerprint)
        entry = await _maybe_await(gateway.get_record(key))
        if entry is None:
            raise RecordNotFoundError(f"No record stored under {Hasher.to_hex(key)}")
        return cls(key, gateway, entry)

    async def get_attestation(self, identity: str) -> bool:
        return await _maybe_await(self._gateway.get_attestation(self._fingerprint, identity))

    async def get_permission(self, identity: str) -> Permission:
        return await _maybe_await(self._gateway.get_permission(self._fingerprint, identity))

    async def _resolve(self, resolver: Resolver, locator: str) -> bytes:
        value = self._call_resolver(resolver, locator)
        if inspect.isawaitable(value):
            try:
                value = await value
            except RecordError:
                raise
            except Exception as e:
                raise ResolutionError(f"Could not resolve {locator}: {e}") from e
        return self._ciphertext(locator, value)

    async def decrypt_data(self, private_key: KeyLike, resolver: Resolver) -> bytes:
        """Async counterpart of Record.decrypt_data."""
        with self._operation("decrypt_data"):
            entry = self._entry
            if entry is None:
                entry = await _maybe_await(self._gateway.get_record(self._fingerprint))
            locator = self._own_locator(entry)
            ciphertext = await self._resolve(resolver, locator)
            return self._open(private_key, ciphertext)

    async def decrypt_permissioned(
        self,
        viewer: str,
        private_key: KeyLike,
        resolver: Resolver,
    ) -> bytes:
        """Async counterpart of Record.decrypt_permissioned."""
        with self._operation("decrypt_permissioned", viewer=viewer):
            permission = await self.get_permission(viewer)
            locator = self._granted_locator(viewer, permission)
            ciphertext = await self._resolve(resolver, locator)
            return self._open(private_key, ciphertext)
