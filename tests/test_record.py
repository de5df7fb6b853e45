"""
Tests for Record verification and permissioned decryption

Walks the record lifecycle from the reader's side:
1. A provider appends a record for an owner and attests to it
2. The owner grants a second account access to its own copy
3. Readers check attestations and permissions
4. Readers decrypt, and the plaintext is checked against the fingerprint
"""

import asyncio

import pytest

from vaultrecord.core import AsyncRecord, Cipher, Hasher, Record, RecordService
from vaultrecord.errors import (
    DecryptionError,
    HashMismatchError,
    LedgerUnavailableError,
    PermissionDeniedError,
    RecordNotFoundError,
    ResolutionError,
)
from vaultrecord.ledger import ZERO_LOCATOR, InMemoryLedgerGateway
from vaultrecord.observability import get_metrics
from vaultrecord.schemas import Permission

TEST_DATA = "foobar"
TEST_DATA_HASH = "0x38d18acb67d25c8bb9942764b62f18e17054f66a817bd4295423adf9ed98873e"
TEST_DATA_URI = "0x59742369c54039d5611d84452aa6c31b72da336b76ed4029b12c3dc5479836ba"
TEST_SHARED_URI = "0xde1f76340a34698d41d362010bbc3c05c26f25d659904ef08ef7bd5eac0dbea4"
TEST_METADATA = Hasher.hash_hex("Blood_Pressure")

ADMIN = "0x627306090abab3a6e1400e9345bc60c78a8bef57"
USER1 = "0xf17f52151ebef6c7334fad080c5704d77216b732"
USER2 = "0xc5fdf4076b8f3a5357c5e395ab970b5b54098fef"
USER3 = "0x821aea9a577a9b44299b9c15c88cf3087f3b5544"
PROVIDER = "0x0d1d4e623d10f9fba5db95830f7d3839406c6af2"


class CountingResolver:
    """Resolver double that records every locator it is asked for."""

    def __init__(self, payload: bytes):
        self.payload = payload
        self.calls: list[str] = []

    def __call__(self, locator: str) -> bytes:
        self.calls.append(locator)
        return self.payload


@pytest.fixture
def keys():
    return Cipher.generate_keypair()


@pytest.fixture
def gateway():
    """Provider-added record for USER1, shared with USER2."""
    gateway = InMemoryLedgerGateway()
    gateway.add_record(
        TEST_DATA_HASH,
        owner=USER1,
        data_uri=TEST_DATA_URI,
        metadata_hash=TEST_METADATA,
        provider=PROVIDER,
        iris_score=1,
    )
    gateway.grant_access(TEST_DATA_HASH, USER2, TEST_SHARED_URI)
    return gateway


@pytest.fixture
def record(gateway):
    return Record.load(gateway, TEST_DATA_HASH)


class TestRecordLoad:
    """Building a Record view from the ledger row."""

    def test_load_exposes_ledger_row(self, record):
        assert record.data_hash == TEST_DATA_HASH
        assert record.owner == USER1
        assert record.metadata_hash == TEST_METADATA
        assert record.sig_count == 1
        assert record.iris_score == 1
        assert record.data_uri == TEST_DATA_URI
        assert record.timestamp is not None

    def test_load_unknown_record_raises(self, gateway):
        with pytest.raises(RecordNotFoundError):
            Record.load(gateway, Hasher.fingerprint("never stored"))

    def test_fingerprint_accepted_as_bytes_or_hex(self, gateway):
        from_hex = Record(TEST_DATA_HASH, gateway)
        from_bytes = Record(Hasher.from_hex(TEST_DATA_HASH), gateway)
        assert from_hex.fingerprint == from_bytes.fingerprint

    def test_service_get_record(self, gateway):
        service = RecordService(gateway)
        record = service.get_record(TEST_DATA_HASH)
        assert isinstance(record, Record)
        assert record.owner == USER1


class TestAttestation:
    """get_attestation is a straight ledger read."""

    def test_true_if_attested_by_specified_user(self, record):
        assert record.get_attestation(PROVIDER) is True

    def test_false_if_not_attested_by_specified_user(self, record):
        assert record.get_attestation(USER2) is False

    def test_identity_case_does_not_matter(self, record):
        assert record.get_attestation(PROVIDER.upper().replace("0X", "0x")) is True

    def test_repeated_reads_are_identical(self, record):
        answers = {record.get_attestation(PROVIDER) for _ in range(5)}
        assert answers == {True}

    def test_unreachable_ledger_is_not_false(self, gateway, record):
        gateway.set_available(False)
        with pytest.raises(LedgerUnavailableError):
            record.get_attestation(PROVIDER)


class TestPermission:
    """get_permission decodes the ledger's zero sentinel to None."""

    def test_granted_viewer(self, record):
        perm = record.get_permission(USER2)
        assert perm.can_access is True
        assert perm.data_uri == TEST_SHARED_URI

    def test_viewer_without_grant(self, record):
        perm = record.get_permission(USER3)
        assert perm.can_access is False
        assert perm.data_uri is None
        assert perm == Permission.denied()

    def test_revoked_grant_reads_as_denied(self, gateway, record):
        gateway.revoke_access(TEST_DATA_HASH, USER2)
        assert record.get_permission(USER2) == Permission.denied()

    def test_sentinel_never_escapes(self, gateway, record):
        # A grant slot holding the zero locator is no grant at all
        gateway.grant_access(TEST_DATA_HASH, USER3, ZERO_LOCATOR)
        assert record.get_permission(USER3).data_uri is None

    def test_unreachable_ledger_is_not_denied(self, gateway, record):
        gateway.set_available(False)
        with pytest.raises(LedgerUnavailableError):
            record.get_permission(USER2)


class TestDecryptData:
    """Owner copy: resolve -> decrypt -> verify."""

    def test_decrypts_if_hash_is_correct(self, record, keys):
        private_key, public_key = keys

        def resolver(data_uri):
            assert data_uri == TEST_DATA_URI
            return Cipher.encrypt(public_key, TEST_DATA)

        assert record.decrypt_data(private_key, resolver) == TEST_DATA.encode()

    def test_hash_mismatch_is_not_decryption_failure(self, record, keys):
        private_key, public_key = keys
        resolver = CountingResolver(Cipher.encrypt(public_key, "fox"))

        with pytest.raises(HashMismatchError) as exc_info:
            record.decrypt_data(private_key, resolver)

        assert str(exc_info.value) == "plaintext data hash mismatch"
        assert not isinstance(exc_info.value, DecryptionError)

    def test_wrong_key_is_decryption_failure(self, record, keys):
        _, public_key = keys
        other_private, _ = Cipher.generate_keypair()
        resolver = CountingResolver(Cipher.encrypt(public_key, TEST_DATA))

        with pytest.raises(DecryptionError):
            record.decrypt_data(other_private, resolver)

    def test_resolver_failure_is_resolution_error(self, record, keys):
        private_key, _ = keys
        boom = IOError("gateway timeout")

        def resolver(data_uri):
            raise boom

        with pytest.raises(ResolutionError) as exc_info:
            record.decrypt_data(private_key, resolver)
        assert exc_info.value.__cause__ is boom

    def test_resolver_must_return_bytes(self, record, keys):
        private_key, _ = keys
        with pytest.raises(ResolutionError, match="expected bytes"):
            record.decrypt_data(private_key, lambda uri: 12345)

    def test_sync_record_rejects_async_resolver(self, record, keys):
        private_key, _ = keys

        async def resolver(data_uri):
            return b""

        with pytest.raises(ResolutionError, match="AsyncRecord"):
            record.decrypt_data(private_key, resolver)

    def test_reads_row_live_when_not_loaded(self, gateway, keys):
        private_key, public_key = keys
        record = Record(TEST_DATA_HASH, gateway)
        resolver = CountingResolver(Cipher.encrypt(public_key, TEST_DATA))

        assert record.decrypt_data(private_key, resolver) == TEST_DATA.encode()
        assert resolver.calls == [TEST_DATA_URI]

    def test_unloaded_view_outage_never_reaches_resolver(self, gateway, keys):
        """An unloaded view reads its row live; an outage stops it there."""
        private_key, public_key = keys
        record = Record(TEST_DATA_HASH, gateway)
        resolver = CountingResolver(Cipher.encrypt(public_key, TEST_DATA))
        gateway.set_available(False)

        with pytest.raises(LedgerUnavailableError):
            record.decrypt_data(private_key, resolver)
        assert resolver.calls == []

    def test_unknown_record_never_resolves(self, gateway, keys):
        private_key, public_key = keys
        record = Record(Hasher.fingerprint("never stored"), gateway)
        resolver = CountingResolver(Cipher.encrypt(public_key, TEST_DATA))

        with pytest.raises(RecordNotFoundError):
            record.decrypt_data(private_key, resolver)
        assert resolver.calls == []

    def test_record_without_locator_never_resolves(self, gateway, keys):
        private_key, public_key = keys
        fingerprint = Hasher.fingerprint("no payload")
        gateway.add_record(fingerprint, owner=USER1, data_uri=None)
        record = Record.load(gateway, fingerprint)
        resolver = CountingResolver(Cipher.encrypt(public_key, "no payload"))

        with pytest.raises(ResolutionError):
            record.decrypt_data(private_key, resolver)
        assert resolver.calls == []

    def test_verifies_against_expected_not_stored_fingerprint(self, gateway, keys):
        """A view built for another fingerprint rejects this record's bytes."""
        private_key, public_key = keys
        entry = gateway.get_record(TEST_DATA_HASH)
        impostor = Record(Hasher.fingerprint("something else"), gateway, entry)
        resolver = CountingResolver(Cipher.encrypt(public_key, TEST_DATA))

        with pytest.raises(HashMismatchError):
            impostor.decrypt_data(private_key, resolver)


class TestDecryptPermissioned:
    """Viewer copy: permission -> resolve -> decrypt -> verify."""

    def test_decrypts_if_permitted_and_hash_is_correct(self, record, keys):
        private_key, public_key = keys

        def resolver(data_uri):
            assert data_uri == TEST_SHARED_URI
            return Cipher.encrypt(public_key, TEST_DATA)

        plain = record.decrypt_permissioned(USER2, private_key, resolver)
        assert plain == TEST_DATA.encode()

    def test_denied_viewer_never_reaches_resolver(self, record, keys):
        private_key, public_key = keys
        resolver = CountingResolver(Cipher.encrypt(public_key, TEST_DATA))

        with pytest.raises(PermissionDeniedError) as exc_info:
            record.decrypt_permissioned(USER3, private_key, resolver)

        assert str(exc_info.value) == "viewer has no permission to view the data"
        assert len(resolver.calls) == 0

    def test_denied_viewer_never_reaches_cipher(self, record, keys, monkeypatch):
        private_key, public_key = keys
        calls = []

        def spy(key, ciphertext):
            calls.append(ciphertext)
            return TEST_DATA.encode()

        monkeypatch.setattr(Cipher, "decrypt", spy)

        with pytest.raises(PermissionDeniedError):
            record.decrypt_permissioned(USER3, private_key, CountingResolver(b"x"))
        assert calls == []

    def test_hash_mismatch(self, record, keys):
        private_key, public_key = keys
        resolver = CountingResolver(Cipher.encrypt(public_key, "fox"))

        with pytest.raises(HashMismatchError, match="plaintext data hash mismatch"):
            record.decrypt_permissioned(USER2, private_key, resolver)
        assert resolver.calls == [TEST_SHARED_URI]

    def test_steps_run_in_order(self, gateway, keys, monkeypatch):
        private_key, public_key = keys
        steps = []

        class RecordingGateway:
            def get_permission(self, fingerprint, identity):
                steps.append("permission")
                return gateway.get_permission(fingerprint, identity)

        def resolver(data_uri):
            steps.append("resolve")
            return Cipher.encrypt(public_key, TEST_DATA)

        real_decrypt = Cipher.decrypt

        def decrypt(key, ciphertext):
            steps.append("decrypt")
            return real_decrypt(key, ciphertext)

        real_verify = Hasher.verify

        def verify(data, expected):
            steps.append("verify")
            return real_verify(data, expected)

        monkeypatch.setattr(Cipher, "decrypt", decrypt)
        monkeypatch.setattr(Hasher, "verify", verify)

        record = Record(TEST_DATA_HASH, RecordingGateway())
        record.decrypt_permissioned(USER2, private_key, resolver)

        assert steps == ["permission", "resolve", "decrypt", "verify"]

    def test_unreachable_ledger_never_reaches_resolver(self, gateway, record, keys):
        private_key, public_key = keys
        resolver = CountingResolver(Cipher.encrypt(public_key, TEST_DATA))
        gateway.set_available(False)

        with pytest.raises(LedgerUnavailableError):
            record.decrypt_permissioned(USER2, private_key, resolver)
        assert resolver.calls == []

    def test_owner_copy_and_viewer_copy_are_independent(self, record, keys):
        """The owner's locator is not a grant."""
        private_key, public_key = keys
        resolver = CountingResolver(Cipher.encrypt(public_key, TEST_DATA))

        with pytest.raises(PermissionDeniedError):
            record.decrypt_permissioned(USER1, private_key, resolver)
        assert resolver.calls == []


class TestVerifyData:
    """Local fingerprint check, no ledger involved."""

    def test_true_if_data_hash_matches(self, record):
        assert record.verify_data("foobar") is True

    def test_false_if_data_hash_does_not_match(self, record):
        assert record.verify_data("fox") is False

    def test_bytes_and_text_agree(self, record):
        assert record.verify_data(b"foobar") is record.verify_data("foobar")

    def test_needs_no_ledger(self, gateway, record):
        gateway.set_available(False)
        assert record.verify_data("foobar") is True

    def test_consistent_with_decrypt_path(self, record, keys):
        private_key, public_key = keys
        for candidate in ("foobar", "fox", ""):
            resolver = CountingResolver(Cipher.encrypt(public_key, candidate))
            if record.verify_data(candidate):
                assert record.decrypt_data(private_key, resolver) == candidate.encode()
            else:
                with pytest.raises(HashMismatchError):
                    record.decrypt_data(private_key, resolver)


class TestMetrics:
    """Decrypt outcomes are counted per failure kind."""

    @pytest.fixture(autouse=True)
    def fresh_metrics(self):
        get_metrics().reset()
        yield
        get_metrics().reset()

    def test_outcomes_counted(self, record, keys):
        private_key, public_key = keys
        good = CountingResolver(Cipher.encrypt(public_key, TEST_DATA))
        bad = CountingResolver(Cipher.encrypt(public_key, "fox"))

        record.decrypt_data(private_key, good)
        with pytest.raises(HashMismatchError):
            record.decrypt_data(private_key, bad)
        with pytest.raises(PermissionDeniedError):
            record.decrypt_permissioned(USER3, private_key, good)

        summary = get_metrics().get_summary()
        assert summary["decrypt_attempts"] == 3
        assert summary["decrypt_successes"] == 1
        assert summary["permission_denials"] == 1
        assert summary["failures_by_kind"] == {
            "HashMismatchError": 1,
            "PermissionDeniedError": 1,
        }


class AsyncGateway:
    """Coroutine-based gateway wrapping the in-memory one."""

    def __init__(self, inner):
        self._inner = inner

    async def get_attestation(self, fingerprint, identity):
        await asyncio.sleep(0)
        return self._inner.get_attestation(fingerprint, identity)

    async def get_permission(self, fingerprint, identity):
        await asyncio.sleep(0)
        return self._inner.get_permission(fingerprint, identity)

    async def get_record(self, fingerprint):
        await asyncio.sleep(0)
        return self._inner.get_record(fingerprint)


class TestAsyncRecord:
    """Same semantics with async gateway and resolvers."""

    @pytest.fixture
    def async_gateway(self, gateway):
        return AsyncGateway(gateway)

    def test_queries(self, async_gateway):
        async def scenario():
            record = await AsyncRecord.load(async_gateway, TEST_DATA_HASH)
            return (
                await record.get_attestation(PROVIDER),
                await record.get_attestation(USER2),
                await record.get_permission(USER3),
            )

        attested, not_attested, perm = asyncio.run(scenario())
        assert attested is True
        assert not_attested is False
        assert perm == Permission.denied()

    def test_decrypt_with_async_resolver(self, async_gateway, keys):
        private_key, public_key = keys
        seen = []

        async def resolver(data_uri):
            seen.append(data_uri)
            await asyncio.sleep(0)
            return Cipher.encrypt(public_key, TEST_DATA)

        async def scenario():
            record = await AsyncRecord.load(async_gateway, TEST_DATA_HASH)
            owner_copy = await record.decrypt_data(private_key, resolver)
            viewer_copy = await record.decrypt_permissioned(USER2, private_key, resolver)
            return owner_copy, viewer_copy

        owner_copy, viewer_copy = asyncio.run(scenario())
        assert owner_copy == viewer_copy == TEST_DATA.encode()
        assert seen == [TEST_DATA_URI, TEST_SHARED_URI]

    def test_sync_gateway_and_resolver_also_work(self, gateway, keys):
        private_key, public_key = keys
        resolver = CountingResolver(Cipher.encrypt(public_key, TEST_DATA))

        async def scenario():
            record = await RecordService(gateway).aget_record(TEST_DATA_HASH)
            return await record.decrypt_data(private_key, resolver)

        assert asyncio.run(scenario()) == TEST_DATA.encode()

    def test_denied_viewer_never_reaches_resolver(self, async_gateway, keys):
        private_key, public_key = keys
        resolver = CountingResolver(Cipher.encrypt(public_key, TEST_DATA))

        async def scenario():
            record = AsyncRecord(TEST_DATA_HASH, async_gateway)
            await record.decrypt_permissioned(USER3, private_key, resolver)

        with pytest.raises(PermissionDeniedError):
            asyncio.run(scenario())
        assert resolver.calls == []

    def test_async_resolver_failure_is_resolution_error(self, async_gateway, keys):
        private_key, _ = keys

        async def resolver(data_uri):
            raise ConnectionError("ipfs down")

        async def scenario():
            record = AsyncRecord(TEST_DATA_HASH, async_gateway)
            await record.decrypt_data(private_key, resolver)

        with pytest.raises(ResolutionError) as exc_info:
            asyncio.run(scenario())
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_hash_mismatch(self, async_gateway, keys):
        private_key, public_key = keys

        async def resolver(data_uri):
            return Cipher.encrypt(public_key, "fox")

        async def scenario():
            record = AsyncRecord(TEST_DATA_HASH, async_gateway)
            await record.decrypt_permissioned(USER2, private_key, resolver)

        with pytest.raises(HashMismatchError):
            asyncio.run(scenario())

    def test_cancellation_propagates_as_cancellation(self, async_gateway, keys):
        private_key, _ = keys
        started = []

        async def slow_resolver(data_uri):
            started.append(data_uri)
            await asyncio.sleep(10)
            return b""

        async def scenario():
            record = AsyncRecord(TEST_DATA_HASH, async_gateway)
            task = asyncio.create_task(record.decrypt_data(private_key, slow_resolver))
            while not started:
                await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        assert started == [TEST_DATA_URI]

    def test_concurrent_viewers(self, gateway, async_gateway, keys):
        private_key, public_key = keys
        gateway.grant_access(TEST_DATA_HASH, USER3, "/ipfs/user3-copy")

        async def resolver(data_uri):
            await asyncio.sleep(0)
            return Cipher.encrypt(public_key, TEST_DATA)

        async def scenario():
            record = AsyncRecord(TEST_DATA_HASH, async_gateway)
            return await asyncio.gather(
                record.decrypt_permissioned(USER2, private_key, resolver),
                record.decrypt_permissioned(USER3, private_key, resolver),
            )

        assert asyncio.run(scenario()) == [TEST_DATA.encode()] * 2
