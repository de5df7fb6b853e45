"""
vaultrecord CLI

Commands:
- keygen:  Generate a Curve25519 keypair (base64)
- hash:    Fingerprint a file
- encrypt: Seal a file for a recipient's public key
- verify:  Check a file against an expected fingerprint (offline)
- decrypt: Fetch, decrypt, and verify a record from the ledger

Usage:
    vaultrecord keygen
    vaultrecord hash report.pdf
    vaultrecord encrypt --public-key <b64> report.pdf -o report.sealed
    vaultrecord verify --fingerprint 0x38d1... report.pdf
    vaultrecord decrypt --fingerprint 0x38d1... --private-key-file me.key -o out.bin
    vaultrecord decrypt --fingerprint 0x38d1... --private-key-file me.key \\
        --viewer 0xabc... --directory ./bundle -o out.bin

Exit codes:
    0 - OK / VERIFIED
    1 - TAMPERED: hash mismatch
    2 - DENIED: viewer has no permission
    3 - INVALID: decryption failure or bad input
    4 - UNAVAILABLE: ledger or locator could not be reached
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from .core import Cipher, Hasher, Record
from .config import ResolverConfig
from .errors import (
    DecryptionError,
    FingerprintFormatError,
    IdentityFormatError,
    HashMismatchError,
    LedgerUnavailableError,
    PermissionDeniedError,
    RecordNotFoundError,
    ResolutionError,
)
from .ledger import LedgerGateway, create_gateway
from .resolvers import DirectoryResolver, IpfsResolver

EXIT_OK = 0
EXIT_TAMPERED = 1
EXIT_DENIED = 2
EXIT_INVALID = 3
EXIT_UNAVAILABLE = 4


def _write_output(data: bytes, output: Optional[str]) -> None:
    if output:
        Path(output).write_bytes(data)
    else:
        sys.stdout.buffer.write(data)
        sys.stdout.flush()


def cmd_keygen(args, gateway=None) -> int:
    """Generate a keypair."""
    private_key, public_key = Cipher.generate_keypair()
    print(json.dumps({"private_key": private_key, "public_key": public_key}, indent=2))
    return EXIT_OK


def cmd_hash(args, gateway=None) -> int:
    """Fingerprint a file."""
    print(Hasher.hash_hex(Path(args.file).read_bytes()))
    return EXIT_OK


def cmd_encrypt(args, gateway=None) -> int:
    """Seal a file for a recipient."""
    ciphertext = Cipher.encrypt(args.public_key, Path(args.file).read_bytes())
    _write_output(ciphertext, args.output)
    return EXIT_OK


def cmd_verify(args, gateway=None) -> int:
    """Check a file against an expected fingerprint."""
    data = Path(args.file).read_bytes()
    if Hasher.verify(data, Hasher.from_hex(args.fingerprint)):
        print("[VERIFIED] fingerprint matches")
        return EXIT_OK

    print("[TAMPERED] fingerprint mismatch")
    print(f"  expected: {Hasher.to_hex(Hasher.from_hex(args.fingerprint))}")
    print(f"  computed: {Hasher.hash_hex(data)}")
    return EXIT_TAMPERED


def cmd_decrypt(args, gateway: Optional[LedgerGateway] = None) -> int:
    """Fetch, decrypt, and verify a record."""
    private_key = Path(args.private_key_file).read_text(encoding="utf-8").strip()
    gateway = gateway or create_gateway()

    if args.directory:
        resolver = DirectoryResolver(args.directory)
    else:
        resolver = IpfsResolver.from_config(ResolverConfig.from_env())

    record = Record.load(gateway, args.fingerprint)
    if args.viewer:
        plaintext = record.decrypt_permissioned(args.viewer, private_key, resolver)
    else:
        plaintext = record.decrypt_data(private_key, resolver)

    _write_output(plaintext, args.output)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vaultrecord",
        description="Verify and decrypt ledger-anchored records",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("keygen", help="Generate a keypair")

    p_hash = subparsers.add_parser("hash", help="Fingerprint a file")
    p_hash.add_argument("file", help="File to fingerprint")

    p_encrypt = subparsers.add_parser("encrypt", help="Seal a file for a recipient")
    p_encrypt.add_argument("file", help="Plaintext file")
    p_encrypt.add_argument("--public-key", required=True, help="Recipient public key (base64)")
    p_encrypt.add_argument("--output", "-o", help="Output file (default: stdout)")

    p_verify = subparsers.add_parser("verify", help="Check a file against a fingerprint")
    p_verify.add_argument("file", help="Candidate plaintext file")
    p_verify.add_argument("--fingerprint", required=True, help="Expected fingerprint (hex)")

    p_decrypt = subparsers.add_parser("decrypt", help="Decrypt and verify a record")
    p_decrypt.add_argument("--fingerprint", required=True, help="Record fingerprint (hex)")
    p_decrypt.add_argument("--private-key-file", required=True, help="File holding the base64 private key")
    p_decrypt.add_argument("--viewer", help="Decrypt the copy granted to this account")
    p_decrypt.add_argument("--directory", help="Resolve locators from files in this directory")
    p_decrypt.add_argument("--output", "-o", help="Output file (default: stdout)")

    return parser


def main(argv: Optional[list[str]] = None, gateway: Optional[LedgerGateway] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_INVALID

    commands = {
        "keygen": cmd_keygen,
        "hash": cmd_hash,
        "encrypt": cmd_encrypt,
        "verify": cmd_verify,
        "decrypt": cmd_decrypt,
    }

    try:
        return commands[args.command](args, gateway=gateway)
    except HashMismatchError as e:
        print(f"[TAMPERED] {e}", file=sys.stderr)
        return EXIT_TAMPERED
    except PermissionDeniedError as e:
        print(f"[DENIED] {e}", file=sys.stderr)
        return EXIT_DENIED
    except (LedgerUnavailableError, ResolutionError) as e:
        print(f"[UNAVAILABLE] {e}", file=sys.stderr)
        return EXIT_UNAVAILABLE
    except (
        DecryptionError,
        FingerprintFormatError,
        IdentityFormatError,
        RecordNotFoundError,
        OSError,
    ) as e:
        print(f"[INVALID] {e}", file=sys.stderr)
        return EXIT_INVALID


if __name__ == "__main__":
    sys.exit(main())
