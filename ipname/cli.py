#!/usr/bin/env python3
"""
ipname Command Line Interface

Usage:
    ipname create [--output <file>] [--key-type ed25519|secp256k1]
    ipname publish --key <file> --value <value> [--ttl-seconds N] [--lifetime-days N]
    ipname resolve <name>
    ipname parse [--name <name>] [<record-base64>]
"""

import argparse
import base64
import binascii
import json
import sys
from datetime import datetime, timedelta, timezone

from . import config
from .envelope import decode_envelope
from .errors import IpnameError, KeyMaterialError, RecordNotFound, SequenceConflict
from .logging_config import configure_logging, set_operation_id
from .name import Name
from .publisher import RecordPublisher
from .signing import KeyType, PublicKey, generate_signer, load_signer, marshal_private_key
from .store import RecordStore, default_store
from .verifier import RecordValidator, ValidationOutcome, ValidationResult

KEY_TYPES = {
    "ed25519": KeyType.ED25519,
    "secp256k1": KeyType.SECP256K1,
}


def build_store() -> RecordStore:
    """Store used by publish and resolve."""
    return default_store()


def cmd_create(args):
    """Generate a key pair and write it to a key file."""
    signer = generate_signer(KEY_TYPES[args.key_type])
    name = Name.from_signer(signer)
    output = args.output or f"{name}.key"

    with open(output, 'wb') as f:
        f.write(marshal_private_key(signer))

    print(f"Created name {name}")
    print(f"Key written to {output}")
    return 0


def cmd_publish(args):
    """Publish a new value for the name owned by a key file."""
    with open(args.key, 'rb') as f:
        signer = load_signer(f.read())
    name = Name.from_signer(signer)

    validity = None
    if args.lifetime_days is not None:
        validity = datetime.now(timezone.utc) + timedelta(days=args.lifetime_days)
    ttl = timedelta(seconds=args.ttl_seconds) if args.ttl_seconds is not None else None

    publisher = RecordPublisher(build_store())
    attempts = max(1, config.PUBLISH_MAX_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        try:
            result = publisher.publish_update(name, args.value, signer, validity=validity, ttl=ttl)
            break
        except SequenceConflict:
            if attempt == attempts:
                raise
            print(f"Sequence conflict, retrying ({attempt}/{attempts})", file=sys.stderr)

    print(f"Published {name} sequence {result.record.sequence}: {result.record.value_text()}")
    if result.migrated:
        print("Upgraded legacy-only record to dual signatures")
    return 0


def cmd_resolve(args):
    """Resolve a name to its current value."""
    publisher = RecordPublisher(build_store())
    try:
        resolved = publisher.resolve(args.name)
    except RecordNotFound:
        print(f"No record published for {args.name}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(resolved.to_dict(), indent=2))
    else:
        print(resolved.value)
    if resolved.expired:
        print(f"Warning: record expired ({resolved.record.validity.decode('ascii')})", file=sys.stderr)
    return 0


def _verification_key(envelope, name_text):
    """Key to check a parsed record against: the name's, else the embedded one."""
    if name_text:
        return Name.parse(name_text).public_key()
    if not envelope.public_key:
        return None
    return PublicKey.unmarshal(envelope.public_key)


def cmd_parse(args):
    """Decode a base64 record, check its signatures and print its fields."""
    encoded = args.record if args.record is not None else sys.stdin.read()
    try:
        data = base64.b64decode(encoded.strip(), validate=True)
    except binascii.Error as e:
        print(f"Error: record is not valid base64: {e}", file=sys.stderr)
        return 1

    envelope = decode_envelope(data)
    try:
        public_key = _verification_key(envelope, args.name)
    except KeyMaterialError as e:
        result = ValidationResult.rejected(
            ValidationOutcome.MALFORMED, f"Embedded public key is unusable: {e}")
    else:
        if public_key is None:
            result = ValidationResult.rejected(
                ValidationOutcome.MALFORMED,
                "Record embeds no public key; pass --name to verify it")
        else:
            result = RecordValidator().validate(envelope, public_key)

    output = envelope.to_dict()
    output["validation"] = {
        "outcome": result.outcome.value,
        "reason": result.reason,
        "scheme": result.scheme.value if result.scheme else None,
    }
    print(json.dumps(output, indent=2))

    if result.is_valid() or result.outcome == ValidationOutcome.EXPIRED:
        return 0
    print(f"Error: record failed verification: {result.outcome.value} ({result.reason})",
          file=sys.stderr)
    return 1


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="ipname - signed, updatable name records",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # create
    create_parser = subparsers.add_parser("create", help="Create a new name and key file")
    create_parser.add_argument("-o", "--output", help="Key file path (default: <name>.key)")
    create_parser.add_argument("-t", "--key-type", choices=sorted(KEY_TYPES), default="ed25519",
                               help="Key type")

    # publish
    publish_parser = subparsers.add_parser("publish", help="Publish a value for a name")
    publish_parser.add_argument("-k", "--key", required=True, help="Key file")
    publish_parser.add_argument("-v", "--value", required=True, help="Value, e.g. /ipfs/<cid>")
    publish_parser.add_argument("--ttl-seconds", type=int, help="Cache TTL in seconds")
    publish_parser.add_argument("--lifetime-days", type=int, help="Record lifetime in days")

    # resolve
    resolve_parser = subparsers.add_parser("resolve", help="Resolve a name")
    resolve_parser.add_argument("name", help="Name to resolve")
    resolve_parser.add_argument("--json", action="store_true", help="Print the full record as JSON")

    # parse
    parse_parser = subparsers.add_parser("parse", help="Inspect a base64-encoded record")
    parse_parser.add_argument("record", nargs="?", help="Record in base64 (default: read stdin)")
    parse_parser.add_argument("-n", "--name", help="Verify against this name's key instead of the embedded key")

    args = parser.parse_args(argv)

    level = "DEBUG" if args.verbose or config.is_debug() else config.LOG_LEVEL
    configure_logging(level=level, json_format=config.LOG_JSON or config.is_production())
    set_operation_id()

    commands = {
        "create": cmd_create,
        "publish": cmd_publish,
        "resolve": cmd_resolve,
        "parse": cmd_parse,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 1

    try:
        return command(args)
    except (IpnameError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
