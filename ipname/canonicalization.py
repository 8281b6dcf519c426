"""
ipname Canonical Payload Encoding

Builds the exact byte sequences that get signed under each record scheme.

Legacy (V1) payload:
    value || b"EOL" || validity

Current (V2) payload:
    b"ipns-signature:" || data

where `data` is the DAG-CBOR map
    {"TTL": u64, "Value": bytes, "Sequence": u64, "Validity": bytes, "ValidityType": u64}

Rules:
- Keys are spelled exactly as above. Verifiers match them literally, so
  "validityType" is a different (unknown) field, not a spelling variant.
- Keys are ordered length-first, then bytewise (DAG-CBOR map ordering)
- Integers use the shortest encoding
- Value and Validity are CBOR byte strings, never text strings

Same Record in, same bytes out.
"""

from typing import Any, Dict

import cbor2

from .errors import CanonicalBlobError, InvalidValidityTypeError
from .record import MAX_UINT64, Record, ValidityType

FIELD_VALUE = "Value"
FIELD_VALIDITY = "Validity"
FIELD_VALIDITY_TYPE = "ValidityType"
FIELD_SEQUENCE = "Sequence"
FIELD_TTL = "TTL"

CANONICAL_FIELDS = (FIELD_VALUE, FIELD_VALIDITY, FIELD_VALIDITY_TYPE, FIELD_SEQUENCE, FIELD_TTL)

BYTES_FIELDS = (FIELD_VALUE, FIELD_VALIDITY)
INTEGER_FIELDS = (FIELD_VALIDITY_TYPE, FIELD_SEQUENCE, FIELD_TTL)

V2_SIGNATURE_PREFIX = b"ipns-signature:"

# Validity types as spelled inside the legacy payload
VALIDITY_TYPE_NAMES = {
    ValidityType.EOL: b"EOL",
}


def build_legacy_payload(record: Record) -> bytes:
    """
    Build the payload covered by the primary (V1) signature.

    Raises:
        InvalidValidityTypeError: if the record's validity type has no
            protocol name (anything but EOL)
    """
    type_name = VALIDITY_TYPE_NAMES.get(record.validity_type)
    if type_name is None:
        raise InvalidValidityTypeError(record.validity_type)
    return record.value + type_name + record.validity


def build_canonical_data_blob(record: Record) -> bytes:
    """Build the DAG-CBOR data blob covered by the secondary (V2) signature."""
    fields = {
        FIELD_VALUE: record.value,
        FIELD_VALIDITY: record.validity,
        FIELD_VALIDITY_TYPE: record.validity_type,
        FIELD_SEQUENCE: record.sequence,
        FIELD_TTL: record.ttl,
    }
    # canonical=True orders keys length-first, then bytewise
    return cbor2.dumps(fields, canonical=True)


def build_v2_signature_payload(data: bytes) -> bytes:
    """Domain-separate the data blob before signing or verifying it."""
    return V2_SIGNATURE_PREFIX + data


def decode_canonical_data_blob(data: bytes) -> Dict[str, Any]:
    """
    Parse a data blob and check it holds exactly the protocol fields.

    Returns:
        Dict keyed by the canonical field names

    Raises:
        CanonicalBlobError: if the blob is not CBOR, is not a map, has
            missing/extra/miscased keys, or has values of the wrong type
    """
    try:
        decoded = cbor2.loads(data)
    except (cbor2.CBORDecodeError, ValueError, TypeError) as e:
        raise CanonicalBlobError(f"Data blob is not valid CBOR: {e}") from e

    if not isinstance(decoded, dict):
        raise CanonicalBlobError(f"Data blob must be a map, got {type(decoded).__name__}")

    keys = set(decoded.keys())
    expected = set(CANONICAL_FIELDS)
    if keys != expected:
        missing = sorted(expected - keys, key=str)
        unexpected = sorted(keys - expected, key=str)
        raise CanonicalBlobError(
            f"Data blob fields do not match protocol: missing={missing} unexpected={unexpected}"
        )

    for key in BYTES_FIELDS:
        if not isinstance(decoded[key], bytes):
            raise CanonicalBlobError(f"Data blob field {key} must be a byte string")

    for key in INTEGER_FIELDS:
        value = decoded[key]
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_UINT64:
            raise CanonicalBlobError(f"Data blob field {key} must be an unsigned 64-bit integer")

    return decoded
