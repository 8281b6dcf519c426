"""
ipname Envelope Codec

Serializes signed records to and from the IPNS wire format.

Wire Format (protobuf message IpnsEntry):
    ┌────┬──────────────┬──────────────────┬──────────────────────────────┐
    │ #  │ field        │ wire type        │ part                         │
    ├────┼──────────────┼──────────────────┼──────────────────────────────┤
    │ 1  │ value        │ length-delimited │ legacy fields                │
    │ 2  │ signatureV1  │ length-delimited │ legacy (primary) signature   │
    │ 3  │ validityType │ varint           │ legacy fields                │
    │ 4  │ validity     │ length-delimited │ legacy fields                │
    │ 5  │ sequence     │ varint           │ legacy fields                │
    │ 6  │ ttl          │ varint           │ legacy fields                │
    │ 7  │ pubKey       │ length-delimited │ embedded public key          │
    │ 8  │ signatureV2  │ length-delimited │ current (secondary) signature│
    │ 9  │ data         │ length-delimited │ canonical data blob          │
    └────┴──────────────┴──────────────────┴──────────────────────────────┘

Envelopes come in two shapes: legacy-only (fields 1-7) and dual (1-9).
Both decode. The encoder always writes the legacy part and writes 8/9
whenever the envelope carries the current scheme.
"""

import base64
from dataclasses import dataclass, replace
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Tuple

from .errors import FieldMismatch, OversizedEnvelope, Truncated, UnknownEnvelopeVersion
from .record import MAX_UINT64, Record

# Maximum serialized record size accepted by IPNS implementations
MAX_RECORD_SIZE = 10 * 1024

# Protobuf wire types
WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LENGTH_DELIMITED = 2
WIRE_FIXED32 = 5

SUPPORTED_WIRE_TYPES = (WIRE_VARINT, WIRE_FIXED64, WIRE_LENGTH_DELIMITED, WIRE_FIXED32)


class EnvelopeField(IntEnum):
    """IpnsEntry field numbers."""
    VALUE = 1
    SIGNATURE_V1 = 2
    VALIDITY_TYPE = 3
    VALIDITY = 4
    SEQUENCE = 5
    TTL = 6
    PUB_KEY = 7
    SIGNATURE_V2 = 8
    DATA = 9


FIELD_WIRE_TYPES = {
    EnvelopeField.VALUE: WIRE_LENGTH_DELIMITED,
    EnvelopeField.SIGNATURE_V1: WIRE_LENGTH_DELIMITED,
    EnvelopeField.VALIDITY_TYPE: WIRE_VARINT,
    EnvelopeField.VALIDITY: WIRE_LENGTH_DELIMITED,
    EnvelopeField.SEQUENCE: WIRE_VARINT,
    EnvelopeField.TTL: WIRE_VARINT,
    EnvelopeField.PUB_KEY: WIRE_LENGTH_DELIMITED,
    EnvelopeField.SIGNATURE_V2: WIRE_LENGTH_DELIMITED,
    EnvelopeField.DATA: WIRE_LENGTH_DELIMITED,
}


class EnvelopeShape(str, Enum):
    """Which signature schemes an envelope carries."""
    LEGACY_ONLY = "LEGACY_ONLY"
    DUAL = "DUAL"


@dataclass(frozen=True)
class CurrentScheme:
    """Canonical data blob plus the secondary signature over it."""
    data: bytes
    signature_v2: bytes


@dataclass(frozen=True)
class Envelope:
    """
    Signed, transmittable form of a Record.

    public_key holds the marshalled libp2p public key, or b"" when the
    producer relied on the key being recoverable from the name.
    """
    record: Record
    signature_v1: bytes = b""
    public_key: bytes = b""
    current: Optional[CurrentScheme] = None

    @property
    def shape(self) -> EnvelopeShape:
        return EnvelopeShape.DUAL if self.current is not None else EnvelopeShape.LEGACY_ONLY

    def has_primary_signature(self) -> bool:
        return bool(self.signature_v1)

    def legacy_only(self) -> "Envelope":
        """Copy of this envelope with the current scheme stripped."""
        return replace(self, current=None)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for display. Binary fields are base64."""
        d = {
            "shape": self.shape.value,
            "record": self.record.to_dict(),
            "signature_v1": _b64(self.signature_v1),
            "public_key": _b64(self.public_key),
        }
        if self.current is not None:
            d["signature_v2"] = _b64(self.current.signature_v2)
            d["data"] = _b64(self.current.data)
        return d


def _b64(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")


# =============================================================================
# Encoding
# =============================================================================

def encode_varint(value: int) -> bytes:
    """Encode an unsigned integer as a protobuf varint."""
    if value < 0 or value > MAX_UINT64:
        raise ValueError(f"varint out of range: {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _field_key(field: int, wire_type: int) -> bytes:
    return encode_varint((field << 3) | wire_type)


def encode_bytes_field(field: int, payload: bytes) -> bytes:
    return _field_key(field, WIRE_LENGTH_DELIMITED) + encode_varint(len(payload)) + payload


def encode_varint_field(field: int, value: int) -> bytes:
    return _field_key(field, WIRE_VARINT) + encode_varint(value)


def encode_envelope(envelope: Envelope) -> bytes:
    """
    Serialize an envelope into IpnsEntry bytes.

    Fields are written in field-number order. Legacy fields are always
    written, including zero-valued ones.

    Raises:
        ValueError: if the envelope has no primary signature
    """
    if not envelope.has_primary_signature():
        raise ValueError("Refusing to encode an envelope without a primary signature")

    record = envelope.record
    out = bytearray()
    out += encode_bytes_field(EnvelopeField.VALUE, record.value)
    out += encode_bytes_field(EnvelopeField.SIGNATURE_V1, envelope.signature_v1)
    out += encode_varint_field(EnvelopeField.VALIDITY_TYPE, record.validity_type)
    out += encode_bytes_field(EnvelopeField.VALIDITY, record.validity)
    out += encode_varint_field(EnvelopeField.SEQUENCE, record.sequence)
    out += encode_varint_field(EnvelopeField.TTL, record.ttl)
    if envelope.public_key:
        out += encode_bytes_field(EnvelopeField.PUB_KEY, envelope.public_key)
    if envelope.current is not None:
        out += encode_bytes_field(EnvelopeField.SIGNATURE_V2, envelope.current.signature_v2)
        out += encode_bytes_field(EnvelopeField.DATA, envelope.current.data)
    return bytes(out)


# =============================================================================
# Decoding
# =============================================================================

def read_varint(data: bytes, offset: int) -> Tuple[int, int]:
    """
    Read a varint at `offset`.

    Returns:
        (value, offset just past the varint)
    """
    start = offset
    result = 0
    shift = 0
    while True:
        if offset >= len(data):
            raise Truncated("Input ended inside a varint", start)
        byte = data[offset]
        offset += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            break
        shift += 7
        if shift >= 70:
            raise FieldMismatch("Varint longer than 10 bytes", start)
    if result > MAX_UINT64:
        raise FieldMismatch("Varint overflows 64 bits", start)
    return result, offset


def _read_exact(data: bytes, offset: int, length: int) -> Tuple[bytes, int]:
    end = offset + length
    if end > len(data):
        raise Truncated(f"Field needs {length} bytes, {len(data) - offset} remain", offset)
    return data[offset:end], end


def _read_value(data: bytes, offset: int, wire_type: int) -> Tuple[Any, int]:
    if wire_type == WIRE_VARINT:
        return read_varint(data, offset)
    if wire_type == WIRE_FIXED64:
        return _read_exact(data, offset, 8)
    if wire_type == WIRE_FIXED32:
        return _read_exact(data, offset, 4)
    length, offset = read_varint(data, offset)
    return _read_exact(data, offset, length)


def decode_envelope(data: bytes) -> Envelope:
    """
    Parse IpnsEntry bytes into an Envelope.

    Unknown field numbers with a supported wire type are skipped. A new
    Envelope is returned; nothing else is touched, so a failure leaves no
    partial state behind.

    Raises:
        Truncated: input ends mid-field, or is empty
        UnknownEnvelopeVersion: group or undefined wire types
        FieldMismatch: known field with the wrong wire type, a repeated
            known field, field number 0, varint overflow, or only one half
            of the current scheme present
        OversizedEnvelope: input larger than MAX_RECORD_SIZE
    """
    data = bytes(data)
    if len(data) > MAX_RECORD_SIZE:
        raise OversizedEnvelope(f"Envelope is {len(data)} bytes, limit is {MAX_RECORD_SIZE}")
    if not data:
        raise Truncated("Empty envelope", 0)

    fields: Dict[int, Any] = {}
    offset = 0
    while offset < len(data):
        field_start = offset
        key, offset = read_varint(data, offset)
        field_number, wire_type = key >> 3, key & 0x07

        if wire_type not in SUPPORTED_WIRE_TYPES:
            raise UnknownEnvelopeVersion(f"Unsupported wire type {wire_type}", field_start)
        if field_number == 0:
            raise FieldMismatch("Field number 0 is reserved", field_start)

        value, offset = _read_value(data, offset, wire_type)

        expected_wire_type = FIELD_WIRE_TYPES.get(field_number)
        if expected_wire_type is None:
            continue
        if wire_type != expected_wire_type:
            raise FieldMismatch(
                f"Field {EnvelopeField(field_number).name} has wire type {wire_type}, "
                f"expected {expected_wire_type}",
                field_start,
            )
        if field_number in fields:
            raise FieldMismatch(f"Field {EnvelopeField(field_number).name} repeated", field_start)
        fields[field_number] = value

    signature_v2 = fields.get(EnvelopeField.SIGNATURE_V2, b"")
    blob = fields.get(EnvelopeField.DATA, b"")
    if bool(signature_v2) != bool(blob):
        raise FieldMismatch("Current scheme needs both signatureV2 and data")
    current = CurrentScheme(data=blob, signature_v2=signature_v2) if blob else None

    record = Record(
        value=fields.get(EnvelopeField.VALUE, b""),
        validity=fields.get(EnvelopeField.VALIDITY, b""),
        sequence=fields.get(EnvelopeField.SEQUENCE, 0),
        ttl=fields.get(EnvelopeField.TTL, 0),
        validity_type=fields.get(EnvelopeField.VALIDITY_TYPE, 0),
    )

    return Envelope(
        record=record,
        signature_v1=fields.get(EnvelopeField.SIGNATURE_V1, b""),
        public_key=fields.get(EnvelopeField.PUB_KEY, b""),
        current=current,
    )
