"""
ipname Cryptographic Signing

Key handling for name owners: signers per key type, libp2p key
serialization, signature verification, and record signing.

Supported key types:
- Ed25519 (RFC 8032) via PyNaCl
- Secp256k1 (ECDSA over SHA-256, DER signatures) via coincurve

Keys travel in the libp2p protobuf encoding:

    PublicKey  { 1: Type (varint), 2: Data (bytes) }
    PrivateKey { 1: Type (varint), 2: Data (bytes) }

Ed25519 public Data is the 32-byte key; private Data is seed || public key
(64 bytes). Secp256k1 public Data is the 33-byte compressed point; private
Data is the 32-byte secret.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Tuple

import coincurve
from nacl.exceptions import CryptoError
from nacl.signing import SigningKey, VerifyKey

from .canonicalization import (
    build_canonical_data_blob,
    build_legacy_payload,
    build_v2_signature_payload,
)
from .envelope import (
    WIRE_LENGTH_DELIMITED,
    WIRE_VARINT,
    CurrentScheme,
    Envelope,
    encode_bytes_field,
    encode_varint_field,
    read_varint,
)
from .errors import DecodeError, KeyMaterialError
from .record import Record

logger = logging.getLogger(__name__)


class KeyType(IntEnum):
    """libp2p key type tags."""
    RSA = 0
    ED25519 = 1
    SECP256K1 = 2
    ECDSA = 3


SUPPORTED_KEY_TYPES = (KeyType.ED25519, KeyType.SECP256K1)

ED25519_PUBLIC_KEY_SIZE = 32
ED25519_SEED_SIZE = 32
SECP256K1_PUBLIC_KEY_SIZE = 33
SECP256K1_SECRET_SIZE = 32


def _parse_key_message(data: bytes, what: str) -> Tuple[int, bytes]:
    """Parse a libp2p {Type, Data} key message."""
    fields: Dict[int, object] = {}
    offset = 0
    try:
        while offset < len(data):
            key, offset = read_varint(data, offset)
            field_number, wire_type = key >> 3, key & 0x07
            if field_number == 1 and wire_type == WIRE_VARINT:
                value, offset = read_varint(data, offset)
            elif field_number == 2 and wire_type == WIRE_LENGTH_DELIMITED:
                length, offset = read_varint(data, offset)
                if offset + length > len(data):
                    raise KeyMaterialError(f"{what} is truncated")
                value, offset = data[offset:offset + length], offset + length
            else:
                raise KeyMaterialError(f"Unexpected field {field_number} in {what}")
            if field_number in fields:
                raise KeyMaterialError(f"Field {field_number} repeated in {what}")
            fields[field_number] = value
    except DecodeError as e:
        raise KeyMaterialError(f"{what} is not a valid key message: {e}") from e

    if 1 not in fields or 2 not in fields:
        raise KeyMaterialError(f"{what} must carry both Type and Data")

    key_type = fields[1]
    if key_type not in [int(t) for t in SUPPORTED_KEY_TYPES]:
        raise KeyMaterialError(f"Unsupported key type: {key_type}")
    return key_type, fields[2]


def _marshal_key_message(key_type: int, data: bytes) -> bytes:
    return encode_varint_field(1, key_type) + encode_bytes_field(2, data)


# =============================================================================
# Public keys
# =============================================================================

@dataclass(frozen=True)
class PublicKey:
    """A typed public key."""
    key_type: KeyType
    data: bytes

    def __post_init__(self):
        self._validate()

    def _validate(self):
        if self.key_type == KeyType.ED25519:
            if len(self.data) != ED25519_PUBLIC_KEY_SIZE:
                raise KeyMaterialError(
                    f"Ed25519 public key must be {ED25519_PUBLIC_KEY_SIZE} bytes, got {len(self.data)}"
                )
        elif self.key_type == KeyType.SECP256K1:
            try:
                coincurve.PublicKey(self.data)
            except (ValueError, TypeError) as e:
                raise KeyMaterialError(f"Invalid secp256k1 public key: {e}") from e
        else:
            raise KeyMaterialError(f"Unsupported key type: {self.key_type}")

    def marshal(self) -> bytes:
        """libp2p protobuf encoding, as embedded in records and names."""
        return _marshal_key_message(int(self.key_type), self.data)

    @classmethod
    def unmarshal(cls, data: bytes) -> "PublicKey":
        """
        Parse a libp2p-encoded public key.

        Raises:
            KeyMaterialError: malformed encoding, unsupported type or bad key
        """
        key_type, key_data = _parse_key_message(bytes(data), "public key")
        if key_type == KeyType.SECP256K1:
            # Normalize to the compressed form that libp2p marshals
            try:
                key_data = coincurve.PublicKey(key_data).format(compressed=True)
            except (ValueError, TypeError) as e:
                raise KeyMaterialError(f"Invalid secp256k1 public key: {e}") from e
        return cls(key_type=KeyType(key_type), data=key_data)


def verify_signature(public_key: PublicKey, payload: bytes, signature: bytes) -> bool:
    """
    Verify a signature under the given key.

    Returns False on any mismatch or malformed input; never raises.
    """
    if not signature:
        return False

    if public_key.key_type == KeyType.ED25519:
        try:
            VerifyKey(public_key.data).verify(payload, signature)
            return True
        except (CryptoError, ValueError, TypeError):
            return False

    if public_key.key_type == KeyType.SECP256K1:
        try:
            return coincurve.PublicKey(public_key.data).verify(signature, payload)
        except (ValueError, TypeError):
            return False

    return False


# =============================================================================
# Signers
# =============================================================================

class Signer(ABC):
    """
    Signing capability of a name owner.

    Implementations hold private key material and never expose it except
    through marshal_private_key().
    """
    key_type: KeyType

    @abstractmethod
    def public_key(self) -> PublicKey:
        """Public half of the key pair."""

    def public_key_bytes(self) -> bytes:
        """libp2p protobuf encoding of the public key."""
        return self.public_key().marshal()

    @abstractmethod
    def sign(self, payload: bytes) -> bytes:
        """Sign payload bytes."""

    @abstractmethod
    def private_key_data(self) -> bytes:
        """Raw private Data as carried in the libp2p PrivateKey message."""


class Ed25519Signer(Signer):
    """Ed25519 signer backed by PyNaCl."""
    key_type = KeyType.ED25519

    def __init__(self, signing_key: SigningKey):
        self._signing_key = signing_key

    @classmethod
    def generate(cls) -> "Ed25519Signer":
        return cls(SigningKey.generate())

    @classmethod
    def from_private_data(cls, data: bytes) -> "Ed25519Signer":
        """
        Build from libp2p private Data.

        Accepts seed || public key (64 bytes) or a bare seed (32 bytes).
        """
        if len(data) not in (ED25519_SEED_SIZE, ED25519_SEED_SIZE + ED25519_PUBLIC_KEY_SIZE):
            raise KeyMaterialError(f"Ed25519 private key must be 32 or 64 bytes, got {len(data)}")
        signer = cls(SigningKey(data[:ED25519_SEED_SIZE]))
        if len(data) > ED25519_SEED_SIZE and data[ED25519_SEED_SIZE:] != signer.public_key().data:
            raise KeyMaterialError("Ed25519 private key does not match its embedded public key")
        return signer

    def public_key(self) -> PublicKey:
        return PublicKey(KeyType.ED25519, bytes(self._signing_key.verify_key))

    def sign(self, payload: bytes) -> bytes:
        return self._signing_key.sign(payload).signature

    def private_key_data(self) -> bytes:
        return bytes(self._signing_key) + bytes(self._signing_key.verify_key)


class Secp256k1Signer(Signer):
    """Secp256k1 signer backed by coincurve. Signatures are DER over SHA-256."""
    key_type = KeyType.SECP256K1

    def __init__(self, private_key: coincurve.PrivateKey):
        self._private_key = private_key

    @classmethod
    def generate(cls) -> "Secp256k1Signer":
        return cls(coincurve.PrivateKey())

    @classmethod
    def from_private_data(cls, data: bytes) -> "Secp256k1Signer":
        if len(data) != SECP256K1_SECRET_SIZE:
            raise KeyMaterialError(f"Secp256k1 private key must be 32 bytes, got {len(data)}")
        try:
            return cls(coincurve.PrivateKey(data))
        except (ValueError, TypeError) as e:
            raise KeyMaterialError(f"Invalid secp256k1 private key: {e}") from e

    def public_key(self) -> PublicKey:
        return PublicKey(KeyType.SECP256K1, self._private_key.public_key.format(compressed=True))

    def sign(self, payload: bytes) -> bytes:
        return self._private_key.sign(payload)

    def private_key_data(self) -> bytes:
        return self._private_key.secret


SIGNER_CLASSES = {
    KeyType.ED25519: Ed25519Signer,
    KeyType.SECP256K1: Secp256k1Signer,
}


def generate_signer(key_type: KeyType = KeyType.ED25519) -> Signer:
    """Generate a fresh key pair of the given type."""
    signer_class = SIGNER_CLASSES.get(key_type)
    if signer_class is None:
        raise KeyMaterialError(f"Unsupported key type: {key_type}")
    return signer_class.generate()


def marshal_private_key(signer: Signer) -> bytes:
    """Encode a signer's private key as a libp2p PrivateKey message (key file format)."""
    return _marshal_key_message(int(signer.key_type), signer.private_key_data())


def load_signer(data: bytes) -> Signer:
    """
    Load a signer from a libp2p PrivateKey message.

    Raises:
        KeyMaterialError: malformed encoding, unsupported type or bad key
    """
    key_type, key_data = _parse_key_message(bytes(data), "private key")
    return SIGNER_CLASSES[KeyType(key_type)].from_private_data(key_data)


def sign_record(record: Record, signer: Signer) -> Envelope:
    """
    Sign a record under both schemes.

    The envelope carries the legacy signature over value||"EOL"||validity,
    the canonical data blob with its domain-separated signature, and the
    signer's public key.

    Raises:
        InvalidValidityTypeError: if the record's validity type is not EOL
    """
    legacy_payload = build_legacy_payload(record)
    data = build_canonical_data_blob(record)

    envelope = Envelope(
        record=record,
        signature_v1=signer.sign(legacy_payload),
        public_key=signer.public_key_bytes(),
        current=CurrentScheme(
            data=data,
            signature_v2=signer.sign(build_v2_signature_payload(data)),
        ),
    )
    logger.debug("Signed record sequence=%d key_type=%s", record.sequence, signer.key_type.name)
    return envelope
