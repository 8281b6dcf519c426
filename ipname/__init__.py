"""
ipname: Signed, Updatable Name Records

Version: 1.0.0

Creates, signs, publishes and verifies IPNS name records. A name is derived
from its owner's public key; the record behind it can be updated any number
of times by that key, each update carrying a higher sequence number.

Records are signed under two schemes:
- legacy (V1): signature over value || "EOL" || validity
- current (V2): signature over "ipns-signature:" || DAG-CBOR data blob

Every record this library writes carries both. Records carrying only the
legacy scheme are still accepted and are upgraded on their next update.

Usage:
    from ipname import (
        InMemoryRecordStore,
        Name,
        RecordPublisher,
        generate_signer,
    )

    signer = generate_signer()
    name = Name.from_signer(signer)

    publisher = RecordPublisher(InMemoryRecordStore())
    publisher.publish_update(name, "/ipfs/bafy...", signer)

    resolved = publisher.resolve(name)
    print(resolved.value)
"""

__version__ = "1.0.0"

# Records
from .record import (
    MAX_UINT64,
    Record,
    ValidityType,
    create_record,
    format_validity,
    next_record,
    parse_validity,
)

# Canonical payloads
from .canonicalization import (
    CANONICAL_FIELDS,
    V2_SIGNATURE_PREFIX,
    build_canonical_data_blob,
    build_legacy_payload,
    build_v2_signature_payload,
    decode_canonical_data_blob,
)

# Envelope codec
from .envelope import (
    MAX_RECORD_SIZE,
    CurrentScheme,
    Envelope,
    EnvelopeShape,
    decode_envelope,
    encode_envelope,
)

# Signing
from .signing import (
    Ed25519Signer,
    KeyType,
    PublicKey,
    Secp256k1Signer,
    Signer,
    generate_signer,
    load_signer,
    marshal_private_key,
    sign_record,
    verify_signature,
)

# Validation
from .verifier import (
    RecordValidator,
    ValidationOutcome,
    ValidationResult,
    validate_record_bytes,
)

# Names
from .name import Name

# Stores
from .store import (
    FallbackRecordStore,
    GatewayRecordStore,
    InMemoryRecordStore,
    PutOutcome,
    RecordStore,
    W3NameHTTPStore,
    default_store,
)

# Publishing
from .publisher import PublishResult, RecordPublisher, ResolvedRecord

# Errors
from .errors import (
    CanonicalBlobError,
    CorruptExistingRecord,
    DecodeError,
    FieldMismatch,
    InvalidNameError,
    InvalidValidityTypeError,
    IpnameError,
    KeyMaterialError,
    NameKeyMismatch,
    OversizedEnvelope,
    PublishError,
    RecordNotFound,
    RecordRejected,
    SequenceConflict,
    SequenceExhausted,
    StoreError,
    StoreUnavailable,
    Truncated,
    UnknownEnvelopeVersion,
    WriteRejected,
)

__all__ = [
    # Version
    "__version__",

    # Records
    "MAX_UINT64",
    "Record",
    "ValidityType",
    "create_record",
    "format_validity",
    "next_record",
    "parse_validity",

    # Canonical payloads
    "CANONICAL_FIELDS",
    "V2_SIGNATURE_PREFIX",
    "build_canonical_data_blob",
    "build_legacy_payload",
    "build_v2_signature_payload",
    "decode_canonical_data_blob",

    # Envelope codec
    "MAX_RECORD_SIZE",
    "CurrentScheme",
    "Envelope",
    "EnvelopeShape",
    "decode_envelope",
    "encode_envelope",

    # Signing
    "Ed25519Signer",
    "KeyType",
    "PublicKey",
    "Secp256k1Signer",
    "Signer",
    "generate_signer",
    "load_signer",
    "marshal_private_key",
    "sign_record",
    "verify_signature",

    # Validation
    "RecordValidator",
    "ValidationOutcome",
    "ValidationResult",
    "validate_record_bytes",

    # Names
    "Name",

    # Stores
    "FallbackRecordStore",
    "GatewayRecordStore",
    "InMemoryRecordStore",
    "PutOutcome",
    "RecordStore",
    "W3NameHTTPStore",
    "default_store",

    # Publishing
    "PublishResult",
    "RecordPublisher",
    "ResolvedRecord",

    # Errors
    "CanonicalBlobError",
    "CorruptExistingRecord",
    "DecodeError",
    "FieldMismatch",
    "InvalidNameError",
    "InvalidValidityTypeError",
    "IpnameError",
    "KeyMaterialError",
    "NameKeyMismatch",
    "OversizedEnvelope",
    "PublishError",
    "RecordNotFound",
    "RecordRejected",
    "SequenceConflict",
    "SequenceExhausted",
    "StoreError",
    "StoreUnavailable",
    "Truncated",
    "UnknownEnvelopeVersion",
    "WriteRejected",
]
