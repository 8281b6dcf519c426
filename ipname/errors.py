"""
ipname Error Taxonomy

Exceptions raised on exceptional paths: decoding, key material, store access
and publishing. Record validation does not raise; it returns a
ValidationResult (see verifier.py).
"""

from typing import Any, Dict, Optional


class IpnameError(Exception):
    """Base class for all ipname errors."""


# =============================================================================
# Envelope decoding
# =============================================================================

class DecodeError(IpnameError):
    """Envelope bytes could not be parsed."""

    def __init__(self, message: str, offset: Optional[int] = None):
        self.offset = offset
        if offset is not None:
            message = f"{message} (at byte {offset})"
        super().__init__(message)


class Truncated(DecodeError):
    """Input ended in the middle of a field."""


class UnknownEnvelopeVersion(DecodeError):
    """Container uses a wire construct this codec does not understand."""


class FieldMismatch(DecodeError):
    """A known field carries the wrong wire type, repeats, or overflows."""


class OversizedEnvelope(DecodeError):
    """Envelope exceeds the maximum record size."""


# =============================================================================
# Payload building and keys
# =============================================================================

class CanonicalBlobError(IpnameError):
    """Canonical data blob is not a map of exactly the protocol fields."""


class InvalidValidityTypeError(IpnameError):
    """Validity type other than EOL."""

    def __init__(self, validity_type: int):
        self.validity_type = validity_type
        super().__init__(f"Unsupported validity type: {validity_type} (only EOL=0 is defined)")


class KeyMaterialError(IpnameError):
    """Key material is structurally invalid or of an unsupported type."""


class InvalidNameError(IpnameError):
    """String or bytes do not encode a name."""


# =============================================================================
# Store collaborator
# =============================================================================

class StoreError(IpnameError):
    """Base class for store failures."""


class RecordNotFound(StoreError):
    """No record is published under the name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No record found for {name}")


class StoreUnavailable(StoreError):
    """Store could not be reached or answered with an unusable response."""


# =============================================================================
# Publishing
# =============================================================================

class PublishError(IpnameError):
    """
    Publish/update failure.

    `stage` names the step that failed so callers can tell a key/name
    mismatch from a corrupt existing record from a rejected write.
    """
    stage = "publish"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.details = details or {}
        super().__init__(message)


class NameKeyMismatch(PublishError):
    """Signer's public key does not derive the target name."""
    stage = "key"


class CorruptExistingRecord(PublishError):
    """The record currently published fails every verification path."""
    stage = "existing_record"

    def __init__(self, message: str, result=None, details: Optional[Dict[str, Any]] = None):
        self.result = result
        super().__init__(message, details)


class SequenceExhausted(PublishError):
    """Existing record already holds the largest sequence number."""
    stage = "derive"


class SequenceConflict(PublishError):
    """Store reported a losing concurrent write. Re-fetch and retry."""
    stage = "write"
    retryable = True


class WriteRejected(PublishError):
    """Store refused the write for a reason other than a sequence race."""
    stage = "write"


class RecordRejected(IpnameError):
    """A resolved record did not validate."""

    def __init__(self, result):
        self.result = result
        super().__init__(f"Record rejected: {result.outcome.value} ({result.reason})")
