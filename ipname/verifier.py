"""
ipname Record Validation

Decides whether a received envelope is acceptable for a name's key, under
either signature scheme.

Validation never raises for a bad record: every rejection comes back as a
ValidationResult with a distinct outcome, so callers can tell an expired
record from a forged one from one that moved the sequence backwards.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .canonicalization import (
    FIELD_SEQUENCE,
    FIELD_TTL,
    FIELD_VALIDITY,
    FIELD_VALIDITY_TYPE,
    FIELD_VALUE,
    build_canonical_data_blob,
    build_legacy_payload,
    build_v2_signature_payload,
    decode_canonical_data_blob,
)
from .envelope import Envelope, EnvelopeShape, decode_envelope
from .errors import CanonicalBlobError, DecodeError, KeyMaterialError
from .logging_config import audit_log
from .record import Record
from .signing import PublicKey, verify_signature

logger = logging.getLogger(__name__)


class ValidationOutcome(str, Enum):
    """
    Validation outcomes.

    VALID: both schemes verified and agree
    VALID_LEGACY_ONLY: legacy scheme verified; current scheme absent or unusable
    EXPIRED: signatures verified but the validity deadline has passed
    INVALID_SIGNATURE: primary signature (or embedded key) does not check out
    INVALID_SEQUENCE: sequence does not exceed the previously accepted one
    INVALID_VALIDITY_TYPE: validity type other than EOL
    MALFORMED: structurally unusable record
    """
    VALID = "VALID"
    VALID_LEGACY_ONLY = "VALID_LEGACY_ONLY"
    EXPIRED = "EXPIRED"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    INVALID_SEQUENCE = "INVALID_SEQUENCE"
    INVALID_VALIDITY_TYPE = "INVALID_VALIDITY_TYPE"
    MALFORMED = "MALFORMED"


ACCEPTED_OUTCOMES = (ValidationOutcome.VALID, ValidationOutcome.VALID_LEGACY_ONLY)


@dataclass
class ValidationResult:
    """
    Result of validating an envelope.

    `scheme` records which schemes verified: DUAL when the current scheme
    checked out alongside the legacy one, LEGACY_ONLY when only the legacy
    one did, None when signatures were never established.
    """
    outcome: ValidationOutcome
    reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    record: Optional[Record] = None
    scheme: Optional[EnvelopeShape] = None

    def is_valid(self) -> bool:
        return self.outcome in ACCEPTED_OUTCOMES

    @classmethod
    def accepted(cls, record: Record, scheme: EnvelopeShape,
                 details: Dict[str, Any] = None) -> 'ValidationResult':
        outcome = (ValidationOutcome.VALID if scheme == EnvelopeShape.DUAL
                   else ValidationOutcome.VALID_LEGACY_ONLY)
        return cls(outcome=outcome, record=record, scheme=scheme, details=details)

    @classmethod
    def rejected(cls, outcome: ValidationOutcome, reason: str, details: Dict[str, Any] = None,
                 record: Optional[Record] = None,
                 scheme: Optional[EnvelopeShape] = None) -> 'ValidationResult':
        return cls(outcome=outcome, reason=reason, details=details, record=record, scheme=scheme)


def _blob_mismatches(data: bytes, record: Record) -> List[str]:
    """Name the fields on which a data blob disagrees with the legacy fields."""
    try:
        decoded = decode_canonical_data_blob(data)
    except CanonicalBlobError as e:
        return [f"unparseable: {e}"]

    legacy = {
        FIELD_VALUE: record.value,
        FIELD_VALIDITY: record.validity,
        FIELD_VALIDITY_TYPE: record.validity_type,
        FIELD_SEQUENCE: record.sequence,
        FIELD_TTL: record.ttl,
    }
    mismatched = [key for key, value in legacy.items() if decoded[key] != value]
    # Same field values but different bytes: non-canonical encoding
    return mismatched or ["non-canonical encoding"]


class RecordValidator:
    """
    Cross-version record validator.

    Checks, in order:
    1. Validity type is EOL
    2. Primary signature present; embedded public key (if any) matches
    3. Current scheme (if present): secondary signature over the
       domain-separated blob, and blob byte-identical to the one rebuilt
       from the legacy fields. Failure falls back to legacy-only.
    4. Primary signature over the legacy payload (always required)
    5. Sequence strictly above previous_sequence (if given)
    6. Validity deadline not passed (if check_expiry)
    """

    def validate(
        self,
        envelope: Envelope,
        public_key: PublicKey,
        previous_sequence: Optional[int] = None,
        check_expiry: bool = True,
        now: Optional[datetime] = None
    ) -> ValidationResult:
        """
        Validate an envelope against the name owner's public key.

        Args:
            envelope: Decoded envelope
            public_key: Key the name derives from
            previous_sequence: Last accepted sequence for this name, if any
            check_expiry: Enforce the validity deadline
            now: Reference time for the expiry check (default: now)

        Returns:
            ValidationResult
        """
        result = self._validate(envelope, public_key, previous_sequence, check_expiry, now)
        audit_log.record_validated(
            outcome=result.outcome.value,
            sequence=envelope.record.sequence,
            scheme=result.scheme.value if result.scheme else None,
            reason=result.reason,
        )
        return result

    def _validate(
        self,
        envelope: Envelope,
        public_key: PublicKey,
        previous_sequence: Optional[int],
        check_expiry: bool,
        now: Optional[datetime]
    ) -> ValidationResult:
        record = envelope.record

        # Step 1: Validity type
        if not record.has_legal_validity_type():
            return ValidationResult.rejected(
                ValidationOutcome.INVALID_VALIDITY_TYPE,
                f"Validity type {record.validity_type} is not EOL",
                {"validity_type": record.validity_type},
                record=record,
            )

        # Step 2: Structural signature/key checks
        if not envelope.has_primary_signature():
            return ValidationResult.rejected(
                ValidationOutcome.MALFORMED,
                "Record has no primary signature",
                record=record,
            )

        key_result = self._check_embedded_key(envelope, public_key)
        if key_result is not None:
            return key_result

        # Step 3: Current scheme, with fallback
        scheme = EnvelopeShape.LEGACY_ONLY
        details: Dict[str, Any] = {}
        if envelope.current is not None:
            current_ok, fallback_reason = self._check_current_scheme(envelope, public_key)
            if current_ok:
                scheme = EnvelopeShape.DUAL
            else:
                details["fallback_reason"] = fallback_reason
                logger.warning("Current scheme rejected, falling back to legacy: %s", fallback_reason)

        # Step 4: Legacy signature, unconditionally
        if not verify_signature(public_key, build_legacy_payload(record), envelope.signature_v1):
            audit_log.security_event(
                "primary_signature_invalid",
                severity="high",
                sequence=record.sequence,
            )
            return ValidationResult.rejected(
                ValidationOutcome.INVALID_SIGNATURE,
                "Primary signature does not verify",
                details or None,
                record=record,
            )

        # Step 5: Sequence
        if previous_sequence is not None and record.sequence <= previous_sequence:
            return ValidationResult.rejected(
                ValidationOutcome.INVALID_SEQUENCE,
                f"Sequence {record.sequence} does not exceed {previous_sequence}",
                {"sequence": record.sequence, "previous_sequence": previous_sequence},
                record=record,
                scheme=scheme,
            )

        # Step 6: Expiry
        if check_expiry:
            try:
                deadline = record.deadline()
            except ValueError as e:
                return ValidationResult.rejected(
                    ValidationOutcome.MALFORMED,
                    f"Unparseable validity: {e}",
                    record=record,
                    scheme=scheme,
                )
            now = now or datetime.now(timezone.utc)
            if now > deadline:
                return ValidationResult.rejected(
                    ValidationOutcome.EXPIRED,
                    f"Record expired at {deadline.isoformat()}",
                    {"deadline": deadline.isoformat(), **details},
                    record=record,
                    scheme=scheme,
                )

        return ValidationResult.accepted(record, scheme, details or None)

    def _check_embedded_key(self, envelope: Envelope, public_key: PublicKey) -> Optional[ValidationResult]:
        if not envelope.public_key:
            return None
        try:
            embedded = PublicKey.unmarshal(envelope.public_key)
        except KeyMaterialError as e:
            return ValidationResult.rejected(
                ValidationOutcome.MALFORMED,
                f"Embedded public key is malformed: {e}",
                record=envelope.record,
            )
        if embedded != public_key:
            audit_log.security_event(
                "embedded_key_mismatch",
                severity="high",
                sequence=envelope.record.sequence,
            )
            return ValidationResult.rejected(
                ValidationOutcome.INVALID_SIGNATURE,
                "Embedded public key does not match the expected key",
                record=envelope.record,
            )
        return None

    def _check_current_scheme(self, envelope: Envelope, public_key: PublicKey):
        """Returns (ok, reason_if_not_ok)."""
        current = envelope.current
        if not verify_signature(public_key, build_v2_signature_payload(current.data), current.signature_v2):
            return False, "secondary signature does not verify"
        if current.data != build_canonical_data_blob(envelope.record):
            mismatched = _blob_mismatches(current.data, envelope.record)
            return False, f"data blob disagrees with legacy fields: {', '.join(mismatched)}"
        return True, None


def validate_record_bytes(
    data: bytes,
    public_key: PublicKey,
    previous_sequence: Optional[int] = None,
    check_expiry: bool = True,
    now: Optional[datetime] = None
) -> ValidationResult:
    """
    Decode and validate serialized record bytes.

    Decode failures come back as MALFORMED rather than raising.
    """
    try:
        envelope = decode_envelope(data)
    except DecodeError as e:
        return ValidationResult.rejected(
            ValidationOutcome.MALFORMED,
            f"Envelope could not be decoded: {e}",
            {"error": type(e).__name__},
        )
    return RecordValidator().validate(envelope, public_key, previous_sequence, check_expiry, now)
