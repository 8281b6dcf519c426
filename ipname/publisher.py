"""
ipname Publisher

Update controller for a name: reads whatever record is currently published
(legacy-only or dual), derives the next revision, signs it under both
schemes and writes it back with compare-and-swap on the sequence.

Nothing is cached between calls; every update starts from the store.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union

from .envelope import EnvelopeShape, decode_envelope, encode_envelope
from .errors import (
    CorruptExistingRecord,
    DecodeError,
    NameKeyMismatch,
    RecordNotFound,
    RecordRejected,
    SequenceConflict,
    SequenceExhausted,
    StoreUnavailable,
    WriteRejected,
)
from .logging_config import audit_log
from .name import Name
from .record import Record, create_record, next_record
from .signing import Signer, sign_record
from .store import PutOutcome, RecordStore
from .verifier import RecordValidator, ValidationOutcome, ValidationResult

logger = logging.getLogger(__name__)


@dataclass
class PublishResult:
    """Outcome of a successful publish."""
    name: str
    record: Record
    data: bytes
    previous_sequence: Optional[int] = None
    migrated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "sequence": self.record.sequence,
            "previous_sequence": self.previous_sequence,
            "migrated": self.migrated,
            "record": self.record.to_dict(),
        }


@dataclass
class ResolvedRecord:
    """A record fetched and accepted for a name."""
    name: str
    record: Record
    outcome: ValidationOutcome
    expired: bool = False

    @property
    def value(self) -> str:
        return self.record.value_text()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "outcome": self.outcome.value,
            "expired": self.expired,
            "record": self.record.to_dict(),
        }


def _coerce_name(name: Union[Name, str]) -> Name:
    return name if isinstance(name, Name) else Name.parse(name)


class RecordPublisher:
    """
    Publishes and resolves records through a RecordStore.

    Usage:
        publisher = RecordPublisher(InMemoryRecordStore())
        result = publisher.publish_update(name, "/ipfs/bafy...", signer)
    """

    def __init__(self, store: RecordStore, validator: Optional[RecordValidator] = None):
        self.store = store
        self.validator = validator or RecordValidator()

    def publish_update(
        self,
        name: Union[Name, str],
        value: Union[str, bytes],
        signer: Signer,
        validity: Optional[datetime] = None,
        ttl: Optional[Union[int, timedelta]] = None,
        now: Optional[datetime] = None
    ) -> PublishResult:
        """
        Publish `value` as the next revision of `name`.

        Args:
            name: Target name (Name or base36 string)
            value: New value
            signer: Key the name derives from
            validity: Deadline for the new record (default: configured lifetime)
            ttl: Cache TTL (default: configured TTL)
            now: Reference time for defaults

        Returns:
            PublishResult

        Raises:
            InvalidNameError: name is malformed
            NameKeyMismatch: signer's key does not derive the name
            StoreUnavailable: store could not be read or written
            CorruptExistingRecord: current record fails validation
            SequenceExhausted: current record holds the largest sequence
            SequenceConflict: another writer won the race (retryable)
            WriteRejected: store refused the write
        """
        target = _coerce_name(name)
        name_str = str(target)

        # Stage 1: signer must own the name
        public_key = signer.public_key()
        if not target.matches(public_key):
            audit_log.security_event("name_key_mismatch", severity="medium", name=name_str)
            raise NameKeyMismatch(
                f"Signing key does not match name {name_str}",
                {"name": name_str, "key_name": str(Name.from_public_key(public_key))},
            )

        # Stage 2-3: read and validate the current record
        previous = self._read_existing(name_str, public_key)

        # Stage 4-5: derive and sign
        if previous is None:
            record = create_record(value, sequence=0, validity=validity, ttl=ttl, now=now)
            previous_sequence = None
            migrated = False
        else:
            previous_record, previous_result = previous
            try:
                record = next_record(previous_record, value, validity=validity, ttl=ttl, now=now)
            except OverflowError as e:
                raise SequenceExhausted(
                    f"Record for {name_str} is at the final sequence number",
                    {"name": name_str, "sequence": previous_record.sequence},
                ) from e
            previous_sequence = previous_record.sequence
            migrated = previous_result.scheme == EnvelopeShape.LEGACY_ONLY

        data = encode_envelope(sign_record(record, signer))

        # Stage 6: compare-and-swap write
        audit_log.publish_request(name_str, record.sequence)
        outcome = self.store.put(name_str, data, previous_sequence)
        audit_log.publish_complete(name_str, record.sequence, outcome.value)

        if outcome == PutOutcome.CONFLICT:
            audit_log.sequence_conflict(name_str, record.sequence)
            raise SequenceConflict(
                f"Sequence {record.sequence} for {name_str} lost a concurrent write",
                {"name": name_str, "sequence": record.sequence},
            )
        if outcome == PutOutcome.UNAVAILABLE:
            raise StoreUnavailable(f"Store unavailable while publishing {name_str}")
        if outcome == PutOutcome.REJECTED:
            raise WriteRejected(
                f"Store rejected sequence {record.sequence} for {name_str}",
                {"name": name_str, "sequence": record.sequence},
            )

        if migrated:
            logger.info("Migrated %s from a legacy-only record to a dual record", name_str)
        return PublishResult(
            name=name_str,
            record=record,
            data=data,
            previous_sequence=previous_sequence,
            migrated=migrated,
        )

    def _read_existing(self, name: str, public_key):
        """Returns (record, result) for the current record, or None if there is none."""
        try:
            existing = self.store.get(name)
        except RecordNotFound:
            logger.info("No existing record for %s; publishing initial revision", name)
            return None

        try:
            envelope = decode_envelope(existing)
        except DecodeError as e:
            raise CorruptExistingRecord(
                f"Existing record for {name} could not be decoded: {e}",
                details={"name": name, "error": type(e).__name__},
            ) from e

        # Expired records can still be superseded
        result = self.validator.validate(envelope, public_key, check_expiry=False)
        if not result.is_valid():
            raise CorruptExistingRecord(
                f"Existing record for {name} failed validation: {result.outcome.value} ({result.reason})",
                result=result,
                details={"name": name, "outcome": result.outcome.value},
            )
        return envelope.record, result

    def resolve(self, name: Union[Name, str], now: Optional[datetime] = None) -> ResolvedRecord:
        """
        Fetch and validate the current record for a name.

        Expired records are returned with expired=True rather than rejected;
        the caller decides whether stale values are usable.

        Raises:
            InvalidNameError: name is malformed or does not inline its key
            RecordNotFound / StoreUnavailable: from the store
            RecordRejected: record failed validation
        """
        target = _coerce_name(name)
        name_str = str(target)
        public_key = target.public_key()

        data = self.store.get(name_str)
        try:
            envelope = decode_envelope(data)
        except DecodeError as e:
            raise RecordRejected(ValidationResult.rejected(
                ValidationOutcome.MALFORMED,
                f"Envelope could not be decoded: {e}",
                {"error": type(e).__name__},
            )) from e

        result = self.validator.validate(envelope, public_key, now=now)
        if result.outcome == ValidationOutcome.EXPIRED:
            return ResolvedRecord(name=name_str, record=envelope.record,
                                  outcome=result.outcome, expired=True)
        if not result.is_valid():
            raise RecordRejected(result)
        return ResolvedRecord(name=name_str, record=envelope.record, outcome=result.outcome)
