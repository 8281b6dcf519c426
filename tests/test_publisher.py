"""
Publisher tests: staged update flow, store outcomes and resolution.
"""

import unittest
from datetime import datetime, timezone, timedelta

from ipname import (
    CorruptExistingRecord,
    InMemoryRecordStore,
    InvalidNameError,
    MAX_UINT64,
    Name,
    NameKeyMismatch,
    PutOutcome,
    Record,
    RecordNotFound,
    RecordPublisher,
    RecordRejected,
    RecordStore,
    SequenceConflict,
    SequenceExhausted,
    StoreUnavailable,
    ValidationOutcome,
    WriteRejected,
    decode_envelope,
    encode_envelope,
    format_validity,
    generate_signer,
    sign_record,
)
from ipname.signing import KeyType

VALUE = "/ipfs/bafkreiem4twkqzsq2aj4shbycd4yvoj2cx72vezicletlhi7dijjciqpui"


class FixedOutcomeStore(RecordStore):
    """Store that answers every write with the same outcome."""

    def __init__(self, outcome):
        self.outcome = outcome
        self.writes = []

    def get(self, name):
        raise RecordNotFound(name)

    def put(self, name, data, expected_previous_sequence):
        self.writes.append((name, data, expected_previous_sequence))
        return self.outcome


class UnreachableStore(RecordStore):

    def get(self, name):
        raise StoreUnavailable("connection refused")

    def put(self, name, data, expected_previous_sequence):
        return PutOutcome.UNAVAILABLE


class TestPublishUpdate(unittest.TestCase):

    def setUp(self):
        self.signer = generate_signer()
        self.name = Name.from_signer(self.signer)
        self.store = InMemoryRecordStore()
        self.publisher = RecordPublisher(self.store)

    def test_initial_publish_starts_at_zero(self):
        result = self.publisher.publish_update(self.name, VALUE, self.signer)

        self.assertEqual(result.record.sequence, 0)
        self.assertIsNone(result.previous_sequence)
        self.assertEqual(result.name, str(self.name))
        self.assertEqual(self.store.get(str(self.name)), result.data)

    def test_accepts_name_string(self):
        result = self.publisher.publish_update(str(self.name), VALUE, self.signer)
        self.assertEqual(result.record.value, VALUE.encode())

    def test_sequence_increments(self):
        for expected in range(4):
            result = self.publisher.publish_update(self.name, f"{VALUE}/{expected}", self.signer)
            self.assertEqual(result.record.sequence, expected)

    def test_caller_validity_and_ttl(self):
        deadline = datetime(2031, 6, 1, tzinfo=timezone.utc)
        result = self.publisher.publish_update(
            self.name, VALUE, self.signer, validity=deadline, ttl=timedelta(minutes=1)
        )
        self.assertEqual(result.record.validity, b"2031-06-01T00:00:00.000000000Z")
        self.assertEqual(result.record.ttl, 60 * 1_000_000_000)

    def test_published_record_carries_both_schemes(self):
        result = self.publisher.publish_update(self.name, VALUE, self.signer)
        envelope = decode_envelope(result.data)
        self.assertIsNotNone(envelope.current)
        self.assertEqual(envelope.public_key, self.signer.public_key_bytes())

    def test_secp256k1_signer(self):
        signer = generate_signer(KeyType.SECP256K1)
        name = Name.from_signer(signer)
        self.publisher.publish_update(name, VALUE, signer)
        second = self.publisher.publish_update(name, VALUE + "/2", signer)

        self.assertEqual(second.record.sequence, 1)
        self.assertEqual(self.publisher.resolve(name).outcome, ValidationOutcome.VALID)

    def test_expired_existing_record_can_be_superseded(self):
        expired = Record(
            value=b"/ipfs/old",
            validity=format_validity(datetime(2001, 1, 1, tzinfo=timezone.utc)),
            sequence=9,
        )
        self.store.put(str(self.name), encode_envelope(sign_record(expired, self.signer)), None)

        result = self.publisher.publish_update(self.name, VALUE, self.signer)
        self.assertEqual(result.record.sequence, 10)


class TestPublishFailures(unittest.TestCase):

    def setUp(self):
        self.signer = generate_signer()
        self.name = Name.from_signer(self.signer)

    def test_key_does_not_match_name(self):
        other = generate_signer()
        with self.assertRaises(NameKeyMismatch) as ctx:
            RecordPublisher(InMemoryRecordStore()).publish_update(self.name, VALUE, other)
        self.assertEqual(ctx.exception.stage, "key")
        self.assertFalse(ctx.exception.retryable)

    def test_invalid_name(self):
        with self.assertRaises(InvalidNameError):
            RecordPublisher(InMemoryRecordStore()).publish_update("not-a-name", VALUE, self.signer)

    def test_existing_record_signed_by_other_key(self):
        store = InMemoryRecordStore()
        intruder = generate_signer()
        record = Record(value=b"/ipfs/evil", validity=b"2030-01-01T00:00:00.000000000Z", sequence=50)
        store.put(str(self.name), encode_envelope(sign_record(record, intruder)), None)

        with self.assertRaises(CorruptExistingRecord) as ctx:
            RecordPublisher(store).publish_update(self.name, VALUE, self.signer)
        self.assertEqual(ctx.exception.stage, "existing_record")
        self.assertEqual(ctx.exception.result.outcome, ValidationOutcome.INVALID_SIGNATURE)

    def test_record_at_final_sequence_cannot_advance(self):
        store = InMemoryRecordStore()
        final = Record(value=b"/ipfs/last", validity=b"2030-01-01T00:00:00.000000000Z", sequence=MAX_UINT64)
        data = encode_envelope(sign_record(final, self.signer))
        store.put(str(self.name), data, None)

        with self.assertRaises(SequenceExhausted) as ctx:
            RecordPublisher(store).publish_update(self.name, VALUE, self.signer)
        self.assertEqual(ctx.exception.stage, "derive")
        self.assertFalse(ctx.exception.retryable)
        self.assertEqual(ctx.exception.details["sequence"], MAX_UINT64)
        self.assertEqual(store.get(str(self.name)), data)

    def test_conflict_is_retryable(self):
        store = FixedOutcomeStore(PutOutcome.CONFLICT)
        with self.assertRaises(SequenceConflict) as ctx:
            RecordPublisher(store).publish_update(self.name, VALUE, self.signer)
        self.assertTrue(ctx.exception.retryable)
        self.assertEqual(ctx.exception.stage, "write")
        self.assertIsNone(store.writes[0][2])

    def test_rejected_write(self):
        with self.assertRaises(WriteRejected):
            RecordPublisher(FixedOutcomeStore(PutOutcome.REJECTED)).publish_update(self.name, VALUE, self.signer)

    def test_unavailable_write(self):
        with self.assertRaises(StoreUnavailable):
            RecordPublisher(FixedOutcomeStore(PutOutcome.UNAVAILABLE)).publish_update(
                self.name, VALUE, self.signer
            )

    def test_unreachable_store_on_read(self):
        with self.assertRaises(StoreUnavailable):
            RecordPublisher(UnreachableStore()).publish_update(self.name, VALUE, self.signer)

    def test_lost_race_detected_by_store(self):
        store = InMemoryRecordStore()
        publisher = RecordPublisher(store)
        publisher.publish_update(self.name, VALUE, self.signer)

        stale = decode_envelope(store.get(str(self.name))).record
        publisher.publish_update(self.name, VALUE + "/winner", self.signer)

        # A writer that read sequence 0 and now tries to write sequence 1
        loser = Record(value=b"/ipfs/loser", validity=stale.validity, sequence=1)
        outcome = store.put(str(self.name), encode_envelope(sign_record(loser, self.signer)), 0)
        self.assertEqual(outcome, PutOutcome.CONFLICT)


class TestResolve(unittest.TestCase):

    def setUp(self):
        self.signer = generate_signer()
        self.name = Name.from_signer(self.signer)
        self.store = InMemoryRecordStore()
        self.publisher = RecordPublisher(self.store)

    def test_resolve_published_value(self):
        self.publisher.publish_update(self.name, VALUE, self.signer)
        resolved = self.publisher.resolve(str(self.name))

        self.assertEqual(resolved.value, VALUE)
        self.assertEqual(resolved.outcome, ValidationOutcome.VALID)
        self.assertFalse(resolved.expired)

    def test_resolve_missing(self):
        with self.assertRaises(RecordNotFound):
            self.publisher.resolve(self.name)

    def test_resolve_expired_flags_it(self):
        deadline = datetime(2030, 1, 1, tzinfo=timezone.utc)
        self.publisher.publish_update(self.name, VALUE, self.signer, validity=deadline)

        resolved = self.publisher.resolve(self.name, now=deadline + timedelta(days=1))
        self.assertTrue(resolved.expired)
        self.assertEqual(resolved.outcome, ValidationOutcome.EXPIRED)

    def test_resolve_rejects_foreign_record(self):
        intruder = generate_signer()
        record = Record(value=b"/ipfs/evil", validity=b"2030-01-01T00:00:00.000000000Z")
        self.store.put(str(self.name), encode_envelope(sign_record(record, intruder)), None)

        with self.assertRaises(RecordRejected) as ctx:
            self.publisher.resolve(self.name)
        self.assertEqual(ctx.exception.result.outcome, ValidationOutcome.INVALID_SIGNATURE)


if __name__ == "__main__":
    unittest.main()
