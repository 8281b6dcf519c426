#!/usr/bin/env python3
"""
ipname Example - Name Lifecycle

Creates a name, publishes a legacy-only record for it (as an older client
would), upgrades it with a dual-signed update, and resolves it.

Run with: python examples/publish_example.py
"""

import json

from ipname import (
    InMemoryRecordStore,
    Name,
    RecordPublisher,
    RecordValidator,
    create_record,
    decode_envelope,
    encode_envelope,
    generate_signer,
    sign_record,
)


def main():
    signer = generate_signer()
    name = Name.from_signer(signer)
    store = InMemoryRecordStore()
    publisher = RecordPublisher(store)
    validator = RecordValidator()

    print(f"Name: {name}")

    # An older client left a record carrying only the legacy signature
    legacy = sign_record(
        create_record("/ipfs/baguqeerav7qzu4nyltd53bjfbtvsl7kmbuktjvkywlvlw6mrvjf47mhuxnkq"),
        signer,
    ).legacy_only()
    store.put(str(name), encode_envelope(legacy), None)
    result = validator.validate(legacy, signer.public_key())
    print(f"Existing record: sequence {legacy.record.sequence}, {result.outcome.value}")

    # Update: sequence advances and both signatures are written
    published = publisher.publish_update(
        name, "/ipfs/bafkreiem4twkqzsq2aj4shbycd4yvoj2cx72vezicletlhi7dijjciqpui", signer
    )
    print(f"Published: {json.dumps(published.to_dict(), indent=2)}")

    upgraded = decode_envelope(store.get(str(name)))
    result = validator.validate(upgraded, signer.public_key(), previous_sequence=legacy.record.sequence)
    print(f"Updated record: sequence {upgraded.record.sequence}, {result.outcome.value}")

    resolved = publisher.resolve(name)
    print(f"Resolved {name} -> {resolved.value}")


if __name__ == "__main__":
    main()
