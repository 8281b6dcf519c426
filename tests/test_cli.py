"""
Command line tests against an in-memory store.
"""

import base64
import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from dataclasses import replace
from datetime import datetime, timezone
from unittest import mock

from ipname import (
    InMemoryRecordStore,
    Name,
    PutOutcome,
    RecordNotFound,
    RecordStore,
    create_record,
    encode_envelope,
    generate_signer,
    load_signer,
    sign_record,
)
from ipname.cli import main

VALUE = "/ipfs/baguqeerav7qzu4nyltd53bjfbtvsl7kmbuktjvkywlvlw6mrvjf47mhuxnkq"


def run(argv):
    """Run the CLI, returning (exit code, stdout, stderr)."""
    out, err = io.StringIO(), io.StringIO()
    with redirect_stdout(out), redirect_stderr(err):
        code = main(argv)
    return code, out.getvalue(), err.getvalue()


class ConflictingStore(RecordStore):

    def __init__(self):
        self.attempts = 0

    def get(self, name):
        raise RecordNotFound(name)

    def put(self, name, data, expected_previous_sequence):
        self.attempts += 1
        return PutOutcome.CONFLICT


class TestCli(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.key_path = os.path.join(self.tmp.name, "name.key")
        self.store = InMemoryRecordStore()
        patcher = mock.patch("ipname.cli.build_store", return_value=self.store)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.addCleanup(self.tmp.cleanup)

    def _create(self, *extra):
        code, out, _ = run(["create", "-o", self.key_path, *extra])
        self.assertEqual(code, 0)
        with open(self.key_path, "rb") as f:
            return Name.from_signer(load_signer(f.read())), out

    def test_create_writes_key_file(self):
        name, out = self._create()
        self.assertIn(str(name), out)
        self.assertTrue(str(name).startswith("k51qzi5uqu5d"))

    def test_create_secp256k1(self):
        name, _ = self._create("--key-type", "secp256k1")
        self.assertEqual(Name.parse(str(name)), name)

    def test_publish_then_resolve(self):
        name, _ = self._create()

        code, out, _ = run(["publish", "-k", self.key_path, "-v", VALUE])
        self.assertEqual(code, 0)
        self.assertIn("sequence 0", out)

        code, out, _ = run(["publish", "-k", self.key_path, "-v", VALUE + "/2"])
        self.assertEqual(code, 0)
        self.assertIn("sequence 1", out)

        code, out, _ = run(["resolve", str(name)])
        self.assertEqual(code, 0)
        self.assertEqual(out.strip(), VALUE + "/2")

        code, out, _ = run(["resolve", "--json", str(name)])
        self.assertEqual(json.loads(out)["record"]["sequence"], 1)

    def test_resolve_unknown_name(self):
        name, _ = self._create()
        code, _, err = run(["resolve", str(name)])
        self.assertEqual(code, 1)
        self.assertIn("No record", err)

    def test_resolve_invalid_name(self):
        code, _, err = run(["resolve", "not-a-name"])
        self.assertEqual(code, 1)
        self.assertIn("Error", err)

    def test_parse_record(self):
        name, _ = self._create()
        run(["publish", "-k", self.key_path, "-v", VALUE])
        encoded = base64.b64encode(self.store.get(str(name))).decode()

        code, out, _ = run(["parse", encoded])
        self.assertEqual(code, 0)
        parsed = json.loads(out)
        self.assertEqual(parsed["shape"], "DUAL")
        self.assertEqual(parsed["record"]["value"], VALUE)
        self.assertEqual(parsed["validation"]["outcome"], "VALID")

    def test_parse_from_stdin(self):
        name, _ = self._create()
        run(["publish", "-k", self.key_path, "-v", VALUE])
        encoded = base64.b64encode(self.store.get(str(name))).decode()

        with mock.patch("sys.stdin", io.StringIO(encoded + "\n")):
            code, out, _ = run(["parse"])
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["record"]["sequence"], 0)

    def test_parse_rejects_tampered_value(self):
        envelope = sign_record(create_record("/ipfs/a"), generate_signer())
        tampered = replace(envelope, record=replace(envelope.record, value=b"/ipfs/evil"))
        encoded = base64.b64encode(encode_envelope(tampered)).decode()

        code, out, err = run(["parse", encoded])
        self.assertEqual(code, 1)
        self.assertEqual(json.loads(out)["validation"]["outcome"], "INVALID_SIGNATURE")
        self.assertIn("failed verification", err)

    def test_parse_without_embedded_key(self):
        signer = generate_signer()
        envelope = replace(sign_record(create_record(VALUE), signer), public_key=b"")
        encoded = base64.b64encode(encode_envelope(envelope)).decode()

        code, out, _ = run(["parse", encoded])
        self.assertEqual(code, 1)
        self.assertEqual(json.loads(out)["validation"]["outcome"], "MALFORMED")

        code, out, _ = run(["parse", "--name", str(Name.from_signer(signer)), encoded])
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["validation"]["outcome"], "VALID")

    def test_parse_against_other_name(self):
        envelope = sign_record(create_record(VALUE), generate_signer())
        encoded = base64.b64encode(encode_envelope(envelope)).decode()
        other = str(Name.from_signer(generate_signer()))

        code, out, _ = run(["parse", "--name", other, encoded])
        self.assertEqual(code, 1)
        self.assertNotIn(json.loads(out)["validation"]["outcome"], ("VALID", "VALID_LEGACY_ONLY"))

    def test_parse_expired_record(self):
        expired = create_record(VALUE, validity=datetime(2020, 1, 1, tzinfo=timezone.utc))
        encoded = base64.b64encode(encode_envelope(sign_record(expired, generate_signer()))).decode()

        code, out, _ = run(["parse", encoded])
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["validation"]["outcome"], "EXPIRED")

    def test_parse_garbage(self):
        code, _, err = run(["parse", "!!!"])
        self.assertEqual(code, 1)
        code, _, err = run(["parse", base64.b64encode(b"\x07").decode()])
        self.assertEqual(code, 1)
        self.assertIn("wire type", err)

    def test_publish_missing_key_file(self):
        code, _, err = run(["publish", "-k", os.path.join(self.tmp.name, "absent.key"), "-v", VALUE])
        self.assertEqual(code, 1)

    def test_publish_retries_conflicts(self):
        self._create()
        store = ConflictingStore()
        with mock.patch("ipname.cli.build_store", return_value=store), \
                mock.patch("ipname.cli.config.PUBLISH_MAX_ATTEMPTS", 3):
            code, _, err = run(["publish", "-k", self.key_path, "-v", VALUE])

        self.assertEqual(code, 1)
        self.assertEqual(store.attempts, 3)
        self.assertIn("retrying", err)

    def test_production_forces_json_logs(self):
        with mock.patch("ipname.cli.config.ENV", "prod"), \
                mock.patch("ipname.cli.config.LOG_JSON", False), \
                mock.patch("ipname.cli.configure_logging") as configure:
            run(["create", "-o", self.key_path])
        self.assertTrue(configure.call_args.kwargs["json_format"])

        with mock.patch("ipname.cli.config.ENV", "dev"), \
                mock.patch("ipname.cli.config.LOG_JSON", False), \
                mock.patch("ipname.cli.configure_logging") as configure:
            run(["create", "-o", self.key_path])
        self.assertFalse(configure.call_args.kwargs["json_format"])

    def test_no_command(self):
        code, _, _ = run([])
        self.assertEqual(code, 1)


if __name__ == "__main__":
    unittest.main()
